"""Path registry and build configuration.

Everything here is immutable: the config is loaded once from YAML, wrapped in
a :class:`BuildContext` and handed by reference to every task function.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional, Tuple

import yaml

from .utils import _get


DEFAULT_CONFIG_PATH = "configs/base.yaml"


class ConfigurationError(Exception):
    """Raised when configuration is invalid."""


@dataclass(frozen=True)
class Paths:
    """Root-relative source and destination locations."""

    style_entry: str = "src/sass/main.scss"
    styles: str = "src/sass/*.scss"
    images: str = "src/assets/**/*"
    fonts: str = "src/fonts/*"
    html: str = "src/**/*.html"
    scripts: str = "src/scripts/*.js"
    dist: str = "dist"
    assets: str = "dist/assets"
    fonts_dest: str = "dist/fonts"
    build: str = "dist/build"
    temp: str = "dist/build/temp"
    js_temp: str = "dist/build/temp/js"
    css_temp: str = "dist/build/temp/css"
    manifest: str = "dist/assets/rev-manifest.json"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Paths":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown paths: {', '.join(sorted(unknown))}")
        for key, value in data.items():
            if not isinstance(value, str) or not value:
                raise ConfigurationError(f"paths.{key} must be a non-empty string")
        return cls(**data)


@dataclass(frozen=True)
class StyleConfig:
    bundle_name: str = "style.css"
    include_paths: Tuple[str, ...] = ()
    precision: int = 5
    # External vendor prefixer, reads CSS on stdin and writes CSS to stdout
    prefixer: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ScriptConfig:
    bundle_name: str = "main.js"
    presets: Tuple[str, ...] = ("es2015",)


@dataclass(frozen=True)
class ImageConfig:
    extensions: Tuple[str, ...] = ("png", "jpg", "jpeg", "gif", "svg")
    interlaced: bool = True


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass(frozen=True)
class WatchConfig:
    polling: bool = False
    poll_interval: float = 1.0


@dataclass(frozen=True)
class BuildConfig:
    root: Path = field(default_factory=Path.cwd)
    paths: Paths = field(default_factory=Paths)
    styles: StyleConfig = field(default_factory=StyleConfig)
    scripts: ScriptConfig = field(default_factory=ScriptConfig)
    images: ImageConfig = field(default_factory=ImageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    cache_dir: str = ".sitebuild-cache"
    log_file: Optional[str] = None
    workers: Optional[int] = None
    keep_runs: int = 10

    def path(self, name: str) -> Path:
        """Absolute location of a registry entry, e.g. ``config.path("temp")``."""
        return self.root / getattr(self.paths, name)

    @property
    def cache_path(self) -> Path:
        return self.root / self.cache_dir

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Path | None = None) -> "BuildConfig":
        base_dir = base_dir or Path.cwd()
        root = Path(data.get("root", "."))
        if not root.is_absolute():
            root = base_dir / root

        styles = _get(data, "styles", default={})
        scripts = _get(data, "scripts", default={})
        images = _get(data, "images", default={})
        server = _get(data, "server", default={})
        watch = _get(data, "watch", default={})

        port = server.get("port", 8080)
        if not isinstance(port, int) or not 0 < port < 65536:
            raise ConfigurationError(f"server.port must be a valid port, got: {port}")

        extensions = tuple(
            str(e).lower().lstrip(".")
            for e in images.get("extensions", ImageConfig.extensions)
        )
        if not extensions:
            raise ConfigurationError("images.extensions must not be empty")

        workers = data.get("workers")
        if workers is not None and (not isinstance(workers, int) or workers < 1):
            raise ConfigurationError(f"workers must be a positive integer, got: {workers}")

        keep_runs = data.get("keep_runs", 10)
        if not isinstance(keep_runs, int) or keep_runs < 1:
            raise ConfigurationError(f"keep_runs must be a positive integer, got: {keep_runs}")

        prefixer = styles.get("prefixer") or ()
        if isinstance(prefixer, str):
            prefixer = tuple(prefixer.split())

        return cls(
            root=root.resolve(),
            paths=Paths.from_dict(_get(data, "paths", default={})),
            styles=StyleConfig(
                bundle_name=styles.get("bundle_name", StyleConfig.bundle_name),
                include_paths=tuple(styles.get("include_paths", ())),
                precision=int(styles.get("precision", StyleConfig.precision)),
                prefixer=tuple(prefixer),
            ),
            scripts=ScriptConfig(
                bundle_name=scripts.get("bundle_name", ScriptConfig.bundle_name),
                presets=tuple(scripts.get("presets", ScriptConfig.presets)),
            ),
            images=ImageConfig(
                extensions=extensions,
                interlaced=bool(images.get("interlaced", True)),
            ),
            server=ServerConfig(host=server.get("host", ServerConfig.host), port=port),
            watch=WatchConfig(
                polling=bool(watch.get("polling", False)),
                poll_interval=float(watch.get("poll_interval", WatchConfig.poll_interval)),
            ),
            cache_dir=data.get("cache_dir", ".sitebuild-cache"),
            log_file=data.get("log_file"),
            workers=workers,
            keep_runs=keep_runs,
        )


def load_config(path: str | Path | None = None) -> BuildConfig:
    """Load the build configuration.

    Without a path, ``SITEBUILD_CONFIG`` is consulted and then
    ``configs/base.yaml``; if none of them exists the defaults are used with
    the current directory as project root. An explicitly given path that does
    not exist is an error.
    """
    explicit = path is not None
    if path is None:
        path = os.getenv("SITEBUILD_CONFIG") or DEFAULT_CONFIG_PATH
        explicit = bool(os.getenv("SITEBUILD_CONFIG"))
    p = Path(path)
    if not p.exists():
        if explicit:
            raise ConfigurationError(f"Config file not found: {p}")
        return BuildConfig(root=Path.cwd().resolve())

    with open(p, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {p}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file must contain a mapping: {p}")
    return BuildConfig.from_dict(data)
