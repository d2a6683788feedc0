"""Cache-busting: content-hash the temp build tree and rewrite HTML references.

``hash`` renames every CSS/JS file of the temp tree to ``<stem>-<hash><ext>``
in the output root and records ``original -> hashed`` in the manifest.
``clean-build`` removes the build directory once hashing consumed it and
``update`` rewrites manifest keys found in output HTML to their hashed names.
"""

from __future__ import annotations

import json
import re
from pathlib import Path, PurePosixPath
from typing import Dict

from ..orchestrator import task
from ..orchestrator.cache import md5_bytes
from ..orchestrator.core import BuildContext
from ..orchestrator.logging import get_logger
from .clean import remove_tree


log = get_logger("tasks.revision")

HASH_LENGTH = 10
REVISIONED_SUFFIXES = (".css", ".js")


def revisioned_name(rel_path: str, data: bytes) -> str:
    """``css/style.css`` + content -> ``css/style-<hash>.css``."""
    p = PurePosixPath(rel_path)
    digest = md5_bytes(data)[:HASH_LENGTH]
    return str(p.with_name(f"{p.stem}-{digest}{p.suffix}"))


def read_manifest(path: Path) -> Dict[str, str]:
    if not path.is_file():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Manifest must be a JSON object: {path}")
    return {str(k): str(v) for k, v in data.items()}


def write_manifest(path: Path, manifest: Dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, sort_keys=True)
        f.write("\n")


def rewrite_references(text: str, manifest: Dict[str, str]) -> str:
    """Replace whole-path occurrences of manifest keys with their hashed values.

    Longer keys win so ``js/main.js`` is not split by a shorter ``main.js``.
    """
    if not manifest:
        return text
    keys = sorted(manifest, key=len, reverse=True)
    pattern = re.compile(
        r"(?<![\w.-])(" + "|".join(re.escape(k) for k in keys) + r")(?![\w-]|\.\w)"
    )
    return pattern.sub(lambda m: manifest[m.group(1)], text)


@task(
    name="hash",
    inputs=lambda c: [f"{c.paths.temp}/**/*.js", f"{c.paths.temp}/**/*.css"],
    outputs=lambda c: [c.paths.dist, c.paths.manifest],
)
def hash_assets(ctx: BuildContext) -> None:
    cfg = ctx.config
    temp = cfg.path("temp")
    dist = cfg.path("dist")
    manifest: Dict[str, str] = {}
    if temp.is_dir():
        for path in sorted(temp.rglob("*")):
            if not path.is_file() or path.suffix not in REVISIONED_SUFFIXES:
                continue
            rel = path.relative_to(temp).as_posix()
            data = path.read_bytes()
            hashed = revisioned_name(rel, data)
            target = dist / hashed
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
            manifest[rel] = hashed
            log.info("%s -> %s", rel, hashed)

    if not manifest:
        # Nothing was built this cycle; keep whatever manifest is in place
        log.info("No built assets under %s, manifest left unchanged", temp)
        return
    write_manifest(cfg.path("manifest"), manifest)
    log.info("Wrote manifest with %d entr(ies) to %s", len(manifest), cfg.path("manifest"))


@task(name="clean-build", outputs=lambda c: [c.paths.build])
def clean_build(ctx: BuildContext) -> None:
    build = ctx.config.path("build")
    if remove_tree(build):
        log.info("Removed %s", build)


@task(
    name="update",
    inputs=lambda c: [c.paths.manifest, f"{c.paths.dist}/**/*.html"],
    outputs=lambda c: [f"{c.paths.dist}/**/*.html"],
)
def update(ctx: BuildContext) -> None:
    cfg = ctx.config
    manifest = read_manifest(cfg.path("manifest"))
    if not manifest:
        log.warning("No manifest at %s, nothing to rewrite", cfg.path("manifest"))
        return
    dist = cfg.path("dist")
    rewritten = 0
    for html in sorted(dist.rglob("*.html")):
        # newline="" keeps line endings and surrogateescape keeps non-UTF-8
        # bytes exactly as they were
        with open(html, "r", encoding="utf-8", errors="surrogateescape", newline="") as f:
            original = f.read()
        updated = rewrite_references(original, manifest)
        if updated != original:
            with open(html, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
                f.write(updated)
            rewritten += 1
    log.info("Rewrote references in %d HTML file(s)", rewritten)
