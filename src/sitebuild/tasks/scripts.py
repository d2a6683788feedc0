"""Script tasks: transpile + concatenate, attach a source map, minify.

``build-js`` writes the transpiled bundle to the build root, ``bundle-js``
copies it into the temp tree with an inline source map, and ``compress-js``
(production only) minifies every temp script in place.
"""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Sequence

import dukpy
import rjsmin

from ..orchestrator import BuildError, task
from ..orchestrator.core import BuildContext
from ..orchestrator.logging import get_logger
from ..orchestrator.utils import expand


log = get_logger("tasks.scripts")


class ScriptSyntaxError(BuildError):
    """A script could not be transpiled or parsed."""


def transpile(source: str, filename: str, presets: Sequence[str] = ("es2015",)) -> str:
    try:
        result = dukpy.babel_compile(source, presets=list(presets), filename=filename)
    except dukpy.JSRuntimeError as e:
        raise ScriptSyntaxError(f"{filename}: {e}") from e
    return result["code"]


def check_syntax(code: str, filename: str) -> None:
    """Parse ``code`` with Duktape without running it."""
    try:
        dukpy.evaljs("new Function(dukpy['src']); true", src=code)
    except dukpy.JSRuntimeError as e:
        raise ScriptSyntaxError(f"{filename}: {e}") from e


def with_inline_source_map(code: str, source_name: str) -> str:
    """Append a base64 source map mapping each line to itself."""
    line_count = code.count("\n") + 1
    source_map = {
        "version": 3,
        "file": source_name,
        "sources": [source_name],
        "sourcesContent": [code],
        "names": [],
        "mappings": ";".join(["AAAA"] + ["AACA"] * (line_count - 1)),
    }
    encoded = base64.b64encode(json.dumps(source_map).encode("utf-8")).decode("ascii")
    return (
        f"{code.rstrip()}\n"
        f"//# sourceMappingURL=data:application/json;charset=utf8;base64,{encoded}\n"
    )


def _bundle_path(ctx: BuildContext) -> Path:
    return ctx.config.path("build") / ctx.config.scripts.bundle_name


@task(
    name="build-js",
    inputs=lambda c: [c.paths.scripts],
    outputs=lambda c: [f"{c.paths.build}/{c.scripts.bundle_name}"],
)
def build_js(ctx: BuildContext) -> None:
    cfg = ctx.config
    parts = []
    for src, rel in expand(cfg.root, cfg.paths.scripts):
        parts.append(
            transpile(src.read_text(encoding="utf-8"), str(rel), cfg.scripts.presets)
        )
    bundle = _bundle_path(ctx)
    bundle.parent.mkdir(parents=True, exist_ok=True)
    bundle.write_text("\n".join(parts), encoding="utf-8")
    log.info("Transpiled %d script(s) into %s", len(parts), bundle)


@task(
    name="bundle-js",
    inputs=lambda c: [f"{c.paths.build}/{c.scripts.bundle_name}"],
    outputs=lambda c: [f"{c.paths.js_temp}/{c.scripts.bundle_name}"],
)
def bundle_js(ctx: BuildContext) -> None:
    cfg = ctx.config
    bundle = _bundle_path(ctx)
    code = bundle.read_text(encoding="utf-8")
    out_dir = cfg.path("js_temp")
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / cfg.scripts.bundle_name
    out_path.write_text(with_inline_source_map(code, cfg.scripts.bundle_name), encoding="utf-8")
    log.info("Wrote %s", out_path)


@task(
    name="compress-js",
    inputs=lambda c: [f"{c.paths.temp}/**/*.js"],
    outputs=lambda c: [f"{c.paths.temp}/**/*.js"],
)
def compress_js(ctx: BuildContext) -> None:
    temp = ctx.config.path("temp")
    for path in sorted(temp.rglob("*.js")):
        code = path.read_text(encoding="utf-8")
        check_syntax(code, path.name)
        minified = rjsmin.jsmin(code, keep_bang_comments=False)
        path.write_text(minified, encoding="utf-8")
        log.info("Minified %s (%d -> %d bytes)", path.name, len(code), len(minified))
