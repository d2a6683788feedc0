"""Stylesheet task: compile the SCSS entry into one minified, comment-free CSS file.

Steps, in order:
- compile the entry (and everything it imports) with libsass, tracking a
  source map that is embedded inline;
- run the optional vendor prefixer command over the compiled CSS;
- minify with rcssmin, dropping every comment including the inline map;
- write ``<css_temp>/<bundle_name>`` and push a stylesheet update to any
  attached live-reload channel.
"""

from __future__ import annotations

import subprocess
from typing import Sequence

import rcssmin
import sass

from ..orchestrator import BuildError, task
from ..orchestrator.core import BuildContext
from ..orchestrator.logging import get_logger


log = get_logger("tasks.styles")


class StyleCompileError(BuildError):
    """The style sources failed to compile."""


def compile_scss(
    entry: str,
    bundle_name: str,
    include_paths: Sequence[str] = (),
    precision: int = 5,
) -> str:
    try:
        css, _source_map = sass.compile(
            filename=entry,
            output_style="expanded",
            include_paths=list(include_paths),
            precision=precision,
            source_map_filename=f"{bundle_name}.map",
            output_filename_hint=bundle_name,
            source_map_embed=True,
            source_map_contents=True,
        )
    except sass.CompileError as e:
        raise StyleCompileError(str(e)) from e
    return css


def prefix_css(css: str, command: Sequence[str]) -> str:
    """Pipe CSS through an external prefixer (e.g. ``postcss --use autoprefixer``)."""
    if not command:
        return css
    proc = subprocess.run(
        list(command), input=css, capture_output=True, text=True, check=False
    )
    if proc.returncode != 0:
        raise BuildError(
            f"Prefixer {command[0]} exited with {proc.returncode}: {proc.stderr.strip()}"
        )
    return proc.stdout


def minify_css(css: str) -> str:
    # Without bang comments kept, rcssmin removes all comments
    return rcssmin.cssmin(css, keep_bang_comments=False)


@task(
    name="build-sass",
    inputs=lambda c: [c.paths.style_entry, c.paths.styles],
    outputs=lambda c: [f"{c.paths.css_temp}/{c.styles.bundle_name}"],
)
def build_sass(ctx: BuildContext) -> None:
    cfg = ctx.config
    entry = cfg.path("style_entry")
    if not entry.is_file():
        raise FileNotFoundError(f"Style entry not found: {entry}")

    include_paths = [str(entry.parent)] + [str(cfg.root / p) for p in cfg.styles.include_paths]
    css = compile_scss(
        str(entry),
        cfg.styles.bundle_name,
        include_paths=include_paths,
        precision=cfg.styles.precision,
    )
    css = prefix_css(css, cfg.styles.prefixer)
    css = minify_css(css)

    out_dir = cfg.path("css_temp")
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / cfg.styles.bundle_name
    out_path.write_text(css, encoding="utf-8")
    log.info("Wrote %s (%d bytes)", out_path, len(css))

    if ctx.reloader is not None:
        ctx.reloader.inject_css(cfg.styles.bundle_name)
