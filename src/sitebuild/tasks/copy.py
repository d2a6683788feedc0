"""Plain copy tasks for HTML pages and fonts."""

from __future__ import annotations

import shutil
from pathlib import Path

from ..orchestrator import task
from ..orchestrator.core import BuildContext
from ..orchestrator.logging import get_logger
from ..orchestrator.utils import expand


log = get_logger("tasks.copy")


def copy_glob(root: Path, pattern: str, dest: Path) -> int:
    """Copy every file matched by ``pattern`` under ``dest``, keeping sub-paths."""
    count = 0
    for src, rel in expand(root, pattern):
        target = dest / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, target)
        count += 1
    return count


@task(
    name="build-html",
    inputs=lambda c: [c.paths.html],
    outputs=lambda c: [c.paths.dist],
)
def build_html(ctx: BuildContext) -> None:
    cfg = ctx.config
    n = copy_glob(cfg.root, cfg.paths.html, cfg.path("dist"))
    log.info("Copied %d HTML file(s)", n)


@task(
    name="build-fonts",
    inputs=lambda c: [c.paths.fonts],
    outputs=lambda c: [c.paths.fonts_dest],
)
def build_fonts(ctx: BuildContext) -> None:
    cfg = ctx.config
    n = copy_glob(cfg.root, cfg.paths.fonts, cfg.path("fonts_dest"))
    log.info("Copied %d font file(s)", n)
