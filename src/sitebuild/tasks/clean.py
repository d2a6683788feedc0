"""Cleaning tasks: wipe the output tree, top-level HTML, or non-manifest assets."""

from __future__ import annotations

import shutil
from pathlib import Path

from ..orchestrator import task
from ..orchestrator.core import BuildContext
from ..orchestrator.logging import get_logger


log = get_logger("tasks.clean")


def remove_tree(path: Path) -> bool:
    """Recursively delete ``path``; returns False when it did not exist."""
    if not path.exists():
        return False
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()
    return True


@task(name="clean", outputs=lambda c: [c.paths.dist])
def clean(ctx: BuildContext) -> None:
    dist = ctx.config.path("dist")
    if remove_tree(dist):
        log.info("Removed %s", dist)


@task(name="clean-html", outputs=lambda c: [f"{c.paths.dist}/*.html"])
def clean_html(ctx: BuildContext) -> None:
    """Delete the top-level HTML files of the output tree before they are recopied."""
    dist = ctx.config.path("dist")
    if not dist.is_dir():
        return
    for html in dist.glob("*.html"):
        html.unlink()


@task(name="delete-assets", outputs=lambda c: [f"{c.paths.assets}/*"])
def delete_assets(ctx: BuildContext) -> None:
    """Empty the assets directory but keep the revision manifest."""
    assets = ctx.config.path("assets")
    manifest = ctx.config.path("manifest")
    if not assets.is_dir():
        return
    removed = 0
    for entry in assets.iterdir():
        if entry == manifest:
            continue
        remove_tree(entry)
        removed += 1
    log.info("Removed %d asset(s) from %s", removed, assets)
