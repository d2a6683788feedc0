"""Final step of the watch cycles: tell connected browsers to reload."""

from __future__ import annotations

from ..orchestrator import task
from ..orchestrator.core import BuildContext
from ..orchestrator.logging import get_logger


log = get_logger("tasks.reload")


@task(name="reload")
def reload(ctx: BuildContext) -> None:
    if ctx.reloader is None:
        log.debug("No live-reload channel attached")
        return
    n = ctx.reloader.reload()
    log.info("Reload pushed to %d client(s)", n)
