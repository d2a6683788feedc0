from __future__ import annotations

from dataclasses import replace
from typing import Optional

import typer
from dotenv import load_dotenv

from .. import pipelines
from .config import ConfigurationError, load_config
from .core import BuildContext, TaskFailed, discover_tasks
from .logging import add_file_handler, get_logger
from .server import LiveReload


app = typer.Typer(add_completion=False, help="Static site build pipelines")
log = get_logger("orchestrator.cli")


def _load(config: Optional[str]):
    try:
        return load_config(config)
    except ConfigurationError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2)


def _context(config: Optional[str], with_reload: bool, workers: Optional[int]) -> BuildContext:
    cfg = _load(config)
    if workers is not None:
        cfg = replace(cfg, workers=workers)
    if cfg.log_file:
        add_file_handler(cfg.root / cfg.log_file)
    return BuildContext(config=cfg, reloader=LiveReload() if with_reload else None)


@app.command("list")
def list_tasks(
    config: Optional[str] = typer.Option(
        None, envvar="SITEBUILD_CONFIG", help="Path to YAML config"
    ),
):
    """List pipelines, and tasks with what they read and write."""
    cfg = _load(config)
    specs = discover_tasks()
    typer.echo("Pipelines:")
    for name, definition in pipelines.PIPELINES.items():
        suffix = f"  {definition.description}" if definition.description else ""
        typer.echo(f"- {name}{suffix}")
    typer.echo("Tasks:")
    for name in sorted(specs):
        spec = specs[name]
        inputs = ", ".join(spec.resolved_inputs(cfg)) or "-"
        outputs = ", ".join(spec.resolved_outputs(cfg)) or "-"
        typer.echo(f"- {name}  {inputs} -> {outputs}")


@app.command()
def run(
    name: str = typer.Argument("default", help="Task or pipeline to run"),
    config: Optional[str] = typer.Option(
        None, envvar="SITEBUILD_CONFIG", help="Path to YAML config"
    ),
    only: bool = typer.Option(False, help="Run just this task, without its predecessors"),
    workers: Optional[int] = typer.Option(None, min=1, help="Bound the task thread pool"),
):
    """Run a task or pipeline by name (default: build, then watch and serve)."""
    specs = discover_tasks()
    try:
        definition = pipelines.resolve(name, specs)
    except KeyError as e:
        typer.echo(str(e.args[0]), err=True)
        raise typer.Exit(code=1)

    ctx = _context(config, with_reload=definition.service == "serve", workers=workers)
    try:
        pipelines.run_graph(name, ctx, only=name if only else None)
    except TaskFailed as e:
        typer.echo(f"Task '{e.task}' failed: {e.cause}", err=True)
        raise typer.Exit(code=1)
    except KeyError as e:
        typer.echo(str(e.args[0]), err=True)
        raise typer.Exit(code=1)

    if definition.service:
        try:
            pipelines.run_service(definition.service, ctx)
        except KeyboardInterrupt:
            ctx.stop.set()
            log.info("Stopped")


@app.command()
def build(
    config: Optional[str] = typer.Option(
        None, envvar="SITEBUILD_CONFIG", help="Path to YAML config"
    ),
):
    """Production build: clean, minify, hash and rewrite references."""
    run(name="build", config=config, only=False, workers=None)


def main():  # pragma: no cover
    load_dotenv()
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
