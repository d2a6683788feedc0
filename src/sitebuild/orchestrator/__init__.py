"""Task and pipeline primitives for the site build.

Provides the task decorator, DAG scheduling on a thread pool, a content-keyed
cache, a watcher with live reload, and a Typer CLI.
"""

from .core import BuildContext, BuildError, Pipeline, TaskFailed, TaskSpec, task  # re-export for convenience

__all__ = ["BuildContext", "BuildError", "Pipeline", "TaskFailed", "TaskSpec", "task"]
