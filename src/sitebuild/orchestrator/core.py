from __future__ import annotations

import importlib
import json
import pkgutil
import shutil
import threading
import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Union

from .config import BuildConfig
from .logging import get_logger

if TYPE_CHECKING:
    from .server import LiveReload


# Allow static lists or callables that build paths from the config
PathSpec = Union[List[str], Callable[[BuildConfig], List[str]]]


class BuildError(Exception):
    """Base class for failures raised by build tasks."""


class TaskFailed(BuildError):
    """A task in a pipeline raised; carries the task name and the cause."""

    def __init__(self, task: str, cause: BaseException):
        self.task = task
        self.cause = cause
        super().__init__(f"Task '{task}' failed: {cause}")


@dataclass(frozen=True)
class BuildContext:
    """What every task receives: the immutable config and optional reload channel."""

    config: BuildConfig
    reloader: Optional["LiveReload"] = None
    stop: threading.Event = field(default_factory=threading.Event, compare=False)


@dataclass
class TaskSpec:
    name: str
    inputs: PathSpec
    outputs: PathSpec
    fn: Callable[[BuildContext], None]

    def resolved_inputs(self, config: BuildConfig) -> list[str]:
        return _resolve_paths(self.inputs, config)

    def resolved_outputs(self, config: BuildConfig) -> list[str]:
        return _resolve_paths(self.outputs, config)


def task(name: str, inputs: PathSpec = (), outputs: PathSpec = ()):
    """Decorator to declare a task on a function.

    The wrapped function receives a single :class:`BuildContext`.
    """

    def deco(fn: Callable[[BuildContext], None]):
        spec = TaskSpec(name=name, inputs=inputs, outputs=outputs, fn=fn)
        setattr(fn, "_task_spec", spec)
        return fn

    return deco


def discover_tasks(package: str = "sitebuild.tasks") -> Dict[str, TaskSpec]:
    """Import all modules in the tasks package and collect decorated functions."""
    log = get_logger("orchestrator.discovery")
    specs: Dict[str, TaskSpec] = {}
    try:
        pkg = importlib.import_module(package)
    except ModuleNotFoundError:
        log.warning("No tasks package found.")
        return specs
    for m in pkgutil.iter_modules(pkg.__path__, prefix=f"{package}."):
        try:
            mod = importlib.import_module(m.name)
        except Exception as e:  # noqa: BLE001
            log.warning("Failed to import %s: %s", m.name, e)
            continue
        for attr_name in dir(mod):
            obj = getattr(mod, attr_name)
            spec = getattr(obj, "_task_spec", None)
            if isinstance(spec, TaskSpec):
                specs[spec.name] = spec
    return specs


def topo_sort(nodes: Iterable[str], edges: Iterable[tuple[str, str]]) -> list[str]:
    nodes = list(nodes)
    incoming = {n: set() for n in nodes}
    outgoing = {n: set() for n in nodes}
    for u, v in edges:
        if u not in incoming or v not in incoming:
            raise ValueError(f"Edge references unknown node: {(u, v)}")
        outgoing[u].add(v)
        incoming[v].add(u)
    ordered: list[str] = []
    # Seed in declaration order so the result is stable
    roots = [n for n in reversed(nodes) if not incoming[n]]
    while roots:
        n = roots.pop()
        ordered.append(n)
        for m in sorted(outgoing[n], key=nodes.index, reverse=True):
            incoming[m].discard(n)
            outgoing[n].discard(m)
            if not incoming[m]:
                roots.append(m)
    if any(incoming[n] for n in nodes):
        raise ValueError("Cycle detected in DAG")
    return ordered


@dataclass
class Graph:
    """Named task nodes plus ``(before, after)`` edges."""

    nodes: list[str] = field(default_factory=list)
    edges: list[tuple[str, str]] = field(default_factory=list)

    def add(self, name: str, after: Iterable[str] = ()) -> "Graph":
        if name not in self.nodes:
            self.nodes.append(name)
        for dep in after:
            if dep != name and (dep, name) not in self.edges:
                self.edges.append((dep, name))
        return self

    def predecessors(self, name: str) -> set[str]:
        return {u for u, v in self.edges if v == name}


class Pipeline:
    def __init__(
        self,
        tasks: dict[str, TaskSpec],
        edges: list[tuple[str, str]],
        name: str = "pipeline",
    ):
        self.name = name
        self.tasks = tasks
        self.edges = edges
        self.order = topo_sort(tasks.keys(), edges)
        self.logger = get_logger(f"sitebuild.{self.name}")

    @classmethod
    def from_graph(
        cls, graph: Graph, specs: dict[str, TaskSpec], name: str
    ) -> "Pipeline":
        missing = [n for n in graph.nodes if n not in specs]
        if missing:
            raise KeyError(f"Unknown task(s): {', '.join(missing)}")
        return cls(tasks={n: specs[n] for n in graph.nodes}, edges=graph.edges, name=name)

    def _select_subset(self, only_step: str | None) -> list[str]:
        if only_step:
            if only_step not in self.tasks:
                raise KeyError(f"Unknown step: {only_step}")
            return [only_step]
        return self.order

    def run(
        self,
        ctx: BuildContext,
        only_step: str | None = None,
        max_workers: int | None = None,
    ) -> dict:
        """Execute the DAG; ready nodes run concurrently on a thread pool.

        The first failing task aborts the run: nothing new is scheduled, tasks
        already running are allowed to finish, then :class:`TaskFailed` is
        raised. Returns the run record that is also written to ``state.json``.
        """
        # Sorts chronologically by name
        run_id = f"{datetime.now().strftime('%Y%m%d-%H%M%S-%f')}-{uuid.uuid4().hex[:6]}"
        runs_dir = ctx.config.cache_path / "runs" / self.name
        run_dir = runs_dir / run_id

        selected = self._select_subset(only_step)
        self.logger.info("Selected steps: %s", " → ".join(selected))

        pending_deps = {
            n: {u for u, v in self.edges if v == n and u in selected} for n in selected
        }
        state: dict = {"pipeline": self.name, "run_id": run_id, "steps": []}
        started: dict[str, float] = {}
        running: dict[Future, str] = {}
        failure: TaskFailed | None = None

        workers = max_workers or ctx.config.workers
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=self.name) as pool:

            def submit_ready() -> None:
                for step_name in selected:
                    if step_name in started or pending_deps[step_name]:
                        continue
                    started[step_name] = time.perf_counter()
                    running[pool.submit(self._run_step, step_name, ctx)] = step_name

            submit_ready()
            while running:
                finished, _ = wait(list(running), return_when=FIRST_COMPLETED)
                for fut in finished:
                    step_name = running.pop(fut)
                    elapsed = round(time.perf_counter() - started[step_name], 3)
                    exc = fut.exception()
                    if exc is not None:
                        state["steps"].append(
                            {"name": step_name, "status": "error", "error": str(exc), "seconds": elapsed}
                        )
                        if failure is None:
                            failure = TaskFailed(step_name, exc)
                        continue
                    state["steps"].append({"name": step_name, "status": "ok", "seconds": elapsed})
                    for deps in pending_deps.values():
                        deps.discard(step_name)
                if failure is None:
                    submit_ready()

        if failure is not None:
            skipped = [n for n in selected if n not in started]
            state["skipped"] = skipped
            _write_state(run_dir, state)
            _prune_runs(runs_dir, ctx.config.keep_runs)
            self.logger.error(
                "Pipeline aborted at %s (%d step(s) not run)", failure.task, len(skipped)
            )
            raise failure from failure.cause
        _write_state(run_dir, state)
        _prune_runs(runs_dir, ctx.config.keep_runs)
        self.logger.info("Finished %d step(s)", len(selected))
        return state

    def _run_step(self, step_name: str, ctx: BuildContext) -> None:
        spec = self.tasks[step_name]
        step_logger = get_logger(f"sitebuild.{self.name}.{step_name}")
        step_logger.info("Run: %s", step_name)
        step_logger.debug(
            "inputs=%s outputs=%s",
            spec.resolved_inputs(ctx.config),
            spec.resolved_outputs(ctx.config),
        )
        try:
            spec.fn(ctx)
        except Exception:
            step_logger.exception("Step failed (%s)", step_name)
            raise


def _write_state(run_dir: Path, state: dict) -> None:
    run_dir.mkdir(parents=True, exist_ok=True)
    with open(run_dir / "state.json", "w", encoding="utf-8") as f:
        json.dump(state, f, indent=2)


def _prune_runs(runs_dir: Path, keep: int) -> None:
    """Delete all but the newest ``keep`` run records of a pipeline."""
    runs = sorted(p for p in runs_dir.iterdir() if p.is_dir())
    for old in runs[:-keep]:
        shutil.rmtree(old, ignore_errors=True)


def _resolve_paths(paths_spec: PathSpec, config: BuildConfig) -> list[str]:
    """Resolve a static list of paths or a callable(PathSpec) into a list[str].

    Callables receive the build config and must return a list of path strings.
    """
    if callable(paths_spec):
        paths = paths_spec(config)
    else:
        paths = paths_spec
    if paths is None:
        return []
    return [str(p) for p in paths]
