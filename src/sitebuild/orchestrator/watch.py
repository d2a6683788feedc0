"""File watching: map source changes to rebuild pipelines.

Each watch target owns a :class:`SingleFlight` guard, so a target is either
idle or rebuilding. A change that arrives while its target is rebuilding
schedules exactly one follow-up cycle; further changes fold into it. Cycles
of all targets share one lock because they write the same output tree.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from .config import BuildConfig
from .core import BuildContext, TaskFailed
from .logging import get_logger
from .utils import glob_base, matches_any


log = get_logger("orchestrator.watch")

RELEVANT_EVENTS = {"created", "modified", "deleted", "moved"}


@dataclass(frozen=True)
class WatchTarget:
    name: str
    patterns: Tuple[str, ...]
    pipeline: str


def watch_targets(config: BuildConfig) -> List[WatchTarget]:
    paths = config.paths
    return [
        WatchTarget("assets", (paths.styles, paths.scripts), "live-reload"),
        WatchTarget("html", (paths.html,), "html-reload"),
    ]


class SingleFlight:
    """Run ``fn`` on a worker thread, never twice at once, coalescing triggers."""

    def __init__(
        self,
        name: str,
        fn: Callable[[], None],
        lock: Optional[threading.Lock] = None,
    ):
        self.name = name
        self.fn = fn
        self.cycles = 0
        self.failures = 0
        self._shared = lock
        self._state_lock = threading.Lock()
        self._running = False
        self._pending = False
        self._idle = threading.Event()
        self._idle.set()

    @property
    def state(self) -> str:
        with self._state_lock:
            return "rebuilding" if self._running else "idle"

    def trigger(self) -> bool:
        """Start a cycle; returns False when folded into an in-flight one."""
        with self._state_lock:
            if self._running:
                self._pending = True
                return False
            self._running = True
            self._idle.clear()
        threading.Thread(target=self._loop, name=f"watch-{self.name}", daemon=True).start()
        return True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle.wait(timeout)

    def _loop(self) -> None:
        while True:
            self._run_once()
            with self._state_lock:
                if self._pending:
                    self._pending = False
                    continue
                self._running = False
                self._idle.set()
                return

    def _run_once(self) -> None:
        self.cycles += 1
        try:
            if self._shared is not None:
                with self._shared:
                    self.fn()
            else:
                self.fn()
        except TaskFailed as e:
            self.failures += 1
            log.error("[%s] rebuild failed in task %s: %s", self.name, e.task, e.cause)
        except Exception:  # noqa: BLE001
            # The watcher must keep listening whatever a cycle raised
            self.failures += 1
            log.exception("[%s] rebuild failed", self.name)


class ChangeHandler(FileSystemEventHandler):
    """Routes filesystem events to the single-flight guard of matching targets."""

    def __init__(self, root: Path, routes: Iterable[Tuple[WatchTarget, SingleFlight]]):
        super().__init__()
        self.root = Path(root).resolve()
        self.routes = list(routes)

    def targets_for(self, path: str) -> List[WatchTarget]:
        try:
            rel = Path(path).resolve().relative_to(self.root).as_posix()
        except ValueError:
            return []
        return [t for t, _ in self.routes if matches_any(rel, t.patterns)]

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in RELEVANT_EVENTS:
            return
        paths = [event.src_path]
        if getattr(event, "dest_path", ""):
            paths.append(event.dest_path)
        hit = {t.name for p in paths for t in self.targets_for(str(p))}
        for target, flight in self.routes:
            if target.name in hit:
                started = flight.trigger()
                log.info(
                    "Change in %s -> %s (%s)",
                    event.src_path,
                    target.pipeline,
                    "started" if started else "queued",
                )


def watch_dirs(root: Path, patterns: Iterable[str]) -> List[Path]:
    """Smallest set of existing directories covering every pattern's base."""
    bases = sorted({(root / glob_base(p)).resolve() for p in patterns}, key=lambda p: len(p.parts))
    selected: List[Path] = []
    for base in bases:
        if not base.is_dir():
            continue
        if any(base == s or s in base.parents for s in selected):
            continue
        selected.append(base)
    return selected


class Watcher:
    """Observer plus one single-flight guard per watch target."""

    def __init__(self, ctx: BuildContext, runner: Callable[[str, BuildContext], object]):
        self.ctx = ctx
        self.runner = runner
        self.targets = watch_targets(ctx.config)
        self._cycle_lock = threading.Lock()
        self.flights: Dict[str, SingleFlight] = {
            t.name: SingleFlight(t.name, self._cycle(t), lock=self._cycle_lock)
            for t in self.targets
        }
        self.handler = ChangeHandler(
            ctx.config.root, [(t, self.flights[t.name]) for t in self.targets]
        )
        self._observer = None

    def _cycle(self, target: WatchTarget) -> Callable[[], None]:
        def run() -> None:
            self.runner(target.pipeline, self.ctx)

        return run

    def start(self) -> None:
        cfg = self.ctx.config
        if cfg.watch.polling:
            observer = PollingObserver(timeout=cfg.watch.poll_interval)
        else:
            observer = Observer()
        patterns = [p for t in self.targets for p in t.patterns]
        for directory in watch_dirs(cfg.root, patterns):
            observer.schedule(self.handler, str(directory), recursive=True)
            log.info("Watching %s", directory)
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        for flight in self.flights.values():
            flight.wait_idle()
