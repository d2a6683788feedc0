"""Tests for the watcher and its single-flight guard."""
import dataclasses
import threading
import time
from types import SimpleNamespace

from sitebuild.orchestrator.config import WatchConfig
from sitebuild.orchestrator.core import BuildContext, TaskFailed
from sitebuild.orchestrator.utils import matches
from sitebuild.orchestrator.watch import (
    ChangeHandler,
    SingleFlight,
    Watcher,
    watch_dirs,
    watch_targets,
)


def event(path, event_type="modified", is_directory=False, dest_path=""):
    return SimpleNamespace(
        src_path=str(path), event_type=event_type, is_directory=is_directory, dest_path=dest_path
    )


class Gate:
    """A cycle function that blocks until released, counting its runs."""

    def __init__(self):
        self.runs = 0
        self.entered = threading.Event()
        self.release = threading.Event()

    def __call__(self):
        self.runs += 1
        self.entered.set()
        assert self.release.wait(5)


class TestSingleFlight:
    def test_idle_to_rebuilding_to_idle(self):
        gate = Gate()
        flight = SingleFlight("t", gate)
        assert flight.state == "idle"
        assert flight.trigger() is True
        assert gate.entered.wait(5)
        assert flight.state == "rebuilding"
        gate.release.set()
        assert flight.wait_idle(5)
        assert flight.state == "idle"
        assert gate.runs == 1

    def test_events_during_cycle_coalesce_into_one_rerun(self):
        gate = Gate()
        flight = SingleFlight("t", gate)
        flight.trigger()
        assert gate.entered.wait(5)
        assert flight.trigger() is False
        assert flight.trigger() is False
        assert flight.trigger() is False
        gate.release.set()
        assert flight.wait_idle(5)
        assert gate.runs == 2

    def test_failure_does_not_stop_future_cycles(self):
        runs = []

        def failing():
            runs.append(1)
            raise TaskFailed("build-sass", RuntimeError("bad scss"))

        flight = SingleFlight("t", failing)
        flight.trigger()
        assert flight.wait_idle(5)
        flight.trigger()
        assert flight.wait_idle(5)
        assert len(runs) == 2
        assert flight.failures == 2
        assert flight.state == "idle"

    def test_unexpected_exception_is_contained(self):
        flight = SingleFlight("t", lambda: 1 / 0)
        flight.trigger()
        assert flight.wait_idle(5)
        assert flight.failures == 1

    def test_shared_lock_serialises_targets(self):
        lock = threading.Lock()
        active = []
        overlap = []

        def cycle():
            active.append(1)
            if len(active) > 1:
                overlap.append(1)
            time.sleep(0.05)
            active.pop()

        a = SingleFlight("a", cycle, lock=lock)
        b = SingleFlight("b", cycle, lock=lock)
        a.trigger()
        b.trigger()
        assert a.wait_idle(5) and b.wait_idle(5)
        assert overlap == []


class TestMatching:
    def test_double_star_matches_zero_dirs(self):
        assert matches("src/index.html", "src/**/*.html")
        assert matches("src/about/index.html", "src/**/*.html")
        assert not matches("src/index.htm", "src/**/*.html")

    def test_targets(self, config):
        targets = {t.name: t for t in watch_targets(config)}
        assert targets["assets"].pipeline == "live-reload"
        assert targets["html"].pipeline == "html-reload"


class TestChangeHandler:
    def make(self, site, config):
        triggered = []

        class Flight:
            def __init__(self, name):
                self.name = name

            def trigger(self):
                triggered.append(self.name)
                return True

        routes = [(t, Flight(t.name)) for t in watch_targets(config)]
        return ChangeHandler(site, routes), triggered

    def test_style_change_triggers_assets(self, site, config):
        handler, triggered = self.make(site, config)
        handler.on_any_event(event(site / "src/sass/_layout.scss"))
        assert triggered == ["assets"]

    def test_script_change_triggers_assets(self, site, config):
        handler, triggered = self.make(site, config)
        handler.on_any_event(event(site / "src/scripts/app.js", "created"))
        assert triggered == ["assets"]

    def test_html_change_triggers_html(self, site, config):
        handler, triggered = self.make(site, config)
        handler.on_any_event(event(site / "src/about/index.html"))
        assert triggered == ["html"]

    def test_ignores_directories_and_other_files(self, site, config):
        handler, triggered = self.make(site, config)
        handler.on_any_event(event(site / "src/sass", is_directory=True))
        handler.on_any_event(event(site / "src/assets/notes.txt"))
        handler.on_any_event(event(site / "README.md"))
        handler.on_any_event(event(site / "src/index.html", event_type="opened"))
        assert triggered == []

    def test_move_considers_destination(self, site, config):
        handler, triggered = self.make(site, config)
        handler.on_any_event(
            event(site / "src/sass/tmp.txt", "moved", dest_path=str(site / "src/sass/new.scss"))
        )
        assert triggered == ["assets"]


class TestWatcher:
    def test_watch_dirs_are_minimal(self, site):
        dirs = watch_dirs(site, ["src/sass/*.scss", "src/scripts/*.js", "src/**/*.html"])
        assert dirs == [(site / "src").resolve()]

    def test_cycle_runs_mapped_pipeline(self, ctx):
        ran = []
        watcher = Watcher(ctx, runner=lambda name, c: ran.append((name, c)))
        watcher.flights["html"].trigger()
        assert watcher.flights["html"].wait_idle(5)
        assert ran == [("html-reload", ctx)]

    def test_detects_real_file_change(self, config):
        cfg = dataclasses.replace(config, watch=WatchConfig(polling=True, poll_interval=0.1))
        ran = threading.Event()
        watcher = Watcher(BuildContext(config=cfg), runner=lambda name, c: ran.set())
        watcher.start()
        try:
            time.sleep(0.3)
            (cfg.root / "src/sass/main.scss").write_text("body { color: red; }\n")
            assert ran.wait(5)
        finally:
            watcher.stop()
