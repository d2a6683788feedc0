"""Named entry points and how they compose the tasks.

Every pipeline is written as ``series``/``parallel`` composition of tasks and
compiled into an explicit :class:`Graph` before it runs. ``default``,
``watch`` and ``serve`` additionally start a long-running service once their
graph (if any) has completed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from .orchestrator.core import BuildContext, Graph, Pipeline, discover_tasks
from .orchestrator.server import DevServer
from .orchestrator.watch import Watcher

# A step adds itself to the graph after ``after`` and returns its tail nodes
Step = Callable[[Graph, List[str]], List[str]]


def leaf(name: str) -> Step:
    def build(g: Graph, after: List[str]) -> List[str]:
        g.add(name, after=after)
        return [name]

    return build


def series(*steps: Step) -> Step:
    def build(g: Graph, after: List[str]) -> List[str]:
        tails = list(after)
        for step in steps:
            tails = step(g, tails)
        return tails

    return build


def parallel(*steps: Step) -> Step:
    def build(g: Graph, after: List[str]) -> List[str]:
        tails: List[str] = []
        for step in steps:
            tails.extend(t for t in step(g, after) if t not in tails)
        return tails

    return build


def compile_graph(step: Step) -> Graph:
    g = Graph()
    step(g, [])
    return g


BUNDLE_JS = series(leaf("build-js"), leaf("bundle-js"))
COMPRESS_JS = series(BUNDLE_JS, leaf("compress-js"))
CLEAN_BUILD = series(leaf("hash"), leaf("clean-build"))
UPDATE = series(CLEAN_BUILD, leaf("update"))

BUILD_ALL = parallel(
    leaf("build-html"),
    leaf("build-fonts"),
    leaf("build-sass"),
    BUNDLE_JS,
    leaf("optimise-img"),
)
BUILD_COMPRESS = parallel(
    leaf("build-html"),
    leaf("build-fonts"),
    leaf("build-sass"),
    COMPRESS_JS,
    leaf("optimise-img"),
)

LIVE_RELOAD = series(leaf("clean"), BUILD_ALL, UPDATE, leaf("reload"))
HTML_RELOAD = series(
    leaf("clean-html"),
    leaf("build-html"),
    UPDATE,
    leaf("delete-assets"),
    leaf("optimise-img"),
    leaf("reload"),
)


@dataclass(frozen=True)
class PipelineDef:
    name: str
    step: Optional[Step] = None
    service: Optional[str] = None
    description: str = ""

    def graph(self) -> Graph:
        return compile_graph(self.step) if self.step else Graph()


PIPELINES: Dict[str, PipelineDef] = {
    p.name: p
    for p in [
        PipelineDef("default", series(leaf("clean"), BUILD_ALL, UPDATE), "serve",
                    "Build unminified assets, then watch and serve"),
        PipelineDef("build", series(leaf("clean"), BUILD_COMPRESS, UPDATE), None,
                    "Production build: minified, hashed, rewritten"),
        PipelineDef("live-reload", LIVE_RELOAD, None, "Full rebuild followed by a browser reload"),
        PipelineDef("html-reload", HTML_RELOAD, None, "Recopy HTML, rewrite references, reload"),
        PipelineDef("build-all", BUILD_ALL),
        PipelineDef("build-compress", BUILD_COMPRESS),
        PipelineDef("bundle-js", BUNDLE_JS),
        PipelineDef("compress-js", COMPRESS_JS),
        PipelineDef("clean-build", CLEAN_BUILD),
        PipelineDef("update", UPDATE),
        PipelineDef("watch", None, "watch", "Rebuild on source changes"),
        PipelineDef("serve", None, "serve", "Dev server plus watcher"),
    ]
}


def resolve(name: str, tasks: Iterable[str]) -> PipelineDef:
    """Named pipeline, or a single task wrapped as a one-node pipeline."""
    if name in PIPELINES:
        return PIPELINES[name]
    if name in tasks:
        return PipelineDef(name, leaf(name))
    raise KeyError(f"Unknown task or pipeline: {name}")


def run_graph(name: str, ctx: BuildContext, only: str | None = None) -> Optional[dict]:
    """Run the graph part of ``name``; returns the run record (None if empty)."""
    specs = discover_tasks()
    definition = resolve(name, specs)
    graph = definition.graph()
    if not graph.nodes:
        return None
    pipe = Pipeline.from_graph(graph, specs, name=name)
    return pipe.run(ctx, only_step=only)


def run_service(name: str, ctx: BuildContext) -> None:
    """Start the watcher (and for ``serve`` the dev server) until ``ctx.stop`` is set."""
    cfg = ctx.config
    server = None
    if name == "serve":
        if ctx.reloader is None:
            raise ValueError("serve needs a BuildContext with a live-reload channel")
        server = DevServer(cfg.path("dist"), ctx.reloader, cfg.server.host, cfg.server.port)
        server.start()
    watcher = Watcher(ctx, runner=run_graph)
    watcher.start()
    try:
        while not ctx.stop.wait(0.5):
            pass
    finally:
        watcher.stop()
        if server is not None:
            server.stop()
