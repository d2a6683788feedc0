"""Dev server for the output tree, built on python-livereload.

livereload serves ``dist``, injects its client script into every HTML page and
holds a websocket to each open browser. Build tasks push through
:class:`LiveReload`: a full reload, or a stylesheet refresh without one.
"""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Optional

from livereload import Server
from livereload.handlers import LiveReloadHandler
from tornado.ioloop import IOLoop

from .logging import get_logger, quiet_libraries


log = get_logger("orchestrator.server")

FULL_RELOAD = "*"


class LiveReload:
    """Push channel to the browsers connected to a running :class:`DevServer`.

    Pushes made while no server is attached go nowhere and report 0 clients.
    """

    def __init__(self) -> None:
        self._loop: Optional[IOLoop] = None
        self._lock = threading.Lock()

    def attach(self, loop: IOLoop) -> None:
        with self._lock:
            self._loop = loop

    def detach(self) -> None:
        with self._lock:
            self._loop = None

    @property
    def client_count(self) -> int:
        with self._lock:
            if self._loop is None:
                return 0
        return len(LiveReloadHandler.waiters)

    def _push(self, path: str) -> int:
        with self._lock:
            loop = self._loop
        if loop is None:
            return 0
        clients = len(LiveReloadHandler.waiters)
        # Websocket writes belong on the server's own loop
        loop.add_callback(LiveReloadHandler.reload_waiters, path)
        return clients

    def reload(self) -> int:
        return self._push(FULL_RELOAD)

    def inject_css(self, name: str) -> int:
        # The client swaps stylesheets in place for a .css path
        return self._push(name)


class DevServer:
    """livereload ``Server`` for ``root``, run on a background thread."""

    def __init__(self, root: Path, reloader: LiveReload, host: str = "0.0.0.0", port: int = 8080):
        self.root = Path(root)
        self.reloader = reloader
        self.host = host
        self.port = port
        self.server = Server()
        # Server() resets the livereload logger to INFO
        quiet_libraries()
        # Reloads come from the build, never from livereload's own polling
        self.server.watch(str(self.root), ignore=lambda path: True)
        self._loop: Optional[IOLoop] = None
        self._ready = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _serve(self) -> None:
        asyncio.set_event_loop(asyncio.new_event_loop())
        self._loop = IOLoop.current()
        self.reloader.attach(self._loop)
        self._ready.set()
        try:
            self.server.serve(
                host=self.host,
                port=self.port,
                root=str(self.root),
                debug=False,
                restart_delay=0,
            )
        finally:
            self.reloader.detach()

    def start(self) -> None:
        self._thread = threading.Thread(target=self._serve, name="devserver", daemon=True)
        self._thread.start()
        self._ready.wait()
        log.info("Serving %s on http://localhost:%d", self.root, self.port)

    def stop(self, timeout: float = 5.0) -> None:
        if self._loop is not None:
            self._loop.add_callback(self._loop.stop)
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                log.warning("Dev server did not stop within %.1fs", timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
