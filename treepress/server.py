"""Development server and watch mode for Treepress.

Serves the published output tree with live reload:
- Injects a reload script into HTML responses.
- Rejects directory listings and missing paths with a 404.
- Watches the content tree, the templates and ``site.yaml``, runs an
  incremental rebuild on change and tells connected browsers to reload.

Builds are incremental and publish atomically, so rebuilds write straight
into the served directory.

Key classes:
- DevServer: Runs the HTTP server, the reload websocket and the watcher.
- _ReloadHandler: HTTP request handler that injects the reload script.
- _ChangeHandler: File system event handler that triggers rebuilds.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import threading
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .artifacts import BuildError
from .build import build_site
from .config import CONFIG_FILENAME, ConfigError, load_site_config
from .content import ScanError

logger = logging.getLogger(__name__)

RELOAD_SCRIPT_TEMPLATE = """
<script>
(() => {{
  const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
  ws.onmessage = (event) => {{
    const data = JSON.parse(event.data || '{{}}');
    if (data.type === 'reload') location.reload();
  }};
}})();
</script>
"""


def inject_reload_script(html: str, script: str) -> str:
    """Insert ``script`` before ``</body>``, or append it when there is none."""
    if "</body>" in html:
        return html.replace("</body>", f"{script}</body>", 1)
    return html + script


class _ReloadHandler(SimpleHTTPRequestHandler):
    """Serves the output tree, adding the reload script to every HTML page."""

    reload_script = RELOAD_SCRIPT_TEMPLATE.format(ws_port=4001)

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        self.send_error(404, "File not found")
        return None

    def log_message(self, format, *args):  # pragma: no cover - integration path
        logger.debug("%s - %s", self.address_string(), format % args)

    def send_head(self):
        path = Path(self.translate_path(self.path))
        if path.is_dir():
            path = path / "index.html"
        if not path.is_file():
            self.send_error(404, "File not found")
            return None
        if path.suffix != ".html":
            return super().send_head()

        content = inject_reload_script(path.read_text(encoding="utf-8"), self.reload_script)
        encoded = content.encode("utf-8")
        self.send_response(200)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)
        return None


class DevServer:
    """Development server with incremental rebuilds and live reload.

    Attributes:
        project_root: Root directory of the project.
        site: Site configuration.
        output_dir: Directory being served.
        http_port: Port for the HTTP server.
        ws_port: Port for the reload websocket.
    """

    def __init__(
        self,
        project_root: Path,
        http_port: int | None = None,
        ws_port: int | None = None,
        overrides: dict[str, Any] | None = None,
    ):
        """Initialize the development server.

        Args:
            project_root: Root directory of the project.
            http_port: Optional override for the configured port.
            ws_port: Optional websocket port, defaults to the HTTP port + 1.
            overrides: Configuration overrides passed to every build.
        """
        self.project_root = project_root
        self.overrides = overrides
        self.site = load_site_config(project_root, overrides)
        self.output_dir = self.site.output_dir
        self.http_port = int(http_port or self.site.port)
        self.ws_port = ws_port if ws_port is not None else self.http_port + 1
        self._reload_script = RELOAD_SCRIPT_TEMPLATE.format(ws_port=self.ws_port)
        self._observer: Observer | None = None
        self._ws_clients: set = set()
        self._loop = asyncio.new_event_loop()
        self._serving = False
        self._lock = threading.Lock()
        self._last_rebuild_at = 0.0
        self._last_signature: tuple | None = None
        self._debounce_seconds = 0.05

    @property
    def watched_paths(self) -> list[Path]:
        return [self.site.content_dir, self.site.templates_dir, self.project_root / CONFIG_FILENAME]

    def start(self) -> None:  # pragma: no cover - integration path
        """Build, then serve and watch until interrupted."""
        self._build()
        self._serving = True
        threading.Thread(target=self._start_http, daemon=True).start()
        threading.Thread(target=self._start_ws, daemon=True).start()
        self._run_watcher()

    def watch(self) -> None:  # pragma: no cover - integration path
        """Build, then rebuild on every change until interrupted."""
        self._build()
        self._run_watcher()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
        self._loop.call_soon_threadsafe(self._loop.stop)

    def _run_watcher(self) -> None:  # pragma: no cover - integration path
        self._start_watcher()
        logger.info("Watching %s for changes", self.project_root)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def _build(self) -> None:
        result = build_site(self.project_root, self.overrides)
        self._last_signature = self._compute_signature()
        logger.info(
            "Built %d page(s), %d artifact(s) rebuilt", result.page_count, len(result.stats.rebuilt)
        )

    def _start_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type(
            "_ReloadHandlerWithPort",
            (_ReloadHandler,),
            {"reload_script": self._reload_script},
        )
        handler = functools.partial(handler_cls, directory=str(self.output_dir))
        httpd = ThreadingHTTPServer(("", self.http_port), handler)
        logger.warning("Serving %s at http://localhost:%d", self.output_dir, self.http_port)
        httpd.serve_forever()

    def _start_ws(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            logger.error("WebSocket server failed to start (port %d): %s", self.ws_port, exc)

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, "0.0.0.0", self.ws_port):
            await asyncio.Future()

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def _broadcast_reload(self) -> None:
        if not self._serving:
            return
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str) -> None:
        stale = set()
        for ws in self._ws_clients:
            try:
                await ws.send(message)
            except websockets.ConnectionClosed:
                stale.add(ws)
        for ws in stale:
            self._ws_clients.discard(ws)

    def _start_watcher(self) -> None:
        handler = _ChangeHandler(self)
        observer = Observer()
        for directory in (self.site.content_dir, self.site.templates_dir):
            if directory.exists():
                observer.schedule(handler, str(directory), recursive=True)
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        self._observer = observer

    def rebuild(self) -> bool:
        """Rebuild after a change unless a rebuild is running or nothing changed.

        Build failures are reported and leave the previous output in place;
        the next change triggers another attempt.

        Returns:
            True if a build ran and succeeded.
        """
        now = time.time()
        if (now - self._last_rebuild_at) < self._debounce_seconds:
            return False
        if not self._lock.acquire(blocking=False):
            return False
        try:
            signature = self._compute_signature()
            if signature is not None and signature == self._last_signature:
                return False
            logger.warning("Change detected; rebuilding...")
            try:
                result = build_site(self.project_root, self.overrides)
            except (BuildError, ConfigError, ScanError) as exc:
                logger.error("Build failed: %s", exc)
                return False
            finally:
                self._last_signature = signature
            logger.info("%d artifact(s) rebuilt", len(result.stats.rebuilt))
            self._broadcast_reload()
            return True
        finally:
            self._last_rebuild_at = time.time()
            self._lock.release()

    def _compute_signature(self) -> tuple | None:
        entries: list[tuple] = []
        for root in self.watched_paths:
            if not root.exists():
                continue
            paths = [root] if root.is_file() else sorted(root.rglob("*"))
            for path in paths:
                if path.is_dir():
                    continue
                try:
                    stat = path.stat()
                except OSError:
                    continue
                rel = path.relative_to(self.project_root)
                entries.append((str(rel), stat.st_mtime_ns, stat.st_size))
        return tuple(entries) if entries else None

    def is_ignored(self, path: Path) -> bool:
        """Whether a changed path is build output rather than a source."""
        if path.name.startswith(".") and path.name.endswith(".tmp"):
            return True
        for ignored in (self.site.build_dir, self.output_dir):
            if path == ignored or ignored in path.parents:
                return True
        return False


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory:
            return
        path = Path(event.src_path)
        if self.server.is_ignored(path):
            return
        if path.parent == self.server.project_root and path.name != CONFIG_FILENAME:
            return
        self.server.rebuild()
