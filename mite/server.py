"""Development server and source watcher for mite.

Serves the built site from the project root with sane defaults for local
authoring:
- Rejects directory listings and missing paths with a 404 (serving 404.html
  when present).
- In watch mode, starts a separate watcher process that rebuilds on source
  changes, and injects a live reload script into HTML responses so browsers
  refresh when the rebuilt pages land.

The watcher and the server share nothing but the file system: the watcher
writes pages, the server notices the new files and tells browsers to reload.

Key classes:
- DevServer: Main class for running the development server.
- SourceWatcher: The watcher process body; rebuilds when sources change.
- _SiteHandler: HTTP request handler that injects the reload script and enforces 404s.
- _OutputHandler / _SourceHandler: File system event handlers.
"""

from __future__ import annotations

import asyncio
import functools
import json
import subprocess
import sys
import threading
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import click
import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import BuildError, BuildOptions, build_site, load_config

OUTPUT_SUFFIXES = frozenset({".html", ".xml"})
IGNORED_PARTS = frozenset({"__pycache__", "node_modules"})


class _SiteHandler(SimpleHTTPRequestHandler):
    """HTTP request handler serving pages, with an optional reload script.

    Attributes:
        reload_script: JavaScript injected before ``</body>``; empty when the
            server is not watching.
    """

    reload_script_template = """
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
    reload_script = ""

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        return self._serve_404()

    def _inject(self, content: bytes) -> bytes:
        if not self.reload_script:
            return content
        script = self.reload_script.encode("utf-8")
        if b"</body>" in content:
            return content.replace(b"</body>", script + b"</body>")
        return content + script

    def _send_html(self, status: int, content: bytes) -> None:
        encoded = self._inject(content)
        self.send_response(status)
        self.send_header("Content-type", "text/html")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _serve_404(self):
        """Serve 404.html (when present) with a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            self._send_html(404, error_page.read_bytes())
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            index_path = path_obj / "index.html"
            if not index_path.exists():
                return self._serve_404()
            path_obj = index_path
        elif not path_obj.exists():
            return self._serve_404()

        if path_obj.suffix == ".html":
            self._send_html(200, path_obj.read_bytes())
            return None
        return super().send_head()


class DevServer:
    """Static server for a built site, optionally watching and live reloading.

    Attributes:
        project_root: Root directory of the project, which is also served.
        config: Site configuration.
        http_port: Port for the HTTP server.
        ws_port: Port for the live reload websocket server.
        watch: Whether to run the watcher process and live reload.
        runtime_path: Passed on to the watcher's builds.
    """

    def __init__(
        self,
        project_root: Path,
        http_port: int | None = None,
        ws_port: int | None = None,
        watch: bool = False,
        runtime_path: Path | None = None,
    ):
        self.project_root = project_root
        self.config = load_config(project_root)
        self.http_port = int(http_port or self.config.get("port", 4000))
        configured_ws = self.config.get("ws_port")
        if ws_port is not None:
            self.ws_port = ws_port
        elif http_port is None and configured_ws:
            self.ws_port = int(configured_ws)
        else:
            self.ws_port = self.http_port + 1
        self.watch = watch
        self.runtime_path = runtime_path
        self._reload_script = (
            _SiteHandler.reload_script_template.format(ws_port=self.ws_port) if watch else ""
        )
        self._watcher: subprocess.Popen | None = None
        self._observer: Observer | None = None
        self._ws_clients: set = set()
        self._loop = asyncio.new_event_loop()
        self._last_reload_at = 0.0
        self._debounce_seconds = float(self.config.get("watch_debounce", 0.2))

    def start(self) -> None:  # pragma: no cover - integration path
        if self.watch:
            self._watcher = subprocess.Popen(self.watcher_command(), cwd=self.project_root)
            threading.Thread(target=self._start_ws, daemon=True).start()
            self._start_output_observer()
        try:
            self._serve_http()
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._watcher is not None:
            self._watcher.terminate()
            try:
                self._watcher.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._watcher.kill()
            self._watcher = None
        self._loop.call_soon_threadsafe(self._loop.stop)

    def watcher_command(self) -> list[str]:
        """Command line of the watcher process."""
        command = [sys.executable, "-m", "mite", "watch"]
        if self.runtime_path is not None:
            command += ["--runtime", str(self.runtime_path)]
        return command

    def _serve_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type(
            "_SiteHandlerWithReload",
            (_SiteHandler,),
            {"reload_script": self._reload_script},
        )
        handler = functools.partial(handler_cls, directory=str(self.project_root))
        httpd = ThreadingHTTPServer(("", self.http_port), handler)
        print(f"Serving {self.project_root} at http://localhost:{self.http_port}")
        try:
            httpd.serve_forever()
        finally:
            httpd.server_close()

    def _start_ws(self) -> None:  # pragma: no cover - integration path
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            print(f"WebSocket server failed to start (port {self.ws_port}): {exc}")
            return

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, "0.0.0.0", self.ws_port):
            await asyncio.Future()  # Run forever

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def _broadcast_reload(self):
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str):
        stale = set()
        for ws in self._ws_clients:
            try:
                await ws.send(message)
            except Exception:
                stale.add(ws)
        for ws in stale:
            self._ws_clients.discard(ws)

    def _start_output_observer(self) -> None:
        observer = Observer()
        observer.schedule(_OutputHandler(self), str(self.project_root), recursive=True)
        observer.start()
        self._observer = observer

    def notify_output_changed(self) -> None:
        """Tell browsers to reload, at most once per debounce interval."""
        now = time.time()
        if now - self._last_reload_at < self._debounce_seconds:
            return
        self._last_reload_at = now
        self._broadcast_reload()


class _OutputHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).suffix in OUTPUT_SUFFIXES:
            self.server.notify_output_changed()


class SourceWatcher:
    """Rebuilds the site whenever one of its sources changes.

    Every rebuild only regenerates when inputs are newer than outputs, so
    events caused by the build itself settle without another run.

    Attributes:
        project_root: Root directory of the project.
        options: Build options used for every rebuild.
    """

    def __init__(self, project_root: Path, runtime_path: Path | None = None):
        self.project_root = project_root
        self.config = load_config(project_root)
        self.options = BuildOptions(only_if_changed=True, runtime_path=runtime_path)
        self._generated_source = project_root / str(self.config["generated_source"])
        self._debounce_seconds = float(self.config.get("watch_debounce", 0.2))
        self._rebuilding = False
        self._last_rebuild_at = 0.0

    def is_source(self, path: Path) -> bool:
        """Check whether a changed path can affect the build."""
        try:
            rel = path.relative_to(self.project_root)
        except ValueError:
            return False
        if any(part.startswith(".") or part in IGNORED_PARTS for part in rel.parts):
            return False
        if path == self._generated_source or path.suffix in OUTPUT_SUFFIXES:
            return False
        return path.suffix not in {".pyc", ".tmp", ".swp"}

    def rebuild(self) -> None:
        now = time.time()
        if self._rebuilding or (now - self._last_rebuild_at) < self._debounce_seconds:
            return
        self._rebuilding = True
        try:
            print("Change detected; rebuilding...")
            build_site(self.project_root, self.options)
        except BuildError as exc:
            click.echo(click.style(f"Build failed: {exc}", fg="red"), err=True)
        finally:
            self._rebuilding = False
            self._last_rebuild_at = time.time()

    def run(self) -> None:  # pragma: no cover - integration path
        observer = Observer()
        observer.schedule(_SourceHandler(self), str(self.project_root), recursive=True)
        observer.start()
        print(f"Watching {self.project_root} for changes")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            pass
        finally:
            observer.stop()
            observer.join()


class _SourceHandler(FileSystemEventHandler):
    def __init__(self, watcher: SourceWatcher):
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event):
        if event.is_directory:
            return
        if self.watcher.is_source(Path(event.src_path)):
            self.watcher.rebuild()
