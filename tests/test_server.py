import asyncio
import subprocess
import sys
from pathlib import Path

from mite.build import BuildError, BuildOptions
from mite.server import (
    DevServer,
    SourceWatcher,
    _OutputHandler,
    _SiteHandler,
    _SourceHandler,
)


class DummyEvent:
    def __init__(self, path, is_directory=False):
        self.src_path = path
        self.is_directory = is_directory


def test_dev_server_ports(tmp_path):
    server = DevServer(tmp_path)
    assert server.http_port == 4000
    assert server.ws_port == 4001
    assert server._reload_script == ""

    server = DevServer(tmp_path, http_port=5055, ws_port=None, watch=True)
    assert server.ws_port == 5056
    assert ":5056" in server._reload_script

    explicit = DevServer(tmp_path, http_port=5055, ws_port=6000)
    assert explicit.ws_port == 6000


def test_dev_server_ports_from_config(tmp_path):
    (tmp_path / "mite.yaml").write_text("port: 7000\nws_port: 7100\n", encoding="utf-8")
    server = DevServer(tmp_path)
    assert server.http_port == 7000
    assert server.ws_port == 7100


def test_watcher_command(tmp_path):
    server = DevServer(tmp_path)
    assert server.watcher_command() == [sys.executable, "-m", "mite", "watch"]
    server = DevServer(tmp_path, runtime_path=tmp_path / "rt")
    assert server.watcher_command()[-2:] == ["--runtime", str(tmp_path / "rt")]


def test_stop_terminates_watcher_and_observer(tmp_path):
    server = DevServer(tmp_path)
    server.stop()

    class DummyProcess:
        def __init__(self, hang=False):
            self.calls = []
            self.hang = hang

        def terminate(self):
            self.calls.append("terminate")

        def wait(self, timeout=None):
            self.calls.append("wait")
            if self.hang:
                raise subprocess.TimeoutExpired("mite watch", timeout)

        def kill(self):
            self.calls.append("kill")

    class DummyObserver:
        def __init__(self):
            self.calls = []

        def stop(self):
            self.calls.append("stop")

        def join(self):
            self.calls.append("join")

    observer = DummyObserver()
    process = DummyProcess()
    server = DevServer(tmp_path)
    server._observer = observer
    server._watcher = process
    server.stop()
    assert observer.calls == ["stop", "join"]
    assert process.calls == ["terminate", "wait"]
    assert server._watcher is None

    stubborn = DummyProcess(hang=True)
    server = DevServer(tmp_path)
    server._watcher = stubborn
    server.stop()
    assert stubborn.calls == ["terminate", "wait", "kill"]


def test_output_handler_reloads_on_pages_only(tmp_path):
    server = DevServer(tmp_path, watch=True)
    calls = []
    server._broadcast_reload = lambda: calls.append("reload")
    server._debounce_seconds = 0.0
    handler = _OutputHandler(server)

    handler.on_any_event(DummyEvent(str(tmp_path / "index.md")))
    handler.on_any_event(DummyEvent(str(tmp_path / "blog"), is_directory=True))
    assert calls == []

    handler.on_any_event(DummyEvent(str(tmp_path / "index.html")))
    handler.on_any_event(DummyEvent(str(tmp_path / "feed.xml")))
    assert calls == ["reload", "reload"]


def test_reload_is_debounced(tmp_path):
    server = DevServer(tmp_path, watch=True)
    calls = []
    server._broadcast_reload = lambda: calls.append("reload")
    server._debounce_seconds = 60
    server.notify_output_changed()
    server.notify_output_changed()
    assert calls == ["reload"]


def test_async_broadcast_tracks_stale_clients(tmp_path):
    server = DevServer(tmp_path)

    class GoodWS:
        def __init__(self):
            self.messages = []

        async def send(self, msg):
            self.messages.append(msg)

    class BadWS:
        async def send(self, msg):
            raise RuntimeError("fail")

    good = GoodWS()
    bad = BadWS()
    server._ws_clients = {good, bad}
    asyncio.run(server._async_broadcast("hello"))
    assert good.messages == ["hello"]
    assert bad not in server._ws_clients


def test_broadcast_reload_invokes_runner(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    sent = []

    async def fake_broadcast(message):
        sent.append(message)

    def fake_runner(coro, loop):
        assert loop is server._loop
        new_loop = asyncio.new_event_loop()
        try:
            return new_loop.run_until_complete(coro)
        finally:
            new_loop.close()

    server._async_broadcast = fake_broadcast
    monkeypatch.setattr("mite.server.asyncio.run_coroutine_threadsafe", fake_runner)
    server._broadcast_reload()
    assert sent == ['{"type": "reload"}']


def test_ws_start_failure(monkeypatch, tmp_path, capsys):
    server = DevServer(tmp_path, http_port=5055, ws_port=5057)

    async def fake_run():
        raise OSError("bind error")

    monkeypatch.setattr(server, "_run_ws_server", fake_run)
    server._start_ws()
    assert "failed to start" in capsys.readouterr().out


def make_handler(handler_cls, tmp_path, path):
    handler = handler_cls.__new__(handler_cls)
    handler.path = path
    handler.directory = str(tmp_path)
    handler.command = "GET"
    handler.request_version = "HTTP/1.1"
    handler.wfile = tmp_path.joinpath("out.bin").open("wb")
    handler.headers_sent = []
    handler.status = []
    handler.send_header = lambda key, value: handler.headers_sent.append((key, value))
    handler.send_response = lambda code, message=None: handler.status.append(code)
    handler.end_headers = lambda: None
    handler.send_error = lambda code, message=None: handler.status.append(code)
    return handler


def read_output(handler, tmp_path):
    handler.wfile.close()
    return tmp_path.joinpath("out.bin").read_bytes()


def test_site_handler_injects_reload_script_when_watching(tmp_path):
    (tmp_path / "blog").mkdir()
    (tmp_path / "blog" / "index.html").write_text(
        "<html><body>Hello</body></html>", encoding="utf-8"
    )
    handler_cls = type("Handler", (_SiteHandler,), {"reload_script": "<script>reload</script>"})
    handler = make_handler(handler_cls, tmp_path, "/blog/")

    assert handler.send_head() is None
    assert handler.status == [200]
    assert read_output(handler, tmp_path) == (
        b"<html><body>Hello<script>reload</script></body></html>"
    )


def test_site_handler_serves_plain_pages(tmp_path):
    (tmp_path / "index.html").write_text("<p>Hi</p>", encoding="utf-8")
    handler = make_handler(_SiteHandler, tmp_path, "/index.html")
    handler.send_head()
    assert read_output(handler, tmp_path) == b"<p>Hi</p>"


def test_site_handler_serves_pages_byte_exact(tmp_path):
    (tmp_path / "index.html").write_bytes(b"<p>\xff\x00</p>")
    handler = make_handler(_SiteHandler, tmp_path, "/index.html")
    assert handler.send_head() is None
    assert handler.status == [200]
    assert ("Content-Length", "9") in handler.headers_sent
    assert read_output(handler, tmp_path) == b"<p>\xff\x00</p>"

    (tmp_path / "latin.html").write_bytes(b"<body>caf\xe9</body>")
    handler_cls = type("Handler", (_SiteHandler,), {"reload_script": "<script>r</script>"})
    watching = make_handler(handler_cls, tmp_path, "/latin.html")
    watching.send_head()
    assert read_output(watching, tmp_path) == b"<body>caf\xe9<script>r</script></body>"


def test_site_handler_404(tmp_path):
    (tmp_path / "empty").mkdir()
    handler = make_handler(_SiteHandler, tmp_path, "/missing.html")
    assert handler.send_head() is None
    assert handler.status == [404]

    listing = make_handler(_SiteHandler, tmp_path, "/empty/")
    assert listing.send_head() is None
    assert listing.status == [404]

    (tmp_path / "404.html").write_text("<p>gone</p>", encoding="utf-8")
    custom = make_handler(_SiteHandler, tmp_path, "/nope")
    custom.send_head()
    assert custom.status == [404]
    assert read_output(custom, tmp_path) == b"<p>gone</p>"


def test_source_watcher_filters_events(tmp_path):
    watcher = SourceWatcher(tmp_path)
    assert watcher.options == BuildOptions(only_if_changed=True)
    assert watcher.is_source(tmp_path / "index.md")
    assert watcher.is_source(tmp_path / "layout" / "default.mite")
    assert watcher.is_source(tmp_path / "mite.yaml")
    assert not watcher.is_source(tmp_path / "index.html")
    assert not watcher.is_source(tmp_path / "feed.xml")
    assert not watcher.is_source(tmp_path / "mite_site.py")
    assert not watcher.is_source(tmp_path / "__pycache__" / "mite_site.cpython-312.pyc")
    assert not watcher.is_source(tmp_path / ".git" / "index")
    assert not watcher.is_source(Path("/elsewhere/index.md"))


def test_source_handler_triggers_rebuild(tmp_path):
    watcher = SourceWatcher(tmp_path)
    calls = []
    watcher.rebuild = lambda: calls.append("rebuild")
    handler = _SourceHandler(watcher)

    handler.on_any_event(DummyEvent(str(tmp_path / "blog" / "index.html")))
    handler.on_any_event(DummyEvent(str(tmp_path / "blog"), is_directory=True))
    assert calls == []

    handler.on_any_event(DummyEvent(str(tmp_path / "blog" / "post.md")))
    assert calls == ["rebuild"]


def test_source_watcher_rebuild(monkeypatch, tmp_path):
    watcher = SourceWatcher(tmp_path, runtime_path=tmp_path)
    watcher._debounce_seconds = 0.0
    calls = []

    def fake_build(root, options):
        calls.append((root, options))

    monkeypatch.setattr("mite.server.build_site", fake_build)
    watcher.rebuild()
    watcher._rebuilding = True
    watcher.rebuild()
    assert calls == [
        (tmp_path, BuildOptions(only_if_changed=True, runtime_path=tmp_path)),
    ]


def test_source_watcher_reports_build_errors(monkeypatch, tmp_path, capsys):
    watcher = SourceWatcher(tmp_path)
    watcher._debounce_seconds = 0.0

    def failing_build(root, options):
        raise BuildError(root / "index.mite", "missing 'index.mite'")

    monkeypatch.setattr("mite.server.build_site", failing_build)
    watcher.rebuild()
    assert "Build failed" in capsys.readouterr().err
    assert not watcher._rebuilding
