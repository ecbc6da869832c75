import http.server
import os
import socket
import threading
import time

import pytest

from hhinject.core import ResponseCapture, ScanConfig, iso_time, parse_meta


class _EchoHandler(http.server.BaseHTTPRequestHandler):
    """Answer every GET with the Host header the server received."""

    server_version = "EchoTest/1.0"
    sys_version = ""

    def do_GET(self):
        body = f"host={self.headers.get('Host', '<missing>')}\npath={self.path}\n".encode()
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, *args):
        pass


@pytest.fixture
def echo_server():
    server = http.server.ThreadingHTTPServer(("127.0.0.1", 0), _EchoHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


class _DripHandler(http.server.BaseHTTPRequestHandler):
    """Send a long body a few bytes at a time so no single read times out."""

    sys_version = ""
    chunk = b"x" * 20
    chunks = 50
    interval = 0.2

    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Length", str(len(self.chunk) * self.chunks))
        self.end_headers()
        try:
            for _ in range(self.chunks):
                if self.server.stopping.is_set():
                    return
                self.wfile.write(self.chunk)
                self.wfile.flush()
                time.sleep(self.interval)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def log_message(self, *args):
        pass


@pytest.fixture
def drip_server():
    server = http.server.ThreadingHTTPServer(("127.0.0.1", 0), _DripHandler)
    server.stopping = threading.Event()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"127.0.0.1:{server.server_address[1]}"
    server.stopping.set()
    server.shutdown()
    server.server_close()


@pytest.fixture
def closed_port_target():
    s = socket.socket()
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return f"127.0.0.1:{port}"


@pytest.fixture
def make_config(tmp_path):
    def _make(**kw):
        kw.setdefault("output_dir", str(tmp_path / "out"))
        kw.setdefault("color", False)
        kw.setdefault("diff_tool", "plain")
        kw.setdefault("timeout", 2.0)
        os.makedirs(kw["output_dir"], exist_ok=True)
        return ScanConfig(**kw)
    return _make


class FakeExecutor:
    """Executor double that records calls and tracks its own concurrency."""

    def __init__(self, delay=0.0, delays=None, fail_on=None):
        self.delay = delay
        self.delays = delays or {}
        self.fail_on = fail_on
        self.calls = []
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def execute(self, target, host_header, artifact_path, timeout=10.0, user_agent="ua"):
        if target == self.fail_on:
            raise RuntimeError(f"boom on {target}")
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.calls.append((target, host_header))
        try:
            time.sleep(self.delays.get(target, self.delay))
            raw = (b"HTTP/1.1 200 OK\r\nServer: fake\r\n\r\nhost="
                   + (host_header.label or "default").encode() + b"\n")
            with open(artifact_path, "wb") as f:
                f.write(raw)
            status, server = parse_meta(raw)
            return ResponseCapture(status, server, raw, len(raw), iso_time(), artifact_path)
        finally:
            with self._lock:
                self.active -= 1

    def close(self):
        pass


@pytest.fixture
def fake_executor():
    return FakeExecutor


@pytest.fixture(autouse=True)
def _no_env_proxies(monkeypatch):
    for var in ("http_proxy", "https_proxy", "all_proxy", "HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY"):
        monkeypatch.delenv(var, raising=False)
