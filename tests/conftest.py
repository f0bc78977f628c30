"""Shared fixtures: local JSON servers, a closed port and canned responses."""

import io
import json
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlparse

import pytest
import requests
from urllib3.response import HTTPResponse


class _JSONHandler(BaseHTTPRequestHandler):
    """Small routing handler used by the end-to-end tests.

    /ok      -> {"ok": true}
    /echo    -> method, content type and body of the request
    /id/<n>  -> {"id": "<n>"} after a short delay
    /html    -> an HTML page (not JSON)
    """

    protocol_version = "HTTP/1.1"

    def do_GET(self):
        self._dispatch()

    def do_POST(self):
        self._dispatch()

    def _dispatch(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        path = urlparse(self.path).path

        if path == "/ok":
            self._send(200, {"ok": True})
        elif path == "/echo":
            self._send(
                200,
                {
                    "method": self.command,
                    "content_type": self.headers.get("Content-Type"),
                    "body": body.decode("utf-8"),
                },
            )
        elif path.startswith("/id/"):
            time.sleep(0.05)
            self._send(200, {"id": path.rsplit("/", 1)[1]})
        elif path == "/html":
            self._send_raw(200, b"<!doctype html><html></html>", "text/html")
        else:
            self._send(404, {"error": "not found"})

    def _send(self, status, payload):
        self._send_raw(status, json.dumps(payload).encode("utf-8"), "application/json")

    def _send_raw(self, status, content, content_type):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(content)))
        self.end_headers()
        self.wfile.write(content)

    def log_message(self, format, *args):
        pass


@pytest.fixture(autouse=True)
def no_proxy(monkeypatch):
    """Keep requests to 127.0.0.1 away from any proxy in the environment."""
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def http_server():
    """Run the JSON handler on an ephemeral port and yield its base URL."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _JSONHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


@pytest.fixture
def closed_port_url():
    """URL on a local port nothing listens on, so connects are refused."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"http://127.0.0.1:{port}/ok"


def _drip(conn, interval):
    """Answer one request with a 20 byte JSON body sent a byte at a time."""
    body = b'{"ok": true, "n": 1}'
    try:
        with conn:
            data = b""
            while b"\r\n\r\n" not in data:
                chunk = conn.recv(4096)
                if not chunk:
                    return
                data += chunk
            conn.sendall(
                b"HTTP/1.1 200 OK\r\n"
                b"Content-Type: application/json\r\n"
                b"Content-Length: " + str(len(body)).encode() + b"\r\n"
                b"Connection: close\r\n\r\n"
            )
            for i in range(len(body)):
                conn.sendall(body[i : i + 1])
                time.sleep(interval)
    except OSError:
        pass


@pytest.fixture
def slow_body_server():
    """Server that sends headers at once, then trickles the body slowly.

    Each byte follows the previous one by 100ms, well inside any per-read
    socket timeout, so only a deadline over the whole request stops it.
    """
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(8)

    def serve():
        while True:
            try:
                conn, _ = listener.accept()
            except OSError:
                return
            threading.Thread(target=_drip, args=(conn, 0.1), daemon=True).start()

    threading.Thread(target=serve, daemon=True).start()
    yield f"http://127.0.0.1:{listener.getsockname()[1]}/slow"
    listener.close()


def make_response(
    status: int = 200,
    body: bytes = b'{"ok": true}',
    content_type: str = "application/json",
) -> requests.Response:
    """Build an unread requests.Response backed by an in-memory body."""
    response = requests.Response()
    response.status_code = status
    response.headers["Content-Type"] = content_type
    response.url = "http://example.test/"
    response.raw = HTTPResponse(
        body=io.BytesIO(body),
        headers={"Content-Type": content_type},
        status=status,
        preload_content=False,
    )
    return response
