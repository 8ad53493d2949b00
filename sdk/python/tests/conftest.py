"""Shared fixtures for Devento SDK tests"""

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import Mock

import pytest

from devento.client import DeventoClient
from devento.config import ClientConfig


class FakeStreamResponse:
    """Stand-in for a streamed ``requests.Response``"""

    def __init__(self, lines, block_at_end=False):
        self.lines = lines
        self.block_at_end = block_at_end
        self.closed = threading.Event()

    def iter_lines(self):
        for line in self.lines:
            if self.closed.is_set():
                return
            yield line.encode("utf-8")
        if self.block_at_end:
            self.closed.wait(timeout=5)

    def close(self):
        self.closed.set()


def sse_lines(*events):
    """Render (event, payload) pairs as SSE lines"""
    lines = []
    for name, payload in events:
        lines.append(f"event: {name}")
        lines.append(f"data: {json.dumps(payload)}")
        lines.append("")
    return lines


@pytest.fixture
def config():
    return ClientConfig(api_key="test-api-key", base_url="https://api.test", poll_interval=0.001)


@pytest.fixture
def client(config):
    return DeventoClient(config=config)


@pytest.fixture
def make_response():
    """Build a mock HTTP response"""

    def _make(status_code=200, json_data=None, text=None, headers=None):
        response = Mock()
        response.status_code = status_code
        response.headers = headers or {}
        if json_data is not None:
            response.json.return_value = json_data
            response.text = json.dumps(json_data)
        else:
            response.json.side_effect = ValueError("No JSON object could be decoded")
            response.text = text or ""
        response.content = response.text.encode("utf-8")
        return response

    return _make


class _StallingSSEHandler(BaseHTTPRequestHandler):
    """Sends a ``start`` event, then holds the chunked response open"""

    protocol_version = "HTTP/1.1"

    def do_POST(self):
        self.rfile.read(int(self.headers.get("Content-Length", 0)))
        self.send_response(200)
        self.send_header("Content-Type", "text/event-stream")
        self.send_header("Transfer-Encoding", "chunked")
        self.end_headers()
        try:
            self._chunk("".join(f"{line}\n" for line in sse_lines(("start", {"command_id": "c1"}))))
            self.server.release.wait(timeout=8)
            self._chunk("".join(f"{line}\n" for line in sse_lines(("output", {"stdout": "late\n"}))))
            self.wfile.write(b"0\r\n\r\n")
        except OSError:
            # client went away
            pass

    def _chunk(self, text):
        data = text.encode("utf-8")
        self.wfile.write(b"%x\r\n%s\r\n" % (len(data), data))
        self.wfile.flush()

    def log_message(self, format, *args):
        pass


@pytest.fixture
def stalling_server():
    """Local HTTP server whose event stream stalls after the first event"""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _StallingSSEHandler)
    server.daemon_threads = True
    server.release = threading.Event()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.release.set()
    server.shutdown()
    server.server_close()
