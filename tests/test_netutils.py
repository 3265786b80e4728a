import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from osdtool.netutils import OfflineError, curl_this, is_online, is_valid_url

_ROUTES = {
    "/ok": (200, b"OK\n"),
    "/accepted": (202, b"Accepted\n"),
    "/bad": (400, b"Bad Request\n"),
    "/notfound": (404, b"Not Found\n"),
    "/ratelimit": (429, b"Too Many Requests\n"),
    "/servererror": (500, b"Internal Server Error\n"),
}


class _Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path == "/redirect":
            self.send_response(301)
            self.send_header("Location", "/ok")
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        status, body = _ROUTES[self.path]
        self.send_response(status)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def server(monkeypatch):
    for name in ("http_proxy", "HTTP_PROXY", "https_proxy", "HTTPS_PROXY", "all_proxy", "ALL_PROXY"):
        monkeypatch.delenv(name, raising=False)
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{httpd.server_address[1]}"
    httpd.shutdown()
    httpd.server_close()


def _closed_port_url():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}"


@pytest.mark.parametrize(
    "path, status",
    [("/ok", 200), ("/accepted", 202), ("/redirect", 200)],
)
def test_is_online_succeeds(server, path, status):
    assert is_online(server + path) == status


@pytest.mark.parametrize("path", ["/bad", "/notfound", "/ratelimit", "/servererror"])
def test_is_online_fails_on_error_status(server, path):
    with pytest.raises(OfflineError, match="unknown HTTP error"):
        is_online(server + path)


def test_is_online_missing_host():
    with pytest.raises(OfflineError):
        is_online(_closed_port_url())


@pytest.mark.parametrize(
    "candidate, valid",
    [
        ("https://google.com", True),
        ("ftp://host/file.txt", True),
        ("http://example.com:8080/path?q=1", True),
        ("not a url", False),
        ("/relative/path", False),
        ("http://", False),
        ("", False),
        ("http://exa mple.com", False),
        ("http://example.com:port", False),
    ],
)
def test_is_valid_url(candidate, valid):
    assert is_valid_url(candidate) is valid


def test_curl_this_returns_body(server):
    assert curl_this(server + "/ok") == b"OK\n"


def test_curl_this_follows_redirect(server):
    assert curl_this(server + "/redirect") == b"OK\n"


@pytest.mark.parametrize("path", ["/accepted", "/notfound", "/servererror"])
def test_curl_this_non_200_is_empty(server, path):
    assert curl_this(server + path) == b""


def test_curl_this_unreachable():
    with pytest.raises(OfflineError):
        curl_this(_closed_port_url())