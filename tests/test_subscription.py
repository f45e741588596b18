import base64
import json
import os
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, unquote, urlsplit

import pytest

from daeproxy.subscription import (
    resolve_as_base64,
    resolve_as_sip008,
    resolve_file,
    resolve_subscription,
)


def test_base64_std_keeps_only_links():
    text = "ss://abc#x\nvmess://def\n\ninvalid\n://nothing\n"
    data = base64.b64encode(text.encode())
    assert resolve_as_base64(data) == ["ss://abc#x", "vmess://def"]


def test_base64_url_fallback():
    data = base64.urlsafe_b64encode(b"ss://a???")
    assert b"_" in data
    assert resolve_as_base64(data) == ["ss://a???"]


def test_plain_text_fallback():
    assert resolve_as_base64("  ss://a\nvmess://b  ") == ["ss://a", "vmess://b"]


def test_sip008_simple_link():
    doc = {
        "version": 1,
        "servers": [
            {
                "server": "example.com",
                "server_port": 8388,
                "method": "aes-128-gcm",
                "password": "password",
            }
        ],
    }
    assert resolve_as_sip008(json.dumps(doc)) == [
        "ss://aes-128-gcm:password@example.com:8388?plugin="
    ]


def test_sip008_round_trip_of_fields():
    server = {
        "remarks": "my node/1",
        "server": "example.com",
        "server_port": 8443,
        "password": "password",
        "method": "chacha20-ietf-poly1305",
        "plugin_opts": "obfs=http;obfs-host=example.com",
    }
    (node,) = resolve_as_sip008(json.dumps({"version": 1, "servers": [server]}).encode())
    parts = urlsplit(node)
    assert parts.scheme == "ss"
    assert unquote(parts.username) == server["method"]
    assert unquote(parts.password) == server["password"]
    assert parts.hostname == server["server"]
    assert parts.port == server["server_port"]
    assert parse_qs(parts.query)["plugin"] == [server["plugin_opts"]]
    assert unquote(parts.fragment) == server["remarks"]


def test_sip008_ipv6_host_is_bracketed():
    doc = {"version": 1, "servers": [{"server": "::1", "server_port": 8388}]}
    (node,) = resolve_as_sip008(json.dumps(doc))
    assert "[::1]:8388" in node


@pytest.mark.parametrize(
    "text",
    ["not json", json.dumps({"version": 2, "servers": []}), json.dumps({"version": 1})],
)
def test_sip008_rejects(text):
    with pytest.raises(ValueError):
        resolve_as_sip008(text)


def _write(path, content, mode=0o600):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    os.chmod(path, mode)
    return path


def test_resolve_file_skips_instruction_line(tmp_path):
    _write(tmp_path / "sub" / "nodes.txt", b"@instruction\n  ss://abc  \n")
    assert resolve_file("file://sub/nodes.txt", str(tmp_path)) == b"ss://abc"


def test_resolve_file_absolute_rejected(tmp_path):
    with pytest.raises(ValueError):
        resolve_file("file:///etc/passwd", str(tmp_path))


def test_resolve_file_out_of_scope(tmp_path):
    config = tmp_path / "config"
    config.mkdir()
    _write(tmp_path / "outside.txt", b"ss://abc")
    with pytest.raises(ValueError):
        resolve_file("file://../outside.txt", str(config))


def test_resolve_file_too_open(tmp_path):
    _write(tmp_path / "sub" / "nodes.txt", b"ss://abc", mode=0o644)
    with pytest.raises(ValueError, match="too open"):
        resolve_file("file://sub/nodes.txt", str(tmp_path))


def test_resolve_file_directory(tmp_path):
    (tmp_path / "sub" / "dir").mkdir(parents=True)
    with pytest.raises(ValueError, match="directory"):
        resolve_file("file://sub/dir", str(tmp_path))


def test_resolve_subscription_from_file_with_tag(tmp_path):
    content = base64.b64encode(b"ss://one\ntrojan://two\n")
    _write(tmp_path / "sub" / "list.txt", content)
    tag, nodes = resolve_subscription(str(tmp_path), "mytag:file://sub/list.txt")
    assert tag == "mytag"
    assert nodes == ["ss://one", "trojan://two"]


class _Handler(BaseHTTPRequestHandler):
    body = b""
    agents: list = []

    def do_GET(self):
        _Handler.agents.append(self.headers.get("User-Agent"))
        self.send_response(200)
        self.send_header("Content-Length", str(len(self.body)))
        self.end_headers()
        self.wfile.write(self.body)

    def log_message(self, *args):
        pass


@pytest.fixture
def http_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


def test_resolve_subscription_over_http(http_server):
    _Handler.body = base64.b64encode(b"vless://node\n")
    _Handler.agents = []
    url = f"http://127.0.0.1:{http_server.server_address[1]}/sub"
    tag, nodes = resolve_subscription(".", url, timeout=5, version="1.2.3")
    assert tag == ""
    assert nodes == ["vless://node"]
    assert _Handler.agents[0].startswith("dae/1.2.3 ")