"""Fetching and decoding node subscriptions (SIP008 JSON or base64 link lists)."""

from __future__ import annotations

import json
import logging
import os
import stat
import urllib.error
import urllib.request
from typing import Any, Union
from urllib.parse import ParseResult, quote, quote_plus, unquote, urlparse

from .utils import (
    base64_std_decode,
    base64_url_decode,
    ensure_file_in_sub_dir,
    get_tag_from_link_like_plaintext,
)

log = logging.getLogger(__name__)

_USERINFO_SAFE = "$&+,;="
_FRAGMENT_SAFE = "$&+,/:;=?@!()*"


def _to_text(data: Union[bytes, bytearray, str]) -> str:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("utf-8", errors="replace")
    return data


def resolve_as_base64(data: Union[bytes, str]) -> list[str]:
    """Decode a base64 list of share links, keeping lines shaped like ``scheme://body``."""
    log.debug("Try to resolve as base64")
    text = _to_text(data)
    try:
        raw = base64_std_decode(text)
    except ValueError:
        try:
            raw = base64_url_decode(text)
        except ValueError:
            raw = text.strip()
    nodes = []
    for line in raw.split("\n"):
        line = line.strip()
        if not line:
            continue
        protocol, _, suffix = line.partition("://")
        if not protocol or not suffix:
            continue
        nodes.append(line)
    return nodes


def _bad_json() -> ValueError:
    return ValueError("failed to unmarshal json to sip008")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _str_field(obj: dict, key: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise _bad_json()
    return value


def _int_field(obj: dict, key: str) -> int:
    value = obj.get(key)
    if value is None:
        return 0
    if not _is_int(value):
        raise _bad_json()
    return value


def _sip008_link(server: dict) -> str:
    method = _str_field(server, "method")
    secret = _str_field(server, "password")
    host = _str_field(server, "server")
    port = _int_field(server, "server_port")
    remarks = _str_field(server, "remarks")
    plugin_opts = _str_field(server, "plugin_opts")
    hostport = f"[{host}]:{port}" if ":" in host else f"{host}:{port}"
    userinfo = quote(method, safe=_USERINFO_SAFE) + ":" + quote(secret, safe=_USERINFO_SAFE)
    link = f"ss://{userinfo}@{hostport}?plugin={quote_plus(plugin_opts, safe='')}"
    if remarks:
        link += "#" + quote(remarks, safe=_FRAGMENT_SAFE)
    return link


def resolve_as_sip008(data: Union[bytes, str]) -> list[str]:
    """Turn a SIP008 JSON document into ``ss://`` links; raise ValueError otherwise."""
    log.debug("Try to resolve as sip008")
    try:
        doc = json.loads(data)
    except (ValueError, TypeError):
        raise _bad_json() from None
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise _bad_json()
    version = _int_field(doc, "version")
    servers = doc.get("servers")
    if servers is not None and not isinstance(servers, list):
        raise _bad_json()
    for key in ("bytes_used", "bytes_remaining"):
        _int_field(doc, key)
    if version != 1 or servers is None:
        raise ValueError("does not seems like a standard sip008 subscription")
    nodes = []
    for server in servers:
        if server is None:
            server = {}
        if not isinstance(server, dict):
            raise _bad_json()
        nodes.append(_sip008_link(server))
    return nodes


def resolve_file(url: Union[str, ParseResult], config_dir: str) -> bytes:
    """Read a subscription file given relative to ``config_dir`` as ``file://relative/path``."""
    u = urlparse(url) if isinstance(url, str) else url
    if not u.netloc:
        raise ValueError("not support absolute path")
    path = os.path.normpath(
        os.path.join(config_dir, u.netloc, unquote(u.path).lstrip("/"))
    )
    ensure_file_in_sub_dir(path, config_dir)
    st = os.stat(path)
    if stat.S_ISDIR(st.st_mode):
        raise ValueError(f"subscription file cannot be a directory: {path}")
    if st.st_mode & 0o037:
        raise ValueError(
            f"permissions {st.st_mode & 0o777:04o} for '{path}' are too open; "
            "requires the file is NOT writable by the same group and NOT accessible "
            "by others; suggest 0640 or 0600"
        )
    with open(path, "rb") as fh:
        data = fh.read()
    if not data:
        raise EOFError(f"subscription file is empty: {path}")
    if data[:1] == b"@":
        # Instruction line; not supported yet, so it is skipped.
        newline = data.find(b"\n")
        data = data[newline + 1 :] if newline >= 0 else b""
    return data.strip()


def _fetch(link: str, timeout: float, version: str) -> bytes:
    request = urllib.request.Request(
        link,
        headers={
            "User-Agent": f"dae/{version} (like v2rayA/1.0 WebRequestHelper) "
            "(like v2rayN/1.0 WebRequestHelper)"
        },
        method="GET",
    )
    opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))
    try:
        with opener.open(request, timeout=timeout) as resp:
            return resp.read()
    except urllib.error.HTTPError as exc:
        try:
            return exc.read()
        finally:
            exc.close()


def resolve_subscription(
    config_dir: str,
    subscription: str,
    timeout: float = 30.0,
    version: str = "unknown",
) -> tuple[str, list[str]]:
    """Resolve ``[tag:]link`` into its tag and the node links it provides."""
    tag, link = get_tag_from_link_like_plaintext(subscription)
    try:
        u = urlparse(link)
    except ValueError as exc:
        raise ValueError(f'failed to parse subscription "{link}": {exc}') from exc
    log.debug("ResolveSubscription: %s", link)
    if u.scheme == "file":
        data = resolve_file(u, config_dir)
    else:
        data = _fetch(link, timeout, version)
    try:
        return tag, resolve_as_sip008(data)
    except ValueError as exc:
        log.debug("%s", exc)
    return tag, resolve_as_base64(data)