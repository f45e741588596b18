"""Reading the system resolver configuration (resolv.conf)."""

from __future__ import annotations

import ipaddress
import os
import re
import socket
import threading
from dataclasses import dataclass, field
from typing import Optional

_DEFAULT_NS = ("127.0.0.1:53", "[::1]:53")
_MAX_NAMESERVERS = 3
_DECIMAL = re.compile(r"[+-]?[0-9]+")


@dataclass
class DnsConfig:
    """Resolver settings parsed from a resolv.conf file."""

    servers: list[str] = field(default_factory=list)
    search: list[str] = field(default_factory=list)
    ndots: int = 1
    timeout: float = 5.0
    attempts: int = 2
    rotate: bool = False
    unknown_opt: bool = False
    lookup: list[str] = field(default_factory=list)
    err: Optional[OSError] = None
    mtime: Optional[float] = None
    single_request: bool = False
    use_tcp: bool = False
    _soffset: int = field(default=0, init=False, repr=False, compare=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def server_offset(self) -> int:
        """Offset into ``servers``; increases on each call when ``rotate`` is set."""
        if not self.rotate:
            return 0
        with self._lock:
            offset = self._soffset
            self._soffset = (self._soffset + 1) & 0xFFFFFFFF
        return offset


def ensure_rooted(s: str) -> str:
    return s if s.endswith(".") else s + "."


def default_search() -> list[str]:
    """Search list derived from the host's domain name, if it has one."""
    try:
        hostname = socket.gethostname()
    except OSError:
        return []
    i = hostname.find(".")
    if 0 <= i < len(hostname) - 1:
        return [ensure_rooted(hostname[i + 1 :])]
    return []


def _atoi(s: str) -> int:
    return int(s) if _DECIMAL.fullmatch(s) else 0


def _is_ip(s: str) -> bool:
    try:
        ipaddress.ip_address(s)
    except ValueError:
        return False
    return True


def _join_host_port(host: str, port: str) -> str:
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


def _apply_options(conf: DnsConfig, options: list[str]) -> None:
    for s in options:
        if s.startswith("ndots:"):
            conf.ndots = min(max(_atoi(s[6:]), 0), 15)
        elif s.startswith("timeout:"):
            conf.timeout = float(max(_atoi(s[8:]), 1))
        elif s.startswith("attempts:"):
            conf.attempts = max(_atoi(s[9:]), 1)
        elif s == "rotate":
            conf.rotate = True
        elif s in ("single-request", "single-request-reopen"):
            conf.single_request = True
        elif s in ("use-vc", "usevc", "tcp"):
            conf.use_tcp = True
        else:
            conf.unknown_opt = True


def read_dns_config(filename: str) -> DnsConfig:
    """Parse ``filename``; a file that cannot be read yields defaults with ``err`` set."""
    conf = DnsConfig()
    try:
        with open(filename, "rb") as fh:
            conf.mtime = os.fstat(fh.fileno()).st_mtime
            data = fh.read()
    except OSError as exc:
        conf.servers = list(_DEFAULT_NS)
        conf.search = default_search()
        conf.err = exc
        return conf

    for raw in data.split(b"\n"):
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        line = raw.decode("utf-8", errors="replace")
        if line[:1] in (";", "#"):
            continue
        fields = line.split()
        if not fields:
            continue
        directive, args = fields[0], fields[1:]
        if directive == "nameserver":
            if args and len(conf.servers) < _MAX_NAMESERVERS and _is_ip(args[0]):
                conf.servers.append(_join_host_port(args[0], "53"))
        elif directive == "domain":
            if args:
                conf.search = [ensure_rooted(args[0])]
        elif directive == "search":
            conf.search = [ensure_rooted(s) for s in args]
        elif directive == "options":
            _apply_options(conf, args)
        elif directive == "lookup":
            conf.lookup = args
        else:
            conf.unknown_opt = True

    if not conf.servers:
        conf.servers = list(_DEFAULT_NS)
    if not conf.search:
        conf.search = default_search()
    return conf