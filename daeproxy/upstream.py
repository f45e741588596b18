"""DNS upstream addresses: parsing, resolution and supported networks."""

from __future__ import annotations

import enum
import re
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Union
from urllib.parse import ParseResult, unquote, urlparse

import dns.exception
import dns.rdatatype

from .consts import IpVersionStr, L4ProtoStr
from .resolver import Ip46, SystemDnsCache, resolve_ip46

RawUrl = Union[str, ParseResult]

_system_dns = SystemDnsCache()


class UpstreamScheme(str, enum.Enum):
    TCP = "tcp"
    UDP = "udp"
    TCP_UDP = "tcp+udp"
    TLS = "tls"
    QUIC = "quic"
    HTTPS = "https"
    H3 = "h3"

    def contains_tcp(self) -> bool:
        return self in (UpstreamScheme.TCP, UpstreamScheme.TCP_UDP)


_ALIASES = {"udp+tcp": UpstreamScheme.TCP_UDP, "http3": UpstreamScheme.H3}
_DEFAULT_PORTS = {
    UpstreamScheme.TCP: "53",
    UpstreamScheme.UDP: "53",
    UpstreamScheme.TCP_UDP: "53",
    UpstreamScheme.HTTPS: "443",
    UpstreamScheme.H3: "443",
    UpstreamScheme.QUIC: "853",
    UpstreamScheme.TLS: "853",
}


def _split_host_port(netloc: str) -> tuple[str, str]:
    hostport = netloc.rpartition("@")[2]
    if hostport.startswith("["):
        end = hostport.find("]")
        if end == -1:
            raise ValueError(f"missing ']' in host: {hostport}")
        rest = hostport[end + 1 :]
        return hostport[1:end], rest[1:] if rest.startswith(":") else ""
    if ":" in hostport:
        host, _, port = hostport.rpartition(":")
        return host, port
    return hostport, ""


def parse_raw_upstream(raw: RawUrl) -> tuple[UpstreamScheme, str, int, str]:
    """Return scheme, hostname, port and path of an upstream URL, filling defaults."""
    u = urlparse(raw) if isinstance(raw, str) else raw
    scheme_text = u.scheme
    if scheme_text in _ALIASES:
        scheme = _ALIASES[scheme_text]
    else:
        try:
            scheme = UpstreamScheme(scheme_text)
        except ValueError:
            raise ValueError(f"unexpected scheme: {scheme_text}") from None
    hostname, port_text = _split_host_port(u.netloc)
    if not port_text:
        port_text = _DEFAULT_PORTS[scheme]
    path = ""
    if scheme in (UpstreamScheme.HTTPS, UpstreamScheme.H3):
        path = unquote(u.path) or "/dns-query"
    if not re.fullmatch(r"[0-9]+", port_text) or int(port_text) > 0xFFFF:
        raise ValueError(f"failed to parse dns_upstream port: invalid port {port_text!r}")
    return scheme, hostname, int(port_text), path


@dataclass
class Upstream:
    scheme: UpstreamScheme
    hostname: str
    port: int
    path: str
    ip46: Ip46 = field(default_factory=Ip46)

    @property
    def ip4(self):
        return self.ip46.ip4

    @property
    def ip6(self):
        return self.ip46.ip6

    def supported_networks(self) -> tuple[list[IpVersionStr], list[L4ProtoStr]]:
        """IP versions and transport protocols that can reach this upstream."""
        if self.ip4 is not None and self.ip6 is not None:
            ipversions = [IpVersionStr.V4, IpVersionStr.V6]
        elif self.ip4 is not None:
            ipversions = [IpVersionStr.V4]
        else:
            ipversions = [IpVersionStr.V6]
        if self.scheme in (UpstreamScheme.TCP, UpstreamScheme.HTTPS, UpstreamScheme.TLS):
            l4protos = [L4ProtoStr.TCP]
        elif self.scheme in (UpstreamScheme.UDP, UpstreamScheme.QUIC, UpstreamScheme.H3):
            l4protos = [L4ProtoStr.UDP]
        else:
            # UDP first.
            l4protos = [L4ProtoStr.UDP, L4ProtoStr.TCP]
        return ipversions, l4protos

    def __str__(self) -> str:
        host = f"[{self.hostname}]" if ":" in self.hostname else self.hostname
        return f"{self.scheme.value}://{host}:{self.port}{self.path}"


def new_upstream(raw: RawUrl, resolver_network: str = "udp", timeout: float = 10.0) -> Upstream:
    """Parse ``raw`` and resolve its host through the system DNS server."""
    try:
        scheme, hostname, port, path = parse_raw_upstream(raw)
    except ValueError as exc:
        raise ValueError(f"format error: {exc}") from exc
    server = _system_dns.get()
    try:
        try:
            ip46 = resolve_ip46(server, hostname, resolver_network, False, timeout)
        except (OSError, dns.exception.DNSException) as exc:
            raise ValueError(f"failed to resolve dns_upstream: {exc}") from exc
        if ip46.ip4 is None and ip46.ip6 is None:
            text = raw if isinstance(raw, str) else raw.geturl()
            raise ValueError(f"dns_upstream {text} has no record")
    except ValueError:
        try:
            _system_dns.update_elapse(1.0)
        except RuntimeError:
            pass
        raise
    return Upstream(scheme=scheme, hostname=hostname, port=port, path=path, ip46=ip46)


FinishInitCallback = Callable[[RawUrl, Upstream], None]


class UpstreamResolver:
    """Resolves an upstream lazily, once; a failed attempt is retried next time."""

    def __init__(
        self,
        raw: RawUrl,
        network: str = "udp",
        finish_init_callback: Optional[FinishInitCallback] = None,
    ) -> None:
        self.raw = raw
        self.network = network
        self.finish_init_callback = finish_init_callback
        self._lock = threading.Lock()
        self._upstream: Optional[Upstream] = None
        self._init = False

    def get_upstream(self) -> Upstream:
        with self._lock:
            if self._init:
                return self._upstream
            try:
                upstream = new_upstream(self.raw, self.network)
            except (OSError, ValueError) as exc:
                raise RuntimeError(f"failed to init dns upstream: {exc}") from exc
            if self.finish_init_callback is not None:
                self.finish_init_callback(self.raw, upstream)
            self._upstream = upstream
            self._init = True
            return upstream


_UINT_BASE0 = re.compile(r"0[xX][0-9a-fA-F]+|0[bB][01]+|0[oO]?[0-7]+|[1-9][0-9]*|0")


def parse_dns_types(values: Iterable[str]) -> list[int]:
    """Convert DNS type names (case-insensitive) or numbers to record type codes."""
    types = []
    for value in values:
        upper = value.upper()
        if upper and not upper.startswith("TYPE"):
            try:
                types.append(int(dns.rdatatype.from_text(upper)))
                continue
            except (dns.exception.DNSException, ValueError):
                pass
        if _UINT_BASE0.fullmatch(value):
            text = value
            if len(text) > 1 and text[0] == "0" and text[1].isdigit():
                number = int(text, 8)
            else:
                number = int(text, 0)
            if number <= 0xFFFF:
                types.append(number)
                continue
        raise ValueError(f"unknown DNS request type: {value}")
    return types