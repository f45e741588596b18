"""Minimal DNS client: system resolver discovery and A/AAAA/NS lookups."""

from __future__ import annotations

import ipaddress
import logging
import socket
import struct
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ALL_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import ParseResult, urlparse

import dns.exception as dnsexception
import dns.message as dnsmessage
import dns.rdatatype as rdatatype
import dns.rrset as rrsets
from dns.rdtypes.ANY.NS import NS
from dns.rdtypes.IN.A import A
from dns.rdtypes.IN.AAAA import AAAA

from .consts import ETHERNET_MTU
from .resolvconf import ensure_rooted, read_dns_config

log = logging.getLogger(__name__)

Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
AddrPort = tuple[Address, int]
AddrPortLike = Union[str, tuple]

BOOTSTRAP_DNS: AddrPort = (ipaddress.IPv4Address("208.67.222.222"), 5353)
_RESEND_INTERVAL = 3.0
_DEFAULT_TIMEOUT = 10.0


class BadDnsAnswerError(ValueError):
    """A DNS answer record does not have the expected form."""

    def __init__(self, message: str = "bad dns answer") -> None:
        super().__init__(message)


def _parse_addr_port(value: AddrPortLike) -> AddrPort:
    if isinstance(value, tuple):
        host, port = value[0], value[1]
    else:
        s = str(value)
        if s.startswith("["):
            host, sep, port = s[1:].partition("]:")
        else:
            host, sep, port = s.rpartition(":")
            if ":" in host:
                sep = ""
        if not sep:
            raise ValueError(f"invalid address and port: {value!r}")
    addr = host if isinstance(host, (ipaddress.IPv4Address, ipaddress.IPv6Address)) \
        else ipaddress.ip_address(host)
    port = int(port)
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"invalid port: {port}")
    return addr, port


def _check_network(network: str) -> str:
    if network not in ("tcp", "udp"):
        raise ValueError(f"unsupported network: {network}")
    return network


class SystemDnsCache:
    """Remembers the first non-loopback nameserver of a resolv.conf file."""

    def __init__(self, resolv_conf: str = "/etc/resolv.conf") -> None:
        self._resolv_conf = resolv_conf
        self._lock = threading.Lock()
        self._system_dns: Optional[AddrPort] = None
        self._next_update_after = 0.0

    def _update(self) -> None:
        conf = read_dns_config(self._resolv_conf)
        chosen: Optional[AddrPort] = None
        for server in conf.servers:
            addr_port = _parse_addr_port(server)
            if not addr_port[0].is_loopback:
                chosen = addr_port
                break
        self._system_dns = chosen or BOOTSTRAP_DNS

    def _update_elapse(self, interval: float) -> None:
        if time.monotonic() < self._next_update_after:
            raise RuntimeError("update too quickly")
        self._update()
        self._next_update_after = time.monotonic() + interval

    def update(self) -> None:
        """Re-read the configuration now."""
        with self._lock:
            self._update()

    def update_elapse(self, interval: float) -> None:
        """Re-read the configuration unless the last such update was under ``interval`` seconds ago."""
        with self._lock:
            self._update_elapse(interval)

    def get(self) -> AddrPort:
        """Return the system nameserver, refreshing it at most every 5 seconds."""
        with self._lock:
            if self._system_dns is None:
                self._update()
            try:
                self._update_elapse(5.0)
            except RuntimeError:
                pass
            return self._system_dns


def _recv_exact(sock: socket.socket, n: int) -> bytes:
    chunks = bytearray()
    while len(chunks) < n:
        chunk = sock.recv(n - len(chunks))
        if not chunk:
            raise ConnectionError("connection closed by DNS server")
        chunks.extend(chunk)
    return bytes(chunks)


def _remaining(deadline: float) -> float:
    left = deadline - time.monotonic()
    if left <= 0:
        raise TimeoutError("timeout")
    return left


def _exchange_tcp(server: AddrPort, wire: bytes, deadline: float) -> bytes:
    with socket.create_connection((str(server[0]), server[1]), timeout=_remaining(deadline)) as sock:
        sock.sendall(struct.pack("!H", len(wire)) + wire)
        sock.settimeout(_remaining(deadline))
        (length,) = struct.unpack("!H", _recv_exact(sock, 2))
        if length > ETHERNET_MTU:
            raise ValueError("too big dns resp")
        sock.settimeout(_remaining(deadline))
        return _recv_exact(sock, length)


def _exchange_udp(server: AddrPort, wire: bytes, deadline: float) -> bytes:
    family = socket.AF_INET6 if isinstance(server[0], ipaddress.IPv6Address) else socket.AF_INET
    with socket.socket(family, socket.SOCK_DGRAM) as sock:
        sock.connect((str(server[0]), server[1]))
        sock.send(wire)
        while True:
            sock.settimeout(min(_RESEND_INTERVAL, _remaining(deadline)))
            try:
                return sock.recv(ETHERNET_MTU)
            except TimeoutError:
                # Resend periodically; datagrams may be lost.
                _remaining(deadline)
                sock.send(wire)


def _resolve(
    dns_server: AddrPortLike, host: str, qtype, network: str, timeout: float
) -> list[rrsets.RRset]:
    network = _check_network(network)
    qtype = rdatatype.RdataType.make(qtype)
    fqdn = ensure_rooted(host.lower())
    if qtype in (rdatatype.A, rdatatype.AAAA):
        try:
            addr = ipaddress.ip_address(host)
        except ValueError:
            addr = None
        if addr is not None:
            mapped = addr.ipv4_mapped if isinstance(addr, ipaddress.IPv6Address) else None
            if (isinstance(addr, ipaddress.IPv4Address) or mapped) and qtype == rdatatype.A:
                return [rrsets.from_text(fqdn, 0, "IN", "A", str(mapped or addr))]
            if isinstance(addr, ipaddress.IPv6Address) and qtype == rdatatype.AAAA:
                return [rrsets.from_text(fqdn, 0, "IN", "AAAA", str(addr))]
            return []

    server = _parse_addr_port(dns_server)
    wire = dnsmessage.make_query(fqdn, qtype).to_wire()
    deadline = time.monotonic() + timeout
    try:
        if network == "tcp":
            response = _exchange_tcp(server, wire, deadline)
        else:
            response = _exchange_udp(server, wire, deadline)
    except TimeoutError:
        raise TimeoutError("timeout") from None
    return list(dnsmessage.from_wire(response).answer)


def resolve_netip(
    dns: AddrPortLike, host: str, qtype, network: str = "udp", timeout: float = _DEFAULT_TIMEOUT
) -> list[Address]:
    """Return the addresses of the A or AAAA records for ``host``."""
    qtype = rdatatype.RdataType.make(qtype)
    expected = {rdatatype.A: A, rdatatype.AAAA: AAAA}.get(qtype)
    addrs: list[Address] = []
    for rrset in _resolve(dns, host, qtype, network, timeout):
        if rrset.rdtype != qtype or expected is None:
            continue
        for rdata in rrset:
            if not isinstance(rdata, expected):
                raise BadDnsAnswerError()
            try:
                addrs.append(ipaddress.ip_address(rdata.address))
            except ValueError:
                continue
    return addrs


def resolve_ns(
    dns: AddrPortLike, host: str, network: str = "udp", timeout: float = _DEFAULT_TIMEOUT
) -> list[str]:
    """Return the name servers (fully qualified) of the NS records for ``host``."""
    records: list[str] = []
    for rrset in _resolve(dns, host, rdatatype.NS, network, timeout):
        if rrset.rdtype != rdatatype.NS:
            continue
        for rdata in rrset:
            if not isinstance(rdata, NS):
                raise BadDnsAnswerError()
            records.append(rdata.target.to_text())
    return records


@dataclass
class Ip46:
    ip4: Optional[ipaddress.IPv4Address] = None
    ip6: Optional[ipaddress.IPv6Address] = None


def resolve_ip46(
    dns: AddrPortLike,
    host: str,
    network: str = "udp",
    race: bool = False,
    timeout: float = _DEFAULT_TIMEOUT,
) -> Ip46:
    """Look up the first IPv4 and IPv6 address of ``host`` in parallel.

    A lookup that fails leaves its address as None. With ``race`` the
    result is returned as soon as either lookup finishes.
    """
    _check_network(network)

    def lookup(qtype) -> Optional[Address]:
        try:
            addrs = resolve_netip(dns, host, qtype, network, timeout)
        except (OSError, ValueError, dnsexception.DNSException) as exc:
            log.debug("ResolveIp46 %s %s: %s", host, rdatatype.to_text(qtype), exc)
            return None
        return addrs[0] if addrs else None

    executor = ThreadPoolExecutor(max_workers=2)
    try:
        f4 = executor.submit(lookup, rdatatype.A)
        f6 = executor.submit(lookup, rdatatype.AAAA)
        done, _ = wait([f4, f6], return_when=FIRST_COMPLETED if race else ALL_COMPLETED)
        result = Ip46(
            ip4=f4.result() if f4 in done else None,
            ip6=f6.result() if f6 in done else None,
        )
    finally:
        executor.shutdown(wait=not race, cancel_futures=race)
    log.debug("ResolveIp46 %s using %s: A(%s) AAAA(%s)", host, dns, result.ip4, result.ip6)
    return result


def url_port(url: Union[str, ParseResult]) -> str:
    """Port of ``url``, defaulting to 80 for http and 443 for https."""
    parsed = urlparse(url) if isinstance(url, str) else url
    port = parsed.port
    if port is not None:
        return str(port)
    return {"http": "80", "https": "443"}.get(parsed.scheme, "")