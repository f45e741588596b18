"""Assorted helpers: encodings, parsers, addresses and config tweaking."""

from __future__ import annotations

import base64
import binascii
import dataclasses
import datetime
import hashlib
import ipaddress
import os
import re
import struct
import sys
import typing
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Iterable, Optional, Union
from urllib.parse import ParseResult, urlparse

import dns.rdatatype
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class OverlayHierarchicalKeyError(ValueError):
    """A dotted key runs through a value that is not a mapping."""

    def __init__(self, message: str = "overlay hierarchical key") -> None:
        super().__init__(message)


@dataclass
class UrlOrEmpty:
    url: Optional[ParseResult] = None
    empty: bool = False


def ipv6_bytes_to_u32_array(ip: bytes) -> tuple[int, int, int, int]:
    """Split 16 address bytes into four native-endian 32-bit words."""
    if len(ip) < 16:
        raise ValueError(f"IPv6 address needs 16 bytes, got {len(ip)}")
    return struct.unpack("=4I", bytes(ip[:16]))


def ipv6_u32_array_to_bytes(words: Iterable[int]) -> bytes:
    """Join four native-endian 32-bit words into 16 address bytes."""
    return struct.pack("=4I", *words)


def deduplicate(items: Optional[Iterable[str]]) -> Optional[list[str]]:
    """Drop repeated items, keeping first occurrences in order."""
    if items is None:
        return None
    return list(dict.fromkeys(items))


def _base64_decode(s: str, urlsafe: bool) -> str:
    s = s.strip()
    if len(s) % 4:
        s += "=" * (4 - len(s) % 4)
    s = s.replace("\r", "").replace("\n", "")
    try:
        if urlsafe:
            if "+" in s or "/" in s:
                raise binascii.Error("illegal base64 data")
            raw = base64.b64decode(s, altchars=b"-_", validate=True)
        else:
            raw = base64.b64decode(s, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"illegal base64 data: {exc}") from None
    return raw.decode("utf-8", errors="replace")


def base64_url_decode(s: str) -> str:
    """Decode URL-safe base64, padding it when needed."""
    return _base64_decode(s, urlsafe=True)


def base64_std_decode(s: str) -> str:
    """Decode standard base64, padding it when needed."""
    return _base64_decode(s, urlsafe=False)


_HEX_BYTE = re.compile(r"[0-9A-Fa-f]{2}")


def parse_mac(mac: str) -> bytes:
    """Parse ``aa:bb:cc:dd:ee:ff`` into six bytes."""
    fields = mac.split(":", 5)
    if len(fields) != 6:
        raise ValueError(f"invalid mac: {mac}")
    out = bytearray()
    for field in fields:
        if not _HEX_BYTE.fullmatch(field):
            raise ValueError(f"invalid mac: {mac}")
        out.append(int(field, 16))
    return bytes(out)


_DECIMAL = re.compile(r"[+-]?[0-9]+")


def parse_port_range(pr: str) -> tuple[int, int]:
    """Parse ``port`` or ``low-high`` into an inclusive pair."""
    fields = pr.split("-", 1)
    ports = []
    for field in fields:
        if field == "":
            raise ValueError(f"bad port range: {pr}")
        if not _DECIMAL.fullmatch(field):
            raise ValueError(f"invalid port: {field!r}")
        port = int(field)
        if port < 0 or port > 0xFFFF:
            raise ValueError(f"port {port} exceeds uint16 range")
        ports.append(port)
    if len(ports) == 1:
        ports.append(ports[0])
    return ports[0], ports[1]


def set_value_hierarchical_map(m: dict, key: str, val: Any) -> None:
    """Set ``val`` under a dotted ``key``, creating nested dicts as needed."""
    *parents, last = key.split(".")
    current = m
    for k in parents:
        if k in current:
            nxt = current[k]
            if not isinstance(nxt, dict):
                raise OverlayHierarchicalKeyError()
            current = nxt
        else:
            current = current.setdefault(k, {})
    current[last] = val


def _kind_name(value: Any) -> str:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return "struct"
    return type(value).__name__


# Field annotations written as strings (postponed evaluation) mapped to types.
_STRING_ANNOTATIONS: dict[str, Any] = {
    "bool": bool,
    "int": int,
    "str": str,
    "timedelta": datetime.timedelta,
    "datetime.timedelta": datetime.timedelta,
    "UrlOrEmpty": UrlOrEmpty,
    "list[str]": list[str],
    "List[str]": list[str],
    "typing.List[str]": list[str],
    "list[timedelta]": list[datetime.timedelta],
    "list[datetime.timedelta]": list[datetime.timedelta],
    "List[timedelta]": list[datetime.timedelta],
    "List[datetime.timedelta]": list[datetime.timedelta],
    "typing.List[datetime.timedelta]": list[datetime.timedelta],
}


def _field_type(field: dataclasses.Field) -> Any:
    annotation = field.type
    if isinstance(annotation, str):
        return _STRING_ANNOTATIONS.get(annotation.replace(" ", ""), annotation)
    return annotation


def _resolve_field(obj: Any, key: str):
    parent = None
    found: Optional[dataclasses.Field] = None
    field_type: Any = type(obj)
    value = obj
    last = ""
    for k in key.split("."):
        match = None
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            for f in dataclasses.fields(value):
                if f.metadata.get("mapstructure", f.name) == k:
                    match = f
                    break
        if match is None:
            raise ValueError(
                f'unexpected key "{key}": "{last}" ({_kind_name(value)} type) '
                f'has no member "{k}"'
            )
        parent, found = value, match
        field_type = _field_type(match)
        value = getattr(value, match.name)
        last = k
    return parent, found, field_type, value


def get_value_hierarchical_struct(obj: Any, key: str) -> Any:
    """Return the dataclass member addressed by a dotted ``mapstructure`` key."""
    return _resolve_field(obj, key)[3]


def set_value_hierarchical_struct(obj: Any, key: str, val: str) -> None:
    """Decode ``val`` to the member's type and store it under a dotted key."""
    parent, field, field_type, _ = _resolve_field(obj, key)
    try:
        decoded = fuzzy_decode(field_type, val)
    except ValueError:
        name = getattr(field_type, "__name__", str(field_type))
        raise ValueError(f'type does not match: type "{name}" and value "{val}"') from None
    setattr(parent, field.name, decoded)


_INT_BODY = re.compile(r"[0-9A-Za-z_]+")


def _parse_int_base0(val: str, bits: int = 64, signed: bool = True) -> int:
    s = val
    negative = False
    if signed and s[:1] in ("+", "-"):
        negative = s[0] == "-"
        s = s[1:]
    if not _INT_BODY.fullmatch(s):
        raise ValueError(f"invalid syntax: {val!r}")
    if len(s) > 1 and s[0] == "0" and s[1] not in "xXoObB":
        n = int(s, 8)
    else:
        n = int(s, 0)
    if negative:
        n = -n
    if signed:
        lo, hi = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    else:
        lo, hi = 0, (1 << bits) - 1
    if not lo <= n <= hi:
        raise ValueError(f"value out of range: {val!r}")
    return n


_DURATION_UNITS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_PART = re.compile(r"([0-9]*)(?:\.([0-9]*))?([^0-9.]*)")


def _parse_duration(val: str) -> datetime.timedelta:
    s = val
    negative = False
    if s[:1] in ("+", "-"):
        negative = s[0] == "-"
        s = s[1:]
    if s == "0":
        return datetime.timedelta(0)
    if not s:
        raise ValueError(f"invalid duration {val!r}")
    total = Fraction(0)
    pos = 0
    while pos < len(s):
        m = _DURATION_PART.match(s, pos)
        whole, frac, unit = m.group(1), m.group(2), m.group(3)
        if not whole and not frac:
            raise ValueError(f"invalid duration {val!r}")
        if unit not in _DURATION_UNITS:
            raise ValueError(f"unknown unit {unit!r} in duration {val!r}")
        number = Fraction(int(whole or "0"))
        if frac:
            number += Fraction(int(frac), 10 ** len(frac))
        total += number * _DURATION_UNITS[unit]
        pos = m.end()
    nanoseconds = int(total)
    if nanoseconds > (1 << 63) - (0 if negative else 1):
        raise ValueError(f"invalid duration {val!r}")
    delta = datetime.timedelta(microseconds=nanoseconds // 1000)
    return -delta if negative else delta


_TRUE_WORDS = {"true", "t", "1", "y", "yes", "on"}
_FALSE_WORDS = {"false", "f", "0", "n", "no", "off"}


def fuzzy_decode(target_type: Any, val: str) -> Any:
    """Convert a string to ``target_type``; raise ValueError when it does not fit."""
    origin = typing.get_origin(target_type)
    if target_type is bool:
        lowered = val.lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        raise ValueError(f"not a boolean: {val!r}")
    if target_type is int:
        return _parse_int_base0(val)
    if target_type is str:
        return val
    if target_type is datetime.timedelta:
        return _parse_duration(val)
    if target_type is UrlOrEmpty:
        if val == "":
            return UrlOrEmpty(url=None, empty=True)
        return UrlOrEmpty(url=urlparse(val), empty=False)
    if origin is list:
        args = typing.get_args(target_type)
        if args == (str,):
            return val.split(",")
        if args == (datetime.timedelta,):
            return [_parse_duration(val)]
    raise ValueError(f"unsupported type: {target_type!r}")


def ensure_file_in_sub_dir(file_path: str, directory: str) -> None:
    """Raise ValueError unless ``file_path`` lies inside ``directory``."""
    file_dir = os.path.dirname(file_path) or "."
    if not directory:
        raise ValueError(f"bad dir: {directory}")
    if os.path.isabs(file_dir) != os.path.isabs(directory):
        raise ValueError(f"can't make {file_dir} relative to {directory}")
    rel = os.path.relpath(os.path.normpath(file_dir), os.path.normpath(directory))
    if rel.startswith(".."):
        raise ValueError(f"file is out of scope: {rel}")


def get_tag_from_link_like_plaintext(link: str) -> tuple[str, str]:
    """Split ``tag:link`` into its tag and the rest; ``scheme://`` has no tag."""
    colon = link.find(":")
    if colon == -1 or link.startswith("://", colon):
        return "", link
    return link[:colon], link[colon + 1 :]


def bool_to_string(b: bool) -> str:
    """Render a truth value as "1" or "0"."""
    return str(int(bool(b)))


def converge_addr(addr: Union[str, Address]) -> Address:
    """Turn an IPv4-mapped IPv6 address into plain IPv4."""
    if isinstance(addr, str):
        addr = ipaddress.ip_address(addr)
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return addr.ipv4_mapped
    return addr


def new_gcm(key: bytes) -> AESGCM:
    """Create an AES-GCM AEAD for a 16, 24 or 32 byte key."""
    return AESGCM(key)


def addr_to_dns_type(addr: Union[str, Address]) -> int:
    """Return the DNS record type (A or AAAA) for an address."""
    if isinstance(addr, str):
        addr = ipaddress.ip_address(addr)
    if isinstance(addr, ipaddress.IPv4Address):
        return int(dns.rdatatype.A)
    return int(dns.rdatatype.AAAA)


def htons(i: int) -> int:
    """Convert a 16-bit value from host to network byte order."""
    return int.from_bytes(i.to_bytes(2, "big"), sys.byteorder)


def ntohs(i: int) -> int:
    """Convert a 16-bit value from network to host byte order."""
    return int.from_bytes(i.to_bytes(2, sys.byteorder), "big")


_HTTP_METHODS = frozenset(
    {
        "GET", "POST", "PUT", "PATCH", "DELETE", "COPY", "HEAD", "OPTIONS",
        "LINK", "UNLINK", "PURGE", "LOCK", "UNLOCK", "PROPFIND", "CONNECT", "TRACE",
    }
)


def is_valid_http_method(method: str) -> bool:
    """Tell whether ``method`` is one of the accepted HTTP methods."""
    return method in _HTTP_METHODS


def generate_cert_chain_hash(raw_certs: Iterable[bytes]) -> Optional[bytes]:
    """Hash a certificate chain by chaining SHA-256 digests; None when empty."""
    chain_hash: Optional[bytes] = None
    for cert in raw_certs:
        cert_hash = hashlib.sha256(cert).digest()
        if chain_hash is None:
            chain_hash = cert_hash
        else:
            chain_hash = hashlib.sha256(chain_hash + cert_hash).digest()
    return chain_hash