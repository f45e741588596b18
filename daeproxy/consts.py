"""Shared constants, enumerations and small conversions."""

from __future__ import annotations

import enum
import ipaddress
import socket
from typing import Union

APP_NAME = "dae"

ETHERNET_MTU = 1500

BPF_PIN_ROOT = "/sys/fs/bpf"
TASK_COMM_LEN = 16

UDP_CHECK_LOOKUP_HOST = "connectivitycheck.gstatic.com."
DEFAULT_DIAL_TIMEOUT = 8.0  # seconds

DIALER_SELECTION_POLICY_RANDOM = "random"
DIALER_SELECTION_POLICY_FIXED = "fixed"
DIALER_SELECTION_POLICY_MIN_AVERAGE10_LATENCIES = "min_avg10"
DIALER_SELECTION_POLICY_MIN_MOVING_AVERAGE_LATENCIES = "min_moving_avg"
DIALER_SELECTION_POLICY_MIN_LAST_LATENCY = "min"

TPROXY_MARK = 0x08000000
TPROXY_MARK_STRING = "0x08000000"
RECOGNIZE = 0x2017
LOOPBACK_IF_INDEX = 1

LINK_HDR_LEN_NONE = 0
LINK_HDR_LEN_ETHERNET = 14

# Kernel versions (major, minor, patch) that introduce features.
BASIC_FEATURE_VERSION = (5, 2, 0)
FTRACE_FEATURE_VERSION = (5, 5, 0)
USERSPACE_BATCH_UPDATE_FEATURE_VERSION = (5, 6, 0)
CG_SOCKET_COOKIE_FEATURE_VERSION = (5, 7, 0)
SK_ASSIGN_FEATURE_VERSION = (5, 7, 0)
CHECKSUM_FEATURE_VERSION = (5, 8, 0)
PROG_TYPE_SK_LOOKUP_FEATURE_VERSION = (5, 9, 0)
SOCKMAP_FEATURE_VERSION = (5, 10, 0)
USERSPACE_BATCH_UPDATE_LPM_TRIE_FEATURE_VERSION = (5, 13, 0)
BPF_TIMER_FEATURE_VERSION = (5, 15, 0)
HELPER_BPF_GET_FUNC_IP_VERSION_FEATURE_VERSION = (5, 15, 0)
BPF_LOOP_FEATURE_VERSION = (5, 17, 0)

# The UDP protocol number reported here is IPPROTO_IDP, as the data plane expects.
_IPPROTO_IDP = 22

_INDEX_PREFIX = "<index: "


class DialMode(str, enum.Enum):
    IP = "ip"
    DOMAIN = "domain"
    DOMAIN_PLUS = "domain+"
    DOMAIN_CAO = "domain++"


def parse_dial_mode(mode: str) -> DialMode:
    """Return the dial mode named by ``mode``."""
    try:
        return DialMode(mode)
    except ValueError:
        raise ValueError(f"unsupported dial mode: {mode}") from None


class L4ProtoType(enum.IntEnum):
    TCP = 1
    UDP = 2
    TCP_UDP = 3


class IpVersionType(enum.IntEnum):
    V4 = 1
    V6 = 2
    X = 3

    def to_ip_version_str(self) -> "IpVersionStr":
        if self is IpVersionType.V4:
            return IpVersionStr.V4
        if self is IpVersionType.V6:
            return IpVersionStr.V6
        raise ValueError("unsupported ipversion")


class L4ProtoStr(str, enum.Enum):
    TCP = "tcp"
    UDP = "udp"

    def to_l4_proto(self) -> int:
        if self is L4ProtoStr.TCP:
            return socket.IPPROTO_TCP
        return _IPPROTO_IDP

    def to_l4_proto_type(self) -> L4ProtoType:
        if self is L4ProtoStr.TCP:
            return L4ProtoType.TCP
        return L4ProtoType.UDP


class IpVersionStr(str, enum.Enum):
    V4 = "4"
    V6 = "6"

    def to_ip_version(self) -> int:
        return 4 if self is IpVersionStr.V4 else 6

    def to_ip_version_type(self) -> IpVersionType:
        return IpVersionType.V4 if self is IpVersionStr.V4 else IpVersionType.V6


def ip_version_from_addr(
    addr: Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address],
) -> IpVersionStr:
    """IPv4 and IPv4-mapped IPv6 addresses are version 4, the rest version 6."""
    if isinstance(addr, str):
        addr = ipaddress.ip_address(addr)
    if isinstance(addr, ipaddress.IPv4Address) or addr.ipv4_mapped is not None:
        return IpVersionStr.V4
    return IpVersionStr.V6


class ParamKey(enum.IntEnum):
    ZERO = 0
    BIG_ENDIAN_TPROXY_PORT = 1
    DISABLE_L4_TX_CHECKSUM = 2
    DISABLE_L4_RX_CHECKSUM = 3
    CONTROL_PLANE_PID = 4
    CONTROL_PLANE_NAT_DIRECT = 5
    CONTROL_PLANE_DNS_ROUTING = 6
    ONE = 1


class DisableL4ChecksumPolicy(enum.IntEnum):
    ENABLE_L4_CHECKSUM = 0
    RESTORE = 1
    SET_ZERO = 2


class MatchType(enum.IntEnum):
    DOMAIN_SET = 0
    IP_SET = 1
    SOURCE_IP_SET = 2
    PORT = 3
    SOURCE_PORT = 4
    L4_PROTO = 5
    IP_VERSION = 6
    MAC = 7
    PROCESS_NAME = 8
    DSCP = 9
    FALLBACK = 10
    MUST_RULES = 11
    UPSTREAM = 12
    QTYPE = 13


# Outbound indexes of the routing table.
OUTBOUND_DIRECT = 0
OUTBOUND_BLOCK = 1
OUTBOUND_USER_DEFINED_MIN = 2
OUTBOUND_MUST_RULES = 0xFC
OUTBOUND_CONTROL_PLANE_ROUTING = 0xFD
OUTBOUND_LOGICAL_OR = 0xFE
OUTBOUND_LOGICAL_AND = 0xFF
OUTBOUND_LOGICAL_MASK = 0xFE
OUTBOUND_USER_DEFINED_MAX = OUTBOUND_MUST_RULES - 1


def outbound_name(index: int) -> str:
    names = {
        OUTBOUND_MUST_RULES: "must_rules",
        OUTBOUND_DIRECT: "direct",
        OUTBOUND_BLOCK: "block",
        OUTBOUND_CONTROL_PLANE_ROUTING: "<Control Plane Routing>",
        OUTBOUND_LOGICAL_OR: "<OR>",
        OUTBOUND_LOGICAL_AND: "<AND>",
    }
    return names.get(index, f"{_INDEX_PREFIX}{index}>")


def outbound_is_reserved(index: int) -> bool:
    return not outbound_name(index).startswith(_INDEX_PREFIX)


# DNS request routing outbound indexes.
DNS_REQUEST_OUTBOUND_REJECT = 0xFC
DNS_REQUEST_OUTBOUND_AS_IS = 0xFD
DNS_REQUEST_OUTBOUND_LOGICAL_OR = 0xFE
DNS_REQUEST_OUTBOUND_LOGICAL_AND = 0xFF
DNS_REQUEST_OUTBOUND_LOGICAL_MASK = 0xFE
DNS_REQUEST_OUTBOUND_USER_DEFINED_MAX = DNS_REQUEST_OUTBOUND_REJECT - 1


def dns_request_outbound_name(index: int) -> str:
    names = {
        DNS_REQUEST_OUTBOUND_REJECT: "reject",
        DNS_REQUEST_OUTBOUND_AS_IS: "asis",
        DNS_REQUEST_OUTBOUND_LOGICAL_OR: "<OR>",
        DNS_REQUEST_OUTBOUND_LOGICAL_AND: "<AND>",
    }
    return names.get(index, f"{_INDEX_PREFIX}{index}>")


# DNS response routing outbound indexes.
DNS_RESPONSE_OUTBOUND_ACCEPT = 0xFC
DNS_RESPONSE_OUTBOUND_REJECT = 0xFD
DNS_RESPONSE_OUTBOUND_LOGICAL_OR = 0xFE
DNS_RESPONSE_OUTBOUND_LOGICAL_AND = 0xFF
DNS_RESPONSE_OUTBOUND_LOGICAL_MASK = 0xFE
DNS_RESPONSE_OUTBOUND_USER_DEFINED_MAX = DNS_RESPONSE_OUTBOUND_ACCEPT - 1


def dns_response_outbound_name(index: int) -> str:
    names = {
        DNS_RESPONSE_OUTBOUND_ACCEPT: "accept",
        DNS_RESPONSE_OUTBOUND_REJECT: "reject",
        DNS_RESPONSE_OUTBOUND_LOGICAL_OR: "<OR>",
        DNS_RESPONSE_OUTBOUND_LOGICAL_AND: "<AND>",
    }
    return names.get(index, f"{_INDEX_PREFIX}{index}>")


def dns_response_is_reserved(index: int) -> bool:
    return not dns_response_outbound_name(index).startswith(_INDEX_PREFIX)


def check_max_match_set_len(value: Union[int, str]) -> int:
    """Parse and validate a match-set length, which must be a multiple of 32."""
    if isinstance(value, str):
        try:
            value = int(value.strip() if value.strip() == value else "x", 10)
        except ValueError:
            raise ValueError(f"invalid max match set length: {value!r}") from None
    if value % 32 != 0:
        raise ValueError(f"MaxMatchSetLen should be a multiple of 32: {value}")
    return value


MAX_MATCH_SET_LEN = check_max_match_set_len(32 * 32)


class ReloadProgress(str, enum.Enum):
    """First character of the reload progress file."""

    SEND = "0"
    PROCESSING = "1"
    DONE = "2"
    ERROR = "3"


class RoutingDomainKey(str, enum.Enum):
    FULL = "full"
    KEYWORD = "keyword"
    SUFFIX = "suffix"
    REGEX = "regex"


FUNCTION_DOMAIN = "domain"
FUNCTION_IP = "ip"
FUNCTION_SOURCE_IP = "sip"
FUNCTION_PORT = "port"
FUNCTION_SOURCE_PORT = "sport"
FUNCTION_L4_PROTO = "l4proto"
FUNCTION_IP_VERSION = "ipversion"
FUNCTION_MAC = "mac"
FUNCTION_PROCESS_NAME = "pname"
FUNCTION_DSCP = "dscp"
FUNCTION_QNAME = "qname"
FUNCTION_QTYPE = "qtype"
FUNCTION_UPSTREAM = "upstream"

OUTBOUND_PARAM_MARK = "mark"