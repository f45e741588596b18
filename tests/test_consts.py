import ipaddress
import socket

import pytest

from daeproxy import consts
from daeproxy.consts import (
    DialMode,
    IpVersionStr,
    IpVersionType,
    L4ProtoStr,
    L4ProtoType,
    MatchType,
    ParamKey,
    ReloadProgress,
    RoutingDomainKey,
)


@pytest.mark.parametrize("mode", ["ip", "domain", "domain+", "domain++"])
def test_parse_dial_mode_accepts_known(mode):
    assert consts.parse_dial_mode(mode).value == mode


def test_parse_dial_mode_rejects_unknown():
    with pytest.raises(ValueError, match="unsupported dial mode"):
        consts.parse_dial_mode("domain+++")


def test_dial_mode_members():
    assert consts.parse_dial_mode("domain++") is DialMode.DOMAIN_CAO


def test_l4_proto_conversions():
    assert L4ProtoStr.TCP.to_l4_proto() == socket.IPPROTO_TCP
    assert L4ProtoStr.TCP.to_l4_proto_type() is L4ProtoType.TCP
    assert L4ProtoStr.UDP.to_l4_proto_type() is L4ProtoType.UDP


def test_ip_version_round_trip():
    for v in IpVersionStr:
        assert v.to_ip_version_type().to_ip_version_str() is v
    assert IpVersionStr.V4.to_ip_version() == 4
    assert IpVersionStr.V6.to_ip_version() == 6


def test_ip_version_type_x_unsupported():
    with pytest.raises(ValueError, match="unsupported ipversion"):
        IpVersionType.X.to_ip_version_str()


@pytest.mark.parametrize(
    "addr, expected",
    [
        ("192.0.2.1", IpVersionStr.V4),
        ("::ffff:192.0.2.1", IpVersionStr.V4),
        ("2001:db8::1", IpVersionStr.V6),
        (ipaddress.ip_address("10.0.0.1"), IpVersionStr.V4),
    ],
)
def test_ip_version_from_addr(addr, expected):
    assert consts.ip_version_from_addr(addr) is expected


def test_outbound_names():
    assert consts.outbound_name(consts.OUTBOUND_DIRECT) == "direct"
    assert consts.outbound_name(consts.OUTBOUND_BLOCK) == "block"
    assert consts.outbound_name(consts.OUTBOUND_MUST_RULES) == "must_rules"
    assert consts.outbound_name(consts.OUTBOUND_LOGICAL_AND) == "<AND>"
    assert consts.outbound_name(5) == "<index: 5>"


def test_outbound_reserved():
    assert consts.outbound_is_reserved(consts.OUTBOUND_CONTROL_PLANE_ROUTING)
    assert not consts.outbound_is_reserved(consts.OUTBOUND_USER_DEFINED_MIN)
    assert not consts.outbound_is_reserved(consts.OUTBOUND_USER_DEFINED_MAX)


def test_dns_request_names():
    assert consts.dns_request_outbound_name(consts.DNS_REQUEST_OUTBOUND_REJECT) == "reject"
    assert consts.dns_request_outbound_name(consts.DNS_REQUEST_OUTBOUND_AS_IS) == "asis"
    assert consts.dns_request_outbound_name(consts.DNS_REQUEST_OUTBOUND_LOGICAL_OR) == "<OR>"
    assert consts.dns_request_outbound_name(3).startswith("<index: ")


def test_dns_response_names_and_reserved():
    assert consts.dns_response_outbound_name(consts.DNS_RESPONSE_OUTBOUND_ACCEPT) == "accept"
    assert consts.dns_response_outbound_name(consts.DNS_RESPONSE_OUTBOUND_REJECT) == "reject"
    assert consts.dns_response_is_reserved(consts.DNS_RESPONSE_OUTBOUND_ACCEPT)
    assert consts.dns_response_is_reserved(consts.DNS_RESPONSE_OUTBOUND_LOGICAL_AND)
    assert not consts.dns_response_is_reserved(0)


def test_logical_mask_distinguishes_logical_indexes():
    mask = consts.OUTBOUND_LOGICAL_MASK
    for index in (consts.OUTBOUND_LOGICAL_OR, consts.OUTBOUND_LOGICAL_AND):
        assert index & mask == mask
        assert consts.outbound_is_reserved(index)
    assert consts.outbound_name(consts.OUTBOUND_LOGICAL_OR) == "<OR>"
    assert consts.OUTBOUND_MUST_RULES & mask != mask
    assert consts.outbound_name(consts.OUTBOUND_MUST_RULES) == "must_rules"


def test_check_max_match_set_len():
    assert consts.check_max_match_set_len("1024") == 1024
    assert consts.check_max_match_set_len(64) == 64
    assert consts.MAX_MATCH_SET_LEN == 32 * 32


@pytest.mark.parametrize("value", [100, "33", "abc"])
def test_check_max_match_set_len_rejects(value):
    with pytest.raises(ValueError):
        consts.check_max_match_set_len(value)


def test_reload_progress_order():
    values = [p.value for p in ReloadProgress]
    assert values == sorted(values)
    assert ReloadProgress("2") is ReloadProgress.DONE


def test_enum_values_follow_declaration_order():
    assert [m.value for m in MatchType] == list(range(len(MatchType)))
    assert ParamKey.ONE is ParamKey.BIG_ENDIAN_TPROXY_PORT
    assert RoutingDomainKey("suffix") is RoutingDomainKey.SUFFIX