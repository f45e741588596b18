import base64
import hashlib
import ipaddress
import os
import sys
from dataclasses import dataclass, field
from datetime import timedelta

import dns.rdatatype
import pytest

from daeproxy import utils
from daeproxy.utils import OverlayHierarchicalKeyError, UrlOrEmpty


@dataclass
class Inner:
    port: int = field(default=0, metadata={"mapstructure": "tproxy_port"})
    enabled: bool = False
    names: list[str] = field(default_factory=list)
    interval: timedelta = timedelta(0)
    checks: list[timedelta] = field(default_factory=list)
    url: UrlOrEmpty = field(default_factory=UrlOrEmpty)


@dataclass
class Outer:
    global_: Inner = field(default_factory=Inner, metadata={"mapstructure": "global"})


def test_ipv6_words_round_trip():
    raw = ipaddress.ip_address("2001:db8::1").packed
    words = utils.ipv6_bytes_to_u32_array(raw)
    assert len(words) == 4
    assert utils.ipv6_u32_array_to_bytes(words) == raw


def test_ipv6_words_short_input():
    with pytest.raises(ValueError):
        utils.ipv6_bytes_to_u32_array(b"\x00" * 4)


def test_deduplicate():
    assert utils.deduplicate(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]
    assert utils.deduplicate(None) is None
    assert utils.deduplicate([]) == []


def test_base64_std_round_trip_without_padding():
    data = "hello?> world"
    encoded = base64.b64encode(data.encode()).decode().rstrip("=")
    assert utils.base64_std_decode("  " + encoded + "\n") == data


def test_base64_url_round_trip_without_padding():
    data = "hello?> world~~"
    encoded = base64.urlsafe_b64encode(data.encode()).decode().rstrip("=")
    assert utils.base64_url_decode(encoded) == data


def test_base64_rejects_wrong_alphabet():
    url_only = base64.urlsafe_b64encode(b"\xfb\xff").decode()
    std_only = base64.b64encode(b"\xfb\xff").decode()
    with pytest.raises(ValueError):
        utils.base64_std_decode(url_only)
    with pytest.raises(ValueError):
        utils.base64_url_decode(std_only)
    with pytest.raises(ValueError):
        utils.base64_std_decode("!!!!")


def test_parse_mac_round_trip():
    mac = "02:00:00:ab:cd:ef"
    parsed = utils.parse_mac(mac)
    assert len(parsed) == 6
    assert ":".join(f"{b:02x}" for b in parsed) == mac


@pytest.mark.parametrize("mac", ["02:00:00:ab:cd", "02:00:00:ab:cd:e", "zz:00:00:ab:cd:ef", "02:00:00:ab:cd:ef:01"])
def test_parse_mac_invalid(mac):
    with pytest.raises(ValueError):
        utils.parse_mac(mac)


def test_parse_port_range():
    assert utils.parse_port_range("80") == (80, 80)
    assert utils.parse_port_range("1000-2000") == (1000, 2000)


@pytest.mark.parametrize("pr", ["", "-5", "10-", "70000", "a-b"])
def test_parse_port_range_invalid(pr):
    with pytest.raises(ValueError):
        utils.parse_port_range(pr)


def test_set_value_hierarchical_map():
    m = {"a": {"x": 1}}
    utils.set_value_hierarchical_map(m, "a.b.c", 3)
    utils.set_value_hierarchical_map(m, "top", "v")
    assert m == {"a": {"x": 1, "b": {"c": 3}}, "top": "v"}


def test_set_value_hierarchical_map_overlay():
    m = {"a": 1}
    with pytest.raises(OverlayHierarchicalKeyError):
        utils.set_value_hierarchical_map(m, "a.b", 2)


def test_set_and_get_hierarchical_struct():
    conf = Outer()
    utils.set_value_hierarchical_struct(conf, "global.tproxy_port", "12345")
    utils.set_value_hierarchical_struct(conf, "global.enabled", "on")
    utils.set_value_hierarchical_struct(conf, "global.names", "a,b")
    assert conf.global_.port == 12345
    assert conf.global_.enabled is True
    assert utils.get_value_hierarchical_struct(conf, "global.names") == ["a", "b"]
    assert utils.get_value_hierarchical_struct(conf, "global") is conf.global_


def test_hierarchical_struct_unknown_member():
    with pytest.raises(ValueError, match="has no member"):
        utils.get_value_hierarchical_struct(Outer(), "global.missing")


def test_hierarchical_struct_type_mismatch():
    conf = Outer()
    with pytest.raises(ValueError, match="type does not match"):
        utils.set_value_hierarchical_struct(conf, "global.tproxy_port", "abc")
    assert conf.global_.port == 0


def test_hierarchical_struct_durations_and_url():
    conf = Outer()
    utils.set_value_hierarchical_struct(conf, "global.interval", "90m")
    utils.set_value_hierarchical_struct(conf, "global.checks", "1h30m")
    utils.set_value_hierarchical_struct(conf, "global.url", "")
    assert conf.global_.checks == [conf.global_.interval]
    assert conf.global_.url == UrlOrEmpty(url=None, empty=True)


def test_fuzzy_decode_int_bases():
    assert utils.fuzzy_decode(int, "0x1f") == 0x1F
    assert utils.fuzzy_decode(int, "010") == 0o10
    assert utils.fuzzy_decode(int, "-42") == -42


@pytest.mark.parametrize("val", ["9223372036854775808", "1.5", " 1", ""])
def test_fuzzy_decode_int_rejects(val):
    with pytest.raises(ValueError):
        utils.fuzzy_decode(int, val)


def test_fuzzy_decode_bool():
    assert utils.fuzzy_decode(bool, "YES") is True
    assert utils.fuzzy_decode(bool, "off") is False
    with pytest.raises(ValueError):
        utils.fuzzy_decode(bool, "maybe")


def test_fuzzy_decode_duration():
    assert utils.fuzzy_decode(timedelta, "1h30m") == utils.fuzzy_decode(timedelta, "90m")
    assert utils.fuzzy_decode(timedelta, "1500ms") == utils.fuzzy_decode(timedelta, "1.5s")
    assert utils.fuzzy_decode(timedelta, "0") == timedelta(0)
    with pytest.raises(ValueError):
        utils.fuzzy_decode(timedelta, "10")
    with pytest.raises(ValueError):
        utils.fuzzy_decode(timedelta, "5 parsecs")


def test_fuzzy_decode_url_and_unsupported():
    result = utils.fuzzy_decode(UrlOrEmpty, "https://example.com/path")
    assert result.empty is False
    assert result.url.netloc == "example.com"
    with pytest.raises(ValueError):
        utils.fuzzy_decode(float, "1.0")


def test_ensure_file_in_sub_dir(tmp_path):
    base = str(tmp_path)
    utils.ensure_file_in_sub_dir(os.path.join(base, "sub", "file.txt"), base)
    with pytest.raises(ValueError, match="out of scope"):
        utils.ensure_file_in_sub_dir(os.path.join(base, "..", "x", "file.txt"), base)
    with pytest.raises(ValueError, match="bad dir"):
        utils.ensure_file_in_sub_dir(os.path.join(base, "file.txt"), "")


@pytest.mark.parametrize(
    "link, expected",
    [
        ("mytag:https://example.com/sub", ("mytag", "https://example.com/sub")),
        ("https://example.com/sub", ("", "https://example.com/sub")),
        ("nocolon", ("", "nocolon")),
    ],
)
def test_get_tag_from_link_like_plaintext(link, expected):
    assert utils.get_tag_from_link_like_plaintext(link) == expected


def test_bool_to_string():
    assert utils.bool_to_string(True) == "1"
    assert utils.bool_to_string(False) == "0"


def test_converge_addr():
    assert utils.converge_addr("::ffff:192.0.2.7") == ipaddress.ip_address("192.0.2.7")
    v6 = ipaddress.ip_address("2001:db8::7")
    assert utils.converge_addr(v6) == v6


def test_new_gcm_round_trip():
    aead = utils.new_gcm(b"\x01" * 32)
    nonce = b"\x00" * 12
    sealed = aead.encrypt(nonce, b"payload", None)
    assert aead.decrypt(nonce, sealed, None) == b"payload"
    with pytest.raises(ValueError):
        utils.new_gcm(b"\x01" * 10)


def test_addr_to_dns_type():
    assert utils.addr_to_dns_type("192.0.2.1") == dns.rdatatype.A
    assert utils.addr_to_dns_type("2001:db8::1") == dns.rdatatype.AAAA
    assert utils.addr_to_dns_type("::ffff:192.0.2.1") == dns.rdatatype.AAAA


def test_htons_ntohs():
    value = 0x0102
    assert utils.ntohs(utils.htons(value)) == value
    assert utils.htons(value).to_bytes(2, sys.byteorder) == b"\x01\x02"
    with pytest.raises(OverflowError):
        utils.htons(0x10000)


def test_is_valid_http_method():
    assert utils.is_valid_http_method("PROPFIND")
    assert not utils.is_valid_http_method("get")


def test_generate_cert_chain_hash():
    assert utils.generate_cert_chain_hash([]) is None
    single = utils.generate_cert_chain_hash([b"cert-a"])
    assert single == hashlib.sha256(b"cert-a").digest()
    forward = utils.generate_cert_chain_hash([b"cert-a", b"cert-b"])
    backward = utils.generate_cert_chain_hash([b"cert-b", b"cert-a"])
    assert len(forward) == 32
    assert forward not in (single, backward)