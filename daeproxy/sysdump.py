"""Collecting the host's network configuration into a tarball."""

from __future__ import annotations

import ipaddress
import os
import socket
import stat
import struct
import subprocess
import tarfile
import tempfile
import time
from typing import Iterator, Optional

_SCOPES = {0: "universe", 200: "site", 253: "link", 254: "host", 255: "nowhere"}

_PROTOCOLS = {
    42: "babel",
    186: "bgp",
    12: "bird",
    3: "boot",
    16: "dhcp",
    13: "dnrouted",
    192: "eigrp",
    8: "gated",
    187: "isis",
    2: "kernel",
    17: "mrouted",
    10: "mrt",
    15: "ntk",
    188: "ospf",
    9: "ra",
    1: "redirect",
    189: "rip",
    4: "static",
    0: "unspec",
    14: "xorp",
    11: "zebra",
}

_TYPES = {
    0: "unspec",
    1: "unicast",
    2: "local",
    3: "broadcast",
    4: "anycast",
    5: "multicast",
    6: "blackhole",
    7: "unreachable",
    8: "prohibit",
    9: "throw",
    10: "nat",
    11: "xresolve",
}

_IFF_FLAGS = (
    (0x1, "up"),
    (0x2, "broadcast"),
    (0x8, "loopback"),
    (0x10, "pointtopoint"),
    (0x1000, "multicast"),
    (0x40, "running"),
)

_SIOCGIFADDR = 0x8915
_SIOCGIFNETMASK = 0x891B

SYSCTL_ROOT = "/proc/sys/net"


def scope_to_string(scope: int) -> str:
    """Name of a route scope."""
    return _SCOPES.get(scope, "unknown")


def protocol_to_string(proto: int) -> str:
    """Name of a routing protocol."""
    return _PROTOCOLS.get(proto, "unknown")


def type_to_string(typ: int) -> str:
    """Name of a route type."""
    return _TYPES.get(typ, "unknown")


def _write(output_dir: str, name: str, data: bytes) -> None:
    with open(os.path.join(output_dir, name), "wb") as fh:
        fh.write(data)


def _ipv4_from_proc_hex(text: str) -> ipaddress.IPv4Address:
    return ipaddress.IPv4Address(struct.pack("=I", int(text, 16)))


def _ipv4_routes(lines: list[str]) -> Iterator[str]:
    for line in lines[1:]:
        f = line.split()
        if len(f) < 8:
            continue
        iface, dst, gw, mask = f[0], f[1], f[2], f[7]
        prefix_len = int(mask, 16).bit_count()
        dst_addr = _ipv4_from_proc_hex(dst)
        route = "default" if int(dst_addr) == 0 and prefix_len == 0 else f"{dst_addr}/{prefix_len}"
        gw_addr = _ipv4_from_proc_hex(gw)
        if int(gw_addr):
            route += f" via {gw_addr}"
        yield f"{route} dev {iface}"


def _ipv6_routes(lines: list[str]) -> Iterator[str]:
    for line in lines:
        f = line.split()
        if len(f) < 10:
            continue
        dst = ipaddress.IPv6Address(bytes.fromhex(f[0]))
        prefix_len = int(f[1], 16)
        nexthop = ipaddress.IPv6Address(bytes.fromhex(f[4]))
        route = "default" if int(dst) == 0 and prefix_len == 0 else f"{dst}/{prefix_len}"
        if int(nexthop):
            route += f" via {nexthop}"
        yield f"{route} dev {f[9]}"


def _dump_routing(output_dir: str) -> None:
    try:
        with open("/proc/net/route", encoding="ascii", errors="replace") as fh:
            v4 = fh.read().splitlines()
    except OSError as exc:
        print(f"Failed to get routing table: {exc}")
        return
    try:
        with open("/proc/net/ipv6_route", encoding="ascii", errors="replace") as fh:
            v6 = fh.read().splitlines()
    except OSError:
        v6 = []
    lines = ["Routing:", *_ipv4_routes(v4), *_ipv6_routes(v6)]
    try:
        _write(output_dir, "routing.txt", ("\n".join(lines) + "\n").encode())
    except OSError as exc:
        print(f"Failed to write routing information to file: {exc}")


def _read_sys(name: str, attr: str) -> str:
    try:
        with open(f"/sys/class/net/{name}/{attr}", encoding="ascii", errors="replace") as fh:
            return fh.read().strip()
    except OSError:
        return ""


def _ipv4_address(name: str) -> Optional[str]:
    try:
        import fcntl

        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            req = struct.pack("256s", name.encode()[:15])
            addr = fcntl.ioctl(sock.fileno(), _SIOCGIFADDR, req)[20:24]
            mask = fcntl.ioctl(sock.fileno(), _SIOCGIFNETMASK, req)[20:24]
    except (OSError, ImportError):
        return None
    return f"{socket.inet_ntoa(addr)}/{int.from_bytes(mask, 'big').bit_count()}"


def _ipv6_addresses() -> dict[str, list[str]]:
    result: dict[str, list[str]] = {}
    try:
        with open("/proc/net/if_inet6", encoding="ascii", errors="replace") as fh:
            lines = fh.read().splitlines()
    except OSError:
        return result
    for line in lines:
        f = line.split()
        if len(f) < 6:
            continue
        addr = ipaddress.IPv6Address(bytes.fromhex(f[0]))
        result.setdefault(f[5], []).append(f"{addr}/{int(f[2], 16)}")
    return result


def dump_net_interfaces(output_dir: str) -> None:
    """Write name, MTU, hardware address, flags and addresses of each interface."""
    try:
        interfaces = sorted(socket.if_nameindex())
    except OSError as exc:
        print(f"Failed to get network interfaces: {exc}")
        return
    v6 = _ipv6_addresses()
    lines = ["Network Interfaces:"]
    for _, name in interfaces:
        mtu_text = _read_sys(name, "mtu")
        mtu = int(mtu_text) if mtu_text.isdigit() else 0
        hwaddr = _read_sys(name, "address")
        if hwaddr and not hwaddr.replace(":", "").strip("0"):
            hwaddr = ""
        flags_text = _read_sys(name, "flags")
        flags = int(flags_text, 16) if flags_text else 0
        names = " ".join(label for bit, label in _IFF_FLAGS if flags & bit)
        lines.append(f"Name: {name}, MTU: {mtu}, HardwareAddr: {hwaddr}, Flags: [{names}]")
        addrs = [a for a in [_ipv4_address(name)] if a] + v6.get(name, [])
        lines.extend(f"  Address: {addr}" for addr in addrs)
    try:
        _write(output_dir, "interfaces.txt", ("\n".join(lines) + "\n").encode())
    except OSError:
        pass


def _walk_files(path: str) -> Iterator[str]:
    """Yield regular and other non-directory paths under ``path`` in lexical order."""
    try:
        st = os.lstat(path)
    except OSError as exc:
        print(f"Fail in walk: {exc}")
        return
    if not stat.S_ISDIR(st.st_mode):
        yield path
        return
    try:
        names = sorted(os.listdir(path))
    except OSError as exc:
        print(f"Fail in walk: {exc}")
        return
    for name in names:
        yield from _walk_files(os.path.join(path, name))


def dump_sysctl(output_dir: str, root: str = SYSCTL_ROOT) -> None:
    """Write every setting below ``root`` as ``relative/path = value``."""
    lines = []
    prefix = root.rstrip("/") + "/"
    for path in _walk_files(root):
        try:
            with open(path, encoding="utf-8", errors="replace") as fh:
                value = fh.read()
        except OSError as exc:
            print(f"Fail in walk: {exc}")
            value = ""
        rel = path[len(prefix):] if path.startswith(prefix) else path
        lines.append(f"{rel:<60} = {value}\n")
    try:
        _write(output_dir, "sysctl.txt", "".join(lines).encode())
    except OSError:
        pass


def _combined_output(cmd: list[str]) -> bytes:
    proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, check=False)
    if proc.returncode != 0:
        raise OSError(f"{cmd[0]} exited with status {proc.returncode}")
    return proc.stdout


def dump_netfilter(output_dir: str) -> None:
    """Write the nftables ruleset."""
    try:
        output = _combined_output(["nft", "list", "ruleset"])
    except OSError as exc:
        print(f"Failed to get nftables ruleset: {exc}")
        return
    _write(output_dir, "nftables.txt", output)


def dump_iptables(output_dir: str) -> None:
    """Write the iptables and ip6tables rules with counters."""
    for program, label, filename in (
        ("iptables-save", "iptables", "iptables.txt"),
        ("ip6tables-save", "ip6tables", "ip6tables.txt"),
    ):
        try:
            output = _combined_output([program, "-c"])
        except OSError as exc:
            print(f"Failed to get {label}: {exc}")
            continue
        _write(output_dir, filename, output)


def dump_network_info() -> Optional[str]:
    """Collect everything into ``dae-sysdump.<unix time>.tar.gz`` and return its name."""
    try:
        temp = tempfile.TemporaryDirectory(prefix="sysdump")
    except OSError as exc:
        print(f"Failed to create temp directory: {exc}")
        return None
    with temp as temp_dir:
        _dump_routing(temp_dir)
        dump_net_interfaces(temp_dir)
        dump_sysctl(temp_dir)
        dump_netfilter(temp_dir)
        dump_iptables(temp_dir)
        tar_name = f"dae-sysdump.{int(time.time())}.tar.gz"
        try:
            with tarfile.open(tar_name, "w:gz") as tar:
                tar.add(temp_dir, arcname=os.path.basename(temp_dir))
        except (OSError, tarfile.TarError) as exc:
            print(f"Failed to create tar archive: {exc}")
            return None
    print(f"System network information collected and saved to {tar_name}")
    return tar_name