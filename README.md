# daeproxy

A small command line for signalling a running transparent proxy daemon,
plus a library of the supporting pieces: DNS upstream handling, node
subscriptions, resolv.conf parsing, plain DNS lookups and a network
configuration dump.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Command line

Installing the package provides the `dae` command (`dae --help`,
`dae --version`).

Reload the configuration of a running daemon without dropping
connections. The process id is read from `/var/run/dae.pid` when not
given:

```
dae reload
dae reload 1234
dae reload --abort
```

`reload` sends `SIGUSR1` to the process and then follows the progress
file `/var/run/dae.progress`, printing the daemon's report once it is
done. If the file shows that another reload is still in progress,
nothing is sent. `-a`/`--abort` creates `/var/run/dae.abort` first,
which asks the daemon to close established connections as well.

Put the daemon into a no-load state (recover it with `dae reload`); this
sends `SIGUSR2` and accepts the same `--abort` option:

```
dae suspend
```

Collect routing tables, interfaces, the settings under `/proc/sys/net`,
the nftables ruleset and the iptables/ip6tables rules into
`dae-sysdump.<unix time>.tar.gz` in the current directory:

```
dae sysdump
```

Print a shell completion script for bash, zsh or fish:

```
dae completion bash
```

And, for good measure:

```
dae honk
```

`reload` and `suspend` re-run themselves through `sudo -E` when started
by a user other than root and `sudo` is installed.

## Library

The modules can be used on their own.

- `daeproxy.consts` – dial modes (`parse_dial_mode`), match types,
  outbound and DNS outbound indexes with their names
  (`outbound_name`, `dns_request_outbound_name`,
  `dns_response_outbound_name`), IP version and L4 protocol enums, and
  reload progress codes (`ReloadProgress`).
- `daeproxy.utils` – base64 decoding that tolerates missing padding,
  `parse_mac`, `parse_port_range`, dotted-key access to nested dicts and
  dataclasses (`set_value_hierarchical_map`,
  `get_value_hierarchical_struct`, `set_value_hierarchical_struct`),
  string-to-type conversion (`fuzzy_decode`), `tag:link` splitting
  (`get_tag_from_link_like_plaintext`), `converge_addr`, `new_gcm`,
  `htons`/`ntohs` and certificate chain hashing
  (`generate_cert_chain_hash`).
- `daeproxy.bitlist` – `CompactBitList`, a list of unsigned integers
  packed at an arbitrary bit width.
- `daeproxy.resolvconf` – `read_dns_config` parses a resolv.conf file
  into a `DnsConfig`.
- `daeproxy.resolver` – plain DNS lookups over UDP or TCP
  (`resolve_netip`, `resolve_ns`, `resolve_ip46`), `url_port`, and
  `SystemDnsCache`, which picks the first non-loopback nameserver of
  resolv.conf and falls back to a bootstrap server.
- `daeproxy.subscription` – reads node subscriptions from HTTP(S) or
  from `file://` paths relative to a configuration directory, in SIP008
  JSON or base64 form (`resolve_subscription`, `resolve_as_sip008`,
  `resolve_as_base64`, `resolve_file`).
- `daeproxy.assets` – `LocationFinder` finds data files in
  `$DAE_LOCATION_ASSET`, the given directories and the XDG data
  directories, caching each result for five seconds.
- `daeproxy.upstream` – parses DNS upstream URLs such as
  `tcp+udp://dns.example.com:53` or `https://dns.example.com/dns-query`
  (`parse_raw_upstream`), resolves their host (`new_upstream`,
  `UpstreamResolver`) and converts DNS type names or numbers
  (`parse_dns_types`).
- `daeproxy.fuzzyjson` – `fuzzy_bool` reads loosely typed JSON booleans.
- `daeproxy.debug` – `report_memory` logs peak resident memory when
  debug logging is enabled.
- `daeproxy.su` – `auto_su` and `sudo_command` for re-running a command
  as root.
- `daeproxy.sysdump` – the pieces behind `dae sysdump`
  (`dump_network_info` and the individual `dump_*` functions).

Example:

```python
from daeproxy.bitlist import CompactBitList
from daeproxy.utils import get_tag_from_link_like_plaintext

bits = CompactBitList(6)
bits.set(1, 0b110010)
assert bits.get(1) == 0b110010

tag, link = get_tag_from_link_like_plaintext("alidns:udp://dns.example.com:53")
assert tag == "alidns"
assert link == "udp://dns.example.com:53"
```

## What this package does not do

It does not contain the proxy daemon itself. There is no command that
runs the proxy, validates or loads a configuration file, or traces
traffic; there is no configuration parser, no routing engine, no
kernel data plane and no outbound protocol support. `dae reload` and
`dae suspend` only signal a daemon that is already running.

DNS upstreams are parsed and their host names resolved, but queries
are only ever sent as plain DNS over UDP or TCP; there is no DNS over
TLS, QUIC, HTTPS or HTTP/3 client.