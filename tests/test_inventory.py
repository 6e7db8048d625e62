import ipaddress
import socket
from unittest.mock import Mock, patch

import pytest

from sockmap.config import CFG
from sockmap.errors import EnumerationError, ProcessTableError
from sockmap.inventory import build_from_cfg, build_inventory, normalize_address, tcp_state_to_string
from sockmap.models import ConnectionRecord, Endpoint, SocketDescriptor, TcpState, Transport
from sockmap.render import record_to_dict

ip = ipaddress.ip_address


def tcp(local, lport, remote, rport, state=TcpState.ESTABLISHED, pids=()):
    return SocketDescriptor(Transport.TCP, ip(local), lport, ip(remote), rport, state, tuple(pids))


def udp(local, lport, pids=(), remote=None, rport=None):
    return SocketDescriptor(Transport.UDP, ip(local), lport,
                            remote_addr=ip(remote) if remote else None, remote_port=rport,
                            pids=tuple(pids))


def run(socks, procs=(), **kw):
    return build_inventory(lambda: list(socks), lambda: list(procs), **kw)


def test_established_tcp_scenario():
    records = run([tcp("127.0.0.1", 8080, "10.0.0.5", 54321, pids=[42])], [(42, "server")])
    assert records == [ConnectionRecord(
        protocol="tcp",
        local=Endpoint("127.0.0.1", 8080),
        remote=Endpoint("10.0.0.5", 54321),
        state="ESTABLISHED",
        pid=42,
        process_name="server",
    )]


def test_wildcard_udp_without_owner_scenario():
    # pid 0 is a real entry on Windows ("System Idle Process") but must not be used
    records = run([udp("0.0.0.0", 53)], [(0, "System Idle Process"), (1, "init")])
    assert [record_to_dict(r) for r in records] == [{
        "protocol": "udp",
        "local": {"address": None, "port": 53},
        "remote": {"address": None, "port": None},
        "state": "",
        "pid": 0,
        "processName": "",
    }]


def test_enumeration_failure_is_fatal_and_skips_process_table():
    procs = Mock(return_value=[(1, "init")])

    def failing():
        raise EnumerationError("Failed to get sockets: access denied")

    with pytest.raises(EnumerationError, match="access denied"):
        build_inventory(failing, procs)
    procs.assert_not_called()


def test_empty_socket_table_is_a_valid_result():
    assert run([], [(1, "init")]) == []


@pytest.mark.parametrize("local, expected", [
    ("0.0.0.0", None),
    ("::", None),
    ("127.0.0.1", "127.0.0.1"),
    ("0:0:0:0:0:0:0:1", "::1"),
    ("fe80:0000::0001", "fe80::1"),
])
def test_local_address_normalization(local, expected):
    (rec,) = run([tcp(local, 22, "::" if ":" in local else "0.0.0.0", 0, TcpState.LISTEN)])
    assert rec.local.address == expected
    assert rec.remote.address is None
    assert rec.remote.port == 0


def test_normalize_address_handles_missing_address():
    assert normalize_address(None) is None


@pytest.mark.parametrize("local, remote, expected", [
    ("127.0.0.1", "::1", "tcp"),
    ("::1", "127.0.0.1", "tcp6"),
    ("::", "::", "tcp6"),
    ("::ffff:10.0.0.1", "::ffff:10.0.0.2", "tcp6"),
])
def test_protocol_follows_local_family_only(local, remote, expected):
    (rec,) = run([tcp(local, 1000, remote, 2000)])
    assert rec.protocol == expected


def test_udp_protocol_names_and_remote_is_always_absent():
    records = run([
        udp("192.168.1.10", 5353, remote="224.0.0.251", rport=5353),
        udp("::", 546),
    ])
    assert [r.protocol for r in records] == ["udp", "udp6"]
    for r in records:
        assert r.remote == Endpoint(None, None)
        assert r.state == ""


def test_unresolvable_pid_keeps_pid_with_empty_name():
    (rec,) = run([tcp("10.0.0.2", 40000, "1.1.1.1", 443, pids=[77])], [(1, "init")])
    assert rec.pid == 77
    assert rec.process_name == ""


def test_first_owner_wins_by_default():
    (rec,) = run([tcp("0.0.0.0", 80, "0.0.0.0", 0, TcpState.LISTEN, pids=[900, 901])],
                 [(900, "nginx"), (901, "nginx-worker")])
    assert (rec.pid, rec.process_name) == (900, "nginx")


def test_expand_owners_emits_one_record_per_pid():
    records = run([tcp("0.0.0.0", 80, "0.0.0.0", 0, TcpState.LISTEN, pids=[900, 901]), udp("0.0.0.0", 68)],
                  [(900, "nginx"), (901, "nginx-worker")], expand_owners=True)
    assert [(r.pid, r.process_name) for r in records] == [(900, "nginx"), (901, "nginx-worker"), (0, "")]


def test_duplicate_process_entries_last_write_wins():
    (rec,) = run([udp("127.0.0.1", 9999, pids=[5])], [(5, "old"), (5, "new")])
    assert rec.process_name == "new"


def test_all_states_map_to_distinct_vocabulary():
    names = {tcp_state_to_string(s) for s in TcpState}
    assert names == {
        "CLOSED", "LISTEN", "SYN_SENT", "SYN_RECEIVED", "ESTABLISHED", "FIN_WAIT_1", "FIN_WAIT_2",
        "CLOSE_WAIT", "CLOSING", "LAST_ACK", "TIME_WAIT", "DELETE_TCB", "UNKNOWN",
    }


@pytest.mark.parametrize("raw", [99, "BOGUS", None, "ESTABLISHED"])
def test_unrecognized_state_maps_to_unknown(raw):
    (rec,) = run([tcp("10.0.0.1", 1, "10.0.0.2", 2, state=raw)])
    assert rec.state == "UNKNOWN"


def test_repeated_builds_are_equal_as_sets():
    socks = [
        tcp("127.0.0.1", 8080, "10.0.0.5", 54321, pids=[42]),
        udp("0.0.0.0", 53),
        tcp("::1", 5432, "::1", 60000, TcpState.TIME_WAIT),
    ]
    procs = [(42, "server")]
    first = run(socks, procs)
    second = run(list(reversed(socks)), procs)
    assert set(first) == set(second)


def _broken_process_table():
    yield (42, "server")
    raise ProcessTableError("Failed to read process table: denied")


def test_process_table_failure_degrades_to_empty_names():
    (rec,) = build_inventory(lambda: [udp("127.0.0.1", 53, pids=[42])], _broken_process_table)
    assert rec.pid == 42
    assert rec.process_name == ""


def test_process_table_failure_is_fatal_when_strict():
    with pytest.raises(ProcessTableError):
        build_inventory(lambda: [udp("127.0.0.1", 53, pids=[42])], _broken_process_table,
                        strict_processes=True)


def test_build_from_cfg_passes_families_and_transports():
    collect = Mock(return_value=[udp("127.0.0.1", 53, pids=[1])])
    cfg = CFG(backend="psutil", families=(socket.AF_INET,), transports=(Transport.UDP,), query_timeout=3.0)
    with patch("sockmap.inventory.socket_enumerator", return_value=collect) as factory:
        records = build_from_cfg(cfg, enumerate_processes=lambda: [(1, "init")])
    factory.assert_called_once_with("psutil", timeout=3.0)
    collect.assert_called_once_with(families=(socket.AF_INET,), transports=(Transport.UDP,))
    assert [r.process_name for r in records] == ["init"]
