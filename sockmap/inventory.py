from __future__ import annotations
import ipaddress
import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .collectors import enumerate_processes as _read_process_table, socket_enumerator
from .config import CFG
from .errors import ProcessTableError
from .models import ConnectionRecord, Endpoint, IPAddress, SocketDescriptor, TcpState, Transport

log = logging.getLogger(__name__)

SocketEnumerator = Callable[[], Iterable[SocketDescriptor]]
ProcessEnumerator = Callable[[], Iterable[Tuple[int, str]]]

UDP_REMOTE = Endpoint(address=None, port=None)


def tcp_state_to_string(state) -> str:
    """Map a TcpState onto the fixed vocabulary; collectors must hand over a TcpState, anything else is UNKNOWN."""
    if isinstance(state, TcpState):
        return state.value
    return "UNKNOWN"


def normalize_address(addr: Optional[IPAddress]) -> Optional[str]:
    if addr is None or addr.is_unspecified:
        return None
    return str(addr)


def is_ipv6(addr: IPAddress) -> bool:
    return isinstance(addr, ipaddress.IPv6Address)


def build_process_index(enumerate_processes: ProcessEnumerator, strict: bool = False) -> Dict[int, str]:
    index: Dict[int, str] = {}
    try:
        for pid, name in enumerate_processes():
            index[pid] = name
    except ProcessTableError as e:
        if strict:
            raise
        log.warning("%s; process names will be empty", e)
        return {}
    return index


def _owners(sock: SocketDescriptor, expand: bool) -> Tuple[int, ...]:
    if not sock.pids:
        return (0,)
    return tuple(sock.pids) if expand else (sock.pids[0],)


def to_records(sock: SocketDescriptor, index: Dict[int, str], expand_owners: bool = False) -> List[ConnectionRecord]:
    v6 = is_ipv6(sock.local_addr)
    local = Endpoint(address=normalize_address(sock.local_addr), port=sock.local_port)
    if sock.transport is Transport.TCP:
        protocol = "tcp6" if v6 else "tcp"
        remote = Endpoint(address=normalize_address(sock.remote_addr), port=sock.remote_port or 0)
        state = tcp_state_to_string(sock.state)
    else:
        protocol = "udp6" if v6 else "udp"
        remote = UDP_REMOTE
        state = ""
    return [
        ConnectionRecord(protocol=protocol, local=local, remote=remote, state=state,
                         pid=pid, process_name=index.get(pid, "") if pid else "")
        for pid in _owners(sock, expand_owners)
    ]


def build_inventory(enumerate_sockets: Optional[SocketEnumerator] = None,
                    enumerate_processes: Optional[ProcessEnumerator] = None,
                    *, expand_owners: bool = False,
                    strict_processes: bool = False) -> List[ConnectionRecord]:
    """Take one snapshot of the socket table joined with the process table.

    Raises EnumerationError when the socket table cannot be read; nothing is
    returned in that case. A missing process entry is not an error, the
    record just carries an empty process name. A failure to read the whole
    process table degrades to an empty index unless ``strict_processes``.
    """
    if enumerate_sockets is None:
        enumerate_sockets = socket_enumerator()
    if enumerate_processes is None:
        enumerate_processes = _read_process_table

    sockets = list(enumerate_sockets())
    index = build_process_index(enumerate_processes, strict=strict_processes)

    records: List[ConnectionRecord] = []
    for sock in sockets:
        records.extend(to_records(sock, index, expand_owners))
    return records


def build_from_cfg(cfg: CFG, enumerate_processes: Optional[ProcessEnumerator] = None) -> List[ConnectionRecord]:
    collect = socket_enumerator(cfg.backend, timeout=cfg.query_timeout)
    return build_inventory(
        lambda: collect(families=cfg.families, transports=cfg.transports),
        enumerate_processes,
        expand_owners=cfg.expand_owners,
        strict_processes=cfg.strict_processes,
    )
