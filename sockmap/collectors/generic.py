from __future__ import annotations
import socket
from typing import Iterable

import psutil

from ..errors import EnumerationError
from ..models import SocketDescriptor, TcpState, Transport
from ..utils.net import parse_ip, unspecified_for

DEFAULT_FAMILIES = (socket.AF_INET, socket.AF_INET6)
DEFAULT_TRANSPORTS = (Transport.TCP, Transport.UDP)

PSUTIL_STATE = {
    psutil.CONN_CLOSE: TcpState.CLOSED,
    psutil.CONN_LISTEN: TcpState.LISTEN,
    psutil.CONN_SYN_SENT: TcpState.SYN_SENT,
    psutil.CONN_SYN_RECV: TcpState.SYN_RECEIVED,
    psutil.CONN_ESTABLISHED: TcpState.ESTABLISHED,
    psutil.CONN_FIN_WAIT1: TcpState.FIN_WAIT_1,
    psutil.CONN_FIN_WAIT2: TcpState.FIN_WAIT_2,
    psutil.CONN_CLOSE_WAIT: TcpState.CLOSE_WAIT,
    psutil.CONN_CLOSING: TcpState.CLOSING,
    psutil.CONN_LAST_ACK: TcpState.LAST_ACK,
    psutil.CONN_TIME_WAIT: TcpState.TIME_WAIT,
    "DELETE_TCB": TcpState.DELETE_TCB,
}

_KIND_SUFFIX = {socket.AF_INET: "4", socket.AF_INET6: "6"}

def _kinds(families: Iterable[int], transports: Iterable[Transport]) -> list[str]:
    return [f"{t.value}{_KIND_SUFFIX[f]}" for t in transports for f in families]

def _ip_port(addr, family: int):
    if not addr:
        return unspecified_for(family), 0
    ip = addr.ip if hasattr(addr, 'ip') else addr[0]
    port = addr.port if hasattr(addr, 'port') else addr[1]
    return parse_ip(ip), int(port)

def to_descriptor(c, transport: Transport) -> SocketDescriptor:
    """Convert one psutil connection tuple."""
    laddr, lport = _ip_port(c.laddr, c.family)
    pids = (c.pid,) if c.pid else ()
    if transport is Transport.UDP:
        return SocketDescriptor(transport=transport, local_addr=laddr, local_port=lport, pids=pids)
    raddr, rport = _ip_port(c.raddr, c.family)
    return SocketDescriptor(
        transport=transport, local_addr=laddr, local_port=lport,
        remote_addr=raddr, remote_port=rport,
        state=PSUTIL_STATE.get(c.status, TcpState.UNKNOWN), pids=pids,
    )

def collect(families: Iterable[int] = DEFAULT_FAMILIES,
            transports: Iterable[Transport] = DEFAULT_TRANSPORTS) -> list[SocketDescriptor]:
    families = tuple(families)
    out: list[SocketDescriptor] = []
    for transport in transports:
        for kind in _kinds(families, (transport,)):
            try:
                conns = psutil.net_connections(kind=kind)
            except psutil.AccessDenied as e:
                raise EnumerationError(f"Failed to get sockets: access denied ({kind})") from e
            except (psutil.Error, OSError) as e:
                raise EnumerationError(f"Failed to get sockets: {e}") from e
            out.extend(to_descriptor(c, transport) for c in conns)
    return out
