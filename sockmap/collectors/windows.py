from __future__ import annotations
from typing import Iterable
import ctypes, socket, platform
import ctypes.wintypes as wt

from ..errors import EnumerationError
from ..models import SocketDescriptor, TcpState, Transport
from ..utils.net import ntohs16, ipv4_from_dword, ipv6_from_bytes
from .generic import DEFAULT_FAMILIES, DEFAULT_TRANSPORTS

AF_INET = 2
AF_INET6 = 23
TCP_TABLE_OWNER_PID_ALL = 5
UDP_TABLE_OWNER_PID = 1
NO_ERROR = 0
ERROR_INSUFFICIENT_BUFFER = 122

WIN_AF = {socket.AF_INET: AF_INET, socket.AF_INET6: AF_INET6}

# MIB_TCP_STATE
TCP_STATE = {
    1: TcpState.CLOSED, 2: TcpState.LISTEN, 3: TcpState.SYN_SENT, 4: TcpState.SYN_RECEIVED,
    5: TcpState.ESTABLISHED, 6: TcpState.FIN_WAIT_1, 7: TcpState.FIN_WAIT_2, 8: TcpState.CLOSE_WAIT,
    9: TcpState.CLOSING, 10: TcpState.LAST_ACK, 11: TcpState.TIME_WAIT, 12: TcpState.DELETE_TCB,
}

class IN6_ADDR(ctypes.Structure):
    _fields_ = [("Byte", ctypes.c_ubyte * 16)]

class MIB_TCPROW_OWNER_PID(ctypes.Structure):
    _fields_ = [("state", wt.DWORD), ("localAddr", wt.DWORD), ("localPort", wt.DWORD),
                ("remoteAddr", wt.DWORD), ("remotePort", wt.DWORD), ("owningPid", wt.DWORD)]

class MIB_TCP6ROW_OWNER_PID(ctypes.Structure):
    _fields_ = [("localAddr", IN6_ADDR), ("localScopeId", wt.DWORD), ("localPort", wt.DWORD),
                ("remoteAddr", IN6_ADDR), ("remoteScopeId", wt.DWORD), ("remotePort", wt.DWORD),
                ("state", wt.DWORD), ("owningPid", wt.DWORD)]

class MIB_UDPROW_OWNER_PID(ctypes.Structure):
    _fields_ = [("localAddr", wt.DWORD), ("localPort", wt.DWORD), ("owningPid", wt.DWORD)]

class MIB_UDP6ROW_OWNER_PID(ctypes.Structure):
    _fields_ = [("localAddr", IN6_ADDR), ("localScopeId", wt.DWORD), ("localPort", wt.DWORD),
                ("owningPid", wt.DWORD)]

def _pids(owning_pid: int) -> tuple[int, ...]:
    return (int(owning_pid),) if owning_pid else ()

def _read_table(fn, af: int, table_class: int, row_type) -> list:
    """Call a GetExtended*Table function and return its rows.

    The table can grow between the sizing call and the read, so the read is
    repeated while the API keeps asking for a larger buffer.
    """
    size = wt.DWORD(0)
    fn(None, ctypes.byref(size), False, af, table_class, 0)
    while True:
        buf = ctypes.create_string_buffer(size.value)
        rc = fn(buf, ctypes.byref(size), False, af, table_class, 0)
        if rc == NO_ERROR:
            break
        if rc != ERROR_INSUFFICIENT_BUFFER:
            raise EnumerationError(f"Failed to get sockets: {fn.__name__} returned {rc}")
    count = wt.DWORD.from_buffer(buf).value
    offset = ctypes.sizeof(wt.DWORD)
    # rows are aligned to the row's own alignment after dwNumEntries
    align = ctypes.alignment(row_type)
    offset = (offset + align - 1) // align * align
    rows = (row_type * count).from_buffer(buf, offset)
    return list(rows)

def _tcp(iphlpapi, af: int) -> list[SocketDescriptor]:
    fn = iphlpapi.GetExtendedTcpTable
    fn.restype = wt.DWORD
    out: list[SocketDescriptor] = []
    if af == AF_INET:
        for r in _read_table(fn, af, TCP_TABLE_OWNER_PID_ALL, MIB_TCPROW_OWNER_PID):
            out.append(SocketDescriptor(
                transport=Transport.TCP,
                local_addr=ipv4_from_dword(r.localAddr), local_port=ntohs16(r.localPort),
                remote_addr=ipv4_from_dword(r.remoteAddr), remote_port=ntohs16(r.remotePort),
                state=TCP_STATE.get(r.state, r.state), pids=_pids(r.owningPid)))
    else:
        for r in _read_table(fn, af, TCP_TABLE_OWNER_PID_ALL, MIB_TCP6ROW_OWNER_PID):
            out.append(SocketDescriptor(
                transport=Transport.TCP,
                local_addr=ipv6_from_bytes(bytes(r.localAddr.Byte)), local_port=ntohs16(r.localPort),
                remote_addr=ipv6_from_bytes(bytes(r.remoteAddr.Byte)), remote_port=ntohs16(r.remotePort),
                state=TCP_STATE.get(r.state, r.state), pids=_pids(r.owningPid)))
    return out

def _udp(iphlpapi, af: int) -> list[SocketDescriptor]:
    fn = iphlpapi.GetExtendedUdpTable
    fn.restype = wt.DWORD
    if af == AF_INET:
        rows = _read_table(fn, af, UDP_TABLE_OWNER_PID, MIB_UDPROW_OWNER_PID)
        return [SocketDescriptor(transport=Transport.UDP, local_addr=ipv4_from_dword(r.localAddr),
                                 local_port=ntohs16(r.localPort), pids=_pids(r.owningPid))
                for r in rows]
    rows = _read_table(fn, af, UDP_TABLE_OWNER_PID, MIB_UDP6ROW_OWNER_PID)
    return [SocketDescriptor(transport=Transport.UDP, local_addr=ipv6_from_bytes(bytes(r.localAddr.Byte)),
                             local_port=ntohs16(r.localPort), pids=_pids(r.owningPid))
            for r in rows]

def collect(families: Iterable[int] = DEFAULT_FAMILIES,
            transports: Iterable[Transport] = DEFAULT_TRANSPORTS) -> list[SocketDescriptor]:
    if platform.system() != "Windows":
        raise EnumerationError("Failed to get sockets: iphlpapi backend requires Windows")
    try:
        iphlpapi = ctypes.WinDLL('Iphlpapi.dll')
    except OSError as e:
        raise EnumerationError(f"Failed to get sockets: {e}") from e

    families = tuple(families)
    socks: list[SocketDescriptor] = []
    for transport in transports:
        for fam in families:
            af = WIN_AF[fam]
            if transport is Transport.TCP:
                socks.extend(_tcp(iphlpapi, af))
            else:
                socks.extend(_udp(iphlpapi, af))
    return socks
