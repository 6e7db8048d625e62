from __future__ import annotations
import enum
import ipaddress
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class Transport(enum.Enum):
    TCP = "tcp"
    UDP = "udp"


class TcpState(enum.Enum):
    CLOSED = "CLOSED"
    LISTEN = "LISTEN"
    SYN_SENT = "SYN_SENT"
    SYN_RECEIVED = "SYN_RECEIVED"
    ESTABLISHED = "ESTABLISHED"
    FIN_WAIT_1 = "FIN_WAIT_1"
    FIN_WAIT_2 = "FIN_WAIT_2"
    CLOSE_WAIT = "CLOSE_WAIT"
    CLOSING = "CLOSING"
    LAST_ACK = "LAST_ACK"
    TIME_WAIT = "TIME_WAIT"
    DELETE_TCB = "DELETE_TCB"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class SocketDescriptor:
    """One socket as reported by a collector backend.

    ``state`` is a TcpState for TCP sockets; backends that cannot classify a
    raw value may pass it through unchanged and the correlator maps it to
    UNKNOWN. ``pids`` keeps the backend's order, possibly empty.
    """
    transport: Transport
    local_addr: IPAddress
    local_port: int
    remote_addr: Optional[IPAddress] = None
    remote_port: Optional[int] = None
    state: Any = None
    pids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class Endpoint:
    address: Optional[str] = None
    port: Optional[int] = None


@dataclass(frozen=True)
class ConnectionRecord:
    protocol: str  # 'tcp', 'tcp6', 'udp', 'udp6'
    local: Endpoint
    remote: Endpoint
    state: str  # '' for UDP
    pid: int
    process_name: str
