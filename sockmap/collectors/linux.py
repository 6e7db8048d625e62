import re
import socket
import subprocess
from typing import Iterable, List, Optional, Tuple

from ..errors import EnumerationError
from ..models import IPAddress, SocketDescriptor, TcpState, Transport
from ..utils.net import parse_ip
from .generic import DEFAULT_FAMILIES, DEFAULT_TRANSPORTS

SS_CMD = ["ss", "-tuanp"]

SS_RE = re.compile(
    r"^(?P<netid>\S+)\s+(?P<state>\S+)\s+\S+\s+\S+\s+(?P<laddr>\S+)\s+(?P<raddr>\S+)(?:\s+(?P<users>.*))?$")
PID_RE = re.compile(r"pid=(?P<pid>\d+)")

SS_STATE = {
    "CLOSED": TcpState.CLOSED,
    "LISTEN": TcpState.LISTEN,
    "SYN-SENT": TcpState.SYN_SENT,
    "SYN-RECV": TcpState.SYN_RECEIVED,
    "ESTAB": TcpState.ESTABLISHED,
    "FIN-WAIT-1": TcpState.FIN_WAIT_1,
    "FIN-WAIT-2": TcpState.FIN_WAIT_2,
    "CLOSE-WAIT": TcpState.CLOSE_WAIT,
    "CLOSING": TcpState.CLOSING,
    "LAST-ACK": TcpState.LAST_ACK,
    "TIME-WAIT": TcpState.TIME_WAIT,
}

_FAMILY_VERSION = {socket.AF_INET: 4, socket.AF_INET6: 6}

def _safe_int(s: str, default: int = 0) -> int:
    try:
        return int(s)
    except ValueError:
        return default

def parse_addr(addr: str) -> Tuple[IPAddress, int]:
    """
    Supports:
      - '1.2.3.4:5678', '127.0.0.53%lo:53'
      - '[::1]:443', '[fe80::1]%eth0:546'
      - '0.0.0.0:*', '*:443', '*:*'
    Raises ValueError for anything else.
    """
    if ':' not in addr:
        raise ValueError(f"no port in {addr!r}")
    host, port = addr.rsplit(':', 1)
    return parse_ip(host), (0 if port == '*' else _safe_int(port, 0))

def parse_pids(users: Optional[str]) -> Tuple[int, ...]:
    if not users:
        return ()
    # one process may hold the socket through several fds
    return tuple(dict.fromkeys(int(m.group("pid")) for m in PID_RE.finditer(users)))

def parse_line(line: str) -> Optional[SocketDescriptor]:
    m = SS_RE.match(line.strip())
    if not m:
        return None
    try:
        transport = Transport(m.group("netid").lower())
    except ValueError:
        return None
    try:
        laddr, lport = parse_addr(m.group("laddr"))
        raddr, rport = parse_addr(m.group("raddr"))
    except ValueError:
        return None
    pids = parse_pids(m.group("users"))
    if transport is Transport.UDP:
        return SocketDescriptor(transport=transport, local_addr=laddr, local_port=lport, pids=pids)
    state = m.group("state").upper()
    return SocketDescriptor(
        transport=transport, local_addr=laddr, local_port=lport,
        remote_addr=raddr, remote_port=rport,
        state=SS_STATE.get(state, state), pids=pids,
    )

def parse_output(out: str) -> List[SocketDescriptor]:
    socks: List[SocketDescriptor] = []
    for line in out.splitlines():
        if not line.strip() or line.startswith("Netid"):
            continue
        d = parse_line(line)
        if d is not None:
            socks.append(d)
    return socks

def collect(families: Iterable[int] = DEFAULT_FAMILIES,
            transports: Iterable[Transport] = DEFAULT_TRANSPORTS,
            timeout: Optional[float] = None) -> List[SocketDescriptor]:
    try:
        proc = subprocess.run(SS_CMD, capture_output=True, text=True, timeout=timeout, check=False)
    except FileNotFoundError as e:
        raise EnumerationError("Failed to get sockets: 'ss' not found") from e
    except subprocess.TimeoutExpired as e:
        raise EnumerationError(f"Failed to get sockets: 'ss' timed out after {timeout}s") from e
    except OSError as e:
        raise EnumerationError(f"Failed to get sockets: {e}") from e
    if proc.returncode != 0:
        detail = (proc.stderr or "").strip() or f"exit status {proc.returncode}"
        raise EnumerationError(f"Failed to get sockets: {detail}")

    versions = {_FAMILY_VERSION[f] for f in families}
    wanted = set(transports)
    return [d for d in parse_output(proc.stdout)
            if d.transport in wanted and d.local_addr.version in versions]
