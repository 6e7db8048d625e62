from __future__ import annotations
import socket, struct, ipaddress, ctypes

from ..models import IPAddress

def ntohs16(v: int) -> int:
    return socket.ntohs(v & 0xFFFF)

def ipv4_from_dword(dw: int) -> ipaddress.IPv4Address:
    return ipaddress.IPv4Address(struct.pack('<I', ctypes.c_uint32(dw).value))

def ipv6_from_bytes(b: bytes) -> ipaddress.IPv6Address:
    return ipaddress.IPv6Address(bytes(b))

def unspecified_for(family: int) -> IPAddress:
    if family == socket.AF_INET6:
        return ipaddress.IPv6Address(0)
    return ipaddress.IPv4Address(0)

def parse_ip(text: str) -> IPAddress:
    """Parse an address as printed by OS tools.

    Accepts '[::1]', '[fe80::1]%eth0' (ss puts the zone after the bracket),
    'fe80::1%eth0', '127.0.0.53%lo' and '*' (the IPv6 wildcard, as `ss`
    prints dual-stack listeners). Zones are dropped. Raises ValueError.
    """
    host = text.strip().split('%', 1)[0]
    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]
    if host == '*':
        return ipaddress.IPv6Address(0)
    return ipaddress.ip_address(host)
