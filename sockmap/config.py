from __future__ import annotations
import socket
import sys
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .models import Transport
from .presets import load_presets

@dataclass
class CFG:
    backend: str = "auto"
    families: Tuple[int, ...] = (socket.AF_INET, socket.AF_INET6)
    transports: Tuple[Transport, ...] = (Transport.TCP, Transport.UDP)
    expand_owners: bool = False
    strict_processes: bool = False
    query_timeout: Optional[float] = 10.0
    presets: Dict[str, str] = field(default_factory=dict)

FAMILY_CHOICES = {
    "all": (socket.AF_INET, socket.AF_INET6),
    "inet4": (socket.AF_INET,),
    "inet6": (socket.AF_INET6,),
}

TRANSPORT_CHOICES = {
    "all": (Transport.TCP, Transport.UDP),
    "tcp": (Transport.TCP,),
    "udp": (Transport.UDP,),
}

def init_cfg_from_args(args) -> CFG:
    cfg = CFG()
    cfg.backend = getattr(args, "backend", "auto") or "auto"
    cfg.families = FAMILY_CHOICES[getattr(args, "family", "all") or "all"]
    cfg.transports = TRANSPORT_CHOICES[getattr(args, "kind", "all") or "all"]
    cfg.expand_owners = bool(getattr(args, "expand_owners", False))
    cfg.strict_processes = bool(getattr(args, "strict_procs", False))
    timeout = getattr(args, "timeout", None)
    if timeout is not None:
        cfg.query_timeout = timeout if timeout > 0 else None
    cfg.presets = load_presets(getattr(args, "presets", None))
    if cfg.strict_processes:
        print("[*] process table failures are fatal", file=sys.stderr)
    return cfg
