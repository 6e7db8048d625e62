from __future__ import annotations
import functools, platform, shutil
from typing import Callable, Optional

from ..models import SocketDescriptor
from .generic import collect as psutil_collect
from .linux import collect as ss_collect
from .windows import collect as windows_collect

BACKENDS = ("auto", "psutil", "ss", "iphlpapi")

def resolve_backend(name: str = "auto") -> str:
    if name not in BACKENDS:
        raise ValueError(f"unknown backend {name!r} (choose from {', '.join(BACKENDS)})")
    if name != "auto":
        return name
    system = platform.system()
    if system == "Windows":
        return "iphlpapi"
    if system == "Linux" and shutil.which("ss"):
        return "ss"
    return "psutil"

def socket_enumerator(name: str = "auto", timeout: Optional[float] = None) -> Callable[..., list[SocketDescriptor]]:
    backend = resolve_backend(name)
    if backend == "iphlpapi":
        return windows_collect
    if backend == "ss":
        return functools.partial(ss_collect, timeout=timeout)
    return psutil_collect
