from __future__ import annotations
from typing import Iterator, Tuple

import psutil

from ..errors import ProcessNotFound, ProcessTableError, TerminationFailed

def collect() -> Iterator[Tuple[int, str]]:
    """Yield (pid, name) for every visible process.

    Processes that exit or deny access while being read are skipped; a
    failure to iterate the table itself raises ProcessTableError.
    """
    try:
        for p in psutil.process_iter(["pid", "name"]):
            info = p.info
            yield int(info["pid"]), info.get("name") or ""
    except (psutil.Error, OSError) as e:
        raise ProcessTableError(f"Failed to read process table: {e}") from e

def terminate_process(pid: int) -> None:
    try:
        psutil.Process(pid).kill()
    except psutil.NoSuchProcess as e:
        raise ProcessNotFound(pid) from e
    except psutil.AccessDenied as e:
        raise TerminationFailed(pid, "access denied") from e
    except (psutil.Error, OSError) as e:
        raise TerminationFailed(pid, str(e) or e.__class__.__name__) from e

def process_path(pid: int) -> str:
    try:
        return psutil.Process(pid).exe() or ""
    except (psutil.Error, OSError):
        return ""
