from __future__ import annotations


class SockmapError(Exception):
    pass


class EnumerationError(SockmapError):
    """The socket table could not be read (privilege, missing tool, API failure)."""


class ProcessTableError(SockmapError):
    """The process table as a whole could not be read."""


class ProcessNotFound(SockmapError):
    def __init__(self, pid: int):
        super().__init__(f"process {pid} not found")
        self.pid = pid


class TerminationFailed(SockmapError):
    def __init__(self, pid: int, reason: str):
        super().__init__(f"failed to terminate process {pid}: {reason}")
        self.pid = pid
        self.reason = reason


class QueryError(SockmapError):
    pass
