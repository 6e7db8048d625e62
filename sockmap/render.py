from __future__ import annotations
from typing import Iterable, List

import orjson

from .models import ConnectionRecord, Endpoint

def endpoint_to_dict(ep: Endpoint) -> dict:
    return {"address": ep.address, "port": ep.port}

def record_to_dict(r: ConnectionRecord) -> dict:
    return {
        "protocol": r.protocol,
        "local": endpoint_to_dict(r.local),
        "remote": endpoint_to_dict(r.remote),
        "state": r.state,
        "pid": r.pid,
        "processName": r.process_name,
    }

def dumps(obj, pretty: bool = False) -> str:
    opts = orjson.OPT_INDENT_2 if pretty else 0
    return orjson.dumps(obj, option=opts).decode()

def records_to_json(records: Iterable[ConnectionRecord], pretty: bool = False) -> str:
    return dumps([record_to_dict(r) for r in records], pretty=pretty)

def _fmt_endpoint(ep: Endpoint, v6: bool) -> str:
    if ep.address is None and ep.port is None:
        return "*:*"
    host = ep.address or ("::" if v6 else "0.0.0.0")
    if ":" in host:
        host = f"[{host}]"
    return f"{host}:{'*' if ep.port is None else ep.port}"

COLUMNS = ("Proto", "Local Address", "Remote Address", "State", "PID", "Process")

def records_to_table(records: Iterable[ConnectionRecord]) -> str:
    rows: List[tuple] = [COLUMNS]
    for r in records:
        v6 = r.protocol.endswith("6")
        rows.append((r.protocol, _fmt_endpoint(r.local, v6), _fmt_endpoint(r.remote, v6),
                     r.state, str(r.pid), r.process_name))
    widths = [max(len(row[i]) for row in rows) for i in range(len(COLUMNS))]
    lines = ["  ".join(cell.ljust(w) for cell, w in zip(row, widths)).rstrip() for row in rows]
    return "\n".join(lines)
