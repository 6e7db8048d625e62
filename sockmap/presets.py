from __future__ import annotations
import json
import sys
from pathlib import Path
from typing import Dict, Optional

import yaml

from .errors import QueryError
from .query import is_valid_query

PACKAGE_DIR = Path(__file__).parent.resolve()

# Shipped when no presets file is given.
DEFAULT_PRESETS: Dict[str, str] = {
    "listening": "state=LISTEN",
    "established": "state=ESTABLISHED",
    "udp": "proto=udp || proto=udp6",
    "orphans": "pid=0",
}


def parse_presets(data) -> Dict[str, str]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise QueryError("presets file must contain a mapping of name -> query")
    presets: Dict[str, str] = {}
    for name, query in data.items():
        query = str(query)
        if not is_valid_query(query):
            raise QueryError(f"preset {name!r} has an invalid query: {query!r}")
        presets[str(name)] = query
    return presets


def presets_path(path: str) -> Path:
    """Absolute paths win, then the working directory, then the package directory."""
    p = Path(path).expanduser()
    if p.is_absolute():
        return p.resolve()
    if (Path.cwd() / p).exists():
        return (Path.cwd() / p).resolve()
    return (PACKAGE_DIR / p).resolve()


def load_presets(path: Optional[str]) -> Dict[str, str]:
    if not path:
        return dict(DEFAULT_PRESETS)
    p = presets_path(path)
    if not p.exists():
        print(f"[warn] presets not found: {p}", file=sys.stderr)
        return {}
    txt = p.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(txt) if p.suffix in (".yaml", ".yml") else json.loads(txt)
    except (ValueError, yaml.YAMLError) as e:
        raise QueryError(f"cannot parse presets {p}: {e}") from e
    presets = parse_presets(data)
    print(f"[*] presets: {len(presets)} loaded from {p}", file=sys.stderr)
    return presets
