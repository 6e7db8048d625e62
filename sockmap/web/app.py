from __future__ import annotations
from typing import Callable, List, Optional

from flask import Flask, Response, current_app, jsonify, request

from ..collectors import process_path, terminate_process
from ..config import CFG
from ..errors import EnumerationError, ProcessNotFound, ProcessTableError, QueryError, TerminationFailed
from ..inventory import build_from_cfg
from ..models import ConnectionRecord
from ..query import filter_records, parse_query
from ..render import records_to_json

def _error(status: int, message: str) -> Response:
    resp = jsonify({"error": message})
    resp.status_code = status
    return resp

def create_app(cfg: CFG, build: Optional[Callable[[CFG], List[ConnectionRecord]]] = None) -> Flask:
    app = Flask(__name__)
    build = build or build_from_cfg

    @app.get("/api/connections")
    def api_connections():
        query = request.args.get("q", "")
        preset = request.args.get("preset")
        if preset:
            if preset not in cfg.presets:
                current_app.logger.warning("unknown preset requested: %s", preset)
                return _error(400, f"unknown preset: {preset}")
            query = cfg.presets[preset] if not query else f"({cfg.presets[preset]}) && ({query})"
        try:
            if query.strip():
                parse_query(query)
        except QueryError as e:
            current_app.logger.warning("rejected query %r: %s", query, e)
            return _error(400, f"invalid query: {e}")
        try:
            records = filter_records(build(cfg), query)
        except (EnumerationError, ProcessTableError) as e:
            current_app.logger.error("inventory failed: %s", e)
            return _error(500, str(e))
        current_app.logger.info("inventory served: %d records", len(records))
        return Response(records_to_json(records), mimetype="application/json")

    @app.get("/api/presets")
    def api_presets():
        return jsonify(cfg.presets)

    @app.get("/api/processes/<int:pid>/path")
    def api_process_path(pid: int):
        return jsonify({"pid": pid, "path": process_path(pid)})

    @app.post("/api/processes/<int:pid>/kill")
    def api_kill(pid: int):
        try:
            terminate_process(pid)
        except ProcessNotFound as e:
            current_app.logger.warning("%s", e)
            return _error(404, str(e))
        except TerminationFailed as e:
            current_app.logger.error("%s", e)
            return _error(500, str(e))
        current_app.logger.info("terminated process %d", pid)
        return jsonify({"ok": True, "pid": pid})

    return app
