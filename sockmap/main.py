from __future__ import annotations
import argparse, logging, sys
from .collectors import BACKENDS, process_path, terminate_process
from .config import FAMILY_CHOICES, TRANSPORT_CHOICES, init_cfg_from_args
from .errors import EnumerationError, ProcessNotFound, ProcessTableError, QueryError, TerminationFailed
from .inventory import build_from_cfg
from .query import filter_records, parse_query
from .render import records_to_json, records_to_table

def parse_args(argv=None):
    ap = argparse.ArgumentParser(prog='sockmap', description='Snapshot of TCP/UDP sockets with their owning processes')
    ap.add_argument('--backend', choices=BACKENDS, default='auto', help='socket table source')
    ap.add_argument('--family', choices=sorted(FAMILY_CHOICES), default='all')
    ap.add_argument('--kind', choices=sorted(TRANSPORT_CHOICES), default='all', help='tcp, udp or all')
    ap.add_argument('--format', choices=('table', 'json'), default='table')
    ap.add_argument('--filter', type=str, default='', help='filter expression, e.g. "lport=443 && state=ESTABLISHED"')
    ap.add_argument('--preset', type=str, default=None, help='named filter from the presets file')
    ap.add_argument('--presets', type=str, default=None, help='YAML or JSON file mapping preset names to filters')
    ap.add_argument('--expand-owners', action='store_true', help='one row per owning PID instead of the first one only')
    ap.add_argument('--strict-procs', action='store_true', help='fail when the process table cannot be read')
    ap.add_argument('--timeout', type=float, default=None, help='seconds to wait for the ss backend (0 = no limit)')
    ap.add_argument('--kill', type=int, default=None, metavar='PID', help='terminate a process and exit')
    ap.add_argument('--path', type=int, default=None, metavar='PID', help='print the executable path of a process and exit')
    ap.add_argument('--serve', action='store_true', help='serve the JSON API instead of printing')
    ap.add_argument('--host', type=str, default='127.0.0.1')
    ap.add_argument('--port', type=int, default=8765)
    return ap.parse_args(argv)

def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

    if args.kill is not None:
        try:
            terminate_process(args.kill)
        except (ProcessNotFound, TerminationFailed) as e:
            print(f"[error] {e}", file=sys.stderr)
            return 1
        print(f"[*] terminated {args.kill}")
        return 0
    if args.path is not None:
        print(process_path(args.path))
        return 0

    try:
        cfg = init_cfg_from_args(args)
    except QueryError as e:
        print(f"[error] {e}", file=sys.stderr)
        return 2

    if args.serve:
        from .web import create_app
        app = create_app(cfg)
        print(f"[*] Serving on http://{args.host}:{args.port}/api/connections")
        app.run(host=args.host, port=args.port, debug=False, use_reloader=False)
        return 0

    query = args.filter
    if args.preset:
        if args.preset not in cfg.presets:
            print(f"[error] unknown preset: {args.preset}", file=sys.stderr)
            return 2
        query = f"({cfg.presets[args.preset]}) && ({query})" if query else cfg.presets[args.preset]

    if query.strip():
        try:
            parse_query(query)
        except QueryError as e:
            print(f"[error] invalid filter: {e}", file=sys.stderr)
            return 2

    try:
        records = filter_records(build_from_cfg(cfg), query)
    except (EnumerationError, ProcessTableError) as e:
        print(f"[error] {e}", file=sys.stderr)
        return 1

    if args.format == 'json':
        print(records_to_json(records, pretty=True))
    else:
        print(records_to_table(records))
    return 0

if __name__ == '__main__':
    sys.exit(main())
