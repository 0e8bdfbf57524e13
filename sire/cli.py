"""
SIRE Command Line Interface (CLI)
=================================

Batch run (fetches the NOAA archive into ./data on first use):

    python -m sire.cli --charts out/ --report out/storm_report.docx

With a local copy and an interactive shell afterwards:

    python -m sire.cli --data data/StormData.csv.bz2 --interactive

The CLI never modifies the dataset file; every command recomputes the
report from the in-memory records.
"""

from __future__ import annotations
import argparse, os, shlex
from typing import List, Optional

from .config import DEFAULT_CACHE_DIR, DEFAULT_DATASET_URL, AnalysisConfig, parse_since, validate_threshold
from .engine import StormSession, export_csv, export_json
from .loader import fetch_dataset, load_storm_table
from .metrics import get_group
from .models import GroupResult
from .pipeline import compile_where

HELP = """
Commands:
  help
  stats
  health | economic [n]            ranked categories (default: all)
  since <YYYY-MM-DD>               window start (default 1996-01-01)
  threshold <ratio>                significance ratio (default 0.05)
  where "<expr>"                   e.g. where year <= 2005 and event_type contains "flood"
                                   e.g. where event_type in ("hurricane", "tropical storm")
  where                            clear the where-filter
  values [prefix]                  distinct (lowercased) event types
  charts "<dir>"
  report "<path.docx>"
  export csv|json "<path>"
  undo | redo | reset
  quit

where fields: event_type, year, fatalities, injuries, property_damage, crop_damage
"""


def _print_group(result: GroupResult, limit: Optional[int] = None) -> None:
    group = get_group(result.group)
    print(f"{group.title} ({result.records_used} records)")
    for name in group.metric_names():
        entries = result.ranked.get(name, [])
        print(f"  {group.metric(name).label} [{group.unit_label}]")
        if not entries:
            print("    (no significant categories)")
        for e in entries[:limit]:
            mark = "*" if e.is_top3 else " "
            print(f"   {mark}{e.rank:>3}. {e.category:<32} {e.value / group.unit_divisor:>14,.2f}")


def _unquote(s: str) -> str:
    if len(s) >= 2 and s[0] in ('"', "'") and s[-1] == s[0]:
        return s[1:-1]
    return s


def handle(session: StormSession, line: str) -> bool:
    """Handle one shell command. Returns False when the shell should exit."""
    stripped = line.strip()
    if not stripped:
        return True

    # allow where without shell-style quoting
    if stripped.lower() == "where" or stripped.lower().startswith("where "):
        expr = _unquote(stripped[len("where"):].strip())
        session.where(expr)
        print(f"Where-filter {'cleared' if not expr else 'set'}. Settings: {session.config.describe()}")
        return True

    parts = shlex.split(stripped)
    cmd = parts[0].lower()

    if cmd in ("quit", "exit"):
        return False

    if cmd == "help":
        print(HELP)
        return True

    if cmd == "stats":
        report = session.run()
        print(f"Rows loaded: {len(session.dataset)} | unparseable dates: {session.dataset.unparsed_dates}")
        print(f"Settings: {session.config.describe()}")
        for g in report.groups():
            print(f"{g.group}: {g.records_used} records, {len(g.totals)} totals, "
                  f"{len(g.significant)} significant, {len(g.merged)} after merging")
        return True

    if cmd in ("health", "economic"):
        limit = int(parts[1]) if len(parts) >= 2 else None
        report = session.run()
        _print_group(report.health if cmd == "health" else report.economic, limit)
        return True

    if cmd == "since":
        if len(parts) < 2:
            raise ValueError("Usage: since YYYY-MM-DD")
        session.since(parts[1])
        print(f"Window starts {session.config.since.isoformat()}.")
        return True

    if cmd == "threshold":
        if len(parts) < 2:
            raise ValueError("Usage: threshold 0.05")
        session.threshold(float(parts[1]))
        print(f"Threshold set to {session.config.threshold:g}.")
        return True

    if cmd == "reset":
        session.reset()
        print("Settings reset.")
        return True

    if cmd == "undo":
        print("Undone." if session.undo() else "Nothing to undo.")
        return True

    if cmd == "redo":
        print("Redone." if session.redo() else "Nothing to redo.")
        return True

    if cmd == "values":
        prefix = parts[1] if len(parts) >= 2 else ""
        vals = session.event_types(prefix)
        for v in vals[:50]:
            print(v)
        if len(vals) > 50:
            print(f"... ({len(vals)} total, showing 50)")
        return True

    if cmd == "charts":
        from .report import render_charts
        out_dir = parts[1] if len(parts) >= 2 else "."
        for name, path in render_charts(session.run(), out_dir).items():
            print(f"{name}: {path}")
        return True

    if cmd == "report":
        if len(parts) < 2:
            raise ValueError('Usage: report "out.docx"')
        path = _write_docx(session, parts[1])
        print(f"Report written to {path}")
        return True

    if cmd == "export":
        if len(parts) < 3:
            print('Usage: export csv "out.csv"  OR  export json "out.json"')
            return True
        fmt, out_path = parts[1].lower(), parts[2]
        if fmt == "csv":
            export_csv(session.run(), out_path)
        elif fmt == "json":
            export_json(session.run(), out_path)
        else:
            print("Unknown export format. Use: csv or json")
            return True
        print(f"Exported {fmt.upper()} to {out_path}")
        return True

    print("Unknown command. Type 'help'.")
    return True


def _write_docx(session: StormSession, path: str) -> str:
    from .report import DatasetCitation, ReportConfig, generate_docx_report
    cfg = ReportConfig(
        citation=DatasetCitation(file_name=os.path.basename(session.dataset.source)),
        command_log=session.command_log,
    )
    return generate_docx_report(
        session.run(), path,
        dataset=session.dataset,
        scale_caveats=session.scale_code_caveats(),
        config=cfg,
    )


def repl(session: StormSession) -> None:
    print("Type 'help' for commands.")
    while True:
        try:
            line = input("sire> ")
        except EOFError:
            break
        stripped = line.strip()
        if stripped and stripped.split()[0].lower() in ("since", "threshold", "where", "reset", "undo", "redo"):
            session.command_log.append(stripped)
        try:
            if not handle(session, line):
                break
        except Exception as e:
            print(f"Error: {e}")


def _where_expr(text: str) -> str:
    try:
        compile_where(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e
    return text


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="sire", description="Rank NOAA storm event types by health and economic impact.")
    ap.add_argument("--data", help="Local dataset (.csv, .csv.bz2 or .xlsx). Fetched from --url when omitted.")
    ap.add_argument("--url", default=DEFAULT_DATASET_URL, help="Dataset archive URL")
    ap.add_argument("--cache-dir", default=DEFAULT_CACHE_DIR, help="Where the fetched archive is kept")
    ap.add_argument("--since", type=parse_since, default=None, help="Window start, YYYY-MM-DD")
    ap.add_argument("--threshold", type=validate_threshold, default=None, help="Significance ratio, e.g. 0.05")
    ap.add_argument("--where", type=_where_expr, default=None, help="Record filter expression")
    ap.add_argument("--charts", metavar="DIR", help="Write health/economic PNG charts to DIR")
    ap.add_argument("--report", metavar="DOCX", help="Write a DOCX report")
    ap.add_argument("--export-csv", metavar="PATH")
    ap.add_argument("--export-json", metavar="PATH")
    ap.add_argument("--interactive", action="store_true", help="Open the command shell after the batch run")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point: load, run once, write requested outputs, optionally open the shell."""
    args = build_parser().parse_args(argv)

    path = args.data or fetch_dataset(args.url, args.cache_dir)
    print("Loading dataset...")
    dataset = load_storm_table(path)

    cfg = AnalysisConfig()
    changes = {k: v for k, v in (("since", args.since), ("threshold", args.threshold), ("where", args.where)) if v is not None}
    session = StormSession(dataset=dataset, config=cfg.with_changes(**changes))

    report = session.run()
    print(f"Settings: {session.config.describe()}")
    for g in report.groups():
        _print_group(g, limit=10)

    if args.charts:
        handle(session, f"charts {shlex.quote(args.charts)}")
    if args.report:
        handle(session, f"report {shlex.quote(args.report)}")
    if args.export_csv:
        handle(session, f"export csv {shlex.quote(args.export_csv)}")
    if args.export_json:
        handle(session, f"export json {shlex.quote(args.export_json)}")

    if args.interactive:
        repl(session)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
