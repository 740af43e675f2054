"""
`symfind` command line interface.

Commands
--------
symfind search <query>                        -- search the symbol index
symfind search <query> --type class --limit 10
symfind search <query> --workspace PATH       -- include local workspace files
symfind search <query> --json                 -- machine-readable output
symfind batch <query> [<query> ...]           -- up to 10 searches run concurrently
symfind suggest <query>                       -- "did you mean" / broader / related
symfind scan PATH                             -- list workspace metadata files
symfind scan PATH --stats                     -- file counts per type
symfind patterns "<scenario>"                 -- common methods and dependencies
symfind load FILE [FILE ...]                  -- load JSON / JSONL symbol records
symfind watch PATH                            -- log workspace changes as they happen
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Optional

from tqdm import tqdm

from .config import Config
from .errors import SymbolFinderError

logger = logging.getLogger(__name__)

_LOAD_BATCH_SIZE = 500

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_config(args: argparse.Namespace) -> Config:
    config = Config.load(args.config)
    if args.index:
        config.INDEX_PATH = args.index
    return config


def _service(args: argparse.Namespace):
    from .search.service import SymbolSearchService
    return SymbolSearchService.from_config(_load_config(args))


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


# ---------------------------------------------------------------------------
# Sub-command handlers
# ---------------------------------------------------------------------------

def _cmd_search(args: argparse.Namespace) -> None:
    service = _service(args)
    response = asyncio.run(service.search(
        args.query,
        type=args.type,
        limit=args.limit,
        workspace_path=args.workspace,
        include_workspace=bool(args.workspace),
    ))
    if args.json:
        _print_json(response.to_dict())
    else:
        print(service.render(response))


def _cmd_batch(args: argparse.Namespace) -> None:
    service = _service(args)
    batch = asyncio.run(service.search_batch([
        {
            "query": q,
            "type": args.type,
            "limit": args.limit,
            "workspace_path": args.workspace,
            "include_workspace": bool(args.workspace),
        }
        for q in args.queries
    ]))
    if args.json:
        _print_json(batch.to_dict())
    else:
        print(service.render_batch(batch))


def _cmd_suggest(args: argparse.Namespace) -> None:
    from .search.suggestions import format_suggestions

    service = _service(args)
    suggestions = asyncio.run(service.suggest(args.query))
    if args.json:
        _print_json([s.to_dict() for s in suggestions])
    elif suggestions:
        print(f'Suggestions for "{args.query}":' + format_suggestions(suggestions))
    else:
        print(f'  (no suggestions for: {args.query})')


def _cmd_scan(args: argparse.Namespace) -> None:
    from .workspace.paths import validate_workspace_path
    from .workspace.scanner import WorkspaceScanner

    root = validate_workspace_path(args.path)
    scanner = WorkspaceScanner(schedule_eviction=False)

    if args.stats:
        stats = asyncio.run(scanner.get_workspace_stats(root))
        print(f"\nWorkspace: {root}")
        print("=" * 40)
        for k, v in stats.items():
            print(f"  {k:<15} {v}")
        print()
        return

    files = asyncio.run(scanner.scan_workspace(root))
    if args.type:
        files = [f for f in files if f.type == args.type]
    if not files:
        print(f"  (no metadata files under: {root})")
        return
    for f in files:
        print(f"  {f.type:<8}  {f.name:<40}  {os.path.relpath(f.path, root)}")
    print(f"\n  {len(files)} file(s)")


def _cmd_patterns(args: argparse.Namespace) -> None:
    service = _service(args)
    result = asyncio.run(service.search_patterns(args.scenario, args.workspace))
    if args.json:
        _print_json({
            "scenario": result.scenario,
            "external_patterns": result.external_patterns,
            "workspace_matches": [f.to_dict() for f in result.workspace_matches],
        })
        return

    ext = result.external_patterns
    print(f'\nPatterns for "{result.scenario}"  [{ext.get("total_matches", 0)} matching classes]')
    print("-" * 60)
    for p in ext.get("patterns", []):
        print(f"  {p['pattern_type']:<20} {p['count']:>4}  e.g. {', '.join(p['examples'][:3])}")
    if ext.get("common_methods"):
        print("\n  Common methods:")
        for m in ext["common_methods"]:
            print(f"    {m['name']:<40} {m['frequency']}x")
    if ext.get("common_dependencies"):
        print("\n  Common dependencies:")
        for d in ext["common_dependencies"]:
            print(f"    {d['name']:<40} {d['frequency']}x")
    if result.workspace_matches:
        print("\n  Workspace files:")
        for f in result.workspace_matches:
            print(f"    {f.type:<8}  {f.name}")
    print()


def _cmd_load(args: argparse.Namespace) -> None:
    from .index.sqlite_index import SQLiteSymbolIndex, iter_symbol_records

    config = _load_config(args)
    index = SQLiteSymbolIndex(config.INDEX_PATH, vocabulary_limit=config.VOCABULARY_LIMIT)
    total = 0
    for path in args.files:
        pbar = tqdm(unit="symbol", desc=os.path.basename(path))
        batch = []
        try:
            for symbol in iter_symbol_records(path):
                batch.append(symbol)
                if len(batch) >= _LOAD_BATCH_SIZE:
                    total += index.upsert_symbols(batch)
                    pbar.update(len(batch))
                    batch = []
            if batch:
                total += index.upsert_symbols(batch)
                pbar.update(len(batch))
        except (OSError, ValueError) as exc:
            pbar.close()
            print(f"Failed to load {path}: {exc}", file=sys.stderr)
            sys.exit(1)
        pbar.close()

    print(
        f"\nLoad complete:\n"
        f"  Files:   {len(args.files)}\n"
        f"  Loaded:  {total}\n"
        f"  Indexed: {index.symbol_count()}"
    )


def _cmd_watch(args: argparse.Namespace) -> None:
    from .workspace.paths import validate_workspace_path
    from .workspace.scanner import WorkspaceScanner
    from .workspace.watcher import WorkspaceWatcher

    root = validate_workspace_path(args.path)
    # INFO so that change notifications reach the terminal
    logging.getLogger("symbol_finder").setLevel(logging.INFO)
    print(f"Watching {root} ... (Ctrl+C to stop)")
    watcher = WorkspaceWatcher(WorkspaceScanner(schedule_eviction=False), root)
    try:
        watcher.start()  # blocking
    except KeyboardInterrupt:
        pass
    print("\nWorkspace watcher stopped.")


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    """Build and return the `symfind` argument parser."""
    parser = argparse.ArgumentParser(
        prog="symfind",
        description="Hybrid symbol search with typo, broader and narrower suggestions",
    )
    parser.add_argument("--config", default=None, help="Path to a .symfind.yaml file")
    parser.add_argument("--index", default=None, help="Path to the symbol index database")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="cmd", metavar="COMMAND")
    subparsers.required = True

    # --- search ---
    search_p = subparsers.add_parser("search", help="Search symbols by name")
    search_p.add_argument("query", help="Name or fragment; '*' is a prefix wildcard")
    search_p.add_argument(
        "--type", default="all",
        choices=["all", "class", "table", "method", "field", "enum", "edt"],
        help="Restrict to one symbol kind (default: all)",
    )
    search_p.add_argument("--limit", type=int, default=None, help="Maximum results")
    search_p.add_argument("--workspace", default=None, metavar="PATH",
                          help="Also search metadata files under PATH")
    search_p.add_argument("--json", action="store_true", help="Print JSON")
    search_p.set_defaults(func=_cmd_search)

    # --- batch ---
    batch_p = subparsers.add_parser("batch", help="Run several searches concurrently")
    batch_p.add_argument("queries", nargs="+", metavar="QUERY", help="Up to 10 queries")
    batch_p.add_argument(
        "--type", default="all",
        choices=["all", "class", "table", "method", "field", "enum", "edt"],
        help="Restrict every query to one symbol kind (default: all)",
    )
    batch_p.add_argument("--limit", type=int, default=None, help="Maximum results per query")
    batch_p.add_argument("--workspace", default=None, metavar="PATH",
                         help="Also search metadata files under PATH")
    batch_p.add_argument("--json", action="store_true", help="Print JSON")
    batch_p.set_defaults(func=_cmd_batch)

    # --- suggest ---
    suggest_p = subparsers.add_parser("suggest", help="Suggest alternative queries")
    suggest_p.add_argument("query")
    suggest_p.add_argument("--json", action="store_true", help="Print JSON")
    suggest_p.set_defaults(func=_cmd_suggest)

    # --- scan ---
    scan_p = subparsers.add_parser("scan", help="List metadata files in a workspace")
    scan_p.add_argument("path", help="Workspace root")
    scan_p.add_argument("--stats", action="store_true", help="Only print counts per type")
    scan_p.add_argument("--type", default=None,
                        choices=["class", "table", "form", "enum", "unknown"],
                        help="Only list files of this type")
    scan_p.set_defaults(func=_cmd_scan)

    # --- patterns ---
    patterns_p = subparsers.add_parser("patterns", help="Analyse code patterns for a scenario")
    patterns_p.add_argument("scenario", help='Scenario, e.g. "ledger posting"')
    patterns_p.add_argument("--workspace", default=None, metavar="PATH",
                            help="Also list matching workspace files")
    patterns_p.add_argument("--json", action="store_true", help="Print JSON")
    patterns_p.set_defaults(func=_cmd_patterns)

    # --- load ---
    load_p = subparsers.add_parser("load", help="Load symbol records into the index")
    load_p.add_argument("files", nargs="+", metavar="FILE", help=".json or .jsonl files")
    load_p.set_defaults(func=_cmd_load)

    # --- watch ---
    watch_p = subparsers.add_parser("watch", help="Watch a workspace for changes")
    watch_p.add_argument("path", help="Workspace root")
    watch_p.set_defaults(func=_cmd_watch)

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[list[str]] = None) -> None:
    """
    Main entry point for the `symfind` command.

    Parameters
    ----------
    argv:
        Argument list without the program name.  Defaults to sys.argv if None.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # Configure logging if not already configured
    if not logging.root.handlers:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(levelname)s  %(name)s  %(message)s",
        )
    elif args.verbose:
        logging.getLogger("symbol_finder").setLevel(logging.DEBUG)

    try:
        args.func(args)
    except SymbolFinderError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
