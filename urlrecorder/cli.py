"""Command-line interface for the URL recorder."""

from __future__ import annotations

import argparse
import json
import logging

from . import __version__
from .config import RecorderConfig
from .engine import IngestionCoordinator
from .storage import JsonFileStore


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="urlrecorder",
        description="Record URLs that match your patterns, without duplicates",
    )
    p.add_argument(
        "-D", "--data-dir", default="",
        help="Directory holding state.json (default: per-user data dir)",
    )
    p.add_argument(
        "--base-uri", default=None,
        help="Base URI that relative URLs resolve against; without it they are rejected",
    )
    p.add_argument(
        "--timeout", type=int, default=10,
        help="HTTP request timeout in seconds for scans (default: 10)",
    )
    p.add_argument(
        "--retries", type=int, default=2,
        help="Max retries per scan request (default: 2)",
    )
    p.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable verbose logging",
    )
    p.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )

    sub = p.add_subparsers(dest="command", required=True)

    add = sub.add_parser(
        "add", help="Submit one or more candidate URLs",
        description="Submit candidate URLs. Give absolute URLs with a scheme. "
                    "Anything else, including a bare host such as abc.com, is a "
                    "relative reference: it resolves against --base-uri and is "
                    "reported as unresolvable when no base is given.",
    )
    add.add_argument("urls", nargs="+", help="absolute URL, or relative to --base-uri")

    nav = sub.add_parser("navigate", help="Record a main-frame navigation")
    nav.add_argument("url")

    scan = sub.add_parser("scan", help="Fetch a page and submit the URLs it references")
    scan.add_argument("url")

    pat = sub.add_parser("patterns", help="Replace the regex patterns (none = stop monitoring)")
    pat.add_argument("patterns", nargs="*")

    norm = sub.add_parser("normalize", help="Configure query-parameter normalization")
    toggle = norm.add_mutually_exclusive_group(required=True)
    toggle.add_argument("--enable", action="store_true")
    toggle.add_argument("--disable", action="store_true")
    norm.add_argument(
        "-p", "--param", action="append", default=[],
        help="Query parameter to ignore (can be repeated)",
    )

    dbg = sub.add_parser("debug", help="Toggle persisted debug logging")
    dbg.add_argument("mode", choices=["on", "off"])

    sub.add_parser("list", help="Print recorded URLs, one per line")
    sub.add_parser("state", help="Print the full state as JSON")
    sub.add_parser("clear", help="Remove all recorded URLs")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    config = RecorderConfig(
        data_dir=args.data_dir,
        base_uri=args.base_uri,
        timeout=args.timeout,
        retries=args.retries,
        verbose=args.verbose,
    )
    store = JsonFileStore(config.data_dir, timeout=config.persist_timeout)
    engine = IngestionCoordinator(store, config)
    try:
        return _run(engine, args)
    finally:
        engine.close()


def _run(engine: IngestionCoordinator, args: argparse.Namespace) -> int:
    cmd = args.command
    if cmd in ("add", "scan", "navigate"):
        if cmd == "add":
            results = engine.submit_batch(args.urls)
        elif cmd == "scan":
            results = engine.scan(args.url)
        else:
            result = engine.navigate(args.url)
            results = [result] if result else []
        for r in results:
            status = "recorded" if r.accepted else r.rejected_reason
            print(f"{status:>16}  {r.url}")
        print(f"\nTotal recorded: {engine.count}")
        return 0

    if cmd == "patterns":
        result = engine.set_patterns(args.patterns)
        if result.patterns:
            print(f"Monitoring set for {len(result.patterns)} patterns.")
        else:
            print("Monitoring stopped (no patterns set).")
    elif cmd == "normalize":
        result = engine.set_normalization(args.enable, args.param)
    elif cmd == "debug":
        result = engine.set_debug_mode(args.mode == "on")
    elif cmd == "clear":
        result = engine.clear()
        if result.success:
            print("All recorded URLs cleared.")
    elif cmd == "list":
        for url in engine.get_state().urls:
            print(url)
        return 0
    else:
        print(json.dumps(engine.get_state().to_dict(), ensure_ascii=False, indent=2))
        return 0

    if not result.success:
        print("Failed to save changes.")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
