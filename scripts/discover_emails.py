#!/usr/bin/env python3
"""Run one profile discovery from the command line and print the results."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

import finder_config as config
from discovery import DiscoveryOrchestrator
from finder_models import (
    BrowserLaunchError,
    DiscoveryOptions,
    DiscoveryReport,
    InvalidProfileError,
    UnknownSearchEngineError,
)
from results_store import ResultsStore
from search_engines import SEARCH_ENGINES

LOG = logging.getLogger("discover_emails")

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Discover professional email addresses for a profile keyword.",
    )
    parser.add_argument("profile", help="Profile keyword, e.g. designer.")
    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help=f"Maximum results (1-{config.MAX_LIMIT}, default: 10).",
    )
    parser.add_argument(
        "--engine",
        default=config.DEFAULT_SEARCH_ENGINE,
        help=f"Search engine: {', '.join(SEARCH_ENGINES)} (default: {config.DEFAULT_SEARCH_ENGINE}).",
    )
    parser.add_argument("--ai", action="store_true", help="Re-score weak name guesses with OpenAI.")
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Fall back to synthetic demonstration records when nothing is found.",
    )
    parser.add_argument("--save", action="store_true", help="Persist results to the SQLite store.")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Stop after this many seconds and keep what was found.",
    )
    return parser


def render(report: DiscoveryReport) -> None:
    if not report.results:
        console.print(f"[yellow]{report.message}[/yellow]")
        for tip in report.suggestions:
            console.print(f"  • {tip}")
        return

    title = f"{report.count} result(s) for '{report.profile}' via {report.search_engine}"
    if report.synthetic:
        title += " (synthetic)"
    if report.timed_out:
        title += " (partial: timed out)"
    table = Table(title=title)
    table.add_column("Name")
    table.add_column("Email", no_wrap=True)
    table.add_column("Platform")
    table.add_column("Confidence", justify="right")
    table.add_column("Method")
    table.add_column("Source")
    for r in report.results:
        table.add_row(r.name, r.email, r.platform, f"{r.confidence:.2f}", r.method, r.source_url)
    console.print(table)


async def run(args: argparse.Namespace) -> int:
    orchestrator = DiscoveryOrchestrator()
    options = DiscoveryOptions(
        limit=args.limit,
        search_engine=args.engine,
        use_ai=args.ai,
        allow_synthetic=args.demo or config.DEMO_MODE,
        timeout=args.timeout,
    )

    loop = asyncio.get_running_loop()
    task = asyncio.create_task(orchestrator.run(args.profile, options))
    installed: List[int] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handler support.
            pass

    try:
        report = await task
    except asyncio.CancelledError:
        LOG.warning("INTERRUPTED profile=%s", args.profile)
        return 130
    except (InvalidProfileError, UnknownSearchEngineError) as exc:
        LOG.error("%s", exc)
        return 2
    except BrowserLaunchError as exc:
        LOG.error("BROWSER_UNAVAILABLE err=%s", exc)
        return 1
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await orchestrator.shutdown()

    render(report)
    if args.save and report.results:
        saved = ResultsStore(config.RESULTS_DB_PATH).save_many(report.results)
        LOG.info("SAVED inserted=%s of=%s db=%s", len(saved), report.count, config.RESULTS_DB_PATH)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    logging.basicConfig(
        level=config.LOGLEVEL.upper(),
        format="%(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[RichHandler(markup=False, rich_tracebacks=True)],
    )
    raise SystemExit(main())
