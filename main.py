#!/usr/bin/env python3
"""marketdash - Market Indicator CLI

Fetches the dashboard indicators (yield curve, VIX, quotes) through the
cached, throttled pipeline and prints them.
"""

from __future__ import annotations

# Load environment variables first (FRED_API_KEY, etc.)
import marketdash.env_loader

import argparse
import asyncio
import sys
from typing import List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from marketdash.constants import DISPLAY_NAMES, TIMEFRAME_LIMITS
from marketdash.core.errors import MarketDashError
from marketdash.core.fallback import FetchResult
from marketdash.logging_config import get_logger, setup_logging
from marketdash.pipeline import fred, market
from marketdash.pipeline.market import fetch_market_data, fetch_vix
from marketdash.pipeline.yield_curve import fetch_yield_curve, yield_curve_cache

logger = get_logger(__name__)

console = Console()

STATUS_COLORS = {"normal": "green", "warning": "yellow", "danger": "red", "error": "magenta"}


def print_msg(msg: str, style: str = "info"):
    """Print a message with styling."""
    symbols = {"success": ("✓", "green"), "error": ("✗", "red"), "info": ("ℹ", "blue")}
    sym, color = symbols.get(style, ("ℹ", "blue"))
    console.print(f"[{color}]{sym}[/{color}] {msg}")


def print_header(title: str):
    """Print a section header."""
    console.print(Panel(title, box=box.DOUBLE, style="bold cyan"))


def status_text(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def source_note(result: FetchResult) -> str:
    if result.is_stale:
        return f"[yellow]stale data ({result.error})[/yellow]"
    return f"[dim]source: {result.source}[/dim]"


def parse_args(argv: List[str] = None):
    parser = argparse.ArgumentParser(
        prog="marketdash",
        description="Market indicators with caching, throttling and stale fallback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  marketdash yield-curve --timeframe 1y      10Y-2Y spread, sparkline and inversions
  marketdash vix                             VIX level, status and percentile
  marketdash quote ^GSPC GC=F --stats        Quotes plus cache and queue statistics
        """,
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    parser.add_argument("--stats", action="store_true", help="Print cache and queue statistics")

    sub = parser.add_subparsers(
        dest="module",
        title="commands",
        metavar="COMMAND",
        description="Available commands",
    )

    yc = sub.add_parser("yield-curve", help="10Y-2Y Treasury spread from FRED")
    yc.add_argument(
        "--timeframe",
        default="1m",
        choices=sorted(TIMEFRAME_LIMITS, key=TIMEFRAME_LIMITS.get),
        help="Sparkline timeframe (default: 1m)",
    )
    yc.add_argument("--refresh", action="store_true", help="Bypass the cache")

    vix = sub.add_parser("vix", help="CBOE Volatility Index")
    vix.add_argument("--refresh", action="store_true", help="Bypass the cache")

    quote = sub.add_parser("quote", help="Latest quotes from Yahoo Finance")
    quote.add_argument("symbols", nargs="+", help="Symbols, e.g. ^GSPC ^TNX GC=F")
    quote.add_argument("--refresh", action="store_true", help="Bypass the cache")

    return parser, parser.parse_args(argv)


async def show_yield_curve(timeframe: str, refresh: bool):
    result = await fetch_yield_curve(timeframe, force_refresh=refresh)
    data = result.value

    print_header(f"{data.title}  {data.value}  {status_text(data.status)}")

    table = Table(box=box.SIMPLE)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("10Y yield", f"{data.ten_year_yield:.2%}")
    table.add_row("2Y yield", f"{data.two_year_yield:.2%}")
    table.add_row("Change", f"{data.change * 100:+.2f}pp")
    table.add_row("Latest data", data.latest_data_date or "-")
    if data.last_inversion:
        recession = "yes" if data.last_inversion.followed_by_recession else "no"
        table.add_row(
            "Last inversion",
            f"{data.last_inversion.date} ({data.last_inversion.duration}, recession: {recession})",
        )
    console.print(table)

    spark = Table(title=f"Sparkline ({len(data.sparkline)} points)", box=box.MINIMAL)
    spark.add_column("Date")
    spark.add_column("Spread", justify="right")
    for point in data.sparkline[-10:]:
        spark.add_row(point.date, f"{point.value:.2%}")
    console.print(spark)
    console.print(source_note(result))


async def show_vix(refresh: bool):
    result = await fetch_vix(force_refresh=refresh)
    data = result.value

    print_header(f"VIX  {data.value:.2f}  {status_text(data.status)}")
    table = Table(box=box.SIMPLE)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Previous close", f"{data.previous_close:.2f}" if data.previous_close else "-")
    table.add_row("Change", f"{data.change:+.2f}%" if data.change is not None else "-")
    table.add_row("Historical percentile", f"{data.percentile}" if data.percentile is not None else "-")
    console.print(table)
    console.print(source_note(result))


async def show_quotes(symbols: List[str], refresh: bool):
    results = await asyncio.gather(
        *(fetch_market_data(symbol, force_refresh=refresh) for symbol in symbols),
        return_exceptions=True,
    )

    table = Table(title="Quotes", box=box.ROUNDED)
    table.add_column("Symbol", style="cyan")
    table.add_column("Name")
    table.add_column("Value", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("As of")
    table.add_column("Source")

    for symbol, result in zip(symbols, results):
        if isinstance(result, MarketDashError):
            table.add_row(symbol, DISPLAY_NAMES.get(symbol, ""), "-", "-", "-", f"[red]{result}[/red]")
            continue
        if isinstance(result, BaseException):
            raise result
        quote = result.value
        color = "green" if quote.change >= 0 else "red"
        table.add_row(
            symbol,
            DISPLAY_NAMES.get(symbol, ""),
            f"{quote.value:,.2f}",
            f"[{color}]{quote.change:+.2f}%[/{color}]",
            f"{quote.timestamp:%Y-%m-%d %H:%M}",
            "stale" if result.is_stale else result.source,
        )
    console.print(table)


def show_stats():
    caches = Table(title="Caches", box=box.SIMPLE)
    for column in ("Cache", "Size", "Hits", "Misses", "Stale hits", "Evictions", "Hit rate"):
        caches.add_column(column, justify="right" if column != "Cache" else "left")
    for name, cache in (("yield_curve", yield_curve_cache), ("market", market.market_cache)):
        stats = cache.get_stats()
        caches.add_row(
            name,
            str(stats.size),
            str(stats.hits),
            str(stats.misses),
            str(stats.stale_hits),
            str(stats.evictions),
            f"{stats.hit_rate:.0%}",
        )
    console.print(caches)

    queues = Table(title="Request queues", box=box.SIMPLE)
    for column in ("Queue", "Submitted", "Completed", "Failed", "Retries", "Rate limited", "Interval"):
        queues.add_column(column, justify="right" if column != "Queue" else "left")

    active = []
    if fred._global_client is not None:
        active.append(("fred", fred._global_client.queue))
    if market._yahoo_queue is not None:
        active.append(("yahoo", market._yahoo_queue))

    for name, queue in active:
        stats = queue.get_stats()
        queues.add_row(
            name,
            str(stats.submitted),
            str(stats.completed),
            str(stats.failed),
            str(stats.retries),
            str(stats.rate_limited),
            f"{stats.current_min_interval:g}s",
        )
    console.print(queues)


async def run_command(args) -> None:
    if args.module == "yield-curve":
        await show_yield_curve(args.timeframe, args.refresh)
    elif args.module == "vix":
        await show_vix(args.refresh)
    elif args.module == "quote":
        await show_quotes(args.symbols, args.refresh)

    if args.stats:
        show_stats()


def main(argv: List[str] = None):
    parser, args = parse_args(argv)
    setup_logging(level=args.log_level)

    if not args.module:
        parser.print_help()
        return

    if not marketdash.env_loader.is_environment_loaded():
        logger.debug("No secrets file loaded; relying on process environment")

    try:
        asyncio.run(run_command(args))
    except (MarketDashError, ValueError) as e:
        print_msg(f"Error: {e}", "error")
        logger.debug("Command failed", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        print_msg("Interrupted", "error")
        sys.exit(130)


if __name__ == "__main__":
    main()
