#!/usr/bin/env python3
"""
Command line entry point for price crawls.

Usage:
    cd backend
    python -m pricewatch.cli products <url> [<url> ...]
    python -m pricewatch.cli products --file urls.txt --start-from 5
    python -m pricewatch.cli category <category_url> --max 50 --output results.json

Ctrl+C requests a cooperative stop; the current product finishes first.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
import uuid
from pathlib import Path
from typing import List

from api.config import settings
from pricewatch.base import BatchResult, Colors, Severity
from pricewatch.manager import ScrapeSessionManager
from pricewatch.session import SessionStore

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {
    Severity.INFO: Colors.cyan,
    Severity.SUCCESS: Colors.green,
    Severity.WARNING: Colors.yellow,
    Severity.ERROR: Colors.red,
}


def print_progress(percent: int, message: str, severity: Severity):
    paint = SEVERITY_COLORS.get(severity, str)
    print(f"{paint(f'[{percent:3d}%]')} {message}", flush=True)


def read_url_file(path: Path) -> List[str]:
    """One URL per line; blank lines and '#' comments are ignored."""
    urls = []
    for line in path.read_text(encoding='utf-8').splitlines():
        line = line.strip()
        if line and not line.startswith('#'):
            urls.append(line)
    return urls


def print_summary(result: BatchResult):
    print(f"\n{'='*60}")
    print(f"Session {result.session_id}")
    print(f"{'='*60}\n")
    for listing in result.listings:
        if listing.is_success:
            print(f"{Colors.green('✓')} {listing.name or listing.id}: "
                  f"{listing.seller_count} sellers, {listing.lowest_price} - {listing.highest_price}")
        else:
            print(f"{Colors.red('✘')} {listing.url}: {listing.error_message}")
    print(f"\nSuccessful: {result.successful}  Errors: {result.errors}  Skipped: {result.skipped}")
    if result.cancelled:
        print(Colors.yellow("Stopped early"))
    if result.blocked:
        print(Colors.red("Category page was blocked"))
    if result.fatal_error:
        print(Colors.red(f"Browser error: {result.fatal_error}"))


async def run(args) -> BatchResult:
    options = settings.scraper_options()
    if args.headless:
        options['headless'] = True
    if args.profile_dir:
        options['profile_dir'] = args.profile_dir

    manager = ScrapeSessionManager(SessionStore(), **options)
    session_id = uuid.uuid4().hex[:12]

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, manager.stop, session_id)
    except NotImplementedError:
        logger.debug("Signal handlers unsupported on this platform; Ctrl+C aborts immediately")

    if args.command == 'category':
        return await manager.run_category(
            args.url, args.max, session_id, print_progress, start_from=args.start_from
        )

    urls = list(args.urls)
    if args.file:
        urls.extend(read_url_file(Path(args.file)))
    return await manager.run_batch(urls, session_id, print_progress, start_from=args.start_from)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Crawl product prices')
    parser.add_argument('--start-from', type=int, default=1, help='1-based index of the first target')
    parser.add_argument('--output', type=str, help='Write results as JSON to this file')
    parser.add_argument('--headless', action='store_true', help='Run the browser without a window')
    parser.add_argument('--profile-dir', type=str, help='Browser profile directory')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    commands = parser.add_subparsers(dest='command', required=True)

    category = commands.add_parser('category', help='Discover and scrape products of a category')
    category.add_argument('url', help='Category page URL')
    category.add_argument('--max', type=int, default=10, help='Maximum products to collect')

    products = commands.add_parser('products', help='Scrape product URLs')
    products.add_argument('urls', nargs='*', help='Product URLs')
    products.add_argument('--file', type=str, help='Text file with one URL per line')
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper()),
        format=settings.log_format,
    )

    if args.command == 'products' and not args.urls and not args.file:
        parser.error('products needs URLs or --file')

    result = asyncio.run(run(args))
    print_summary(result)

    if args.output:
        Path(args.output).write_text(
            json.dumps(result.to_dict(), indent=2, ensure_ascii=False), encoding='utf-8'
        )
        print(f"\nResults written to {args.output}")

    return 0 if not (result.fatal_error or result.blocked) else 1


if __name__ == '__main__':
    sys.exit(main())
