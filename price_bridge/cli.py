# cli.py - python -m price_bridge --url <URL1> [URL2 ...] [--render] [--debug]
#             python -m price_bridge --file page.html --base-url <URL>

import argparse
import json
import sys
from pathlib import Path
from typing import Iterable, List, Optional

from .errors import DocumentUnavailable
from .extractor import extract_from_html, lookup_price
from .logging_setup import configure_logging
from .models import ExtractionResult
from .render import shutdown_engine


def parse_args(argv: List[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="price_bridge", description="Extract price and image from product pages")
    p.add_argument("--url", dest="urls", nargs="*", help="Product URLs to look up")
    p.add_argument("--file", type=Path, help="Local HTML file to run the extractor on (no fetch)")
    p.add_argument("--base-url", default="https://example.invalid/", help="Page URL used with --file")
    p.add_argument("--render", action="store_true", help="Force the headless render stage on (default: RENDER_ENABLED)")
    p.add_argument("--fresh", action="store_true", help="Send no-cache headers")
    p.add_argument("--debug", action="store_true", help="Verbose logs, strategies and candidates")
    return p.parse_args(argv)


def _print_debug(result: ExtractionResult) -> None:
    print("  strategies: " + ", ".join(result.strategies))
    for c in result.candidates:
        ctx = f"  [{c.context}]" if c.context else ""
        print(f"  {c.value:>12}  {c.source}{ctx}")


def run_urls(urls: Iterable[str], render: Optional[bool], fresh: bool, debug: bool) -> int:
    failures = 0
    for url in urls:
        if not url:
            continue
        try:
            lookup = lookup_price(url, render=render, fresh=fresh)
            if not lookup.document_found:
                raise DocumentUnavailable(url)
        except DocumentUnavailable as e:
            print(f"{url}\t{e}")
            failures += 1
            continue
        print(f"{url}\t{lookup.price if lookup.price is not None else 'not found'}\t{lookup.image or '-'}")
        if debug:
            _print_debug(lookup.result)
    return failures


def run_file(path: Path, base_url: str, debug: bool) -> int:
    result = extract_from_html(path.read_text(encoding="utf-8", errors="replace"), base_url)
    print(json.dumps({"price": result.price, "image": result.image, "strategies": result.strategies}))
    if debug:
        _print_debug(result)
    return 0 if result.price is not None else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.debug)
    if args.file:
        return run_file(args.file, args.base_url, args.debug)
    if not args.urls:
        print(
            "Usage:\n"
            "  python -m price_bridge --url <URL1> [URL2 ...] [--render] [--debug]\n"
            "  python -m price_bridge --file page.html --base-url <URL>"
        )
        return 2
    try:
        return 1 if run_urls(args.urls, True if args.render else None, args.fresh, args.debug) else 0
    finally:
        shutdown_engine()
