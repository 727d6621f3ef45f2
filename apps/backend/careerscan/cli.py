"""
Command line entry point.

    careerscan https://example.org/careers --title "backend engineer"
    careerscan --file urls.txt --concurrency 3 --output results.json
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from careerscan.config import get_settings
from careerscan.core.dictionary import load_dictionary
from careerscan.core.net import HTTPClient
from careerscan.crawler.browser import BrowserSession
from careerscan.models import BatchFailure, ScrapeOptions
from careerscan.pipeline import DebugCapturer, StepPipeline

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Extract job postings from career pages')
    parser.add_argument('urls', nargs='*', help='Career page URLs')
    parser.add_argument('--file', help='File with one URL per line')
    parser.add_argument('--title', action='append', default=[], dest='job_titles',
                        help='Job title to score relevance against (repeatable)')
    parser.add_argument('--location', action='append', default=[], dest='locations',
                        help='Location to score relevance against (repeatable)')
    parser.add_argument('--strict', action='store_true', help='Strict relevance matching')
    parser.add_argument('--language', default='en', help='Dictionary language')
    parser.add_argument('--timeout-ms', type=int, default=None, help='Per-URL time budget')
    parser.add_argument('--no-headless', action='store_true', help='Disable browser-based steps')
    parser.add_argument('--force-refresh', action='store_true', help='Ignore cached results')
    parser.add_argument('--concurrency', type=int, default=3, help='Parallel URLs in batch mode')
    parser.add_argument('--rate-limit', type=int, default=None, dest='requests_per_minute',
                        help='Max requests per minute to any one host (0 disables)')
    parser.add_argument('--output', help='Write JSON here instead of stdout')
    return parser


def read_urls(args: argparse.Namespace) -> List[str]:
    urls = list(args.urls)
    if args.file:
        with open(args.file, 'r', encoding='utf-8') as f:
            urls.extend(line.strip() for line in f if line.strip() and not line.startswith('#'))
    return urls


def build_http_client(args: argparse.Namespace, settings) -> HTTPClient:
    """HTTP client from settings, with the command line rate limit taking precedence"""
    requests_per_minute = args.requests_per_minute
    if requests_per_minute is None:
        requests_per_minute = settings.requests_per_minute
    return HTTPClient(
        user_agent=settings.user_agent,
        timeout=settings.http_timeout,
        requests_per_minute=requests_per_minute or None,
    )


async def run(args: argparse.Namespace, urls: List[str]) -> List[dict]:
    settings = get_settings()
    dictionary = load_dictionary(args.language, path=settings.dictionary_path)
    options = ScrapeOptions(
        timeout_ms=args.timeout_ms or settings.timeout_ms,
        force_refresh=args.force_refresh,
        use_headless_fallback=not args.no_headless,
        strict_mode=args.strict,
        language=args.language,
        job_titles=args.job_titles,
        locations=args.locations,
    )
    http_client = build_http_client(args, settings)
    browser = BrowserSession(headless=settings.headless)

    async with StepPipeline(dictionary, http_client=http_client, browser=browser, debug=DebugCapturer()) as pipeline:
        results = await pipeline.scrape_many(urls, options, concurrency=args.concurrency)

    output = []
    for url, result in zip(urls, results):
        if result is None:
            output.append(BatchFailure(url=url, error='no valid result').model_dump())
        else:
            output.append(result.model_dump())
    return output


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    parser = build_parser()
    args = parser.parse_args(argv)
    urls = read_urls(args)
    if not urls:
        parser.error('no URLs given')

    output = asyncio.run(run(args, urls))
    payload = json.dumps(output, indent=2, ensure_ascii=False)
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(payload)
        logger.info(f"Wrote {len(output)} result(s) to {args.output}")
    else:
        print(payload)

    return 0 if any('links' in item for item in output) else 1


if __name__ == '__main__':
    sys.exit(main())
