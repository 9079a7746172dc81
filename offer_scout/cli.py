"""Command line entry point.

Usage:
    offer-scout crawl --term "vintage denim" --search <id> [--max-pages N] [--max-items N]
    offer-scout eval --search <id> [--batch-size N] [--strictness high] [--dry-run]
    offer-scout create-search --name "Quiet luxury" --prompt "..." --examples examples.json
    offer-scout run
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import List, Optional

from prometheus_client import start_http_server

from offer_scout.config import settings
from offer_scout.logging_config import setup_logging

logger = logging.getLogger(__name__)


def parse_bool(value: str) -> bool:
    """Parse "true"/"false" style flag values."""
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {value!r}")


def positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return number


def load_example_images(path: str) -> List[str]:
    """Read a JSON array of reference image URLs or file paths."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON array of image references")
    images = [str(item).strip() for item in data if str(item).strip()]
    if not images:
        raise ValueError(f"{path} lists no example images")
    return images


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="offer-scout",
        description="Crawl marketplace offers and judge them against style searches",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    crawl = subparsers.add_parser("crawl", help="Crawl one search term and store the offers")
    crawl.add_argument("--term", "-t", required=True, help="Search term")
    crawl.add_argument("--search", required=True, type=uuid.UUID, help="Search ID the offers belong to")
    crawl.add_argument("--max-pages", type=positive_int, help="Maximum result pages to fetch")
    crawl.add_argument("--max-items", type=positive_int, help="Maximum offers to crawl")
    crawl.add_argument("--headless", type=parse_bool, help="Override the headless setting (true/false)")
    crawl.add_argument("--mode", choices=["auto", "always", "never"], help="Browser usage")

    evaluate = subparsers.add_parser("eval", help="Evaluate a search's offers")
    evaluate.add_argument("--search", required=True, type=uuid.UUID, help="Search ID")
    evaluate.add_argument("--batch-size", type=positive_int, help="Offers per batch")
    evaluate.add_argument("--concurrency", type=positive_int, help="Judgment calls in flight")
    evaluate.add_argument("--min-score", type=float, help="Minimum style score to match")
    evaluate.add_argument("--strictness", choices=["low", "medium", "high"], help="Strictness tier")
    evaluate.add_argument("--offer-id", type=uuid.UUID, help="Evaluate a single offer")
    evaluate.add_argument("--max-offers", type=int, default=0, help="Stop after this many offers (0 = no limit)")
    evaluate.add_argument("--force", action="store_true", help="Re-evaluate offers that already have a verdict")
    evaluate.add_argument("--dry-run", action="store_true", help="Do not write results")

    create = subparsers.add_parser("create-search", help="Create a search")
    create.add_argument("--name", required=True, help="Search name")
    create.add_argument("--prompt", required=True, help="Style prompt")
    create.add_argument("--examples", required=True, help="JSON file with an array of example image URLs or paths")
    create.add_argument("--term", action="append", dest="terms", default=[], help="Search term (repeatable)")

    subparsers.add_parser("run", help="Run the scrape and match loops forever")
    return parser


async def run_crawl(args: argparse.Namespace) -> None:
    from offer_scout.ingest.browser import BrowserManager
    from offer_scout.worker.tasks import TaskRunner

    runner = TaskRunner(browser=BrowserManager(headless=args.headless))
    try:
        logger.info(f"Starting search crawl for {args.term!r}")
        summary = await runner.crawl_term(
            args.search,
            args.term,
            max_pages=args.max_pages,
            max_items=args.max_items,
            mode=args.mode,
        )
    finally:
        await runner.close()

    print(
        f"discovered={summary.discovered} processed={summary.processed} "
        f"inserted={summary.inserted} updated={summary.updated} errors={summary.errors}"
    )


async def run_eval(args: argparse.Namespace) -> None:
    from offer_scout.ai.judgment_client import JudgmentClient
    from offer_scout.worker.evaluation_worker import EvaluationOptions, EvaluationWorker

    options = EvaluationOptions.from_settings(
        args.search,
        batch_size=args.batch_size,
        concurrency=args.concurrency,
        min_score=args.min_score,
        strictness=args.strictness,
        offer_id=args.offer_id,
        max_offers=args.max_offers if args.max_offers > 0 else None,
        force=args.force,
        dry_run=args.dry_run,
    )
    worker = EvaluationWorker(JudgmentClient())
    summary = await worker.run(options)
    print(
        f"processed={summary.processed} matched={summary.matched} "
        f"failed={summary.failed} skipped={summary.skipped}"
    )


async def run_create_search(args: argparse.Namespace) -> None:
    from offer_scout.db.searches import create_search
    from offer_scout.db.session import AsyncSessionLocal

    example_images = load_example_images(args.examples)
    async with AsyncSessionLocal() as db:
        search = await create_search(
            db,
            title=args.name,
            search_prompt=args.prompt,
            example_images=example_images,
            search_terms=args.terms,
        )
    logger.info(f"Created search {search.id}")
    print(search.id)


async def run_loops(args: argparse.Namespace) -> None:
    from offer_scout.ai.judgment_client import JudgmentClient
    from offer_scout.worker.tasks import TaskRunner

    if settings.metrics_port:
        start_http_server(settings.metrics_port)
        logger.info(f"Metrics exposed on port {settings.metrics_port}")

    runner = TaskRunner(judgment_client=JudgmentClient())
    try:
        await runner.run_forever()
    finally:
        await runner.close()


COMMANDS = {
    "crawl": run_crawl,
    "eval": run_eval,
    "create-search": run_create_search,
    "run": run_loops,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        asyncio.run(COMMANDS[args.command](args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except Exception as e:
        logger.exception(f"{args.command} failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
