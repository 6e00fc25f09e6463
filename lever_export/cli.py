"""
Lever data export — command line entry point.

Walks every opportunity, expands its sub-resources, and writes the ordered
result as JSON.

Usage:
    # 前提：LEVER_API_KEY 已設定（環境變數或 .env）

    lever-export                              # 完整匯出到 data/lever-export.json
    lever-export --output /tmp/export.json    # 指定輸出檔
    lever-export --plan config/fetch_plan.yaml --rps 5
    lever-export --verbose                    # DEBUG log（每個 request）
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from lever_export.core.config import settings
from lever_export.fetchers.executor import RequestExecutor
from lever_export.fetchers.plan import load_fetch_plan
from lever_export.fetchers.rate_gate import RateGate
from lever_export.services.orchestrator import (
    ExtractionError,
    ExtractionResult,
    FetchOrchestrator,
)
from lever_export.services.progress import LoggingProgressReporter, Progress

logger = logging.getLogger("lever_export")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lever-export",
        description="Export all Lever opportunities with their sub-resources.",
    )
    parser.add_argument(
        "--output",
        help="output JSON file (default: {data_dir}/{output_file} from settings)",
    )
    parser.add_argument("--plan", help="fetch plan YAML (default: settings.fetch_plan_path)")
    parser.add_argument("--limit", type=int, help="page size for the top-level collection")
    parser.add_argument("--rps", type=float, help="maximum requests per second")
    parser.add_argument("--verbose", action="store_true", help="log every request")
    return parser


def _configure_logging(verbose: bool) -> None:
    if verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO if settings.app_debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # 進度與摘要一律顯示
    logging.getLogger("lever_export").setLevel(min(level, logging.INFO))
    logging.getLogger("httpx").setLevel(logging.WARNING)


def write_output(result: ExtractionResult, output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        json.dump(result.records, f, indent=2, ensure_ascii=False)


async def run_export(args: argparse.Namespace) -> ExtractionResult:
    plan = load_fetch_plan(args.plan)
    if args.limit:
        plan.collection.limit = args.limit

    gate = RateGate(requests_per_second=args.rps or settings.requests_per_second)
    progress = Progress()
    progress.subscribe(LoggingProgressReporter(every=settings.progress_log_every))

    async with RequestExecutor(gate) as executor:
        orchestrator = FetchOrchestrator(executor, plan, progress=progress)
        return await orchestrator.run()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    if not settings.lever_api_key:
        logger.error("LEVER_API_KEY is not set")
        return 2

    output = Path(args.output) if args.output else Path(settings.data_dir) / settings.output_file

    try:
        result = asyncio.run(run_export(args))
    except ExtractionError as e:
        logger.error("Export aborted: %s", e)
        return 1

    write_output(result, output)
    logger.info("Wrote %s", output)
    logger.info(result.summary())
    for failure in result.failures:
        logger.info("  missing %s", failure)
    return 0


if __name__ == "__main__":
    sys.exit(main())
