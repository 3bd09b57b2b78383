# log_prioritization/__main__.py

import argparse
import asyncio
import json
import logging
import sys
from datetime import date, datetime, timedelta

from log_prioritization.app.clients import AnalysisClient
from log_prioritization.app.config import Settings, get_settings
from log_prioritization.app.orchestrator import DailyAnalysisPipeline
from log_prioritization.app.scheduler import AsyncioRescheduler, DailyScheduler
from log_prioritization.data import JsonEventStore, compute_statistics
from log_prioritization.models.base import as_utc, utcnow

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="log_prioritization",
        description="Daily AI prioritization of application error logs",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Analyze yesterday's unanalyzed logs once")
    run.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Pretend today is this date (YYYY-MM-DD); analyzes the day before",
    )

    sub.add_parser("serve", help="Run the analysis every day at DAILY_ANALYSIS_TIME")

    stats = sub.add_parser("stats", help="Print statistics for recent logs as JSON")
    stats.add_argument("--days", type=int, default=30)

    return parser.parse_args(argv)


async def _run_once(settings: Settings, as_of: datetime | None) -> int:
    store = JsonEventStore(settings.logs_path)
    async with AnalysisClient(store, settings=settings) as client:
        pipeline = DailyAnalysisPipeline(store, client)
        report = await pipeline.run(as_of)
    logger.info(
        "Run finished: state=%s analyzed=%d/%d",
        report.state.value,
        report.newly_analyzed,
        report.unanalyzed_events,
    )
    return 0


async def _serve(settings: Settings) -> int:
    if not settings.enable_scheduled_analysis:
        logger.error("Scheduled analysis is disabled (ENABLE_SCHEDULED_ANALYSIS=false)")
        return 1

    store = JsonEventStore(settings.logs_path)
    rescheduler = AsyncioRescheduler()
    async with AnalysisClient(store, settings=settings) as client:
        pipeline = DailyAnalysisPipeline(
            store,
            client,
            rescheduler=rescheduler,
            retry_delay=timedelta(minutes=settings.retry_interval_minutes),
        )
        scheduler = DailyScheduler(pipeline.run, settings.run_at, settings.tz)
        try:
            await scheduler.run_forever()
        finally:
            rescheduler.cancel_all()
    return 0


def _stats(settings: Settings, days: int) -> int:
    store = JsonEventStore(settings.logs_path)
    now = utcnow()
    stats = compute_statistics(store, now - timedelta(days=days), now, now=now)
    print(json.dumps(stats.to_json_dict(), indent=2))
    return 0


def main(argv=None) -> int:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )
    args = parse_args(argv)

    try:
        if args.command == "run":
            as_of = None
            if args.as_of:
                as_of = as_utc(datetime.combine(args.as_of, datetime.min.time()))
            return asyncio.run(_run_once(settings, as_of))
        if args.command == "serve":
            return asyncio.run(_serve(settings))
        return _stats(settings, args.days)
    except KeyboardInterrupt:
        logger.info("Exiting.")
        return 130
    except Exception as e:
        logger.error("Command %s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
