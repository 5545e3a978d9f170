"""
Command-line entry point for caseindex.
Commands:
  search   <query> [--kind caseNumber|name]: search cases
  details  <case_number>: full record for one case
  refresh  <case_number> [...]: refresh tracked cases
  status: rate-limit budgets and integration status
  calendar --start-date --end-date: court calendar events
"""
import argparse
import asyncio
import json
import logging
import sys
from datetime import date, timedelta
from typing import Any

from loguru import logger

from caseindex.config import EngineSettings
from caseindex.errors import CaseLookupFailed, ConfigurationError
from caseindex.models import QueryKind
from caseindex.services.court_data_service import CourtDataService
from caseindex.utils.logging_config import configure_logger


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(level: str | None = None) -> None:
    configure_logger(level=level)
    # Route httpx/httpcore logging through loguru
    logging.basicConfig(handlers=[InterceptHandler()], level=logging.WARNING, force=True)
    for logger_name in ["httpx", "httpcore", "asyncio"]:
        logging.getLogger(logger_name).handlers = [InterceptHandler()]
        logging.getLogger(logger_name).propagate = False


def emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def handle_search(service: CourtDataService, query: str, kind: str) -> int:
    records = await service.search_cases(query, QueryKind(kind))
    if not records:
        logger.info(f"No matching case for {query!r}")
    emit([r.to_api_dict() for r in records])
    return 0


async def handle_details(service: CourtDataService, case_number: str) -> int:
    record = await service.get_case_details(case_number)
    if record is None:
        logger.info(f"No matching case for {case_number!r}")
        emit(None)
    else:
        emit(record.to_api_dict())
    return 0


async def handle_refresh(service: CourtDataService, case_numbers: list[str]) -> int:
    result = await service.update_tracked_cases(case_numbers)
    emit(
        {
            "updated": {k: v.to_api_dict() for k, v in result.updated.items()},
            "failures": result.failures,
        }
    )
    return 0 if result.ok else 1


async def handle_calendar(service: CourtDataService, start: date, end: date) -> int:
    events = await service.get_calendar_events(start, end)
    emit([e.model_dump(mode="json", by_alias=True) for e in events])
    return 0


async def run(args: argparse.Namespace, settings: EngineSettings) -> int:
    async with CourtDataService(settings=settings) as service:
        if args.command == "search":
            return await handle_search(service, args.query, args.kind)
        if args.command == "details":
            return await handle_details(service, args.case_number)
        if args.command == "refresh":
            return await handle_refresh(service, args.case_numbers)
        if args.command == "calendar":
            return await handle_calendar(service, args.start_date, args.end_date)
        emit(service.integration_status())
        return 0


def main():
    parser = argparse.ArgumentParser(description="caseindex court records client")
    parser.add_argument("--log-level", type=str, default=None,
                        help="Log level (default LOG_LEVEL env var or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Search by case number or party name")
    search.add_argument("query")
    search.add_argument("--kind", choices=[k.value for k in QueryKind], default=QueryKind.NAME.value)

    details = sub.add_parser("details", help="Full record for one case number")
    details.add_argument("case_number")

    refresh = sub.add_parser("refresh", help="Refresh tracked case numbers")
    refresh.add_argument("case_numbers", nargs="+")

    sub.add_parser("status", help="Rate-limit budgets and integration status")

    calendar = sub.add_parser("calendar", help="Court calendar events in a date range")
    calendar.add_argument("--start-date", type=date.fromisoformat, default=date.today(),
                          help="Start date (YYYY-MM-DD). Defaults to today.")
    calendar.add_argument("--end-date", type=date.fromisoformat, default=None,
                          help="End date (YYYY-MM-DD). Defaults to 7 days after start.")

    args = parser.parse_args()
    if args.command == "calendar" and args.end_date is None:
        args.end_date = args.start_date + timedelta(days=7)

    setup_logging(args.log_level)

    try:
        settings = EngineSettings.from_env()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    try:
        code = asyncio.run(run(args, settings))
    except CaseLookupFailed as e:
        logger.error(str(e))
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
