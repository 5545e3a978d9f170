"""Logging helpers shared by the portal client, router and CLI."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any

from loguru import logger

_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
_TRUE_VALUES = {"1", "true", "yes", "on"}


def env_log_level(default: str = "INFO") -> str:
    """Level from ``LOG_LEVEL``; unknown names fall back to ``default``."""
    level = os.getenv("LOG_LEVEL", default).strip().upper()
    return level if level in _LEVELS else default


def add_optional_sinks(log_dir: Path) -> list[int]:
    """Attach the sinks switched on by environment variables.

    ``LOG_DEBUG_FILE`` adds a DEBUG text sink at that path. ``LOG_JSON`` adds a
    serialized sink that only receives the per-attempt search lines, one JSON
    object per line, under ``log_dir``.
    """
    sink_ids = []
    debug_file = os.getenv("LOG_DEBUG_FILE")
    if debug_file:
        sink_ids.append(logger.add(debug_file, level="DEBUG", backtrace=True, diagnose=True))

    if os.getenv("LOG_JSON", "0").strip().lower() in _TRUE_VALUES:
        sink_ids.append(
            logger.add(
                log_dir / "searches_{time}.jsonl",
                level="DEBUG",
                serialize=True,
                filter=lambda record: "strategy" in record["extra"],
            )
        )
    return sink_ids


def log_search(
    *,
    source: str,
    query: Any,
    results_raw: int,
    results_kept: int | None = None,
    duration_ms: float | None = None,
    **context: Any,
) -> None:
    """One line per strategy attempt, bound with structured fields.

    Successful attempts log at INFO; anything else is per-attempt detail and
    logs at DEBUG.

    Args:
        source: strategy key ("roasearch_party", "sdcourt_case_detail", ...).
        query: normalized search term.
        results_raw: rows extracted from the page.
        results_kept: records left after case-number filtering.
        duration_ms: time spent on the attempt.
        context: extra fields (outcome, reason, source_key, ...).
    """
    fields = {"strategy": source, "query": query, "results_raw": results_raw}
    if results_kept is not None:
        fields["results_kept"] = results_kept
    if duration_ms is not None:
        fields["duration_ms"] = round(duration_ms, 1)
    fields.update({k: v for k, v in context.items() if v is not None})

    outcome = str(context.get("outcome", "")).upper()
    level = "INFO" if outcome == "SUCCESS" else "DEBUG"
    summary = f"{source} {outcome or 'done'} query={query!r} raw={results_raw}"
    if results_kept is not None:
        summary += f" kept={results_kept}"
    if duration_ms is not None:
        summary += f" in {duration_ms:.0f}ms"
    logger.bind(**fields).log(level, summary)


class Timer:
    """Context timer; ``elapsed_ms`` is set on exit."""

    def __enter__(self) -> Timer:
        self._start = time.perf_counter()
        self.elapsed_ms = 0.0
        return self

    def __exit__(self, *exc: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000
