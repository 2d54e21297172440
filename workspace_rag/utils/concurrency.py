"""Paced batch runner for bulk indexing jobs.

``run_in_batches`` is the fan-out used by workspace-wide embedding and
summary regeneration: fixed-size batches run concurrently, batches run one
after another with a delay in between so the external model services stay
under their rate limits.  A failure inside a batch is logged and counted,
never allowed to stop the remaining items.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

from workspace_rag.utils.logging import get_logger

_T = TypeVar("_T")
_R = TypeVar("_R")

_logger: structlog.BoundLogger = get_logger(__name__)


@dataclass
class BatchReport:
    """Outcome counters for a :func:`run_in_batches` run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: dict[str, str] = field(default_factory=dict)


async def run_in_batches(
    items: Sequence[_T],
    worker: Callable[[_T], Awaitable[_R]],
    batch_size: int,
    delay_seconds: float = 0.0,
    on_item_done: Callable[[_T, BaseException | None], None] | None = None,
    label: str = "batch_job",
) -> BatchReport:
    """Process *items* in fixed-size concurrent batches with a pause between.

    Parameters
    ----------
    items:
        Work items (usually owner ids).
    worker:
        Async callable applied to each item.
    batch_size:
        Number of items run concurrently per batch.  Values below 1 are
        treated as 1.
    delay_seconds:
        Sleep between consecutive batches.  No sleep follows the last batch.
    on_item_done:
        Optional callback invoked after every item with the exception it
        raised (or ``None``).  Used by the task queue to track progress.
    label:
        Event name prefix for log lines.

    Returns
    -------
    BatchReport
        Success / failure counts, with the failure message per item.
    """
    size = max(1, batch_size)
    report = BatchReport(total=len(items))

    for start in range(0, len(items), size):
        batch = list(items[start : start + size])
        results = await asyncio.gather(
            *(worker(item) for item in batch), return_exceptions=True
        )

        for item, result in zip(batch, results, strict=True):
            error = result if isinstance(result, BaseException) else None
            if error is None:
                report.succeeded += 1
            else:
                report.failed += 1
                report.failures[str(item)] = str(error)
                _logger.warning(f"{label}_item_failed", item=str(item), error=str(error))
            if on_item_done is not None:
                on_item_done(item, error)

        if start + size < len(items) and delay_seconds > 0:
            await asyncio.sleep(delay_seconds)

    _logger.info(
        f"{label}_complete",
        total=report.total,
        succeeded=report.succeeded,
        failed=report.failed,
    )
    return report
