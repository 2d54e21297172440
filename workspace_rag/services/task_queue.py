"""Detached background jobs with best-effort status.

Workspace-wide regeneration jobs are too slow to run inside the request
that triggers them.  :meth:`TaskQueue.enqueue` starts the job as an
``asyncio`` task and returns a :class:`~workspace_rag.models.task.TaskHandle`
at once.  The job receives a progress callback; the queue turns each call
into updated counters so :meth:`TaskQueue.status` can report a percentage.

Job failures are logged and recorded on the status; they never reach the
caller that enqueued the job.  There is no cancellation contract.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from workspace_rag.models.content import utc_now
from workspace_rag.models.task import TaskHandle, TaskState, TaskStatus

logger = structlog.get_logger(logger_name=__name__)

ProgressCallback = Callable[[Any, BaseException | None], None]
Job = Callable[[ProgressCallback], Awaitable[Any]]


class TaskQueue:
    """In-process registry of detached jobs.

    Parameters
    ----------
    max_history:
        Finished task statuses kept for :meth:`status`; the oldest are
        forgotten first.
    """

    def __init__(self, max_history: int = 100) -> None:
        self._statuses: OrderedDict[str, TaskStatus] = OrderedDict()
        self._running: dict[str, asyncio.Task[None]] = {}
        self._max_history = max_history

    def enqueue(self, name: str, job: Job, total: int = 0) -> TaskHandle:
        """Start *job* in the background and return immediately.

        Must be called from within a running event loop.
        """
        task_id = str(uuid.uuid4())
        self._statuses[task_id] = TaskStatus(task_id=task_id, name=name, total=total)
        self._running[task_id] = asyncio.create_task(
            self._run(task_id, job), name=f"{name}:{task_id}"
        )
        self._trim_history()
        logger.info("task_enqueued", task_id=task_id, name=name, total=total)
        return TaskHandle(task_id=task_id, name=name, scheduled=total)

    def status(self, task_id: str) -> TaskStatus | None:
        """Snapshot of a task's progress, or ``None`` if unknown or forgotten."""
        return self._statuses.get(task_id)

    def active_tasks(self) -> list[TaskStatus]:
        return [s for s in self._statuses.values() if s.state in (TaskState.PENDING, TaskState.RUNNING)]

    async def wait(self, task_id: str | None = None) -> None:
        """Wait for one task, or for every running task when *task_id* is None."""
        if task_id is not None:
            task = self._running.get(task_id)
            tasks = [task] if task is not None else []
        else:
            tasks = list(self._running.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, task_id: str, job: Job) -> None:
        self._update(task_id, state=TaskState.RUNNING)

        def progress(item: Any, error: BaseException | None) -> None:
            status = self._statuses.get(task_id)
            if status is None:
                return
            if error is None:
                self._update(task_id, completed=status.completed + 1)
            else:
                self._update(task_id, failed=status.failed + 1)

        try:
            await job(progress)
        except Exception as exc:  # noqa: BLE001
            logger.error("task_failed", task_id=task_id, error=str(exc))
            self._update(task_id, state=TaskState.FAILED, error=str(exc), finished_at=utc_now())
        else:
            status = self._statuses.get(task_id)
            self._update(task_id, state=TaskState.COMPLETED, finished_at=utc_now())
            if status is not None:
                logger.info(
                    "task_completed",
                    task_id=task_id,
                    name=status.name,
                    completed=status.completed,
                    failed=status.failed,
                )
        finally:
            self._running.pop(task_id, None)

    def _update(self, task_id: str, **changes: Any) -> None:
        status = self._statuses.get(task_id)
        if status is not None:
            self._statuses[task_id] = status.model_copy(update=changes)

    def _trim_history(self) -> None:
        while len(self._statuses) > self._max_history:
            oldest = next(
                (tid for tid in self._statuses if tid not in self._running),
                None,
            )
            if oldest is None:
                break
            del self._statuses[oldest]
