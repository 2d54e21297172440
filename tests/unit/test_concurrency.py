"""Unit tests for workspace_rag.utils.concurrency."""

from __future__ import annotations

import asyncio

import pytest

from workspace_rag.utils.concurrency import run_in_batches


class TestRunInBatches:
    @pytest.mark.asyncio()
    async def test_batch_members_run_together(self) -> None:
        running = 0
        peaks: list[int] = []

        async def _worker(item: int) -> int:
            nonlocal running
            running += 1
            await asyncio.sleep(0.01)
            peaks.append(running)
            running -= 1
            return item

        report = await run_in_batches(list(range(6)), _worker, batch_size=3)

        assert report.succeeded == 6
        # Each batch of three overlaps fully; batches never overlap each other.
        assert max(peaks) == 3

    @pytest.mark.asyncio()
    async def test_failures_are_counted_not_raised(self) -> None:
        seen: list[tuple[str, bool]] = []

        async def _worker(item: str) -> str:
            if item == "b":
                raise RuntimeError("model unavailable")
            return item

        report = await run_in_batches(
            ["a", "b", "c", "d", "e"],
            _worker,
            batch_size=2,
            on_item_done=lambda item, error: seen.append((item, error is None)),
        )

        assert (report.total, report.succeeded, report.failed) == (5, 4, 1)
        assert report.failures == {"b": "model unavailable"}
        assert seen == [("a", True), ("b", False), ("c", True), ("d", True), ("e", True)]

    @pytest.mark.asyncio()
    async def test_batches_run_in_order(self) -> None:
        order: list[int] = []

        async def _worker(item: int) -> None:
            order.append(item)

        await run_in_batches(list(range(5)), _worker, batch_size=0)

        assert order == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio()
    async def test_empty_input(self) -> None:
        async def _worker(item: int) -> None:
            raise AssertionError("never called")

        report = await run_in_batches([], _worker, batch_size=3)
        assert report.total == report.succeeded == report.failed == 0
