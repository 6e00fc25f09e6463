"""
Fetch Orchestrator — drives one whole extraction run.

採集流程：
1. PaginationWalker 走訪 top-level collection
   - 每頁到達時 on_page 增加 Progress.total_expected
   - 同時為該頁每筆 record 建立一個 expansion task（不等整個 collection 走完）
2. 每個 expansion 完成時 Progress.completed + 1
3. 全部 expansion settle 後依「發現順序」輸出（以 index 存放，不依完成順序）

並行控制：
- RateGate 是唯一真正的節流點
- max_in_flight > 0 時以 Semaphore 限制同時展開的 record 數（只為了控制記憶體）

唯一的 run-fatal 狀況：top-level 分頁被 REJECTED（例如 401/403），此時取消所有
已建立的 expansion task 並拋出 ExtractionError。
"""
from __future__ import annotations

import asyncio
import logging
import time as _time
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any

from lever_export.core.config import settings
from lever_export.core.enums import FailureKind
from lever_export.fetchers.base import FetchFailure, Record, Request
from lever_export.fetchers.executor import RequestExecutor
from lever_export.fetchers.pagination import PaginationWalker
from lever_export.fetchers.plan import FetchPlan
from lever_export.services.expander import (
    ExpansionResult,
    RecordExpander,
    SubFetchFailure,
)
from lever_export.services.progress import Progress, ProgressSnapshot

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """The top-level collection could not be paged at all."""

    def __init__(self, failure: FetchFailure) -> None:
        super().__init__(f"Top-level collection rejected: {failure}")
        self.failure = failure


@dataclass
class ExtractionResult:
    """Ordered expanded records plus everything that went missing."""

    records: list[Record] = field(default_factory=list)
    failures: list[SubFetchFailure] = field(default_factory=list)
    top_level_failure: FetchFailure | None = None
    progress: ProgressSnapshot = field(
        default_factory=lambda: ProgressSnapshot(total=0, completed=0),
    )
    elapsed: float = 0.0

    @property
    def complete(self) -> bool:
        return not self.failures and self.top_level_failure is None

    @property
    def missing_count(self) -> int:
        return len(self.failures)

    def failed_record_ids(self) -> list[Any]:
        seen: dict[Any, None] = {}
        for f in self.failures:
            seen.setdefault(f.record_id, None)
        return list(seen)

    def summary(self) -> str:
        text = f"{len(self.records)} record(s) exported"
        if self.complete:
            return f"{text}: complete"
        parts = []
        if self.failures:
            parts.append(f"{self.missing_count} missing sub-resource(s)")
        if self.top_level_failure is not None:
            parts.append("top-level collection truncated")
        return f"{text}: complete with {', '.join(parts)}"


class FetchOrchestrator:
    """
    Top-level driver: walk → expand every record → ordered output.

    Usage::

        gate = RateGate(requests_per_second=settings.requests_per_second)
        async with RequestExecutor(gate) as executor:
            orchestrator = FetchOrchestrator(executor, load_fetch_plan())
            result = await orchestrator.run()
    """

    def __init__(
        self,
        executor: RequestExecutor,
        plan: FetchPlan,
        *,
        progress: Progress | None = None,
        max_in_flight: int | None = None,
        expander: RecordExpander | None = None,
    ) -> None:
        self._executor = executor
        self._walker = PaginationWalker(executor)
        self.plan = plan
        self.expander = expander or RecordExpander(executor, plan, walker=self._walker)
        self.progress = progress or Progress()
        self.max_in_flight = (
            settings.max_in_flight_expansions if max_in_flight is None else max_in_flight
        )

    async def run(self, top_level: Request | None = None) -> ExtractionResult:
        """
        Extract the whole collection.

        Args:
            top_level: first-page request with filters; defaults to the
                plan's collection request

        Raises:
            ExtractionError: when a top-level page is rejected
        """
        t0 = _time.monotonic()
        request = top_level or self.plan.top_level_request()
        sem = asyncio.Semaphore(self.max_in_flight) if self.max_in_flight > 0 else None

        slots: list[Record | None] = []
        tasks: list[asyncio.Task[ExpansionResult]] = []

        async def _expand_at(index: int, record: Record) -> ExpansionResult:
            async with AsyncExitStack() as stack:
                if sem is not None:
                    await stack.enter_async_context(sem)
                expansion = await self.expander.expand(record)
            slots[index] = expansion.record
            self.progress.add_completed(1)
            return expansion

        def _on_page(items: list[Record]) -> None:
            self.progress.add_total(len(items))
            for record in items:
                index = len(slots)
                slots.append(None)
                tasks.append(asyncio.create_task(
                    _expand_at(index, record),
                    name=f"expand-{record.get('id', index)}",
                ))

        logger.info("Starting extraction of %s", request)
        try:
            walk = await self._walker.walk_all(request, on_page=_on_page)

            if walk.failure is not None and walk.failure.kind is FailureKind.REJECTED:
                logger.error("Cannot page %s: %s", request.path, walk.failure)
                raise ExtractionError(walk.failure)

            expansions = await asyncio.gather(*tasks)
        except BaseException:
            await _cancel_all(tasks)
            raise

        result = ExtractionResult(
            records=[r for r in slots if r is not None],
            failures=[f for e in expansions for f in e.failures],
            top_level_failure=walk.failure,
            progress=self.progress.snapshot(),
            elapsed=_time.monotonic() - t0,
        )
        logger.info(
            "Extraction finished in %.1fs: %s", result.elapsed, result.summary(),
        )
        return result


async def _cancel_all(tasks: list[asyncio.Task[Any]]) -> None:
    """Cancel unfinished tasks and wait for them to settle."""
    pending = [t for t in tasks if not t.done()]
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
