"""
Record Expander — attaches every sub-resource to one top-level record.

展開流程：
1. fetch plan 決定此 record 要觸發哪些 sub-resource（依 trigger 與佔位符）
2. 所有 sub-fetch 同時啟動，各自經過同一個 RateGate
3. 全部 settle 後才組成 ExpandedRecord（唯一寫入者，之後不再修改）

失敗處理：
- paginated 失敗 → 保留失敗前已取得的 items（第一頁就失敗則為 []）
- singleton 失敗 → None
- as_list singleton 失敗 → 保留原本第一筆 application（單元素 list）
- 2xx 但沒有 data envelope → 視同 REJECTED，套用上述 fallback
每個失敗都以 SubFetchFailure 回報，不會讓整個 expansion 失敗。
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from lever_export.core.enums import FailureKind, SubResourceKind
from lever_export.fetchers.base import FetchFailure, Record
from lever_export.fetchers.executor import RequestExecutor
from lever_export.fetchers.pagination import PaginationWalker
from lever_export.fetchers.plan import FetchPlan, SubResourcePlan

logger = logging.getLogger(__name__)


@dataclass
class SubFetchFailure:
    """A sub-resource that could not be (fully) fetched for one record."""

    record_id: Any
    field: str
    failure: FetchFailure

    def __str__(self) -> str:
        return f"{self.record_id}.{self.field}: {self.failure}"


@dataclass
class ExpansionResult:
    record: Record
    failures: list[SubFetchFailure] = field(default_factory=list)


@dataclass
class _Outcome:
    value: Any
    failure: FetchFailure | None = None


class RecordExpander:
    """Runs one record's sub-fetches concurrently and merges the results."""

    def __init__(
        self,
        executor: RequestExecutor,
        plan: FetchPlan,
        walker: PaginationWalker | None = None,
    ) -> None:
        self._executor = executor
        self._walker = walker or PaginationWalker(executor)
        self.plan = plan

    async def expand(self, record: Record) -> ExpansionResult:
        """
        Build the ExpandedRecord for ``record``.

        Paginated sub-resources that do not apply still get an empty list,
        so every expanded record carries the same collection fields.
        """
        applicable = self.plan.applicable(record)
        outcomes = await asyncio.gather(
            *[self._fetch(sub, record) for sub in applicable],
        )

        expanded: Record = dict(record)
        for sub in self.plan.sub_resources:
            if sub.kind is SubResourceKind.PAGINATED:
                expanded.setdefault(sub.field_name, [])

        result = ExpansionResult(record=expanded)
        for sub, outcome in zip(applicable, outcomes):
            if outcome.failure is not None:
                result.failures.append(SubFetchFailure(
                    record_id=record.get("id"),
                    field=sub.field_name,
                    failure=outcome.failure,
                ))
                logger.warning(
                    "Missing %s for record %s: %s",
                    sub.field_name, record.get("id"), outcome.failure,
                )
            expanded[sub.field_name] = outcome.value
        return result

    async def _fetch(self, sub: SubResourcePlan, record: Record) -> _Outcome:
        request = sub.request_for(record)

        if sub.kind is SubResourceKind.PAGINATED:
            walk = await self._walker.walk_all(request)
            return _Outcome(value=walk.items, failure=walk.failure)

        result = await self._executor.execute(request)
        if not result.success:
            return _Outcome(value=self._fallback(sub, record), failure=result.failure)
        if result.data is None:
            # 2xx 但沒有 data envelope
            return _Outcome(
                value=self._fallback(sub, record),
                failure=FetchFailure(
                    kind=FailureKind.REJECTED,
                    path=str(request),
                    payload=result.payload,
                    message="Response has no data",
                ),
            )
        if sub.as_list:
            return _Outcome(value=[result.data])
        return _Outcome(value=result.data)

    @staticmethod
    def _fallback(sub: SubResourcePlan, record: Record) -> Any:
        if sub.as_list:
            original = record.get(sub.field_name) or []
            return list(original[:1])
        return None
