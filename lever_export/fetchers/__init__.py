"""
Fetchers package.

處理「如何呼叫 Lever API」：節流、重試、分頁。

核心 API:
    - RateGate: 全域 request 節流與 cooldown
    - RequestExecutor: 單次 GET（含分類與重試）
    - PaginationWalker: cursor 分頁走訪
    - FetchPlan / load_fetch_plan(): 要抓哪些 sub-resource
"""
from lever_export.fetchers.base import (
    FetchFailure,
    FetchResult,
    Page,
    Request,
    WalkResult,
)
from lever_export.fetchers.executor import RequestExecutor, backoff_delay
from lever_export.fetchers.pagination import PaginationWalker
from lever_export.fetchers.plan import (
    FetchPlan,
    SubResourcePlan,
    default_fetch_plan,
    load_fetch_plan,
)
from lever_export.fetchers.rate_gate import Permit, RateGate, RateGateState

__all__ = [
    "FetchFailure",
    "FetchPlan",
    "FetchResult",
    "Page",
    "PaginationWalker",
    "Permit",
    "RateGate",
    "RateGateState",
    "Request",
    "RequestExecutor",
    "SubResourcePlan",
    "WalkResult",
    "backoff_delay",
    "default_fetch_plan",
    "load_fetch_plan",
]
