"""
Fetcher base types.

定義 fetch engine 共用的資料型別：
- Request: 一次 GET 呼叫（path + query params），建立後不可變
- FetchResult: RequestExecutor 回傳結果（成功帶 payload，失敗帶 FetchFailure）
- FetchFailure: 失敗分類與細節（THROTTLED / TRANSIENT / REJECTED / EXHAUSTED）
- Page: 一頁分頁資料（items + hasNext + next cursor）
- WalkResult: PaginationWalker 走完整個 collection 的結果

Record / ExpandedRecord 都是單純的 dict[str, Any]，引擎只讀 id 與
fetch plan 指定的 trigger 欄位。
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from lever_export.core.enums import FailureKind

Record = dict[str, Any]

# Lever 分頁 cursor 的 query param 名稱
CURSOR_PARAM = "offset"


@dataclass(frozen=True)
class Request:
    """
    One GET against ``{base_url}{path}``.

    ``params`` is an ordered tuple of pairs so repeated keys
    (``expand=stage&expand=owner``) survive and the object stays hashable.
    Credentials are attached by the executor's client, not stored here.
    """

    path: str
    params: tuple[tuple[str, str], ...] = ()

    @classmethod
    def build(
        cls,
        path: str,
        *,
        expand: list[str] | tuple[str, ...] = (),
        limit: int | None = None,
    ) -> Request:
        """Build a request with repeated ``expand`` params and an optional ``limit``."""
        params: list[tuple[str, str]] = [("expand", e) for e in expand]
        if limit is not None:
            params.append(("limit", str(limit)))
        return cls(path=path, params=tuple(params))

    def with_cursor(self, cursor: str | None) -> Request:
        """Return a copy pointing at the page after ``cursor``."""
        params = tuple(p for p in self.params if p[0] != CURSOR_PARAM)
        if cursor is not None:
            params += ((CURSOR_PARAM, str(cursor)),)
        return replace(self, params=params)

    def __str__(self) -> str:
        if not self.params:
            return self.path
        query = "&".join(f"{k}={v}" for k, v in self.params)
        return f"{self.path}?{query}"


@dataclass
class FetchFailure:
    """
    Why a request produced no data.

    Attributes:
        kind: 失敗分類
        path: 失敗的 request（含 query string）
        status_code: 最後一次回應的 HTTP 狀態碼（網路錯誤時為 None）
        payload: REJECTED 時附上伺服器回傳的內容
        message: 人類可讀的錯誤描述
        attempts: 實際送出的次數
    """

    kind: FailureKind
    path: str
    status_code: int | None = None
    payload: Any = None
    message: str = ""
    attempts: int = 1

    def __str__(self) -> str:
        status = f" HTTP {self.status_code}" if self.status_code else ""
        return f"{self.kind.value}{status} {self.path}: {self.message}"


@dataclass
class FetchResult:
    """
    RequestExecutor 回傳結果。

    成功 (success=True)::
        payload 為解析後的 JSON body。

    失敗 (success=False)::
        failure 描述原因；呼叫端決定要當作空結果還是中止。
    """

    payload: Any = None
    success: bool = True
    failure: FetchFailure | None = None

    @classmethod
    def fail(cls, failure: FetchFailure) -> FetchResult:
        return cls(payload=None, success=False, failure=failure)

    @property
    def data(self) -> Any:
        """The ``data`` envelope field of a Lever response."""
        if isinstance(self.payload, dict):
            return self.payload.get("data")
        return None


@dataclass
class Page:
    """One page of a cursor-paginated collection."""

    items: list[Record] = field(default_factory=list)
    has_next: bool = False
    next_cursor: str | None = None
    failure: FetchFailure | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> Page:
        """Parse a Lever list envelope: ``{data: [...], hasNext, next}``."""
        if not isinstance(payload, dict):
            return cls()
        items = payload.get("data")
        if not isinstance(items, list):
            items = []
        has_next = bool(payload.get("hasNext"))
        next_cursor = payload.get("next")
        # hasNext without a cursor cannot be followed
        if has_next and next_cursor is None:
            has_next = False
        return cls(items=list(items), has_next=has_next, next_cursor=next_cursor)


@dataclass
class WalkResult:
    """Everything one ``walk_all`` call produced, in page order."""

    items: list[Record] = field(default_factory=list)
    pages: int = 0
    failure: FetchFailure | None = None

    @property
    def complete(self) -> bool:
        return self.failure is None
