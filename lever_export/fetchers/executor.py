"""
Request Executor — one GET through the Rate Gate, with classification and retry.

HTTP 行為：
- 所有 request 統一使用 GET，URL = base_url + request.path
- Basic auth：username = API key，password 空字串
- 每次送出前先 RateGate.acquire()

失敗分類與處理：
- 429           → THROTTLED：觸發全域 cooldown，再重試
- 網路/解碼錯誤 / 5xx → TRANSIENT：重試，不觸發 cooldown
- 其他 4xx      → REJECTED：不重試，回傳 payload
- 重試用盡      → EXHAUSTED

重試延遲為二次方成長：第 n 次重試等待 n² × backoff_base 秒。
成功回應不會解除 cooldown；cooldown 只會自然到期。
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from lever_export.core.config import settings
from lever_export.core.enums import FailureKind
from lever_export.fetchers.base import FetchFailure, FetchResult, Request
from lever_export.fetchers.rate_gate import RateGate

logger = logging.getLogger(__name__)

# 暫態錯誤：值得重試的例外類型
_TRANSIENT_ERRORS = (
    httpx.RequestError,  # transport, decoding, redirect loops
    ConnectionError,
    OSError,
)


def backoff_delay(attempt: int, base: float) -> float:
    """Delay before retry ``attempt`` (1-based): ``attempt² × base``."""
    return attempt * attempt * base


def classify_status(status_code: int) -> FailureKind | None:
    """Map an HTTP status to a failure kind (None for success)."""
    if status_code == 429:
        return FailureKind.THROTTLED
    if status_code >= 500:
        return FailureKind.TRANSIENT
    if status_code >= 400:
        return FailureKind.REJECTED
    return None


def _response_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:500]


class RequestExecutor:
    """
    Issues requests against the Lever API.

    The gate is shared with every other executor call in the run; the
    httpx client is created lazily unless one is injected. Credentials
    are attached per request so an injected client needs none.
    """

    def __init__(
        self,
        gate: RateGate,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        retry_count: int | None = None,
        backoff_base: float | None = None,
        cooldown: float | None = None,
        timeout: float | None = None,
        http: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.gate = gate
        self.base_url = (base_url or settings.lever_api_root).rstrip("/")
        self.api_key = settings.lever_api_key if api_key is None else api_key
        self.retry_count = settings.retry_count if retry_count is None else retry_count
        self.backoff_base = (
            settings.backoff_base_seconds if backoff_base is None else backoff_base
        )
        self.cooldown = settings.cooldown_seconds if cooldown is None else cooldown
        self.timeout = timeout or settings.request_timeout
        self._client = http
        self._own_client = http is None
        self._sleep = sleep or asyncio.sleep

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={"Accept": "application/json"},
            )
            self._own_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this executor created it."""
        if self._own_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> RequestExecutor:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def execute(self, request: Request) -> FetchResult:
        """
        Send ``request`` until it succeeds, is rejected, or retries run out.

        Never raises for HTTP or transport problems; the outcome is always
        a FetchResult.
        """
        client = await self._get_client()
        url = f"{self.base_url}{request.path}"
        max_attempts = self.retry_count + 1
        last_failure: FetchFailure | None = None

        for attempt in range(1, max_attempts + 1):
            async with self.gate.acquire():
                logger.debug("GET %s (attempt %d/%d)", request, attempt, max_attempts)
                try:
                    response = await client.get(
                        url,
                        params=list(request.params),
                        auth=httpx.BasicAuth(self.api_key, ""),
                    )
                except _TRANSIENT_ERRORS as e:
                    response = None
                    last_failure = FetchFailure(
                        kind=FailureKind.TRANSIENT,
                        path=str(request),
                        message=f"{type(e).__name__}: {e}",
                        attempts=attempt,
                    )

            if response is not None:
                kind = classify_status(response.status_code)
                if kind is None:
                    try:
                        return FetchResult(payload=response.json())
                    except ValueError as e:
                        return self._rejected(
                            request, response, attempt, f"Invalid JSON response: {e}",
                        )
                if not kind.retryable:
                    return self._rejected(request, response, attempt)

                if kind is FailureKind.THROTTLED:
                    self.gate.trigger_cooldown(self.cooldown)
                last_failure = FetchFailure(
                    kind=kind,
                    path=str(request),
                    status_code=response.status_code,
                    message=f"HTTP {response.status_code}",
                    attempts=attempt,
                )

            if attempt < max_attempts:
                wait = backoff_delay(attempt, self.backoff_base)
                logger.warning(
                    "%s fetching %s (attempt %d/%d, retry in %.1fs): %s",
                    last_failure.kind.value.capitalize(), request,
                    attempt, max_attempts, wait, last_failure.message,
                )
                await self._sleep(wait)

        # 重試全部失敗
        logger.error(
            "Giving up on %s after %d attempts: %s",
            request, max_attempts, last_failure.message if last_failure else "",
        )
        return FetchResult.fail(FetchFailure(
            kind=FailureKind.EXHAUSTED,
            path=str(request),
            status_code=last_failure.status_code if last_failure else None,
            message=(
                f"Failed after {max_attempts} attempts: "
                f"{last_failure.message if last_failure else 'unknown error'}"
            ),
            attempts=max_attempts,
        ))

    def _rejected(
        self,
        request: Request,
        response: httpx.Response,
        attempt: int,
        message: str | None = None,
    ) -> FetchResult:
        payload = _response_payload(response)
        logger.error(
            "Rejected %s: HTTP %d", request, response.status_code,
        )
        return FetchResult.fail(FetchFailure(
            kind=FailureKind.REJECTED,
            path=str(request),
            status_code=response.status_code,
            payload=payload,
            message=message or f"HTTP {response.status_code}",
            attempts=attempt,
        ))

    def __repr__(self) -> str:
        return f"<RequestExecutor {self.base_url} retries={self.retry_count}>"
