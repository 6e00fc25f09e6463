"""
Pagination Walker — walks a cursor-paginated collection end to end.

Page N+1 is only requested after page N's cursor is known; there is no
parallelism inside one walk. A page that fails after the executor's retries
ends the walk: the items gathered so far are kept and the failure is
recorded on the result instead of being raised.
"""
from __future__ import annotations

import logging
from typing import AsyncIterator, Callable

from lever_export.fetchers.base import Page, Record, Request, WalkResult
from lever_export.fetchers.executor import RequestExecutor

logger = logging.getLogger(__name__)

PageObserver = Callable[[list[Record]], None]


class PaginationWalker:
    """Cursor pagination on top of a RequestExecutor."""

    def __init__(self, executor: RequestExecutor) -> None:
        self._executor = executor

    async def pages(self, request: Request) -> AsyncIterator[Page]:
        """
        Lazily yield each page of ``request``'s collection.

        Finite and not restartable. When a page fails, a final empty Page
        carrying the failure is yielded and iteration stops.
        """
        current = request
        while True:
            result = await self._executor.execute(current)
            if not result.success:
                yield Page(failure=result.failure)
                return

            page = Page.from_payload(result.payload)
            yield page

            if not page.has_next:
                return
            current = request.with_cursor(page.next_cursor)

    async def walk_all(
        self,
        request: Request,
        on_page: PageObserver | None = None,
    ) -> WalkResult:
        """
        Fetch every page and concatenate the items in page order.

        Args:
            request: first-page request (carrying ``limit`` and filters)
            on_page: called synchronously with each page's items as soon
                as that page succeeds

        Returns:
            WalkResult: items + page count + failure (if truncated)
        """
        walk = WalkResult()
        async for page in self.pages(request):
            if page.failure is not None:
                walk.failure = page.failure
                logger.warning(
                    "Pagination of %s stopped after %d page(s): %s",
                    request.path, walk.pages, page.failure,
                )
                break

            walk.pages += 1
            walk.items.extend(page.items)
            if on_page is not None:
                on_page(page.items)

        logger.debug(
            "Walked %s: %d item(s) in %d page(s)",
            request.path, len(walk.items), walk.pages,
        )
        return walk
