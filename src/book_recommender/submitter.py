"""Concurrent submission of a recommendation selection."""
import asyncio
import logging
from typing import Awaitable, Callable, List

from .models import (
    CONNECTION_ERROR,
    BatchOutcome,
    Book,
    FailureKind,
    ItemFailure,
    ItemResult,
)
from .quota import RecommendationQuotaGuard, RecommendationSelection

logger = logging.getLogger(__name__)

SubmitOne = Callable[[str, str], Awaitable[ItemResult]]


class BatchRecommendationSubmitter:
    """Fires one request per selected book, waits for all, then re-syncs the quota.

    Callers must not start a second batch for the same target book before the
    previous ``submit`` has returned; overlapping batches are not fenced here.
    """

    def __init__(self, guard: RecommendationQuotaGuard):
        self.guard = guard

    async def submit(self, selection: RecommendationSelection, submit_one: SubmitOne) -> BatchOutcome:
        books: List[Book] = selection.books
        if not books:
            raise ValueError("Select at least one book to recommend")

        target_isbn = selection.target.isbn
        logger.info("Submitting %d recommendations for %s", len(books), target_isbn)

        tasks: List[asyncio.Future] = []
        try:
            for book in books:
                tasks.append(asyncio.ensure_future(submit_one(target_isbn, book.isbn)))
            results = await asyncio.gather(*tasks, return_exceptions=True)
            outcome = self._reduce(target_isbn, books, results)
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            # the quota is re-read once per batch, however the batch ended
            await self.guard.refresh()
        return outcome

    @staticmethod
    def _reduce(target_isbn: str, books: List[Book], results: List[object]) -> BatchOutcome:
        outcome = BatchOutcome(total=len(books))
        for book, result in zip(books, results):
            if isinstance(result, Exception):
                logger.warning("Recommendation %s -> %s failed: %r", target_isbn, book.isbn, result)
                outcome.failures.append(ItemFailure(book=book, reason=CONNECTION_ERROR, kind=FailureKind.TRANSPORT))
            elif isinstance(result, BaseException):
                raise result
            elif result.success:
                outcome.succeeded.append(book)
            else:
                outcome.failures.append(ItemFailure(book=book, reason=result.message, kind=FailureKind.DOMAIN))

        logger.info(
            "Batch for %s finished: %s (%d/%d)",
            target_isbn,
            outcome.status.value,
            outcome.success_count,
            outcome.total,
        )
        return outcome
