"""Admission control for recommendations of a target book.

The guard decides locally, without any request, whether a candidate may join
the current selection. The quota itself is only ever replaced by a value the
server has just confirmed; nothing here increments or decrements it.
"""
import logging
from enum import Enum
from typing import Awaitable, Callable, Iterable, Iterator, List, Optional

from .errors import TransportError
from .models import (
    CONNECTION_ERROR,
    AdmitReason,
    AdmitResult,
    Book,
    RecommendationQuota,
    RecommendationResponse,
)

logger = logging.getLogger(__name__)

FetchPermission = Callable[[], Awaitable[RecommendationResponse]]


class QuotaState(str, Enum):
    UNCHECKED = "unchecked"
    CHECKING = "checking"
    READY = "ready"
    LOCKED = "locked"


class RecommendationSelection:
    """Ordered set of distinct candidate books picked for one target book."""

    def __init__(self, target: Book, books: Iterable[Book] = ()):
        self.target = target
        self._books: List[Book] = []
        for book in books:
            self.add(book)

    def __len__(self) -> int:
        return len(self._books)

    def __iter__(self) -> Iterator[Book]:
        return iter(self._books)

    def __bool__(self) -> bool:
        return bool(self._books)

    def contains(self, isbn: str) -> bool:
        return any(b.isbn == isbn for b in self._books)

    @property
    def books(self) -> List[Book]:
        return list(self._books)

    def add(self, book: Book) -> bool:
        if self.contains(book.isbn):
            return False
        self._books.append(book)
        return True

    def remove(self, isbn: str) -> bool:
        for book in self._books:
            if book.isbn == isbn:
                self._books.remove(book)
                return True
        return False

    def clear(self):
        self._books.clear()


def remaining_slots(quota: RecommendationQuota) -> int:
    return quota.remaining_slots


def can_admit(quota: RecommendationQuota, selection_size_after_add: int) -> bool:
    return quota.can_recommend and selection_size_after_add <= remaining_slots(quota)


def validate_selection_attempt(
    quota: RecommendationQuota,
    selection: RecommendationSelection,
    candidate: Book,
    target_book: Book,
    existing_recommendations: Iterable[str],
) -> AdmitResult:
    """Decide whether ``candidate`` may be added; ``existing_recommendations`` holds candidate ISBNs."""
    if candidate.isbn == target_book.isbn:
        return AdmitResult(
            admitted=False,
            reason=AdmitReason.TARGET_BOOK,
            message="You cannot recommend the same book",
        )
    if candidate.isbn in set(existing_recommendations):
        return AdmitResult(
            admitted=False,
            reason=AdmitReason.ALREADY_RECOMMENDED,
            message=f"{candidate.label} is already recommended for this book",
        )
    if selection.contains(candidate.isbn):
        return AdmitResult(
            admitted=False,
            reason=AdmitReason.ALREADY_SELECTED,
            message=f"{candidate.label} is already selected",
        )
    if not quota.can_recommend:
        return AdmitResult(admitted=False, reason=AdmitReason.LOCKED, message=quota.permission_message)
    if not can_admit(quota, len(selection) + 1):
        return AdmitResult(
            admitted=False,
            reason=AdmitReason.QUOTA_EXCEEDED,
            message=f"You can select at most {remaining_slots(quota)} books",
        )
    return AdmitResult(admitted=True)


class RecommendationQuotaGuard:
    """Holds the quota and selection for one (user, target book) pair."""

    def __init__(self, target: Book, fetch_permission: FetchPermission):
        self.target = target
        self.selection = RecommendationSelection(target)
        self.existing_recommendations: List[str] = []
        self.state = QuotaState.UNCHECKED
        self.message = ""
        self._quota: Optional[RecommendationQuota] = None
        self._fetch_permission = fetch_permission

    @property
    def quota(self) -> Optional[RecommendationQuota]:
        return self._quota

    @property
    def remaining_slots(self) -> int:
        if self.state is not QuotaState.READY or self._quota is None:
            return 0
        return remaining_slots(self._quota)

    def _replace(self, quota: RecommendationQuota):
        self._quota = quota
        self.message = quota.permission_message
        if quota.can_recommend and quota.remaining_slots > 0:
            self.state = QuotaState.READY
        else:
            self.state = QuotaState.LOCKED
        logger.info(
            "Quota for %s: %d/%d used, state=%s",
            self.target.isbn,
            quota.current_count,
            quota.max_allowed,
            self.state.value,
        )

    async def refresh(self) -> QuotaState:
        """Fetch the authoritative quota and replace the current one wholesale.

        On a rejected or failed fetch the previous quota is left untouched and
        the guard locks, since the real count is unknown.
        """
        self.state = QuotaState.CHECKING
        try:
            response = await self._fetch_permission()
        except TransportError as e:
            logger.warning("Quota fetch for %s failed: %s", self.target.isbn, e)
            self.state = QuotaState.LOCKED
            self.message = CONNECTION_ERROR
            return self.state

        if not response.success:
            logger.info("Quota fetch for %s rejected: %s", self.target.isbn, response.message)
            self.state = QuotaState.LOCKED
            self.message = response.message
            return self.state

        self._replace(response.to_quota())
        return self.state

    def set_existing(self, isbns: Iterable[str]):
        self.existing_recommendations = list(isbns)

    def try_add(self, candidate: Book) -> AdmitResult:
        if self.state is not QuotaState.READY or self._quota is None:
            return AdmitResult(
                admitted=False,
                reason=AdmitReason.LOCKED,
                message=self.message or "Recommendation quota is not available",
            )
        result = validate_selection_attempt(
            self._quota, self.selection, candidate, self.target, self.existing_recommendations
        )
        if result.admitted:
            self.selection.add(candidate)
        else:
            logger.debug("Rejected %s for %s: %s", candidate.isbn, self.target.isbn, result.reason)
        return result

    def remove(self, isbn: str) -> bool:
        return self.selection.remove(isbn)
