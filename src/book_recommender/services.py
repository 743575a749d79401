"""Rating and recommendation workflows built on the client and the domain rules."""
import logging

from .client import BookRecommenderClient
from .errors import TransportError
from .models import (
    CONNECTION_ERROR,
    AdmitResult,
    BatchOutcome,
    Book,
    ItemResult,
    RatingOutcome,
    RatingOutcomeKind,
    RatingResponse,
    RatingSubmission,
)
from .quota import QuotaState, RecommendationQuotaGuard
from .ratings import aggregate, breakdown, validate
from .submitter import BatchRecommendationSubmitter

logger = logging.getLogger(__name__)


class RatingService:
    def __init__(self, client: BookRecommenderClient):
        self.client = client

    async def submit(self, submission: RatingSubmission) -> RatingOutcome:
        """Validate locally, then send the rating once."""
        result = validate(submission)
        if not result.valid:
            return RatingOutcome(
                kind=RatingOutcomeKind.INVALID,
                message="; ".join(result.errors),
                errors=result.errors,
            )

        score = aggregate(submission.scores())
        try:
            response = await self.client.submit_rating(submission)
        except TransportError as e:
            logger.warning("Rating for %s not sent: %s", submission.isbn, e)
            return RatingOutcome(kind=RatingOutcomeKind.TRANSPORT, message=CONNECTION_ERROR, score=score)

        if not response.success:
            return RatingOutcome(kind=RatingOutcomeKind.REJECTED, message=response.message, score=score)

        logger.info("Rating for %s saved (average %.2f)", submission.isbn, score.average)
        return RatingOutcome(
            kind=RatingOutcomeKind.SAVED,
            message=response.message,
            score=score,
            rating=response.rating,
        )

    async def book_statistics(self, isbn: str) -> RatingResponse:
        """Fetch the ratings of a book and fold them into a breakdown locally."""
        try:
            response = await self.client.get_book_ratings(isbn)
        except TransportError as e:
            logger.warning("Ratings for %s not fetched: %s", isbn, e)
            return RatingResponse(success=False, message=CONNECTION_ERROR)
        if not response.success:
            return response

        stats = breakdown(response.ratings)
        return RatingResponse(
            success=True,
            message=response.message,
            ratings=response.ratings,
            average_rating=stats.average_rating,
            total_ratings=stats.total_ratings,
            breakdown=stats,
        )

    async def delete(self, username: str, isbn: str) -> RatingResponse:
        try:
            return await self.client.delete_rating(username, isbn)
        except TransportError as e:
            logger.warning("Rating for %s not deleted: %s", isbn, e)
            return RatingResponse(success=False, message=CONNECTION_ERROR)


class RecommendationSession:
    """Recommendation flow for one user and one target book.

    ``open`` fetches the quota and the user's existing recommendations,
    ``select`` admits candidates locally, ``submit`` sends the batch. The
    caller must wait for ``submit`` to return before calling it again.
    """

    def __init__(self, client: BookRecommenderClient, username: str, target: Book):
        self.client = client
        self.username = username
        self.target = target
        self.guard = RecommendationQuotaGuard(target, self._fetch_permission)
        self.submitter = BatchRecommendationSubmitter(self.guard)

    async def _fetch_permission(self):
        return await self.client.fetch_recommendation_permission(self.username, self.target.isbn)

    async def _submit_one(self, target_isbn: str, candidate_isbn: str) -> ItemResult:
        response = await self.client.submit_recommendation(self.username, target_isbn, candidate_isbn)
        return ItemResult(success=response.success, message=response.message)

    @property
    def state(self) -> QuotaState:
        return self.guard.state

    async def open(self) -> QuotaState:
        state = await self.guard.refresh()
        if self.guard.quota is not None:
            await self.reload_existing()
        return state

    async def reload_existing(self) -> bool:
        try:
            response = await self.client.fetch_existing_recommendations(self.username, self.target.isbn)
        except TransportError as e:
            logger.warning("Existing recommendations for %s not fetched: %s", self.target.isbn, e)
            return False
        if not response.success:
            logger.info("Existing recommendations for %s unavailable: %s", self.target.isbn, response.message)
            return False
        self.guard.set_existing(response.recommended_isbns())
        return True

    def select(self, book: Book) -> AdmitResult:
        return self.guard.try_add(book)

    def deselect(self, isbn: str) -> bool:
        return self.guard.remove(isbn)

    async def submit(self) -> BatchOutcome:
        outcome = await self.submitter.submit(self.guard.selection, self._submit_one)
        for book in outcome.succeeded:
            self.guard.selection.remove(book.isbn)
        await self.reload_existing()
        return outcome
