from typing import Dict, List, Optional, Union

import pytest

from book_recommender.errors import TransportError
from book_recommender.models import (
    Book,
    BookRecommendation,
    BookRating,
    RatingResponse,
    RatingSubmission,
    RecommendationResponse,
)

TARGET = Book(isbn="9780000000001", title="The Target")


def permission(current: int = 0, maximum: int = 3, allowed: bool = True, success: bool = True) -> RecommendationResponse:
    return RecommendationResponse(
        success=success,
        message="" if success else "Server refused",
        can_recommend=allowed,
        current_count=current,
        max_allowed=maximum,
    )


def existing(*isbns: str) -> RecommendationResponse:
    return RecommendationResponse(
        success=True,
        recommendations=[
            BookRecommendation(
                recommender_username="reader",
                target_book_isbn=TARGET.isbn,
                recommended_book_isbn=isbn,
            )
            for isbn in isbns
        ],
    )


class FakeClient:
    """In-memory stand-in for BookRecommenderClient that records every call."""

    def __init__(
        self,
        permissions: Optional[List[Union[RecommendationResponse, Exception]]] = None,
        existing_response: Optional[RecommendationResponse] = None,
        recommendation_results: Optional[Dict[str, Union[RecommendationResponse, Exception]]] = None,
        rating_response: Union[RatingResponse, Exception, None] = None,
        book_ratings: Union[RatingResponse, Exception, None] = None,
    ):
        self.permissions = list(permissions or [permission()])
        self.existing_response = existing_response or existing()
        self.recommendation_results = recommendation_results or {}
        self.rating_response = rating_response or RatingResponse(success=True, message="Saved")
        self.book_ratings = book_ratings or RatingResponse(success=True)
        self.calls: List[tuple] = []

    @staticmethod
    def _answer(value):
        if isinstance(value, Exception):
            raise value
        return value

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def fetch_recommendation_permission(self, username: str, target_isbn: str):
        self.calls.append(("permission", username, target_isbn))
        # the last configured answer repeats once the list is exhausted
        value = self.permissions.pop(0) if len(self.permissions) > 1 else self.permissions[0]
        return self._answer(value)

    async def fetch_existing_recommendations(self, username: str, target_isbn: str):
        self.calls.append(("existing", username, target_isbn))
        return self._answer(self.existing_response)

    async def submit_recommendation(self, username: str, target_isbn: str, candidate_isbn: str, reason=None):
        self.calls.append(("recommend", username, target_isbn, candidate_isbn))
        value = self.recommendation_results.get(candidate_isbn, RecommendationResponse(success=True, message="Added"))
        return self._answer(value)

    async def submit_rating(self, submission: RatingSubmission):
        self.calls.append(("rate", submission.username, submission.isbn))
        return self._answer(self.rating_response)

    async def get_book_ratings(self, isbn: str):
        self.calls.append(("book_ratings", isbn))
        return self._answer(self.book_ratings)

    async def delete_rating(self, username: str, isbn: str):
        self.calls.append(("delete", username, isbn))
        return RatingResponse(success=True, message="Deleted")


@pytest.fixture
def target() -> Book:
    return TARGET


@pytest.fixture
def candidates() -> List[Book]:
    return [
        Book(isbn="9780000000002", title="First Pick"),
        Book(isbn="9780000000003", title="Second Pick"),
        Book(isbn="9780000000004", title="Third Pick"),
    ]


@pytest.fixture
def connection_refused() -> TransportError:
    return TransportError("GET /recommendations failed: connection refused")


def stored_rating(username: str = "reader", **scores) -> BookRating:
    return BookRating(username=username, isbn=TARGET.isbn, **scores)
