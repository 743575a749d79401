from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

CATEGORIES: Tuple[str, ...] = ("style", "content", "pleasantness", "originality", "edition")

MIN_SCORE = 1
MAX_SCORE = 5
MAX_REVIEW_LENGTH = 1000
MAX_REASON_LENGTH = 500
DEFAULT_MAX_RECOMMENDATIONS = 3

CONNECTION_ERROR = "Connection error"
NOT_RATED = "Not rated"


def _clean_text(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if len(cleaned) > limit:
        cleaned = cleaned[:limit] + "..."
    return cleaned


class WireModel(BaseModel):
    """Base for everything the server sends: camelCase aliases, unknown keys ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Book(WireModel):
    isbn: str
    title: str = ""
    authors: List[str] = []

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @property
    def label(self) -> str:
        return self.title or self.isbn


class AggregateScore(BaseModel):
    average: float = 0.0
    stars: int = 0
    quality_label: str = NOT_RATED

    model_config = ConfigDict(frozen=True)


class ValidationResult(BaseModel):
    errors: List[str] = []

    @property
    def valid(self) -> bool:
        return not self.errors


class RatingSubmission(BaseModel):
    username: str = ""
    isbn: str = ""
    style: Optional[int] = None
    content: Optional[int] = None
    pleasantness: Optional[int] = None
    originality: Optional[int] = None
    edition: Optional[int] = None
    review: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("review")
    @classmethod
    def _clean_review(cls, value: Optional[str]) -> Optional[str]:
        return _clean_text(value, MAX_REVIEW_LENGTH)

    def scores(self) -> Dict[str, Optional[int]]:
        return {name: getattr(self, name) for name in CATEGORIES}

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"username": self.username.strip(), "isbn": self.isbn.strip()}
        payload.update(self.scores())
        if self.review:
            payload["review"] = self.review
        return payload


class BookRating(WireModel):
    id: Optional[int] = None
    username: str = ""
    isbn: str = ""
    data: Optional[str] = None
    style: Optional[int] = None
    content: Optional[int] = None
    pleasantness: Optional[int] = None
    originality: Optional[int] = None
    edition: Optional[int] = None
    average: Optional[float] = None
    review: Optional[str] = None

    def scores(self) -> Dict[str, Optional[int]]:
        return {name: getattr(self, name) for name in CATEGORIES}

    def belongs_to(self, username: str) -> bool:
        return self.username.lower() == username.lower()


class RatingBreakdown(WireModel):
    five_stars: int = Field(default=0, alias="fiveStars")
    four_stars: int = Field(default=0, alias="fourStars")
    three_stars: int = Field(default=0, alias="threeStars")
    two_stars: int = Field(default=0, alias="twoStars")
    one_star: int = Field(default=0, alias="oneStar")
    average_style: Optional[float] = Field(default=None, alias="averageStyle")
    average_content: Optional[float] = Field(default=None, alias="averageContent")
    average_pleasantness: Optional[float] = Field(default=None, alias="averagePleasantness")
    average_originality: Optional[float] = Field(default=None, alias="averageOriginality")
    average_edition: Optional[float] = Field(default=None, alias="averageEdition")
    average_rating: float = Field(default=0.0, alias="averageRating")

    @property
    def total_ratings(self) -> int:
        return self.one_star + self.two_stars + self.three_stars + self.four_stars + self.five_stars

    def star_counts(self) -> Dict[int, int]:
        return {
            5: self.five_stars,
            4: self.four_stars,
            3: self.three_stars,
            2: self.two_stars,
            1: self.one_star,
        }

    def category_averages(self) -> Dict[str, Optional[float]]:
        return {name: getattr(self, f"average_{name}") for name in CATEGORIES}


class RatingResponse(WireModel):
    success: bool = False
    message: str = ""
    rating: Optional[BookRating] = None
    ratings: List[BookRating] = []
    average_rating: Optional[float] = Field(default=None, alias="averageRating")
    total_ratings: Optional[int] = Field(default=None, alias="totalRatings")
    breakdown: Optional[RatingBreakdown] = Field(default=None, alias="ratingBreakdown")


class BookRecommendation(WireModel):
    id: Optional[int] = None
    recommender_username: str = Field(default="", alias="recommenderUsername")
    target_book_isbn: str = Field(default="", alias="targetBookIsbn")
    recommended_book_isbn: str = Field(default="", alias="recommendedBookIsbn")
    reason: Optional[str] = None
    created_date: Optional[str] = Field(default=None, alias="createdDate")
    is_active: Optional[bool] = Field(default=None, alias="isActive")


class RecommendationQuota(BaseModel):
    current_count: int = 0
    max_allowed: int = DEFAULT_MAX_RECOMMENDATIONS
    can_recommend: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def remaining_slots(self) -> int:
        return max(0, self.max_allowed - self.current_count)

    @property
    def permission_message(self) -> str:
        if not self.can_recommend:
            return "You cannot recommend books for this title"
        remaining = self.remaining_slots
        if remaining <= 0:
            return f"You have reached the limit of {self.max_allowed} recommendations"
        return f"You can add {remaining} more recommendations"


class RecommendationResponse(WireModel):
    success: bool = False
    message: str = ""
    recommendation: Optional[BookRecommendation] = None
    recommendations: List[BookRecommendation] = []
    recommended_books: List[Book] = Field(default=[], alias="recommendedBooks")
    can_recommend: Optional[bool] = Field(default=None, alias="canRecommend")
    current_count: Optional[int] = Field(default=None, alias="currentRecommendationsCount")
    max_allowed: Optional[int] = Field(default=None, alias="maxRecommendations")

    def to_quota(self) -> RecommendationQuota:
        return RecommendationQuota(
            current_count=self.current_count or 0,
            max_allowed=self.max_allowed if self.max_allowed is not None else DEFAULT_MAX_RECOMMENDATIONS,
            # a missing count locks
            can_recommend=bool(self.success and self.can_recommend and self.current_count is not None),
        )

    def recommended_isbns(self) -> List[str]:
        return [r.recommended_book_isbn for r in self.recommendations if r.recommended_book_isbn]


class RecommendationRequest(BaseModel):
    username: str
    target_book_isbn: str
    recommended_book_isbn: str
    reason: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("reason")
    @classmethod
    def _clean_reason(cls, value: Optional[str]) -> Optional[str]:
        # not truncated: validation_errors() reports an overlong reason
        if value is None or not value.strip():
            return None
        return value.strip()

    def validation_errors(self) -> List[str]:
        errors = []
        if not self.username.strip():
            errors.append("Username is required")
        if not self.target_book_isbn.strip():
            errors.append("Target book ISBN is required")
        if not self.recommended_book_isbn.strip():
            errors.append("Recommended book ISBN is required")
        if self.target_book_isbn and self.target_book_isbn == self.recommended_book_isbn:
            errors.append("You cannot recommend the same book")
        if self.reason is not None and len(self.reason) > MAX_REASON_LENGTH:
            errors.append(f"Reason cannot exceed {MAX_REASON_LENGTH} characters")
        return errors

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "username": self.username,
            "targetBookIsbn": self.target_book_isbn,
            "recommendedBookIsbn": self.recommended_book_isbn,
        }
        if self.reason:
            payload["reason"] = self.reason
        return payload


class ItemResult(BaseModel):
    success: bool
    message: str = ""


class FailureKind(str, Enum):
    DOMAIN = "domain"
    TRANSPORT = "transport"


class ItemFailure(BaseModel):
    book: Book
    reason: str
    kind: FailureKind = FailureKind.DOMAIN


class BatchStatus(str, Enum):
    FULL_SUCCESS = "full_success"
    PARTIAL = "partial"
    FAILURE = "failure"


class BatchOutcome(BaseModel):
    total: int
    succeeded: List[Book] = []
    failures: List[ItemFailure] = []

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def status(self) -> BatchStatus:
        if self.success_count == self.total:
            return BatchStatus.FULL_SUCCESS
        if self.success_count == 0:
            return BatchStatus.FAILURE
        return BatchStatus.PARTIAL

    def summary(self) -> str:
        errors = "\n".join(f"• {f.book.label}: {f.reason}" for f in self.failures)
        if self.status is BatchStatus.FULL_SUCCESS:
            return f"All {self.success_count} recommendations saved"
        if self.status is BatchStatus.PARTIAL:
            return f"Saved {self.success_count} of {self.total} recommendations.\n\nErrors:\n{errors}"
        return f"No recommendation saved.\n\nErrors:\n{errors}"


class AdmitReason(str, Enum):
    TARGET_BOOK = "target_book"
    ALREADY_RECOMMENDED = "already_recommended"
    ALREADY_SELECTED = "already_selected"
    QUOTA_EXCEEDED = "quota_exceeded"
    LOCKED = "locked"


class AdmitResult(BaseModel):
    admitted: bool
    reason: Optional[AdmitReason] = None
    message: str = ""


class RatingOutcomeKind(str, Enum):
    SAVED = "saved"
    INVALID = "invalid"
    REJECTED = "rejected"
    TRANSPORT = "transport"


class RatingOutcome(BaseModel):
    kind: RatingOutcomeKind
    message: str = ""
    errors: List[str] = []
    score: AggregateScore = Field(default_factory=AggregateScore)
    rating: Optional[BookRating] = None

    @property
    def ok(self) -> bool:
        return self.kind is RatingOutcomeKind.SAVED
