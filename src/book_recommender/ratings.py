"""Rating rules: submission validation, score aggregation and breakdowns.

Everything here is pure and works on plain models, so the same functions back
the rating form, the statistics view and the CLI.
"""
import math
from typing import Dict, Iterable, Mapping, Optional, Sequence, Union

from .models import (
    CATEGORIES,
    MAX_SCORE,
    MIN_SCORE,
    NOT_RATED,
    AggregateScore,
    BookRating,
    RatingBreakdown,
    RatingSubmission,
    ValidationResult,
)

Scores = Union[Sequence[Optional[int]], Mapping[str, Optional[int]]]

# Inclusive lower bounds, checked top-down.
QUALITY_TIERS = (
    (4.5, "Excellent"),
    (4.0, "Very good"),
    (3.5, "Good"),
    (3.0, "Fair"),
    (2.5, "Acceptable"),
    (2.0, "Mediocre"),
)


def round_half_up(value: float, digits: int = 2) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def validate(submission: RatingSubmission) -> ValidationResult:
    """Check a new rating, collecting every violated rule rather than the first."""
    errors = []
    if not submission.username or not submission.username.strip():
        errors.append("Username is required")
    if not submission.isbn or not submission.isbn.strip():
        errors.append("ISBN is required")
    for name, score in submission.scores().items():
        if score is None or not MIN_SCORE <= score <= MAX_SCORE:
            errors.append(f"{name.capitalize()} score must be between {MIN_SCORE} and {MAX_SCORE}")
    return ValidationResult(errors=errors)


def _as_mapping(scores: Scores) -> Dict[str, Optional[int]]:
    if isinstance(scores, Mapping):
        return {name: scores.get(name) for name in CATEGORIES}
    values = list(scores)
    if len(values) != len(CATEGORIES):
        raise ValueError(f"expected {len(CATEGORIES)} scores, got {len(values)}")
    return dict(zip(CATEGORIES, values))


def star_rating(average: Optional[float]) -> int:
    if average is None or average <= 0:
        return 0
    return min(MAX_SCORE, math.floor(average + 0.5))


def quality_label(average: Optional[float]) -> str:
    if average is None or average <= 0:
        return NOT_RATED
    for lower_bound, label in QUALITY_TIERS:
        if average >= lower_bound:
            return label
    return "Poor"


def display_rating(average: Optional[float]) -> str:
    """Render an average as five stars, e.g. ``★★★★☆ (4.2/5)``."""
    if average is None or average <= 0:
        return NOT_RATED
    stars = star_rating(average)
    return f"{'★' * stars}{'☆' * (MAX_SCORE - stars)} ({average:.1f}/5)"


def score_from_average(average: Optional[float]) -> AggregateScore:
    if average is None or average <= 0:
        return AggregateScore()
    return AggregateScore(average=average, stars=star_rating(average), quality_label=quality_label(average))


def aggregate(scores: Scores) -> AggregateScore:
    """Average only the categories that are present and positive.

    Unlike validate(), missing categories are tolerated: stored ratings may
    predate a category or never have collected it.
    """
    present = [s for s in _as_mapping(scores).values() if s is not None and s > 0]
    if not present:
        return AggregateScore()
    return score_from_average(round_half_up(sum(present) / len(present)))


def score_of(record: Union[RatingSubmission, BookRating]) -> AggregateScore:
    average = getattr(record, "average", None)
    if average is not None:
        return score_from_average(average)
    return aggregate(record.scores())


class RatingBreakdownAggregator:
    """Incremental fold of ratings into star buckets and per-category averages.

    State is a handful of running sums, so new ratings can be added as they
    arrive without revisiting earlier ones.
    """

    def __init__(self):
        self._buckets: Dict[int, int] = {stars: 0 for stars in range(1, MAX_SCORE + 1)}
        self._average_sum = 0.0
        self._category_sums: Dict[str, int] = {name: 0 for name in CATEGORIES}
        self._category_counts: Dict[str, int] = {name: 0 for name in CATEGORIES}

    def add(self, record: Union[RatingSubmission, BookRating]) -> "RatingBreakdownAggregator":
        score = score_of(record)
        if score.stars >= MIN_SCORE:
            self._buckets[score.stars] += 1
            self._average_sum += score.average

        for name, value in record.scores().items():
            if value is not None and value > 0:
                self._category_sums[name] += value
                self._category_counts[name] += 1
        return self

    def extend(self, records: Iterable[Union[RatingSubmission, BookRating]]) -> "RatingBreakdownAggregator":
        for record in records:
            self.add(record)
        return self

    @property
    def total_ratings(self) -> int:
        return sum(self._buckets.values())

    def _category_average(self, name: str) -> Optional[float]:
        count = self._category_counts[name]
        if not count:
            return None
        return round_half_up(self._category_sums[name] / count)

    def result(self) -> RatingBreakdown:
        total = self.total_ratings
        return RatingBreakdown(
            five_stars=self._buckets[5],
            four_stars=self._buckets[4],
            three_stars=self._buckets[3],
            two_stars=self._buckets[2],
            one_star=self._buckets[1],
            average_style=self._category_average("style"),
            average_content=self._category_average("content"),
            average_pleasantness=self._category_average("pleasantness"),
            average_originality=self._category_average("originality"),
            average_edition=self._category_average("edition"),
            average_rating=round_half_up(self._average_sum / total) if total else 0.0,
        )


def breakdown(ratings: Iterable[Union[RatingSubmission, BookRating]]) -> RatingBreakdown:
    return RatingBreakdownAggregator().extend(ratings).result()
