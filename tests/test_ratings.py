"""Tests for rating validation, aggregation and breakdowns."""

from itertools import combinations_with_replacement

import pytest

from book_recommender.models import BookRating, RatingSubmission
from book_recommender.ratings import (
    RatingBreakdownAggregator,
    aggregate,
    breakdown,
    display_rating,
    quality_label,
    star_rating,
    validate,
)

from conftest import stored_rating


def full_submission(**overrides) -> RatingSubmission:
    values = dict(username="reader", isbn="9780000000001", style=4, content=4, pleasantness=4, originality=4, edition=4)
    values.update(overrides)
    return RatingSubmission(**values)


# ── aggregate ──────────────────────────────────────


def test_aggregate_full_scores_matches_rounded_mean():
    for scores in combinations_with_replacement(range(1, 6), 5):
        assert aggregate(list(scores)).average == round(sum(scores) / 5, 2)


def test_aggregate_ignores_missing_and_non_positive_categories():
    assert aggregate([5, None, 4, None, 0]).average == 4.5
    assert aggregate({"style": 3, "edition": 2}).average == 2.5


def test_aggregate_rounds_half_up_to_two_decimals():
    # 13 / 3 = 4.333..., 14 / 3 = 4.666...
    assert aggregate([4, 4, 5, None, None]).average == 4.33
    assert aggregate([5, 5, 4, None, None]).average == 4.67


def test_aggregate_all_absent_is_not_rated():
    score = aggregate([None] * 5)
    assert score.average == 0
    assert score.stars == 0
    assert score.quality_label == "Not rated"


def test_aggregate_requires_five_positional_scores():
    with pytest.raises(ValueError):
        aggregate([5, 4, 3])


@pytest.mark.parametrize(
    "scores, label",
    [
        ([5, 5, 5, 5, 4], "Excellent"),
        ([3, 3, 3, 3, 3], "Fair"),
        ([1, 1, 1, 1, 1], "Poor"),
    ],
)
def test_aggregate_quality_labels(scores, label):
    assert aggregate(scores).quality_label == label


@pytest.mark.parametrize(
    "average, label",
    [
        (4.5, "Excellent"),
        (4.49, "Very good"),
        (4.0, "Very good"),
        (3.5, "Good"),
        (3.0, "Fair"),
        (2.5, "Acceptable"),
        (2.0, "Mediocre"),
        (1.99, "Poor"),
        (0, "Not rated"),
        (-1, "Not rated"),
    ],
)
def test_quality_label_bounds_are_closed_below(average, label):
    assert quality_label(average) == label


def test_star_rating_rounds_half_up_and_clamps():
    assert star_rating(2.5) == 3
    assert star_rating(2.49) == 2
    assert star_rating(4.8) == 5
    assert star_rating(0) == 0
    assert star_rating(None) == 0
    assert star_rating(7) == 5


def test_display_rating():
    assert display_rating(4.2) == "★★★★☆ (4.2/5)"
    assert display_rating(0) == "Not rated"


# ── validate ───────────────────────────────────────


def test_validate_accepts_complete_submission():
    result = validate(full_submission())
    assert result.valid
    assert result.errors == []


def test_validate_reports_only_the_out_of_range_category():
    result = validate(full_submission(style=6))
    assert not result.valid
    assert result.errors == ["Style score must be between 1 and 5"]


def test_validate_reports_every_violation():
    result = validate(RatingSubmission(username="  ", isbn=""))
    assert result.errors == [
        "Username is required",
        "ISBN is required",
        "Style score must be between 1 and 5",
        "Content score must be between 1 and 5",
        "Pleasantness score must be between 1 and 5",
        "Originality score must be between 1 and 5",
        "Edition score must be between 1 and 5",
    ]


def test_validate_rejects_partial_submission_that_aggregate_accepts():
    submission = full_submission(edition=None)
    assert not validate(submission).valid
    assert aggregate(submission.scores()).average == 4.0


def test_review_is_trimmed_and_capped():
    assert full_submission(review="   ").review is None
    assert full_submission(review="  good read ").review == "good read"
    long_review = full_submission(review="x" * 1200).review
    assert long_review == "x" * 1000 + "..."


def test_submission_is_immutable():
    submission = full_submission()
    with pytest.raises(Exception):
        submission.style = 1


# ── breakdown ──────────────────────────────────────


def test_breakdown_buckets_and_category_averages():
    ratings = [
        stored_rating(style=5, content=5, pleasantness=5, originality=5, edition=5),
        stored_rating(style=4, content=4, pleasantness=4, originality=4, edition=3),
        stored_rating(style=2, content=2, pleasantness=3, originality=2),
    ]
    result = breakdown(ratings)

    assert result.star_counts() == {5: 1, 4: 1, 3: 0, 2: 1, 1: 0}
    assert result.total_ratings == 3
    assert result.average_style == 3.67
    assert result.average_pleasantness == 4.0
    # the third rating has no edition score and is left out of that average only
    assert result.average_edition == 4.0


def test_breakdown_skips_unrated_records():
    ratings = [
        stored_rating(),
        BookRating(username="old", isbn="1", average=0.0),
        stored_rating(style=1, content=1, pleasantness=1, originality=1, edition=1),
    ]
    result = breakdown(ratings)

    assert result.one_star == 1
    assert result.total_ratings == 1
    assert result.average_rating == 1.0


def test_breakdown_prefers_server_average_when_present():
    rating = BookRating(username="reader", isbn="1", style=1, average=4.6)
    result = breakdown([rating])
    assert result.five_stars == 1
    assert result.average_style == 1.0


def test_breakdown_of_nothing():
    result = breakdown([])
    assert result.total_ratings == 0
    assert result.average_rating == 0.0
    assert result.category_averages() == {
        "style": None,
        "content": None,
        "pleasantness": None,
        "originality": None,
        "edition": None,
    }


def test_incremental_fold_matches_batch():
    ratings = [
        stored_rating(style=5, content=4, pleasantness=3, originality=2, edition=1),
        stored_rating(style=3, content=3, pleasantness=3, originality=3, edition=3),
        stored_rating(style=4, content=5),
    ]
    aggregator = RatingBreakdownAggregator()
    aggregator.add(ratings[0])
    first = aggregator.result()
    aggregator.add(ratings[1]).add(ratings[2])

    assert first.total_ratings == 1
    assert aggregator.result() == breakdown(ratings)


def test_breakdown_accepts_submissions():
    result = breakdown([full_submission(), full_submission(style=5, content=5)])
    assert result.four_stars == 2
    assert result.average_rating == 4.2


def test_breakdown_leaves_out_averages_below_one_star():
    result = breakdown([BookRating(username="reader", isbn="1", average=0.3), stored_rating(style=4)])

    assert result.one_star == 0
    assert result.four_stars == 1
    assert result.total_ratings == 1
    assert result.average_rating == 4.0
