"""
PHASE 4: Rating Aggregator
==========================

Story.average_rating / Story.rating_count are recomputed from scratch after
every rating create, update or delete:

    SELECT COUNT(id), SUM(value) FROM rating WHERE story_id = %s
    UPDATE story SET average_rating = %s, rating_count = %s WHERE id = %s

No incremental arithmetic, so there is no accumulated drift. Two concurrent
recomputes are last-writer-wins; both read current rows, so whichever lands
last is still a valid aggregate.

Rounding: half-up to one decimal (4.25 -> 4.3), 0.0 when there are no ratings.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction
from django.db.models import Count, Sum

from .exceptions import DependencyFailure, InvalidArgument
from .models import Rating, Story

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5

ONE_DECIMAL = Decimal('0.1')


@dataclass(frozen=True)
class RatingSummary:
    average: Decimal
    count: int


def round_average(total: int, count: int) -> Decimal:
    if not count:
        return Decimal('0.0')
    return (Decimal(total) / Decimal(count)).quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)


def validate_rating_value(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"Rating must be an integer, got {value!r}")
    if not MIN_RATING <= value <= MAX_RATING:
        raise InvalidArgument(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    return value


def save_rating(user_id: int, story_id: int, value: int, review: str = '',
                is_anonymous: bool = False) -> tuple[Rating, bool]:
    """
    Create or update the (user, story) rating.

    update_or_create retries the lookup when a concurrent insert wins the
    unique constraint, so a racing first rating turns into an update.
    """
    with transaction.atomic():
        return Rating.objects.update_or_create(
            user_id=user_id,
            story_id=story_id,
            defaults={
                'value': value,
                'review': review or '',
                'is_anonymous': is_anonymous,
            }
        )


def delete_rating(user_id: int, story_id: int) -> bool:
    deleted_count, _ = Rating.objects.filter(user_id=user_id, story_id=story_id).delete()
    return deleted_count > 0


class RatingAggregator:

    def recompute(self, story_id: int) -> RatingSummary:
        """Full re-scan of the story's ratings, then one UPDATE on the story."""
        totals = Rating.objects.filter(story_id=story_id).aggregate(
            count=Count('id'),
            total=Sum('value')
        )
        count = totals['count'] or 0
        summary = RatingSummary(
            average=round_average(totals['total'] or 0, count),
            count=count
        )

        updated = Story.objects.filter(id=story_id).update(
            average_rating=summary.average,
            rating_count=summary.count
        )
        if not updated:
            raise DependencyFailure(f"story {story_id} not found for rating recompute")

        logger.debug("Story %s rating -> %s (%s ratings)", story_id, summary.average, count)
        return summary

    def distribution(self, story_id: int) -> dict:
        """
        Count and percentage per star value.

        Returns: {
            'distribution': {1: n, ..., 5: n},
            'total': n,
            'percentages': {1: pct, ..., 5: pct}
        }
        """
        result = {value: 0 for value in range(MIN_RATING, MAX_RATING + 1)}
        rows = (
            Rating.objects
            .filter(story_id=story_id)
            .values('value')
            .annotate(count=Count('id'))
        )
        for row in rows:
            result[row['value']] = row['count']

        total = sum(result.values())
        percentages = {}
        for value, count in result.items():
            if total:
                pct = (Decimal(count) * 100 / Decimal(total)).quantize(
                    Decimal('1'), rounding=ROUND_HALF_UP
                )
                percentages[value] = int(pct)
            else:
                percentages[value] = 0

        return {
            'distribution': result,
            'total': total,
            'percentages': percentages,
        }
