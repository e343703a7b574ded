"""
PHASE 3: Counter Synchronizer
=============================

Applies +1/-1 deltas to denormalized counters after a relationship or
comment write has committed.

    like story     -> Story.total_likes
    like chapter   -> Chapter.likes
    like comment   -> Comment.likes
    follow         -> follower Profile.following_count,
                      following Profile.followers_count
    comment posted -> Story.total_comments, Chapter.comments_count,
                      parent Comment.replies_count

The delta runs as a second step, outside the relationship write's
transaction. A crash between the two steps leaves the relationship without
its counter change. That drift is tolerated; reconcile_* (and the
reconcile_counters management command) rebuild counters from rows.

apply() is safe per call only: it does not deduplicate repeated calls.
"""

import logging

from django.db.models import Q

from .exceptions import DependencyFailure, InvalidArgument
from .models import Chapter, Comment, Follow, Like, Profile, Story, TargetType
from .repositories import CounterStore

logger = logging.getLogger(__name__)


COUNTER_FIELDS = {
    'story': {'total_likes', 'total_comments'},
    'chapter': {'likes', 'comments_count'},
    'comment': {'likes', 'replies_count'},
    'user': {'followers_count', 'following_count'},
}

LIKE_COUNTERS = {
    TargetType.STORY.value: 'total_likes',
    TargetType.CHAPTER.value: 'likes',
    TargetType.COMMENT.value: 'likes',
}


class CounterSynchronizer:

    def __init__(self, store: CounterStore):
        self.store = store

    def apply(self, kind: str, entity_id: int, field: str, delta: int) -> None:
        """
        Apply a signed delta to one counter, never going below zero.

        Raises InvalidArgument for an unknown (kind, field) pair and
        DependencyFailure when the entity row is gone.
        """
        if field not in COUNTER_FIELDS.get(kind, ()):
            raise InvalidArgument(f"No counter '{field}' on {kind}")

        updated = self.store.increment(kind, entity_id, field, delta)
        if not updated:
            logger.warning(
                "Counter drift: %s %s missing, %s%+d not applied",
                kind, entity_id, field, delta
            )
            raise DependencyFailure(f"{kind} {entity_id} not found for counter {field}")

    def like_delta(self, target, delta: int) -> None:
        self.apply(target.kind, target.id, LIKE_COUNTERS[target.kind], delta)

    def follow_delta(self, follower_id: int, following_id: int, delta: int) -> None:
        self._apply_all([
            ('user', follower_id, 'following_count', delta),
            ('user', following_id, 'followers_count', delta),
        ])

    def comment_delta(self, comment: Comment, delta: int) -> None:
        """Story/chapter comment counters plus the parent's reply counter."""
        steps = [('story', comment.story_id, 'total_comments', delta)]
        if comment.chapter_id:
            steps.append(('chapter', comment.chapter_id, 'comments_count', delta))
        if comment.parent_id:
            steps.append(('comment', comment.parent_id, 'replies_count', delta))
        self._apply_all(steps)

    def _apply_all(self, steps) -> None:
        """
        Run every step even if an earlier one fails, then report.

        One missing row must not stop the other counters from moving.
        """
        failures = []
        for kind, entity_id, field, delta in steps:
            try:
                self.apply(kind, entity_id, field, delta)
            except DependencyFailure as exc:
                failures.append(exc.message)
        if failures:
            raise DependencyFailure('; '.join(failures))

    # ========================================================================
    # RECONCILIATION (out-of-band repair)
    # ========================================================================

    def reconcile_story(self, story_id: int) -> dict:
        counts = {
            'total_likes': Like.objects.filter(
                target_type=TargetType.STORY, target_id=story_id
            ).count(),
            'total_comments': Comment.objects.filter(
                story_id=story_id, is_deleted=False
            ).count(),
        }
        Story.objects.filter(id=story_id).update(**counts)
        return counts

    def reconcile_chapter(self, chapter_id: int) -> dict:
        counts = {
            'likes': Like.objects.filter(
                target_type=TargetType.CHAPTER, target_id=chapter_id
            ).count(),
            'comments_count': Comment.objects.filter(
                chapter_id=chapter_id, is_deleted=False
            ).count(),
        }
        Chapter.objects.filter(id=chapter_id).update(**counts)
        return counts

    def reconcile_comment(self, comment_id: int) -> dict:
        counts = {
            'likes': Like.objects.filter(
                target_type=TargetType.COMMENT, target_id=comment_id
            ).count(),
            'replies_count': Comment.objects.filter(
                parent_id=comment_id, is_deleted=False
            ).count(),
        }
        Comment.objects.filter(id=comment_id).update(**counts)
        return counts

    def reconcile_user(self, user_id: int) -> dict:
        active = Q(is_active=True)
        counts = {
            'followers_count': Follow.objects.filter(active, following_id=user_id).count(),
            'following_count': Follow.objects.filter(active, follower_id=user_id).count(),
        }
        Profile.objects.filter(user_id=user_id).update(**counts)
        return counts
