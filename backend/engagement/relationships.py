"""
PHASE 2: Relationship Store
===========================

Toggleable relationship facts: Like (user -> story/chapter/comment) and
Follow (user -> user).

CONCURRENCY STRATEGY:
---------------------
Problem: two requests toggle the same like at the same moment.
Naive: check exists -> create if not -> both create.

We let the unique constraint decide:
    - Try to insert inside a savepoint
    - DB rejects the duplicate (IntegrityError)
    - create_* turns that into Conflict
    - toggle_* turns Conflict into the idempotent outcome "already active"

The mirror case is the delete: if our DELETE affects zero rows, somebody
else removed the row first and we report "already inactive".

No locks are taken. The only outcomes that change counters or notify are
'created' and 'removed'; the two 'already_*' outcomes are no-ops.
"""

import logging
from dataclasses import dataclass
from typing import Literal

from django.db import IntegrityError, transaction

from .exceptions import Conflict, InvalidArgument, SelfReference
from .models import Follow, Like, TargetType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LikeTarget:
    """
    Tagged like target: Story(id) | Chapter(id) | Comment(id).

    Exactly one target by construction.
    """
    kind: str
    id: int

    @classmethod
    def story(cls, story_id: int) -> 'LikeTarget':
        return cls(TargetType.STORY.value, story_id)

    @classmethod
    def chapter(cls, chapter_id: int) -> 'LikeTarget':
        return cls(TargetType.CHAPTER.value, chapter_id)

    @classmethod
    def comment(cls, comment_id: int) -> 'LikeTarget':
        return cls(TargetType.COMMENT.value, comment_id)

    @classmethod
    def parse(cls, kind: str, target_id) -> 'LikeTarget':
        if kind not in TargetType.values:
            raise InvalidArgument(
                f"Invalid target type '{kind}'. Must be story, chapter, or comment"
            )
        try:
            target_id = int(target_id)
        except (TypeError, ValueError):
            raise InvalidArgument(f"Invalid {kind} id: {target_id!r}")
        if target_id < 1:
            raise InvalidArgument(f"Invalid {kind} id: {target_id}")
        return cls(kind, target_id)


class ToggleResult:
    """Result of a toggle with the action actually taken."""
    def __init__(
        self,
        active: bool,
        action: Literal['created', 'removed', 'already_exists', 'already_removed']
    ):
        self.active = active
        self.action = action

    @property
    def changed(self) -> bool:
        """True when this call (not a racing one) flipped the relationship."""
        return self.action in ('created', 'removed')

    def __repr__(self):
        return f"ToggleResult(active={self.active}, action={self.action!r})"


class RelationshipStore:

    # ------------------------------------------------------------------ likes

    def is_liked(self, user_id: int, target: LikeTarget) -> bool:
        return Like.objects.filter(
            user_id=user_id,
            target_type=target.kind,
            target_id=target.id
        ).exists()

    def create_like(self, user_id: int, target: LikeTarget) -> Like:
        """Insert a like. Raises Conflict if (user, target) already exists."""
        try:
            with transaction.atomic():
                return Like.objects.create(
                    user_id=user_id,
                    target_type=target.kind,
                    target_id=target.id
                )
        except IntegrityError as exc:
            raise Conflict(
                f"User {user_id} already likes {target.kind} {target.id}"
            ) from exc

    def delete_like(self, user_id: int, target: LikeTarget) -> bool:
        """Physically delete a like. False if there was nothing to delete."""
        deleted_count, _ = Like.objects.filter(
            user_id=user_id,
            target_type=target.kind,
            target_id=target.id
        ).delete()
        return deleted_count > 0

    def toggle_like(self, user_id: int, target: LikeTarget) -> ToggleResult:
        """
        Flip the like for (user, target).

        The exists() check is a hint, not a guarantee; the constraint and the
        delete row count are what decide the reported outcome.
        """
        if self.is_liked(user_id, target):
            if self.delete_like(user_id, target):
                return ToggleResult(active=False, action='removed')
            logger.info(
                "Like %s/%s by user %s already removed by a concurrent toggle",
                target.kind, target.id, user_id
            )
            return ToggleResult(active=False, action='already_removed')

        try:
            self.create_like(user_id, target)
        except Conflict:
            logger.info(
                "Like %s/%s by user %s already created by a concurrent toggle",
                target.kind, target.id, user_id
            )
            return ToggleResult(active=True, action='already_exists')
        return ToggleResult(active=True, action='created')

    # ---------------------------------------------------------------- follows

    def is_following(self, follower_id: int, following_id: int) -> bool:
        return Follow.objects.filter(
            follower_id=follower_id,
            following_id=following_id,
            is_active=True
        ).exists()

    def create_follow(self, follower_id: int, following_id: int) -> Follow:
        if follower_id == following_id:
            raise SelfReference('User cannot follow themselves')
        try:
            with transaction.atomic():
                return Follow.objects.create(
                    follower_id=follower_id,
                    following_id=following_id
                )
        except IntegrityError as exc:
            raise Conflict(
                f"User {follower_id} already follows {following_id}"
            ) from exc

    def toggle_follow(self, follower_id: int, following_id: int) -> ToggleResult:
        """
        Flip follower -> following.

        Self-follow is rejected before any read or write. An existing inactive
        row is reactivated rather than deleted, so the toggle always flips
        the *active* state.
        """
        if follower_id == following_id:
            raise SelfReference('User cannot follow themselves')

        pair = Follow.objects.filter(follower_id=follower_id, following_id=following_id)
        existing = pair.values_list('is_active', flat=True).first()

        if existing is True:
            deleted_count, _ = pair.filter(is_active=True).delete()
            if deleted_count:
                return ToggleResult(active=False, action='removed')
            logger.info(
                "Follow %s -> %s already removed by a concurrent toggle",
                follower_id, following_id
            )
            return ToggleResult(active=False, action='already_removed')

        if existing is False:
            if pair.filter(is_active=False).update(is_active=True):
                return ToggleResult(active=True, action='created')
            return ToggleResult(active=True, action='already_exists')

        try:
            self.create_follow(follower_id, following_id)
        except Conflict:
            logger.info(
                "Follow %s -> %s already created by a concurrent toggle",
                follower_id, following_id
            )
            return ToggleResult(active=True, action='already_exists')
        return ToggleResult(active=True, action='created')
