"""
Persistence collaborators consumed by the engagement engine.

The engine never touches the ORM for anything except its own relationship
rows; everything else goes through these four objects, which are handed to
EngagementEngine at construction:

- EntityRepository    existence + owner lookups for story/chapter/comment/user
- CounterStore        atomic increment of a counter field on any entity
- NotificationWriter  single and batch notification inserts
- FollowerReader      "active followers of user X"

Tests swap any of them for a stub to simulate a failing dependency.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from django.contrib.auth import get_user_model
from django.db.models import F
from django.db.models.functions import Greatest

from .models import Chapter, Comment, Follow, Notification, Profile, Story


@dataclass(frozen=True)
class EntityRef:
    """Existence proof for an entity plus who owns it."""
    kind: str
    id: int
    owner_id: int
    # story the entity belongs to (chapters and comments only)
    story_id: Optional[int] = None


class EntityRepository:

    def lookup(self, kind: str, entity_id: int) -> Optional[EntityRef]:
        """
        Return an EntityRef, or None when the entity does not exist.

        Query: 1 (chapter joins its story for the owner)
        """
        if kind == 'story':
            owner_id = (
                Story.objects
                .filter(id=entity_id)
                .values_list('author_id', flat=True)
                .first()
            )
            if owner_id is None:
                return None
            return EntityRef(kind, entity_id, owner_id, story_id=entity_id)

        if kind == 'chapter':
            row = (
                Chapter.objects
                .filter(id=entity_id)
                .values_list('story__author_id', 'story_id')
                .first()
            )
            if row is None:
                return None
            return EntityRef(kind, entity_id, row[0], story_id=row[1])

        if kind == 'comment':
            row = (
                Comment.objects
                .filter(id=entity_id)
                .values_list('user_id', 'story_id')
                .first()
            )
            if row is None:
                return None
            return EntityRef(kind, entity_id, row[0], story_id=row[1])

        if kind == 'user':
            if not get_user_model().objects.filter(id=entity_id).exists():
                return None
            return EntityRef(kind, entity_id, entity_id)

        raise ValueError(f"Unknown entity kind: {kind}")

    def get_comment(self, comment_id: int) -> Optional[Comment]:
        return Comment.objects.filter(id=comment_id).first()

    def display_name(self, user_id: int) -> str:
        row = (
            get_user_model().objects
            .filter(id=user_id)
            .values_list('profile__full_name', 'username')
            .first()
        )
        if row is None:
            return 'Someone'
        full_name, username = row
        return full_name or username

    def story_title(self, story_id: int) -> str:
        return (
            Story.objects
            .filter(id=story_id)
            .values_list('title', flat=True)
            .first()
        ) or ''

    def chapter_summary(self, chapter_id: int) -> Optional[dict]:
        return (
            Chapter.objects
            .filter(id=chapter_id)
            .values('id', 'title', 'chapter_number', 'story_id', 'story__title')
            .first()
        )


# kind -> (model, lookup column)
COUNTER_MODELS = {
    'story': (Story, 'id'),
    'chapter': (Chapter, 'id'),
    'comment': (Comment, 'id'),
    'user': (Profile, 'user_id'),
}


class CounterStore:

    def increment(self, kind: str, entity_id: int, field: str, delta: int) -> int:
        """
        Apply `delta` to `field`, clamped at zero, in a single UPDATE.

        UPDATE story SET total_likes = GREATEST(total_likes + 1, 0) WHERE id = %s

        The database does the read-modify-write, so concurrent increments on
        the same row never lose updates. Returns rows affected.
        """
        model, column = COUNTER_MODELS[kind]
        return (
            model.objects
            .filter(**{column: entity_id})
            .update(**{field: Greatest(F(field) + delta, 0)})
        )


class NotificationWriter:

    def write(self, notification: Notification) -> Notification:
        notification.save()
        return notification

    def write_many(self, notifications: list[Notification], batch_size: int) -> list[Notification]:
        """One bulk_create call for the whole fan-out."""
        if not notifications:
            return []
        return Notification.objects.bulk_create(notifications, batch_size=batch_size)


class FollowerReader:

    def active_follower_ids(self, user_id: int) -> Iterable[int]:
        return list(
            Follow.objects
            .filter(following_id=user_id, is_active=True)
            .exclude(follower_id=user_id)
            .values_list('follower_id', flat=True)
        )
