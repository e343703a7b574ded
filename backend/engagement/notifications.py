"""
PHASE 6: Notification Fan-out
=============================

Derives notifications from mutations that have already committed. Nothing
here mutates another entity, and the engine swallows (and logs) any failure,
so a broken notification path never fails the action that triggered it.

    like (not unlike), actor != owner   -> 1 notification to the owner
    follow (not unfollow)               -> 1 notification to the followed user
    comment, actor != story owner       -> 1 notification to the story owner
    reply, actor != parent writer       -> 1 notification to the parent writer
                                           (unless the story owner already got one)
    chapter published                   -> 1 per active follower, ONE bulk insert
"""

import logging
from typing import Optional

from django.utils import timezone

from .conf import engagement_setting
from .models import Notification, TargetType
from .repositories import EntityRepository, FollowerReader, NotificationWriter

logger = logging.getLogger(__name__)

Type = Notification.Type

MESSAGE_MAX_LENGTH = Notification._meta.get_field('message').max_length


class NotificationFanout:

    def __init__(
        self,
        entities: EntityRepository,
        writer: NotificationWriter,
        followers: FollowerReader
    ):
        self.entities = entities
        self.writer = writer
        self.followers = followers

    def on_like_toggled(
        self,
        actor_id: int,
        target,
        owner_id: int,
        liked: bool
    ) -> Optional[Notification]:
        """Only the like transition notifies, and never for your own content."""
        if not liked or actor_id == owner_id:
            return None

        name = self.entities.display_name(actor_id)
        data = {}
        action_url = None

        if target.kind == TargetType.STORY:
            title = 'Story Liked'
            message = f'{name} liked your story "{self.entities.story_title(target.id)}"'
            action_url = f'/story/{target.id}'
            data['story'] = target.id
        elif target.kind == TargetType.CHAPTER:
            chapter = self.entities.chapter_summary(target.id) or {}
            title = 'Chapter Liked'
            message = f'{name} liked your chapter "{chapter.get("title", "")}"'
            action_url = f'/story/{chapter.get("story_id")}/chapter/{target.id}'
            data['chapter'] = target.id
            data['story'] = chapter.get('story_id')
        else:
            title = 'Comment Liked'
            message = f'{name} liked your comment'
            data['comment'] = target.id

        return self.writer.write(Notification(
            recipient_id=owner_id,
            sender_id=actor_id,
            type=f'like_{target.kind}',
            title=title,
            message=message[:MESSAGE_MAX_LENGTH],
            data=data,
            action_url=action_url
        ))

    def on_followed(self, follower_id: int, following_id: int) -> Notification:
        name = self.entities.display_name(follower_id)
        return self.writer.write(Notification(
            recipient_id=following_id,
            sender_id=follower_id,
            type=Type.FOLLOW,
            title='New Follower',
            message=f'{name} started following you',
            data={'user': follower_id},
            action_url=f'/profile/{follower_id}'
        ))

    def on_comment_posted(
        self,
        actor_id: int,
        story_id: int,
        chapter_id: Optional[int],
        story_owner_id: int,
        comment_id: Optional[int] = None
    ) -> Optional[Notification]:
        if actor_id == story_owner_id:
            return None

        name = self.entities.display_name(actor_id)
        data = {'story': story_id, 'user': actor_id}
        if comment_id is not None:
            data['comment'] = comment_id

        if chapter_id:
            chapter = self.entities.chapter_summary(chapter_id) or {}
            notification_type = Type.COMMENT_CHAPTER
            title = 'New Chapter Comment'
            message = f'{name} commented on your chapter "{chapter.get("title", "")}"'
            action_url = f'/story/{story_id}/chapter/{chapter_id}'
            data['chapter'] = chapter_id
        else:
            notification_type = Type.COMMENT_STORY
            title = 'New Story Comment'
            message = f'{name} commented on your story "{self.entities.story_title(story_id)}"'
            action_url = f'/story/{story_id}'

        return self.writer.write(Notification(
            recipient_id=story_owner_id,
            sender_id=actor_id,
            type=notification_type,
            title=title,
            message=message[:MESSAGE_MAX_LENGTH],
            data=data,
            action_url=action_url
        ))

    def on_reply_posted(
        self,
        actor_id: int,
        parent_owner_id: int,
        story_owner_id: int,
        story_id: int,
        comment_id: int,
        parent_id: int
    ) -> Optional[Notification]:
        if parent_owner_id in (actor_id, story_owner_id):
            return None

        name = self.entities.display_name(actor_id)
        return self.writer.write(Notification(
            recipient_id=parent_owner_id,
            sender_id=actor_id,
            type=Type.REPLY_COMMENT,
            title='New Reply',
            message=f'{name} replied to your comment',
            data={'story': story_id, 'comment': comment_id, 'user': actor_id},
            action_url=f'/story/{story_id}#comment-{parent_id}'
        ))

    def on_chapter_published(self, author_id: int, story_id: int, chapter_id: int) -> int:
        """
        One notification per active follower of the author, written with a
        single bulk insert. Returns how many were written.
        """
        follower_ids = [
            follower_id
            for follower_id in self.followers.active_follower_ids(author_id)
            if follower_id != author_id
        ]
        if not follower_ids:
            return 0

        name = self.entities.display_name(author_id)
        chapter = self.entities.chapter_summary(chapter_id) or {}
        message = (
            f'{name} published Chapter {chapter.get("chapter_number")}: '
            f'"{chapter.get("title", "")}" in "{chapter.get("story__title", "")}"'
        )
        now = timezone.now()

        batch = [
            Notification(
                recipient_id=follower_id,
                sender_id=author_id,
                type=Type.NEW_CHAPTER,
                title='New Chapter',
                message=message[:MESSAGE_MAX_LENGTH],
                data={'story': story_id, 'chapter': chapter_id, 'user': author_id},
                action_url=f'/story/{story_id}/chapter/{chapter_id}',
                created_at=now
            )
            for follower_id in follower_ids
        ]
        self.writer.write_many(batch, batch_size=engagement_setting('NOTIFICATION_BATCH_SIZE'))
        logger.info(
            "Chapter %s of story %s fanned out to %s followers",
            chapter_id, story_id, len(batch)
        )
        return len(batch)


# ============================================================================
# RECIPIENT-SIDE OPERATIONS
# ============================================================================

def mark_all_as_read(user_id: int) -> int:
    return Notification.objects.filter(recipient_id=user_id, is_read=False).update(
        is_read=True,
        read_at=timezone.now()
    )


def cleanup_expired() -> int:
    deleted_count, _ = Notification.objects.filter(expires_at__lt=timezone.now()).delete()
    return deleted_count
