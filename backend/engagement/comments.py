"""
PHASE 5: Comment Thread Manager
===============================

Parent/reply linkage, soft delete, and the comment counters.

COUNTERS:
---------
A posted comment moves three counters (through CounterSynchronizer):
    Story.total_comments      always
    Chapter.comments_count    when chapter is set
    parent.replies_count      when it is a reply

Soft delete runs the same path once with -1. The deleted row keeps its own
like counter and its replies; nothing cascades.

THREAD LISTING:
---------------
Top level newest-first, each with up to REPLY_PREVIEW_LIMIT of its most
recent non-deleted replies shown oldest-first.

    Query 1: page of top-level comments (+ author), with an EXISTS flag for
             "has a live reply" so tombstoned parents with live replies stay
    Query 2: all live replies for that page (+ authors), newest first

Grouping and trimming happen in Python in one pass.
"""

import logging
from collections import defaultdict
from typing import Optional

from django.db.models import Exists, OuterRef, Q
from django.utils import timezone

from .conf import engagement_setting
from .counters import CounterSynchronizer
from .exceptions import InvalidArgument
from .models import COMMENT_TOMBSTONE, Comment

logger = logging.getLogger(__name__)


class CommentThreadManager:

    def __init__(self, counters: CounterSynchronizer):
        self.counters = counters

    # ================================================================ writes

    def post(
        self,
        content: str,
        user_id: int,
        story_id: int,
        chapter_id: Optional[int] = None,
        parent_id: Optional[int] = None
    ) -> Comment:
        """
        Insert the comment row. Content length (1-1000) is the serializer's
        job; existence/ownership checks are the engine's.

        Counters are applied separately by apply_post_counters().
        """
        return Comment.objects.create(
            content=content,
            user_id=user_id,
            story_id=story_id,
            chapter_id=chapter_id,
            parent_id=parent_id
        )

    def apply_post_counters(self, comment: Comment) -> None:
        self.counters.comment_delta(comment, +1)

    def soft_delete(self, comment: Comment) -> bool:
        """
        Tombstone the comment. Returns False if it was already deleted.

        The conditional UPDATE makes the remove path run once even when two
        deletes race.
        """
        now = timezone.now()
        updated = Comment.objects.filter(id=comment.id, is_deleted=False).update(
            is_deleted=True,
            deleted_at=now,
            content=COMMENT_TOMBSTONE,
            updated_at=now
        )
        if not updated:
            return False

        comment.is_deleted = True
        comment.deleted_at = now
        comment.content = COMMENT_TOMBSTONE
        return True

    def apply_delete_counters(self, comment: Comment) -> None:
        self.counters.comment_delta(comment, -1)

    def restore(self, comment: Comment, content: str) -> bool:
        """Undo a soft delete with the original content. False if not deleted."""
        updated = Comment.objects.filter(id=comment.id, is_deleted=True).update(
            is_deleted=False,
            deleted_at=None,
            content=content,
            updated_at=timezone.now()
        )
        if not updated:
            return False

        comment.is_deleted = False
        comment.deleted_at = None
        comment.content = content
        return True

    def edit(self, comment: Comment, content: str) -> Comment:
        if comment.is_deleted:
            raise InvalidArgument('Cannot edit a deleted comment')
        if content == comment.content:
            return comment

        comment.content = content
        comment.is_edited = True
        comment.edited_at = timezone.now()
        comment.save(update_fields=['content', 'is_edited', 'edited_at', 'updated_at'])
        return comment

    # ================================================================= reads

    def list_thread(
        self,
        story_id: int,
        chapter_id: Optional[int] = None,
        limit: int = 20,
        offset: int = 0
    ) -> list[dict]:
        """
        Top-level comments for a story (chapter_id=None) or one chapter.

        Returns: [
            {'comment': Comment, 'replies': [Comment, ...]},
            ...
        ]
        """
        limit = max(0, min(limit, engagement_setting('THREAD_PAGE_LIMIT_MAX')))
        offset = max(0, offset)
        preview_limit = engagement_setting('REPLY_PREVIEW_LIMIT')

        live_replies = Comment.objects.filter(parent_id=OuterRef('pk'), is_deleted=False)
        top_level = (
            Comment.objects
            .filter(story_id=story_id, parent__isnull=True)
            .annotate(has_live_reply=Exists(live_replies))
            .filter(Q(is_deleted=False) | Q(has_live_reply=True))
            .select_related('user__profile')
            .order_by('-created_at', '-id')
        )
        if chapter_id is None:
            top_level = top_level.filter(chapter__isnull=True)
        else:
            top_level = top_level.filter(chapter_id=chapter_id)

        page = list(top_level[offset:offset + limit])
        if not page:
            return []

        replies = (
            Comment.objects
            .filter(parent_id__in=[c.id for c in page], is_deleted=False)
            .select_related('user__profile')
            .order_by('parent_id', '-created_at', '-id')
        )

        newest_first = defaultdict(list)
        for reply in replies:
            bucket = newest_first[reply.parent_id]
            if len(bucket) < preview_limit:
                bucket.append(reply)

        return [
            {
                'comment': comment,
                'replies': list(reversed(newest_first.get(comment.id, [])))
            }
            for comment in page
        ]
