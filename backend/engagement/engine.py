"""
PHASE 7: Engagement Engine (toggle controller)
==============================================

The only entry point request handlers use. Every action walks the same
state machine:

    VALIDATING -> MUTATING -> SYNCHRONIZING -> NOTIFYING -> DONE
         |
         +-> REJECTED   (NotFound / InvalidArgument / SelfReference / Forbidden)

COMMIT POINT:
-------------
The action is committed as soon as MUTATING succeeds. There is no rollback
transition. SYNCHRONIZING (counters, rating recompute) and NOTIFYING run in
_best_effort(): each step gets its own savepoint, and any exception is
logged with its traceback and swallowed. The caller always gets the result
of the relationship/content write.

    relationship write   own transaction, committed first
    counter delta        second transaction, may fail -> drift, logged
    notification         third transaction, may fail -> lost, logged

Cancellation before MUTATING commits leaves nothing behind; after it, the
write stands even if the later steps never run.

WIRING:
-------
Collaborators are passed in at construction (defaults are the ORM-backed
ones from repositories.py). The engine holds no locks and no cached state,
so one instance can serve every worker; get_engine() returns that instance.
"""

import enum
import logging
from typing import Optional

from django.db import transaction

from .comments import CommentThreadManager
from .counters import CounterSynchronizer
from .exceptions import (
    EngagementError,
    Forbidden,
    InvalidArgument,
    NotFound,
    SelfReference,
)
from .models import Comment, Rating
from .notifications import NotificationFanout
from .ratings import RatingAggregator, delete_rating, save_rating, validate_rating_value
from .relationships import LikeTarget, RelationshipStore, ToggleResult
from .repositories import (
    CounterStore,
    EntityRepository,
    FollowerReader,
    NotificationWriter,
)

logger = logging.getLogger(__name__)


class ActionState(enum.Enum):
    VALIDATING = 'validating'
    MUTATING = 'mutating'
    SYNCHRONIZING = 'synchronizing'
    NOTIFYING = 'notifying'
    DONE = 'done'
    REJECTED = 'rejected'


class Action:
    """Progress of one engine call through ActionState."""

    def __init__(self, name: str, **context):
        self.name = name
        self.context = context
        self.state = ActionState.VALIDATING
        # set when a best-effort step failed
        self.degraded = False

    def enter(self, state: ActionState) -> None:
        logger.debug("%s %s: %s -> %s", self.name, self.context, self.state.value, state.value)
        self.state = state

    def reject(self, error: EngagementError) -> EngagementError:
        self.enter(ActionState.REJECTED)
        logger.info("%s rejected (%s): %s", self.name, error.code, error.message)
        return error


class EngagementEngine:

    def __init__(
        self,
        entities: Optional[EntityRepository] = None,
        counter_store: Optional[CounterStore] = None,
        notification_writer: Optional[NotificationWriter] = None,
        followers: Optional[FollowerReader] = None,
        relationships: Optional[RelationshipStore] = None
    ):
        self.entities = entities or EntityRepository()
        self.relationships = relationships or RelationshipStore()
        self.counters = CounterSynchronizer(counter_store or CounterStore())
        self.ratings = RatingAggregator()
        self.comments = CommentThreadManager(self.counters)
        self.notifications = NotificationFanout(
            self.entities,
            notification_writer or NotificationWriter(),
            followers or FollowerReader()
        )

    # ========================================================================
    # LIKES
    # ========================================================================

    def toggle_like(self, actor_id: int, target_type: str, target_id) -> ToggleResult:
        """
        Like or unlike a story, chapter or comment.

        Returns ToggleResult; result.active is the state after the call.
        A racing toggle that lost on the unique constraint reports the state
        the winner produced ('already_exists' / 'already_removed') and moves
        no counters.
        """
        action = Action('toggle_like', actor=actor_id, target=f'{target_type}/{target_id}')
        try:
            target = LikeTarget.parse(target_type, target_id)
        except InvalidArgument as exc:
            raise action.reject(exc)

        ref = self.entities.lookup(target.kind, target.id)
        if ref is None:
            raise action.reject(NotFound(f'{target.kind} not found'))

        action.enter(ActionState.MUTATING)
        with transaction.atomic():
            result = self.relationships.toggle_like(actor_id, target)

        if result.changed:
            self._best_effort(
                action, ActionState.SYNCHRONIZING, 'like counter',
                self.counters.like_delta, target, +1 if result.active else -1
            )
            self._best_effort(
                action, ActionState.NOTIFYING, 'like notification',
                self.notifications.on_like_toggled, actor_id, target, ref.owner_id, result.active
            )

        action.enter(ActionState.DONE)
        return result

    def check_liked(self, actor_id: int, target_type: str, target_id) -> bool:
        """Pure lookup; no existence check on the target."""
        target = LikeTarget.parse(target_type, target_id)
        return self.relationships.is_liked(actor_id, target)

    # ========================================================================
    # FOLLOWS
    # ========================================================================

    def toggle_follow(self, actor_id: int, target_user_id: int) -> ToggleResult:
        action = Action('toggle_follow', actor=actor_id, target=target_user_id)
        if actor_id == target_user_id:
            raise action.reject(SelfReference('User cannot follow themselves'))

        if self.entities.lookup('user', target_user_id) is None:
            raise action.reject(NotFound('User not found'))

        action.enter(ActionState.MUTATING)
        with transaction.atomic():
            result = self.relationships.toggle_follow(actor_id, target_user_id)

        if result.changed:
            self._best_effort(
                action, ActionState.SYNCHRONIZING, 'follow counters',
                self.counters.follow_delta, actor_id, target_user_id, +1 if result.active else -1
            )
        if result.action == 'created':
            self._best_effort(
                action, ActionState.NOTIFYING, 'follow notification',
                self.notifications.on_followed, actor_id, target_user_id
            )

        action.enter(ActionState.DONE)
        return result

    def is_following(self, actor_id: int, target_user_id: int) -> bool:
        return self.relationships.is_following(actor_id, target_user_id)

    # ========================================================================
    # COMMENTS
    # ========================================================================

    def post_comment(
        self,
        actor_id: int,
        story_id: int,
        content: str,
        chapter_id: Optional[int] = None,
        parent_id: Optional[int] = None
    ) -> Comment:
        """
        Post a story-level, chapter-level, or reply comment.

        A reply without chapter_id inherits the parent's chapter, so it lands
        in the same thread as its parent. Threads are one level deep: a reply
        to a reply is stored under the top-level comment, and the writer of
        the comment being answered still gets the reply notification.
        """
        action = Action('post_comment', actor=actor_id, story=story_id,
                        chapter=chapter_id, parent=parent_id)

        story = self.entities.lookup('story', story_id)
        if story is None:
            raise action.reject(NotFound('Story not found'))

        if chapter_id is not None:
            chapter = self.entities.lookup('chapter', chapter_id)
            if chapter is None:
                raise action.reject(NotFound('Chapter not found'))
            if chapter.story_id != story_id:
                raise action.reject(InvalidArgument('Chapter does not belong to this story'))

        parent = None
        thread_root_id = None
        if parent_id is not None:
            parent = self.entities.get_comment(parent_id)
            if parent is None:
                raise action.reject(NotFound('Parent comment not found'))
            if parent.story_id != story_id:
                raise action.reject(
                    InvalidArgument('Parent comment must belong to the same story')
                )
            if parent.is_deleted:
                raise action.reject(InvalidArgument('Cannot reply to a deleted comment'))
            if chapter_id is None:
                chapter_id = parent.chapter_id
            elif parent.chapter_id != chapter_id:
                raise action.reject(
                    InvalidArgument('Parent comment belongs to a different chapter')
                )
            thread_root_id = parent.parent_id or parent.id

        action.enter(ActionState.MUTATING)
        with transaction.atomic():
            comment = self.comments.post(content, actor_id, story_id, chapter_id, thread_root_id)

        self._best_effort(
            action, ActionState.SYNCHRONIZING, 'comment counters',
            self.comments.apply_post_counters, comment
        )
        self._best_effort(
            action, ActionState.NOTIFYING, 'comment notification',
            self.notifications.on_comment_posted,
            actor_id, story_id, comment.chapter_id, story.owner_id, comment.id
        )
        if parent is not None:
            self._best_effort(
                action, ActionState.NOTIFYING, 'reply notification',
                self.notifications.on_reply_posted,
                actor_id, parent.user_id, story.owner_id, story_id, comment.id, parent.id
            )

        action.enter(ActionState.DONE)
        return comment

    def delete_comment(self, actor_id: int, comment_id: int) -> Comment:
        """Soft delete by the comment's writer. Deleting twice is a no-op."""
        action = Action('delete_comment', actor=actor_id, comment=comment_id)
        comment = self._own_comment(action, actor_id, comment_id)

        action.enter(ActionState.MUTATING)
        with transaction.atomic():
            deleted = self.comments.soft_delete(comment)

        if deleted:
            self._best_effort(
                action, ActionState.SYNCHRONIZING, 'comment counters',
                self.comments.apply_delete_counters, comment
            )

        action.enter(ActionState.DONE)
        return comment

    def restore_comment(self, actor_id: int, comment_id: int, content: str) -> Comment:
        action = Action('restore_comment', actor=actor_id, comment=comment_id)
        comment = self._own_comment(action, actor_id, comment_id)

        action.enter(ActionState.MUTATING)
        with transaction.atomic():
            restored = self.comments.restore(comment, content)

        if restored:
            self._best_effort(
                action, ActionState.SYNCHRONIZING, 'comment counters',
                self.comments.apply_post_counters, comment
            )

        action.enter(ActionState.DONE)
        return comment

    def edit_comment(self, actor_id: int, comment_id: int, content: str) -> Comment:
        action = Action('edit_comment', actor=actor_id, comment=comment_id)
        comment = self._own_comment(action, actor_id, comment_id)
        if comment.is_deleted:
            raise action.reject(InvalidArgument('Cannot edit a deleted comment'))

        action.enter(ActionState.MUTATING)
        with transaction.atomic():
            comment = self.comments.edit(comment, content)

        action.enter(ActionState.DONE)
        return comment

    def list_thread(self, story_id: int, chapter_id: Optional[int] = None,
                    limit: int = 20, offset: int = 0) -> list[dict]:
        if self.entities.lookup('story', story_id) is None:
            raise NotFound('Story not found')
        return self.comments.list_thread(story_id, chapter_id, limit, offset)

    def _own_comment(self, action: Action, actor_id: int, comment_id: int) -> Comment:
        comment = self.entities.get_comment(comment_id)
        if comment is None:
            raise action.reject(NotFound('Comment not found'))
        if comment.user_id != actor_id:
            raise action.reject(Forbidden('Only the writer can change this comment'))
        return comment

    # ========================================================================
    # RATINGS
    # ========================================================================

    def submit_rating(
        self,
        actor_id: int,
        story_id: int,
        value: int,
        review: str = '',
        is_anonymous: bool = False
    ) -> Rating:
        """Create or replace the actor's rating, then recompute the story aggregate."""
        action = Action('submit_rating', actor=actor_id, story=story_id)
        try:
            value = validate_rating_value(value)
        except InvalidArgument as exc:
            raise action.reject(exc)

        if self.entities.lookup('story', story_id) is None:
            raise action.reject(NotFound('Story not found'))

        action.enter(ActionState.MUTATING)
        rating, _created = save_rating(actor_id, story_id, value, review, is_anonymous)

        self._best_effort(
            action, ActionState.SYNCHRONIZING, 'rating recompute',
            self.ratings.recompute, story_id
        )

        action.enter(ActionState.DONE)
        return rating

    def remove_rating(self, actor_id: int, story_id: int) -> bool:
        action = Action('remove_rating', actor=actor_id, story=story_id)
        if self.entities.lookup('story', story_id) is None:
            raise action.reject(NotFound('Story not found'))

        action.enter(ActionState.MUTATING)
        with transaction.atomic():
            removed = delete_rating(actor_id, story_id)

        if removed:
            self._best_effort(
                action, ActionState.SYNCHRONIZING, 'rating recompute',
                self.ratings.recompute, story_id
            )

        action.enter(ActionState.DONE)
        return removed

    # ========================================================================
    # CHAPTER PUBLICATION
    # ========================================================================

    def publish_chapter(self, author_id: int, story_id: int, chapter_id: int) -> int:
        """
        Fan a new chapter out to the author's active followers.

        Only the fan-out happens here; returns how many notifications were
        written (0 when the fan-out failed).
        """
        action = Action('publish_chapter', actor=author_id, story=story_id, chapter=chapter_id)

        story = self.entities.lookup('story', story_id)
        if story is None:
            raise action.reject(NotFound('Story not found'))
        if story.owner_id != author_id:
            raise action.reject(Forbidden('Only the author can publish chapters of this story'))

        chapter = self.entities.lookup('chapter', chapter_id)
        if chapter is None or chapter.story_id != story_id:
            raise action.reject(NotFound('Chapter not found in this story'))

        written = self._best_effort(
            action, ActionState.NOTIFYING, 'new chapter fan-out',
            self.notifications.on_chapter_published, author_id, story_id, chapter_id
        )

        action.enter(ActionState.DONE)
        return written or 0

    # ========================================================================
    # BEST-EFFORT STEPS
    # ========================================================================

    def _best_effort(self, action: Action, state: ActionState, step: str, func, *args):
        """
        Run a post-commit step. Failures are logged and swallowed.

        The savepoint keeps a failed step from breaking an outer transaction
        (ATOMIC_REQUESTS, test cases).
        """
        action.enter(state)
        try:
            with transaction.atomic():
                return func(*args)
        except Exception:
            action.degraded = True
            logger.warning(
                "%s %s: %s step '%s' failed after commit; action stands",
                action.name, action.context, state.value, step,
                exc_info=True
            )
            return None


_default_engine = None


def get_engine() -> EngagementEngine:
    """The shared ORM-backed engine."""
    global _default_engine
    if _default_engine is None:
        _default_engine = EngagementEngine()
    return _default_engine
