"""
Tests for the StoryHub engagement engine

Focus areas:
1. Toggle semantics and duplicate-key races (likes, follows)
2. Counter consistency (N likers -> N, clamp at zero, reconcile)
3. Rating aggregation (full recompute, half-up rounding)
4. Comment threads (soft delete keeps replies visible, no N+1)
5. Notification fan-out (one per follower, one bulk write)
6. Best-effort side effects never fail the committed action

ConcurrentLikeTestCase only runs on PostgreSQL. The default SQLite test
database skips it, so CI needs DATABASE_URL pointing at a PostgreSQL server
for the parallel-likers counter check to run.
"""

import threading
from datetime import timedelta
from decimal import Decimal
from unittest import skipUnless
from unittest.mock import Mock, patch

from django.contrib.auth.models import User
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError, connection
from django.test import TestCase, TransactionTestCase
from django.test.utils import CaptureQueriesContext
from django.utils import timezone
from rest_framework.test import APIClient

from .counters import CounterSynchronizer
from .engine import EngagementEngine, get_engine
from .exceptions import (
    DependencyFailure,
    Forbidden,
    InvalidArgument,
    NotFound,
    SelfReference,
)
from .models import (
    COMMENT_TOMBSTONE,
    Chapter,
    Comment,
    Follow,
    Like,
    Notification,
    Profile,
    Rating,
    Story,
)
from .notifications import cleanup_expired, mark_all_as_read
from .queries import (
    get_followers,
    get_mutual_follows,
    get_suggested_users,
    get_user_liked_stories,
)
from .ratings import RatingAggregator, round_average
from .relationships import LikeTarget, RelationshipStore
from .repositories import CounterStore, NotificationWriter


class EngagementTestMixin:
    """Users, one story with two chapters, and an ORM-backed engine."""

    def make_fixtures(self):
        self.author = User.objects.create_user('author', 'a@test.com', 'pass')
        self.reader = User.objects.create_user('reader', 'r@test.com', 'pass')
        self.other = User.objects.create_user('other', 'o@test.com', 'pass')
        self.story = Story.objects.create(author=self.author, title='The Lighthouse')
        self.chapter = Chapter.objects.create(story=self.story, title='Arrival', chapter_number=1)
        self.chapter2 = Chapter.objects.create(story=self.story, title='Storm', chapter_number=2)
        self.engine = EngagementEngine()


class LikeToggleTestCase(EngagementTestMixin, TestCase):

    def setUp(self):
        self.make_fixtures()

    def test_toggle_twice_returns_true_then_false(self):
        first = self.engine.toggle_like(self.reader.id, 'story', self.story.id)
        self.assertTrue(first.active)
        self.assertEqual(first.action, 'created')
        self.assertTrue(self.engine.check_liked(self.reader.id, 'story', self.story.id))

        second = self.engine.toggle_like(self.reader.id, 'story', self.story.id)
        self.assertFalse(second.active)
        self.assertEqual(second.action, 'removed')
        self.assertFalse(self.engine.check_liked(self.reader.id, 'story', self.story.id))

    def test_counter_follows_like_state(self):
        self.engine.toggle_like(self.reader.id, 'chapter', self.chapter.id)
        self.chapter.refresh_from_db()
        self.assertEqual(self.chapter.likes, 1)

        self.engine.toggle_like(self.reader.id, 'chapter', self.chapter.id)
        self.chapter.refresh_from_db()
        self.assertEqual(self.chapter.likes, 0)

    def test_n_distinct_likers_give_counter_n(self):
        likers = [
            User.objects.create_user(f'liker{i}', f'l{i}@test.com', 'pass')
            for i in range(12)
        ]
        for liker in likers:
            self.engine.toggle_like(liker.id, 'story', self.story.id)

        self.story.refresh_from_db()
        self.assertEqual(self.story.total_likes, 12)
        self.assertEqual(Like.objects.filter(target_type='story', target_id=self.story.id).count(), 12)

    def test_like_kinds_are_independent(self):
        """Story 5 and chapter 5 are different targets."""
        self.engine.toggle_like(self.reader.id, 'story', self.story.id)
        self.assertFalse(self.engine.check_liked(self.reader.id, 'chapter', self.story.id))

    def test_unknown_target_type_rejected(self):
        with self.assertRaises(InvalidArgument):
            self.engine.toggle_like(self.reader.id, 'poem', self.story.id)
        self.assertEqual(Like.objects.count(), 0)

    def test_missing_target_rejected_without_mutation(self):
        with self.assertRaises(NotFound):
            self.engine.toggle_like(self.reader.id, 'story', 999999)
        self.assertEqual(Like.objects.count(), 0)
        self.assertEqual(Notification.objects.count(), 0)

    def test_duplicate_key_race_reports_already_exists(self):
        """
        The exists() check said "not liked" but a concurrent toggle inserted
        first: the unique constraint decides, no counter moves.
        """
        self.engine.toggle_like(self.reader.id, 'story', self.story.id)

        with patch.object(RelationshipStore, 'is_liked', return_value=False):
            result = self.engine.toggle_like(self.reader.id, 'story', self.story.id)

        self.assertTrue(result.active)
        self.assertEqual(result.action, 'already_exists')
        self.story.refresh_from_db()
        self.assertEqual(self.story.total_likes, 1)
        self.assertEqual(Notification.objects.filter(type='like_story').count(), 1)

    def test_concurrent_delete_reports_already_removed(self):
        with patch.object(RelationshipStore, 'is_liked', return_value=True):
            result = self.engine.toggle_like(self.reader.id, 'story', self.story.id)

        self.assertFalse(result.active)
        self.assertEqual(result.action, 'already_removed')
        self.story.refresh_from_db()
        self.assertEqual(self.story.total_likes, 0)

    def test_like_target_parse(self):
        self.assertEqual(LikeTarget.parse('comment', '7'), LikeTarget.comment(7))
        for kind, target_id in [('story', 0), ('story', 'abc'), ('user', 1)]:
            with self.assertRaises(InvalidArgument):
                LikeTarget.parse(kind, target_id)


@skipUnless(connection.vendor == 'postgresql', 'needs row-level concurrency')
class ConcurrentLikeTestCase(TransactionTestCase):
    """N threads, N distinct users, one story: counter ends at exactly N."""

    def test_parallel_likes_do_not_lose_updates(self):
        author = User.objects.create_user('author', 'a@test.com', 'pass')
        story = Story.objects.create(author=author, title='Race')
        likers = [
            User.objects.create_user(f'racer{i}', f'r{i}@test.com', 'pass')
            for i in range(10)
        ]
        barrier = threading.Barrier(len(likers))
        errors = []

        def like(user_id):
            try:
                barrier.wait()
                get_engine().toggle_like(user_id, 'story', story.id)
            except Exception as exc:  # collected for the assertion below
                errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=like, args=(u.id,)) for u in likers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        story.refresh_from_db()
        self.assertEqual(story.total_likes, len(likers))


class FollowToggleTestCase(EngagementTestMixin, TestCase):

    def setUp(self):
        self.make_fixtures()

    def test_self_follow_rejected_without_mutation(self):
        with self.assertRaises(SelfReference):
            self.engine.toggle_follow(self.reader.id, self.reader.id)

        self.assertEqual(Follow.objects.count(), 0)
        profile = Profile.objects.get(user=self.reader)
        self.assertEqual(profile.followers_count, 0)
        self.assertEqual(profile.following_count, 0)

    def test_follow_updates_both_counters_and_notifies(self):
        result = self.engine.toggle_follow(self.reader.id, self.author.id)

        self.assertTrue(result.active)
        self.assertTrue(self.engine.is_following(self.reader.id, self.author.id))
        self.assertEqual(Profile.objects.get(user=self.author).followers_count, 1)
        self.assertEqual(Profile.objects.get(user=self.reader).following_count, 1)
        notification = Notification.objects.get(recipient=self.author)
        self.assertEqual(notification.type, Notification.Type.FOLLOW)

    def test_unfollow_restores_counters_without_notification(self):
        self.engine.toggle_follow(self.reader.id, self.author.id)
        result = self.engine.toggle_follow(self.reader.id, self.author.id)

        self.assertFalse(result.active)
        self.assertEqual(Profile.objects.get(user=self.author).followers_count, 0)
        self.assertEqual(Profile.objects.get(user=self.reader).following_count, 0)
        self.assertEqual(Notification.objects.filter(recipient=self.author).count(), 1)

    def test_inactive_row_is_reactivated(self):
        Follow.objects.create(follower=self.reader, following=self.author, is_active=False)

        result = self.engine.toggle_follow(self.reader.id, self.author.id)

        self.assertEqual(result.action, 'created')
        self.assertEqual(Follow.objects.filter(follower=self.reader).count(), 1)
        self.assertTrue(self.engine.is_following(self.reader.id, self.author.id))

    def test_follow_missing_user(self):
        with self.assertRaises(NotFound):
            self.engine.toggle_follow(self.reader.id, 999999)

    def test_follower_queries(self):
        self.engine.toggle_follow(self.reader.id, self.author.id)
        self.engine.toggle_follow(self.author.id, self.reader.id)
        self.engine.toggle_follow(self.other.id, self.author.id)

        self.assertEqual(
            {u.id for u in get_followers(self.author.id)},
            {self.reader.id, self.other.id}
        )
        self.assertEqual([u.id for u in get_mutual_follows(self.author.id)], [self.reader.id])

    def test_suggested_users_come_from_followers_follows(self):
        fan = User.objects.create_user('fan', 'f@test.com', 'pass')
        poet = User.objects.create_user('poet', 'p@test.com', 'pass')
        self.engine.toggle_follow(fan.id, self.author.id)
        self.engine.toggle_follow(fan.id, poet.id)
        self.engine.toggle_follow(fan.id, self.reader.id)
        self.engine.toggle_follow(self.author.id, self.reader.id)

        suggested = [u.id for u in get_suggested_users(self.author.id)]
        # reader is already followed, author is the caller
        self.assertEqual(suggested, [poet.id])

    def test_suggested_users_without_followers_are_most_followed(self):
        self.engine.toggle_follow(self.author.id, self.other.id)
        self.engine.toggle_follow(self.reader.id, self.other.id)
        self.engine.toggle_follow(self.other.id, self.author.id)

        suggested = [u.id for u in get_suggested_users(self.reader.id, limit=2)]
        self.assertEqual(suggested, [self.other.id, self.author.id])


class CounterSynchronizerTestCase(EngagementTestMixin, TestCase):

    def setUp(self):
        self.make_fixtures()
        self.counters = CounterSynchronizer(CounterStore())

    def test_counter_never_goes_below_zero(self):
        self.counters.like_delta(LikeTarget.story(self.story.id), -1)
        self.story.refresh_from_db()
        self.assertEqual(self.story.total_likes, 0)

    def test_unknown_counter_rejected(self):
        with self.assertRaises(InvalidArgument):
            self.counters.apply('story', self.story.id, 'likes', 1)

    def test_missing_row_is_dependency_failure(self):
        with self.assertLogs('engagement.counters', level='WARNING'):
            with self.assertRaises(DependencyFailure):
                self.counters.apply('story', 999999, 'total_likes', 1)

    def test_reconcile_command_repairs_drift(self):
        self.engine.toggle_like(self.reader.id, 'story', self.story.id)
        self.engine.toggle_follow(self.reader.id, self.author.id)
        Story.objects.filter(id=self.story.id).update(total_likes=99, total_comments=7)
        Profile.objects.filter(user=self.author).update(followers_count=42)

        call_command('reconcile_counters', story=[self.story.id], user=[self.author.id], stdout=Mock())

        self.story.refresh_from_db()
        self.assertEqual(self.story.total_likes, 1)
        self.assertEqual(self.story.total_comments, 0)
        self.assertEqual(Profile.objects.get(user=self.author).followers_count, 1)

    def test_reconcile_command_repairs_rating_aggregate(self):
        """A failed recompute leaves the story stale until reconcile runs."""
        with patch.object(RatingAggregator, 'recompute', side_effect=DatabaseError('boom')):
            with self.assertLogs('engagement.engine', level='WARNING'):
                EngagementEngine().submit_rating(self.reader.id, self.story.id, 4)
        Rating.objects.create(user=self.other, story=self.story, value=5)

        self.story.refresh_from_db()
        self.assertEqual(self.story.rating_count, 0)

        call_command('reconcile_counters', story=[self.story.id], stdout=Mock())

        self.story.refresh_from_db()
        self.assertEqual(self.story.average_rating, Decimal('4.5'))
        self.assertEqual(self.story.rating_count, 2)

    def test_reconcile_command_requires_a_scope(self):
        with self.assertRaises(CommandError):
            call_command('reconcile_counters', stdout=Mock())


class RatingTestCase(EngagementTestMixin, TestCase):

    def setUp(self):
        self.make_fixtures()
        self.raters = [
            User.objects.create_user(f'rater{i}', f'rt{i}@test.com', 'pass')
            for i in range(3)
        ]

    def test_average_recomputed_on_create_and_delete(self):
        for rater, value in zip(self.raters, [5, 3, 4]):
            self.engine.submit_rating(rater.id, self.story.id, value)

        self.story.refresh_from_db()
        self.assertEqual(self.story.average_rating, Decimal('4.0'))
        self.assertEqual(self.story.rating_count, 3)

        self.assertTrue(self.engine.remove_rating(self.raters[1].id, self.story.id))

        self.story.refresh_from_db()
        self.assertEqual(self.story.average_rating, Decimal('4.5'))
        self.assertEqual(self.story.rating_count, 2)

    def test_rerating_replaces_previous_value(self):
        self.engine.submit_rating(self.reader.id, self.story.id, 2)
        self.engine.submit_rating(self.reader.id, self.story.id, 5, review='Grew on me')

        self.assertEqual(Rating.objects.filter(user=self.reader, story=self.story).count(), 1)
        self.story.refresh_from_db()
        self.assertEqual(self.story.average_rating, Decimal('5.0'))
        self.assertEqual(self.story.rating_count, 1)

    def test_out_of_range_rejected_without_mutation(self):
        for value in (0, 6, True, '4'):
            with self.assertRaises(InvalidArgument):
                self.engine.submit_rating(self.reader.id, self.story.id, value)
        self.assertEqual(Rating.objects.count(), 0)

    def test_missing_story(self):
        with self.assertRaises(NotFound):
            self.engine.submit_rating(self.reader.id, 999999, 3)

    def test_last_rating_removed_resets_to_zero(self):
        self.engine.submit_rating(self.reader.id, self.story.id, 4)
        self.engine.remove_rating(self.reader.id, self.story.id)

        self.story.refresh_from_db()
        self.assertEqual(self.story.average_rating, Decimal('0.0'))
        self.assertEqual(self.story.rating_count, 0)

    def test_half_up_rounding(self):
        self.assertEqual(round_average(17, 4), Decimal('4.3'))  # 4.25
        self.assertEqual(round_average(0, 0), Decimal('0.0'))

    def test_distribution(self):
        for rater, value in zip(self.raters, [5, 5, 1]):
            self.engine.submit_rating(rater.id, self.story.id, value)

        result = RatingAggregator().distribution(self.story.id)
        self.assertEqual(result['total'], 3)
        self.assertEqual(result['distribution'][5], 2)
        self.assertEqual(result['percentages'][5], 67)
        self.assertEqual(result['percentages'][3], 0)


class CommentThreadTestCase(EngagementTestMixin, TestCase):

    def setUp(self):
        self.make_fixtures()

    def test_post_updates_story_chapter_and_parent_counters(self):
        parent = self.engine.post_comment(self.reader.id, self.story.id, 'Lovely', chapter_id=self.chapter.id)
        reply = self.engine.post_comment(self.other.id, self.story.id, 'Agreed', parent_id=parent.id)

        self.assertEqual(reply.chapter_id, self.chapter.id)
        self.story.refresh_from_db()
        self.chapter.refresh_from_db()
        parent.refresh_from_db()
        self.assertEqual(self.story.total_comments, 2)
        self.assertEqual(self.chapter.comments_count, 2)
        self.assertEqual(parent.replies_count, 1)

    def test_soft_deleted_parent_keeps_its_replies(self):
        parent = self.engine.post_comment(self.reader.id, self.story.id, 'First!')
        reply = self.engine.post_comment(self.other.id, self.story.id, 'Second', parent_id=parent.id)

        self.engine.delete_comment(self.reader.id, parent.id)

        thread = self.engine.list_thread(self.story.id)
        self.assertEqual(len(thread), 1)
        self.assertEqual(thread[0]['comment'].id, parent.id)
        self.assertTrue(thread[0]['comment'].is_deleted)
        self.assertEqual(thread[0]['comment'].content, COMMENT_TOMBSTONE)
        self.assertEqual([r.id for r in thread[0]['replies']], [reply.id])

        self.story.refresh_from_db()
        self.assertEqual(self.story.total_comments, 1)

    def test_deleted_comment_without_live_replies_is_hidden(self):
        comment = self.engine.post_comment(self.reader.id, self.story.id, 'Gone soon')
        self.engine.delete_comment(self.reader.id, comment.id)

        self.assertEqual(self.engine.list_thread(self.story.id), [])

    def test_delete_twice_applies_counters_once(self):
        self.engine.post_comment(self.other.id, self.story.id, 'Stays')
        comment = self.engine.post_comment(self.reader.id, self.story.id, 'Oops')
        self.engine.delete_comment(self.reader.id, comment.id)
        self.engine.delete_comment(self.reader.id, comment.id)

        self.story.refresh_from_db()
        self.assertEqual(self.story.total_comments, 1)

    def test_only_writer_can_delete_or_edit(self):
        comment = self.engine.post_comment(self.reader.id, self.story.id, 'Mine')
        with self.assertRaises(Forbidden):
            self.engine.delete_comment(self.other.id, comment.id)
        with self.assertRaises(Forbidden):
            self.engine.edit_comment(self.other.id, comment.id, 'Theirs')

    def test_edit_marks_comment_edited(self):
        comment = self.engine.post_comment(self.reader.id, self.story.id, 'Tpyo')
        edited = self.engine.edit_comment(self.reader.id, comment.id, 'Typo')
        self.assertTrue(edited.is_edited)
        self.assertEqual(Comment.objects.get(id=comment.id).content, 'Typo')

    def test_restore_reapplies_counters(self):
        comment = self.engine.post_comment(self.reader.id, self.story.id, 'Back')
        self.engine.delete_comment(self.reader.id, comment.id)
        self.engine.restore_comment(self.reader.id, comment.id, 'Back')

        self.story.refresh_from_db()
        self.assertEqual(self.story.total_comments, 1)
        self.assertFalse(Comment.objects.get(id=comment.id).is_deleted)

    def test_chapter_from_another_story_rejected(self):
        other_story = Story.objects.create(author=self.other, title='Elsewhere')
        foreign = Chapter.objects.create(story=other_story, title='X', chapter_number=1)
        with self.assertRaises(InvalidArgument):
            self.engine.post_comment(self.reader.id, self.story.id, 'Hi', chapter_id=foreign.id)
        self.assertEqual(Comment.objects.count(), 0)

    def test_reply_preview_limit_keeps_newest_oldest_first(self):
        parent = self.engine.post_comment(self.reader.id, self.story.id, 'Thread')
        replies = [
            self.engine.post_comment(self.other.id, self.story.id, f'r{i}', parent_id=parent.id)
            for i in range(7)
        ]

        with self.settings(ENGAGEMENT={'REPLY_PREVIEW_LIMIT': 3}):
            thread = self.engine.list_thread(self.story.id)

        self.assertEqual([r.id for r in thread[0]['replies']], [r.id for r in replies[-3:]])

    def test_chapter_thread_is_separate(self):
        self.engine.post_comment(self.reader.id, self.story.id, 'Story level')
        chapter_comment = self.engine.post_comment(
            self.reader.id, self.story.id, 'Chapter level', chapter_id=self.chapter2.id
        )

        thread = self.engine.list_thread(self.story.id, chapter_id=self.chapter2.id)
        self.assertEqual([node['comment'].id for node in thread], [chapter_comment.id])

    def test_reply_to_reply_joins_the_top_level_thread(self):
        third = User.objects.create_user('third', 't@test.com', 'pass')
        top = self.engine.post_comment(self.reader.id, self.story.id, 'Top')
        reply = self.engine.post_comment(self.other.id, self.story.id, 'Reply', parent_id=top.id)
        nested = self.engine.post_comment(third.id, self.story.id, 'Reply to reply', parent_id=reply.id)

        self.assertEqual(nested.parent_id, top.id)
        thread = self.engine.list_thread(self.story.id)
        self.assertEqual([node['comment'].id for node in thread], [top.id])
        self.assertEqual([r.id for r in thread[0]['replies']], [reply.id, nested.id])

        top.refresh_from_db()
        reply.refresh_from_db()
        self.assertEqual(top.replies_count, 2)
        self.assertEqual(reply.replies_count, 0)
        self.assertTrue(
            Notification.objects.filter(
                recipient=self.other, type=Notification.Type.REPLY_COMMENT
            ).exists()
        )

    def test_top_level_comments_newest_first_and_paged(self):
        comments = [
            self.engine.post_comment(self.reader.id, self.story.id, f'c{i}')
            for i in range(5)
        ]
        newest_first = [c.id for c in reversed(comments)]

        thread = self.engine.list_thread(self.story.id)
        self.assertEqual([node['comment'].id for node in thread], newest_first)

        first_page = self.engine.list_thread(self.story.id, limit=2, offset=0)
        second_page = self.engine.list_thread(self.story.id, limit=2, offset=2)
        last_page = self.engine.list_thread(self.story.id, limit=2, offset=4)
        self.assertEqual([node['comment'].id for node in first_page], newest_first[:2])
        self.assertEqual([node['comment'].id for node in second_page], newest_first[2:4])
        self.assertEqual([node['comment'].id for node in last_page], newest_first[4:])
        self.assertEqual(self.engine.list_thread(self.story.id, limit=2, offset=5), [])

    def test_deleted_reply_left_out_of_preview(self):
        parent = self.engine.post_comment(self.reader.id, self.story.id, 'Thread')
        kept = self.engine.post_comment(self.other.id, self.story.id, 'Kept', parent_id=parent.id)
        removed = self.engine.post_comment(self.other.id, self.story.id, 'Removed', parent_id=parent.id)
        latest = self.engine.post_comment(self.author.id, self.story.id, 'Latest', parent_id=parent.id)

        self.engine.delete_comment(self.other.id, removed.id)

        thread = self.engine.list_thread(self.story.id)
        self.assertEqual([r.id for r in thread[0]['replies']], [kept.id, latest.id])
        parent.refresh_from_db()
        self.assertEqual(parent.replies_count, 2)

    def test_no_n_plus_one_queries(self):
        """Story lookup + top-level page + replies, however many comments."""
        for i in range(10):
            parent = self.engine.post_comment(self.reader.id, self.story.id, f'c{i}')
            for j in range(3):
                self.engine.post_comment(self.other.id, self.story.id, f'r{j}', parent_id=parent.id)

        with CaptureQueriesContext(connection) as context:
            thread = self.engine.list_thread(self.story.id)
            for node in thread:
                node['comment'].user.profile.full_name
                for reply in node['replies']:
                    reply.user.profile.full_name

        self.assertEqual(len(thread), 10)
        self.assertLessEqual(len(context), 3,
            f"Expected ≤3 queries, got {len(context)}. Queries: {[q['sql'][:100] for q in context]}")


class NotificationFanoutTestCase(EngagementTestMixin, TestCase):

    def setUp(self):
        self.make_fixtures()

    def test_like_notifies_once_unlike_does_not(self):
        self.engine.toggle_like(self.reader.id, 'story', self.story.id)
        self.assertEqual(Notification.objects.filter(recipient=self.author).count(), 1)

        self.engine.toggle_like(self.reader.id, 'story', self.story.id)
        self.assertEqual(Notification.objects.filter(recipient=self.author).count(), 1)

    def test_liking_own_content_does_not_notify(self):
        self.engine.toggle_like(self.author.id, 'story', self.story.id)
        self.assertEqual(Notification.objects.count(), 0)

    def test_comment_and_reply_notifications(self):
        parent = self.engine.post_comment(self.reader.id, self.story.id, 'Nice')
        self.engine.post_comment(self.other.id, self.story.id, 'Yes', parent_id=parent.id)

        self.assertEqual(
            Notification.objects.filter(recipient=self.author, type=Notification.Type.COMMENT_STORY).count(),
            2
        )
        self.assertEqual(
            Notification.objects.filter(recipient=self.reader, type=Notification.Type.REPLY_COMMENT).count(),
            1
        )

    def test_publish_fans_out_in_one_bulk_write(self):
        followers = [
            User.objects.create_user(f'fan{i}', f'f{i}@test.com', 'pass')
            for i in range(4)
        ]
        for follower in followers:
            self.engine.toggle_follow(follower.id, self.author.id)
        Notification.objects.all().delete()

        writer = Mock(wraps=NotificationWriter())
        engine = EngagementEngine(notification_writer=writer)
        written = engine.publish_chapter(self.author.id, self.story.id, self.chapter.id)

        self.assertEqual(written, 4)
        self.assertEqual(writer.write_many.call_count, 1)
        self.assertEqual(
            set(Notification.objects.values_list('recipient_id', flat=True)),
            {f.id for f in followers}
        )
        self.assertFalse(Notification.objects.filter(recipient=self.author).exists())

    def test_publish_without_followers_writes_nothing(self):
        self.assertEqual(self.engine.publish_chapter(self.author.id, self.story.id, self.chapter.id), 0)
        self.assertEqual(Notification.objects.count(), 0)

    def test_publish_by_non_author_forbidden(self):
        with self.assertRaises(Forbidden):
            self.engine.publish_chapter(self.reader.id, self.story.id, self.chapter.id)

    def test_publish_chapter_of_other_story(self):
        other_story = Story.objects.create(author=self.author, title='Second')
        with self.assertRaises(NotFound):
            self.engine.publish_chapter(self.author.id, other_story.id, self.chapter.id)

    def test_mark_all_as_read_and_cleanup(self):
        self.engine.toggle_like(self.reader.id, 'story', self.story.id)
        self.engine.toggle_follow(self.reader.id, self.author.id)

        self.assertEqual(mark_all_as_read(self.author.id), 2)
        self.assertFalse(Notification.objects.filter(recipient=self.author, is_read=False).exists())

        Notification.objects.update(expires_at=timezone.now() - timedelta(days=1))
        self.assertEqual(cleanup_expired(), 2)


class BestEffortTestCase(EngagementTestMixin, TestCase):
    """A failing counter or notification write never fails the action."""

    def setUp(self):
        self.make_fixtures()

    def test_notification_failure_keeps_like(self):
        writer = Mock(spec=NotificationWriter)
        writer.write.side_effect = DatabaseError('notification store down')
        engine = EngagementEngine(notification_writer=writer)

        with self.assertLogs('engagement.engine', level='WARNING'):
            result = engine.toggle_like(self.reader.id, 'story', self.story.id)

        self.assertTrue(result.active)
        self.assertTrue(Like.objects.filter(user=self.reader, target_id=self.story.id).exists())
        self.story.refresh_from_db()
        self.assertEqual(self.story.total_likes, 1)

    def test_counter_failure_keeps_like(self):
        store = Mock(spec=CounterStore)
        store.increment.side_effect = DatabaseError('counter store down')
        engine = EngagementEngine(counter_store=store)

        with self.assertLogs('engagement.engine', level='WARNING'):
            result = engine.toggle_like(self.reader.id, 'story', self.story.id)

        self.assertTrue(result.active)
        self.assertTrue(engine.check_liked(self.reader.id, 'story', self.story.id))
        self.assertEqual(Notification.objects.filter(recipient=self.author).count(), 1)

    def test_recompute_failure_keeps_rating(self):
        engine = EngagementEngine()
        with patch.object(engine.ratings, 'recompute', side_effect=DatabaseError('boom')):
            with self.assertLogs('engagement.engine', level='WARNING'):
                rating = engine.submit_rating(self.reader.id, self.story.id, 4)

        self.assertEqual(Rating.objects.get(id=rating.id).value, 4)

    def test_fanout_failure_returns_zero(self):
        Follow.objects.create(follower=self.reader, following=self.author)
        writer = Mock(spec=NotificationWriter)
        writer.write_many.side_effect = DatabaseError('bulk insert failed')
        engine = EngagementEngine(notification_writer=writer)

        with self.assertLogs('engagement.engine', level='WARNING'):
            written = engine.publish_chapter(self.author.id, self.story.id, self.chapter.id)

        self.assertEqual(written, 0)


class EngagementAPITestCase(EngagementTestMixin, TestCase):
    """Handler adapter: requests in, engine results and error codes out."""

    def setUp(self):
        self.make_fixtures()
        self.client = APIClient()
        self.client.force_authenticate(user=self.reader)

    def test_like_toggle_endpoint(self):
        response = self.client.post(f'/api/likes/story/{self.story.id}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'active': True, 'action': 'created'})

        response = self.client.get(f'/api/likes/check/story/{self.story.id}/')
        self.assertEqual(response.json(), {'liked': True})

        response = self.client.get('/api/likes/stories/')
        self.assertEqual([s['id'] for s in response.json()['results']], [self.story.id])

    def test_bad_target_type_is_400(self):
        response = self.client.post(f'/api/likes/poem/{self.story.id}/')
        self.assertEqual(response.status_code, 400)

    def test_missing_target_is_404(self):
        response = self.client.post('/api/likes/comment/999999/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['code'], 'not_found')

    def test_self_follow_is_400(self):
        response = self.client.post(f'/api/follows/{self.reader.id}/')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'self_reference')

    def test_comment_endpoints(self):
        response = self.client.post(
            f'/api/stories/{self.story.id}/comments/',
            {'content': 'Wonderful', 'chapter': self.chapter.id},
            format='json'
        )
        self.assertEqual(response.status_code, 201)
        comment_id = response.json()['id']

        response = self.client.get(f'/api/stories/{self.story.id}/comments/?chapter={self.chapter.id}')
        self.assertEqual(response.json()['results'][0]['comment']['id'], comment_id)

        response = self.client.delete(f'/api/comments/{comment_id}/')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['is_deleted'])

    def test_empty_or_long_comment_rejected(self):
        for content in ('', ' ', 'x' * 1001):
            response = self.client.post(
                f'/api/stories/{self.story.id}/comments/', {'content': content}, format='json'
            )
            self.assertEqual(response.status_code, 400)

    def test_rating_endpoints(self):
        response = self.client.post(f'/api/stories/{self.story.id}/rating/', {'rating': 6}, format='json')
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            f'/api/stories/{self.story.id}/rating/',
            {'rating': 4, 'review': 'Atmospheric'},
            format='json'
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['rating_count'], 1)

        response = self.client.get(f'/api/stories/{self.story.id}/ratings/')
        self.assertEqual(len(response.json()['results']), 1)

        response = self.client.delete(f'/api/stories/{self.story.id}/rating/')
        self.assertEqual(response.status_code, 204)

    def test_publish_by_non_author_is_403(self):
        response = self.client.post(
            f'/api/stories/{self.story.id}/chapters/{self.chapter.id}/publish/'
        )
        self.assertEqual(response.status_code, 403)

    def test_notification_endpoints(self):
        self.engine.toggle_follow(self.author.id, self.reader.id)

        response = self.client.get('/api/notifications/unread-count/')
        self.assertEqual(response.json(), {'unread_count': 1})

        response = self.client.get('/api/notifications/')
        notification_id = response.json()['results'][0]['id']

        response = self.client.post(f'/api/notifications/{notification_id}/read/')
        self.assertTrue(response.json()['is_read'])
        self.assertEqual(self.client.get('/api/notifications/unread-count/').json(), {'unread_count': 0})

    def test_suggested_users_endpoint_respects_page_limit(self):
        self.engine.toggle_follow(self.other.id, self.author.id)

        response = self.client.get('/api/follows/suggested/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            [u['id'] for u in response.json()['results']],
            [self.author.id, self.other.id]
        )

        with self.settings(ENGAGEMENT={'THREAD_PAGE_LIMIT_MAX': 1}):
            response = self.client.get('/api/follows/suggested/?limit=50')
        self.assertEqual([u['id'] for u in response.json()['results']], [self.author.id])

    def test_anonymous_write_rejected(self):
        response = APIClient().post(f'/api/likes/story/{self.story.id}/')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(Like.objects.count(), 0)

    def test_liked_stories_query_order(self):
        second = Story.objects.create(author=self.author, title='Second')
        self.engine.toggle_like(self.reader.id, 'story', self.story.id)
        self.engine.toggle_like(self.reader.id, 'story', second.id)

        self.assertEqual(
            [s.id for s in get_user_liked_stories(self.reader.id)],
            [second.id, self.story.id]
        )
