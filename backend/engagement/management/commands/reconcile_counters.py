"""
Management command to rebuild denormalized counters from rows.

Counter deltas are applied after the relationship write commits, so a crash
between the two leaves drift. This is the repair. Story rating aggregates
(average_rating, rating_count) are recomputed from the rating rows as well.

Usage:
    python manage.py reconcile_counters --story 12
    python manage.py reconcile_counters --user 3
    python manage.py reconcile_counters --all
"""

from django.contrib.auth.models import User
from django.core.management.base import BaseCommand, CommandError

from engagement.counters import CounterSynchronizer
from engagement.models import Chapter, Comment, Profile, Story
from engagement.ratings import RatingAggregator
from engagement.repositories import CounterStore


class Command(BaseCommand):
    help = 'Recompute like/comment/follow counters and rating aggregates from the underlying rows'

    def add_arguments(self, parser):
        parser.add_argument(
            '--story',
            type=int,
            action='append',
            default=[],
            help='Story id (with its chapters and comments); repeatable'
        )
        parser.add_argument(
            '--user',
            type=int,
            action='append',
            default=[],
            help='User id for follower/following counts; repeatable'
        )
        parser.add_argument(
            '--all',
            action='store_true',
            help='Reconcile every story and user'
        )

    def handle(self, *args, **options):
        if not (options['all'] or options['story'] or options['user']):
            raise CommandError('Pass --story, --user or --all.')

        counters = CounterSynchronizer(CounterStore())
        ratings = RatingAggregator()

        if options['all']:
            story_ids = list(Story.objects.values_list('id', flat=True))
            user_ids = list(User.objects.values_list('id', flat=True))
        else:
            story_ids = options['story']
            user_ids = options['user']

        for story_id in story_ids:
            if not Story.objects.filter(id=story_id).exists():
                raise CommandError(f'Story {story_id} does not exist.')
            counts = counters.reconcile_story(story_id)
            summary = ratings.recompute(story_id)
            counts.update(average_rating=summary.average, rating_count=summary.count)
            for chapter_id in Chapter.objects.filter(story_id=story_id).values_list('id', flat=True):
                counters.reconcile_chapter(chapter_id)
            for comment_id in Comment.objects.filter(story_id=story_id).values_list('id', flat=True):
                counters.reconcile_comment(comment_id)
            self.stdout.write(f'Story {story_id}: {counts}')

        for user_id in user_ids:
            if not User.objects.filter(id=user_id).exists():
                raise CommandError(f'User {user_id} does not exist.')
            # users created before the profile signal existed have no row
            Profile.objects.get_or_create(user_id=user_id)
            counts = counters.reconcile_user(user_id)
            self.stdout.write(f'User {user_id}: {counts}')

        self.stdout.write(self.style.SUCCESS(
            f'Reconciled {len(story_ids)} stories and {len(user_ids)} users'
        ))
