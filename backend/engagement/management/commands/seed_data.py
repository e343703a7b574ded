"""
Management command to seed the database with sample data.

Every like, follow, comment and rating goes through EngagementEngine, so
the seeded counters and notifications are exactly what real traffic
would produce.

Usage: python manage.py seed_data
"""

import random
from datetime import timedelta
from django.core.management.base import BaseCommand
from django.contrib.auth.models import User
from django.utils import timezone

from engagement.engine import get_engine
from engagement.models import (
    Chapter, Comment, Follow, Like, Notification, Rating, Story
)


class Command(BaseCommand):
    help = 'Seed the database with sample data for testing'

    def add_arguments(self, parser):
        parser.add_argument(
            '--users',
            type=int,
            default=10,
            help='Number of users to create'
        )
        parser.add_argument(
            '--stories',
            type=int,
            default=8,
            help='Number of stories to create'
        )
        parser.add_argument(
            '--comments',
            type=int,
            default=60,
            help='Number of comments to create'
        )
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding'
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            Notification.objects.all().delete()
            Rating.objects.all().delete()
            Like.objects.all().delete()
            Follow.objects.all().delete()
            Comment.objects.all().delete()
            Chapter.objects.all().delete()
            Story.objects.all().delete()
            User.objects.filter(is_superuser=False).delete()

        engine = get_engine()

        self.stdout.write('Creating users...')
        users = self._create_users(options['users'])

        self.stdout.write('Creating follows...')
        self._create_follows(engine, users)

        self.stdout.write('Creating stories and chapters...')
        stories, chapters = self._create_stories(engine, users, options['stories'])

        self.stdout.write('Creating comments...')
        comments = self._create_comments(engine, users, stories, chapters, options['comments'])

        self.stdout.write('Creating likes and ratings...')
        self._create_likes(engine, users, stories, chapters, comments)
        self._create_ratings(engine, users, stories)

        self.stdout.write(self.style.SUCCESS(
            f'Successfully created:\n'
            f'  - {len(users)} users\n'
            f'  - {len(stories)} stories, {len(chapters)} chapters\n'
            f'  - {len(comments)} comments\n'
            f'  - Follows, likes, ratings and notifications'
        ))

    def _create_users(self, count):
        users = []
        for i in range(count):
            username = f'reader{i+1}'
            user = User.objects.filter(username=username).first()
            if user is None:
                user = User.objects.create_user(
                    username=username,
                    email=f'{username}@example.com',
                    password='password123'
                )
                user.profile.full_name = f'Reader {i+1}'
                user.profile.save(update_fields=['full_name'])
            users.append(user)
        return users

    def _create_follows(self, engine, users):
        for user in users:
            for target in random.sample(users, k=min(3, len(users))):
                if target.id != user.id and not engine.is_following(user.id, target.id):
                    engine.toggle_follow(user.id, target.id)

    def _create_stories(self, engine, users, count):
        titles = [
            "The Lighthouse Keeper",
            "Salt and Iron",
            "A Map of Small Hours",
            "Under the Glass Sky",
            "The Ninth Orchard",
            "Letters to the Tide",
        ]
        stories, chapters = [], []
        for i in range(count):
            author = random.choice(users)
            story = Story.objects.create(
                author=author,
                title=f"{random.choice(titles)} #{i+1}",
                description='Seeded story.',
                status=Story.Status.ONGOING,
                created_at=timezone.now() - timedelta(hours=random.randint(0, 72))
            )
            stories.append(story)
            for number in range(1, random.randint(2, 4)):
                chapter = Chapter.objects.create(
                    story=story,
                    title=f'Part {number}',
                    chapter_number=number,
                    status=Chapter.Status.PUBLISHED,
                    published_at=timezone.now()
                )
                chapters.append(chapter)
                engine.publish_chapter(author.id, story.id, chapter.id)
        return stories, chapters

    def _create_comments(self, engine, users, stories, chapters, count):
        comment_texts = [
            "Couldn't stop reading!",
            "The pacing in this part is perfect.",
            "Who else saw that twist coming?",
            "Waiting for the next chapter.",
            "This character deserves better.",
            "Beautifully written.",
        ]
        comments = []
        for _ in range(count):
            story = random.choice(stories)
            story_chapters = [c for c in chapters if c.story_id == story.id]
            chapter = random.choice(story_chapters + [None])

            # 30% chance of replying to an existing top-level comment
            parent = None
            candidates = [
                c for c in comments
                if c.story_id == story.id and c.parent_id is None
                and c.chapter_id == (chapter.id if chapter else None)
            ]
            if candidates and random.random() < 0.3:
                parent = random.choice(candidates)

            comment = engine.post_comment(
                random.choice(users).id,
                story.id,
                random.choice(comment_texts),
                chapter_id=chapter.id if chapter else None,
                parent_id=parent.id if parent else None
            )
            comments.append(comment)
        return comments

    def _create_likes(self, engine, users, stories, chapters, comments):
        targets = (
            [('story', s.id) for s in stories]
            + [('chapter', c.id) for c in chapters]
            + [('comment', c.id) for c in comments if random.random() < 0.3]
        )
        for target_type, target_id in targets:
            for liker in random.sample(users, k=max(1, len(users) // 2)):
                if not engine.check_liked(liker.id, target_type, target_id):
                    engine.toggle_like(liker.id, target_type, target_id)

    def _create_ratings(self, engine, users, stories):
        for story in stories:
            for rater in random.sample(users, k=max(1, len(users) // 3)):
                engine.submit_rating(
                    rater.id,
                    story.id,
                    random.randint(1, 5),
                    review=random.choice(['', 'Loved it.', 'Slow start, great ending.'])
                )
