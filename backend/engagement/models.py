"""
PHASE 1: Data Models for StoryHub Engagement
=============================================

Design Philosophy:
------------------
1. Story/Chapter/Comment/Profile carry denormalized counters
   - Mutated only by counters.CounterSynchronizer and ratings.RatingAggregator
   - Request handlers never write them directly
   - Counters are a cache of derived state; reconcile_counters rebuilds them

2. Likes use a tagged target: (target_type, target_id)
   - One discriminant + one id, so a like always points at exactly one thing
   - Unique constraint (user, target_type, target_id) is the source of truth
     for the double-toggle race

3. Follows are physically deleted on unfollow
   - Unique (follower, following) and follower != following enforced at DB level

4. Comments are soft deleted
   - Content replaced by a tombstone, row kept so reply chains stay navigable

5. Notifications are append-only side effects
   - Created after the triggering write has committed, never mutate other rows

Indexes Strategy:
-----------------
- like.user + like.target_type + like.target_id: uniqueness + "did I like this"
- comment.story + comment.chapter + comment.created_at: thread listing
- comment.parent + comment.created_at: reply previews
- follow.following + follow.is_active: chapter fan-out reads
- notification.recipient + notification.is_read: unread badge
"""

from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class Profile(models.Model):
    """
    Per-user engagement counters.

    The stock auth User has no room for follower counts, so they live here.
    Created by signals.create_profile whenever a User is created.
    """
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='profile'
    )
    full_name = models.CharField(max_length=150, blank=True)

    followers_count = models.PositiveIntegerField(default=0)
    following_count = models.PositiveIntegerField(default=0)

    def __str__(self):
        return self.display_name

    @property
    def display_name(self):
        return self.full_name or self.user.username


class Story(models.Model):
    """A serialized story. Parent of chapters, target of likes/comments/ratings."""

    class Status(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        ONGOING = 'ongoing', 'Ongoing'
        COMPLETED = 'completed', 'Completed'
        ON_HOLD = 'on-hold', 'On hold'
        DISCONTINUED = 'discontinued', 'Discontinued'

    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='stories',
        db_index=True
    )
    title = models.CharField(max_length=200)
    description = models.TextField(max_length=1000, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Denormalized counters
    total_likes = models.PositiveIntegerField(default=0, db_index=True)
    total_comments = models.PositiveIntegerField(default=0)
    average_rating = models.DecimalField(
        max_digits=2,
        decimal_places=1,
        default=Decimal('0.0'),
        db_index=True
    )
    rating_count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['-created_at']
        verbose_name_plural = 'stories'

    def __str__(self):
        return self.title


class Chapter(models.Model):
    """One installment of a story."""

    class Status(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        PUBLISHED = 'published', 'Published'
        SCHEDULED = 'scheduled', 'Scheduled'

    story = models.ForeignKey(
        Story,
        on_delete=models.CASCADE,
        related_name='chapters'
    )
    title = models.CharField(max_length=200)
    chapter_number = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT
    )
    published_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    # Denormalized counters
    likes = models.PositiveIntegerField(default=0, db_index=True)
    comments_count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['story', 'chapter_number']
        constraints = [
            models.UniqueConstraint(
                fields=['story', 'chapter_number'],
                name='unique_chapter_number_per_story'
            )
        ]

    def __str__(self):
        return f"Chapter {self.chapter_number}: {self.title}"


# Written over the content of a soft-deleted comment
COMMENT_TOMBSTONE = '[This comment has been deleted]'


class Comment(models.Model):
    """
    Story- or chapter-level comment, optionally a reply to another comment.

    chapter=None means the comment targets the story as a whole.
    parent set means the comment is a reply; parent.replies_count is the
    denormalized size of the reply list.
    """
    content = models.TextField(max_length=1000)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='comments'
    )
    story = models.ForeignKey(
        Story,
        on_delete=models.CASCADE,
        related_name='comments',
        db_index=True
    )
    chapter = models.ForeignKey(
        Chapter,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='comments'
    )
    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='replies',
        db_index=True
    )

    likes = models.PositiveIntegerField(default=0)
    replies_count = models.PositiveIntegerField(default=0)

    is_edited = models.BooleanField(default=False)
    edited_at = models.DateTimeField(null=True, blank=True)
    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['story', 'chapter', '-created_at'], name='comment_thread_idx'),
            models.Index(fields=['parent', 'created_at'], name='comment_reply_idx'),
        ]

    def __str__(self):
        return f"Comment by {self.user_id} on story {self.story_id}"

    @property
    def is_reply(self):
        return self.parent_id is not None


class TargetType(models.TextChoices):
    STORY = 'story', 'Story'
    CHAPTER = 'chapter', 'Chapter'
    COMMENT = 'comment', 'Comment'


class Like(models.Model):
    """
    A user's like on exactly one story, chapter or comment.

    CONCURRENCY STRATEGY:
    - Unique constraint (user, target_type, target_id) enforced at DB level
    - Two racing creates: one wins, the other gets IntegrityError and
      relationships.RelationshipStore reports "already active"
    - Physically deleted on unlike
    """
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='likes'
    )
    target_type = models.CharField(max_length=10, choices=TargetType.choices)
    target_id = models.PositiveBigIntegerField()
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'target_type', 'target_id'],
                name='unique_like_per_user_per_target'
            )
        ]
        indexes = [
            models.Index(fields=['target_type', 'target_id'], name='like_target_idx'),
            models.Index(fields=['user', 'target_type', '-created_at'], name='like_user_recent_idx'),
        ]

    def __str__(self):
        return f"{self.user_id} liked {self.target_type} {self.target_id}"


class Follow(models.Model):
    """follower -> following. Physically deleted on unfollow."""
    follower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='following_set'
    )
    following = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='follower_set'
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['follower', 'following'],
                name='unique_follow_pair'
            ),
            models.CheckConstraint(
                condition=~Q(follower=F('following')),
                name='follow_not_self'
            ),
        ]
        indexes = [
            models.Index(fields=['following', 'is_active'], name='follow_fanout_idx'),
            models.Index(fields=['follower', '-created_at'], name='follow_recent_idx'),
        ]

    def __str__(self):
        return f"{self.follower_id} follows {self.following_id}"


class Rating(models.Model):
    """One 1..5 rating per (user, story). Source of Story.average_rating."""
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='ratings'
    )
    story = models.ForeignKey(
        Story,
        on_delete=models.CASCADE,
        related_name='ratings'
    )
    value = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    review = models.TextField(max_length=1000, blank=True, default='')
    is_anonymous = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'story'],
                name='unique_rating_per_user_per_story'
            ),
            models.CheckConstraint(
                condition=Q(value__gte=1) & Q(value__lte=5),
                name='rating_value_range'
            ),
        ]
        indexes = [
            models.Index(fields=['story', 'value'], name='rating_story_value_idx'),
        ]

    def __str__(self):
        return f"{self.user_id} rated story {self.story_id}: {self.value}"


class Notification(models.Model):
    """
    Derived event for one recipient.

    `data` holds the ids the notification refers to:
    {'story': id, 'chapter': id, 'comment': id, 'user': id} (any subset).
    """

    class Type(models.TextChoices):
        FOLLOW = 'follow', 'Follow'
        UNFOLLOW = 'unfollow', 'Unfollow'
        LIKE_STORY = 'like_story', 'Story liked'
        LIKE_CHAPTER = 'like_chapter', 'Chapter liked'
        LIKE_COMMENT = 'like_comment', 'Comment liked'
        COMMENT_STORY = 'comment_story', 'Story comment'
        COMMENT_CHAPTER = 'comment_chapter', 'Chapter comment'
        REPLY_COMMENT = 'reply_comment', 'Comment reply'
        NEW_CHAPTER = 'new_chapter', 'New chapter'
        STORY_PUBLISHED = 'story_published', 'Story published'
        STORY_FEATURED = 'story_featured', 'Story featured'
        MENTION = 'mention', 'Mention'
        SYSTEM = 'system', 'System'

    class Priority(models.TextChoices):
        LOW = 'low', 'Low'
        MEDIUM = 'medium', 'Medium'
        HIGH = 'high', 'High'

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications'
    )
    # None for system notifications
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sent_notifications'
    )
    type = models.CharField(max_length=20, choices=Type.choices)
    title = models.CharField(max_length=100)
    message = models.CharField(max_length=500)
    data = models.JSONField(default=dict, blank=True)
    action_url = models.CharField(max_length=255, null=True, blank=True)
    priority = models.CharField(
        max_length=10,
        choices=Priority.choices,
        default=Priority.MEDIUM
    )

    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['recipient', 'is_read'], name='notif_unread_idx'),
            models.Index(fields=['recipient', '-created_at'], name='notif_recent_idx'),
            models.Index(fields=['expires_at'], name='notif_expiry_idx'),
        ]

    def __str__(self):
        return f"{self.type} -> {self.recipient_id}"

    def mark_as_read(self):
        if self.is_read:
            return
        self.is_read = True
        self.read_at = timezone.now()
        self.save(update_fields=['is_read', 'read_at'])

    def is_expired(self):
        return self.expires_at is not None and self.expires_at < timezone.now()
