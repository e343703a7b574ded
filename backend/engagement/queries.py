"""
PHASE 8: Read-side Queries
==========================

Listing functions for the handler layer. Nothing here writes.

THE N+1 PROBLEM:
----------------
Naive approach for a follower page of 20:
    for follow in user.follower_set.all():   # 1 query
        follow.follower.profile.full_name     # 20 + 20 queries

Every function below joins what the serializer reads (select_related) and
returns a concrete list, so the number of queries does not grow with the
page size.

Likes are stored as (target_type, target_id) without a foreign key, so
"stories I liked" is a two-step read: ids from Like, rows from Story, then
re-ordered by like time in Python.
"""

from typing import Optional

from django.contrib.auth.models import User
from django.db.models import Q

from .models import Follow, Like, Notification, Rating, Story, TargetType


def get_user_liked_stories(user_id: int, limit: int = 20, offset: int = 0) -> list[Story]:
    """
    Stories the user liked, most recently liked first.

    Queries: 2
    """
    story_ids = list(
        Like.objects
        .filter(user_id=user_id, target_type=TargetType.STORY)
        .order_by('-created_at', '-id')
        .values_list('target_id', flat=True)[offset:offset + limit]
    )
    stories = Story.objects.select_related('author__profile').in_bulk(story_ids)
    # a story deleted after it was liked leaves a dangling like row
    return [stories[story_id] for story_id in story_ids if story_id in stories]


def get_followers(user_id: int, limit: int = 20, offset: int = 0) -> list[User]:
    follows = (
        Follow.objects
        .filter(following_id=user_id, is_active=True)
        .select_related('follower__profile')
        .order_by('-created_at', '-id')
    )[offset:offset + limit]
    return [follow.follower for follow in follows]


def get_following(user_id: int, limit: int = 20, offset: int = 0) -> list[User]:
    follows = (
        Follow.objects
        .filter(follower_id=user_id, is_active=True)
        .select_related('following__profile')
        .order_by('-created_at', '-id')
    )[offset:offset + limit]
    return [follow.following for follow in follows]


def get_mutual_follows(user_id: int) -> list[User]:
    """Users who follow user_id and are followed back. Query: 1"""
    return list(
        User.objects
        .filter(
            following_set__following_id=user_id,
            following_set__is_active=True,
            follower_set__follower_id=user_id,
            follower_set__is_active=True
        )
        .select_related('profile')
        .distinct()
    )


def get_suggested_users(user_id: int, limit: int = 10) -> list[User]:
    """
    Users followed by the people who follow user_id, minus user_id and
    anyone user_id already follows. A user with no followers gets the most
    followed users instead.

    Query: 2 (follower check + suggestions)
    """
    followers = Follow.objects.filter(following_id=user_id, is_active=True)
    candidates = (
        User.objects
        .filter(is_active=True)
        .exclude(id=user_id)
        .select_related('profile')
    )

    if followers.exists():
        followed_by_followers = Follow.objects.filter(
            follower_id__in=followers.values('follower_id'),
            is_active=True
        ).values('following_id')
        already_following = Follow.objects.filter(
            follower_id=user_id,
            is_active=True
        ).values('following_id')
        candidates = (
            candidates
            .filter(id__in=followed_by_followers)
            .exclude(id__in=already_following)
        )

    return list(candidates.order_by('-profile__followers_count', 'id')[:limit])


def get_story_ratings(story_id: int, limit: int = 20, offset: int = 0) -> list[Rating]:
    """Ratings that carry a written review, newest first."""
    return list(
        Rating.objects
        .filter(story_id=story_id)
        .exclude(Q(review='') | Q(review__isnull=True))
        .select_related('user__profile')
        .order_by('-created_at', '-id')[offset:offset + limit]
    )


def get_user_rating(user_id: int, story_id: int) -> Optional[Rating]:
    return Rating.objects.filter(user_id=user_id, story_id=story_id).first()


def get_user_notifications(user_id: int, unread_only: bool = False):
    """
    Returns a queryset (not a list): the notification list view pages it
    with a cursor on created_at.
    """
    queryset = (
        Notification.objects
        .filter(recipient_id=user_id)
        .select_related('sender__profile')
    )
    if unread_only:
        queryset = queryset.filter(is_read=False)
    return queryset


def get_unread_count(user_id: int) -> int:
    return Notification.objects.filter(recipient_id=user_id, is_read=False).count()
