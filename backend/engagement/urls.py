"""
Engagement App URL Configuration
"""
from django.urls import path
from .views import (
    LikeToggleView,
    LikeCheckView,
    LikedStoriesView,
    FollowToggleView,
    FollowersView,
    FollowingView,
    SuggestedUsersView,
    CommentThreadView,
    CommentDetailView,
    StoryRatingView,
    StoryRatingsListView,
    ChapterPublishView,
    NotificationListView,
    UnreadCountView,
    NotificationReadView,
    NotificationReadAllView
)

urlpatterns = [
    # Likes
    path('likes/stories/', LikedStoriesView.as_view(), name='liked-stories'),
    path('likes/check/<str:target_type>/<int:target_id>/', LikeCheckView.as_view(), name='like-check'),
    path('likes/<str:target_type>/<int:target_id>/', LikeToggleView.as_view(), name='like-toggle'),

    # Follows
    path('follows/followers/<int:user_id>/', FollowersView.as_view(), name='followers'),
    path('follows/following/<int:user_id>/', FollowingView.as_view(), name='following'),
    path('follows/suggested/', SuggestedUsersView.as_view(), name='suggested-users'),
    path('follows/<int:user_id>/', FollowToggleView.as_view(), name='follow-toggle'),

    # Comments
    path('stories/<int:story_id>/comments/', CommentThreadView.as_view(), name='comment-thread'),
    path('comments/<int:comment_id>/', CommentDetailView.as_view(), name='comment-detail'),

    # Ratings
    path('stories/<int:story_id>/rating/', StoryRatingView.as_view(), name='story-rating'),
    path('stories/<int:story_id>/ratings/', StoryRatingsListView.as_view(), name='story-ratings'),

    # Chapters
    path(
        'stories/<int:story_id>/chapters/<int:chapter_id>/publish/',
        ChapterPublishView.as_view(),
        name='chapter-publish'
    ),

    # Notifications
    path('notifications/', NotificationListView.as_view(), name='notifications'),
    path('notifications/unread-count/', UnreadCountView.as_view(), name='notifications-unread-count'),
    path('notifications/read-all/', NotificationReadAllView.as_view(), name='notifications-read-all'),
    path('notifications/<int:notification_id>/read/', NotificationReadView.as_view(), name='notification-read'),
]
