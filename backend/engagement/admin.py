"""
Django Admin Configuration for Engagement Models

Denormalized counters are read-only here. Fix drift with
`manage.py reconcile_counters`, not by hand.
"""
from django.contrib import admin
from .models import Profile, Story, Chapter, Comment, Like, Follow, Rating, Notification


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ['user', 'full_name', 'followers_count', 'following_count']
    search_fields = ['user__username', 'full_name']
    readonly_fields = ['followers_count', 'following_count']


@admin.register(Story)
class StoryAdmin(admin.ModelAdmin):
    list_display = ['title', 'author', 'status', 'total_likes', 'total_comments',
                    'average_rating', 'rating_count', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['title', 'author__username']
    readonly_fields = ['total_likes', 'total_comments', 'average_rating', 'rating_count',
                       'created_at', 'updated_at']


@admin.register(Chapter)
class ChapterAdmin(admin.ModelAdmin):
    list_display = ['story', 'chapter_number', 'title', 'status', 'likes', 'comments_count']
    list_filter = ['status']
    search_fields = ['title', 'story__title']
    readonly_fields = ['likes', 'comments_count', 'created_at']


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ['id', 'story', 'chapter', 'user', 'parent', 'likes', 'replies_count',
                    'is_deleted', 'created_at']
    list_filter = ['is_deleted', 'is_edited', 'created_at']
    search_fields = ['content', 'user__username']
    readonly_fields = ['likes', 'replies_count', 'created_at', 'updated_at']


@admin.register(Like)
class LikeAdmin(admin.ModelAdmin):
    list_display = ['user', 'target_type', 'target_id', 'created_at']
    list_filter = ['target_type', 'created_at']
    search_fields = ['user__username']


@admin.register(Follow)
class FollowAdmin(admin.ModelAdmin):
    list_display = ['follower', 'following', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['follower__username', 'following__username']


@admin.register(Rating)
class RatingAdmin(admin.ModelAdmin):
    list_display = ['user', 'story', 'value', 'is_anonymous', 'created_at']
    list_filter = ['value']
    search_fields = ['user__username', 'story__title']


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['recipient', 'sender', 'type', 'title', 'is_read', 'created_at']
    list_filter = ['type', 'is_read', 'priority']
    search_fields = ['recipient__username', 'title']
    readonly_fields = ['created_at', 'read_at']

    def has_add_permission(self, request):
        # Notifications are derived from actions
        return False
