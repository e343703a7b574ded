"""
PHASE 9: DRF Serializers
========================

Serializers handle:
1. Shape validation of incoming data (lengths, ranges, choices)
2. Transformation of model instances and engine results to JSON

Existence, ownership and self-reference checks are NOT done here. They
belong to the engine, which reports them as NotFound / Forbidden /
SelfReference and the exception handler maps them to status codes.
"""

from django.contrib.auth.models import User
from rest_framework import serializers

from .models import Comment, Notification, Profile, Rating, Story, TargetType
from .ratings import MAX_RATING, MIN_RATING

COMMENT_MAX_LENGTH = 1000
REVIEW_MAX_LENGTH = 1000


class UserSerializer(serializers.ModelSerializer):
    """Minimal user representation for embedding in other objects."""
    full_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'username', 'full_name']
        read_only_fields = fields

    def get_full_name(self, obj):
        try:
            return obj.profile.full_name
        except Profile.DoesNotExist:
            return ''


class StorySerializer(serializers.ModelSerializer):
    author = UserSerializer(read_only=True)

    class Meta:
        model = Story
        fields = [
            'id',
            'title',
            'description',
            'status',
            'author',
            'total_likes',
            'total_comments',
            'average_rating',
            'rating_count',
            'created_at'
        ]
        read_only_fields = fields


# ============================================================================
# LIKES / FOLLOWS
# ============================================================================

class LikeTargetSerializer(serializers.Serializer):
    """Validates the URL kwargs of the like endpoints."""
    target_type = serializers.ChoiceField(choices=TargetType.choices)
    target_id = serializers.IntegerField(min_value=1)


class ToggleResultSerializer(serializers.Serializer):
    active = serializers.BooleanField()
    action = serializers.CharField()


# ============================================================================
# COMMENTS
# ============================================================================

class CommentSerializer(serializers.ModelSerializer):
    """
    Single comment. A soft-deleted comment shows the tombstone text and
    is_deleted=True; its replies are still listed by the thread view.
    """
    user = UserSerializer(read_only=True)

    class Meta:
        model = Comment
        fields = [
            'id',
            'content',
            'user',
            'story',
            'chapter',
            'parent',
            'likes',
            'replies_count',
            'is_edited',
            'is_deleted',
            'created_at'
        ]
        read_only_fields = fields


class CommentThreadSerializer(serializers.Serializer):
    """
    One node of CommentThreadManager.list_thread():
    {"comment": {...}, "replies": [{...}, ...]}

    Replies are one level deep, so no recursion.
    """
    comment = CommentSerializer()
    replies = CommentSerializer(many=True)


class CommentCreateSerializer(serializers.Serializer):
    content = serializers.CharField(max_length=COMMENT_MAX_LENGTH)
    chapter = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    parent = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class CommentEditSerializer(serializers.Serializer):
    content = serializers.CharField(max_length=COMMENT_MAX_LENGTH)


class ThreadQuerySerializer(serializers.Serializer):
    chapter = serializers.IntegerField(min_value=1, required=False)
    limit = serializers.IntegerField(min_value=1, required=False, default=20)
    offset = serializers.IntegerField(min_value=0, required=False, default=0)


# ============================================================================
# RATINGS
# ============================================================================

class RatingInputSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=MIN_RATING, max_value=MAX_RATING)
    review = serializers.CharField(
        max_length=REVIEW_MAX_LENGTH,
        required=False,
        allow_blank=True,
        default=''
    )
    is_anonymous = serializers.BooleanField(required=False, default=False)


class RatingSerializer(serializers.ModelSerializer):
    """Anonymous ratings hide the rater."""
    user = serializers.SerializerMethodField()

    class Meta:
        model = Rating
        fields = ['id', 'story', 'value', 'review', 'is_anonymous', 'user', 'created_at', 'updated_at']
        read_only_fields = fields

    def get_user(self, obj):
        if obj.is_anonymous:
            return None
        return UserSerializer(obj.user).data


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class NotificationSerializer(serializers.ModelSerializer):
    sender = UserSerializer(read_only=True)

    class Meta:
        model = Notification
        fields = [
            'id',
            'type',
            'title',
            'message',
            'data',
            'action_url',
            'priority',
            'sender',
            'is_read',
            'read_at',
            'created_at'
        ]
        read_only_fields = fields
