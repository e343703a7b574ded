"""
PHASE 9: DRF Views
==================

Thin adapter over EngagementEngine. A view:
1. validates the request shape with a serializer
2. calls ONE engine operation (or a read query)
3. serializes the result

Views never catch engine errors. NotFound / InvalidArgument / SelfReference /
Forbidden / Conflict propagate to exceptions.custom_exception_handler, which
turns them into 404 / 400 / 403 / 409.

AUTHENTICATION NOTE:
--------------------
Session authentication (settings.REST_FRAMEWORK). Issuing credentials is
outside this app; every write endpoint requires an authenticated user.
"""

from rest_framework import generics, permissions, status
from rest_framework.pagination import CursorPagination
from rest_framework.response import Response
from rest_framework.views import APIView
from django.shortcuts import get_object_or_404

from .conf import engagement_setting
from .engine import get_engine
from .models import Notification
from .notifications import mark_all_as_read
from .queries import (
    get_followers,
    get_following,
    get_story_ratings,
    get_suggested_users,
    get_unread_count,
    get_user_liked_stories,
    get_user_notifications,
    get_user_rating,
)
from .ratings import RatingAggregator
from .serializers import (
    CommentCreateSerializer,
    CommentEditSerializer,
    CommentSerializer,
    CommentThreadSerializer,
    LikeTargetSerializer,
    NotificationSerializer,
    RatingInputSerializer,
    RatingSerializer,
    StorySerializer,
    ThreadQuerySerializer,
    ToggleResultSerializer,
    UserSerializer,
)


def page_params(request, default_limit=20):
    """limit/offset from the query string, clamped; bad values fall back to defaults."""
    try:
        limit = min(
            max(int(request.query_params.get('limit', default_limit)), 1),
            engagement_setting('THREAD_PAGE_LIMIT_MAX')
        )
        offset = max(int(request.query_params.get('offset', 0)), 0)
    except ValueError:
        limit = default_limit
        offset = 0
    return limit, offset


# ============================================================================
# LIKES
# ============================================================================

class LikeToggleView(APIView):
    """
    POST /api/likes/<target_type>/<target_id>/

    Like or unlike a story, chapter or comment.

    Returns:
    {
        "active": true | false,
        "action": "created" | "removed" | "already_exists" | "already_removed"
    }
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, target_type, target_id):
        target = LikeTargetSerializer(data={'target_type': target_type, 'target_id': target_id})
        target.is_valid(raise_exception=True)

        result = get_engine().toggle_like(
            request.user.id,
            target.validated_data['target_type'],
            target.validated_data['target_id']
        )
        return Response(ToggleResultSerializer(result).data)


class LikeCheckView(APIView):
    """GET /api/likes/check/<target_type>/<target_id>/"""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, target_type, target_id):
        target = LikeTargetSerializer(data={'target_type': target_type, 'target_id': target_id})
        target.is_valid(raise_exception=True)

        liked = get_engine().check_liked(
            request.user.id,
            target.validated_data['target_type'],
            target.validated_data['target_id']
        )
        return Response({'liked': liked})


class LikedStoriesView(APIView):
    """GET /api/likes/stories/?limit=&offset="""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        limit, offset = page_params(request)
        stories = get_user_liked_stories(request.user.id, limit=limit, offset=offset)
        return Response({'results': StorySerializer(stories, many=True).data})


# ============================================================================
# FOLLOWS
# ============================================================================

class FollowToggleView(APIView):
    """
    POST /api/follows/<user_id>/

    Following yourself is rejected with 400 before anything is written.
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, user_id):
        result = get_engine().toggle_follow(request.user.id, user_id)
        return Response(ToggleResultSerializer(result).data)

    def get(self, request, user_id):
        return Response({'following': get_engine().is_following(request.user.id, user_id)})


class FollowersView(APIView):
    """GET /api/follows/followers/<user_id>/"""
    permission_classes = [permissions.AllowAny]

    def get(self, request, user_id):
        limit, offset = page_params(request)
        users = get_followers(user_id, limit=limit, offset=offset)
        return Response({'results': UserSerializer(users, many=True).data})


class FollowingView(APIView):
    """GET /api/follows/following/<user_id>/"""
    permission_classes = [permissions.AllowAny]

    def get(self, request, user_id):
        limit, offset = page_params(request)
        users = get_following(user_id, limit=limit, offset=offset)
        return Response({'results': UserSerializer(users, many=True).data})


class SuggestedUsersView(APIView):
    """GET /api/follows/suggested/?limit="""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        limit, _ = page_params(request, default_limit=10)
        users = get_suggested_users(request.user.id, limit=limit)
        return Response({'results': UserSerializer(users, many=True).data})


# ============================================================================
# COMMENTS
# ============================================================================

class CommentThreadView(APIView):
    """
    GET  /api/stories/<story_id>/comments/?chapter=&limit=&offset=
    POST /api/stories/<story_id>/comments/

    Body:
    {
        "content": "Comment text",
        "chapter": 12,   // optional
        "parent": 123    // optional, for replies
    }

    QUERY COUNT (GET): 3
    1. Story existence
    2. Page of top-level comments with authors
    3. Reply previews for that page with authors
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [permissions.AllowAny()]
        return [permissions.IsAuthenticated()]

    def get(self, request, story_id):
        params = ThreadQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        thread = get_engine().list_thread(
            story_id,
            chapter_id=params.validated_data.get('chapter'),
            limit=params.validated_data['limit'],
            offset=params.validated_data['offset']
        )
        return Response({'results': CommentThreadSerializer(thread, many=True).data})

    def post(self, request, story_id):
        serializer = CommentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        comment = get_engine().post_comment(
            request.user.id,
            story_id,
            serializer.validated_data['content'],
            chapter_id=serializer.validated_data.get('chapter'),
            parent_id=serializer.validated_data.get('parent')
        )
        return Response(CommentSerializer(comment).data, status=status.HTTP_201_CREATED)


class CommentDetailView(APIView):
    """
    PATCH  /api/comments/<comment_id>/   edit (writer only)
    DELETE /api/comments/<comment_id>/   soft delete (writer only)
    """
    permission_classes = [permissions.IsAuthenticated]

    def patch(self, request, comment_id):
        serializer = CommentEditSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        comment = get_engine().edit_comment(
            request.user.id,
            comment_id,
            serializer.validated_data['content']
        )
        return Response(CommentSerializer(comment).data)

    def delete(self, request, comment_id):
        comment = get_engine().delete_comment(request.user.id, comment_id)
        return Response(CommentSerializer(comment).data)


# ============================================================================
# RATINGS
# ============================================================================

class StoryRatingView(APIView):
    """
    GET    /api/stories/<story_id>/rating/   the caller's rating (or null)
    POST   /api/stories/<story_id>/rating/   {"rating": 1..5, "review": "..."}
    DELETE /api/stories/<story_id>/rating/
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, story_id):
        rating = get_user_rating(request.user.id, story_id)
        return Response({'rating': RatingSerializer(rating).data if rating else None})

    def post(self, request, story_id):
        serializer = RatingInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        rating = get_engine().submit_rating(
            request.user.id,
            story_id,
            serializer.validated_data['rating'],
            review=serializer.validated_data['review'],
            is_anonymous=serializer.validated_data['is_anonymous']
        )
        return Response({
            'rating': RatingSerializer(rating).data,
            'average_rating': rating.story.average_rating,
            'rating_count': rating.story.rating_count
        })

    def delete(self, request, story_id):
        removed = get_engine().remove_rating(request.user.id, story_id)
        if not removed:
            return Response({'error': 'Rating not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)


class StoryRatingsListView(APIView):
    """
    GET /api/stories/<story_id>/ratings/

    Reviews (ratings with text), newest first, plus the star distribution.
    """
    permission_classes = [permissions.AllowAny]

    def get(self, request, story_id):
        limit, offset = page_params(request)
        ratings = get_story_ratings(story_id, limit=limit, offset=offset)
        return Response({
            'results': RatingSerializer(ratings, many=True).data,
            'distribution': RatingAggregator().distribution(story_id)
        })


# ============================================================================
# CHAPTER PUBLICATION
# ============================================================================

class ChapterPublishView(APIView):
    """
    POST /api/stories/<story_id>/chapters/<chapter_id>/publish/

    Notifies the author's followers. Author only.
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, story_id, chapter_id):
        notified = get_engine().publish_chapter(request.user.id, story_id, chapter_id)
        return Response({'notified': notified})


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class NotificationPagination(CursorPagination):
    """
    Cursor pagination on created_at.

    WHY CURSOR PAGINATION:
    - Offset pagination re-scans skipped rows and shifts when new rows arrive
    - Cursor pagination seeks the (recipient, -created_at) index
    """
    page_size = 20
    ordering = '-created_at'
    cursor_query_param = 'cursor'


class NotificationListView(generics.ListAPIView):
    """GET /api/notifications/?unread=true"""
    serializer_class = NotificationSerializer
    pagination_class = NotificationPagination
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        unread_only = self.request.query_params.get('unread') in ('1', 'true', 'True')
        return get_user_notifications(self.request.user.id, unread_only=unread_only)


class UnreadCountView(APIView):
    """GET /api/notifications/unread-count/"""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        return Response({'unread_count': get_unread_count(request.user.id)})


class NotificationReadView(APIView):
    """POST /api/notifications/<notification_id>/read/"""
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, notification_id):
        notification = get_object_or_404(
            Notification,
            id=notification_id,
            recipient_id=request.user.id
        )
        notification.mark_as_read()
        return Response(NotificationSerializer(notification).data)


class NotificationReadAllView(APIView):
    """POST /api/notifications/read-all/"""
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        return Response({'marked': mark_all_as_read(request.user.id)})
