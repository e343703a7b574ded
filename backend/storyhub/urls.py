"""
StoryHub URL Configuration
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse


def api_root(request):
    """Root endpoint with API information."""
    return JsonResponse({
        'message': 'StoryHub Engagement API',
        'version': '1.0',
        'endpoints': {
            'likes': '/api/likes/<target_type>/<id>/',
            'follows': '/api/follows/<user_id>/',
            'comments': '/api/stories/<story_id>/comments/',
            'ratings': '/api/stories/<story_id>/rating/',
            'publish': '/api/stories/<story_id>/chapters/<chapter_id>/publish/',
            'notifications': '/api/notifications/',
        },
        'admin': '/admin/',
    })


urlpatterns = [
    path('', api_root, name='api-root'),
    path('admin/', admin.site.urls),
    path('api/', include('engagement.urls')),
]
