"""
Engagement App Configuration
"""
from django.apps import AppConfig


class EngagementConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'engagement'

    def ready(self):
        # Import signals when app is ready
        import engagement.signals  # noqa
