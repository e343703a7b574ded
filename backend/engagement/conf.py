"""
Engine tunables, read from settings.ENGAGEMENT with defaults.
"""
from django.conf import settings

DEFAULTS = {
    # Replies embedded under each top-level comment in a thread listing
    'REPLY_PREVIEW_LIMIT': 5,
    # bulk_create batch size for new-chapter fan-out
    'NOTIFICATION_BATCH_SIZE': 500,
    # Largest limit accepted by thread listings and the paged list endpoints
    'THREAD_PAGE_LIMIT_MAX': 100,
}


def engagement_setting(name):
    overrides = getattr(settings, 'ENGAGEMENT', {}) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
