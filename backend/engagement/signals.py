"""
Django Signals.

Only one: every User gets a Profile row, which holds the follower/following
counters.

Engagement counters are NOT maintained by signals. Signals do not fire on
QuerySet.update() / bulk_create(), and hiding counter writes behind
post_save would make the commit point of an action implicit. The engine
calls CounterSynchronizer explicitly after each committed mutation.
"""

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Profile


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_profile(sender, instance, created, raw=False, **kwargs):
    # fixtures (raw) load their own profiles
    if created and not raw:
        Profile.objects.get_or_create(user=instance)
