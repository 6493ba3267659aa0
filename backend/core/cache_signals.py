"""
Cache invalidation signals
Invalidate dashboard metrics when items or ledger rows change
"""
import logging

from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver

from backend.core.cache_utils import invalidate_dashboard_cache

logger = logging.getLogger(__name__)

LEDGER_MODELS = ('Item', 'Issue', 'Return')


@receiver([post_save, post_delete])
def invalidate_ledger_cache(sender, instance, **kwargs):
    """Invalidate dashboard metrics when items, issues or returns change"""
    if sender.__name__ not in LEDGER_MODELS:
        return

    from backend.catalog.models import Item
    from backend.inventory.models import Issue, Return

    if isinstance(instance, (Item, Issue, Return)):
        # Invalidate after commit so a concurrent reader cannot re-cache stale counts
        logger.debug(f"{sender.__name__} {instance.pk} changed, scheduling dashboard cache invalidation")
        transaction.on_commit(invalidate_dashboard_cache)
