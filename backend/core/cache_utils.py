"""
Caching utilities for expensive aggregate queries
Uses the configured cache backend (Redis in production)
"""
from django.core.cache import cache
from django.conf import settings
import hashlib
import logging

logger = logging.getLogger(__name__)

DASHBOARD_METRICS_PREFIX = "dashboard_metrics"


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def get_dashboard_metrics_cache_key():
    return make_cache_key(DASHBOARD_METRICS_PREFIX)


def get_cached_dashboard_metrics():
    """Get cached dashboard metrics. Returns tuple: (cached_data, cache_key)"""
    cache_key = get_dashboard_metrics_cache_key()
    return cache.get(cache_key), cache_key


def cache_dashboard_metrics(cache_key, data, ttl=None):
    """Cache dashboard metrics data"""
    ttl = ttl or getattr(settings, 'DASHBOARD_METRICS_CACHE_TTL', 300)
    cache.set(cache_key, data, ttl)
    logger.debug(f"Cached dashboard metrics: {cache_key}")


def invalidate_dashboard_cache():
    """Invalidate dashboard metrics cache"""
    cache.delete(get_dashboard_metrics_cache_key())
    logger.debug("Invalidated dashboard metrics cache")
