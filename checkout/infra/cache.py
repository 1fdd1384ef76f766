"""
Read-through cache over Django's cache framework.

Prefix invalidation is done with a per-prefix generation stamp that is part
of every key: replacing the stamp orphans all keys under the prefix, so it
works on any backend (locmem, Redis) without key scans. Backend failures are
logged and the loader result is returned, so a broken cache never fails a
business operation.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from django.core.cache import caches

from checkout.conf import checkout_setting

logger = logging.getLogger(__name__)

T = TypeVar("T")

PRODUCT_PREFIX = "product:"
PROMOTION_PREFIX = "promotion:"
VOUCHER_PREFIX = "voucher:"

_MISSING = object()


class CacheService:
    """Cache capability injected into services."""

    def __init__(self, alias: str = "default", default_ttl: int | None = None):
        self.alias = alias
        self.default_ttl = default_ttl or checkout_setting("CACHE_TTL_SECONDS")

    @property
    def backend(self):
        return caches[self.alias]

    def _generation_key(self, prefix: str) -> str:
        return f"{prefix}__generation"

    def _generation(self, prefix: str) -> int:
        generation = self.backend.get(self._generation_key(prefix))
        if generation is None:
            self.backend.add(self._generation_key(prefix), time.time_ns(), timeout=None)
            generation = self.backend.get(self._generation_key(prefix), 0)
        return generation

    def _key(self, prefix: str, key: str) -> str:
        return f"{prefix}{self._generation(prefix)}:{key}"

    def get_or_set(self, prefix: str, key: str, loader: Callable[[], T], ttl: int | None = None) -> T:
        """Return the cached value or load, store and return it."""
        try:
            full_key = self._key(prefix, key)
            value = self.backend.get(full_key, _MISSING)
        except Exception as e:
            logger.warning(
                "cache_read_failed",
                extra={"cache_key": f"{prefix}{key}", "error": str(e)},
            )
            return loader()

        if value is not _MISSING:
            return value

        value = loader()
        try:
            self.backend.set(full_key, value, timeout=ttl or self.default_ttl)
        except Exception as e:
            logger.warning(
                "cache_write_failed",
                extra={"cache_key": f"{prefix}{key}", "error": str(e)},
            )
        return value

    def remove(self, prefix: str, key: str) -> None:
        """Drop one key."""
        try:
            self.backend.delete(self._key(prefix, key))
        except Exception as e:
            logger.warning(
                "cache_remove_failed",
                extra={"cache_key": f"{prefix}{key}", "error": str(e)},
            )

    def remove_by_prefix(self, prefix: str) -> None:
        """Invalidate every key under ``prefix``."""
        try:
            self.backend.set(self._generation_key(prefix), time.time_ns(), timeout=None)
        except Exception as e:
            logger.warning(
                "cache_invalidate_failed",
                extra={"cache_key": prefix, "error": str(e)},
            )
            return
        logger.info("cache_invalidated", extra={"cache_key": prefix})
