"""
Pytest configuration for Django tests.

pytest-django reads DJANGO_SETTINGS_MODULE from pyproject.toml.
"""
import pytest


@pytest.fixture(autouse=True)
def local_memory_cache(settings):
    """Tests use a private LocMemCache even when REDIS_URL is set."""
    settings.CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "checkout-tests",
        }
    }
