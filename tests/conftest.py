import pytest
from django.core.cache import cache


@pytest.fixture(autouse=True)
def reset_throttle_cache():
    """Throttle counters live in the cache; start every test from zero."""
    cache.clear()
    yield
    cache.clear()
