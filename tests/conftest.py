"""
Shared fixtures for the Rent On Map test suite.
"""

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from core.identity import get_jwks_client

from .helpers import create_test_listing, create_test_user, get_jwt_token


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def reset_caches():
    """Throttle counters and JWKS clients must not leak between tests."""
    cache.clear()
    get_jwks_client.cache_clear()
    yield
    cache.clear()
    get_jwks_client.cache_clear()


@pytest.fixture
def api_client():
    """Fixture for API client."""
    return APIClient()


@pytest.fixture
def owner(db):
    return create_test_user('owner@example.com', name='Olivia Owner')


@pytest.fixture
def viewer(db):
    return create_test_user('viewer@example.com', name='Victor Viewer')


@pytest.fixture
def staff_user(db):
    return create_test_user('staff@example.com', is_staff=True)


@pytest.fixture
def owner_client(owner):
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {get_jwt_token(owner)}')
    return client


@pytest.fixture
def viewer_client(viewer):
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {get_jwt_token(viewer)}')
    return client


@pytest.fixture
def listing(owner):
    return create_test_listing(owner, features=['Fully Furnished', 'Family'])
