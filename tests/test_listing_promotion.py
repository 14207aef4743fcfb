"""
Tests for listing promotion and the expire_featured management command.
"""

from datetime import timedelta
from io import StringIO

import pytest
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from core.models import Listing

from .helpers import create_test_listing, create_test_user, get_jwt_token


PROMOTE_URL = '/api/listings/promote/'


@pytest.mark.django_db
class TestPromoteEndpoint:

    @pytest.mark.parametrize('plan, days', [('1_week', 7), ('1_month', 30)])
    def test_plan_sets_expiry(self, owner_client, listing, plan, days):
        before = timezone.now()

        response = owner_client.post(PROMOTE_URL, {'listing_id': listing.id, 'plan': plan}, format='json')

        assert response.status_code == status.HTTP_200_OK
        listing.refresh_from_db()
        assert listing.is_featured is True
        expected = before + timedelta(days=days)
        assert abs((listing.featured_expiry - expected).total_seconds()) <= 1
        assert response.data['listing']['is_currently_featured'] is True

    def test_unknown_plan_rejected(self, owner_client, listing):
        response = owner_client.post(PROMOTE_URL, {'listing_id': listing.id, 'plan': '1_year'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'plan' in response.data
        listing.refresh_from_db()
        assert listing.is_featured is False

    def test_missing_listing_id(self, owner_client):
        response = owner_client.post(PROMOTE_URL, {'plan': '1_week'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_non_owner_forbidden(self, viewer_client, listing):
        response = viewer_client.post(PROMOTE_URL, {'listing_id': listing.id, 'plan': '1_week'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        listing.refresh_from_db()
        assert listing.is_featured is False

    def test_unknown_listing(self, owner_client):
        response = owner_client.post(PROMOTE_URL, {'listing_id': 31337, 'plan': '1_week'}, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_requires_authentication(self, api_client, listing):
        response = api_client.post(PROMOTE_URL, {'listing_id': listing.id, 'plan': '1_week'}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_repromoting_restarts_the_clock(self, owner_client, listing):
        now = timezone.now()
        listing.promote('1_month', now=now - timedelta(days=29))

        owner_client.post(PROMOTE_URL, {'listing_id': listing.id, 'plan': '1_week'}, format='json')

        listing.refresh_from_db()
        assert listing.featured_expiry > now + timedelta(days=6)


class PromoteModelTests(TestCase):

    def setUp(self):
        self.owner = create_test_user('promo@example.com')
        self.listing = create_test_listing(self.owner)

    def test_promote_returns_expiry(self):
        now = timezone.now()

        expiry = self.listing.promote('1_week', now=now)

        self.assertEqual(expiry, now + timedelta(days=7))
        self.assertTrue(self.listing.is_currently_featured(now))
        self.assertFalse(self.listing.is_currently_featured(expiry))

    def test_unknown_plan_raises(self):
        with self.assertRaises(ValidationError):
            self.listing.promote('forever')

    def test_authenticated_client_promotes(self):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {get_jwt_token(self.owner)}')

        response = client.post(PROMOTE_URL, {'listing_id': self.listing.id, 'plan': '1_month'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('featured_expiry', response.data)


class ExpireFeaturedCommandTests(TestCase):

    def setUp(self):
        self.owner = create_test_user('expire@example.com')
        now = timezone.now()
        self.lapsed = create_test_listing(
            self.owner, title='Lapsed', is_featured=True, featured_expiry=now - timedelta(hours=1)
        )
        self.active = create_test_listing(
            self.owner, title='Active', is_featured=True, featured_expiry=now + timedelta(days=3)
        )
        self.plain = create_test_listing(self.owner, title='Plain')

    def test_clears_only_lapsed_promotions(self):
        out = StringIO()

        call_command('expire_featured', stdout=out)

        self.lapsed.refresh_from_db()
        self.active.refresh_from_db()
        self.assertFalse(self.lapsed.is_featured)
        self.assertIsNone(self.lapsed.featured_expiry)
        self.assertTrue(self.active.is_featured)
        self.assertIn('Cleared 1 lapsed promotion(s).', out.getvalue())

    def test_dry_run_changes_nothing(self):
        out = StringIO()

        call_command('expire_featured', '--dry-run', stdout=out)

        self.lapsed.refresh_from_db()
        self.assertTrue(self.lapsed.is_featured)
        self.assertIn('Dry run: 1 promotion(s) would be cleared.', out.getvalue())

    def test_nothing_to_do(self):
        Listing.objects.filter(pk=self.lapsed.pk).update(is_featured=False)
        out = StringIO()

        call_command('expire_featured', stdout=out)

        self.assertIn('No lapsed promotions.', out.getvalue())
