"""
Test suite for the public map search endpoint (GET /api/listings/).

Test Coverage:
- Public access (no authentication required)
- Bounding box, price, category, furnishing and tenant filters
- Fallback mode when the viewport is missing or malformed
- Featured listings first
- Owner projection and GeoJSON location in results
- Invalid closed-set filters rejected with 400
- Store failure returns an opaque 500
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.utils import timezone
from rest_framework import status

from core.query import ListingStoreError

from .helpers import create_test_listing, create_test_user


DELHI_VIEWPORT = {
    'min_lat': '28.5',
    'max_lat': '28.7',
    'min_lng': '77.1',
    'max_lng': '77.3',
}


@pytest.mark.django_db
class TestListingSearchEndpoint:

    url = '/api/listings/'

    def test_viewport_and_price_end_to_end(self, api_client, owner_client):
        """
        A listing created through the API is found by a viewport and price
        range that contain it, and not by a price range that excludes it.
        """
        response = owner_client.post(self.url, {
            'title': 'Connaught Place Flat',
            'description': 'Walk to everything.',
            'price': '25000',
            'category': 'Flat',
            'latitude': 28.61,
            'longitude': 77.21,
        }, format='json')
        assert response.status_code == status.HTTP_201_CREATED
        listing_id = response.data['listing']['id']

        response = api_client.get(self.url, {**DELHI_VIEWPORT, 'min_price': 20000, 'max_price': 30000})
        assert response.status_code == status.HTTP_200_OK
        assert [item['id'] for item in response.data['listings']] == [listing_id]

        response = api_client.get(self.url, {**DELHI_VIEWPORT, 'min_price': 30000, 'max_price': 40000})
        assert response.status_code == status.HTTP_200_OK
        assert response.data['listings'] == []

    def test_results_include_owner_projection_and_location(self, api_client, owner, listing):
        response = api_client.get(self.url, DELHI_VIEWPORT)

        item = response.data['listings'][0]
        assert item['owner'] == {
            'id': owner.id,
            'name': owner.name,
            'email': owner.email,
            'is_verified': False,
            'avatar_url': '',
        }
        assert item['location'] == {'type': 'Point', 'coordinates': [77.21, 28.61]}
        assert item['features'] == ['Fully Furnished', 'Family']
        assert 'password' not in item['owner']

    def test_listings_outside_viewport_are_excluded(self, api_client, owner):
        create_test_listing(owner, title='Mumbai flat', latitude=19.07, longitude=72.87)

        response = api_client.get(self.url, DELHI_VIEWPORT)

        assert response.data['listings'] == []
        assert response.data['count'] == 0

    def test_category_filter(self, api_client, owner):
        create_test_listing(owner, title='Flat', category='Flat')
        house = create_test_listing(owner, title='House', category='House')

        response = api_client.get(self.url, {**DELHI_VIEWPORT, 'category': 'House'})

        assert [item['id'] for item in response.data['listings']] == [house.id]

    def test_furnishing_and_tenant_filters(self, api_client, owner):
        match = create_test_listing(owner, features=['Semi Furnished', 'Bachelors'])
        create_test_listing(owner, features=['Semi Furnished', 'Family'])
        create_test_listing(owner, features=['Unfurnished', 'Bachelors'])

        response = api_client.get(self.url, {
            **DELHI_VIEWPORT,
            'furnishing': 'Semi',
            'tenant_preference': 'bachelors',
        })

        assert [item['id'] for item in response.data['listings']] == [match.id]

    def test_any_tenant_preference_does_not_filter(self, api_client, owner):
        create_test_listing(owner, features=['Family'])
        create_test_listing(owner, features=['Bachelors'])

        response = api_client.get(self.url, {**DELHI_VIEWPORT, 'tenant_preference': 'Any'})

        assert response.data['count'] == 2

    def test_missing_viewport_returns_unfiltered_fallback(self, api_client, owner):
        create_test_listing(owner, title='Delhi', latitude=28.61, longitude=77.21)
        create_test_listing(owner, title='Mumbai', latitude=19.07, longitude=72.87, category='House')

        response = api_client.get(self.url, {'category': 'Shop', 'min_price': 999999})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 2

    def test_invalid_filters_ignored_without_viewport(self, api_client, owner):
        create_test_listing(owner)

        response = api_client.get(self.url, {'category': 'Villa', 'min_price': 'cheap'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1

    def test_invalid_filters_rejected_with_viewport(self, api_client):
        response = api_client.get(self.url, {**DELHI_VIEWPORT, 'category': 'Villa'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'category' in response.data

    def test_malformed_viewport_edge_returns_fallback(self, api_client, owner):
        create_test_listing(owner, latitude=19.07, longitude=72.87)

        response = api_client.get(self.url, {**DELHI_VIEWPORT, 'max_lng': 'NaN'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1

    def test_featured_listings_come_first(self, api_client, owner):
        featured = create_test_listing(
            owner,
            title='Featured',
            is_featured=True,
            featured_expiry=timezone.now() + timedelta(days=3),
        )
        plain = create_test_listing(owner, title='Plain')

        response = api_client.get(self.url, DELHI_VIEWPORT)

        ids = [item['id'] for item in response.data['listings']]
        assert ids[0] == featured.id
        assert set(ids) == {plain.id, featured.id}
        assert response.data['listings'][0]['is_currently_featured'] is True

    def test_hidden_listing_not_in_search(self, api_client, owner):
        create_test_listing(owner, is_visible=False)

        response = api_client.get(self.url, DELHI_VIEWPORT)

        assert response.data['listings'] == []

    @pytest.mark.parametrize('params', [
        {'category': 'Castle'},
        {'furnishing': 'Partly'},
        {'tenant_preference': 'Students'},
        {'min_price': 'cheap'},
        {'max_price': '-5'},
    ])
    def test_invalid_filters_rejected(self, api_client, params):
        response = api_client.get(self.url, {**DELHI_VIEWPORT, **params})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_empty_filter_values_are_ignored(self, api_client, owner, listing):
        response = api_client.get(self.url, {
            **DELHI_VIEWPORT,
            'category': '',
            'furnishing': '',
            'tenant_preference': '',
            'min_price': '',
            'max_price': '',
        })

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1

    def test_store_failure_returns_opaque_error(self, api_client):
        with patch('core.views.fetch_listings', side_effect=ListingStoreError('boom')):
            response = api_client.get(self.url, DELHI_VIEWPORT)

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.data == {'detail': 'Something went wrong.'}

    def test_price_boundaries_inclusive(self, api_client):
        owner = create_test_user('boundary@example.com')
        at_min = create_test_listing(owner, price=Decimal('20000'))
        at_max = create_test_listing(owner, price=Decimal('30000'))

        response = api_client.get(self.url, {**DELHI_VIEWPORT, 'min_price': '20000', 'max_price': '30000'})

        assert {item['id'] for item in response.data['listings']} == {at_min.id, at_max.id}
