"""
Tests for the map search query builder and listing store accessor.

Test Coverage:
- Bounding box parsing (missing, non-numeric, non-finite edges)
- Fallback mode ignores every filter and caps the result size
- Price defaults and inverted ranges
- Furnishing and tenant preference folded into required feature tags
- "Contains all" feature matching against the database
- Featured-first stable partition
- Store failures surface as ListingStoreError
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.test import override_settings
from django.utils import timezone

from core.query import (
    BoundingBox,
    ListingStoreError,
    build_listing_query,
    feature_filters,
    fetch_listings,
    parse_coordinate,
    partition_featured,
)

from .helpers import create_test_listing, create_test_user


DELHI_BOX = {
    'min_lat': '28.5',
    'max_lat': '28.7',
    'min_lng': '77.1',
    'max_lng': '77.3',
}


class TestParseCoordinate:

    @pytest.mark.parametrize('raw, expected', [
        ('28.61', 28.61),
        ('-77', -77.0),
        (12.5, 12.5),
        ('0', 0.0),
    ])
    def test_numbers_parse(self, raw, expected):
        assert parse_coordinate(raw) == expected

    @pytest.mark.parametrize('raw', [None, '', 'abc', 'NaN', 'nan', 'inf', '-Infinity', '12,5'])
    def test_unparseable_values_are_absent(self, raw):
        assert parse_coordinate(raw) is None


class TestBuildListingQuery:

    def test_full_box_is_bounded(self):
        query = build_listing_query(**DELHI_BOX)

        assert query.is_bounded
        assert query.bounds == BoundingBox(south=28.5, north=28.7, west=77.1, east=77.3)
        assert query.limit is None

    @pytest.mark.parametrize('missing', ['min_lat', 'max_lat', 'min_lng', 'max_lng'])
    def test_any_missing_edge_falls_back(self, missing):
        params = dict(DELHI_BOX)
        params.pop(missing)

        query = build_listing_query(**params)

        assert not query.is_bounded
        assert query.limit == 100

    def test_non_numeric_edge_falls_back(self):
        query = build_listing_query(**{**DELHI_BOX, 'max_lng': 'east'})

        assert not query.is_bounded

    def test_fallback_ignores_filters(self):
        query = build_listing_query(
            min_lat='28.5',
            min_price='30000',
            category='House',
            furnishing='Full',
            tenant_preference='Family',
        )

        assert query.bounds is None
        assert query.category is None
        assert query.required_features == ()
        assert query.min_price == Decimal('0')

    @override_settings(RENT_ON_MAP={
        'FALLBACK_LIMIT': 5,
        'DEFAULT_MIN_PRICE': 0,
        'DEFAULT_MAX_PRICE': 10_000_000,
        'MAX_IMAGE_SIZE': 5 * 1024 * 1024,
        'IMAGE_UPLOAD_DIR': 'listing_images',
    })
    def test_fallback_limit_comes_from_settings(self):
        assert build_listing_query().limit == 5

    def test_price_defaults(self):
        query = build_listing_query(**DELHI_BOX)

        assert query.min_price == Decimal('0')
        assert query.max_price == Decimal('10000000')

    def test_inverted_price_range_is_kept(self):
        query = build_listing_query(**DELHI_BOX, min_price='40000', max_price='30000')

        assert query.min_price == Decimal('40000')
        assert query.max_price == Decimal('30000')

    def test_invalid_price_raises(self):
        with pytest.raises(ValueError):
            build_listing_query(**DELHI_BOX, min_price='cheap')

    def test_category_is_not_validated(self):
        query = build_listing_query(**DELHI_BOX, category='Castle')

        assert query.category == 'Castle'

    def test_empty_category_means_any(self):
        assert build_listing_query(**DELHI_BOX, category='').category is None


class TestFeatureFilters:

    @pytest.mark.parametrize('code, tag', [
        ('Full', 'Fully Furnished'),
        ('Semi', 'Semi Furnished'),
        ('None', 'Unfurnished'),
    ])
    def test_furnishing_codes(self, code, tag):
        assert feature_filters(furnishing=code) == (tag,)

    def test_unknown_furnishing_is_ignored(self):
        assert feature_filters(furnishing='Partly') == ()

    @pytest.mark.parametrize('sentinel', ['Any', 'any', 'ANY', ' Any '])
    def test_any_tenant_is_dropped(self, sentinel):
        assert feature_filters(tenant_preference=sentinel) == ()

    def test_both_filters_combine(self):
        assert feature_filters('Semi', 'Bachelors') == ('Semi Furnished', 'Bachelors')


@pytest.mark.django_db
class TestFetchListings:

    @pytest.fixture
    def owner(self):
        return create_test_user('store-owner@example.com')

    def test_bounded_results_lie_within_box(self, owner):
        inside = create_test_listing(owner, latitude=28.61, longitude=77.21)
        create_test_listing(owner, latitude=19.07, longitude=72.87)
        create_test_listing(owner, latitude=28.61, longitude=77.5)

        results = fetch_listings(build_listing_query(**DELHI_BOX))

        assert [listing.id for listing in results] == [inside.id]
        box = build_listing_query(**DELHI_BOX).bounds
        assert all(box.contains(listing.latitude, listing.longitude) for listing in results)

    def test_box_edges_are_inclusive(self, owner):
        corner = create_test_listing(owner, latitude=28.5, longitude=77.3)

        results = fetch_listings(build_listing_query(**DELHI_BOX))

        assert [listing.id for listing in results] == [corner.id]

    def test_price_range_is_inclusive(self, owner):
        low = create_test_listing(owner, price=Decimal('20000'))
        high = create_test_listing(owner, price=Decimal('30000'))
        create_test_listing(owner, price=Decimal('30001'))

        results = fetch_listings(
            build_listing_query(**DELHI_BOX, min_price='20000', max_price='30000')
        )

        assert {listing.id for listing in results} == {low.id, high.id}

    def test_inverted_price_range_matches_nothing(self, owner):
        create_test_listing(owner, price=Decimal('35000'))

        results = fetch_listings(
            build_listing_query(**DELHI_BOX, min_price='40000', max_price='30000')
        )

        assert results == []

    def test_unknown_category_matches_nothing(self, owner):
        create_test_listing(owner, category='Flat')

        assert fetch_listings(build_listing_query(**DELHI_BOX, category='Castle')) == []

    def test_all_required_features_must_be_present(self, owner):
        both = create_test_listing(owner, features=['Fully Furnished', 'Parking', 'Family'])
        create_test_listing(owner, features=['Fully Furnished', 'Bachelors'])
        create_test_listing(owner, features=['Family'])

        results = fetch_listings(
            build_listing_query(**DELHI_BOX, furnishing='Full', tenant_preference='Family')
        )

        assert [listing.id for listing in results] == [both.id]

    def test_duplicate_tags_do_not_duplicate_results(self, owner):
        listing = create_test_listing(owner, features=['Family', 'Family'])

        results = fetch_listings(build_listing_query(**DELHI_BOX, tenant_preference='Family'))

        assert [item.id for item in results] == [listing.id]

    def test_hidden_listings_are_excluded_in_both_modes(self, owner):
        create_test_listing(owner, is_visible=False)

        assert fetch_listings(build_listing_query(**DELHI_BOX)) == []
        assert fetch_listings(build_listing_query()) == []

    @override_settings(RENT_ON_MAP={
        'FALLBACK_LIMIT': 3,
        'DEFAULT_MIN_PRICE': 0,
        'DEFAULT_MAX_PRICE': 10_000_000,
        'MAX_IMAGE_SIZE': 5 * 1024 * 1024,
        'IMAGE_UPLOAD_DIR': 'listing_images',
    })
    def test_fallback_is_capped_and_unfiltered(self, owner):
        for index in range(5):
            create_test_listing(owner, latitude=10 + index, category='House')

        results = fetch_listings(build_listing_query(category='Flat'))

        assert len(results) == 3

    def test_owner_is_loaded_with_listing(self, owner, django_assert_num_queries):
        create_test_listing(owner, features=['Family'])
        query = build_listing_query(**DELHI_BOX)

        # One query for listings with owner, one for the prefetched tags
        with django_assert_num_queries(2):
            results = fetch_listings(query)
            assert results[0].owner.email == owner.email
            assert results[0].features == ['Family']

    def test_database_failure_raises_store_error(self):
        with patch('core.query.listing_queryset', side_effect=DatabaseError('connection lost')):
            with pytest.raises(ListingStoreError):
                fetch_listings(build_listing_query(**DELHI_BOX))


@pytest.mark.django_db
class TestPartitionFeatured:

    def test_featured_first_order_preserved(self):
        owner = create_test_user('partition@example.com')
        now = timezone.now()
        plain_a = create_test_listing(owner, title='A')
        featured_b = create_test_listing(owner, title='B', is_featured=True,
                                         featured_expiry=now + timedelta(days=2))
        plain_c = create_test_listing(owner, title='C')
        featured_d = create_test_listing(owner, title='D', is_featured=True,
                                         featured_expiry=now + timedelta(days=9))

        ordered = partition_featured([plain_a, featured_b, plain_c, featured_d], now=now)

        assert [listing.title for listing in ordered] == ['B', 'D', 'A', 'C']

    def test_lapsed_promotion_is_not_featured(self):
        owner = create_test_user('lapsed@example.com')
        now = timezone.now()
        plain = create_test_listing(owner, title='Plain')
        lapsed = create_test_listing(owner, title='Lapsed', is_featured=True,
                                     featured_expiry=now - timedelta(minutes=1))

        ordered = partition_featured([lapsed, plain], now=now)

        assert [listing.title for listing in ordered] == ['Lapsed', 'Plain']
