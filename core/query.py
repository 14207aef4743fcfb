"""
Map search over listings.

``build_listing_query`` turns a map viewport plus user filters into a
``ListingQuery``; ``fetch_listings`` runs it against the listing store and
``partition_featured`` applies the display ordering.

A query is either bounded (viewport present, all filters applied) or a
fallback (viewport absent or unparseable, filters ignored and the result
capped at a fixed count).
"""

import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from django.conf import settings
from django.db import DatabaseError
from django.db.models import Q
from django.utils import timezone

from .models import Listing

logger = logging.getLogger(__name__)


FURNISHING_TAGS = {
    'Full': 'Fully Furnished',
    'Semi': 'Semi Furnished',
    'None': 'Unfurnished',
}

TENANT_PREFERENCES = ['Family', 'Bachelors', 'Any']

ANY_TENANT = 'any'


class ListingStoreError(Exception):
    """The listing store could not answer a query."""


def _search_setting(name):
    return settings.RENT_ON_MAP[name]


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned latitude/longitude rectangle with inclusive edges."""

    south: float
    north: float
    west: float
    east: float

    def contains(self, latitude, longitude):
        return (
            self.south <= latitude <= self.north
            and self.west <= longitude <= self.east
        )

    def as_q(self):
        return Q(
            latitude__gte=self.south,
            latitude__lte=self.north,
            longitude__gte=self.west,
            longitude__lte=self.east,
        )


@dataclass(frozen=True)
class ListingQuery:
    """
    A search against the listing store.

    When ``bounds`` is None the query is a fallback: only ``limit`` applies.
    """

    bounds: Optional[BoundingBox]
    min_price: Decimal = Decimal('0')
    max_price: Decimal = Decimal('10000000')
    category: Optional[str] = None
    required_features: Tuple[str, ...] = field(default_factory=tuple)
    limit: Optional[int] = None

    @property
    def is_bounded(self):
        return self.bounds is not None

    def predicate(self):
        """Single-row predicate: box, price range and category."""
        condition = self.bounds.as_q() & Q(
            price__gte=self.min_price,
            price__lte=self.max_price,
        )
        if self.category:
            condition &= Q(category=self.category)
        return condition

    def apply(self, queryset):
        """
        Narrow a Listing queryset to this query.

        Each required feature gets its own join so a listing matches only
        when it carries every one of them.
        """
        if not self.is_bounded:
            return queryset[:self.limit]

        queryset = queryset.filter(self.predicate())
        for tag in self.required_features:
            queryset = queryset.filter(feature_tags__tag=tag)
        if self.required_features:
            queryset = queryset.distinct()
        return queryset


def parse_coordinate(value):
    """
    Parse a viewport edge.

    Returns:
        float or None: None if the value is missing, not a number, or not finite
    """
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_bounds(min_lat, max_lat, min_lng, max_lng):
    """
    Build a bounding box from four raw edges.

    Returns:
        BoundingBox or None: None if any edge fails to parse
    """
    edges = [parse_coordinate(value) for value in (min_lat, max_lat, min_lng, max_lng)]
    if any(edge is None for edge in edges):
        return None
    south, north, west, east = edges
    return BoundingBox(south=south, north=north, west=west, east=east)


def _to_decimal(value, default):
    if value is None or value == '':
        return Decimal(str(default))
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f'Invalid price value: {value!r}')
    if not number.is_finite():
        raise ValueError(f'Invalid price value: {value!r}')
    return number


def feature_filters(furnishing=None, tenant_preference=None):
    """
    Translate furnishing code and tenant preference into required feature tags.

    Unknown furnishing codes are ignored; the tenant preference is dropped
    when it is the "any" sentinel.
    """
    tags = []
    if furnishing:
        tag = FURNISHING_TAGS.get(furnishing)
        if tag:
            tags.append(tag)
    if tenant_preference and tenant_preference.strip().lower() != ANY_TENANT:
        tags.append(tenant_preference.strip())
    return tuple(tags)


def build_listing_query(min_lat=None, max_lat=None, min_lng=None, max_lng=None,
                        min_price=None, max_price=None, category=None,
                        furnishing=None, tenant_preference=None):
    """
    Translate map search parameters into a ListingQuery.

    Bounding box edges are parsed leniently: if any is missing or not a
    number the result is a fallback query capped at FALLBACK_LIMIT that
    ignores every other filter. Otherwise prices default to the configured
    floor and ceiling, an inverted range is kept as-is, and category is
    matched exactly without checking it against the known categories.

    Raises:
        ValueError: If a price bound is present but not a number
    """
    bounds = parse_bounds(min_lat, max_lat, min_lng, max_lng)

    if bounds is None:
        return ListingQuery(bounds=None, limit=_search_setting('FALLBACK_LIMIT'))

    return ListingQuery(
        bounds=bounds,
        min_price=_to_decimal(min_price, _search_setting('DEFAULT_MIN_PRICE')),
        max_price=_to_decimal(max_price, _search_setting('DEFAULT_MAX_PRICE')),
        category=category or None,
        required_features=feature_filters(furnishing, tenant_preference),
    )


def listing_queryset():
    """Publicly searchable listings with owner and feature tags loaded."""
    return (
        Listing.objects.visible()
        .select_related('owner')
        .prefetch_related('feature_tags')
    )


def fetch_listings(query):
    """
    Run a ListingQuery against the store.

    Returns:
        list: Matching listings in storage order

    Raises:
        ListingStoreError: If the database fails
    """
    try:
        return list(query.apply(listing_queryset()))
    except DatabaseError as e:
        logger.exception(f"Listing search failed: {e}")
        raise ListingStoreError('Listing search failed.') from e


def partition_featured(listings, now=None):
    """
    Put currently featured listings first.

    Stable: relative order inside each group is preserved.
    """
    now = now or timezone.now()
    featured = []
    regular = []
    for listing in listings:
        if listing.is_currently_featured(now):
            featured.append(listing)
        else:
            regular.append(listing)
    return featured + regular
