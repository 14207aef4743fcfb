"""
Custom validators for Rent On Map models and serializers.
"""

import math
import re

from django.core.exceptions import ValidationError


def validate_latitude(value):
    """
    Validate a latitude in decimal degrees.

    Args:
        value: Latitude to validate

    Raises:
        ValidationError: If the value is not a finite number in [-90, 90]
    """
    if value is None:
        return

    if not math.isfinite(value) or value < -90 or value > 90:
        raise ValidationError(
            'Latitude must be a number between -90 and 90.',
            code='invalid_latitude'
        )


def validate_longitude(value):
    """
    Validate a longitude in decimal degrees.

    Args:
        value: Longitude to validate

    Raises:
        ValidationError: If the value is not a finite number in [-180, 180]
    """
    if value is None:
        return

    if not math.isfinite(value) or value < -180 or value > 180:
        raise ValidationError(
            'Longitude must be a number between -180 and 180.',
            code='invalid_longitude'
        )


def validate_contact_number(value):
    """
    Validate a listing contact phone number.

    Accepts international formats with optional country codes, spaces, dashes, and parentheses.
    Requires at least 10 digits.

    Valid formats:
    - +91 98765 43210
    - +1 (234) 567-8900
    - 9876543210

    Args:
        value: Phone number string to validate

    Raises:
        ValidationError: If phone number format is invalid
    """
    if not value:  # Empty string is allowed (optional field)
        return

    if not re.match(r'^[\d\s\-\+\(\)]+$', value):
        raise ValidationError(
            'Contact number can only contain digits, spaces, dashes, parentheses, and plus sign.',
            code='invalid_contact_chars'
        )

    digits = re.sub(r'\D', '', value)

    if len(digits) < 10:
        raise ValidationError(
            'Contact number must contain at least 10 digits.',
            code='contact_too_short'
        )

    if len(set(digits)) == 1:
        raise ValidationError(
            'Contact number cannot be all the same digit.',
            code='invalid_contact_pattern'
        )


def validate_feature_tags(value):
    """
    Validate the ordered list of free-text feature tags on a listing.

    Duplicates are allowed; empty tags are not.
    """
    if value is None:
        return

    if not isinstance(value, (list, tuple)):
        raise ValidationError('Features must be a list of strings.', code='invalid_features')

    for tag in value:
        if not isinstance(tag, str) or not tag.strip():
            raise ValidationError('Feature tags must be non-empty strings.', code='invalid_feature_tag')
        if len(tag) > 100:
            raise ValidationError('Feature tags cannot exceed 100 characters.', code='feature_tag_too_long')


def validate_image_references(value):
    """Images are stored as an ordered list of URL strings."""
    if value is None:
        return

    if not isinstance(value, list):
        raise ValidationError('Images must be a list of URLs.', code='invalid_images')

    for reference in value:
        if not isinstance(reference, str) or not reference.strip():
            raise ValidationError('Image references must be non-empty strings.', code='invalid_image_reference')
