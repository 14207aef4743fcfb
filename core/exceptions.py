"""
Project-wide DRF exception handler.
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .media import MediaStorageError
from .query import ListingStoreError

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = 'Something went wrong.'


def api_exception_handler(exc, context):
    """
    Extend DRF's default handler.

    - Django ValidationError (raised by model clean()) -> 400 with field errors
    - Database and media store failures -> logged, 500 with an opaque message

    Anything else falls through to Django's normal 500 handling.
    """
    response = exception_handler(exc, context)
    if response is not None:
        return response

    view = context.get('view')
    view_name = view.__class__.__name__ if view is not None else 'unknown view'

    if isinstance(exc, DjangoValidationError):
        if hasattr(exc, 'message_dict'):
            detail = exc.message_dict
        else:
            detail = {'detail': exc.messages}
        return Response(detail, status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, (DatabaseError, MediaStorageError, ListingStoreError)):
        logger.error(f"Unhandled upstream failure in {view_name}: {exc}", exc_info=exc)
        return Response(
            {'detail': GENERIC_ERROR_MESSAGE},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return None
