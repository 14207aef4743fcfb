"""
Django signals for listing image cleanup.

When a listing is deleted its stored images are removed from the media
store once the surrounding transaction commits. Failures are logged and
never undo the deletion.
"""

import logging

from django.db import transaction
from django.db.models.signals import post_delete
from django.dispatch import receiver

from .media import delete_image
from .models import Listing

logger = logging.getLogger(__name__)


def delete_listing_images(listing_id, images):
    """
    Delete every image of a removed listing.

    Returns:
        int: Number of images actually deleted
    """
    deleted = 0
    for url in images:
        if delete_image(url):
            deleted += 1

    if deleted != len(images):
        logger.warning(
            f"Deleted {deleted} of {len(images)} images for listing {listing_id}"
        )
    else:
        logger.info(f"Deleted {deleted} images for listing {listing_id}")
    return deleted


@receiver(post_delete, sender=Listing)
def cleanup_images_on_listing_delete(sender, instance, **kwargs):
    """
    Schedule image removal after a listing is deleted.

    Runs on commit so a rolled-back delete leaves the images in place.

    Args:
        sender: The Listing model class
        instance: The deleted Listing instance
        **kwargs: Additional keyword arguments
    """
    images = list(instance.images or [])
    if not images:
        return

    listing_id = instance.id
    transaction.on_commit(lambda: delete_listing_images(listing_id, images))
