"""
Listing image storage.

Clients embed new images as base64 ``data:image/...`` URIs. They are
checked with Pillow, written through Django's default storage (local disk
or any remote backend configured in settings) and replaced by their public
URL. Deleting works backwards from the URL.
"""

import base64
import binascii
import io
import logging
import re
import uuid
from urllib.parse import unquote, urlparse

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


DATA_URI_PATTERN = re.compile(
    r'^data:(?P<content_type>image/[A-Za-z0-9.+-]+);base64,(?P<payload>.+)$',
    re.DOTALL,
)

# Pillow format name -> file extension
ALLOWED_FORMATS = {
    'JPEG': 'jpg',
    'PNG': 'png',
    'WEBP': 'webp',
}


class ImagePayloadError(ValueError):
    """An embedded image could not be decoded or is not acceptable."""


class MediaStorageError(Exception):
    """The media store failed to save an image."""


def is_data_uri(value):
    return isinstance(value, str) and value.startswith('data:image')


def decode_data_uri(value):
    """
    Decode and check a base64 image data URI.

    Checks:
    - Well-formed data URI with base64 payload
    - Decoded size (max MAX_IMAGE_SIZE)
    - Pillow can read it and the format is JPEG, PNG or WebP

    Args:
        value: The data URI

    Returns:
        tuple: (raw bytes, file extension)

    Raises:
        ImagePayloadError: If any check fails
    """
    match = DATA_URI_PATTERN.match(value or '')
    if not match:
        raise ImagePayloadError('Image must be a base64 data URI.')

    try:
        content = base64.b64decode(match.group('payload'), validate=True)
    except (binascii.Error, ValueError):
        raise ImagePayloadError('Image data is not valid base64.')

    max_size = settings.RENT_ON_MAP['MAX_IMAGE_SIZE']
    if len(content) > max_size:
        raise ImagePayloadError(
            f'Image file size cannot exceed {max_size // (1024 * 1024)}MB. '
            f'Current size: {len(content) / (1024 * 1024):.2f}MB'
        )

    try:
        with Image.open(io.BytesIO(content)) as image:
            image_format = image.format
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ImagePayloadError('Image data is not a readable image.')

    if image_format not in ALLOWED_FORMATS:
        raise ImagePayloadError(
            f'Invalid image format. Allowed formats: {", ".join(ALLOWED_FORMATS.values())}'
        )

    return content, ALLOWED_FORMATS[image_format]


def upload_image(value):
    """
    Store one data URI image.

    Returns:
        str: Public URL of the stored image

    Raises:
        ImagePayloadError: If the payload is not an acceptable image
        MediaStorageError: If the store rejects the write
    """
    content, extension = decode_data_uri(value)
    name = f"{settings.RENT_ON_MAP['IMAGE_UPLOAD_DIR']}/{uuid.uuid4().hex}.{extension}"

    try:
        saved_name = default_storage.save(name, ContentFile(content))
    except OSError as e:
        logger.error(f"Image upload failed for {name}: {e}")
        raise MediaStorageError('Image upload failed.') from e

    url = default_storage.url(saved_name)
    logger.info(f"Uploaded listing image {saved_name}")
    return url


def resolve_images(images):
    """
    Upload every data URI in an image list, keeping other entries as URLs.

    If any upload fails, images already stored by this call are removed
    before the error propagates.

    Returns:
        list: Image URLs in the original order
    """
    resolved = []
    uploaded = []
    try:
        for value in images or []:
            if is_data_uri(value):
                url = upload_image(value)
                uploaded.append(url)
                resolved.append(url)
            else:
                resolved.append(value)
    except (ImagePayloadError, MediaStorageError):
        for url in uploaded:
            delete_image(url)
        raise
    return resolved


def storage_name_from_url(url):
    """
    Map a public image URL back to its storage name.

    Returns:
        str or None: None for URLs that do not point into MEDIA_URL
    """
    if not url:
        return None

    media_path = urlparse(settings.MEDIA_URL).path or '/'
    if not media_path.endswith('/'):
        media_path += '/'

    path = unquote(urlparse(url).path)
    if not path.startswith(media_path):
        return None

    name = path[len(media_path):]
    return name or None


def delete_image(url):
    """
    Remove a stored image by URL.

    Failures are logged and swallowed: a listing must stay deletable even
    when its images cannot be cleaned up.

    Returns:
        bool: True if the image was deleted
    """
    name = storage_name_from_url(url)
    if name is None:
        logger.info(f"Skipping deletion of external image {url}")
        return False

    try:
        default_storage.delete(name)
    except Exception as e:
        logger.error(f"Failed to delete image {name}: {e}")
        return False

    logger.info(f"Deleted listing image {name}")
    return True
