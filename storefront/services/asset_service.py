"""
Asset ingest service.

Accepts base64 data-URI payloads (banners, logos, button icons, menu PDFs),
validates media type and size, and forwards the decoded bytes to object
storage. Image uploads can degrade to an inline SVG placeholder when storage
is unavailable; document uploads always fail hard.
"""
import base64
import binascii
import enum
import logging
import re
import secrets
import time
from dataclasses import dataclass
from html import escape
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app, has_app_context

from storefront.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

DATA_URI_PATTERN = re.compile(
    r'^data:(?P<type>[a-zA-Z]+)/(?P<subtype>[a-zA-Z0-9.+-]+);base64,(?P<data>.+)$',
    re.DOTALL
)

EXTENSION_BY_SUBTYPE = {'svg+xml': 'svg'}


class AssetCategory(enum.Enum):
    IMAGE = 'image'
    DOCUMENT = 'document'


@dataclass(frozen=True)
class CategoryRules:
    media_type: str
    allowed_subtypes: tuple
    size_config_key: str
    default_max_size: int
    path_prefix: str


RULES = {
    AssetCategory.IMAGE: CategoryRules(
        media_type='image',
        allowed_subtypes=('jpeg', 'jpg', 'png', 'gif', 'webp', 'svg+xml'),
        size_config_key='MAX_IMAGE_UPLOAD_SIZE',
        default_max_size=5 * 1024 * 1024,
        path_prefix='user-images',
    ),
    AssetCategory.DOCUMENT: CategoryRules(
        media_type='application',
        allowed_subtypes=('pdf',),
        size_config_key='MAX_DOCUMENT_UPLOAD_SIZE',
        default_max_size=10 * 1024 * 1024,
        path_prefix='user-menus',
    ),
}


@dataclass(frozen=True)
class DecodedAsset:
    content_type: str
    extension: str
    data: bytes


@dataclass(frozen=True)
class IngestResult:
    url: str
    filename: str
    placeholder: bool = False
    message: Optional[str] = None

    def to_dict(self):
        rv = {'url': self.url, 'filename': self.filename, 'placeholder': self.placeholder}
        if self.message:
            rv['message'] = self.message
        return rv


def _max_size(rules: CategoryRules) -> int:
    if has_app_context():
        return current_app.config.get(rules.size_config_key, rules.default_max_size)
    return rules.default_max_size


def decode_data_uri(payload: str, category: AssetCategory, max_size: Optional[int] = None) -> DecodedAsset:
    """
    Validate and decode a `data:<type>/<subtype>;base64,<data>` payload.

    Raises:
        ValidationError: malformed URI, disallowed subtype, bad base64 or
            decoded size above the category ceiling
    """
    rules = RULES[category]
    max_size = max_size if max_size is not None else _max_size(rules)

    match = DATA_URI_PATTERN.match(payload or '')
    if not match or match.group('type').lower() != rules.media_type:
        raise ValidationError(f'Invalid {category.value} data format', reason='invalid_data_uri')

    subtype = match.group('subtype').lower()
    if subtype not in rules.allowed_subtypes:
        raise ValidationError(
            f"Unsupported {category.value} format. Allowed formats: {', '.join(rules.allowed_subtypes)}",
            reason='unsupported_media_type'
        )

    encoded = match.group('data').strip()
    max_mb = max_size / (1024 * 1024)
    # Reject before decoding when the encoded length already rules it out
    if (len(encoded) * 3) // 4 - 2 > max_size:
        raise ValidationError(f'File size too large. Maximum size is {max_mb:g}MB', reason='payload_too_large')

    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError('Payload is not valid base64', reason='invalid_data_uri')

    if len(data) > max_size:
        raise ValidationError(f'File size too large. Maximum size is {max_mb:g}MB', reason='payload_too_large')

    return DecodedAsset(
        content_type=f"{rules.media_type}/{subtype}",
        extension=EXTENSION_BY_SUBTYPE.get(subtype, subtype),
        data=data,
    )


def build_filename(tag: str, extension: str, timestamp_ms: Optional[int] = None, token: Optional[str] = None) -> str:
    """`<tag>_<epoch-ms>_<random-token>.<ext>`"""
    timestamp_ms = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    token = token or secrets.token_hex(6)
    return f"{tag}_{timestamp_ms}_{token}.{extension}"


def placeholder_data_uri(tag: str) -> str:
    """Dashed-frame SVG labelled with the asset tag, as a data URI."""
    label = escape(f"{tag.upper()} PLACEHOLDER")
    svg = (
        '<svg width="300" height="200" xmlns="http://www.w3.org/2000/svg">'
        '<rect width="300" height="200" fill="transparent" stroke="#ddd" stroke-width="2" stroke-dasharray="5,5"/>'
        f'<text x="150" y="100" text-anchor="middle" fill="#999" font-family="Arial" font-size="16">{label}</text>'
        '</svg>'
    )
    return 'data:image/svg+xml;base64,' + base64.b64encode(svg.encode('utf-8')).decode('ascii')


def _placeholder_enabled(fallback: Optional[bool]) -> bool:
    if fallback is not None:
        return fallback
    if has_app_context():
        return current_app.config.get('IMAGE_UPLOAD_PLACEHOLDER_FALLBACK', True)
    return True


def ingest_asset(payload: str, category: AssetCategory, tag: str, storage=None,
                 placeholder_fallback: Optional[bool] = None) -> IngestResult:
    """
    Validate a data-URI payload and store it publicly.

    Args:
        payload: data URI from the client
        category: IMAGE or DOCUMENT
        tag: filename tag (e.g. 'banner', 'logo', 'menu_12')
        storage: StorageService-like object; defaults to the app singleton
        placeholder_fallback: override IMAGE_UPLOAD_PLACEHOLDER_FALLBACK

    Returns:
        IngestResult with the public URL, or a placeholder data URI for
        images when storage failed and the fallback is enabled

    Raises:
        ValidationError: invalid payload
        StorageError: storage failure for documents, or for images with
            the fallback disabled
    """
    asset = decode_data_uri(payload, category)
    rules = RULES[category]
    filename = build_filename(tag, asset.extension)
    object_name = f"{rules.path_prefix}/{filename}"

    try:
        if storage is None:
            from storefront.services.storage_service import get_storage_service
            storage = get_storage_service()
        url = storage.upload_bytes(asset.data, object_name, asset.content_type)
    except (StorageError, ClientError, BotoCoreError) as e:
        if category is AssetCategory.IMAGE and _placeholder_enabled(placeholder_fallback):
            logger.warning(f"[STORAGE] Image upload failed for '{object_name}', serving placeholder: {e}")
            return IngestResult(
                url=placeholder_data_uri(tag),
                filename=filename,
                placeholder=True,
                message='Storage unavailable. Using placeholder image.',
            )
        logger.error(f"[STORAGE] ✗ {category.value} upload failed for '{object_name}': {e}")
        if isinstance(e, StorageError):
            raise
        raise StorageError(f"Failed to upload {category.value}")

    return IngestResult(url=url, filename=filename)
