"""Request schemas validated at the HTTP boundary."""
from typing import Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from storefront.exceptions import ValidationError
from storefront.schemas.public import (
    VisitRequest, RatingSelection, ReviewSubmission, ImageUpload, PdfUpload,
    is_valid_business_number, BUSINESS_NUMBER_PATTERN,
)
from storefront.schemas.tenant import Button, SocialLink, TenantCreate, TenantUpdate, OwnerTenantUpdate

SchemaT = TypeVar('SchemaT', bound=BaseModel)

# Machine-readable reasons for the fields callers most often get wrong
REASON_BY_FIELD = {
    'business_number': 'invalid_business_number',
    'businessNumber': 'invalid_business_number',
    'BIS': 'invalid_business_number',
    'rating': 'invalid_rating',
    'minimum_rating': 'invalid_rating',
    'email': 'invalid_email',
    'image_data': 'missing_asset_data',
    'imageData': 'missing_asset_data',
    'pdf_data': 'missing_asset_data',
    'pdfData': 'missing_asset_data',
    'type': 'invalid_asset_type',
    'asset_type': 'invalid_asset_type',
}


def parse_payload(schema: Type[SchemaT], data) -> SchemaT:
    """Validate request data against `schema`, raising a 400 ValidationError."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object', reason='invalid_payload')
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        first = errors[0] if errors else {}
        field = str(first.get('loc', ('',))[0]) if first.get('loc') else ''
        reason = REASON_BY_FIELD.get(field, 'invalid_payload')
        message = first.get('msg', 'Invalid request payload')
        if field:
            message = f"{field}: {message}"
        details = [
            {'field': '.'.join(str(part) for part in err.get('loc', ())), 'message': err.get('msg')}
            for err in errors
        ]
        raise ValidationError(message, reason=reason, payload={'errors': details})


__all__ = [
    'parse_payload', 'REASON_BY_FIELD',
    'VisitRequest', 'RatingSelection', 'ReviewSubmission', 'ImageUpload', 'PdfUpload',
    'is_valid_business_number', 'BUSINESS_NUMBER_PATTERN',
    'Button', 'SocialLink', 'TenantCreate', 'TenantUpdate', 'OwnerTenantUpdate',
]
