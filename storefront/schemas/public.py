"""Request schemas for the public review endpoints and asset uploads."""
import re
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

BUSINESS_NUMBER_PATTERN = re.compile(r'^BIS\d{5}$')
ASSET_TAG_PATTERN = re.compile(r'^[A-Za-z0-9_-]{1,40}$')


def is_valid_business_number(value) -> bool:
    return isinstance(value, str) and bool(BUSINESS_NUMBER_PATTERN.match(value))


class _BusinessScoped(BaseModel):
    model_config = ConfigDict(extra='ignore', str_strip_whitespace=True)

    business_number: str = Field(validation_alias=AliasChoices('business_number', 'businessNumber', 'BIS'))

    @field_validator('business_number')
    @classmethod
    def check_business_number(cls, value):
        if not is_valid_business_number(value):
            raise ValueError('Invalid business number format. Expected format: BIS00001')
        return value


class VisitRequest(_BusinessScoped):
    pass


class RatingSelection(_BusinessScoped):
    rating: int = Field(ge=1, le=5)
    # Issued with the review page; repeated selections on one page replay the first decision
    gate_id: Optional[str] = Field(default=None, max_length=64, pattern=r'^[A-Za-z0-9_-]+$',
                                   validation_alias=AliasChoices('gate_id', 'gateId'))


class ReviewSubmission(_BusinessScoped):
    rating: int = Field(ge=1, le=5)
    timestamp: Optional[str] = None
    kind: str = Field(default='internal_review', max_length=40,
                      validation_alias=AliasChoices('type', 'kind'))


class ImageUpload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    image_data: str = Field(min_length=1, validation_alias=AliasChoices('image_data', 'imageData'))
    asset_type: str = Field(validation_alias=AliasChoices('type', 'asset_type'))

    @field_validator('asset_type')
    @classmethod
    def check_asset_type(cls, value):
        if not ASSET_TAG_PATTERN.match(value or ''):
            raise ValueError('Type must be 1-40 letters, digits, dashes or underscores')
        return value


class PdfUpload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    pdf_data: str = Field(min_length=1, validation_alias=AliasChoices('pdf_data', 'pdfData'))
    tenant_id: Optional[int] = Field(default=None, validation_alias=AliasChoices('tenant_id', 'tenantId'))
