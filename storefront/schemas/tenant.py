"""Request schemas for tenant create/update payloads."""
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

# NOT NULL columns an explicit null in an update must not overwrite
REQUIRED_COLUMNS = ('name', 'email', 'mobile_number', 'minimum_rating', 'status')


def _clean_email(value: str) -> str:
    value = (value or '').strip()
    if not EMAIL_PATTERN.match(value):
        raise ValueError('Invalid email address')
    return value


class Button(BaseModel):
    """Call-to-action button shown on the review page."""
    model_config = ConfigDict(extra='ignore')

    text: str = ''
    url: str = ''
    icon: str = ''
    enabled: bool = True
    device_specific: bool = False
    android_url: Optional[str] = None
    ios_url: Optional[str] = None
    desktop_url: Optional[str] = None

    def is_complete(self) -> bool:
        """A button needs a label and at least one target."""
        if not self.text.strip():
            return False
        if self.device_specific:
            return bool(self.desktop_url or self.android_url or self.ios_url)
        return bool(self.url.strip())


class SocialLink(BaseModel):
    model_config = ConfigDict(extra='ignore')

    icon: str = ''
    url: str = ''
    enabled: bool = True

    def is_complete(self) -> bool:
        return bool(self.icon.strip() and self.url.strip())


class TenantCreate(BaseModel):
    """Admin payload for creating a tenant."""
    model_config = ConfigDict(extra='ignore', str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=200)
    email: str = Field(max_length=255)
    mobile_number: str = Field(min_length=1, max_length=40)

    @field_validator('email')
    @classmethod
    def check_email(cls, value):
        return _clean_email(value)


class _TenantProfileUpdate(BaseModel):
    """Fields both admins and owners may edit."""
    model_config = ConfigDict(extra='ignore', str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, max_length=255)
    mobile_number: Optional[str] = Field(default=None, min_length=1, max_length=40)
    banner_image: Optional[str] = Field(default=None, max_length=1024)
    logo: Optional[str] = Field(default=None, max_length=1024)
    review_url: Optional[str] = Field(default=None, max_length=1024)
    buttons: List[Button] = Field(default_factory=list)
    social_links: List[SocialLink] = Field(default_factory=list)

    @field_validator('email')
    @classmethod
    def check_email(cls, value):
        if value is None:
            return value
        return _clean_email(value)

    def to_record(self) -> dict:
        """
        Column values to write.

        Scalar fields are only written when present in the payload; the
        button and social-link lists always replace the stored ones, with
        incomplete rows (blank form lines) dropped.
        """
        record = self.model_dump(exclude_unset=True, exclude={'buttons', 'social_links'})
        for required in REQUIRED_COLUMNS:
            if record.get(required, '') is None:
                del record[required]
        record['buttons'] = [button.model_dump() for button in self.buttons if button.is_complete()]
        record['social_links'] = [link.model_dump() for link in self.social_links if link.is_complete()]
        return record


class OwnerTenantUpdate(_TenantProfileUpdate):
    """Owner self-service edit."""


class TenantUpdate(_TenantProfileUpdate):
    """Admin edit; may also change the rating threshold and lifecycle status."""

    minimum_rating: Optional[int] = Field(default=None, ge=0, le=5)
    status: Optional[Literal['active', 'inactive']] = None

    @field_validator('minimum_rating', mode='before')
    @classmethod
    def blank_rating_is_zero(cls, value):
        if value in ('', None):
            return 0
        return value
