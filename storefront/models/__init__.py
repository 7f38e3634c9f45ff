"""Models package - exports all SQLAlchemy models."""
from storefront.models.tenant import Tenant, TenantStatus, BUSINESS_NUMBER_PREFIX, BUSINESS_NUMBER_DIGITS

__all__ = [
    'Tenant', 'TenantStatus', 'BUSINESS_NUMBER_PREFIX', 'BUSINESS_NUMBER_DIGITS',
]
