"""Tenant model - one record per business, with its analytics embedded as a JSON document."""
import enum
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, JSON, CheckConstraint
from sqlalchemy.sql import func
from storefront.database import Base


BUSINESS_NUMBER_PREFIX = 'BIS'
BUSINESS_NUMBER_DIGITS = 5


class TenantStatus(enum.Enum):
    """Lifecycle status of a tenant."""
    ACTIVE = 'active'
    INACTIVE = 'inactive'


class Tenant(Base):
    """Tenant model - each business with its public storefront settings."""

    __tablename__ = 'tenant'
    __table_args__ = (
        CheckConstraint('minimum_rating >= 0 AND minimum_rating <= 5', name='ck_tenant_minimum_rating'),
    )

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    business_number = Column(String(8), nullable=False, unique=True, index=True)  # BIS00001
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    mobile_number = Column(String(40), nullable=False)

    banner_image = Column(String(1024), nullable=True)
    logo = Column(String(1024), nullable=True)
    review_url = Column(String(1024), nullable=True)
    minimum_rating = Column(Integer, nullable=False, default=0)
    buttons = Column(JSON, nullable=False, default=list)
    social_links = Column(JSON, nullable=False, default=list)
    menu_pdf = Column(String(1024), nullable=True)

    status = Column(String(20), nullable=False, default=TenantStatus.ACTIVE.value)
    created_by = Column(String(255), nullable=True)

    # Embedded analytics document, lazily initialised by the aggregator
    analytics = Column(JSON, nullable=True)

    # Optimistic concurrency counter, bumped on every UPDATE
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {'version_id_col': version, 'eager_defaults': True}

    @property
    def is_active(self):
        return self.status == TenantStatus.ACTIVE.value

    def to_public_dict(self):
        """Public-safe subset served to the review/menu pages."""
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'mobile_number': self.mobile_number,
            'business_number': self.business_number,
            'banner_image': self.banner_image,
            'logo': self.logo,
            'review_url': self.review_url,
            'minimum_rating': self.minimum_rating or 0,
            'buttons': self.buttons or [],
            'social_links': self.social_links or [],
            'menu_pdf': self.menu_pdf,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'status': self.status,
        }

    def to_dict(self):
        """Full record, including analytics, for admin and owner dashboards."""
        from storefront.services.analytics_service import normalize_analytics

        data = self.to_public_dict()
        data.update({
            'created_by': self.created_by,
            'analytics': normalize_analytics(self.analytics),
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        })
        return data

    def __repr__(self):
        return f"<Tenant(id={self.id}, business_number='{self.business_number}', name='{self.name}')>"
