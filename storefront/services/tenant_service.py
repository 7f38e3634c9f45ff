"""
Tenant directory service.

Handles business number allocation and tenant CRUD for admins and owners.
"""
import logging
from typing import Callable, List, Optional

from flask import current_app, has_app_context
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from storefront.exceptions import ConcurrentUpdateError, NotFoundError, ValidationError
from storefront.models import Tenant, TenantStatus, BUSINESS_NUMBER_PREFIX, BUSINESS_NUMBER_DIGITS
from storefront.schemas import TenantCreate, TenantUpdate, OwnerTenantUpdate

logger = logging.getLogger(__name__)

FIRST_BUSINESS_NUMBER = f"{BUSINESS_NUMBER_PREFIX}{1:0{BUSINESS_NUMBER_DIGITS}d}"


def format_business_number(sequence: int) -> str:
    """BIS + zero-padded 5 digit sequence."""
    return f"{BUSINESS_NUMBER_PREFIX}{sequence:0{BUSINESS_NUMBER_DIGITS}d}"


def next_business_number(last_business_number: Optional[str]) -> str:
    """
    Business number following `last_business_number`.

    Falls back to BIS00001 when there is no previous number or it cannot be
    parsed.
    """
    if not last_business_number:
        return FIRST_BUSINESS_NUMBER
    try:
        last_sequence = int(last_business_number.replace(BUSINESS_NUMBER_PREFIX, '', 1))
    except (AttributeError, ValueError):
        logger.error(f"Unparseable business number {last_business_number!r}, falling back to {FIRST_BUSINESS_NUMBER}")
        return FIRST_BUSINESS_NUMBER
    return format_business_number(last_sequence + 1)


def generate_business_number(session) -> str:
    """Allocate the next business number from the greatest existing one."""
    try:
        last = session.query(func.max(Tenant.business_number)).scalar()
    except SQLAlchemyError as e:
        logger.error(f"Error generating business number: {e}")
        session.rollback()
        return FIRST_BUSINESS_NUMBER
    return next_business_number(last)


def _invalidate_profile(business_number: str) -> None:
    from storefront.services.cache_service import invalidate_public_profile
    invalidate_public_profile(business_number)


def create_tenant(session, data: TenantCreate, created_by: Optional[str] = None,
                  max_attempts: Optional[int] = None) -> Tenant:
    """
    Create a tenant with a freshly allocated business number.

    Two concurrent creations can compute the same number; the unique
    constraint rejects the loser, which re-allocates and tries again.
    """
    if max_attempts is None:
        max_attempts = current_app.config.get('BUSINESS_NUMBER_MAX_ATTEMPTS', 5) if has_app_context() else 5

    for attempt in range(1, max_attempts + 1):
        business_number = generate_business_number(session)
        tenant = Tenant(
            business_number=business_number,
            name=data.name,
            email=data.email,
            mobile_number=data.mobile_number,
            minimum_rating=0,
            buttons=[],
            social_links=[],
            status=TenantStatus.ACTIVE.value,
            created_by=created_by,
        )
        session.add(tenant)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.warning(f"Business number {business_number} already taken, retrying ({attempt}/{max_attempts})")
            continue

        logger.info(f"Tenant created: {business_number} ({tenant.email}) by {created_by or 'system'}")
        return tenant

    raise ValidationError(
        'Could not allocate a unique business number, try again',
        reason='business_number_conflict'
    )


def list_tenants(session) -> List[Tenant]:
    """All tenants, newest first."""
    return session.query(Tenant).order_by(Tenant.created_at.desc(), Tenant.id.desc()).all()


def search_tenants(session, query: str) -> List[Tenant]:
    """Tenants whose email starts with `query` (case-insensitive)."""
    prefix = (query or '').strip().lower()
    if not prefix:
        return list_tenants(session)
    return session.query(Tenant).filter(
        func.lower(Tenant.email).like(f"{prefix}%")
    ).order_by(Tenant.email.asc()).all()


def get_tenant(session, tenant_id: int) -> Tenant:
    """Fetch tenant or raise NotFoundError."""
    tenant = session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant:
        raise NotFoundError('Tenant not found', reason='tenant_not_found')
    return tenant


def get_active_tenant_by_business_number(session, business_number: str) -> Optional[Tenant]:
    return session.query(Tenant).filter_by(
        business_number=business_number,
        status=TenantStatus.ACTIVE.value
    ).first()


def get_active_tenant_by_email(session, email: str) -> Optional[Tenant]:
    """Owner lookup for sign-in; emails compare case-insensitively."""
    return session.query(Tenant).filter(
        func.lower(Tenant.email) == (email or '').strip().lower(),
        Tenant.status == TenantStatus.ACTIVE.value
    ).order_by(Tenant.id.asc()).first()


def get_public_profile(session, business_number: str) -> Optional[dict]:
    """Public-safe tenant data, served from cache when available."""
    from storefront.services.cache_service import get_cache

    def load():
        tenant = get_active_tenant_by_business_number(session, business_number)
        return tenant.to_public_dict() if tenant else None

    return get_cache().memoize_profile(business_number, load)


def _max_retries(max_retries: Optional[int]) -> int:
    if max_retries is not None:
        return max_retries
    if has_app_context():
        return current_app.config.get('TENANT_UPDATE_MAX_RETRIES', 3)
    return 3


def _save_edit(session, tenant_id: int, edit: Callable[[Tenant], None],
               max_retries: Optional[int] = None) -> Tenant:
    """
    Load a tenant, apply `edit` and commit.

    Page visits bump the row version concurrently; a stale write is rolled
    back and the edit re-applied on the fresh row.
    """
    attempts = _max_retries(max_retries)

    for attempt in range(1, attempts + 1):
        tenant = get_tenant(session, tenant_id)
        edit(tenant)
        try:
            session.commit()
            return tenant
        except StaleDataError:
            session.rollback()
            logger.warning(f"Concurrent update on tenant {tenant_id}, retrying ({attempt}/{attempts})")

    logger.error(f"Gave up updating tenant {tenant_id} after {attempts} attempts")
    raise ConcurrentUpdateError()


def _apply_update(tenant: Tenant, data) -> None:
    for field, value in data.to_record().items():
        setattr(tenant, field, value)


def update_tenant(session, tenant_id: int, data: TenantUpdate, max_retries: Optional[int] = None) -> Tenant:
    """Admin edit of a tenant record."""
    tenant = _save_edit(session, tenant_id, lambda t: _apply_update(t, data), max_retries)
    _invalidate_profile(tenant.business_number)
    logger.info(f"Tenant updated: {tenant.business_number}")
    return tenant


def update_own_tenant(session, tenant: Tenant, data: OwnerTenantUpdate,
                      max_retries: Optional[int] = None) -> Tenant:
    """Owner self-service edit; the schema excludes threshold and status."""
    tenant = _save_edit(session, tenant.id, lambda t: _apply_update(t, data), max_retries)
    _invalidate_profile(tenant.business_number)
    logger.info(f"Tenant updated by owner: {tenant.business_number}")
    return tenant


def set_menu_pdf(session, tenant: Tenant, url: str, max_retries: Optional[int] = None) -> Tenant:
    def edit(t):
        t.menu_pdf = url

    tenant = _save_edit(session, tenant.id, edit, max_retries)
    _invalidate_profile(tenant.business_number)
    return tenant


def delete_tenant(session, tenant_id: int, max_retries: Optional[int] = None) -> None:
    """Hard delete of a tenant record."""
    deleted = {}

    def edit(t):
        deleted['business_number'] = t.business_number
        session.delete(t)

    _save_edit(session, tenant_id, edit, max_retries)
    business_number = deleted['business_number']
    _invalidate_profile(business_number)
    logger.info(f"Tenant deleted: {business_number}")
