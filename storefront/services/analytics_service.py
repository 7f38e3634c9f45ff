"""
Analytics service for the storefront.

Maintains the analytics document embedded in each tenant record:

    total_visits, visits_by_date, last_visit,
    reviews: total_submissions, submissions_by_date,
             average_rating, rating_distribution

Write side (record_visit / record_review) is a read-modify-write of the
whole document guarded by the tenant's version column: a stale write is
rolled back and re-applied on fresh data.

Read side (get_analytics_summary) restricts the date buckets to a trailing
window and aggregates across tenants for the dashboards.
"""
import copy
import logging
from datetime import datetime, date, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, Optional

from flask import current_app, has_app_context
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from storefront.exceptions import ConcurrentUpdateError, ValidationError
from storefront.models import Tenant, TenantStatus

logger = logging.getLogger(__name__)

RATING_KEYS = ('1', '2', '3', '4', '5')
DEFAULT_TIME_RANGE_DAYS = 30


# =====================================================
# PURE AGGREGATION
# =====================================================

def empty_review_stats() -> dict:
    return {
        'total_submissions': 0,
        'submissions_by_date': {},
        'average_rating': 0,
        'rating_distribution': {key: 0 for key in RATING_KEYS},
    }


def empty_analytics() -> dict:
    """Zero-state analytics document."""
    return {
        'total_visits': 0,
        'visits_by_date': {},
        'last_visit': None,
        'reviews': empty_review_stats(),
    }


def _as_count(value) -> int:
    try:
        count = int(value)
    except (TypeError, ValueError):
        return 0
    return count if count > 0 else 0


def normalize_analytics(analytics: Optional[dict]) -> dict:
    """
    Return a detached copy of an analytics document with every key present.

    Rating distribution keys are coerced to the strings '1'..'5' (JSON
    columns round-trip integer keys as strings) and counts to non-negative
    integers; unknown rating keys are dropped.
    """
    if not analytics:
        return empty_analytics()

    data = copy.deepcopy(analytics)
    normalized = empty_analytics()
    normalized['total_visits'] = _as_count(data.get('total_visits'))
    normalized['visits_by_date'] = {
        str(day): _as_count(count) for day, count in (data.get('visits_by_date') or {}).items()
    }
    normalized['last_visit'] = data.get('last_visit')

    reviews = data.get('reviews') or {}
    stats = normalized['reviews']
    stats['total_submissions'] = _as_count(reviews.get('total_submissions'))
    stats['submissions_by_date'] = {
        str(day): _as_count(count) for day, count in (reviews.get('submissions_by_date') or {}).items()
    }
    distribution = reviews.get('rating_distribution') or {}
    for key, count in distribution.items():
        if str(key) in RATING_KEYS:
            stats['rating_distribution'][str(key)] = _as_count(count)
    stats['average_rating'] = average_from_distribution(stats['rating_distribution'])
    return normalized


def round_one_decimal(value) -> float:
    """Round half-up to one decimal place (0.05 -> 0.1, never banker's rounding)."""
    return float(Decimal(str(value)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))


def _weighted_totals(distribution: Dict[str, int]):
    weighted_sum = 0
    count = 0
    for key, value in (distribution or {}).items():
        if str(key) not in RATING_KEYS:
            continue
        value = _as_count(value)
        weighted_sum += int(key) * value
        count += value
    return weighted_sum, count


def average_from_distribution(distribution: Dict[str, int]) -> float:
    """Weighted mean of a 1..5 distribution, one decimal; 0 when empty."""
    weighted_sum, count = _weighted_totals(distribution)
    if count == 0:
        return 0
    return round_one_decimal(Decimal(weighted_sum) / Decimal(count))


def coerce_rating(rating) -> Optional[int]:
    """Return the rating as an int when it is an integer in 1..5, else None."""
    if isinstance(rating, bool):
        return None
    if isinstance(rating, float):
        if not rating.is_integer():
            return None
        rating = int(rating)
    elif isinstance(rating, str):
        if not rating.strip().isdigit():
            return None
        rating = int(rating.strip())
    if not isinstance(rating, int):
        return None
    return rating if 1 <= rating <= 5 else None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _bucket_key(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).date().isoformat()


def apply_visit(analytics: Optional[dict], now: Optional[datetime] = None) -> dict:
    """Return a new analytics document with one more visit recorded at `now`."""
    now = now or _utc_now()
    data = normalize_analytics(analytics)
    today = _bucket_key(now)

    data['total_visits'] += 1
    data['visits_by_date'][today] = data['visits_by_date'].get(today, 0) + 1
    data['last_visit'] = now.isoformat()
    return data


def apply_review(analytics: Optional[dict], rating, now: Optional[datetime] = None) -> dict:
    """
    Return a new analytics document with one more review submission.

    The submission counters always move; the distribution only moves for an
    integer rating in 1..5. The average is recomputed from the whole
    distribution.
    """
    now = now or _utc_now()
    data = normalize_analytics(analytics)
    stats = data['reviews']
    today = _bucket_key(now)

    stats['total_submissions'] += 1
    stats['submissions_by_date'][today] = stats['submissions_by_date'].get(today, 0) + 1

    valid_rating = coerce_rating(rating)
    if valid_rating is not None:
        key = str(valid_rating)
        stats['rating_distribution'][key] += 1

    stats['average_rating'] = average_from_distribution(stats['rating_distribution'])
    return data


def filter_buckets(buckets: Dict[str, int], cutoff: date):
    """Keep date buckets on or after `cutoff`; returns (filtered, total)."""
    filtered = {}
    total = 0
    for day, count in (buckets or {}).items():
        try:
            bucket_date = date.fromisoformat(day)
        except (TypeError, ValueError):
            logger.warning(f"[ANALYTICS] Ignoring malformed date bucket: {day!r}")
            continue
        if bucket_date >= cutoff:
            filtered[day] = count
            total += count
    return filtered, total


def summarize_tenants(tenants: Iterable[Tenant], time_range: int = DEFAULT_TIME_RANGE_DAYS,
                      today: Optional[date] = None) -> dict:
    """
    Aggregate tenant analytics over the trailing `time_range` days.

    Returns:
        dict with keys:
            - tenants: per-tenant rows sorted by visits_in_range, descending
            - summary: total_visits, total_reviews, active_users,
              avg_visits_per_user, avg_rating, top_performing_user
    """
    today = today or _utc_now().date()
    cutoff = today - timedelta(days=time_range)

    rows = []
    total_visits = 0
    total_reviews = 0
    active_users = 0
    top_performing_user = None
    max_visits = 0
    rating_sum = 0
    rating_count = 0

    for tenant in tenants:
        analytics = normalize_analytics(tenant.analytics)
        stats = analytics['reviews']

        visits_by_date, visits_in_range = filter_buckets(analytics['visits_by_date'], cutoff)
        submissions_by_date, reviews_in_range = filter_buckets(stats['submissions_by_date'], cutoff)

        rows.append({
            'id': tenant.id,
            'name': tenant.name,
            'email': tenant.email,
            'business_number': tenant.business_number,
            'total_visits': analytics['total_visits'],
            'visits_in_range': visits_in_range,
            'visits_by_date': visits_by_date,
            'last_visit': analytics['last_visit'],
            'reviews': {
                'total_submissions': stats['total_submissions'],
                'submissions_in_range': reviews_in_range,
                'submissions_by_date': submissions_by_date,
                'average_rating': stats['average_rating'],
                'rating_distribution': stats['rating_distribution'],
            },
        })

        total_visits += visits_in_range
        total_reviews += reviews_in_range
        if visits_in_range > 0:
            active_users += 1
        if visits_in_range > max_visits:
            max_visits = visits_in_range
            top_performing_user = tenant.name

        tenant_sum, tenant_count = _weighted_totals(stats['rating_distribution'])
        rating_sum += tenant_sum
        rating_count += tenant_count

    summary = {
        'total_visits': total_visits,
        'total_reviews': total_reviews,
        'active_users': active_users,
        'avg_visits_per_user': round_one_decimal(Decimal(total_visits) / Decimal(active_users)) if active_users else 0,
        'avg_rating': round_one_decimal(Decimal(rating_sum) / Decimal(rating_count)) if rating_count else 0,
        'top_performing_user': top_performing_user or '-',
    }

    rows.sort(key=lambda row: row['visits_in_range'], reverse=True)
    return {'tenants': rows, 'summary': summary, 'time_range': time_range}


# =====================================================
# PERSISTENCE
# =====================================================

def _max_retries(max_retries: Optional[int]) -> int:
    if max_retries is not None:
        return max_retries
    if has_app_context():
        return current_app.config.get('ANALYTICS_MAX_RETRIES', 5)
    return 5


def _find_active_tenant(session, business_number: str) -> Optional[Tenant]:
    return session.query(Tenant).filter_by(
        business_number=business_number,
        status=TenantStatus.ACTIVE.value
    ).first()


def _update_analytics(session, business_number: str, mutate: Callable[[Optional[dict]], dict],
                      max_retries: Optional[int] = None) -> Optional[Tenant]:
    """Apply `mutate` to a tenant's analytics, retrying on version conflicts."""
    attempts = _max_retries(max_retries)

    for attempt in range(1, attempts + 1):
        tenant = _find_active_tenant(session, business_number)
        if tenant is None:
            return None

        tenant.analytics = mutate(tenant.analytics)
        flag_modified(tenant, 'analytics')
        try:
            session.commit()
            return tenant
        except StaleDataError:
            session.rollback()
            logger.warning(
                f"[ANALYTICS] Concurrent update on {business_number}, "
                f"retrying ({attempt}/{attempts})"
            )

    logger.error(f"[ANALYTICS] ✗ Gave up updating {business_number} after {attempts} attempts")
    raise ConcurrentUpdateError()


def record_visit(session, business_number: str, now: Optional[datetime] = None,
                 max_retries: Optional[int] = None) -> Optional[Tenant]:
    """
    Count one public page visit for a tenant.

    Unknown or inactive business numbers are dropped (logged, returns None).
    """
    tenant = _update_analytics(
        session, business_number,
        lambda analytics: apply_visit(analytics, now),
        max_retries=max_retries
    )
    if tenant is None:
        logger.info(f"[ANALYTICS] Visit dropped, no active tenant for {business_number}")
        return None

    logger.info(
        f"[ANALYTICS] Visit tracked for {business_number}. "
        f"Total visits: {tenant.analytics['total_visits']}"
    )
    return tenant


def record_review(session, business_number: str, rating, timestamp: Optional[str] = None,
                  kind: str = 'internal_review', now: Optional[datetime] = None,
                  max_retries: Optional[int] = None) -> Optional[Tenant]:
    """
    Count one review submission for a tenant and update its rating statistics.

    Unknown or inactive business numbers are dropped (logged, returns None).
    """
    tenant = _update_analytics(
        session, business_number,
        lambda analytics: apply_review(analytics, rating, now),
        max_retries=max_retries
    )
    if tenant is None:
        logger.info(f"[ANALYTICS] Review dropped, no active tenant for {business_number}")
        return None

    stats = tenant.analytics['reviews']
    logger.info(
        f"[ANALYTICS] Review ({kind}) tracked for {business_number} at {timestamp or 'now'}. "
        f"Rating: {rating}, Total submissions: {stats['total_submissions']}, "
        f"Average: {stats['average_rating']}"
    )
    return tenant


def get_analytics_summary(session, time_range: int = DEFAULT_TIME_RANGE_DAYS,
                          tenant_id: Optional[int] = None,
                          business_number: Optional[str] = None,
                          today: Optional[date] = None) -> dict:
    """Summarize active tenants, optionally restricted to one by id or business number."""
    query = session.query(Tenant).filter(Tenant.status == TenantStatus.ACTIVE.value)
    if tenant_id is not None:
        query = query.filter(Tenant.id == tenant_id)
    elif business_number:
        query = query.filter(Tenant.business_number == business_number)

    tenants = query.order_by(Tenant.business_number.asc()).all()
    return summarize_tenants(tenants, time_range=time_range, today=today)


def parse_time_range(raw, default: Optional[int] = None) -> int:
    """Trailing window in days from a query-string value."""
    if default is None:
        default = current_app.config.get('ANALYTICS_DEFAULT_TIME_RANGE', DEFAULT_TIME_RANGE_DAYS) \
            if has_app_context() else DEFAULT_TIME_RANGE_DAYS
    if raw in (None, ''):
        return default
    try:
        time_range = int(raw)
    except (TypeError, ValueError):
        raise ValidationError('time_range must be a whole number of days', reason='invalid_time_range')
    if time_range < 0 or time_range > 3650:
        raise ValidationError('time_range must be between 0 and 3650 days', reason='invalid_time_range')
    return time_range
