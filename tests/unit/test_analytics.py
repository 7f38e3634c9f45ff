"""
Unit tests for the analytics aggregator.
"""
from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import update

from storefront.exceptions import ConcurrentUpdateError, ValidationError
from storefront.models import Tenant
from storefront.services import analytics_service
from storefront.services.analytics_service import (
    apply_review, apply_visit, average_from_distribution, empty_analytics,
    normalize_analytics, parse_time_range, round_one_decimal, summarize_tenants,
)

DAY_ONE = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)
DAY_TWO = datetime(2024, 3, 11, 23, 59, tzinfo=timezone.utc)


def _tenant(name, analytics, business_number='BIS00001', tenant_id=1):
    return SimpleNamespace(
        id=tenant_id, name=name, email=f'{name.lower()}@test.com',
        business_number=business_number, analytics=analytics,
    )


class TestAverageRating:
    """Weighted average over the rating distribution."""

    def test_example_distribution(self):
        assert average_from_distribution({'1': 2, '2': 0, '3': 1, '4': 0, '5': 0}) == 1.7

    def test_empty_distribution_is_zero(self):
        assert average_from_distribution({'1': 0, '2': 0, '3': 0, '4': 0, '5': 0}) == 0

    def test_rounds_half_up(self):
        assert round_one_decimal(0.05) == 0.1
        assert round_one_decimal(2.25) == 2.3
        assert round_one_decimal(4.449) == 4.4

    def test_integer_keys_are_accepted(self):
        assert average_from_distribution({1: 1, 5: 1}) == 3.0


class TestApplyVisit:

    def test_first_visit_initialises_analytics(self):
        data = apply_visit(None, now=DAY_ONE)

        assert data['total_visits'] == 1
        assert data['visits_by_date'] == {'2024-03-10': 1}
        assert data['last_visit'] == DAY_ONE.isoformat()
        assert data['reviews']['rating_distribution'] == {'1': 0, '2': 0, '3': 0, '4': 0, '5': 0}

    def test_two_dates_produce_two_buckets(self):
        data = apply_visit(None, now=DAY_ONE)
        data = apply_visit(data, now=DAY_ONE)
        data = apply_visit(data, now=DAY_TWO)

        assert data['total_visits'] == 3
        assert data['visits_by_date'] == {'2024-03-10': 2, '2024-03-11': 1}

    def test_bucket_uses_utc_date(self):
        late_evening_west = datetime.fromisoformat('2024-03-10T22:00:00-05:00')
        data = apply_visit(None, now=late_evening_west)
        assert list(data['visits_by_date']) == ['2024-03-11']

    def test_input_document_is_not_mutated(self):
        original = empty_analytics()
        apply_visit(original, now=DAY_ONE)
        assert original['total_visits'] == 0


class TestApplyReview:

    @pytest.mark.parametrize('rating', [1, 2, 3, 4, 5])
    def test_distribution_grows_by_exactly_one(self, rating):
        before = {'reviews': {'rating_distribution': {'1': 3, '2': 1, '3': 0, '4': 2, '5': 1}}}
        after = apply_review(before, rating, now=DAY_ONE)

        distribution = after['reviews']['rating_distribution']
        assert sum(distribution.values()) == 8
        assert distribution[str(rating)] == before['reviews']['rating_distribution'][str(rating)] + 1
        weighted = sum(int(k) * v for k, v in distribution.items())
        assert after['reviews']['average_rating'] == round_one_decimal(weighted / 8)

    def test_submission_counters(self):
        data = apply_review(None, 2, now=DAY_ONE)
        data = apply_review(data, 3, now=DAY_TWO)

        reviews = data['reviews']
        assert reviews['total_submissions'] == 2
        assert reviews['submissions_by_date'] == {'2024-03-10': 1, '2024-03-11': 1}
        assert reviews['average_rating'] == 2.5

    @pytest.mark.parametrize('rating', [0, 6, 2.5, '7', None, True])
    def test_invalid_rating_counts_submission_only(self, rating):
        data = apply_review(None, rating, now=DAY_ONE)

        assert data['reviews']['total_submissions'] == 1
        assert sum(data['reviews']['rating_distribution'].values()) == 0
        assert data['reviews']['average_rating'] == 0

    def test_string_digit_rating_is_counted(self):
        data = apply_review(None, '3', now=DAY_ONE)
        assert data['reviews']['rating_distribution']['3'] == 1


class TestNormalizeAnalytics:

    def test_fills_missing_keys(self):
        data = normalize_analytics({'total_visits': 4})
        assert data['visits_by_date'] == {}
        assert data['reviews']['total_submissions'] == 0
        assert set(data['reviews']['rating_distribution']) == {'1', '2', '3', '4', '5'}

    def test_drops_unknown_rating_keys_and_negative_counts(self):
        data = normalize_analytics({'reviews': {'rating_distribution': {'1': -2, '9': 4, 3: 1}}})
        assert data['reviews']['rating_distribution'] == {'1': 0, '2': 0, '3': 1, '4': 0, '5': 0}


class TestSummarizeTenants:

    def test_cutoff_date_is_inclusive(self):
        analytics = {
            'total_visits': 6,
            'visits_by_date': {'2024-02-29': 1, '2024-03-01': 2, '2024-03-31': 3},
        }
        result = summarize_tenants([_tenant('Cafe', analytics)], time_range=30, today=date(2024, 3, 31))

        row = result['tenants'][0]
        assert row['visits_in_range'] == 5
        assert row['visits_by_date'] == {'2024-03-01': 2, '2024-03-31': 3}
        assert row['total_visits'] == 6
        assert result['summary']['total_visits'] == 5

    def test_summary_figures(self):
        today = date(2024, 3, 31)
        cafe = _tenant('Cafe', {
            'visits_by_date': {'2024-03-30': 4},
            'reviews': {
                'submissions_by_date': {'2024-03-30': 2},
                'rating_distribution': {'1': 1, '2': 0, '3': 1, '4': 0, '5': 0},
            },
        }, 'BIS00001', 1)
        bakery = _tenant('Bakery', {
            'visits_by_date': {'2024-03-29': 3, '2023-01-01': 50},
            'reviews': {'rating_distribution': {'5': 1}},
        }, 'BIS00002', 2)
        idle = _tenant('Idle', None, 'BIS00003', 3)

        result = summarize_tenants([cafe, bakery, idle], time_range=7, today=today)
        summary = result['summary']

        assert summary['total_visits'] == 7
        assert summary['total_reviews'] == 2
        assert summary['active_users'] == 2
        assert summary['avg_visits_per_user'] == 3.5
        # (1 + 3 + 5) / 3
        assert summary['avg_rating'] == 3.0
        assert summary['top_performing_user'] == 'Cafe'
        assert [row['name'] for row in result['tenants']] == ['Cafe', 'Bakery', 'Idle']

    def test_first_tenant_wins_ties(self):
        today = date(2024, 3, 31)
        first = _tenant('First', {'visits_by_date': {'2024-03-31': 2}}, 'BIS00001', 1)
        second = _tenant('Second', {'visits_by_date': {'2024-03-31': 2}}, 'BIS00002', 2)

        result = summarize_tenants([first, second], time_range=30, today=today)
        assert result['summary']['top_performing_user'] == 'First'

    def test_no_activity(self):
        result = summarize_tenants([_tenant('Quiet', None)], time_range=30, today=date(2024, 3, 31))
        summary = result['summary']

        assert summary['top_performing_user'] == '-'
        assert summary['active_users'] == 0
        assert summary['avg_visits_per_user'] == 0
        assert summary['avg_rating'] == 0

    def test_malformed_bucket_is_skipped(self):
        analytics = {'visits_by_date': {'not-a-date': 9, '2024-03-31': 1}}
        result = summarize_tenants([_tenant('Cafe', analytics)], time_range=30, today=date(2024, 3, 31))
        assert result['tenants'][0]['visits_in_range'] == 1


class TestParseTimeRange:

    def test_default(self):
        assert parse_time_range(None) == 30
        assert parse_time_range('') == 30

    def test_explicit(self):
        assert parse_time_range('7') == 7

    @pytest.mark.parametrize('raw', ['abc', '-1', '99999'])
    def test_invalid(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            parse_time_range(raw)
        assert exc_info.value.reason == 'invalid_time_range'


class TestRecordVisit:
    """Persistence through the tenant row."""

    def test_record_visit_persists(self, session, tenant):
        analytics_service.record_visit(session, tenant.business_number, now=DAY_ONE)
        analytics_service.record_visit(session, tenant.business_number, now=DAY_TWO)

        stored = session.get(Tenant, tenant.id)
        session.refresh(stored)
        assert stored.analytics['total_visits'] == 2
        assert stored.analytics['visits_by_date'] == {'2024-03-10': 1, '2024-03-11': 1}

    def test_unknown_business_number_is_noop(self, session):
        assert analytics_service.record_visit(session, 'BIS99999') is None

    def test_inactive_tenant_is_noop(self, session, make_tenant):
        inactive = make_tenant(status='inactive')
        assert analytics_service.record_visit(session, inactive.business_number) is None

        session.refresh(inactive)
        assert inactive.analytics is None

    def test_record_review_persists(self, session, tenant):
        analytics_service.record_review(session, tenant.business_number, 1, now=DAY_ONE)
        analytics_service.record_review(session, tenant.business_number, 1, now=DAY_ONE)
        analytics_service.record_review(session, tenant.business_number, 3, now=DAY_ONE)

        session.refresh(tenant)
        reviews = tenant.analytics['reviews']
        assert reviews['total_submissions'] == 3
        assert reviews['average_rating'] == 1.7


class TestOptimisticConcurrency:
    """Stale writes are retried on fresh data."""

    @staticmethod
    def _bump_version(session, tenant_id):
        table = Tenant.__table__
        session.execute(
            update(table).where(table.c.id == tenant_id).values(version=table.c.version + 1)
        )

    def test_stale_write_is_retried(self, session, tenant):
        calls = []

        def mutate(analytics):
            calls.append(1)
            if len(calls) == 1:
                # Another writer commits between our read and our write
                self._bump_version(session, tenant.id)
            return apply_visit(analytics, now=DAY_ONE)

        result = analytics_service._update_analytics(session, tenant.business_number, mutate, max_retries=3)

        assert len(calls) == 2
        assert result.analytics['total_visits'] == 1

    def test_gives_up_after_max_retries(self, session, tenant):
        calls = []

        def mutate(analytics):
            calls.append(1)
            self._bump_version(session, tenant.id)
            return apply_visit(analytics, now=DAY_ONE)

        with pytest.raises(ConcurrentUpdateError):
            analytics_service._update_analytics(session, tenant.business_number, mutate, max_retries=3)
        assert len(calls) == 3
