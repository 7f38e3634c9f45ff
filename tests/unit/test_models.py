"""
Unit tests for the Tenant model.
"""
import pytest
from sqlalchemy.exc import IntegrityError

from storefront.models import Tenant, TenantStatus


class TestTenantModel:
    """Test Tenant model."""

    def test_defaults(self, session):
        tenant = Tenant(business_number='BIS00001', name='Cafe', email='cafe@test.com', mobile_number='1')
        session.add(tenant)
        session.commit()

        assert tenant.id is not None
        assert tenant.status == TenantStatus.ACTIVE.value
        assert tenant.minimum_rating == 0
        assert tenant.version == 1
        assert tenant.created_at is not None
        assert tenant.is_active

    def test_business_number_is_unique(self, session, make_tenant):
        make_tenant(business_number='BIS00001')

        session.add(Tenant(business_number='BIS00001', name='Dup', email='dup@test.com', mobile_number='1'))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_threshold_is_checked(self, session):
        session.add(Tenant(business_number='BIS00001', name='Cafe', email='cafe@test.com',
                           mobile_number='1', minimum_rating=7))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_public_dict_hides_analytics(self, make_tenant):
        tenant = make_tenant(analytics={'total_visits': 3}, created_by='admin@storefront.test')
        data = tenant.to_public_dict()

        assert 'analytics' not in data
        assert 'created_by' not in data
        assert data['minimum_rating'] == 4
        assert data['buttons'] == []

    def test_full_dict_normalizes_analytics(self, make_tenant):
        tenant = make_tenant(analytics=None)
        data = tenant.to_dict()

        assert data['analytics']['total_visits'] == 0
        assert data['analytics']['reviews']['rating_distribution']['5'] == 0

    def test_repr(self, make_tenant):
        tenant = make_tenant(business_number='BIS00042', name='Cafe')
        assert "BIS00042" in repr(tenant)

    def test_queries_go_through_the_session(self):
        assert not hasattr(Tenant, 'query')
