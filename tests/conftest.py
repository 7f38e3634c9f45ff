import uuid

import pytest

from storefront import create_app
from storefront.database import create_all, drop_all, get_session
from storefront.models import Tenant
from storefront.services import identity_service, storage_service

ADMIN_EMAIL = 'admin@storefront.test'
PUBLIC_URL = 'https://storage.googleapis.com'


class FakeStorage:
    """In-memory stand-in for the S3 client wrapper."""

    def __init__(self, fail=False):
        self.fail = fail
        self.uploads = {}

    def upload_bytes(self, data, object_name, content_type, metadata=None):
        if self.fail:
            from storefront.exceptions import StorageError
            raise StorageError('Upload failed: bucket unreachable')
        self.uploads[object_name] = (data, content_type)
        return f"{PUBLIC_URL}/storefront-test/{object_name}"


class FakeVerifier:
    """Maps known ID tokens to claims; anything else is rejected."""

    def __init__(self):
        self.tokens = {}

    def verify(self, id_token):
        from storefront.exceptions import AuthenticationError
        if id_token not in self.tokens:
            raise AuthenticationError('Invalid token', reason='invalid_token')
        return self.tokens[id_token]


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestingConfig')
    create_all()
    yield app
    drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session; every tenant row is removed afterwards."""
    session = get_session()
    yield session
    session.rollback()
    session.query(Tenant).delete()
    session.commit()
    session.remove()


@pytest.fixture(scope='function')
def make_tenant(session):
    """Factory for tenants with unique emails."""
    counter = {'n': 0}

    def _make(**overrides):
        counter['n'] += 1
        suffix = str(uuid.uuid4())[:8]
        values = {
            'business_number': f"BIS{counter['n']:05d}",
            'name': f'Test Business {suffix}',
            'email': f'owner-{suffix}@test.com',
            'mobile_number': '+910000000000',
            'minimum_rating': 4,
            'review_url': 'https://g.page/r/test-business/review',
            'buttons': [],
            'social_links': [],
            'status': 'active',
        }
        values.update(overrides)
        tenant = Tenant(**values)
        session.add(tenant)
        session.commit()
        session.refresh(tenant)
        return tenant

    return _make


@pytest.fixture(scope='function')
def tenant(make_tenant):
    """Active tenant with threshold 4 and an external review URL."""
    return make_tenant()


@pytest.fixture(scope='function')
def storage(monkeypatch):
    fake = FakeStorage()
    monkeypatch.setattr(storage_service, '_storage_service', fake)
    return fake


@pytest.fixture(scope='function')
def failing_storage(monkeypatch):
    fake = FakeStorage(fail=True)
    monkeypatch.setattr(storage_service, '_storage_service', fake)
    return fake


@pytest.fixture(scope='function')
def verifier(monkeypatch):
    fake = FakeVerifier()
    monkeypatch.setattr(identity_service, '_identity_verifier', fake)
    return fake


@pytest.fixture(scope='function')
def admin_client(client, session):
    """Client with an admin session."""
    with client.session_transaction() as sess:
        sess['role'] = 'admin'
        sess['email'] = ADMIN_EMAIL
    return client


@pytest.fixture(scope='function')
def owner_client(client, tenant):
    """Client signed in as the owner of `tenant`."""
    with client.session_transaction() as sess:
        sess['role'] = 'user'
        sess['email'] = tenant.email.lower()
        sess['tenant_id'] = tenant.id
        sess['business_number'] = tenant.business_number
    return client
