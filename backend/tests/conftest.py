"""
Pytest fixtures for refpoints backend tests.

Provides test database setup, tenant fixtures, factories and test client.
"""

import itertools
from datetime import timedelta

import pytest

from refpoints import create_app
from refpoints.extensions import NOTIFIER_KEY, BROADCAST_QUEUE_KEY, db
from refpoints.models import Organization
from refpoints.services import campaign_service, customer_service, points_service
from refpoints.time_utils import utcnow

from fakes import FakeNotifier, SleepRecorder

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'CONTENTION_BACKOFF_SECONDS': 0,
    'BROADCAST_DELAY_SECONDS': 0.5,
}

_phones = itertools.count(5550000001)


def next_phone() -> str:
    return str(next(_phones))


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        **TEST_CONFIG,
        'NOTIFIER_INSTANCE': FakeNotifier(),
        'BROADCAST_SLEEP': SleepRecorder(),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()

    app.extensions[BROADCAST_QUEUE_KEY].stop()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def notifier(app):
    fake = app.extensions[NOTIFIER_KEY]
    fake.reset()
    return fake


@pytest.fixture(scope='function')
def db_session(app, notifier):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant(db_session):
    """Primary shop."""
    org = Organization(name="Corner Cafe", code="CAFE", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def other_tenant(db_session):
    """Second shop, for isolation checks."""
    org = Organization(name="Book Nook", code="BOOK", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def headers(tenant):
    return {"X-Tenant": tenant.code}


@pytest.fixture(scope='function')
def make_customer(db_session, tenant):
    """Factory: register a customer (with personal referral coupon)."""
    def _make(name="Asha", phone=None, org=None, points=0):
        org = org or tenant
        customer, _ = customer_service.register_customer(org.id, name, phone or next_phone())
        if points:
            points_service.apply_points(customer.id, points, reason="Opening balance", commit=True)
            db_session.refresh(customer)
        return customer
    return _make


@pytest.fixture(scope='function')
def make_campaign(db_session, tenant):
    """Factory: a campaign running from yesterday for 30 days."""
    def _make(org=None, **fields):
        now = utcnow()
        data = {
            "name": "Spring Referrals",
            "reward_type": "fixed",
            "reward_per_referral": 25,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=30),
        }
        data.update(fields)
        return campaign_service.create_campaign((org or tenant).id, data)
    return _make
