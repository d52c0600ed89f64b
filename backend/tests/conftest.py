"""
Pytest fixtures for the terminal tracker backend tests.

Provides an in-memory database, the test client and helpers for faking the
ledger sheet.
"""

import json

import httpx
import pytest
from pos_tracker import create_app
from pos_tracker.config import Config
from pos_tracker.extensions import db
from pos_tracker.models import Terminal


FEED_URL = "https://script.google.com/macros/s/TEST_DEPLOYMENT/exec"


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LEDGER_FEED_URL = FEED_URL
    LEDGER_FEED_TIMEOUT_SECONDS = 5
    EXPECTED_PROCUREMENT_COUNT = 600
    DEFAULT_UNIT_PRICE = "16825"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
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
def stock(db_session):
    """Put a handful of IN_STOCK terminals in the store."""
    def _add(*serials):
        for serial in serials:
            db_session.add(Terminal(serial_number=serial, status="IN_STOCK"))
        db_session.commit()
    return _add


def json_transport(payload, status_code=200):
    """MockTransport answering every request with the given JSON body."""
    def handler(request):
        return httpx.Response(status_code, text=json.dumps(payload))
    return httpx.MockTransport(handler)


def text_transport(text, status_code=200):
    def handler(request):
        return httpx.Response(status_code, text=text)
    return httpx.MockTransport(handler)
