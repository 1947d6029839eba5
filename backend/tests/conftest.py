"""
Pytest fixtures for posledger tests.

Every test gets its own pair of temp-file SQLite stores (remote + local
cache) and its own service instances, so nothing leaks between tests.
"""

import pytest
from sqlalchemy import create_engine

from posledger import create_app
from posledger.services import build_services


def _engine(path):
    # Generous busy timeout: concurrency tests contend on one SQLite file
    return create_engine(f"sqlite:///{path}", connect_args={"timeout": 30})


TEST_CONFIG = {
    "STORE_RETRY_ATTEMPTS": 3,
    "STORE_RETRY_BACKOFF": 0.01,
    "PEER_RELAY_URL": None,
    "TERMINAL_ID": "terminal-test",
}


@pytest.fixture
def ledger_config():
    return dict(TEST_CONFIG)


@pytest.fixture(scope='function')
def engines(tmp_path):
    """Remote store and local cache engines."""
    remote = _engine(tmp_path / "remote.db")
    local = _engine(tmp_path / "local.db")
    yield remote, local
    remote.dispose()
    local.dispose()


@pytest.fixture(scope='function')
def services(engines):
    """Initialized, online ledger services."""
    remote, local = engines
    svc = build_services(remote, local, TEST_CONFIG)
    svc.gateway.initialize()
    yield svc
    svc.close()


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'app-remote.db'}",
        'LOCAL_CACHE_URL': f"sqlite:///{tmp_path / 'app-local.db'}",
        **TEST_CONFIG,
    })
    yield app
    app.extensions["posledger"].close()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def make_item(services):
    """Factory for catalog items."""
    def _make(name="Cola", section="store", price=1000, cost=600, stock=10):
        return services.catalog.create_item(
            {
                "name": name,
                "section": section,
                "sell_price_cents": price,
                "cost_price_cents": cost,
                "current_amount": stock,
            },
            actor="admin",
        )

    return _make


@pytest.fixture(scope='function')
def make_customer(services):
    def _make(name="Ahmed", section="store"):
        return services.catalog.create_customer({"name": name, "section": section}, actor="admin")

    return _make
