"""
Shared fixtures for integration tests.

These fixtures handle:
- Services wired to per-test run and cache directories
- Caller role overrides for TestClient (its peer address is not an IP)
"""

import pytest
from fastapi.testclient import TestClient

import core  # noqa: F401  # Registers the routes on the shared app
from config import Config
from core.app_state import GatewayServices, app, get_caller, get_services
from models import Caller
from services.text_utils import file_encode


@pytest.fixture
def record_limit_kb():
    """Small ceiling by default; override in a test class to post at the real one."""
    return 4


@pytest.fixture
def services(tmp_path, record_limit_kb):
    cfg = Config()
    cfg.GATEWAY.run_dir = str(tmp_path / "run")
    cfg.GATEWAY.cache_dir = str(tmp_path / "cache")
    cfg.GATEWAY.spam_list_path = str(tmp_path / "spam.txt")
    cfg.GATEWAY.record_limit_kb = record_limit_kb
    cfg.GATEWAY.nodes = []
    return GatewayServices(cfg)


@pytest.fixture
def news_datfile(services):
    datfile = file_encode("thread", "news")
    services.cache_store.get(datfile).create()
    return datfile


@pytest.fixture
def caller_holder():
    """Mutable holder so a test can switch roles between requests."""
    return {"caller": Caller(remote_addr="203.0.113.7", is_visitor=True)}


@pytest.fixture
def client(services, caller_holder):
    app.dependency_overrides[get_services] = lambda: services
    app.dependency_overrides[get_caller] = lambda: caller_holder["caller"]
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def as_friend(caller_holder):
    caller_holder["caller"] = Caller(remote_addr="192.168.1.20", is_friend=True, is_visitor=True)


@pytest.fixture
def as_admin(caller_holder):
    caller_holder["caller"] = Caller(remote_addr="127.0.0.1", is_admin=True, is_friend=True, is_visitor=True)
