"""Shared fixtures for web API tests."""

import pytest
from fastapi.testclient import TestClient

from cli.config_models import StorageConfig
from locale_storage import CookieStore, LocaleStorageManager, LocalStore
from web.app import app
from web.deps import get_config, get_manager, get_whatsapp_client
from whatsapp import MockWhatsAppClient


@pytest.fixture
def app_secret():
    return "test-app-secret"


@pytest.fixture
def verify_token():
    return "test-verify-token"


@pytest.fixture
def config(tmp_path, app_secret, verify_token):
    return StorageConfig.from_dict(
        {
            "paths": {
                "local_db": str(tmp_path / "storage.db"),
                "cookie_jar": str(tmp_path / "cookies.json"),
            },
            "whatsapp": {"app_secret": app_secret, "verify_token": verify_token},
        }
    )


@pytest.fixture
def web_manager(tmp_path):
    """Fresh manager per test over a temp SQLite file."""
    m = LocaleStorageManager(
        LocalStore(tmp_path / "storage.db"),
        CookieStore(),
        enable_console_log=False,
    )
    yield m
    m.shutdown()


@pytest.fixture
def whatsapp_client():
    return MockWhatsAppClient()


@pytest.fixture
def client(config, web_manager, whatsapp_client):
    """Test client with per-test storage and a recording WhatsApp client."""
    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_manager] = lambda: web_manager
    app.dependency_overrides[get_whatsapp_client] = lambda: whatsapp_client
    yield TestClient(app)
    app.dependency_overrides.clear()
