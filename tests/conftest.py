# tests/conftest.py
import json
import pytest
from unittest.mock import MagicMock

from googleapiclient.errors import HttpError

from drive_manager.config import Settings, get_settings
from drive_manager.gdrive import GoogleDriveManager
from drive_manager.gdrive_auth import AuthContext


@pytest.fixture
def settings():
    """
    Real settings with zero backoff, so retry loops finish instantly.
    Attempt limits keep their production values.
    """
    return Settings(
        RETRY_BASE_DELAY_SECONDS=0,
        RETRY_MAX_DELAY_SECONDS=0,
        RETRY_JITTER=False,
        RETRY_MAX_ATTEMPTS=5,
        RETRY_MAX_ATTEMPTS_EXTENDED=6,
        PAGE_SIZE=500,
        PERMISSIONS_PAGE_SIZE=100,
        LOG_FILE=None,
    )


@pytest.fixture(autouse=True)
def patch_settings_class(monkeypatch, settings):
    """
    Any call to `Settings()` inside the package receives the test settings,
    so no real environment is ever loaded.
    """
    get_settings.cache_clear()
    monkeypatch.setattr("drive_manager.config.Settings", lambda *args, **kwargs: settings)
    yield
    get_settings.cache_clear()


@pytest.fixture
def auth():
    return AuthContext(credentials=MagicMock())


@pytest.fixture
def service():
    """A fresh mock Drive resource for each test."""
    return MagicMock()


@pytest.fixture
def manager(auth, settings, service):
    return GoogleDriveManager(auth, settings=settings, service=service)


@pytest.fixture
def make_http_error():
    """Builds the HttpError googleapiclient raises for a failed API call."""

    def _make(status, message="Backend Error"):
        return HttpError(
            resp=MagicMock(status=status),
            content=json.dumps({"error": {"code": status, "message": message}}).encode(),
        )

    return _make
