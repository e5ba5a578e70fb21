"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from roomhub import config as config_module
from roomhub.chat.manager import manager
from roomhub.config import AppSettings


@pytest.fixture(autouse=True)
def default_settings():
    """Run every test against default settings and a fresh room.

    Tests may mutate the yielded settings (e.g. ``settings.chat.max_participants``)
    before the room is first used.
    """
    config_module._config = AppSettings()
    manager.reset()
    yield config_module._config
    manager.reset()
    config_module.reset_config()


@pytest.fixture
def client():
    """Provide a TestClient for the main FastAPI app.

    Used as a context manager so every WebSocket session in a test shares
    one event loop; broadcasts between sessions rely on that.
    """
    from roomhub.main import app
    with TestClient(app) as test_client:
        yield test_client
