import pytest

from attendance_service import config as config_module
from attendance_service.config import load_config


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the host environment from leaking into configuration."""
    for env_name, _, _ in config_module._SETTINGS.values():
        monkeypatch.delenv(env_name, raising=False)


@pytest.fixture
def make_config():
    def _make(**properties):
        return load_config({key: str(value) for key, value in properties.items()})
    return _make
