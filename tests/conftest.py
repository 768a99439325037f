"""
Pytest configuration and fixtures for Climate Monitor tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def settings(tmp_path):
    """Isolated settings: no .env, no MQTT connection at startup."""
    from climate_monitor.core.config import Settings

    return Settings(
        _env_file=None,
        mqtt_enabled=False,
        mqtt_tls=False,
        static_dir=tmp_path,
    )


@pytest.fixture
def store():
    """Empty history store with the default capacity."""
    from climate_monitor.services.history import HistoryStore

    return HistoryStore()


@pytest.fixture
def make_reading():
    """Factory for readings with sensible defaults."""
    from climate_monitor.models.reading import IndicatorStates, Reading

    def _make(temperature=22.0, humidity=45.0, captured_at=1_700_000_000, **kwargs):
        return Reading(
            temperature=temperature,
            humidity=humidity,
            indicators=kwargs.pop("indicators", IndicatorStates()),
            captured_at=captured_at,
            device_id=kwargs.pop("device_id", "2020171026"),
            firmware_version=kwargs.pop("firmware_version", "1.0"),
            **kwargs,
        )

    return _make


@pytest.fixture
def mock_mqtt_client():
    """Create a mock MQTT client for testing."""
    from unittest.mock import MagicMock

    client = MagicMock()
    client.is_connected.return_value = True

    result = MagicMock()
    result.rc = 0  # MQTT_ERR_SUCCESS
    client.publish.return_value = result

    return client


@pytest.fixture
def sample_telemetry_payload():
    """Telemetry as published by the device firmware (Spanish keys)."""
    return {
        "temperatura": 23.5,
        "humedad": 48.2,
        "led_amarillo": 0,
        "led_verde": 1,
        "led_rojo": 0,
        "estado": "COOLING",
        "timestamp": 1_718_000_000,
        "version": "1.0",
        "uuid": "esp32-lab-01",
    }
