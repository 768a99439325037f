"""
Reading model - one normalized telemetry sample from the device
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from climate_monitor.core.clock import to_iso


@dataclass(frozen=True)
class IndicatorStates:
    """On/off state of the three device LEDs."""

    amber: bool = False
    green: bool = False
    red: bool = False


@dataclass(frozen=True)
class Reading:
    """Telemetry sample. Built once by the normalizer, never mutated."""

    # Sensor data
    temperature: float | None  # Celsius, None if the sensor faulted
    humidity: float | None  # %

    # Device state
    indicators: IndicatorStates = field(default_factory=IndicatorStates)
    system_state: str = "IDLE"  # Open-ended label, e.g. IDLE / COOLING

    # Epoch seconds, producer supplied or ingestion time
    captured_at: int = 0

    # Device info
    device_id: str = ""
    firmware_version: str = ""

    @property
    def captured_at_iso(self) -> str | None:
        """ISO 8601 (UTC) rendering of captured_at, None if out of datetime range."""
        try:
            moment = datetime.fromtimestamp(self.captured_at, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
        return to_iso(moment)

    def to_dict(self) -> dict:
        """Wire shape shared with the dashboard and the device payload."""
        return {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "led_amarillo": int(self.indicators.amber),
            "led_verde": int(self.indicators.green),
            "led_rojo": int(self.indicators.red),
            "state": self.system_state,
            "timestamp": self.captured_at,
            "version": self.firmware_version,
            "uuid": self.device_id,
        }

    def __repr__(self) -> str:
        return f"<Reading {self.device_id} t={self.temperature} h={self.humidity} at={self.captured_at}>"


def placeholder_reading(device_id: str, firmware_version: str) -> dict:
    """Wire shape served before the first reading arrives."""
    return {
        "temperature": None,
        "humidity": None,
        "led_amarillo": 0,
        "led_verde": 0,
        "led_rojo": 0,
        "state": "IDLE",
        "timestamp": None,
        "version": firmware_version,
        "uuid": device_id,
    }
