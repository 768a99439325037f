"""
Reading Normalizer - maps loosely-typed device payloads to Reading records

The device firmware has shipped with both Spanish and English field names.
Each canonical field accepts either spelling; the English (canonical) key
wins when both are present.
"""

import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from climate_monitor.models.reading import IndicatorStates, Reading

# canonical field -> accepted keys, highest precedence first
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "temperature": ("temperature", "temperatura"),
    "humidity": ("humidity", "humedad"),
    "led_amber": ("led_amarillo",),
    "led_green": ("led_verde",),
    "led_red": ("led_rojo",),
    "state": ("state", "estado"),
    "timestamp": ("timestamp",),
    "firmware_version": ("version",),
    "device_id": ("uuid",),
}

DEFAULT_STATE = "IDLE"

_TRUE_STRINGS = {"1", "true", "on", "yes"}


@dataclass(frozen=True)
class DeviceDefaults:
    """Fallback identifiers for payloads that omit them."""

    device_id: str = "2020171026"
    firmware_version: str = "1.0"

    @classmethod
    def from_settings(cls, settings) -> "DeviceDefaults":
        return cls(
            device_id=settings.default_device_id,
            firmware_version=settings.default_firmware_version,
        )


def _pick(payload: Mapping[str, Any], field: str) -> Any:
    """Return the first present value for a canonical field, or None."""
    for key in FIELD_ALIASES[field]:
        value = payload.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _to_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        # Numeric strings follow the same rule as numbers ("2" is on)
        number = _to_float(value)
        if number is not None:
            return number != 0
        return value.strip().lower() in _TRUE_STRINGS
    return False


def _to_text(value: Any, default: str) -> str:
    if value is None:
        return default
    return str(value).strip() or default


def _to_epoch(value: Any, clock: Callable[[], float]) -> int:
    number = _to_float(value)
    if number is None or number <= 0:
        return int(clock())
    return int(number)


def normalize_payload(
    payload: Mapping[str, Any],
    defaults: DeviceDefaults = DeviceDefaults(),
    clock: Callable[[], float] = time.time,
) -> Reading:
    """
    Build a Reading from an arbitrary payload.

    Never raises: missing or malformed fields degrade to None/defaults so
    that one bad message cannot stall the pipeline.

    Args:
        payload: Decoded message body (anything dict-like)
        defaults: Device id / firmware fallbacks
        clock: Wall-clock source for payloads without a usable timestamp

    Returns:
        Immutable Reading
    """
    if not isinstance(payload, Mapping):
        payload = {}

    return Reading(
        temperature=_to_float(_pick(payload, "temperature")),
        humidity=_to_float(_pick(payload, "humidity")),
        indicators=IndicatorStates(
            amber=_to_flag(_pick(payload, "led_amber")),
            green=_to_flag(_pick(payload, "led_green")),
            red=_to_flag(_pick(payload, "led_red")),
        ),
        system_state=_to_text(_pick(payload, "state"), DEFAULT_STATE),
        captured_at=_to_epoch(_pick(payload, "timestamp"), clock),
        device_id=_to_text(_pick(payload, "device_id"), defaults.device_id),
        firmware_version=_to_text(_pick(payload, "firmware_version"), defaults.firmware_version),
    )
