"""Rolling statistics over the history ring."""

import math
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Iterable

from climate_monitor.models.reading import Reading
from climate_monitor.models.stats import Stats

# Enough digits to quantize any finite float (max ~1.8e308) to a few decimals
_DECIMAL_PRECISION = 400


def round_half_away(value: float, places: int = 1) -> float:
    """Round to `places` decimals, ties away from zero (2.25 -> 2.3, -2.25 -> -2.3)."""
    quantum = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _mean(values: list[float]) -> float | None:
    if not values:
        return None
    mean = sum(values) / len(values)
    if not math.isfinite(mean):
        return None
    return round_half_away(mean)


def compute_stats(readings: Iterable[Reading]) -> Stats:
    """
    Min/max/mean over the readings that carry each field.

    Readings with a missing temperature (or humidity) are skipped for that
    field but still counted in total_readings.
    """
    readings = list(readings)
    if not readings:
        return Stats()

    temperatures = [r.temperature for r in readings if r.temperature is not None]
    humidities = [r.humidity for r in readings if r.humidity is not None]

    return Stats(
        min_temp=min(temperatures) if temperatures else None,
        max_temp=max(temperatures) if temperatures else None,
        avg_temp=_mean(temperatures),
        avg_humidity=_mean(humidities),
        total_readings=len(readings),
    )
