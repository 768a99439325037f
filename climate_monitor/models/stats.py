"""
Stats model - rolling statistics over the retained history
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Stats:
    """Aggregates over the history ring. None means "no data"."""

    min_temp: float | None = None
    max_temp: float | None = None
    avg_temp: float | None = None
    avg_humidity: float | None = None
    total_readings: int = 0

    def to_dict(self) -> dict:
        return {
            "minTemp": self.min_temp,
            "maxTemp": self.max_temp,
            "avgTemp": self.avg_temp,
            "avgHumidity": self.avg_humidity,
            "totalReadings": self.total_readings,
        }
