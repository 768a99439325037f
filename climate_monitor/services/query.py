"""
Query Facade - read-only views over the history store for the HTTP layer

Shapes responses into the {success, data, ...} envelope the dashboard
expects. Never mutates the store.
"""

from climate_monitor.models.reading import placeholder_reading
from climate_monitor.services.history import HistoryStore
from climate_monitor.services.normalizer import DeviceDefaults
from climate_monitor.services.stats import compute_stats


class TelemetryQuery:
    """Pull-model accessors used by the API routes."""

    def __init__(
        self,
        store: HistoryStore,
        defaults: DeviceDefaults = DeviceDefaults(),
        default_limit: int = 50,
    ):
        self.store = store
        self.defaults = defaults
        self.default_limit = default_limit

    def get_current(self) -> dict:
        current = self.store.current()
        if current is None:
            return {
                "success": True,
                "data": placeholder_reading(self.defaults.device_id, self.defaults.firmware_version),
                "lastUpdate": None,
            }
        return {
            "success": True,
            "data": current.to_dict(),
            "lastUpdate": current.captured_at_iso,
        }

    def get_history(self, limit: int | None = None) -> dict:
        if limit is None or limit <= 0:
            limit = self.default_limit
        readings = self.store.snapshot(limit).readings
        return {
            "success": True,
            "data": [reading.to_dict() for reading in readings],
            "count": len(readings),
        }

    def get_stats(self) -> dict:
        stats = compute_stats(self.store.snapshot().readings)
        return {"success": True, "data": stats.to_dict()}

    def data_points(self) -> int:
        return len(self.store)
