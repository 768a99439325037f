"""
OTA Service - firmware version info and update trigger

The server never flashes anything itself: it publishes a force_update
command to the device and tracks the progress the device reports back on
the OTA status topic.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Mapping

from climate_monitor.core.clock import now_iso
from climate_monitor.models.ota import ChangelogEntry, OtaInfo, OtaProgress, OtaState
from climate_monitor.services.history import HistoryStore

logger = logging.getLogger(__name__)

# ==================== FIRMWARE CHANGELOG ====================
# Newest first. Override with OTA_CHANGELOG_FILE in production.

FIRMWARE_CHANGELOG: tuple[ChangelogEntry, ...] = (
    ChangelogEntry(
        version="1.1",
        date="2025-06-02",
        changes=(
            "Publish telemetry over MQTT/TLS instead of HTTP POST",
            "Report OTA progress on the status topic",
            "Send the red LED state with every reading",
        ),
    ),
    ChangelogEntry(
        version="1.0",
        date="2025-04-15",
        changes=(
            "First release: temperature, humidity and LED telemetry",
        ),
    ),
)

# device status string -> state
_STATUS_MAP = {
    "requested": OtaState.REQUESTED,
    "downloading": OtaState.DOWNLOADING,
    "installing": OtaState.INSTALLING,
    "completed": OtaState.COMPLETED,
    "done": OtaState.COMPLETED,
    "failed": OtaState.FAILED,
    "error": OtaState.FAILED,
    "idle": OtaState.IDLE,
}


class OtaError(Exception):
    """Base class for rejected update requests."""


class UpdateNotAvailableError(OtaError):
    pass


class UpdateInProgressError(OtaError):
    pass


class CommandPublishError(OtaError):
    pass


def version_key(version: str) -> tuple:
    """Sort key for dotted versions: "1.10" > "1.9", numeric parts before text."""
    parts = []
    for part in str(version).strip().lstrip("vV").split("."):
        if part.isdigit():
            parts.append((0, int(part), ""))
        else:
            parts.append((1, 0, part))
    return tuple(parts)


def is_newer(candidate: str, current: str) -> bool:
    return version_key(candidate) > version_key(current)


def load_changelog(path: str | Path) -> tuple[ChangelogEntry, ...]:
    """
    Load changelog entries from a JSON file.

    Expected format: [{"version": "1.1", "date": "2025-06-02", "changes": ["..."]}, ...]
    """
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)

    entries = [
        ChangelogEntry(
            version=str(item["version"]),
            date=str(item.get("date", "")),
            changes=tuple(str(change) for change in item.get("changes", [])),
        )
        for item in raw
    ]
    entries.sort(key=lambda entry: version_key(entry.version), reverse=True)
    return tuple(entries)


class OtaTracker:
    """Update state machine driven by device status messages."""

    def __init__(self):
        self._lock = threading.Lock()
        self._progress = OtaProgress()

    @property
    def progress(self) -> OtaProgress:
        with self._lock:
            return self._progress

    def request(self, target_version: str) -> OtaProgress:
        with self._lock:
            if self._progress.state.in_flight:
                raise UpdateInProgressError(
                    f"Update to {self._progress.target_version} already {self._progress.state.value}"
                )
            self._progress = OtaProgress(
                state=OtaState.REQUESTED,
                progress=0,
                message="Update command sent to device",
                target_version=target_version,
                updated_at=now_iso(),
            )
            return self._progress

    def reset(self, message: str = "") -> None:
        with self._lock:
            self._progress = OtaProgress(message=message, updated_at=now_iso())

    def apply_status(self, payload: Mapping[str, Any]) -> bool:
        """
        Apply a device status message, e.g. {"status": "downloading", "progress": 40}.

        Returns:
            True if the state machine changed
        """
        status = str(payload.get("status", "")).strip().lower()
        state = _STATUS_MAP.get(status)
        if state is None:
            logger.warning("⚠️ Ignoring unknown OTA status: %r", payload.get("status"))
            return False

        try:
            progress = int(float(payload.get("progress", 0)))
        except (TypeError, ValueError):
            progress = 0
        progress = max(0, min(100, progress))
        if state == OtaState.COMPLETED:
            progress = 100

        with self._lock:
            target = payload.get("version") or self._progress.target_version
            self._progress = OtaProgress(
                state=state,
                progress=progress,
                message=str(payload.get("message", "")),
                target_version=target,
                updated_at=now_iso(),
            )

        logger.info("🔄 OTA %s (%d%%) target=%s", state.value, progress, target)
        return True


class OtaService:
    """Firmware info and the force-update trigger."""

    def __init__(
        self,
        store: HistoryStore,
        publish_command: Callable[[dict], bool],
        default_version: str = "1.0",
        candidate_version: str = "",
        changelog: tuple[ChangelogEntry, ...] = FIRMWARE_CHANGELOG,
    ):
        self.store = store
        self.publish_command = publish_command
        self.default_version = default_version
        self.changelog = changelog
        if candidate_version:
            self.candidate_version = candidate_version
        elif changelog:
            self.candidate_version = changelog[0].version
        else:
            self.candidate_version = default_version
        self.tracker = OtaTracker()

    @classmethod
    def from_settings(cls, settings, store: HistoryStore, publish_command: Callable[[dict], bool]) -> "OtaService":
        changelog = FIRMWARE_CHANGELOG
        if settings.ota_changelog_file:
            changelog = load_changelog(settings.ota_changelog_file)
            logger.info("📄 Loaded %d changelog entries from %s", len(changelog), settings.ota_changelog_file)
        return cls(
            store=store,
            publish_command=publish_command,
            default_version=settings.default_firmware_version,
            candidate_version=settings.ota_candidate_version,
            changelog=changelog,
        )

    def current_version(self) -> str:
        """Version the device last reported, else the configured default."""
        current = self.store.current()
        if current is None:
            return self.default_version
        return current.firmware_version

    def info(self) -> OtaInfo:
        current_version = self.current_version()
        return OtaInfo(
            current_version=current_version,
            candidate_version=self.candidate_version,
            available=is_newer(self.candidate_version, current_version),
            changelog=self.changelog,
            update=self.tracker.progress,
        )

    def force_update(self) -> OtaProgress:
        """
        Ask the device to install the candidate firmware.

        Raises:
            UpdateNotAvailableError: device already runs the candidate (or newer)
            UpdateInProgressError: a previous update has not finished
            CommandPublishError: the command could not be published
        """
        current_version = self.current_version()
        if not is_newer(self.candidate_version, current_version):
            raise UpdateNotAvailableError(f"Device already runs {current_version}")

        progress = self.tracker.request(self.candidate_version)
        command = {"command": "force_update", "version": self.candidate_version}
        if not self.publish_command(command):
            self.tracker.reset("Update command could not be delivered")
            raise CommandPublishError("MQTT broker not reachable")

        logger.info("📤 Force update %s -> %s requested", current_version, self.candidate_version)
        return progress
