"""
OTA models - firmware changelog and device update progress
"""

from dataclasses import dataclass, field
from enum import Enum


class OtaState(str, Enum):
    """Firmware update lifecycle as reported by the device."""

    IDLE = "idle"
    REQUESTED = "requested"
    DOWNLOADING = "downloading"
    INSTALLING = "installing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def in_flight(self) -> bool:
        return self in (OtaState.REQUESTED, OtaState.DOWNLOADING, OtaState.INSTALLING)


@dataclass(frozen=True)
class ChangelogEntry:
    """One released firmware version."""

    version: str
    date: str  # YYYY-MM-DD
    changes: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {"version": self.version, "date": self.date, "changes": list(self.changes)}


@dataclass(frozen=True)
class OtaProgress:
    """Point-in-time view of the update state machine."""

    state: OtaState = OtaState.IDLE
    progress: int = 0  # 0..100
    message: str = ""
    target_version: str | None = None
    updated_at: str | None = None  # ISO 8601

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "progress": self.progress,
            "message": self.message,
            "targetVersion": self.target_version,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class OtaInfo:
    """What the dashboard shows in its firmware panel."""

    current_version: str
    candidate_version: str
    available: bool
    changelog: tuple[ChangelogEntry, ...] = ()
    update: OtaProgress = field(default_factory=OtaProgress)

    def to_dict(self) -> dict:
        return {
            "currentVersion": self.current_version,
            "firmware": {
                "available": self.available,
                "version": self.candidate_version,
            },
            "changelog": [entry.to_dict() for entry in self.changelog],
            "update": self.update.to_dict(),
        }
