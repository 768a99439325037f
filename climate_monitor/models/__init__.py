# Domain models
from climate_monitor.models.ota import ChangelogEntry, OtaInfo, OtaProgress, OtaState
from climate_monitor.models.reading import IndicatorStates, Reading
from climate_monitor.models.stats import Stats

__all__ = [
    "ChangelogEntry",
    "IndicatorStates",
    "OtaInfo",
    "OtaProgress",
    "OtaState",
    "Reading",
    "Stats",
]
