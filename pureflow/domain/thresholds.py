from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional
from .models import Threshold

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "freshwater"

_DEFAULTS_PATH = Path(__file__).resolve().parent.parent / "config" / "thresholds.json"

_FALLBACK_PROFILES: dict[str, dict[str, Threshold]] = {
    "freshwater": {
        "pH": Threshold(6.5, 8.5),
        "temperature": Threshold(26, 30),
        "salinity": Threshold(0, 5),
        "turbidity": Threshold(0, 50),
    },
    "saltwater": {
        "pH": Threshold(7.5, 8.5),
        "temperature": Threshold(24, 30),
        "salinity": Threshold(15, 35),
        "turbidity": Threshold(0, 60),
    },
}


def _parse_table(raw: Mapping[str, Any], source: str) -> dict[str, Threshold]:
    table: dict[str, Threshold] = {}
    for parameter, entry in raw.items():
        if not isinstance(entry, Mapping):
            logger.warning("Skipping malformed threshold for %s in %s: %r", parameter, source, entry)
            continue
        try:
            table[parameter] = Threshold.from_mapping(entry)
        except (TypeError, ValueError):
            logger.warning("Skipping non-numeric threshold for %s in %s: %r", parameter, source, entry)
    return table


def load_profiles(path: Path = _DEFAULTS_PATH) -> dict[str, dict[str, Threshold]]:
    try:
        data = json.loads(path.read_text())
        profiles = {
            name: _parse_table(table, str(path))
            for name, table in data["profiles"].items()
        }
        if not profiles:
            raise ValueError("no profiles defined")
        return profiles
    except Exception as e:
        logger.warning("Failed to load %s, using built-in thresholds: %s", path.name, e)
        return {name: dict(table) for name, table in _FALLBACK_PROFILES.items()}


def load_overrides(path: str) -> dict[str, Threshold]:
    if not path:
        return {}
    p = Path(path)
    try:
        data = json.loads(p.read_text())
    except FileNotFoundError:
        logger.warning("Threshold overrides file not found: %s", p)
        return {}
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable threshold overrides %s: %s", p, e)
        return {}
    if not isinstance(data, Mapping):
        logger.warning("Ignoring threshold overrides %s: expected an object", p)
        return {}
    return _parse_table(data, str(p))


class ThresholdRegistry:
    """Read-only parameter -> safe band table for one fishpond profile."""

    def __init__(
        self,
        profile: str = DEFAULT_PROFILE,
        overrides: Optional[Mapping[str, Threshold]] = None,
        profiles: Optional[Mapping[str, Mapping[str, Threshold]]] = None,
    ) -> None:
        profiles = profiles if profiles is not None else load_profiles()
        if profile not in profiles:
            logger.warning("Unknown fishpond profile %r, using %s", profile, DEFAULT_PROFILE)
            profile = DEFAULT_PROFILE
        self._profile = profile
        table = dict(profiles.get(profile, _FALLBACK_PROFILES[DEFAULT_PROFILE]))
        table.update(overrides or {})
        self._table = table

    @classmethod
    def from_settings(cls, fishpond_type: str, thresholds_path: str = "") -> "ThresholdRegistry":
        return cls(profile=fishpond_type, overrides=load_overrides(thresholds_path))

    @property
    def profile(self) -> str:
        return self._profile

    def get_thresholds(self) -> dict[str, Threshold]:
        return dict(self._table)

    def get(self, parameter: str) -> Optional[Threshold]:
        return self._table.get(parameter)
