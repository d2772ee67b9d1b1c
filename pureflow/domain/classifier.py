"""Threshold classification of sensor readings.

Evaluation for each parameter is first-match-wins, in this order:

1. critical low / critical high (outside [min, max])         -> error
2. within 5% of the band width inside min / max             -> warning
3. within 2 units inside min / max ("Dropping" / "Rising")  -> warning
4. otherwise                                                -> normal

Exactly one alert is produced per evaluated parameter. Bad input never raises:
malformed readings yield an empty list, bad parameters are skipped and logged.
"""
from __future__ import annotations
import logging
import math
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

from .models import Alert, SensorReading, Threshold

logger = logging.getLogger(__name__)

WARNING_ZONE_FRACTION = 0.05
PROXIMITY_UNITS = 2.0

# keyed by lowercase parameter name
DISPLAY_NAMES = {
    "ph": "pH",
    "temperature": "Temperature",
    "turbidity": "Turbidity",
    "salinity": "Salinity",
    "tds": "TDS",
    "dissolved_oxygen": "Dissolved Oxygen",
    "conductivity": "Conductivity",
}

# zone -> (type, title suffix, message suffix)
_ZONES: dict[str, tuple[str, str, str]] = {
    "critical_low": ("error", "Low", "is too low!"),
    "critical_high": ("error", "High", "is above maximum safe level!"),
    "near_min": ("warning", "Low Warning", "is approaching minimum threshold."),
    "near_max": ("warning", "High Warning", "is approaching maximum threshold."),
    "drop": ("warning", "Dropping", "is close to minimum safe value."),
    "rise": ("warning", "Rising", "is close to maximum safe value."),
    "normal": ("normal", "Normal", "is within normal range."),
}

_RAIN_STATES = {
    1: ("Rain Detected", "It is currently raining. Please take necessary precautions."),
    2: ("Heavy Rain Detected",
        "Heavy rain detected. Runoff may affect turbidity and pH; increase monitoring."),
}


def display_name(parameter: str) -> str:
    return DISPLAY_NAMES.get(str(parameter).lower(), parameter)


def zone_for(value: float, threshold: Threshold) -> str:
    lo, hi = threshold.min, threshold.max
    near = (hi - lo) * WARNING_ZONE_FRACTION if lo is not None and hi is not None else 0.0

    if lo is not None and value < lo:
        return "critical_low"
    if hi is not None and value > hi:
        return "critical_high"
    if lo is not None and value < lo + near:
        return "near_min"
    if hi is not None and value > hi - near:
        return "near_max"
    if lo is not None and value < lo + PROXIMITY_UNITS:
        return "drop"
    if hi is not None and value > hi - PROXIMITY_UNITS:
        return "rise"
    return "normal"


def latest_reading(data: Any) -> Optional[Mapping[str, Any]]:
    """The most recent reading as a mapping: last element of a sequence."""
    if isinstance(data, SensorReading):
        return data.as_mapping()
    if isinstance(data, Mapping):
        return data
    if isinstance(data, Sequence) and not isinstance(data, (str, bytes)):
        if not data:
            return None
        return latest_reading(data[-1])
    return None


def _to_number(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def _to_threshold(raw: Any) -> Optional[Threshold]:
    if isinstance(raw, Threshold):
        return raw
    if isinstance(raw, Mapping):
        try:
            return Threshold.from_mapping(raw)
        except (TypeError, ValueError):
            return None
    return None


def reading_timestamp(reading: Mapping[str, Any]) -> Optional[str]:
    ts = reading.get("datetime") or reading.get("timestamp")
    if isinstance(ts, datetime):
        return ts.isoformat()
    if isinstance(ts, str) and ts:
        return ts
    return None


def _rain_level(raw: Any) -> int:
    if raw is True:
        return 1
    if isinstance(raw, str):
        raw = raw.strip().lower()
        if raw == "true":
            return 1
    n = _to_number(raw)
    if n is None:
        return 0
    return 2 if n >= 2 else (1 if n >= 1 else 0)


def classify(reading: Any, thresholds: Any) -> list[Alert]:
    latest = latest_reading(reading)
    if latest is None:
        logger.warning("No valid sensor data provided")
        return []
    if not isinstance(thresholds, Mapping):
        logger.error("Invalid or missing threshold configuration")
        return []

    timestamp = reading_timestamp(latest)
    alerts: list[Alert] = []

    for parameter, raw_threshold in thresholds.items():
        threshold = _to_threshold(raw_threshold)
        if threshold is None:
            logger.warning("Invalid threshold configuration for parameter: %s", parameter)
            continue

        value = _to_number(latest.get(parameter))
        if value is None:
            logger.warning("Invalid value for parameter %s: %r", parameter, latest.get(parameter))
            continue

        alert_type, title_suffix, message_suffix = _ZONES[zone_for(value, threshold)]
        name = display_name(parameter)
        alerts.append(
            Alert(
                parameter=parameter,
                type=alert_type,
                title=f"{name} {title_suffix}",
                message=f"{name} {message_suffix}",
                value=value,
                threshold=threshold,
                timestamp=timestamp,
            )
        )

    rain = _rain_level(latest.get("isRaining"))
    if rain:
        title, message = _RAIN_STATES[rain]
        alerts.append(
            Alert(
                parameter="rain",
                type="info",
                title=title,
                message=message,
                value=True if rain == 1 else rain,
                threshold=None,
                timestamp=timestamp,
            )
        )

    return alerts


def breaches(alerts: Iterable[Alert]) -> list[Alert]:
    return [a for a in alerts if a.type == "error"]


def prioritize(alerts: Iterable[Alert]) -> list[Alert]:
    """Non-normal alerts, most severe first (stable within a severity)."""
    surfaced = [a for a in alerts if a.type != "normal"]
    return sorted(surfaced, key=lambda a: a.rank, reverse=True)


def highest_severity(alerts: Iterable[Alert]) -> Optional[str]:
    ranked = sorted(alerts, key=lambda a: a.rank, reverse=True)
    return ranked[0].type if ranked else None
