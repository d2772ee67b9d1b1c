from __future__ import annotations
import json
from typing import Any, Mapping, Optional
from .classifier import display_name
from .models import Alert, NotificationEnvelope
from ..core.timeutil import now_iso


SUPPORTED_TYPES = [
    "water_quality_alert",
    "maintenance_reminder",
    "forecast_alert",
    "custom_notification",
]

CHANNELS = ["alerts", "updates", "maintenance", "forecasts"]


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def stringify_data(data: Mapping[str, Any]) -> dict[str, str]:
    """Push gateways only accept string -> string data maps."""
    return {str(k): stringify(v) for k, v in data.items()}


def _fmt_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def water_quality_alert(sensor_data: Mapping[str, Any], target_token: Optional[str] = None) -> NotificationEnvelope:
    sensor_id = sensor_data.get("sensorId") or "sensor-001"
    parameter = sensor_data.get("parameter") or "ph"
    value = sensor_data.get("value", 8.5)
    threshold = sensor_data.get("threshold", 7.5)
    unit = sensor_data.get("unit") or ""
    location = sensor_data.get("location") or ""

    name = display_name(parameter)
    is_high = value > threshold
    status = "HIGH" if is_high else "LOW"
    severity = "critical" if is_high else "warning"
    where = f" at {location}" if location else ""

    return NotificationEnvelope(
        title=f"{name} Alert! {status}",
        body=(
            f"{name} level is {status}{where}: {_fmt_number(value)}{unit} "
            f"(threshold: {_fmt_number(threshold)}{unit})"
        ),
        data=stringify_data({
            "type": "water_quality_alert",
            "sensorId": sensor_id,
            "parameter": parameter,
            "value": _fmt_number(value),
            "threshold": _fmt_number(threshold),
            "unit": unit,
            "location": location,
            "severity": severity,
            "timestamp": now_iso(),
        }),
        target_token=target_token,
        priority="high" if severity == "critical" else "normal",
        channel_id="alerts" if severity == "critical" else "updates",
        sound="water_alert" if severity == "critical" else "default",
    )


def maintenance_reminder(reminder_data: Mapping[str, Any], target_token: Optional[str] = None) -> NotificationEnvelope:
    kind = reminder_data.get("type") or "general_maintenance"
    task = reminder_data.get("task") or "maintenance check"
    due_date = reminder_data.get("dueDate") or ""
    days_due = reminder_data.get("daysDue") or 0
    sensor_id = reminder_data.get("sensorId") or ""

    body = task
    if due_date:
        body += f" (Due: {due_date})"
    if days_due > 0:
        body += f" ({days_due} days)"

    return NotificationEnvelope(
        title="Maintenance Reminder",
        body=body,
        data=stringify_data({
            "type": "maintenance_reminder",
            "maintenanceType": kind,
            "task": task,
            "dueDate": due_date,
            "daysDue": days_due,
            "sensorId": sensor_id,
            "timestamp": now_iso(),
        }),
        target_token=target_token,
        channel_id="maintenance",
    )


def forecast_alert(forecast_data: Mapping[str, Any], target_token: Optional[str] = None) -> NotificationEnvelope:
    parameter = forecast_data.get("parameter") or "water_quality"
    prediction = forecast_data.get("prediction") or ""
    timeframe = forecast_data.get("timeframe") or "24 hours"
    impact = forecast_data.get("impact") or "impact"

    return NotificationEnvelope(
        title="Forecast Alert",
        body=f"{parameter} predicted to {prediction} within {timeframe}. {impact}",
        data=stringify_data({
            "type": "forecast_alert",
            "parameter": parameter,
            "prediction": prediction,
            "timeframe": timeframe,
            "impact": impact,
            "timestamp": now_iso(),
        }),
        target_token=target_token,
        channel_id="forecasts",
    )


def custom_notification(custom_data: Mapping[str, Any], target_token: Optional[str] = None) -> NotificationEnvelope:
    priority = custom_data.get("priority") or "normal"
    sound = custom_data.get("sound") or "default"
    data = {"type": custom_data.get("type") or "custom"}
    data.update(custom_data.get("data") or {})
    data["timestamp"] = now_iso()

    return NotificationEnvelope(
        title=custom_data.get("title") or "PureFlow Notification",
        body=custom_data.get("body") or "",
        data=stringify_data(data),
        target_token=target_token,
        priority=priority,
        channel_id="alerts" if priority == "high" else "updates",
        sound="critical_alert" if sound == "critical_alert" else "default",
    )


def alert_notification(alert: Alert, target_token: Optional[str] = None) -> NotificationEnvelope:
    critical = alert.type == "error"
    threshold = alert.threshold.to_dict() if alert.threshold else {}
    return NotificationEnvelope(
        title=alert.title,
        body=alert.message,
        data=stringify_data({
            "type": "water_quality_alert",
            "parameter": alert.parameter,
            "alertType": alert.type,
            "value": alert.value,
            "min": threshold.get("min"),
            "max": threshold.get("max"),
            "timestamp": alert.timestamp or now_iso(),
        }),
        target_token=target_token,
        priority="high" if critical else "normal",
        channel_id="alerts" if critical else "updates",
        sound="water_alert" if critical else "default",
    )
