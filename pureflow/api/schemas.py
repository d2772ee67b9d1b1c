from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, Literal, Optional


class TokenRequest(BaseModel):
    fcmToken: str

    @field_validator("fcmToken")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("fcmToken must be a non-empty string")
        return v


class UserData(BaseModel):
    userId: Optional[str] = None
    platform: Optional[str] = None
    deviceInfo: Optional[Any] = None


class RegisterRequest(TokenRequest):
    userData: UserData = Field(default_factory=UserData)


class SendRequest(TokenRequest):
    title: str = "PureFlow Notification"
    body: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: Literal["normal", "high"] = "normal"
    sound: str = "default"


class BroadcastRequest(BaseModel):
    title: str = "Broadcast"
    body: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)


class SensorData(BaseModel):
    parameter: str = Field(min_length=1)
    value: float
    threshold: float
    sensorId: str = "sensor-001"
    unit: str = ""
    location: str = ""


class AlertRequest(TokenRequest):
    sensorData: SensorData


class ReminderData(BaseModel):
    type: str = "general_maintenance"
    task: str = "maintenance check"
    dueDate: str = ""
    daysDue: int = 0
    sensorId: str = ""


class MaintenanceRequest(TokenRequest):
    reminderData: ReminderData = Field(default_factory=ReminderData)


class ForecastData(BaseModel):
    parameter: str = "water_quality"
    prediction: str = ""
    timeframe: str = "24 hours"
    impact: str = "impact"


class ForecastRequest(TokenRequest):
    forecastData: ForecastData = Field(default_factory=ForecastData)


class CustomData(BaseModel):
    title: str = "PureFlow Notification"
    body: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: Literal["normal", "high"] = "normal"
    sound: str = "default"
    type: str = "custom"


class CustomRequest(TokenRequest):
    customData: CustomData = Field(default_factory=CustomData)
