from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Any, Literal, Mapping, Optional


AlertType = Literal["error", "warning", "info", "normal"]

# error > warning > info > normal
SEVERITY_RANK: dict[str, int] = {"error": 3, "warning": 2, "info": 1, "normal": 0}


@dataclass(frozen=True)
class SensorReading:
    datetime: Optional[str] = None
    pH: Optional[float] = None
    temperature: Optional[float] = None
    salinity: Optional[float] = None
    turbidity: Optional[float] = None
    is_raining: Optional[Any] = None

    @classmethod
    def from_mapping(cls, doc: Mapping[str, Any]) -> "SensorReading":
        return cls(
            datetime=doc.get("datetime") or doc.get("timestamp"),
            pH=doc.get("pH", doc.get("ph")),
            temperature=doc.get("temperature"),
            salinity=doc.get("salinity"),
            turbidity=doc.get("turbidity"),
            is_raining=doc.get("isRaining"),
        )

    def as_mapping(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "datetime": self.datetime,
            "pH": self.pH,
            "temperature": self.temperature,
            "salinity": self.salinity,
            "turbidity": self.turbidity,
        }
        if self.is_raining is not None:
            out["isRaining"] = self.is_raining
        return out


@dataclass(frozen=True)
class Threshold:
    min: Optional[float] = None
    max: Optional[float] = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Threshold":
        lo = raw.get("min")
        hi = raw.get("max")
        return cls(
            min=float(lo) if lo is not None else None,
            max=float(hi) if hi is not None else None,
        )

    def to_dict(self) -> dict[str, float]:
        return {k: v for k, v in (("min", self.min), ("max", self.max)) if v is not None}


@dataclass(frozen=True)
class Alert:
    parameter: str
    type: AlertType
    title: str
    message: str
    value: Any
    threshold: Optional[Threshold]
    timestamp: Optional[str]

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self.type]

    def to_dict(self) -> dict[str, Any]:
        return {
            "parameter": self.parameter,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "value": self.value,
            "threshold": self.threshold.to_dict() if self.threshold else None,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class TokenRecord:
    token: str
    created_at: str
    last_seen: str
    user_id: Optional[str] = None
    platform: Optional[str] = None
    device_info: Optional[Any] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TokenRecord":
        return cls(
            token=raw["token"],
            created_at=raw.get("createdAt") or raw.get("lastSeen") or "",
            last_seen=raw.get("lastSeen") or raw.get("createdAt") or "",
            user_id=raw.get("userId"),
            platform=raw.get("platform"),
            device_info=raw.get("deviceInfo"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "userId": self.user_id,
            "platform": self.platform,
            "deviceInfo": self.device_info,
            "createdAt": self.created_at,
            "lastSeen": self.last_seen,
        }


@dataclass(frozen=True)
class NotificationEnvelope:
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    target_token: Optional[str] = None
    broadcast: bool = False
    priority: str = "normal"  # "normal" | "high"
    channel_id: str = "updates"
    sound: str = "default"


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    provider: Optional[str] = None
    reason: Optional[str] = None
    token: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        raw = asdict(self)
        out = {
            "success": raw["success"],
            "messageId": raw["message_id"],
            "error": raw["error"],
            "attempts": raw["attempts"] or None,
            "provider": raw["provider"],
            "reason": raw["reason"],
        }
        return {k: v for k, v in out.items() if v is not None}


@dataclass(frozen=True)
class BroadcastSummary:
    total_recipients: int
    successful_sends: int
    failed_sends: int
    results: list[DeliveryResult]

    @property
    def success(self) -> bool:
        return self.failed_sends == 0 or self.successful_sends > 0
