import logging
from typing import Any

import aiosqlite
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..core.errors import InvalidTokenError
from ..core.log import token_prefix
from ..core.timeutil import now_iso, uptime_seconds
from ..domain import templates
from ..domain.interfaces import TokenStore
from ..domain.models import DeliveryResult
from ..services.dispatch import NotificationService, send_to_registered_devices
from ..services.monitor import AlertMonitor
from .limits import broadcast_limit, notification_limit
from .schemas import (
    AlertRequest,
    BroadcastRequest,
    CustomRequest,
    ForecastRequest,
    MaintenanceRequest,
    RegisterRequest,
    SendRequest,
    TokenRequest,
)
from .security import require_api_key

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_api_key)])

ENDPOINTS = [
    "GET /",
    "GET /info",
    "GET /tokens",
    "POST /register",
    "POST /unregister",
    "POST /send",
    "POST /alert",
    "POST /maintenance",
    "POST /forecast",
    "POST /custom",
    "POST /broadcast",
]


# --- Dependency getters, overridden in main via app.dependency_overrides ---
def get_service() -> NotificationService:  # overridden in main
    raise RuntimeError("Notification service dependency not configured")

def get_store() -> TokenStore:  # overridden in main
    raise RuntimeError("Token store dependency not configured")

def get_monitor() -> AlertMonitor:  # overridden in main
    raise RuntimeError("Monitor dependency not configured")


def _delivery_response(result: DeliveryResult, ok_message: str, fail_message: str) -> dict[str, Any]:
    if result.success:
        return {"success": True, "messageId": result.message_id, "message": ok_message}
    return {
        "success": False,
        "error": result.error or result.reason or "Delivery failed",
        "attempts": result.attempts,
        "message": fail_message,
    }


@router.get("/")
async def health(
    request: Request,
    service: NotificationService = Depends(get_service),
    monitor: AlertMonitor = Depends(get_monitor),
):
    settings = request.app.state.settings
    provider = service.get_provider("default")
    if provider is not None and hasattr(provider, "health"):
        gateway = await provider.health()
    else:
        gateway = {"status": "unhealthy", "error": "No default provider registered"}

    return {
        "success": True,
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.version,
        "timestamp": now_iso(),
        "uptime": round(uptime_seconds(), 3),
        # key kept for existing mobile clients; reports the push gateway
        "firebase": gateway,
        "notifications": {"enabled": service.enabled, "providers": service.providers()},
        "monitor": {
            "running": monitor.running,
            "ticks": monitor.state.ticks,
            "lastPoll": monitor.state.last_poll_utc.isoformat() if monitor.state.last_poll_utc else None,
            "lastError": monitor.state.last_error,
            "notificationsSent": monitor.state.notifications_sent,
            "alerts": monitor.alerts.stats(),
        },
        "environment": settings.environment,
    }


@router.get("/info")
async def info(request: Request):
    settings = request.app.state.settings
    return {
        "success": True,
        "service": settings.app_name,
        "version": settings.version,
        "description": "Push notification relay for PureFlow water quality monitoring",
        "endpoints": ENDPOINTS,
        "supportedNotificationTypes": templates.SUPPORTED_TYPES,
        "notificationChannels": templates.CHANNELS,
        "timestamp": now_iso(),
    }


@router.post("/register")
async def register(req: RegisterRequest, store: TokenStore = Depends(get_store)):
    try:
        saved = await store.upsert(req.fcmToken, req.userData.model_dump())
    except InvalidTokenError as e:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid FCM token", "message": str(e)},
        )
    except (OSError, aiosqlite.Error) as e:
        logger.error("Error saving token %s: %s", token_prefix(req.fcmToken), e)
        return {"success": False, "error": "Failed to persist token"}

    logger.info(
        "Token registered: %s user=%s platform=%s",
        token_prefix(saved.token), saved.user_id, saved.platform,
    )
    return {
        "success": True,
        "message": "FCM token registered successfully",
        "token": saved.token,
        "lastSeen": saved.last_seen,
    }


@router.post("/unregister")
async def unregister(req: TokenRequest, store: TokenStore = Depends(get_store)):
    try:
        await store.remove(req.fcmToken)
    except (OSError, aiosqlite.Error) as e:
        logger.error("Error removing token %s: %s", token_prefix(req.fcmToken), e)
        return {"success": False, "error": "Failed to remove token"}
    return {"success": True, "message": "FCM token removed"}


@router.get("/tokens")
async def tokens(store: TokenStore = Depends(get_store)):
    records = await store.list()
    return {
        "success": True,
        "count": len(records),
        "tokens": [
            {
                "token": token_prefix(r.token),
                "platform": r.platform,
                "userId": r.user_id,
                "createdAt": r.created_at,
                "lastSeen": r.last_seen,
            }
            for r in records
        ],
    }


@router.post("/send")
@notification_limit
async def send(request: Request, req: SendRequest, service: NotificationService = Depends(get_service)):
    envelope = templates.custom_notification(
        {
            "title": req.title,
            "body": req.body,
            "data": req.data,
            "priority": req.priority,
            "sound": req.sound,
            "type": "custom",
        },
        target_token=req.fcmToken,
    )
    result = await service.send(envelope)
    return _delivery_response(result, "Notification sent successfully", "Failed to send notification")


@router.post("/alert")
@notification_limit
async def alert(request: Request, req: AlertRequest, service: NotificationService = Depends(get_service)):
    envelope = templates.water_quality_alert(req.sensorData.model_dump(), target_token=req.fcmToken)
    result = await service.send(envelope)
    return _delivery_response(
        result, "Water quality alert sent successfully", "Failed to send water quality alert"
    )


@router.post("/maintenance")
@notification_limit
async def maintenance(
    request: Request, req: MaintenanceRequest, service: NotificationService = Depends(get_service)
):
    envelope = templates.maintenance_reminder(req.reminderData.model_dump(), target_token=req.fcmToken)
    result = await service.send(envelope)
    return _delivery_response(
        result, "Maintenance reminder sent successfully", "Failed to send maintenance reminder"
    )


@router.post("/forecast")
@notification_limit
async def forecast(
    request: Request, req: ForecastRequest, service: NotificationService = Depends(get_service)
):
    envelope = templates.forecast_alert(req.forecastData.model_dump(), target_token=req.fcmToken)
    result = await service.send(envelope)
    return _delivery_response(result, "Forecast alert sent successfully", "Failed to send forecast alert")


@router.post("/custom")
@notification_limit
async def custom(request: Request, req: CustomRequest, service: NotificationService = Depends(get_service)):
    envelope = templates.custom_notification(req.customData.model_dump(), target_token=req.fcmToken)
    result = await service.send(envelope)
    return _delivery_response(
        result, "Custom notification sent successfully", "Failed to send custom notification"
    )


@router.post("/broadcast")
@broadcast_limit
async def broadcast(
    request: Request,
    req: BroadcastRequest,
    service: NotificationService = Depends(get_service),
    store: TokenStore = Depends(get_store),
):
    envelope = templates.custom_notification(
        {"title": req.title, "body": req.body, "data": req.data, "type": "broadcast"}
    )
    summary = await send_to_registered_devices(service, store, envelope)
    return {
        "success": summary.success,
        "totalRecipients": summary.total_recipients,
        "successfulSends": summary.successful_sends,
        "failedSends": summary.failed_sends,
        "results": [
            {"token": token_prefix(r.token), **r.to_dict()}
            for r in summary.results
        ],
    }
