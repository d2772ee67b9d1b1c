from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from .core.config import Settings, settings as default_settings
from .core.errors import ConfigurationError
from .core.log import configure_logging

from .api.routes import router as api_router
import pureflow.api.routes as routes_module
from .api.limits import limiter, rate_limit_response
from .api.security import ApiKeyError

from .domain.interfaces import Provider, ReadingSource, TokenStore
from .domain.thresholds import ThresholdRegistry
from .providers.expo import ExpoPushProvider
from .providers.log_provider import LoggingProvider
from .services.dispatch import DispatchConfig, NotificationService, stamp_timestamp, stringify_payload
from .services.monitor import AlertMonitor, MonitorConfig
from .sources.firestore import FirestoreReadingSource
from .sources.static import StaticReadingSource
from .storage.json_store import JsonTokenStore
from .storage.sqlite_store import SQLiteTokenStore


logger = logging.getLogger(__name__)


def build_store(cfg: Settings) -> TokenStore:
    mode = cfg.token_store.lower()
    if mode == "sqlite":
        return SQLiteTokenStore(cfg.sqlite_path)
    if mode == "json":
        return JsonTokenStore(cfg.tokens_path)
    raise ConfigurationError(f"Unknown token store: {cfg.token_store!r}")


def build_provider(cfg: Settings) -> Provider:
    mode = cfg.provider_mode.lower()
    if mode == "expo":
        return ExpoPushProvider(
            url=cfg.expo_push_url,
            access_token=cfg.expo_access_token,
            timeout=cfg.http_timeout_seconds,
        )
    if mode == "log":
        return LoggingProvider()
    raise ConfigurationError(f"Unknown provider mode: {cfg.provider_mode!r}")


def build_source(cfg: Settings) -> ReadingSource:
    mode = cfg.reading_source.lower()
    if mode == "firestore":
        if not cfg.firestore_project_id:
            raise ConfigurationError("FIRESTORE_PROJECT_ID is required for the firestore source")
        return FirestoreReadingSource(
            project_id=cfg.firestore_project_id,
            collection=cfg.firestore_collection,
            api_key=cfg.firestore_api_key,
            page_size=cfg.firestore_page_size,
            timeout=cfg.http_timeout_seconds,
        )
    if mode == "static":
        return StaticReadingSource()
    raise ConfigurationError(f"Unknown reading source: {cfg.reading_source!r}")


@dataclass
class Runtime:
    service: NotificationService
    store: TokenStore
    registry: ThresholdRegistry
    source: ReadingSource
    monitor: AlertMonitor


def build_runtime(cfg: Settings) -> Runtime:
    service = NotificationService(
        DispatchConfig(max_retries=cfg.max_retries, retry_delay=cfg.retry_delay_seconds)
    )
    service.use(stamp_timestamp)
    service.use(stringify_payload)
    service.register_provider("default", build_provider(cfg))

    store = build_store(cfg)
    registry = ThresholdRegistry.from_settings(cfg.fishpond_type, cfg.thresholds_path)
    source = build_source(cfg)
    monitor = AlertMonitor(
        source=source,
        registry=registry,
        service=service,
        store=store,
        config=MonitorConfig(
            interval_seconds=cfg.poll_interval_seconds,
            cooldown_seconds=cfg.alert_cooldown_seconds,
            history_size=cfg.alert_history_size,
            resolve_after_seconds=cfg.alert_resolve_seconds,
        ),
    )
    return Runtime(service=service, store=store, registry=registry, source=source, monitor=monitor)


def create_app(cfg: Settings = default_settings, runtime: Optional[Runtime] = None) -> FastAPI:
    rt = runtime or build_runtime(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(cfg.log_file)
        cfg.require_api_key()
        logger.info(
            "Starting %s v%s (profile=%s, store=%s, provider=%s)",
            cfg.app_name, cfg.version, rt.registry.profile, cfg.token_store, cfg.provider_mode,
        )

        await rt.store.init()
        if cfg.monitor_enabled:
            await rt.monitor.start()

        try:
            yield
        finally:
            await rt.monitor.stop()
            logger.info("Shutdown complete")

    app = FastAPI(title=cfg.app_name, version=cfg.version, lifespan=lifespan)
    app.state.settings = cfg
    app.state.runtime = rt
    limiter.enabled = cfg.rate_limit_enabled
    app.state.limiter = limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization", "x-api-key"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s - %d - %.1fms", request.method, request.url.path, response.status_code, elapsed_ms
        )
        return response

    @app.exception_handler(ApiKeyError)
    async def api_key_error(request: Request, exc: ApiKeyError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.error, "message": exc.message},
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limited(request: Request, exc: RateLimitExceeded):
        return rate_limit_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid request",
                "message": f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid request body",
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "message": "Something went wrong"},
        )

    # Make the dependency functions in routes resolve to this runtime
    app.dependency_overrides[routes_module.get_service] = lambda: rt.service
    app.dependency_overrides[routes_module.get_store] = lambda: rt.store
    app.dependency_overrides[routes_module.get_monitor] = lambda: rt.monitor

    app.include_router(api_router)
    return app


app = create_app()
