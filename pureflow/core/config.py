from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

from .errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "PureFlow Notification Relay"
    version: str = "3.0.0"
    environment: str = "development"

    # Shared secret checked on every route (x-api-key or Authorization: Bearer)
    api_secret_key: str = ""

    # Thresholds
    fishpond_type: str = "freshwater"  # freshwater | saltwater
    thresholds_path: str = ""          # optional JSON overrides

    # Token storage: "json" file or "sqlite"
    token_store: str = "json"
    tokens_path: str = Field(default="data/tokens.json")
    sqlite_path: str = Field(default="pureflow.db")

    # Delivery: "log" for development; "expo" for the push gateway
    provider_mode: str = "log"
    expo_push_url: str = "https://exp.host/--/api/v2/push/send"
    expo_access_token: str = ""
    http_timeout_seconds: float = 10.0

    # Retry policy
    max_retries: int = 3
    retry_delay_seconds: float = 1.0

    # Monitor
    monitor_enabled: bool = True
    poll_interval_seconds: float = 60.0
    alert_cooldown_seconds: float = 300.0
    alert_history_size: int = 100
    alert_resolve_seconds: float = 60.0

    # Per-client limits on the sending routes
    rate_limit_enabled: bool = True

    # Sensor documents: "static" (in-memory) or "firestore"
    reading_source: str = "static"
    firestore_project_id: str = ""
    firestore_collection: str = "datm_data"
    firestore_api_key: str = ""
    firestore_page_size: int = 50

    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:8081",
        "http://127.0.0.1:8081",
    ]

    log_file: str = "pureflow.log"

    # HTTP server (python -m pureflow)
    host: str = "0.0.0.0"
    port: int = 3001

    def require_api_key(self) -> str:
        if not self.api_secret_key:
            raise ConfigurationError(
                "API_SECRET_KEY is not set; refusing to start without an API key"
            )
        return self.api_secret_key


settings = Settings()
