from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ORIGINS = "http://localhost:5173,http://localhost:3000"

# Regex allows *.local and common private LAN IP ranges (phones/tablets at the ring).
DEFAULT_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1|[a-zA-Z0-9-]+\.local|192\.168\.\d{1,3}\.\d{1,3}|10\.\d{1,3}\.\d{1,3}\.\d{1,3})(:\d+)?$"


class Settings(BaseSettings):
    """App settings loaded from env/.env (pydantic v2 style)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    storage_dir: str = "data"
    reset_state_on_start: bool = False

    backup_interval_min: int = 10
    backup_retention_files: int = 20
    backup_dir: str = "backups"
    max_audit_file_size_mb: int = 50

    host_pin: str = "2026"
    sync_debounce_ms: int = 400
    session_code_length: int = 6
    # Stored sync sessions idle longer than this are deleted at startup (0 keeps them all).
    session_ttl_hours: int = 72

    allowed_origins: str = DEFAULT_ORIGINS
    allowed_origin_regex: str = DEFAULT_ORIGIN_REGEX
    log_file: str = "pawsspeed.log"

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


settings = Settings()
