from pydantic import SecretStr

from shared.config import BaseServiceConfig


class Settings(BaseServiceConfig):
    # Storage
    database_path: str = "telemetry.sqlite3"

    # Ingestion limits
    input_char_limit: int = 100
    max_body_bytes: int = 1000
    expected_delivery_interval_minutes: int = 30

    # Rate limiting / bans
    rate_limit_max_requests: int = 3
    rate_limit_ban_after: int = 2  # rejections over the ceiling before a ban
    rate_limit_ban_margin_seconds: int = 60
    # Only enable behind a proxy you control, the headers are spoofable otherwise
    rate_limit_trust_forwarded_for: bool = False
    rate_limit_backend: str = "memory"  # memory|redis

    # Redis (ban store when rate_limit_backend=redis)
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0

    # Pseudonymization
    client_id_hashing_enabled: bool = True
    client_id_salt: SecretStr | None = None

    # Rollups
    rollup_timezone: str = "UTC"
    rollup_week_start: int = 0  # 0 = Monday
    rollup_fire_delay_seconds: float = 1.0
    rollup_scheduler_enabled: bool = True
    retention_hourly: int = 25  # a DST fall-back day has 25 hours
    retention_daily: int = 7
    retention_weekly: int = 5  # a month can close five weeks
    retention_monthly: int = 12
    retention_yearly: int = 25

    # Write queue
    queue_poll_timeout_seconds: float = 0.5

    otel_service_name: str = "telemetry"

    @property
    def rate_limit_window_seconds(self) -> int:
        return self.expected_delivery_interval_minutes * 60

    @property
    def rate_limit_ban_seconds(self) -> int:
        return max(self.rate_limit_window_seconds - self.rate_limit_ban_margin_seconds, 1)

    def retention_caps(self) -> dict[str, int]:
        return {
            "hour": self.retention_hourly,
            "day": self.retention_daily,
            "week": self.retention_weekly,
            "month": self.retention_monthly,
            "year": self.retention_yearly,
        }


settings = Settings()
