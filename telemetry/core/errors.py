"""Error taxonomy for the ingestion and rollup paths."""


class TelemetryError(Exception):
    """Base class for service errors."""


class ConfigurationError(TelemetryError):
    """Startup cannot proceed (missing salt, unusable storage, bad timezone)."""


class HeartbeatValidationError(TelemetryError):
    """Malformed or oversized heartbeat input. Maps to a 400 response."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StoreError(TelemetryError):
    """A storage operation failed."""


class RateLimitExceeded(TelemetryError):
    """Request refused by the rate limiter. Maps to a 429 response."""

    def __init__(self, state: str, retry_after: int):
        super().__init__(f"rate limit exceeded ({state})")
        self.state = state
        self.retry_after = retry_after
