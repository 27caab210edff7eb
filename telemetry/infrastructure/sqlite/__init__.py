from .store import TelemetryStore

__all__ = ["TelemetryStore"]
