from .pseudonymize import ClientIdHasher
from .queue import HeartbeatQueue, heartbeat_writer
from .service import IngestionService

__all__ = ["ClientIdHasher", "HeartbeatQueue", "heartbeat_writer", "IngestionService"]
