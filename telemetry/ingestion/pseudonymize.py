import hashlib
import hmac

from telemetry.core.errors import ConfigurationError


class ClientIdHasher:
    """Salted one-way mapping from the extension's client id to the storage key.

    The raw id never reaches the store when enabled; the hourly sweep is the
    only protection when it is not.
    """

    def __init__(self, salt: str | None, enabled: bool = True):
        if enabled and not salt:
            raise ConfigurationError(
                "CLIENT_ID_SALT is required while client id hashing is enabled"
            )
        self.enabled = enabled
        self._key = salt.encode("utf-8") if salt else b""

    def __call__(self, client_id: str) -> str:
        if not self.enabled:
            return client_id
        return hmac.new(self._key, client_id.encode("utf-8"), hashlib.sha256).hexdigest()

    @classmethod
    def from_settings(cls, settings) -> "ClientIdHasher":
        salt = settings.client_id_salt
        return cls(
            salt.get_secret_value() if salt is not None else None,
            enabled=settings.client_id_hashing_enabled,
        )
