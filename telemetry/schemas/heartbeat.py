from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictStr,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from telemetry.core.errors import HeartbeatValidationError

# Same character set validator.js `escape` rewrites
_ESCAPES = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&quot;",
        "'": "&#x27;",
        "/": "&#x2F;",
        "\\": "&#x5C;",
        "`": "&#96;",
    }
)

DEFAULT_CHAR_LIMIT = 100


def sanitize(value: str) -> str:
    return value.strip().translate(_ESCAPES)


class HeartbeatIn(BaseModel):
    """Heartbeat body as sent by the extension.

    `uuid` is the key older extension builds send for the client id.
    """

    model_config = ConfigDict(extra="ignore")

    client_id: StrictStr = Field(
        ..., validation_alias=AliasChoices("clientId", "uuid", "client_id")
    )
    version: StrictStr | None = None
    browser: StrictStr | None = None
    os: StrictStr | None = None

    @field_validator("client_id", "version", "browser", "os")
    @classmethod
    def within_limit(cls, v: str | None, info: ValidationInfo) -> str | None:
        if v is None:
            return v
        limit = (info.context or {}).get("char_limit", DEFAULT_CHAR_LIMIT)
        if len(v) > limit:
            raise ValueError(f"must be at most {limit} characters")
        return v

    @field_validator("client_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    def sanitized(self, char_limit: int = DEFAULT_CHAR_LIMIT) -> "HeartbeatIn":
        """Escaped copy; escaping can lengthen a value past the limit."""
        values: dict[str, str | None] = {}
        for name in ("client_id", "version", "browser", "os"):
            raw = getattr(self, name)
            if raw is None:
                values[name] = None
                continue
            clean = sanitize(raw)
            if len(clean) > char_limit:
                raise HeartbeatValidationError(
                    f"{name} exceeds {char_limit} characters after escaping"
                )
            values[name] = clean or None
        if values["client_id"] is None:
            raise HeartbeatValidationError("client_id must not be empty")
        return self.model_copy(update=values)


def _describe(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ())) or "body"
    return f"{loc}: {err.get('msg', 'invalid')}"


def parse_heartbeat(payload: Any, char_limit: int = DEFAULT_CHAR_LIMIT) -> HeartbeatIn:
    """Validate and sanitize a decoded JSON body."""
    if not isinstance(payload, dict):
        raise HeartbeatValidationError("body must be a JSON object")
    try:
        hb = HeartbeatIn.model_validate(payload, context={"char_limit": char_limit})
    except ValidationError as e:
        raise HeartbeatValidationError(_describe(e)) from e
    return hb.sanitized(char_limit)
