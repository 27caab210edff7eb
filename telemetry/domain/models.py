from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .distribution import Distribution
from .granularity import Granularity


class ClientHeartbeat(BaseModel):
    """Latest state of one pseudonymous client. One row per client."""

    client_id: str
    version: str | None = None
    browser: str | None = None
    os: str | None = None
    last_seen: int = Field(..., description="Epoch ms of the latest heartbeat")


class RollupRow(BaseModel):
    """Aggregated counts for one window at one granularity."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    granularity: Granularity
    window_start: int
    window_end: int
    online_users: int = 0
    version_totals: Distribution = Field(default_factory=dict)
    browser_totals: Distribution = Field(default_factory=dict)
    os_totals: Distribution = Field(default_factory=dict)
    partial: bool = False
