"""Per-identifier admission state machine.

    Unrestricted -> Limited   ceiling reached inside the sliding window
    Limited      -> Banned    `ban_after` rejections while limited
    Banned       -> Unrestricted   ban elapsed; the record starts over

`admit` is pure apart from mutating the record it is handed, which lets the
in-process and redis stores share it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum


class AdmissionState(str, Enum):
    UNRESTRICTED = "unrestricted"
    LIMITED = "limited"
    BANNED = "banned"


@dataclass(frozen=True)
class RateLimitPolicy:
    max_requests: int
    window_ms: int
    ban_after: int
    ban_ms: int

    @classmethod
    def from_settings(cls, settings) -> "RateLimitPolicy":
        return cls(
            max_requests=settings.rate_limit_max_requests,
            window_ms=settings.rate_limit_window_seconds * 1000,
            ban_after=settings.rate_limit_ban_after,
            ban_ms=settings.rate_limit_ban_seconds * 1000,
        )


@dataclass
class BanRecord:
    hits: list[int] = field(default_factory=list)  # admitted request times, ms
    violations: int = 0
    banned_until: int | None = None

    def state(self, now_ms: int, policy: RateLimitPolicy) -> AdmissionState:
        if self.banned_until is not None and now_ms < self.banned_until:
            return AdmissionState.BANNED
        cutoff = now_ms - policy.window_ms
        if sum(1 for t in self.hits if t > cutoff) >= policy.max_requests:
            return AdmissionState.LIMITED
        return AdmissionState.UNRESTRICTED

    def is_idle(self, now_ms: int, policy: RateLimitPolicy) -> bool:
        """Nothing left worth remembering."""
        if self.banned_until is not None and now_ms < self.banned_until:
            return False
        cutoff = now_ms - policy.window_ms
        return all(t <= cutoff for t in self.hits)

    def to_json(self) -> str:
        return json.dumps(
            {"hits": self.hits, "violations": self.violations, "banned_until": self.banned_until}
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "BanRecord":
        data = json.loads(raw)
        return cls(
            hits=[int(t) for t in data.get("hits", [])],
            violations=int(data.get("violations", 0)),
            banned_until=data.get("banned_until"),
        )


@dataclass(frozen=True)
class Decision:
    allowed: bool
    state: AdmissionState
    retry_after_ms: int = 0
    newly_banned: bool = False

    @property
    def retry_after_seconds(self) -> int:
        return max(-(-self.retry_after_ms // 1000), 0)


def admit(record: BanRecord, policy: RateLimitPolicy, now_ms: int) -> Decision:
    if record.banned_until is not None:
        if now_ms < record.banned_until:
            return Decision(False, AdmissionState.BANNED, record.banned_until - now_ms)
        record.hits.clear()
        record.violations = 0
        record.banned_until = None

    cutoff = now_ms - policy.window_ms
    record.hits = [t for t in record.hits if t > cutoff]

    if len(record.hits) < policy.max_requests:
        record.hits.append(now_ms)
        record.violations = 0
        return Decision(True, AdmissionState.UNRESTRICTED)

    record.violations += 1
    if record.violations >= policy.ban_after:
        record.banned_until = now_ms + policy.ban_ms
        return Decision(False, AdmissionState.BANNED, policy.ban_ms, newly_banned=True)
    return Decision(
        False, AdmissionState.LIMITED, record.hits[0] + policy.window_ms - now_ms
    )
