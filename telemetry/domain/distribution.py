"""Label -> count mappings and their storage encoding.

In memory a distribution is a plain `dict[str, int]`. It only becomes a
JSON blob at the storage boundary, always with sorted keys so that the same
counts serialize to the same bytes.
"""

from __future__ import annotations

import json
from typing import Iterable, Mapping, Optional

Distribution = dict[str, int]


def tally(values: Iterable[Optional[str]]) -> Distribution:
    """Count non-null, non-empty labels."""
    out: Distribution = {}
    for value in values:
        if value:
            out[value] = out.get(value, 0) + 1
    return out


def merge(distributions: Iterable[Mapping[str, int]]) -> Distribution:
    """Key-wise sum."""
    out: Distribution = {}
    for dist in distributions:
        for label, count in dist.items():
            out[label] = out.get(label, 0) + int(count)
    return out


def dumps(distribution: Mapping[str, int]) -> str:
    return json.dumps(dict(distribution), sort_keys=True, separators=(",", ":"))


def loads(blob: str | None) -> Distribution:
    if not blob:
        return {}
    data = json.loads(blob)
    if not isinstance(data, dict):
        raise ValueError("distribution blob must decode to an object")
    return {str(k): int(v) for k, v in data.items()}
