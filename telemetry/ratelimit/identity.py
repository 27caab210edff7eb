from typing import Mapping

# Checked in order when the front proxy is trusted
FORWARDED_HEADERS = ("x-real-ip", "x-client-ip", "x-forwarded-for")


def select_identifier(
    headers: Mapping[str, str], peer: str | None, trust_forwarded: bool
) -> str:
    """Network identifier the rate limiter keys on.

    Proxy headers are only honoured when `trust_forwarded` is set; anyone
    can send them, so they are only meaningful behind a proxy that
    overwrites them.
    """
    if trust_forwarded:
        for name in FORWARDED_HEADERS:
            value = headers.get(name)
            if value:
                # X-Forwarded-For is "client, proxy1, proxy2"
                first = value.split(",")[0].strip()
                if first:
                    return first
    return peer or "unknown"
