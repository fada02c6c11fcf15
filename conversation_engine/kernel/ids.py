from __future__ import annotations

from uuid import uuid4


def new_client_temp_id() -> str:
    """Generate a fresh client-side temporary id for an activity (UUID4)."""
    return str(uuid4())


def id_from_url(url: str) -> str:
    """Return the final `/`-delimited path segment of `url`.

    Mirrors how the backend addresses resources: the id of a conversation or
    activity is always the trailing segment of its canonical url.
    """
    return url.split("/")[-1]


def dedupe_preserving_order(values: list[str]) -> list[str]:
    """Drop repeated values, keeping the first occurrence of each."""
    seen: set[str] = set()
    deduped: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        deduped.append(value)
    return deduped
