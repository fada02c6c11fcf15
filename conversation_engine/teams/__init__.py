"""Team records: normalization and key binding."""

from __future__ import annotations

from typing import Any

from conversation_engine.activities.key_binding import KeyBindingPolicy
from conversation_engine.activities.models import KeyBinding


def normalize_team(team: dict[str, Any]) -> dict[str, Any]:
    """Guarantee `conversations.items` and `teamMembers.items` exist on a team record."""
    for collection in ("conversations", "teamMembers"):
        container = team.get(collection) or {}
        container["items"] = container.get("items") or []
        team[collection] = container
    return team


async def bind_team_key(
    policy: KeyBindingPolicy,
    team: dict[str, Any],
    key: Any = None,
    recipients: list[str] | None = None,
) -> KeyBinding | None:
    """Normalize a team and bind its encryption key.

    `key=False` leaves the team unencrypted.
    """
    normalize_team(team)
    return await policy.bind_team(team, key, recipients)
