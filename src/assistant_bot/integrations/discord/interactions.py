from __future__ import annotations

from typing import Any, Optional

from .constants import INTERACTION_APPLICATION_COMMAND
from .routing import InboundOption


def _as_id(value: object) -> str | None:
    if value is None:
        return None
    token = str(value).strip()
    return token or None


def _parse_option(raw: Any) -> Optional[InboundOption]:
    if not isinstance(raw, dict):
        return None
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        return None
    option_type = raw.get("type")
    nested = raw.get("options")
    children = nested if isinstance(nested, list) else []
    return InboundOption(
        name=name,
        type=option_type if isinstance(option_type, int) else None,
        value=raw.get("value"),
        options=tuple(
            option
            for option in (_parse_option(item) for item in children)
            if option is not None
        ),
    )


def parse_interaction_command(
    interaction_payload: dict[str, Any],
) -> Optional[InboundOption]:
    """Convert ``data`` of an application command interaction into an option tree."""
    data = interaction_payload.get("data")
    if not isinstance(data, dict):
        return None
    root_name = data.get("name")
    if not isinstance(root_name, str) or not root_name:
        return None
    options = data.get("options")
    children = options if isinstance(options, list) else []
    return InboundOption(
        name=root_name,
        options=tuple(
            option
            for option in (_parse_option(item) for item in children)
            if option is not None
        ),
    )


def is_application_command(interaction_payload: dict[str, Any]) -> bool:
    return interaction_payload.get("type") == INTERACTION_APPLICATION_COMMAND


def extract_interaction_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(interaction_payload.get("id"))


def extract_interaction_token(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(interaction_payload.get("token"))


def extract_application_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(interaction_payload.get("application_id"))


def extract_channel_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(interaction_payload.get("channel_id"))


def extract_guild_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(interaction_payload.get("guild_id"))


def extract_invoking_user(interaction_payload: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Return the user object of whoever invoked the interaction.

    Guild interactions carry it under ``member.user``, DMs under ``user``.
    """
    member = interaction_payload.get("member")
    if isinstance(member, dict):
        member_user = member.get("user")
        if isinstance(member_user, dict) and _as_id(member_user.get("id")):
            return member_user
    user = interaction_payload.get("user")
    if isinstance(user, dict) and _as_id(user.get("id")):
        return user
    return None


def extract_user_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    user = extract_invoking_user(interaction_payload)
    if user is None:
        return None
    return _as_id(user.get("id"))


def extract_resolved_user(
    interaction_payload: dict[str, Any], user_id: object
) -> Optional[dict[str, Any]]:
    key = _as_id(user_id)
    if key is None:
        return None
    data = interaction_payload.get("data")
    if not isinstance(data, dict):
        return None
    resolved = data.get("resolved")
    if not isinstance(resolved, dict):
        return None
    users = resolved.get("users")
    if not isinstance(users, dict):
        return None
    user = users.get(key)
    return user if isinstance(user, dict) else None
