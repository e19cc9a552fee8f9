from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from ...core.config import ConfigError
from .constants import DISCORD_INTENT_GUILDS, DISCORD_MAX_MESSAGE_LENGTH

DEFAULT_BOT_TOKEN_ENV = "ASSISTANT_DISCORD_BOT_TOKEN"
DEFAULT_APP_ID_ENV = "ASSISTANT_DISCORD_APP_ID"
DEFAULT_COMMAND_SCOPE = "global"
DEFAULT_INTENTS = DISCORD_INTENT_GUILDS


class DiscordBotConfigError(ConfigError):
    """Raised when discord bot config is invalid."""


@dataclass(frozen=True)
class DiscordCommandRegistration:
    enabled: bool
    scope: str
    guild_ids: tuple[str, ...]


@dataclass(frozen=True)
class DiscordBotConfig:
    root: Path
    enabled: bool
    bot_token_env: str
    app_id_env: str
    bot_token: Optional[str]
    application_id: Optional[str]
    command_registration: DiscordCommandRegistration
    intents: int
    max_message_length: int
    command_overrides: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, *, root: Path, raw: dict[str, Any]) -> "DiscordBotConfig":
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        enabled = bool(cfg.get("enabled", False))
        bot_token_env = str(cfg.get("bot_token_env", DEFAULT_BOT_TOKEN_ENV)).strip()
        app_id_env = str(cfg.get("app_id_env", DEFAULT_APP_ID_ENV)).strip()
        if not bot_token_env:
            raise DiscordBotConfigError("discord_bot.bot_token_env must be non-empty")
        if not app_id_env:
            raise DiscordBotConfigError("discord_bot.app_id_env must be non-empty")

        bot_token = os.environ.get(bot_token_env) or None
        application_id = os.environ.get(app_id_env) or None

        registration_raw = cfg.get("command_registration")
        registration_cfg = (
            registration_raw if isinstance(registration_raw, dict) else {}
        )
        scope_raw = (
            str(registration_cfg.get("scope", DEFAULT_COMMAND_SCOPE)).strip().lower()
        )
        if scope_raw not in {"global", "guild"}:
            raise DiscordBotConfigError(
                "discord_bot.command_registration.scope must be 'global' or 'guild'"
            )
        command_registration = DiscordCommandRegistration(
            enabled=_parse_bool_or_default(
                registration_cfg.get("enabled"),
                default=True,
                key="discord_bot.command_registration.enabled",
            ),
            scope=scope_raw,
            guild_ids=tuple(_parse_string_ids(registration_cfg.get("guild_ids"))),
        )
        if (
            command_registration.enabled
            and command_registration.scope == "guild"
            and not command_registration.guild_ids
        ):
            raise DiscordBotConfigError(
                "discord_bot.command_registration.guild_ids is required for guild scope"
            )

        intents_value = cfg.get("intents", DEFAULT_INTENTS)
        if not isinstance(intents_value, int) or isinstance(intents_value, bool):
            raise DiscordBotConfigError("discord_bot.intents must be an integer")
        if intents_value < 0:
            raise DiscordBotConfigError("discord_bot.intents must be >= 0")

        max_message_length = min(
            _parse_positive_int_or_default(
                cfg.get("max_message_length"),
                default=DISCORD_MAX_MESSAGE_LENGTH,
                key="discord_bot.max_message_length",
            ),
            DISCORD_MAX_MESSAGE_LENGTH,
        )

        commands_raw = cfg.get("commands")
        if commands_raw is None:
            commands_raw = {}
        if not isinstance(commands_raw, dict):
            raise DiscordBotConfigError(
                "discord_bot.commands must be a mapping keyed by command id"
            )

        if enabled:
            if not bot_token:
                raise DiscordBotConfigError(
                    f"Discord bot is enabled but env var {bot_token_env} is unset"
                )
            if not application_id:
                raise DiscordBotConfigError(
                    f"Discord bot is enabled but env var {app_id_env} is unset"
                )

        return cls(
            root=root,
            enabled=enabled,
            bot_token_env=bot_token_env,
            app_id_env=app_id_env,
            bot_token=bot_token,
            application_id=application_id,
            command_registration=command_registration,
            intents=intents_value,
            max_message_length=max_message_length,
            command_overrides=commands_raw,
        )


def _parse_string_ids(value: Any) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
    parsed: list[str] = []
    for item in items:
        token = str(item).strip()
        if token:
            parsed.append(token)
    return parsed


def _parse_positive_int_or_default(value: Any, *, default: int, key: str) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise DiscordBotConfigError(f"{key} must be an integer") from exc
    if parsed <= 0:
        raise DiscordBotConfigError(f"{key} must be > 0")
    return parsed


def _parse_bool_or_default(value: Any, *, default: bool, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise DiscordBotConfigError(f"{key} must be a boolean")
