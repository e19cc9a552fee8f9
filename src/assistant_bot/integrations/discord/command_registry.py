from __future__ import annotations

import logging
from typing import Any, Optional

from ...core.logging_utils import log_event
from .command_tree import Registry
from .commands import build_application_commands
from .config import DiscordBotConfig
from .errors import DiscordConfigError
from .rest import DiscordRestClient


async def sync_commands(
    rest: DiscordRestClient,
    *,
    application_id: str,
    commands: list[dict[str, Any]],
    scope: str,
    guild_ids: tuple[str, ...],
    logger: logging.Logger,
) -> None:
    normalized_scope = scope.strip().lower()
    if normalized_scope == "global":
        updated = await rest.bulk_overwrite_application_commands(
            application_id=application_id,
            commands=commands,
        )
        log_event(
            logger,
            logging.INFO,
            "discord.commands.sync.overwrite",
            scope="global",
            application_id=application_id,
            command_count=len(commands),
            updated_count=len(updated),
        )
        return

    if normalized_scope != "guild":
        raise ValueError("scope must be 'global' or 'guild'")

    normalized_guild_ids = tuple(
        sorted({guild_id.strip() for guild_id in guild_ids if guild_id.strip()})
    )
    if not normalized_guild_ids:
        raise ValueError("guild scope requires at least one guild_id")

    for guild_id in normalized_guild_ids:
        updated = await rest.bulk_overwrite_application_commands(
            application_id=application_id,
            guild_id=guild_id,
            commands=commands,
        )
        log_event(
            logger,
            logging.INFO,
            "discord.commands.sync.overwrite",
            scope="guild",
            guild_id=guild_id,
            application_id=application_id,
            command_count=len(commands),
            updated_count=len(updated),
        )


async def resolve_application_id(
    rest: DiscordRestClient, *, configured: Optional[str]
) -> str:
    """Use the configured application id, else ask Discord for it."""
    if configured:
        return configured
    application = await rest.get_current_application()
    application_id = application.get("id")
    if application_id is None or not str(application_id).strip():
        raise DiscordConfigError("could not determine the Discord application id")
    return str(application_id).strip()


async def register_application_commands(
    rest: DiscordRestClient,
    *,
    config: DiscordBotConfig,
    registry: Registry,
    logger: logging.Logger,
) -> list[dict[str, Any]]:
    commands = build_application_commands(registry)
    application_id = await resolve_application_id(
        rest, configured=config.application_id
    )
    await sync_commands(
        rest,
        application_id=application_id,
        commands=commands,
        scope=config.command_registration.scope,
        guild_ids=config.command_registration.guild_ids,
        logger=logger,
    )
    return commands
