from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, NoReturn, Optional

import typer

from . import __version__
from .core.config import BotConfig, ConfigError, load_bot_config
from .core.logging_utils import setup_rotating_logger
from .integrations.discord.command_registry import register_application_commands
from .integrations.discord.command_tree import Registry
from .integrations.discord.commands import (
    build_application_commands,
    build_command_registry,
)
from .integrations.discord.config import DiscordBotConfig, DiscordBotConfigError
from .integrations.discord.errors import DiscordAPIError
from .integrations.discord.rest import DiscordRestClient
from .integrations.discord.service import create_discord_bot_service

logger = logging.getLogger("assistant_bot.cli")

app = typer.Typer(add_completion=False)


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def _version_callback(value: bool) -> None:
    if not value:
        return
    typer.echo(f"assistant-bot {__version__}")
    raise typer.Exit(code=0)


@app.callback()
def _root(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Discord assistant bot."""


def _load_discord_config(path: Optional[Path]) -> tuple[BotConfig, DiscordBotConfig]:
    config = load_bot_config(path or Path.cwd())
    discord_cfg = DiscordBotConfig.from_raw(
        root=config.root, raw=config.section("discord_bot")
    )
    return config, discord_cfg


async def _sync_discord_application_commands(
    config: DiscordBotConfig,
    *,
    registry: Registry,
    logger: logging.Logger,
    rest_client_factory: Callable[..., Any] = DiscordRestClient,
) -> list[dict[str, Any]]:
    if not config.bot_token:
        raise DiscordBotConfigError(f"missing bot token env '{config.bot_token_env}'")
    async with rest_client_factory(bot_token=config.bot_token) as rest:
        return await register_application_commands(
            rest, config=config, registry=registry, logger=logger
        )


@app.command("start")
def start(
    path: Optional[Path] = typer.Option(None, "--path", help="Bot root path"),
) -> None:
    """Connect to the Discord gateway and answer slash commands."""
    try:
        config, discord_cfg = _load_discord_config(path)
        if not discord_cfg.enabled:
            raise_exit("discord_bot is disabled; set discord_bot.enabled: true")
        bot_logger = setup_rotating_logger("assistant-bot-discord", config.log)
        service = create_discord_bot_service(discord_cfg, logger=bot_logger)
        asyncio.run(service.run_forever())
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)
    except DiscordAPIError as exc:
        raise_exit(f"Discord bot stopped: {exc}", cause=exc)
    except KeyboardInterrupt:
        typer.echo("Discord bot stopped.")


@app.command("register-commands")
def register_commands(
    path: Optional[Path] = typer.Option(None, "--path", help="Bot root path"),
) -> None:
    """Upload the slash command schema to Discord."""
    try:
        _config, discord_cfg = _load_discord_config(path)
        registry = build_command_registry(discord_cfg.command_overrides)
        asyncio.run(
            _sync_discord_application_commands(
                discord_cfg,
                registry=registry,
                logger=logging.getLogger("assistant_bot.discord.commands"),
            )
        )
    except (ConfigError, ValueError, DiscordAPIError) as exc:
        raise_exit(str(exc), cause=exc)

    typer.echo("Discord application commands synchronized.")


@app.command("show-commands")
def show_commands(
    path: Optional[Path] = typer.Option(None, "--path", help="Bot root path"),
) -> None:
    """Print the slash command schema that would be uploaded."""
    try:
        _config, discord_cfg = _load_discord_config(path)
        registry = build_command_registry(discord_cfg.command_overrides)
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)
    typer.echo(json.dumps(build_application_commands(registry), indent=2))


def main() -> None:
    app()
