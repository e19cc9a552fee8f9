from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

from ...core.logging_utils import log_event
from .avatar import (
    attachment_filename,
    avatar_url,
    resolve_avatar_attach,
    resolve_avatar_size,
    resolve_avatar_user,
)
from .command_registry import register_application_commands
from .command_tree import Registry
from .commands import build_command_registry
from .config import DiscordBotConfig
from .constants import (
    MESSAGE_FLAG_EPHEMERAL,
    RESPONSE_CHANNEL_MESSAGE_WITH_SOURCE,
    RESPONSE_DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE,
)
from .errors import DiscordAPIError, DiscordRouteError
from .gateway import DiscordGatewayClient
from .interactions import (
    extract_application_id,
    extract_channel_id,
    extract_guild_id,
    extract_interaction_id,
    extract_interaction_token,
    extract_user_id,
    is_application_command,
    parse_interaction_command,
)
from .purge import purge_response_text, run_purge
from .rest import DiscordRestClient
from .routing import SuppliedOption, remap, route

GENERIC_FAILURE_MESSAGE = "An unexpected error occurred. Please try again later."
NOT_IMPLEMENTED_MESSAGE = "Command not implemented."


@dataclass(frozen=True)
class InteractionContext:
    interaction_id: str
    interaction_token: str
    channel_id: str
    guild_id: Optional[str]
    application_id: Optional[str]
    payload: dict[str, Any]


CommandHandler = Callable[
    [InteractionContext, Mapping[str, SuppliedOption]], Awaitable[None]
]


def _truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 1] + "…"


class DiscordBotService:
    def __init__(
        self,
        config: DiscordBotConfig,
        *,
        logger: logging.Logger,
        registry: Optional[Registry] = None,
        rest_client: Optional[DiscordRestClient] = None,
        gateway_client: Optional[DiscordGatewayClient] = None,
    ) -> None:
        self._config = config
        self._logger = logger
        # Overrides are validated here so a bad config fails before the
        # gateway connects.
        self._registry = (
            registry
            if registry is not None
            else build_command_registry(config.command_overrides)
        )

        self._rest = (
            rest_client
            if rest_client is not None
            else DiscordRestClient(bot_token=config.bot_token or "")
        )
        self._owns_rest = rest_client is None

        self._gateway = (
            gateway_client
            if gateway_client is not None
            else DiscordGatewayClient(
                bot_token=config.bot_token or "",
                intents=config.intents,
                logger=logger,
            )
        )
        self._owns_gateway = gateway_client is None

        self._handlers: dict[tuple[str, ...], CommandHandler] = {
            ("avatar",): self._handle_avatar,
            ("purge",): self._handle_purge,
        }
        self._tasks: set[asyncio.Task[None]] = set()
        # Interactions answered with a deferred response; later replies must
        # be follow-up messages.
        self._deferred: set[str] = set()

    @property
    def registry(self) -> Registry:
        return self._registry

    async def run_forever(self) -> None:
        if self._config.command_registration.enabled:
            await self._sync_application_commands_on_startup()
        try:
            log_event(
                self._logger,
                logging.INFO,
                "discord.bot.starting",
                command_count=len(self._registry.root),
            )
            await self._gateway.run(self._on_dispatch)
        finally:
            await self.wait_idle()
            await self._shutdown()

    async def wait_idle(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _sync_application_commands_on_startup(self) -> None:
        commands = await register_application_commands(
            self._rest,
            config=self._config,
            registry=self._registry,
            logger=self._logger,
        )
        log_event(
            self._logger,
            logging.INFO,
            "discord.commands.synced",
            command_names=[command["name"] for command in commands],
        )

    async def _shutdown(self) -> None:
        if self._owns_gateway:
            with contextlib.suppress(Exception):
                await self._gateway.stop()
        if self._owns_rest:
            with contextlib.suppress(Exception):
                await self._rest.close()

    async def _on_dispatch(self, event_type: str, payload: dict[str, Any]) -> None:
        if event_type == "INTERACTION_CREATE":
            # Interactions are independent; a slow purge must not hold the
            # gateway read loop.
            task = asyncio.create_task(self._handle_interaction(payload))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        elif event_type == "READY":
            user = payload.get("user") if isinstance(payload.get("user"), dict) else {}
            log_event(
                self._logger,
                logging.INFO,
                "discord.gateway.ready",
                user_id=user.get("id"),
                username=user.get("username"),
            )

    async def _handle_interaction(self, interaction_payload: dict[str, Any]) -> None:
        if not is_application_command(interaction_payload):
            return

        interaction_id = extract_interaction_id(interaction_payload)
        interaction_token = extract_interaction_token(interaction_payload)
        channel_id = extract_channel_id(interaction_payload)

        if not interaction_id or not interaction_token or not channel_id:
            self._logger.warning(
                "handle_interaction: missing required fields (interaction_id=%s, token=%s, channel=%s)",
                bool(interaction_id),
                bool(interaction_token),
                bool(channel_id),
            )
            return

        command = parse_interaction_command(interaction_payload)
        if command is None:
            self._logger.warning(
                "handle_interaction: could not parse command data (interaction_id=%s)",
                interaction_id,
            )
            await self._respond_ephemeral(
                interaction_id,
                interaction_token,
                "I could not parse this interaction. Please retry the command.",
            )
            return

        context = InteractionContext(
            interaction_id=interaction_id,
            interaction_token=interaction_token,
            channel_id=channel_id,
            guild_id=extract_guild_id(interaction_payload),
            application_id=extract_application_id(interaction_payload),
            payload=interaction_payload,
        )
        path: tuple[str, ...] = ()
        try:
            result = route(command, self._registry)
            path = result.path
            if not result.resolved and result.path:
                raise DiscordRouteError(
                    f"sub-command {result.option.name!r} is not registered under "
                    f"{'.'.join(result.path)}"
                )
            handler = self._handlers.get(result.path) if result.resolved else None
            if handler is None:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "discord.interaction.unknown_command",
                    command_name=command.name,
                    path=result.path,
                )
                await self._respond_ephemeral(
                    interaction_id, interaction_token, NOT_IMPLEMENTED_MESSAGE
                )
                return
            options = remap(result.option, result.cursor)
            log_event(
                self._logger,
                logging.INFO,
                "discord.interaction.dispatch",
                path=result.path,
                option_ids=sorted(options),
                channel_id=channel_id,
                user_id=extract_user_id(interaction_payload),
            )
            await handler(context, options)
        except DiscordRouteError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.interaction.route_error",
                command_name=command.name,
                path=path,
                channel_id=channel_id,
                exc=exc,
            )
            await self._respond_failure(
                context, exc.user_message or GENERIC_FAILURE_MESSAGE
            )
        except DiscordAPIError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.interaction.api_error",
                path=path,
                channel_id=channel_id,
                exc=exc,
            )
            await self._respond_failure(
                context, exc.user_message or GENERIC_FAILURE_MESSAGE
            )
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.interaction.unhandled_error",
                path=path,
                channel_id=channel_id,
                exc=exc,
            )
            await self._respond_failure(context, GENERIC_FAILURE_MESSAGE)
        finally:
            self._deferred.discard(interaction_id)

    async def _handle_avatar(
        self, context: InteractionContext, options: Mapping[str, SuppliedOption]
    ) -> None:
        user = resolve_avatar_user(context.payload, options)
        if user is None:
            await self._respond_ephemeral(
                context.interaction_id,
                context.interaction_token,
                "I could not find that user.",
            )
            return
        url = avatar_url(user, resolve_avatar_size(options))
        if not resolve_avatar_attach(options):
            await self._respond(
                context.interaction_id,
                context.interaction_token,
                {
                    "type": RESPONSE_CHANNEL_MESSAGE_WITH_SOURCE,
                    "data": {"content": url},
                },
            )
            return

        application_id = context.application_id or self._config.application_id
        if not application_id:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.avatar.missing_application_id",
                channel_id=context.channel_id,
                app_id_env=self._config.app_id_env,
            )
            await self._respond_ephemeral(
                context.interaction_id,
                context.interaction_token,
                GENERIC_FAILURE_MESSAGE,
            )
            return
        # Downloading and re-uploading can exceed the 3 second response window.
        deferred = await self._respond(
            context.interaction_id,
            context.interaction_token,
            {"type": RESPONSE_DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE},
        )
        if not deferred:
            return
        try:
            image = await self._rest.download(url)
            await self._rest.create_followup_message_with_attachment(
                application_id=application_id,
                interaction_token=context.interaction_token,
                data=image,
                filename=attachment_filename(url),
            )
        except DiscordAPIError as exc:
            # TODO: report when Discord rejects the upload for exceeding the
            # attachment size limit instead of silently falling back to a link.
            log_event(
                self._logger,
                logging.WARNING,
                "discord.avatar.attach_failed",
                channel_id=context.channel_id,
                exc=exc,
            )
            try:
                await self._rest.create_followup_message(
                    application_id=application_id,
                    interaction_token=context.interaction_token,
                    payload={"content": url},
                )
            except DiscordAPIError as followup_exc:
                log_event(
                    self._logger,
                    logging.ERROR,
                    "discord.avatar.followup_failed",
                    channel_id=context.channel_id,
                    exc=followup_exc,
                )

    async def _handle_purge(
        self, context: InteractionContext, options: Mapping[str, SuppliedOption]
    ) -> None:
        supplied = options.get("amount")
        amount = supplied.value if supplied is not None else None
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise DiscordRouteError(f"purge amount must be an integer, got {amount!r}")
        outcome = await run_purge(
            self._rest,
            channel_id=context.channel_id,
            amount=amount,
            logger=self._logger,
        )
        await self._respond_ephemeral(
            context.interaction_id,
            context.interaction_token,
            purge_response_text(outcome),
        )

    async def _respond(
        self,
        interaction_id: str,
        interaction_token: str,
        payload: dict[str, Any],
    ) -> bool:
        try:
            await self._rest.create_interaction_response(
                interaction_id=interaction_id,
                interaction_token=interaction_token,
                payload=payload,
            )
        except DiscordAPIError as exc:
            self._logger.error(
                "Failed to send interaction response: %s (interaction_id=%s)",
                exc,
                interaction_id,
            )
            return False
        if payload.get("type") == RESPONSE_DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE:
            self._deferred.add(interaction_id)
        return True

    async def _respond_failure(self, context: InteractionContext, text: str) -> None:
        application_id = context.application_id or self._config.application_id
        if context.interaction_id not in self._deferred or not application_id:
            await self._respond_ephemeral(
                context.interaction_id, context.interaction_token, text
            )
            return
        max_len = max(int(self._config.max_message_length), 32)
        try:
            await self._rest.create_followup_message(
                application_id=application_id,
                interaction_token=context.interaction_token,
                payload={
                    "content": _truncate(text, max_len),
                    "flags": MESSAGE_FLAG_EPHEMERAL,
                },
            )
        except DiscordAPIError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.interaction.followup_failed",
                channel_id=context.channel_id,
                exc=exc,
            )

    async def _respond_ephemeral(
        self,
        interaction_id: str,
        interaction_token: str,
        text: str,
    ) -> bool:
        max_len = max(int(self._config.max_message_length), 32)
        return await self._respond(
            interaction_id,
            interaction_token,
            {
                "type": RESPONSE_CHANNEL_MESSAGE_WITH_SOURCE,
                "data": {
                    "content": _truncate(text, max_len),
                    "flags": MESSAGE_FLAG_EPHEMERAL,
                },
            },
        )


def create_discord_bot_service(
    config: DiscordBotConfig,
    *,
    logger: logging.Logger,
) -> DiscordBotService:
    return DiscordBotService(config, logger=logger)
