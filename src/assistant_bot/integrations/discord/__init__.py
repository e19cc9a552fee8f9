"""Discord slash-command integration."""

from .command_registry import register_application_commands, sync_commands
from .command_tree import (
    CommandChoice,
    CommandNode,
    Registry,
    RegistryEntry,
    RegistryLevel,
    build_registry,
)
from .commands import (
    DEFAULT_COMMANDS,
    DEFAULT_UPLOAD_SPEC,
    build_application_commands,
    build_command_registry,
)
from .config import DiscordBotConfig, DiscordBotConfigError, DiscordCommandRegistration
from .errors import (
    DiscordAPIError,
    DiscordConfigError,
    DiscordError,
    DiscordRouteError,
)
from .gateway import DiscordGatewayClient
from .purge import PurgeOutcome, run_purge, select_purge_candidates
from .rest import DiscordRestClient
from .routing import InboundOption, RouteResult, SuppliedOption, remap, route
from .schema import UploadSpec, full_upload_spec, project, project_commands
from .service import DiscordBotService, create_discord_bot_service

__all__ = [
    "CommandChoice",
    "CommandNode",
    "DEFAULT_COMMANDS",
    "DEFAULT_UPLOAD_SPEC",
    "DiscordAPIError",
    "DiscordBotConfig",
    "DiscordBotConfigError",
    "DiscordBotService",
    "DiscordCommandRegistration",
    "DiscordConfigError",
    "DiscordError",
    "DiscordGatewayClient",
    "DiscordRestClient",
    "DiscordRouteError",
    "InboundOption",
    "PurgeOutcome",
    "Registry",
    "RegistryEntry",
    "RegistryLevel",
    "RouteResult",
    "SuppliedOption",
    "UploadSpec",
    "build_application_commands",
    "build_command_registry",
    "build_registry",
    "create_discord_bot_service",
    "full_upload_spec",
    "project",
    "project_commands",
    "register_application_commands",
    "remap",
    "route",
    "run_purge",
    "select_purge_candidates",
    "sync_commands",
]
