from __future__ import annotations

from typing import Any, Mapping, Optional

from .command_tree import (
    KIND_COMMAND,
    KIND_OPTION,
    CommandChoice,
    CommandNode,
    Registry,
    build_registry,
)
from .constants import (
    DISCORD_MAX_GET_CHANNEL_MESSAGES_LIMIT,
    OPTION_BOOLEAN,
    OPTION_INTEGER,
    OPTION_USER,
)
from .schema import UploadSpec, project_commands

# Discord CDN image sizes, 16 through 4096.
IMAGE_SIZES = tuple(2**exponent for exponent in range(4, 13))
MAX_IMAGE_SIZE = IMAGE_SIZES[-1]


def image_size_choice_id(size: int) -> str:
    return f"size_{size}"


IMAGE_SIZE_BY_CHOICE_ID = {image_size_choice_id(size): size for size in IMAGE_SIZES}

DEFAULT_COMMANDS: tuple[CommandNode, ...] = (
    CommandNode(
        id="avatar",
        name="avatar",
        kind=KIND_COMMAND,
        description="Get a user's avatar",
        children=(
            CommandNode(
                id="user",
                name="user",
                kind=KIND_OPTION,
                option_type=OPTION_USER,
                description="The user to get the avatar of (defaults to you)",
            ),
            CommandNode(
                id="size",
                name="size",
                kind=KIND_OPTION,
                option_type=OPTION_INTEGER,
                description="The size of the image in pixels",
                choices=tuple(
                    CommandChoice(
                        id=image_size_choice_id(size), name=str(size), value=size
                    )
                    for size in IMAGE_SIZES
                ),
            ),
            CommandNode(
                id="attach",
                name="attach",
                kind=KIND_OPTION,
                option_type=OPTION_BOOLEAN,
                description="Upload the image as an attachment instead of a link",
            ),
        ),
    ),
    CommandNode(
        id="purge",
        name="purge",
        kind=KIND_COMMAND,
        description="Delete recent messages in this channel",
        dm_permission=False,
        children=(
            CommandNode(
                id="amount",
                name="amount",
                kind=KIND_OPTION,
                option_type=OPTION_INTEGER,
                description="The number of messages to delete",
                required=True,
                min_value=1,
                max_value=DISCORD_MAX_GET_CHANNEL_MESSAGES_LIMIT,
            ),
        ),
    ),
)

DEFAULT_UPLOAD_SPEC: tuple[UploadSpec, ...] = (
    UploadSpec(
        id="avatar",
        options=(
            UploadSpec(id="user"),
            UploadSpec(id="size"),
            UploadSpec(id="attach"),
        ),
    ),
    UploadSpec(id="purge", options=(UploadSpec(id="amount"),)),
)


def build_command_registry(
    overrides: Optional[Mapping[str, Any]] = None,
) -> Registry:
    return build_registry(DEFAULT_COMMANDS, overrides)


def build_application_commands(
    registry: Optional[Registry] = None,
) -> list[dict[str, Any]]:
    return project_commands(
        registry if registry is not None else build_command_registry(),
        DEFAULT_UPLOAD_SPEC,
    )
