from __future__ import annotations

from assistant_bot.integrations.discord.commands import (
    IMAGE_SIZES,
    build_application_commands,
    build_command_registry,
)
from assistant_bot.integrations.discord.constants import (
    OPTION_BOOLEAN,
    OPTION_INTEGER,
    OPTION_USER,
)


def _find_option(options: list[dict], name: str) -> dict:
    for option in options:
        if option.get("name") == name:
            return option
    raise AssertionError(f"Option not found: {name}")


def test_build_application_commands_structure_is_stable() -> None:
    commands = build_application_commands()

    assert [cmd["name"] for cmd in commands] == ["avatar", "purge"]
    assert all(cmd["type"] == 1 for cmd in commands)

    avatar = commands[0]
    assert [opt["name"] for opt in avatar["options"]] == ["user", "size", "attach"]
    assert _find_option(avatar["options"], "user")["type"] == OPTION_USER
    assert _find_option(avatar["options"], "attach")["type"] == OPTION_BOOLEAN

    size = _find_option(avatar["options"], "size")
    assert size["type"] == OPTION_INTEGER
    assert [choice["value"] for choice in size["choices"]] == list(IMAGE_SIZES)
    assert [choice["name"] for choice in size["choices"]] == [
        str(value) for value in IMAGE_SIZES
    ]


def test_image_sizes_cover_cdn_range() -> None:
    assert IMAGE_SIZES[0] == 16
    assert IMAGE_SIZES[-1] == 4096
    assert len(IMAGE_SIZES) == 9


def test_required_options_are_marked_required() -> None:
    commands = build_application_commands()

    amount = _find_option(commands[1]["options"], "amount")
    assert amount["required"] is True
    assert amount["min_value"] == 1
    assert amount["max_value"] == 100
    for option in commands[0]["options"]:
        assert "required" not in option


def test_build_application_commands_uses_given_registry() -> None:
    registry = build_command_registry({"purge": {"name": "clear"}})

    commands = build_application_commands(registry)

    assert [cmd["name"] for cmd in commands] == ["avatar", "clear"]
