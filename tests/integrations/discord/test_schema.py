from __future__ import annotations

from typing import Any

import pytest

from assistant_bot.integrations.discord.command_tree import RegistryLevel
from assistant_bot.integrations.discord.commands import (
    DEFAULT_UPLOAD_SPEC,
    build_command_registry,
)
from assistant_bot.integrations.discord.constants import (
    APPLICATION_COMMAND_CHAT_INPUT,
    OPTION_INTEGER,
)
from assistant_bot.integrations.discord.errors import DiscordConfigError
from assistant_bot.integrations.discord.schema import (
    UploadSpec,
    full_upload_spec,
    project,
    project_commands,
)


def test_project_purge_emits_platform_field_names() -> None:
    registry = build_command_registry()
    purge = registry.root.get("purge")
    assert purge is not None

    payload = project(purge, UploadSpec(id="purge"))

    assert payload == {
        "type": APPLICATION_COMMAND_CHAT_INPUT,
        "name": "purge",
        "description": "Delete recent messages in this channel",
        "dm_permission": False,
        "options": [
            {
                "type": OPTION_INTEGER,
                "name": "amount",
                "description": "The number of messages to delete",
                "required": True,
                "min_value": 1,
                "max_value": 100,
            }
        ],
    }


def test_project_respects_upload_order_and_selection() -> None:
    registry = build_command_registry()

    payload = project_commands(
        registry,
        [
            UploadSpec(
                id="avatar",
                options=(UploadSpec(id="attach"), UploadSpec(id="user")),
            )
        ],
    )

    assert [command["name"] for command in payload] == ["avatar"]
    assert [option["name"] for option in payload[0]["options"]] == ["attach", "user"]


def test_project_selects_and_orders_choices() -> None:
    registry = build_command_registry(
        {"avatar": {"options": {"size": {"choices": {"size_4096": {"name": "max"}}}}}}
    )
    size = registry.resolve(("avatar", "size"))
    assert size is not None

    payload = project(size, UploadSpec(id="size", choices=("size_4096", "size_16")))

    assert payload["choices"] == [
        {"name": "max", "value": 4096},
        {"name": "16", "value": 16},
    ]


def test_project_includes_localizations_from_overrides() -> None:
    registry = build_command_registry(
        {
            "purge": {
                "name_localizations": {"de": "leeren"},
                "description_localizations": {"de": "Nachrichten löschen"},
            }
        }
    )

    payload = project_commands(registry, [UploadSpec(id="purge", options=())])

    assert payload[0]["name_localizations"] == {"de": "leeren"}
    assert payload[0]["description_localizations"] == {"de": "Nachrichten löschen"}
    assert "options" not in payload[0]


@pytest.mark.parametrize(
    "specs",
    [
        [UploadSpec(id="missing")],
        [UploadSpec(id="avatar", options=(UploadSpec(id="missing"),))],
        [
            UploadSpec(
                id="avatar",
                options=(UploadSpec(id="size", choices=("size_17",)),),
            )
        ],
        [
            UploadSpec(
                id="avatar",
                options=(UploadSpec(id="attach", choices=("size_16",)),),
            )
        ],
    ],
)
def test_project_unknown_ids_raise_config_error(specs: list[UploadSpec]) -> None:
    registry = build_command_registry()

    with pytest.raises(DiscordConfigError):
        project_commands(registry, specs)


def test_project_rejects_mismatched_spec() -> None:
    registry = build_command_registry()
    avatar = registry.root.get("avatar")
    assert avatar is not None

    with pytest.raises(DiscordConfigError):
        project(avatar, UploadSpec(id="purge"))


def test_full_upload_spec_matches_default_spec_projection() -> None:
    registry = build_command_registry()

    assert project_commands(registry, full_upload_spec(registry)) == project_commands(
        registry, DEFAULT_UPLOAD_SPEC
    )
    assert project_commands(registry) == project_commands(registry, DEFAULT_UPLOAD_SPEC)


def _assert_names_resolve(level: RegistryLevel, projected: list[dict[str, Any]]) -> None:
    for item in projected:
        entry = level.find(item["name"])
        assert entry is not None, item["name"]
        for choice in item.get("choices", []):
            assert entry.choice_for_value(choice["value"]) is not None
        _assert_names_resolve(entry.children, item.get("options", []))


def test_projection_names_route_back_to_ids() -> None:
    registry = build_command_registry(
        {
            "avatar": {
                "name": "pfp",
                "options": {"size": {"name": "px"}, "attach": {"name": "upload"}},
            },
            "purge": {"name": "clean"},
        }
    )

    projected = project_commands(registry, DEFAULT_UPLOAD_SPEC)

    _assert_names_resolve(registry.root, projected)
    assert [registry.root.find(item["name"]).id for item in projected] == [
        "avatar",
        "purge",
    ]
