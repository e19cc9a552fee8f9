from __future__ import annotations

from assistant_bot.integrations.discord.constants import (
    OPTION_INTEGER,
    OPTION_STRING,
    OPTION_SUB_COMMAND,
    OPTION_SUB_COMMAND_GROUP,
)
from assistant_bot.integrations.discord.interactions import (
    extract_application_id,
    extract_channel_id,
    extract_guild_id,
    extract_interaction_id,
    extract_interaction_token,
    extract_invoking_user,
    extract_resolved_user,
    extract_user_id,
    is_application_command,
    parse_interaction_command,
)


def test_parse_interaction_command_builds_option_tree() -> None:
    payload = {
        "type": 2,
        "data": {
            "name": "car",
            "options": [
                {
                    "type": OPTION_SUB_COMMAND_GROUP,
                    "name": "flow",
                    "options": [
                        {
                            "type": OPTION_SUB_COMMAND,
                            "name": "status",
                            "options": [
                                {"type": OPTION_STRING, "name": "run_id", "value": "r1"}
                            ],
                        }
                    ],
                }
            ],
        },
    }

    root = parse_interaction_command(payload)

    assert root is not None
    assert root.name == "car"
    assert root.type is None
    group = root.options[0]
    assert group.is_sub_command
    status = group.options[0]
    assert status.name == "status"
    assert status.options[0].value == "r1"
    assert not status.options[0].is_sub_command


def test_parse_interaction_command_skips_malformed_options() -> None:
    payload = {
        "data": {
            "name": "purge",
            "options": [
                "junk",
                {"type": OPTION_INTEGER, "value": 3},
                {"type": OPTION_INTEGER, "name": "amount", "value": 3},
            ],
        }
    }

    root = parse_interaction_command(payload)

    assert root is not None
    assert [option.name for option in root.options] == ["amount"]


def test_parse_interaction_command_requires_name() -> None:
    assert parse_interaction_command({}) is None
    assert parse_interaction_command({"data": {"options": []}}) is None
    assert parse_interaction_command({"data": "purge"}) is None


def test_is_application_command() -> None:
    assert is_application_command({"type": 2})
    assert not is_application_command({"type": 3})


def test_extract_ids_strip_and_reject_blank() -> None:
    payload = {
        "id": " int-1 ",
        "token": "tok",
        "application_id": 123,
        "channel_id": "chan-1",
        "guild_id": "",
    }

    assert extract_interaction_id(payload) == "int-1"
    assert extract_interaction_token(payload) == "tok"
    assert extract_application_id(payload) == "123"
    assert extract_channel_id(payload) == "chan-1"
    assert extract_guild_id(payload) is None


def test_extract_invoking_user_prefers_member_user() -> None:
    guild_payload = {"member": {"user": {"id": "1"}}, "user": {"id": "2"}}
    dm_payload = {"user": {"id": "2"}}

    assert extract_invoking_user(guild_payload) == {"id": "1"}
    assert extract_user_id(dm_payload) == "2"
    assert extract_user_id({}) is None


def test_extract_resolved_user() -> None:
    payload = {"data": {"resolved": {"users": {"42": {"id": "42", "avatar": None}}}}}

    assert extract_resolved_user(payload, 42) == {"id": "42", "avatar": None}
    assert extract_resolved_user(payload, "7") is None
    assert extract_resolved_user({"data": {}}, "42") is None
