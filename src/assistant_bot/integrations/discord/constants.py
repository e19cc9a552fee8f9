from __future__ import annotations

from datetime import timedelta

DISCORD_API_BASE_URL = "https://discord.com/api/v10"
DISCORD_GATEWAY_URL = "wss://gateway.discord.gg/?v=10&encoding=json"
DISCORD_CDN_BASE_URL = "https://cdn.discordapp.com"

# Discord hard limit for message content.
DISCORD_MAX_MESSAGE_LENGTH = 2000

# Upper bound for GET /channels/{id}/messages?limit=...
DISCORD_MAX_GET_CHANNEL_MESSAGES_LIMIT = 100

# Bulk delete refuses messages older than this.
PURGE_RETENTION_WINDOW = timedelta(days=14)

# Gateway intents bitflags. Interactions arrive without any intent.
DISCORD_INTENT_GUILDS = 1 << 0

# Application command types.
APPLICATION_COMMAND_CHAT_INPUT = 1

# Application command option types.
OPTION_SUB_COMMAND = 1
OPTION_SUB_COMMAND_GROUP = 2
OPTION_STRING = 3
OPTION_INTEGER = 4
OPTION_BOOLEAN = 5
OPTION_USER = 6
OPTION_CHANNEL = 7
OPTION_ROLE = 8
OPTION_MENTIONABLE = 9
OPTION_NUMBER = 10
OPTION_ATTACHMENT = 11

VALUE_OPTION_TYPES = frozenset(
    {
        OPTION_STRING,
        OPTION_INTEGER,
        OPTION_BOOLEAN,
        OPTION_USER,
        OPTION_CHANNEL,
        OPTION_ROLE,
        OPTION_MENTIONABLE,
        OPTION_NUMBER,
        OPTION_ATTACHMENT,
    }
)
CHOICE_OPTION_TYPES = frozenset({OPTION_STRING, OPTION_INTEGER, OPTION_NUMBER})
RANGE_OPTION_TYPES = frozenset({OPTION_INTEGER, OPTION_NUMBER})

# Interaction types.
INTERACTION_PING = 1
INTERACTION_APPLICATION_COMMAND = 2

# Interaction callback types.
RESPONSE_CHANNEL_MESSAGE_WITH_SOURCE = 4
RESPONSE_DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE = 5

# Message flags.
MESSAGE_FLAG_EPHEMERAL = 1 << 6
