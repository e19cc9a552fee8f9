"""Channel purge: fetch once, filter locally, delete in a single call."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional, Protocol, Sequence

from ...core.logging_utils import log_event
from ...core.time_utils import now_utc, parse_iso_timestamp
from .constants import DISCORD_MAX_GET_CHANNEL_MESSAGES_LIMIT, PURGE_RETENTION_WINDOW
from .errors import DiscordAPIError

PURGE_STATUS_EMPTY = "empty"
PURGE_STATUS_DELETED = "deleted"
PURGE_STATUS_FAILED = "failed"


class PurgeRestClient(Protocol):
    async def get_channel_messages(
        self, *, channel_id: str, limit: int
    ) -> list[dict[str, Any]]: ...

    async def delete_channel_message(
        self, *, channel_id: str, message_id: str
    ) -> None: ...

    async def bulk_delete_messages(
        self, *, channel_id: str, message_ids: Sequence[str]
    ) -> None: ...


@dataclass(frozen=True)
class ChannelMessage:
    id: str
    pinned: bool
    timestamp: Optional[datetime]


@dataclass(frozen=True)
class PurgeOutcome:
    status: str
    requested: int
    eligible: int
    deleted: int


def parse_channel_message(raw: dict[str, Any]) -> Optional[ChannelMessage]:
    message_id = raw.get("id")
    if message_id is None or not str(message_id).strip():
        return None
    return ChannelMessage(
        id=str(message_id).strip(),
        pinned=bool(raw.get("pinned", False)),
        timestamp=parse_iso_timestamp(raw.get("timestamp")),
    )


def select_purge_candidates(
    messages: Iterable[ChannelMessage],
    *,
    amount: int,
    now: datetime,
) -> list[str]:
    """Return ids of up to ``amount`` deletable messages, newest first.

    Age is judged by each message's own timestamp against the local clock,
    not against Discord's, so messages right at the 14 day edge may still be
    rejected by the bulk delete endpoint.
    """
    if amount <= 0:
        return []
    cutoff = now - PURGE_RETENTION_WINDOW
    selected: list[str] = []
    for message in messages:
        if message.pinned:
            continue
        if message.timestamp is None or message.timestamp <= cutoff:
            continue
        selected.append(message.id)
        if len(selected) >= amount:
            break
    return selected


async def run_purge(
    rest: PurgeRestClient,
    *,
    channel_id: str,
    amount: int,
    logger: logging.Logger,
    now: Optional[datetime] = None,
) -> PurgeOutcome:
    # The filters can discard messages, so fetch a full page up front instead
    # of exactly ``amount``; the result may still come up short.
    try:
        raw_messages = await rest.get_channel_messages(
            channel_id=channel_id, limit=DISCORD_MAX_GET_CHANNEL_MESSAGES_LIMIT
        )
    except DiscordAPIError as exc:
        log_event(
            logger,
            logging.WARNING,
            "discord.purge.fetch_failed",
            channel_id=channel_id,
            exc=exc,
        )
        return PurgeOutcome(
            status=PURGE_STATUS_FAILED, requested=amount, eligible=0, deleted=0
        )

    messages = [
        message
        for message in (parse_channel_message(raw) for raw in raw_messages)
        if message is not None
    ]
    ids = select_purge_candidates(
        messages, amount=amount, now=now if now is not None else now_utc()
    )
    if not ids:
        return PurgeOutcome(
            status=PURGE_STATUS_EMPTY, requested=amount, eligible=0, deleted=0
        )

    try:
        if len(ids) == 1:
            # Bulk delete requires at least two messages.
            await rest.delete_channel_message(channel_id=channel_id, message_id=ids[0])
        else:
            await rest.bulk_delete_messages(channel_id=channel_id, message_ids=ids)
    except DiscordAPIError as exc:
        log_event(
            logger,
            logging.WARNING,
            "discord.purge.delete_failed",
            channel_id=channel_id,
            message_count=len(ids),
            exc=exc,
        )
        return PurgeOutcome(
            status=PURGE_STATUS_FAILED,
            requested=amount,
            eligible=len(ids),
            deleted=0,
        )

    log_event(
        logger,
        logging.INFO,
        "discord.purge.deleted",
        channel_id=channel_id,
        requested=amount,
        fetched=len(messages),
        deleted=len(ids),
    )
    return PurgeOutcome(
        status=PURGE_STATUS_DELETED,
        requested=amount,
        eligible=len(ids),
        deleted=len(ids),
    )


def purge_response_text(outcome: PurgeOutcome) -> str:
    if outcome.status == PURGE_STATUS_EMPTY:
        return "No messages to delete."
    if outcome.deleted == 0:
        return "Could not delete messages."
    if outcome.deleted == 1:
        return "Deleted 1 message."
    return f"Deleted {outcome.deleted} messages."
