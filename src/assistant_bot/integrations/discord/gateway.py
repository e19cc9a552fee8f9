from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import platform
import random
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from ...core.logging_utils import log_event
from .constants import DISCORD_GATEWAY_URL
from .errors import DiscordAPIError, DiscordPermanentError
from .rest import DiscordRestClient

# Close codes that no reconnect can fix: bad token, bad shard, sharding
# required, bad API version, bad or disallowed intents.
FATAL_GATEWAY_CLOSE_CODES = frozenset({4004, 4010, 4011, 4012, 4013, 4014})

# Exponents past this saturate any sane cap.
_MAX_BACKOFF_EXPONENT = 30

DispatchHandler = Callable[[str, dict[str, Any]], Awaitable[None]]


class GatewayOp(IntEnum):
    DISPATCH = 0
    HEARTBEAT = 1
    IDENTIFY = 2
    RECONNECT = 7
    INVALID_SESSION = 9
    HELLO = 10
    HEARTBEAT_ACK = 11


@dataclass(frozen=True)
class GatewayFrame:
    op: int
    d: Any = None
    s: Optional[int] = None
    t: Optional[str] = None


@dataclass
class _ConnectionState:
    ready: bool = False
    # Set when the server asks us to drop this socket.
    end_reason: Optional[str] = None


def build_identify_payload(*, bot_token: str, intents: int) -> dict[str, Any]:
    client_name = "assistant-bot"
    return {
        "op": int(GatewayOp.IDENTIFY),
        "d": {
            "token": bot_token,
            "intents": intents,
            "properties": {
                "os": platform.system().lower() or "unknown",
                "browser": client_name,
                "device": client_name,
            },
        },
    }


def parse_gateway_frame(frame: str | bytes | dict[str, Any]) -> GatewayFrame:
    """Decode one gateway message; malformed frames raise ``DiscordAPIError``."""
    if isinstance(frame, dict):
        payload: Any = dict(frame)
    else:
        text = frame.decode("utf-8") if isinstance(frame, bytes) else frame
        payload = json.loads(text)
    if not isinstance(payload, dict):
        raise DiscordAPIError("gateway frame is not a JSON object")
    op = payload.get("op")
    if not isinstance(op, int):
        raise DiscordAPIError(f"gateway frame has no integer op: {payload!r}")
    sequence = payload.get("s")
    event_name = payload.get("t")
    return GatewayFrame(
        op=op,
        d=payload.get("d"),
        s=sequence if isinstance(sequence, int) else None,
        t=event_name if isinstance(event_name, str) else None,
    )


def calculate_reconnect_backoff(
    attempt: int,
    *,
    base_seconds: float = 1.0,
    max_seconds: float = 30.0,
    rand_float: Callable[[], float] = random.random,
) -> float:
    """Doubling delay per attempt, scaled by a 0.8-1.2 jitter and capped."""
    if base_seconds <= 0.0 or max_seconds <= 0.0:
        return 0.0
    exponent = min(max(attempt, 0), _MAX_BACKOFF_EXPONENT)
    jitter = 0.8 + 0.4 * min(max(rand_float(), 0.0), 1.0)
    return float(min(max_seconds, base_seconds * (2.0**exponent) * jitter))


def gateway_close_code(exc: BaseException) -> int | None:
    # websockets exposes the code on the exception or on the received frame.
    for source in (exc, getattr(exc, "rcvd", None)):
        code = getattr(source, "code", None)
        if isinstance(code, int):
            return code
    return None


def _fatal_reason(exc: BaseException) -> Optional[str]:
    """Why ``exc`` should stop the gateway for good, or None to reconnect."""
    if isinstance(exc, DiscordPermanentError):
        return str(exc)
    if isinstance(exc, ConnectionClosed):
        code = gateway_close_code(exc)
        if code in FATAL_GATEWAY_CLOSE_CODES:
            return f"gateway_close_code={code}"
    return None


class DiscordGatewayClient:
    def __init__(
        self,
        *,
        bot_token: str,
        intents: int,
        logger: logging.Logger,
        gateway_url: str | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._intents = intents
        self._logger = logger
        self._gateway_url = gateway_url
        self._sequence: Optional[int] = None
        self._stop_event = asyncio.Event()
        self._heartbeat_task: Optional[asyncio.Task[None]] = None
        self._websocket: Any = None

    async def stop(self) -> None:
        self._stop_event.set()
        await self._cancel_heartbeat()
        websocket = self._websocket
        if websocket is not None:
            with contextlib.suppress(Exception):
                await websocket.close()

    async def run(self, on_dispatch: DispatchHandler) -> None:
        """Keep a gateway session alive until ``stop`` or a fatal failure."""
        attempt = 0
        while not self._stop_event.is_set():
            ready = False
            try:
                ready = await self._connect_once(on_dispatch)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                reason = _fatal_reason(exc)
                if reason is not None and not self._stop_event.is_set():
                    log_event(
                        self._logger,
                        logging.ERROR,
                        "discord.gateway.halted",
                        reason=reason,
                    )
                    raise DiscordPermanentError(
                        f"Discord gateway halted: {reason}"
                    ) from exc
                log_event(
                    self._logger,
                    logging.INFO
                    if isinstance(exc, ConnectionClosed)
                    else logging.WARNING,
                    "discord.gateway.disconnected",
                    exc=exc,
                    close_code=gateway_close_code(exc),
                )
            if self._stop_event.is_set():
                break
            if ready:
                attempt = 0
            delay = calculate_reconnect_backoff(attempt)
            attempt += 1
            log_event(
                self._logger,
                logging.DEBUG,
                "discord.gateway.reconnect_scheduled",
                attempt=attempt,
                delay_seconds=delay,
            )
            await asyncio.sleep(delay)

    async def _connect_once(self, on_dispatch: DispatchHandler) -> bool:
        url = await self._resolve_gateway_url()
        try:
            async with websockets.connect(url) as websocket:
                self._websocket = websocket
                return await self._run_connection(websocket, on_dispatch)
        finally:
            self._websocket = None
            await self._cancel_heartbeat()

    async def _resolve_gateway_url(self) -> str:
        if self._gateway_url:
            return self._gateway_url
        async with DiscordRestClient(bot_token=self._bot_token) as rest:
            payload = await rest.get_gateway_bot()
        url = payload.get("url")
        if not isinstance(url, str) or not url:
            return DISCORD_GATEWAY_URL
        return url if "?" in url else f"{url}?v=10&encoding=json"

    async def _run_connection(self, websocket: Any, on_dispatch: DispatchHandler) -> bool:
        """Identify on ``websocket`` and pump frames; returns whether READY arrived."""
        interval = _heartbeat_interval(parse_gateway_frame(await websocket.recv()))
        self._heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(websocket, interval)
        )
        identify = build_identify_payload(
            bot_token=self._bot_token, intents=self._intents
        )
        await websocket.send(json.dumps(identify))

        state = _ConnectionState()
        async for raw_message in websocket:
            await self._handle_frame(
                websocket, parse_gateway_frame(raw_message), state, on_dispatch
            )
            if state.end_reason is not None:
                log_event(
                    self._logger,
                    logging.INFO,
                    "discord.gateway.session_ended",
                    reason=state.end_reason,
                )
                break
        return state.ready

    async def _handle_frame(
        self,
        websocket: Any,
        frame: GatewayFrame,
        state: _ConnectionState,
        on_dispatch: DispatchHandler,
    ) -> None:
        if frame.s is not None:
            self._sequence = frame.s
        if frame.op == GatewayOp.DISPATCH:
            if frame.t == "READY":
                state.ready = True
            if frame.t and isinstance(frame.d, dict):
                await on_dispatch(frame.t, frame.d)
        elif frame.op == GatewayOp.HEARTBEAT:
            await self._send_heartbeat(websocket)
        elif frame.op == GatewayOp.RECONNECT:
            state.end_reason = "reconnect_requested"
        elif frame.op == GatewayOp.INVALID_SESSION:
            state.end_reason = "invalid_session"

    async def _send_heartbeat(self, websocket: Any) -> None:
        await websocket.send(
            json.dumps({"op": int(GatewayOp.HEARTBEAT), "d": self._sequence})
        )

    async def _heartbeat_loop(self, websocket: Any, interval_seconds: float) -> None:
        while not self._stop_event.is_set():
            await asyncio.sleep(interval_seconds)
            await self._send_heartbeat(websocket)

    async def _cancel_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            # A dropped socket fails the next heartbeat send.
            log_event(
                self._logger,
                logging.DEBUG,
                "discord.gateway.heartbeat_stopped",
                exc=exc,
            )


def _heartbeat_interval(hello: GatewayFrame) -> float:
    if hello.op != GatewayOp.HELLO:
        raise DiscordAPIError(f"gateway sent op {hello.op} before HELLO")
    data = hello.d if isinstance(hello.d, dict) else {}
    interval_ms = data.get("heartbeat_interval")
    if isinstance(interval_ms, bool) or not isinstance(interval_ms, (int, float)):
        raise DiscordAPIError(f"gateway HELLO has bad heartbeat_interval: {interval_ms!r}")
    if interval_ms <= 0:
        raise DiscordAPIError(f"gateway HELLO has bad heartbeat_interval: {interval_ms!r}")
    return float(interval_ms) / 1000.0
