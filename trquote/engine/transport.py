"""Message transports a session can run over.

The session only needs three inbound events (open, message, close) and a
way to push text out. `Transport` is that narrow interface; the
`WebSocketTransport` here is the real one, and tests substitute a fake.
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Final, Protocol, runtime_checkable

import websockets
from loguru import logger

SUBPROTOCOL: Final = "tr_json2"


@runtime_checkable
class Transport(Protocol):
    """Bidirectional, message-oriented connection owned by one session."""

    onOpen: Callable[[], None] | None
    onMessage: Callable[[str | bytes], None] | None
    onClose: Callable[[], None] | None

    def start(self) -> None: ...
    def send(self, text: str) -> None: ...
    async def close(self) -> None: ...


TransportFactory = Callable[[str, str], Transport]


@dataclass(slots=True)
class WebSocketTransport:
    """Single-shot websocket connection delivering events to callbacks.

    Unlike a feed consumer, this does NOT reconnect: when the socket goes
    away we report `onClose` exactly once and the owner decides what to do.

    `send()` is synchronous so the session API can stay synchronous; frames
    are queued and written in order by a writer task once the socket is up.
    """

    url: str
    subprotocol: str = SUBPROTOCOL

    onOpen: Callable[[], None] | None = None
    onMessage: Callable[[str | bytes], None] | None = None
    onClose: Callable[[], None] | None = None

    openTimeout: float = 10
    closeTimeout: float = 2

    # active websocket connection (if any)
    activeWS: Any | None = None

    outbound: asyncio.Queue[str] = field(default_factory=asyncio.Queue)
    task: asyncio.Task | None = None

    def start(self) -> None:
        """Schedule the connection on the running event loop."""
        if self.task is not None:
            raise RuntimeError(f"Transport already started: {self.url}")

        self.task = asyncio.create_task(self.run(), name=f"transport:{self.url}")
        self.task.add_done_callback(self.finished)

    def send(self, text: str) -> None:
        self.outbound.put_nowait(text)

    async def close(self) -> None:
        if self.activeWS is not None:
            await self.activeWS.close()
        elif self.task is not None and not self.task.done():
            # still connecting; abort the attempt instead
            self.task.cancel()

    async def writer(self, ws) -> None:
        try:
            while True:
                text = await self.outbound.get()
                logger.trace("[{}] >> {}", self.url, text)
                await ws.send(text)
        except websockets.ConnectionClosed:
            # the reader side reports the closure
            return

    async def run(self) -> None:
        logger.info("[Transport] Connecting to: {} ({})", self.url, self.subprotocol)

        writer: asyncio.Task | None = None
        try:
            async with websockets.connect(
                self.url,
                subprotocols=[self.subprotocol],  # type: ignore[list-item]
                # The server drives keep-alive with its own Ping/Pong frames
                # at the protocol level, so websocket-level pings stay off.
                ping_interval=None,
                open_timeout=self.openTimeout,
                close_timeout=self.closeTimeout,
                # initial refresh images for large watchlists can be big
                max_size=None,
                compression=None,
            ) as ws:
                self.activeWS = ws
                writer = asyncio.create_task(self.writer(ws))
                logger.info("[Transport :: {}] Connected!", self.url)

                if self.onOpen:
                    self.onOpen()

                try:
                    async for msg in ws:
                        # binary frames go through undecoded; the codec
                        # rejects anything that is not UTF-8 JSON
                        logger.trace("[{}] << {}", self.url, msg)

                        if self.onMessage:
                            self.onMessage(msg)
                except websockets.ConnectionClosed as e:
                    logger.warning("[Transport :: {}] Connection dropped: {}", self.url, e)
        except asyncio.CancelledError:
            logger.info("[Transport :: {}] Connection attempt cancelled", self.url)
        except (
            OSError,
            asyncio.TimeoutError,
            websockets.InvalidURI,
            websockets.InvalidHandshake,
        ) as e:
            logger.error("[Transport :: {}] Can't connect: {}", self.url, e)
        finally:
            if writer is not None:
                writer.cancel()

            self.activeWS = None

    def finished(self, task: asyncio.Task) -> None:
        # Reported from the task's done callback so a task cancelled before
        # it ever ran still produces exactly one close event.
        if not task.cancelled() and (e := task.exception()) is not None:
            logger.opt(exception=e).error("[Transport :: {}] Connection task failed", self.url)

        if self.onClose:
            self.onClose()


def websocketTransport(url: str, subprotocol: str) -> Transport:
    """Default `TransportFactory`."""
    return WebSocketTransport(url=url, subprotocol=subprotocol)
