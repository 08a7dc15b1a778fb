"""Shared test fixtures for trquote test suite.

FakeTransport provides a test double for the websocket transport, allowing
headless session tests without a live quote server. Tests drive the
session by firing the transport's open/message/close events by hand.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable

import pytest

from trquote.engine.session import SessionController


@dataclass
class FakeTransport:
    """Records outbound frames and lets tests inject inbound events."""

    url: str = ""
    subprotocol: str = ""

    onOpen: Callable[[], None] | None = None
    onMessage: Callable[[str], None] | None = None
    onClose: Callable[[], None] | None = None

    started: bool = False
    closed: bool = False
    sent: list[str] = field(default_factory=list)

    def start(self) -> None:
        self.started = True

    def send(self, text: str) -> None:
        self.sent.append(text)

    async def close(self) -> None:
        self.closed = True

    # ── Test helpers ──

    def open(self) -> None:
        assert self.onOpen
        self.onOpen()

    def receive(self, payload: Any) -> None:
        """Deliver `payload` (str or bytes as-is, anything else JSON-encoded)."""
        assert self.onMessage
        self.onMessage(payload if isinstance(payload, (str, bytes)) else json.dumps(payload))

    def drop(self) -> None:
        assert self.onClose
        self.onClose()

    def frames(self) -> list[dict]:
        return [json.loads(s) for s in self.sent]


class FakeTransportFactory:
    """Builds FakeTransports and remembers every one it built."""

    def __init__(self):
        self.built: list[FakeTransport] = []

    def __call__(self, url: str, subprotocol: str) -> FakeTransport:
        t = FakeTransport(url=url, subprotocol=subprotocol)
        self.built.append(t)
        return t

    @property
    def last(self) -> FakeTransport:
        return self.built[-1]


class Recorder:
    """Callable collecting every call's positional args."""

    def __init__(self):
        self.calls: list[tuple] = []

    def __call__(self, *args):
        self.calls.append(args)

    def codes(self) -> list:
        return [c[0] for c in self.calls]


def login_ok(rid: int = 0) -> list[dict]:
    return [
        {
            "Id": rid,
            "Type": "Refresh",
            "Domain": "Login",
            "Key": {"Name": "user", "Elements": {"PingTimeout": 30}},
            "State": {"Stream": "Open", "Data": "Ok", "Text": "Login accepted by host ads1."},
        }
    ]


def login_denied(rid: int = 0) -> list[dict]:
    return [
        {
            "Id": rid,
            "Type": "Status",
            "Domain": "Login",
            "Key": {"Name": "user"},
            "State": {"Stream": "Closed", "Data": "Suspect", "Text": "Login denied."},
        }
    ]


# ── Fixtures ──


@pytest.fixture
def factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def status() -> Recorder:
    return Recorder()


@pytest.fixture
def market() -> Recorder:
    return Recorder()


@pytest.fixture
def session(factory, status, market) -> SessionController:
    """Session with callbacks wired to recorders (not yet connected)."""
    s = SessionController(transportFactory=factory)
    s.onStatus(status)
    s.onMarketData(market)
    return s


@pytest.fixture
def ready(session, factory, status, market) -> SessionController:
    """Session connected, opened and logged in; recorders and sent frames cleared."""
    session.connect("ads1:15000", "user")
    factory.last.open()
    factory.last.receive(login_ok())

    factory.last.sent.clear()
    status.calls.clear()
    market.calls.clear()
    return session
