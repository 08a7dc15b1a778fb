"""Real-time quote session controller.

Connects to an Elektron-style WebSocket server, logs in, hands out request
ids for item subscriptions, answers server keep-alive pings, and routes
every inbound message to one of two application callbacks:

    onStatus(fn)      fn(status: Status, payload=None) for connection,
                      login, per-item status and processing errors
    onMarketData(fn)  fn(msg: dict) for every Refresh/Update message

Everything runs on one asyncio event loop; the controller never blocks and
never raises for protocol-level conditions (those become status events).
"""
from __future__ import annotations

import dataclasses
from collections.abc import Callable
from typing import Any

from loguru import logger

from trquote.engine import codec
from trquote.engine.requestids import RequestIdAllocator
from trquote.engine.status import SessionState, Status
from trquote.engine.transport import (
    SUBPROTOCOL,
    Transport,
    TransportFactory,
    websocketTransport,
)

StatusCallback = Callable[..., Any]
MarketDataCallback = Callable[[dict[str, Any]], Any]


@dataclasses.dataclass(slots=True, frozen=True)
class LoginParams:
    """Login-domain credentials sent right after the socket opens.

    `appId` and `position` are the DACS application id and position; the
    defaults are what a local deployed server accepts. `authToken` switches
    the login to token authentication for cloud-hosted servers.
    """

    appId: str = "256"
    position: str = "127.0.0.1"
    authToken: str | None = None


def isCallback(fn: Any) -> bool:
    return callable(fn)


class SessionController:
    """Owns one server connection and its login/request-id state.

    Parameters
    ----------
    transportFactory:
        Builds the transport for a url + sub-protocol. Defaults to a real
        websocket; tests pass a fake.
    """

    def __init__(self, transportFactory: TransportFactory = websocketTransport):
        self.transportFactory = transportFactory
        self.transport: Transport | None = None
        self.ids = RequestIdAllocator()

        self.user: str = ""
        self.login: LoginParams = LoginParams()
        self.url: str = ""

        self._loggedIn = False
        self._state = SessionState.Disconnected
        self._statusCb: StatusCallback | None = None
        self._marketDataCb: MarketDataCallback | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    def connect(
        self,
        server: str,
        user: str,
        login: LoginParams | None = None,
        secure: bool = False,
    ) -> bool:
        """Start connecting to `server` (host:port) and log in once open.

        Returns False (and leaves the current session alone) if we are not
        fully disconnected. Connection progress is reported through the
        status callback, not the return value.
        """
        if self._state != SessionState.Disconnected:
            logger.warning(
                "[Session :: {}] Ignoring connect to {}: session is {}",
                self.url,
                server,
                self._state.value,
            )
            return False

        self.user = user
        self.login = login or LoginParams()
        self.url = f"{'wss' if secure else 'ws'}://{server}/WebSocket"

        transport = self.transportFactory(self.url, SUBPROTOCOL)
        transport.onOpen = self._onOpen
        transport.onMessage = self._onMessage
        transport.onClose = self._onClose

        self.transport = transport
        self._state = SessionState.Connecting
        transport.start()

        return True

    async def disconnect(self) -> None:
        """Ask the transport to close; `disconnected` is reported on closure."""
        if self.transport is not None:
            await self.transport.close()

    def requestData(self, ric: str, serviceName: str, streaming: bool = True) -> int:
        """Subscribe to (or snapshot) `ric` on `serviceName`.

        Returns the request id, which the caller uses to close a streaming
        request. Returns 0 without sending anything when not logged in.
        """
        if not self._loggedIn:
            logger.warning("[Session] Not logged in, not requesting {}", ric)
            return 0

        rid = self.ids.allocate()
        self._send(codec.encodeSubscribe(rid, ric, serviceName, streaming))
        logger.debug(
            "[Session] Requested {} ({}) as id {}",
            ric,
            "streaming" if streaming else "snapshot",
            rid,
        )

        return rid

    def closeRequest(self, rid: int) -> None:
        """Close stream `rid` and make the id available again immediately.

        We free the id locally without waiting for the server to confirm;
        a later Closed status for the same id is then a no-op release.
        """
        self._send(codec.encodeClose(rid))
        self.ids.release(rid)

    def loggedIn(self) -> bool:
        return self._loggedIn

    def onStatus(self, fn: StatusCallback) -> None:
        # non-callables are ignored, not rejected
        if isCallback(fn):
            self._statusCb = fn

    def onMarketData(self, fn: MarketDataCallback) -> None:
        if isCallback(fn):
            self._marketDataCb = fn

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    def _onOpen(self) -> None:
        self._state = SessionState.Connected
        self._status(Status.connected)

        self._sendLogin()
        self._state = SessionState.LoggingIn

    def _onClose(self) -> None:
        self._loggedIn = False
        self.transport = None
        self.ids.reset()
        self._state = SessionState.Disconnected

        logger.info("[Session :: {}] Disconnected", self.url)
        self._status(Status.disconnected)

    def _onMessage(self, raw: str | bytes) -> None:
        if not raw:
            return

        try:
            batch = codec.decodeBatch(raw)
        except codec.DecodeError as e:
            logger.error("[Session :: {}] Bad message batch: {}", self.url, e)
            self._status(Status.processingError, str(e))
            return

        for msg in batch:
            self._dispatch(msg)

    # ------------------------------------------------------------------
    # Message routing
    # ------------------------------------------------------------------

    def _dispatch(self, msg: codec.WireMessage) -> None:
        match msg:
            case codec.Ping():
                self._send(codec.encodePong())
            case codec.LoginResponse():
                self._processLogin(msg)
            case codec.StatusMessage():
                if msg.closed and msg.id is not None:
                    self.ids.release(msg.id)

                self._status(Status.msgStatus, msg.raw)
            case codec.DataMessage():
                # a snapshot is finished after its one refresh
                if msg.snapshotComplete and msg.id is not None:
                    self.ids.release(msg.id)

                if self._marketDataCb:
                    self._invoke(self._marketDataCb, msg.raw)

    def _processLogin(self, msg: codec.LoginResponse) -> None:
        self._loggedIn = msg.ok

        # any login-domain frame may change our state: a later non-Ok frame
        # means the server logged us out while the socket stays up
        if self._loggedIn:
            self._state = SessionState.Ready
        elif self._state == SessionState.Ready:
            self._state = SessionState.LoggingIn

        logger.info(
            "[Session :: {}] Login state: {}/{}/{}",
            self.url,
            msg.state.get("Stream"),
            msg.state.get("Data"),
            msg.state.get("Text"),
        )

        self._status(Status.loginResponse, msg.raw)

    def _sendLogin(self) -> None:
        rid = self.ids.allocate()
        logger.info("[Session :: {}] Login request with user: [{}]", self.url, self.user)
        self._send(
            codec.encodeLogin(
                self.user,
                self.login.appId,
                self.login.position,
                rid,
                authToken=self.login.authToken,
            )
        )

    def _send(self, text: str) -> None:
        if self.transport is not None:
            self.transport.send(text)

    def _status(self, status: Status, *payload: Any) -> None:
        if self._statusCb:
            self._invoke(self._statusCb, status, *payload)

    def _invoke(self, fn: Callable[..., Any], *args: Any) -> None:
        # application callback errors must not take down the reader loop
        try:
            fn(*args)
        except Exception:
            logger.exception("[Session :: {}] Callback {} failed", self.url, fn)
