"""trquote engine layer — session protocol logic with no UI dependency.

All modules use ``from __future__ import annotations`` and modern
Python typing (``str | None``, ``@dataclass(slots=True)``, etc.).

Modules
-------
requestids
    Request id slot table.
    - ``RequestIdAllocator``: lowest-free-first ids, released on close and reused

codec
    tr_json2 wire envelopes.
    - ``encodeLogin``, ``encodeSubscribe``, ``encodeClose``, ``encodePong``: outbound frames as text
    - ``decodeBatch``: inbound JSON array -> list of ``Ping`` / ``LoginResponse`` /
      ``StatusMessage`` / ``DataMessage``
    - ``DecodeError``: raised for non-JSON or non-array input

status
    - ``Status``: status callback codes (processingError, connected, disconnected,
      loginResponse, msgStatus)
    - ``SessionState``: Disconnected -> Connecting -> Connected -> LoggingIn -> Ready

transport
    - ``Transport``: narrow protocol the session talks to (start/send/close + 3 event slots)
    - ``WebSocketTransport``: websockets-based implementation (no auto reconnect)

session
    - ``SessionController``: connect/login lifecycle, ping/pong, request ids, callback routing
    - ``LoginParams``: appId/position/authToken login configuration

edp
    Cloud token + endpoint discovery.
    - ``EDPClient``: async httpx client (``getAccessToken``, ``discoverEndpoints``)
    - ``TokenGrant``, ``EDPRequestError``
"""

from trquote.engine.codec import DecodeError
from trquote.engine.requestids import RequestIdAllocator
from trquote.engine.session import LoginParams, SessionController
from trquote.engine.status import SessionState, Status

__all__ = [
    "DecodeError",
    "LoginParams",
    "RequestIdAllocator",
    "SessionController",
    "SessionState",
    "Status",
]
