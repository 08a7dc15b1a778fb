"""Wire envelope encoding and inbound batch decoding for the tr_json2 protocol.

Outbound frames are single JSON objects. Inbound traffic always arrives as a
JSON *array* of messages, so every websocket message decodes into a list of
`WireMessage` values which the session then dispatches one by one.

Decoding classifies the whole batch up front: if any part of the batch is
malformed we raise `DecodeError` before a single message gets dispatched.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final, Literal

import orjson

DOMAIN_LOGIN: Final = "Login"

TYPE_PING: Final = "Ping"
TYPE_PONG: Final = "Pong"
TYPE_STATUS: Final = "Status"
TYPE_CLOSE: Final = "Close"
TYPE_REFRESH: Final = "Refresh"
TYPE_UPDATE: Final = "Update"

STREAM_CLOSED: Final = "Closed"
STREAM_NONSTREAMING: Final = "NonStreaming"
DATA_OK: Final = "Ok"


class DecodeError(ValueError):
    """Inbound text could not be turned into a message batch."""


@dataclass(slots=True, frozen=True)
class Ping:
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class LoginResponse:
    raw: dict[str, Any]
    state: dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.state.get("Data") == DATA_OK


@dataclass(slots=True, frozen=True)
class StatusMessage:
    raw: dict[str, Any]
    id: int | None
    state: dict[str, Any]

    @property
    def closed(self) -> bool:
        return self.state.get("Stream") == STREAM_CLOSED


@dataclass(slots=True, frozen=True)
class DataMessage:
    raw: dict[str, Any]
    id: int | None
    type: Literal["Refresh", "Update"] | str
    fields: dict[str, Any]
    state: dict[str, Any]

    @property
    def snapshotComplete(self) -> bool:
        """True for the single Refresh answering a non-streaming request."""
        return (
            self.type == TYPE_REFRESH
            and self.state.get("Stream") == STREAM_NONSTREAMING
        )


WireMessage = Ping | LoginResponse | StatusMessage | DataMessage


def _dumps(frame: dict[str, Any]) -> str:
    return orjson.dumps(frame).decode()


def encodeLogin(
    user: str,
    appId: str,
    position: str,
    id: int,
    authToken: str | None = None,
) -> str:
    """Login request for the Login domain.

    Classic (deployed) servers authenticate by user name:
        {"Id": 0, "Domain": "Login",
         "Key": {"Name": "user", "Elements": {"ApplicationId": "256", "Position": "127.0.0.1"}}}

    Cloud servers take an access token instead of a user name, carried as
    an `AuthnToken` key with the token inside the elements.
    """
    elements: dict[str, Any] = {"ApplicationId": appId, "Position": position}

    key: dict[str, Any]
    if authToken:
        key = {
            "NameType": "AuthnToken",
            "Elements": {"AuthenticationToken": authToken, **elements},
        }
    else:
        key = {"Name": user, "Elements": elements}

    return _dumps({"Id": id, "Domain": DOMAIN_LOGIN, "Key": key})


def encodeSubscribe(id: int, ric: str, serviceName: str, streaming: bool = True) -> str:
    # no Service key means "use the server's default service"
    key = {"Name": ric, "Service": serviceName} if serviceName else {"Name": ric}
    return _dumps({"Id": id, "Streaming": bool(streaming), "Key": key})


def encodeClose(id: int) -> str:
    return _dumps({"Id": id, "Type": TYPE_CLOSE})


def encodePong() -> str:
    return _dumps({"Type": TYPE_PONG})


def _state(msg: dict[str, Any]) -> dict[str, Any]:
    state = msg.get("State")
    return state if isinstance(state, dict) else {}


def _rid(msg: dict[str, Any]) -> int | None:
    rid = msg.get("Id")

    # bool is an int subclass, but True is never a valid stream id
    if isinstance(rid, int) and not isinstance(rid, bool):
        return rid

    return None


def classify(msg: dict[str, Any]) -> WireMessage:
    """Classify one decoded message.

    Priority matters: a ping is checked first, then the login domain (login
    responses also carry a Type of Refresh/Status), then generic status,
    and anything else is market data.
    """
    if msg.get("Type") == TYPE_PING:
        return Ping(raw=msg)

    if msg.get("Domain") == DOMAIN_LOGIN:
        return LoginResponse(raw=msg, state=_state(msg))

    if msg.get("Type") == TYPE_STATUS:
        return StatusMessage(raw=msg, id=_rid(msg), state=_state(msg))

    fields = msg.get("Fields")
    return DataMessage(
        raw=msg,
        id=_rid(msg),
        type=msg.get("Type", ""),
        fields=fields if isinstance(fields, dict) else {},
        state=_state(msg),
    )


def decodeBatch(raw: str | bytes) -> list[WireMessage]:
    try:
        result = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise DecodeError(str(e)) from e

    if not isinstance(result, list):
        raise DecodeError(
            f"expected a JSON array of messages, got {type(result).__name__}"
        )

    batch: list[WireMessage] = []
    for idx, msg in enumerate(result):
        if not isinstance(msg, dict):
            raise DecodeError(
                f"message {idx} in batch is {type(msg).__name__}, not an object"
            )

        batch.append(classify(msg))

    return batch
