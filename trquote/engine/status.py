"""Status event codes and session lifecycle states."""
from __future__ import annotations

import enum


class Status(enum.IntEnum):
    """Codes delivered as the first argument of the status callback.

    The numeric values are part of the public contract (applications may
    compare against plain ints), so never renumber these.
    """

    # payload: error description (str)
    processingError = 0

    # no payload
    connected = 1

    # no payload
    disconnected = 2

    # payload: raw login response frame (dict)
    loginResponse = 3

    # payload: raw status frame (dict)
    msgStatus = 4


class SessionState(enum.Enum):
    Disconnected = "disconnected"
    Connecting = "connecting"
    Connected = "connected"
    LoggingIn = "logging-in"
    Ready = "ready"
