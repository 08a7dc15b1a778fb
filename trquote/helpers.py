"""Configuration for the trquote client.

Values are layered (later wins):
    TRQ_DEFAULT  <  .env.trquote file  <  process environment
"""
from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from dotenv import dotenv_values

from trquote.engine.edp import EDP_HOST
from trquote.engine.session import LoginParams

TRQ_DEFAULT: Final = dict(
    TRQ_SERVER="",
    TRQ_USER="user",
    TRQ_APP_ID="256",
    TRQ_POSITION="127.0.0.1",
    TRQ_SERVICE="ELEKTRON_EDGE",
    TRQ_SECURE="0",
    TRQ_LOGDIR="runlogs",
    TRQ_EDP_HOST=EDP_HOST,
    TRQ_EDP_USERNAME="",
    TRQ_EDP_PASSWORD="",
    TRQ_EDP_CLIENT_ID="",
)


def loadConfig(envfile: str = ".env.trquote") -> dict[str, str]:
    return {**TRQ_DEFAULT, **dotenv_values(envfile), **os.environ}  # type: ignore


def envbool(val: str | None) -> bool:
    return (val or "").strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class QuoteConfig:
    # Address of the WebSocket server as host:port
    server: str = ""

    # DACS user name (ignored by servers using token login)
    user: str = "user"
    appId: str = "256"
    position: str = "127.0.0.1"

    # service name used for requests when none is given
    service: str = "ELEKTRON_EDGE"

    # connect with wss:// instead of ws://
    secure: bool = False

    logdir: str = "runlogs"
    # cloud login: when a username is set we ignore `server` and find an
    # endpoint through EDP service discovery instead
    edpHost: str = EDP_HOST
    edpUsername: str = ""
    edpPassword: str = ""
    edpClientId: str = ""

    @classmethod
    def fromMapping(cls, config: Mapping[str, str | None]) -> QuoteConfig:
        def get(key: str) -> str:
            val = config.get(key)
            return TRQ_DEFAULT[key] if val is None else val

        return cls(
            server=get("TRQ_SERVER"),
            user=get("TRQ_USER"),
            appId=get("TRQ_APP_ID"),
            position=get("TRQ_POSITION"),
            service=get("TRQ_SERVICE"),
            secure=envbool(get("TRQ_SECURE")),
            logdir=get("TRQ_LOGDIR"),
            edpHost=get("TRQ_EDP_HOST"),
            edpUsername=get("TRQ_EDP_USERNAME"),
            edpPassword=get("TRQ_EDP_PASSWORD"),
            edpClientId=get("TRQ_EDP_CLIENT_ID"),
        )

    @property
    def cloud(self) -> bool:
        return bool(self.edpUsername)

    def tokenForm(self) -> dict[str, str]:
        """Password grant form for `EDPClient.getAccessToken()`."""
        return {
            "username": self.edpUsername,
            "password": self.edpPassword,
            "client_id": self.edpClientId,
            "grant_type": "password",
            "scope": "trapi",
            "takeExclusiveSignOnControl": "true",
        }

    def loginParams(self, authToken: str | None = None) -> LoginParams:
        return LoginParams(appId=self.appId, position=self.position, authToken=authToken)


TRQ_CONFIG = loadConfig()
