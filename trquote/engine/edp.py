"""Token exchange and streaming endpoint discovery for cloud-hosted servers.

Cloud deployments don't have a fixed host:port or DACS user. Instead we
trade credentials for an OAuth access token, then ask service discovery
which websocket endpoints serve `tr_json2`. The result feeds straight into
`SessionController.connect(server, user, LoginParams(authToken=...), secure=True)`.

Scheduling token refreshes is up to the caller; we only report
`refreshToken` and `expiresIn`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final

import httpx
from loguru import logger

EDP_HOST: Final = "https://api.edp.thomsonreuters.com"
AUTH_TOKEN_PATH: Final = "/auth/oauth2/beta1/token"
STREAMING_DISCOVERY_PATH: Final = "/streaming/pricing/v1/"


class EDPRequestError(Exception):
    def __init__(self, statusCode: int, body: Any):
        self.statusCode = statusCode
        self.body = body
        super().__init__(f"EDP request failed with HTTP {statusCode}: {body}")


@dataclass(slots=True, frozen=True)
class TokenGrant:
    accessToken: str
    refreshToken: str | None
    expiresIn: int | None
    raw: dict[str, Any] = field(default_factory=dict)


def _body(got: httpx.Response) -> Any:
    try:
        return got.json()
    except ValueError:
        return got.text


@dataclass(slots=True)
class EDPClient:
    """Async client for the EDP authentication and discovery gateways."""

    host: str = EDP_HOST
    timeout: float = 10

    # optional transport override (tests use httpx.MockTransport)
    transport: httpx.AsyncBaseTransport | None = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.host, timeout=self.timeout, transport=self.transport
        )

    async def getAccessToken(self, form: dict[str, str]) -> TokenGrant:
        """Exchange the password/refresh-token `form` for an access token.

        `form` is passed through as-is (grant_type, username, password,
        client_id, scope, ...). `username` is also used for basic auth,
        matching what the gateway expects.
        """
        async with self._client() as client:
            got = await client.post(
                AUTH_TOKEN_PATH,
                data=form,
                headers={"Accept": "application/json"},
                auth=(form.get("username", ""), ""),
            )

        if got.status_code != 200:
            body = _body(got)
            logger.error(
                "EDP-GW authentication result failure: statusCode = {} :: {}",
                got.status_code,
                body,
            )
            raise EDPRequestError(got.status_code, body)

        found = got.json()
        logger.info("EDP-GW Authentication succeeded")

        expiresIn = found.get("expires_in")
        return TokenGrant(
            accessToken=found["access_token"],
            refreshToken=found.get("refresh_token"),
            expiresIn=int(expiresIn) if expiresIn is not None else None,
            raw=found,
        )

    async def discoverEndpoints(
        self,
        accessToken: str,
        transport: str = "websocket",
        dataformat: str = "tr_json2",
    ) -> list[str]:
        """Return "host:port" streaming endpoints, in the order discovery lists them."""
        async with self._client() as client:
            got = await client.get(
                STREAMING_DISCOVERY_PATH,
                params={"transport": transport, "dataformat": dataformat},
                headers={
                    "Accept": "application/json",
                    "Authorization": f"Bearer {accessToken}",
                },
            )

        if got.status_code != 200:
            body = _body(got)
            logger.error(
                "Streaming service discovery result failure: statusCode = {} :: {}",
                got.status_code,
                body,
            )
            raise EDPRequestError(got.status_code, body)

        found = got.json()

        # {"services": [{"endpoint": "amer-1.pricing...", "port": 443,
        #                "transport": "websocket", "dataFormat": ["tr_json2"], ...}, ...]}
        hosts = [
            f"{svc['endpoint']}:{svc.get('port', 443)}"
            for svc in found.get("services", [])
            if svc.get("endpoint")
        ]

        logger.info("Streaming service discovery succeeded: {}", hosts)
        return hosts
