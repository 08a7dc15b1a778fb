#!/usr/bin/env python3

original_print = print
import asyncio
import datetime
import os
import pathlib
from dataclasses import dataclass, field
from typing import Any, ClassVar, Final

import httpx
from loguru import logger
from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.history import FileHistory, ThreadedHistory
from prompt_toolkit.patch_stdout import patch_stdout

from trquote.completer import CommandCompleter
from trquote.engine.edp import EDPClient, EDPRequestError
from trquote.engine.session import SessionController
from trquote.engine.status import SessionState, Status
from trquote.helpers import TRQ_CONFIG, QuoteConfig

# fields printed for each refresh/update when present (everything else is
# still logged at DEBUG)
LOG_LEVELS: Final = ("TRACE", "DEBUG", "INFO", "WARNING", "ERROR")

SUMMARY_FIELDS: Final = [
    "DSPLY_NAME",
    "TRDPRC_1",
    "NETCHNG_1",
    "PCTCHNG",
    "BID",
    "ASK",
    "BIDSIZE",
    "ASKSIZE",
    "ACVOL_1",
    "HST_CLOSE",
]


@dataclass(slots=True)
class QuoteCmdlineApp:
    config: QuoteConfig = field(default_factory=lambda: QuoteConfig.fromMapping(TRQ_CONFIG))

    session: SessionController = field(default_factory=SessionController)

    # open request id -> (ric, streaming)
    requests: dict[int, tuple[str, bool]] = field(default_factory=dict)

    exiting: bool = False

    _console_sink: Any = None
    _console_handler_id: int | None = None

    COMMANDS: ClassVar[dict[str, str]] = {
        "add": "add RIC [SERVICE] :: streaming subscription",
        "snap": "snap RIC [SERVICE] :: one-shot snapshot",
        "close": "close ID :: close an open request",
        "status": "show connection state and open requests",
        "loglevel": "loglevel LEVEL :: console log level (TRACE/DEBUG/INFO/WARNING/ERROR)",
        "quit": "disconnect and exit",
    }

    def __post_init__(self) -> None:
        self.session.onStatus(self.statusEvent)
        self.session.onMarketData(self.marketData)

    def setupLogging(self) -> None:
        now = datetime.datetime.now()
        LOGDIR = pathlib.Path(self.config.logdir) / f"{now.year}" / f"{now.month:02}"
        LOGDIR.mkdir(exist_ok=True, parents=True)
        LOG_FILE_TEMPLATE = str(LOGDIR / f"trquote-{now.isoformat()}".replace(" ", "_"))

        logger.info("Logging session with prefix: {}", LOG_FILE_TEMPLATE)

        def asink(x):
            # print() through the original builtin so patch_stdout() keeps the prompt intact
            original_print(x, end="")

        logger.remove()
        self._console_sink = asink
        self._console_handler_id = logger.add(asink, colorize=True, level="INFO")

        # raw frames are logged at TRACE, so only the files get them
        logger.add(sink=LOG_FILE_TEMPLATE + "-trquote.log", level="TRACE", colorize=False)
        logger.add(
            sink=LOG_FILE_TEMPLATE + "-trquote-color.log",
            level="TRACE",
            colorize=True,
        )

    def setConsoleLogLevel(self, level: str) -> None:
        if self._console_handler_id is None:
            logger.warning("Console logging is not set up; level unchanged")
            return

        logger.remove(self._console_handler_id)
        self._console_handler_id = logger.add(self._console_sink, colorize=True, level=level)
        logger.info("Console log level set to {}", level)

    # ------------------------------------------------------------------
    # Session callbacks
    # ------------------------------------------------------------------

    def statusEvent(self, status: Status, payload: Any = None) -> None:
        match status:
            case Status.connected:
                logger.info("Connection to server is UP.")
            case Status.disconnected:
                logger.error("Connection to server is Down/Unavailable")
                self.requests.clear()
            case Status.loginResponse:
                state = payload.get("State", {})
                if self.session.loggedIn():
                    logger.info("Logged in: {}", state.get("Text"))
                else:
                    logger.error(
                        "Login failed: {}/{}/{}",
                        state.get("Stream"),
                        state.get("Data"),
                        state.get("Text"),
                    )
            case Status.msgStatus:
                rid = payload.get("Id")
                state = payload.get("State", {})
                name = (payload.get("Key") or {}).get("Name") or self.nameFor(rid)
                logger.warning("Status response for item: {}:{}", name, state.get("Text"))
                if state.get("Stream") == "Closed":
                    self.requests.pop(rid, None)
            case Status.processingError:
                logger.error("Processing error: {}", payload)

    def nameFor(self, rid: Any) -> str:
        found = self.requests.get(rid)
        return found[0] if found else f"#{rid}"

    def marketData(self, msg: dict[str, Any]) -> None:
        rid = msg.get("Id")
        name = (msg.get("Key") or {}).get("Name") or self.nameFor(rid)
        fields = msg.get("Fields") or {}

        summary = " ".join(f"{k}={fields[k]}" for k in SUMMARY_FIELDS if k in fields)
        kind = msg.get("UpdateType") or msg.get("Type")
        logger.info("[{} :: {}] {}", name, kind, summary or "(no summary fields)")
        logger.debug("[{}] {}", name, fields)

        if msg.get("Type") == "Refresh" and (msg.get("State") or {}).get("Stream") == "NonStreaming":
            self.requests.pop(rid, None)

    # ------------------------------------------------------------------
    # Connection + commands
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        config = self.config

        if config.cloud:
            edp = EDPClient(host=config.edpHost)
            try:
                grant = await edp.getAccessToken(config.tokenForm())
                hosts = await edp.discoverEndpoints(grant.accessToken)
            except (EDPRequestError, httpx.HTTPError) as e:
                logger.error("Cloud login failed: {}", e)
                return False

            if not hosts:
                logger.error("Service discovery returned no streaming endpoints!")
                return False

            if grant.expiresIn:
                logger.warning(
                    "Access token expires in {} seconds; reconnect with new credentials after that.",
                    grant.expiresIn,
                )

            logger.info("Connecting to the WebSocket service on [host:port] {}...", hosts[0])
            return self.session.connect(
                hosts[0],
                config.edpUsername,
                config.loginParams(authToken=grant.accessToken),
                secure=True,
            )

        if not config.server:
            logger.error("No server configured! Set TRQ_SERVER=host:port")
            return False

        logger.info("Connecting to the WebSocket service on [host:port] {}...", config.server)
        return self.session.connect(
            config.server, config.user, config.loginParams(), secure=config.secure
        )

    async def runCommand(self, text: str) -> None:
        parts = text.split()
        if not parts:
            return

        cmd, args = parts[0].lower(), parts[1:]

        match cmd:
            case "add" | "snap":
                if not args:
                    logger.error("Usage: {} RIC [SERVICE]", cmd)
                    return

                ric = args[0]
                service = args[1] if len(args) > 1 else self.config.service
                streaming = cmd == "add"

                rid = self.session.requestData(ric, service, streaming)
                if not rid:
                    logger.error("Not logged in; request for {} not sent.", ric)
                    return

                self.requests[rid] = (ric, streaming)
                logger.info("MarketPrice request: [{}] (id {})", ric, rid)
            case "close":
                try:
                    rid = int(args[0])
                except (IndexError, ValueError):
                    logger.error("Usage: close ID")
                    return

                # only ids opened from here; the login stream is not closable
                if rid not in self.requests:
                    logger.error("No open request with id {}", rid)
                    return

                self.session.closeRequest(rid)
                ric, _ = self.requests.pop(rid)
                logger.info("Closed request {} ({})", rid, ric)
            case "status":
                logger.info(
                    "Session: {} :: logged in: {} :: {}",
                    self.session.state.value,
                    self.session.loggedIn(),
                    self.session.url,
                )
                for rid, (ric, streaming) in sorted(self.requests.items()):
                    logger.info("  {:>4} {} ({})", rid, ric, "streaming" if streaming else "snapshot")
            case "loglevel":
                if not args:
                    logger.error("Usage: loglevel LEVEL ({})", ", ".join(LOG_LEVELS))
                    return

                level = args[0].upper()
                if level not in LOG_LEVELS:
                    logger.error("Invalid log level '{}'. Valid: {}", args[0], ", ".join(LOG_LEVELS))
                    return

                self.setConsoleLogLevel(level)
            case "quit" | "exit":
                self.exiting = True
            case _:
                logger.error("Unknown command: {} (try: {})", cmd, ", ".join(self.COMMANDS))

    async def dorepl(self) -> None:
        session: PromptSession = PromptSession(
            history=ThreadedHistory(FileHistory(os.path.expanduser("~/.trquote_history"))),
            auto_suggest=AutoSuggestFromHistory(),
            completer=CommandCompleter(self),
        )

        while not self.exiting:
            try:
                state = self.session.state
                prefix = "ready" if state == SessionState.Ready else state.value
                text1 = await session.prompt_async(f"{prefix}> ", complete_while_typing=True)

                # log user input to our active logfile(s)
                logger.trace("> {}", text1)

                await self.runCommand(text1)
            except KeyboardInterrupt:
                # Control-C pressed. Try again.
                continue
            except EOFError:
                # Control-D pressed
                logger.error("Exiting...")
                self.exiting = True
            except Exception:
                logger.exception("Command failed")

    async def run(self) -> None:
        with patch_stdout(raw=True):
            self.setupLogging()
            await self.connect()

            try:
                await self.dorepl()
            finally:
                await self.session.disconnect()


def runit() -> None:
    app = QuoteCmdlineApp()
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    runit()
