"""POP3 command/response session over a framed transport."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from enum import Enum
from types import TracebackType

from pop3_trigger.exceptions import (
    AuthError,
    CommandError,
    CommandTimeoutError,
    ConnectError,
    Pop3Error,
    ProtocolError,
    SessionStateError,
)
from pop3_trigger.models import ConnectionParams, MessageRef
from pop3_trigger.pop3.responses import CRLF, END_OF_BODY, check_status, join_body, parse_uidl
from pop3_trigger.pop3.transport import FramedTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[..., Awaitable[FramedTransport]]


class SessionState(str, Enum):
    """Lifecycle of a POP3 session. CLOSED is terminal."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class Pop3Session:
    """One POP3 conversation: greeting, login, commands, quit.

    A session is used for a single poll cycle and is never reopened. Commands
    are strictly sequential; issuing one while another is awaiting its
    response raises SessionStateError.
    """

    def __init__(
        self,
        params: ConnectionParams,
        transport_factory: TransportFactory = FramedTransport.open,
    ) -> None:
        """Initialize the session.

        Args:
            params: Server address, TLS options, credentials and timeout.
            transport_factory: Coroutine opening the underlying transport.
        """
        self.params = params
        self._transport_factory = transport_factory
        self._transport: FramedTransport | None = None
        self._state = SessionState.DISCONNECTED
        self._busy = False

    @property
    def state(self) -> SessionState:
        return self._state

    def _require(self, *states: SessionState) -> None:
        if self._state not in states:
            expected = " or ".join(s.value for s in states)
            raise SessionStateError(
                f"POP3 session is {self._state.value}, expected {expected}"
            )

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[FramedTransport]:
        if self._busy:
            raise SessionStateError("Another POP3 command is still in flight")
        if self._transport is None:
            raise SessionStateError("POP3 session has no open transport")
        self._busy = True
        try:
            yield self._transport
        finally:
            self._busy = False

    def _decode(self, data: bytes) -> str:
        return data.decode(self.params.encoding, errors="replace")

    async def _send(self, transport: FramedTransport, command: str) -> None:
        if command.startswith("PASS "):
            logger.debug("C: PASS ****")
        else:
            logger.debug("C: %s", command)
        await transport.write(command.encode(self.params.encoding) + CRLF)

    async def _read_status(self, transport: FramedTransport) -> str:
        line = self._decode(await transport.read_until(CRLF))
        logger.debug("S: %s", line.rstrip())
        return line

    async def _read_body(self, transport: FramedTransport) -> bytes:
        lines = []
        while True:
            line = await transport.read_until(CRLF)
            if line == END_OF_BODY:
                return join_body(lines)
            lines.append(line)

    async def _short_command(
        self,
        command: str,
        error_cls: type[Pop3Error] = CommandError,
    ) -> str:
        verb = command.split(" ", 1)[0]
        async with self._exclusive() as transport:
            await self._send(transport, command)
            return check_status(await self._read_status(transport), error_cls, verb)

    async def _long_command(self, command: str) -> bytes:
        verb = command.split(" ", 1)[0]
        async with self._exclusive() as transport:
            await self._send(transport, command)
            # -ERR responses are single-line, so check before waiting for a body.
            check_status(await self._read_status(transport), CommandError, verb)
            return await self._read_body(transport)

    async def connect(self) -> None:
        """Open the transport and wait for the server greeting.

        Raises:
            ConnectError: If the connection cannot be established or no
                greeting arrives within the command timeout.
            ProtocolError: If the greeting is not +OK. The session stays
                DISCONNECTED and must be abandoned via quit().
        """
        self._require(SessionState.DISCONNECTED)
        if self._transport is not None:
            raise SessionStateError("POP3 session already attempted to connect")

        params = self.params
        self._transport = await self._transport_factory(
            params.host,
            params.port,
            secure=params.secure,
            allow_unverified=params.allow_unverified,
            timeout=params.timeout,
        )

        async with self._exclusive() as transport:
            try:
                greeting = await self._read_status(transport)
            except CommandTimeoutError as e:
                raise ConnectError(
                    f"No greeting from {params.host}:{params.port} within {params.timeout}s"
                ) from e
        try:
            check_status(greeting, ProtocolError)
        except ProtocolError as e:
            raise ProtocolError(f"POP3 server rejected connection: {e}") from e

        self._state = SessionState.CONNECTED
        logger.info("Connected to POP3 server %s:%d", params.host, params.port)

    async def login(self) -> None:
        """Authenticate with USER/PASS.

        Raises:
            AuthError: If the server rejects the username or password.
        """
        self._require(SessionState.CONNECTED)
        await self._short_command(f"USER {self.params.username}", AuthError)
        await self._short_command(f"PASS {self.params.password.get_secret_value()}", AuthError)
        self._state = SessionState.AUTHENTICATED
        logger.info("Authenticated as %s", self.params.username)

    async def list_uids(self) -> list[MessageRef]:
        """List (index, uid) pairs for every message, in server order."""
        self._require(SessionState.AUTHENTICATED)
        body = await self._long_command("UIDL")
        refs = parse_uidl(self._decode(body))
        logger.debug("UIDL listed %d message(s)", len(refs))
        return refs

    async def retrieve(self, index: int) -> str:
        """Retrieve the raw text of message number index.

        Dot-stuffed lines are returned as sent by the server.
        """
        self._require(SessionState.AUTHENTICATED)
        return self._decode(await self._long_command(f"RETR {index}"))

    async def delete(self, index: int) -> None:
        """Mark message number index for deletion."""
        self._require(SessionState.AUTHENTICATED)
        await self._short_command(f"DELE {index}")

    async def quit(self) -> None:
        """Send QUIT best-effort and release the connection.

        Never raises. After this call the session is CLOSED.
        """
        if self._state is SessionState.CLOSED:
            return

        transport = self._transport
        if transport is not None:
            try:
                if not self._busy:
                    await self._short_command("QUIT")
            except (Pop3Error, OSError) as e:
                logger.debug("POP3 QUIT failed (connection may already be closed): %s", e)
            finally:
                await transport.close()

        self._transport = None
        self._state = SessionState.CLOSED

    async def __aenter__(self) -> "Pop3Session":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.quit()
