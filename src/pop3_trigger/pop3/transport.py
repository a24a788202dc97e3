"""Byte-stream transport that frames responses by a literal terminator."""

import asyncio
import logging
import ssl

from pop3_trigger.exceptions import CommandTimeoutError, ConnectError, TransportError

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


def build_ssl_context(allow_unverified: bool = False) -> ssl.SSLContext:
    """Create the client TLS context, optionally accepting unverified certificates."""
    context = ssl.create_default_context()
    if allow_unverified:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class FramedTransport:
    """Accumulates bytes from a stream and hands them out one frame at a time.

    Knows nothing about POP3: callers ask for everything up to a terminator and
    get exactly that, regardless of how the bytes were split across reads.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        timeout: float,
    ) -> None:
        """Initialize the transport.

        Args:
            reader: Stream to read server bytes from.
            writer: Stream to write client bytes to.
            timeout: Seconds allowed for each read_until/write call.
        """
        self._reader = reader
        self._writer = writer
        self._timeout = timeout
        self._buffer = bytearray()
        self._closed = False

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        *,
        secure: bool = False,
        allow_unverified: bool = False,
        timeout: float = 30.0,
    ) -> "FramedTransport":
        """Open a plaintext or TLS connection to host:port.

        Raises:
            ConnectError: On DNS failure, refusal, TLS handshake or certificate
                failure, or when the connection is not up within timeout.
        """
        ssl_context = build_ssl_context(allow_unverified) if secure else None
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port, ssl=ssl_context),
                timeout,
            )
        except asyncio.TimeoutError as e:
            raise ConnectError(f"Connection to {host}:{port} timed out after {timeout}s") from e
        except OSError as e:
            raise ConnectError(f"Could not connect to {host}:{port}: {e}") from e

        logger.debug("Connected to %s:%d (tls=%s)", host, port, secure)
        return cls(reader, writer, timeout)

    @property
    def closed(self) -> bool:
        return self._closed

    async def read_until(self, terminator: bytes) -> bytes:
        """Return the next frame, up to and including the first terminator.

        Bytes received past the terminator stay buffered for the next call.

        Raises:
            CommandTimeoutError: If no terminator arrives within the timeout.
            TransportError: If the socket fails or the server closes it.
        """
        if self._closed:
            raise TransportError("Transport is closed")
        try:
            return await asyncio.wait_for(self._fill_until(terminator), self._timeout)
        except asyncio.TimeoutError as e:
            raise CommandTimeoutError(f"No response within {self._timeout}s") from e

    async def _fill_until(self, terminator: bytes) -> bytes:
        start = 0
        while True:
            position = self._buffer.find(terminator, start)
            if position != -1:
                end = position + len(terminator)
                frame = bytes(self._buffer[:end])
                del self._buffer[:end]
                return frame

            # A terminator split across chunks starts at most len-1 bytes back.
            start = max(0, len(self._buffer) - len(terminator) + 1)
            try:
                chunk = await self._reader.read(READ_CHUNK_SIZE)
            except OSError as e:
                raise TransportError(f"Connection error: {e}") from e
            if not chunk:
                raise TransportError("Connection closed by server")
            self._buffer += chunk

    async def write(self, data: bytes) -> None:
        """Write raw bytes and wait until they are flushed to the socket.

        Raises:
            CommandTimeoutError: If the socket does not drain within the timeout.
            TransportError: On socket error or if the transport is closed.
        """
        if self._closed:
            raise TransportError("Transport is closed")
        try:
            self._writer.write(data)
            await asyncio.wait_for(self._writer.drain(), self._timeout)
        except asyncio.TimeoutError as e:
            raise CommandTimeoutError(f"Write not flushed within {self._timeout}s") from e
        except OSError as e:
            raise TransportError(f"Connection error: {e}") from e

    async def close(self) -> None:
        """Close the socket. Safe to call more than once, never raises."""
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        self._writer.close()
        try:
            await asyncio.wait_for(self._writer.wait_closed(), self._timeout)
        except (OSError, asyncio.TimeoutError):
            logger.debug("POP3 connection did not close cleanly (may already be closed)")
