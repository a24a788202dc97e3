"""Shared fixtures: an in-process POP3 server speaking just enough of the protocol."""

import asyncio
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from pydantic import SecretStr

from pop3_trigger.models import ConnectionParams


def dot_stuff(raw: str) -> str:
    """Apply POP3 dot-stuffing the way a server does before sending a body."""
    return "\r\n".join("." + line if line.startswith(".") else line for line in raw.split("\r\n"))


class FakePop3Server:
    """Scripted POP3 server bound to 127.0.0.1 on a random port.

    Attributes:
        messages: (uid, raw text) pairs, numbered from 1 in list order.
        commands: Every command line received, in order.
        overrides: Verb -> raw response replacing the default handling.
            A value of None makes the server drop the connection instead.
        delays: Verb -> seconds to wait before responding.
        chunk_size: When set, responses are written in chunks of this size.
    """

    def __init__(self) -> None:
        self.greeting = "+OK POP3 server ready\r\n"
        self.username = "user"
        self.password = "secret"
        self.messages: list[tuple[str, str]] = []
        self.deleted: set[int] = set()
        self.commands: list[str] = []
        self.overrides: dict[str, str | None] = {}
        self.delays: dict[str, float] = {}
        self.chunk_size: int | None = None
        self.connections = 0
        self.port = 0
        self._server: asyncio.Server | None = None
        self._writers: set[asyncio.StreamWriter] = set()

    def add_message(self, uid: str, raw: str) -> None:
        self.messages.append((uid, raw))

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        for writer in list(self._writers):
            writer.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def _send(self, writer: asyncio.StreamWriter, response: str) -> None:
        data = response.encode()
        if self.chunk_size:
            for start in range(0, len(data), self.chunk_size):
                writer.write(data[start : start + self.chunk_size])
                await writer.drain()
                await asyncio.sleep(0)
        else:
            writer.write(data)
            await writer.drain()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        self._writers.add(writer)
        try:
            await self._send(writer, self.greeting)
            while True:
                line = await reader.readline()
                if not line:
                    break
                command = line.decode().rstrip("\r\n")
                self.commands.append(command)
                verb, _, arg = command.partition(" ")
                verb = verb.upper()

                if verb in self.delays:
                    await asyncio.sleep(self.delays[verb])

                response = self.overrides[verb] if verb in self.overrides else self._respond(verb, arg)
                if response is None:
                    break
                await self._send(writer, response)
                if verb == "QUIT":
                    break
        except ConnectionError:
            pass
        finally:
            self._writers.discard(writer)
            writer.close()

    def _message(self, arg: str) -> tuple[int, str] | None:
        try:
            index = int(arg)
        except ValueError:
            return None
        if 1 <= index <= len(self.messages) and index not in self.deleted:
            return index, self.messages[index - 1][1]
        return None

    def _respond(self, verb: str, arg: str) -> str:
        if verb == "USER":
            return "+OK\r\n" if arg == self.username else "-ERR unknown user\r\n"
        if verb == "PASS":
            return "+OK logged in\r\n" if arg == self.password else "-ERR invalid password\r\n"
        if verb == "UIDL":
            lines = "".join(
                f"{i} {uid}\r\n"
                for i, (uid, _) in enumerate(self.messages, start=1)
                if i not in self.deleted
            )
            return f"+OK\r\n{lines}.\r\n"
        if verb == "RETR":
            found = self._message(arg)
            if found is None:
                return "-ERR no such message\r\n"
            _, raw = found
            return f"+OK {len(raw)} octets\r\n{dot_stuff(raw)}\r\n.\r\n"
        if verb == "DELE":
            found = self._message(arg)
            if found is None:
                return "-ERR no such message\r\n"
            self.deleted.add(found[0])
            return f"+OK message {found[0]} deleted\r\n"
        if verb == "QUIT":
            return "+OK bye\r\n"
        return "-ERR unknown command\r\n"


@pytest_asyncio.fixture
async def pop3_server() -> AsyncIterator[FakePop3Server]:
    server = FakePop3Server()
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
def make_params():
    """Build plaintext connection params pointing at a fake server."""

    def _make(server: FakePop3Server, **overrides: object) -> ConnectionParams:
        values: dict[str, object] = {
            "host": "127.0.0.1",
            "port": server.port,
            "secure": False,
            "username": server.username,
            "password": SecretStr(server.password),
            "timeout": 2.0,
        }
        values.update(overrides)
        return ConnectionParams(**values)

    return _make
