"""Emission sinks receiving each cycle's batch of new messages."""

import inspect
import json
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TextIO

from pop3_trigger.models import EmittedRecord


class EmissionSink(ABC):
    """Receives newly retrieved messages, one non-empty batch per cycle."""

    @abstractmethod
    async def emit(self, records: list[EmittedRecord]) -> None:
        """Deliver a batch of records downstream."""
        ...


class JsonLinesSink(EmissionSink):
    """Writes each record as one JSON object per line."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    async def emit(self, records: list[EmittedRecord]) -> None:
        for record in records:
            self._stream.write(json.dumps(record.to_payload()) + "\n")
        self._stream.flush()


class CallbackSink(EmissionSink):
    """Adapts a plain or async callable taking the record batch."""

    def __init__(
        self,
        callback: Callable[[list[EmittedRecord]], Awaitable[None] | None],
    ) -> None:
        self._callback = callback

    async def emit(self, records: list[EmittedRecord]) -> None:
        result = self._callback(records)
        if inspect.isawaitable(result):
            await result
