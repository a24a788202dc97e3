"""Poll cycle controller and the single-flight interval scheduler driving it."""

import asyncio
import contextlib
from collections.abc import Callable
from datetime import datetime, timezone

import structlog
from pydantic import BaseModel, Field

from pop3_trigger.exceptions import Pop3Error, Pop3TriggerError
from pop3_trigger.models import (
    ConnectionParams,
    CycleResult,
    EmittedRecord,
    KnownUidState,
    MessageRef,
)
from pop3_trigger.pop3.session import Pop3Session
from pop3_trigger.sink import EmissionSink
from pop3_trigger.state import StateStore

logger = structlog.get_logger()

DEFAULT_LIMIT = 10
MAX_LIMIT = 50
MIN_POLL_INTERVAL = 10  # seconds

SessionFactory = Callable[[ConnectionParams], Pop3Session]
ErrorCallback = Callable[[Exception], None]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PollOptions(BaseModel):
    """Per-mailbox polling behaviour.

    Attributes:
        limit: Maximum number of new messages retrieved per cycle.
        emit_existing: Emit mail already in the mailbox on the very first cycle.
        delete_after_emit: Delete each message from the server once retrieved.
        poll_interval: Seconds between cycle starts.
    """

    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)
    emit_existing: bool = False
    delete_after_emit: bool = False
    poll_interval: float = Field(default=60, ge=MIN_POLL_INTERVAL)


class PollCycleController:
    """Runs one polling iteration against a mailbox.

    Connects, lists uids, retrieves the ones not seen before (up to the limit),
    optionally deletes them, persists the known-uid set and hands the new
    records to the sink. A uid is marked known as soon as its message has been
    retrieved, so a later failure never causes it to be emitted twice.
    """

    def __init__(
        self,
        params: ConnectionParams,
        options: PollOptions,
        store: StateStore,
        sink: EmissionSink,
        *,
        state_key: str,
        session_factory: SessionFactory = Pop3Session,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the controller.

        Args:
            params: Connection parameters for the mailbox.
            options: Polling behaviour.
            store: Persistence for the known-uid set.
            sink: Receiver of each cycle's new records.
            state_key: Key identifying this mailbox in the store.
            session_factory: Creates a fresh session per cycle.
            clock: Source of retrieval timestamps.
        """
        self.params = params
        self.options = options
        self.state_key = state_key
        self._store = store
        self._sink = sink
        self._session_factory = session_factory
        self._clock = clock

    async def run_cycle(self) -> CycleResult:
        """Run one poll cycle.

        Records retrieved before a POP3 failure are still persisted as known
        and delivered to the sink; the failure is re-raised afterwards.

        Any other failure (StateError from saving, cancellation, an
        unexpected exception) skips the sink. Uids retrieved so far may
        already be persisted as known, so those messages are not emitted
        by a later cycle either: delivery is at most once.

        Raises:
            Pop3Error: If connecting, authenticating, listing, retrieving or
                deleting failed.
            StateError: If the known-uid state cannot be loaded or saved.
        """
        log = logger.bind(mailbox=self.state_key)
        state = self._store.load(self.state_key)
        session = self._session_factory(self.params)

        records: list[EmittedRecord] = []
        listed = 0
        baseline = False
        error: Pop3Error | None = None

        try:
            await session.connect()
            await session.login()
            refs = await session.list_uids()
            listed = len(refs)

            if not state.initialized and not self.options.emit_existing:
                state.known_uids.update(ref.uid for ref in refs)
                state.initialized = True
                baseline = True
                log.info("Recorded existing messages as baseline", count=listed)
            else:
                state.initialized = True
                await self._retrieve_new(session, refs, state, records)
        except Pop3Error as e:
            error = e
            log.warning(
                "Poll cycle aborted",
                error=str(e),
                error_type=type(e).__name__,
                retrieved=len(records),
            )
        finally:
            try:
                self._store.save(self.state_key, state)
            finally:
                await session.quit()

        if records:
            await self._sink.emit(records)
            log.info("Emitted new messages", count=len(records))

        if error is not None:
            raise error

        return CycleResult(records=records, listed=listed, baseline=baseline)

    def _select_new(self, refs: list[MessageRef], known: set[str]) -> list[MessageRef]:
        selected = []
        seen: set[str] = set()
        for ref in refs:
            if ref.uid in known or ref.uid in seen:
                continue
            seen.add(ref.uid)
            selected.append(ref)
            if len(selected) >= self.options.limit:
                break
        return selected

    async def _retrieve_new(
        self,
        session: Pop3Session,
        refs: list[MessageRef],
        state: KnownUidState,
        records: list[EmittedRecord],
    ) -> None:
        for ref in self._select_new(refs, state.known_uids):
            raw = await session.retrieve(ref.index)
            state.known_uids.add(ref.uid)
            records.append(
                EmittedRecord(uid=ref.uid, index=ref.index, raw=raw, retrieved_at=self._clock())
            )
            if self.options.delete_after_emit:
                await session.delete(ref.index)


class PollScheduler:
    """Fires poll cycles on a fixed interval, never more than one at a time.

    A timer tick that finds a cycle still running is dropped, not queued.
    Cycle failures are logged and passed to on_error; scheduling continues.
    """

    def __init__(
        self,
        controller: PollCycleController,
        interval: float | None = None,
        *,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._controller = controller
        self._interval = interval if interval is not None else controller.options.poll_interval
        self._on_error = on_error
        self._active = False
        self._stopping = False
        self._timer: asyncio.Task[None] | None = None
        self._cycles: set[asyncio.Task[CycleResult | None]] = set()

    @property
    def running(self) -> bool:
        """True while the interval timer is armed."""
        return self._timer is not None and not self._timer.done()

    @property
    def busy(self) -> bool:
        """True while a poll cycle is in flight."""
        return self._active

    async def trigger(self) -> CycleResult | None:
        """Run a cycle unless one is already in flight.

        Returns:
            The cycle result, or None if the call was dropped or the cycle failed.
        """
        if self._active:
            logger.debug("Poll cycle still running, skipping", mailbox=self._controller.state_key)
            return None

        self._active = True
        try:
            return await self._controller.run_cycle()
        except Pop3TriggerError as e:
            logger.error(
                "POP3 polling failed",
                mailbox=self._controller.state_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._report(e)
            return None
        except Exception as e:
            logger.exception("Unexpected error in poll cycle", mailbox=self._controller.state_key)
            self._report(e)
            return None
        finally:
            self._active = False

    def _report(self, error: Exception) -> None:
        if self._on_error is not None:
            self._on_error(error)

    async def start(self, *, raise_on_error: bool = True) -> CycleResult | None:
        """Run the first cycle now, then arm the interval timer.

        Args:
            raise_on_error: When True, a failure of the first cycle propagates
                and the timer is not armed. When False, the failure is reported
                like any later tick and the timer is armed anyway.

        Returns:
            The first cycle's result, or None if it failed and was reported.
            If stop() is called while the first cycle runs, the timer is
            never armed.
        """
        if self.running:
            raise RuntimeError("Scheduler already started")

        self._stopping = False
        first = asyncio.create_task(self._first_cycle(raise_on_error))
        self._cycles.add(first)
        first.add_done_callback(self._cycles.discard)
        result = await first

        if self._stopping:
            logger.info("Polling stopped before start", mailbox=self._controller.state_key)
            return result

        self._timer = asyncio.create_task(self._tick_forever())
        logger.info(
            "Polling started",
            mailbox=self._controller.state_key,
            interval=self._interval,
        )
        return result

    async def _first_cycle(self, raise_on_error: bool) -> CycleResult | None:
        if not raise_on_error:
            return await self.trigger()
        self._active = True
        try:
            return await self._controller.run_cycle()
        finally:
            self._active = False

    async def _tick_forever(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            task = asyncio.create_task(self.trigger())
            self._cycles.add(task)
            task.add_done_callback(self._cycles.discard)

    async def stop(self) -> None:
        """Cancel the timer and wait for an in-flight cycle to finish.

        Also prevents a start() still running its first cycle from arming
        the timer.
        """
        self._stopping = True
        if self._timer is not None:
            self._timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None

        if self._cycles:
            await asyncio.gather(*self._cycles, return_exceptions=True)

        logger.info("Polling stopped", mailbox=self._controller.state_key)
