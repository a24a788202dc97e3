"""Poll POP3 mailboxes and emit newly arrived messages as structured records."""

from pop3_trigger.config import MailboxConfig, Settings
from pop3_trigger.exceptions import (
    AuthError,
    CommandError,
    CommandTimeoutError,
    ConnectError,
    Pop3Error,
    Pop3TriggerError,
    ProtocolError,
    SessionStateError,
    TransportError,
)
from pop3_trigger.models import ConnectionParams, CycleResult, EmittedRecord, KnownUidState, MessageRef
from pop3_trigger.poller import PollCycleController, PollOptions, PollScheduler
from pop3_trigger.pop3 import FramedTransport, Pop3Session, SessionState
from pop3_trigger.service import MailboxService
from pop3_trigger.sink import CallbackSink, EmissionSink, JsonLinesSink
from pop3_trigger.state import JsonFileStateStore, MemoryStateStore, StateStore

__version__ = "0.1.0"

__all__ = [
    "AuthError",
    "CallbackSink",
    "CommandError",
    "CommandTimeoutError",
    "ConnectError",
    "ConnectionParams",
    "CycleResult",
    "EmissionSink",
    "EmittedRecord",
    "FramedTransport",
    "JsonFileStateStore",
    "JsonLinesSink",
    "KnownUidState",
    "MailboxConfig",
    "MailboxService",
    "MemoryStateStore",
    "MessageRef",
    "Pop3Error",
    "Pop3Session",
    "Pop3TriggerError",
    "PollCycleController",
    "PollOptions",
    "PollScheduler",
    "ProtocolError",
    "SessionState",
    "SessionStateError",
    "Settings",
    "StateStore",
    "TransportError",
]
