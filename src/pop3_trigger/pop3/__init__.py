"""POP3 protocol client: framed transport and command session."""

from pop3_trigger.pop3.session import Pop3Session, SessionState
from pop3_trigger.pop3.transport import FramedTransport, build_ssl_context

__all__ = [
    "FramedTransport",
    "Pop3Session",
    "SessionState",
    "build_ssl_context",
]
