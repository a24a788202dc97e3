"""Parsing helpers for POP3 status lines and multi-line bodies."""

import logging

from pop3_trigger.exceptions import CommandError, Pop3Error, ProtocolError
from pop3_trigger.models import MessageRef

logger = logging.getLogger(__name__)

CRLF = b"\r\n"
MULTILINE_TERMINATOR = b"\r\n.\r\n"
END_OF_BODY = b".\r\n"

OK = "+OK"
ERR = "-ERR"
DEFAULT_ERROR_MESSAGE = "POP3 command failed"


def status_line(response: str) -> str:
    """Return the first line of a response without its line ending."""
    end = response.find("\r\n")
    return response if end == -1 else response[:end]


def error_reason(line: str) -> str:
    """Strip the -ERR token and surrounding whitespace from a status line."""
    reason = line[len(ERR) :] if line.startswith(ERR) else line
    return reason.strip() or DEFAULT_ERROR_MESSAGE


def check_status(
    response: str,
    error_cls: type[Pop3Error] = CommandError,
    command: str | None = None,
) -> str:
    """Validate the status line of a response.

    Args:
        response: Raw response text; only its first line is inspected.
        error_cls: Exception raised for an -ERR status.
        command: Command verb, attached to CommandError for context.

    Returns:
        The status line, when it starts with +OK.

    Raises:
        error_cls: If the status line starts with -ERR.
        ProtocolError: If the status line is missing or malformed.
    """
    line = status_line(response)
    if line.startswith(OK):
        return line
    if line.startswith(ERR):
        reason = error_reason(line)
        if error_cls is CommandError:
            raise CommandError(reason, command=command)
        raise error_cls(reason)
    raise ProtocolError(f"Malformed POP3 status line: {line[:80]!r}")


def join_body(lines: list[bytes]) -> bytes:
    """Join the lines of a multi-line body, dropping the final line ending.

    The terminator line itself must not be part of lines. Dot-stuffed lines
    are passed through unchanged.
    """
    body = b"".join(lines)
    if body.endswith(CRLF):
        body = body[: -len(CRLF)]
    return body


def parse_uidl(body: str) -> list[MessageRef]:
    """Parse a UIDL body into message references, preserving server order.

    Lines that do not have a positive integer index followed by a non-empty
    uid are skipped.
    """
    refs = []
    for line in body.split("\r\n"):
        parts = line.split()
        if not parts:
            continue
        if len(parts) < 2:
            logger.debug("Skipping UIDL line without uid: %r", line)
            continue
        try:
            index = int(parts[0])
        except ValueError:
            logger.debug("Skipping UIDL line with non-numeric index: %r", line)
            continue
        if index <= 0:
            logger.debug("Skipping UIDL line with non-positive index: %r", line)
            continue
        refs.append(MessageRef(index=index, uid=parts[1]))
    return refs
