"""Custom exceptions for pop3-trigger."""


class Pop3TriggerError(Exception):
    """Base exception for pop3-trigger."""


class ConfigError(Pop3TriggerError):
    """Raised when there is a configuration error."""

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        line: int | None = None,
        col: int | None = None,
    ) -> None:
        self.file_path = file_path
        self.line = line
        self.col = col
        full_message = message
        if file_path:
            location = f" in {file_path}"
            if line is not None:
                location += f" at line {line}"
                if col is not None:
                    location += f", column {col}"
            full_message = f"Configuration error{location}: {message}"
        super().__init__(full_message)


class MailboxNotFoundError(Pop3TriggerError):
    """Raised when a requested mailbox is not configured."""

    def __init__(self, mailbox_id: str) -> None:
        self.mailbox_id = mailbox_id
        super().__init__(f"Mailbox not found: {mailbox_id}")


class CredentialNotFoundError(ConfigError):
    """Raised when credentials for a mailbox are not found."""

    def __init__(self, mailbox_id: str, env_key: str) -> None:
        self.mailbox_id = mailbox_id
        self.env_key = env_key
        super().__init__(
            f"Missing credential for mailbox '{mailbox_id}': "
            f"environment variable {env_key} is not set"
        )


class StateError(Pop3TriggerError):
    """Raised when persisted known-uid state cannot be read or written."""


class Pop3Error(Pop3TriggerError):
    """Base class for failures talking to a POP3 server."""


class ConnectError(Pop3Error, ConnectionError):
    """Raised when the connection cannot be established (DNS, refusal, TLS, timeout)."""


class ProtocolError(Pop3Error):
    """Raised on a rejected greeting or a malformed status line."""


class AuthError(Pop3Error):
    """Raised when the server answers USER or PASS with -ERR."""


class CommandError(Pop3Error):
    """Raised when the server answers UIDL, RETR or DELE with -ERR."""

    def __init__(self, message: str, command: str | None = None) -> None:
        self.command = command
        super().__init__(message)


class CommandTimeoutError(Pop3Error, TimeoutError):
    """Raised when no complete response arrives within the command timeout."""


class TransportError(Pop3Error, ConnectionError):
    """Raised when the socket fails or closes in the middle of a command."""


class SessionStateError(Pop3Error, RuntimeError):
    """Raised when a session operation is invoked from the wrong state."""
