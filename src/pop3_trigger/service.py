"""Mailbox service wiring configuration, credentials and state into pollers."""

from pop3_trigger.config import MailboxConfig
from pop3_trigger.credentials.base import CredentialBackend
from pop3_trigger.exceptions import MailboxNotFoundError
from pop3_trigger.models import ConnectionParams
from pop3_trigger.poller import ErrorCallback, PollCycleController, PollScheduler
from pop3_trigger.sink import EmissionSink
from pop3_trigger.state import StateStore


class MailboxService:
    """Service for managing multiple POP3 mailboxes.

    Resolves mailboxes by ID, fetches their credentials and builds the
    controller/scheduler pair that polls each one.
    """

    def __init__(
        self,
        mailboxes: list[MailboxConfig],
        credentials: CredentialBackend,
        store: StateStore,
    ) -> None:
        """Initialize the mailbox service.

        Args:
            mailboxes: List of mailbox configurations.
            credentials: Backend for retrieving mailbox passwords.
            store: Persistence for each mailbox's known-uid state.
        """
        self._mailboxes = {m.id: m for m in mailboxes}
        self._credentials = credentials
        self._store = store

    @property
    def store(self) -> StateStore:
        return self._store

    def list_mailboxes(self) -> list[str]:
        """Return configured mailbox IDs in configuration order."""
        return list(self._mailboxes.keys())

    def get_config(self, mailbox_id: str) -> MailboxConfig:
        """Get the configuration for a mailbox.

        Raises:
            MailboxNotFoundError: If the mailbox ID is not configured.
        """
        config = self._mailboxes.get(mailbox_id)
        if not config:
            raise MailboxNotFoundError(mailbox_id)
        return config

    def connection_params(self, mailbox_id: str) -> ConnectionParams:
        """Build connection parameters, including the password, for a mailbox.

        Raises:
            MailboxNotFoundError: If the mailbox ID is not configured.
            CredentialNotFoundError: If the password cannot be retrieved.
        """
        config = self.get_config(mailbox_id)
        return ConnectionParams(
            host=config.host,
            port=config.port,
            secure=config.secure,
            allow_unverified=config.allow_unverified,
            username=config.username,
            password=self._credentials.get_password(mailbox_id),
            timeout=config.timeout,
            encoding=config.encoding,
        )

    def create_controller(self, mailbox_id: str, sink: EmissionSink) -> PollCycleController:
        """Create a poll cycle controller for a mailbox."""
        config = self.get_config(mailbox_id)
        return PollCycleController(
            self.connection_params(mailbox_id),
            config.poll_options(),
            self._store,
            sink,
            state_key=mailbox_id,
        )

    def create_scheduler(
        self,
        mailbox_id: str,
        sink: EmissionSink,
        on_error: ErrorCallback | None = None,
    ) -> PollScheduler:
        """Create an interval scheduler polling a mailbox."""
        controller = self.create_controller(mailbox_id, sink)
        return PollScheduler(controller, controller.options.poll_interval, on_error=on_error)
