"""Abstract base class for credential backends."""

from abc import ABC, abstractmethod

from pydantic import SecretStr


class CredentialBackend(ABC):
    """Abstract interface for credential storage.

    Credential backends are responsible for retrieving passwords for POP3 mailboxes.
    Different implementations can retrieve credentials from environment variables,
    keyrings, a host application's secret store, etc.
    """

    @abstractmethod
    def get_password(self, mailbox_id: str) -> SecretStr:
        """Retrieve password for the given mailbox.

        Args:
            mailbox_id: The unique identifier of the mailbox.

        Returns:
            The password as a SecretStr.

        Raises:
            CredentialNotFoundError: If the credential is not found.
        """
        ...
