"""Environment variable credential backend."""

import logging
import os
import re

from pydantic import SecretStr

from pop3_trigger.credentials.base import CredentialBackend
from pop3_trigger.exceptions import CredentialNotFoundError

logger = logging.getLogger(__name__)


def normalize_mailbox_id(mailbox_id: str) -> str:
    """Normalize a mailbox ID for use in environment variable names.

    For example:
    - "work" -> "WORK"
    - "support-inbox" -> "SUPPORT_INBOX"
    """
    return re.sub(r"[^a-zA-Z0-9]", "_", mailbox_id).upper()


class EnvCredentialBackend(CredentialBackend):
    """Credential backend using environment variables.

    Looks for passwords in POP3T_MAILBOX_{ID}_PASSWORD, where {ID} is the
    normalized mailbox ID. Mailbox "support-inbox" reads
    POP3T_MAILBOX_SUPPORT_INBOX_PASSWORD.
    """

    def get_password(self, mailbox_id: str) -> SecretStr:
        """Retrieve password from environment variable.

        Raises:
            CredentialNotFoundError: If the environment variable is not set.
        """
        env_key = f"POP3T_MAILBOX_{normalize_mailbox_id(mailbox_id)}_PASSWORD"

        logger.debug("Looking up password (env_key=%s)", env_key)

        value = os.environ.get(env_key)
        if not value:
            raise CredentialNotFoundError(mailbox_id, env_key)

        return SecretStr(value)
