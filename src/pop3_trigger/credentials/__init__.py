"""Credential backends for mailbox passwords."""

from pop3_trigger.credentials.base import CredentialBackend
from pop3_trigger.credentials.env import EnvCredentialBackend

__all__ = ["CredentialBackend", "EnvCredentialBackend"]
