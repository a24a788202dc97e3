"""Data models for pop3-trigger."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_serializer


class ConnectionParams(BaseModel):
    """Everything needed to open and authenticate one POP3 session."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int = 995
    secure: bool = True
    allow_unverified: bool = False
    username: str
    password: SecretStr
    timeout: float = 30.0  # seconds, per command
    encoding: str = "utf-8"


class MessageRef(BaseModel):
    """A message as listed by UIDL.

    The index is only meaningful inside the session that listed it; the uid is
    the durable, opaque identifier used for deduplication.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., gt=0)
    uid: str = Field(..., min_length=1)


class KnownUidState(BaseModel):
    """Persisted dedup state for one mailbox."""

    model_config = ConfigDict(populate_by_name=True)

    initialized: bool = False
    known_uids: set[str] = Field(default_factory=set, alias="knownUids")

    @field_serializer("known_uids")
    def _sorted_uids(self, uids: set[str]) -> list[str]:
        return sorted(uids)


class EmittedRecord(BaseModel):
    """One newly retrieved message, handed to the emission sink."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    uid: str
    index: int
    raw: str
    retrieved_at: datetime = Field(..., alias="retrievedAt")

    def to_payload(self) -> dict[str, object]:
        """Return the JSON-compatible record shape consumed downstream."""
        return self.model_dump(mode="json", by_alias=True)


class CycleResult(BaseModel):
    """Outcome of one successful poll cycle."""

    records: list[EmittedRecord] = []
    listed: int = 0
    baseline: bool = False  # True when the cycle only recorded existing mail
