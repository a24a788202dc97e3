"""Persistence of the known-uid set between poll cycles."""

import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

import platformdirs
from pydantic import ValidationError

from pop3_trigger.exceptions import StateError
from pop3_trigger.models import KnownUidState

logger = logging.getLogger(__name__)


def normalize_state_key(key: str) -> str:
    """Make a mailbox key safe for use as a file name.

    For example "work" -> "work" and "user@example.com" -> "user_example_com".
    """
    return re.sub(r"[^a-zA-Z0-9_-]", "_", key)


def get_state_dir() -> Path:
    """Get the directory holding persisted mailbox state.

    Uses POP3T_STATE_DIR when set, falls back to platformdirs.
    """
    override = os.environ.get("POP3T_STATE_DIR")
    if override:
        return Path(override)
    return Path(platformdirs.user_data_dir("pop3-trigger"))


class StateStore(ABC):
    """Load/save interface for per-mailbox dedup state.

    The poll controller reads the state once at the start of a cycle and writes
    it back at the end, whether or not the cycle succeeded.
    """

    @abstractmethod
    def load(self, key: str) -> KnownUidState:
        """Return the stored state for key, or a fresh uninitialized state."""
        ...

    @abstractmethod
    def save(self, key: str, state: KnownUidState) -> None:
        """Persist state for key, replacing what was stored before."""
        ...

    @abstractmethod
    def reset(self, key: str) -> None:
        """Forget everything stored for key."""
        ...


class MemoryStateStore(StateStore):
    """Process-local store. Loaded states are copies, so callers can mutate them."""

    def __init__(self) -> None:
        self._states: dict[str, KnownUidState] = {}

    def load(self, key: str) -> KnownUidState:
        state = self._states.get(key)
        return state.model_copy(deep=True) if state else KnownUidState()

    def save(self, key: str, state: KnownUidState) -> None:
        self._states[key] = state.model_copy(deep=True)

    def reset(self, key: str) -> None:
        self._states.pop(key, None)


class JsonFileStateStore(StateStore):
    """One JSON document per mailbox, written atomically.

    File contents: {"initialized": true, "knownUids": ["uid-1", "uid-2"]}
    """

    def __init__(self, directory: Path | None = None) -> None:
        self._directory = directory or get_state_dir()

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        return self._directory / f"{normalize_state_key(key)}.json"

    def load(self, key: str) -> KnownUidState:
        path = self.path_for(key)
        if not path.exists():
            logger.debug("No state file for %s, starting fresh", key)
            return KnownUidState()
        try:
            return KnownUidState.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise StateError(f"Corrupt state file {path}: {e}") from e
        except OSError as e:
            raise StateError(f"Cannot read state file {path}: {e}") from e

    def save(self, key: str, state: KnownUidState) -> None:
        path = self.path_for(key)
        data = state.model_dump_json(by_alias=True, indent=2)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=path.stem, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StateError(f"Cannot write state file {path}: {e}") from e
        logger.debug("Saved state for %s (%d known uids)", key, len(state.known_uids))

    def reset(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)
