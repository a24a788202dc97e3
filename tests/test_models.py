"""Tests for data models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from pop3_trigger.models import (
    ConnectionParams,
    CycleResult,
    EmittedRecord,
    KnownUidState,
    MessageRef,
)


class TestConnectionParams:
    def test_defaults(self) -> None:
        params = ConnectionParams(host="pop.example.com", username="user", password="secret")

        assert params.port == 995
        assert params.secure is True
        assert params.allow_unverified is False
        assert params.timeout == 30.0
        assert params.encoding == "utf-8"

    def test_password_is_masked(self) -> None:
        params = ConnectionParams(host="pop.example.com", username="user", password="secret")

        assert "secret" not in repr(params)
        assert params.password.get_secret_value() == "secret"

    def test_frozen(self) -> None:
        params = ConnectionParams(host="pop.example.com", username="user", password="secret")

        with pytest.raises(ValidationError):
            params.host = "other.example.com"  # type: ignore[misc]


class TestMessageRef:
    def test_valid(self) -> None:
        ref = MessageRef(index=3, uid="abc")

        assert ref.index == 3
        assert ref.uid == "abc"

    def test_index_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            MessageRef(index=0, uid="abc")

    def test_uid_must_not_be_empty(self) -> None:
        with pytest.raises(ValidationError):
            MessageRef(index=1, uid="")


class TestKnownUidState:
    def test_defaults(self) -> None:
        state = KnownUidState()

        assert state.initialized is False
        assert state.known_uids == set()

    def test_accepts_alias(self) -> None:
        state = KnownUidState.model_validate({"initialized": True, "knownUids": ["a", "b"]})

        assert state.known_uids == {"a", "b"}

    def test_serializes_sorted_list(self) -> None:
        state = KnownUidState(initialized=True, known_uids={"c", "a", "b"})

        assert state.model_dump(by_alias=True) == {
            "initialized": True,
            "knownUids": ["a", "b", "c"],
        }


class TestEmittedRecord:
    def test_payload_shape(self) -> None:
        record = EmittedRecord(
            uid="abc",
            index=2,
            raw="Subject: hi\r\n\r\nbody",
            retrieved_at=datetime(2026, 1, 5, 10, 0, 0, tzinfo=timezone.utc),
        )

        assert record.to_payload() == {
            "uid": "abc",
            "index": 2,
            "raw": "Subject: hi\r\n\r\nbody",
            "retrievedAt": "2026-01-05T10:00:00Z",
        }

    def test_accepts_alias(self) -> None:
        record = EmittedRecord.model_validate(
            {"uid": "abc", "index": 1, "raw": "", "retrievedAt": "2026-01-05T10:00:00Z"}
        )

        assert record.retrieved_at.year == 2026


class TestCycleResult:
    def test_defaults(self) -> None:
        result = CycleResult()

        assert result.records == []
        assert result.listed == 0
        assert result.baseline is False
