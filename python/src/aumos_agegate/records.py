# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""Verification records: value objects, status machine and repositories.

A :class:`VerificationRecord` is what a relying party keeps after accepting
a proof. Its status is derived, never stored:

- ``ACTIVE`` on creation;
- ``EXPIRED`` once ``now >= expires_at`` (time-triggered, never reversed);
- ``REVOKED`` after an explicit :meth:`VerificationRecord.revoke` (one-way).

Records are never deleted implicitly; invalid ones stay for audit.

Usage::

    from aumos_agegate.records import RecordStatus, assert_transition

    assert_transition(RecordStatus.ACTIVE, RecordStatus.REVOKED)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from .config import MAX_AGE_YEARS
from .primitives import format_timestamp, parse_timestamp, utcnow
from .types import (
    InvalidInputError,
    InvalidTransitionError,
    RecordNotFoundError,
)

logger = logging.getLogger(__name__)

_MIN_COMMITMENT_LENGTH = 10


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Age:
    """An age in whole years, 0 to 150."""

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise InvalidInputError("age must be an integer")
        if self.value < 0:
            raise InvalidInputError("age cannot be negative")
        if self.value > MAX_AGE_YEARS:
            raise InvalidInputError(f"age cannot exceed {MAX_AGE_YEARS} years")

    def is_adult(self, legal_age: int = 18) -> bool:
        return self.value >= legal_age

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class ProofCommitment:
    """Public handle of an accepted proof (hex commitment or backend tag)."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value:
            raise InvalidInputError("proof commitment must be a non-empty string")
        if len(self.value) < _MIN_COMMITMENT_LENGTH:
            raise InvalidInputError(
                f"proof commitment must be at least {_MIN_COMMITMENT_LENGTH} characters long"
            )

    @classmethod
    def from_bytes(cls, data: bytes) -> ProofCommitment:
        return cls(data.hex())

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, order=True)
class Timestamp:
    """A timezone-aware UTC instant."""

    value: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.value, datetime):
            raise InvalidInputError("invalid timestamp")
        if self.value.tzinfo is None:
            raise InvalidInputError("timestamp must be timezone-aware")

    @classmethod
    def now(cls, clock: Callable[[], datetime] = utcnow) -> Timestamp:
        return cls(clock())

    @classmethod
    def parse(cls, value: str) -> Timestamp:
        try:
            return cls(parse_timestamp(value))
        except ValueError:
            raise InvalidInputError("invalid timestamp") from None

    def is_before(self, other: Timestamp) -> bool:
        return self.value < other.value

    def is_after(self, other: Timestamp) -> bool:
        return self.value > other.value

    def is_expired(self, duration: timedelta, now: Timestamp | None = None) -> bool:
        """True once *duration* has passed since this instant."""
        current = now or Timestamp.now()
        return current.value > self.value + duration

    def __add__(self, duration: timedelta) -> Timestamp:
        return Timestamp(self.value + duration)

    def __str__(self) -> str:
        return format_timestamp(self.value)


# ---------------------------------------------------------------------------
# Status machine: active -> expired/revoked, expired -> revoked.
# Revoked is terminal.
# ---------------------------------------------------------------------------


class RecordStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


RECORD_TRANSITIONS: dict[RecordStatus, frozenset[RecordStatus]] = {
    RecordStatus.ACTIVE: frozenset({RecordStatus.EXPIRED, RecordStatus.REVOKED}),
    RecordStatus.EXPIRED: frozenset({RecordStatus.REVOKED}),
    RecordStatus.REVOKED: frozenset(),
}


def assert_transition(current: RecordStatus, target: RecordStatus) -> None:
    """Raise :class:`InvalidTransitionError` unless *current* may move to *target*."""
    allowed = RECORD_TRANSITIONS.get(current)
    if allowed is None:
        raise InvalidTransitionError(f"Unknown status: {current!r}")
    if target not in allowed:
        raise InvalidTransitionError(
            f"Invalid transition {current.value} -> {target.value}"
        )


@dataclass
class VerificationRecord:
    """A relying party's record of an accepted age proof."""

    id: str
    commitment: ProofCommitment
    minimum_age: Age
    issued_at: Timestamp
    expires_at: Timestamp
    revoked: bool = False

    def status(self, now: Timestamp | None = None) -> RecordStatus:
        if self.revoked:
            return RecordStatus.REVOKED
        current = now or Timestamp.now()
        if current.is_before(self.expires_at):
            return RecordStatus.ACTIVE
        return RecordStatus.EXPIRED

    def is_valid(self, now: Timestamp | None = None) -> bool:
        """True only while the record is active: not revoked and not expired."""
        return self.status(now) is RecordStatus.ACTIVE

    def revoke(self, now: Timestamp | None = None) -> None:
        """Revoke the record. Raises if it is already revoked."""
        current = self.status(now)
        assert_transition(current, RecordStatus.REVOKED)
        self.revoked = True
        logger.info("verification record %s revoked (was %s)", self.id, current.value)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class VerificationRecordRepository(Protocol):
    """Persistence contract for verification records.

    ``find_by_commitment`` must reflect any earlier ``save``.
    ``save_if_absent`` must check and insert atomically; the orchestration
    layer relies on it instead of ``exists`` followed by ``save``.
    """

    async def save(self, record: VerificationRecord) -> None: ...

    async def save_if_absent(self, record: VerificationRecord) -> bool: ...

    async def find_by_id(self, record_id: str) -> VerificationRecord | None: ...

    async def find_by_commitment(self, commitment: str) -> VerificationRecord | None: ...

    async def update(self, record: VerificationRecord) -> None: ...

    async def delete(self, record_id: str) -> None: ...

    async def exists(self, commitment: str) -> bool: ...


class InMemoryVerificationRecordRepository:
    """In-process :class:`VerificationRecordRepository` for tests and single-node use.

    Records are copied on the way in and out, so callers must ``update`` to
    persist a change. A single lock guards both indexes, which makes
    ``save_if_absent`` atomic across threads and event loops.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, VerificationRecord] = {}
        self._by_commitment: dict[str, str] = {}

    async def save(self, record: VerificationRecord) -> None:
        with self._lock:
            self._put(record)

    async def save_if_absent(self, record: VerificationRecord) -> bool:
        with self._lock:
            if record.commitment.value in self._by_commitment:
                return False
            self._put(record)
            return True

    async def find_by_id(self, record_id: str) -> VerificationRecord | None:
        with self._lock:
            record = self._records.get(record_id)
            return replace(record) if record is not None else None

    async def find_by_commitment(self, commitment: str) -> VerificationRecord | None:
        with self._lock:
            record_id = self._by_commitment.get(commitment)
            if record_id is None:
                return None
            return replace(self._records[record_id])

    async def update(self, record: VerificationRecord) -> None:
        with self._lock:
            if record.id not in self._records:
                raise RecordNotFoundError(f"verification record {record.id!r} not found")
            self._put(record)

    async def delete(self, record_id: str) -> None:
        with self._lock:
            record = self._records.pop(record_id, None)
            if record is not None:
                self._by_commitment.pop(record.commitment.value, None)

    async def exists(self, commitment: str) -> bool:
        with self._lock:
            return commitment in self._by_commitment

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._by_commitment.clear()

    def _put(self, record: VerificationRecord) -> None:
        previous = self._records.get(record.id)
        if previous is not None and previous.commitment != record.commitment:
            self._by_commitment.pop(previous.commitment.value, None)
        self._records[record.id] = replace(record)
        self._by_commitment[record.commitment.value] = record.id
