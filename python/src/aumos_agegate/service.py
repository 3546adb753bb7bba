# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""Orchestration of verification records around the core protocol.

:class:`AgeVerificationService` is what a relying party's API layer calls.
It verifies incoming proofs, registers each accepted proof commitment
exactly once, and answers later questions about that registration. The
only suspension points are the repository calls.

Registration uses the repository's atomic ``save_if_absent``; two
concurrent submissions of the same proof cannot both succeed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol

from .config import DEFAULT_SETTINGS, AgeGateSettings
from .primitives import b64url_decode, b64url_encode, utcnow
from .records import (
    Age,
    ProofCommitment,
    Timestamp,
    VerificationRecord,
    VerificationRecordRepository,
)
from .types import (
    AgeProof,
    AgeRequirementNotMetError,
    ConfigurationError,
    DuplicateProofError,
    ProofRejectedError,
    RecordNotFoundError,
)
from .verification import Verifier

logger = logging.getLogger(__name__)

# Marks commitments minted by HmacCryptographicBackend.
HMAC_COMMITMENT_PREFIX = "hm1."


class CryptographicBackend(Protocol):
    """Delegated proof backend for services that attest declared ages."""

    async def generate_age_proof(
        self, actual_age: Age, minimum_age: Age, secret: str
    ) -> ProofCommitment: ...

    async def verify_age_proof(
        self, commitment: ProofCommitment, minimum_age: Age
    ) -> bool: ...

    async def generate_secure_id(self) -> str: ...


class HmacCryptographicBackend:
    """:class:`CryptographicBackend` issuing HMAC-SHA256 age attestations.

    A commitment is ``"hm1." + base64url(nonce || tag)`` where
    ``tag = HMAC(key, nonce || minimum_age)`` and the nonce mixes the
    caller's secret with fresh randomness. Only a holder of *key* can mint
    or check commitments, and a commitment for one minimum age never
    verifies for another.

    Parameters
    ----------
    key:
        At least 32 bytes of secret key material.
    """

    _NONCE_BYTES = 16

    def __init__(self, key: bytes) -> None:
        if len(key) < 32:
            raise ConfigurationError(
                f"HmacCryptographicBackend: key must be at least 32 bytes, got {len(key)}"
            )
        self._key = key

    async def generate_age_proof(
        self, actual_age: Age, minimum_age: Age, secret: str
    ) -> ProofCommitment:
        if actual_age.value < minimum_age.value:
            raise AgeRequirementNotMetError(minimum_age.value)
        nonce = hashlib.sha256(
            secret.encode("utf-8") + secrets.token_bytes(self._NONCE_BYTES)
        ).digest()[: self._NONCE_BYTES]
        tag = self._tag(nonce, minimum_age)
        return ProofCommitment(HMAC_COMMITMENT_PREFIX + b64url_encode(nonce + tag))

    async def verify_age_proof(
        self, commitment: ProofCommitment, minimum_age: Age
    ) -> bool:
        if not commitment.value.startswith(HMAC_COMMITMENT_PREFIX):
            return False
        try:
            raw = b64url_decode(commitment.value[len(HMAC_COMMITMENT_PREFIX):])
        except ValueError:
            return False
        nonce, tag = raw[: self._NONCE_BYTES], raw[self._NONCE_BYTES:]
        if len(nonce) != self._NONCE_BYTES:
            return False
        return hmac.compare_digest(tag, self._tag(nonce, minimum_age))

    async def generate_secure_id(self) -> str:
        return str(uuid.uuid4())

    def _tag(self, nonce: bytes, minimum_age: Age) -> bytes:
        message = b"aumos-agegate/v1/attest\x00" + nonce + minimum_age.value.to_bytes(1, "big")
        return hmac.new(self._key, message, hashlib.sha256).digest()


class AgeVerificationService:
    """Registers and answers questions about accepted age proofs.

    Parameters
    ----------
    repository:
        Storage for :class:`~records.VerificationRecord` objects.
    verifier:
        Verifier used by :meth:`register_proof`.
    crypto_backend:
        Optional delegated backend used by :meth:`create_verification` and
        :meth:`check_verification`.
    settings:
        Protocol settings; ``record_validity`` is the default record lifetime.
    clock:
        Callable returning the current UTC time.
    """

    def __init__(
        self,
        repository: VerificationRecordRepository,
        verifier: Verifier,
        *,
        crypto_backend: CryptographicBackend | None = None,
        settings: AgeGateSettings = DEFAULT_SETTINGS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._verifier = verifier
        self._backend = crypto_backend
        self._settings = settings
        self._clock = clock

    async def register_proof(
        self, proof: AgeProof, *, validity: timedelta | None = None
    ) -> VerificationRecord:
        """Verify *proof* and record its commitment.

        Raises
        ------
        ProofRejectedError
            If the proof does not verify; ``exc.result`` holds the details.
        DuplicateProofError
            If the commitment has been registered before.
        """
        result = self._verifier.verify(proof)
        if not result.is_valid:
            raise ProofRejectedError(result)

        record = await self._insert(
            commitment=ProofCommitment.from_bytes(proof.public_inputs.commitment),
            minimum_age=Age(proof.minimum_age),
            validity=validity,
        )
        logger.info(
            "registered age proof as record %s (minimum age %d)",
            record.id,
            proof.minimum_age,
        )
        return record

    async def create_verification(
        self,
        actual_age: int,
        minimum_age: int,
        secret: str,
        *,
        validity: timedelta | None = None,
    ) -> VerificationRecord:
        """Attest a declared age through the delegated backend and record it.

        Raises
        ------
        ConfigurationError
            If the service has no cryptographic backend.
        AgeRequirementNotMetError
            If *actual_age* is below *minimum_age*.
        DuplicateProofError
            If the backend produced an already-registered commitment.
        """
        backend = self._require_backend()
        actual, minimum = Age(actual_age), Age(minimum_age)
        if not self.validate_age_requirement(actual, minimum):
            raise AgeRequirementNotMetError(minimum.value)

        commitment = await backend.generate_age_proof(actual, minimum, secret)
        return await self._insert(
            commitment=commitment, minimum_age=minimum, validity=validity
        )

    async def get_verification(self, record_id: str) -> VerificationRecord | None:
        return await self._repository.find_by_id(record_id)

    async def check_verification(
        self, commitment: str, minimum_age: int | None = None
    ) -> bool:
        """Return ``True`` if *commitment* is registered, trusted and old enough.

        *minimum_age* defaults to ``settings.default_minimum_age``. When a
        backend is configured, backend-issued commitments must also carry a
        valid attestation tag for their recorded minimum age.
        """
        if minimum_age is None:
            minimum_age = self._settings.default_minimum_age
        requested = Age(minimum_age)
        record = await self._repository.find_by_commitment(commitment)
        if record is None:
            return False

        if self._backend is not None and commitment.startswith(HMAC_COMMITMENT_PREFIX):
            if not await self._backend.verify_age_proof(
                record.commitment, record.minimum_age
            ):
                return False

        if record.minimum_age.value < requested.value:
            return False
        return self.can_trust(record)

    async def revoke_verification(self, record_id: str) -> VerificationRecord:
        """Revoke a record.

        Raises
        ------
        RecordNotFoundError
            If no record has *record_id*.
        InvalidTransitionError
            If the record is already revoked.
        """
        record = await self._repository.find_by_id(record_id)
        if record is None:
            raise RecordNotFoundError(f"verification record {record_id!r} not found")
        record.revoke(self._now())
        await self._repository.update(record)
        return record

    @staticmethod
    def validate_age_requirement(actual_age: Age, minimum_age: Age) -> bool:
        return actual_age.value >= minimum_age.value

    def can_trust(self, record: VerificationRecord) -> bool:
        """A record can be trusted while it is neither expired nor revoked."""
        return record.is_valid(self._now())

    async def _insert(
        self,
        *,
        commitment: ProofCommitment,
        minimum_age: Age,
        validity: timedelta | None,
    ) -> VerificationRecord:
        issued_at = self._now()
        record_id = (
            await self._backend.generate_secure_id()
            if self._backend is not None
            else str(uuid.uuid4())
        )
        record = VerificationRecord(
            id=record_id,
            commitment=commitment,
            minimum_age=minimum_age,
            issued_at=issued_at,
            expires_at=issued_at + (validity or self._settings.record_validity),
        )
        if not await self._repository.save_if_absent(record):
            raise DuplicateProofError("proof commitment is already registered")
        return record

    def _require_backend(self) -> CryptographicBackend:
        if self._backend is None:
            raise ConfigurationError(
                "AgeVerificationService: no cryptographic backend configured"
            )
        return self._backend

    def _now(self) -> Timestamp:
        return Timestamp.now(self._clock)
