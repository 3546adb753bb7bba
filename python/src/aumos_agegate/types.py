# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""Shared value types and exceptions for the aumos-age-proof SDK."""

from __future__ import annotations

import secrets
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class DIDMethod(str, Enum):
    """Supported issuer DID methods."""

    WEB = "web"
    KEY = "key"


class KeyAlgorithm(str, Enum):
    """Signature algorithm used by issuer and presentation keys."""

    ED25519 = "Ed25519"


class VerificationFailure(str, Enum):
    """Category of a failed proof verification."""

    STRUCTURAL = "structural"
    TRUST = "trust"
    FORMAT = "format"
    STALENESS = "staleness"
    CRYPTOGRAPHIC = "cryptographic"


@dataclass(frozen=True)
class KeyPair:
    """An Ed25519 key pair as raw 32-byte values."""

    public_key: bytes
    private_key: bytes = field(repr=False)
    algorithm: KeyAlgorithm = KeyAlgorithm.ED25519


@dataclass(frozen=True)
class IssuerPublicConfig:
    """Public view of an issuer, as held in a verifier trust store."""

    id: str
    name: str
    # did:key identifier of the issuer's Ed25519 public key.
    public_key: str


@dataclass(frozen=True)
class AgeAnchor:
    """A one-time, issuer-signed starting point for an age presentation.

    The public half (``reference_day``, ``tip``, ``presentation_key``,
    ``signature``) travels inside proofs. ``seed`` and
    ``presentation_private_key`` stay in the holder's wallet.
    """

    index: int
    # Proleptic Gregorian ordinal of the day the hash chain is anchored to.
    reference_day: int
    tip: bytes
    presentation_key: bytes
    signature: bytes
    seed: bytes = field(repr=False)
    presentation_private_key: bytes = field(repr=False)


class PresentationLedger:
    """Indices of a credential's anchors that have already been presented.

    The ledger is wallet state: every copy of a credential made with
    :func:`dataclasses.replace` shares it, and the wallet serializer
    persists it as ``spentAnchors``. Claims are serialized by a lock.
    """

    def __init__(self, spent: Iterable[int] = ()) -> None:
        self._lock = threading.Lock()
        self._spent: set[int] = set(spent)

    def spent(self) -> frozenset[int]:
        with self._lock:
            return frozenset(self._spent)

    def remaining(self, indices: Iterable[int]) -> int:
        with self._lock:
            return sum(1 for index in indices if index not in self._spent)

    def claim(self, indices: Iterable[int]) -> int | None:
        """Mark a random unspent index of *indices* as spent and return it.

        Returns ``None`` when every index is already spent.
        """
        with self._lock:
            available = [index for index in indices if index not in self._spent]
            if not available:
                return None
            index = secrets.choice(available)
            self._spent.add(index)
            return index

    def __repr__(self) -> str:
        return f"PresentationLedger(spent={sorted(self.spent())!r})"


@dataclass(frozen=True)
class Credential:
    """Issuer-signed statement binding a birth date to its holder.

    ``presentations`` is holder state and is not covered by the issuer
    signature.
    """

    id: str
    birth_date: date
    issuer_public_key: str
    # Base64url-encoded Ed25519 signature over the canonical credential.
    issuer_signature: str
    issued_at: datetime
    expires_at: datetime | None = None
    anchors: tuple[AgeAnchor, ...] = ()
    presentations: PresentationLedger = field(
        default_factory=PresentationLedger, compare=False, repr=False
    )


@dataclass(frozen=True)
class PublicInputs:
    """Values a verifier sees alongside the opaque proof bytes."""

    commitment: bytes
    # ISO 8601 UTC timestamp, second precision, ``Z`` suffix.
    verification_date: str
    issuer_public_key: str


@dataclass(frozen=True)
class AgeProof:
    """Presentation that the holder is at least ``minimum_age`` years old."""

    minimum_age: int
    proof: bytes
    public_inputs: PublicInputs
    generated_at: datetime


@dataclass(frozen=True)
class VerificationResult:
    """Result returned by :meth:`Verifier.verify`."""

    is_valid: bool
    minimum_age: int | None
    verified_at: datetime
    # Populated when is_valid is False.
    error: str | None = None
    error_code: VerificationFailure | None = None


# ------------------------------------------------------------------
# Exceptions
# ------------------------------------------------------------------


class AgeGateError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(AgeGateError):
    """Raised when a component is constructed without usable configuration."""


class InvalidInputError(AgeGateError, ValueError):
    """Raised for a malformed or out-of-range date or age."""


# --- Proof generation (holder side) ---


class ProofGenerationError(AgeGateError):
    """Base class for failures of :meth:`ProofGenerator.generate_proof`."""


class MissingCredentialError(ProofGenerationError):
    """Raised when no credential is supplied."""


class InvalidAgeError(ProofGenerationError, InvalidInputError):
    """Raised when the minimum age is not an integer between 0 and 150."""


class InvalidCredentialError(ProofGenerationError):
    """Raised when a credential is structurally unusable."""


class TemporalOrderError(ProofGenerationError):
    """Raised when the verification date precedes the birth date."""


class ExpiredCredentialError(ProofGenerationError):
    """Raised when the credential has expired at the verification date."""


class AgeRequirementNotMetError(ProofGenerationError):
    """Raised when the holder is younger than the requested minimum age."""

    def __init__(self, minimum_age: int) -> None:
        self.minimum_age = minimum_age
        super().__init__(
            f"holder does not meet minimum age requirement of {minimum_age}"
        )


class CredentialExhaustedError(ProofGenerationError):
    """Raised when every presentation anchor of a credential has been used."""


# --- Proof verification (relying-party side, folded into results) ---


class ProofVerificationError(AgeGateError):
    """Base class for verification failures.

    Never escapes :meth:`Verifier.verify`; each subclass maps to one
    :class:`VerificationFailure` code.
    """

    code: VerificationFailure = VerificationFailure.STRUCTURAL


class StructuralError(ProofVerificationError):
    """Raised when a proof is malformed."""

    code = VerificationFailure.STRUCTURAL


class TrustError(ProofVerificationError):
    """Raised when the proof's issuer is absent from the trust store."""

    code = VerificationFailure.TRUST


class FormatError(ProofVerificationError):
    """Raised when a public input cannot be parsed."""

    code = VerificationFailure.FORMAT


class StalenessError(ProofVerificationError):
    """Raised when a proof falls outside the freshness window."""

    code = VerificationFailure.STALENESS


class CryptographicError(ProofVerificationError):
    """Raised when a signature or proof check fails."""

    code = VerificationFailure.CRYPTOGRAPHIC


# --- Verification records ---


class RegistryError(AgeGateError):
    """Base class for verification-record failures."""


class DuplicateProofError(RegistryError):
    """Raised when a proof commitment is already registered."""


class RecordNotFoundError(RegistryError):
    """Raised when a verification record does not exist."""


class InvalidTransitionError(RegistryError):
    """Raised on a forbidden verification-record status change."""


class ProofRejectedError(RegistryError):
    """Raised when a proof submitted for registration fails verification."""

    def __init__(self, result: VerificationResult) -> None:
        self.result = result
        super().__init__(f"proof rejected: {result.error}")


# --- Issuer directory ---


class IssuerDirectoryError(AgeGateError):
    """Raised when an issuer directory returns a non-2xx response."""

    def __init__(self, status_code: int, endpoint: str, message: str) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(
            f"IssuerDirectory [{status_code}] {endpoint}: {message}"
        )


class IssuerResolutionError(AgeGateError):
    """Raised when an issuer DID cannot be resolved to a public key."""


class UnsupportedDIDMethodError(IssuerResolutionError):
    """Raised when a DID method is not supported."""
