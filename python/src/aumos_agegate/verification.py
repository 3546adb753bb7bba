# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""Proof verification: the relying party's trust store and verifier.

This module is the *consumption* counterpart to :mod:`proof`. The verifier
depends only on public issuer configuration; no private key ever reaches it.

``Verifier.verify``
    Full verification of an :class:`~types.AgeProof`: structure, issuer
    trust, date format, freshness and the cryptographic proof. Never
    raises; every failure becomes ``VerificationResult(is_valid=False)``.

``TrustStore``
    Thread-safe mapping from issuer ``did:key`` to
    :class:`~types.IssuerPublicConfig`.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from .config import DEFAULT_SETTINGS, AgeGateSettings
from .did import is_key_id
from .primitives import format_timestamp, normalize_utc, parse_timestamp, utcnow
from .proof import proof_from_dict
from .proof_system import HashChainProofSystem, ProofSystem
from .types import (
    AgeProof,
    CryptographicError,
    FormatError,
    IssuerPublicConfig,
    ProofVerificationError,
    PublicInputs,
    StalenessError,
    StructuralError,
    TrustError,
    VerificationFailure,
    VerificationResult,
)

logger = logging.getLogger(__name__)


class TrustStore:
    """Issuer public configurations keyed by issuer public key.

    Entries are immutable, so a reader sees either the old or the new
    configuration of an issuer, never a mix. All mutations happen under a
    lock and report whether they changed the store.
    """

    def __init__(self, issuers: Iterable[IssuerPublicConfig] = ()) -> None:
        self._lock = threading.RLock()
        self._issuers: dict[str, IssuerPublicConfig] = {}
        for issuer in issuers:
            self.add(issuer)

    def add(self, config: IssuerPublicConfig) -> bool:
        """Insert or replace the entry for ``config.public_key``.

        Returns ``True`` if the store changed, ``False`` if an identical
        entry was already present.

        Raises
        ------
        ValueError
            If ``config.public_key`` is not an Ed25519 ``did:key``.
        """
        if not is_key_id(config.public_key):
            raise ValueError(
                f"TrustStore.add: {config.id!r} has no valid Ed25519 did:key public key"
            )
        with self._lock:
            if self._issuers.get(config.public_key) == config:
                return False
            self._issuers[config.public_key] = config
        logger.info("trusted issuer %s (%s)", config.id, config.name)
        return True

    def remove(self, public_key: str) -> bool:
        """Remove an issuer. Returns ``False`` if it was not present."""
        with self._lock:
            removed = self._issuers.pop(public_key, None)
        if removed is None:
            return False
        logger.info("removed trusted issuer %s", removed.id)
        return True

    def get(self, public_key: str) -> IssuerPublicConfig | None:
        with self._lock:
            return self._issuers.get(public_key)

    def list(self) -> list[IssuerPublicConfig]:
        """Snapshot of all trusted issuers."""
        with self._lock:
            return list(self._issuers.values())

    def __contains__(self, public_key: object) -> bool:
        with self._lock:
            return public_key in self._issuers

    def __len__(self) -> int:
        with self._lock:
            return len(self._issuers)


class Verifier:
    """Verifies age proofs against a set of trusted issuers.

    Parameters
    ----------
    trusted_issuers:
        Initial issuer configurations. Ignored when *trust_store* is given.
    trust_store:
        A shared :class:`TrustStore`, e.g. one fed by
        :class:`~client.IssuerDirectoryClient`.
    settings:
        Protocol settings; the freshness window and clock skew come from here.
    proof_system:
        Backend verifying the proof bytes. Must match the issuer's backend.
    clock:
        Callable returning the current UTC time.

    Examples
    --------
    >>> verifier = Verifier([issuer.get_public_config()])
    >>> result = verifier.verify(proof)
    >>> result.is_valid, result.minimum_age
    (True, 18)
    """

    def __init__(
        self,
        trusted_issuers: Iterable[IssuerPublicConfig] = (),
        *,
        trust_store: TrustStore | None = None,
        settings: AgeGateSettings = DEFAULT_SETTINGS,
        proof_system: ProofSystem | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._trust_store = trust_store if trust_store is not None else TrustStore(trusted_issuers)
        self._settings = settings
        self._proof_system = proof_system or HashChainProofSystem()
        self._clock = clock

    @property
    def trust_store(self) -> TrustStore:
        return self._trust_store

    def add_trusted_issuer(self, config: IssuerPublicConfig) -> bool:
        """Trust *config*; upserts by public key. See :meth:`TrustStore.add`."""
        return self._trust_store.add(config)

    def remove_trusted_issuer(self, public_key: str) -> bool:
        """Stop trusting the issuer with *public_key*."""
        return self._trust_store.remove(public_key)

    def list_trusted_issuers(self) -> list[IssuerPublicConfig]:
        return self._trust_store.list()

    def is_trusted(self, public_key: str) -> bool:
        return public_key in self._trust_store

    def verify(self, proof: AgeProof | None) -> VerificationResult:
        """Verify an age proof.

        Checks run in order and stop at the first failure:

        1. Structure of the proof and its public inputs.
        2. The issuer is in the trust store.
        3. The verification date parses.
        4. The proof and its verification date are fresh.
        5. The cryptographic proof holds for the public inputs.

        Returns
        -------
        VerificationResult
            Always returned; this method never raises. ``error`` and
            ``error_code`` identify the failed check without revealing
            anything about the hidden birth date.
        """
        verified_at = normalize_utc(self._clock())
        minimum_age = getattr(proof, "minimum_age", None)
        if isinstance(minimum_age, bool) or not isinstance(minimum_age, int):
            minimum_age = None

        try:
            self._check(proof, verified_at)
        except ProofVerificationError as exc:
            logger.warning("age proof rejected: %s (%s)", exc, exc.code.value)
            return VerificationResult(
                is_valid=False,
                minimum_age=minimum_age,
                verified_at=verified_at,
                error=str(exc),
                error_code=exc.code,
            )
        except Exception:
            logger.exception("age proof verification failed unexpectedly")
            return VerificationResult(
                is_valid=False,
                minimum_age=minimum_age,
                verified_at=verified_at,
                error="Malformed proof",
                error_code=VerificationFailure.STRUCTURAL,
            )

        logger.debug("age proof accepted (minimum age %s)", minimum_age)
        return VerificationResult(
            is_valid=True, minimum_age=minimum_age, verified_at=verified_at
        )

    def verify_dict(self, raw: object) -> VerificationResult:
        """Parse a wire-form proof and verify it. Never raises."""
        try:
            proof = proof_from_dict(raw)
        except StructuralError as exc:
            minimum_age = raw.get("minimumAge") if isinstance(raw, dict) else None
            return VerificationResult(
                is_valid=False,
                minimum_age=(
                    minimum_age
                    if isinstance(minimum_age, int) and not isinstance(minimum_age, bool)
                    else None
                ),
                verified_at=normalize_utc(self._clock()),
                error=f"Malformed proof: {exc}",
                error_code=VerificationFailure.STRUCTURAL,
            )
        return self.verify(proof)

    def _check(self, proof: AgeProof | None, now: datetime) -> None:
        # --- Step 1: Structure. ---
        inputs = _check_structure(proof, self._settings.max_age_years)

        # --- Step 2: Issuer trust. ---
        if inputs.issuer_public_key not in self._trust_store:
            raise TrustError("Issuer is not trusted")

        # --- Step 3: Verification date format. ---
        try:
            verification_date = parse_timestamp(inputs.verification_date)
        except ValueError:
            raise FormatError("Invalid verification date") from None

        # --- Step 4: Freshness. ---
        freshness = self._settings.proof_freshness
        skew = self._settings.clock_skew
        generated_at = normalize_utc(proof.generated_at)
        if now - generated_at > freshness:
            raise StalenessError(
                f"Proof is too old (max {_describe(freshness)})"
            )
        if generated_at - now > skew or verification_date - now > skew:
            raise StalenessError("Proof timestamp is in the future")
        if now - verification_date > freshness:
            raise StalenessError("Proof verification date is too old")

        # --- Step 5: Cryptographic proof. ---
        valid = self._proof_system.verify_proof(
            proof.proof,
            commitment=inputs.commitment,
            minimum_age=proof.minimum_age,
            verification_date=inputs.verification_date,
            generated_at=format_timestamp(generated_at),
            issuer_public_key=inputs.issuer_public_key,
        )
        if not valid:
            raise CryptographicError("Cryptographic proof verification failed")


def _check_structure(proof: object, max_age: int) -> PublicInputs:
    if proof is None:
        raise StructuralError("Proof is required")
    if not isinstance(proof, AgeProof):
        raise StructuralError("Proof has an unexpected type")
    if not isinstance(proof.proof, bytes) or not proof.proof:
        raise StructuralError("Invalid proof data")
    age = proof.minimum_age
    if isinstance(age, bool) or not isinstance(age, int) or not 0 <= age <= max_age:
        raise StructuralError("Invalid minimum age")

    inputs = proof.public_inputs
    if not isinstance(inputs, PublicInputs):
        raise StructuralError("Public inputs are required")
    if not isinstance(inputs.commitment, bytes) or not inputs.commitment:
        raise StructuralError("Commitment is required")
    if not isinstance(inputs.verification_date, str) or not inputs.verification_date:
        raise StructuralError("Verification date is required")
    if not isinstance(inputs.issuer_public_key, str) or not inputs.issuer_public_key:
        raise StructuralError("Issuer public key is required")
    if not isinstance(proof.generated_at, datetime):
        raise StructuralError("Invalid proof generation timestamp")
    return inputs


def _describe(window: timedelta) -> str:
    seconds = int(window.total_seconds())
    if seconds % 3600 == 0:
        hours = seconds // 3600
        return f"{hours} hour" + ("s" if hours != 1 else "")
    minutes = seconds // 60
    return f"{minutes} minute" + ("s" if minutes != 1 else "")
