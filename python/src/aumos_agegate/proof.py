# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""Holder-side proof generation and the AgeProof wire format.

:class:`ProofGenerator` turns a credential into an :class:`~types.AgeProof`
for one relying party. Every call draws a fresh blinding factor and spends
a fresh anchor, so two proofs from the same credential share no public
value.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

from .config import DEFAULT_SETTINGS, AgeGateSettings
from .primitives import (
    age_in_years,
    b64url_decode,
    b64url_encode,
    commit,
    format_timestamp,
    normalize_utc,
    parse_timestamp,
    random_blinding_factor,
    start_of_day,
    utcnow,
)
from .proof_system import HashChainProofSystem, ProofSystem
from .types import (
    AgeAnchor,
    AgeProof,
    AgeRequirementNotMetError,
    Credential,
    CredentialExhaustedError,
    ExpiredCredentialError,
    InvalidAgeError,
    InvalidCredentialError,
    MissingCredentialError,
    PublicInputs,
    StructuralError,
    TemporalOrderError,
)

logger = logging.getLogger(__name__)


class ProofGenerator:
    """Creates age proofs from credentials held in a wallet.

    Spent anchors are recorded in the credential's
    :class:`~types.PresentationLedger`, not in the generator, so any number
    of generators may serve the same wallet and no anchor is presented
    twice. Persist the credential with :func:`~credential.credential_to_dict`
    after each proof to keep that state across restarts. Safe to call from
    several threads.

    Parameters
    ----------
    settings:
        Protocol settings; ``max_age_years`` bounds the minimum age and
        ``default_minimum_age`` is used when no threshold is given.
    proof_system:
        Backend deriving the proof bytes. Must match the issuer's backend.
    clock:
        Callable returning the current UTC time.
    """

    def __init__(
        self,
        *,
        settings: AgeGateSettings = DEFAULT_SETTINGS,
        proof_system: ProofSystem | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._settings = settings
        self._proof_system = proof_system or HashChainProofSystem()
        self._clock = clock

    def generate_proof(
        self,
        credential: Credential | None,
        minimum_age: int | None = None,
        verification_date: datetime | None = None,
    ) -> AgeProof:
        """Prove that the credential holder is at least *minimum_age* years old.

        Parameters
        ----------
        credential:
            The holder's credential.
        minimum_age:
            Threshold to prove, an integer between 0 and ``max_age_years``.
            Defaults to ``settings.default_minimum_age``.
        verification_date:
            Date at which the age is evaluated. Defaults to now. A
            :class:`~verification.Verifier` rejects a proof whose
            verification date is more than ``proof_freshness`` older than its
            own clock, or more than ``clock_skew`` ahead of it. Back-dated
            and post-dated proofs are therefore only useful to verifiers
            running with a matching clock.

        Returns
        -------
        AgeProof

        Raises
        ------
        MissingCredentialError
            If *credential* is ``None``.
        InvalidAgeError
            If *minimum_age* is not an integer in range.
        InvalidCredentialError
            If the credential lacks a birth date, signature, issuer key or anchors.
        TemporalOrderError
            If the verification date precedes the birth date.
        ExpiredCredentialError
            If the credential has expired at the verification date.
        AgeRequirementNotMetError
            If the holder is younger than *minimum_age*.
        CredentialExhaustedError
            If every anchor of the credential has already been presented.
        """
        if credential is None:
            raise MissingCredentialError("credential is required")

        if minimum_age is None:
            minimum_age = self._settings.default_minimum_age
        max_age = self._settings.max_age_years
        if (
            isinstance(minimum_age, bool)
            or not isinstance(minimum_age, int)
            or not 0 <= minimum_age <= max_age
        ):
            raise InvalidAgeError(f"minimum age must be an integer between 0 and {max_age}")

        _check_credential(credential)

        when = normalize_utc(verification_date or self._clock())
        if when < start_of_day(credential.birth_date):
            raise TemporalOrderError("verification date cannot be before the birth date")

        if credential.expires_at is not None and when > normalize_utc(credential.expires_at):
            raise ExpiredCredentialError("credential has expired")

        if age_in_years(credential.birth_date, when) < minimum_age:
            raise AgeRequirementNotMetError(minimum_age)

        anchor = self._reserve_anchor(credential)

        commitment = commit(credential.birth_date.isoformat(), random_blinding_factor())
        generated_at = normalize_utc(self._clock())
        verification_str = format_timestamp(when)
        try:
            proof_bytes = self._proof_system.derive_proof(
                birth_date=credential.birth_date,
                anchor=anchor,
                minimum_age=minimum_age,
                commitment=commitment,
                verification_date=verification_str,
                generated_at=format_timestamp(generated_at),
                issuer_public_key=credential.issuer_public_key,
            )
        except ValueError as exc:
            raise ExpiredCredentialError(str(exc)) from exc

        logger.debug(
            "generated age proof for credential %s (minimum age %d, anchor %d)",
            credential.id,
            minimum_age,
            anchor.index,
        )
        return AgeProof(
            minimum_age=minimum_age,
            proof=proof_bytes,
            public_inputs=PublicInputs(
                commitment=commitment,
                verification_date=verification_str,
                issuer_public_key=credential.issuer_public_key,
            ),
            generated_at=generated_at,
        )

    def remaining_presentations(self, credential: Credential) -> int:
        """Number of anchors of *credential* not yet presented."""
        return credential.presentations.remaining(a.index for a in credential.anchors)

    def _reserve_anchor(self, credential: Credential) -> AgeAnchor:
        index = credential.presentations.claim(a.index for a in credential.anchors)
        if index is None:
            raise CredentialExhaustedError(
                "every presentation anchor of this credential has been used; "
                "request a new credential"
            )
        return next(a for a in credential.anchors if a.index == index)


# ------------------------------------------------------------------
# Wire format
# ------------------------------------------------------------------


def proof_to_dict(proof: AgeProof) -> dict[str, Any]:
    """Serialize a proof to its JSON wire shape."""
    return {
        "minimumAge": proof.minimum_age,
        "proof": b64url_encode(proof.proof),
        "publicInputs": {
            "commitment": proof.public_inputs.commitment.hex(),
            "verificationDate": proof.public_inputs.verification_date,
            "issuerPublicKey": proof.public_inputs.issuer_public_key,
        },
        "generatedAt": format_timestamp(proof.generated_at),
    }


def proof_from_dict(raw: object) -> AgeProof:
    """Parse a JSON-decoded wire proof.

    Only the shape is checked here; the verifier applies every other rule.

    Raises
    ------
    StructuralError
        If a field is missing or has the wrong type or encoding.
    """
    if not isinstance(raw, dict):
        raise StructuralError("proof must be an object")

    minimum_age = raw.get("minimumAge")
    if isinstance(minimum_age, bool) or not isinstance(minimum_age, int):
        raise StructuralError("minimumAge must be an integer")

    inputs = raw.get("publicInputs")
    if not isinstance(inputs, dict):
        raise StructuralError("publicInputs are required")

    for name, value in (
        ("proof", raw.get("proof")),
        ("generatedAt", raw.get("generatedAt")),
        ("publicInputs.commitment", inputs.get("commitment")),
        ("publicInputs.verificationDate", inputs.get("verificationDate")),
        ("publicInputs.issuerPublicKey", inputs.get("issuerPublicKey")),
    ):
        if not isinstance(value, str):
            raise StructuralError(f"{name} must be a string")

    try:
        proof_bytes = b64url_decode(raw["proof"])
    except ValueError:
        raise StructuralError("proof must be base64url") from None
    try:
        commitment = bytes.fromhex(inputs["commitment"])
    except ValueError:
        raise StructuralError("publicInputs.commitment must be hex") from None
    try:
        generated_at = parse_timestamp(raw["generatedAt"])
    except ValueError:
        raise StructuralError("generatedAt must be an ISO 8601 timestamp") from None

    return AgeProof(
        minimum_age=minimum_age,
        proof=proof_bytes,
        public_inputs=PublicInputs(
            commitment=commitment,
            verification_date=inputs["verificationDate"],
            issuer_public_key=inputs["issuerPublicKey"],
        ),
        generated_at=generated_at,
    )


def _check_credential(credential: Credential) -> None:
    birth = getattr(credential, "birth_date", None)
    if not isinstance(birth, date) or isinstance(birth, datetime):
        raise InvalidCredentialError("invalid credential: birth date must be a date")
    if not credential.issuer_signature or not credential.issuer_public_key:
        raise InvalidCredentialError(
            "invalid credential: missing signature or issuer public key"
        )
    if not credential.anchors:
        raise InvalidCredentialError("invalid credential: no presentation anchors")
