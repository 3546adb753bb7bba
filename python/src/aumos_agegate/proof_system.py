# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""Proof systems for the statement "the committed holder is at least N years old".

:class:`ProofSystem` is the contract every backend satisfies. Issuers call
:meth:`~ProofSystem.create_anchors` while issuing a credential, holders call
:meth:`~ProofSystem.derive_proof`, verifiers call
:meth:`~ProofSystem.verify_proof`. A SNARK backend can replace the default
without touching the issuer, generator or verifier.

Hash-chain construction
-----------------------
:class:`HashChainProofSystem` proves an upper bound on a hidden birth day
with a one-way hash chain:

- Each credential carries several *anchors*. For anchor ``i`` the issuer
  draws a random ``seed`` and a fresh Ed25519 *presentation key*, computes
  ``tip = H^x(seed)`` with ``x = reference_day - birth_day`` and signs
  ``(issuer, reference_day, tip, presentation_key)``. The birth date is not
  part of anything the issuer signs for an anchor. ``reference_day`` is the
  last day of the expiry year (:func:`reference_day_for_expiry`), shared by
  every credential expiring that year.
- To show ``birth_day <= cutoff`` (the latest birth day that is old enough at
  the verification date) the holder reveals ``link = H^(cutoff - birth_day)(seed)``.
  The verifier checks ``H^(reference_day - cutoff)(link) == tip``. Going
  the other way would require inverting SHA-256, so a younger holder cannot
  produce a link, and the link reveals nothing about how far below the
  cutoff the birth day lies.
- The presentation key signs the per-proof transcript (commitment, minimum
  age, dates, issuer, link), binding the proof to its public inputs.

Anchors are single use: the tip, the presentation key and the issuer
signature are the same every time an anchor is shown, so the holder spends
one anchor per proof to keep presentations unlinkable.
"""

from __future__ import annotations

import hmac
import json
import logging
from datetime import date, datetime
from typing import Any, Protocol

from .config import MAX_CHAIN_DAYS
from .did import public_key_from_key_id
from .primitives import (
    b64url_decode,
    b64url_encode,
    generate_key_pair,
    hash_chain,
    latest_qualifying_birth_day,
    parse_timestamp,
    random_blinding_factor,
    sign,
    verify_signature,
)
from .types import AgeAnchor

logger = logging.getLogger(__name__)

_ANCHOR_TAG = b"aumos-agegate/v1/anchor\x00"
_PRESENTATION_TAG = b"aumos-agegate/v1/presentation\x00"

PROOF_FORMAT_VERSION = 1


class ProofSystem(Protocol):
    """Contract between credential issuance, proof generation and verification."""

    def create_anchors(
        self,
        *,
        birth_date: date,
        reference_day: int,
        issuer_public_key: str,
        issuer_private_key: bytes,
        count: int,
    ) -> tuple[AgeAnchor, ...]:
        """Create *count* issuer-signed presentation anchors for a credential."""
        ...

    def derive_proof(
        self,
        *,
        birth_date: date,
        anchor: AgeAnchor,
        minimum_age: int,
        commitment: bytes,
        verification_date: str,
        generated_at: str,
        issuer_public_key: str,
    ) -> bytes:
        """Return opaque proof bytes; raise ``ValueError`` if the statement is false."""
        ...

    def verify_proof(
        self,
        proof: bytes,
        *,
        commitment: bytes,
        minimum_age: int,
        verification_date: str,
        generated_at: str,
        issuer_public_key: str,
    ) -> bool:
        """Return ``True`` only for a proof of the stated public inputs."""
        ...


class HashChainProofSystem:
    """Default :class:`ProofSystem`: hash-chain range proofs over signed anchors."""

    def create_anchors(
        self,
        *,
        birth_date: date,
        reference_day: int,
        issuer_public_key: str,
        issuer_private_key: bytes,
        count: int,
    ) -> tuple[AgeAnchor, ...]:
        span = reference_day - birth_date.toordinal()
        if not 0 <= span <= MAX_CHAIN_DAYS:
            raise ValueError(
                f"create_anchors: chain span of {span} days is outside "
                f"0..{MAX_CHAIN_DAYS}"
            )
        if count < 1:
            raise ValueError(f"create_anchors: count must be positive, got {count}")

        anchors = []
        for index in range(count):
            seed = random_blinding_factor()
            presentation = generate_key_pair()
            tip = hash_chain(seed, span)
            signature = sign(
                anchor_signing_bytes(
                    issuer_public_key, reference_day, tip, presentation.public_key
                ),
                issuer_private_key,
            )
            anchors.append(
                AgeAnchor(
                    index=index,
                    reference_day=reference_day,
                    tip=tip,
                    presentation_key=presentation.public_key,
                    signature=signature,
                    seed=seed,
                    presentation_private_key=presentation.private_key,
                )
            )
        return tuple(anchors)

    def derive_proof(
        self,
        *,
        birth_date: date,
        anchor: AgeAnchor,
        minimum_age: int,
        commitment: bytes,
        verification_date: str,
        generated_at: str,
        issuer_public_key: str,
    ) -> bytes:
        cutoff = latest_qualifying_birth_day(
            parse_timestamp(verification_date), minimum_age
        )
        remaining = anchor.reference_day - cutoff
        steps = cutoff - birth_date.toordinal()
        if steps < 0:
            raise ValueError("derive_proof: age statement does not hold")
        if remaining < 0:
            raise ValueError("derive_proof: anchor does not cover the verification date")

        link = hash_chain(anchor.seed, steps)
        binding = sign(
            presentation_signing_bytes(
                commitment=commitment,
                minimum_age=minimum_age,
                verification_date=verification_date,
                generated_at=generated_at,
                issuer_public_key=issuer_public_key,
                reference_day=anchor.reference_day,
                tip=anchor.tip,
                link=link,
            ),
            anchor.presentation_private_key,
        )
        document = {
            "v": PROOF_FORMAT_VERSION,
            "anchor": {
                "referenceDay": anchor.reference_day,
                "tip": b64url_encode(anchor.tip),
                "key": b64url_encode(anchor.presentation_key),
                "sig": b64url_encode(anchor.signature),
            },
            "link": b64url_encode(link),
            "binding": b64url_encode(binding),
        }
        return _canonical_json(document)

    def verify_proof(
        self,
        proof: bytes,
        *,
        commitment: bytes,
        minimum_age: int,
        verification_date: str,
        generated_at: str,
        issuer_public_key: str,
    ) -> bool:
        decoded = _decode_proof(proof)
        if decoded is None:
            logger.debug("verify_proof: undecodable proof bytes")
            return False

        try:
            issuer_key = public_key_from_key_id(issuer_public_key)
            verified_on = parse_timestamp(verification_date)
        except ValueError:
            return False

        if not verify_signature(
            anchor_signing_bytes(
                issuer_public_key, decoded.reference_day, decoded.tip, decoded.key
            ),
            decoded.anchor_signature,
            issuer_key,
        ):
            return False

        if verified_on.date().toordinal() > decoded.reference_day:
            return False

        if not verify_signature(
            presentation_signing_bytes(
                commitment=commitment,
                minimum_age=minimum_age,
                verification_date=verification_date,
                generated_at=generated_at,
                issuer_public_key=issuer_public_key,
                reference_day=decoded.reference_day,
                tip=decoded.tip,
                link=decoded.link,
            ),
            decoded.binding,
            decoded.key,
        ):
            return False

        remaining = decoded.reference_day - latest_qualifying_birth_day(
            verified_on, minimum_age
        )
        if not 0 <= remaining <= MAX_CHAIN_DAYS:
            return False

        return hmac.compare_digest(hash_chain(decoded.link, remaining), decoded.tip)


# ------------------------------------------------------------------
# Reference day
# ------------------------------------------------------------------


def reference_day_for_expiry(expires_at: datetime) -> int:
    """Ordinal of the last day of the calendar year in which *expires_at* falls.

    Every credential expiring in the same year shares this value, so the
    reference day in a proof only discloses the expiry year.
    """
    return date(expires_at.year, 12, 31).toordinal()


# ------------------------------------------------------------------
# Signed byte strings
# ------------------------------------------------------------------


def anchor_signing_bytes(
    issuer_public_key: str, reference_day: int, tip: bytes, presentation_key: bytes
) -> bytes:
    """Bytes the issuer signs for one anchor."""
    return _ANCHOR_TAG + _canonical_json(
        {
            "issuer": issuer_public_key,
            "referenceDay": reference_day,
            "tip": b64url_encode(tip),
            "key": b64url_encode(presentation_key),
        }
    )


def presentation_signing_bytes(
    *,
    commitment: bytes,
    minimum_age: int,
    verification_date: str,
    generated_at: str,
    issuer_public_key: str,
    reference_day: int,
    tip: bytes,
    link: bytes,
) -> bytes:
    """Bytes the presentation key signs for one proof."""
    return _PRESENTATION_TAG + _canonical_json(
        {
            "commitment": commitment.hex(),
            "minimumAge": minimum_age,
            "verificationDate": verification_date,
            "generatedAt": generated_at,
            "issuer": issuer_public_key,
            "referenceDay": reference_day,
            "tip": b64url_encode(tip),
            "link": b64url_encode(link),
        }
    )


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


class _DecodedProof:
    __slots__ = ("reference_day", "tip", "key", "anchor_signature", "link", "binding")

    def __init__(
        self,
        reference_day: int,
        tip: bytes,
        key: bytes,
        anchor_signature: bytes,
        link: bytes,
        binding: bytes,
    ) -> None:
        self.reference_day = reference_day
        self.tip = tip
        self.key = key
        self.anchor_signature = anchor_signature
        self.link = link
        self.binding = binding


def _decode_proof(proof: bytes) -> _DecodedProof | None:
    """Parse proof bytes produced by :meth:`HashChainProofSystem.derive_proof`."""
    try:
        raw = json.loads(proof.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    if not isinstance(raw, dict) or raw.get("v") != PROOF_FORMAT_VERSION:
        return None
    anchor = raw.get("anchor")
    if not isinstance(anchor, dict):
        return None
    reference_day = anchor.get("referenceDay")
    if isinstance(reference_day, bool) or not isinstance(reference_day, int):
        return None

    fields: dict[str, Any] = {
        "tip": anchor.get("tip"),
        "key": anchor.get("key"),
        "anchor_signature": anchor.get("sig"),
        "link": raw.get("link"),
        "binding": raw.get("binding"),
    }
    decoded: dict[str, bytes] = {}
    for name, value in fields.items():
        if not isinstance(value, str):
            return None
        try:
            decoded[name] = b64url_decode(value)
        except ValueError:
            return None
    return _DecodedProof(reference_day=reference_day, **decoded)


def _canonical_json(doc: dict[str, Any]) -> bytes:
    return json.dumps(
        doc, separators=(",", ":"), sort_keys=True, ensure_ascii=False
    ).encode("utf-8")
