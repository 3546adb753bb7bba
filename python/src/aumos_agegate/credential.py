# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""Age credential issuance, canonicalization and wallet serialization.

This module handles the *production* side of the protocol: a trusted
authority validates a birth date and returns a signed, time-bounded
:class:`~types.Credential` carrying one-time presentation anchors.

For turning a credential into a presentation, see :mod:`proof`. For the
relying-party side, see :mod:`verification`.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from datetime import date, datetime, timedelta
from typing import Any

from .config import DEFAULT_SETTINGS, AgeGateSettings, validate_settings
from .did import issuer_key_id, public_key_from_key_id
from .primitives import (
    DAYS_PER_YEAR,
    ED25519_KEY_BYTES,
    add_years,
    b64url_decode,
    b64url_encode,
    format_timestamp,
    generate_key_pair,
    normalize_utc,
    parse_timestamp,
    public_key_from_private,
    sign,
    start_of_day,
    utcnow,
    verify_signature,
)
from .proof_system import (
    HashChainProofSystem,
    ProofSystem,
    anchor_signing_bytes,
    reference_day_for_expiry,
)
from .types import (
    AgeAnchor,
    ConfigurationError,
    Credential,
    InvalidCredentialError,
    InvalidInputError,
    IssuerPublicConfig,
    PresentationLedger,
)

logger = logging.getLogger(__name__)


class CredentialIssuer:
    """Issues signed age credentials.

    Credentials are signed with Ed25519 using the issuer's private key. The
    signature is a base64url-encoded Ed25519 signature over the canonical
    JSON of the credential (serialized without its signature).

    Parameters
    ----------
    issuer_id:
        Stable identifier of the issuing authority, e.g. a ``did:web`` DID.
    name:
        Human-readable issuer name published in :meth:`get_public_config`.
    private_key:
        Raw 32-byte Ed25519 private key. The issuer is the only owner of
        this key; it is never exposed through any accessor.
    settings:
        Protocol settings; credential lifetime and anchor count come from here.
    proof_system:
        Backend that creates presentation anchors. Defaults to
        :class:`~proof_system.HashChainProofSystem`.
    clock:
        Callable returning the current UTC time.

    Raises
    ------
    ConfigurationError
        If *private_key* is missing or is not a 32-byte Ed25519 key.

    Examples
    --------
    >>> issuer = CredentialIssuer.generate(
    ...     issuer_id="did:web:dmv.example", name="Example DMV"
    ... )
    >>> credential = issuer.issue(date(2001, 5, 17))
    >>> verifier.add_trusted_issuer(issuer.get_public_config())
    """

    def __init__(
        self,
        *,
        issuer_id: str,
        name: str,
        private_key: bytes | None,
        settings: AgeGateSettings = DEFAULT_SETTINGS,
        proof_system: ProofSystem | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not private_key:
            raise ConfigurationError(
                "CredentialIssuer: a private key is required to issue credentials"
            )
        if len(private_key) != ED25519_KEY_BYTES:
            raise ConfigurationError(
                f"CredentialIssuer: private_key must be a {ED25519_KEY_BYTES}-byte "
                f"Ed25519 key; got {len(private_key)} bytes"
            )
        validate_settings(settings)
        self._issuer_id = issuer_id
        self._name = name
        self._private_key = private_key
        self._public_key_id = issuer_key_id(public_key_from_private(private_key))
        self._settings = settings
        self._proof_system = proof_system or HashChainProofSystem()
        self._clock = clock

    @classmethod
    def generate(cls, *, issuer_id: str, name: str, **kwargs: Any) -> CredentialIssuer:
        """Create an issuer with a freshly generated Ed25519 key pair."""
        return cls(
            issuer_id=issuer_id,
            name=name,
            private_key=generate_key_pair().private_key,
            **kwargs,
        )

    @property
    def public_key(self) -> str:
        """The ``did:key`` identifier placed in every issued credential."""
        return self._public_key_id

    def get_public_config(self) -> IssuerPublicConfig:
        """Return the issuer's public configuration for verifier trust stores."""
        return IssuerPublicConfig(
            id=self._issuer_id, name=self._name, public_key=self._public_key_id
        )

    def issue(self, birth_date: date | str) -> Credential:
        """Validate *birth_date* and return a signed credential.

        Parameters
        ----------
        birth_date:
            A :class:`datetime.date` or an ISO 8601 date string. A
            :class:`datetime.datetime` is reduced to its date.

        Returns
        -------
        Credential
            Signed, with ``expires_at`` set ``credential_validity_years``
            after issuance and ``anchors_per_credential`` anchors.

        Raises
        ------
        InvalidInputError
            If the birth date is missing, malformed, in the future, or more
            than ``max_age_years`` in the past.
        """
        birth = _coerce_birth_date(birth_date)
        now = normalize_utc(self._clock())

        birth_start = start_of_day(birth)
        if birth_start > now:
            raise InvalidInputError("birth date cannot be in the future")
        max_span = timedelta(days=self._settings.max_age_years * DAYS_PER_YEAR)
        if now - birth_start > max_span:
            raise InvalidInputError("birth date is too far in the past")

        expires_at = add_years(now, self._settings.credential_validity_years)
        anchors = self._proof_system.create_anchors(
            birth_date=birth,
            reference_day=reference_day_for_expiry(expires_at),
            issuer_public_key=self._public_key_id,
            issuer_private_key=self._private_key,
            count=self._settings.anchors_per_credential,
        )

        unsigned = Credential(
            id=f"urn:uuid:{uuid.uuid4()}",
            birth_date=birth,
            issuer_public_key=self._public_key_id,
            issuer_signature="",
            issued_at=now,
            expires_at=expires_at,
            anchors=anchors,
        )
        signature = sign(canonicalize_credential(unsigned), self._private_key)

        logger.info(
            "issued credential %s (expires %s, %d anchors)",
            unsigned.id,
            format_timestamp(expires_at),
            len(anchors),
        )
        return Credential(
            id=unsigned.id,
            birth_date=unsigned.birth_date,
            issuer_public_key=unsigned.issuer_public_key,
            issuer_signature=b64url_encode(signature),
            issued_at=unsigned.issued_at,
            expires_at=unsigned.expires_at,
            anchors=unsigned.anchors,
        )


# ------------------------------------------------------------------
# Standalone helpers (used by CredentialIssuer, wallets and tests)
# ------------------------------------------------------------------


def canonicalize_credential(credential: Credential) -> bytes:
    """Return the canonical JSON bytes the issuer signs.

    Covers every field except the signature itself; anchors contribute only
    their public parts. Keys are sorted and no whitespace is emitted.
    """
    doc: dict[str, Any] = {
        "id": credential.id,
        "birthDate": credential.birth_date.isoformat(),
        "issuerPublicKey": credential.issuer_public_key,
        "issuedAt": format_timestamp(credential.issued_at),
        "expiresAt": (
            format_timestamp(credential.expires_at)
            if credential.expires_at is not None
            else None
        ),
        "anchors": [_anchor_public_dict(anchor) for anchor in credential.anchors],
    }
    return json.dumps(
        doc, separators=(",", ":"), sort_keys=True, ensure_ascii=False
    ).encode("utf-8")


def verify_credential_signature(credential: Credential) -> bool:
    """Check the issuer signature on a credential and on each of its anchors.

    Pure and offline: the issuer key is taken from the credential's own
    ``did:key``. Whether that issuer is *trusted* is a verifier decision.
    """
    try:
        issuer_key = public_key_from_key_id(credential.issuer_public_key)
        signature = b64url_decode(credential.issuer_signature)
    except ValueError:
        return False

    if not verify_signature(canonicalize_credential(credential), signature, issuer_key):
        return False

    return all(
        verify_signature(
            anchor_signing_bytes(
                credential.issuer_public_key,
                anchor.reference_day,
                anchor.tip,
                anchor.presentation_key,
            ),
            anchor.signature,
            issuer_key,
        )
        for anchor in credential.anchors
    )


def credential_to_dict(credential: Credential) -> dict[str, Any]:
    """Serialize a credential, holder secrets included, for wallet storage."""
    return {
        "id": credential.id,
        "birthDate": credential.birth_date.isoformat(),
        "issuerPublicKey": credential.issuer_public_key,
        "issuerSignature": credential.issuer_signature,
        "issuedAt": format_timestamp(credential.issued_at),
        "expiresAt": (
            format_timestamp(credential.expires_at)
            if credential.expires_at is not None
            else None
        ),
        "anchors": [
            {
                **_anchor_public_dict(anchor),
                "seed": b64url_encode(anchor.seed),
                "presentationPrivateKey": b64url_encode(
                    anchor.presentation_private_key
                ),
            }
            for anchor in credential.anchors
        ],
        "spentAnchors": sorted(credential.presentations.spent()),
    }


def credential_from_dict(raw: object) -> Credential:
    """Parse the output of :func:`credential_to_dict`.

    Performs structural validation only; use
    :func:`verify_credential_signature` for the cryptographic check.

    Raises
    ------
    InvalidCredentialError
        If required fields are missing or have invalid types.
    """
    if not isinstance(raw, dict):
        raise InvalidCredentialError(
            f"credential_from_dict: expected dict, got {type(raw).__name__}"
        )

    for field_name in ("id", "birthDate", "issuerPublicKey", "issuerSignature", "issuedAt"):
        if not isinstance(raw.get(field_name), str):
            raise InvalidCredentialError(
                f"credential_from_dict: missing or non-string field {field_name!r}"
            )

    raw_anchors = raw.get("anchors", [])
    if not isinstance(raw_anchors, list):
        raise InvalidCredentialError('credential_from_dict: "anchors" must be a list')

    raw_spent = raw.get("spentAnchors", [])
    if not isinstance(raw_spent, list) or not all(
        isinstance(index, int) and not isinstance(index, bool) for index in raw_spent
    ):
        raise InvalidCredentialError(
            'credential_from_dict: "spentAnchors" must be a list of anchor indices'
        )

    try:
        birth = date.fromisoformat(raw["birthDate"])
        issued_at = parse_timestamp(raw["issuedAt"])
        expires_raw = raw.get("expiresAt")
        expires_at = parse_timestamp(expires_raw) if expires_raw is not None else None
        anchors = tuple(_anchor_from_dict(item) for item in raw_anchors)
    except (TypeError, ValueError, KeyError) as exc:
        raise InvalidCredentialError(f"credential_from_dict: {exc}") from exc

    return Credential(
        id=raw["id"],
        birth_date=birth,
        issuer_public_key=raw["issuerPublicKey"],
        issuer_signature=raw["issuerSignature"],
        issued_at=issued_at,
        expires_at=expires_at,
        anchors=anchors,
        presentations=PresentationLedger(raw_spent),
    )


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _coerce_birth_date(value: object) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value)
        except ValueError:
            raise InvalidInputError("invalid birth date") from None
    raise InvalidInputError("invalid birth date")


def _anchor_public_dict(anchor: AgeAnchor) -> dict[str, Any]:
    return {
        "index": anchor.index,
        "referenceDay": anchor.reference_day,
        "tip": b64url_encode(anchor.tip),
        "presentationKey": b64url_encode(anchor.presentation_key),
        "signature": b64url_encode(anchor.signature),
    }


def _anchor_from_dict(raw: object) -> AgeAnchor:
    if not isinstance(raw, dict):
        raise ValueError("anchor entries must be objects")
    index = raw["index"]
    reference_day = raw["referenceDay"]
    if not isinstance(index, int) or not isinstance(reference_day, int):
        raise ValueError("anchor index and referenceDay must be integers")
    return AgeAnchor(
        index=index,
        reference_day=reference_day,
        tip=b64url_decode(raw["tip"]),
        presentation_key=b64url_decode(raw["presentationKey"]),
        signature=b64url_decode(raw["signature"]),
        seed=b64url_decode(raw["seed"]),
        presentation_private_key=b64url_decode(raw["presentationPrivateKey"]),
    )
