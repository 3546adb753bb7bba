# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""Cryptographic primitives shared by issuers, holders and verifiers.

- SHA-256 hashing and hash commitments with 256-bit blinding factors
- Ed25519 key generation, signing and verification (``cryptography``)
- The hash-chain step used by :mod:`proof_system`
- base64url and UTC timestamp helpers used on the wire

All randomness is drawn from :mod:`secrets`, which is safe to call from
concurrent threads and never hands out the same bytes twice.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import secrets
from datetime import date, datetime, time, timedelta, timezone

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from .types import KeyPair

BLINDING_FACTOR_BYTES = 32
ED25519_KEY_BYTES = 32
ED25519_SIGNATURE_BYTES = 64

DAYS_PER_YEAR = 365.25

_CHAIN_TAG = b"aumos-agegate/v1/chain\x00"


# ------------------------------------------------------------------
# Hashing and commitments
# ------------------------------------------------------------------


def hash_bytes(data: bytes | str) -> bytes:
    """Return the 32-byte SHA-256 digest of *data* (str is UTF-8 encoded)."""
    return hashlib.sha256(_as_bytes(data)).digest()


def commit(value: bytes | str, blinding_factor: bytes) -> bytes:
    """Return the commitment ``SHA-256(value || blinding_factor)``.

    Hiding rests on the 256-bit blinding factor; binding on SHA-256
    collision resistance. Never reuse a blinding factor.
    """
    if len(blinding_factor) < BLINDING_FACTOR_BYTES:
        raise ValueError(
            f"commit: blinding factor must be at least {BLINDING_FACTOR_BYTES} "
            f"bytes, got {len(blinding_factor)}"
        )
    return hash_bytes(_as_bytes(value) + blinding_factor)


def random_blinding_factor() -> bytes:
    """Return 32 fresh bytes from the operating system CSPRNG."""
    return secrets.token_bytes(BLINDING_FACTOR_BYTES)


def chain_step(value: bytes) -> bytes:
    """Apply one domain-separated SHA-256 step of an age hash chain."""
    return hashlib.sha256(_CHAIN_TAG + value).digest()


def hash_chain(value: bytes, steps: int) -> bytes:
    """Apply :func:`chain_step` *steps* times to *value*."""
    if steps < 0:
        raise ValueError(f"hash_chain: steps must be non-negative, got {steps}")
    sha256 = hashlib.sha256
    for _ in range(steps):
        value = sha256(_CHAIN_TAG + value).digest()
    return value


# ------------------------------------------------------------------
# Ed25519
# ------------------------------------------------------------------


def generate_key_pair() -> KeyPair:
    """Generate a fresh Ed25519 key pair."""
    private_key = Ed25519PrivateKey.generate()
    return KeyPair(
        public_key=private_key.public_key().public_bytes_raw(),
        private_key=private_key.private_bytes_raw(),
    )


def public_key_from_private(private_key: bytes) -> bytes:
    """Derive the raw 32-byte public key from a raw Ed25519 private key."""
    return Ed25519PrivateKey.from_private_bytes(private_key).public_key().public_bytes_raw()


def sign(message: bytes, private_key: bytes) -> bytes:
    """Return a 64-byte Ed25519 signature over *message*.

    Raises
    ------
    ValueError
        If *private_key* is not a raw 32-byte Ed25519 key.
    """
    return Ed25519PrivateKey.from_private_bytes(private_key).sign(message)


def verify_signature(message: bytes, signature: bytes, public_key: bytes) -> bool:
    """Return ``True`` only if *signature* is valid for *message* under *public_key*.

    Malformed keys or signatures yield ``False`` rather than an exception.
    """
    if len(signature) != ED25519_SIGNATURE_BYTES:
        return False
    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, message)
    except (InvalidSignature, ValueError, TypeError):
        return False
    return True


# ------------------------------------------------------------------
# base64url
# ------------------------------------------------------------------


def b64url_encode(data: bytes) -> str:
    """Encode *data* as base64url without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(encoded: str) -> bytes:
    """Decode a base64url string (with or without padding).

    Raises
    ------
    ValueError
        If *encoded* contains characters outside the base64url alphabet.
    """
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except binascii.Error as exc:
        raise ValueError(f"b64url_decode: {exc}") from exc


# ------------------------------------------------------------------
# Time
# ------------------------------------------------------------------


def utcnow() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(tz=timezone.utc)


def normalize_utc(dt: datetime) -> datetime:
    """Return *dt* in UTC truncated to whole seconds; naive means UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as an ISO 8601 UTC string ending with ``Z``."""
    return normalize_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp into a timezone-aware UTC datetime.

    Raises
    ------
    ValueError
        If *value* is not a string or not ISO 8601.
    """
    if not isinstance(value, str) or not value:
        raise ValueError("parse_timestamp: expected a non-empty string")
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def start_of_day(day: date) -> datetime:
    """Midnight UTC at the beginning of *day*."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def add_years(dt: datetime, years: int) -> datetime:
    """Shift *dt* by whole calendar years; 29 February clamps to the 28th."""
    try:
        return dt.replace(year=dt.year + years)
    except ValueError:
        return dt.replace(year=dt.year + years, day=28)


def age_in_years(birth_date: date, at: datetime) -> float:
    """Age at *at* in 365.25-day years, counting from midnight UTC of birth."""
    elapsed = normalize_utc(at) - start_of_day(birth_date)
    return elapsed.total_seconds() / (DAYS_PER_YEAR * 86400)


def latest_qualifying_birth_day(verification_date: datetime, minimum_age: int) -> int:
    """Ordinal of the latest birth day that is *minimum_age* years old at *verification_date*.

    A holder born on day ``b`` satisfies the threshold exactly when
    ``b <= latest_qualifying_birth_day(...)``.
    """
    cutoff = normalize_utc(verification_date) - timedelta(
        days=minimum_age * DAYS_PER_YEAR
    )
    return cutoff.date().toordinal()


def _as_bytes(data: bytes | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data
