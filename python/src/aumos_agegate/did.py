# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""Issuer key identifiers and issuer DID documents.

Issuers are identified on the wire by the ``did:key`` form of their Ed25519
public key, so a proof's ``issuerPublicKey`` is self-describing and a
verifier needs no lookup to turn it into key bytes. Issuers that publish a
``did:web`` document can be resolved into a trust-store entry by
:class:`~client.IssuerDirectoryClient`.
"""

from __future__ import annotations

from typing import Any

from .primitives import ED25519_KEY_BYTES
from .types import DIDMethod, IssuerPublicConfig, UnsupportedDIDMethodError

# Multicodec prefix for Ed25519 public keys.
_ED25519_MULTICODEC = b"\xed\x01"

_KEY_DID_PREFIX = "did:key:z"

_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_INDEX = {char: value for value, char in enumerate(_BASE58_ALPHABET)}

_ED25519_VERIFICATION_TYPES = frozenset(
    {"Ed25519VerificationKey2020", "Multikey"}
)


def encode_base58btc(data: bytes) -> str:
    """Encode bytes as base58btc (Bitcoin alphabet, no multibase prefix)."""
    zeros = len(data) - len(data.lstrip(b"\x00"))
    n = int.from_bytes(data, "big")
    digits: list[str] = []
    while n:
        n, remainder = divmod(n, 58)
        digits.append(_BASE58_ALPHABET[remainder])
    return "1" * zeros + "".join(reversed(digits))


def decode_base58btc(encoded: str) -> bytes:
    """Decode a base58btc string (no multibase prefix) to bytes."""
    n = 0
    for char in encoded:
        try:
            n = n * 58 + _BASE58_INDEX[char]
        except KeyError:
            raise ValueError(f"invalid base58btc character: {char!r}") from None
    zeros = len(encoded) - len(encoded.lstrip("1"))
    body = n.to_bytes((n.bit_length() + 7) // 8, "big") if n else b""
    return b"\x00" * zeros + body


def issuer_key_id(public_key: bytes) -> str:
    """Return the ``did:key`` identifier for a raw Ed25519 public key."""
    if len(public_key) != ED25519_KEY_BYTES:
        raise ValueError(
            f"issuer_key_id: expected {ED25519_KEY_BYTES}-byte Ed25519 key, "
            f"got {len(public_key)}"
        )
    return _KEY_DID_PREFIX + encode_base58btc(_ED25519_MULTICODEC + public_key)


def public_key_from_key_id(key_id: str) -> bytes:
    """Extract the raw Ed25519 public key from a ``did:key`` identifier.

    Raises
    ------
    ValueError
        If *key_id* is not a base58btc ``did:key`` wrapping an Ed25519 key.
    """
    if not isinstance(key_id, str) or not key_id.startswith(_KEY_DID_PREFIX):
        raise ValueError("public_key_from_key_id: not a base58btc did:key")
    return _strip_multicodec(decode_base58btc(key_id[len(_KEY_DID_PREFIX):]))


def is_key_id(value: object) -> bool:
    """Return ``True`` if *value* is a well-formed Ed25519 ``did:key``."""
    try:
        public_key_from_key_id(value)  # type: ignore[arg-type]
    except ValueError:
        return False
    return True


def parse_did_method(did: str) -> DIDMethod:
    """Return the method of *did*. Only ``key`` and ``web`` are supported."""
    parts = did.split(":", 2)
    if len(parts) < 3 or parts[0] != "did" or not parts[2]:
        raise ValueError(f"parse_did_method: invalid DID: {did!r}")
    try:
        return DIDMethod(parts[1])
    except ValueError:
        raise UnsupportedDIDMethodError(
            f"unsupported DID method: {parts[1]!r}"
        ) from None


def web_did_to_url(did: str) -> str:
    """Map a ``did:web`` DID to the HTTPS URL of its DID document.

    Examples::

        did:web:issuer.example            -> https://issuer.example/.well-known/did.json
        did:web:issuer.example:gov:dmv    -> https://issuer.example/gov/dmv/did.json
    """
    if not did.startswith("did:web:") or did == "did:web:":
        raise ValueError(f"web_did_to_url: not a did:web DID: {did!r}")
    host, *path = did[len("did:web:"):].split(":")
    host = host.replace("%3A", ":").replace("%3a", ":")
    if not path:
        return f"https://{host}/.well-known/did.json"
    return f"https://{host}/{'/'.join(path)}/did.json"


def parse_issuer_document(raw: Any, expected_did: str) -> IssuerPublicConfig:
    """Turn a JSON-decoded issuer DID document into a trust-store entry.

    The first Ed25519 verification method listed under ``assertionMethod``
    (or, when that is absent, the first one in ``verificationMethod``)
    becomes the issuer key. The optional top-level ``name`` is used as the
    display name.

    Raises
    ------
    ValueError
        If the document is not for *expected_did* or carries no Ed25519 key.
    """
    if not isinstance(raw, dict):
        raise ValueError(
            f"parse_issuer_document: expected dict, got {type(raw).__name__}"
        )
    if raw.get("id") != expected_did:
        raise ValueError(
            f"parse_issuer_document: document id {raw.get('id')!r} does not "
            f"match requested DID {expected_did!r}"
        )

    methods = raw.get("verificationMethod", [])
    if not isinstance(methods, list):
        raise ValueError("parse_issuer_document: verificationMethod is not a list")

    assertion = raw.get("assertionMethod")
    allowed = (
        {ref for ref in assertion if isinstance(ref, str)}
        if isinstance(assertion, list)
        else None
    )

    for method in methods:
        if not isinstance(method, dict):
            continue
        if method.get("type") not in _ED25519_VERIFICATION_TYPES:
            continue
        if allowed is not None and method.get("id") not in allowed:
            continue
        multibase = method.get("publicKeyMultibase", "")
        if not isinstance(multibase, str) or not multibase.startswith("z"):
            raise ValueError(
                "parse_issuer_document: publicKeyMultibase must be base58btc ('z')"
            )
        public_key = _strip_multicodec(decode_base58btc(multibase[1:]))
        name = raw.get("name")
        return IssuerPublicConfig(
            id=expected_did,
            name=name if isinstance(name, str) and name else expected_did,
            public_key=issuer_key_id(public_key),
        )

    raise ValueError(
        f"parse_issuer_document: no Ed25519 assertion key in document for "
        f"{expected_did}"
    )


def _strip_multicodec(decoded: bytes) -> bytes:
    """Accept ``0xed01 || key`` or a bare 32-byte key."""
    if len(decoded) == ED25519_KEY_BYTES:
        return decoded
    if (
        len(decoded) == len(_ED25519_MULTICODEC) + ED25519_KEY_BYTES
        and decoded.startswith(_ED25519_MULTICODEC)
    ):
        return decoded[len(_ED25519_MULTICODEC):]
    raise ValueError(
        f"expected an Ed25519 key ({ED25519_KEY_BYTES} bytes, optionally "
        f"multicodec-prefixed), got {len(decoded)} bytes"
    )
