"""Unit tests for aumos_agegate.did."""

from __future__ import annotations

import pytest

from aumos_agegate.did import (
    decode_base58btc,
    encode_base58btc,
    is_key_id,
    issuer_key_id,
    parse_did_method,
    parse_issuer_document,
    public_key_from_key_id,
    web_did_to_url,
)
from aumos_agegate.primitives import generate_key_pair
from aumos_agegate.types import DIDMethod, UnsupportedDIDMethodError


def _multibase(public_key: bytes) -> str:
    return "z" + encode_base58btc(b"\xed\x01" + public_key)


class TestBase58:
    def test_leading_zero_bytes_preserved(self):
        assert encode_base58btc(b"\x00\x00\x01") == "112"
        assert decode_base58btc("112") == b"\x00\x00\x01"

    def test_empty(self):
        assert encode_base58btc(b"") == ""
        assert decode_base58btc("") == b""

    def test_invalid_character(self):
        with pytest.raises(ValueError, match="invalid base58btc"):
            decode_base58btc("0OIl")


class TestKeyIds:
    def test_ed25519_did_key_prefix(self):
        key_id = issuer_key_id(generate_key_pair().public_key)
        assert key_id.startswith("did:key:z6Mk")

    def test_public_key_recovered(self):
        public_key = generate_key_pair().public_key
        assert public_key_from_key_id(issuer_key_id(public_key)) == public_key

    def test_wrong_length_key_rejected(self):
        with pytest.raises(ValueError):
            issuer_key_id(b"\x01" * 31)

    @pytest.mark.parametrize(
        "value", ["did:web:issuer.example", "did:key:zzz", "", None, 42]
    )
    def test_is_key_id_rejects(self, value):
        assert not is_key_id(value)

    def test_is_key_id_accepts(self):
        assert is_key_id(issuer_key_id(generate_key_pair().public_key))


class TestDidMethods:
    def test_supported_methods(self):
        assert parse_did_method("did:web:issuer.example") is DIDMethod.WEB
        assert parse_did_method("did:key:z6Mkabc") is DIDMethod.KEY

    def test_unsupported_method(self):
        with pytest.raises(UnsupportedDIDMethodError):
            parse_did_method("did:ion:abc")

    @pytest.mark.parametrize("value", ["nonsense", "did:web", "did:web:", "urn:web:x"])
    def test_malformed(self, value):
        with pytest.raises(ValueError):
            parse_did_method(value)

    @pytest.mark.parametrize(
        "did,url",
        [
            ("did:web:issuer.example", "https://issuer.example/.well-known/did.json"),
            ("did:web:issuer.example:gov:dmv", "https://issuer.example/gov/dmv/did.json"),
            ("did:web:localhost%3A8443", "https://localhost:8443/.well-known/did.json"),
        ],
    )
    def test_web_did_to_url(self, did, url):
        assert web_did_to_url(did) == url

    def test_web_did_to_url_rejects_other_methods(self):
        with pytest.raises(ValueError):
            web_did_to_url("did:key:z6Mkabc")


class TestParseIssuerDocument:
    def test_first_ed25519_key(self):
        public_key = generate_key_pair().public_key
        doc = {
            "id": "did:web:dmv.example",
            "name": "Example DMV",
            "verificationMethod": [
                {"id": "did:web:dmv.example#rsa", "type": "RsaVerificationKey2018"},
                {
                    "id": "did:web:dmv.example#key-1",
                    "type": "Ed25519VerificationKey2020",
                    "publicKeyMultibase": _multibase(public_key),
                },
            ],
        }
        config = parse_issuer_document(doc, expected_did="did:web:dmv.example")
        assert config.id == "did:web:dmv.example"
        assert config.name == "Example DMV"
        assert config.public_key == issuer_key_id(public_key)

    def test_assertion_method_selects_key(self):
        first, second = generate_key_pair().public_key, generate_key_pair().public_key
        doc = {
            "id": "did:web:dmv.example",
            "verificationMethod": [
                {
                    "id": "did:web:dmv.example#auth",
                    "type": "Multikey",
                    "publicKeyMultibase": _multibase(first),
                },
                {
                    "id": "did:web:dmv.example#issue",
                    "type": "Multikey",
                    "publicKeyMultibase": _multibase(second),
                },
            ],
            "assertionMethod": ["did:web:dmv.example#issue"],
        }
        config = parse_issuer_document(doc, expected_did="did:web:dmv.example")
        assert config.public_key == issuer_key_id(second)
        # Name falls back to the DID.
        assert config.name == "did:web:dmv.example"

    def test_id_mismatch(self):
        with pytest.raises(ValueError, match="does not match"):
            parse_issuer_document(
                {"id": "did:web:evil.example", "verificationMethod": []},
                expected_did="did:web:dmv.example",
            )

    def test_no_usable_key(self):
        with pytest.raises(ValueError, match="no Ed25519 assertion key"):
            parse_issuer_document(
                {"id": "did:web:dmv.example", "verificationMethod": []},
                expected_did="did:web:dmv.example",
            )

    def test_not_a_dict(self):
        with pytest.raises(ValueError):
            parse_issuer_document(["did:web:dmv.example"], expected_did="did:web:dmv.example")
