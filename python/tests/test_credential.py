"""Unit tests for aumos_agegate.credential."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest

from aumos_agegate.config import AgeGateSettings
from aumos_agegate.credential import (
    CredentialIssuer,
    credential_from_dict,
    credential_to_dict,
    verify_credential_signature,
)
from aumos_agegate.did import is_key_id
from aumos_agegate.primitives import hash_chain
from aumos_agegate.types import (
    ConfigurationError,
    InvalidCredentialError,
    InvalidInputError,
)


class TestIssuerConstruction:
    def test_missing_private_key(self):
        with pytest.raises(ConfigurationError, match="private key is required"):
            CredentialIssuer(issuer_id="did:web:dmv.example", name="DMV", private_key=None)

    def test_wrong_length_private_key(self):
        with pytest.raises(ConfigurationError, match="32-byte"):
            CredentialIssuer(
                issuer_id="did:web:dmv.example", name="DMV", private_key=b"short"
            )

    def test_public_config(self, issuer):
        config = issuer.get_public_config()
        assert config.id == "did:web:dmv.example"
        assert config.name == "Example DMV"
        assert config.public_key == issuer.public_key
        assert is_key_id(config.public_key)


class TestIssue:
    def test_signed_credential(self, issuer, credential, now, birth_date):
        assert credential.id.startswith("urn:uuid:")
        assert credential.birth_date == birth_date
        assert credential.issuer_public_key == issuer.public_key
        assert credential.issued_at == now
        assert credential.expires_at == datetime(2031, 6, 15, 12, tzinfo=timezone.utc)
        assert len(credential.anchors) == 10
        assert verify_credential_signature(credential)

    def test_anchors_reach_end_of_expiry_year(self, credential, birth_date):
        reference_day = date(2031, 12, 31).toordinal()
        for anchor in credential.anchors:
            assert anchor.reference_day == reference_day
            assert hash_chain(anchor.seed, reference_day - birth_date.toordinal()) == anchor.tip

    def test_reference_day_shared_within_expiry_year(self, make_issuer, now):
        early = make_issuer().issue(date(1990, 1, 1))
        late = make_issuer(at=now + timedelta(days=150)).issue(date(1975, 7, 4))
        assert early.expires_at.date() != late.expires_at.date()
        assert {a.reference_day for a in early.anchors} == {
            a.reference_day for a in late.anchors
        }

    def test_unique_ids(self, issuer, birth_date):
        assert issuer.issue(birth_date).id != issuer.issue(birth_date).id

    def test_iso_string_accepted(self, issuer):
        assert issuer.issue("1990-07-04").birth_date == date(1990, 7, 4)

    def test_datetime_reduced_to_date(self, issuer):
        credential = issuer.issue(datetime(1990, 7, 4, 23, 30, tzinfo=timezone.utc))
        assert credential.birth_date == date(1990, 7, 4)

    def test_born_today(self, issuer, now):
        assert issuer.issue(now.date()).birth_date == now.date()

    def test_anchor_count_from_settings(self, make_issuer, birth_date):
        issuer = make_issuer(settings=AgeGateSettings(anchors_per_credential=2))
        assert len(issuer.issue(birth_date).anchors) == 2

    def test_future_birth_date(self, issuer, now):
        with pytest.raises(InvalidInputError, match="future"):
            issuer.issue(now.date() + timedelta(days=1))

    def test_too_old(self, issuer):
        with pytest.raises(InvalidInputError, match="too far in the past"):
            issuer.issue(date(1870, 1, 1))

    @pytest.mark.parametrize("value", ["not-a-date", "", None, 19900704, "1990-02-30"])
    def test_invalid_birth_date(self, issuer, value):
        with pytest.raises(InvalidInputError, match="invalid birth date"):
            issuer.issue(value)


class TestSignatureVerification:
    def test_tampered_birth_date(self, credential):
        assert not verify_credential_signature(
            replace(credential, birth_date=date(1990, 1, 1))
        )

    def test_tampered_expiry(self, credential):
        assert not verify_credential_signature(
            replace(credential, expires_at=credential.expires_at + timedelta(days=365))
        )

    def test_tampered_anchor(self, credential):
        anchors = list(credential.anchors)
        anchors[0] = replace(anchors[0], tip=b"\x00" * 32)
        assert not verify_credential_signature(replace(credential, anchors=tuple(anchors)))

    def test_other_issuer_key(self, credential, make_issuer):
        other = make_issuer(issuer_id="did:web:other.example")
        assert not verify_credential_signature(
            replace(credential, issuer_public_key=other.public_key)
        )

    def test_garbage_signature(self, credential):
        assert not verify_credential_signature(
            replace(credential, issuer_signature="!!not base64!!")
        )


class TestWalletSerialization:
    def test_round_trip(self, credential):
        restored = credential_from_dict(credential_to_dict(credential))
        assert restored == credential
        assert verify_credential_signature(restored)

    def test_secrets_not_in_repr(self, credential):
        anchor = credential.anchors[0]
        assert repr(anchor.seed) not in repr(credential)
        assert repr(anchor.presentation_private_key) not in repr(credential)

    def test_not_a_dict(self):
        with pytest.raises(InvalidCredentialError, match="expected dict"):
            credential_from_dict("credential")

    def test_missing_field(self, credential):
        raw = credential_to_dict(credential)
        del raw["issuerSignature"]
        with pytest.raises(InvalidCredentialError, match="issuerSignature"):
            credential_from_dict(raw)

    def test_malformed_anchor(self, credential):
        raw = credential_to_dict(credential)
        raw["anchors"][0]["tip"] = "!!"
        with pytest.raises(InvalidCredentialError):
            credential_from_dict(raw)

    def test_spent_anchors_persisted(self, credential, generator):
        generator.generate_proof(credential, 18)
        generator.generate_proof(credential, 21)
        raw = credential_to_dict(credential)
        assert len(raw["spentAnchors"]) == 2
        restored = credential_from_dict(raw)
        assert restored.presentations.spent() == credential.presentations.spent()

    def test_spent_anchors_default_empty(self, credential):
        raw = credential_to_dict(credential)
        del raw["spentAnchors"]
        assert credential_from_dict(raw).presentations.spent() == frozenset()

    @pytest.mark.parametrize("value", ["0,1", [0, "1"], [True]])
    def test_malformed_spent_anchors(self, credential, value):
        raw = credential_to_dict(credential)
        raw["spentAnchors"] = value
        with pytest.raises(InvalidCredentialError, match="spentAnchors"):
            credential_from_dict(raw)

    def test_spent_anchors_not_signed(self, credential, generator):
        generator.generate_proof(credential, 18)
        assert verify_credential_signature(credential)
