"""Unit tests for aumos_agegate.proof (holder-side generation)."""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest

from aumos_agegate.config import AgeGateSettings
from aumos_agegate.credential import credential_from_dict, credential_to_dict
from aumos_agegate.proof import proof_from_dict, proof_to_dict
from aumos_agegate.types import (
    AgeRequirementNotMetError,
    CredentialExhaustedError,
    ExpiredCredentialError,
    InvalidAgeError,
    InvalidCredentialError,
    MissingCredentialError,
    StructuralError,
    TemporalOrderError,
)


def _anchor(proof) -> dict:
    return json.loads(proof.proof)["anchor"]


class TestGenerateProof:
    def test_proof_for_adult_verifies(self, generator, credential, verifier):
        proof = generator.generate_proof(credential, 18)
        assert proof.minimum_age == 18
        assert proof.public_inputs.issuer_public_key == credential.issuer_public_key
        assert proof.public_inputs.verification_date == "2026-06-15T12:00:00Z"
        assert len(proof.public_inputs.commitment) == 32
        assert verifier.verify(proof).is_valid

    def test_age_requirement_not_met(self, generator, credential):
        with pytest.raises(AgeRequirementNotMetError, match="minimum age requirement of 30") as exc_info:
            generator.generate_proof(credential, 30)
        assert exc_info.value.minimum_age == 30

    def test_failed_attempt_does_not_spend_an_anchor(self, generator, credential):
        with pytest.raises(AgeRequirementNotMetError):
            generator.generate_proof(credential, 30)
        assert generator.remaining_presentations(credential) == 10

    def test_commitments_are_unique(self, generator, credential):
        commitments = {
            generator.generate_proof(credential, 18).public_inputs.commitment
            for _ in range(5)
        }
        assert len(commitments) == 5

    def test_proof_bytes_are_unlinkable(self, generator, credential):
        first = generator.generate_proof(credential, 18)
        second = generator.generate_proof(credential, 18)
        assert first.proof != second.proof

    def test_birth_date_not_disclosed(self, generator, credential, birth_date):
        proof = generator.generate_proof(credential, 18)
        assert birth_date.isoformat() not in json.dumps(proof_to_dict(proof))

    def test_missing_credential(self, generator):
        with pytest.raises(MissingCredentialError):
            generator.generate_proof(None, 18)

    @pytest.mark.parametrize("age", [-1, 151, True, 18.5, "18"])
    def test_invalid_minimum_age(self, generator, credential, age):
        with pytest.raises(InvalidAgeError):
            generator.generate_proof(credential, age)

    def test_default_minimum_age(self, generator, credential, verifier):
        proof = generator.generate_proof(credential)
        assert proof.minimum_age == 18
        assert verifier.verify(proof).is_valid

    def test_default_minimum_age_from_settings(self, make_generator, credential):
        generator = make_generator(settings=AgeGateSettings(default_minimum_age=21))
        assert generator.generate_proof(credential).minimum_age == 21

    def test_default_minimum_age_still_checked(self, make_generator, credential):
        generator = make_generator(settings=AgeGateSettings(default_minimum_age=30))
        with pytest.raises(AgeRequirementNotMetError):
            generator.generate_proof(credential)

    def test_minimum_age_zero(self, generator, credential, verifier):
        assert verifier.verify(generator.generate_proof(credential, 0)).is_valid

    def test_verification_date_before_birth(self, generator, credential):
        with pytest.raises(TemporalOrderError):
            generator.generate_proof(
                credential, 0, datetime(2000, 1, 1, tzinfo=timezone.utc)
            )

    def test_expired_credential(self, generator, credential, now):
        expired = replace(credential, expires_at=now - timedelta(days=1))
        with pytest.raises(ExpiredCredentialError):
            generator.generate_proof(expired, 18)

    def test_verification_date_after_expiry(self, generator, credential):
        with pytest.raises(ExpiredCredentialError):
            generator.generate_proof(
                credential, 18, datetime(2032, 1, 1, tzinfo=timezone.utc)
            )

    def test_exact_expiry_enforced_before_reference_day(self, generator, credential):
        after_expiry = credential.expires_at + timedelta(days=30)
        assert after_expiry.date().toordinal() < credential.anchors[0].reference_day
        with pytest.raises(ExpiredCredentialError):
            generator.generate_proof(credential, 18, after_expiry)
        assert generator.remaining_presentations(credential) == 10

    def test_reference_day_shared_across_credentials(
        self, make_issuer, generator, credential, now
    ):
        other = make_issuer(at=now + timedelta(days=90)).issue(date(1980, 5, 5))
        first = json.loads(generator.generate_proof(credential, 18).proof)
        second = json.loads(generator.generate_proof(other, 21).proof)
        assert first["anchor"]["referenceDay"] == second["anchor"]["referenceDay"]

    @pytest.mark.parametrize(
        "changes",
        [{"anchors": ()}, {"issuer_signature": ""}, {"birth_date": "2001-03-10"}],
    )
    def test_unusable_credential(self, generator, credential, changes):
        with pytest.raises(InvalidCredentialError):
            generator.generate_proof(replace(credential, **changes), 18)


class TestAnchorSpending:
    def test_exhaustion(self, make_issuer, generator, birth_date):
        issuer = make_issuer(settings=AgeGateSettings(anchors_per_credential=2))
        credential = issuer.issue(birth_date)
        generator.generate_proof(credential, 18)
        generator.generate_proof(credential, 18)
        assert generator.remaining_presentations(credential) == 0
        with pytest.raises(CredentialExhaustedError):
            generator.generate_proof(credential, 18)

    def test_concurrent_generation_spends_distinct_anchors(self, generator, credential):
        with ThreadPoolExecutor(max_workers=8) as pool:
            proofs = list(
                pool.map(lambda _: generator.generate_proof(credential, 18), range(10))
            )
        anchors = {_anchor(p)["tip"] for p in proofs}
        assert len(anchors) == 10
        with pytest.raises(CredentialExhaustedError):
            generator.generate_proof(credential, 18)

    def test_generators_share_credential_state(self, make_generator, credential):
        first, second = make_generator(), make_generator()
        first.generate_proof(credential, 18)
        assert first.remaining_presentations(credential) == 9
        assert second.remaining_presentations(credential) == 9

    def test_fresh_generator_per_proof_never_repeats_an_anchor(
        self, make_generator, credential, verifier
    ):
        proofs = [make_generator().generate_proof(credential, 18) for _ in range(10)]
        for field in ("tip", "key", "sig"):
            assert len({_anchor(p)[field] for p in proofs}) == 10
        assert all(verifier.verify(p).is_valid for p in proofs)
        with pytest.raises(CredentialExhaustedError):
            make_generator().generate_proof(credential, 18)

    def test_wallet_reload_keeps_spent_anchors(self, make_generator, credential):
        before = [make_generator().generate_proof(credential, 18) for _ in range(4)]
        reloaded = credential_from_dict(credential_to_dict(credential))
        generator = make_generator()
        assert generator.remaining_presentations(reloaded) == 6
        after = [generator.generate_proof(reloaded, 18) for _ in range(6)]
        for field in ("tip", "key", "sig"):
            assert len({_anchor(p)[field] for p in before + after}) == 10

    def test_exhausted_wallet_stays_exhausted_after_reload(
        self, make_generator, generator, credential
    ):
        for _ in range(10):
            generator.generate_proof(credential, 18)
        reloaded = credential_from_dict(credential_to_dict(credential))
        fresh = make_generator()
        assert fresh.remaining_presentations(reloaded) == 0
        with pytest.raises(CredentialExhaustedError):
            fresh.generate_proof(reloaded, 18)

    def test_copies_share_spent_anchors(self, generator, credential):
        copy = replace(credential, expires_at=credential.expires_at)
        generator.generate_proof(credential, 18)
        assert generator.remaining_presentations(copy) == 9


class TestWireFormat:
    def test_round_trip(self, proof):
        assert proof_from_dict(proof_to_dict(proof)) == proof

    def test_wire_shape(self, proof):
        wire = proof_to_dict(proof)
        assert set(wire) == {"minimumAge", "proof", "publicInputs", "generatedAt"}
        assert set(wire["publicInputs"]) == {
            "commitment",
            "verificationDate",
            "issuerPublicKey",
        }
        assert wire["generatedAt"] == "2026-06-15T12:00:00Z"

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda w: w.pop("publicInputs"),
            lambda w: w.update(minimumAge="18"),
            lambda w: w.update(proof="!!"),
            lambda w: w["publicInputs"].update(commitment="zz"),
            lambda w: w.update(generatedAt="later"),
        ],
    )
    def test_malformed_wire(self, proof, mutate):
        wire = proof_to_dict(proof)
        mutate(wire)
        with pytest.raises(StructuralError):
            proof_from_dict(wire)

    def test_not_a_dict(self):
        with pytest.raises(StructuralError):
            proof_from_dict([])

    def test_errors_importable_from_package(self, proof):
        import aumos_agegate

        for name in (
            "ProofVerificationError",
            "StructuralError",
            "TrustError",
            "FormatError",
            "StalenessError",
            "CryptographicError",
        ):
            assert name in aumos_agegate.__all__
            assert issubclass(getattr(aumos_agegate, name), aumos_agegate.AgeGateError)
        wire = proof_to_dict(proof)
        del wire["proof"]
        with pytest.raises(aumos_agegate.StructuralError):
            proof_from_dict(wire)
