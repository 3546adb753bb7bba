"""Unit tests for aumos_agegate.config."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from aumos_agegate.config import (
    DEFAULT_SETTINGS,
    AgeGateSettings,
    build_settings,
    validate_settings,
)
from aumos_agegate.types import ConfigurationError


class TestDefaults:
    def test_protocol_defaults(self):
        assert DEFAULT_SETTINGS.credential_validity_years == 5
        assert DEFAULT_SETTINGS.max_age_years == 150
        assert DEFAULT_SETTINGS.proof_freshness == timedelta(hours=1)
        assert DEFAULT_SETTINGS.clock_skew == timedelta(minutes=5)
        assert DEFAULT_SETTINGS.record_validity == timedelta(days=90)

    def test_defaults_are_valid(self):
        validate_settings(DEFAULT_SETTINGS)

    def test_settings_are_frozen(self):
        with pytest.raises(AttributeError):
            DEFAULT_SETTINGS.max_age_years = 10  # type: ignore[misc]


class TestBuildSettings:
    def test_empty_mapping_gives_defaults(self):
        assert build_settings({}) == DEFAULT_SETTINGS
        assert build_settings() == DEFAULT_SETTINGS

    def test_durations_in_seconds(self):
        settings = build_settings(
            {"proof_freshness_seconds": 900, "clock_skew_seconds": 0}
        )
        assert settings.proof_freshness == timedelta(minutes=15)
        assert settings.clock_skew == timedelta(0)

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigurationError, match="unknown keys"):
            build_settings({"proof_freshness": 900})

    @pytest.mark.parametrize("value", [True, "10", 1.5, None])
    def test_non_integer_rejected(self, value):
        with pytest.raises(ConfigurationError, match="must be an integer"):
            build_settings({"anchors_per_credential": value})


class TestValidateSettings:
    @pytest.mark.parametrize(
        "changes",
        [
            {"max_age_years": 0},
            {"max_age_years": 151},
            {"credential_validity_years": 0},
            {"credential_validity_years": 50},
            {"proof_freshness": timedelta(0)},
            {"clock_skew": timedelta(seconds=-1)},
            {"anchors_per_credential": 0},
            {"record_validity": timedelta(0)},
            {"default_minimum_age": 151},
        ],
    )
    def test_out_of_range(self, changes):
        with pytest.raises(ConfigurationError):
            validate_settings(replace(AgeGateSettings(), **changes))

    def test_issuer_validates_settings(self, make_issuer):
        with pytest.raises(ConfigurationError):
            make_issuer(settings=AgeGateSettings(anchors_per_credential=0))

    def test_longest_chain_accepted(self):
        validate_settings(replace(AgeGateSettings(), credential_validity_years=49))
