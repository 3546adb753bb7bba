# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""Protocol settings shared by issuers, holders and verifiers.

Settings are a frozen dataclass so a single instance can be handed to every
component without copying. Host applications own the parsing of files and
environment variables; :func:`build_settings` accepts the resulting plain
mapping.

Access pattern::

    from aumos_agegate.config import build_settings

    settings = build_settings({"proof_freshness_seconds": 900})
    verifier = Verifier(settings=settings)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from .types import ConfigurationError

# Upper bound on any age the protocol reasons about.
MAX_AGE_YEARS = 150

# Hash chains never span more than this many days. Issuers refuse to build
# longer chains and verifiers refuse to walk them.
MAX_CHAIN_DAYS = 200 * 366


@dataclass(frozen=True)
class AgeGateSettings:
    """Tunable protocol parameters."""

    credential_validity_years: int = 5
    max_age_years: int = MAX_AGE_YEARS
    proof_freshness: timedelta = timedelta(hours=1)
    clock_skew: timedelta = timedelta(minutes=5)
    anchors_per_credential: int = 10
    record_validity: timedelta = timedelta(days=90)
    default_minimum_age: int = 18


DEFAULT_SETTINGS = AgeGateSettings()


def build_settings(data: Mapping[str, Any] | None = None) -> AgeGateSettings:
    """Build validated settings from a plain mapping.

    Durations are given in seconds (``proof_freshness_seconds``,
    ``clock_skew_seconds``, ``record_validity_seconds``); unknown keys are
    rejected so that typos surface at startup.

    Raises
    ------
    ConfigurationError
        If a key is unknown or a value is out of range.
    """
    d = dict(data or {})
    known = {
        "credential_validity_years",
        "max_age_years",
        "proof_freshness_seconds",
        "clock_skew_seconds",
        "anchors_per_credential",
        "record_validity_seconds",
        "default_minimum_age",
    }
    unknown = set(d) - known
    if unknown:
        raise ConfigurationError(f"build_settings: unknown keys {sorted(unknown)}")

    defaults = DEFAULT_SETTINGS
    settings = AgeGateSettings(
        credential_validity_years=_int(
            d, "credential_validity_years", defaults.credential_validity_years
        ),
        max_age_years=_int(d, "max_age_years", defaults.max_age_years),
        proof_freshness=timedelta(
            seconds=_int(
                d,
                "proof_freshness_seconds",
                int(defaults.proof_freshness.total_seconds()),
            )
        ),
        clock_skew=timedelta(
            seconds=_int(
                d, "clock_skew_seconds", int(defaults.clock_skew.total_seconds())
            )
        ),
        anchors_per_credential=_int(
            d, "anchors_per_credential", defaults.anchors_per_credential
        ),
        record_validity=timedelta(
            seconds=_int(
                d,
                "record_validity_seconds",
                int(defaults.record_validity.total_seconds()),
            )
        ),
        default_minimum_age=_int(
            d, "default_minimum_age", defaults.default_minimum_age
        ),
    )
    validate_settings(settings)
    return settings


def validate_settings(settings: AgeGateSettings) -> None:
    """Raise :class:`ConfigurationError` if *settings* are inconsistent."""
    if not 0 < settings.max_age_years <= MAX_AGE_YEARS:
        raise ConfigurationError(
            f"max_age_years must be in 1..{MAX_AGE_YEARS}, "
            f"got {settings.max_age_years}"
        )
    if settings.credential_validity_years < 1:
        raise ConfigurationError("credential_validity_years must be at least 1")
    # One extra year covers rounding the reference day up to the end of the
    # expiry year.
    chain_years = settings.max_age_years + settings.credential_validity_years + 1
    if chain_years * 366 > MAX_CHAIN_DAYS:
        raise ConfigurationError(
            "max_age_years + credential_validity_years must not exceed 199"
        )
    if settings.proof_freshness <= timedelta(0):
        raise ConfigurationError("proof_freshness must be positive")
    if settings.clock_skew < timedelta(0):
        raise ConfigurationError("clock_skew must not be negative")
    if settings.anchors_per_credential < 1:
        raise ConfigurationError("anchors_per_credential must be at least 1")
    if settings.record_validity <= timedelta(0):
        raise ConfigurationError("record_validity must be positive")
    if not 0 <= settings.default_minimum_age <= settings.max_age_years:
        raise ConfigurationError(
            "default_minimum_age must be between 0 and max_age_years"
        )


def _int(d: Mapping[str, Any], key: str, default: int) -> int:
    value = d.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(
            f"{key} must be an integer, got {type(value).__name__}"
        )
    return value
