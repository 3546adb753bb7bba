"""Shared fixtures for the aumos_agegate test suite.

Every protocol role runs on a fixed clock so that ages, expiry and
freshness are deterministic.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from aumos_agegate.config import AgeGateSettings, DEFAULT_SETTINGS
from aumos_agegate.credential import CredentialIssuer
from aumos_agegate.proof import ProofGenerator
from aumos_agegate.records import InMemoryVerificationRecordRepository
from aumos_agegate.verification import Verifier

NOW = datetime(2026, 6, 15, 12, 0, 0, tzinfo=timezone.utc)

# 25 years old at NOW.
BIRTH_DATE = date(2001, 3, 10)


class MutableClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def birth_date() -> date:
    return BIRTH_DATE


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def make_issuer():
    def _make(
        issuer_id: str = "did:web:dmv.example",
        name: str = "Example DMV",
        settings: AgeGateSettings = DEFAULT_SETTINGS,
        at: datetime = NOW,
    ) -> CredentialIssuer:
        return CredentialIssuer.generate(
            issuer_id=issuer_id, name=name, settings=settings, clock=MutableClock(at)
        )

    return _make


@pytest.fixture
def issuer(make_issuer) -> CredentialIssuer:
    return make_issuer()


@pytest.fixture
def credential(issuer, birth_date):
    return issuer.issue(birth_date)


@pytest.fixture
def make_generator():
    def _make(at: datetime = NOW, **kwargs) -> ProofGenerator:
        return ProofGenerator(clock=MutableClock(at), **kwargs)

    return _make


@pytest.fixture
def generator(make_generator) -> ProofGenerator:
    return make_generator()


@pytest.fixture
def verifier(issuer, clock) -> Verifier:
    return Verifier([issuer.get_public_config()], clock=clock)


@pytest.fixture
def proof(generator, credential):
    return generator.generate_proof(credential, 18)


@pytest.fixture
def repository() -> InMemoryVerificationRecordRepository:
    return InMemoryVerificationRecordRepository()
