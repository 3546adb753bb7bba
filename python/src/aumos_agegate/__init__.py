# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""aumos-age-proof: privacy-preserving age verification.

An issuer signs a credential over a holder's birth date; the holder proves
"at least N years old" to a relying party without revealing the date.

Quickstart
----------
>>> from datetime import date
>>> from aumos_agegate import CredentialIssuer, ProofGenerator, Verifier, credential_to_dict
>>> issuer = CredentialIssuer.generate(issuer_id="did:web:dmv.example", name="Example DMV")
>>> credential = issuer.issue(date(2000, 1, 1))
>>> proof = ProofGenerator().generate_proof(credential, 18)
>>> verifier = Verifier([issuer.get_public_config()])
>>> print(verifier.verify(proof).is_valid)
True

Each proof spends one of the credential's anchors. The spent set travels
with the credential, so save the wallet after presenting:

>>> wallet = credential_to_dict(credential)
>>> wallet["spentAnchors"] == sorted(credential.presentations.spent())
True

For relying parties that keep a record of accepted proofs:

>>> import asyncio
>>> from aumos_agegate import AgeVerificationService, InMemoryVerificationRecordRepository
>>> service = AgeVerificationService(InMemoryVerificationRecordRepository(), verifier)
>>> record = asyncio.run(service.register_proof(proof))
"""

from .client import IssuerDirectoryClient
from .config import DEFAULT_SETTINGS, AgeGateSettings, build_settings
from .credential import (
    CredentialIssuer,
    canonicalize_credential,
    credential_from_dict,
    credential_to_dict,
    verify_credential_signature,
)
from .proof import ProofGenerator, proof_from_dict, proof_to_dict
from .proof_system import HashChainProofSystem, ProofSystem
from .records import (
    Age,
    InMemoryVerificationRecordRepository,
    ProofCommitment,
    RecordStatus,
    Timestamp,
    VerificationRecord,
    VerificationRecordRepository,
)
from .service import AgeVerificationService, CryptographicBackend, HmacCryptographicBackend
from .types import (
    AgeGateError,
    AgeProof,
    AgeRequirementNotMetError,
    ConfigurationError,
    Credential,
    CredentialExhaustedError,
    CryptographicError,
    DuplicateProofError,
    ExpiredCredentialError,
    FormatError,
    InvalidAgeError,
    InvalidCredentialError,
    InvalidInputError,
    InvalidTransitionError,
    IssuerDirectoryError,
    IssuerPublicConfig,
    IssuerResolutionError,
    MissingCredentialError,
    PresentationLedger,
    ProofGenerationError,
    ProofRejectedError,
    ProofVerificationError,
    PublicInputs,
    RecordNotFoundError,
    StalenessError,
    StructuralError,
    TemporalOrderError,
    TrustError,
    UnsupportedDIDMethodError,
    VerificationFailure,
    VerificationResult,
)
from .verification import TrustStore, Verifier

__all__ = [
    # Protocol roles
    "CredentialIssuer",
    "ProofGenerator",
    "Verifier",
    "TrustStore",
    # Core types
    "Credential",
    "PresentationLedger",
    "AgeProof",
    "PublicInputs",
    "IssuerPublicConfig",
    "VerificationResult",
    "VerificationFailure",
    # Configuration
    "AgeGateSettings",
    "DEFAULT_SETTINGS",
    "build_settings",
    # Proof systems
    "ProofSystem",
    "HashChainProofSystem",
    # Wire format helpers
    "canonicalize_credential",
    "verify_credential_signature",
    "credential_to_dict",
    "credential_from_dict",
    "proof_to_dict",
    "proof_from_dict",
    # Verification records
    "Age",
    "ProofCommitment",
    "Timestamp",
    "RecordStatus",
    "VerificationRecord",
    "VerificationRecordRepository",
    "InMemoryVerificationRecordRepository",
    "AgeVerificationService",
    "CryptographicBackend",
    "HmacCryptographicBackend",
    # Issuer directory
    "IssuerDirectoryClient",
    # Exceptions
    "AgeGateError",
    "ConfigurationError",
    "InvalidInputError",
    "ProofGenerationError",
    "MissingCredentialError",
    "InvalidAgeError",
    "InvalidCredentialError",
    "TemporalOrderError",
    "ExpiredCredentialError",
    "AgeRequirementNotMetError",
    "CredentialExhaustedError",
    "ProofVerificationError",
    "StructuralError",
    "TrustError",
    "FormatError",
    "StalenessError",
    "CryptographicError",
    "DuplicateProofError",
    "RecordNotFoundError",
    "InvalidTransitionError",
    "ProofRejectedError",
    "IssuerDirectoryError",
    "IssuerResolutionError",
    "UnsupportedDIDMethodError",
]
