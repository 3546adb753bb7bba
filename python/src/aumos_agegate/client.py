# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""IssuerDirectoryClient: async resolution of issuer DIDs into trust entries.

Relying parties usually learn issuers by DID rather than by raw key. This
client turns such a DID into an :class:`~types.IssuerPublicConfig`:

1. ``did:key`` issuers resolve offline; the DID already is the public key.
2. ``did:web`` issuers publish a DID document at a well-known HTTPS URL,
   which is fetched and parsed.

Resolution only reads; deciding to trust the result is explicit, through
:meth:`IssuerDirectoryClient.trust_issuer` or the verifier's trust store.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .did import is_key_id, parse_did_method, parse_issuer_document, web_did_to_url
from .types import (
    DIDMethod,
    IssuerDirectoryError,
    IssuerPublicConfig,
    IssuerResolutionError,
)
from .verification import Verifier

logger = logging.getLogger(__name__)


class IssuerDirectoryClient:
    """Async client resolving issuer DIDs.

    Parameters
    ----------
    timeout:
        Per-request timeout in seconds. Defaults to 10.
    http_client:
        Optional pre-configured :class:`httpx.AsyncClient`. Useful for
        injecting test transports or custom SSL contexts. A client passed
        in is not closed by :meth:`aclose`.

    Examples
    --------
    >>> async with IssuerDirectoryClient() as directory:
    ...     await directory.trust_issuer(verifier, "did:web:dmv.example")
    """

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._owned_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    # ------------------------------------------------------------------
    # Context manager support
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "IssuerDirectoryClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if it was created internally."""
        if self._owned_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve_issuer(self, did: str) -> IssuerPublicConfig:
        """Resolve an issuer DID into its public configuration.

        Parameters
        ----------
        did:
            A ``did:key`` or ``did:web`` DID.

        Returns
        -------
        IssuerPublicConfig
            For ``did:key`` the DID doubles as id, name and public key.

        Raises
        ------
        UnsupportedDIDMethodError
            If the DID method is neither ``key`` nor ``web``.
        IssuerResolutionError
            If the DID is malformed or its document carries no usable key.
        IssuerDirectoryError
            On a timeout or a non-2xx response while fetching a document.
        """
        try:
            method = parse_did_method(did)
        except ValueError as exc:
            raise IssuerResolutionError(str(exc)) from exc

        if method is DIDMethod.KEY:
            if not is_key_id(did):
                raise IssuerResolutionError(f"not an Ed25519 did:key: {did!r}")
            return IssuerPublicConfig(id=did, name=did, public_key=did)

        try:
            url = web_did_to_url(did)
        except ValueError as exc:
            raise IssuerResolutionError(str(exc)) from exc

        raw = await self._get(url)
        try:
            config = parse_issuer_document(raw, expected_did=did)
        except ValueError as exc:
            raise IssuerResolutionError(str(exc)) from exc

        logger.debug("resolved issuer %s from %s", did, url)
        return config

    async def trust_issuer(self, verifier: Verifier, did: str) -> IssuerPublicConfig:
        """Resolve *did* and add the result to *verifier*'s trust store."""
        config = await self.resolve_issuer(did)
        verifier.add_trusted_issuer(config)
        return config

    # ------------------------------------------------------------------
    # Private HTTP helpers
    # ------------------------------------------------------------------

    async def _get(self, url: str) -> Any:
        try:
            response = await self._http.get(
                url, headers={"Accept": "application/json"}, timeout=self._timeout
            )
        except httpx.TimeoutException as exc:
            raise IssuerDirectoryError(
                status_code=0, endpoint=url, message=f"request timed out: {exc}"
            ) from exc

        _raise_for_status(response, url)
        try:
            return response.json()
        except ValueError as exc:
            raise IssuerResolutionError(
                f"issuer document at {url} is not valid JSON"
            ) from exc


def _raise_for_status(response: httpx.Response, url: str) -> None:
    if response.is_success:
        return
    message = response.reason_phrase or "unknown error"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        message = body["error"]
    raise IssuerDirectoryError(
        status_code=response.status_code,
        endpoint=url,
        message=message,
    )
