"""
HTTP JWKS fetcher.

Retrieves the identity service's JSON Web Key Set over HTTP(S) and parses it
into a KeySet. The fetcher performs exactly one request per call; retry and
freshness decisions belong to KeySetCache.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from ..errors import FetchError
from ..key_set import KeySet, MalformedKeyPolicy, parse_key_set

_DEFAULT_TIMEOUT = 10.0


class JWKSFetcher:
    """
    Fetches and parses a JWKS document with httpx.

    Failure mapping
    ---------------
    - transport error / timeout       -> FetchError
    - non-2xx response                -> FetchError
    - body is not JSON                -> FetchError
    - JSON is not a usable key set    -> ParseError (from parse_key_set)

    Parameters
    ----------
    http_client : httpx.Client | None
        Client used for requests. When omitted the fetcher creates and owns
        one; call `close()` to release it.

    timeout : float
        Default per-request timeout in seconds.

    policy : MalformedKeyPolicy
        Treatment of individual malformed keys in the document.
    """

    def __init__(
        self,
        http_client: httpx.Client | None = None,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        policy: MalformedKeyPolicy = MalformedKeyPolicy.SKIP,
        logger: Any = None,
    ) -> None:
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(timeout=timeout)
        self._timeout = timeout
        self._policy = policy
        self._log = logger or structlog.get_logger(__name__)

    def set_logger(self, logger: Any) -> None:
        self._log = logger

    def fetch(self, url: str, *, timeout: float | None = None) -> KeySet:
        log = self._log.bind(jwks_url=url)
        try:
            response = self._http.get(
                url,
                headers={"Accept": "application/json"},
                timeout=timeout if timeout is not None else self._timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise FetchError(f"Timed out fetching JWKS from {url}") from e
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"JWKS request to {url} failed: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Unable to reach JWKS endpoint {url}: {e}") from e

        try:
            document = response.json()
        except ValueError as e:
            raise FetchError(f"JWKS response from {url} is not valid JSON") from e

        key_set = parse_key_set(document, self._policy)
        log.debug("jwks_fetched", key_count=len(key_set), kids=list(key_set.kids))
        return key_set

    def close(self) -> None:
        if self._owns_client:
            self._http.close()
