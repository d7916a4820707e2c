"""ID token verification against a KeySet.

This module provides a single-pass, stateless verifier for compact signed
ID tokens. Given a token, a KeySet and the current time it:

1. Reads ``kid`` and ``alg`` from the unverified header
2. Selects the signing key by ``kid``
3. Verifies the signature, issuer, audience and required claims via PyJWT
4. Checks exp/iat/nbf against the supplied time
5. Builds a typed DecodedIdToken

PyJWT's own time checks are disabled because they always read the system
clock; the verifier checks the time claims against ``now`` instead.

Key resolution and refresh live in KeySetCache; this module never performs
I/O and holds no mutable state, so a single verifier can be shared by any
number of threads.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Final

import jwt

from .errors import (
    ExpiredToken,
    ImmatureToken,
    InvalidClaim,
    InvalidSignature,
    MalformedToken,
    UnknownKey,
)
from .key_set import KeySet

REQUIRED_CLAIMS: Final[tuple[str, ...]] = ("exp", "iat", "iss", "sub")

DEFAULT_ALGORITHMS: Final[tuple[str, ...]] = (
    "RS256",
    "RS384",
    "RS512",
    "PS256",
    "PS384",
    "PS512",
    "ES256",
    "ES384",
    "ES512",
    "EdDSA",
)
"""Asymmetric JWS algorithms accepted by default. ``none`` is never accepted."""


@dataclass(frozen=True, slots=True)
class VerifyOptions:
    """Configuration for ID token validation rules.

    Attributes:
        algorithms: Allow-list of signing algorithms. A token whose header
            names any other algorithm fails with InvalidSignature.
        leeway: Clock skew tolerance in seconds for exp/iat/nbf.
        issuer: Expected ``iss``. If None, any non-empty issuer is accepted.
        audience: Expected ``aud``. If None, audience is not validated.
    """

    algorithms: tuple[str, ...] = DEFAULT_ALGORITHMS
    leeway: float = 0
    issuer: str | None = None
    audience: str | None = None

    def __post_init__(self) -> None:
        if not self.algorithms:
            raise ValueError("algorithms must not be empty")
        if any(alg.lower() == "none" for alg in self.algorithms):
            raise ValueError("the 'none' algorithm cannot be allowed")
        if self.leeway < 0:
            raise ValueError(f"leeway must not be negative, got {self.leeway}")


@dataclass(frozen=True, slots=True)
class DecodedIdToken:
    """Verified claims of an ID token.

    ``email`` and ``email_verified`` are None when the token does not carry
    them; they are never defaulted.
    """

    iss: str
    sub: str
    exp: datetime
    iat: datetime
    email: str | None = None
    email_verified: bool | None = None


def _unverified_header(token: str) -> dict[str, Any]:
    try:
        return jwt.get_unverified_header(token)
    except jwt.InvalidTokenError as e:
        raise MalformedToken(f"Token header could not be decoded: {e}") from e


def unverified_key_id(token: str) -> str | None:
    """Return the header ``kid`` of ``token`` without verifying anything.

    Only meant for log context. Returns None for anything unparseable.
    """
    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except jwt.InvalidTokenError:
        return None
    return kid if isinstance(kid, str) else None


def _numeric(claims: Mapping[str, Any], name: str) -> float:
    value = claims.get(name)
    if value is None:
        raise MalformedToken(f"Token is missing the '{name}' claim")
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise MalformedToken(f"Claim '{name}' must be a number")
    return value


def _timestamp(value: float, name: str) -> datetime:
    try:
        return datetime.fromtimestamp(value, tz=UTC)
    except (OverflowError, OSError, ValueError) as e:
        raise MalformedToken(f"Claim '{name}' is out of range") from e


def _string(claims: Mapping[str, Any], name: str) -> str:
    value = claims.get(name)
    if not isinstance(value, str) or not value:
        raise MalformedToken(f"Claim '{name}' must be a non-empty string")
    return value


def _optional(claims: Mapping[str, Any], name: str, kind: type) -> Any:
    value = claims.get(name)
    if value is None:
        return None
    if not isinstance(value, kind):
        raise MalformedToken(f"Claim '{name}' must be of type {kind.__name__}")
    return value


class IDTokenVerifier:
    """Verifies compact ID tokens against a KeySet.

    Example:
        ```python
        verifier = IDTokenVerifier(VerifyOptions(issuer="https://issuer"))
        token = verifier.verify(raw_token, cache.ensure_fresh())
        print(token.sub, token.email)
        ```
    """

    def __init__(self, options: VerifyOptions | None = None) -> None:
        self._opt = options or VerifyOptions()

    @property
    def options(self) -> VerifyOptions:
        return self._opt

    def verify(
        self,
        token: str,
        key_set: KeySet,
        now: float | None = None,
    ) -> DecodedIdToken:
        """Verify ``token`` with keys from ``key_set`` at time ``now``.

        Args:
            token: Compact ``header.payload.signature`` string.
            key_set: Keys to select the signing key from.
            now: Unix time to validate claims against; defaults to time.time().

        Raises:
            MalformedToken: Bad structure, header or mandatory claims.
            UnknownKey: ``kid`` is not in ``key_set``.
            InvalidSignature: Signature mismatch or disallowed algorithm.
            ExpiredToken: ``now`` is at or past ``exp`` (plus leeway).
            ImmatureToken: ``iat`` or ``nbf`` is in the future.
            InvalidClaim: Configured issuer or audience does not match.
        """
        now = time.time() if now is None else now

        # Step 1: header, unverified
        header = _unverified_header(token)
        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise MalformedToken("Token header is missing 'kid'")
        alg = header.get("alg")
        if not isinstance(alg, str) or not alg:
            raise MalformedToken("Token header is missing 'alg'")

        # Step 2: key selection
        key = key_set.get(kid)
        if key is None:
            raise UnknownKey(f"No key with id {kid!r} in key set", kid=kid)
        if alg not in self._opt.algorithms:
            raise InvalidSignature(f"Token algorithm {alg!r} is not allowed")

        # Step 3: signature and static claims
        try:
            decoded = jwt.decode_complete(
                token,
                key.for_algorithm(alg),
                algorithms=list(self._opt.algorithms),
                issuer=self._opt.issuer,
                audience=self._opt.audience,
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "verify_aud": self._opt.audience is not None,
                    "require": list(REQUIRED_CLAIMS),
                },
            )
        except (jwt.InvalidSignatureError, jwt.InvalidAlgorithmError) as e:
            raise InvalidSignature(f"Token signature does not match: {e}") from e
        except jwt.MissingRequiredClaimError as e:
            if e.claim == "aud":
                raise InvalidClaim("Token has no audience") from e
            raise MalformedToken(f"Token is missing the '{e.claim}' claim") from e
        except (jwt.InvalidIssuerError, jwt.InvalidAudienceError) as e:
            raise InvalidClaim(f"Token claim does not match: {e}") from e
        except jwt.InvalidTokenError as e:
            raise MalformedToken(f"Token could not be decoded: {e}") from e

        # Step 4-5: time claims and typed result
        return self._decode_claims(decoded["payload"], now)

    def _decode_claims(self, claims: Mapping[str, Any], now: float) -> DecodedIdToken:
        leeway = self._opt.leeway

        exp = _numeric(claims, "exp")
        iat = _numeric(claims, "iat")

        if now >= exp + leeway:
            raise ExpiredToken("Token has expired")
        if iat > now + leeway:
            raise ImmatureToken("Token was issued in the future")
        if "nbf" in claims and _numeric(claims, "nbf") > now + leeway:
            raise ImmatureToken("Token is not valid yet")

        return DecodedIdToken(
            iss=_string(claims, "iss"),
            sub=_string(claims, "sub"),
            exp=_timestamp(exp, "exp"),
            iat=_timestamp(iat, "iat"),
            email=_optional(claims, "email", str),
            email_verified=_optional(claims, "email_verified", bool),
        )
