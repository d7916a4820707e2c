"""JSON Web Key Set parsing.

A KeySet is an immutable snapshot of the verification keys published by the
identity service. It is replaced wholesale on every refresh and never mutated
key-by-key, so a reader holding a reference always sees a complete set.

Parsing rules
-------------
- The document must be an object with a ``keys`` array.
- Each key needs a non-empty string ``kid`` and ``kty`` and must be accepted
  by PyJWT's JWK loader (modulus/exponent for RSA, curve/coordinates for EC).
- Keys published for encryption (``use == "enc"``) are ignored.
- Duplicate ``kid`` values are treated as malformed keys.
- What happens to a malformed key is decided by MalformedKeyPolicy.
- A document that yields no usable key is rejected.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

import structlog
from jwt import PyJWK
from jwt.exceptions import PyJWTError

from .errors import InvalidSignature, ParseError

logger = structlog.get_logger(__name__)


class MalformedKeyPolicy(StrEnum):
    """What to do with a key object that cannot be loaded."""

    SKIP = "skip"
    """Log the key and continue with the rest of the document."""

    REJECT = "reject"
    """Fail the whole document with ParseError."""


@dataclass(frozen=True, slots=True)
class VerificationKey:
    """One public verification key from a key set.

    Attributes:
        kid: Key identifier, unique within its KeySet.
        kty: Key type (``RSA``, ``EC``, ``OKP``, ``oct``).
        alg: Algorithm declared by the key, or None if the key leaves it open.
        use: Declared public key use, usually ``sig`` or None.
        jwk: Loaded PyJWT key.
        raw: The JWK object exactly as published.
    """

    kid: str
    kty: str
    alg: str | None
    use: str | None
    jwk: PyJWK = field(repr=False)
    raw: Mapping[str, Any] = field(repr=False)

    def for_algorithm(self, alg: str) -> PyJWK:
        """Return a PyJWK able to verify signatures made with ``alg``.

        Raises:
            InvalidSignature: The key declares a different algorithm, or its
                material cannot be used with ``alg``.
        """
        if self.alg is not None:
            if alg != self.alg:
                raise InvalidSignature(
                    f"Token algorithm {alg!r} does not match key {self.kid!r} ({self.alg})"
                )
            return self.jwk

        if alg == self.jwk.algorithm_name:
            return self.jwk

        try:
            return PyJWK(dict(self.raw), algorithm=alg)
        except (PyJWTError, ValueError, TypeError) as e:
            raise InvalidSignature(
                f"Key {self.kid!r} ({self.kty}) cannot verify {alg!r} signatures"
            ) from e


class KeySet:
    """Immutable, ordered collection of verification keys indexed by kid."""

    __slots__ = ("_keys", "_by_kid")

    def __init__(self, keys: Sequence[VerificationKey]) -> None:
        by_kid: dict[str, VerificationKey] = {}
        for key in keys:
            if key.kid in by_kid:
                raise ValueError(f"Duplicate key id {key.kid!r} in key set")
            by_kid[key.kid] = key

        self._keys: tuple[VerificationKey, ...] = tuple(keys)
        self._by_kid: Mapping[str, VerificationKey] = MappingProxyType(by_kid)

    def get(self, kid: str) -> VerificationKey | None:
        return self._by_kid.get(kid)

    @property
    def kids(self) -> tuple[str, ...]:
        return tuple(key.kid for key in self._keys)

    def __contains__(self, kid: object) -> bool:
        return kid in self._by_kid

    def __iter__(self) -> Iterator[VerificationKey]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeySet):
            return NotImplemented
        return [k.raw for k in self._keys] == [k.raw for k in other._keys]

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"KeySet(kids={list(self.kids)!r})"


def _load_key(obj: Any) -> VerificationKey:
    if not isinstance(obj, Mapping):
        raise ParseError("Key entry is not a JSON object")

    kid = obj.get("kid")
    if not isinstance(kid, str) or not kid:
        raise ParseError("Key entry is missing 'kid'")

    kty = obj.get("kty")
    if not isinstance(kty, str) or not kty:
        raise ParseError(f"Key {kid!r} is missing 'kty'")

    alg = obj.get("alg")
    if alg is not None and not isinstance(alg, str):
        raise ParseError(f"Key {kid!r} has a non-string 'alg'")

    use = obj.get("use")

    try:
        jwk = PyJWK.from_dict(dict(obj))
    except (PyJWTError, ValueError, TypeError, KeyError) as e:
        raise ParseError(f"Key {kid!r} could not be loaded: {e}") from e

    return VerificationKey(kid=kid, kty=kty, alg=alg, use=use, jwk=jwk, raw=dict(obj))


def parse_key_set(
    document: Any,
    policy: MalformedKeyPolicy = MalformedKeyPolicy.SKIP,
) -> KeySet:
    """Build a KeySet from a decoded JWKS document.

    Args:
        document: Decoded JSON body of the key set endpoint.
        policy: How to treat individual malformed keys.

    Returns:
        A KeySet with at least one key.

    Raises:
        ParseError: The document shape is wrong, a key is malformed under
            MalformedKeyPolicy.REJECT, or no usable key remains.
    """
    if not isinstance(document, Mapping):
        raise ParseError("Key set document is not a JSON object")

    entries = document.get("keys")
    if not isinstance(entries, list):
        raise ParseError("Key set document has no 'keys' array")

    keys: list[VerificationKey] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        if isinstance(entry, Mapping) and entry.get("use") == "enc":
            continue

        try:
            key = _load_key(entry)
            if key.kid in seen:
                raise ParseError(f"Duplicate key id {key.kid!r}")
        except ParseError as e:
            if policy is MalformedKeyPolicy.REJECT:
                raise
            logger.warning("jwks_key_skipped", index=index, reason=e.description)
            continue

        seen.add(key.kid)
        keys.append(key)

    if not keys:
        raise ParseError("Key set document contains no usable signing keys")

    return KeySet(keys)
