"""Fireface auth client.

AuthClient is the only component callers use directly. It composes
KeySetCache and IDTokenVerifier into `verify_id_token()` and offers
`update_user()`, a plain authenticated call to the user REST endpoint.

Lifecycle
---------
Construction is non-blocking: it validates configuration and builds the
HTTP client, but fetches nothing. `warm_up()` performs the initial key set
fetch under a caller-controlled timeout and raises if the identity service
cannot provide keys. `create_client()` does both, for callers that want a
client that is ready or never returned at all.

Unknown key policy
------------------
When a token names a ``kid`` that the cached set does not contain and
``refresh_on_unknown_key`` is enabled, the client forces one refresh
(throttled by RefreshGate) and retries verification once. This lets a key
rotated in at the identity service verify before the regular refresh
interval elapses.
"""

from __future__ import annotations

import hashlib
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Final, Self
from urllib.parse import quote

import httpx
import structlog

from .errors import AuthError, ConfigError, UnknownKey
from .key_cache import DEFAULT_MIN_REFRESH_INTERVAL, KeySetCache
from .key_providers import JWKSFetcher
from .key_set import MalformedKeyPolicy
from .protocols import Clock, KeyFetcher
from .verifier import DecodedIdToken, IDTokenVerifier, VerifyOptions, unverified_key_id

SDK_VERSION: Final[str] = "0.1.0"

JWKS_PATH: Final[str] = "/.well-known/jwks.json"
USERS_PATH: Final[str] = "/auth/users"

type AuthClientOption = Callable[["AuthClient"], None]
"""Functional override applied to a client after its defaults are built."""


@dataclass(frozen=True, slots=True)
class AuthConfig:
    """Construction-time parameters of an AuthClient.

    Attributes:
        base_url: Absolute http(s) URL of the identity service.
        secret_key: Project secret, sent as bearer credential on REST calls.
        min_refresh_interval: Seconds after which the cached key set is stale.
        http_timeout: Default timeout in seconds for every HTTP request.
        refresh_on_unknown_key: Force one throttled refresh when a token's
            ``kid`` is not in the cached set.
        malformed_key_policy: Treatment of unloadable keys in the JWKS.
        verify_options: Algorithm allow-list, leeway, issuer and audience.
        logger: structlog-compatible logger sink.
        options: Overrides applied after defaults, in order.
        version: SDK version reported in the User-Agent header.
    """

    base_url: str
    secret_key: str
    min_refresh_interval: float = DEFAULT_MIN_REFRESH_INTERVAL
    http_timeout: float = 10.0
    refresh_on_unknown_key: bool = True
    malformed_key_policy: MalformedKeyPolicy = MalformedKeyPolicy.SKIP
    verify_options: VerifyOptions = field(default_factory=VerifyOptions)
    logger: Any = None
    options: tuple[AuthClientOption, ...] = ()
    version: str = SDK_VERSION


@dataclass(frozen=True, slots=True)
class UserToUpdate:
    id: str
    email: str = ""
    password: str | None = None


@dataclass(frozen=True, slots=True)
class User:
    id: str
    email: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> User:
        return cls(
            id=str(data["id"]),
            email=data["email"],
            created_at=datetime.fromtimestamp(data["created_at"], tz=UTC),
            updated_at=datetime.fromtimestamp(data["updated_at"], tz=UTC),
        )


def _validate_base_url(base_url: str) -> str:
    if not base_url or not base_url.strip():
        raise ConfigError("base URL is required")
    try:
        url = httpx.URL(base_url.strip())
    except (httpx.InvalidURL, TypeError) as e:
        raise ConfigError(f"base URL {base_url!r} is invalid") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigError(f"base URL {base_url!r} must be an absolute http(s) URL")
    return str(url).rstrip("/")


class _Fingerprint:
    """Short SHA-256 prefix of a token, hashed only when rendered."""

    __slots__ = ("_token",)

    def __init__(self, token: object) -> None:
        self._token = token

    def __str__(self) -> str:
        raw = self._token if isinstance(self._token, str) else ""
        return hashlib.sha256(raw.encode("utf-8", "replace")).hexdigest()[:12]

    __repr__ = __str__


class AuthClient:
    """Verifies Fireface ID tokens and manages users.

    Example:
        ```python
        config = AuthConfig(base_url="https://fireface.example.com", secret_key="sk_...")

        with AuthClient(config) as client:
            client.warm_up(timeout=5)
            token = client.verify_id_token(raw_id_token)
            print(token.sub, token.email)
        ```

    Thread Safety:
        `verify_id_token()` may be called from any number of threads.
    """

    def __init__(
        self,
        config: AuthConfig,
        *,
        http_client: httpx.Client | None = None,
        fetcher: KeyFetcher | None = None,
        clock: Clock | None = None,
    ) -> None:
        if config is None:
            raise ConfigError("config is required")
        if not config.secret_key:
            raise ConfigError("secret key is required")

        self._config = config
        self._base_url = _validate_base_url(config.base_url)
        self._jwks_url = self._base_url + JWKS_PATH
        self._clock = clock or time.time
        self._log = (config.logger or structlog.get_logger(__name__)).bind(
            jwks_url=self._jwks_url
        )

        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(
            timeout=config.http_timeout,
            headers={"User-Agent": f"fireface-sdk-python/{config.version}"},
        )

        self._owns_fetcher = fetcher is None
        self._fetcher = fetcher or JWKSFetcher(
            self._http,
            timeout=config.http_timeout,
            policy=config.malformed_key_policy,
            logger=self._log,
        )
        self._cache = KeySetCache(
            self._fetcher,
            self._jwks_url,
            config.min_refresh_interval,
            fetch_timeout=config.http_timeout,
            clock=self._clock,
            logger=self._log,
        )
        self._verifier = IDTokenVerifier(config.verify_options)

        for opt in config.options:
            opt(self)

    @property
    def config(self) -> AuthConfig:
        return self._config

    @property
    def jwks_url(self) -> str:
        return self._jwks_url

    @property
    def key_cache(self) -> KeySetCache:
        return self._cache

    def use_logger(self, logger: Any) -> None:
        """Send events from this client and the components it built to ``logger``."""
        self._log = logger.bind(jwks_url=self._jwks_url)
        self._cache.set_logger(logger)
        if self._owns_fetcher and isinstance(self._fetcher, JWKSFetcher):
            self._fetcher.set_logger(self._log)

    def warm_up(self, timeout: float | None = None) -> Self:
        """Fetch the key set now, bounded by ``timeout`` seconds.

        Raises:
            FetchError: The key endpoint is unreachable or timed out.
            ParseError: The key endpoint returned an unusable document.
        """
        try:
            self._cache.initialize(timeout=timeout)
        except AuthError as e:
            self._log.error("auth_client_warm_up_failed", stage=e.stage, error=e.description)
            raise
        return self

    def verify_id_token(self, token: str) -> DecodedIdToken:
        """Verify a Fireface ID token.

        Returns:
            The decoded token.

        Raises:
            FetchError, ParseError: Only when no key set was ever fetched.
            MalformedToken, UnknownKey, InvalidSignature, ExpiredToken,
            ImmatureToken, InvalidClaim: The token was rejected. The error's
                ``stage`` names the failing pipeline step.
        """
        now = self._clock()
        self._log.debug("verifying_id_token", token_fingerprint=_Fingerprint(token))

        try:
            key_set = self._cache.ensure_fresh(now)
        except AuthError as e:
            self._log.error("id_token_key_set_unavailable", stage=e.stage, error=e.description)
            raise

        try:
            try:
                return self._verifier.verify(token, key_set, now)
            except UnknownKey as e:
                if not self._config.refresh_on_unknown_key or e.kid is None:
                    raise
                refreshed = self._cache.refresh_for_unknown_key(e.kid, key_set)
                if refreshed is key_set:
                    raise
                key_set = refreshed
                return self._verifier.verify(token, key_set, self._clock())
        except AuthError as e:
            self._log.warning(
                "id_token_rejected",
                stage=e.stage,
                error=type(e).__name__,
                reason=e.description,
                kid=unverified_key_id(token) if isinstance(token, str) else None,
                key_count=len(key_set),
            )
            raise

    def update_user(self, user: UserToUpdate) -> User:
        """Update a user through ``PUT /auth/users/{id}``.

        Transport and decoding errors (httpx.HTTPError, ValueError, KeyError)
        propagate unchanged.
        """
        body: dict[str, Any] = {}
        if user.password is not None:
            body["password"] = user.password

        response = self._http.put(
            f"{self._base_url}{USERS_PATH}/{quote(user.id, safe='')}",
            json=body,
            headers={"Authorization": f"Bearer {self._config.secret_key}"},
        )
        response.raise_for_status()
        return User.from_api(response.json())

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def with_verifier(verifier: IDTokenVerifier) -> AuthClientOption:
    def _apply(client: AuthClient) -> None:
        client._verifier = verifier

    return _apply


def with_logger(logger: Any) -> AuthClientOption:
    def _apply(client: AuthClient) -> None:
        client.use_logger(logger)

    return _apply


def create_client(
    config: AuthConfig,
    *,
    http_client: httpx.Client | None = None,
    timeout: float | None = None,
) -> AuthClient:
    """Build an AuthClient and warm it up, or raise without returning one."""
    client = AuthClient(config, http_client=http_client)
    try:
        client.warm_up(timeout=timeout)
    except AuthError:
        client.close()
        raise
    return client
