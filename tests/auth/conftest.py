from collections.abc import Callable
from typing import Any

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jwt.algorithms import ECAlgorithm, RSAAlgorithm

import fireface as m

NOW = 1_700_000_000.0
BASE_URL = "https://id.example.com"
JWKS_URL = f"{BASE_URL}/.well-known/jwks.json"


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ec_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def make_jwk() -> Callable[..., dict[str, Any]]:
    """
    Factory fixture returning the public JWK dict for a private key.

    Usage in tests:
        jwk = make_jwk(rsa_key, kid="k1")
    """

    def _make(private_key: Any, *, kid: str = "k1", alg: str | None = "RS256") -> dict[str, Any]:
        if isinstance(private_key, ec.EllipticCurvePrivateKey):
            data = ECAlgorithm.to_jwk(private_key.public_key(), as_dict=True)
        else:
            data = RSAAlgorithm.to_jwk(private_key.public_key(), as_dict=True)
        data["kid"] = kid
        data["use"] = "sig"
        if alg is not None:
            data["alg"] = alg
        return data

    return _make


@pytest.fixture
def make_token() -> Callable[..., str]:
    """
    Factory fixture returning a signed compact token.

    Usage in tests:
        token = make_token(rsa_key, kid="k1", exp=NOW + 60)
    """

    def _make(
        private_key: Any,
        *,
        kid: str | None = "k1",
        alg: str = "RS256",
        now: float = NOW,
        **claims: Any,
    ) -> str:
        payload: dict[str, Any] = {
            "iss": "https://issuer",
            "sub": "user-42",
            "iat": int(now),
            "exp": int(now) + 3600,
        }
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        headers = {"kid": kid} if kid is not None else None
        return jwt.encode(payload, private_key, algorithm=alg, headers=headers)

    return _make


@pytest.fixture
def key_set(rsa_key, make_jwk) -> m.KeySet:
    return m.parse_key_set({"keys": [make_jwk(rsa_key, kid="k1")]})


class FakeFetcher:
    """
    Scripted KeyFetcher stub.
    Each fetch() pops the next result; exceptions are raised.
    Once only one result remains it is repeated.
    """

    def __init__(self, *results: Any):
        self._results = list(results)
        self.calls: list[tuple[str, float | None]] = []

    def fetch(self, url: str, *, timeout: float | None = None) -> m.KeySet:
        self.calls.append((url, timeout))
        result = self._results.pop(0) if len(self._results) > 1 else self._results[0]
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def fake_fetcher() -> type[FakeFetcher]:
    return FakeFetcher


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class JWKSServer:
    """
    In-process identity service for httpx.MockTransport.
    Serves `document` at the JWKS path and records every request.
    """

    def __init__(self, document: Any = None):
        self.document = document if document is not None else {"keys": []}
        self.status_code = 200
        self.fail_with: Exception | None = None
        self.requests: list[httpx.Request] = []
        self.user_handler: Callable[[httpx.Request], httpx.Response] | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        if request.url.path == "/.well-known/jwks.json":
            if isinstance(self.document, str | bytes):
                return httpx.Response(self.status_code, content=self.document)
            return httpx.Response(self.status_code, json=self.document)
        if request.url.path.startswith("/auth/users/") and self.user_handler:
            return self.user_handler(request)
        return httpx.Response(404, json={"error": "not found"})

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    @property
    def jwks_requests(self) -> int:
        return sum(1 for r in self.requests if r.url.path == "/.well-known/jwks.json")


@pytest.fixture
def jwks_server(rsa_key, make_jwk) -> JWKSServer:
    return JWKSServer({"keys": [make_jwk(rsa_key, kid="k1")]})
