import httpx
import pytest
from conftest import JWKS_URL

import fireface as m


def test_fetcher_parses_jwks_document(jwks_server):
    fetcher = m.JWKSFetcher(jwks_server.client())

    key_set = fetcher.fetch(JWKS_URL)

    assert key_set.kids == ("k1",)
    assert jwks_server.requests[0].method == "GET"
    assert str(jwks_server.requests[0].url) == JWKS_URL


@pytest.mark.parametrize("status", [404, 500, 503])
def test_fetcher_non_2xx_is_fetch_error(jwks_server, status):
    jwks_server.status_code = status
    fetcher = m.JWKSFetcher(jwks_server.client())

    with pytest.raises(m.FetchError) as exc:
        fetcher.fetch(JWKS_URL)
    assert str(status) in exc.value.description


def test_fetcher_network_failure_is_fetch_error(jwks_server):
    jwks_server.fail_with = httpx.ConnectError("connection refused")
    fetcher = m.JWKSFetcher(jwks_server.client())

    with pytest.raises(m.FetchError):
        fetcher.fetch(JWKS_URL)


def test_fetcher_timeout_is_fetch_error(jwks_server):
    jwks_server.fail_with = httpx.ReadTimeout("timed out")
    fetcher = m.JWKSFetcher(jwks_server.client())

    with pytest.raises(m.FetchError) as exc:
        fetcher.fetch(JWKS_URL, timeout=0.5)
    assert "Timed out" in exc.value.description


def test_fetcher_invalid_json_is_fetch_error(jwks_server):
    jwks_server.document = "<html>not json</html>"
    fetcher = m.JWKSFetcher(jwks_server.client())

    with pytest.raises(m.FetchError):
        fetcher.fetch(JWKS_URL)


def test_fetcher_bad_document_is_parse_error(jwks_server):
    jwks_server.document = {"no": "keys"}
    fetcher = m.JWKSFetcher(jwks_server.client())

    with pytest.raises(m.ParseError):
        fetcher.fetch(JWKS_URL)


def test_fetcher_applies_malformed_key_policy(jwks_server):
    jwks_server.document["keys"].append({"kty": "RSA", "kid": "broken"})

    assert m.JWKSFetcher(jwks_server.client()).fetch(JWKS_URL).kids == ("k1",)

    strict = m.JWKSFetcher(jwks_server.client(), policy=m.MalformedKeyPolicy.REJECT)
    with pytest.raises(m.ParseError):
        strict.fetch(JWKS_URL)


def test_fetcher_does_not_retry(jwks_server):
    jwks_server.status_code = 502
    fetcher = m.JWKSFetcher(jwks_server.client())

    with pytest.raises(m.FetchError):
        fetcher.fetch(JWKS_URL)
    assert jwks_server.jwks_requests == 1
