import pytest

import fireface as m


def test_parse_key_set_indexes_keys_by_kid(rsa_key, other_rsa_key, make_jwk):
    key_set = m.parse_key_set(
        {"keys": [make_jwk(rsa_key, kid="k1"), make_jwk(other_rsa_key, kid="k2")]}
    )

    assert len(key_set) == 2
    assert key_set.kids == ("k1", "k2")
    assert "k1" in key_set
    key = key_set.get("k2")
    assert key is not None
    assert key.kty == "RSA"
    assert key.alg == "RS256"
    assert key_set.get("missing") is None


def test_parse_key_set_accepts_ec_keys(ec_key, make_jwk):
    key_set = m.parse_key_set({"keys": [make_jwk(ec_key, kid="ec1", alg="ES256")]})

    key = key_set.get("ec1")
    assert key is not None
    assert key.kty == "EC"


@pytest.mark.parametrize(
    "document",
    [
        [],
        "keys",
        {},
        {"keys": {"kid": "k1"}},
    ],
)
def test_parse_key_set_rejects_bad_document_shape(document):
    with pytest.raises(m.ParseError):
        m.parse_key_set(document)


def test_parse_key_set_skips_malformed_keys_by_default(rsa_key, make_jwk):
    good = make_jwk(rsa_key, kid="good")
    no_kid = {"kty": "RSA", "n": good["n"], "e": good["e"]}
    no_material = {"kty": "RSA", "kid": "broken"}

    key_set = m.parse_key_set({"keys": [no_kid, no_material, "not-an-object", good]})

    assert key_set.kids == ("good",)


def test_parse_key_set_reject_policy_fails_whole_document(rsa_key, make_jwk):
    document = {"keys": [make_jwk(rsa_key, kid="good"), {"kty": "RSA", "kid": "broken"}]}

    with pytest.raises(m.ParseError):
        m.parse_key_set(document, m.MalformedKeyPolicy.REJECT)


def test_parse_key_set_duplicate_kid_is_malformed(rsa_key, other_rsa_key, make_jwk):
    document = {"keys": [make_jwk(rsa_key, kid="k1"), make_jwk(other_rsa_key, kid="k1")]}

    skipped = m.parse_key_set(document)
    assert len(skipped) == 1
    assert skipped.get("k1").raw == document["keys"][0]

    with pytest.raises(m.ParseError):
        m.parse_key_set(document, m.MalformedKeyPolicy.REJECT)


def test_parse_key_set_ignores_encryption_keys(rsa_key, other_rsa_key, make_jwk):
    enc = make_jwk(other_rsa_key, kid="enc1", alg=None)
    enc["use"] = "enc"

    key_set = m.parse_key_set(
        {"keys": [enc, make_jwk(rsa_key, kid="sig1")]}, m.MalformedKeyPolicy.REJECT
    )

    assert key_set.kids == ("sig1",)


def test_parse_key_set_without_usable_keys_fails():
    with pytest.raises(m.ParseError):
        m.parse_key_set({"keys": []})

    with pytest.raises(m.ParseError):
        m.parse_key_set({"keys": [{"kty": "RSA", "kid": "broken"}]})


def test_key_set_constructor_rejects_duplicates(key_set):
    key = key_set.get("k1")

    with pytest.raises(ValueError):
        m.KeySet([key, key])


def test_verification_key_rejects_algorithm_mismatch(key_set):
    key = key_set.get("k1")

    assert key.for_algorithm("RS256") is key.jwk
    with pytest.raises(m.InvalidSignature):
        key.for_algorithm("RS512")


def test_verification_key_without_declared_alg_adapts(rsa_key, make_jwk):
    key = m.parse_key_set({"keys": [make_jwk(rsa_key, kid="k1", alg=None)]}).get("k1")

    assert key.alg is None
    assert key.for_algorithm("RS512").algorithm_name == "RS512"
    with pytest.raises(m.InvalidSignature):
        key.for_algorithm("ES256")
