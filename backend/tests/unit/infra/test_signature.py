"""Unit tests for the OAuth 1.0a signature primitives."""

from __future__ import annotations

import pytest
from oauthkit.infra.oauth import signature

# OAuth Core 1.0 Appendix A.5 example request
PHOTO_URL = "http://photos.example.net/photos"
PHOTO_PARAMS = {
    "file": "vacation.jpg",
    "size": "original",
    "oauth_consumer_key": "dpf43f3p2l4k3l03",
    "oauth_token": "nnch734d00sl2jdk",
    "oauth_signature_method": "HMAC-SHA1",
    "oauth_timestamp": "1191242096",
    "oauth_nonce": "kllo9940pd9333jh",
    "oauth_version": "1.0",
}


def test_percent_encode_leaves_unreserved_characters() -> None:
    assert signature.percent_encode("AZaz09-._~") == "AZaz09-._~"
    assert signature.percent_encode("a b&c=d/é") == "a%20b%26c%3Dd%2F%C3%A9"
    assert signature.percent_encode(None) == ""


def test_base_string_matches_reference_example() -> None:
    base = signature.base_string("get", PHOTO_URL, PHOTO_PARAMS)

    assert base == (
        "GET&http%3A%2F%2Fphotos.example.net%2Fphotos&file%3Dvacation.jpg"
        "%26oauth_consumer_key%3Ddpf43f3p2l4k3l03%26oauth_nonce%3Dkllo9940pd9333jh"
        "%26oauth_signature_method%3DHMAC-SHA1%26oauth_timestamp%3D1191242096"
        "%26oauth_token%3Dnnch734d00sl2jdk%26oauth_version%3D1.0%26size%3Doriginal"
    )


def test_hmac_sha1_signature_matches_reference_example() -> None:
    key = signature.signing_key("kd94hf93k423kf44", "pfkkdhi9sl3r4s00")

    sig = signature.sign_request(
        key, signature.HMAC_SHA1, http_method="GET", url=PHOTO_URL, params=PHOTO_PARAMS
    )

    assert sig == "tR3+Ty81lMeYAr/Fid0kMTYa/WM="


def test_signature_ignores_parameter_insertion_order() -> None:
    key = signature.signing_key("secret", "token-secret")
    reversed_params = dict(reversed(list(PHOTO_PARAMS.items())))

    first = signature.sign_request(
        key, signature.HMAC_SHA1, http_method="POST", url=PHOTO_URL, params=PHOTO_PARAMS
    )
    second = signature.sign_request(
        key, signature.HMAC_SHA1, http_method="POST", url=PHOTO_URL, params=reversed_params
    )

    assert first == second


def test_normalize_parameters_sorts_bytewise() -> None:
    # uppercase sorts before lowercase byte-wise
    assert signature.normalize_parameters({"b": "1", "B": "2", "a": "3"}) == "B=2&a=3&b=1"


def test_normalize_url_drops_query_and_lowercases() -> None:
    url = "HTTPS://Example.COM/Path?x=1#frag"

    assert signature.normalize_url(url) == "https://example.com/path"


@pytest.mark.parametrize("method", [signature.PLAINTEXT, "RSA-SHA1", None])
def test_plaintext_and_unknown_methods_return_the_key(method) -> None:
    key = signature.signing_key("con sumer", "tok")

    assert signature.sign(key, method, "ignored") == "con%20sumer&tok"


def test_signing_key_without_token_secret() -> None:
    assert signature.signing_key("secret") == "secret&"


def test_authorization_header_quotes_and_encodes_values() -> None:
    header = signature.authorization_header(
        "photos", {"oauth_token": "a b", "oauth_consumer_key": "key"}
    )

    assert header == 'OAuth realm="photos",oauth_consumer_key="key",oauth_token="a%20b"'


def test_absolute_time_adds_relative_lifetime() -> None:
    assert signature.absolute_time("3600", now=1000) == 4600


def test_absolute_time_clamps_to_signed_32_bit_range() -> None:
    assert signature.absolute_time(4000000000, now=1_700_000_000) == signature.MAX_TIMESTAMP
    assert signature.MAX_TIMESTAMP == 2147483646


def test_absolute_time_truncates_fractional_lifetimes() -> None:
    assert signature.absolute_time("3600.5", now=1000) == 4600


def test_absolute_time_rejects_non_numeric_lifetimes() -> None:
    with pytest.raises(ValueError):
        signature.absolute_time("soon", now=1000)


def test_generate_nonce_is_unique() -> None:
    assert signature.generate_nonce() != signature.generate_nonce()
