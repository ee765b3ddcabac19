import pytest

from shortener.utils import hash_secret, is_valid_alias, is_valid_destination, verify_secret


@pytest.mark.parametrize("url", ["http://example.com", "https://example.com/path?q=1"])
def test_valid_destinations(url):
    assert is_valid_destination(url)


@pytest.mark.parametrize("url", ["ftp://example.com", "javascript:alert(1)", "example.com", "https://", ""])
def test_invalid_destinations(url):
    assert not is_valid_destination(url)


def test_alias_bounds():
    assert is_valid_alias("abc")
    assert is_valid_alias("a" * 20)
    assert not is_valid_alias("ab")
    assert not is_valid_alias("a" * 21)
    assert not is_valid_alias("abc_def")
    assert not is_valid_alias("abc\n")


def test_secret_hash_is_salted():
    first = hash_secret("abc", iterations=1000)
    second = hash_secret("abc", iterations=1000)
    assert first != second
    assert "abc" not in first
    assert verify_secret("abc", first)
    assert verify_secret("abc", second)


def test_secret_mismatch():
    stored = hash_secret("abc", iterations=1000)
    assert not verify_secret("abd", stored)
    assert not verify_secret(None, stored)
    assert not verify_secret("abc", "garbage")


@pytest.mark.parametrize(
    "stored",
    [
        "pbkdf2_sha256$1000$nothex$00",
        "pbkdf2_sha256$many$00ff$00",
        "md5$1000$00ff$00",
    ],
)
def test_malformed_stored_secret_never_matches(stored):
    assert not verify_secret("abc", stored)
