"""Testes para utils."""

from io import StringIO

import pytest

from cookie_rotator import normalize_salt, normalize_version
from cookie_rotator.utils import (
    ENV_CHECKSUM_KEY,
    compute_env_checksum,
    normalize_secret,
    parse_env_stream,
    version_sort_key,
)


def test_normalize_salt():
    """Testa normalização de salt em vários formatos."""
    assert normalize_salt(b"salt123") == b"salt123"
    assert normalize_salt(bytearray(b"salt123")) == b"salt123"
    assert normalize_salt("hex:73616c74313233") == b"salt123"
    assert normalize_salt("base64:c2FsdDEyMw==") == b"salt123"
    assert normalize_salt("salt123") == b"salt123"
    assert normalize_salt("") == b""

    with pytest.raises(TypeError):
        normalize_salt(123)


def test_normalize_salt_does_not_guess_encodings():
    """Testa que strings parecidas com hex/base64 são usadas literalmente."""
    assert normalize_salt("73616c74") == b"73616c74"
    assert normalize_salt("signedcookie") == b"signedcookie"
    assert normalize_salt("signed cookie") == b"signed cookie"


def test_normalize_salt_invalid_prefixed_values():
    """Testa erro com hex/base64 prefixados inválidos."""
    with pytest.raises(ValueError):
        normalize_salt("hex:zz")
    with pytest.raises(ValueError, match="Salt base64 inválido"):
        normalize_salt("base64:***")


def test_normalize_secret():
    """Testa conversão do segredo mestre."""
    assert normalize_secret("abc") == b"abc"
    assert normalize_secret(b"abc") == b"abc"

    with pytest.raises(TypeError):
        normalize_secret(None)


def test_normalize_version():
    """Testa normalização de versão."""
    assert normalize_version("V1") == "v1"
    assert normalize_version(' "v2" ') == "v2"
    assert normalize_version("") == ""


def test_version_sort_key():
    """Testa ordenação natural de versões."""
    versions = ["v2", "v10", "v1", "v9"]
    assert sorted(versions, key=version_sort_key) == ["v1", "v2", "v9", "v10"]


def test_compute_env_checksum_ignores_checksum_key():
    """Testa que checksum ignora o próprio campo."""
    data = {
        "A": "1",
        "B": "2",
        ENV_CHECKSUM_KEY: "ignore",
    }
    checksum = compute_env_checksum(data)
    assert checksum == compute_env_checksum({"A": "1", "B": "2"})


def test_compute_env_checksum_ignores_none_values():
    """Testa que checksum ignora valores None."""
    data = {"A": "1", "B": None}
    assert compute_env_checksum(data) == compute_env_checksum({"A": "1"})


def test_parse_env_stream_with_quotes_and_hash():
    """Testa parser de .env com aspas e # no valor."""
    stream = StringIO('KEY="value#123"\nOTHER="value\\"quoted"\n')
    data = parse_env_stream(stream)
    assert data["KEY"] == "value#123"
    assert data["OTHER"] == 'value"quoted'
