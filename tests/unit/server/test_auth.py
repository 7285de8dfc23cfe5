"""Tests for admin token helpers."""

import base64

import pytest

from vno.server.auth import (
    extract_token,
    is_auth_enabled,
    parse_basic_auth,
    parse_bearer_token,
    validate_token,
)


def _basic(credentials: str) -> str:
    return "Basic " + base64.b64encode(credentials.encode()).decode()


class TestParseBasicAuth:
    """Tests for parse_basic_auth()."""

    def test_valid(self) -> None:
        assert parse_basic_auth(_basic("ops:pa:ss")) == ("ops", "pa:ss")

    @pytest.mark.parametrize(
        "header",
        [None, "", "Bearer abc", "Basic !!!notbase64", _basic("no-colon")],
    )
    def test_invalid(self, header) -> None:
        assert parse_basic_auth(header) is None


class TestTokens:
    """Tests for bearer parsing and token comparison."""

    def test_bearer(self) -> None:
        assert parse_bearer_token("Bearer abc123") == "abc123"
        assert parse_bearer_token("Bearer   ") is None
        assert parse_bearer_token("Basic abc") is None

    def test_extract_prefers_bearer_then_basic(self) -> None:
        assert extract_token("Bearer tok") == "tok"
        assert extract_token(_basic("anyone:tok")) == "tok"
        assert extract_token(None) is None

    def test_validate(self) -> None:
        assert validate_token("same", "same")
        assert not validate_token("same", "different")

    @pytest.mark.parametrize(
        ("token", "expected"), [(None, False), ("", False), ("  ", False), ("x", True)]
    )
    def test_is_auth_enabled(self, token, expected) -> None:
        assert is_auth_enabled(token) is expected
