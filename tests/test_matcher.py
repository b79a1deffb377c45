"""Tests for operation and parameter matching."""

from __future__ import annotations

import pytest

from credproxy.pdp.matcher import match_any_operation, match_operation, match_parameter, parameter_as_text


class TestMatchOperation:
    @pytest.mark.parametrize(
        ("pattern", "operation", "expected"),
        [
            ("repos.read", "repos.read", True),
            ("repos.*", "repos.read", True),
            ("repos.*", "gists.read", False),
            ("get*", "getBalance", True),
            ("get?", "getX", True),
            ("GET*", "getBalance", False),
            ("*", "anything", True),
        ],
    )
    def test_glob(self, pattern, operation, expected) -> None:
        assert match_operation(pattern, operation) is expected

    def test_any(self) -> None:
        assert match_any_operation(["a", "b*"], "bee")
        assert not match_any_operation([], "bee")


class TestMatchParameter:
    @pytest.mark.parametrize(
        ("value", "text"),
        [
            ("x", "x"),
            (True, "true"),
            (False, "false"),
            (3, "3"),
            (1.5, "1.5"),
            ({"b": 1, "a": 2}, '{"a":2,"b":1}'),
            ([1, "x"], '[1,"x"]'),
        ],
    )
    def test_text_form(self, value, text) -> None:
        assert parameter_as_text(value) == text

    def test_missing_or_none_never_matches(self) -> None:
        assert not match_parameter("*", {}, "to")
        assert not match_parameter("*", {"to": None}, "to")

    def test_glob_against_text(self) -> None:
        assert match_parameter("acme/*", {"repo": "acme/api"}, "repo")
        assert match_parameter("1*", {"chainId": 137}, "chainId")
        assert not match_parameter("acme/*", {"repo": "other/api"}, "repo")
