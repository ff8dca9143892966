"""Unit tests for username normalization."""

from __future__ import annotations

import pytest

from match_sessions import normalize_username, username_from_account, username_from_email


@pytest.mark.parametrize(
    "email, expected",
    [
        ("ivan.petrov@corp.com", "ivan.petrov"),
        ("Ivan.Petrov@Corp.COM", "ivan.petrov"),
        ("a@b@c", "a"),
        ("@corp.com", "@corp.com"),
        ("no-at-sign", "no-at-sign"),
        ("J.Doe", "j.doe"),
    ],
)
def test_username_from_email(email: str, expected: str) -> None:
    """Email usernames are the lowercased text before the first '@'."""
    assert username_from_email(email) == expected
    assert normalize_username(email, "email") == expected


@pytest.mark.parametrize(
    "account, expected",
    [
        ("CORP\\ivan.petrov", "ivan.petrov"),
        ("CORP\\Ivan.Petrov", "ivan.petrov"),
        ("CORP\\sub\\jdoe", "sub\\jdoe"),
        ("\\jdoe", "\\jdoe"),
        ("CORP\\", "corp\\"),
        ("JDoe", "jdoe"),
    ],
)
def test_username_from_account(account: str, expected: str) -> None:
    """Account usernames drop the domain before the first backslash."""
    assert username_from_account(account) == expected
    assert normalize_username(account, "account") == expected


def test_normalize_keeps_punctuation_and_unicode() -> None:
    """Only case is folded; nothing else is stripped."""
    assert normalize_username("Пётр.Иванов-2@corp.ru", "email") == "пётр.иванов-2"
    assert normalize_username("DOM\\o'brien_x", "account") == "o'brien_x"


def test_normalize_rejects_unknown_mode() -> None:
    """Only the email and account modes exist."""
    with pytest.raises(ValueError):
        normalize_username("x@y", "phone")
