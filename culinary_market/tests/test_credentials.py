from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from culinary_market.app.auth import (
    CredentialService,
    TokenFailure,
    check_password_strength,
    extract_bearer_token,
    is_valid_email,
    is_valid_password_strength,
)

SECRET = "test-secret"


@pytest.fixture
def credentials() -> CredentialService:
    return CredentialService(SECRET, rounds=4)


def test_hash_and_compare_password(credentials: CredentialService) -> None:
    password_hash = credentials.hash_password("Secret123")

    assert password_hash != "Secret123"
    assert credentials.compare_password("Secret123", password_hash) is True
    assert credentials.compare_password("secret123", password_hash) is False


def test_compare_password_uses_every_character_of_long_passwords(credentials: CredentialService) -> None:
    password = "Aa1" + "x" * 80
    other = "Aa1" + "x" * 79 + "y"
    assert is_valid_password_strength(password) and is_valid_password_strength(other)

    password_hash = credentials.hash_password(password)

    assert credentials.compare_password(password, password_hash) is True
    assert credentials.compare_password(other, password_hash) is False


def test_compare_password_rejects_malformed_hash(credentials: CredentialService) -> None:
    assert credentials.compare_password("Secret123", "not-a-bcrypt-hash") is False
    assert credentials.compare_password("Secret123", None) is False
    assert credentials.compare_password("Secret123", "") is False


def test_constructor_requires_secret() -> None:
    with pytest.raises(ValueError):
        CredentialService("")


def test_issue_and_verify_token_round_trip(credentials: CredentialService) -> None:
    token = credentials.issue_token(7, "chef@example.com", "PROVIDER")

    result = credentials.verify_token(token)

    assert result.is_valid
    assert result.failure is None
    assert result.claims.account_id == 7
    assert result.claims.email == "chef@example.com"
    assert result.claims.role == "PROVIDER"


def test_token_lifetime_defaults_to_seven_days() -> None:
    issued_at = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    service = CredentialService(SECRET, rounds=4, clock=lambda: issued_at)

    token = service.issue_token(1, "a@example.com", "CLIENT")
    claims = jwt.get_unverified_claims(token)

    assert claims["exp"] - claims["iat"] == int(timedelta(days=7).total_seconds())


def test_expired_token_is_rejected() -> None:
    issued_at = datetime.now(timezone.utc) - timedelta(days=8)
    service = CredentialService(SECRET, rounds=4, clock=lambda: issued_at)

    result = service.verify_token(service.issue_token(1, "a@example.com", "CLIENT"))

    assert result.is_valid is False
    assert result.claims is None
    assert result.failure == TokenFailure.EXPIRED


def test_token_signed_with_other_secret_is_rejected(credentials: CredentialService) -> None:
    forged = CredentialService("another-secret", rounds=4).issue_token(1, "a@example.com", "ADMIN")

    result = credentials.verify_token(forged)

    assert result.is_valid is False
    assert result.failure == TokenFailure.INVALID_SIGNATURE


@pytest.mark.parametrize("token", [None, "", "garbage", "a.b.c"])
def test_malformed_tokens_never_raise(credentials: CredentialService, token) -> None:
    result = credentials.verify_token(token)

    assert result.is_valid is False
    assert result.failure == TokenFailure.MALFORMED


def test_token_missing_identity_claims_is_malformed(credentials: CredentialService) -> None:
    token = jwt.encode({"sub": "1"}, SECRET, algorithm="HS256")

    assert credentials.verify_token(token).failure == TokenFailure.MALFORMED


@pytest.mark.parametrize(
    "header,expected",
    [
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("bearer abc", None),
        ("Bearer", None),
        ("Bearer a b", None),
        ("Token abc", None),
        (None, None),
    ],
)
def test_extract_bearer_token(header, expected) -> None:
    assert extract_bearer_token(header) == expected


@pytest.mark.parametrize(
    "email,valid",
    [
        ("chef@example.com", True),
        ("first.last@sub.example.fr", True),
        ("no-at-sign.example.com", False),
        ("spaces in@example.com", False),
        ("missing@tld", False),
        ("", False),
        (None, False),
    ],
)
def test_is_valid_email(email, valid) -> None:
    assert is_valid_email(email) is valid


@pytest.mark.parametrize(
    "password,message",
    [
        ("Ab1", "Password must be at least 6 characters long"),
        ("Ab1" * 34, "Password must be at most 100 characters long"),
        ("ABCDEF1", "Password must contain at least one lowercase letter"),
        ("abcdef1", "Password must contain at least one uppercase letter"),
        ("Abcdefg", "Password must contain at least one digit"),
    ],
)
def test_password_strength_rejections(password: str, message: str) -> None:
    check = check_password_strength(password)

    assert check.valid is False
    assert check.message == message
    assert is_valid_password_strength(password) is False


def test_password_strength_accepts_boundaries() -> None:
    assert is_valid_password_strength("Abcde1") is True
    assert is_valid_password_strength("A1" + "b" * 98) is True
    assert is_valid_password_strength(None) is False
