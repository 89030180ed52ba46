"""Password hashing, bearer tokens and credential validation rules."""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.hash import bcrypt_sha256

JWT_ALGORITHM = "HS256"
DEFAULT_TOKEN_TTL = timedelta(days=7)
BCRYPT_ROUNDS = 12

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 100

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_LOWERCASE_PATTERN = re.compile(r"[a-z]")
_UPPERCASE_PATTERN = re.compile(r"[A-Z]")
_DIGIT_PATTERN = re.compile(r"\d")


class TokenFailure(str, Enum):
    """Reasons a bearer token can be rejected."""

    EXPIRED = "expired"
    INVALID_SIGNATURE = "invalid_signature"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class TokenClaims:
    """Identity claims carried by an access token."""

    account_id: int
    email: str
    role: str


@dataclass(frozen=True)
class TokenVerification:
    """Outcome of :meth:`CredentialService.verify_token`.

    Exactly one of ``claims`` and ``failure`` is set.
    """

    claims: Optional[TokenClaims] = None
    failure: Optional[TokenFailure] = None

    @property
    def is_valid(self) -> bool:
        return self.claims is not None


@dataclass(frozen=True)
class PasswordCheck:
    """Result of the password strength rules."""

    valid: bool
    message: Optional[str] = None


class CredentialService:
    """Issues and verifies credentials using an injected signing secret."""

    def __init__(
        self,
        secret: str,
        *,
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
        rounds: int = BCRYPT_ROUNDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not secret:
            raise ValueError("secret must be provided")
        self._secret = secret
        self._token_ttl = token_ttl
        self._hasher = bcrypt_sha256.using(rounds=rounds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def hash_password(self, plaintext: str) -> str:
        return self._hasher.hash(plaintext)

    def compare_password(self, plaintext: str, password_hash: Optional[str]) -> bool:
        """Return ``True`` when ``plaintext`` matches the stored hash."""

        if not password_hash:
            return False
        try:
            return bool(bcrypt_sha256.verify(plaintext, password_hash))
        except (ValueError, TypeError):
            return False

    def issue_token(self, account_id: int, email: str, role: str) -> str:
        issued_at = self._clock()
        payload = {
            "account_id": account_id,
            "email": email,
            "role": role,
            "iat": issued_at,
            "exp": issued_at + self._token_ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)

    def verify_token(self, token: Optional[str]) -> TokenVerification:
        """Validate signature and expiry without raising to the caller."""

        if not token:
            return TokenVerification(failure=TokenFailure.MALFORMED)
        try:
            payload = jwt.decode(token, self._secret, algorithms=[JWT_ALGORITHM])
        except ExpiredSignatureError:
            return TokenVerification(failure=TokenFailure.EXPIRED)
        except JWTError:
            return TokenVerification(failure=_classify_decode_failure(token))

        try:
            claims = TokenClaims(
                account_id=int(payload["account_id"]),
                email=str(payload["email"]),
                role=str(payload["role"]),
            )
        except (KeyError, TypeError, ValueError):
            return TokenVerification(failure=TokenFailure.MALFORMED)
        return TokenVerification(claims=claims)


def _classify_decode_failure(token: str) -> TokenFailure:
    try:
        jwt.get_unverified_header(token)
        jwt.get_unverified_claims(token)
    except JWTError:
        return TokenFailure.MALFORMED
    return TokenFailure.INVALID_SIGNATURE


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token part of an ``Authorization: Bearer <token>`` header."""

    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return bool(_EMAIL_PATTERN.match(email))


def check_password_strength(password: Optional[str]) -> PasswordCheck:
    password = password or ""
    if len(password) < PASSWORD_MIN_LENGTH:
        return PasswordCheck(False, f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if len(password) > PASSWORD_MAX_LENGTH:
        return PasswordCheck(False, f"Password must be at most {PASSWORD_MAX_LENGTH} characters long")
    if not _LOWERCASE_PATTERN.search(password):
        return PasswordCheck(False, "Password must contain at least one lowercase letter")
    if not _UPPERCASE_PATTERN.search(password):
        return PasswordCheck(False, "Password must contain at least one uppercase letter")
    if not _DIGIT_PATTERN.search(password):
        return PasswordCheck(False, "Password must contain at least one digit")
    return PasswordCheck(True)


def is_valid_password_strength(password: Optional[str]) -> bool:
    return check_password_strength(password).valid


__all__ = [
    "BCRYPT_ROUNDS",
    "CredentialService",
    "DEFAULT_TOKEN_TTL",
    "JWT_ALGORITHM",
    "PasswordCheck",
    "TokenClaims",
    "TokenFailure",
    "TokenVerification",
    "check_password_strength",
    "extract_bearer_token",
    "is_valid_email",
    "is_valid_password_strength",
]
