"""Credential utilities: password hashing, access tokens and input rules."""

from .credentials import (
    BCRYPT_ROUNDS,
    DEFAULT_TOKEN_TTL,
    JWT_ALGORITHM,
    CredentialService,
    PasswordCheck,
    TokenClaims,
    TokenFailure,
    TokenVerification,
    check_password_strength,
    extract_bearer_token,
    is_valid_email,
    is_valid_password_strength,
)

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
