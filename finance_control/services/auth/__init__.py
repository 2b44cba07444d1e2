"""Authentication package."""

from finance_control.services.auth.provider import (
    AuthError,
    AuthProvider,
    PasswordAuthProvider,
    default_avatar,
    hash_password,
    verify_password,
)

__all__ = [
    "AuthError",
    "AuthProvider",
    "PasswordAuthProvider",
    "default_avatar",
    "hash_password",
    "verify_password",
]
