"""
Credential verification for the dashboard login.

Verification sits behind the CredentialVerifier interface so that a real
identity provider can replace the demo verifier without touching the
session or API code.
"""

import secrets
from typing import Protocol

from config.config import Settings
from config.logging_config import get_logger
from models.analysis_models import User

logger = get_logger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials. Please contact IT support."
DEFAULT_EMAIL_DOMAIN = "hospital.org"


class CredentialVerifier(Protocol):
    def verify(self, username: str, password: str) -> User | None:
        """Return the authenticated user, or None when credentials are rejected."""
        ...


def build_user(username: str, user_id: str = "1") -> User:
    """Doctor profile derived from a username ("jdoe" -> "Jdoe", jdoe@hospital.org)."""
    return User(
        id=user_id,
        name=username[:1].upper() + username[1:],
        role="doctor",
        email=f"{username.lower()}@{DEFAULT_EMAIL_DOMAIN}",
    )


class DemoCredentialVerifier:
    """Accepts any non-empty username and password. Demo builds only."""

    def verify(self, username: str, password: str) -> User | None:
        if not username or not password:
            return None
        return build_user(username)


class StaticCredentialVerifier:
    """Accepts a single configured account."""

    def __init__(self, username: str, password: str):
        if not username or not password:
            raise ValueError("Static verifier needs both a username and a password")
        self._username = username
        self._password = password

    def verify(self, username: str, password: str) -> User | None:
        user_ok = secrets.compare_digest(username.encode(), self._username.encode())
        password_ok = secrets.compare_digest(password.encode(), self._password.encode())
        if user_ok and password_ok:
            return build_user(username)
        return None


def get_credential_verifier(settings: Settings) -> CredentialVerifier:
    """Build the verifier selected by settings.auth_mode."""
    if settings.auth_mode == "static":
        return StaticCredentialVerifier(settings.auth_username, settings.auth_password)
    if settings.is_production:
        logger.warning("Demo credential verifier enabled in production")
    return DemoCredentialVerifier()
