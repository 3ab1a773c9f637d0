"""Static admin token authentication for alias maintenance endpoints."""

from __future__ import annotations

import secrets
from typing import Optional

from backend.utils.config import Settings, get_settings


class AuthenticationError(Exception):
    """Base authentication failure."""


class InvalidAdminTokenError(AuthenticationError):
    """Raised when the provided bearer token does not match ADMIN_TOKEN."""


class AuthService:
    """Checks bearer tokens against the configured ADMIN_TOKEN."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()

    @property
    def auth_enabled(self) -> bool:
        return bool(self._settings.admin_token)

    def validate_bearer_token(self, bearer_token: str) -> None:
        if not self.auth_enabled:
            return
        if not secrets.compare_digest(bearer_token, str(self._settings.admin_token)):
            raise InvalidAdminTokenError("Invalid bearer token")
