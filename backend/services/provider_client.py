"""HTTP access to the external resource-scheduling provider.

Two concerns live here: OAuth2 client-credentials tokens (cached per scope,
refreshed on expiry or on a 401) and paginated listing endpoints.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Optional

import requests

from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class ProviderError(Exception):
    """Base exception for provider failures."""


class ProviderAuthError(ProviderError):
    """Raised when an access token cannot be obtained."""


class ProviderRequestError(ProviderError):
    """Raised when a listing call fails at the network, HTTP, or parse level."""


@dataclass(frozen=True)
class CachedToken:
    access_token: str
    expires_at: float


class ProviderTokenCache:
    """Per-scope bearer tokens with an explicit expiry timestamp."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or get_settings()
        self._session = session or requests.Session()
        self._clock = clock
        self._lock = RLock()
        self._tokens: dict[str, CachedToken] = {}

    def _is_fresh(self, token: CachedToken) -> bool:
        buffer = self._settings.provider_token_expiry_buffer_seconds
        return token.expires_at - buffer > self._clock()

    def get_token(self, scope: str) -> str:
        with self._lock:
            cached = self._tokens.get(scope)
            if cached is not None and self._is_fresh(cached):
                return cached.access_token
            return self.refresh(scope)

    def refresh(self, scope: str) -> str:
        """Fetch a new token for ``scope``; one retry before giving up."""
        with self._lock:
            try:
                token = self._request_token(scope)
            except ProviderAuthError as exc:
                logger.warning("Token request failed; retrying once | scope=%s | error=%s", scope, exc)
                token = self._request_token(scope)
            self._tokens[scope] = token
            return token.access_token

    def invalidate(self, scope: Optional[str] = None) -> None:
        with self._lock:
            if scope is None:
                self._tokens.clear()
            else:
                self._tokens.pop(scope, None)
        logger.info("Provider token cache cleared | scope=%s", scope or "*")

    def _request_token(self, scope: str) -> CachedToken:
        if not self._settings.provider_client_id or not self._settings.provider_client_secret:
            raise ProviderAuthError("Provider OAuth credentials are not configured")
        try:
            response = self._session.post(
                self._settings.provider_token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._settings.provider_client_id,
                    "client_secret": self._settings.provider_client_secret,
                    "scope": scope,
                },
                timeout=self._settings.provider_request_timeout_seconds,
            )
        except requests.RequestException as exc:
            raise ProviderAuthError(f"Token endpoint unreachable: {exc}") from exc

        if response.status_code != 200:
            raise ProviderAuthError(
                f"Token endpoint returned {response.status_code}: {response.text[:200]}"
            )
        try:
            payload = response.json()
            access_token = str(payload["access_token"])
        except (ValueError, KeyError, TypeError) as exc:
            raise ProviderAuthError("Token endpoint returned an unreadable payload") from exc

        expires_in = payload.get("expires_in") or self._settings.provider_token_default_ttl_seconds
        logger.info("Provider token acquired | scope=%s | expires_in=%s", scope, expires_in)
        return CachedToken(access_token=access_token, expires_at=self._clock() + float(expires_in))


class ScheduleProviderClient:
    """Paginated listing calls against the provider REST API."""

    def __init__(
        self,
        token_cache: ProviderTokenCache,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._tokens = token_cache
        self._session = session or requests.Session()

    def _get(self, url: str, scope: str, params: dict[str, Any], page: int) -> requests.Response:
        headers = {
            "Accept": "application/json",
            "X-Page-Size": str(self._settings.provider_page_size),
            "X-Page-Number": str(page),
        }
        for attempt in (1, 2):
            headers["Authorization"] = f"Bearer {self._tokens.get_token(scope)}"
            try:
                response = self._session.get(
                    url,
                    params=params,
                    headers=headers,
                    timeout=self._settings.provider_request_timeout_seconds,
                )
            except requests.RequestException as exc:
                raise ProviderRequestError(f"Provider unreachable: {exc}") from exc
            if response.status_code == 401 and attempt == 1:
                logger.info("Provider rejected token; refreshing | scope=%s", scope)
                self._tokens.invalidate(scope)
                continue
            break
        if response.status_code != 200:
            raise ProviderRequestError(
                f"Provider returned {response.status_code} for {url}: {response.text[:200]}"
            )
        return response

    def list_all(self, path: str, scope: str, params: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
        """Walk every page until a short page, the reported total, or the page cap."""
        url = f"{self._settings.provider_api_base}/{path.lstrip('/')}"
        page_size = self._settings.provider_page_size
        rows: list[dict[str, Any]] = []
        page = 1
        while True:
            response = self._get(url, scope, dict(params or {}), page)
            try:
                body = response.json()
            except ValueError as exc:
                raise ProviderRequestError(f"Provider returned invalid JSON for {url}") from exc
            batch = body.get("data", []) if isinstance(body, dict) else body
            if not isinstance(batch, list):
                raise ProviderRequestError(f"Provider returned an unexpected payload for {url}")
            rows.extend(item for item in batch if isinstance(item, dict))

            total_header = response.headers.get("X-Total-Count")
            total = int(total_header) if total_header and total_header.isdigit() else None
            if len(batch) < page_size:
                break
            if total is not None and len(rows) >= total:
                break
            if page >= self._settings.provider_max_pages:
                logger.warning(
                    "Provider pagination cap reached | path=%s | pages=%s | rows=%s",
                    path,
                    page,
                    len(rows),
                )
                break
            page += 1

        logger.debug("Provider listing fetched | path=%s | pages=%s | rows=%s", path, page, len(rows))
        return rows

    def list_reservations(self, target_date: str) -> list[dict[str, Any]]:
        return self.list_all(
            "resource_reservations/reservations",
            self._settings.provider_reservations_scope,
            {
                "on_or_after_start_date": target_date,
                "on_or_before_start_date": target_date,
            },
        )

    def list_classes(self) -> list[dict[str, Any]]:
        return self.list_all("academics/classes", self._settings.provider_class_schedules_scope)

    def list_class_schedules(self) -> list[dict[str, Any]]:
        return self.list_all(
            "academics/class_schedules",
            self._settings.provider_class_schedules_scope,
        )
