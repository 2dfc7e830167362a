from __future__ import annotations

import logging
from typing import Any

import httpx

from app.core.config import Settings, get_settings
from app.services.request_signing import sign_body, signed_headers

logger = logging.getLogger(__name__)

FETCH_ALL_SCHEDULES = "fetch-all-schedules"
FETCH_ALL_SECTIONS = "fetch-all-sections"


class SisSyncError(RuntimeError):
    kind = "error"


class SisNotConfiguredError(SisSyncError):
    kind = "not_configured"


class SisTransportError(SisSyncError):
    kind = "transport"


class SisContentTypeError(SisSyncError):
    """SIS answered with something other than JSON, usually a wrong base URL or a proxy page."""

    kind = "content_type"

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SisHttpError(SisSyncError):
    kind = "http"

    def __init__(self, status_code: int, payload: dict | None = None):
        self.status_code = status_code
        self.payload = payload or {}
        reason = self.payload.get("error") or self.payload.get("message") or f"HTTP {status_code}"
        super().__init__(f"SIS responded {status_code}: {reason}")


class SisClient:
    """Signed JSON client for the enrollment system's HRMS endpoints."""

    def __init__(self, settings: Settings | None = None, *, transport: httpx.BaseTransport | None = None):
        self.settings = settings or get_settings()
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.sis_shared_secret and self.settings.sis_hrms_api_key)

    def ensure_configured(self) -> None:
        if not self.settings.sis_shared_secret:
            raise SisNotConfiguredError("Missing SIS shared secret (SIS_SHARED_SECRET)")
        if not self.settings.sis_hrms_api_key:
            raise SisNotConfiguredError("Missing HRMS API key recognized by SIS (SIS_HRMS_API_KEY)")

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.settings.sis_base_url,
            timeout=self.settings.sis_request_timeout_seconds,
            transport=self._transport,
        )

    def post_signed(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        self.ensure_configured()
        message = sign_body(self.settings.sis_shared_secret, body)
        headers = signed_headers(self.settings.sis_hrms_api_key, message)
        try:
            with self._client() as client:
                response = client.post(endpoint, content=message.raw_body.encode("utf-8"), headers=headers)
        except httpx.InvalidURL as exc:
            logger.error("SIS URL for %s is invalid; check SIS_BASE_URL (%r)", endpoint, self.settings.sis_base_url)
            raise SisNotConfiguredError(f"Invalid SIS URL (SIS_BASE_URL): {exc}") from exc
        except httpx.TimeoutException as exc:
            logger.warning("SIS request to %s timed out", endpoint, exc_info=True)
            raise SisTransportError(f"Timed out calling SIS {endpoint}") from exc
        except httpx.HTTPError as exc:
            logger.warning("SIS request to %s failed at transport level: %s", endpoint, exc, exc_info=True)
            raise SisTransportError(f"Could not reach SIS {endpoint}: {exc}") from exc
        return self._parse_response(endpoint, response)

    def _parse_response(self, endpoint: str, response: httpx.Response) -> dict[str, Any]:
        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type.lower():
            logger.error(
                "SIS returned non-JSON content (%s, status %s) from %s; check SIS base URL configuration",
                content_type or "no content-type",
                response.status_code,
                endpoint,
            )
            raise SisContentTypeError(
                f"SIS returned non-JSON response ({content_type or 'no content-type'}) from {endpoint}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            logger.error("SIS returned malformed JSON from %s", endpoint)
            raise SisContentTypeError(f"SIS returned malformed JSON from {endpoint}", status_code=response.status_code) from exc
        if not isinstance(payload, dict):
            payload = {"data": payload}

        if not response.is_success:
            logger.warning("SIS application error %s on %s: %s", response.status_code, endpoint, payload)
            raise SisHttpError(response.status_code, payload)
        return payload

    def fetch_schedules(self) -> list[dict[str, Any]]:
        payload = self.post_signed(self.settings.sis_schedules_endpoint, {"data": FETCH_ALL_SCHEDULES})
        return list(payload.get("data") or [])

    def fetch_sections(self) -> list[dict[str, Any]]:
        payload = self.post_signed(self.settings.sis_sections_endpoint, {"data": FETCH_ALL_SECTIONS})
        return list(payload.get("data") or payload.get("sections") or [])

    def push_assignment(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self.post_signed(self.settings.sis_update_endpoint, payload)
