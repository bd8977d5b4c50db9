"""HTTP access to the clinic backend."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from .config import ApiConfig
from .errors import ApiError

logger = logging.getLogger("smartnote")


class ApiClient:
    """Thin wrapper over a requests session.

    Every endpoint answers with an envelope of the form
    ``{"success": bool, "statusCode": int, "message": str, "data": ...}``;
    callers inspect ``success`` themselves.
    """

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        timeout_seconds: float = 30.0,
        organization_id: Optional[str] = None,
        clinic_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.access_token = access_token
        self.timeout_seconds = timeout_seconds
        self.organization_id = organization_id
        self.clinic_id = clinic_id
        self.session = session or requests.Session()

    @classmethod
    def from_config(
        cls, config: ApiConfig, session: Optional[requests.Session] = None
    ) -> "ApiClient":
        return cls(
            base_url=config.base_url,
            access_token=config.access_token,
            timeout_seconds=config.timeout_seconds,
            organization_id=config.organization_id,
            clinic_id=config.clinic_id,
            session=session,
        )

    def url(self, path: str) -> str:
        return self.base_url + path.lstrip("/")

    def _context_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.organization_id:
            headers["x-organization-id"] = self.organization_id
        if self.clinic_id:
            headers["x-clinic-id"] = self.clinic_id
        return headers

    def json_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        headers.update(self._context_headers())
        return headers

    def file_headers(self) -> Dict[str, str]:
        return self._context_headers()

    def _handle_response(self, response: requests.Response) -> Dict[str, Any]:
        status = response.status_code
        if status == 401:
            logger.warning("Session expired (401) for %s", response.url)
        elif status >= 500:
            logger.error("Server error %s for %s", status, response.url)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ApiError(
                "Unexpected response from server.",
                "BAD_RESPONSE",
                {"status_code": status},
            ) from exc
        if not isinstance(payload, dict):
            raise ApiError(
                "Unexpected response from server.",
                "BAD_RESPONSE",
                {"status_code": status},
            )
        logger.debug("Response %s success=%s", status, payload.get("success"))
        return payload

    def post_json(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = self.url(path)
        logger.debug("POST %s", url)
        try:
            response = self.session.post(
                url,
                json=body,
                headers=self.json_headers(),
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            raise ApiError(
                "Network error. Please check your connection.",
                "NETWORK_ERROR",
                {"url": url, "error": str(exc)},
            ) from exc
        return self._handle_response(response)

    def post_file(
        self,
        path: str,
        field_name: str,
        filename: str,
        data: bytes,
        mime_type: str,
    ) -> Dict[str, Any]:
        url = self.url(path)
        logger.debug("POST %s (%s, %s bytes)", url, mime_type, len(data))
        try:
            response = self.session.post(
                url,
                files={field_name: (filename, data, mime_type)},
                headers=self.file_headers(),
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            raise ApiError(
                "Network error. Please check your connection.",
                "NETWORK_ERROR",
                {"url": url, "error": str(exc)},
            ) from exc
        return self._handle_response(response)
