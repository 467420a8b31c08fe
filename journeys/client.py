"""HTTP collaborators: the REST journey store, login and the image host.

Every failure to reach a host, or a non-2xx answer that is not a known
domain error, surfaces as ``TransportError`` so callers can show a single
notification and let the user retry.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx

from journeys.config import settings
from journeys.document import VALUE, FieldError
from journeys.errors import AuthError, NotFoundError, TransportError, ValidationError

log = logging.getLogger(__name__)


class _HttpBase:
    def __init__(self, base_url: str | None = None, *, client: httpx.AsyncClient | None = None,
                 timeout: float | None = None):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        try:
            if self._client is not None:
                return await self._client.request(method, path, headers=headers, **kwargs)
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=httpx.Timeout(self.timeout),
            ) as client:
                return await client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            log.warning("%s %s failed: %s", method, path, exc)
            raise TransportError(f"Could not reach {self.base_url}: {exc}") from exc


def _detail(resp: httpx.Response) -> Any:
    try:
        return resp.json().get("detail")
    except (ValueError, AttributeError):
        return None


def _field_errors(detail: Any) -> list[FieldError]:
    """Read our ``{"errors": [...]}`` body or FastAPI's own 422 list."""
    if isinstance(detail, dict):
        return [
            FieldError(path=e.get("path", ""), message=e.get("message", ""), kind=e.get("kind", VALUE))
            for e in detail.get("errors", []) if isinstance(e, dict)
        ]
    if isinstance(detail, list):
        return [
            FieldError(
                path=".".join(str(p) for p in e.get("loc", []) if p != "body"),
                message=e.get("msg", ""),
            )
            for e in detail if isinstance(e, dict)
        ]
    return []


def _json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise TransportError("Server returned a non-JSON body", resp.status_code) from exc


class HttpJourneyStore(_HttpBase):
    """``JourneyStore`` over the ``/api/reports`` REST resource."""

    def __init__(self, base_url: str | None = None, token: str | None = None, **kwargs: Any):
        super().__init__(base_url, **kwargs)
        self.token = token

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _check(self, resp: httpx.Response, journey_id: str | None = None) -> None:
        if resp.is_success:
            return
        detail = _detail(resp)
        if resp.status_code == 404:
            raise NotFoundError(journey_id or "", detail if isinstance(detail, str) else "Report not found")
        if resp.status_code == 422:
            message = detail.get("message") if isinstance(detail, dict) else None
            raise ValidationError(_field_errors(detail), message or "Journey failed validation")
        message = detail if isinstance(detail, str) else resp.reason_phrase
        raise TransportError(f"Error ({resp.status_code}): {message or 'Unknown error'}", resp.status_code)

    async def create_journey(self, document: dict[str, Any]) -> dict[str, Any]:
        resp = await self._request("POST", "/api/reports", json=document)
        self._check(resp)
        return _json(resp)

    async def update_journey(self, journey_id: str, document: dict[str, Any]) -> dict[str, Any]:
        resp = await self._request("PUT", f"/api/reports/{journey_id}", json=document)
        self._check(resp, journey_id)
        return _json(resp)

    async def get_journey(self, journey_id: str) -> dict[str, Any]:
        resp = await self._request("GET", f"/api/reports/{journey_id}")
        self._check(resp, journey_id)
        return _json(resp)

    async def list_journeys(self) -> list[dict[str, Any]]:
        resp = await self._request("GET", "/api/reports")
        self._check(resp)
        return _json(resp)

    async def delete_journey(self, journey_id: str) -> None:
        resp = await self._request("DELETE", f"/api/reports/{journey_id}")
        self._check(resp, journey_id)


class HttpAuthClient(_HttpBase):
    async def login(self, email: str, password: str) -> dict[str, Any]:
        """Return ``{"token": ..., "user": {...}}`` or raise ``AuthError``."""
        resp = await self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        if resp.status_code in (400, 401, 422):
            raise AuthError("Invalid email or password")
        if not resp.is_success:
            raise TransportError(f"Login failed ({resp.status_code})", resp.status_code)
        data = _json(resp)
        return {"token": data["token"], "user": data["user"]}


class ImageHostClient(_HttpBase):
    """Uploads action images to an external asset host as multipart form data."""

    def __init__(self, upload_url: str | None = None, *, field_name: str = "file", **kwargs: Any):
        url = upload_url or settings.IMAGE_UPLOAD_URL
        if not url:
            raise ValueError("No image upload URL configured (JOURNEYS_IMAGE_UPLOAD_URL)")
        super().__init__(url, **kwargs)
        self.field_name = field_name

    def _headers(self) -> dict[str, str]:
        return {}

    async def upload_image(self, data: bytes, filename: str = "image",
                           content_type: str = "application/octet-stream") -> dict[str, str]:
        resp = await self._request(
            "POST", self.base_url, files={self.field_name: (filename, data, content_type)},
        )
        if not resp.is_success:
            raise TransportError(f"Image upload failed ({resp.status_code})", resp.status_code)
        body = _json(resp)
        url = (body.get("url") or body.get("secure_url")) if isinstance(body, dict) else None
        if not url:
            raise TransportError("Image host did not return a URL", resp.status_code)
        return {"url": url}
