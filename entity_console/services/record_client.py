"""Record service client: descriptions, paged lists and record CRUD over HTTP."""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx
from pydantic import ValidationError

from entity_console.config import settings
from entity_console.core.categories import NEW_RECORD_ID
from entity_console.core.errors import RecordServiceError, TransportError
from entity_console.schemas.entity import EntityDescription, EntityListPage, ListQuery

logger = logging.getLogger(__name__)

# Entity type tokens become URL path segments
ENTITY_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

DESCRIPTION_PATH = "/inners/entity-descriptions/{entity}"
ENTITIES_PATH = "/inners/entities/{entity}"
ENTITY_PATH = "/inners/entities/{entity}/{id}"


def _check_entity(entity: str) -> None:
    if not ENTITY_NAME_PATTERN.match(entity or ""):
        raise ValueError(f"Invalid entity name: {entity!r}")


def _check_record_id(record_id: str) -> None:
    if not record_id or str(record_id) == NEW_RECORD_ID:
        raise ValueError("Record id '0' is reserved for records not created yet")


def _json_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise RecordServiceError(
            f"Malformed response body: {exc}", status=resp.status_code, category="json"
        ) from exc


def _error_from_response(resp: httpx.Response) -> RecordServiceError:
    """Build an error from the service's ``{message, category, code}`` body."""
    message = ""
    category = ""
    code = ""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = str(body.get("message") or "")
        category = str(body.get("category") or "")
        code = str(body.get("code") or "")
    if not message:
        message = f"HTTP {resp.status_code}: {resp.text[:200]}"
    return RecordServiceError(message, status=resp.status_code, category=category, code=code)


class RecordServiceClient:
    """Thin async wrapper around the record service endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or settings.RECORD_SERVICE_URL).rstrip("/")
        self.token = settings.RECORD_SERVICE_TOKEN if token is None else token
        self.timeout = timeout or settings.RECORD_SERVICE_TIMEOUT
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers: dict[str, str] = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> RecordServiceClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportError(f"Request failed: {exc}") from exc
        if resp.is_error:
            err = _error_from_response(resp)
            logger.warning("%s %s rejected (%d): %s", method, url, resp.status_code, err.message)
            raise err
        return resp

    # ── Descriptions ───────────────────────────────────────────────────

    async def fetch_description(self, entity: str) -> EntityDescription:
        _check_entity(entity)
        resp = await self._request("GET", DESCRIPTION_PATH.format(entity=entity))
        try:
            return EntityDescription.model_validate(resp.json())
        except (ValidationError, ValueError) as exc:
            raise RecordServiceError(
                f"Invalid description for {entity}: {exc}", status=resp.status_code,
                category="description",
            ) from exc

    # ── Records ────────────────────────────────────────────────────────

    async def list_records(self, entity: str, query: ListQuery) -> EntityListPage:
        """Fetch one page. ``page_count`` is only meaningful when ``query.counted``."""
        _check_entity(entity)
        resp = await self._request(
            "GET", ENTITIES_PATH.format(entity=entity), params=query.to_params()
        )
        try:
            return EntityListPage.model_validate(resp.json())
        except (ValidationError, ValueError) as exc:
            raise RecordServiceError(
                f"Invalid list response for {entity}: {exc}", status=resp.status_code,
                category="list",
            ) from exc

    async def get_record(self, entity: str, record_id: str) -> dict[str, Any]:
        _check_entity(entity)
        _check_record_id(record_id)
        resp = await self._request("GET", ENTITY_PATH.format(entity=entity, id=record_id))
        data = _json_body(resp)
        if not isinstance(data, dict):
            raise RecordServiceError(f"Record {entity}/{record_id} is not an object")
        return data

    async def update_record(self, entity: str, record_id: str, data: dict[str, Any]) -> None:
        """Partial update: the service applies only the supplied keys."""
        _check_entity(entity)
        _check_record_id(record_id)
        await self._request("PATCH", ENTITY_PATH.format(entity=entity, id=record_id), json=data)

    async def create_record(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        _check_entity(entity)
        resp = await self._request("POST", ENTITIES_PATH.format(entity=entity), json=data)
        if not resp.content:
            return {}
        body = _json_body(resp)
        return body if isinstance(body, dict) else {"result": body}
