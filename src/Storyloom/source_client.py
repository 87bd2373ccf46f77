# src/Storyloom/source_client.py

from __future__ import annotations

import math
import re
import time
from typing import Any

import httpx
import orjson
import structlog

from Storyloom.classifier import classify
from Storyloom.config import Settings, load_settings
from Storyloom.errors import (
    AuthenticationError,
    ImporterError,
    NotFoundError,
    ReferenceFormatError,
    RemoteError,
    SourceError,
    SourcePermissionError,
)
from Storyloom.extractor import extract_properties, extract_value, title_of
from Storyloom.metrics import inc_counter, observe_histogram
from Storyloom.schemas import SourceCollection, SourceRecord

log = structlog.get_logger()

_HEX32 = r"[0-9a-fA-F]{32}"
_UUID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"

# Tried in order against the reference with any query/fragment removed;
# first match wins.
_REFERENCE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("bare_id", re.compile(rf"^({_HEX32})$")),
    ("uuid", re.compile(rf"({_UUID})")),
    ("url", re.compile(rf"notion\.(?:so|site)/(?:[^/\s]+/)?({_HEX32})(?=$|/)")),
    ("slug", re.compile(rf"[-/]({_HEX32})(?=$|/)")),
    ("embedded", re.compile(rf"({_HEX32})")),
)

# Block types whose rich_text carries readable body text
_TEXT_BLOCKS = frozenset(
    {
        "paragraph",
        "heading_1",
        "heading_2",
        "heading_3",
        "bulleted_list_item",
        "numbered_list_item",
        "quote",
        "callout",
        "to_do",
        "toggle",
    }
)


def resolve_reference(reference: str) -> str:
    """Return the 32-hex database id a user-supplied reference points at.

    Accepts a bare id, a hyphenated UUID, a database URL (with or without a
    ``?view=`` query) and a ``workspace/Slug-Title-<id>`` page URL.
    """
    cleaned = (reference or "").strip().split("#", 1)[0].split("?", 1)[0]
    for _name, pattern in _REFERENCE_PATTERNS:
        match = pattern.search(cleaned)
        if match:
            return match.group(1).replace("-", "")
    raise ReferenceFormatError(reference)


def is_valid_reference(reference: str) -> bool:
    try:
        resolve_reference(reference)
    except ReferenceFormatError:
        return False
    return True


def _upstream_message(resp: httpx.Response) -> str:
    try:
        payload = orjson.loads(resp.content)
    except orjson.JSONDecodeError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return resp.reason_phrase or "Unknown error"


def classify_http_error(resp: httpx.Response) -> SourceError:
    """Map a non-2xx response onto the source error taxonomy."""
    code = resp.status_code
    message = _upstream_message(resp)
    if code == 401:
        return AuthenticationError(f"Notion rejected the token: {message}", status_code=code)
    if code == 403:
        return SourcePermissionError(f"Access denied: {message}", status_code=code)
    if code == 404:
        return NotFoundError(f"Database not found: {message}", status_code=code)
    return RemoteError(f"Notion API error: {message}", status_code=code)


def _record_from_page(page: dict[str, Any], content: str = "") -> SourceRecord:
    raw = page.get("properties") or {}
    name = title_of(raw)
    if not name:
        # Databases without a title column: fall back to a name-ish text field
        for key, value in extract_properties(raw).items():
            lowered = key.lower()
            if ("name" in lowered or "title" in lowered) and isinstance(value, str) and value:
                name = value
                break
    return SourceRecord(
        id=str(page.get("id", "")),
        display_name=name or "Untitled",
        raw_properties=dict(raw),
        extracted_content=content,
    )


class NotionSourceClient:
    """Async client for the handful of Notion endpoints the importer needs.

    The bearer token lives only on this instance for the duration of a run;
    it is never logged or persisted.
    """

    def __init__(
        self,
        token: str,
        settings: Settings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ):
        settings = settings or load_settings()
        self.base_url = settings.notion_api_url.rstrip("/")
        self.page_size = settings.notion_page_size
        self.fetch_page_content = settings.notion_fetch_page_content
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Notion-Version": settings.notion_version,
            "Content-Type": "application/json",
        }
        self._client = http_client or httpx.AsyncClient(timeout=settings.notion_timeout_seconds)

    async def __aenter__(self) -> NotionSourceClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        endpoint: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        start = time.perf_counter()
        status = "success"
        try:
            resp = await self._client.request(
                method,
                f"{self.base_url}{endpoint}",
                headers=self._headers,
                params=params,
                content=orjson.dumps(body) if body is not None else None,
            )
            if not resp.is_success:
                status = f"http_{resp.status_code}"
                raise classify_http_error(resp)
            return orjson.loads(resp.content) if resp.content else {}
        except httpx.TransportError as e:
            status = "transport_error"
            raise RemoteError(f"Notion API request failed: {e}") from e
        except orjson.JSONDecodeError as e:
            status = "decode_error"
            raise RemoteError(f"Notion API returned invalid JSON: {e}") from e
        finally:
            dur_ms = math.trunc((time.perf_counter() - start) * 1000)
            inc_counter("source.request")
            if status != "success":
                inc_counter("source.request.error")
            observe_histogram("source.request_ms", dur_ms)
            log.debug(
                "source.request.completed",
                method=method,
                endpoint=endpoint,
                duration_ms=dur_ms,
                status=status,
            )

    async def validate_token(self) -> bool:
        """Cheap identity probe so a bad token fails before any real fetch."""
        try:
            await self._request("GET", "/users/me")
        except ImporterError as e:
            log.info("source.token.invalid", error=str(e))
            return False
        return True

    async def get_database(self, database_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/databases/{database_id}")

    async def query_database(
        self, database_id: str, start_cursor: str | None = None
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"page_size": self.page_size}
        if start_cursor:
            body["start_cursor"] = start_cursor
        return await self._request("POST", f"/databases/{database_id}/query", body=body)

    async def get_all_pages(self, database_id: str) -> list[dict[str, Any]]:
        """Follow next_cursor until the source reports no more pages."""
        pages: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            response = await self.query_database(database_id, cursor)
            pages.extend(response.get("results") or [])
            cursor = response.get("next_cursor")
            if not response.get("has_more") or not cursor:
                break
        return pages

    async def fetch_collection(
        self, database_id: str
    ) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        metadata = await self.get_database(database_id)
        pages = await self.get_all_pages(database_id)
        log.info(
            "source.collection.fetched",
            database_id=database_id,
            page_count=len(pages),
        )
        return metadata, pages

    async def fetch_page_content(self, page_id: str) -> str:
        """Plain text of a page's top-level text blocks, one block per line."""
        lines: list[str] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"page_size": self.page_size}
            if cursor:
                params["start_cursor"] = cursor
            response = await self._request("GET", f"/blocks/{page_id}/children", params=params)
            for block in response.get("results") or []:
                kind = block.get("type")
                if kind not in _TEXT_BLOCKS:
                    continue
                text = extract_value(
                    {"type": "rich_text", "rich_text": (block.get(kind) or {}).get("rich_text", [])}
                )
                if text:
                    lines.append(text)
            cursor = response.get("next_cursor")
            if not response.get("has_more") or not cursor:
                break
        return "\n".join(lines)

    async def load_collection(self, reference: str) -> SourceCollection:
        """Resolve, fetch and classify one database into a SourceCollection."""
        database_id = resolve_reference(reference)
        metadata, pages = await self.fetch_collection(database_id)

        name = extract_value({"type": "title", "title": metadata.get("title") or []})
        name = name or "Untitled Database"
        property_keys = list((metadata.get("properties") or {}).keys())
        inferred = classify(name, property_keys)

        records = []
        for page in pages:
            content = ""
            if self.fetch_page_content and page.get("id"):
                content = await self.fetch_page_content(page["id"])
            records.append(_record_from_page(page, content))

        log.info(
            "source.collection.classified",
            database_id=database_id,
            collection=name,
            inferred_type=inferred,
            record_count=len(records),
        )
        return SourceCollection(
            id=database_id,
            name=name,
            inferred_type=inferred,
            property_keys=property_keys,
            records=records,
        )


__all__ = [
    "NotionSourceClient",
    "resolve_reference",
    "is_valid_reference",
    "classify_http_error",
]
