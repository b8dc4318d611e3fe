"""Document fetcher adapter for the Notion API.

The rest of the package only sees :class:`DocumentFetcher`. A fetch that
returns no children does not mean the block is empty: the API hides the
children of some collapsed toggles.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

import httpx

from glean.config import NotionConfig
from glean.errors import NotionAPIError
from glean.models import PageMetadata, RawBlock
from glean.retry import CancellationToken, RetryPolicy, with_retry

logger = logging.getLogger(__name__)


class DocumentFetcher(Protocol):
    """Read access to a hierarchical document source."""

    async def get_children(self, node_id: str) -> list[RawBlock]: ...

    async def get_page_metadata(self, page_id: str) -> PageMetadata: ...


def plain_text(rich_text: list[dict[str, Any]] | None) -> str:
    """Join the ``plain_text`` of a Notion rich text array."""
    if not rich_text:
        return ""
    return "".join(part.get("plain_text", "") for part in rich_text)


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_block(data: dict[str, Any], depth: int = 0) -> RawBlock:
    """Convert a Notion block object into a :class:`RawBlock`."""
    block_type = data.get("type", "unsupported")
    payload = data.get(block_type) or {}

    if block_type == "child_page":
        text = payload.get("title", "")
    else:
        text = plain_text(payload.get("rich_text"))

    return RawBlock(
        id=data["id"],
        type=block_type,
        text=text,
        has_children=bool(data.get("has_children", False)),
        depth=depth,
        checked=payload.get("checked") if block_type == "to_do" else None,
        is_toggleable=bool(payload.get("is_toggleable", False)),
        last_edited_at=_parse_time(data.get("last_edited_time")),
    )


def extract_page_title(page: dict[str, Any]) -> str:
    """Return the text of the page's ``title`` property."""
    for prop in (page.get("properties") or {}).values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            title = plain_text(prop.get("title"))
            if title:
                return title
    return "Untitled"


def _simplify_property(prop: dict[str, Any]) -> object:
    prop_type = prop.get("type")
    value = prop.get(prop_type) if prop_type else None
    if prop_type in ("title", "rich_text"):
        return plain_text(value)
    if prop_type == "select":
        return value.get("name") if value else None
    if prop_type in ("multi_select", "people", "relation"):
        return [item.get("name") or item.get("id") for item in value or []]
    if prop_type == "date":
        return value.get("start") if value else None
    if prop_type in ("number", "checkbox", "url", "email", "phone_number"):
        return value
    if prop_type == "status":
        return value.get("name") if value else None
    return None


def parse_page(page: dict[str, Any]) -> PageMetadata:
    properties: dict[str, object] = {}
    for name, prop in (page.get("properties") or {}).items():
        if not isinstance(prop, dict) or prop.get("type") == "title":
            continue
        value = _simplify_property(prop)
        if value not in (None, "", []):
            properties[name] = value
    return PageMetadata(
        id=page.get("id", ""),
        title=extract_page_title(page),
        url=page.get("url", ""),
        last_edited_at=_parse_time(page.get("last_edited_time")),
        properties=properties,
    )


def _retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


class NotionFetcher:
    """Fetches blocks and page metadata over the Notion REST API.

    Usable as an async context manager; the underlying client is closed on
    exit unless it was passed in.
    """

    def __init__(
        self,
        config: NotionConfig,
        retry: RetryPolicy | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        self._config = config
        self._retry = retry or RetryPolicy()
        self._token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            headers=self._headers(),
            timeout=httpx.Timeout(self._retry.attempt_timeout),
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.token}",
            "Notion-Version": self._config.api_version,
            "Content-Type": "application/json",
        }

    async def __aenter__(self) -> NotionFetcher:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get(self, path: str, params: dict[str, object] | None = None) -> dict[str, Any]:
        async def attempt() -> dict[str, Any]:
            response = await self._client.get(path, params=params, headers=self._headers())
            if response.status_code >= 400:
                raise NotionAPIError(
                    status=response.status_code,
                    message=f"Notion API {response.status_code} for {path}",
                    body=response.text,
                    retry_after=_retry_after(response),
                )
            try:
                data = response.json()
            except ValueError as exc:
                raise NotionAPIError(
                    status=response.status_code,
                    message=f"Notion API returned invalid JSON for {path}",
                    body=response.text[:500],
                ) from exc
            if not isinstance(data, dict):
                raise NotionAPIError(
                    status=response.status_code,
                    message=f"Notion API returned {type(data).__name__}, not an object, for {path}",
                )
            return data

        return await with_retry(attempt, self._retry, name=f"GET {path}", token=self._token)

    async def get_children(self, node_id: str) -> list[RawBlock]:
        """Return every direct child of a block or page, following pagination."""
        blocks: list[RawBlock] = []
        cursor: str | None = None
        while True:
            params: dict[str, object] = {"page_size": self._config.page_size}
            if cursor:
                params["start_cursor"] = cursor
            data = await self._get(f"/blocks/{node_id}/children", params)
            blocks.extend(parse_block(item) for item in data.get("results", []))
            cursor = data.get("next_cursor")
            if not data.get("has_more") or not cursor:
                break
        logger.debug("Fetched %d children for %s", len(blocks), node_id)
        return blocks

    async def get_page_metadata(self, page_id: str) -> PageMetadata:
        data = await self._get(f"/pages/{page_id}")
        return parse_page(data)
