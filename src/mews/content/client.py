"""Content repository client — thin wrapper over the delivery HTTP API.

Only the two queries the pipeline needs are implemented: fetch a set of
entries by id with their linked content, and list every page entry of a
content type.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from mews._errors import ContentError
from mews.content.resolver import LinkedContent, map_linked

if TYPE_CHECKING:
    from mews.config import SiteConfig

# Largest page the delivery API serves
PAGE_LIMIT = 1000


class ContentRepository(Protocol):
    """What the pipeline needs from the content repository."""

    async def get_entries(self, entry_ids: Sequence[str], *, include: int) -> LinkedContent:
        """Fetch entries by id together with linked content up to *include* levels."""
        ...

    async def list_pages(self, content_type: str, slug_field: str) -> list[dict[str, Any]]:
        """List ``sys.id`` and slug of every entry of *content_type*."""
        ...


class DeliveryClient:
    """Content repository client for the delivery API.

    Args:
        space: Space identifier.
        access_token: Delivery API token.
        environment: Environment identifier.
        host: Delivery API host.
        client: Optional pre-built ``httpx.AsyncClient`` (tests pass one
            with a ``MockTransport``).  When omitted one is created and
            owned by this instance.

    """

    def __init__(
        self,
        space: str,
        access_token: str,
        *,
        environment: str = "master",
        host: str = "cdn.contentful.com",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base = f"https://{host}/spaces/{space}/environments/{environment}"
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._client = client if client is not None else httpx.AsyncClient(timeout=30.0)
        self._owns_client = client is None

    @classmethod
    def for_site(cls, config: SiteConfig, *, client: httpx.AsyncClient | None = None) -> DeliveryClient:
        """Create a client from a site's configuration."""
        return cls(
            config.space,
            config.access_token,
            environment=config.environment,
            host=config.cdn_host,
            client=client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_entries(self, entry_ids: Sequence[str], *, include: int) -> LinkedContent:
        """Fetch *entry_ids* in a single query.

        Raises:
            ContentError: On transport failure or a non-success response.

        """
        if not entry_ids:
            return LinkedContent()
        params: dict[str, Any] = {"include": include, "limit": len(entry_ids)}
        if len(entry_ids) == 1:
            params["sys.id"] = entry_ids[0]
        else:
            params["sys.id[in]"] = ",".join(entry_ids)
        return map_linked(await self._query(params))

    async def list_pages(self, content_type: str, slug_field: str) -> list[dict[str, Any]]:
        """Page through every entry of *content_type*, selecting id and slug."""
        results: list[dict[str, Any]] = []
        skip = 0
        while True:
            data = await self._query({
                "content_type": content_type,
                "select": f"sys.id,fields.{slug_field}",
                "limit": PAGE_LIMIT,
                "skip": skip,
            })
            items = data.get("items") or []
            results.extend(items)
            skip += len(items)
            if not items or skip >= int(data.get("total", 0)):
                return results

    async def _query(self, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.get(
                f"{self._base}/entries", params=params, headers=self._headers,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"Content query failed: {exc}"
            raise ContentError(msg) from exc
        if not isinstance(data, dict):
            msg = "Content query returned a non-object response"
            raise ContentError(msg)
        return data
