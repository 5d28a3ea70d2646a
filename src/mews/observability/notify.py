"""Failure notification — forward pipeline errors to an operator channel."""

from __future__ import annotations

from typing import Protocol

import httpx

from mews._errors import PublishError


class Notifier(Protocol):
    """Receives one message per pipeline failure."""

    async def notify(self, site: str, subject: str, message: str) -> None: ...


class WebhookNotifier:
    """Posts failures as JSON to a URL::

        {"site": "blog", "subject": "...", "message": "..."}

    Args:
        url: Webhook endpoint.
        client: Optional pre-built ``httpx.AsyncClient``; one is created
            and owned by this instance when omitted.

    """

    def __init__(self, url: str, *, client: httpx.AsyncClient | None = None) -> None:
        self._url = url
        self._client = client if client is not None else httpx.AsyncClient(timeout=10.0)
        self._owns_client = client is None

    @property
    def url(self) -> str:
        return self._url

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def notify(self, site: str, subject: str, message: str) -> None:
        """Send one notification.

        Raises:
            PublishError: If the webhook cannot be reached or rejects it.

        """
        try:
            response = await self._client.post(
                self._url, json={"site": site, "subject": subject, "message": message},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            msg = f"Unable to send notification to {self._url}: {exc}"
            raise PublishError(msg) from exc
