"""Shared test fixtures for mews."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest

from mews.config import SiteConfig
from mews.content.resolver import LinkedContent, map_linked
from mews.export.store import StoredObject
from mews.metadata.index import (
    JsonMetadataStore,
    MetadataRecord,
    WriteOp,
)
from mews.render.templates import TemplateSet

# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def entry_link(entry_id: str) -> dict[str, Any]:
    return {"sys": {"type": "Link", "linkType": "Entry", "id": entry_id}}


def asset_link(asset_id: str) -> dict[str, Any]:
    return {"sys": {"type": "Link", "linkType": "Asset", "id": asset_id}}


def make_entry(
    entry_id: str,
    content_type: str,
    fields: Mapping[str, Any] | None = None,
    *,
    localized: bool = False,
) -> dict[str, Any]:
    """Raw entry payload; with *localized* every field is wrapped in ``en-US``."""
    raw_fields = dict(fields or {})
    if localized:
        raw_fields = {name: {"en-US": value} for name, value in raw_fields.items()}
    return {
        "sys": {
            "id": entry_id,
            "type": "Entry",
            "contentType": {"sys": {"type": "Link", "linkType": "ContentType", "id": content_type}},
        },
        "fields": raw_fields,
    }


def make_asset(
    asset_id: str,
    url: str,
    *,
    localized: bool = False,
    content_type: str = "image/jpeg",
) -> dict[str, Any]:
    file_value: dict[str, Any] = {
        "url": url,
        "fileName": url.rsplit("/", 1)[-1],
        "contentType": content_type,
        "details": {"size": 3},
    }
    return {
        "sys": {"id": asset_id, "type": "Asset"},
        "fields": {"file": {"en-US": file_value} if localized else file_value},
    }


def make_linked(
    items: Sequence[dict[str, Any]],
    entries: Sequence[dict[str, Any]] = (),
    assets: Sequence[dict[str, Any]] = (),
) -> LinkedContent:
    return map_linked({"items": list(items), "includes": {"Entry": list(entries), "Asset": list(assets)}})


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------


class FakeTemplate:
    """Calls a Python function with the render context instead of parsing a source."""

    def __init__(self, render_fn: Any) -> None:
        self._render_fn = render_fn

    def render(self, **context: Any) -> str:
        return self._render_fn(context)


class FakeEnvironment:
    """Template environment keyed by template name."""

    def __init__(self, templates: Mapping[str, Any]) -> None:
        self._templates = {name: FakeTemplate(fn) for name, fn in templates.items()}

    def get_template(self, name: str) -> FakeTemplate:
        return self._templates[name]


def make_templates(renderers: Mapping[str, Any]) -> TemplateSet:
    """TemplateSet from ``{"page.html": render_fn, ...}``.

    Each render function receives the template context dict.
    """
    names: dict[str, dict[str, str]] = {}
    for name in renderers:
        content_type, _, ext = name.partition(".")
        names.setdefault(ext, {})[content_type] = name
    return TemplateSet(names, env=FakeEnvironment(renderers))


class MemoryObjectStore:
    """ObjectStore keeping objects in a dict."""

    def __init__(self, objects: Mapping[str, bytes] | None = None) -> None:
        self.objects: dict[str, bytes] = dict(objects or {})
        self.content_types: dict[str, str | None] = {}
        self.deleted: list[str] = []

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        self.objects[key] = data
        self.content_types[key] = content_type

    async def get(self, key: str) -> StoredObject | None:
        if key not in self.objects:
            return None
        return StoredObject(key=key, data=self.objects[key], content_type=self.content_types.get(key))

    async def delete(self, key: str) -> bool:
        self.deleted.append(key)
        return self.objects.pop(key, None) is not None

    async def exists(self, key: str) -> bool:
        return key in self.objects


class MemoryMetadataStore(JsonMetadataStore):
    """Metadata store that never touches disk.

    ``reject`` lists per-call numbers of operations ``batch_write`` leaves
    unprocessed (taken from the end of each batch).
    """

    def __init__(
        self,
        records: Iterable[MetadataRecord] = (),
        *,
        reject: Sequence[int] = (),
    ) -> None:
        super().__init__(Path("/nonexistent/metadata.json"))
        self._records = {r.id: r for r in records}
        self._reject = list(reject)
        self.batches: list[list[WriteOp]] = []

    def _flush(self) -> None:
        pass

    async def batch_write(self, ops: Sequence[WriteOp]) -> list[WriteOp]:
        self.batches.append(list(ops))
        rejected_count = self._reject.pop(0) if self._reject else 0
        accepted = list(ops[: len(ops) - rejected_count])
        rejected = list(ops[len(ops) - rejected_count:])
        await super().batch_write(accepted)
        return rejected

    def record(self, record_id: str) -> MetadataRecord | None:
        return self._load().get(record_id)

    def page_users(self, record_id: str) -> frozenset[str]:
        record = self.record(record_id)
        return record.page_entry_ids if record else frozenset()


class FakeRepository:
    """ContentRepository serving raw payloads from memory.

    ``get_entries`` returns the requested entries plus every other entry and
    asset it knows about as includes.
    """

    def __init__(
        self,
        entries: Sequence[dict[str, Any]] = (),
        assets: Sequence[dict[str, Any]] = (),
        pages: Mapping[str, list[dict[str, Any]]] | None = None,
    ) -> None:
        self.entries = {e["sys"]["id"]: e for e in entries}
        self.assets = list(assets)
        self.pages = dict(pages or {})
        self.queries: list[list[str]] = []
        self.fail_with: Exception | None = None

    async def get_entries(self, entry_ids: Sequence[str], *, include: int) -> LinkedContent:
        self.queries.append(list(entry_ids))
        if self.fail_with is not None:
            raise self.fail_with
        items = [self.entries[i] for i in entry_ids if i in self.entries]
        includes = [e for i, e in self.entries.items() if i not in entry_ids]
        return make_linked(items, includes, self.assets)

    async def list_pages(self, content_type: str, slug_field: str) -> list[dict[str, Any]]:
        return list(self.pages.get(content_type, []))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def site_config(tmp_path: Path) -> SiteConfig:
    """A site rooted in tmp_path with events in plain (non-localized) form."""
    return SiteConfig(site="blog", root=tmp_path, localized_events=False)


@pytest.fixture
def tmp_site(tmp_path: Path) -> Path:
    """A site directory with a config file, templates, and static files.

    Layout::

        blog.yaml
        templates/page.html, templates/hero.html, templates/_base.html
        static/style.css, static/.hidden
    """
    (tmp_path / "blog.yaml").write_text(
        "mews:\n"
        "  page_content_types: [page]\n"
        "  space: space-1\n"
        "  access_token: token-1\n"
        "  localized_events: false\n"
    )
    templates = tmp_path / "templates"
    templates.mkdir()
    (templates / "page.html").write_text("<h1>{{ title }}</h1>{{ module(hero) }}")
    (templates / "hero.html").write_text("<section>{{ heading }}</section>")
    (templates / "_base.html").write_text("<html>{% block body %}{% endblock %}</html>")

    static = tmp_path / "static"
    static.mkdir()
    (static / "style.css").write_text("body { margin: 0; }\n")
    (static / ".hidden").write_text("secret\n")
    return tmp_path
