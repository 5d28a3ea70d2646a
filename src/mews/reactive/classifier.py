"""Event classifier — turns content events into per-site work sets.

Each inbound event mutates the site's reference graph and accumulates what
the task fan-out has to do:

    EntryPublish    -> record slug and reverse links, regenerate affected pages
    EntryUnpublish  -> unregister the page, remove its output
    AssetPublish    -> record file names, publish the files
    AssetUnpublish  -> forget file names, remove the files

Handlers run strictly in arrival order for a site, so a later event always
overrides an earlier one in the same batch (an unpublish after a publish
removes the page; a publish after an unpublish brings it back).
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mews._errors import ContentError
from mews.content.links import entry_link_ids
from mews.content.model import Asset, Entry, payload_id
from mews.reactive.graph import ReferenceGraph

if TYPE_CHECKING:
    from mews._types import Topic
    from mews.config import SiteConfig


@dataclass(slots=True)
class SiteEventContext:
    """Mutable per-site state for one processing batch.

    Attributes:
        site: Site identifier.
        config: Loaded site configuration.
        graph: Reference graph snapshot, mutated in place.
        version: Version stamp of the graph as loaded (None if it did not exist).
        dirty: The graph changed and must be saved.
        entry_ids_to_regen: Page entry ids to regenerate, deduplicated.
        page_slugs_to_remove: Slug -> page entry id of pages to delete, in
            queueing order.
        assets_to_publish: Asset id -> latest asset payload in this batch.
        asset_file_names_to_remove: Asset file names to delete, deduplicated.

    """

    site: str
    config: SiteConfig
    graph: ReferenceGraph = field(default_factory=ReferenceGraph)
    version: str | None = None
    dirty: bool = False
    entry_ids_to_regen: list[str] = field(default_factory=list)
    page_slugs_to_remove: dict[str, str] = field(default_factory=dict)
    assets_to_publish: dict[str, Asset] = field(default_factory=dict)
    asset_file_names_to_remove: list[str] = field(default_factory=list)

    @property
    def has_work(self) -> bool:
        return bool(
            self.dirty
            or self.entry_ids_to_regen
            or self.page_slugs_to_remove
            or self.assets_to_publish
            or self.asset_file_names_to_remove
        )

    def queue_regen(self, entry_id: str) -> None:
        """Queue a page for regeneration, cancelling a pending removal of it."""
        if entry_id not in self.entry_ids_to_regen:
            self.entry_ids_to_regen.append(entry_id)
        slug = self.graph.slug_of(entry_id)
        if slug is not None and slug in self.page_slugs_to_remove:
            del self.page_slugs_to_remove[slug]


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def publish_entry(ctx: SiteEventContext, payload: Mapping[str, Any]) -> None:
    """An entry was published.

    Raises:
        ContentError: If the payload is malformed or a page has no string slug.

    """
    entry = Entry.from_payload(payload)
    config = ctx.config
    localized = config.localized_events
    graph = ctx.graph

    if config.is_page_type(entry.content_type):
        slug = entry.field_value(config.slug_field, localized=localized)
        if not isinstance(slug, str) or not slug:
            msg = (
                f"Page entry {entry.id} does not have a slug "
                f"or its value is not a string"
            )
            raise ContentError(msg)
        if graph.set_slug(entry.id, slug):
            ctx.dirty = True

    for linked_id in entry_link_ids(entry.fields, localized=localized):
        if graph.add_referrer(linked_id, entry.id):
            ctx.dirty = True

    for page_id in graph.affected_pages(entry.id):
        ctx.queue_regen(page_id)


def unpublish_entry(ctx: SiteEventContext, payload: Mapping[str, Any]) -> None:
    """An entry was unpublished.  Only pages have anything to undo."""
    entry_id = payload_id(payload)
    slug = ctx.graph.pop_page(entry_id)
    if slug is None:
        return
    ctx.dirty = True
    ctx.page_slugs_to_remove.setdefault(slug, entry_id)
    if entry_id in ctx.entry_ids_to_regen:
        ctx.entry_ids_to_regen.remove(entry_id)


def publish_asset(ctx: SiteEventContext, payload: Mapping[str, Any]) -> None:
    """An asset was published (or republished with a new file)."""
    asset = Asset.from_payload(payload)
    ctx.graph.set_asset_files(asset.id, asset.file_names)
    ctx.dirty = True
    # Re-inserting moves the asset to the end: last write wins.
    ctx.assets_to_publish.pop(asset.id, None)
    ctx.assets_to_publish[asset.id] = asset
    for file_name in asset.file_names:
        if file_name in ctx.asset_file_names_to_remove:
            ctx.asset_file_names_to_remove.remove(file_name)


def unpublish_asset(ctx: SiteEventContext, payload: Mapping[str, Any]) -> None:
    """An asset was unpublished.

    Without a recorded file name there is nothing we could safely delete,
    so the event is ignored.

    """
    asset_id = payload_id(payload)
    file_names = ctx.graph.pop_asset(asset_id)
    if not file_names:
        print(
            f"  [{ctx.site}] no file name mapping for asset #{asset_id}, "
            "skipping asset unpublish",
            file=sys.stderr,
        )
        return
    ctx.dirty = True
    for file_name in file_names:
        if file_name not in ctx.asset_file_names_to_remove:
            ctx.asset_file_names_to_remove.append(file_name)
    ctx.assets_to_publish.pop(asset_id, None)


type Handler = Callable[[SiteEventContext, Mapping[str, Any]], None]

HANDLED_TOPICS: dict[str, Handler] = {
    "EntryPublish": publish_entry,
    "EntryUnpublish": unpublish_entry,
    "AssetPublish": publish_asset,
    "AssetUnpublish": unpublish_asset,
}

# Webhook topic names used by the content platform
_TOPIC_ALIASES: dict[str, Topic] = {
    "ContentManagement.Entry.publish": "EntryPublish",
    "ContentManagement.Entry.unpublish": "EntryUnpublish",
    "ContentManagement.Asset.publish": "AssetPublish",
    "ContentManagement.Asset.unpublish": "AssetUnpublish",
}


def normalize_topic(topic: Any) -> str | None:
    """Map a raw topic to a handled topic name, or None if unrecognized."""
    if not isinstance(topic, str):
        return None
    topic = _TOPIC_ALIASES.get(topic, topic)
    return topic if topic in HANDLED_TOPICS else None


def classify(ctx: SiteEventContext, topic: str, payload: Any) -> None:
    """Apply one event to the site context.

    Args:
        ctx: Site context to mutate.
        topic: Handled topic name (see ``normalize_topic``).
        payload: Event payload.

    Raises:
        ContentError: If the payload is malformed.

    """
    handler = HANDLED_TOPICS[topic]
    if not isinstance(payload, Mapping):
        msg = f"{topic} payload must be an object, got {type(payload).__name__}"
        raise ContentError(msg)
    handler(ctx, payload)
