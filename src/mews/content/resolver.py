"""Link resolver — id lookup tables over one fetched content batch.

A delivery query returns the requested entries as ``items`` and every object
they link to, up to the include depth, under ``includes.Entry`` and
``includes.Asset``.  Anything not in those tables was beyond the depth limit
(or unpublished) and cannot be rendered.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from mews._errors import ContentError, LinkError
from mews.content.links import AssetLink, EntryLink
from mews.content.model import Asset, Entry


@dataclass(slots=True)
class LinkedContent:
    """Entries and assets of one fetched batch, keyed by id.

    Attributes:
        items: Ids of the top-level entries the query asked for, in
            response order.
        entries: Every entry in the batch (items and includes).
        assets: Every included asset.

    """

    items: list[str] = field(default_factory=list)
    entries: dict[str, Entry] = field(default_factory=dict)
    assets: dict[str, Asset] = field(default_factory=dict)

    def entry(self, link: EntryLink) -> Entry:
        """Resolve an Entry link.

        Raises:
            LinkError: If the target is not part of the batch.

        """
        entry = self.entries.get(link.id)
        if entry is None:
            msg = f"Linked entry id {link.id} is not included in the content"
            raise LinkError(msg)
        return entry

    def asset(self, link: AssetLink) -> Asset:
        """Resolve an Asset link.

        Raises:
            LinkError: If the target is not part of the batch.

        """
        asset = self.assets.get(link.id)
        if asset is None:
            msg = f"Linked asset id {link.id} is not included in the content"
            raise LinkError(msg)
        return asset


def map_linked(response: Mapping[str, Any]) -> LinkedContent:
    """Build lookup tables from a delivery API response.

    Malformed objects in ``includes`` are skipped: a page that really needs
    one fails later with a LinkError naming the missing id.

    """
    linked = LinkedContent()
    for raw in response.get("items") or ():
        entry = Entry.from_payload(raw)
        linked.items.append(entry.id)
        linked.entries[entry.id] = entry

    includes = response.get("includes") or {}
    for raw in includes.get("Entry") or ():
        try:
            entry = Entry.from_payload(raw)
        except ContentError:
            continue
        linked.entries.setdefault(entry.id, entry)
    for raw in includes.get("Asset") or ():
        try:
            asset = Asset.from_payload(raw)
        except ContentError:
            continue
        linked.assets[asset.id] = asset
    return linked
