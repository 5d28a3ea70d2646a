"""Reference graph — persistent reverse-link index for one site.

Answers one question cheaply: "this entry changed, which pages embed it?"

Three tables, persisted together as one JSON document::

    {
      "refsMap":    {"<entry id>": ["<referrer entry id>", ...]},
      "topEntries": {"<page entry id>": "<slug>"},
      "assets":     {"<asset id>": "<file name>" | ["<file name>", ...]}
    }

``refsMap`` holds reverse edges only: when entry A links to entry B, A is
recorded as a referrer of B.  Edges are added as entries are published and
the map is never rebuilt from scratch, so it can hold stale edges after
content is unlinked.  Stale edges only ever cause extra regeneration.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping
from typing import Any

from mews._errors import ContentError


class ReferenceGraph:
    """Reverse-link index, page registry, and asset registry of a site.

    Attributes:
        refs_map: Entry id -> ids of entries linking to it, in insertion order.
        top_entries: Page entry id -> published slug.  Contains exactly the
            currently published pages.
        assets: Asset id -> file names currently published for it.

    """

    __slots__ = ("assets", "refs_map", "top_entries")

    def __init__(
        self,
        refs_map: dict[str, list[str]] | None = None,
        top_entries: dict[str, str] | None = None,
        assets: dict[str, tuple[str, ...]] | None = None,
    ) -> None:
        self.refs_map: dict[str, list[str]] = refs_map if refs_map is not None else {}
        self.top_entries: dict[str, str] = top_entries if top_entries is not None else {}
        self.assets: dict[str, tuple[str, ...]] = assets if assets is not None else {}

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ReferenceGraph:
        """Load a graph from its persisted form.

        Raises:
            ContentError: If the document does not have the expected shape.

        """
        if not isinstance(data, Mapping):
            msg = "Reference graph document must be an object"
            raise ContentError(msg)
        refs_raw = data.get("refsMap") or {}
        top_raw = data.get("topEntries") or {}
        assets_raw = data.get("assets") or {}
        if not all(isinstance(t, Mapping) for t in (refs_raw, top_raw, assets_raw)):
            msg = "Reference graph tables must be objects"
            raise ContentError(msg)

        refs_map: dict[str, list[str]] = {}
        for entry_id, referrers in refs_raw.items():
            if not isinstance(referrers, list):
                msg = f"Referrers of {entry_id} must be a list"
                raise ContentError(msg)
            refs_map[str(entry_id)] = [str(r) for r in referrers]

        assets: dict[str, tuple[str, ...]] = {}
        for asset_id, names in assets_raw.items():
            if isinstance(names, str):
                assets[str(asset_id)] = (names,)
            elif isinstance(names, list):
                assets[str(asset_id)] = tuple(str(n) for n in names)
            else:
                msg = f"File names of asset {asset_id} must be a string or list"
                raise ContentError(msg)

        top_entries = {str(k): str(v) for k, v in top_raw.items()}
        return cls(refs_map, top_entries, assets)

    def to_dict(self) -> dict[str, Any]:
        """Return the persisted form (see module docstring)."""
        return {
            "refsMap": {k: list(v) for k, v in self.refs_map.items()},
            "topEntries": dict(self.top_entries),
            "assets": {
                k: (v[0] if len(v) == 1 else list(v)) for k, v in self.assets.items()
            },
        }

    # ------------------------------------------------------------------
    # Reverse links
    # ------------------------------------------------------------------

    def referrers(self, entry_id: str) -> list[str]:
        """Ids of entries known to link to *entry_id*."""
        return list(self.refs_map.get(entry_id, ()))

    def add_referrer(self, entry_id: str, referrer_id: str) -> bool:
        """Record that *referrer_id* links to *entry_id*.

        Returns:
            True if the edge is new.

        """
        referrers = self.refs_map.setdefault(entry_id, [])
        if referrer_id in referrers:
            return False
        referrers.append(referrer_id)
        return True

    def affected_pages(self, entry_id: str) -> list[str]:
        """Pages that (transitively) embed *entry_id*, including itself.

        Walks referrer chains breadth-first from *entry_id* with a visited
        set, so shared ancestors are reported once and cycles terminate.
        Work is bounded by the number of edges reachable from the start.

        Every registered page met on the way is reported, not only the ends
        of the chains: a page embedded in another page (or the published
        entry itself, when it is a page) renders its own output too.  Ids
        with no referrers that are not registered pages are walked through
        and dropped.

        Returns:
            Registered page ids in discovery order.

        """
        pages: list[str] = []
        visited = {entry_id}
        queue = deque([entry_id])
        while queue:
            current = queue.popleft()
            if current in self.top_entries:
                pages.append(current)
            for referrer in self.refs_map.get(current, ()):
                if referrer not in visited:
                    visited.add(referrer)
                    queue.append(referrer)
        return pages

    # ------------------------------------------------------------------
    # Page registry
    # ------------------------------------------------------------------

    def slug_of(self, entry_id: str) -> str | None:
        return self.top_entries.get(entry_id)

    def set_slug(self, entry_id: str, slug: str) -> bool:
        """Register a page under *slug*.  Returns True if anything changed."""
        if self.top_entries.get(entry_id) == slug:
            return False
        self.top_entries[entry_id] = slug
        return True

    def pop_page(self, entry_id: str) -> str | None:
        """Unregister a page, returning its slug (None if it was not a page)."""
        return self.top_entries.pop(entry_id, None)

    # ------------------------------------------------------------------
    # Asset registry
    # ------------------------------------------------------------------

    def asset_files(self, asset_id: str) -> tuple[str, ...]:
        return self.assets.get(asset_id, ())

    def set_asset_files(self, asset_id: str, file_names: Iterable[str]) -> None:
        self.assets[asset_id] = tuple(file_names)

    def pop_asset(self, asset_id: str) -> tuple[str, ...]:
        """Forget an asset, returning the file names it had (empty if unknown)."""
        return self.assets.pop(asset_id, ())

    def __repr__(self) -> str:
        return (
            f"ReferenceGraph(refs={len(self.refs_map)}, pages={len(self.top_entries)}, "
            f"assets={len(self.assets)})"
        )
