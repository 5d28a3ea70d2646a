"""Typed links between content items.

The content repository embeds references as loosely shaped objects::

    {"sys": {"type": "Link", "linkType": "Entry", "id": "4xY..."}}

They are parsed once into a closed set of variants, ``EntryLink`` and
``AssetLink``, so the rest of the pipeline never pattern-matches raw dicts.
Links may appear as a field value, inside a sequence, or inside a rich-text
document (as the ``data.target`` of embedded nodes).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from mews._errors import LinkError


@dataclass(frozen=True, slots=True)
class EntryLink:
    """Reference to another entry."""

    id: str


@dataclass(frozen=True, slots=True)
class AssetLink:
    """Reference to an asset."""

    id: str


type Link = EntryLink | AssetLink


def parse_link(value: Any) -> Link | None:
    """Return the link encoded by *value*, or None if it is not a link."""
    if not isinstance(value, Mapping):
        return None
    sys = value.get("sys")
    if not isinstance(sys, Mapping) or sys.get("type") != "Link":
        return None
    link_id = sys.get("id")
    if not isinstance(link_id, str) or not link_id:
        return None
    link_type = sys.get("linkType")
    if link_type == "Entry":
        return EntryLink(link_id)
    if link_type == "Asset":
        return AssetLink(link_id)
    return None


def require_entry_link(value: Any, helper: str) -> EntryLink:
    """Validate a helper argument that must be an Entry link.

    Raises:
        LinkError: If *value* is anything else.

    """
    link = parse_link(value)
    if not isinstance(link, EntryLink):
        msg = f'Helper "{helper}" was passed an invalid Entry link object: {value!r}'
        raise LinkError(msg)
    return link


def require_asset_link(value: Any, helper: str) -> AssetLink:
    """Validate a helper argument that must be an Asset link.

    Raises:
        LinkError: If *value* is anything else.

    """
    link = parse_link(value)
    if not isinstance(link, AssetLink):
        msg = f'Helper "{helper}" was passed an invalid Asset link object: {value!r}'
        raise LinkError(msg)
    return link


def iter_links(value: Any) -> Iterator[Link]:
    """Yield every link found in a field value.

    Handles scalars, sequences, and rich-text documents.  Plain mappings
    that are neither links nor rich-text nodes (JSON objects, locations)
    are not searched.

    """
    link = parse_link(value)
    if link is not None:
        yield link
        return
    if isinstance(value, list | tuple):
        for item in value:
            yield from iter_links(item)
    elif isinstance(value, Mapping) and "nodeType" in value:
        data = value.get("data")
        if isinstance(data, Mapping) and "target" in data:
            yield from iter_links(data["target"])
        content = value.get("content")
        if isinstance(content, list | tuple):
            for child in content:
                yield from iter_links(child)


def iter_field_links(fields: Mapping[str, Any], *, localized: bool = False) -> Iterator[Link]:
    """Yield the links of every field value.

    Args:
        fields: Entry fields.
        localized: Field values are ``{locale: value}`` mappings; every
            locale variant is scanned.

    """
    for value in fields.values():
        if localized and isinstance(value, Mapping) and parse_link(value) is None:
            for variant in value.values():
                yield from iter_links(variant)
        else:
            yield from iter_links(value)


def entry_link_ids(fields: Mapping[str, Any], *, localized: bool = False) -> list[str]:
    """Distinct Entry-link targets of *fields*, in first-seen order."""
    seen: dict[str, None] = {}
    for link in iter_field_links(fields, localized=localized):
        if isinstance(link, EntryLink):
            seen.setdefault(link.id, None)
    return list(seen)
