"""Content layer — entries, assets, typed links, and the repository client."""

from mews.content.links import AssetLink, EntryLink, Link, iter_field_links, iter_links, parse_link
from mews.content.model import Asset, AssetFile, Entry
from mews.content.resolver import LinkedContent, map_linked

__all__ = [
    "Asset",
    "AssetFile",
    "AssetLink",
    "Entry",
    "EntryLink",
    "Link",
    "LinkedContent",
    "iter_field_links",
    "iter_links",
    "map_linked",
    "parse_link",
]
