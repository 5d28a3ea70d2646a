"""Tests for mews.content.links — typed links and link discovery."""

import pytest

from mews._errors import LinkError
from mews.content.links import (
    AssetLink,
    EntryLink,
    entry_link_ids,
    iter_field_links,
    iter_links,
    parse_link,
    require_asset_link,
    require_entry_link,
)

from .conftest import asset_link, entry_link


class TestParseLink:
    def test_entry(self) -> None:
        assert parse_link(entry_link("a")) == EntryLink("a")

    def test_asset(self) -> None:
        assert parse_link(asset_link("x")) == AssetLink("x")

    @pytest.mark.parametrize(
        "value",
        [
            None,
            "a",
            42,
            {},
            {"sys": {"type": "Entry", "id": "a"}},
            {"sys": {"type": "Link", "linkType": "Entry"}},
            {"sys": {"type": "Link", "linkType": "Entry", "id": ""}},
            {"sys": {"type": "Link", "linkType": "ContentType", "id": "page"}},
        ],
    )
    def test_not_a_link(self, value: object) -> None:
        assert parse_link(value) is None


class TestRequireLink:
    def test_entry_ok(self) -> None:
        assert require_entry_link(entry_link("a"), "module") == EntryLink("a")

    def test_entry_given_asset(self) -> None:
        with pytest.raises(LinkError, match='Helper "module"'):
            require_entry_link(asset_link("x"), "module")

    def test_asset_given_garbage(self) -> None:
        with pytest.raises(LinkError, match="invalid Asset link"):
            require_asset_link("hero.jpg", "asset_src")


class TestIterLinks:
    def test_sequence(self) -> None:
        links = list(iter_links([entry_link("a"), "text", asset_link("x")]))
        assert links == [EntryLink("a"), AssetLink("x")]

    def test_rich_text_document(self) -> None:
        document = {
            "nodeType": "document",
            "content": [
                {"nodeType": "paragraph", "content": [
                    {"nodeType": "text", "value": "hi"},
                    {"nodeType": "embedded-entry-inline", "data": {"target": entry_link("b")}},
                ]},
                {"nodeType": "embedded-asset-block", "data": {"target": asset_link("y")}},
            ],
        }
        assert list(iter_links(document)) == [EntryLink("b"), AssetLink("y")]

    @pytest.mark.parametrize("content", [5, "text", {"nodeType": "text"}, None])
    def test_rich_text_content_not_a_list(self, content: object) -> None:
        document = {"nodeType": "document", "content": content}
        assert list(iter_links(document)) == []

    def test_plain_objects_not_searched(self) -> None:
        assert list(iter_links({"lat": 1, "nested": entry_link("a")})) == []


class TestFieldLinks:
    def test_plain_fields(self) -> None:
        fields = {"title": "T", "hero": entry_link("h"), "modules": [entry_link("m")]}
        assert list(iter_field_links(fields)) == [EntryLink("h"), EntryLink("m")]

    def test_localized_fields_scan_every_locale(self) -> None:
        fields = {"hero": {"en-US": entry_link("h1"), "de-DE": entry_link("h2")}}
        assert list(iter_field_links(fields, localized=True)) == [EntryLink("h1"), EntryLink("h2")]

    def test_entry_link_ids_distinct_in_order(self) -> None:
        fields = {
            "a": entry_link("m"),
            "b": [entry_link("n"), entry_link("m"), asset_link("x")],
        }
        assert entry_link_ids(fields) == ["m", "n"]
