"""Tests for mews.reactive.graph — reverse-link index and registries."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from mews._errors import ContentError
from mews.reactive.graph import ReferenceGraph


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def graph() -> ReferenceGraph:
    """Two pages sharing a module chain::

        P1 -> M -> N
        P2 -> M
    """
    g = ReferenceGraph()
    g.set_slug("P1", "one")
    g.set_slug("P2", "two")
    g.add_referrer("M", "P1")
    g.add_referrer("M", "P2")
    g.add_referrer("N", "M")
    return g


# ---------------------------------------------------------------------------
# Reverse links
# ---------------------------------------------------------------------------


class TestReferrers:
    def test_add_referrer_new_and_duplicate(self) -> None:
        g = ReferenceGraph()
        assert g.add_referrer("B", "A") is True
        assert g.add_referrer("B", "A") is False
        assert g.referrers("B") == ["A"]

    def test_referrers_unknown(self) -> None:
        assert ReferenceGraph().referrers("X") == []

    def test_referrers_is_a_copy(self, graph: ReferenceGraph) -> None:
        graph.referrers("M").append("Z")
        assert graph.referrers("M") == ["P1", "P2"]


class TestAffectedPages:
    def test_transitive(self, graph: ReferenceGraph) -> None:
        assert graph.affected_pages("N") == ["P1", "P2"]

    def test_page_itself(self, graph: ReferenceGraph) -> None:
        assert graph.affected_pages("P1") == ["P1"]

    def test_page_inside_chain_reported_with_outer_page(self) -> None:
        """P2 -> P1 -> M: both pages render M."""
        g = ReferenceGraph()
        g.set_slug("P1", "one")
        g.set_slug("P2", "two")
        g.add_referrer("M", "P1")
        g.add_referrer("P1", "P2")
        assert g.affected_pages("M") == ["P1", "P2"]

    def test_unreferenced_non_page(self) -> None:
        assert ReferenceGraph().affected_pages("X") == []

    def test_shared_ancestor_reported_once(self) -> None:
        """Diamond: P -> A -> X and P -> B -> X."""
        g = ReferenceGraph()
        g.set_slug("P", "p")
        for mid in ("A", "B"):
            g.add_referrer(mid, "P")
            g.add_referrer("X", mid)
        assert g.affected_pages("X") == ["P"]

    def test_cycle_terminates(self) -> None:
        g = ReferenceGraph()
        g.set_slug("P", "p")
        g.add_referrer("A", "B")
        g.add_referrer("B", "A")
        g.add_referrer("A", "P")
        assert g.affected_pages("B") == ["P"]

    def test_unregistered_page_not_reported(self, graph: ReferenceGraph) -> None:
        graph.pop_page("P2")
        assert graph.affected_pages("N") == ["P1"]

    @given(st.lists(st.tuples(st.sampled_from("ABCDEF"), st.sampled_from("ABCDEF")), max_size=30))
    def test_reported_pages_are_unique_and_registered(self, edges: list[tuple[str, str]]) -> None:
        g = ReferenceGraph()
        g.set_slug("A", "a")
        g.set_slug("D", "d")
        for target, referrer in edges:
            g.add_referrer(target, referrer)
        for start in "ABCDEF":
            pages = g.affected_pages(start)
            assert len(pages) == len(set(pages))
            assert set(pages) <= {"A", "D"}


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------


class TestPageRegistry:
    def test_set_slug_reports_change(self) -> None:
        g = ReferenceGraph()
        assert g.set_slug("P", "about") is True
        assert g.set_slug("P", "about") is False
        assert g.set_slug("P", "about-us") is True
        assert g.slug_of("P") == "about-us"

    def test_pop_page(self, graph: ReferenceGraph) -> None:
        assert graph.pop_page("P1") == "one"
        assert graph.pop_page("P1") is None
        assert graph.slug_of("P1") is None


class TestAssetRegistry:
    def test_set_and_pop(self) -> None:
        g = ReferenceGraph()
        g.set_asset_files("a1", ["hero.jpg", "hero-de.jpg"])
        assert g.asset_files("a1") == ("hero.jpg", "hero-de.jpg")
        assert g.pop_asset("a1") == ("hero.jpg", "hero-de.jpg")
        assert g.pop_asset("a1") == ()


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class TestSerialization:
    def test_round_trip(self, graph: ReferenceGraph) -> None:
        graph.set_asset_files("a1", ["hero.jpg"])
        graph.set_asset_files("a2", ["x.png", "y.png"])
        restored = ReferenceGraph.from_dict(graph.to_dict())
        assert restored.refs_map == graph.refs_map
        assert restored.top_entries == graph.top_entries
        assert restored.assets == graph.assets

    def test_single_file_stored_as_string(self) -> None:
        g = ReferenceGraph()
        g.set_asset_files("a1", ["hero.jpg"])
        assert g.to_dict()["assets"] == {"a1": "hero.jpg"}

    def test_missing_tables_default_empty(self) -> None:
        g = ReferenceGraph.from_dict({})
        assert g.refs_map == {} and g.top_entries == {} and g.assets == {}

    @pytest.mark.parametrize(
        "document",
        [
            [],
            {"refsMap": []},
            {"refsMap": {"A": "B"}},
            {"assets": {"a1": 3}},
        ],
    )
    def test_invalid_document(self, document: object) -> None:
        with pytest.raises(ContentError):
            ReferenceGraph.from_dict(document)  # type: ignore[arg-type]

    def test_repr(self, graph: ReferenceGraph) -> None:
        assert repr(graph) == "ReferenceGraph(refs=2, pages=2, assets=0)"
