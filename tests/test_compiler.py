# tests/test_compiler.py
"""Tests for the filter compiler, using in-memory fakes for the index."""
import datetime
from datetime import timezone

import pytest

from tests.fakes import FakeLinkGraph, FakeNoteLookup
from zk_index.exceptions import ErrorCode, InvalidQueryError
from zk_index.models.criteria import FilterCriteria, LinkFilter, SortField, Sorter
from zk_index.query.compiler import FilterCompiler
from zk_index.query.predicates import (
    And,
    DateField,
    DateRange,
    HasIncomingLink,
    IdIn,
    Not,
    Or,
    PathMatch,
    TagMatch,
)
from zk_index.query.traversal import GraphTraversal

A, B, C, D = 1, 2, 3, 4


@pytest.fixture
def lookup():
    lookup = FakeNoteLookup()
    for note_id, path in [(A, "a.md"), (B, "b.md"), (C, "c.md"), (D, "d.md")]:
        lookup.add(note_id, path, title=path[0].upper())
    return lookup


@pytest.fixture
def graph():
    """Chain a -> b -> c -> d."""
    return FakeLinkGraph([(A, B), (B, C), (C, D)])


@pytest.fixture
def compiler(lookup, graph):
    return FilterCompiler(lookup, GraphTraversal(graph))


class TestBasicPredicates:
    """Tests for paths, ids, orphans and dates."""

    def test_empty_criteria(self, compiler):
        plan = compiler.compile(FilterCriteria())
        assert plan.predicate is None
        assert plan.match is None
        assert plan.limit is None
        assert plan.sorters == []

    def test_include_paths_are_ored(self, compiler):
        plan = compiler.compile(FilterCriteria(include_paths=["journal", "ideas/*"]))
        assert plan.predicate == Or((PathMatch("journal"), PathMatch("ideas/*")))

    def test_single_include_path(self, compiler):
        plan = compiler.compile(FilterCriteria(include_paths=["journal"]))
        assert plan.predicate == PathMatch("journal")

    def test_exclude_paths_are_anded(self, compiler):
        plan = compiler.compile(FilterCriteria(exclude_paths=["drafts", "archive"]))
        assert plan.predicate == And(
            (Not(PathMatch("drafts")), Not(PathMatch("archive")))
        )

    def test_exclude_ids(self, compiler):
        plan = compiler.compile(FilterCriteria(exclude_ids=frozenset({A, C})))
        assert plan.predicate == Not(IdIn(frozenset({A, C})))

    def test_orphan(self, compiler):
        plan = compiler.compile(FilterCriteria(orphan=True))
        assert plan.predicate == Not(HasIncomingLink())

    def test_date_bounds(self, compiler):
        start = datetime.datetime(2024, 1, 1, tzinfo=timezone.utc)
        end = datetime.datetime(2024, 2, 1, tzinfo=timezone.utc)
        plan = compiler.compile(
            FilterCriteria(created_after=start, modified_before=end)
        )
        assert plan.predicate == And(
            (
                DateRange(DateField.CREATED, start, None),
                DateRange(DateField.MODIFIED, None, end),
            )
        )

    def test_match_is_converted(self, compiler):
        plan = compiler.compile(FilterCriteria(match="foo bar*"))
        assert plan.match == '"foo" "bar"*'

    def test_malformed_match(self, compiler):
        with pytest.raises(InvalidQueryError) as exc_info:
            compiler.compile(FilterCriteria(match='"unterminated'))
        assert exc_info.value.code == ErrorCode.QUERY_INVALID_MATCH

    def test_limit_and_sorters(self, compiler):
        sorters = [Sorter(field=SortField.CREATED, ascending=False)]
        plan = compiler.compile(FilterCriteria(limit=3, sorters=sorters))
        assert plan.limit == 3
        assert plan.sorters == sorters

    def test_zero_limit_is_unlimited(self, compiler):
        assert compiler.compile(FilterCriteria(limit=0)).limit is None


class TestTagGroups:
    """Tests for tag group parsing."""

    def test_single_tag(self, compiler):
        plan = compiler.compile(FilterCriteria(tags=["foo"]))
        assert plan.predicate == TagMatch(("foo",))

    @pytest.mark.parametrize("group", ["foo OR bar", "foo|bar", "foo | bar"])
    def test_or_group(self, compiler, group):
        plan = compiler.compile(FilterCriteria(tags=[group]))
        assert plan.predicate == TagMatch(("foo", "bar"))

    @pytest.mark.parametrize("group", ["-foo", "NOT foo", " - foo "])
    def test_negated_tag(self, compiler, group):
        plan = compiler.compile(FilterCriteria(tags=[group]))
        assert plan.predicate == Not(TagMatch(("foo",)))

    def test_tag_starting_with_not_is_not_negated(self, compiler):
        plan = compiler.compile(FilterCriteria(tags=["NOTES"]))
        assert plan.predicate == TagMatch(("NOTES",))

    @pytest.mark.parametrize("group", ["foo OR -bar", "-foo|bar", "NOT foo OR bar"])
    def test_negation_in_or_group_is_invalid(self, compiler, group):
        with pytest.raises(InvalidQueryError) as exc_info:
            compiler.compile(FilterCriteria(tags=[group]))
        assert exc_info.value.code == ErrorCode.QUERY_INVALID_TAG_GROUP

    def test_groups_are_anded(self, compiler):
        plan = compiler.compile(FilterCriteria(tags=["a|b", "-c", "  "]))
        assert plan.predicate == And((TagMatch(("a", "b")), Not(TagMatch(("c",)))))


class TestLinkFilters:
    """Tests for link_to, linked_by and related."""

    def test_link_to_single_hop(self, compiler):
        plan = compiler.compile(FilterCriteria(link_to=LinkFilter(paths=["a"])))
        assert plan.predicate == IdIn(frozenset({B}))
        assert plan.distances == {}
        assert plan.link_snippets == {B: [1]}

    def test_link_to_recursive_bounded(self, compiler):
        plan = compiler.compile(
            FilterCriteria(link_to=LinkFilter(paths=["a"], recursive=True, max_distance=2))
        )
        assert plan.predicate == IdIn(frozenset({B, C}))
        assert plan.distances == {B: 1, C: 2}

    def test_link_to_recursive_unbounded(self, compiler):
        plan = compiler.compile(
            FilterCriteria(link_to=LinkFilter(paths=["a"], recursive=True))
        )
        assert plan.predicate == IdIn(frozenset({B, C, D}))

    def test_linked_by_follows_incoming_links(self, compiler):
        plan = compiler.compile(FilterCriteria(linked_by=LinkFilter(paths=["c"])))
        assert plan.predicate == IdIn(frozenset({B}))
        assert plan.link_snippets == {B: [2]}

    def test_negated_link_filter(self, compiler):
        plan = compiler.compile(
            FilterCriteria(link_to=LinkFilter(paths=["a"], negate=True))
        )
        assert plan.predicate == Not(IdIn(frozenset({B})))
        assert plan.link_snippets == {}

    def test_negated_recursive_link_filter_is_invalid(self, compiler):
        with pytest.raises(InvalidQueryError) as exc_info:
            compiler.compile(
                FilterCriteria(
                    linked_by=LinkFilter(paths=["a"], negate=True, recursive=True)
                )
            )
        assert exc_info.value.code == ErrorCode.QUERY_INVALID_LINK_FILTER

    def test_unresolved_paths_disable_the_filter(self, compiler, graph):
        plan = compiler.compile(FilterCriteria(link_to=LinkFilter(paths=["missing"])))
        assert plan.predicate is None
        assert graph.neighbor_calls == 0

    def test_note_without_links_matches_nothing(self, compiler):
        plan = compiler.compile(FilterCriteria(link_to=LinkFilter(paths=["d"])))
        assert plan.predicate == IdIn(frozenset())

    def test_related_keeps_distance_two_only(self, lookup):
        # a -> b <- c
        compiler = FilterCompiler(lookup, GraphTraversal(FakeLinkGraph([(A, B), (C, B)])))
        plan = compiler.compile(FilterCriteria(related=["a"]))
        assert plan.predicate == IdIn(frozenset({C}))
        assert plan.distances == {C: 2}
        assert plan.link_snippets == {}

    def test_related_excludes_seeds(self, lookup):
        # a -> b <- c, both a and c requested
        compiler = FilterCompiler(lookup, GraphTraversal(FakeLinkGraph([(A, B), (C, B)])))
        plan = compiler.compile(FilterCriteria(related=["a", "c"]))
        assert plan.predicate == IdIn(frozenset())

    def test_related_ignores_farther_notes(self, compiler):
        plan = compiler.compile(FilterCriteria(related=["a"]))
        assert plan.predicate == IdIn(frozenset({C}))

    def test_snippets_merge_across_filters(self, lookup):
        # a -> b, c -> b, b -> d
        graph = FakeLinkGraph([(A, B), (C, B), (B, D)])
        compiler = FilterCompiler(lookup, GraphTraversal(graph))
        plan = compiler.compile(
            FilterCriteria(
                link_to=LinkFilter(paths=["c"]),
                linked_by=LinkFilter(paths=["d"]),
            )
        )
        assert plan.predicate == And((IdIn(frozenset({B})), IdIn(frozenset({B}))))
        # linked_by is compiled first: b -> d (link 3), then c -> b (link 2)
        assert plan.link_snippets == {B: [3, 2]}

    def test_all_categories_are_anded(self, compiler):
        plan = compiler.compile(
            FilterCriteria(
                include_paths=["a"],
                tags=["t"],
                link_to=LinkFilter(paths=["a"]),
                orphan=True,
            )
        )
        assert plan.predicate == And(
            (
                PathMatch("a"),
                TagMatch(("t",)),
                IdIn(frozenset({B})),
                Not(HasIncomingLink()),
            )
        )
