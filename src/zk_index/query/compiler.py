"""Compilation of FilterCriteria into a query plan.

The compiler resolves everything that depends on the index content (link
filter seeds, graph neighborhoods) and produces a predicate tree. It does not
build SQL; see :mod:`zk_index.query.planner`.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol

from zk_index.exceptions import ErrorCode, InvalidQueryError
from zk_index.models.criteria import FilterCriteria, LinkFilter, Sorter
from zk_index.models.schema import LinkDirection
from zk_index.query.predicates import (
    DateField,
    DateRange,
    HasIncomingLink,
    IdIn,
    Not,
    PathMatch,
    Predicate,
    TagMatch,
    all_of,
    any_of,
)
from zk_index.query.traversal import RELATED_DISTANCE, GraphTraversal, Reach
from zk_index.storage.fts_index import FtsIndex

logger = logging.getLogger(__name__)

# Separates the alternatives of a tag group: "a OR b" or "a|b"
TAG_GROUP_SEPARATOR = re.compile(r" OR |\|")
TAG_NEGATION = re.compile(r"^(?:-|NOT\s+)")


class NoteLookup(Protocol):
    def find_ids_by_path_prefixes(self, paths: Iterable[str]) -> List[int]: ...


@dataclass
class QueryPlan:
    """Everything the planner needs to build the final query.

    Attributes:
        predicate: Conditions every result satisfies, None for all notes.
        match: Full-text expression in FTS5 syntax, if any.
        sorters: User sort keys, applied after relevance and distance.
        limit: Maximum number of results, None for unlimited.
        distances: Traversal distance of each note reached by a recursive
            link filter. Used as a sort key when not empty.
        link_snippets: Links whose snippets describe why a note matched a
            link filter, per note ID in first-seen order.
    """

    predicate: Optional[Predicate] = None
    match: Optional[str] = None
    sorters: List[Sorter] = field(default_factory=list)
    limit: Optional[int] = None
    distances: Dict[int, int] = field(default_factory=dict)
    link_snippets: Dict[int, List[int]] = field(default_factory=dict)


class FilterCompiler:
    """Compiles FilterCriteria into a QueryPlan.

    Args:
        lookup: Resolves link filter paths to note IDs.
        traversal: Graph traversal used for link filters.
    """

    def __init__(self, lookup: NoteLookup, traversal: GraphTraversal):
        self.lookup = lookup
        self.traversal = traversal

    def compile(self, criteria: FilterCriteria) -> QueryPlan:
        """Build the query plan of ``criteria``.

        Mentions must have been expanded beforehand.

        Raises:
            InvalidQueryError: On a malformed match expression, a negated
                tag in an OR group or a negated recursive link filter.
        """
        plan = QueryPlan(sorters=list(criteria.sorters), limit=criteria.limit or None)
        predicates: List[Predicate] = []

        if criteria.match:
            plan.match = FtsIndex.convert_query(criteria.match)

        if criteria.include_paths:
            predicates.append(any_of(PathMatch(glob) for glob in criteria.include_paths))
        for glob in criteria.exclude_paths or []:
            predicates.append(Not(PathMatch(glob)))

        if criteria.exclude_ids:
            predicates.append(Not(IdIn(frozenset(criteria.exclude_ids))))

        for group in criteria.tags or []:
            predicate = self._compile_tag_group(group)
            if predicate is not None:
                predicates.append(predicate)

        if criteria.linked_by is not None:
            predicate = self._compile_link_filter(
                criteria.linked_by, LinkDirection.INCOMING, plan
            )
            if predicate is not None:
                predicates.append(predicate)
        if criteria.link_to is not None:
            predicate = self._compile_link_filter(
                criteria.link_to, LinkDirection.OUTGOING, plan
            )
            if predicate is not None:
                predicates.append(predicate)
        if criteria.related:
            predicate = self._compile_related(criteria.related, plan)
            if predicate is not None:
                predicates.append(predicate)

        if criteria.orphan:
            predicates.append(Not(HasIncomingLink()))

        if criteria.created_after or criteria.created_before:
            predicates.append(
                DateRange(DateField.CREATED, criteria.created_after, criteria.created_before)
            )
        if criteria.modified_after or criteria.modified_before:
            predicates.append(
                DateRange(
                    DateField.MODIFIED, criteria.modified_after, criteria.modified_before
                )
            )

        plan.predicate = all_of(predicates)
        return plan

    @staticmethod
    def _compile_tag_group(group: str) -> Optional[Predicate]:
        """One tag list entry: an OR of globs, or a single negated glob."""
        negate = False
        patterns: List[str] = []
        for tag in TAG_GROUP_SEPARATOR.split(group):
            tag = tag.strip()
            marker = TAG_NEGATION.match(tag)
            if marker:
                negate = True
                tag = tag[marker.end():].strip()
            if tag:
                patterns.append(tag)

        if not patterns:
            return None
        if negate and len(patterns) > 1:
            raise InvalidQueryError(
                f"cannot negate a tag in a OR group: {group}",
                argument=group,
                code=ErrorCode.QUERY_INVALID_TAG_GROUP,
            )

        predicate = TagMatch(tuple(patterns))
        return Not(predicate) if negate else predicate

    def _compile_link_filter(
        self, link_filter: LinkFilter, direction: LinkDirection, plan: QueryPlan
    ) -> Optional[Predicate]:
        """Neighborhood of the filter's notes in one direction.

        An unresolvable set of paths disables the filter.
        """
        if link_filter.negate and link_filter.recursive:
            raise InvalidQueryError(
                "a recursive link filter cannot be negated",
                argument=", ".join(link_filter.paths),
                code=ErrorCode.QUERY_INVALID_LINK_FILTER,
            )

        seeds = self.lookup.find_ids_by_path_prefixes(link_filter.paths)
        if not seeds:
            logger.debug(f"Link filter matches no indexed note: {link_filter.paths}")
            return None

        max_distance = link_filter.max_distance if link_filter.recursive else 1
        reached = self.traversal.closure(seeds, direction, max_distance)
        neighbors = IdIn(frozenset(reached))
        if link_filter.negate:
            return Not(neighbors)

        self._record_snippets(reached, plan)
        if link_filter.recursive:
            self._record_distances(reached, plan)
        return neighbors

    def _compile_related(self, paths: List[str], plan: QueryPlan) -> Optional[Predicate]:
        """Notes linked to or from a neighbor of the given notes, excluding
        the notes themselves and their direct neighbors."""
        seeds = self.lookup.find_ids_by_path_prefixes(paths)
        if not seeds:
            logger.debug(f"Related filter matches no indexed note: {paths}")
            return None

        reached = self.traversal.closure(seeds, LinkDirection.BOTH, RELATED_DISTANCE)
        related = {
            note_id: reach
            for note_id, reach in reached.items()
            if reach.distance == RELATED_DISTANCE and note_id not in seeds
        }
        self._record_distances(related, plan)
        return IdIn(frozenset(related))

    @staticmethod
    def _record_snippets(reached: Dict[int, Reach], plan: QueryPlan) -> None:
        for note_id, reach in reached.items():
            link_ids = plan.link_snippets.setdefault(note_id, [])
            for link_id in reach.link_ids:
                if link_id not in link_ids:
                    link_ids.append(link_id)

    @staticmethod
    def _record_distances(reached: Dict[int, Reach], plan: QueryPlan) -> None:
        for note_id, reach in reached.items():
            current = plan.distances.get(note_id)
            if current is None or reach.distance < current:
                plan.distances[note_id] = reach.distance
