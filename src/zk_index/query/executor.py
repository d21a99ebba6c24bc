"""Execution of filter queries against the index."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from zk_index.config import IndexConfig, config
from zk_index.exceptions import ErrorCode, InvalidQueryError, StorageError
from zk_index.models.criteria import FilterCriteria
from zk_index.models.schema import NoteMatch
from zk_index.observability import timed_operation
from zk_index.query.compiler import FilterCompiler, QueryPlan
from zk_index.query.mentions import MentionExpander
from zk_index.query.planner import QueryPlanner
from zk_index.query.traversal import GraphTraversal
from zk_index.storage.note_store import (
    NoteStore,
    fetch_link_snippets,
    fetch_links,
    fetch_tags,
)
from zk_index.utils import remove_duplicates

logger = logging.getLogger(__name__)


@dataclass
class FindResult:
    """Notes returned by a query.

    Attributes:
        matches: Matching notes, in result order.
        count: Number of notes returned, after the limit was applied.
    """

    matches: List[NoteMatch] = field(default_factory=list)
    count: int = 0

    def __iter__(self):
        return iter(self.matches)

    def __len__(self) -> int:
        return self.count


class QueryExecutor:
    """Runs filter queries: mention expansion, compilation, planning, decoding.

    Args:
        session_factory: Session factory of the index database.
        store: Note store used for path lookups and the link graph.
        settings: Configuration providing the snippet markers.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        store: NoteStore,
        settings: Optional[IndexConfig] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or config
        self.mentions = MentionExpander(store)
        self.compiler = FilterCompiler(store, GraphTraversal(store))
        self.planner = QueryPlanner(self.settings)

    def find(self, criteria: FilterCriteria) -> FindResult:
        """Find the notes matching ``criteria``.

        Raises:
            MentionNotFoundError: If none of the mentioned notes is indexed.
            InvalidQueryError: If the criteria or the match expression are
                malformed.
            StorageError: If the database query fails.
        """
        with timed_operation("find_notes", limit=criteria.limit) as op:
            criteria = self.mentions.expand(criteria)
            plan = self.compiler.compile(criteria)
            stmt = self.planner.lower(plan)

            try:
                with self.session_factory() as session:
                    matches = self._run(session, stmt, plan)
            except OperationalError as e:
                if plan.match and "fts5" in str(e.orig).lower():
                    raise InvalidQueryError(
                        f"Invalid match expression: {criteria.match}",
                        argument=criteria.match,
                        code=ErrorCode.QUERY_INVALID_MATCH,
                    ) from e
                raise StorageError(
                    "Query failed",
                    operation="find",
                    code=ErrorCode.STORAGE_READ_FAILED,
                    original_error=e,
                ) from e
            except SQLAlchemyError as e:
                raise StorageError(
                    "Query failed",
                    operation="find",
                    code=ErrorCode.STORAGE_READ_FAILED,
                    original_error=e,
                ) from e

            op["result_count"] = len(matches)
            return FindResult(matches=matches, count=len(matches))

    def _run(self, session: Session, stmt, plan: QueryPlan) -> List[NoteMatch]:
        rows = session.execute(stmt).all()
        note_ids = [db_note.id for db_note, _ in rows]
        tags = fetch_tags(session, note_ids)
        links = fetch_links(session, note_ids)

        link_ids = [
            link_id
            for note_id in note_ids
            for link_id in plan.link_snippets.get(note_id, ())
        ]
        link_snippets = fetch_link_snippets(session, link_ids)

        matches = []
        for db_note, fts_snippet in rows:
            record = NoteStore.to_record(db_note, tags[db_note.id], links[db_note.id])
            snippets = self._snippets(
                plan.link_snippets.get(db_note.id, ()), link_snippets, fts_snippet
            )
            if not snippets and record.lead:
                snippets = [record.lead]
            matches.append(NoteMatch(note=record, snippets=snippets))
        return matches

    def _snippets(
        self,
        link_ids,
        link_snippets: Dict[int, Tuple[str, str]],
        fts_snippet: Optional[str],
    ) -> List[str]:
        """Link snippets in first-seen order, else the full-text snippet."""
        snippets = []
        for link_id in link_ids:
            title, snippet = link_snippets.get(link_id, ("", ""))
            if not snippet:
                continue
            if title:
                snippet = snippet.replace(
                    title,
                    f"{self.settings.match_open_marker}{title}"
                    f"{self.settings.match_close_marker}",
                )
            snippets.append(snippet)
        snippets = remove_duplicates(snippets)
        if not snippets and fts_snippet:
            snippets = [fts_snippet]
        return snippets
