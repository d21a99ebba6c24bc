"""Lowering of query plans to SQLAlchemy statements."""

from typing import Optional

from sqlalchemy import Select, and_, case, exists, false, func, not_, null, or_, select
from sqlalchemy.sql.elements import ColumnElement

from zk_index.config import IndexConfig, config
from zk_index.models.criteria import SortField, Sorter
from zk_index.models.db_models import DBCollection, DBLink, DBNote, notes_collections
from zk_index.models.schema import CollectionKind, to_storage_datetime
from zk_index.query.compiler import QueryPlan
from zk_index.query.predicates import (
    And,
    DateField,
    DateRange,
    HasIncomingLink,
    IdIn,
    Not,
    Or,
    PathMatch,
    Predicate,
    TagMatch,
)
from zk_index.storage.fts_index import FtsIndex, notes_fts
from zk_index.utils import glob_to_path_regex

_SORT_COLUMNS = {
    SortField.CREATED: DBNote.created,
    SortField.MODIFIED: DBNote.modified,
    SortField.PATH: DBNote.path,
    SortField.TITLE: DBNote.title,
    SortField.WORD_COUNT: DBNote.word_count,
}


class QueryPlanner:
    """Builds the SELECT statement of a query plan.

    The statement yields ``(DBNote, fts_snippet)`` rows; ``fts_snippet`` is
    NULL unless the plan has a full-text match.
    """

    def __init__(self, settings: Optional[IndexConfig] = None):
        self.settings = settings or config

    def lower(self, plan: QueryPlan) -> Select:
        if plan.match:
            snippet = FtsIndex.snippet_expression(self.settings)
        else:
            snippet = null()
        stmt = select(DBNote, snippet.label("fts_snippet"))

        order_by = []
        if plan.match:
            stmt = stmt.join(notes_fts, notes_fts.c.rowid == DBNote.id).where(
                FtsIndex.match_clause(plan.match)
            )
            order_by.append(FtsIndex.rank_expression())

        if plan.predicate is not None:
            stmt = stmt.where(self.lower_predicate(plan.predicate))

        if plan.distances:
            order_by.append(case(plan.distances, value=DBNote.id, else_=0))
        order_by.extend(self._order_term(sorter) for sorter in plan.sorters)
        order_by.append(DBNote.title.asc())
        stmt = stmt.order_by(*order_by)

        if plan.limit:
            stmt = stmt.limit(plan.limit)
        return stmt

    def lower_predicate(self, predicate: Predicate) -> ColumnElement:
        """SQL condition on ``notes`` equivalent to ``predicate``."""
        if isinstance(predicate, And):
            return and_(*(self.lower_predicate(c) for c in predicate.children))
        if isinstance(predicate, Or):
            return or_(*(self.lower_predicate(c) for c in predicate.children))
        if isinstance(predicate, Not):
            return not_(self.lower_predicate(predicate.child))
        if isinstance(predicate, PathMatch):
            return DBNote.path.regexp_match(glob_to_path_regex(predicate.pattern))
        if isinstance(predicate, TagMatch):
            return DBNote.id.in_(self._tagged_note_ids(predicate))
        if isinstance(predicate, IdIn):
            if not predicate.ids:
                return false()
            return DBNote.id.in_(sorted(predicate.ids))
        if isinstance(predicate, HasIncomingLink):
            return exists().where(DBLink.target_id == DBNote.id)
        if isinstance(predicate, DateRange):
            return self._date_range(predicate)
        raise TypeError(f"Unsupported predicate: {predicate!r}")

    @staticmethod
    def _tagged_note_ids(predicate: TagMatch) -> Select:
        globs = [DBCollection.name.op("GLOB")(pattern) for pattern in predicate.patterns]
        return (
            select(notes_collections.c.note_id)
            .join(DBCollection, DBCollection.id == notes_collections.c.collection_id)
            .where(and_(DBCollection.kind == CollectionKind.TAG.value, or_(*globs)))
        )

    @staticmethod
    def _date_range(predicate: DateRange) -> ColumnElement:
        column = DBNote.created if predicate.field == DateField.CREATED else DBNote.modified
        conditions = []
        if predicate.start is not None:
            conditions.append(column >= to_storage_datetime(predicate.start))
        if predicate.end is not None:
            conditions.append(column < to_storage_datetime(predicate.end))
        return and_(*conditions)

    @staticmethod
    def _order_term(sorter: Sorter) -> ColumnElement:
        if sorter.field == SortField.RANDOM:
            return func.random()
        column = _SORT_COLUMNS[sorter.field]
        return column.asc() if sorter.ascending else column.desc()
