"""Service layer wiring the index store and the query executor."""

import hashlib
import logging
from typing import Any, Optional

from zk_index.config import IndexConfig, config
from zk_index.models.criteria import FilterCriteria
from zk_index.models.db_models import get_session_factory, init_db
from zk_index.models.schema import NoteRecord
from zk_index.observability import traced
from zk_index.query.executor import FindResult, QueryExecutor
from zk_index.storage.fts_index import FtsIndex
from zk_index.storage.note_store import IndexedFiles, NoteStore

logger = logging.getLogger(__name__)


def content_checksum(raw_content: str) -> str:
    """SHA-256 hex digest of a note's raw content."""
    return hashlib.sha256(raw_content.encode("utf-8")).hexdigest()


class IndexService:
    """Entry point of the note index.

    Indexers call :meth:`add_note`, :meth:`update_note` and
    :meth:`remove_note` (or :meth:`save_note`) with records produced by the
    content parser; readers call :meth:`find`.
    """

    def __init__(
        self,
        settings: Optional[IndexConfig] = None,
        engine: Optional[Any] = None,
    ):
        """Initialize the service.

        Args:
            settings: Configuration to use. Defaults to the global config.
            engine: Pre-configured SQLAlchemy engine. Created from the
                settings when None.
        """
        self.settings = settings or config
        self.engine = engine if engine is not None else init_db(settings=self.settings)
        self.session_factory = get_session_factory(self.engine)
        self.store = NoteStore(self.session_factory)
        self.fts_index = FtsIndex(self.engine)
        self.executor = QueryExecutor(self.session_factory, self.store, self.settings)

    @staticmethod
    def _with_checksum(record: NoteRecord) -> NoteRecord:
        if record.checksum:
            return record
        return record.model_copy(update={"checksum": content_checksum(record.raw_content)})

    @traced("add_note")
    def add_note(self, record: NoteRecord) -> int:
        """Index a new note. Returns its ID."""
        return self.store.add(self._with_checksum(record))

    @traced("update_note")
    def update_note(self, record: NoteRecord) -> int:
        """Replace an indexed note. Returns its ID."""
        return self.store.update(self._with_checksum(record))

    def save_note(self, record: NoteRecord) -> int:
        """Add the note, or update it when its path is already indexed."""
        if self.store.find_id_by_path(record.path) is None:
            return self.add_note(record)
        return self.update_note(record)

    @traced("remove_note")
    def remove_note(self, path: str) -> None:
        self.store.remove(path)

    def get_note(self, path: str) -> Optional[NoteRecord]:
        return self.store.get(path)

    def find_id_by_path_prefix(self, prefix: str) -> Optional[int]:
        return self.store.find_id_by_path_prefix(prefix)

    def list_metadata(self) -> IndexedFiles:
        """Path and modification time of every indexed note."""
        return self.store.list_metadata()

    def count_notes(self) -> int:
        return self.store.count()

    def find(self, criteria: Optional[FilterCriteria] = None) -> FindResult:
        """Find notes matching ``criteria`` (all notes when None)."""
        return self.executor.find(criteria or FilterCriteria())

    def cleanup(self) -> int:
        """Delete tags no longer used by any note."""
        removed = self.store.prune_unused_collections()
        if removed:
            logger.info(f"Pruned {removed} unused tag(s)")
        return removed

    def rebuild_index(self) -> int:
        """Rebuild the full-text index from the stored notes."""
        return self.fts_index.rebuild()

    def check_index(self) -> bool:
        """Verify the full-text index matches the stored notes."""
        return self.fts_index.check_integrity()

    def close(self) -> None:
        """Release database connections."""
        self.engine.dispose()
