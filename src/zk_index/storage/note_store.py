"""Index store: persistence of note records, tags and links."""

import logging
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import and_, delete, func, or_, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from zk_index.exceptions import (
    DuplicatePathError,
    ErrorCode,
    NoteNotFoundError,
    StorageError,
    ZkIndexError,
)
from zk_index.models.db_models import DBCollection, DBLink, DBNote, notes_collections
from zk_index.models.schema import (
    CollectionKind,
    FileMetadata,
    Link,
    LinkDirection,
    LinkEdge,
    NoteRecord,
    decode_metadata,
    encode_metadata,
    ensure_timezone_aware,
    to_storage_datetime,
)
from zk_index.observability import timed_operation
from zk_index.storage.link_resolver import LinkResolver
from zk_index.storage.lookups import find_id_by_path, find_id_by_path_prefix
from zk_index.utils import normalize_path, sortable_path, split_list

logger = logging.getLogger(__name__)


def _normalize_or_raw(path: str) -> str:
    try:
        return normalize_path(path)
    except ValueError:
        return path


class IndexedFiles:
    """Lazy view over the file information of every indexed note.

    Each iteration runs a fresh query, so the sequence can be walked again
    after the index changed. Entries are ordered by sortable path, which
    keeps the notes of a directory next to each other.
    """

    def __init__(self, session_factory: Callable[[], Session], batch_size: int = 500):
        self._session_factory = session_factory
        self._batch_size = batch_size

    def __iter__(self) -> Iterator[FileMetadata]:
        with self._session_factory() as session:
            rows = session.execute(
                select(DBNote.path, DBNote.modified)
                .order_by(DBNote.sortable_path.asc())
                .execution_options(yield_per=self._batch_size)
            )
            for path, modified in rows:
                yield FileMetadata(path=path, modified=ensure_timezone_aware(modified))


def fetch_tags(session: Session, note_ids: Sequence[int]) -> Dict[int, List[str]]:
    """Tag names of each note, sorted."""
    tags: Dict[int, List[str]] = {note_id: [] for note_id in note_ids}
    if not note_ids:
        return tags
    rows = session.execute(
        select(notes_collections.c.note_id, DBCollection.name)
        .join(DBCollection, DBCollection.id == notes_collections.c.collection_id)
        .where(
            and_(
                notes_collections.c.note_id.in_(note_ids),
                DBCollection.kind == CollectionKind.TAG.value,
            )
        )
        .order_by(DBCollection.name)
    )
    for note_id, name in rows:
        tags[note_id].append(name)
    return tags


def fetch_links(session: Session, note_ids: Sequence[int]) -> Dict[int, List[Link]]:
    """Outbound links of each note, in authored order."""
    links: Dict[int, List[Link]] = {note_id: [] for note_id in note_ids}
    if not note_ids:
        return links
    db_links = session.scalars(
        select(DBLink).where(DBLink.source_id.in_(note_ids)).order_by(DBLink.id)
    ).all()
    for db_link in db_links:
        links[db_link.source_id].append(
            Link(
                title=db_link.title,
                href=db_link.href,
                external=bool(db_link.external),
                rels=split_list(db_link.rels),
                snippet=db_link.snippet,
                snippet_start=db_link.snippet_start,
                snippet_end=db_link.snippet_end,
                target_id=db_link.target_id,
            )
        )
    return links


def fetch_link_snippets(
    session: Session, link_ids: Sequence[int]
) -> Dict[int, Tuple[str, str]]:
    """``link id -> (title, snippet)`` for the given links."""
    if not link_ids:
        return {}
    rows = session.execute(
        select(DBLink.id, DBLink.title, DBLink.snippet).where(DBLink.id.in_(link_ids))
    ).all()
    return {row[0]: (row[1], row[2]) for row in rows}


class NoteStore:
    """Repository for indexed notes.

    Each write runs in its own session and commits once: the note row, its
    tag associations, its outbound links and the backfill of links waiting
    for it are applied together or not at all. Callers serialize writers.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        link_resolver: Optional[LinkResolver] = None,
    ):
        """Initialize the store.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
            link_resolver: Resolver used for outbound links. A default one is
                created when omitted.
        """
        self.session_factory = session_factory
        self.link_resolver = link_resolver or LinkResolver()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, record: NoteRecord) -> int:
        """Add a new note to the index.

        Returns:
            The ID assigned to the note.

        Raises:
            DuplicatePathError: If a note is already indexed at this path.
            StorageError: If the database write fails.
        """
        with timed_operation("add_note", path=record.path) as op:
            try:
                with self.session_factory() as session:
                    existing = find_id_by_path(session, record.path)
                    if existing is not None:
                        raise DuplicatePathError(record.path, existing_id=existing)

                    db_note = DBNote(
                        path=record.path,
                        sortable_path=sortable_path(record.path),
                    )
                    self._copy_fields(db_note, record)
                    session.add(db_note)
                    session.flush()

                    self._write_relations(session, db_note.id, record)
                    session.commit()
                    note_id = db_note.id
            except IntegrityError as e:
                raise DuplicatePathError(record.path) from e
            except ZkIndexError:
                raise
            except SQLAlchemyError as e:
                raise StorageError(
                    f"Failed to add note {record.path}",
                    operation="add",
                    path=record.path,
                    code=ErrorCode.STORAGE_WRITE_FAILED,
                    original_error=e,
                ) from e

            op["note_id"] = note_id
            logger.debug(f"Indexed new note {record.path} (id={note_id})")
            return note_id

    def update(self, record: NoteRecord) -> int:
        """Replace the indexed content, tags and links of an existing note.

        The note keeps its ID. All its outbound links are dropped and
        re-resolved from ``record.links``.

        Returns:
            The ID of the updated note.

        Raises:
            NoteNotFoundError: If no note is indexed at this path.
            StorageError: If the database write fails.
        """
        with timed_operation("update_note", path=record.path) as op:
            try:
                with self.session_factory() as session:
                    db_note = session.scalar(
                        select(DBNote).where(DBNote.path == record.path)
                    )
                    if db_note is None:
                        raise NoteNotFoundError(record.path)

                    self._copy_fields(db_note, record)
                    session.flush()

                    self.link_resolver.remove_links(session, db_note.id)
                    self._write_relations(session, db_note.id, record)
                    session.commit()
                    note_id = db_note.id
            except ZkIndexError:
                raise
            except SQLAlchemyError as e:
                raise StorageError(
                    f"Failed to update note {record.path}",
                    operation="update",
                    path=record.path,
                    code=ErrorCode.STORAGE_WRITE_FAILED,
                    original_error=e,
                ) from e

            op["note_id"] = note_id
            return note_id

    def remove(self, path: str) -> None:
        """Remove the note at ``path`` from the index.

        Its outbound links and tag associations are deleted with it; links
        pointing at it become unresolved.

        Raises:
            NoteNotFoundError: If no note is indexed at this path.
            StorageError: If the database write fails.
        """
        path = _normalize_or_raw(path)
        with timed_operation("remove_note", path=path):
            try:
                with self.session_factory() as session:
                    note_id = find_id_by_path(session, path)
                    if note_id is None:
                        raise NoteNotFoundError(path)
                    session.execute(delete(DBNote).where(DBNote.id == note_id))
                    session.commit()
            except ZkIndexError:
                raise
            except SQLAlchemyError as e:
                raise StorageError(
                    f"Failed to remove note {path}",
                    operation="remove",
                    path=path,
                    code=ErrorCode.STORAGE_DELETE_FAILED,
                    original_error=e,
                ) from e
        logger.debug(f"Removed note {path} (id={note_id})")

    def prune_unused_collections(self) -> int:
        """Delete collections (tags) no note belongs to anymore.

        Returns:
            Number of collections deleted.
        """
        with self.session_factory() as session:
            result = session.execute(
                delete(DBCollection).where(
                    DBCollection.id.not_in(select(notes_collections.c.collection_id))
                )
            )
            session.commit()
            return result.rowcount or 0

    @staticmethod
    def _copy_fields(db_note: DBNote, record: NoteRecord) -> None:
        db_note.title = record.title
        db_note.lead = record.lead
        db_note.body = record.body
        db_note.raw_content = record.raw_content
        db_note.word_count = record.word_count
        db_note.metadata_json = encode_metadata(record.metadata)
        db_note.checksum = record.checksum
        db_note.created = to_storage_datetime(record.created)
        db_note.modified = to_storage_datetime(record.modified)

    def _write_relations(self, session: Session, note_id: int, record: NoteRecord) -> None:
        """Tags, outbound links and backfill for a note, in the caller's session."""
        self._set_collections(session, note_id, CollectionKind.TAG, record.tags)
        self.link_resolver.add_links(session, note_id, record.links)
        self.link_resolver.backfill(session, note_id, record.path)

    def _set_collections(
        self, session: Session, note_id: int, kind: CollectionKind, names: Iterable[str]
    ) -> None:
        session.execute(
            delete(notes_collections).where(notes_collections.c.note_id == note_id)
        )
        for name in names:
            collection_id = self._get_or_create_collection(session, kind, name)
            session.execute(
                notes_collections.insert().values(
                    note_id=note_id, collection_id=collection_id
                )
            )

    @staticmethod
    def _get_or_create_collection(
        session: Session, kind: CollectionKind, name: str
    ) -> int:
        """Atomically get or create a collection.

        Uses INSERT OR IGNORE followed by SELECT so an existing row is reused.
        """
        session.execute(
            text("INSERT OR IGNORE INTO collections (kind, name) VALUES (:kind, :name)"),
            {"kind": kind.value, "name": name},
        )
        return session.scalar(
            select(DBCollection.id).where(
                and_(DBCollection.kind == kind.value, DBCollection.name == name)
            )
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_id_by_path(self, path: str) -> Optional[int]:
        """Find a note ID from its exact path."""
        with self.session_factory() as session:
            return find_id_by_path(session, _normalize_or_raw(path))

    def find_id_by_path_prefix(self, prefix: str) -> Optional[int]:
        """Find the ID of the first note whose path starts with ``prefix``."""
        with self.session_factory() as session:
            return find_id_by_path_prefix(session, prefix)

    def find_ids_by_path_prefixes(self, paths: Iterable[str]) -> List[int]:
        """Resolve several path prefixes, skipping the ones matching nothing.

        The result keeps the order of ``paths`` without duplicates.
        """
        ids: List[int] = []
        with self.session_factory() as session:
            for path in paths:
                note_id = find_id_by_path_prefix(session, path)
                if note_id is not None and note_id not in ids:
                    ids.append(note_id)
        return ids

    def get(self, path: str) -> Optional[NoteRecord]:
        """Load the full record indexed at ``path``.

        Metadata that cannot be decoded is logged and returned empty.
        """
        path = _normalize_or_raw(path)
        with self.session_factory() as session:
            db_note = session.scalar(select(DBNote).where(DBNote.path == path))
            if db_note is None:
                return None
            tags = fetch_tags(session, [db_note.id])[db_note.id]
            links = fetch_links(session, [db_note.id])[db_note.id]
            return self.to_record(db_note, tags, links)

    @staticmethod
    def to_record(db_note: DBNote, tags: List[str], links: List[Link]) -> NoteRecord:
        """Build a NoteRecord from a database row and its relations."""
        try:
            metadata = decode_metadata(db_note.metadata_json)
        except ValueError as e:
            logger.error(f"{db_note.path}: {e}")
            metadata = {}
        return NoteRecord(
            id=db_note.id,
            path=db_note.path,
            title=db_note.title,
            lead=db_note.lead,
            body=db_note.body,
            raw_content=db_note.raw_content,
            word_count=db_note.word_count,
            metadata=metadata,
            checksum=db_note.checksum,
            created=ensure_timezone_aware(db_note.created),
            modified=ensure_timezone_aware(db_note.modified),
            tags=tags,
            links=links,
        )

    def count(self) -> int:
        """Number of indexed notes."""
        with self.session_factory() as session:
            return session.scalar(select(func.count(DBNote.id))) or 0

    def list_metadata(self) -> IndexedFiles:
        """File information of all indexed notes, in sortable path order."""
        return IndexedFiles(self.session_factory)

    def get_titles_and_metadata(self, note_ids: Sequence[int]) -> List[Tuple[int, str, str]]:
        """``(id, title, metadata JSON)`` for each of the given notes."""
        if not note_ids:
            return []
        with self.session_factory() as session:
            rows = session.execute(
                select(DBNote.id, DBNote.title, DBNote.metadata_json)
                .where(DBNote.id.in_(list(note_ids)))
                .order_by(DBNote.id)
            ).all()
        return [(row[0], row[1], row[2]) for row in rows]

    def neighbors(self, note_ids: Iterable[int], direction: LinkDirection) -> List[LinkEdge]:
        """Resolved links touching ``note_ids`` on the given side.

        OUTGOING returns links authored in the notes, INCOMING links pointing
        at them, BOTH the union of the two.
        """
        note_ids = list(note_ids)
        if not note_ids:
            return []
        conditions = []
        if direction in (LinkDirection.OUTGOING, LinkDirection.BOTH):
            conditions.append(DBLink.source_id.in_(note_ids))
        if direction in (LinkDirection.INCOMING, LinkDirection.BOTH):
            conditions.append(DBLink.target_id.in_(note_ids))

        with self.session_factory() as session:
            rows = session.execute(
                select(DBLink.id, DBLink.source_id, DBLink.target_id)
                .where(and_(DBLink.target_id.is_not(None), or_(*conditions)))
                .order_by(DBLink.id)
            ).all()
        return [LinkEdge(link_id=r[0], source_id=r[1], target_id=r[2]) for r in rows]

    def get_link_snippets(self, link_ids: Iterable[int]) -> Dict[int, Tuple[str, str]]:
        """``link id -> (title, snippet)`` for the given links."""
        with self.session_factory() as session:
            return fetch_link_snippets(session, list(link_ids))
