"""Storage layer for the note index."""

from zk_index.storage.fts_index import FtsIndex
from zk_index.storage.link_resolver import LinkResolver
from zk_index.storage.note_store import IndexedFiles, NoteStore

__all__ = [
    "FtsIndex",
    "IndexedFiles",
    "LinkResolver",
    "NoteStore",
]
