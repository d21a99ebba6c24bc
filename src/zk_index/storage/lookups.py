"""Path lookups shared by the note store and the link resolver.

They run inside the caller's session so writes can resolve links against
rows they have not committed yet.
"""
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from zk_index.models.db_models import DBNote
from zk_index.utils import escape_like_pattern


def find_id_by_path(session: Session, path: str) -> Optional[int]:
    """Find a note ID from its exact path."""
    return session.scalar(select(DBNote.id).where(DBNote.path == path))


def find_id_by_path_prefix(session: Session, prefix: str) -> Optional[int]:
    """Find a note ID from a prefix of its path.

    Used for directory-style and extension-less hrefs. When several notes
    match, the exact path wins, then the shortest path, then sort order.
    """
    if not prefix:
        return None
    pattern = escape_like_pattern(prefix) + "%"
    query = (
        select(DBNote.id)
        .where(DBNote.path.like(pattern, escape="\\"))
        .order_by(
            case((DBNote.path == prefix, 0), else_=1),
            func.length(DBNote.path),
            DBNote.sortable_path,
        )
        .limit(1)
    )
    return session.scalar(query)
