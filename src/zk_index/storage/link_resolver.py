"""Resolution of authored links against the index."""
import logging
from typing import List, Sequence

from sqlalchemy import and_, delete, func, update
from sqlalchemy.orm import Session

from zk_index.models.db_models import DBLink
from zk_index.models.schema import Link
from zk_index.storage.lookups import find_id_by_path_prefix
from zk_index.utils import join_list, path_prefixes

logger = logging.getLogger(__name__)


class LinkResolver:
    """Stores the outbound links of a note and keeps link targets current.

    Every method works inside the caller's session; the note store commits
    a note's row, tags and links together.
    """

    def add_links(self, session: Session, note_id: int, links: Sequence[Link]) -> int:
        """Insert the outbound links of a note, resolving their targets.

        Links whose href does not match any indexed path are stored with a
        NULL target and picked up later by :meth:`backfill`.

        Args:
            session: Active session (caller commits).
            note_id: ID of the source note.
            links: Links as authored; any ``target_id`` they carry is ignored.

        Returns:
            Number of links stored unresolved.
        """
        unresolved = 0
        for link in links:
            target_id = None
            if not link.external:
                target_id = find_id_by_path_prefix(session, link.href)
            if target_id is None and not link.external:
                unresolved += 1

            session.add(
                DBLink(
                    source_id=note_id,
                    target_id=target_id,
                    title=link.title,
                    href=link.href,
                    external=link.external,
                    rels=join_list(link.rels),
                    snippet=link.snippet,
                    snippet_start=link.snippet_start,
                    snippet_end=link.snippet_end,
                )
            )
        session.flush()
        if unresolved:
            logger.debug(f"Note {note_id}: {unresolved} link(s) left unresolved")
        return unresolved

    def remove_links(self, session: Session, note_id: int) -> int:
        """Delete all the outbound links of a note.

        Returns:
            Number of links deleted.
        """
        result = session.execute(delete(DBLink).where(DBLink.source_id == note_id))
        return result.rowcount or 0

    def backfill(self, session: Session, note_id: int, path: str) -> int:
        """Point dangling links at a newly indexed note.

        A link is healed when it is internal, has no target yet and its href
        is a prefix of ``path``. Hrefs compare case-insensitively for ASCII,
        as the LIKE prefix lookup used when links are added does.

        Returns:
            Number of links healed.
        """
        prefixes: List[str] = path_prefixes(path)
        result = session.execute(
            update(DBLink)
            .where(
                and_(
                    DBLink.target_id.is_(None),
                    DBLink.external.is_(False),
                    func.lower(DBLink.href).in_(
                        [func.lower(prefix) for prefix in prefixes]
                    ),
                )
            )
            .values(target_id=note_id)
            .execution_options(synchronize_session=False)
        )
        healed = result.rowcount or 0
        if healed:
            logger.info(f"Resolved {healed} pending link(s) to '{path}'")
        return healed
