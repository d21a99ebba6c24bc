"""In-memory stand-ins for the index, plus note builders for tests.

The fakes implement the lookup and link graph interfaces used by the query
layer so the compiler, traversal and mention expander can be tested without
a database:
- FakeLinkGraph holds a directed edge list and answers neighbors()
- FakeNoteLookup resolves path prefixes the way the store does (exact
  path first, then the shortest path)
"""
import datetime
import json
from datetime import timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from zk_index.models.schema import Link, LinkDirection, LinkEdge, NoteRecord

BASE_TIME = datetime.datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_note(
    path: str, title: Optional[str] = None, body: str = "", links=None, **fields
) -> NoteRecord:
    """Build a NoteRecord with sensible defaults for tests.

    ``links`` may mix Link objects and plain hrefs.
    """
    title = title if title is not None else Path(path).stem
    body = body or f"Some text about {title}."
    built_links = []
    for link in links or []:
        if isinstance(link, str):
            link = Link(title=link, href=link, snippet=f"See [[{link}]] for details")
        built_links.append(link)
    fields.setdefault("created", BASE_TIME)
    fields.setdefault("modified", BASE_TIME)
    return NoteRecord(
        path=path,
        title=title,
        lead=body.split("\n\n")[0],
        body=body,
        raw_content=f"# {title}\n\n{body}",
        word_count=len(body.split()),
        links=built_links,
        **fields,
    )


class FakeLinkGraph:
    """Directed link graph over integer note IDs.

    Edges get sequential link IDs in insertion order, starting at 1.
    """

    def __init__(self, edges: Iterable[Tuple[int, int]] = ()) -> None:
        self.edges: List[LinkEdge] = []
        self.neighbor_calls = 0
        for source, target in edges:
            self.add(source, target)

    def add(self, source: int, target: int) -> int:
        link_id = len(self.edges) + 1
        self.edges.append(LinkEdge(link_id=link_id, source_id=source, target_id=target))
        return link_id

    def neighbors(self, note_ids: Iterable[int], direction: LinkDirection) -> List[LinkEdge]:
        self.neighbor_calls += 1
        ids = set(note_ids)
        result = []
        for edge in self.edges:
            outgoing = direction != LinkDirection.INCOMING and edge.source_id in ids
            incoming = direction != LinkDirection.OUTGOING and edge.target_id in ids
            if outgoing or incoming:
                result.append(edge)
        return result


class FakeNoteLookup:
    """Path, title and metadata of a few notes, keyed by ID."""

    def __init__(self) -> None:
        self.notes: Dict[int, Tuple[str, str, str]] = {}

    def add(self, note_id: int, path: str, title: str = "", metadata: Optional[dict] = None) -> None:
        self.notes[note_id] = (path, title, json.dumps(metadata or {}))

    def add_raw(self, note_id: int, path: str, title: str, metadata_json: str) -> None:
        """Register a note whose metadata blob is stored verbatim."""
        self.notes[note_id] = (path, title, metadata_json)

    def find_id_by_path_prefix(self, prefix: str) -> Optional[int]:
        candidates = [
            (path != prefix, len(path), path, note_id)
            for note_id, (path, _, _) in self.notes.items()
            if path.startswith(prefix)
        ]
        if not candidates:
            return None
        return min(candidates)[3]

    def find_ids_by_path_prefixes(self, paths: Iterable[str]) -> List[int]:
        ids: List[int] = []
        for path in paths:
            note_id = self.find_id_by_path_prefix(path)
            if note_id is not None and note_id not in ids:
                ids.append(note_id)
        return ids

    def get_titles_and_metadata(self, note_ids: Sequence[int]) -> List[Tuple[int, str, str]]:
        return [
            (note_id, self.notes[note_id][1], self.notes[note_id][2])
            for note_id in sorted(note_ids)
            if note_id in self.notes
        ]
