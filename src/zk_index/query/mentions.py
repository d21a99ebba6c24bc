"""Expansion of "mentioned note" filters into full-text predicates."""

import logging
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from zk_index.exceptions import MentionNotFoundError
from zk_index.models.criteria import FilterCriteria
from zk_index.models.schema import Metadata, decode_metadata
from zk_index.utils import remove_duplicates

logger = logging.getLogger(__name__)

ALIASES_KEY = "aliases"


class MentionLookup(Protocol):
    def find_ids_by_path_prefixes(self, paths: Iterable[str]) -> List[int]: ...

    def get_titles_and_metadata(
        self, note_ids: Sequence[int]
    ) -> List[Tuple[int, str, str]]: ...


class MentionExpander:
    """Turns ``criteria.mention`` into a match expression and exclusions.

    Notes mentioning another note are found by searching for its title and
    aliases. The mentioned notes themselves are excluded from the results.
    """

    def __init__(self, lookup: MentionLookup):
        self.lookup = lookup

    def expand(self, criteria: FilterCriteria) -> FilterCriteria:
        """Return criteria with the mention filter folded in.

        The input is left untouched; criteria without mentions are returned
        as-is.

        Raises:
            MentionNotFoundError: If none of the mentioned paths is indexed,
                or the notes found have neither a title nor an alias.
        """
        if not criteria.mention:
            return criteria

        ids = self.lookup.find_ids_by_path_prefixes(criteria.mention)
        if not ids:
            raise MentionNotFoundError(list(criteria.mention))

        names: List[str] = []
        for note_id, title, metadata_json in self.lookup.get_titles_and_metadata(ids):
            names.append(title)
            try:
                metadata = decode_metadata(metadata_json)
            except ValueError as e:
                logger.warning(f"Ignoring aliases of note {note_id}: {e}")
                continue
            names.extend(self._aliases(metadata))

        group = self._mention_group(names)
        if group is None:
            raise MentionNotFoundError(list(criteria.mention))

        match = criteria.match
        if match:
            match = f"({match}) AND {group}"
        else:
            match = group

        exclude_ids = frozenset(criteria.exclude_ids or ()) | frozenset(ids)
        return criteria.model_copy(
            update={"match": match, "exclude_ids": exclude_ids, "mention": None}
        )

    @staticmethod
    def _aliases(metadata: Metadata) -> List[str]:
        aliases = metadata.get(ALIASES_KEY)
        if isinstance(aliases, str):
            return [aliases]
        if isinstance(aliases, list):
            return [alias for alias in aliases if isinstance(alias, str)]
        return []

    @staticmethod
    def _mention_group(names: List[str]) -> Optional[str]:
        """``("name 1" OR "name 2")`` with quotes stripped from the names."""
        cleaned = remove_duplicates(
            name.replace('"', "").strip() for name in names
        )
        terms = [f'"{name}"' for name in cleaned if name]
        if not terms:
            return None
        return "(" + " OR ".join(terms) + ")"
