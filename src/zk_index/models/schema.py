"""Data models for the note index."""

import datetime
import json
from dataclasses import dataclass
from datetime import timezone
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    field_validator,
)
from typing_extensions import TypeAliasType

from zk_index.utils import normalize_path, remove_duplicates

# Front-matter values: string, number, bool, list or map, nested freely.
# StrictBool comes first so True is never coerced into 1.
MetadataValue = TypeAliasType(
    "MetadataValue",
    Union[
        StrictBool,
        StrictInt,
        StrictFloat,
        StrictStr,
        List["MetadataValue"],
        Dict[str, "MetadataValue"],
    ],
)

Metadata = Dict[str, MetadataValue]

_metadata_adapter = TypeAdapter(Metadata)


def decode_metadata(raw: Optional[str]) -> Metadata:
    """Parse a stored metadata JSON blob.

    Raises:
        ValueError: If the blob is not valid JSON or holds values outside
            the supported string/number/bool/list/map types.
    """
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"cannot parse note metadata from JSON: {raw[:80]}") from e
    if not isinstance(data, dict):
        raise ValueError(f"note metadata must be a JSON object: {raw[:80]}")
    return _metadata_adapter.validate_python(data)


def encode_metadata(metadata: Metadata) -> str:
    """Serialize metadata to the JSON blob stored in the notes table."""
    return json.dumps(metadata, ensure_ascii=False)


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Return ``dt_value`` in UTC, treating naive datetimes as UTC.

    SQLite stores datetimes without an offset, so values read back from the
    database are naive and always mean UTC.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value.astimezone(timezone.utc)


def to_storage_datetime(dt_value: datetime.datetime) -> datetime.datetime:
    """Naive UTC datetime as written to (and compared in) the database."""
    return ensure_timezone_aware(dt_value).replace(tzinfo=None)


class CollectionKind(str, Enum):
    """Kinds of collections a note can belong to."""

    TAG = "tag"


class LinkDirection(str, Enum):
    """Which way links are followed from a note."""

    OUTGOING = "outgoing"  # source -> target
    INCOMING = "incoming"  # target -> source
    BOTH = "both"


@dataclass(frozen=True)
class LinkEdge:
    """A resolved link between two indexed notes.

    Attributes:
        link_id: Row ID of the link.
        source_id: Note the link is authored in.
        target_id: Note the link points to.
    """

    link_id: int
    source_id: int
    target_id: int


class Link(BaseModel):
    """An outbound link authored in a note.

    ``target_id`` is filled in by the index when ``href`` resolves to an
    indexed note; it stays None for external and dangling links.
    """

    title: str = Field(default="", description="Link label as written")
    href: str = Field(..., description="Raw link destination as authored")
    external: bool = Field(default=False, description="Points outside the notebook")
    rels: List[str] = Field(default_factory=list, description="Relation labels")
    snippet: str = Field(default="", description="Text surrounding the link")
    snippet_start: int = Field(default=0, ge=0)
    snippet_end: int = Field(default=0, ge=0)
    target_id: Optional[int] = Field(
        default=None, description="Resolved target note ID"
    )

    model_config = {
        "validate_assignment": True,
        "extra": "forbid",
        "frozen": True,  # Links are immutable
    }


class NoteRecord(BaseModel):
    """A note as stored in the index."""

    id: Optional[int] = Field(default=None, description="Assigned by the index")
    path: str = Field(..., description="Path relative to the notebook root")
    title: str = Field(default="")
    lead: str = Field(default="", description="First paragraph of the body")
    body: str = Field(default="")
    raw_content: str = Field(default="")
    word_count: int = Field(default=0, ge=0)
    metadata: Metadata = Field(default_factory=dict)
    checksum: str = Field(default="")
    created: datetime.datetime = Field(default_factory=utc_now)
    modified: datetime.datetime = Field(default_factory=utc_now)
    tags: List[str] = Field(default_factory=list, description="Derived tag set")
    links: List[Link] = Field(default_factory=list, description="Outbound links")

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Normalize the path and reject paths outside the notebook."""
        return normalize_path(v)

    @field_validator("created", "modified")
    @classmethod
    def validate_timestamp(cls, v: datetime.datetime) -> datetime.datetime:
        """Store timestamps as UTC."""
        return ensure_timezone_aware(v)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[str]) -> List[str]:
        """Tags form a set: strip, drop blanks and duplicates, sort."""
        return sorted(remove_duplicates(t.strip() for t in v if t and t.strip()))


class NoteMatch(BaseModel):
    """A note returned by a query, with highlighted snippets."""

    note: NoteRecord
    snippets: List[str] = Field(default_factory=list)

    model_config = {"frozen": True}


@dataclass(frozen=True)
class FileMetadata:
    """File information of an indexed note.

    Attributes:
        path: Notebook-relative path of the note.
        modified: Last modification time recorded at indexing (UTC).
    """

    path: str
    modified: datetime.datetime
