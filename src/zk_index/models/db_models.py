"""SQLAlchemy database models for the note index."""
import logging
from typing import Optional

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Index, Integer,
                        String, Table, Text, UniqueConstraint, create_engine,
                        event, text)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from zk_index.config import IndexConfig, config
from zk_index.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()

# Association table for collections (tags) and notes
notes_collections = Table(
    "notes_collections",
    Base.metadata,
    Column(
        "note_id",
        Integer,
        ForeignKey("notes.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "collection_id",
        Integer,
        ForeignKey("collections.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    ),
)


class DBNote(Base):
    """Database model for an indexed note."""
    __tablename__ = "notes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    path = Column(Text, unique=True, nullable=False)
    sortable_path = Column(Text, nullable=False, index=True)
    title = Column(Text, nullable=False, default="", index=True)
    lead = Column(Text, nullable=False, default="")
    body = Column(Text, nullable=False, default="")
    raw_content = Column(Text, nullable=False, default="")
    word_count = Column(Integer, nullable=False, default=0)
    # "metadata" is reserved by the declarative base, hence the attribute name
    metadata_json = Column("metadata", Text, nullable=False, default="{}")
    checksum = Column(Text, nullable=False, default="")
    created = Column(DateTime, nullable=False, index=True)
    modified = Column(DateTime, nullable=False, index=True)

    # Relationships
    collections = relationship(
        "DBCollection", secondary=notes_collections, back_populates="notes"
    )
    outgoing_links = relationship(
        "DBLink",
        foreign_keys="DBLink.source_id",
        back_populates="source",
        passive_deletes=True,
        order_by="DBLink.id",
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id={self.id}, path='{self.path}')>"


class DBCollection(Base):
    """Database model for a collection of notes, such as a tag."""
    __tablename__ = "collections"
    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(32), nullable=False)
    name = Column(Text, nullable=False)

    notes = relationship(
        "DBNote", secondary=notes_collections, back_populates="collections"
    )

    __table_args__ = (
        UniqueConstraint("kind", "name", name="unique_collection"),
    )

    def __repr__(self) -> str:
        """Return string representation of collection."""
        return f"<Collection(id={self.id}, kind='{self.kind}', name='{self.name}')>"


class DBLink(Base):
    """Database model for a link authored in a note."""
    __tablename__ = "links"
    id = Column(Integer, primary_key=True, autoincrement=True)
    source_id = Column(
        Integer, ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Unresolved links (target not indexed yet) have a NULL target
    target_id = Column(
        Integer, ForeignKey("notes.id", ondelete="SET NULL"), nullable=True, index=True
    )
    title = Column(Text, nullable=False, default="")
    href = Column(Text, nullable=False, default="")
    external = Column(Boolean, nullable=False, default=False)
    # Relations joined with \x01 delimiters on both ends
    rels = Column(Text, nullable=False, default="")
    snippet = Column(Text, nullable=False, default="")
    snippet_start = Column(Integer, nullable=False, default=0)
    snippet_end = Column(Integer, nullable=False, default=0)

    source = relationship(
        "DBNote", foreign_keys=[source_id], back_populates="outgoing_links"
    )

    __table_args__ = (
        Index("ix_links_unresolved_href", "href", "target_id", "external"),
    )

    def __repr__(self) -> str:
        """Return string representation of link."""
        return (
            f"<Link(id={self.id}, source={self.source_id}, "
            f"target={self.target_id}, href='{self.href}')>"
        )


def init_db(
    database_url: Optional[str] = None, settings: Optional[IndexConfig] = None
) -> Engine:
    """Create the engine and schema.

    Applies SQLite settings for crash resilience and integrity:
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode
    - foreign keys enforced, so deleting a note cascades to its links and
      tag associations and unresolves the links pointing at it

    Args:
        database_url: Explicit SQLAlchemy URL. Defaults to the configured one.
        settings: Configuration to read the URL from. Defaults to the global
            config.

    Raises:
        ConfigurationError: If the database location cannot be prepared.
    """
    settings = settings or config
    if database_url is None:
        try:
            database_url = settings.get_db_url()
        except OSError as e:
            raise ConfigurationError(
                f"Cannot prepare database directory: {e}",
                config_key="database_path",
            ) from e

    if ":memory:" in database_url:
        # A single shared connection keeps the in-memory database alive
        engine = create_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(database_url, pool_pre_ping=True)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    init_fts5(engine)
    logger.debug(f"Index database ready: {database_url}")
    return engine


def init_fts5(engine: Engine) -> None:
    """Initialize the FTS5 full-text index over title, body and raw content.

    The virtual table uses the notes table as external content and is kept
    in sync by triggers.
    """
    with engine.connect() as conn:
        conn.execute(text("""
            CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(
                title,
                body,
                raw_content,
                content='notes',
                content_rowid='id',
                tokenize='porter unicode61 remove_diacritics 1'
            )
        """))

        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_ai AFTER INSERT ON notes BEGIN
                INSERT INTO notes_fts(rowid, title, body, raw_content)
                VALUES (NEW.id, NEW.title, NEW.body, NEW.raw_content);
            END
        """))

        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_ad AFTER DELETE ON notes BEGIN
                INSERT INTO notes_fts(notes_fts, rowid, title, body, raw_content)
                VALUES ('delete', OLD.id, OLD.title, OLD.body, OLD.raw_content);
            END
        """))

        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_au AFTER UPDATE ON notes BEGIN
                INSERT INTO notes_fts(notes_fts, rowid, title, body, raw_content)
                VALUES ('delete', OLD.id, OLD.title, OLD.body, OLD.raw_content);
                INSERT INTO notes_fts(rowid, title, body, raw_content)
                VALUES (NEW.id, NEW.title, NEW.body, NEW.raw_content);
            END
        """))

        conn.commit()


def rebuild_fts_index(engine: Engine) -> int:
    """Rebuild the FTS5 index from the notes table.

    Returns:
        Number of notes indexed.
    """
    with engine.connect() as conn:
        conn.execute(text("INSERT INTO notes_fts(notes_fts) VALUES('rebuild')"))
        conn.commit()
        count = conn.execute(text("SELECT COUNT(*) FROM notes")).scalar()
    return count or 0


def get_session_factory(engine: Optional[Engine] = None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine, expire_on_commit=False)
