"""FTS5 full-text search index for notes.

Encapsulates the conversion of user match expressions to FTS5 syntax, the
SQL expressions the query planner needs (match, ranking, snippet) and
index maintenance.
"""
import logging
from typing import List, Optional

from sqlalchemy import bindparam, column, func, literal_column, table, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DatabaseError as SQLAlchemyDatabaseError
from sqlalchemy.sql.elements import ColumnElement

from zk_index.config import IndexConfig
from zk_index.exceptions import ErrorCode, InvalidQueryError
from zk_index.models.db_models import rebuild_fts_index

logger = logging.getLogger(__name__)

FTS_KEYWORDS = {"AND", "OR", "NOT", "NEAR"}
FTS_COLUMNS = ("title", "body", "raw_content")

# bm25() weights, in FTS_COLUMNS order
TITLE_WEIGHT = 1000.0
BODY_WEIGHT = 500.0
RAW_CONTENT_WEIGHT = 1.0

# Snippets are extracted from the body column
SNIPPET_COLUMN = FTS_COLUMNS.index("body")

notes_fts = table("notes_fts", column("rowid"))


class FtsIndex:
    """FTS5 full-text index over note titles, bodies and raw content.

    Args:
        engine: SQLAlchemy engine used for maintenance statements.
    """

    def __init__(self, engine: Optional[Engine] = None) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Query conversion
    # ------------------------------------------------------------------

    @staticmethod
    def convert_query(query: str) -> str:
        """Convert a user match expression to FTS5 query syntax.

        - Bare terms are quoted so punctuation never breaks the parser.
        - Quoted phrases, parentheses and AND/OR/NOT/NEAR are kept.
        - ``|`` becomes OR and a leading ``-`` becomes NOT.
        - ``term*`` stays a prefix query, ``^term`` an initial-token query.
        - ``title:term`` style column filters are kept.

        Raises:
            InvalidQueryError: On an unterminated phrase or unbalanced
                parentheses.
        """
        tokens: List[str] = []
        depth = 0
        i = 0
        n = len(query)

        while i < n:
            char = query[i]
            if char.isspace():
                i += 1
            elif char == '"':
                end = query.find('"', i + 1)
                if end == -1:
                    raise InvalidQueryError(
                        "Unterminated phrase in match expression",
                        argument=query,
                        code=ErrorCode.QUERY_INVALID_MATCH,
                    )
                phrase = query[i:end + 1]
                i = end + 1
                if i < n and query[i] == "*":
                    phrase += "*"
                    i += 1
                tokens.append(phrase)
            elif char == "(":
                depth += 1
                tokens.append("(")
                i += 1
            elif char == ")":
                depth -= 1
                if depth < 0:
                    raise InvalidQueryError(
                        "Unbalanced parentheses in match expression",
                        argument=query,
                        code=ErrorCode.QUERY_INVALID_MATCH,
                    )
                tokens.append(")")
                i += 1
            elif char == "|":
                tokens.append("OR")
                i += 1
            else:
                start = i
                while i < n and not query[i].isspace() and query[i] not in '"()|':
                    i += 1
                tokens.extend(FtsIndex._convert_word(query[start:i]))

        if depth != 0:
            raise InvalidQueryError(
                "Unbalanced parentheses in match expression",
                argument=query,
                code=ErrorCode.QUERY_INVALID_MATCH,
            )
        return " ".join(tokens)

    @staticmethod
    def _convert_word(word: str) -> List[str]:
        if word in FTS_KEYWORDS:
            return [word]
        if word.startswith("-") and len(word) > 1:
            return ["NOT"] + FtsIndex._convert_word(word[1:])

        column_name, sep, rest = word.partition(":")
        if sep and column_name in FTS_COLUMNS and rest:
            return [f"{column_name}:{FtsIndex._quote_term(rest)}"]
        return [FtsIndex._quote_term(word)]

    @staticmethod
    def _quote_term(term: str) -> str:
        initial = ""
        suffix = ""
        if term.startswith("^") and len(term) > 1:
            initial, term = "^", term[1:]
        if term.endswith("*") and len(term) > 1:
            suffix, term = "*", term[:-1]
        return f'{initial}"{term.replace(chr(34), chr(34) * 2)}"{suffix}'

    # ------------------------------------------------------------------
    # SQL expressions for the query planner
    # ------------------------------------------------------------------

    @staticmethod
    def match_clause(fts_query: str) -> ColumnElement:
        """``notes_fts MATCH :query`` with the converted expression bound."""
        return literal_column("notes_fts").op("MATCH")(
            bindparam("fts_query", fts_query)
        )

    @staticmethod
    def rank_expression() -> ColumnElement:
        """Weighted bm25 relevance; lower is better."""
        return func.bm25(
            literal_column("notes_fts"), TITLE_WEIGHT, BODY_WEIGHT, RAW_CONTENT_WEIGHT
        )

    @staticmethod
    def snippet_expression(settings: IndexConfig) -> ColumnElement:
        """Highlighted body excerpt using the configured markers."""
        return func.snippet(
            literal_column("notes_fts"),
            SNIPPET_COLUMN,
            settings.match_open_marker,
            settings.match_close_marker,
            settings.snippet_ellipsis,
            settings.snippet_max_tokens,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def rebuild(self) -> int:
        """Rebuild the FTS5 index from the notes table."""
        count = rebuild_fts_index(self.engine)
        logger.info(f"FTS5 index rebuilt with {count} notes")
        return count

    def check_integrity(self) -> bool:
        """Run the FTS5 integrity check against the notes table."""
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    text("INSERT INTO notes_fts(notes_fts) VALUES('integrity-check')")
                )
            return True
        except SQLAlchemyDatabaseError as e:
            logger.error(f"FTS5 integrity check failed: {e}")
            return False
