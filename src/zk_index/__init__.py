"""
zk-index - a persistent note index with a link graph and rich filter queries.

This package stores notes (content, metadata, tags and outbound links) in
SQLite, heals links that were authored before their target existed, and
compiles filter criteria into ranked, snippet-annotated query results.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("zk-index")
except PackageNotFoundError:
    __version__ = "0.3.0"
