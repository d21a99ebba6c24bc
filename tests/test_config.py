"""Tests for the configuration module."""
from pathlib import Path

import pytest

from zk_index.config import IndexConfig
from zk_index.exceptions import ConfigurationError, ErrorCode
from zk_index.models.db_models import init_db


class TestIndexConfig:
    def test_defaults(self, monkeypatch):
        for name in [
            "ZK_INDEX_DATABASE_PATH",
            "ZK_INDEX_MATCH_OPEN",
            "ZK_INDEX_MATCH_CLOSE",
            "ZK_INDEX_SNIPPET_TOKENS",
            "ZK_INDEX_IN_MEMORY_DB",
        ]:
            monkeypatch.delenv(name, raising=False)
        settings = IndexConfig()
        assert settings.database_path == Path(".zk/notebook.db")
        assert settings.match_open_marker == "<zk:match>"
        assert settings.match_close_marker == "</zk:match>"
        assert settings.snippet_max_tokens == 20
        assert settings.in_memory_db is False

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("ZK_INDEX_MATCH_OPEN", "**")
        monkeypatch.setenv("ZK_INDEX_MATCH_CLOSE", "**")
        monkeypatch.setenv("ZK_INDEX_SNIPPET_TOKENS", "10")
        monkeypatch.setenv("ZK_INDEX_IN_MEMORY_DB", "yes")
        settings = IndexConfig()
        assert settings.match_open_marker == "**"
        assert settings.snippet_max_tokens == 10
        assert settings.in_memory_db is True
        assert settings.get_db_url() == "sqlite:///:memory:"

    @pytest.mark.parametrize("marker", ["match_open_marker", "match_close_marker"])
    def test_empty_marker_is_rejected(self, marker):
        with pytest.raises(ConfigurationError) as exc_info:
            IndexConfig(**{marker: ""})
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID
        assert exc_info.value.config_key == marker

    @pytest.mark.parametrize("tokens", [0, 65])
    def test_snippet_size_is_bounded(self, tokens):
        with pytest.raises(ConfigurationError) as exc_info:
            IndexConfig(snippet_max_tokens=tokens)
        assert exc_info.value.config_key == "snippet_max_tokens"

    def test_non_numeric_snippet_size_from_environment(self, monkeypatch):
        monkeypatch.setenv("ZK_INDEX_SNIPPET_TOKENS", "many")
        with pytest.raises(ConfigurationError) as exc_info:
            IndexConfig()
        assert exc_info.value.config_key == "ZK_INDEX_SNIPPET_TOKENS"

    def test_unknown_log_level_falls_back_to_info(self):
        assert IndexConfig(log_level="LOUD").log_level == "INFO"

    def test_db_url_is_resolved_against_base_dir(self, tmp_path):
        settings = IndexConfig(base_dir=tmp_path, database_path=Path("idx/notes.db"))
        assert settings.get_db_url() == f"sqlite:///{tmp_path / 'idx' / 'notes.db'}"
        assert (tmp_path / "idx").is_dir()

    def test_absolute_database_path_is_kept(self, tmp_path):
        settings = IndexConfig(base_dir=Path("/elsewhere"), database_path=tmp_path / "x.db")
        assert settings.get_absolute_path(settings.database_path) == tmp_path / "x.db"

    def test_unwritable_database_location(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        settings = IndexConfig(base_dir=tmp_path, database_path=Path("file/sub/x.db"))
        with pytest.raises(ConfigurationError) as exc_info:
            init_db(settings=settings)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID
