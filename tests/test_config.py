"""
Tests for configuration models and loading.
"""

import pytest
import yaml

from taskmark.core.config.loader import (
    apply_env_overrides,
    deep_merge,
    get_config_path,
    init_backlog,
    load_config,
    save_config,
)
from taskmark.core.config.models import BoardConfig, TaskmarkConfig
from taskmark.core.exceptions import BacklogNotInitializedError, ConfigError


def _write_config(project_dir, data) -> None:
    path = get_config_path(project_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data))


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("TASKMARK_USE_INDEX", raising=False)
    monkeypatch.delenv("TASKMARK_REBUILD_INDEX_ON_START", raising=False)


class TestModels:
    """Test defaults and derived properties."""

    def test_defaults(self):
        config = TaskmarkConfig()
        assert config.board.columns == ["To Do", "In Progress", "Review", "Done"]
        assert config.board.default_status == "To Do"
        assert config.board.default_priority == "medium"
        assert config.board.done_status == "Done"
        assert config.performance.use_index is True
        assert config.display.zero_padded_ids is True
        assert config.validations.close.warn_quick_close == 300

    def test_resolved_statuses(self):
        board = BoardConfig()
        assert board.resolved_statuses == {"Done", "Cancelled"}

    def test_default_priority_without_medium(self):
        board = BoardConfig(priorities=["P0", "P1"])
        assert board.default_priority == "P0"

    def test_completed_status_must_be_a_column(self):
        with pytest.raises(ValueError):
            TaskmarkConfig.model_validate(
                {"board": {"columns": ["Open"], "completed_statuses": ["Done"]}}
            )

    def test_camel_case_aliases(self):
        config = TaskmarkConfig.model_validate(
            {"performance": {"useIndex": False}, "display": {"zeroPaddedIds": False}}
        )
        assert config.performance.use_index is False
        assert config.display.zero_padded_ids is False

    def test_unknown_sections_kept(self):
        config = TaskmarkConfig.model_validate({"search": {"fuzzy": True}})
        assert config.model_dump()["search"] == {"fuzzy": True}


class TestDeepMerge:
    def test_nested_merge(self):
        base = {"a": 1, "b": {"x": 10, "y": 20}}
        override = {"b": {"y": 30, "z": 40}, "c": 3}
        assert deep_merge(base, override) == {"a": 1, "b": {"x": 10, "y": 30, "z": 40}, "c": 3}

    def test_base_not_mutated(self):
        base = {"b": {"x": 1}}
        deep_merge(base, {"b": {"x": 2}})
        assert base == {"b": {"x": 1}}


class TestLoadConfig:
    """Test loading backlog/config.yml."""

    def test_missing_backlog(self, tmp_path):
        with pytest.raises(BacklogNotInitializedError):
            load_config(tmp_path)

    def test_partial_file_gets_defaults(self, tmp_path):
        _write_config(tmp_path, {"project": {"name": "Legacy"}})

        config = load_config(tmp_path)

        assert config.project.name == "Legacy"
        assert config.board.columns == ["To Do", "In Progress", "Review", "Done"]
        assert config.validations.close.allow_force is True

    def test_nested_override_keeps_siblings(self, tmp_path):
        _write_config(tmp_path, {"validations": {"close": {"allow_force": False}}})

        close = load_config(tmp_path).validations.close

        assert close.allow_force is False
        assert close.check_subtasks is True

    def test_camel_case_file(self, tmp_path):
        _write_config(tmp_path, {"performance": {"useIndex": False}})
        assert load_config(tmp_path).performance.use_index is False

    def test_invalid_yaml(self, tmp_path):
        path = get_config_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("board: [unclosed\n")

        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_not_a_mapping(self, tmp_path):
        path = get_config_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_invalid_board(self, tmp_path):
        _write_config(tmp_path, {"board": {"columns": ["Open", "Closed"]}})
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path)
        assert "completed_statuses" in str(exc_info.value)

    def test_save_and_reload(self, tmp_path):
        config = TaskmarkConfig()
        config.board.columns.append("Blocked")
        save_config(config, tmp_path)

        assert load_config(tmp_path).board.columns[-1] == "Blocked"


class TestEnvOverrides:
    """Test environment variable overrides."""

    def test_use_index_false(self, tmp_path, monkeypatch):
        _write_config(tmp_path, {})
        monkeypatch.setenv("TASKMARK_USE_INDEX", "false")
        assert load_config(tmp_path).performance.use_index is False

    def test_rebuild_on_start(self, monkeypatch):
        monkeypatch.setenv("TASKMARK_REBUILD_INDEX_ON_START", "1")
        result = apply_env_overrides({"performance": {"use_index": True}})
        assert result["performance"] == {"use_index": True, "rebuild_index_on_start": True}

    def test_no_env_leaves_config_alone(self):
        assert apply_env_overrides({"a": 1}) == {"a": 1}


class TestInitBacklog:
    """Test backlog initialization."""

    def test_creates_config_and_gitignore(self, tmp_path):
        config = init_backlog(tmp_path, "Demo")

        assert config.project.name == "Demo"
        assert get_config_path(tmp_path).exists()
        assert ".cache/" in (tmp_path / "backlog" / ".gitignore").read_text()
        assert load_config(tmp_path).project.name == "Demo"

    def test_name_defaults_to_directory(self, tmp_path):
        project = tmp_path / "website"
        project.mkdir()
        assert init_backlog(project).project.name == "website"

    def test_twice_fails(self, tmp_path):
        init_backlog(tmp_path, "Demo")
        with pytest.raises(ConfigError):
            init_backlog(tmp_path, "Again")
