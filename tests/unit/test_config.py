"""Unit tests for parser options."""

import pytest
import yaml
from pydantic import ValidationError

from org_outline.config import ParserOptions, load_options


class TestParserOptions:
    """Test the ParserOptions model."""

    def test_defaults(self):
        """Test default option values."""
        options = ParserOptions()

        assert options.todo_keywords == ["TODO"]
        assert options.done_keywords == ["DONE"]
        assert options.default_priorities == ["A", "B", "C"]
        assert options.max_heading_level == 8
        assert options.strict_levels is False

    def test_options_immutable(self):
        """Test that options are frozen."""
        options = ParserOptions()

        with pytest.raises(ValidationError):
            options.strict_levels = True

    def test_keyword_with_space_rejected(self):
        """Test keywords must be single words."""
        with pytest.raises(ValidationError, match="Invalid TODO keyword"):
            ParserOptions(todo_keywords=["IN PROGRESS"])

    def test_priority_must_be_single_character(self):
        """Test multi-character priorities are rejected."""
        with pytest.raises(ValidationError, match="single character"):
            ParserOptions(default_priorities=["AA"])

    def test_max_level_must_be_positive(self):
        """Test max_heading_level >= 1."""
        with pytest.raises(ValidationError):
            ParserOptions(max_heading_level=0)


class TestLoadOptions:
    """Test loading options from YAML and the environment."""

    @pytest.fixture(autouse=True)
    def clear_env(self, monkeypatch):
        """Ensure ORG_OUTLINE_* variables from the host do not leak in."""
        for name in (
            "ORG_OUTLINE_TODO_KEYWORDS",
            "ORG_OUTLINE_DONE_KEYWORDS",
            "ORG_OUTLINE_MAX_HEADING_LEVEL",
            "ORG_OUTLINE_STRICT_LEVELS",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_missing_file_gives_defaults(self, tmp_path):
        """Test a missing config file falls back to defaults."""
        assert load_options(tmp_path / "missing.yaml") == ParserOptions()

    def test_load_from_yaml(self, tmp_path):
        """Test values are read from YAML."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump({
            "todo_keywords": ["TODO", "NEXT"],
            "done_keywords": ["DONE", "CANCELLED"],
            "max_heading_level": 10,
        }))

        options = load_options(config_file)

        assert options.todo_keywords == ["TODO", "NEXT"]
        assert options.done_keywords == ["DONE", "CANCELLED"]
        assert options.max_heading_level == 10

    def test_empty_file_gives_defaults(self, tmp_path):
        """Test an empty YAML file is treated as an empty mapping."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        assert load_options(config_file) == ParserOptions()

    def test_non_mapping_rejected(self, tmp_path):
        """Test a YAML list is not a valid configuration."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- just\n- a list\n")

        with pytest.raises(ValueError, match="must contain a mapping"):
            load_options(config_file)

    def test_env_overrides(self, tmp_path, monkeypatch):
        """Test environment variables override file values."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump({"max_heading_level": 10}))
        monkeypatch.setenv("ORG_OUTLINE_TODO_KEYWORDS", "TODO WAITING")
        monkeypatch.setenv("ORG_OUTLINE_MAX_HEADING_LEVEL", "12")
        monkeypatch.setenv("ORG_OUTLINE_STRICT_LEVELS", "true")

        options = load_options(config_file)

        assert options.todo_keywords == ["TODO", "WAITING"]
        assert options.max_heading_level == 12
        assert options.strict_levels is True

    def test_invalid_env_level_ignored(self, tmp_path, monkeypatch):
        """Test a non-integer level override is ignored."""
        monkeypatch.setenv("ORG_OUTLINE_MAX_HEADING_LEVEL", "deep")

        assert load_options(tmp_path / "missing.yaml").max_heading_level == 8
