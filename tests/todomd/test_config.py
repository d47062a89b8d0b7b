import json
from pathlib import Path

import pytest

from todomd import config
from todomd.errors import ConfigError


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        loaded = config.load_config(tmp_path, environ={})
        assert loaded == config.TodoConfig()
        assert loaded.todo_path(tmp_path) == tmp_path / ".todo"
        assert loaded.beads_path(tmp_path) == tmp_path / ".beads"

    def test_reads_file_and_normalizes(self, tmp_path: Path) -> None:
        (tmp_path / "todo.config.json").write_text(
            json.dumps(
                {
                    "todo_dir": "issues",
                    "conflict_strategy": "Newest_Wins",
                    "preset": " ",
                    "unknown": True,
                }
            )
        )
        loaded = config.load_config(tmp_path, environ={})
        assert loaded.todo_dir == "issues"
        assert loaded.conflict_strategy == "newest-wins"
        assert loaded.preset is None

    def test_environment_overrides_file(self, tmp_path: Path) -> None:
        (tmp_path / "todo.config.json").write_text('{"beads": true}')
        environ = {
            "TODOMD_BEADS": "false",
            "TODOMD_PRESET": "github",
            "TODOMD_CONFLICT_WINDOW_SECONDS": "60",
        }
        loaded = config.load_config(tmp_path, environ=environ)
        assert loaded.beads is False
        assert loaded.preset == "github"
        assert loaded.conflict_window_seconds == 60

    @pytest.mark.parametrize(
        "content", ["{not json", "[1, 2]", '{"conflict_strategy": "coin-flip"}']
    )
    def test_invalid_content_raises(self, tmp_path: Path, content: str) -> None:
        (tmp_path / "todo.config.json").write_text(content)
        with pytest.raises(ConfigError) as excinfo:
            config.load_config(tmp_path, environ={})
        assert excinfo.value.code == "invalid_config"

    def test_template_config_points_into_project(self, tmp_path: Path) -> None:
        template_config = config.TodoConfig(preset="linear").template_config(tmp_path)
        assert template_config.template_dir == tmp_path / ".mdx"
        assert template_config.preset == "linear"


class TestWriteConfig:
    def test_writes_indented_json_with_newline(self, tmp_path: Path) -> None:
        path = config.write_config(tmp_path, config.TodoConfig(separate_closed=True))
        text = path.read_text()
        assert text.endswith("}\n")
        assert '\n  "separate_closed": true' in text
        assert "beads_dir" not in text
        assert config.load_config(tmp_path, environ={}).separate_closed is True
