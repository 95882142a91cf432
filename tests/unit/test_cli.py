"""Unit tests for the worldgen command line.

Tests cover:
- `generate` with a mocked model client
- Missing credentials and invalid run files
- `check` on a clean and on a broken world
- The sample run file loads
"""

import asyncio
import logging
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from worldgen.__main__ import main
from worldgen.core.world_generator import WorldGenerator
from worldgen.models.config import WorldGenerationConfig

SAMPLE_CONFIG = Path(__file__).parents[2] / "sample_configs" / "ashen_reach.yaml"


@pytest.fixture(autouse=True)
def restore_logging(tmp_path, monkeypatch):
    """Run in a scratch directory and drop the handlers setup_logging installs."""
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def run_file(tmp_path, generation_config) -> Path:
    path = tmp_path / "run.yaml"
    path.write_text(yaml.safe_dump(generation_config.model_dump(mode="json")), encoding="utf-8")
    return path


class TestGenerateCommand:
    """Tests for `worldgen generate`."""

    def test_generate(self, tmp_path, run_file, mock_model_client, monkeypatch) -> None:
        """A run with a working client writes the world and exits 0."""
        monkeypatch.setenv("WORLDGEN_API_KEY", "sk-test")
        monkeypatch.setattr(WorldGenerator, "_default_client", lambda self, config, credential: mock_model_client)

        result = CliRunner().invoke(main, ["generate", str(run_file), "--output-dir", str(tmp_path / "worlds")])

        assert result.exit_code == 0, result.output
        assert "State: Done" in result.output
        assert (tmp_path / "worlds" / "ashen_reach" / "config.json").exists()
        assert list((tmp_path / "logs" / "worldgen").glob("worldgen_*.log"))

    def test_generate_aborted_exits_nonzero(self, tmp_path, run_file, mock_model_client, monkeypatch) -> None:
        """An aborted run exits 1."""
        monkeypatch.setenv("WORLDGEN_API_KEY", "sk-test")
        mock_model_client.add_response("detailed outline for Chapter 1.", "no outline today")
        monkeypatch.setattr(WorldGenerator, "_default_client", lambda self, config, credential: mock_model_client)

        result = CliRunner().invoke(main, ["generate", str(run_file), "--output-dir", str(tmp_path / "worlds")])

        assert result.exit_code == 1
        assert "State: Aborted" in result.output

    def test_missing_credential(self, run_file, monkeypatch) -> None:
        """Without an API key the command fails before any request."""
        monkeypatch.delenv("WORLDGEN_API_KEY", raising=False)
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)

        result = CliRunner().invoke(main, ["generate", str(run_file)])

        assert result.exit_code != 0
        assert "No API key found for provider 'openai'" in result.output

    def test_invalid_run_file(self, tmp_path) -> None:
        """A run file that is not a mapping is rejected."""
        path = tmp_path / "bad.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        result = CliRunner().invoke(main, ["generate", str(path)])

        assert result.exit_code != 0
        assert "Invalid run file" in result.output

    def test_malformed_yaml(self, tmp_path) -> None:
        """A YAML syntax error is reported without a traceback."""
        path = tmp_path / "bad.yaml"
        path.write_text("world_id: [unclosed\n", encoding="utf-8")

        result = CliRunner().invoke(main, ["generate", str(path)])

        assert result.exit_code == 1
        assert "Invalid run file" in result.output
        assert "not valid YAML" in result.output
        assert not isinstance(result.exception, yaml.YAMLError)


class TestCheckCommand:
    """Tests for `worldgen check`."""

    @pytest.fixture
    def world_dir(self, tmp_path, generation_config, mock_model_client) -> Path:
        generator = WorldGenerator(tmp_path / "worlds", client_factory=lambda config, credential: mock_model_client)
        asyncio.run(generator.start_generation(generation_config, "sk-test"))
        return tmp_path / "worlds" / "ashen_reach"

    def test_clean_world(self, world_dir) -> None:
        """A clean world prints its summary and exits 0."""
        result = CliRunner().invoke(main, ["check", str(world_dir)])

        assert result.exit_code == 0, result.output
        assert "Total Rooms: 3" in result.output
        assert "Errors: 0" in result.output

    def test_broken_world(self, world_dir) -> None:
        """Integrity errors make the check fail."""
        (world_dir / "Enemies" / "ash_wraith.json").unlink()

        result = CliRunner().invoke(main, ["check", str(world_dir)])

        assert result.exit_code == 1
        assert "references non-existent enemy: ash_wraith" in result.output

    def test_corrupt_chapter(self, world_dir) -> None:
        """A chapter file that does not parse is reported without a traceback."""
        chapter_file = world_dir / "Chapters" / "chapter_1_ashen_gate.json"
        chapter_file.write_text('{"chapterId": "chapter_1_ashen_gate", "chapterNumber": 0}', encoding="utf-8")

        result = CliRunner().invoke(main, ["check", str(world_dir)])

        assert result.exit_code == 1
        assert "Unreadable chapter 'chapter_1_ashen_gate'" in result.output

    def test_not_a_world(self, tmp_path) -> None:
        """A directory without a manifest is reported."""
        empty = tmp_path / "empty"
        empty.mkdir()

        result = CliRunner().invoke(main, ["check", str(empty)])

        assert result.exit_code != 0
        assert "No config.json found" in result.output


class TestSampleConfig:
    """The shipped sample run file."""

    def test_sample_loads(self) -> None:
        """The sample run file is a valid configuration."""
        config = WorldGenerationConfig.from_yaml(SAMPLE_CONFIG)

        assert config.world_id == "ashen_reach"
        assert config.settings.total_chapters == 2
        assert config.provider.model == "gpt-4o-mini"
        assert config.world_prompt.custom_parameters[0].key == "magic_system"
