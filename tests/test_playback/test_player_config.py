"""Tests for player configuration loading."""

import pytest
from pydantic import ValidationError

from compositor.types import LumaMode
from playback.config import PlayerConfigLoader, load_player_config
from playback.types import PlayerConfig, RepeatMode
from video.types import PixelFormat


class TestPlayerConfig:
    """Test the configuration model."""

    def test_defaults(self):
        """Test default configuration."""
        config = PlayerConfig()

        assert config.repeat_mode == RepeatMode.ONCE
        assert config.auto_play is False
        assert config.rate == 1.0
        assert config.max_seek_retries is None
        assert config.report_frame_errors is True
        assert config.compositor.luma_mode == LumaMode.RED

    def test_invalid_rate(self):
        """Test rate must be positive."""
        with pytest.raises(ValidationError):
            PlayerConfig(rate=0.0)


class TestPlayerConfigLoader:
    """Test loading configuration from YAML."""

    def test_load_file(self, tmp_path):
        """Test settings are read from the given file."""
        path = tmp_path / "player.yaml"
        path.write_text(
            "repeat_mode: loop\n"
            "auto_play: true\n"
            "max_seek_retries: 3\n"
            "compositor:\n"
            "  luma_mode: rec601\n"
            "  output_format: bgra\n"
            "  tint:\n"
            "    color: [255, 128, 0]\n"
        )

        loader = PlayerConfigLoader(path)
        config = loader.load_config()

        assert loader.loaded_from == path
        assert config.repeat_mode == RepeatMode.LOOP
        assert config.auto_play is True
        assert config.max_seek_retries == 3
        assert config.compositor.luma_mode == LumaMode.REC601
        assert config.compositor.output_format == PixelFormat.BGRA
        assert config.compositor.tint.color == (255, 128, 0)

    def test_empty_file(self, tmp_path):
        """Test an empty file gives defaults."""
        path = tmp_path / "player.yaml"
        path.write_text("")

        assert load_player_config(path) == PlayerConfig()

    def test_missing_file(self, tmp_path):
        """Test a missing file falls back to defaults."""
        loader = PlayerConfigLoader(tmp_path / "absent.yaml")

        assert loader.load_config() == PlayerConfig()
        assert loader.loaded_from is None

    def test_malformed_yaml(self, tmp_path):
        """Test unparseable YAML falls back to defaults."""
        path = tmp_path / "player.yaml"
        path.write_text("repeat_mode: [unclosed\n")

        assert load_player_config(path) == PlayerConfig()

    def test_invalid_settings(self, tmp_path):
        """Test invalid values are rejected."""
        path = tmp_path / "player.yaml"
        path.write_text("repeat_mode: sometimes\n")

        with pytest.raises(ValidationError):
            load_player_config(path)

    def test_default_search_paths(self):
        """Test default locations are searched in order."""
        paths = PlayerConfigLoader().search_paths

        assert len(paths) == len(PlayerConfigLoader.DEFAULT_CONFIG_PATHS)
        assert str(paths[0]) == "/etc/stacked-alpha/player.yaml"
        assert "~" not in str(paths[-1])
