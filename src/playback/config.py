"""Player configuration loader."""

import logging
from pathlib import Path
from typing import List, Optional, Union

import yaml

from playback.types import PlayerConfig

logger = logging.getLogger(__name__)


class PlayerConfigLoader:
    """Loads player configuration from YAML.

    Example:
        >>> loader = PlayerConfigLoader("config/player.yaml")
        >>> config = loader.load_config()
        >>> config.repeat_mode
        <RepeatMode.LOOP: 'loop'>
    """

    DEFAULT_CONFIG_PATHS = [
        "/etc/stacked-alpha/player.yaml",
        "./config/player.yaml",
        "~/.config/stacked-alpha/player.yaml",
    ]

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to configuration file (optional)
        """
        self.config_path = config_path
        self.loaded_from: Optional[Path] = None

    @property
    def search_paths(self) -> List[Path]:
        """Get the candidate files, in priority order."""
        if self.config_path:
            return [Path(self.config_path).expanduser()]
        return [Path(path).expanduser() for path in self.DEFAULT_CONFIG_PATHS]

    def load_config(self) -> PlayerConfig:
        """Load configuration from the first readable file.

        Returns:
            Player configuration (defaults if no file was found)

        Raises:
            pydantic.ValidationError: If a file holds invalid settings
        """
        for path in self.search_paths:
            if not path.exists():
                continue

            try:
                with open(path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.error(f"Error loading config from {path}: {e}")
                continue

            config = PlayerConfig.model_validate(data)
            self.loaded_from = path
            logger.info(f"Loaded player configuration from {path}")
            return config

        logger.warning("No player configuration file found, using defaults")
        return PlayerConfig()


def load_player_config(config_path: Optional[Union[str, Path]] = None) -> PlayerConfig:
    """Load player configuration from ``config_path`` or the default paths."""
    return PlayerConfigLoader(config_path).load_config()
