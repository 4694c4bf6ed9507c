"""Settings - configuration management"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..render.story import StoryOptions
from ..search.text_search import SearchOptions

log = logging.getLogger(__name__)

CONFIG_FILENAME = ".log-console.json"

_BOOL_KEYS = (
    "compact_mode", "network_expanded", "reduced_count",
    "case_sensitive", "regex", "whole_word", "sort_ascending",
)
_FLOAT_KEYS = ("font_size", "search_throttle", "filter_throttle", "follow_interval")


@dataclass
class Settings:
    """Console settings with defaults and optional JSON config override."""

    # Directory searched for the config file
    config_dir: Path = field(default_factory=Path.cwd)

    # Explicit config file (overrides config_dir lookup)
    config_path: Optional[Path] = None

    # Story
    compact_mode: bool = False
    network_expanded: bool = False
    reduced_count: bool = True
    story_limit: int = 1000
    font_size: float = 12.0

    # Text search
    case_sensitive: bool = False
    regex: bool = False
    whole_word: bool = False

    # Throttling windows (seconds) for typed input
    search_throttle: float = 0.33
    filter_throttle: float = 0.5

    # Oldest-first ordering
    sort_ascending: bool = True

    # Polling interval for `follow`
    follow_interval: float = 1.0

    # Root log level for the CLI
    log_level: str = "WARNING"

    def __post_init__(self):
        path = self.config_path or (Path(self.config_dir) / CONFIG_FILENAME)
        if path.exists():
            self._load_config(Path(path))
        elif self.config_path is not None:
            raise FileNotFoundError(f"config file not found: {path}")

    def _load_config(self, config_path: Path):
        """Load and merge config from JSON file."""
        with open(config_path, "r", encoding="utf-8") as f:
            config = json.load(f)
        log.debug("loading settings from %s", config_path)

        for key in _BOOL_KEYS:
            if key in config:
                setattr(self, key, bool(config[key]))
        for key in _FLOAT_KEYS:
            if key in config:
                setattr(self, key, float(config[key]))
        if "story_limit" in config:
            self.story_limit = int(config["story_limit"])
        if "log_level" in config:
            self.log_level = str(config["log_level"]).upper()

        unknown = set(config) - set(_BOOL_KEYS) - set(_FLOAT_KEYS) - {"story_limit", "log_level"}
        for key in sorted(unknown):
            log.warning("%s: unknown setting %r ignored", config_path, key)

    def story_options(self) -> StoryOptions:
        return StoryOptions(
            compact_mode=self.compact_mode,
            network_expanded=self.network_expanded,
            reduced_count=self.reduced_count,
            limit=self.story_limit,
            font_size=self.font_size,
        )

    def search_options(self) -> SearchOptions:
        return SearchOptions(
            case_sensitive=self.case_sensitive,
            regex=self.regex,
            whole_word=self.whole_word,
        )
