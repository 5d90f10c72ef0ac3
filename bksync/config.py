"""
Configuration management for bksync.

Provides a hierarchical configuration system with sensible defaults.
Supports both global (~/.config/bksync/config.toml) and local (bksync.toml)
configurations.
"""
import os
import logging
import tomli
import tomli_w
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict

from bksync.constants import (
    BOOKMARKS_BAR_TITLE,
    DEFAULT_BASKET_NAME,
    DEFAULT_REMOTE_BASE_URL,
    DEFAULT_REQUEST_TIMEOUT,
    MAX_TREE_DEPTH,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncConfig:
    """
    bksync configuration with sensible defaults.

    Configuration hierarchy (highest to lowest priority):
    1. Command-line arguments
    2. Environment variables (BKSYNC_*)
    3. Local config file (./bksync.toml or ./.bksyncrc)
    4. User config file (~/.config/bksync/config.toml)
    5. System defaults
    """

    # Local snapshot storage
    database: str = field(default="bksync.db")
    database_echo: bool = field(default=False)  # SQLAlchemy echo for debugging

    # Browser integration
    browser_name: Optional[str] = field(default=None)  # Detected from the profile when unset
    chrome_profile: Optional[str] = field(default=None)  # Profile directory, auto-detected when unset
    bookmarks_bar_title: str = field(default=BOOKMARKS_BAR_TITLE)
    sync_bookmarks_on_import: bool = field(default=False)

    # Merge
    max_tree_depth: int = field(default=MAX_TREE_DEPTH)

    # Remote backup store
    remote_base_url: str = field(default=DEFAULT_REMOTE_BASE_URL)
    basket_name: str = field(default=DEFAULT_BASKET_NAME)
    timeout: int = field(default=DEFAULT_REQUEST_TIMEOUT)  # Request timeout in seconds
    user_agent: str = field(default="bksync/1.0")

    # Export defaults
    export_format: str = field(default="json")
    export_pretty: bool = field(default=True)

    # Display settings
    output_format: str = field(default="table")  # table, json, plain
    color_output: bool = field(default=True)

    # Advanced
    log_level: str = field(default="WARNING")

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "SyncConfig":
        """
        Load configuration from files and environment.

        Args:
            config_file: Specific config file to load (overrides search)

        Returns:
            Merged configuration object
        """
        config = cls()

        user_config_path = Path.home() / ".config" / "bksync" / "config.toml"
        if user_config_path.exists():
            config._merge(cls._load_toml(user_config_path))

        local_paths = [
            Path.cwd() / "bksync.toml",
            Path.cwd() / ".bksyncrc",
        ]

        for path in local_paths:
            if path.exists():
                config._merge(cls._load_toml(path))
                break

        if config_file and config_file.exists():
            config._merge(cls._load_toml(config_file))

        config._apply_env_vars()
        config._expand_paths()

        return config

    @staticmethod
    def _load_toml(path: Path) -> Dict[str, Any]:
        """Load TOML configuration file."""
        with open(path, "rb") as f:
            return tomli.load(f)

    def _merge(self, data: Dict[str, Any]):
        """Merge configuration data into this instance."""
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)

    def _apply_env_vars(self):
        """Apply environment variables with BKSYNC_ prefix."""
        prefix = "BKSYNC_"
        for key, value in os.environ.items():
            if key.startswith(prefix):
                config_key = key[len(prefix):].lower()
                if hasattr(self, config_key):
                    current_value = getattr(self, config_key)
                    if isinstance(current_value, bool):
                        setattr(self, config_key, value.lower() in ("true", "1", "yes"))
                    elif isinstance(current_value, int):
                        try:
                            setattr(self, config_key, int(value))
                        except ValueError:
                            logger.warning(f"Ignoring {key}={value!r}: not an integer")
                    else:
                        setattr(self, config_key, value)

    def _expand_paths(self):
        """Expand ~ and environment variables in paths."""
        for field_name in ["database", "chrome_profile"]:
            value = getattr(self, field_name)
            if isinstance(value, str):
                expanded = os.path.expanduser(os.path.expandvars(value))
                setattr(self, field_name, expanded)

    def save(self, path: Optional[Path] = None):
        """
        Save current configuration to TOML file.

        Args:
            path: Path to save to (defaults to user config)
        """
        if path is None:
            path = Path.home() / ".config" / "bksync" / "config.toml"

        path.parent.mkdir(parents=True, exist_ok=True)

        # TOML has no null, so unset optionals are left out
        data = {k: v for k, v in asdict(self).items() if v is not None}
        with open(path, "wb") as f:
            tomli_w.dump(data, f)

    def get_database_path(self) -> Path:
        """Get the resolved database path."""
        path = Path(self.database)
        if not path.is_absolute():
            path = Path.cwd() / path
        return path


# Global configuration instance
_config: Optional[SyncConfig] = None


def get_config(reload: bool = False, config_file: Optional[Path] = None) -> SyncConfig:
    """
    Get the global configuration instance.

    Args:
        reload: Force reload configuration from files
        config_file: Specific config file to load

    Returns:
        Global configuration instance
    """
    global _config
    if _config is None or reload:
        _config = SyncConfig.load(config_file)
    return _config


def init_config(database: Optional[str] = None, config_file: Optional[Path] = None,
                **kwargs) -> SyncConfig:
    """
    Initialize configuration with command-line overrides.

    Args:
        database: Database path override
        config_file: Config file to load before applying overrides
        **kwargs: Other configuration overrides

    Returns:
        Configured instance
    """
    config = get_config(reload=config_file is not None, config_file=config_file)

    if database:
        config.database = database

    for key, value in kwargs.items():
        if hasattr(config, key) and value is not None:
            setattr(config, key, value)

    return config
