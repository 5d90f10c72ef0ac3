"""
Tests for bksync/config.py configuration management.

Tests the hierarchical configuration system with sensible defaults,
including file loading, environment variables, and path expansion.
The autouse fixture in conftest points HOME and the working directory at
a temporary directory.
"""
import os
import pytest
import tomli
from pathlib import Path

from bksync.config import SyncConfig, get_config, init_config


class TestSyncConfigDefaults:
    """Test default configuration values."""

    def test_default_database_is_bksync_db(self):
        """Default database should be 'bksync.db'."""
        assert SyncConfig().database == "bksync.db"

    def test_default_bar_title(self):
        assert SyncConfig().bookmarks_bar_title == "Bookmarks Bar"

    def test_default_remote_store(self):
        """Default remote store is the extensionBackup basket."""
        config = SyncConfig()
        assert config.remote_base_url == "https://getpantry.cloud/apiv1/pantry"
        assert config.basket_name == "extensionBackup"
        assert config.timeout == 10

    def test_default_import_does_not_touch_browser(self):
        assert SyncConfig().sync_bookmarks_on_import is False

    def test_default_browser_settings_unset(self):
        config = SyncConfig()
        assert config.browser_name is None
        assert config.chrome_profile is None

    def test_default_export_format_is_json(self):
        assert SyncConfig().export_format == "json"


class TestConfigLoading:
    """Test configuration file loading."""

    def test_load_defaults_when_no_files_exist(self):
        config = SyncConfig.load()
        assert config.database == "bksync.db"

    def test_load_from_local_bksync_toml(self, tmp_path):
        """Should load config from ./bksync.toml."""
        (tmp_path / "bksync.toml").write_text('database = "custom.db"\ntimeout = 30\n')

        config = SyncConfig.load()
        assert config.database == "custom.db"
        assert config.timeout == 30

    def test_load_from_bksyncrc(self, tmp_path):
        """Should load config from ./.bksyncrc."""
        (tmp_path / ".bksyncrc").write_text('basket_name = "other"\n')

        assert SyncConfig.load().basket_name == "other"

    def test_local_config_overrides_user_config(self, tmp_path):
        """Local config should override user config values."""
        user_dir = Path.home() / ".config" / "bksync"
        user_dir.mkdir(parents=True)
        (user_dir / "config.toml").write_text('database = "user.db"\ntimeout = 20\n')
        (tmp_path / "bksync.toml").write_text('database = "local.db"\n')

        config = SyncConfig.load()
        assert config.database == "local.db"
        assert config.timeout == 20

    def test_explicit_config_file_overrides_all(self, tmp_path):
        (tmp_path / "bksync.toml").write_text('database = "local.db"\n')
        explicit = tmp_path / "explicit.toml"
        explicit.write_text('database = "explicit.db"\n')

        assert SyncConfig.load(config_file=explicit).database == "explicit.db"

    def test_unknown_keys_ignored(self, tmp_path):
        (tmp_path / "bksync.toml").write_text('no_such_setting = 1\n')
        assert not hasattr(SyncConfig.load(), "no_such_setting")


class TestEnvironmentVariables:
    """Test environment variable overrides."""

    def test_env_var_overrides_file_config(self, monkeypatch, tmp_path):
        (tmp_path / "bksync.toml").write_text('database = "file.db"\n')
        monkeypatch.setenv("BKSYNC_DATABASE", "env.db")

        assert SyncConfig.load().database == "env.db"

    @pytest.mark.parametrize("value,expected", [
        ("true", True), ("1", True), ("yes", True), ("false", False), ("0", False),
    ])
    def test_env_var_boolean(self, monkeypatch, value, expected):
        monkeypatch.setenv("BKSYNC_SYNC_BOOKMARKS_ON_IMPORT", value)
        assert SyncConfig.load().sync_bookmarks_on_import is expected

    def test_env_var_integer(self, monkeypatch):
        monkeypatch.setenv("BKSYNC_TIMEOUT", "42")
        assert SyncConfig.load().timeout == 42

    def test_env_var_bad_integer_warns(self, monkeypatch, caplog):
        monkeypatch.setenv("BKSYNC_MAX_TREE_DEPTH", "deep")

        with caplog.at_level("WARNING", logger="bksync.config"):
            config = SyncConfig.load()

        assert config.max_tree_depth == SyncConfig().max_tree_depth
        assert "BKSYNC_MAX_TREE_DEPTH" in caplog.text

    def test_env_var_for_optional_string(self, monkeypatch):
        monkeypatch.setenv("BKSYNC_BROWSER_NAME", "Brave")
        assert SyncConfig.load().browser_name == "Brave"

    def test_unknown_env_var_ignored(self, monkeypatch):
        monkeypatch.setenv("BKSYNC_NOT_A_SETTING", "x")
        assert not hasattr(SyncConfig.load(), "not_a_setting")


class TestConfigSaving:
    """Test configuration saving."""

    def test_save_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "config.toml"
        SyncConfig().save(path)
        assert path.exists()

    def test_save_writes_valid_toml_without_none(self, tmp_path):
        """Unset optional values are left out of the file."""
        path = tmp_path / "config.toml"
        config = SyncConfig()
        config.database = "saved.db"
        config.save(path)

        with open(path, "rb") as f:
            data = tomli.load(f)
        assert data["database"] == "saved.db"
        assert "browser_name" not in data
        assert "chrome_profile" not in data

    def test_save_to_default_location(self):
        SyncConfig().save()
        assert (Path.home() / ".config" / "bksync" / "config.toml").exists()

    def test_saved_config_round_trips(self, tmp_path):
        path = tmp_path / "config.toml"
        config = SyncConfig()
        config.browser_name = "Edge"
        config.timeout = 5
        config.save(path)

        loaded = SyncConfig.load(config_file=path)
        assert loaded.browser_name == "Edge"
        assert loaded.timeout == 5


class TestPaths:
    """Test database path resolution and expansion."""

    def test_get_database_path_relative(self, tmp_path):
        config = SyncConfig()
        config.database = "relative.db"
        assert config.get_database_path() == tmp_path / "relative.db"

    def test_get_database_path_absolute(self, tmp_path):
        config = SyncConfig()
        config.database = str(tmp_path / "abs.db")
        assert config.get_database_path() == tmp_path / "abs.db"

    def test_expand_tilde(self, tmp_path):
        (tmp_path / "bksync.toml").write_text(
            'database = "~/data/bksync.db"\nchrome_profile = "~/chrome/Default"\n'
        )
        config = SyncConfig.load()
        assert config.database == str(Path.home() / "data" / "bksync.db")
        assert config.chrome_profile == str(Path.home() / "chrome" / "Default")

    def test_expand_env_vars(self, monkeypatch):
        monkeypatch.setenv("DATA_DIR", "/srv/data")
        monkeypatch.setenv("BKSYNC_DATABASE", "$DATA_DIR/bksync.db")
        assert SyncConfig.load().database == "/srv/data/bksync.db"


class TestGlobalConfigFunctions:
    """Test get_config and init_config."""

    def test_get_config_returns_same_instance(self):
        assert get_config() is get_config()

    def test_get_config_reload_creates_new_instance(self):
        first = get_config()
        assert get_config(reload=True) is not first

    def test_init_config_applies_overrides(self):
        config = init_config(database="override.db", browser_name="Brave", timeout=3)
        assert config.database == "override.db"
        assert config.browser_name == "Brave"
        assert config.timeout == 3
        assert get_config() is config

    def test_init_config_ignores_none_values(self):
        config = init_config(database=None, chrome_profile=None)
        assert config.database == "bksync.db"
        assert config.chrome_profile is None

    def test_init_config_with_config_file(self, tmp_path):
        path = tmp_path / "custom.toml"
        path.write_text('basket_name = "custom"\n')

        assert init_config(config_file=path).basket_name == "custom"
