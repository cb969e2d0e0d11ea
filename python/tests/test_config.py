"""
Tests for configuration loading and validation.
"""

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config_manager import ConfigManager, ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("APP_ENV", "MAILJET_API_KEY", "MAILJET_SECRET_KEY",
                 "MAILJET_FROM_EMAIL", "MAILJET_FROM_NAME", "UPLOAD_DIR", "CONFIG_PATH"):
        monkeypatch.delenv(name, raising=False)
    ConfigManager.reset_instance()
    yield
    ConfigManager.reset_instance()


class TestDefaults:
    """Tests for default values."""

    def test_empty_config_uses_defaults(self):
        """An empty mapping validates and keeps every default."""
        config = ConfigManager.create({})
        assert config.app.environment == "production"
        assert config.app.api_prefix == "/api/v1"
        assert config.provisioning.bcrypt_rounds == 10
        assert config.provisioning.username_prefix == "dist_"
        assert config.uploads.allowed_extensions == [".pdf", ".jpg", ".jpeg", ".png"]
        assert config.pagination.default_limit == 10
        assert config.auth.api_keys == []
        assert config.notifications.is_configured is False

    def test_to_dict_omits_secrets(self):
        """Exported config never carries passwords or keys."""
        config = ConfigManager.create({
            'database': {'password': 'hunter2'},
            'notifications': {'mailjet_api_key': 'k', 'mailjet_secret_key': 's'},
            'auth': {'api_keys': [{'key': 'super-secret-key', 'name': 'Ops', 'role': 'ADMIN'}]},
        })
        exported = repr(config.to_dict())
        assert 'hunter2' not in exported
        assert 'super-secret-key' not in exported
        assert config.to_dict()['notifications']['configured'] is True
        assert config.to_dict()['auth']['api_key_count'] == 1


class TestParsing:
    """Tests for section parsing."""

    def test_api_keys_are_parsed(self):
        """Roles are upper-cased; user_id defaults to the key prefix."""
        config = ConfigManager.create({
            'auth': {'api_keys': [
                {'key': 'abcdefgh12345', 'name': 'Sita', 'role': 'sales_manager'},
                {'key': 'k2', 'user_id': 'rep-7', 'name': 'Rep'},
            ]}
        })
        first, second = config.auth.api_keys
        assert first.role == "SALES_MANAGER"
        assert first.user_id == "abcdefgh"
        assert second.role == "SALES_REPRESENTATIVE"
        assert second.user_id == "rep-7"

    def test_api_key_without_key_is_rejected(self):
        """Each entry must carry a key."""
        with pytest.raises(ConfigurationError):
            ConfigManager.create({'auth': {'api_keys': [{'name': 'nobody'}]}})

    def test_extensions_are_lowercased(self):
        """Upload extensions compare case-insensitively."""
        config = ConfigManager.create({'uploads': {'allowed_extensions': ['.PDF', '.Png']}})
        assert config.uploads.allowed_extensions == ['.pdf', '.png']

    def test_environment_is_normalized(self):
        """Environment names are case-insensitive."""
        config = ConfigManager.create({'app': {'environment': 'Development'}})
        assert config.app.is_development


class TestValidation:
    """Tests for rejected values."""

    @pytest.mark.parametrize("raw", [
        {'app': {'environment': 'staging'}},
        {'provisioning': {'bcrypt_rounds': 3}},
        {'provisioning': {'bcrypt_rounds': 32}},
        {'provisioning': {'password_length': 6}},
        {'auth': {'api_keys': [{'key': 'k', 'role': 'SUPERUSER'}]}},
        {'uploads': {'max_file_size_mb': 0}},
        {'pagination': {'default_limit': 500, 'max_limit': 100}},
    ])
    def test_invalid_values_raise(self, raw):
        """Each invalid setting is a ConfigurationError."""
        with pytest.raises(ConfigurationError):
            ConfigManager.create(raw)

    def test_errors_are_collected(self):
        """All problems are reported together."""
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager.create({
                'app': {'environment': 'staging'},
                'uploads': {'max_file_size_mb': -1},
            })
        message = str(exc_info.value)
        assert 'app.environment' in message
        assert 'uploads.max_file_size_mb' in message


class TestEnvironmentOverrides:
    """Tests for environment variable overrides."""

    def test_env_wins_over_file_values(self, monkeypatch):
        """Secrets and mode come from the environment when set."""
        monkeypatch.setenv("APP_ENV", "TEST")
        monkeypatch.setenv("MAILJET_API_KEY", "env-key")
        monkeypatch.setenv("MAILJET_SECRET_KEY", "env-secret")
        monkeypatch.setenv("UPLOAD_DIR", "/tmp/docs")

        config = ConfigManager.create({
            'app': {'environment': 'production'},
            'notifications': {'mailjet_api_key': 'file-key'},
        })
        assert config.app.environment == "test"
        assert config.notifications.mailjet_api_key == "env-key"
        assert config.notifications.is_configured
        assert config.uploads.directory == "/tmp/docs"


class TestFileLoading:
    """Tests for YAML file handling."""

    def test_loads_yaml_file(self, tmp_path):
        """A config file on disk is parsed."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "app:\n"
            "  environment: development\n"
            "  cors_origins:\n"
            "    - https://admin.example.com\n"
            "pagination:\n"
            "  default_limit: 20\n",
            encoding="utf-8",
        )
        config = ConfigManager(str(path))
        assert config.app.environment == "development"
        assert config.app.cors_origins == ["https://admin.example.com"]
        assert config.pagination.default_limit == 20

    def test_invalid_yaml(self, tmp_path):
        """Broken YAML is a ConfigurationError."""
        path = tmp_path / "config.yaml"
        path.write_text("app: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            ConfigManager(str(path))

    def test_non_mapping_yaml(self, tmp_path):
        """The top level must be a mapping."""
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            ConfigManager(str(path))

    def test_missing_file_uses_defaults(self, tmp_path):
        """No file on disk falls back to defaults."""
        config = ConfigManager(str(tmp_path / "absent.yaml"))
        assert config.app.environment == "production"

    def test_singleton(self, tmp_path):
        """get_instance returns the same object until reset."""
        path = str(tmp_path / "absent.yaml")
        first = ConfigManager.get_instance(path)
        assert ConfigManager.get_instance() is first
        ConfigManager.reset_instance()
        assert ConfigManager.get_instance(path) is not first
