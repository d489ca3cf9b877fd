"""Tests for SyncConfig."""

import pytest
import yaml

from private_record_sync import ConfigurationError, CosmosAuthMethod, SyncConfig


class TestFromEnvironment:
    """Tests for environment configuration."""

    def test_reads_variables(self, monkeypatch):
        """Settings are read from PRIVATE_RECORD_* variables."""
        monkeypatch.setenv("PRIVATE_RECORD_CONTAINER", "iCloud.com.example.PrivateDatabase")
        monkeypatch.setenv("PRIVATE_RECORD_USER_ID", "user-1")
        monkeypatch.setenv("PRIVATE_RECORD_COSMOS_ENDPOINT", "https://example.documents.azure.com/")
        monkeypatch.setenv("PRIVATE_RECORD_COSMOS_AUTH_METHOD", "KEY")
        monkeypatch.setenv("PRIVATE_RECORD_COSMOS_KEY", "secret")
        monkeypatch.setenv("PRIVATE_RECORD_TESTING", "yes")

        config = SyncConfig.from_environment()

        assert config.container_identifier == "iCloud.com.example.PrivateDatabase"
        assert config.user_id == "user-1"
        assert config.database == "private"
        assert config.cosmos_auth_method is CosmosAuthMethod.KEY
        assert config.use_test_identifier is True
        config.validate()

    def test_unknown_auth_method_defaults(self, monkeypatch):
        """An unknown auth method falls back to the default credential."""
        monkeypatch.setenv("PRIVATE_RECORD_COSMOS_AUTH_METHOD", "carrier-pigeon")
        monkeypatch.delenv("PRIVATE_RECORD_TESTING", raising=False)

        config = SyncConfig.from_environment()

        assert config.cosmos_auth_method is CosmosAuthMethod.DEFAULT_CREDENTIAL
        assert config.use_test_identifier is False


class TestFromFile:
    """Tests for YAML configuration."""

    def test_reads_section(self, tmp_path):
        """The record_sync section is loaded; unknown keys are ignored."""
        path = tmp_path / "settings.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "record_sync": {
                        "container_identifier": "container",
                        "user_id": "user-1",
                        "database": "private",
                        "cosmos_endpoint": "https://example.documents.azure.com/",
                        "cosmos_auth_method": "managed_identity",
                        "use_test_identifier": True,
                        "theme": "purple",
                    }
                }
            )
        )

        config = SyncConfig.from_file(path)

        assert config.container_identifier == "container"
        assert config.cosmos_auth_method is CosmosAuthMethod.MANAGED_IDENTITY
        assert config.use_test_identifier is True

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ('"false"', False),
            ('"no"', False),
            ('"0"', False),
            ('"yes"', True),
            ('"True"', True),
            ("false", False),
            ("true", True),
        ],
    )
    def test_use_test_identifier_quoted_values(self, tmp_path, raw, expected):
        """Quoted booleans are parsed the same way as the environment flag."""
        path = tmp_path / "settings.yaml"
        path.write_text(
            "record_sync:\n"
            "  container_identifier: container\n"
            "  user_id: user-1\n"
            f"  use_test_identifier: {raw}\n"
        )

        config = SyncConfig.from_file(path)

        assert config.use_test_identifier is expected

    def test_use_test_identifier_defaults_off(self, tmp_path):
        """Leaving the flag out selects the production record."""
        path = tmp_path / "settings.yaml"
        path.write_text("record_sync:\n  container_identifier: container\n  user_id: user-1\n")

        assert SyncConfig.from_file(path).use_test_identifier is False

    def test_missing_file(self, tmp_path):
        """A missing file is a configuration error."""
        with pytest.raises(ConfigurationError):
            SyncConfig.from_file(tmp_path / "nope.yaml")

    def test_missing_section(self, tmp_path):
        """A file without a record_sync section is rejected."""
        path = tmp_path / "settings.yaml"
        path.write_text("identity:\n  user_id: x\n")

        with pytest.raises(ConfigurationError) as exc_info:
            SyncConfig.from_file(path)

        assert exc_info.value.field == "record_sync"

    def test_invalid_yaml(self, tmp_path):
        """Unparseable YAML is a configuration error."""
        path = tmp_path / "settings.yaml"
        path.write_text("record_sync: [unclosed\n")

        with pytest.raises(ConfigurationError):
            SyncConfig.from_file(path)

    def test_bad_auth_method(self, tmp_path):
        """Unsupported auth methods in files are rejected."""
        path = tmp_path / "settings.yaml"
        path.write_text("record_sync:\n  cosmos_auth_method: telepathy\n")

        with pytest.raises(ConfigurationError) as exc_info:
            SyncConfig.from_file(path)

        assert exc_info.value.field == "cosmos_auth_method"


class TestValidate:
    """Tests for SyncConfig.validate."""

    @pytest.mark.parametrize(
        ("overrides", "field"),
        [
            ({"container_identifier": ""}, "container_identifier"),
            ({"user_id": ""}, "user_id"),
            ({"cosmos_endpoint": None}, "cosmos_endpoint"),
            ({"cosmos_auth_method": CosmosAuthMethod.KEY}, "cosmos_key"),
        ],
    )
    def test_missing_settings(self, overrides, field):
        """The first missing setting is named in the error."""
        settings = {
            "container_identifier": "container",
            "user_id": "user-1",
            "cosmos_endpoint": "https://example.documents.azure.com/",
        }
        settings.update(overrides)
        config = SyncConfig(**settings)

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()

        assert exc_info.value.field == field
