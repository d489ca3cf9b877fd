"""
Container and account configuration.

The container identifier and account are supplied from outside the
controller, either directly, from environment variables, or from the
``record_sync`` section of a YAML settings file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import yaml

from .exceptions import ConfigurationError

DEFAULT_DATABASE = "private"
DEFAULT_SETTINGS_PATH = Path.home() / ".private_record_sync" / "settings.yaml"
ENV_PREFIX = "PRIVATE_RECORD_"


class CosmosAuthMethod(Enum):
    """Authentication method for Cosmos DB.

    KEY: Use account key (development only)
    DEFAULT_CREDENTIAL: Use Azure DefaultAzureCredential (recommended)
    MANAGED_IDENTITY: Use Azure Managed Identity explicitly
    SERVICE_PRINCIPAL: Use Service Principal with client_id/client_secret
    """

    KEY = "key"
    DEFAULT_CREDENTIAL = "default_credential"
    MANAGED_IDENTITY = "managed_identity"
    SERVICE_PRINCIPAL = "service_principal"


def _parse_bool(value: object) -> bool:
    # YAML hands over real booleans; quoted values and env vars arrive as text
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class SyncConfig:
    """Configuration for the private record store.

    Environment Variables:
        PRIVATE_RECORD_CONTAINER: Container identifier (the Cosmos database)
        PRIVATE_RECORD_DATABASE: Private database name (prefix of its zone containers)
        PRIVATE_RECORD_COSMOS_ENDPOINT: Cosmos DB endpoint URL
        PRIVATE_RECORD_COSMOS_KEY: Cosmos DB key (if using key auth)
        PRIVATE_RECORD_COSMOS_AUTH_METHOD: Auth method (default: default_credential)
        PRIVATE_RECORD_USER_ID: Account the private database belongs to
        PRIVATE_RECORD_TESTING: Use the test record identifier when truthy
        AZURE_TENANT_ID / AZURE_CLIENT_ID / AZURE_CLIENT_SECRET: Service principal

    Attributes:
        container_identifier: Identifier of the app's container
        user_id: Account whose private database is used
        database: Name of the private database
        cosmos_endpoint: Cosmos DB endpoint URL
        cosmos_auth_method: Authentication method
        cosmos_key: Cosmos DB key (only for KEY auth method)
        use_test_identifier: Select the test record instead of production
    """

    container_identifier: str
    user_id: str
    database: str = DEFAULT_DATABASE
    cosmos_endpoint: str | None = None
    cosmos_auth_method: CosmosAuthMethod = CosmosAuthMethod.DEFAULT_CREDENTIAL
    cosmos_key: str | None = None
    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None
    use_test_identifier: bool = False

    @classmethod
    def from_environment(cls) -> SyncConfig:
        """Create configuration from environment variables."""
        auth_method_str = os.environ.get(f"{ENV_PREFIX}COSMOS_AUTH_METHOD", "default_credential")
        try:
            auth_method = CosmosAuthMethod(auth_method_str.lower())
        except ValueError:
            auth_method = CosmosAuthMethod.DEFAULT_CREDENTIAL

        return cls(
            container_identifier=os.environ.get(f"{ENV_PREFIX}CONTAINER", ""),
            user_id=os.environ.get(f"{ENV_PREFIX}USER_ID", ""),
            database=os.environ.get(f"{ENV_PREFIX}DATABASE", DEFAULT_DATABASE),
            cosmos_endpoint=os.environ.get(f"{ENV_PREFIX}COSMOS_ENDPOINT"),
            cosmos_auth_method=auth_method,
            cosmos_key=os.environ.get(f"{ENV_PREFIX}COSMOS_KEY"),
            azure_tenant_id=os.environ.get("AZURE_TENANT_ID"),
            azure_client_id=os.environ.get("AZURE_CLIENT_ID"),
            azure_client_secret=os.environ.get("AZURE_CLIENT_SECRET"),
            use_test_identifier=_parse_bool(os.environ.get(f"{ENV_PREFIX}TESTING")),
        )

    @classmethod
    def from_file(cls, path: Path | None = None) -> SyncConfig:
        """Create configuration from a YAML settings file.

        ```yaml
        record_sync:
          container_identifier: "iCloud.com.example.PrivateDatabase"
          user_id: "user-abc123"
          database: "private"
          cosmos_endpoint: "https://example.documents.azure.com:443/"
          cosmos_auth_method: "default_credential"
          use_test_identifier: false
        ```

        Raises:
            ConfigurationError: If the file is missing or not valid YAML
        """
        path = path or DEFAULT_SETTINGS_PATH
        if not path.exists():
            raise ConfigurationError("settings", f"file not found: {path}")

        try:
            content = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError("settings", f"invalid YAML in {path}: {e}") from e

        section = content.get("record_sync")
        if not isinstance(section, dict):
            raise ConfigurationError("record_sync", f"section missing from {path}")

        auth_value = str(section.get("cosmos_auth_method", "default_credential")).lower()
        try:
            auth_method = CosmosAuthMethod(auth_value)
        except ValueError as e:
            raise ConfigurationError("cosmos_auth_method", f"unsupported value {auth_value!r}") from e

        return cls(
            container_identifier=str(section.get("container_identifier", "")),
            user_id=str(section.get("user_id", "")),
            database=str(section.get("database", DEFAULT_DATABASE)),
            cosmos_endpoint=section.get("cosmos_endpoint"),
            cosmos_auth_method=auth_method,
            cosmos_key=section.get("cosmos_key"),
            azure_tenant_id=section.get("azure_tenant_id"),
            azure_client_id=section.get("azure_client_id"),
            azure_client_secret=section.get("azure_client_secret"),
            use_test_identifier=_parse_bool(section.get("use_test_identifier")),
        )

    def validate(self) -> None:
        """Check the settings needed to reach the cloud store.

        Raises:
            ConfigurationError: On the first missing or inconsistent setting
        """
        if not self.container_identifier:
            raise ConfigurationError("container_identifier", "must be set")
        if not self.user_id:
            raise ConfigurationError("user_id", "must be set")
        if not self.cosmos_endpoint:
            raise ConfigurationError("cosmos_endpoint", "must be set")
        if self.cosmos_auth_method is CosmosAuthMethod.KEY and not self.cosmos_key:
            raise ConfigurationError("cosmos_key", "required for KEY authentication")
        if self.cosmos_auth_method is CosmosAuthMethod.SERVICE_PRINCIPAL and not all(
            [self.azure_tenant_id, self.azure_client_id, self.azure_client_secret]
        ):
            raise ConfigurationError(
                "azure_client_secret",
                "azure_tenant_id, azure_client_id, and azure_client_secret "
                "required for SERVICE_PRINCIPAL authentication",
            )
