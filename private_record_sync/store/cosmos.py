"""
Cosmos DB record store.

Maps one account's private database onto Azure Cosmos DB:

- The container identifier names the Cosmos database.
- Each zone of the private database is a Cosmos container named
  ``{database}_{zone_name}``, partitioned by ``/owner``.
- Each record is one document, partitioned by the account's user ID.

Document schema:
{
    "id": "{record_name}",
    "owner": "{user_id}",
    "recordType": "{record_type}",
    "fields": {...},
    "_etag": "..."  // server-managed, exposed as the record change tag
}

Zones and containers are never created here: schema management belongs
to whoever provisions the container.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp
from azure.core import MatchConditions
from azure.core.exceptions import (
    ClientAuthenticationError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import CosmosHttpResponseError
from azure.identity.aio import (
    ClientSecretCredential,
    DefaultAzureCredential,
    ManagedIdentityCredential,
)

from ..config import CosmosAuthMethod, SyncConfig
from ..exceptions import ConfigurationError, RecordStoreError, RecordStoreErrorCode
from ..records import DEFAULT_ZONE_NAME, Record, RecordID, RecordZone, SavePolicy
from .base import DeleteResults, RecordStore, SaveResults

logger = logging.getLogger(__name__)

# HTTP status codes returned by Cosmos DB
_STATUS_CODES = {
    401: RecordStoreErrorCode.NOT_AUTHENTICATED,
    403: RecordStoreErrorCode.PERMISSION_FAILURE,
    404: RecordStoreErrorCode.UNKNOWN_ITEM,
    409: RecordStoreErrorCode.SERVER_RECORD_CHANGED,
    412: RecordStoreErrorCode.SERVER_RECORD_CHANGED,
    413: RecordStoreErrorCode.LIMIT_EXCEEDED,
    429: RecordStoreErrorCode.REQUEST_RATE_LIMITED,
    503: RecordStoreErrorCode.SERVICE_UNAVAILABLE,
}

_ACCOUNT_LEVEL_CODES = {
    RecordStoreErrorCode.NOT_AUTHENTICATED,
    RecordStoreErrorCode.PERMISSION_FAILURE,
    RecordStoreErrorCode.NETWORK_UNAVAILABLE,
}


def translate_cosmos_error(error: Exception) -> RecordStoreError:
    """Translate a Cosmos / Azure client exception into a RecordStoreError.

    Args:
        error: Exception raised by the Cosmos client

    Returns:
        RecordStoreError carrying the original exception as its cause
    """
    if isinstance(error, RecordStoreError):
        return error

    if isinstance(error, ClientAuthenticationError):
        return RecordStoreError(
            RecordStoreErrorCode.NOT_AUTHENTICATED, str(error.message), cause=error
        )

    if isinstance(error, CosmosHttpResponseError):
        code = _STATUS_CODES.get(error.status_code or 0, RecordStoreErrorCode.INTERNAL_ERROR)
        retry_after = None
        if code is RecordStoreErrorCode.REQUEST_RATE_LIMITED:
            headers = getattr(error, "headers", None) or {}
            retry_ms = headers.get("x-ms-retry-after-ms")
            if retry_ms is not None:
                retry_after = float(retry_ms) / 1000.0
        return RecordStoreError(code, str(error.message), retry_after=retry_after, cause=error)

    if isinstance(error, (ServiceRequestError, aiohttp.ClientConnectionError)):
        return RecordStoreError(RecordStoreErrorCode.NETWORK_UNAVAILABLE, str(error), cause=error)

    if isinstance(error, (ServiceResponseError, aiohttp.ClientError)):
        return RecordStoreError(RecordStoreErrorCode.NETWORK_FAILURE, str(error), cause=error)

    return RecordStoreError(RecordStoreErrorCode.INTERNAL_ERROR, str(error), cause=error)


def _get_credential(config: SyncConfig) -> Any:
    """Get the appropriate credential based on auth method.

    Raises:
        ConfigurationError: If the credential settings are incomplete
    """
    auth_method = config.cosmos_auth_method

    if auth_method is CosmosAuthMethod.KEY:
        if not config.cosmos_key:
            raise ConfigurationError("cosmos_key", "required for KEY authentication")
        return config.cosmos_key

    if auth_method is CosmosAuthMethod.DEFAULT_CREDENTIAL:
        return DefaultAzureCredential()

    if auth_method is CosmosAuthMethod.MANAGED_IDENTITY:
        # If client_id is provided, use user-assigned managed identity
        if config.azure_client_id:
            return ManagedIdentityCredential(client_id=config.azure_client_id)
        return ManagedIdentityCredential()

    if auth_method is CosmosAuthMethod.SERVICE_PRINCIPAL:
        if not all([config.azure_tenant_id, config.azure_client_id, config.azure_client_secret]):
            raise ConfigurationError(
                "azure_client_secret",
                "azure_tenant_id, azure_client_id, and azure_client_secret "
                "required for SERVICE_PRINCIPAL authentication",
            )
        return ClientSecretCredential(
            tenant_id=config.azure_tenant_id,  # type: ignore[arg-type]
            client_id=config.azure_client_id,  # type: ignore[arg-type]
            client_secret=config.azure_client_secret,  # type: ignore[arg-type]
        )

    raise ConfigurationError("cosmos_auth_method", f"unsupported method {auth_method}")


class CosmosRecordStore(RecordStore):
    """Private database stored in Azure Cosmos DB.

    Example:
        >>> config = SyncConfig.from_environment()
        >>> async with CosmosRecordStore.from_config(config) as store:
        ...     zones = await store.list_zones()
    """

    def __init__(
        self,
        client: CosmosClient,
        container_identifier: str,
        user_id: str,
        database: str = "private",
        credential: Any = None,
    ) -> None:
        """Initialize the store around an existing Cosmos client.

        Args:
            client: Async Cosmos client
            container_identifier: Name of the Cosmos database
            user_id: Account the private database belongs to
            database: Name of the private database (zone container prefix)
            credential: Credential to close together with the client, if any
        """
        self._client = client
        self.container_identifier = container_identifier
        self.user_id = user_id
        self.database = database
        self._credential = credential
        self._database_proxy: DatabaseProxy | None = None
        self._zone_names: set[str] = set()

    @classmethod
    def from_config(cls, config: SyncConfig) -> CosmosRecordStore:
        """Create a store from configuration.

        Raises:
            ConfigurationError: If the configuration is incomplete
        """
        config.validate()
        credential = _get_credential(config)
        client = CosmosClient(config.cosmos_endpoint, credential=credential)  # type: ignore[arg-type]
        return cls(
            client=client,
            container_identifier=config.container_identifier,
            user_id=config.user_id,
            database=config.database,
            credential=credential if not isinstance(credential, str) else None,
        )

    def _container_name(self, zone_name: str) -> str:
        return f"{self.database}_{zone_name}"

    async def _load_zones(self) -> set[str]:
        """Read the zone containers of the private database.

        Raises:
            RecordStoreError: BAD_CONTAINER when the Cosmos database is missing,
                BAD_DATABASE when the default zone container is missing
        """
        database = self._client.get_database_client(self.container_identifier)
        prefix = f"{self.database}_"
        zone_names: set[str] = set()
        try:
            async for container in database.list_containers():
                container_id = container["id"]
                if container_id.startswith(prefix):
                    zone_names.add(container_id[len(prefix) :])
        except CosmosHttpResponseError as e:
            if e.status_code == 404:
                raise RecordStoreError(
                    RecordStoreErrorCode.BAD_CONTAINER,
                    f"Container not found: {self.container_identifier}",
                    cause=e,
                ) from e
            raise translate_cosmos_error(e) from e
        except Exception as e:
            raise translate_cosmos_error(e) from e

        if DEFAULT_ZONE_NAME not in zone_names:
            raise RecordStoreError(
                RecordStoreErrorCode.BAD_DATABASE,
                f"Database {self.database!r} has no default zone in {self.container_identifier}",
            )

        self._zone_names = zone_names
        return zone_names

    async def _database(self) -> DatabaseProxy:
        """Return the database proxy, loading the zones on first use."""
        database = self._database_proxy
        if database is None:
            await self._load_zones()
            database = self._client.get_database_client(self.container_identifier)
            self._database_proxy = database
        return database

    async def _zone_container(self, record_id: RecordID) -> ContainerProxy:
        database = await self._database()
        if record_id.zone_name not in self._zone_names:
            raise RecordStoreError(
                RecordStoreErrorCode.ZONE_NOT_FOUND, f"Zone not found: {record_id.zone_name}"
            )
        return database.get_container_client(self._container_name(record_id.zone_name))

    def _to_document(self, record: Record) -> dict[str, Any]:
        return {
            "id": record.record_id.record_name,
            "owner": self.user_id,
            "recordType": record.record_type,
            "fields": dict(record.fields),
        }

    def _from_document(self, document: dict[str, Any], zone_name: str) -> Record:
        return Record(
            record_type=document.get("recordType", ""),
            record_id=RecordID(record_name=document["id"], zone_name=zone_name),
            fields=dict(document.get("fields") or {}),
            change_tag=document.get("_etag"),
        )

    # =========================================================================
    # RecordStore
    # =========================================================================

    async def modify_records(
        self,
        saving: list[Record],
        deleting: list[RecordID],
        save_policy: SavePolicy = SavePolicy.IF_SERVER_RECORD_UNCHANGED,
    ) -> tuple[SaveResults, DeleteResults]:
        # Function-level failures: account, network, container
        await self._database()

        save_results: SaveResults = {}
        for record in saving:
            try:
                save_results[record.record_id] = await self._save_one(record, save_policy)
            except RecordStoreError as e:
                save_results[record.record_id] = e
            except Exception as e:
                save_results[record.record_id] = translate_cosmos_error(e)

        delete_results: DeleteResults = {}
        for record_id in deleting:
            try:
                delete_results[record_id] = await self._delete_one(record_id)
            except RecordStoreError as e:
                delete_results[record_id] = e
            except Exception as e:
                delete_results[record_id] = translate_cosmos_error(e)

        # A request in which every item failed for the same account-level
        # reason is a function-level failure, not a per-item one
        results = [*save_results.values(), *delete_results.values()]
        failures = [r for r in results if isinstance(r, RecordStoreError)]
        if failures and len(failures) == len(results):
            first = failures[0]
            if first.code in _ACCOUNT_LEVEL_CODES and all(f.code is first.code for f in failures):
                raise first

        return save_results, delete_results

    async def _save_one(self, record: Record, save_policy: SavePolicy) -> Record:
        container = await self._zone_container(record.record_id)
        zone_name = record.record_id.zone_name
        document = self._to_document(record)

        if save_policy is SavePolicy.ALL_KEYS:
            saved = await container.upsert_item(body=document)
        elif save_policy is SavePolicy.CHANGED_KEYS:
            try:
                existing = await container.read_item(
                    item=document["id"], partition_key=self.user_id
                )
            except CosmosHttpResponseError as e:
                if e.status_code != 404:
                    raise
                existing = None
            if existing is not None:
                merged_fields = dict(existing.get("fields") or {})
                merged_fields.update(document["fields"])
                document["fields"] = merged_fields
            saved = await container.upsert_item(body=document)
        elif record.change_tag is None:
            saved = await container.create_item(body=document)
        else:
            saved = await container.replace_item(
                item=document["id"],
                body=document,
                etag=record.change_tag,
                match_condition=MatchConditions.IfNotModified,
            )

        logger.debug(f"Saved record {record.record_id} to {self._container_name(zone_name)}")
        return self._from_document(saved, zone_name)

    async def _delete_one(self, record_id: RecordID) -> RecordID:
        container = await self._zone_container(record_id)
        await container.delete_item(item=record_id.record_name, partition_key=self.user_id)
        return record_id

    async def fetch_record(self, record_id: RecordID) -> Record:
        try:
            container = await self._zone_container(record_id)
            document = await container.read_item(
                item=record_id.record_name, partition_key=self.user_id
            )
        except CosmosHttpResponseError as e:
            if e.status_code == 404:
                raise RecordStoreError.unknown_item(record_id) from e
            raise translate_cosmos_error(e) from e
        except RecordStoreError:
            raise
        except Exception as e:
            raise translate_cosmos_error(e) from e
        return self._from_document(document, record_id.zone_name)

    async def delete_record(self, record_id: RecordID) -> RecordID:
        try:
            return await self._delete_one(record_id)
        except CosmosHttpResponseError as e:
            if e.status_code == 404:
                raise RecordStoreError.unknown_item(record_id) from e
            raise translate_cosmos_error(e) from e
        except RecordStoreError:
            raise
        except Exception as e:
            raise translate_cosmos_error(e) from e

    async def list_zones(self) -> list[RecordZone]:
        zone_names = await self._load_zones()
        return [RecordZone(zone_name=name, owner_name=self.user_id) for name in sorted(zone_names)]

    async def close(self) -> None:
        """Close the Cosmos client and any credential it owns."""
        await self._client.close()
        if self._credential is not None:
            await self._credential.close()
            self._credential = None
        self._database_proxy = None
        self._zone_names = set()
