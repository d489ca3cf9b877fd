"""
Tests for the Cosmos DB record store.

The Cosmos client is replaced with mocks, so these tests check the
document mapping, save policy translation and error mapping without
an Azure account. Live tests run only when an endpoint is configured.
"""

import os
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from azure.core import MatchConditions
from azure.core.exceptions import ClientAuthenticationError, ServiceRequestError
from azure.cosmos.exceptions import CosmosHttpResponseError

from private_record_sync import (
    ConfigurationError,
    CosmosAuthMethod,
    Record,
    RecordID,
    RecordStoreError,
    RecordStoreErrorCode,
    RecordSyncController,
    SavePolicy,
    SyncConfig,
)
from private_record_sync.store.cosmos import CosmosRecordStore, translate_cosmos_error


def _containers(*names: str):
    async def list_containers():
        for name in names:
            yield {"id": name}

    return list_containers


def _document(name: str, etag: str = '"etag-1"', record_name: str = "lastPerson") -> dict:
    return {
        "id": record_name,
        "owner": "user-1",
        "recordType": "Person",
        "fields": {"name": name},
        "_etag": etag,
    }


@pytest.fixture
def cosmos_container():
    """Mock Cosmos container for the default zone."""
    container = MagicMock()
    container.upsert_item = AsyncMock(side_effect=lambda body: {**body, "_etag": '"etag-2"'})
    container.create_item = AsyncMock(side_effect=lambda body: {**body, "_etag": '"etag-1"'})
    container.replace_item = AsyncMock(
        side_effect=lambda item, body, **kwargs: {**body, "_etag": '"etag-3"'}
    )
    container.read_item = AsyncMock(return_value=_document("Alice"))
    container.delete_item = AsyncMock(return_value=None)
    return container


@pytest.fixture
def cosmos_client(cosmos_container):
    """Mock Cosmos client whose database has the default private zone."""
    database = MagicMock()
    database.list_containers = _containers("private__defaultZone", "shared__defaultZone")
    database.get_container_client.return_value = cosmos_container
    client = MagicMock()
    client.get_database_client.return_value = database
    client.close = AsyncMock()
    return client


@pytest.fixture
def cosmos_store(cosmos_client):
    return CosmosRecordStore(
        client=cosmos_client,
        container_identifier="iCloud.com.example.PrivateDatabase",
        user_id="user-1",
    )


class TestErrorTranslation:
    """Tests for translate_cosmos_error."""

    @pytest.mark.parametrize(
        ("status", "code"),
        [
            (401, RecordStoreErrorCode.NOT_AUTHENTICATED),
            (403, RecordStoreErrorCode.PERMISSION_FAILURE),
            (404, RecordStoreErrorCode.UNKNOWN_ITEM),
            (409, RecordStoreErrorCode.SERVER_RECORD_CHANGED),
            (412, RecordStoreErrorCode.SERVER_RECORD_CHANGED),
            (413, RecordStoreErrorCode.LIMIT_EXCEEDED),
            (429, RecordStoreErrorCode.REQUEST_RATE_LIMITED),
            (503, RecordStoreErrorCode.SERVICE_UNAVAILABLE),
            (500, RecordStoreErrorCode.INTERNAL_ERROR),
        ],
    )
    def test_http_status(self, status, code):
        """HTTP status codes map onto store error codes."""
        error = translate_cosmos_error(CosmosHttpResponseError(status_code=status, message="x"))
        assert error.code is code
        assert isinstance(error.cause, CosmosHttpResponseError)

    def test_rate_limit_retry_after(self):
        """The server's retry-after hint is kept."""
        cosmos_error = CosmosHttpResponseError(status_code=429, message="Too many requests")
        cosmos_error.headers = {"x-ms-retry-after-ms": "1500"}

        error = translate_cosmos_error(cosmos_error)

        assert error.retry_after == 1.5

    @pytest.mark.parametrize(
        "exc",
        [
            ServiceRequestError("Name or service not known"),
            aiohttp.ClientConnectionError("Connection refused"),
        ],
    )
    def test_network_unavailable(self, exc):
        """Connection failures are network unavailable."""
        assert translate_cosmos_error(exc).code is RecordStoreErrorCode.NETWORK_UNAVAILABLE

    def test_credential_failure(self):
        """Credential failures mean no authenticated account."""
        error = translate_cosmos_error(ClientAuthenticationError(message="No token"))
        assert error.code is RecordStoreErrorCode.NOT_AUTHENTICATED

    def test_store_error_passthrough(self):
        """RecordStoreErrors are returned as they are."""
        original = RecordStoreError(RecordStoreErrorCode.ZONE_NOT_FOUND)
        assert translate_cosmos_error(original) is original

    def test_unexpected_exception(self):
        """Anything else becomes an internal error."""
        assert translate_cosmos_error(KeyError("id")).code is RecordStoreErrorCode.INTERNAL_ERROR


class TestCosmosRecordStore:
    """Tests for CosmosRecordStore operations."""

    @pytest.mark.asyncio
    async def test_list_zones(self, cosmos_store):
        """Only containers of the private database are zones."""
        zones = await cosmos_store.list_zones()

        assert [z.zone_name for z in zones] == ["_defaultZone"]
        assert zones[0].owner_name == "user-1"

    @pytest.mark.asyncio
    async def test_missing_database_is_bad_container(self, cosmos_store, cosmos_client):
        """A missing Cosmos database means the container identifier is wrong."""

        async def missing():
            raise CosmosHttpResponseError(status_code=404, message="Database not found")
            yield

        cosmos_client.get_database_client.return_value.list_containers = missing

        with pytest.raises(RecordStoreError) as exc_info:
            await cosmos_store.list_zones()

        assert exc_info.value.code is RecordStoreErrorCode.BAD_CONTAINER

    @pytest.mark.asyncio
    async def test_missing_default_zone_is_bad_database(self, cosmos_store, cosmos_client):
        """A database without its default zone container is misconfigured."""
        cosmos_client.get_database_client.return_value.list_containers = _containers(
            "shared__defaultZone"
        )

        with pytest.raises(RecordStoreError) as exc_info:
            await cosmos_store.list_zones()

        assert exc_info.value.code is RecordStoreErrorCode.BAD_DATABASE

    @pytest.mark.asyncio
    async def test_fetch_record(self, cosmos_store, cosmos_container):
        """Documents are read from the user's partition and mapped to records."""
        record = await cosmos_store.fetch_record(RecordID("lastPerson"))

        cosmos_container.read_item.assert_awaited_once_with(
            item="lastPerson", partition_key="user-1"
        )
        assert record.record_type == "Person"
        assert record["name"] == "Alice"
        assert record.change_tag == '"etag-1"'

    @pytest.mark.asyncio
    async def test_fetch_missing_record(self, cosmos_store, cosmos_container):
        """A 404 on read is UNKNOWN_ITEM."""
        cosmos_container.read_item.side_effect = CosmosHttpResponseError(
            status_code=404, message="Not found"
        )

        with pytest.raises(RecordStoreError) as exc_info:
            await cosmos_store.fetch_record(RecordID("lastPerson"))

        assert exc_info.value.code is RecordStoreErrorCode.UNKNOWN_ITEM

    @pytest.mark.asyncio
    async def test_fetch_network_down(self, cosmos_store, cosmos_container):
        """Transport failures surface as NETWORK_UNAVAILABLE."""
        cosmos_container.read_item.side_effect = ServiceRequestError("unreachable")

        with pytest.raises(RecordStoreError) as exc_info:
            await cosmos_store.fetch_record(RecordID("lastPerson"))

        assert exc_info.value.code is RecordStoreErrorCode.NETWORK_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_fetch_unknown_zone(self, cosmos_store):
        """Records in zones without a container fail with ZONE_NOT_FOUND."""
        with pytest.raises(RecordStoreError) as exc_info:
            await cosmos_store.fetch_record(RecordID("lastPerson", zone_name="Archive"))

        assert exc_info.value.code is RecordStoreErrorCode.ZONE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_zones_loaded_once(self, cosmos_store, cosmos_client, cosmos_container):
        """The zone listing is read on first use and reused afterwards."""
        database = cosmos_client.get_database_client.return_value
        database.list_containers = MagicMock(side_effect=_containers("private__defaultZone"))

        await cosmos_store.fetch_record(RecordID("lastPerson"))
        await cosmos_store.delete_record(RecordID("lastPerson"))

        assert database.list_containers.call_count == 1
        database.get_container_client.assert_called_with("private__defaultZone")

    @pytest.mark.asyncio
    async def test_failed_zone_load_is_retried(self, cosmos_store, cosmos_client):
        """A failed first load leaves the store unbound so the next call loads again."""
        database = cosmos_client.get_database_client.return_value
        database.list_containers = _containers("shared__defaultZone")

        with pytest.raises(RecordStoreError) as exc_info:
            await cosmos_store.fetch_record(RecordID("lastPerson"))
        assert exc_info.value.code is RecordStoreErrorCode.BAD_DATABASE

        database.list_containers = _containers("private__defaultZone")
        record = await cosmos_store.fetch_record(RecordID("lastPerson"))

        assert record["name"] == "Alice"

    @pytest.mark.asyncio
    async def test_save_all_keys_upserts(self, cosmos_store, cosmos_container):
        """ALL_KEYS saves are unconditional upserts."""
        record = Record("Person", RecordID("lastPerson"), {"name": "Bob"})

        saves, deletes = await cosmos_store.modify_records(
            [record], [], save_policy=SavePolicy.ALL_KEYS
        )

        cosmos_container.upsert_item.assert_awaited_once_with(
            body={
                "id": "lastPerson",
                "owner": "user-1",
                "recordType": "Person",
                "fields": {"name": "Bob"},
            }
        )
        assert saves[record.record_id]["name"] == "Bob"
        assert saves[record.record_id].change_tag == '"etag-2"'
        assert deletes == {}

    @pytest.mark.asyncio
    async def test_save_changed_keys_merges(self, cosmos_store, cosmos_container):
        """CHANGED_KEYS merges into the server document."""
        cosmos_container.read_item.return_value = {
            **_document("Alice"),
            "fields": {"name": "Alice", "age": 30},
        }
        record = Record("Person", RecordID("lastPerson"), {"name": "Bob"})

        saved = await cosmos_store.save_record(record, SavePolicy.CHANGED_KEYS)

        assert saved.fields == {"name": "Bob", "age": 30}

    @pytest.mark.asyncio
    async def test_save_if_unchanged_uses_etag(self, cosmos_store, cosmos_container):
        """IF_SERVER_RECORD_UNCHANGED replaces with an etag match condition."""
        record = Record("Person", RecordID("lastPerson"), {"name": "Bob"}, change_tag='"etag-1"')

        await cosmos_store.save_record(record)

        kwargs = cosmos_container.replace_item.call_args.kwargs
        assert kwargs["etag"] == '"etag-1"'
        assert kwargs["match_condition"] is MatchConditions.IfNotModified

    @pytest.mark.asyncio
    async def test_save_if_unchanged_new_record_creates(self, cosmos_store, cosmos_container):
        """A record without a change tag is created, failing if it already exists."""
        cosmos_container.create_item.side_effect = CosmosHttpResponseError(
            status_code=409, message="Conflict"
        )
        record = Record("Person", RecordID("lastPerson"), {"name": "Bob"})

        saves, _ = await cosmos_store.modify_records([record], [])

        assert saves[record.record_id].code is RecordStoreErrorCode.SERVER_RECORD_CHANGED

    @pytest.mark.asyncio
    async def test_per_item_failure_returned(self, cosmos_store, cosmos_container):
        """Item failures are returned in the result map, not raised."""
        cosmos_container.upsert_item.side_effect = CosmosHttpResponseError(
            status_code=413, message="Request entity too large"
        )
        record = Record("Person", RecordID("lastPerson"), {"name": "B" * 10})

        saves, _ = await cosmos_store.modify_records([record], [], save_policy=SavePolicy.ALL_KEYS)

        assert saves[record.record_id].code is RecordStoreErrorCode.LIMIT_EXCEEDED

    @pytest.mark.asyncio
    async def test_account_failure_raised(self, cosmos_store, cosmos_container):
        """When every item fails for an account reason, the request fails."""
        cosmos_container.upsert_item.side_effect = CosmosHttpResponseError(
            status_code=403, message="Forbidden"
        )
        record = Record("Person", RecordID("lastPerson"), {"name": "Bob"})

        with pytest.raises(RecordStoreError) as exc_info:
            await cosmos_store.modify_records([record], [], save_policy=SavePolicy.ALL_KEYS)

        assert exc_info.value.code is RecordStoreErrorCode.PERMISSION_FAILURE

    @pytest.mark.asyncio
    async def test_delete_record(self, cosmos_store, cosmos_container):
        """Deletes target the user's partition."""
        deleted = await cosmos_store.delete_record(RecordID("lastPerson"))

        cosmos_container.delete_item.assert_awaited_once_with(
            item="lastPerson", partition_key="user-1"
        )
        assert deleted == RecordID("lastPerson")

    @pytest.mark.asyncio
    async def test_delete_missing_record(self, cosmos_store, cosmos_container):
        """Deleting a missing document is UNKNOWN_ITEM."""
        cosmos_container.delete_item.side_effect = CosmosHttpResponseError(
            status_code=404, message="Not found"
        )

        with pytest.raises(RecordStoreError) as exc_info:
            await cosmos_store.delete_record(RecordID("lastPerson"))

        assert exc_info.value.code is RecordStoreErrorCode.UNKNOWN_ITEM

    @pytest.mark.asyncio
    async def test_close(self, cosmos_store, cosmos_client):
        """Closing the store closes the client."""
        async with cosmos_store:
            pass

        cosmos_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_controller_over_cosmos(self, cosmos_store, cosmos_container):
        """The controller saves and refreshes through the Cosmos store."""
        controller = RecordSyncController.create(cosmos_store)
        await controller.wait_until_ready()
        assert controller.last_person == "Alice"

        cosmos_container.read_item.return_value = _document("Bob", etag='"etag-2"')
        await controller.save_record("Bob")

        assert controller.last_person == "Bob"
        cosmos_container.upsert_item.assert_awaited_once()


class TestFromConfig:
    """Tests for building a store from configuration."""

    def test_incomplete_config_rejected(self):
        """Stores are not built from configuration missing an endpoint."""
        config = SyncConfig(container_identifier="c", user_id="u")

        with pytest.raises(ConfigurationError):
            CosmosRecordStore.from_config(config)

    @pytest.mark.asyncio
    async def test_key_auth(self, monkeypatch):
        """Key authentication passes the key straight to the client."""
        client_class = MagicMock()
        client_class.return_value.close = AsyncMock()
        monkeypatch.setattr("private_record_sync.store.cosmos.CosmosClient", client_class)
        config = SyncConfig(
            container_identifier="c",
            user_id="u",
            cosmos_endpoint="https://localhost:8081/",
            cosmos_auth_method=CosmosAuthMethod.KEY,
            cosmos_key="a2V5",
        )

        store = CosmosRecordStore.from_config(config)

        client_class.assert_called_once_with("https://localhost:8081/", credential="a2V5")
        assert store.container_identifier == "c"
        assert store.user_id == "u"
        await store.close()

    def test_service_principal_requires_secret(self):
        """Service principal auth needs tenant, client and secret."""
        config = SyncConfig(
            container_identifier="c",
            user_id="u",
            cosmos_endpoint="https://localhost:8081/",
            cosmos_auth_method=CosmosAuthMethod.SERVICE_PRINCIPAL,
            azure_tenant_id="tenant",
        )

        with pytest.raises(ConfigurationError):
            CosmosRecordStore.from_config(config)


@pytest.mark.live
@pytest.mark.skipif(
    not os.environ.get("PRIVATE_RECORD_COSMOS_ENDPOINT"),
    reason="PRIVATE_RECORD_COSMOS_ENDPOINT not set",
)
class TestLiveCosmos:
    """Round trip against a real Cosmos DB account."""

    @pytest.mark.asyncio
    async def test_write_and_read_back(self):
        """A random name written to the test record is read back."""
        import uuid

        config = SyncConfig.from_environment()
        async with CosmosRecordStore.from_config(config) as store:
            controller = RecordSyncController.create(store, use_test_identifier=True)
            await controller.wait_until_ready()

            random_name = str(uuid.uuid4())
            await controller.save_record(random_name)
            await controller.refresh_last_person()

            assert controller.last_person == random_name

            await controller.delete_last_person()
