"""
Shared fixtures for the table client tests.

The async Azure SDK clients are replaced by an in-memory fake that keeps
one shared table service per test. SAS-scoped fake clients enforce the
token's permissions (sp), expiry (se) and stored policy reference (si)
the way the service does, so permission tests run offline. SAS signing
itself still goes through the real SDK.
"""
import asyncio
import uuid
from datetime import UTC, datetime
from typing import Any, Optional
from urllib.parse import parse_qs

import pytest
from azure.core import MatchConditions
from azure.core.exceptions import (
    HttpResponseError,
    ResourceNotFoundError,
    ServiceRequestError,
)
from azure.data.tables import TableAccessPolicy, TableTransactionError, UpdateMode

from tablesas.config import Settings
from tablesas.models import as_utc
from tablesas.services import scoped, storage
from tablesas.services.account import parse_connection_string


def http_error(cls, status: int, message: str) -> HttpResponseError:
    """Build an SDK error carrying an HTTP status code."""
    error = cls(message=message)
    error.status_code = status
    return error


class FakeEntity(dict):
    """Stand-in for azure.data.tables.TableEntity (dict + metadata)."""

    def __init__(self, data: dict, metadata: dict):
        super().__init__(data)
        self._metadata = metadata

    @property
    def metadata(self) -> dict:
        return self._metadata


class FakeTableService:
    """In-memory table service shared by every fake client in a test."""

    def __init__(self):
        self.tables: dict[str, dict[tuple[str, str], dict]] = {}
        self.policies: dict[str, dict[str, Optional[TableAccessPolicy]]] = {}
        self.reachable = True
        self.fail_next: Optional[Exception] = None
        self.calls: list[str] = []

    def record(self, operation: str) -> None:
        self.calls.append(operation)
        if not self.reachable:
            raise ServiceRequestError("Connection refused")
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

    def authorize(self, table_name: str, sas: Optional[str], needed: str) -> None:
        """Reject a SAS request the way the service does (403)."""
        if sas is None:
            return
        params = parse_qs(sas)
        if "tn" in params and params["tn"][0].lower() != table_name.lower():
            raise http_error(HttpResponseError, 403, "AuthorizationResourceTypeMismatch")

        if "si" in params:
            policy = self.policies.get(table_name, {}).get(params["si"][0])
            if policy is None:
                raise http_error(HttpResponseError, 403, "AuthenticationFailed: signed identifier not found")
            permission, expiry = policy.permission or "", policy.expiry
        else:
            permission = params.get("sp", [""])[0]
            expiry = params.get("se", [None])[0]

        if expiry is None or as_utc(expiry) <= datetime.now(UTC):
            raise http_error(HttpResponseError, 403, "AuthenticationFailed: signature expired")
        if not set(needed) <= set(permission):
            raise http_error(HttpResponseError, 403, "AuthorizationPermissionMismatch")


class FakeTableClient:
    """In-memory stand-in for azure.data.tables.aio.TableClient."""

    def __init__(self, service: FakeTableService, table_name: str, sas: Optional[str] = None):
        self.service = service
        self.table_name = table_name
        self.sas = sas
        self.closed = False

    def _rows(self) -> dict[tuple[str, str], dict]:
        if self.table_name not in self.service.tables:
            raise http_error(ResourceNotFoundError, 404, "TableNotFound")
        return self.service.tables[self.table_name]

    async def upsert_entity(self, entity: dict, mode: UpdateMode = UpdateMode.MERGE, **kwargs: Any) -> dict:
        self.service.record(f"upsert_{mode.value}")
        self.service.authorize(self.table_name, self.sas, "au")
        rows = self._rows()
        key = (entity["PartitionKey"], entity["RowKey"])
        data = dict(entity)
        if mode == UpdateMode.MERGE and key in rows:
            data = {**rows[key]["data"], **data}
        etag = f"W/\"datetime'{uuid.uuid4().hex}'\""
        now = datetime.now(UTC)
        rows[key] = {"data": data, "etag": etag, "timestamp": now}
        return {"etag": etag, "date": now}

    async def get_entity(self, partition_key: str, row_key: str, **kwargs: Any) -> FakeEntity:
        self.service.record("get_entity")
        self.service.authorize(self.table_name, self.sas, "r")
        row = self._rows().get((partition_key, row_key))
        if row is None:
            raise http_error(ResourceNotFoundError, 404, "ResourceNotFound")
        return FakeEntity(row["data"], {"etag": row["etag"], "timestamp": row["timestamp"]})

    async def submit_transaction(self, operations: list, **kwargs: Any) -> list[dict]:
        """Single-request batch. Deletes report a missing entity as 404."""
        self.service.record("submit_transaction")
        # hand control to other tasks before the service applies the batch
        await asyncio.sleep(0)
        rows = self._rows()
        results = []
        for index, (kind, entity, *rest) in enumerate(operations):
            if kind != "delete":
                raise NotImplementedError(f"fake transaction does not support '{kind}'")
            self.service.authorize(self.table_name, self.sas, "d")
            options = rest[0] if rest else {}
            key = (entity["PartitionKey"], entity["RowKey"])
            row = rows.get(key)
            if row is None:
                raise http_error(TableTransactionError, 404, f"{index}:ResourceNotFound")
            if options.get("match_condition") == MatchConditions.IfNotModified and options.get("etag") != row["etag"]:
                raise http_error(TableTransactionError, 412, f"{index}:UpdateConditionNotSatisfied")
            del rows[key]
            results.append({})
        return results

    def query_entities(self, query_filter: str, parameters: Optional[dict] = None, **kwargs: Any):
        return self._iterate((parameters or {}).get("pk"))

    def list_entities(self, **kwargs: Any):
        return self._iterate(None)

    async def _iterate(self, partition_key: Optional[str]):
        self.service.record("query_entities")
        self.service.authorize(self.table_name, self.sas, "r")
        for (pk, _), row in sorted(self._rows().items()):
            if partition_key is None or pk == partition_key:
                yield FakeEntity(row["data"], {"etag": row["etag"], "timestamp": row["timestamp"]})

    async def get_table_access_policy(self, **kwargs: Any) -> dict:
        self.service.record("get_table_access_policy")
        if self.sas is not None:
            raise http_error(HttpResponseError, 403, "AuthorizationFailure")
        self._rows()
        return dict(self.service.policies.get(self.table_name, {}))

    async def set_table_access_policy(self, signed_identifiers: dict, **kwargs: Any) -> None:
        self.service.record("set_table_access_policy")
        if self.sas is not None:
            raise http_error(HttpResponseError, 403, "AuthorizationFailure")
        self._rows()
        self.service.policies[self.table_name] = dict(signed_identifiers)

    async def close(self) -> None:
        self.closed = True


class FakeTableServiceClient:
    """In-memory stand-in for azure.data.tables.aio.TableServiceClient."""

    def __init__(self, service: FakeTableService, endpoint: str, credential: Any = None, **kwargs: Any):
        self.service = service
        self.endpoint = endpoint
        self.credential = credential
        self.options = kwargs
        self.closed = False

    async def create_table_if_not_exists(self, table_name: str) -> FakeTableClient:
        self.service.record("create_table_if_not_exists")
        self.service.tables.setdefault(table_name, {})
        return FakeTableClient(self.service, table_name)

    def get_table_client(self, table_name: str) -> FakeTableClient:
        return FakeTableClient(self.service, table_name)

    async def delete_table(self, table_name: str) -> None:
        self.service.record("delete_table")
        self.service.tables.pop(table_name, None)
        self.service.policies.pop(table_name, None)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_service():
    """Fresh in-memory table service."""
    return FakeTableService()


@pytest.fixture
def test_settings():
    """Settings with no propagation wait and the emulator account."""
    return Settings(
        storage_connection_string="UseDevelopmentStorage=true",
        table_storage_account=None,
        policy_propagation_seconds=0,
        azure_retry_total=0,
    )


@pytest.fixture
def account():
    """Well-known storage emulator account."""
    return parse_connection_string("UseDevelopmentStorage=true")


@pytest.fixture
def fake_sdk(monkeypatch, fake_service):
    """Route every SDK client constructed by the library to the fake service."""
    monkeypatch.setattr(
        storage,
        "TableServiceClient",
        lambda endpoint, credential=None, **kwargs: FakeTableServiceClient(
            fake_service, endpoint, credential, **kwargs
        ),
    )
    monkeypatch.setattr(
        scoped,
        "TableClient",
        lambda endpoint, table_name, credential, **kwargs: FakeTableClient(
            fake_service, table_name, sas=credential.signature
        ),
    )
    return fake_service


@pytest.fixture
def storage_client(fake_sdk, account, test_settings):
    """TableStorageClient backed by the fake service."""
    return storage.TableStorageClient(account, test_settings)


@pytest.fixture
async def table(storage_client):
    """Privileged handle to an existing Customers table."""
    return await storage_client.ensure_table("Customers")
