"""
Tests for stored access policy management.
"""
from datetime import UTC, datetime, timedelta

import pytest
from azure.data.tables import TableAccessPolicy

from tablesas.config import Settings
from tablesas.exceptions import (
    AuthorizationDeniedError,
    InvalidArgumentError,
    StoredPolicyNotFoundError,
    TooManyStoredPoliciesError,
)
from tablesas.models import AccessPolicy
from tablesas.services import policy as policy_module
from tablesas.services.policy import MAX_STORED_POLICIES, AccessPolicyManager, validate_policy_name
from tablesas.services.table import TableHandle


def make_policy(permissions="raud", hours=1):
    return AccessPolicy(expiry=datetime.now(UTC) + timedelta(hours=hours), permissions=permissions)


@pytest.fixture
def manager(table, test_settings):
    return AccessPolicyManager(table, test_settings)


class TestAccessPolicyManager:
    """Tests for stored policy CRUD."""

    async def test_set_and_get(self, manager):
        policy = make_policy("ra")

        await manager.set_policy("customer-policy", policy)

        stored = await manager.get_policy("customer-policy")
        assert stored.permission_string == "ra"
        assert stored.expiry == policy.expiry

    async def test_set_replaces_same_name(self, manager):
        await manager.set_policy("customer-policy", make_policy("r"))
        await manager.set_policy("customer-policy", make_policy("raud"))

        policies = await manager.get_policies()
        assert list(policies) == ["customer-policy"]
        assert policies["customer-policy"].permission_string == "raud"

    async def test_read_modify_write_keeps_other_policies(self, manager):
        await manager.set_policy("readers", make_policy("r"))
        await manager.set_policy("writers", make_policy("au"))

        await manager.delete_policy("readers")

        assert list(await manager.get_policies()) == ["writers"]

    async def test_partial_policy_is_preserved(self, manager, fake_service):
        fake_service.policies["Customers"] = {"partial": TableAccessPolicy(permission="r")}

        await manager.set_policy("full", make_policy())

        policies = await manager.get_policies()
        assert policies["partial"] is None
        assert policies["full"].permission_string == "raud"
        assert fake_service.policies["Customers"]["partial"].permission == "r"

    async def test_missing_policy(self, manager):
        with pytest.raises(StoredPolicyNotFoundError):
            await manager.get_policy("nope")
        with pytest.raises(StoredPolicyNotFoundError):
            await manager.delete_policy("nope")

    async def test_policy_limit(self, manager, fake_service):
        for index in range(MAX_STORED_POLICIES):
            await manager.set_policy(f"policy{index}", make_policy())

        with pytest.raises(TooManyStoredPoliciesError) as exc_info:
            await manager.set_policy("one-too-many", make_policy())

        assert exc_info.value.details["limit"] == MAX_STORED_POLICIES
        assert len(fake_service.policies["Customers"]) == MAX_STORED_POLICIES

    async def test_clear_policies(self, manager):
        await manager.set_policy("readers", make_policy("r"))

        await manager.clear_policies()

        assert await manager.get_policies() == {}

    def test_sas_handle_is_refused(self, test_settings):
        handle = TableHandle(object(), "Customers", "http://x/Customers", sas_token="sig=x")

        with pytest.raises(AuthorizationDeniedError):
            AccessPolicyManager(handle, test_settings)

    async def test_wait_for_propagation(self, table, monkeypatch):
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)

        monkeypatch.setattr(policy_module.asyncio, "sleep", fake_sleep)
        manager = AccessPolicyManager(
            table, Settings(storage_connection_string=None, policy_propagation_seconds=30)
        )

        await manager.set_policy("customer-policy", make_policy())
        assert delays == []

        await manager.set_policy("customer-policy", make_policy(), wait_for_propagation=True)
        assert delays == [30]


@pytest.mark.parametrize("name", ["", "x" * 65, None])
def test_invalid_policy_names(name):
    with pytest.raises(InvalidArgumentError):
        validate_policy_name(name)
