"""
Tests for the console demo flow against the in-memory service.
"""
from tablesas.demo import Customer, _parse_args, basic_data_operations, run_samples, sas_data_operations
from tablesas.models import Entity, SasOutcome


class TestCustomer:
    """Tests for the Customer entity."""

    def test_properties_map_to_columns(self):
        customer = Customer("1", "Aamir Akhtar", email="aamiradvantage@gmail.com", phone_number="425-555-0101")

        assert customer.to_properties() == {
            "Email": "aamiradvantage@gmail.com",
            "PhoneNumber": "425-555-0101",
        }

    def test_unset_properties_are_omitted(self):
        assert Customer("1", "a", phone_number="425-555-0105").to_properties() == {"PhoneNumber": "425-555-0105"}

    def test_from_entity(self):
        entity = Entity("1", "a", {"Email": "e"}, etag="W/\"1\"")

        customer = Customer.from_entity(entity)

        assert customer.email == "e"
        assert customer.phone_number is None
        assert customer.etag == "W/\"1\""


class TestDemoFlow:
    """Tests for the demo operations."""

    async def test_basic_data_operations(self, table, capsys):
        customer = await basic_data_operations(table)

        assert customer.email == "aamiradvantage@gmail.com"
        assert customer.phone_number == "425-555-0105"
        assert "Aamir Akhtar" in capsys.readouterr().out

    async def test_sas_data_operations(self, table, fake_sdk, test_settings):
        reports = await sas_data_operations(table, test_settings)

        assert reports["ad_hoc"].allows_all
        assert reports["stored_policy"].allows_all
        assert reports["read_only"].upsert == SasOutcome.DENIED
        assert reports["read_only"].read == SasOutcome.ALLOWED
        assert "customer-policy" in fake_sdk.policies["Customers"]

    async def test_run_samples_with_cleanup(self, storage_client, fake_service, test_settings):
        await run_samples(storage_client, test_settings, cleanup=True)

        assert fake_service.tables == {}
        assert "delete_table" in fake_service.calls

    async def test_run_samples_keeps_table(self, storage_client, fake_service, test_settings):
        await run_samples(storage_client, test_settings)

        (table_name,) = fake_service.tables
        assert table_name.startswith("Customers")
        assert ("1", "Aamir Akhtar") in fake_service.tables[table_name]


def test_parse_args():
    args = _parse_args(["--cleanup", "--log-format", "json"])

    assert args.cleanup
    assert not args.wait_for_propagation
    assert args.log_format == "json"
    assert args.log_level is None
