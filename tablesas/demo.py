"""Azure Table Storage 데모.

클라이언트 공개 API를 순서대로 호출하고 결과를 출력한다.

1. 고유한 이름의 Customers 테이블을 생성한다.
2. 기본 CRUD: merge upsert, 속성 병합, 키 조회.
3. SAS: stored access policy 생성, ad-hoc SAS와 stored policy SAS로
   각각 upsert/조회/삭제를 시도하고, 조회 전용 SAS의 거부를 확인한다.

STORAGE_CONNECTION_STRING이 없으면 로컬 에뮬레이터(Azurite)를 사용한다.

    python -m tablesas.demo --cleanup
"""
import argparse
import asyncio
import json
import logging
import sys
import uuid
from typing import Optional

from tablesas.config import Settings, settings as default_settings
from tablesas.exceptions import TableStorageError
from tablesas.models import AccessPolicy, Entity, SasCheckReport, TablePermission
from tablesas.services.account import EMULATOR_MARKER, resolve_account
from tablesas.services.policy import AccessPolicyManager
from tablesas.services.sas import default_ad_hoc_policy, generate_sas
from tablesas.services.scoped import exercise_sas
from tablesas.services.storage import TableStorageClient
from tablesas.services.table import TableHandle
from tablesas.utils.logging import configure_logging

logger = logging.getLogger(__name__)


class Customer(Entity):
    """이메일과 전화번호를 가진 고객 엔티티."""

    def __init__(
        self,
        partition_key: str,
        row_key: str,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> None:
        super().__init__(partition_key, row_key)
        if email is not None:
            self.email = email
        if phone_number is not None:
            self.phone_number = phone_number

    @property
    def email(self) -> Optional[str]:
        return self.get("Email")

    @email.setter
    def email(self, value: str) -> None:
        self["Email"] = value

    @property
    def phone_number(self) -> Optional[str]:
        return self.get("PhoneNumber")

    @phone_number.setter
    def phone_number(self, value: str) -> None:
        self["PhoneNumber"] = value

    @classmethod
    def from_entity(cls, entity: Entity) -> "Customer":
        customer = cls(entity.partition_key, entity.row_key)
        for name, value in entity.properties.items():
            customer[name] = value
        customer.etag = entity.etag
        customer.timestamp = entity.timestamp
        return customer


def _print_customer(customer: Customer) -> None:
    print(f"\t{customer.partition_key}\t{customer.row_key}\t{customer.email}\t{customer.phone_number}")


def _print_report(title: str, report: SasCheckReport) -> None:
    print(title)
    for operation in ("upsert", "read", "delete"):
        outcome = getattr(report, operation)
        print(f"\t{operation:<7}{outcome.value}")
    for operation, message in report.errors.items():
        print(f"\t{operation} error: {message}")
    print()


async def basic_data_operations(table: TableHandle) -> Customer:
    """merge upsert, 속성 병합, 키 조회를 수행한다."""
    customer = Customer("1", "Aamir Akhtar", email="aamiradvantage@gmail.com", phone_number="425-555-0101")

    # 없으면 삽입, 있으면 기존 엔티티와 병합
    await table.upsert_merge(customer)

    update = Customer("1", "Aamir Akhtar", phone_number="425-555-0105")
    await table.upsert_merge(update)

    stored = Customer.from_entity(await table.get_entity("1", "Aamir Akhtar"))
    print("Merged customer:")
    _print_customer(stored)
    print()
    return stored


async def sas_data_operations(
    table: TableHandle,
    config: Settings,
    wait_for_propagation: bool = False,
) -> dict[str, SasCheckReport]:
    """stored policy를 만들고 여러 SAS로 권한을 검사한다."""
    reports: dict[str, SasCheckReport] = {}
    policy_name = config.demo_policy_name

    manager = AccessPolicyManager(table, config)
    stored_policy = default_ad_hoc_policy(config=config)
    await manager.set_policy(policy_name, stored_policy, wait_for_propagation=wait_for_propagation)

    # ad-hoc SAS: 토큰에 모든 CRUD 권한을 직접 포함
    ad_hoc = generate_sas(table, policy=default_ad_hoc_policy(config=config))
    reports["ad_hoc"] = await exercise_sas(
        ad_hoc.uri,
        Customer("2", "Johnson Mary", email="mary@gmail.com", phone_number="425-555-0105"),
        config,
    )
    _print_report(f"Ad-hoc SAS ({ad_hoc.source_policy.permission_string}):", reports["ad_hoc"])

    # stored policy SAS: 제약 조건은 서버의 정책에서 결정
    stored = generate_sas(table, stored_policy_name=policy_name)
    print(f"SAS for table (stored access policy): ?{stored.query_token}")
    print()
    reports["stored_policy"] = await exercise_sas(
        stored.uri,
        Customer("3", "Wilson Joe", email="joe@contoso.com", phone_number="425-555-0106"),
        config,
    )
    _print_report(f"Stored-policy SAS ('{policy_name}'):", reports["stored_policy"])

    # 조회 전용 SAS: upsert는 거부되어야 한다
    read_only = generate_sas(
        table,
        policy=AccessPolicy(
            expiry=stored_policy.expiry,
            permissions=frozenset({TablePermission.QUERY}),
        ),
    )
    reports["read_only"] = await exercise_sas(
        read_only.uri,
        Customer("4", "Read Only"),
        config,
    )
    _print_report("Read-only SAS (r):", reports["read_only"])
    return reports


async def run_samples(
    client: TableStorageClient,
    config: Settings,
    cleanup: bool = False,
    wait_for_propagation: bool = False,
) -> None:
    """데모 전체 흐름을 실행한다."""
    print("Azure Table Storage - Basic Samples\n")

    table_name = f"{config.demo_table_prefix}{uuid.uuid4().hex[:5]}"
    table = await client.ensure_table(table_name)
    print(f"Table ready: {table_name}\n")

    try:
        await basic_data_operations(table)
        await sas_data_operations(table, config, wait_for_propagation)
    finally:
        if cleanup:
            await client.delete_table(table_name)


def _parse_args(argv: Optional[list[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tablesas-demo",
        description="Exercise table CRUD and SAS-scoped access against Azure Table Storage.",
    )
    parser.add_argument("--cleanup", action="store_true", help="Delete the demo table afterwards")
    parser.add_argument(
        "--wait-for-propagation",
        action="store_true",
        help="Wait for the stored access policy to propagate before using it",
    )
    parser.add_argument("--log-format", choices=("text", "json"), default=None)
    parser.add_argument("--log-level", default=None)
    return parser.parse_args(argv)


async def _main(args: argparse.Namespace, config: Settings) -> None:
    if not config.storage_connection_string and not config.table_storage_account:
        config = config.model_copy(update={"storage_connection_string": EMULATOR_MARKER})
    async with TableStorageClient(resolve_account(config), config) as client:
        await run_samples(client, config, args.cleanup, args.wait_for_propagation)


def main(argv: Optional[list[str]] = None) -> int:
    """콘솔 진입점. 성공 시 0, 클라이언트 오류 시 1을 반환한다."""
    args = _parse_args(argv)
    config = default_settings
    configure_logging(
        log_format=args.log_format or config.log_format,
        log_level=args.log_level or config.log_level,
        static_fields={"app": config.app_name, "version": config.app_version},
    )

    try:
        asyncio.run(_main(args, config))
    except TableStorageError as e:
        logger.error("Demo failed: %s", e.message)
        print(json.dumps(e.to_dict(), ensure_ascii=False, default=str), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
