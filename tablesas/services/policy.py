"""Stored access policy 관리 서비스.

테이블에 저장되는 이름 있는 접근 정책(signed identifier)을 관리한다.
서비스는 정책 집합을 통째로만 읽고 쓰므로 모든 변경은
read-modify-write로 수행된다:

1. 테이블의 전체 정책 집합을 읽는다.
2. 대상 이름의 항목을 추가/교체/삭제한다.
3. 전체 집합을 다시 쓴다.

같은 테이블에서 서로 다른 정책 이름을 동시에 수정하면 경쟁이 발생하고
전체 집합 기준으로 마지막 쓰기가 이긴다. 원자성이 필요하면 호출자가
외부에서 직렬화해야 한다. 클라이언트는 잠금을 사용하지 않는다.

새로 저장된 정책이 SAS 검증에 반영되기까지 최대 30초 정도가 걸릴 수 있다
(eventual consistency). ``wait_for_propagation=True``로 이 구간을 기다리거나,
그 사이 발생하는 AuthorizationDeniedError를 호출자가 재시도해야 한다.
"""
import asyncio
import logging
import re
from typing import Optional

from azure.core.exceptions import AzureError
from azure.data.tables import TableAccessPolicy

from tablesas.config import Settings, settings as default_settings
from tablesas.exceptions import (
    InvalidArgumentError,
    StoredPolicyNotFoundError,
    TooManyStoredPoliciesError,
    translate_azure_error,
)
from tablesas.models import AccessPolicy, as_utc
from tablesas.services.table import TableHandle

logger = logging.getLogger(__name__)

# 서비스가 허용하는 테이블당 최대 stored access policy 수
MAX_STORED_POLICIES = 5
POLICY_NAME_PATTERN = re.compile(r"^.{1,64}$")

SignedIdentifiers = dict[str, Optional[TableAccessPolicy]]


def validate_policy_name(name: str) -> str:
    """정책 이름(signed identifier)이 1~64자인지 검증한다."""
    if not isinstance(name, str) or not POLICY_NAME_PATTERN.match(name):
        raise InvalidArgumentError(
            "Stored access policy name must be 1-64 characters", "policy_name"
        )
    return name


def _normalized(policy: Optional[TableAccessPolicy]) -> Optional[TableAccessPolicy]:
    """다시 쓸 수 있도록 문자열 시각을 UTC datetime으로 정규화한다."""
    if policy is None:
        return None
    return TableAccessPolicy(
        start=as_utc(policy.start) if policy.start else None,
        expiry=as_utc(policy.expiry) if policy.expiry else None,
        permission=policy.permission,
    )


class AccessPolicyManager:
    """테이블 하나의 stored access policy CRUD를 담당한다.

    계정 credential을 소유한 TableHandle이 필요하다.
    SAS 핸들로는 정책을 읽거나 쓸 수 없다.
    """

    def __init__(self, table: TableHandle, config: Optional[Settings] = None) -> None:
        table.require_account("manage_access_policies")
        self._table = table
        self._settings = config or default_settings

    async def _read(self) -> SignedIdentifiers:
        try:
            identifiers = await self._table.table_client.get_table_access_policy()
        except AzureError as e:
            logger.error("Failed to read access policies on %s: %s", self._table.table_name, e)
            raise translate_azure_error(e, "get_access_policy", self._table.table_name) from e
        return {name: _normalized(policy) for name, policy in identifiers.items()}

    async def _write(self, identifiers: SignedIdentifiers) -> None:
        if len(identifiers) > MAX_STORED_POLICIES:
            raise TooManyStoredPoliciesError(
                f"A table supports at most {MAX_STORED_POLICIES} stored access policies",
                MAX_STORED_POLICIES,
            )
        try:
            await self._table.table_client.set_table_access_policy(signed_identifiers=identifiers)
        except AzureError as e:
            logger.error("Failed to write access policies on %s: %s", self._table.table_name, e)
            raise translate_azure_error(e, "set_access_policy", self._table.table_name) from e

    async def get_policies(self) -> dict[str, Optional[AccessPolicy]]:
        """테이블의 전체 정책 집합을 조회한다.

        Returns:
            정책 이름 → AccessPolicy. 만료/권한이 비어 있는 부분 정책은 None.
        """
        identifiers = await self._read()
        return {
            name: AccessPolicy.from_table_access_policy(policy)
            for name, policy in identifiers.items()
        }

    async def get_policy(self, name: str) -> AccessPolicy:
        """이름으로 정책 하나를 조회한다.

        Raises:
            StoredPolicyNotFoundError: 해당 이름의 정책이 없는 경우.
        """
        policies = await self.get_policies()
        policy = policies.get(validate_policy_name(name))
        if policy is None:
            raise StoredPolicyNotFoundError(
                f"Stored access policy '{name}' not found on {self._table.table_name}", name
            )
        return policy

    async def set_policy(
        self,
        name: str,
        policy: AccessPolicy,
        *,
        wait_for_propagation: bool = False,
    ) -> None:
        """정책을 추가하거나 같은 이름의 정책을 교체한다.

        전체 집합을 읽고 수정한 뒤 전체를 다시 쓴다 (부분 갱신 없음).

        Args:
            name: 정책 이름.
            policy: 저장할 정책.
            wait_for_propagation: True면 쓰기 후 전파 지연 구간만큼 대기한다.

        Raises:
            TooManyStoredPoliciesError: 테이블 정책이 5개를 넘게 되는 경우.
        """
        validate_policy_name(name)
        identifiers = await self._read()
        identifiers[name] = policy.to_table_access_policy()
        await self._write(identifiers)

        logger.info(
            "Stored access policy '%s' (%s, expires %s) on %s",
            name, policy.permission_string, policy.expiry.isoformat(), self._table.table_name,
        )
        if wait_for_propagation:
            await self.wait_for_propagation()

    async def delete_policy(self, name: str) -> None:
        """정책을 제거한다. 이 정책을 참조하는 SAS는 더 이상 유효하지 않다.

        Raises:
            StoredPolicyNotFoundError: 해당 이름의 정책이 없는 경우.
        """
        validate_policy_name(name)
        identifiers = await self._read()
        if name not in identifiers:
            raise StoredPolicyNotFoundError(
                f"Stored access policy '{name}' not found on {self._table.table_name}", name
            )
        del identifiers[name]
        await self._write(identifiers)
        logger.info("Deleted stored access policy '%s' on %s", name, self._table.table_name)

    async def clear_policies(self) -> None:
        """테이블의 모든 정책을 제거한다."""
        await self._write({})
        logger.info("Cleared stored access policies on %s", self._table.table_name)

    async def wait_for_propagation(self) -> None:
        """정책 변경이 SAS 검증에 반영될 때까지 대기한다 (취소 가능)."""
        delay = self._settings.policy_propagation_seconds
        if delay <= 0:
            return
        logger.info("Waiting %.0f seconds for access policies to propagate", delay)
        await asyncio.sleep(delay)
