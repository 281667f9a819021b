"""Azure Table Storage 클라이언트 (비동기).

계정 하나에 바인딩된 최상위 핸들이다. 테이블을 이름으로 생성/조회하고
TableHandle을 반환한다. azure.data.tables.aio를 사용하여 Non-blocking I/O를 제공한다.

계정 키가 있으면 SharedKey(AzureNamedKeyCredential)로, 없으면
Azure Identity credential로 인증한다.
"""
import logging
import re
from functools import lru_cache
from typing import Any, Optional

from azure.core.exceptions import AzureError, ServiceRequestError, ServiceResponseError
from azure.data.tables.aio import TableClient, TableServiceClient

from tablesas.config import Settings, settings as default_settings
from tablesas.exceptions import (
    ConfigurationError,
    InvalidTableNameError,
    ServiceUnavailableError,
    translate_azure_error,
)
from tablesas.models import StorageAccount
from tablesas.services.account import resolve_account
from tablesas.services.credential import get_table_credential
from tablesas.services.table import TableHandle

logger = logging.getLogger(__name__)

TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9]{2,62}$")


def validate_table_name(table_name: str) -> str:
    """테이블 이름이 서비스 규칙(영문자 시작, 영숫자 3~63자)을 따르는지 검증한다.

    Raises:
        InvalidTableNameError: 규칙 위반 시.
    """
    if not isinstance(table_name, str) or not TABLE_NAME_PATTERN.match(table_name):
        raise InvalidTableNameError(
            f"Table name '{table_name}' must be 3-63 alphanumeric characters "
            "and start with a letter",
            table_name,
        )
    if table_name.lower() == "tables":
        raise InvalidTableNameError("'tables' is a reserved table name", table_name)
    return table_name


class TableStorageClient:
    """계정 하나에 대한 비동기 테이블 클라이언트.

    Attributes:
        account: 파싱된 계정 정보 (불변, 동시 작업 간 공유 가능).
        table_service_client: 내부 SDK 서비스 클라이언트.
    """

    def __init__(self, account: StorageAccount, config: Optional[Settings] = None) -> None:
        """계정 credential로 비동기 TableServiceClient를 초기화한다.

        Raises:
            ConfigurationError: SDK가 엔드포인트나 credential을 거부한 경우.
        """
        self.account = account
        self._settings = config or default_settings

        credential = get_table_credential(account, self._settings)
        # SharedKey credential은 세션이 없으므로 identity credential만 닫는다
        self._identity_credential = None if account.has_key else credential

        try:
            self.table_service_client = TableServiceClient(
                endpoint=account.table_endpoint,
                credential=credential,
                retry_total=self._settings.azure_retry_total,
                retry_backoff_factor=self._settings.azure_retry_backoff_factor,
                connection_timeout=self._settings.connection_timeout,
                read_timeout=self._settings.read_timeout,
            )
            logger.info("Initialized async Table Storage client for %s", account.account_name)
        except ValueError as e:
            logger.error("Failed to initialize Table Storage client: %s", e)
            raise ConfigurationError(
                f"Invalid table endpoint or credential for account '{account.account_name}': {e}"
            ) from e

    def _handle(self, table_client: TableClient, table_name: str) -> TableHandle:
        return TableHandle(
            table_client,
            table_name,
            self.account.table_url(table_name),
            account=self.account,
        )

    async def ensure_table(self, table_name: str) -> TableHandle:
        """테이블이 없으면 생성하고 핸들을 반환한다 (멱등).

        이미 존재하는 테이블은 오류가 아닌 성공으로 처리한다.

        Args:
            table_name: 테이블 이름.

        Returns:
            계정 credential을 소유한 TableHandle.

        Raises:
            InvalidTableNameError: 이름 규칙 위반.
            ServiceUnavailableError: 서비스(에뮬레이터 포함)에 연결할 수 없는 경우.
                환경 전제 조건 문제이므로 재시도하지 않는다.
        """
        validate_table_name(table_name)
        try:
            table_client = await self.table_service_client.create_table_if_not_exists(table_name)
        except (ServiceRequestError, ServiceResponseError) as e:
            hint = (
                " If you are running with the default configuration please make sure "
                "the storage emulator (Azurite) is started, then retry."
                if self.account.is_emulator
                else ""
            )
            logger.error("Table service unreachable at %s: %s", self.account.table_endpoint, e)
            raise ServiceUnavailableError(
                f"Cannot reach table service at {self.account.table_endpoint}.{hint}",
                self.account.table_endpoint,
            ) from e
        except AzureError as e:
            logger.error("Failed to ensure table '%s': %s", table_name, e)
            raise translate_azure_error(e, "ensure_table", table_name) from e

        logger.info("Ensured table exists: %s", table_name)
        return self._handle(table_client, table_name)

    def get_table(self, table_name: str) -> TableHandle:
        """원격 호출 없이 기존 테이블의 핸들을 반환한다."""
        validate_table_name(table_name)
        return self._handle(self.table_service_client.get_table_client(table_name), table_name)

    async def delete_table(self, table_name: str) -> None:
        """테이블이 있으면 삭제한다. 없는 테이블은 무시된다."""
        validate_table_name(table_name)
        try:
            await self.table_service_client.delete_table(table_name)
        except AzureError as e:
            logger.error("Failed to delete table '%s': %s", table_name, e)
            raise translate_azure_error(e, "delete_table", table_name) from e
        logger.info("Deleted table: %s", table_name)

    async def close(self) -> None:
        """SDK 세션과 identity credential을 닫는다."""
        await self.table_service_client.close()
        if self._identity_credential is not None:
            await self._identity_credential.close()

    async def __aenter__(self) -> "TableStorageClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


# ------------------------------------------------------------------
# Singleton
# ------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_storage_client() -> TableStorageClient:
    """모듈 설정으로 만든 TableStorageClient 싱글턴을 반환한다."""
    return TableStorageClient(resolve_account(default_settings), default_settings)
