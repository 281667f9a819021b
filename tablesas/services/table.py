"""테이블 핸들과 엔티티 작업.

하나의 원격 테이블에 바인딩된 핸들이다. 핸들은 계정 credential 또는
SAS 토큰 중 정확히 하나만 소유한다. 같은 테이블에 대한 권한 있는 핸들과
SAS 핸들이 공존할 수 있으며 로컬 상태를 공유하지 않는다.

모든 SDK 예외는 경계에서 tablesas.exceptions의 명명된 종류로 변환된다.
클라이언트는 암묵적으로 재시도하지 않는다.
"""
import logging
from collections.abc import AsyncIterator
from typing import Any, Optional

from azure.core import MatchConditions
from azure.core.exceptions import AzureError
from azure.data.tables import TableTransactionError, UpdateMode
from azure.data.tables.aio import TableClient

from tablesas.exceptions import (
    AuthorizationDeniedError,
    EntityNotFoundError,
    InvalidArgumentError,
    NotFoundError,
    PreconditionFailedError,
    TableStorageError,
    translate_azure_error,
)
from tablesas.models import PARTITION_KEY, Entity, StorageAccount, TableEntityLike, validate_key

logger = logging.getLogger(__name__)


class TableHandle:
    """원격 테이블 하나에 대한 비동기 핸들.

    Attributes:
        table_name: 테이블 이름.
        url: 테이블 리소스 URI (SAS 쿼리 제외).
    """

    def __init__(
        self,
        table_client: TableClient,
        table_name: str,
        url: str,
        *,
        account: Optional[StorageAccount] = None,
        sas_token: Optional[str] = None,
    ) -> None:
        if (account is None) == (sas_token is None):
            raise InvalidArgumentError(
                "A table handle needs exactly one of account credentials or a SAS token",
                "credential",
            )
        self._client = table_client
        self.table_name = table_name
        self.url = url
        self._account = account
        self._sas_token = sas_token

    @property
    def table_client(self) -> TableClient:
        """내부 SDK 클라이언트."""
        return self._client

    @property
    def is_sas_scoped(self) -> bool:
        return self._sas_token is not None

    def require_account(self, operation: str) -> StorageAccount:
        """계정 credential이 필요한 작업에서 계정 정보를 반환한다.

        Raises:
            AuthorizationDeniedError: SAS 전용 핸들인 경우.
        """
        if self._account is None:
            raise AuthorizationDeniedError(
                f"{operation} requires account credentials; this handle is SAS-scoped",
                operation,
            )
        return self._account

    def _fail(
        self,
        error: AzureError,
        operation: str,
        partition_key: Optional[str] = None,
        row_key: Optional[str] = None,
    ) -> TableStorageError:
        """SDK 예외를 변환하고 종류에 맞는 레벨로 로깅한다."""
        translated = translate_azure_error(
            error, operation, self.table_name, partition_key, row_key
        )
        if isinstance(translated, (AuthorizationDeniedError, NotFoundError)):
            # SAS 검사에서는 거부/미존재가 예상된 결과다
            logger.warning(
                "%s on %s denied or missing: %s", operation, self.table_name, translated.code,
                extra={"table": self.table_name, "partition_key": partition_key, "row_key": row_key},
            )
        else:
            logger.error("Failed to %s on %s: %s", operation, self.table_name, translated.message)
        return translated

    # ------------------------------------------------------------------
    # Upsert
    # ------------------------------------------------------------------

    async def upsert_merge(self, entity: TableEntityLike) -> Entity:
        """엔티티가 없으면 삽입하고, 있으면 지정한 속성만 병합한다.

        기존 레코드에서 지정하지 않은 속성은 보존된다 (필드 단위 합집합).

        Args:
            entity: 기록할 엔티티.

        Returns:
            서버가 부여한 새 etag를 가진 엔티티 사본.

        Raises:
            AuthorizationDeniedError: Add/Update 권한이 없는 경우.
            TransportError: 네트워크 장애.
        """
        return await self._upsert(entity, UpdateMode.MERGE)

    async def upsert_replace(self, entity: TableEntityLike) -> Entity:
        """엔티티가 없으면 삽입하고, 있으면 전체를 교체한다.

        지정하지 않은 기존 속성은 삭제된다. 오래된 필드를 지워야 할 때 사용한다.
        """
        return await self._upsert(entity, UpdateMode.REPLACE)

    async def _upsert(self, entity: TableEntityLike, mode: UpdateMode) -> Entity:
        record = Entity.coerce(entity)
        operation = f"upsert_{mode.value}"
        try:
            metadata = await self._client.upsert_entity(record.to_wire(), mode=mode)
        except AzureError as e:
            raise self._fail(e, operation, record.partition_key, record.row_key) from e

        logger.info(
            "Upserted entity (%s) %s/%s in %s",
            mode.value, record.partition_key, record.row_key, self.table_name,
        )
        return record.with_etag((metadata or {}).get("etag"))

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_entity(self, partition_key: str, row_key: str) -> Entity:
        """복합 키로 엔티티 하나를 조회한다.

        Raises:
            EntityNotFoundError: 엔티티가 없는 경우 (전송 오류와 구분됨).
            AuthorizationDeniedError: Query 권한이 없는 경우.
        """
        validate_key(partition_key, "PartitionKey")
        validate_key(row_key, "RowKey")
        try:
            raw = await self._client.get_entity(
                partition_key=partition_key,
                row_key=row_key,
            )
        except AzureError as e:
            raise self._fail(e, "get_entity", partition_key, row_key) from e
        return Entity.from_wire(raw)

    async def query_entities(
        self,
        partition_key: Optional[str] = None,
        select: Optional[list[str]] = None,
    ) -> AsyncIterator[Entity]:
        """파티션(또는 테이블 전체)의 엔티티를 순회한다.

        Args:
            partition_key: 지정 시 해당 파티션만 조회.
            select: 반환할 속성 이름 목록.
        """
        kwargs: dict[str, Any] = {}
        if select:
            kwargs["select"] = select
        if partition_key is not None:
            validate_key(partition_key, PARTITION_KEY)
            pages = self._client.query_entities(
                "PartitionKey eq @pk", parameters={"pk": partition_key}, **kwargs
            )
        else:
            pages = self._client.list_entities(**kwargs)

        try:
            async for raw in pages:
                yield Entity.from_wire(raw)
        except AzureError as e:
            raise self._fail(e, "query_entities", partition_key) from e

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_entity(self, entity: TableEntityLike) -> None:
        """엔티티를 엄격하게 삭제한다.

        존재하지 않는 엔티티를 삭제하면 PreconditionFailedError가 발생한다.
        엔티티에 etag가 있으면 If-Match 조건으로 사용하므로, 그 사이 다른
        쓰기가 있었다면 역시 PreconditionFailedError가 발생한다. etag가 없으면
        조건 없이(If-Match: *) 삭제한다. SAS로는 Delete 권한만 있으면 된다.

        SDK의 단건 delete는 404를 성공으로 처리하므로, 작업 하나짜리
        트랜잭션으로 보낸다. 트랜잭션은 404를 TableTransactionError로 돌려주므로
        존재 확인과 삭제가 한 요청에서 원자적으로 처리되고, 같은 엔티티를
        동시에 삭제하면 정확히 하나만 성공한다.

        Raises:
            PreconditionFailedError: 엔티티가 없거나 etag가 일치하지 않는 경우.
            AuthorizationDeniedError: Delete 권한이 없는 경우.
        """
        record = Entity.coerce(entity)
        pk, rk = record.partition_key, record.row_key

        options: dict[str, Any] = {}
        if record.etag:
            options = {"etag": record.etag, "match_condition": MatchConditions.IfNotModified}

        try:
            await self._client.submit_transaction([("delete", record.to_wire(), options)])
        except AzureError as e:
            translated = self._fail(e, "delete_entity", pk, rk)
            if isinstance(e, TableTransactionError) and isinstance(translated, EntityNotFoundError):
                raise PreconditionFailedError(
                    f"Entity {pk}/{rk} does not exist in {self.table_name}", record.etag
                ) from e
            raise translated from e

        logger.info("Deleted entity %s/%s from %s", pk, rk, self.table_name)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self) -> "TableHandle":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        mode = "sas" if self.is_sas_scoped else "account"
        return f"TableHandle(table_name={self.table_name!r}, credential={mode!r})"
