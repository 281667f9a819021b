"""SAS 전용 테이블 핸들.

계정 credential 없이 URI에 포함된 SAS 토큰만으로 인증하는 핸들을 만든다.
주어진 SAS가 의도한 작업만 허용하는지 검증할 때 사용한다.
서버의 403 거부는 AuthorizationDeniedError로 구분되어 전달되므로
호출자는 예상된 거부를 실패가 아닌 통과로 판정할 수 있다.
"""
import logging
from typing import Optional
from urllib.parse import parse_qs, unquote, urlsplit

from azure.core.credentials import AzureSasCredential
from azure.data.tables.aio import TableClient

from tablesas.config import Settings, settings as default_settings
from tablesas.exceptions import AuthorizationDeniedError, InvalidArgumentError, NotFoundError
from tablesas.models import Entity, SasOutcome, SasCheckReport, TableEntityLike
from tablesas.services.table import TableHandle

logger = logging.getLogger(__name__)


def split_sas_uri(uri: str) -> tuple[str, str, str]:
    """SAS URI를 (엔드포인트, 테이블 이름, SAS 쿼리)로 분리한다.

    Raises:
        InvalidArgumentError: 서명(sig)이나 테이블 이름이 없는 경우.
    """
    parsed = urlsplit(uri)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidArgumentError(f"Not an absolute table URI: '{uri}'", "sas_uri")

    query = parsed.query
    if "sig" not in parse_qs(query):
        raise InvalidArgumentError("SAS URI carries no signature (sig)", "sas_uri")

    segments = [segment for segment in parsed.path.split("/") if segment]
    if not segments:
        raise InvalidArgumentError("SAS URI does not name a table", "sas_uri")

    table_name = unquote(segments[-1])
    # Tables('name') 형식 지원
    if table_name.lower().startswith("tables('") and table_name.endswith("')"):
        table_name = table_name[len("tables('"):-2]

    account_path = "/".join(segments[:-1])
    endpoint = f"{parsed.scheme}://{parsed.netloc}"
    if account_path:
        endpoint = f"{endpoint}/{account_path}"
    return endpoint, table_name, query


def open_sas_table(uri: str, config: Optional[Settings] = None) -> TableHandle:
    """SAS URI만으로 인증되는 TableHandle을 만든다.

    Args:
        uri: SAS 쿼리가 붙은 테이블 URI.

    Returns:
        계정 credential이 없는 SAS 전용 핸들.
    """
    config = config or default_settings
    endpoint, table_name, query = split_sas_uri(uri)
    table_client = TableClient(
        endpoint=endpoint,
        table_name=table_name,
        credential=AzureSasCredential(query),
        retry_total=config.azure_retry_total,
        retry_backoff_factor=config.azure_retry_backoff_factor,
        connection_timeout=config.connection_timeout,
        read_timeout=config.read_timeout,
    )
    logger.debug("Opened SAS-scoped handle for %s at %s", table_name, endpoint)
    return TableHandle(
        table_client,
        table_name,
        f"{endpoint}/{table_name}",
        sas_token=query,
    )


async def exercise_sas(uri: str, entity: TableEntityLike, config: Optional[Settings] = None) -> SasCheckReport:
    """SAS로 upsert, 조회, 삭제를 차례로 시도하여 허용 여부를 기록한다.

    upsert는 Add와 Update 권한을, 조회는 Query 권한을, 삭제는 Delete 권한을
    요구한다. AuthorizationDeniedError는 "denied"로 기록되고,
    그 외 예외는 그대로 전파된다.

    Args:
        uri: 검사할 SAS URI.
        entity: 시험용 엔티티. upsert가 허용되면 실제로 기록되며,
            조회 권한이 없어도 삭제 단계에서 다시 지운다.

    Returns:
        작업별 결과를 담은 SasCheckReport.
    """
    report = SasCheckReport(sas_uri=uri)
    record = Entity.coerce(entity)

    async with open_sas_table(uri, config) as table:
        exists = False
        try:
            record = await table.upsert_merge(record)
            report.upsert = SasOutcome.ALLOWED
            exists = True
            logger.info("Add operation succeeded for SAS on %s", table.table_name)
        except AuthorizationDeniedError as e:
            report.upsert = SasOutcome.DENIED
            report.errors["upsert"] = e.message
            logger.info("Add operation failed for SAS on %s", table.table_name)

        try:
            stored = await table.get_entity(record.partition_key, record.row_key)
            report.read = SasOutcome.ALLOWED
            if not exists:
                record, exists = stored, True
            logger.info("Read operation succeeded for SAS on %s", table.table_name)
        except NotFoundError:
            # 조회는 허가되었고 해당 키에 저장된 엔티티가 없을 뿐이다
            report.read = SasOutcome.ALLOWED
        except AuthorizationDeniedError as e:
            report.read = SasOutcome.DENIED
            report.errors["read"] = e.message
            logger.info("Read operation failed for SAS on %s", table.table_name)

        # upsert나 조회로 엔티티가 있음을 알 때만 삭제를 시도한다
        if exists:
            try:
                await table.delete_entity(record)
                report.delete = SasOutcome.ALLOWED
                logger.info("Delete operation succeeded for SAS on %s", table.table_name)
            except AuthorizationDeniedError as e:
                report.delete = SasOutcome.DENIED
                report.errors["delete"] = e.message
                logger.info("Delete operation failed for SAS on %s", table.table_name)

    return report
