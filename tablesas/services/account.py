"""스토리지 계정 연결 문자열 파서.

연결 문자열을 검증된 계정 정보(엔드포인트 + 키, 또는 에뮬레이터)로 변환한다.
설정 오류는 일시적 장애가 아니므로 재시도하지 않고 즉시 실패한다.

인식하는 키:
- DefaultEndpointsProtocol, AccountName, AccountKey, EndpointSuffix, TableEndpoint
- UseDevelopmentStorage=true (로컬 에뮬레이터 마커), DevelopmentStorageProxyUri
"""
import base64
import binascii
import logging
from typing import Optional
from urllib.parse import urlsplit

from tablesas.config import Settings, settings as default_settings
from tablesas.exceptions import ConfigurationError
from tablesas.models import StorageAccount

logger = logging.getLogger(__name__)

EMULATOR_MARKER = "UseDevelopmentStorage=true"
EMULATOR_ACCOUNT_NAME = "devstoreaccount1"
EMULATOR_ACCOUNT_KEY = (
    "Eby8vdM02xNOcqFlqUwJPLlmEtlCDXJ1OUzFT50uSRZ6IFsuFq2UVErCz4I6tq/K1SZFPTOtr/KBHBeksoGMGw=="
)
EMULATOR_TABLE_PORT = 10002
DEFAULT_ENDPOINT_SUFFIX = "core.windows.net"

_KNOWN_KEYS = {
    "defaultendpointsprotocol": "DefaultEndpointsProtocol",
    "accountname": "AccountName",
    "accountkey": "AccountKey",
    "endpointsuffix": "EndpointSuffix",
    "tableendpoint": "TableEndpoint",
    "usedevelopmentstorage": "UseDevelopmentStorage",
    "developmentstorageproxyuri": "DevelopmentStorageProxyUri",
}


def _split_segments(connection_string: str) -> dict[str, str]:
    """`키=값;` 세그먼트를 정규화된 키 이름의 dict로 분리한다.

    값에 포함된 '='(base64 패딩)는 보존한다. 알 수 없는 키는 무시한다
    (BlobEndpoint 등 다른 서비스 엔드포인트).
    """
    fields: dict[str, str] = {}
    for segment in connection_string.split(";"):
        segment = segment.strip()
        if not segment:
            continue
        name, sep, value = segment.partition("=")
        if not sep or not name.strip():
            raise ConfigurationError(
                f"Malformed connection string segment: '{name.strip() or segment}'"
            )
        canonical = _KNOWN_KEYS.get(name.strip().lower())
        if canonical:
            fields[canonical] = value.strip()
    return fields


def _emulator_account(proxy_uri: Optional[str]) -> StorageAccount:
    """에뮬레이터용 잘 알려진 계정 정보를 만든다."""
    scheme, host = "http", "127.0.0.1"
    if proxy_uri:
        parsed = urlsplit(proxy_uri)
        if not parsed.scheme or not parsed.hostname:
            raise ConfigurationError(
                f"Invalid DevelopmentStorageProxyUri: '{proxy_uri}'",
                "DevelopmentStorageProxyUri",
            )
        scheme, host = parsed.scheme, parsed.hostname
    return StorageAccount(
        account_name=EMULATOR_ACCOUNT_NAME,
        account_key=EMULATOR_ACCOUNT_KEY,
        table_endpoint=f"{scheme}://{host}:{EMULATOR_TABLE_PORT}/{EMULATOR_ACCOUNT_NAME}",
        protocol=scheme,
        is_emulator=True,
    )


def _validate_account_key(account_key: str) -> None:
    try:
        decoded = base64.b64decode(account_key, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError(
            "AccountKey is not valid base64. Please confirm the AccountName and "
            "AccountKey in your configuration",
            "AccountKey",
        ) from e
    if not decoded:
        raise ConfigurationError("AccountKey is empty", "AccountKey")


def parse_connection_string(connection_string: Optional[str]) -> StorageAccount:
    """연결 문자열을 파싱하여 StorageAccount를 반환한다.

    Args:
        connection_string: 스토리지 연결 문자열 또는 에뮬레이터 마커.

    Returns:
        검증된 불변 StorageAccount.

    Raises:
        ConfigurationError: 형식 오류, 필수 필드 누락, 잘못된 키/프로토콜.
    """
    if not connection_string or not connection_string.strip():
        raise ConfigurationError("Connection string is empty", "StorageConnectionString")

    fields = _split_segments(connection_string)

    if fields.get("UseDevelopmentStorage", "").lower() == "true":
        account = _emulator_account(fields.get("DevelopmentStorageProxyUri"))
        logger.debug("Resolved storage emulator account: %s", account.table_endpoint)
        return account

    for required in ("AccountName", "AccountKey"):
        if not fields.get(required):
            raise ConfigurationError(
                f"Connection string is missing {required}. Please confirm the "
                "AccountName and AccountKey in your configuration",
                required,
            )

    account_name = fields["AccountName"]
    account_key = fields["AccountKey"]
    _validate_account_key(account_key)

    protocol = fields.get("DefaultEndpointsProtocol", "https").lower()
    if protocol not in ("http", "https"):
        raise ConfigurationError(
            f"Unsupported DefaultEndpointsProtocol: '{protocol}'",
            "DefaultEndpointsProtocol",
        )

    table_endpoint = fields.get("TableEndpoint")
    if table_endpoint:
        parsed = urlsplit(table_endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(
                f"Invalid TableEndpoint: '{table_endpoint}'", "TableEndpoint"
            )
        protocol = parsed.scheme
    else:
        suffix = fields.get("EndpointSuffix") or DEFAULT_ENDPOINT_SUFFIX
        table_endpoint = f"{protocol}://{account_name}.table.{suffix}"

    account = StorageAccount(
        account_name=account_name,
        account_key=account_key,
        table_endpoint=table_endpoint.rstrip("/"),
        protocol=protocol,
    )
    logger.debug("Resolved storage account %s (%s)", account_name, account.table_endpoint)
    return account


def resolve_account(config: Optional[Settings] = None) -> StorageAccount:
    """설정에서 계정 정보를 결정한다.

    우선순위:
    1. STORAGE_CONNECTION_STRING → parse_connection_string()
    2. TABLE_STORAGE_ACCOUNT → 키 없는 identity 기반 계정
    3. 그 외 → ConfigurationError

    Raises:
        ConfigurationError: 어느 것도 설정되지 않았거나 형식이 잘못된 경우.
    """
    config = config or default_settings
    if config.storage_connection_string:
        return parse_connection_string(config.storage_connection_string)

    if config.table_storage_account:
        account_name = config.table_storage_account.strip()
        return StorageAccount(
            account_name=account_name,
            table_endpoint=f"https://{account_name}.table.{DEFAULT_ENDPOINT_SUFFIX}",
        )

    raise ConfigurationError(
        "No storage account configured. Set STORAGE_CONNECTION_STRING "
        f"(or '{EMULATOR_MARKER}') or TABLE_STORAGE_ACCOUNT",
        "StorageConnectionString",
    )
