"""테이블 서비스 인증 정보 선택.

계정 정보(StorageAccount)에 따라 TableServiceClient에 넘길 credential을 고른다.

- AccountKey가 있는 계정(연결 문자열, 에뮬레이터): SharedKey 서명용
  AzureNamedKeyCredential. 같은 키로 SAS도 서명한다.
- 키가 없는 계정(TABLE_STORAGE_ACCOUNT): Entra ID 토큰 credential.
  계정에 "Storage Table Data Contributor" 같은 데이터 역할이 있어야 하며,
  이 credential로는 SAS를 서명할 수 없다.

토큰 credential은 HTTP 세션을 가지므로 만든 쪽(TableStorageClient)이 닫는다.
"""
import logging
from typing import Optional

from azure.core.credentials import AzureNamedKeyCredential
from azure.identity.aio import (
    AzureCliCredential,
    ClientSecretCredential,
    DefaultAzureCredential,
)

from tablesas.config import Settings, settings as default_settings
from tablesas.models import StorageAccount

logger = logging.getLogger(__name__)

IdentityCredential = ClientSecretCredential | AzureCliCredential | DefaultAzureCredential
TableCredential = AzureNamedKeyCredential | IdentityCredential


def _partial_sp_config(config: Settings) -> list[str]:
    """일부만 설정된 Service Principal 변수 중 비어 있는 이름을 반환한다."""
    values = {
        "AZURE_SP_TENANT_ID": config.azure_sp_tenant_id,
        "AZURE_SP_CLIENT_ID": config.azure_sp_client_id,
        "AZURE_SP_CLIENT_SECRET": config.azure_sp_client_secret,
    }
    missing = [name for name, value in values.items() if not value]
    return missing if len(missing) < len(values) else []


def get_azure_credential(config: Optional[Settings] = None) -> IdentityCredential:
    """키 없는 계정에 사용할 비동기 Entra ID credential을 만든다.

    우선순위:
    1. AZURE_SP_* 세 값이 모두 있으면 ClientSecretCredential
    2. USE_AZURE_CLI_CREDENTIAL=true 이면 AzureCliCredential (``az login``)
    3. 그 외 DefaultAzureCredential (Managed Identity, 환경 변수 등)

    Args:
        config: 사용할 설정. 미지정 시 모듈 설정.

    Returns:
        새 credential 인스턴스. 호출자가 close() 해야 한다.
    """
    config = config or default_settings

    missing = _partial_sp_config(config)
    if missing:
        logger.warning(
            "Service principal settings are incomplete (missing %s); falling back",
            ", ".join(missing),
        )

    if config.has_sp_config:
        return ClientSecretCredential(
            tenant_id=config.azure_sp_tenant_id,
            client_id=config.azure_sp_client_id,
            client_secret=config.azure_sp_client_secret,
        )
    if config.use_azure_cli_credential:
        return AzureCliCredential()

    # 대화형/개발 도구 기반 인증은 비대화형 클라이언트에서 제외
    return DefaultAzureCredential(
        exclude_shared_token_cache_credential=True,
        exclude_visual_studio_code_credential=True,
        exclude_powershell_credential=True,
        exclude_developer_cli_credential=True,
    )


def get_table_credential(
    account: StorageAccount,
    config: Optional[Settings] = None,
) -> TableCredential:
    """계정에 맞는 테이블 서비스 credential을 반환한다.

    Args:
        account: 인증할 스토리지 계정.
        config: identity credential 선택에 쓰는 설정.

    Returns:
        키가 있으면 AzureNamedKeyCredential, 없으면 Entra ID credential.
    """
    if account.has_key:
        logger.debug("Using SharedKey authentication for %s", account.account_name)
        return account.named_key_credential()

    credential = get_azure_credential(config)
    logger.info(
        "Using %s for key-less account %s; SAS generation is unavailable",
        type(credential).__name__, account.account_name,
    )
    return credential
