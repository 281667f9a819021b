"""테이블 SAS(Shared Access Signature) 발급.

두 가지 모드 중 정확히 하나를 사용한다.
- ad-hoc: 만료 시각과 권한을 서명된 토큰에 직접 포함한다 (sp, se, st).
- stored policy: 정책 이름만 포함한다 (si). 제약 조건은 요청 검증 시점에
  서버가 stored policy에서 결정하므로, 테이블 소유자는 계정 키를 교체하지
  않고도 이미 배포된 토큰의 권한을 정책 수정/삭제로 변경하거나 철회할 수 있다.

제약 조건은 토큰과 stored policy 양쪽에 나눠 지정할 수 없다.
"""
import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from azure.data.tables import generate_table_sas

from tablesas.config import Settings, settings as default_settings
from tablesas.exceptions import SasPolicyConflictError
from tablesas.models import ALL_PERMISSIONS, AccessPolicy, SasToken
from tablesas.services.policy import validate_policy_name
from tablesas.services.table import TableHandle

logger = logging.getLogger(__name__)


def default_ad_hoc_policy(
    hours: Optional[int] = None,
    config: Optional[Settings] = None,
) -> AccessPolicy:
    """Add/Update/Query/Delete를 모두 허용하는 ad-hoc 정책을 만든다.

    Args:
        hours: 유효 시간. 미지정 시 SAS_DEFAULT_TTL_HOURS (기본 24시간).
    """
    config = config or default_settings
    ttl = hours if hours is not None else config.sas_default_ttl_hours
    return AccessPolicy(
        expiry=datetime.now(UTC) + timedelta(hours=ttl),
        permissions=ALL_PERMISSIONS,
    )


def generate_sas(
    table: TableHandle,
    *,
    policy: Optional[AccessPolicy] = None,
    stored_policy_name: Optional[str] = None,
    protocol: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> SasToken:
    """테이블 SAS URI를 발급한다.

    서명은 로컬에서 계정 키로 수행되며 네트워크 호출이 없다.

    Args:
        table: 계정 credential을 소유한 테이블 핸들.
        policy: ad-hoc 제약 조건.
        stored_policy_name: 참조할 stored access policy 이름.
        protocol: "https" 또는 "https,http".
        ip_address: 허용할 IP 또는 범위.

    Returns:
        URI, 쿼리 토큰, 원본 정책을 담은 SasToken.

    Raises:
        SasPolicyConflictError: 두 모드를 모두 지정했거나 둘 다 지정하지 않은 경우.
        AuthorizationDeniedError: SAS 전용 핸들로 호출한 경우.
        ConfigurationError: 계정 키가 없는 identity 기반 계정인 경우.
    """
    if (policy is None) == (stored_policy_name is None):
        raise SasPolicyConflictError()

    account = table.require_account("generate_sas")
    credential = account.named_key_credential()

    kwargs: dict[str, Any] = {}
    if protocol:
        kwargs["protocol"] = protocol
    if ip_address:
        kwargs["ip_address"] = ip_address

    if policy is not None:
        kwargs["permission"] = policy.permission_string
        kwargs["expiry"] = policy.expiry
        if policy.start is not None:
            kwargs["start"] = policy.start
    else:
        kwargs["policy_id"] = validate_policy_name(stored_policy_name)

    query_token = generate_table_sas(credential, table.table_name, **kwargs).lstrip("?")
    uri = f"{table.url}?{query_token}"

    if policy is not None:
        logger.info(
            "Generated ad-hoc SAS for %s (%s, expires %s)",
            table.table_name, policy.permission_string, policy.expiry.isoformat(),
        )
    else:
        logger.info(
            "Generated SAS for %s using stored access policy '%s'",
            table.table_name, stored_policy_name,
        )

    return SasToken(
        uri=uri,
        query_token=query_token,
        table_name=table.table_name,
        source_policy=policy,
        policy_name=stored_policy_name,
    )
