"""테이블 엔티티, 접근 정책, SAS 토큰에 사용되는 모델."""
import copy
import re
from collections.abc import Iterable, Iterator, Mapping
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional, Protocol, runtime_checkable

from azure.core.credentials import AzureNamedKeyCredential
from azure.data.tables import TableAccessPolicy
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from tablesas.exceptions import ConfigurationError, InvalidArgumentError, InvalidEntityKeyError

PARTITION_KEY = "PartitionKey"
ROW_KEY = "RowKey"
RESERVED_PROPERTY_NAMES = frozenset({PARTITION_KEY, ROW_KEY, "Timestamp", "etag", "odata.etag"})

MAX_KEY_LENGTH = 1024
_INVALID_KEY_CHARS = re.compile(r"[/\\#?\x00-\x1f\x7f-\x9f]")


def validate_key(value: Any, field: str) -> str:
    """PartitionKey/RowKey 값이 서비스 규칙을 만족하는지 검증한다.

    Args:
        value: 검증할 키 값.
        field: 에러 메시지에 사용할 필드 이름.

    Returns:
        검증된 키 문자열.

    Raises:
        InvalidEntityKeyError: 빈 값, 1 KiB 초과, 금지 문자 포함 시.
    """
    if not isinstance(value, str) or not value:
        raise InvalidEntityKeyError(f"{field} must be a non-empty string", field)
    if len(value.encode("utf-8")) > MAX_KEY_LENGTH:
        raise InvalidEntityKeyError(f"{field} exceeds {MAX_KEY_LENGTH} bytes", field)
    if _INVALID_KEY_CHARS.search(value):
        raise InvalidEntityKeyError(
            f"{field} must not contain '/', '\\', '#', '?' or control characters", field
        )
    return value


def as_utc(value: datetime | str) -> datetime:
    """datetime 또는 ISO 8601 문자열을 UTC aware datetime으로 정규화한다.

    naive datetime은 UTC로 간주한다.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@runtime_checkable
class TableEntityLike(Protocol):
    """테이블에 기록할 수 있는 객체의 최소 인터페이스.

    복합 키(partition_key, row_key)와 속성 bag만 제공하면
    특정 SDK 엔티티 타입에 의존하지 않고 저장할 수 있다.
    """

    @property
    def partition_key(self) -> str: ...

    @property
    def row_key(self) -> str: ...

    def to_properties(self) -> dict[str, Any]: ...


class Entity:
    """복합 키로 식별되는 테이블 행.

    동등성과 해시는 (partition_key, row_key)로만 결정된다.
    키는 생성 후 변경할 수 없고, 속성은 item 접근으로 읽고 쓴다.

    Attributes:
        etag: 서버가 부여한 버전 태그. 저장 전에는 None.
        timestamp: 서버가 기록한 마지막 수정 시각.
    """

    def __init__(
        self,
        partition_key: str,
        row_key: str,
        properties: Optional[Mapping[str, Any]] = None,
        *,
        etag: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> None:
        self._partition_key = validate_key(partition_key, PARTITION_KEY)
        self._row_key = validate_key(row_key, ROW_KEY)
        self._properties: dict[str, Any] = {}
        self.etag = etag
        self.timestamp = timestamp
        for name, value in (properties or {}).items():
            self[name] = value

    @property
    def partition_key(self) -> str:
        return self._partition_key

    @property
    def row_key(self) -> str:
        return self._row_key

    @property
    def key(self) -> tuple[str, str]:
        return (self._partition_key, self._row_key)

    @property
    def properties(self) -> Mapping[str, Any]:
        """속성 bag의 읽기 전용 뷰."""
        return MappingProxyType(self._properties)

    def __getitem__(self, name: str) -> Any:
        return self._properties[name]

    def __setitem__(self, name: str, value: Any) -> None:
        if not isinstance(name, str) or not name:
            raise InvalidEntityKeyError("Property name must be a non-empty string", "property")
        if name in RESERVED_PROPERTY_NAMES:
            raise InvalidEntityKeyError(f"'{name}' is a reserved property name", name)
        self._properties[name] = value

    def __delitem__(self, name: str) -> None:
        del self._properties[name]

    def __contains__(self, name: object) -> bool:
        return name in self._properties

    def __iter__(self) -> Iterator[str]:
        return iter(self._properties)

    def get(self, name: str, default: Any = None) -> Any:
        return self._properties.get(name, default)

    def to_properties(self) -> dict[str, Any]:
        return dict(self._properties)

    def to_wire(self) -> dict[str, Any]:
        """SDK가 기대하는 엔티티 dict (PartitionKey, RowKey, 속성별 1필드)로 변환한다."""
        return {
            PARTITION_KEY: self._partition_key,
            ROW_KEY: self._row_key,
            **self._properties,
        }

    @classmethod
    def from_wire(cls, raw: Mapping[str, Any]) -> "Entity":
        """SDK TableEntity(dict + metadata)에서 엔티티를 만든다."""
        metadata = getattr(raw, "metadata", None) or {}
        properties = {
            name: value
            for name, value in raw.items()
            if name not in RESERVED_PROPERTY_NAMES
        }
        entity = cls.__new__(cls)
        Entity.__init__(
            entity,
            raw[PARTITION_KEY],
            raw[ROW_KEY],
            properties,
            etag=metadata.get("etag"),
            timestamp=metadata.get("timestamp"),
        )
        return entity

    @classmethod
    def coerce(cls, value: TableEntityLike) -> "Entity":
        """TableEntityLike 구현체를 Entity로 변환한다."""
        if isinstance(value, Entity):
            return value
        if not isinstance(value, TableEntityLike):
            raise InvalidArgumentError(
                f"{type(value).__name__} does not provide partition_key, row_key and to_properties()",
                "entity",
            )
        return cls(value.partition_key, value.row_key, value.to_properties())

    def with_etag(self, etag: Optional[str]) -> "Entity":
        """etag만 교체한 사본을 반환한다. 원본은 변경하지 않는다."""
        clone = copy.copy(self)
        clone._properties = dict(self._properties)
        clone.etag = etag
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(partition_key={self._partition_key!r}, "
            f"row_key={self._row_key!r}, properties={self._properties!r})"
        )


class TablePermission(str, Enum):
    """테이블 SAS 권한 비트."""

    QUERY = "r"
    ADD = "a"
    UPDATE = "u"
    DELETE = "d"


ALL_PERMISSIONS = frozenset(TablePermission)

# 서비스가 요구하는 권한 문자 순서
_CANONICAL_ORDER = "raud"


def permission_string(permissions: Iterable[TablePermission]) -> str:
    """권한 집합을 정규 순서("raud")의 문자열로 직렬화한다."""
    values = {TablePermission(p).value for p in permissions}
    return "".join(ch for ch in _CANONICAL_ORDER if ch in values)


def parse_permissions(text: str) -> frozenset[TablePermission]:
    """"raud" 형식 문자열을 권한 집합으로 변환한다.

    Raises:
        InvalidArgumentError: 알 수 없는 권한 문자가 있는 경우.
    """
    try:
        return frozenset(TablePermission(ch) for ch in text)
    except ValueError as e:
        raise InvalidArgumentError(f"Unknown table permission in '{text}'", "permissions") from e


class AccessPolicy(BaseModel):
    """만료 시각과 권한 집합으로 구성된 접근 정책.

    ad-hoc SAS의 제약 조건과 테이블에 저장되는 stored access policy에
    동일하게 사용된다.
    """

    model_config = ConfigDict(frozen=True)

    expiry: datetime
    start: Optional[datetime] = None
    permissions: frozenset[TablePermission] = Field(..., min_length=1)

    @field_validator("expiry", "start")
    @classmethod
    def normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """naive datetime은 UTC로 간주한다."""
        return as_utc(value) if value is not None else None

    @field_validator("permissions", mode="before")
    @classmethod
    def parse_permission_text(cls, value: Any) -> Any:
        """"raud" 같은 문자열 표기를 허용한다."""
        if isinstance(value, str):
            return parse_permissions(value)
        return value

    @model_validator(mode="after")
    def check_window(self) -> "AccessPolicy":
        if self.start is not None and self.start >= self.expiry:
            raise ValueError("start must be earlier than expiry")
        return self

    @property
    def permission_string(self) -> str:
        return permission_string(self.permissions)

    def allows(self, permission: TablePermission) -> bool:
        return permission in self.permissions

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expiry

    def to_table_access_policy(self) -> TableAccessPolicy:
        """SDK의 TableAccessPolicy로 변환한다."""
        return TableAccessPolicy(
            start=self.start,
            expiry=self.expiry,
            permission=self.permission_string,
        )

    @classmethod
    def from_table_access_policy(cls, policy: TableAccessPolicy) -> Optional["AccessPolicy"]:
        """SDK 정책을 변환한다. 만료나 권한이 비어 있는 부분 정책이면 None."""
        if policy is None or not policy.expiry or not policy.permission:
            return None
        return cls(
            expiry=as_utc(policy.expiry),
            start=as_utc(policy.start) if policy.start else None,
            permissions=policy.permission,
        )


class StorageAccount(BaseModel):
    """연결 문자열에서 파싱된 불변 계정 정보."""

    model_config = ConfigDict(frozen=True)

    account_name: str
    account_key: Optional[SecretStr] = None
    table_endpoint: str
    protocol: str = "https"
    is_emulator: bool = False

    @property
    def has_key(self) -> bool:
        return self.account_key is not None

    def named_key_credential(self) -> AzureNamedKeyCredential:
        """SAS 서명과 SharedKey 인증에 쓰는 credential을 반환한다.

        Raises:
            ConfigurationError: 계정 키가 없는 identity 기반 계정인 경우.
        """
        if self.account_key is None:
            raise ConfigurationError(
                f"Account '{self.account_name}' has no AccountKey; "
                "SAS generation requires a key-based connection string",
                "AccountKey",
            )
        return AzureNamedKeyCredential(self.account_name, self.account_key.get_secret_value())

    def table_url(self, table_name: str) -> str:
        return f"{self.table_endpoint.rstrip('/')}/{table_name}"


class SasToken(BaseModel):
    """발급된 테이블 SAS. 영속화하지 않는다."""

    model_config = ConfigDict(frozen=True)

    uri: str
    query_token: str
    table_name: str
    source_policy: Optional[AccessPolicy] = None
    policy_name: Optional[str] = None

    @property
    def expires_on(self) -> Optional[datetime]:
        """ad-hoc SAS의 만료 시각. stored policy SAS는 서버가 결정하므로 None."""
        return self.source_policy.expiry if self.source_policy else None


class SasOutcome(str, Enum):
    """SAS 권한 검사 결과."""

    ALLOWED = "allowed"
    DENIED = "denied"
    SKIPPED = "skipped"


class SasCheckReport(BaseModel):
    """SAS URI로 시도한 각 작업의 허용 여부."""

    sas_uri: str
    upsert: SasOutcome = SasOutcome.SKIPPED
    read: SasOutcome = SasOutcome.SKIPPED
    delete: SasOutcome = SasOutcome.SKIPPED
    errors: dict[str, str] = Field(default_factory=dict)

    @property
    def allows_all(self) -> bool:
        return all(
            outcome == SasOutcome.ALLOWED
            for outcome in (self.upsert, self.read, self.delete)
        )
