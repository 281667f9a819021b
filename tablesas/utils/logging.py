"""클라이언트 로깅 구성.

두 가지 출력 형식을 지원한다.

- text: 콘솔 데모용. ``extra``로 넘긴 테이블/키 정보가 메시지 뒤에
  ``[table=Customers row_key=a]`` 형태로 붙는다.
- json: 한 줄에 레코드 하나. ``extra`` 필드와 고정 필드(app, version 등)가
  최상위 키로 들어가고, TableStorageError는 code/status_code/details를 남긴다.

Azure SDK 로거는 DEBUG 레벨일 때만 요청 단위 로그를 통과시킨다.
"""
import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any, Optional

# 빈 LogRecord가 가진 속성은 모두 표준 필드로 간주한다
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.NOTSET, "", 0, "", (), None).__dict__
) | {"message", "asctime"}

SDK_LOGGERS = (
    "azure.core.pipeline.policies.http_logging_policy",
    "azure.data.tables",
    "azure.identity",
)


def extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """레코드에 ``extra``로 추가된 필드 중 값이 있는 것만 반환한다."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_ATTRS and not key.startswith("_") and value is not None
    }


def error_fields(exc_info) -> dict[str, Any]:
    """예외 정보를 JSON 레코드용 dict로 변환한다.

    TableStorageError 계열이면 분류 코드, 상태 코드, 재시도 가능 여부와
    상세 정보를 함께 담는다.
    """
    exc_type, error, tb = exc_info
    fields: dict[str, Any] = {
        "type": exc_type.__name__,
        "message": str(error),
    }
    code = getattr(error, "code", None)
    if isinstance(code, str):
        fields["code"] = code
        fields["status_code"] = getattr(error, "status_code", None)
        fields["retryable"] = getattr(error, "retryable", False)
        if getattr(error, "details", None):
            fields["details"] = error.details
    fields["traceback"] = traceback.format_exception(exc_type, error, tb)
    return fields


class JsonFormatter(logging.Formatter):
    """레코드를 한 줄 JSON으로 출력한다.

    Args:
        static_fields: 모든 레코드에 붙일 고정 필드.
    """

    def __init__(self, static_fields: Optional[dict[str, Any]] = None):
        super().__init__()
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **self.static_fields,
        }
        entry.update(extra_fields(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = error_fields(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ContextTextFormatter(logging.Formatter):
    """``extra`` 필드를 메시지 뒤에 key=value로 붙이는 텍스트 포매터."""

    default_format = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

    def __init__(self, fmt: Optional[str] = None):
        super().__init__(fmt or self.default_format)

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = extra_fields(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{line} [{pairs}]"


def configure_logging(
    log_format: str = "text",
    log_level: str = "INFO",
    static_fields: Optional[dict[str, Any]] = None,
) -> logging.Handler:
    """루트 로거에 단일 스트림 핸들러를 설치한다.

    Args:
        log_format: "json"이면 JsonFormatter, 그 외에는 텍스트.
        log_level: 로그 레벨 이름. 알 수 없는 값은 INFO로 처리한다.
        static_fields: JSON 레코드에 항상 포함할 필드.

    Returns:
        설치된 핸들러.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JsonFormatter(static_fields))
    else:
        handler.setFormatter(ContextTextFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    sdk_level = logging.DEBUG if level == logging.DEBUG else logging.WARNING
    for name in SDK_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)

    return handler
