"""호출자 주도 재시도 헬퍼.

클라이언트 자체는 재시도하지 않는다. 일시적 전송 오류(TransportError)를
재시도하고 싶은 호출자가 지수 백오프로 감싸서 사용한다.
권한 거부, 미존재, 설정 오류 등은 즉시 다시 발생시킨다.

    entity = await retry_transient(table.get_entity, "1", "Aamir Akhtar")
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tablesas.exceptions import TableStorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
INITIAL_BACKOFF = 1.0
MAX_BACKOFF = 30.0
BACKOFF_MULTIPLIER = 2.0


async def retry_transient(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    attempts: int = DEFAULT_ATTEMPTS,
    initial_backoff: float = INITIAL_BACKOFF,
    max_backoff: float = MAX_BACKOFF,
    multiplier: float = BACKOFF_MULTIPLIER,
    **kwargs: Any,
) -> T:
    """재시도 가능한 오류에 대해 지수 백오프로 코루틴 함수를 다시 호출한다.

    Args:
        func: 호출할 코루틴 함수.
        attempts: 총 시도 횟수 (1 이상).
        initial_backoff: 첫 대기 시간(초).
        max_backoff: 최대 대기 시간(초).
        multiplier: 대기 시간 배수.

    Returns:
        func의 반환값.

    Raises:
        TableStorageError: 재시도 불가능한 오류, 또는 마지막 시도의 오류.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(1, attempts + 1):
        try:
            return await func(*args, **kwargs)
        except TableStorageError as e:
            if not e.retryable or attempt == attempts:
                raise
            delay = min(initial_backoff * (multiplier ** (attempt - 1)), max_backoff)
            logger.warning(
                "Transient failure (%s), retrying in %.1fs (attempt %d/%d)",
                e.code, delay, attempt, attempts,
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
