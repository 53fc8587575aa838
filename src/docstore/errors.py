"""docstore 예외 및 인자 검증 헬퍼.

잘못된 호출 인자는 네트워크 호출 전에 동기적으로 거부합니다.
"문서 없음" 같은 정상적인 결과는 예외가 아니라 sentinel(None, 0, False)로 표현합니다.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, TypeVar

T = TypeVar("T")

ARGUMENT_NULL_MESSAGE = "The argument '{0}' cannot be None."
ARGUMENT_EMPTY_MESSAGE = "The argument '{0}' cannot be empty or all whitespace."
ARGUMENT_EMPTY_LIST_MESSAGE = "The argument '{0}' cannot be None and must have at least one item."


class DocstoreError(Exception):
    """docstore 기본 예외."""


class InvalidArgumentError(DocstoreError, ValueError):
    """호출 인자가 구조적으로 잘못된 경우 (빈 값, None, 알 수 없는 옵션)."""


class NotInitializedError(DocstoreError, LookupError):
    """initialize 되지 않은 컬렉션을 조회한 경우."""

    def __init__(self, collection: str):
        super().__init__(f"Collection '{collection}' has not been initialized.")
        self.collection = collection


def require_not_none(value: T | None, name: str) -> T:
    if value is None:
        raise InvalidArgumentError(ARGUMENT_NULL_MESSAGE.format(name))
    return value


def require_text(value: str | None, name: str) -> str:
    """None/빈 문자열/공백 문자열을 거부."""
    if value is None or not str(value).strip():
        raise InvalidArgumentError(ARGUMENT_EMPTY_MESSAGE.format(name))
    return value


def require_items(values: Iterable[T] | None, name: str) -> list[T]:
    """최소 한 개 이상의 항목을 가진 리스트로 변환.

    제너레이터도 받을 수 있도록 리스트로 materialize 한 결과를 반환합니다.
    """
    if values is None or isinstance(values, (str, bytes)):
        raise InvalidArgumentError(ARGUMENT_EMPTY_LIST_MESSAGE.format(name))
    items = list(values)
    if not items:
        raise InvalidArgumentError(ARGUMENT_EMPTY_LIST_MESSAGE.format(name))
    return items


def is_blank(value: Any) -> bool:
    return value is None or not str(value).strip()
