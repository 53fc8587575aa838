from __future__ import annotations

from dataclasses import MISSING, asdict, dataclass, field, fields
from enum import Enum
from typing import Any

from typing_extensions import Self

from docstore.errors import InvalidArgumentError


@dataclass(frozen=True, kw_only=True)
class Document:
    """식별자를 가진 문서의 기본 클래스.

    서브클래스도 frozen dataclass여야 합니다. id는 한 번 할당되면 바뀌지 않으며,
    리포지토리는 인스턴스를 수정하지 않고 dataclasses.replace()로 새 인스턴스를 반환합니다.

    id는 ES의 _id 메타데이터로만 저장되고 _source에는 들어가지 않습니다.

    Example:
        >>> @dataclass(frozen=True)
        ... class Order(Document):
        ...     name: str
        ...     amount: int = 0
    """

    id: str | None = None

    @classmethod
    def field_names(cls) -> frozenset[str]:
        """id를 제외한 사용자 필드 이름."""
        return frozenset(f.name for f in fields(cls) if f.name != "id")

    def to_source(self, include_none: bool = False) -> dict[str, Any]:
        """ES _source용 dict. None 값은 기본적으로 제외."""
        d = asdict(self)
        d.pop("id", None)
        if include_none:
            return d
        return {k: v for k, v in d.items() if v is not None}

    @classmethod
    def from_source(cls, doc_id: str | None, source: dict[str, Any] | None) -> Self:
        """ES _source를 도메인 객체로 변환.

        모르는 필드는 무시합니다. _source 필터링 등으로 빠진 필드는 기본값을,
        기본값이 없는 필드는 None을 채웁니다.
        """
        known = cls.field_names()
        values = {k: v for k, v in (source or {}).items() if k in known}
        for f in fields(cls):
            if f.name == "id" or f.name in values:
                continue
            if f.default is MISSING and f.default_factory is MISSING:
                values[f.name] = None
        return cls(id=doc_id, **values)


class Refresh(str, Enum):
    """쓰기 결과를 다음 읽기에 반영할지 결정하는 정책.

    - FALSE: 기다리지 않음 (ES 기본 동작, 직후 검색에서 안 보일 수 있음)
    - TRUE: 즉시 refresh 강제
    - WAIT_FOR: 다음 주기적 refresh까지 대기 후 반환 (기본값)
    """

    FALSE = "false"
    TRUE = "true"
    WAIT_FOR = "wait_for"

    @classmethod
    def coerce(cls, value: Refresh | bool | str) -> Refresh:
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.TRUE if value else cls.FALSE
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidArgumentError(f"Unknown refresh policy: {value!r}") from None

    def to_param(self) -> bool | str:
        """ES API refresh 파라미터 값."""
        if self is Refresh.WAIT_FOR:
            return "wait_for"
        return self is Refresh.TRUE


@dataclass(frozen=True)
class BulkFailure:
    """bulk 요청 중 실패한 항목 하나."""

    id: str | None
    operation: str
    status: int | None
    reason: str | None


@dataclass(frozen=True)
class BulkOutcome:
    """bulk 요청 결과.

    accepted는 ES가 성공으로 처리한 항목 수입니다.
    """

    accepted: int
    failures: tuple[BulkFailure, ...] = field(default_factory=tuple)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @classmethod
    def from_bulk_result(cls, success: int, errors: list[dict[str, Any]]) -> BulkOutcome:
        """helpers.async_bulk의 (success, errors) 결과를 변환.

        errors 항목 형태: {"create": {"_id": "1", "status": 409, "error": {...}}}
        """
        failures = []
        for item in errors:
            for operation, info in item.items():
                error = info.get("error")
                if isinstance(error, dict):
                    reason = error.get("reason") or error.get("type")
                else:
                    reason = None if error is None else str(error)
                failures.append(
                    BulkFailure(
                        id=info.get("_id"),
                        operation=operation,
                        status=info.get("status"),
                        reason=reason,
                    )
                )
        return cls(accepted=int(success), failures=tuple(failures))
