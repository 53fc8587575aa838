"""클라이언트 튜닝 설정 관리.

TuningProfile은 사용자가 "명시한" 값만 담습니다 (None = 미지정).
ClientSettings.resolve()가 미지정이거나 0 이하인 값에 문서화된 기본값을 적용합니다.

설정 소스:
    - 코드에서 직접 생성: TuningProfile(request_timeout_s=30)
    - 환경변수 (.env 지원): TuningProfile.from_env()
    - YAML 파일: load_collection_configs("configs/docstore.yaml")

YAML 예시:
    collections:
      orders:
        endpoints: ["http://localhost:9200"]
        topology: sniffing
        tuning:
          request_timeout_s: 30
          max_retries: 5
"""

from __future__ import annotations

import os
import ssl
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from dotenv import load_dotenv

from docstore.errors import InvalidArgumentError, is_blank
from docstore.topology import TopologyStrategy

if TYPE_CHECKING:
    from docstore.client import RequestEvent

load_dotenv()

DEFAULT_CONNECTION_LIMIT = 80
DEFAULT_KEEP_ALIVE_S = 2.0
DEFAULT_MAX_RETRIES = 10
DEFAULT_MAX_RETRY_TIMEOUT_S = 60.0
DEFAULT_REQUEST_TIMEOUT_S = 60.0
DEFAULT_SNIFF_LIFESPAN_S = 3600.0

RequestHook = Callable[["RequestEvent"], None]


@dataclass(frozen=True)
class TuningProfile:
    """컬렉션별 연결 튜닝 설정 (모든 필드 선택).

    Attributes:
        connection_limit: 노드당 최대 커넥션 수
        request_timeout_s: 요청 타임아웃 (초)
        ping_timeout_s: ping 타임아웃 (초)
        dead_timeout_s: dead 노드 재시도 backoff 기본값 (초)
        max_dead_timeout_s: dead 노드 backoff 상한 (초)
        max_retries: 전송 계층 재시도 횟수. 리포지토리의 retry-on-conflict 예산으로도 사용
        max_retry_timeout_s: 재시도 전체 허용 시간 (초)
        keep_alive_time_s / keep_alive_interval_s: TCP keep-alive (초)
        sniff_lifespan_s: 스니핑 결과 유효 시간 (초)
        sniff_on_startup / sniff_on_connection_fault: 스니핑 트리거
        http_compression / http_pipelining: HTTP 옵션
        retry_on_timeout: 타임아웃 시 다른 노드로 재시도
        throw_exceptions: True면 전송/API 오류를 그대로 raise, False면 sentinel 반환
        debug_mode: True면 elastic_transport / elasticsearch 로거를 DEBUG로 올려 요청/응답을 기록
        basic_auth_username / basic_auth_password: HTTP Basic Auth
        api_key: API key 인증
        client_cert / client_key / ca_certs: TLS 인증서 경로
        verify_certs: 서버 인증서 검증 여부
        ssl_context: 직접 구성한 SSLContext (서버 인증서 검증 정책 포함)
        ssl_assert_fingerprint: 서버 인증서 fingerprint 고정
        headers: 모든 요청에 붙일 헤더
        proxy_address / proxy_username / proxy_password: 프록시 설정
        node_predicate: 스니핑으로 발견된 노드 정보(dict)를 받아 사용 여부 반환
        on_request_created / on_request_completed: 요청 라이프사이클 훅
    """

    connection_limit: int | None = None
    request_timeout_s: float | None = None
    ping_timeout_s: float | None = None
    dead_timeout_s: float | None = None
    max_dead_timeout_s: float | None = None
    max_retries: int | None = None
    max_retry_timeout_s: float | None = None
    keep_alive_time_s: float | None = None
    keep_alive_interval_s: float | None = None
    sniff_lifespan_s: float | None = None
    sniff_on_startup: bool | None = None
    sniff_on_connection_fault: bool | None = None
    http_compression: bool | None = None
    http_pipelining: bool | None = None
    retry_on_timeout: bool | None = None
    throw_exceptions: bool | None = None
    debug_mode: bool | None = None

    # Auth / TLS
    basic_auth_username: str | None = None
    basic_auth_password: str | None = None
    api_key: str | None = None
    client_cert: str | None = None
    client_key: str | None = None
    ca_certs: str | None = None
    verify_certs: bool | None = None
    ssl_context: ssl.SSLContext | None = None
    ssl_assert_fingerprint: str | None = None

    # Request shaping
    headers: Mapping[str, str] | None = None
    proxy_address: str | None = None
    proxy_username: str | None = None
    proxy_password: str | None = None

    # Hooks (코드에서만 지정 가능)
    node_predicate: Callable[[dict[str, Any]], bool] | None = None
    on_request_created: RequestHook | None = None
    on_request_completed: RequestHook | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> TuningProfile:
        """dict(YAML 섹션 등)에서 생성. 알 수 없는 키는 거부."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)} - _CODE_ONLY_FIELDS
        unknown = set(data) - known
        if unknown:
            raise InvalidArgumentError(f"Unknown tuning options: {sorted(unknown)}")
        return cls(**dict(data))

    @classmethod
    def from_env(cls, prefix: str = "ES_") -> TuningProfile:
        """환경변수에서 생성. 설정되지 않은 변수는 None으로 둡니다.

        변수명은 prefix + 필드명 대문자 (예: ES_REQUEST_TIMEOUT_S).
        Basic Auth는 ES_USERNAME / ES_PASSWORD를 사용합니다.
        """
        values: dict[str, Any] = {}
        for name, parse in _ENV_PARSERS.items():
            env_name = prefix + _ENV_ALIASES.get(name, name.upper())
            raw = os.getenv(env_name)
            if raw is None or raw.strip() == "":
                continue
            try:
                values[name] = parse(raw.strip())
            except ValueError as e:
                raise InvalidArgumentError(f"Invalid value for {env_name}: {raw!r}") from e
        return cls(**values)


def _parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off"):
        return False
    raise ValueError(raw)


_CODE_ONLY_FIELDS = {"ssl_context", "node_predicate", "on_request_created", "on_request_completed"}

_ENV_ALIASES = {
    "basic_auth_username": "USERNAME",
    "basic_auth_password": "PASSWORD",
}

_ENV_PARSERS: dict[str, Callable[[str], Any]] = {
    "connection_limit": int,
    "request_timeout_s": float,
    "ping_timeout_s": float,
    "dead_timeout_s": float,
    "max_dead_timeout_s": float,
    "max_retries": int,
    "max_retry_timeout_s": float,
    "keep_alive_time_s": float,
    "keep_alive_interval_s": float,
    "sniff_lifespan_s": float,
    "sniff_on_startup": _parse_bool,
    "sniff_on_connection_fault": _parse_bool,
    "http_compression": _parse_bool,
    "http_pipelining": _parse_bool,
    "retry_on_timeout": _parse_bool,
    "throw_exceptions": _parse_bool,
    "debug_mode": _parse_bool,
    "basic_auth_username": str,
    "basic_auth_password": str,
    "api_key": str,
    "client_cert": str,
    "client_key": str,
    "ca_certs": str,
    "verify_certs": _parse_bool,
    "ssl_assert_fingerprint": str,
    "proxy_address": str,
    "proxy_username": str,
    "proxy_password": str,
}


def _positive(value: float | None, default: float) -> float:
    return value if value is not None and value > 0 else default


def _positive_or_none(value: float | None) -> float | None:
    return value if value is not None and value > 0 else None


@dataclass(frozen=True)
class ProxySettings:
    address: str
    username: str | None = None
    password: str | None = None


@dataclass(frozen=True)
class ClientSettings:
    """기본값이 적용된 최종 클라이언트 설정."""

    connection_limit: int = DEFAULT_CONNECTION_LIMIT
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    max_retries: int = DEFAULT_MAX_RETRIES
    max_retry_timeout_s: float = DEFAULT_MAX_RETRY_TIMEOUT_S
    keep_alive_time_s: float = DEFAULT_KEEP_ALIVE_S
    keep_alive_interval_s: float = DEFAULT_KEEP_ALIVE_S
    sniff_lifespan_s: float = DEFAULT_SNIFF_LIFESPAN_S
    sniff_on_startup: bool = True
    sniff_on_connection_fault: bool = True
    http_compression: bool = True
    http_pipelining: bool = True
    throw_exceptions: bool = False
    debug_mode: bool = False

    # 명시된 경우에만 적용
    ping_timeout_s: float | None = None
    dead_timeout_s: float | None = None
    max_dead_timeout_s: float | None = None
    retry_on_timeout: bool | None = None
    basic_auth: tuple[str, str] | None = None
    api_key: str | None = None
    client_cert: str | None = None
    client_key: str | None = None
    ca_certs: str | None = None
    verify_certs: bool | None = None
    ssl_context: ssl.SSLContext | None = None
    ssl_assert_fingerprint: str | None = None
    headers: Mapping[str, str] | None = None
    proxy: ProxySettings | None = None
    node_predicate: Callable[[dict[str, Any]], bool] | None = None
    on_request_created: RequestHook | None = None
    on_request_completed: RequestHook | None = None

    @classmethod
    def resolve(cls, profile: TuningProfile | None) -> ClientSettings:
        """TuningProfile에 기본값을 적용.

        숫자 필드는 미지정이거나 0 이하이면 기본값, bool 필드는 미지정이면 기본값.
        선택 필드(인증, 헤더, 프록시, 훅 등)는 값이 있을 때만 채워집니다.
        """
        p = profile or TuningProfile()

        basic_auth = None
        if not is_blank(p.basic_auth_username) and not is_blank(p.basic_auth_password):
            basic_auth = (p.basic_auth_username, p.basic_auth_password)

        proxy = None
        if not is_blank(p.proxy_address):
            proxy = ProxySettings(p.proxy_address, p.proxy_username, p.proxy_password)

        return cls(
            connection_limit=int(_positive(p.connection_limit, DEFAULT_CONNECTION_LIMIT)),
            request_timeout_s=_positive(p.request_timeout_s, DEFAULT_REQUEST_TIMEOUT_S),
            max_retries=int(_positive(p.max_retries, DEFAULT_MAX_RETRIES)),
            max_retry_timeout_s=_positive(p.max_retry_timeout_s, DEFAULT_MAX_RETRY_TIMEOUT_S),
            keep_alive_time_s=_positive(p.keep_alive_time_s, DEFAULT_KEEP_ALIVE_S),
            keep_alive_interval_s=_positive(p.keep_alive_interval_s, DEFAULT_KEEP_ALIVE_S),
            sniff_lifespan_s=_positive(p.sniff_lifespan_s, DEFAULT_SNIFF_LIFESPAN_S),
            sniff_on_startup=_default(p.sniff_on_startup, True),
            sniff_on_connection_fault=_default(p.sniff_on_connection_fault, True),
            http_compression=_default(p.http_compression, True),
            http_pipelining=_default(p.http_pipelining, True),
            throw_exceptions=_default(p.throw_exceptions, False),
            debug_mode=_default(p.debug_mode, False),
            ping_timeout_s=_positive_or_none(p.ping_timeout_s),
            dead_timeout_s=_positive_or_none(p.dead_timeout_s),
            max_dead_timeout_s=_positive_or_none(p.max_dead_timeout_s),
            retry_on_timeout=p.retry_on_timeout,
            basic_auth=basic_auth,
            api_key=None if is_blank(p.api_key) else p.api_key,
            client_cert=None if is_blank(p.client_cert) else p.client_cert,
            client_key=None if is_blank(p.client_key) else p.client_key,
            ca_certs=None if is_blank(p.ca_certs) else p.ca_certs,
            verify_certs=p.verify_certs,
            ssl_context=p.ssl_context,
            ssl_assert_fingerprint=(
                None if is_blank(p.ssl_assert_fingerprint) else p.ssl_assert_fingerprint
            ),
            headers=dict(p.headers) if p.headers else None,
            proxy=proxy,
            node_predicate=p.node_predicate,
            on_request_created=p.on_request_created,
            on_request_completed=p.on_request_completed,
        )


def _default(value: bool | None, default: bool) -> bool:
    return default if value is None else value


# =============================================================================
# Collection config (env / YAML)
# =============================================================================


def _split_urls(raw: str) -> tuple[str, ...]:
    return tuple(u.strip() for u in raw.split(",") if u.strip())


@dataclass(frozen=True)
class CollectionConfig:
    """컬렉션 하나의 연결 설정.

    Attributes:
        collection: 컬렉션(인덱스) 이름. 레지스트리 캐시 키
        endpoints: seed 엔드포인트 URL 목록
        topology: 노드 탐색 전략
        profile: 튜닝 설정 (None이면 전부 기본값)
    """

    collection: str
    endpoints: tuple[str, ...]
    topology: TopologyStrategy = TopologyStrategy.SINGLE_NODE
    profile: TuningProfile | None = field(default=None)

    @classmethod
    def from_env(cls, prefix: str = "ES_") -> CollectionConfig:
        """환경변수에서 설정 로드.

        ES_URL: 엔드포인트 (쉼표로 여러 개 지정 가능, 필수)
        ES_COLLECTION: 컬렉션 이름 (필수)
        ES_TOPOLOGY: single_node | static | sniffing | sticky (기본 single_node)
        나머지 튜닝 값은 TuningProfile.from_env()를 따릅니다.
        """
        urls = os.getenv(f"{prefix}URL", "")
        collection = os.getenv(f"{prefix}COLLECTION", "")
        if not urls.strip():
            raise InvalidArgumentError(f"{prefix}URL 환경변수를 설정하세요.")
        if not collection.strip():
            raise InvalidArgumentError(f"{prefix}COLLECTION 환경변수를 설정하세요.")

        return cls(
            collection=collection.strip(),
            endpoints=_split_urls(urls),
            topology=TopologyStrategy.coerce(os.getenv(f"{prefix}TOPOLOGY", "single_node")),
            profile=TuningProfile.from_env(prefix),
        )

    @classmethod
    def from_mapping(cls, collection: str, data: Mapping[str, Any]) -> CollectionConfig:
        """YAML collections.<name> 섹션에서 생성."""
        endpoints = data.get("endpoints") or []
        if isinstance(endpoints, str):
            endpoints = _split_urls(endpoints)

        return cls(
            collection=collection,
            endpoints=tuple(endpoints),
            topology=TopologyStrategy.coerce(data.get("topology", "single_node")),
            profile=TuningProfile.from_mapping(data.get("tuning")),
        )


def _load_yaml_config(config_path: str | Path) -> dict[str, Any]:
    """YAML 설정 파일 로드"""
    with open(config_path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_collection_configs(config_path: str | Path) -> list[CollectionConfig]:
    """YAML 파일의 collections 섹션을 CollectionConfig 목록으로 변환."""
    collections = _load_yaml_config(config_path).get("collections") or {}
    if not isinstance(collections, Mapping):
        raise InvalidArgumentError(f"'collections' must be a mapping in {config_path}")
    return [CollectionConfig.from_mapping(name, data or {}) for name, data in collections.items()]
