"""Elasticsearch 클라이언트 핸들 팩토리.

컬렉션 하나에 대해 topology, 튜닝 설정이 적용된 AsyncElasticsearch 핸들을 생성합니다.
핸들 생성 시에는 네트워크 I/O가 없습니다. DNS/TLS 오류는 첫 요청 시점에 드러납니다.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from elastic_transport import NodeConfig
from elasticsearch import AsyncElasticsearch

from docstore.config import ClientSettings, TuningProfile
from docstore.errors import require_items, require_text
from docstore.topology import Endpoint, TopologyStrategy, topology_options

logger = logging.getLogger(__name__)

# debug_mode에서 DEBUG로 올리는 라이브러리 로거
_TRANSPORT_LOGGERS = ("elastic_transport", "elasticsearch")


@dataclass
class RequestEvent:
    """요청 라이프사이클 훅에 전달되는 정보.

    on_request_created 시점에는 duration_s가 None이고,
    on_request_completed 시점에 duration_s와 (실패 시) error가 채워집니다.
    """

    collection: str
    operation: str
    params: dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.time)
    duration_s: float | None = None
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.duration_s is not None and self.error is None


@dataclass(frozen=True, eq=False)
class StoreClient:
    """컬렉션 하나에 묶인, 설정이 끝난 클라이언트 핸들.

    생성 후 변경되지 않습니다. ClientRegistry가 소유하며
    리포지토리는 참조만 보관합니다.
    """

    es: AsyncElasticsearch
    collection: str
    topology: TopologyStrategy
    endpoints: tuple[Endpoint, ...]
    settings: ClientSettings
    profile: TuningProfile | None = None

    @property
    def index(self) -> str:
        return self.collection

    @asynccontextmanager
    async def track(self, operation: str, **params: Any) -> AsyncIterator[RequestEvent]:
        """요청 하나를 감싸 on_request_created / on_request_completed 훅을 호출."""
        event = RequestEvent(collection=self.collection, operation=operation, params=params)
        if self.settings.on_request_created is not None:
            self.settings.on_request_created(event)

        started = time.perf_counter()
        try:
            yield event
        except Exception as e:
            event.error = e
            raise
        finally:
            event.duration_s = time.perf_counter() - started
            if self.settings.on_request_completed is not None:
                self.settings.on_request_completed(event)

    async def refresh(self) -> None:
        """컬렉션 refresh (직전 쓰기를 검색에 반영)."""
        async with self.track("refresh"):
            await self.es.indices.refresh(index=self.collection)

    async def close(self) -> None:
        await self.es.close()


def _url_credentials(endpoints: Sequence[Endpoint]) -> tuple[str, str] | None:
    for endpoint in endpoints:
        if endpoint.username and endpoint.password:
            return endpoint.username, endpoint.password
    return None


def _node_filter(predicate):
    """node_predicate를 sniffed_node_callback 시그니처로 변환."""

    def _callback(node_info: dict[str, Any], node_config: NodeConfig) -> NodeConfig | None:
        return node_config if predicate(node_info) else None

    return _callback


def _transport_options(settings: ClientSettings, endpoints: Sequence[Endpoint]) -> dict[str, Any]:
    """ClientSettings를 AsyncElasticsearch kwargs로 변환.

    기본값이 있는 항목은 항상 전달하고, 선택 항목은 값이 있을 때만 전달합니다
    (미지정 항목이 전송 계층 자체 기본값을 덮어쓰지 않도록).
    """
    options: dict[str, Any] = {
        "connections_per_node": settings.connection_limit,
        "request_timeout": settings.request_timeout_s,
        "max_retries": settings.max_retries,
        "http_compress": settings.http_compression,
    }

    # Basic Auth: 프로필 우선, 없으면 URL에 포함된 user:password
    basic_auth = settings.basic_auth or _url_credentials(endpoints)
    if basic_auth:
        options["basic_auth"] = basic_auth
    if settings.api_key:
        options["api_key"] = settings.api_key
    if settings.headers:
        options["headers"] = dict(settings.headers)

    # TLS
    for name in ("client_cert", "client_key", "ca_certs", "ssl_assert_fingerprint"):
        value = getattr(settings, name)
        if value:
            options[name] = value
    if settings.verify_certs is not None:
        options["verify_certs"] = settings.verify_certs
    if settings.ssl_context is not None:
        options["ssl_context"] = settings.ssl_context

    # Dead node / retry
    if settings.dead_timeout_s is not None:
        options["dead_node_backoff_factor"] = settings.dead_timeout_s
    if settings.max_dead_timeout_s is not None:
        options["max_dead_node_backoff"] = settings.max_dead_timeout_s
    if settings.retry_on_timeout is not None:
        options["retry_on_timeout"] = settings.retry_on_timeout

    if settings.node_predicate is not None:
        options["sniffed_node_callback"] = _node_filter(settings.node_predicate)

    return options


def create_store_client(
    endpoints: Iterable[str],
    collection: str,
    profile: TuningProfile | None = None,
    topology: TopologyStrategy | str = TopologyStrategy.SINGLE_NODE,
) -> StoreClient:
    """컬렉션용 StoreClient 생성.

    Args:
        endpoints: seed 엔드포인트 URL 목록 (최소 1개)
        collection: 컬렉션(인덱스) 이름
        profile: 튜닝 설정. None이면 전부 기본값
        topology: 노드 탐색 전략

    Returns:
        설정이 적용된 StoreClient.

    Raises:
        InvalidArgumentError: 엔드포인트가 비었거나, 파싱할 수 없거나,
            알 수 없는 topology인 경우.
    """
    urls = require_items(endpoints, "endpoints")
    require_text(collection, "collection")
    strategy = TopologyStrategy.coerce(topology)
    parsed = tuple(Endpoint.parse(url) for url in urls)
    settings = ClientSettings.resolve(profile)

    if settings.proxy is not None:
        logger.warning(
            f"[{collection}] proxy {settings.proxy.address} 설정은 aiohttp 전송 계층에서 "
            "지원되지 않아 핸들 설정에만 기록됩니다."
        )

    if settings.debug_mode:
        for name in _TRANSPORT_LOGGERS:
            logging.getLogger(name).setLevel(logging.DEBUG)
        logger.info(f"[{collection}] debug mode: 전송 계층 로그를 DEBUG로 기록합니다.")

    options = topology_options(strategy, parsed, settings)
    options.update(_transport_options(settings, parsed))
    es = AsyncElasticsearch(**options)

    logger.info(
        f"[{collection}] 클라이언트 생성: topology={strategy.value}, "
        f"nodes={[e.url for e in parsed]}"
    )
    return StoreClient(
        es=es,
        collection=collection,
        topology=strategy,
        endpoints=parsed,
        settings=settings,
        profile=profile,
    )


async def check_connection(client: StoreClient) -> bool:
    """ES 연결 상태 확인.

    Returns:
        연결 성공 여부.
    """
    try:
        return bool(await client.es.ping())
    except Exception as e:
        logger.debug(f"[{client.collection}] ping 실패: {e}")
        return False
