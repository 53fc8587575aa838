"""컬렉션별 StoreClient 레지스트리.

컬렉션 이름마다 설정된 클라이언트 핸들을 하나씩 생성/캐시합니다.
프로세스 전역 상태가 아니라 주입 가능한 객체이므로, 테스트나 멀티 테넌트 환경에서
레지스트리를 분리해서 사용할 수 있습니다.

Usage:
    >>> registry = ClientRegistry()
    >>> registry.initialize(["http://localhost:9200"], "orders")
    >>> client = registry.get_instance("orders")
    >>> ...
    >>> await registry.close()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from docstore.client import StoreClient, create_store_client
from docstore.config import CollectionConfig, TuningProfile
from docstore.errors import NotInitializedError
from docstore.topology import TopologyStrategy

logger = logging.getLogger(__name__)


class ClientRegistry:
    """컬렉션 이름 → StoreClient 캐시.

    쓰기(initialize)는 lock 아래에서 새 dict를 만들어 통째로 교체하고,
    읽기(get_instance)는 lock 없이 현재 dict 참조만 읽습니다.
    따라서 조회는 완성된 핸들을 보거나 NotInitializedError를 받을 뿐,
    생성 중인 핸들을 보는 일은 없습니다.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clients: Mapping[str, StoreClient] = MappingProxyType({})
        # 컬렉션별 직전 세대 핸들. 진행 중인 요청이 끝날 수 있도록 한 번 더 교체될 때까지 열어 둠
        self._retired: dict[str, StoreClient] = {}
        # 이벤트 루프 밖에서 만료되어 close()까지 미뤄진 핸들
        self._expired: list[StoreClient] = []
        self._closing: set[asyncio.Task] = set()

    def initialize(
        self,
        endpoints: Iterable[str],
        collection: str,
        profile: TuningProfile | None = None,
        topology: TopologyStrategy | str = TopologyStrategy.SINGLE_NODE,
    ) -> None:
        """컬렉션용 클라이언트를 생성해 등록 (이미 있으면 교체).

        교체된 핸들은 한 세대 동안 유지되고, 다음 교체 때 닫힙니다.

        Raises:
            InvalidArgumentError: 엔드포인트가 비었거나 topology를 알 수 없는 경우.
        """
        client = create_store_client(endpoints, collection, profile, topology)

        expired = None
        with self._lock:
            previous = self._clients.get(collection)
            updated = dict(self._clients)
            updated[collection] = client
            self._clients = MappingProxyType(updated)
            if previous is not None:
                expired = self._retired.pop(collection, None)
                self._retired[collection] = previous

        if previous is not None:
            logger.info(f"[{collection}] 클라이언트 교체 (topology={client.topology.value})")
        if expired is not None:
            self._release(expired)

    def _release(self, client: StoreClient) -> None:
        """만료된 핸들을 실행 중인 이벤트 루프에서 닫음. 루프가 없으면 close()까지 보관."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            with self._lock:
                self._expired.append(client)
            return

        task = loop.create_task(_close_client(client))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    def initialize_from_config(self, config: CollectionConfig) -> None:
        self.initialize(config.endpoints, config.collection, config.profile, config.topology)

    def get_instance(self, collection: str) -> StoreClient:
        """등록된 핸들 반환.

        Raises:
            NotInitializedError: initialize 되지 않은 컬렉션인 경우.
        """
        try:
            return self._clients[collection]
        except KeyError:
            raise NotInitializedError(collection) from None

    def collections(self) -> list[str]:
        return list(self._clients)

    def __contains__(self, collection: object) -> bool:
        return collection in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    async def close(self) -> None:
        """등록/교체된 모든 핸들을 닫고 레지스트리를 비웁니다."""
        with self._lock:
            clients = [*self._clients.values(), *self._retired.values(), *self._expired]
            self._clients = MappingProxyType({})
            self._retired = {}
            self._expired = []
            pending = list(self._closing)

        results = [await _close_client(client) for client in clients]
        results += await asyncio.gather(*pending)
        errors = [r for r in results if r]

        if errors:
            logger.warning(f"클라이언트 close 실패: {'; '.join(errors)}")
        logger.info(f"레지스트리 종료: {len(results)}개 클라이언트 close")


async def _close_client(client: StoreClient) -> str | None:
    """핸들을 닫고, 실패하면 오류 메시지를 반환."""
    try:
        await client.close()
    except Exception as e:
        return f"{client.collection}: {e}"
    return None
