"""Elasticsearch 기반 문서 저장소 접근 계층.

이 패키지는 컬렉션별 클라이언트 관리와 제네릭 CRUD 리포지토리를 제공합니다.

주요 컴포넌트:
    - ClientRegistry: 컬렉션 이름별 StoreClient 생성/캐시
    - StoreClient: topology, 튜닝 설정이 적용된 AsyncElasticsearch 핸들
    - DocumentRepository: 단건/대량 CRUD, refresh 정책, retry-on-conflict
    - TuningProfile / ClientSettings: 연결 튜닝 설정과 기본값 적용

Usage:
    >>> from dataclasses import dataclass
    >>> from docstore import ClientRegistry, Document, DocumentRepository, TopologyStrategy
    >>>
    >>> @dataclass(frozen=True)
    ... class Order(Document):
    ...     name: str
    >>>
    >>> registry = ClientRegistry()
    >>> registry.initialize(["http://localhost:9200"], "orders", topology=TopologyStrategy.STATIC)
    >>> repo = DocumentRepository(registry.get_instance("orders"), Order)
    >>> order_id = await repo.create(Order(name="a"))
"""

from docstore.client import RequestEvent, StoreClient, check_connection, create_store_client
from docstore.config import ClientSettings, CollectionConfig, TuningProfile, load_collection_configs
from docstore.documents import BulkFailure, BulkOutcome, Document, Refresh
from docstore.errors import DocstoreError, InvalidArgumentError, NotInitializedError
from docstore.factory import (
    create_registry,
    create_registry_from_env,
    create_registry_from_yaml,
    create_repository,
)
from docstore.registry import ClientRegistry
from docstore.repository import DocumentRepository
from docstore.topology import Endpoint, StickySelector, TopologyStrategy

__all__ = [
    # Config
    "TuningProfile",
    "ClientSettings",
    "CollectionConfig",
    "load_collection_configs",
    # Topology
    "TopologyStrategy",
    "Endpoint",
    "StickySelector",
    # Client
    "StoreClient",
    "RequestEvent",
    "create_store_client",
    "check_connection",
    "ClientRegistry",
    # Documents
    "Document",
    "Refresh",
    "BulkOutcome",
    "BulkFailure",
    # Repository
    "DocumentRepository",
    # Factory
    "create_registry",
    "create_registry_from_env",
    "create_registry_from_yaml",
    "create_repository",
    # Errors
    "DocstoreError",
    "InvalidArgumentError",
    "NotInitializedError",
]
