"""
docstore 팩토리.

설정(CollectionConfig)으로부터 레지스트리와 리포지토리를 조립하는 팩토리 함수.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import TypeVar

from docstore.config import CollectionConfig, load_collection_configs
from docstore.documents import Document
from docstore.registry import ClientRegistry
from docstore.repository import DocumentRepository

T = TypeVar("T", bound=Document)


def create_registry(configs: Iterable[CollectionConfig]) -> ClientRegistry:
    """
    여러 컬렉션 설정으로 초기화된 레지스트리를 생성합니다.

    Args:
        configs: 컬렉션별 연결 설정

    Returns:
        모든 컬렉션이 initialize 된 ClientRegistry
    """
    registry = ClientRegistry()
    for config in configs:
        registry.initialize_from_config(config)
    return registry


def create_registry_from_yaml(config_path: str | Path) -> ClientRegistry:
    """YAML 파일(collections 섹션)로 레지스트리 생성."""
    return create_registry(load_collection_configs(config_path))


def create_registry_from_env(prefix: str = "ES_") -> ClientRegistry:
    """환경변수(ES_URL, ES_COLLECTION, ...)로 단일 컬렉션 레지스트리 생성."""
    return create_registry([CollectionConfig.from_env(prefix)])


def create_repository(
    registry: ClientRegistry,
    collection: str,
    document_type: type[T],
) -> DocumentRepository[T]:
    """
    레지스트리에 등록된 컬렉션 핸들로 리포지토리를 생성합니다.

    Raises:
        NotInitializedError: collection이 등록되지 않은 경우
    """
    return DocumentRepository(registry.get_instance(collection), document_type)
