"""Configuration for pytest testing framework."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from fakes import InMemoryElasticsearch, fake_async_bulk


@pytest.fixture
def es() -> AsyncMock:
    """AsyncElasticsearch mock. 하위 속성(indices.refresh 등)도 AsyncMock."""
    return AsyncMock()


@pytest.fixture
def memory_es():
    """bulk helper까지 인메모리 대역으로 연결된 저장소."""
    store = InMemoryElasticsearch()
    with patch("docstore.repository.base.async_bulk", new=fake_async_bulk):
        yield store


@pytest.fixture
def es_class():
    """docstore.client의 AsyncElasticsearch 생성자를 mock으로 교체."""
    with patch("docstore.client.AsyncElasticsearch") as mock_cls:
        yield mock_cls
