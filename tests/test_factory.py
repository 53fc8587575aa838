"""Tests for registry and repository factory functions."""

from unittest.mock import AsyncMock

import pytest
from fakes import Order

from docstore.config import CollectionConfig, TuningProfile
from docstore.errors import InvalidArgumentError, NotInitializedError
from docstore.factory import (
    create_registry,
    create_registry_from_env,
    create_registry_from_yaml,
    create_repository,
)
from docstore.topology import TopologyStrategy


@pytest.fixture(autouse=True)
def _fake_clients(es_class):
    es_class.side_effect = lambda **kwargs: AsyncMock()
    return es_class


def test_create_registry() -> None:
    registry = create_registry(
        [
            CollectionConfig("orders", ("http://a:9200",)),
            CollectionConfig("events", ("http://b:9200", "http://c:9200"), TopologyStrategy.SNIFFING),
        ]
    )

    assert sorted(registry.collections()) == ["events", "orders"]
    assert registry.get_instance("events").topology is TopologyStrategy.SNIFFING


def test_create_registry_from_yaml(tmp_path) -> None:
    path = tmp_path / "docstore.yaml"
    path.write_text(
        "collections:\n"
        "  orders:\n"
        "    endpoints: http://localhost:9200\n"
        "    tuning:\n"
        "      max_retries: 5\n",
        encoding="utf-8",
    )

    registry = create_registry_from_yaml(path)

    assert registry.get_instance("orders").settings.max_retries == 5


def test_create_registry_from_yaml_invalid_section(tmp_path) -> None:
    path = tmp_path / "docstore.yaml"
    path.write_text("collections:\n  - orders\n", encoding="utf-8")

    with pytest.raises(InvalidArgumentError, match="collections"):
        create_registry_from_yaml(path)


def test_create_registry_from_env(monkeypatch) -> None:
    monkeypatch.setenv("DOCSTORE_TEST_URL", "http://localhost:9200")
    monkeypatch.setenv("DOCSTORE_TEST_COLLECTION", "orders")

    registry = create_registry_from_env("DOCSTORE_TEST_")

    assert registry.collections() == ["orders"]


def test_create_repository() -> None:
    registry = create_registry(
        [CollectionConfig("orders", ("http://a:9200",), profile=TuningProfile(max_retries=4))]
    )

    repo = create_repository(registry, "orders", Order)

    assert repo.client is registry.get_instance("orders")
    assert repo.document_type is Order
    assert repo.index_name == "orders"
    assert repo.max_retries == 4


def test_create_repository_unknown_collection() -> None:
    registry = create_registry([])

    with pytest.raises(NotInitializedError):
        create_repository(registry, "orders", Order)
