"""Tests for argument validation helpers."""

import pytest

from docstore.errors import (
    DocstoreError,
    InvalidArgumentError,
    NotInitializedError,
    is_blank,
    require_items,
    require_not_none,
    require_text,
)


def test_invalid_argument_is_value_error() -> None:
    assert issubclass(InvalidArgumentError, ValueError)
    assert issubclass(InvalidArgumentError, DocstoreError)


def test_not_initialized_error() -> None:
    error = NotInitializedError("orders")

    assert isinstance(error, LookupError)
    assert error.collection == "orders"
    assert "orders" in str(error)


def test_require_not_none() -> None:
    assert require_not_none(0, "value") == 0
    with pytest.raises(InvalidArgumentError, match="'value'"):
        require_not_none(None, "value")


@pytest.mark.parametrize("value", [None, "", "   ", "\t\n"])
def test_require_text_rejects_blank(value) -> None:
    with pytest.raises(InvalidArgumentError, match="'doc_id'"):
        require_text(value, "doc_id")


def test_require_text_returns_value() -> None:
    assert require_text(" a ", "doc_id") == " a "


def test_require_items_materializes_iterables() -> None:
    assert require_items((x for x in "ab"), "ids") == ["a", "b"]
    assert require_items({"a"}, "ids") == ["a"]


@pytest.mark.parametrize("values", [None, [], (), "abc", b"abc"])
def test_require_items_rejects_empty_or_text(values) -> None:
    with pytest.raises(InvalidArgumentError, match="at least one item"):
        require_items(values, "ids")


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, True), ("", True), (" ", True), ("x", False), (0, False)],
)
def test_is_blank(value, expected) -> None:
    assert is_blank(value) is expected
