"""
Document store contract.

Responsibility:
    Defines the transactional document store the ledgers and the payroll
    engine persist through: point reads, filtered queries, atomic
    multi-document batches and change subscriptions.  Documents are
    JSON-native dicts grouped into named collections and bound to a single
    tenant by the store instance.

Architecture position:
    Kernel > Store.  Pure types plus a ``Protocol``; the SQLAlchemy
    implementation lives in ``store/sql.py``.

Write kinds:
    CREATE  insert; fails with DocumentExistsError if the id is taken
    SET     insert or overwrite
    UPDATE  shallow merge into an existing document; fails with
            DocumentNotFoundError if it is missing
    DELETE  remove; a missing document is not an error

Invariants enforced:
    - ``batch_write`` is all-or-nothing.
    - Subscribers see only committed state.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class WriteKind(str, Enum):
    CREATE = "create"
    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class WriteOp:
    """One document mutation inside a batch."""

    kind: WriteKind
    collection: str
    doc_id: str
    data: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        if not self.collection or not self.doc_id:
            raise ValueError("WriteOp requires a collection and a doc_id")
        if self.kind != WriteKind.DELETE and self.data is None:
            raise ValueError(f"{self.kind.value} requires data")

    @classmethod
    def create(cls, collection: str, doc_id: str, data: Mapping[str, Any]) -> WriteOp:
        return cls(WriteKind.CREATE, collection, doc_id, dict(data))

    @classmethod
    def set(cls, collection: str, doc_id: str, data: Mapping[str, Any]) -> WriteOp:
        return cls(WriteKind.SET, collection, doc_id, dict(data))

    @classmethod
    def update(cls, collection: str, doc_id: str, data: Mapping[str, Any]) -> WriteOp:
        return cls(WriteKind.UPDATE, collection, doc_id, dict(data))

    @classmethod
    def delete(cls, collection: str, doc_id: str) -> WriteOp:
        return cls(WriteKind.DELETE, collection, doc_id)


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
    "not-in": lambda a, b: a not in b,
}


@dataclass(frozen=True)
class Filter:
    """
    A single field predicate, e.g. ``Filter("month", "==", "2025-01")``.

    A field missing from a document compares as ``None``.
    """

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, data: Mapping[str, Any]) -> bool:
        return _OPERATORS[self.op](data.get(self.field), self.value)


def eq(field_name: str, value: Any) -> Filter:
    return Filter(field_name, "==", value)


@dataclass(frozen=True)
class Document:
    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)


ChangeCallback = Callable[[list[Document]], None]
Unsubscribe = Callable[[], None]


def matches_all(data: Mapping[str, Any], filters: Sequence[Filter]) -> bool:
    return all(f.matches(data) for f in filters)


def _sort_key(value: Any) -> tuple[bool, Any]:
    return (value is None, "" if value is None else value)


def sort_documents(docs: list[Document], order_by: Sequence[str]) -> list[Document]:
    """
    Sort by each key in turn; a leading ``-`` means descending.

    Missing values sort last in ascending order.
    """
    for key in reversed(order_by):
        descending = key.startswith("-")
        name = key[1:] if descending else key
        docs.sort(key=lambda d: _sort_key(d.data.get(name)), reverse=descending)
    return docs


@runtime_checkable
class DocumentStore(Protocol):
    """Transactional document store bound to one tenant."""

    def get(self, collection: str, doc_id: str) -> Document | None:
        ...

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[Document]:
        ...

    def batch_write(self, ops: Sequence[WriteOp]) -> None:
        ...

    def subscribe(
        self,
        collection: str,
        filters: Sequence[Filter],
        on_change: ChangeCallback,
    ) -> Unsubscribe:
        ...
