"""Transactional document store: contract and SQLAlchemy implementation."""

from payroll_kernel.store.base import (
    ChangeCallback,
    Document,
    DocumentStore,
    Filter,
    Unsubscribe,
    WriteKind,
    WriteOp,
    eq,
)
from payroll_kernel.store.sql import SqlDocumentStore

__all__ = [
    "ChangeCallback",
    "Document",
    "DocumentStore",
    "Filter",
    "SqlDocumentStore",
    "Unsubscribe",
    "WriteKind",
    "WriteOp",
    "eq",
]
