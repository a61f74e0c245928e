"""
SqlDocumentStore -- DocumentStore over SQLAlchemy.

Responsibility:
    Runs each ``batch_write`` as one session transaction against the
    ``documents`` table and notifies subscribers once the transaction has
    committed.

Architecture position:
    Kernel > Store.  Imports db/ and store/base.py only.

Invariants enforced:
    - All-or-nothing batches: any failure rolls the whole batch back.
    - CREATE is checked against the unique key at flush time, so two
      concurrent creators of the same document cannot both commit.
    - Returned documents are deep copies; callers cannot mutate store state.

Failure modes:
    - DocumentExistsError / DocumentNotFoundError for CREATE / UPDATE
      precondition failures.
    - StoreUnavailableError wrapping any SQLAlchemyError.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from itertools import count

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.exceptions import (
    DocumentExistsError,
    DocumentNotFoundError,
    StoreError,
    StoreUnavailableError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.store.base import (
    ChangeCallback,
    Document,
    Filter,
    Unsubscribe,
    WriteKind,
    WriteOp,
    matches_all,
    sort_documents,
)
from payroll_kernel.store.models import DocumentModel

logger = get_logger("store.sql")


@dataclass(frozen=True)
class _Subscription:
    collection: str
    filters: tuple[Filter, ...]
    on_change: ChangeCallback


class SqlDocumentStore:
    """
    Tenant-scoped document store backed by one SQL table.

    Contract:
        ``session_factory`` yields sessions on an engine whose schema has the
        ``documents`` table (see ``payroll_kernel.db.engine.create_tables``).

    Guarantees:
        - ``batch_write`` commits every op or none.
        - Subscribers on a collection touched by a batch are re-run after
          commit with the full, filtered result set.

    Query execution:
        Equality filters on string or None values run in SQL against the
        JSON payload (see ``_split_filters``).  Remaining filters and
        ordering run in Python over the narrowed rows; ``limit`` is pushed
        into SQL only when nothing is left to evaluate in Python.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        tenant_id: str = "default",
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._tenant_id = tenant_id
        self._clock = clock or SystemClock()
        self._subscriptions: dict[int, _Subscription] = {}
        self._subscription_ids = count(1)
        self._lock = threading.Lock()

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, collection: str, doc_id: str) -> Document | None:
        with self._read_session("get") as session:
            row = self._load(session, collection, doc_id)
            return self._to_document(row) if row is not None else None

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[Document]:
        clauses, residual = _split_filters(filters)
        stmt = select(DocumentModel).where(
            DocumentModel.tenant_id == self._tenant_id,
            DocumentModel.collection == collection,
            *clauses,
        )
        if limit is not None and not order_by and not residual:
            stmt = stmt.limit(limit)
        with self._read_session("query") as session:
            docs = [
                self._to_document(row)
                for row in session.scalars(stmt).all()
                if matches_all(row.data, residual)
            ]
        sort_documents(docs, order_by)
        if limit is not None:
            docs = docs[:limit]
        return docs

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def batch_write(self, ops: Sequence[WriteOp]) -> None:
        """
        Apply ``ops`` atomically.

        Raises:
            DocumentExistsError: A CREATE hit an existing document.
            DocumentNotFoundError: An UPDATE hit a missing document.
            StoreUnavailableError: The database failed.
        """
        if not ops:
            return

        now = self._clock.now()
        session = self._session_factory()
        try:
            rows: dict[tuple[str, str], DocumentModel | None] = {}

            def load(op: WriteOp) -> DocumentModel | None:
                key = (op.collection, op.doc_id)
                if key not in rows:
                    rows[key] = self._load(session, op.collection, op.doc_id)
                return rows[key]

            for op in ops:
                row = load(op)
                key = (op.collection, op.doc_id)

                if op.kind == WriteKind.CREATE:
                    if row is not None:
                        raise DocumentExistsError(op.collection, op.doc_id)
                    rows[key] = self._insert(session, op, now)
                    try:
                        session.flush()
                    except IntegrityError as exc:
                        raise DocumentExistsError(op.collection, op.doc_id) from exc

                elif op.kind == WriteKind.SET:
                    if row is None:
                        rows[key] = self._insert(session, op, now)
                    else:
                        row.data = copy.deepcopy(dict(op.data))
                        row.updated_at = now

                elif op.kind == WriteKind.UPDATE:
                    if row is None:
                        raise DocumentNotFoundError(op.collection, op.doc_id)
                    merged = dict(row.data)
                    merged.update(copy.deepcopy(dict(op.data)))
                    row.data = merged
                    row.updated_at = now

                elif op.kind == WriteKind.DELETE:
                    if row is not None:
                        session.delete(row)
                        # A later CREATE of the same key must not race the DELETE
                        session.flush()
                        rows[key] = None

            session.commit()
        except StoreError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                "store_batch_failed",
                extra={"tenant_id": self._tenant_id, "op_count": len(ops)},
                exc_info=True,
            )
            raise StoreUnavailableError("batch_write", str(exc)) from exc
        finally:
            session.close()

        logger.debug(
            "store_batch_committed",
            extra={
                "tenant_id": self._tenant_id,
                "op_count": len(ops),
                "collections": sorted({op.collection for op in ops}),
            },
        )
        self._notify({op.collection for op in ops})

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        collection: str,
        filters: Sequence[Filter],
        on_change: ChangeCallback,
    ) -> Unsubscribe:
        """
        Register ``on_change`` for ``collection`` filtered by ``filters``.

        The callback receives the current matching documents immediately,
        then again after every committed batch that touches the collection.
        Returns a function that removes the subscription.
        """
        subscription = _Subscription(collection, tuple(filters), on_change)
        with self._lock:
            subscription_id = next(self._subscription_ids)
            self._subscriptions[subscription_id] = subscription

        self._deliver(subscription)

        def unsubscribe() -> None:
            with self._lock:
                self._subscriptions.pop(subscription_id, None)

        return unsubscribe

    def _notify(self, collections: set[str]) -> None:
        with self._lock:
            targets = [
                s for s in self._subscriptions.values() if s.collection in collections
            ]
        for subscription in targets:
            self._deliver(subscription)

    def _deliver(self, subscription: _Subscription) -> None:
        docs = self.query(subscription.collection, subscription.filters)
        try:
            subscription.on_change(docs)
        except Exception:
            # A failing listener must not affect the writer or other listeners
            logger.exception(
                "store_subscriber_failed",
                extra={"collection": subscription.collection},
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _read_session(self, operation: str) -> _ReadSession:
        return _ReadSession(self._session_factory, operation)

    def _load(
        self, session: Session, collection: str, doc_id: str
    ) -> DocumentModel | None:
        return session.scalars(
            select(DocumentModel).where(
                DocumentModel.tenant_id == self._tenant_id,
                DocumentModel.collection == collection,
                DocumentModel.doc_id == doc_id,
            )
        ).one_or_none()

    def _insert(self, session: Session, op: WriteOp, now) -> DocumentModel:
        row = DocumentModel(
            tenant_id=self._tenant_id,
            collection=op.collection,
            doc_id=op.doc_id,
            data=copy.deepcopy(dict(op.data)),
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        return row

    @staticmethod
    def _to_document(row: DocumentModel) -> Document:
        return Document(row.collection, row.doc_id, copy.deepcopy(row.data))


def _split_filters(filters: Sequence[Filter]) -> tuple[list, list[Filter]]:
    """
    Split ``filters`` into SQL clauses and predicates left for Python.

    Equality against a string or None becomes a ``WHERE`` on the JSON
    payload; ``->>`` / ``json_extract`` yields NULL for a missing key and for
    JSON null alike, which matches ``Filter.matches``.  Other operators and
    value types are evaluated in Python over the narrowed rows.
    """
    clauses = []
    residual: list[Filter] = []
    for f in filters:
        if f.op == "==" and f.value is None:
            clauses.append(DocumentModel.data[f.field].as_string().is_(None))
        elif f.op == "==" and isinstance(f.value, str):
            clauses.append(DocumentModel.data[f.field].as_string() == f.value)
        else:
            residual.append(f)
    return clauses, residual


class _ReadSession:
    """Session context for reads; maps database failures to StoreUnavailableError."""

    def __init__(self, session_factory: sessionmaker[Session], operation: str):
        self._session_factory = session_factory
        self._operation = operation
        self._session: Session | None = None

    def __enter__(self) -> Session:
        self._session = self._session_factory()
        return self._session

    def __exit__(self, exc_type, exc, tb) -> bool:
        assert self._session is not None
        self._session.close()
        if exc is not None and isinstance(exc, SQLAlchemyError):
            logger.error(
                "store_read_failed",
                extra={"operation": self._operation},
                exc_info=(exc_type, exc, tb),
            )
            raise StoreUnavailableError(self._operation, str(exc)) from exc
        return False
