"""
Tests for SqlDocumentStore.

Verifies:
- CREATE / SET / UPDATE / DELETE semantics
- All-or-nothing batches
- Equality filters run in SQL; other predicates, ordering and limits in Python
- Subscriptions: initial snapshot, post-commit updates, unsubscribe
- Tenant isolation
- Database failures surface as StoreUnavailableError
"""

import pytest
from sqlalchemy import func, select

from payroll_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from payroll_kernel.exceptions import (
    DocumentExistsError,
    DocumentNotFoundError,
    StoreUnavailableError,
)
from payroll_kernel.store import DocumentStore, Filter, SqlDocumentStore, WriteOp, eq
from payroll_kernel.store.models import DocumentModel
from payroll_kernel.store.sql import _split_filters


class TestWrites:

    def test_create_and_get(self, store):
        store.batch_write([WriteOp.create("employees", "e1", {"name": "Ahmad"})])
        doc = store.get("employees", "e1")
        assert doc is not None
        assert doc.data == {"name": "Ahmad"}

    def test_get_missing_returns_none(self, store):
        assert store.get("employees", "missing") is None

    def test_create_existing_raises(self, store):
        store.batch_write([WriteOp.create("payroll_months", "2025-01", {"n": 1})])
        with pytest.raises(DocumentExistsError) as exc_info:
            store.batch_write([WriteOp.create("payroll_months", "2025-01", {"n": 2})])
        assert exc_info.value.doc_id == "2025-01"
        assert store.get("payroll_months", "2025-01").data == {"n": 1}

    def test_set_overwrites(self, store):
        store.batch_write([WriteOp.set("ledger", "l1", {"a": 1, "b": 2})])
        store.batch_write([WriteOp.set("ledger", "l1", {"a": 3})])
        assert store.get("ledger", "l1").data == {"a": 3}

    def test_update_merges(self, store):
        store.batch_write([WriteOp.create("advances", "a1", {"status": "active", "amount": "300.00"})])
        store.batch_write([WriteOp.update("advances", "a1", {"status": "fully_deducted"})])
        assert store.get("advances", "a1").data == {
            "status": "fully_deducted",
            "amount": "300.00",
        }

    def test_update_missing_raises(self, store):
        with pytest.raises(DocumentNotFoundError):
            store.batch_write([WriteOp.update("advances", "missing", {"status": "active"})])

    def test_delete(self, store):
        store.batch_write([WriteOp.create("payroll", "p1", {"month": "2025-01"})])
        store.batch_write([WriteOp.delete("payroll", "p1")])
        assert store.get("payroll", "p1") is None

    def test_delete_missing_is_noop(self, store):
        store.batch_write([WriteOp.delete("payroll", "missing")])

    def test_delete_then_create_same_key_in_one_batch(self, store):
        store.batch_write([WriteOp.create("payroll_months", "2025-01", {"v": 1})])
        store.batch_write([
            WriteOp.delete("payroll_months", "2025-01"),
            WriteOp.create("payroll_months", "2025-01", {"v": 2}),
        ])
        assert store.get("payroll_months", "2025-01").data == {"v": 2}

    def test_returned_documents_are_copies(self, store):
        store.batch_write([WriteOp.create("employees", "e1", {"tags": ["a"]})])
        doc = store.get("employees", "e1")
        doc.data["tags"].append("b")
        assert store.get("employees", "e1").data == {"tags": ["a"]}

    def test_write_op_requires_doc_id(self):
        with pytest.raises(ValueError):
            WriteOp.create("employees", "", {"name": "x"})


class TestAtomicity:

    def test_failed_batch_leaves_no_trace(self, store):
        store.batch_write([WriteOp.create("payroll_months", "2025-01", {})])
        with pytest.raises(DocumentExistsError):
            store.batch_write([
                WriteOp.create("payroll", "p1", {"month": "2025-01"}),
                WriteOp.create("overtime_entries", "o1", {"hours": "2"}),
                WriteOp.create("payroll_months", "2025-01", {}),
            ])
        assert store.get("payroll", "p1") is None
        assert store.get("overtime_entries", "o1") is None

    def test_update_failure_rolls_back_creates(self, store):
        with pytest.raises(DocumentNotFoundError):
            store.batch_write([
                WriteOp.create("payroll", "p1", {"month": "2025-01"}),
                WriteOp.update("advances", "missing", {"linked_payroll_month": "2025-01"}),
            ])
        assert store.query("payroll") == []

    def test_empty_batch_is_noop(self, store):
        store.batch_write([])


class TestQueries:

    @pytest.fixture
    def seeded(self, store):
        store.batch_write([
            WriteOp.create("payroll", "p1", {"month": "2025-01", "employee_name": "Zaid", "net": 10}),
            WriteOp.create("payroll", "p2", {"month": "2025-01", "employee_name": "Ahmad", "net": 30}),
            WriteOp.create("payroll", "p3", {"month": "2025-02", "employee_name": "Lina", "net": 20}),
            WriteOp.create("payroll", "p4", {"month": "2025-02", "employee_name": "Basel"}),
        ])
        return store

    def test_equality_filter(self, seeded):
        docs = seeded.query("payroll", [eq("month", "2025-01")])
        assert {d.doc_id for d in docs} == {"p1", "p2"}

    def test_in_filter(self, seeded):
        docs = seeded.query("payroll", [Filter("employee_name", "in", ["Lina", "Zaid"])])
        assert {d.doc_id for d in docs} == {"p1", "p3"}

    def test_range_filter_skips_missing_field(self, seeded):
        docs = seeded.query("payroll", [Filter("net", ">=", 20)])
        assert {d.doc_id for d in docs} == {"p2", "p3"}

    def test_order_ascending(self, seeded):
        docs = seeded.query("payroll", order_by=["employee_name"])
        assert [d.data["employee_name"] for d in docs] == ["Ahmad", "Basel", "Lina", "Zaid"]

    def test_order_descending_then_ascending(self, seeded):
        docs = seeded.query("payroll", order_by=["-month", "employee_name"])
        assert [d.doc_id for d in docs] == ["p4", "p3", "p2", "p1"]

    def test_missing_values_sort_last(self, seeded):
        docs = seeded.query("payroll", order_by=["net"])
        assert docs[-1].doc_id == "p4"

    def test_limit(self, seeded):
        docs = seeded.query("payroll", order_by=["employee_name"], limit=2)
        assert [d.doc_id for d in docs] == ["p2", "p4"]

    def test_none_filter_matches_missing_and_null(self, store):
        store.batch_write([
            WriteOp.create("advances", "a1", {"linked_payroll_month": None}),
            WriteOp.create("advances", "a2", {}),
            WriteOp.create("advances", "a3", {"linked_payroll_month": "2025-01"}),
        ])
        docs = store.query("advances", [eq("linked_payroll_month", None)])
        assert {d.doc_id for d in docs} == {"a1", "a2"}

    def test_equality_combined_with_python_predicate(self, seeded):
        docs = seeded.query("payroll", [eq("month", "2025-02"), Filter("net", ">", 5)])
        assert [d.doc_id for d in docs] == ["p3"]

    def test_limit_without_order(self, seeded):
        docs = seeded.query("payroll", [eq("month", "2025-01")], limit=1)
        assert len(docs) == 1
        assert docs[0].data["month"] == "2025-01"

    def test_limit_applied_after_python_predicates(self, seeded):
        docs = seeded.query("payroll", [Filter("net", ">=", 20)], limit=1)
        assert len(docs) == 1
        assert docs[0].doc_id in {"p2", "p3"}

    def test_split_filters(self):
        clauses, residual = _split_filters([
            eq("month", "2025-01"),
            eq("linked_payroll_month", None),
            eq("net", 10),
            Filter("net", ">", 5),
        ])
        assert len(clauses) == 2
        assert residual == [eq("net", 10), Filter("net", ">", 5)]

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValueError):
            Filter("month", "like", "2025%")


class TestSubscriptions:

    def test_initial_snapshot_then_updates(self, store):
        store.batch_write([WriteOp.create("payroll", "p1", {"month": "2025-01"})])
        snapshots = []
        store.subscribe("payroll", [eq("month", "2025-01")], snapshots.append)

        assert [[d.doc_id for d in s] for s in snapshots] == [["p1"]]

        store.batch_write([WriteOp.create("payroll", "p2", {"month": "2025-01"})])
        store.batch_write([WriteOp.create("payroll", "p3", {"month": "2025-02"})])

        assert len(snapshots) == 3
        assert {d.doc_id for d in snapshots[1]} == {"p1", "p2"}
        assert {d.doc_id for d in snapshots[2]} == {"p1", "p2"}

    def test_other_collections_do_not_notify(self, store):
        snapshots = []
        store.subscribe("payroll", [], snapshots.append)
        store.batch_write([WriteOp.create("advances", "a1", {})])
        assert len(snapshots) == 1

    def test_failed_batch_does_not_notify(self, store):
        snapshots = []
        store.subscribe("payroll", [], snapshots.append)
        with pytest.raises(DocumentNotFoundError):
            store.batch_write([
                WriteOp.create("payroll", "p1", {}),
                WriteOp.update("payroll", "missing", {}),
            ])
        assert len(snapshots) == 1

    def test_unsubscribe(self, store):
        snapshots = []
        unsubscribe = store.subscribe("payroll", [], snapshots.append)
        unsubscribe()
        store.batch_write([WriteOp.create("payroll", "p1", {})])
        assert len(snapshots) == 1

    def test_failing_subscriber_does_not_fail_writer(self, store, captured_logs):
        def broken(docs):
            if docs:
                raise RuntimeError("listener bug")

        store.subscribe("payroll", [], broken)
        store.batch_write([WriteOp.create("payroll", "p1", {})])

        assert store.get("payroll", "p1") is not None
        assert any(r["message"] == "store_subscriber_failed" for r in captured_logs())


class TestTenantIsolation:

    def test_tenants_do_not_see_each_other(self, session_factory, clock):
        store_a = SqlDocumentStore(session_factory, tenant_id="a", clock=clock)
        store_b = SqlDocumentStore(session_factory, tenant_id="b", clock=clock)

        store_a.batch_write([WriteOp.create("employees", "e1", {"name": "A"})])
        store_b.batch_write([WriteOp.create("employees", "e1", {"name": "B"})])

        assert store_a.get("employees", "e1").data == {"name": "A"}
        assert store_b.get("employees", "e1").data == {"name": "B"}
        assert len(store_a.query("employees")) == 1


class TestFailureModes:

    def test_missing_schema_read(self, store, engine):
        drop_tables(engine)
        with pytest.raises(StoreUnavailableError) as exc_info:
            store.query("payroll")
        assert exc_info.value.operation == "query"

    def test_missing_schema_write(self, store, engine, captured_logs):
        drop_tables(engine)
        with pytest.raises(StoreUnavailableError):
            store.batch_write([WriteOp.create("payroll", "p1", {})])
        assert any(r["message"] == "store_batch_failed" for r in captured_logs())


class TestProtocolAndEngine:

    def test_store_satisfies_protocol(self, store):
        assert isinstance(store, DocumentStore)

    def test_rows_carry_timestamps_from_clock(self, store, session_factory):
        store.batch_write([WriteOp.create("employees", "e1", {"name": "A"})])
        with session_factory() as session:
            row = session.scalars(select(DocumentModel)).one()
            assert row.tenant_id == "tenant-test"
            assert row.created_at.year == 2025

    def test_session_scope_commits_and_rolls_back(self):
        init_engine_from_url("sqlite://")
        try:
            create_tables()
            with session_scope() as session:
                session.add(DocumentModel(
                    tenant_id="t", collection="employees", doc_id="e1", data={},
                ))

            with pytest.raises(RuntimeError):
                with session_scope() as session:
                    session.add(DocumentModel(
                        tenant_id="t", collection="employees", doc_id="e2", data={},
                    ))
                    raise RuntimeError("abort")

            with session_scope() as session:
                count = session.scalar(select(func.count()).select_from(DocumentModel))
            assert count == 1
            assert get_engine().dialect.name == "sqlite"
        finally:
            reset_engine()

    def test_get_engine_requires_init(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
