"""
ORM model backing the document store.

Every collection shares one ``documents`` table.  A row is addressed by
``(tenant_id, collection, doc_id)``; the payload is stored as JSON.
"""

from typing import Any

from sqlalchemy import JSON, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase


class DocumentModel(TrackedBase):
    __tablename__ = "documents"

    __table_args__ = (
        UniqueConstraint("tenant_id", "collection", "doc_id", name="uq_documents_key"),
        Index("idx_documents_collection", "tenant_id", "collection"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    collection: Mapped[str] = mapped_column(String(100), nullable=False)
    doc_id: Mapped[str] = mapped_column(String(200), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<DocumentModel {self.tenant_id}:{self.collection}/{self.doc_id}>"
