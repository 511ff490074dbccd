"""
Audit Log — SQLAlchemy models for the administrative audit trail.

The audit table is APPEND-ONLY. Rows are never updated or deleted. Every
terminal outcome of an administrative procedure is one row, including
procedures that were skipped or rejected without touching the ledger.

The hash chain: each row stores the SHA-256 hash of
(previous_hash || canonical_json(record)), so any retroactive alteration is
detectable by recomputing the chain.
"""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Uuid
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for audit models."""
    pass


class AuditEntryDB(Base):
    """
    A single audit record.

    The full ``AuditEntry`` is stored in ``record``; the remaining columns
    duplicate the fields operators filter on.
    """

    __tablename__ = "audit_entries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    # Chain ordering
    sequence_number = Column(
        Integer, nullable=False, unique=True, index=True,
        comment="Monotonically increasing sequence number",
    )
    previous_hash = Column(
        String(64), nullable=False,
        comment="SHA-256 hash of the previous entry",
    )
    entry_hash = Column(
        String(64), nullable=False, unique=True,
        comment="SHA-256 hash of this entry",
    )

    recorded_at = Column(DateTime(timezone=True), nullable=False)

    # Classification
    procedure_kind = Column(String(20), nullable=False)
    outcome = Column(String(30), nullable=False)
    category = Column(String(40), nullable=False)
    verdict = Column(String(20), nullable=True)
    initiator = Column(String(100), nullable=False)
    transaction_id = Column(String(100), nullable=True)

    record = Column(JSON, nullable=False, comment="Canonical AuditEntry content")

    __table_args__ = (
        Index("ix_audit_kind_recorded", "procedure_kind", "recorded_at"),
        Index("ix_audit_category", "category"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditEntry seq={self.sequence_number} "
            f"kind={self.procedure_kind} outcome={self.outcome} "
            f"hash={self.entry_hash[:12]}...>"
        )
