"""
Audit Log Service — Append-only, hash-chained record of administrative intent.

Provides the core operations for the audit trail:
- Append one complete record per terminal procedure outcome
- Verify the integrity of the full hash chain
- Query recent entries

There is no update and no delete. Appends are serialised so concurrent
writers sharing one AuditLog never interleave a record. Independent writers
(other processes, other AuditLog instances) collide on the unique sequence
number instead; the losing append re-reads the chain tail and retries, so the
chain never forks and no record is dropped. ``AuditIntegrityError`` is raised
only once the retries are exhausted.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from uuid import uuid4

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pausegate.audit.models import AuditEntryDB, Base
from pausegate.control.schema import (
    AdministrativeProcedure,
    AuditEntry,
    ErrorCategory,
    OutcomeKind,
    StateSnapshot,
    SubmissionReceipt,
    VerificationVerdict,
    utcnow,
)

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64  # The "previous hash" for the first entry in the chain

APPEND_MAX_ATTEMPTS = 20
APPEND_RETRY_BACKOFF_SECONDS = 0.005


class AuditIntegrityError(Exception):
    """Raised when an entry cannot be chained onto the audit log."""
    pass


class AuditLog:
    """
    Audit log store backed by any SQLAlchemy database.

    Usage:
        audit = AuditLog("sqlite:///pausegate_audit.db")
        audit.initialize()
        entry = audit.append(
            procedure=procedure,
            outcome=OutcomeKind.SKIPPED,
            category=ErrorCategory.ALREADY_IN_STATE,
            reason="ledger is already paused",
        )
    """

    def __init__(self, database_url: str = "sqlite://") -> None:
        """
        Initialize the audit log.

        Args:
            database_url: SQLAlchemy connection string. ``sqlite://`` keeps
                the log in memory for the life of this object.
        """
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            self.engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(database_url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)
        self._append_lock = threading.Lock()

    def initialize(self) -> None:
        """Create the audit table if it does not exist."""
        Base.metadata.create_all(self.engine)

    def append(
        self,
        procedure: AdministrativeProcedure,
        outcome: OutcomeKind,
        category: ErrorCategory,
        reason: str = "",
        receipt: SubmissionReceipt | None = None,
        pre_state: StateSnapshot | None = None,
        post_state: StateSnapshot | None = None,
        verdict: VerificationVerdict | None = None,
    ) -> AuditEntry:
        """
        Append a record to the audit log.

        This is the ONLY write operation. The hash chain is computed here.
        When another writer claims the same sequence number first, the chain
        tail is re-read and the append retried onto the new tail.

        Returns:
            The newly recorded AuditEntry.

        Raises:
            AuditIntegrityError: If every attempt lost the sequence race.
        """
        for attempt in range(1, APPEND_MAX_ATTEMPTS + 1):
            try:
                with self._append_lock:
                    entry = self._write(
                        procedure, outcome, category, reason,
                        receipt, pre_state, post_state, verdict,
                    )
            except IntegrityError:
                logger.warning(
                    "Audit sequence collision (attempt %d/%d), retrying on new tail",
                    attempt, APPEND_MAX_ATTEMPTS,
                )
                time.sleep(random.uniform(0, APPEND_RETRY_BACKOFF_SECONDS * attempt))
                continue

            logger.info(
                "Audit entry appended: seq=%d kind=%s outcome=%s category=%s hash=%s",
                entry.sequence_number,
                procedure.kind.value,
                outcome.value,
                category.value,
                entry.entry_hash[:16],
            )
            return entry

        raise AuditIntegrityError(
            f"Audit append for {procedure.kind.value} lost the sequence race "
            f"{APPEND_MAX_ATTEMPTS} times"
        )

    def _write(
        self,
        procedure: AdministrativeProcedure,
        outcome: OutcomeKind,
        category: ErrorCategory,
        reason: str,
        receipt: SubmissionReceipt | None,
        pre_state: StateSnapshot | None,
        post_state: StateSnapshot | None,
        verdict: VerificationVerdict | None,
    ) -> AuditEntry:
        with self.SessionLocal() as session:
            last = session.execute(
                select(AuditEntryDB)
                .order_by(AuditEntryDB.sequence_number.desc())
                .limit(1)
            ).scalar_one_or_none()

            sequence_number = last.sequence_number + 1 if last else 1
            previous_hash = last.entry_hash if last else GENESIS_HASH

            entry = AuditEntry(
                id=uuid4(),
                sequence_number=sequence_number,
                previous_hash=previous_hash,
                recorded_at=utcnow(),
                procedure=procedure,
                outcome=outcome,
                category=category,
                receipt=receipt,
                pre_state=pre_state,
                post_state=post_state,
                verdict=verdict,
                reason=reason,
            )
            entry = entry.model_copy(update={"entry_hash": entry.compute_hash()})

            session.add(
                AuditEntryDB(
                    id=entry.id,
                    sequence_number=sequence_number,
                    previous_hash=previous_hash,
                    entry_hash=entry.entry_hash,
                    recorded_at=entry.recorded_at,
                    procedure_kind=procedure.kind.value,
                    outcome=outcome.value,
                    category=category.value,
                    verdict=verdict.value if verdict else None,
                    initiator=procedure.initiator,
                    transaction_id=receipt.transaction_id if receipt else None,
                    record=entry.content(),
                )
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise
        return entry

    def entries(self, limit: int | None = None) -> list[AuditEntry]:
        """Return entries in chain order (oldest first), optionally only the last ``limit``."""
        with self.SessionLocal() as session:
            stmt = select(AuditEntryDB).order_by(AuditEntryDB.sequence_number.desc())
            if limit is not None:
                stmt = stmt.limit(limit)
            rows = list(session.execute(stmt).scalars().all())
        return [self._to_entry(row) for row in reversed(rows)]

    def get_entry(self, entry_id) -> AuditEntry | None:
        with self.SessionLocal() as session:
            row = session.get(AuditEntryDB, entry_id)
            return self._to_entry(row) if row else None

    def count(self) -> int:
        with self.SessionLocal() as session:
            return session.execute(
                select(func.count()).select_from(AuditEntryDB)
            ).scalar() or 0

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Verify the integrity of the entire hash chain.

        Walks every entry from the first forward, recomputing each hash from
        the stored record and checking its link to the previous entry.

        Returns:
            Tuple of (is_valid, entries_verified, message).
        """
        with self.SessionLocal() as session:
            rows = list(
                session.execute(
                    select(AuditEntryDB).order_by(AuditEntryDB.sequence_number.asc())
                ).scalars().all()
            )

        previous_hash = GENESIS_HASH
        for i, row in enumerate(rows):
            entry = self._to_entry(row)
            if entry.previous_hash != previous_hash:
                return (
                    False, i,
                    f"Chain break at sequence {row.sequence_number}: "
                    f"previous_hash does not match prior entry's hash",
                )
            expected_hash = entry.compute_hash()
            if row.entry_hash != expected_hash:
                return (
                    False, i,
                    f"Hash mismatch at sequence {row.sequence_number}: "
                    f"stored={row.entry_hash[:16]}... computed={expected_hash[:16]}...",
                )
            previous_hash = row.entry_hash

        return True, len(rows), f"Chain verified: {len(rows)} entries, integrity intact"

    # ── Internal ────────────────────────────────────────────────

    @staticmethod
    def _to_entry(row: AuditEntryDB) -> AuditEntry:
        return AuditEntry.model_validate({**row.record, "entry_hash": row.entry_hash})
