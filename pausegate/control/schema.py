"""
Control Plane Schema — Pydantic models for pause-gated token administration.

These models are the canonical data structures of the control plane. They
govern the shape of administrative procedures, ledger submission receipts,
independent verification results, typed procedure outcomes and the
append-only audit record.

The operational mode is owned by the ledger. Every ``StateSnapshot`` here is
an observed copy taken at ``observed_at`` and is never treated as current
beyond the decision it was read for.
"""

from __future__ import annotations

import enum
import hashlib
import json
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


ZERO_ADDRESS = "0x" + "0" * 40


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class OperationalMode(str, enum.Enum):
    """Operational mode of the ledger. Gates which operations are permitted."""

    ACTIVE = "active"
    PAUSED = "paused"


class ProcedureKind(str, enum.Enum):
    """Named administrative procedures."""

    PAUSE = "pause"
    UNPAUSE = "unpause"
    MINT = "mint"


class ConfirmationStatus(str, enum.Enum):
    """Confirmation state of a submitted operation."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class VerificationVerdict(str, enum.Enum):
    """Result of independently re-reading post-state."""

    MATCH = "match"
    MISMATCH = "mismatch"


class OutcomeKind(str, enum.Enum):
    """Terminal outcome of an administrative procedure."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    REJECTED = "rejected"
    SUBMISSION_FAILED = "submission_failed"


class ErrorCategory(str, enum.Enum):
    """Error taxonomy recorded for every outcome."""

    NONE = "none"
    PRECONDITION_DENIED = "precondition_denied"
    ALREADY_IN_STATE = "already_in_state"
    SUBMISSION_FAILURE = "submission_failure"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    VERIFICATION_MISMATCH = "verification_mismatch"
    VERIFICATION_UNAVAILABLE = "verification_unavailable"


# Mode each transition procedure drives the ledger into.
TARGET_MODES: dict[ProcedureKind, OperationalMode] = {
    ProcedureKind.PAUSE: OperationalMode.PAUSED,
    ProcedureKind.UNPAUSE: OperationalMode.ACTIVE,
}


# ════════════════════════════════════════════════════════════════
# Procedures and Receipts
# ════════════════════════════════════════════════════════════════


class AdministrativeProcedure(BaseModel):
    """
    A named administrative intent with its parameters.

    PAUSE and UNPAUSE require a non-blank reason. MINT requires a target
    account and a non-negative amount in the ledger's smallest unit; its
    reason defaults to empty.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    kind: ProcedureKind
    account: str | None = Field(default=None, description="Target account (MINT only)")
    amount: int | None = Field(
        default=None, ge=0, description="Amount in the ledger's smallest unit (MINT only)"
    )
    reason: str = Field(default="", description="Operator-supplied justification")
    initiator: str = Field(default="operator", description="Identity of the requesting operator")
    requested_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_parameters(self) -> AdministrativeProcedure:
        if self.kind == ProcedureKind.MINT:
            if not self.account:
                raise ValueError("mint requires a target account")
            if self.amount is None:
                raise ValueError("mint requires an amount")
        elif not self.reason.strip():
            raise ValueError(f"{self.kind.value} requires a reason")
        return self

    @classmethod
    def pause(cls, reason: str, initiator: str = "operator") -> AdministrativeProcedure:
        return cls(kind=ProcedureKind.PAUSE, reason=reason, initiator=initiator)

    @classmethod
    def unpause(cls, reason: str, initiator: str = "operator") -> AdministrativeProcedure:
        return cls(kind=ProcedureKind.UNPAUSE, reason=reason, initiator=initiator)

    @classmethod
    def mint(
        cls,
        account: str,
        amount: int,
        initiator: str = "operator",
        reason: str = "",
    ) -> AdministrativeProcedure:
        return cls(
            kind=ProcedureKind.MINT,
            account=account,
            amount=amount,
            reason=reason,
            initiator=initiator,
        )

    @property
    def target_mode(self) -> OperationalMode | None:
        """Mode a confirmed PAUSE/UNPAUSE must leave the ledger in."""
        return TARGET_MODES.get(self.kind)


class SubmissionReceipt(BaseModel):
    """
    The ledger's acknowledgement that an operation was submitted.

    A receipt only proves submission. Its status moves from PENDING to a
    terminal CONFIRMED or FAILED through ``confirmed`` / ``failed``, each of
    which returns a new receipt.
    """

    model_config = ConfigDict(frozen=True)

    kind: ProcedureKind
    procedure_id: UUID | None = None
    transaction_id: str = Field(description="Ledger-assigned transaction identifier")
    submitted_at: datetime = Field(default_factory=utcnow)
    status: ConfirmationStatus = ConfirmationStatus.PENDING
    block_ref: int | None = Field(
        default=None, description="Confirming block/sequence number once CONFIRMED"
    )
    error: str | None = None

    def bind(self, procedure: AdministrativeProcedure) -> SubmissionReceipt:
        return self.model_copy(update={"procedure_id": procedure.id})

    def confirmed(self, block_ref: int | None) -> SubmissionReceipt:
        return self.model_copy(
            update={"status": ConfirmationStatus.CONFIRMED, "block_ref": block_ref}
        )

    def failed(self, error: str) -> SubmissionReceipt:
        return self.model_copy(update={"status": ConfirmationStatus.FAILED, "error": error})


class StateSnapshot(BaseModel):
    """Observed copy of ledger state at a point in time."""

    model_config = ConfigDict(frozen=True)

    mode: OperationalMode
    account: str | None = None
    balance: int | None = None
    total_supply: int | None = None
    observed_at: datetime = Field(default_factory=utcnow)


# ════════════════════════════════════════════════════════════════
# Verification
# ════════════════════════════════════════════════════════════════


class Discrepancy(BaseModel):
    """A single expected-versus-observed difference found by verification."""

    model_config = ConfigDict(frozen=True)

    procedure_id: UUID
    field: str
    expected: str | int
    observed: str | int | None

    def describe(self) -> str:
        return f"{self.field}: expected {self.expected}, observed {self.observed}"


class VerificationCheck(BaseModel):
    """Verification of a single confirmed procedure."""

    model_config = ConfigDict(frozen=True)

    procedure_id: UUID
    kind: ProcedureKind
    transaction_id: str | None = None
    pre_state: StateSnapshot | None = None
    post_state: StateSnapshot
    discrepancies: list[Discrepancy] = Field(default_factory=list)

    @computed_field
    @property
    def verdict(self) -> VerificationVerdict:
        if self.discrepancies:
            return VerificationVerdict.MISMATCH
        return VerificationVerdict.MATCH


class VerificationReport(BaseModel):
    """
    Aggregate of one or more verification checks.

    The overall verdict is MISMATCH as soon as any check found a discrepancy.
    """

    model_config = ConfigDict(frozen=True)

    checks: list[VerificationCheck] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def verdict(self) -> VerificationVerdict:
        if any(c.verdict == VerificationVerdict.MISMATCH for c in self.checks):
            return VerificationVerdict.MISMATCH
        return VerificationVerdict.MATCH

    @property
    def discrepancies(self) -> list[Discrepancy]:
        return [d for c in self.checks for d in c.discrepancies]

    @property
    def matched(self) -> bool:
        return self.verdict == VerificationVerdict.MATCH

    @classmethod
    def combine(cls, reports: list[VerificationReport]) -> VerificationReport:
        return cls(checks=[c for r in reports for c in r.checks])


# ════════════════════════════════════════════════════════════════
# Outcomes
# ════════════════════════════════════════════════════════════════


class Outcome(BaseModel):
    """
    Typed result of an administrative procedure.

    ``kind`` says what happened to the procedure; ``category`` places it in
    the error taxonomy. An APPLIED outcome whose verification found a
    mismatch carries ``VERIFICATION_MISMATCH``; one whose post-state could not
    be read at all carries ``VERIFICATION_UNAVAILABLE``.
    """

    model_config = ConfigDict(frozen=True)

    kind: OutcomeKind
    category: ErrorCategory = ErrorCategory.NONE
    procedure: AdministrativeProcedure
    reason: str = ""
    receipt: SubmissionReceipt | None = None
    error: str | None = None
    verification: VerificationReport | None = None
    may_confirm_later: bool = Field(
        default=False,
        description="True when confirmation timed out and the operation may still land",
    )
    audit_entry_id: UUID | None = None

    @classmethod
    def applied(
        cls,
        procedure: AdministrativeProcedure,
        receipt: SubmissionReceipt,
        verification: VerificationReport,
    ) -> Outcome:
        if verification.matched:
            category = ErrorCategory.NONE
            reason = f"{procedure.kind.value} confirmed in block {receipt.block_ref}"
        else:
            category = ErrorCategory.VERIFICATION_MISMATCH
            reason = "; ".join(d.describe() for d in verification.discrepancies)
        return cls(
            kind=OutcomeKind.APPLIED,
            category=category,
            procedure=procedure,
            reason=reason,
            receipt=receipt,
            verification=verification,
        )

    @classmethod
    def unverified(
        cls,
        procedure: AdministrativeProcedure,
        receipt: SubmissionReceipt,
        error: str,
    ) -> Outcome:
        """Confirmed by the ledger, but the post-state could not be read back."""
        return cls(
            kind=OutcomeKind.APPLIED,
            category=ErrorCategory.VERIFICATION_UNAVAILABLE,
            procedure=procedure,
            reason=(
                f"{procedure.kind.value} confirmed in block {receipt.block_ref}; "
                f"verification unavailable: {error}"
            ),
            receipt=receipt,
            error=error,
        )

    @classmethod
    def skipped(cls, procedure: AdministrativeProcedure, reason: str) -> Outcome:
        return cls(
            kind=OutcomeKind.SKIPPED,
            category=ErrorCategory.ALREADY_IN_STATE,
            procedure=procedure,
            reason=reason,
        )

    @classmethod
    def rejected(cls, procedure: AdministrativeProcedure, reason: str) -> Outcome:
        return cls(
            kind=OutcomeKind.REJECTED,
            category=ErrorCategory.PRECONDITION_DENIED,
            procedure=procedure,
            reason=reason,
        )

    @classmethod
    def submission_failed(
        cls,
        procedure: AdministrativeProcedure,
        error: str,
        receipt: SubmissionReceipt | None = None,
        timed_out: bool = False,
    ) -> Outcome:
        if timed_out:
            return cls(
                kind=OutcomeKind.SUBMISSION_FAILED,
                category=ErrorCategory.CONFIRMATION_TIMEOUT,
                procedure=procedure,
                reason="confirmation not observed before the deadline; outcome unknown",
                receipt=receipt,
                error=error,
                may_confirm_later=True,
            )
        return cls(
            kind=OutcomeKind.SUBMISSION_FAILED,
            category=ErrorCategory.SUBMISSION_FAILURE,
            procedure=procedure,
            reason=error,
            receipt=receipt,
            error=error,
        )

    @property
    def halts_automation(self) -> bool:
        """Whether an automated chain of procedures must stop here."""
        return self.category in (
            ErrorCategory.SUBMISSION_FAILURE,
            ErrorCategory.CONFIRMATION_TIMEOUT,
            ErrorCategory.VERIFICATION_MISMATCH,
            ErrorCategory.VERIFICATION_UNAVAILABLE,
        )


# ════════════════════════════════════════════════════════════════
# Audit Record
# ════════════════════════════════════════════════════════════════


class AuditEntry(BaseModel):
    """
    An immutable record in the administrative audit log.

    Created once per terminal outcome and never mutated. Each entry holds the
    hash of its predecessor, forming a chain in which any retroactive
    alteration is detectable.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    sequence_number: int
    previous_hash: str
    entry_hash: str = ""
    recorded_at: datetime = Field(default_factory=utcnow)
    procedure: AdministrativeProcedure
    outcome: OutcomeKind
    category: ErrorCategory
    receipt: SubmissionReceipt | None = None
    pre_state: StateSnapshot | None = None
    post_state: StateSnapshot | None = Field(
        default=None, description="State as independently observed by verification"
    )
    verdict: VerificationVerdict | None = None
    reason: str = ""

    def content(self) -> dict[str, Any]:
        """Canonical JSON-compatible content covered by the hash."""
        return self.model_dump(mode="json", exclude={"entry_hash"})

    def compute_hash(self) -> str:
        """SHA-256(previous_hash || canonical_json(content))."""
        canonical = json.dumps(self.content(), sort_keys=True, default=str)
        return hashlib.sha256((self.previous_hash + canonical).encode("utf-8")).hexdigest()


# ════════════════════════════════════════════════════════════════
# Status
# ════════════════════════════════════════════════════════════════


class LedgerStatus(BaseModel):
    """Read-only view of the ledger for operator inspection before acting."""

    mode: OperationalMode
    total_supply: int
    balances: dict[str, int] = Field(default_factory=dict)
    max_total_supply: int | None = None
    observed_at: datetime = Field(default_factory=utcnow)

    @property
    def remaining_mintable_supply(self) -> int | None:
        if self.max_total_supply is None:
            return None
        return max(self.max_total_supply - self.total_supply, 0)

    @property
    def tracked_total(self) -> int:
        return sum(self.balances.values())

    @property
    def unaccounted_supply(self) -> int:
        return self.total_supply - self.tracked_total
