"""
Tests for the Admin Controller — pause, unpause and mint procedures.

Validates:
- Mint applied and verified while ACTIVE
- Mint rejected without submission while PAUSED
- Pause applied, then a second pause skipped
- Verification mismatch when a confirmed pause has no effect
- Submission failures and confirmation timeouts
- A confirmed procedure is audited even when verification cannot read the ledger
- Every terminal outcome is audited
"""

from __future__ import annotations

import pytest

from pausegate.audit.log import AuditLog
from pausegate.control.admin import AdminController
from pausegate.control.mode_guard import MintLimits, ModeGuard
from pausegate.control.schema import (
    ConfirmationStatus,
    ErrorCategory,
    OperationalMode,
    OutcomeKind,
    ProcedureKind,
    VerificationVerdict,
)
from pausegate.ledger.client import LedgerError
from pausegate.ledger.memory import InMemoryLedger

ACCOUNT_A = "0xe88952fa33112ec58c83dae2974c0fef679b553d"
ACCOUNT_B = "0x25Dd6346FE82E51001a9430CF07e8DeB84933627"


class _FlakyReadLedger(InMemoryLedger):
    async def get_mode(self):
        raise LedgerError("gateway unreachable")


class _LostAfterConfirmLedger(InMemoryLedger):
    """Answers the pre-state read, then loses the gateway before verification."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.supply_reads = 0

    async def get_total_supply(self):
        self.supply_reads += 1
        if self.supply_reads > 1:
            raise LedgerError("gateway unreachable")
        return await super().get_total_supply()


class TestAdminControllerScenarios:
    """End-to-end procedure scenarios against a simulated ledger."""

    def setup_method(self):
        self.ledger = InMemoryLedger(balances={ACCOUNT_A: 0, ACCOUNT_B: 20})
        self.audit = AuditLog("sqlite://")
        self.audit.initialize()
        self.controller = AdminController(
            self.ledger, self.audit, confirmation_timeout=1.0, initiator="ops-test"
        )

    @pytest.mark.asyncio
    async def test_mint_while_active(self):
        """Scenario 1: mint is applied and balance grows by exactly the amount."""
        supply_before = self.ledger.total_supply
        outcome = await self.controller.mint(ACCOUNT_A, 50)

        assert outcome.kind == OutcomeKind.APPLIED
        assert outcome.category == ErrorCategory.NONE
        assert outcome.receipt.status == ConfirmationStatus.CONFIRMED
        assert outcome.receipt.procedure_id == outcome.procedure.id
        assert outcome.verification.verdict == VerificationVerdict.MATCH
        assert self.ledger.balance_of(ACCOUNT_A) == 50
        assert self.ledger.total_supply == supply_before + 50

        check = outcome.verification.checks[0]
        assert check.post_state.balance == check.pre_state.balance + 50
        assert check.post_state.total_supply == check.pre_state.total_supply + 50

    @pytest.mark.asyncio
    async def test_mint_while_paused(self):
        """Scenario 2: mint is rejected and nothing reaches the ledger."""
        self.ledger.set_mode(OperationalMode.PAUSED)
        outcome = await self.controller.mint(ACCOUNT_A, 10)

        assert outcome.kind == OutcomeKind.REJECTED
        assert outcome.category == ErrorCategory.PRECONDITION_DENIED
        assert outcome.reason == "ledger is paused"
        assert outcome.receipt is None
        assert self.ledger.submissions == []
        assert self.ledger.balance_of(ACCOUNT_A) == 0

    @pytest.mark.asyncio
    async def test_pause_then_pause_again(self):
        """Scenario 3: first pause applies, the immediate second one is skipped."""
        first = await self.controller.pause("investigating suspicious activity")
        assert first.kind == OutcomeKind.APPLIED
        assert first.verification.matched
        assert self.ledger.mode == OperationalMode.PAUSED
        assert self.ledger.pause_reason == "investigating suspicious activity"

        second = await self.controller.pause("x")
        assert second.kind == OutcomeKind.SKIPPED
        assert second.category == ErrorCategory.ALREADY_IN_STATE
        assert self.ledger.submissions == [ProcedureKind.PAUSE]

        outcomes = [e.outcome for e in self.audit.entries()]
        assert outcomes.count(OutcomeKind.APPLIED) == 1
        assert outcomes.count(OutcomeKind.SKIPPED) == 1

    @pytest.mark.asyncio
    async def test_pause_confirmed_without_effect(self):
        """Scenario 4: confirmed pause that left the ledger ACTIVE is a mismatch."""
        self.ledger.drop_next_effect()
        outcome = await self.controller.pause("investigating suspicious activity")

        assert outcome.kind == OutcomeKind.APPLIED
        assert outcome.receipt.status == ConfirmationStatus.CONFIRMED
        assert outcome.category == ErrorCategory.VERIFICATION_MISMATCH
        assert outcome.halts_automation
        assert outcome.verification.verdict == VerificationVerdict.MISMATCH

        [discrepancy] = outcome.verification.discrepancies
        assert discrepancy.field == "mode"
        assert discrepancy.expected == OperationalMode.PAUSED.value
        assert discrepancy.observed == OperationalMode.ACTIVE.value

        [entry] = self.audit.entries()
        assert entry.verdict == VerificationVerdict.MISMATCH
        assert entry.post_state.mode == OperationalMode.ACTIVE

    @pytest.mark.asyncio
    async def test_mint_drift_is_flagged(self):
        """A confirmed mint that moved nothing is caught by exact comparison."""
        self.ledger.drop_next_effect()
        outcome = await self.controller.mint(ACCOUNT_A, 5)

        assert outcome.category == ErrorCategory.VERIFICATION_MISMATCH
        fields = {d.field for d in outcome.verification.discrepancies}
        assert fields == {"balance", "total_supply"}

    @pytest.mark.asyncio
    async def test_unpause_when_active_is_skipped(self):
        outcome = await self.controller.unpause("nothing to resume")
        assert outcome.kind == OutcomeKind.SKIPPED
        assert outcome.reason == "ledger is not paused"
        assert self.ledger.submissions == []

    @pytest.mark.asyncio
    async def test_pause_unpause_cycle(self):
        await self.controller.pause("incident")
        outcome = await self.controller.unpause("issue resolved")
        assert outcome.kind == OutcomeKind.APPLIED
        assert outcome.verification.matched
        assert self.ledger.mode == OperationalMode.ACTIVE

    @pytest.mark.asyncio
    async def test_mode_is_read_fresh_each_call(self):
        """Another operator pausing out-of-band is seen by the next call."""
        assert (await self.controller.mint(ACCOUNT_A, 1)).kind == OutcomeKind.APPLIED
        self.ledger.set_mode(OperationalMode.PAUSED)
        assert (await self.controller.mint(ACCOUNT_A, 1)).kind == OutcomeKind.REJECTED


class TestAdminControllerFailures:
    """Submission, confirmation and read failures."""

    def setup_method(self):
        self.ledger = InMemoryLedger()
        self.audit = AuditLog("sqlite://")
        self.audit.initialize()
        self.controller = AdminController(self.ledger, self.audit, confirmation_timeout=0.05)

    @pytest.mark.asyncio
    async def test_submission_refused(self):
        self.ledger.fail_next_submission("insufficient funds for gas")
        outcome = await self.controller.pause("incident")

        assert outcome.kind == OutcomeKind.SUBMISSION_FAILED
        assert outcome.category == ErrorCategory.SUBMISSION_FAILURE
        assert outcome.error == "insufficient funds for gas"
        assert outcome.receipt is None
        assert outcome.halts_automation
        assert self.ledger.mode == OperationalMode.ACTIVE
        assert self.audit.count() == 1

    @pytest.mark.asyncio
    async def test_transaction_reverted(self):
        self.ledger.fail_next_confirmation("execution reverted")
        outcome = await self.controller.mint(ACCOUNT_A, 5)

        assert outcome.kind == OutcomeKind.SUBMISSION_FAILED
        assert outcome.category == ErrorCategory.SUBMISSION_FAILURE
        assert outcome.receipt.status == ConfirmationStatus.FAILED
        assert outcome.receipt.error == "execution reverted"
        assert outcome.verification is None
        assert self.ledger.balance_of(ACCOUNT_A) == 0

    @pytest.mark.asyncio
    async def test_failure_is_not_retried(self):
        self.ledger.fail_next_confirmation("execution reverted")
        await self.controller.mint(ACCOUNT_A, 5)
        assert self.ledger.submissions == [ProcedureKind.MINT]

    @pytest.mark.asyncio
    async def test_confirmation_timeout(self):
        self.ledger.hold_confirmations = True
        outcome = await self.controller.pause("incident")

        assert outcome.kind == OutcomeKind.SUBMISSION_FAILED
        assert outcome.category == ErrorCategory.CONFIRMATION_TIMEOUT
        assert outcome.may_confirm_later
        assert outcome.receipt.status == ConfirmationStatus.PENDING
        assert self.ledger.mode == OperationalMode.ACTIVE

        # The operation lands later, visible only through a fresh read.
        assert self.ledger.release() == 1
        status = await self.controller.status()
        assert status.mode == OperationalMode.PAUSED

    @pytest.mark.asyncio
    async def test_timeout_override(self):
        self.ledger.hold_confirmations = True
        outcome = await self.controller.mint(ACCOUNT_A, 1, timeout=0.01)
        assert outcome.category == ErrorCategory.CONFIRMATION_TIMEOUT

    @pytest.mark.asyncio
    async def test_pre_state_read_failure_propagates(self):
        controller = AdminController(_FlakyReadLedger(), self.audit)
        with pytest.raises(LedgerError):
            await controller.pause("incident")
        assert self.audit.count() == 0

    @pytest.mark.asyncio
    async def test_verification_read_failure_is_audited(self):
        """A confirmed mint is recorded even when its post-state cannot be read."""
        ledger = _LostAfterConfirmLedger()
        controller = AdminController(ledger, self.audit, confirmation_timeout=1.0)
        outcome = await controller.mint(ACCOUNT_A, 50)

        assert outcome.kind == OutcomeKind.APPLIED
        assert outcome.category == ErrorCategory.VERIFICATION_UNAVAILABLE
        assert outcome.verification is None
        assert outcome.receipt.status == ConfirmationStatus.CONFIRMED
        assert "gateway unreachable" in outcome.reason
        assert outcome.halts_automation
        assert ledger.balance_of(ACCOUNT_A) == 50

        entries = self.audit.entries()
        assert len(entries) == 1
        assert entries[0].id == outcome.audit_entry_id
        assert entries[0].category == ErrorCategory.VERIFICATION_UNAVAILABLE
        assert entries[0].verdict is None
        assert entries[0].post_state is None


class TestAdminControllerLimits:
    """Supply ceilings enforced before submission."""

    def setup_method(self):
        limits = MintLimits(max_mint_amount=100, max_total_supply=150)
        self.ledger = InMemoryLedger(balances={ACCOUNT_B: 100}, limits=limits)
        self.audit = AuditLog("sqlite://")
        self.audit.initialize()
        self.controller = AdminController(
            self.ledger, self.audit, guard=ModeGuard(limits), confirmation_timeout=1.0
        )

    @pytest.mark.asyncio
    async def test_exceeds_max_mint(self):
        outcome = await self.controller.mint(ACCOUNT_A, 101)
        assert outcome.kind == OutcomeKind.REJECTED
        assert "per-mint" in outcome.reason
        assert self.ledger.submissions == []

    @pytest.mark.asyncio
    async def test_exceeds_supply(self):
        outcome = await self.controller.mint(ACCOUNT_A, 60)
        assert outcome.kind == OutcomeKind.REJECTED
        assert "total supply" in outcome.reason

    @pytest.mark.asyncio
    async def test_status_reports_remaining(self):
        status = await self.controller.status([ACCOUNT_A, ACCOUNT_B])
        assert status.total_supply == 100
        assert status.remaining_mintable_supply == 50
        assert status.balances == {ACCOUNT_A: 0, ACCOUNT_B: 100}
        assert self.audit.count() == 0


class TestAuditCompleteness:
    """Every terminal outcome category lands in the audit log."""

    @pytest.mark.asyncio
    async def test_all_categories_recorded(self):
        ledger = InMemoryLedger()
        audit = AuditLog("sqlite://")
        audit.initialize()
        controller = AdminController(ledger, audit, confirmation_timeout=0.05)

        await controller.unpause("noop")                       # already in state
        ledger.fail_next_submission("nonce too low")
        await controller.pause("incident")                     # submission failure
        await controller.pause("incident")                     # applied
        await controller.mint(ACCOUNT_A, 1)                    # precondition denied
        ledger.hold_confirmations = True
        await controller.unpause("resolved")                   # timeout
        ledger.hold_confirmations = False
        ledger.release()
        ledger.set_mode(OperationalMode.PAUSED)
        ledger.drop_next_effect()
        await controller.unpause("resolved")                   # mismatch

        categories = [e.category for e in audit.entries()]
        assert categories == [
            ErrorCategory.ALREADY_IN_STATE,
            ErrorCategory.SUBMISSION_FAILURE,
            ErrorCategory.NONE,
            ErrorCategory.PRECONDITION_DENIED,
            ErrorCategory.CONFIRMATION_TIMEOUT,
            ErrorCategory.VERIFICATION_MISMATCH,
        ]
        assert audit.verify_chain()[0]
