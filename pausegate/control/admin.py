"""
Admin Controller — Orchestration of pause, unpause and mint procedures.

Every procedure follows the same governance wrapper:

    Fresh Read → Mode Guard → Submit → Await Confirmation → Verify → Audit

The observed mode is read immediately before each decision and never cached
across calls; other operators may change it at any time. Submission success
is never taken as proof of effect: confirmed procedures are handed to the
SafetyVerifier, which re-reads the ledger.

Mutating submissions are never retried. A failed or timed-out operation is
returned as ``SUBMISSION_FAILED`` and left for the operator, since a blind
retry could double its effect.
"""

from __future__ import annotations

import logging

from pausegate.audit.log import AuditLog
from pausegate.control.mode_guard import GuardDecision, ModeGuard
from pausegate.control.schema import (
    AdministrativeProcedure,
    LedgerStatus,
    Outcome,
    ProcedureKind,
    StateSnapshot,
    SubmissionReceipt,
)
from pausegate.control.verifier import SafetyVerifier
from pausegate.ledger.client import ConfirmationState, LedgerClient, LedgerError

logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATION_TIMEOUT = 120.0


class AdminController:
    """
    Administrative control plane for a pausable, mintable ledger.

    Usage:
        controller = AdminController(ledger, audit_log)
        outcome = await controller.pause("investigating suspicious activity")
        if outcome.halts_automation:
            ...
    """

    def __init__(
        self,
        ledger: LedgerClient,
        audit_log: AuditLog,
        guard: ModeGuard | None = None,
        verifier: SafetyVerifier | None = None,
        confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT,
        initiator: str = "operator",
    ) -> None:
        self.ledger = ledger
        self.audit_log = audit_log
        self.guard = guard or ModeGuard()
        self.verifier = verifier or SafetyVerifier(ledger)
        self.confirmation_timeout = confirmation_timeout
        self.initiator = initiator

    # ── Procedures ─────────────────────────────────────────────

    async def pause(self, reason: str, timeout: float | None = None) -> Outcome:
        """Pause the ledger. Skipped if it is already paused."""
        procedure = AdministrativeProcedure.pause(reason, initiator=self.initiator)
        return await self.execute(procedure, timeout)

    async def unpause(self, reason: str, timeout: float | None = None) -> Outcome:
        """Unpause the ledger. Skipped if it is not paused."""
        procedure = AdministrativeProcedure.unpause(reason, initiator=self.initiator)
        return await self.execute(procedure, timeout)

    async def mint(
        self,
        account: str,
        amount: int,
        timeout: float | None = None,
        reason: str = "",
    ) -> Outcome:
        """Mint ``amount`` smallest units to ``account``. Rejected while paused."""
        procedure = AdministrativeProcedure.mint(
            account, amount, initiator=self.initiator, reason=reason
        )
        return await self.execute(procedure, timeout)

    async def execute(
        self,
        procedure: AdministrativeProcedure,
        timeout: float | None = None,
    ) -> Outcome:
        """
        Run one administrative procedure to a terminal outcome.

        Every terminal outcome is written to the audit log before returning.

        Args:
            procedure: The procedure to run.
            timeout: Seconds to wait for confirmation. Defaults to the
                controller's ``confirmation_timeout``.

        Returns:
            Outcome carrying the receipt and verification report where they exist.

        Raises:
            LedgerError: If the pre-state read fails. Nothing was submitted.
        """
        timeout = self.confirmation_timeout if timeout is None else timeout
        pre_state = await self.verifier.observe(procedure)

        decision = self.guard.permits(pre_state.mode, procedure)
        if decision.decision == GuardDecision.ALREADY_IN_STATE:
            logger.info(
                "Procedure skipped: kind=%s reason=%s", procedure.kind.value, decision.reason
            )
            return self._record(Outcome.skipped(procedure, decision.reason), pre_state)
        if decision.decision == GuardDecision.DENIED:
            return self._reject(procedure, decision.reason, pre_state)

        if procedure.kind == ProcedureKind.MINT:
            limits = self.guard.check_mint_limits(
                procedure, pre_state.total_supply, pre_state.mode
            )
            if not limits.is_allowed:
                return self._reject(procedure, limits.reason, pre_state)

        try:
            receipt = (await self._submit(procedure)).bind(procedure)
        except LedgerError as e:
            logger.error("Submission failed: kind=%s error=%s", procedure.kind.value, e)
            return self._record(Outcome.submission_failed(procedure, str(e)), pre_state)

        try:
            confirmation = await self.ledger.await_confirmation(receipt.transaction_id, timeout)
        except LedgerError as e:
            logger.error(
                "Confirmation wait failed: kind=%s tx=%s error=%s",
                procedure.kind.value, receipt.transaction_id, e,
            )
            return self._record(
                Outcome.submission_failed(procedure, str(e), receipt=receipt), pre_state
            )

        if confirmation.state == ConfirmationState.TIMED_OUT:
            logger.error(
                "Confirmation timed out after %.1fs: kind=%s tx=%s (may still confirm)",
                timeout, procedure.kind.value, receipt.transaction_id,
            )
            return self._record(
                Outcome.submission_failed(
                    procedure,
                    confirmation.error or "confirmation timed out",
                    receipt=receipt,
                    timed_out=True,
                ),
                pre_state,
            )

        if confirmation.state == ConfirmationState.FAILED:
            error = confirmation.error or "transaction failed"
            logger.error(
                "Operation failed: kind=%s tx=%s error=%s",
                procedure.kind.value, receipt.transaction_id, error,
            )
            return self._record(
                Outcome.submission_failed(procedure, error, receipt=receipt.failed(error)),
                pre_state,
            )

        receipt = receipt.confirmed(confirmation.block_ref)
        logger.info(
            "Operation confirmed: kind=%s tx=%s block=%s",
            procedure.kind.value, receipt.transaction_id, receipt.block_ref,
        )
        try:
            report = await self.verifier.verify(procedure, receipt, pre_state)
        except LedgerError as e:
            logger.critical(
                "Verification unavailable after confirmation: kind=%s tx=%s error=%s",
                procedure.kind.value, receipt.transaction_id, e,
            )
            return self._record(Outcome.unverified(procedure, receipt, str(e)), pre_state)
        return self._record(Outcome.applied(procedure, receipt, report), pre_state)

    # ── Status ─────────────────────────────────────────────────

    async def status(self, accounts: list[str] | None = None) -> LedgerStatus:
        """Read-only snapshot of mode, supply and balances. Not audited."""
        mode = await self.ledger.get_mode()
        total_supply = await self.ledger.get_total_supply()
        balances = {}
        for account in accounts or []:
            balances[account] = await self.ledger.get_balance(account)
        return LedgerStatus(
            mode=mode,
            total_supply=total_supply,
            balances=balances,
            max_total_supply=self.guard.limits.max_total_supply,
        )

    # ── Internal ────────────────────────────────────────────────

    async def _submit(self, procedure: AdministrativeProcedure) -> SubmissionReceipt:
        if procedure.kind == ProcedureKind.PAUSE:
            return await self.ledger.submit_pause(procedure.reason)
        if procedure.kind == ProcedureKind.UNPAUSE:
            return await self.ledger.submit_unpause(procedure.reason)
        return await self.ledger.submit_mint(procedure.account, procedure.amount)

    def _reject(
        self,
        procedure: AdministrativeProcedure,
        reason: str,
        pre_state: StateSnapshot,
    ) -> Outcome:
        logger.warning("Procedure rejected: kind=%s reason=%s", procedure.kind.value, reason)
        return self._record(Outcome.rejected(procedure, reason), pre_state)

    def _record(self, outcome: Outcome, pre_state: StateSnapshot) -> Outcome:
        report = outcome.verification
        post_state = report.checks[0].post_state if report and report.checks else None
        entry = self.audit_log.append(
            procedure=outcome.procedure,
            outcome=outcome.kind,
            category=outcome.category,
            reason=outcome.reason,
            receipt=outcome.receipt,
            pre_state=pre_state,
            post_state=post_state,
            verdict=report.verdict if report else None,
        )
        return outcome.model_copy(update={"audit_entry_id": entry.id})
