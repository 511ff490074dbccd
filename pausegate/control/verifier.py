"""
Safety Verifier — Independent post-condition checks for administrative procedures.

A confirmed submission is necessary but not sufficient evidence that a
procedure took effect. The verifier re-reads the ledger after confirmation
and compares what it observes against what the procedure should have done:

- PAUSE / UNPAUSE: the mode equals the procedure's target mode
- MINT: account balance and total supply each grew by exactly the amount

A mismatch is reported, never raised. The verifier has no side effects
beyond logging; callers decide whether to halt.
"""

from __future__ import annotations

import logging

from pausegate.control.schema import (
    AdministrativeProcedure,
    Discrepancy,
    ProcedureKind,
    StateSnapshot,
    SubmissionReceipt,
    VerificationCheck,
    VerificationReport,
)
from pausegate.ledger.client import LedgerClient

logger = logging.getLogger(__name__)


class SafetyVerifier:
    """Re-derives ledger truth after a procedure instead of trusting its receipt."""

    def __init__(self, ledger: LedgerClient) -> None:
        self.ledger = ledger

    async def observe(self, procedure: AdministrativeProcedure) -> StateSnapshot:
        """
        Take a fresh snapshot of the state relevant to ``procedure``.

        Always reads the mode. For MINT also reads the target balance and
        the total supply.
        """
        mode = await self.ledger.get_mode()
        if procedure.kind != ProcedureKind.MINT:
            return StateSnapshot(mode=mode)
        balance = await self.ledger.get_balance(procedure.account)
        total_supply = await self.ledger.get_total_supply()
        return StateSnapshot(
            mode=mode,
            account=procedure.account,
            balance=balance,
            total_supply=total_supply,
        )

    async def verify(
        self,
        procedure: AdministrativeProcedure,
        receipt: SubmissionReceipt,
        pre_state: StateSnapshot | None = None,
    ) -> VerificationReport:
        """
        Verify that ``procedure`` had its expected effect.

        Args:
            procedure: The procedure that was submitted.
            receipt: Its submission receipt. Only the transaction id is used;
                the receipt's status is never taken as evidence of effect.
            pre_state: Snapshot taken before submission. Required for MINT.

        Returns:
            VerificationReport with a single check.
        """
        if procedure.kind == ProcedureKind.MINT and (
            pre_state is None or pre_state.balance is None or pre_state.total_supply is None
        ):
            raise ValueError("mint verification requires a pre-state with balance and supply")

        post_state = await self.observe(procedure)
        discrepancies: list[Discrepancy] = []

        if procedure.kind == ProcedureKind.MINT:
            amount = procedure.amount or 0
            expected_balance = pre_state.balance + amount
            expected_supply = pre_state.total_supply + amount
            if post_state.balance != expected_balance:
                discrepancies.append(
                    Discrepancy(
                        procedure_id=procedure.id,
                        field="balance",
                        expected=expected_balance,
                        observed=post_state.balance,
                    )
                )
            if post_state.total_supply != expected_supply:
                discrepancies.append(
                    Discrepancy(
                        procedure_id=procedure.id,
                        field="total_supply",
                        expected=expected_supply,
                        observed=post_state.total_supply,
                    )
                )
        else:
            target = procedure.target_mode
            if post_state.mode != target:
                discrepancies.append(
                    Discrepancy(
                        procedure_id=procedure.id,
                        field="mode",
                        expected=target.value,
                        observed=post_state.mode.value,
                    )
                )

        check = VerificationCheck(
            procedure_id=procedure.id,
            kind=procedure.kind,
            transaction_id=receipt.transaction_id,
            pre_state=pre_state,
            post_state=post_state,
            discrepancies=discrepancies,
        )

        if discrepancies:
            logger.critical(
                "VERIFICATION MISMATCH: kind=%s tx=%s %s",
                procedure.kind.value,
                receipt.transaction_id,
                "; ".join(d.describe() for d in discrepancies),
            )
        else:
            logger.info(
                "Verification matched: kind=%s tx=%s",
                procedure.kind.value,
                receipt.transaction_id,
            )

        return VerificationReport(checks=[check])
