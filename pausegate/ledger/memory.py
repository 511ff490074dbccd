"""
In-Memory Ledger — A simulated pausable, mintable token substrate.

Behaves like the on-chain token the control plane administers: it holds
balances and total supply, rejects mints and transfers while paused,
enforces its own mint ceilings, and confirms operations in monotonically
increasing blocks. Confirmations are delivered through asyncio futures, so
waiting on one suspends rather than polls.

Fault injection hooks reproduce the failure modes operators must handle:

- ``hold_confirmations``: operations stay pending until ``release()``
- ``fail_next_submission``: the next submission is refused outright
- ``fail_next_confirmation``: the next operation reverts when mined
- ``drop_next_effect``: the next operation confirms without taking effect
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from uuid import uuid4

from pausegate.control.mode_guard import MintLimits
from pausegate.control.schema import (
    ZERO_ADDRESS,
    OperationalMode,
    ProcedureKind,
    SubmissionReceipt,
)
from pausegate.ledger.client import ConfirmationResult, LedgerClient, LedgerError

logger = logging.getLogger(__name__)


@dataclass
class _Transaction:
    kind: ProcedureKind
    account: str | None = None
    amount: int = 0
    reason: str = ""
    future: asyncio.Future | None = None
    result: ConfirmationResult | None = None


class InMemoryLedger(LedgerClient):
    """
    Simulated ledger implementing the full LedgerClient interface.

    Usage:
        ledger = InMemoryLedger(balances={"0xabc": 0})
        receipt = await ledger.submit_mint("0xabc", 50)
        result = await ledger.await_confirmation(receipt.transaction_id, 5.0)
    """

    def __init__(
        self,
        mode: OperationalMode = OperationalMode.ACTIVE,
        balances: dict[str, int] | None = None,
        limits: MintLimits | None = None,
        block_number: int = 0,
    ) -> None:
        self._mode = mode
        self._balances: dict[str, int] = dict(balances or {})
        self._total_supply = sum(self._balances.values())
        self.limits = limits or MintLimits()
        self.block_number = block_number
        self.pause_reason = ""
        self.hold_confirmations = False
        self.submissions: list[ProcedureKind] = []
        self._transactions: dict[str, _Transaction] = {}
        self._held: list[str] = []
        self._submission_error: str | None = None
        self._confirmation_error: str | None = None
        self._drop_effect = False

    # ── Fault injection ────────────────────────────────────────

    def fail_next_submission(self, error: str) -> None:
        self._submission_error = error

    def fail_next_confirmation(self, error: str) -> None:
        self._confirmation_error = error

    def drop_next_effect(self) -> None:
        self._drop_effect = True

    def release(self) -> int:
        """Mine every held transaction. Returns how many were mined."""
        held, self._held = self._held, []
        for tx_id in held:
            self._mine(tx_id)
        return len(held)

    def set_mode(self, mode: OperationalMode) -> None:
        """Change the mode out-of-band, as another operator would."""
        self._mode = mode

    # ── Direct inspection ──────────────────────────────────────

    @property
    def mode(self) -> OperationalMode:
        return self._mode

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    # ── Reads ──────────────────────────────────────────────────

    async def get_mode(self) -> OperationalMode:
        return self._mode

    async def get_balance(self, account: str) -> int:
        return self.balance_of(account)

    async def get_total_supply(self) -> int:
        return self._total_supply

    # ── Transfers ──────────────────────────────────────────────

    async def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """Move ``amount`` between accounts. Applied immediately."""
        if self._mode == OperationalMode.PAUSED:
            raise LedgerError("EnforcedPause: transfers are disabled while paused")
        if amount < 0:
            raise LedgerError("transfer amount must be non-negative")
        if self.balance_of(sender) < amount:
            raise LedgerError("ERC20InsufficientBalance")
        self._balances[sender] = self.balance_of(sender) - amount
        self._balances[recipient] = self.balance_of(recipient) + amount

    # ── Submissions ────────────────────────────────────────────

    async def submit_pause(self, reason: str) -> SubmissionReceipt:
        return self._submit(_Transaction(kind=ProcedureKind.PAUSE, reason=reason))

    async def submit_unpause(self, reason: str) -> SubmissionReceipt:
        return self._submit(_Transaction(kind=ProcedureKind.UNPAUSE, reason=reason))

    async def submit_mint(self, account: str, amount: int) -> SubmissionReceipt:
        return self._submit(
            _Transaction(kind=ProcedureKind.MINT, account=account, amount=amount)
        )

    async def await_confirmation(
        self,
        transaction_id: str,
        timeout: float,
    ) -> ConfirmationResult:
        tx = self._transactions.get(transaction_id)
        if tx is None:
            raise LedgerError(f"Unknown transaction: {transaction_id}")
        if tx.result is not None:
            return tx.result
        try:
            return await asyncio.wait_for(asyncio.shield(tx.future), timeout)
        except asyncio.TimeoutError:
            return ConfirmationResult.timed_out()

    # ── Internal ────────────────────────────────────────────────

    def _submit(self, tx: _Transaction) -> SubmissionReceipt:
        if self._submission_error is not None:
            error, self._submission_error = self._submission_error, None
            raise LedgerError(error)

        loop = asyncio.get_running_loop()
        tx_id = "0x" + uuid4().hex + uuid4().hex
        tx.future = loop.create_future()
        self._transactions[tx_id] = tx
        self.submissions.append(tx.kind)

        if self.hold_confirmations:
            self._held.append(tx_id)
        else:
            loop.call_soon(self._mine, tx_id)

        logger.debug("Transaction submitted: kind=%s id=%s", tx.kind.value, tx_id[:18])
        return SubmissionReceipt(kind=tx.kind, transaction_id=tx_id)

    def _mine(self, tx_id: str) -> None:
        tx = self._transactions[tx_id]
        if tx.result is not None:
            return

        error = self._confirmation_error or self._revert_reason(tx)
        self._confirmation_error = None

        if error is not None:
            result = ConfirmationResult.failed(error)
        else:
            if self._drop_effect:
                self._drop_effect = False
            else:
                self._apply(tx)
            self.block_number += 1
            result = ConfirmationResult.confirmed(self.block_number)

        tx.result = result
        if tx.future is not None and not tx.future.done():
            tx.future.set_result(result)

    def _revert_reason(self, tx: _Transaction) -> str | None:
        if tx.kind == ProcedureKind.PAUSE:
            return "EnforcedPause" if self._mode == OperationalMode.PAUSED else None
        if tx.kind == ProcedureKind.UNPAUSE:
            return "ExpectedPause" if self._mode == OperationalMode.ACTIVE else None

        if self._mode == OperationalMode.PAUSED:
            return "EnforcedPause"
        if tx.account == ZERO_ADDRESS:
            return "mint to zero address"
        if self.limits.max_mint_amount is not None and tx.amount > self.limits.max_mint_amount:
            return "Exceeds max mint amount"
        if (
            self.limits.max_total_supply is not None
            and self._total_supply + tx.amount > self.limits.max_total_supply
        ):
            return "Exceeds max total supply"
        return None

    def _apply(self, tx: _Transaction) -> None:
        if tx.kind == ProcedureKind.PAUSE:
            self._mode = OperationalMode.PAUSED
            self.pause_reason = tx.reason
        elif tx.kind == ProcedureKind.UNPAUSE:
            self._mode = OperationalMode.ACTIVE
            self.pause_reason = ""
        else:
            self._balances[tx.account] = self.balance_of(tx.account) + tx.amount
            self._total_supply += tx.amount
