"""
Ledger Client — Interface to the external value ledger.

The ledger is the system of record for balances, total supply and the
operational mode. The control plane only ever holds observed copies of that
state; every decision reads it fresh through this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from pausegate.control.schema import OperationalMode, SubmissionReceipt


class LedgerError(Exception):
    """Raised when the ledger rejects an operation or cannot be reached."""
    pass


class ConfirmationState(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ConfirmationResult:
    """Terminal result of waiting on a submitted operation."""

    state: ConfirmationState
    block_ref: int | None = None
    error: str | None = None

    @classmethod
    def confirmed(cls, block_ref: int | None) -> ConfirmationResult:
        return cls(ConfirmationState.CONFIRMED, block_ref=block_ref)

    @classmethod
    def failed(cls, error: str) -> ConfirmationResult:
        return cls(ConfirmationState.FAILED, error=error)

    @classmethod
    def timed_out(cls) -> ConfirmationResult:
        return cls(ConfirmationState.TIMED_OUT, error="confirmation timed out")


class LedgerClient(ABC):
    """
    Async interface to a pausable, mintable value ledger.

    Submissions return as soon as the ledger has accepted the operation;
    ``await_confirmation`` suspends until the operation reaches a terminal
    state or the deadline passes.
    """

    @abstractmethod
    async def get_mode(self) -> OperationalMode:
        """Current operational mode."""

    @abstractmethod
    async def get_balance(self, account: str) -> int:
        """Balance of ``account`` in the smallest unit."""

    @abstractmethod
    async def get_total_supply(self) -> int:
        """Total supply in the smallest unit."""

    @abstractmethod
    async def submit_pause(self, reason: str) -> SubmissionReceipt:
        """Submit a pause operation."""

    @abstractmethod
    async def submit_unpause(self, reason: str) -> SubmissionReceipt:
        """Submit an unpause operation."""

    @abstractmethod
    async def submit_mint(self, account: str, amount: int) -> SubmissionReceipt:
        """Submit a mint of ``amount`` to ``account``."""

    @abstractmethod
    async def await_confirmation(
        self,
        transaction_id: str,
        timeout: float,
    ) -> ConfirmationResult:
        """Wait up to ``timeout`` seconds for a terminal confirmation state."""

    async def close(self) -> None:
        return None
