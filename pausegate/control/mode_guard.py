"""
Mode Guard — Operational-mode enforcement for administrative procedures.

Every administrative procedure passes through this guard before anything is
submitted to the ledger. Procedures are classified as:

- ALLOWED: permitted in the observed mode → submit
- ALREADY_IN_STATE: the requested transition is a no-op → skip, report
- DENIED: illegal in the observed mode → reject immediately

State machine, as enforced by the ledger and modelled here::

    ACTIVE --pause-->   PAUSED
    PAUSED --unpause--> ACTIVE
    ACTIVE --mint-->    ACTIVE
    PAUSED --mint-->    rejected

The guard performs no I/O. Decisions depend only on the mode and procedure
handed in, so the full decision table can be exercised without a ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from pausegate.control.schema import (
    ZERO_ADDRESS,
    AdministrativeProcedure,
    OperationalMode,
    ProcedureKind,
)

logger = logging.getLogger(__name__)

PAUSED_REASON = "ledger is paused"


class GuardDecision(str, Enum):
    """Result of a mode check."""

    ALLOWED = "allowed"
    DENIED = "denied"
    ALREADY_IN_STATE = "already_in_state"


@dataclass(frozen=True)
class GuardResult:
    """Result of checking a procedure against the observed mode."""

    decision: GuardDecision
    kind: ProcedureKind
    mode: OperationalMode
    reason: str = ""

    @property
    def is_allowed(self) -> bool:
        return self.decision == GuardDecision.ALLOWED


@dataclass(frozen=True)
class MintLimits:
    """
    Per-mint and total-supply ceilings, in the ledger's smallest unit.

    ``None`` disables a ceiling.
    """

    max_mint_amount: int | None = None
    max_total_supply: int | None = None
    forbid_zero_address: bool = True


class ModeGuard:
    """
    Pure decision function over (mode, procedure).

    ``permits`` answers the mode question only. ``check_mint_limits`` applies
    the supply ceilings, which need a total-supply reading the caller has
    already taken.
    """

    def __init__(self, limits: MintLimits | None = None) -> None:
        self.limits = limits or MintLimits()

    def permits(
        self,
        mode: OperationalMode,
        procedure: AdministrativeProcedure | ProcedureKind,
    ) -> GuardResult:
        """
        Decide whether ``procedure`` may be submitted while the ledger is in ``mode``.

        Args:
            mode: The freshly observed operational mode.
            procedure: The procedure, or just its kind.

        Returns:
            GuardResult with decision and reasoning.
        """
        kind = procedure.kind if isinstance(procedure, AdministrativeProcedure) else procedure

        if kind == ProcedureKind.MINT:
            if mode == OperationalMode.ACTIVE:
                return GuardResult(GuardDecision.ALLOWED, kind, mode)
            return GuardResult(GuardDecision.DENIED, kind, mode, PAUSED_REASON)

        if kind == ProcedureKind.PAUSE:
            if mode == OperationalMode.ACTIVE:
                return GuardResult(GuardDecision.ALLOWED, kind, mode)
            return GuardResult(
                GuardDecision.ALREADY_IN_STATE, kind, mode, "ledger is already paused"
            )

        if kind == ProcedureKind.UNPAUSE:
            if mode == OperationalMode.PAUSED:
                return GuardResult(GuardDecision.ALLOWED, kind, mode)
            return GuardResult(
                GuardDecision.ALREADY_IN_STATE, kind, mode, "ledger is not paused"
            )

        raise ValueError(f"Unknown procedure kind: {kind!r}")

    def check_mint_limits(
        self,
        procedure: AdministrativeProcedure,
        total_supply: int,
        mode: OperationalMode = OperationalMode.ACTIVE,
    ) -> GuardResult:
        """Check a MINT against the zero-address rule and supply ceilings."""
        kind = procedure.kind
        if kind != ProcedureKind.MINT:
            return GuardResult(GuardDecision.ALLOWED, kind, mode)

        amount = procedure.amount or 0
        limits = self.limits

        if limits.forbid_zero_address and procedure.account == ZERO_ADDRESS:
            return GuardResult(GuardDecision.DENIED, kind, mode, "mint to zero address")

        if limits.max_mint_amount is not None and amount > limits.max_mint_amount:
            return GuardResult(
                GuardDecision.DENIED,
                kind,
                mode,
                f"mint amount {amount} exceeds maximum per-mint amount {limits.max_mint_amount}",
            )

        if limits.max_total_supply is not None and total_supply + amount > limits.max_total_supply:
            return GuardResult(
                GuardDecision.DENIED,
                kind,
                mode,
                f"mint of {amount} would exceed maximum total supply "
                f"{limits.max_total_supply} (current supply {total_supply})",
            )

        return GuardResult(GuardDecision.ALLOWED, kind, mode)
