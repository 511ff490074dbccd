"""
Safety Drill — End-to-end exercise of the pause mechanism.

Runs the operational validation sequence for the pause control:

1. pause                 — ledger must end up PAUSED
2. mint while paused     — must be rejected without a submission
3. unpause               — ledger must end up ACTIVE
4. mint after unpause    — must apply and verify exactly

The drill stops at the first step that fails its expectation or whose
outcome halts automation. A verification mismatch is never followed by
another administrative action.

The drill only unpauses a pause it applied itself. If the ledger is already
paused, the pause step is skipped and the drill halts there, leaving the
existing pause in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from pausegate.control.admin import AdminController
from pausegate.control.schema import Outcome, OutcomeKind, VerificationReport

logger = logging.getLogger(__name__)


@dataclass
class DrillStep:
    name: str
    outcome: Outcome
    passed: bool
    expectation: str


@dataclass
class DrillReport:
    steps: list[DrillStep] = field(default_factory=list)
    halted_at: str | None = None

    @property
    def passed(self) -> bool:
        return self.halted_at is None and all(s.passed for s in self.steps)

    @property
    def verification(self) -> VerificationReport:
        return VerificationReport.combine(
            [s.outcome.verification for s in self.steps if s.outcome.verification]
        )


def _applied_and_matched(outcome: Outcome) -> bool:
    return (
        outcome.kind == OutcomeKind.APPLIED
        and outcome.verification is not None
        and outcome.verification.matched
    )


class SafetyDrill:
    """Automated pause → reject → unpause → mint chain with halt-on-mismatch."""

    def __init__(self, controller: AdminController) -> None:
        self.controller = controller

    async def run(
        self,
        account: str,
        amount: int,
        reason: str = "scheduled pause safety drill",
    ) -> DrillReport:
        report = DrillReport()
        controller = self.controller

        plan: list[tuple[str, str, Callable[[], Awaitable[Outcome]], Callable[[Outcome], bool]]] = [
            (
                "pause",
                "applied and verified PAUSED from ACTIVE",
                lambda: controller.pause(reason),
                _applied_and_matched,
            ),
            (
                "mint_while_paused",
                "rejected before submission",
                lambda: controller.mint(account, amount, reason=reason),
                lambda o: o.kind == OutcomeKind.REJECTED,
            ),
            (
                "unpause",
                "applied and verified ACTIVE",
                lambda: controller.unpause(reason),
                _applied_and_matched,
            ),
            (
                "mint_after_unpause",
                "applied with exact balance and supply increase",
                lambda: controller.mint(account, amount, reason=reason),
                _applied_and_matched,
            ),
        ]

        for name, expectation, action, check in plan:
            outcome = await action()
            passed = check(outcome)
            report.steps.append(DrillStep(name, outcome, passed, expectation))

            if outcome.halts_automation or not passed:
                report.halted_at = name
                if outcome.kind == OutcomeKind.SKIPPED:
                    logger.warning(
                        "Safety drill halted at %s: %s; existing state left in place",
                        name, outcome.reason,
                    )
                    break
                logger.critical(
                    "Safety drill halted at %s: outcome=%s category=%s reason=%s",
                    name, outcome.kind.value, outcome.category.value, outcome.reason,
                )
                break

            logger.info("Safety drill step passed: %s (%s)", name, outcome.kind.value)

        return report
