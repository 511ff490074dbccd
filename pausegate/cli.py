"""
Pausegate Operator CLI — Pause, unpause, mint and inspect the token ledger.

Every procedure prints its outcome together with the independent
verification report, and exits non-zero when an operator must look closer.

Usage:
    pausegate status --account 0xabc...
    pausegate pause --reason "investigating suspicious activity"
    pausegate unpause --reason "issue resolved, resuming operations"
    pausegate mint 0xabc... 50
    pausegate drill 0xabc... --amount 5 --simulate
    pausegate audit --verbose

Exit codes:
    0 — applied and verified, or skipped (already in state)
    1 — submission failure, confirmation timeout, verification mismatch, or
        verification unavailable after confirmation
    2 — rejected by the mode guard
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import structlog
from rich.console import Console
from rich.table import Table

from pausegate.audit.log import AuditLog
from pausegate.config import PausegateSettings, settings
from pausegate.control.admin import AdminController
from pausegate.control.drill import DrillReport, SafetyDrill
from pausegate.control.mode_guard import MintLimits, ModeGuard
from pausegate.control.schema import (
    ErrorCategory,
    LedgerStatus,
    OperationalMode,
    Outcome,
    OutcomeKind,
    VerificationReport,
)
from pausegate.ledger.client import LedgerClient
from pausegate.ledger.http_client import HttpLedgerClient
from pausegate.ledger.memory import InMemoryLedger
from pausegate.ledger.units import format_units, parse_units

console = Console()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_REJECTED = 2


def configure_logging(config: PausegateSettings) -> None:
    """Configure structured logging."""
    logging.basicConfig(
        level=logging.getLevelName(config.log_level),
        format="%(message)s",
        stream=sys.stderr,
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if config.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def exit_code_for(outcome: Outcome) -> int:
    if outcome.halts_automation:
        return EXIT_FAILED
    if outcome.kind == OutcomeKind.REJECTED:
        return EXIT_REJECTED
    return EXIT_OK


# ════════════════════════════════════════════════════════════════
# Rendering
# ════════════════════════════════════════════════════════════════


def _fmt(value: int | None, config: PausegateSettings) -> str:
    if value is None:
        return "—"
    return f"{format_units(value, config.token_decimals)} {config.token_symbol}"


def render_status(status: LedgerStatus, config: PausegateSettings) -> None:
    console.print("\n[bold blue]═══ Ledger Status ═══[/bold blue]")
    if status.mode == OperationalMode.PAUSED:
        console.print("  Mode: [bold red]PAUSED[/bold red]")
    else:
        console.print("  Mode: [bold green]ACTIVE[/bold green]")
    console.print(f"  Total supply: [bold]{_fmt(status.total_supply, config)}[/bold]")
    if status.max_total_supply is not None:
        console.print(f"  Max supply: {_fmt(status.max_total_supply, config)}")
        console.print(f"  Remaining mintable: {_fmt(status.remaining_mintable_supply, config)}")

    if status.balances:
        table = Table(show_lines=False)
        table.add_column("Account", style="cyan")
        table.add_column("Balance", justify="right")
        table.add_column("Raw", style="dim", justify="right")
        for account, balance in status.balances.items():
            table.add_row(account, _fmt(balance, config), str(balance))
        console.print(table)
        console.print(f"  Tracked total: {_fmt(status.tracked_total, config)}")
        if status.unaccounted_supply:
            console.print(
                f"  [yellow]Held by other accounts: "
                f"{_fmt(status.unaccounted_supply, config)}[/yellow]"
            )
        else:
            console.print("  [green]✓ All supply accounted for[/green]")
    console.print()


def render_verification(report: VerificationReport) -> None:
    if report.matched:
        console.print("  Verification: [bold green]✓ MATCH[/bold green]")
        return
    console.print("  Verification: [bold red]✗ MISMATCH[/bold red]")
    table = Table(show_lines=True)
    table.add_column("Field", style="cyan")
    table.add_column("Expected", style="green")
    table.add_column("Observed", style="red")
    for d in report.discrepancies:
        table.add_row(d.field, str(d.expected), str(d.observed))
    console.print(table)


def render_outcome(outcome: Outcome) -> None:
    procedure = outcome.procedure
    title = procedure.kind.value.upper()
    console.print(f"\n[bold blue]═══ {title} ═══[/bold blue]")
    if procedure.account:
        console.print(f"  Account: {procedure.account}")
        console.print(f"  Amount (raw): {procedure.amount}")
    if procedure.reason:
        console.print(f"  Reason: {procedure.reason}")

    styles = {
        OutcomeKind.APPLIED: "bold green",
        OutcomeKind.SKIPPED: "yellow",
        OutcomeKind.REJECTED: "bold yellow",
        OutcomeKind.SUBMISSION_FAILED: "bold red",
    }
    style = styles[outcome.kind]
    console.print(f"  Outcome: [{style}]{outcome.kind.value.upper()}[/{style}]")
    if outcome.reason:
        console.print(f"  Detail: {outcome.reason}")
    if outcome.receipt:
        console.print(f"  Transaction: {outcome.receipt.transaction_id}")
        if outcome.receipt.block_ref is not None:
            console.print(f"  Block: {outcome.receipt.block_ref}")
    if outcome.category == ErrorCategory.CONFIRMATION_TIMEOUT:
        console.print(
            "  [yellow]⚠ The operation may still confirm. Re-run status before acting again.[/yellow]"
        )
    if outcome.category == ErrorCategory.VERIFICATION_UNAVAILABLE:
        console.print(
            "  Verification: [bold red]? UNAVAILABLE[/bold red] "
            "Check the ledger by hand before any further action."
        )
    if outcome.verification:
        render_verification(outcome.verification)
    if outcome.audit_entry_id:
        console.print(f"  [dim]Audit entry: {outcome.audit_entry_id}[/dim]")
    console.print()


def render_drill(report: DrillReport) -> None:
    console.print("\n[bold blue]═══ Pause Safety Drill ═══[/bold blue]")
    table = Table(show_lines=True)
    table.add_column("Step", style="cyan")
    table.add_column("Expectation")
    table.add_column("Outcome")
    table.add_column("Result")
    for step in report.steps:
        table.add_row(
            step.name,
            step.expectation,
            f"{step.outcome.kind.value} ({step.outcome.category.value})",
            "[green]✓[/green]" if step.passed else "[red]✗[/red]",
        )
    console.print(table)
    if report.passed:
        console.print("[bold green]✓ Pause mechanism working correctly[/bold green]\n")
    else:
        console.print(f"[bold red]✗ Drill halted at {report.halted_at}[/bold red]\n")


def run_audit(audit_log: AuditLog, verbose: bool = False) -> bool:
    """Verify the audit hash chain and optionally list every entry."""
    console.print("\n[bold blue]═══ Audit Log Integrity ═══[/bold blue]")
    count = audit_log.count()
    console.print(f"  Entries in log: [bold]{count}[/bold]")
    if count == 0:
        console.print("[yellow]⚠ Audit log is empty — no entries to verify[/yellow]\n")
        return True

    is_valid, verified, message = audit_log.verify_chain()
    if is_valid:
        console.print(f"  [bold green]✓ VALID[/bold green] ({verified} entries)")
    else:
        console.print("  [bold red]✗ INVALID[/bold red]")
        console.print(f"  Failure at entry: {verified}")
        console.print(f"  Reason: {message}")

    if verbose:
        table = Table(show_lines=True)
        table.add_column("Seq", style="cyan", width=6)
        table.add_column("Procedure", style="green")
        table.add_column("Outcome")
        table.add_column("Verdict")
        table.add_column("Initiator", style="yellow")
        table.add_column("Recorded", width=20)
        table.add_column("Reason")
        for entry in audit_log.entries():
            table.add_row(
                str(entry.sequence_number),
                entry.procedure.kind.value,
                entry.outcome.value,
                entry.verdict.value if entry.verdict else "—",
                entry.procedure.initiator,
                entry.recorded_at.isoformat()[:19],
                entry.reason,
            )
        console.print(table)
    console.print()
    return is_valid


# ════════════════════════════════════════════════════════════════
# Wiring
# ════════════════════════════════════════════════════════════════


def build_ledger(config: PausegateSettings, simulate: bool) -> LedgerClient:
    if simulate:
        return InMemoryLedger(
            limits=MintLimits(
                max_mint_amount=config.max_mint_amount,
                max_total_supply=config.max_total_supply,
            )
        )
    return HttpLedgerClient(
        config.ledger_url,
        api_token=config.ledger_api_token,
        timeout=config.ledger_request_timeout_seconds,
    )


def build_controller(
    config: PausegateSettings,
    ledger: LedgerClient,
    audit_log: AuditLog,
) -> AdminController:
    guard = ModeGuard(
        MintLimits(
            max_mint_amount=config.max_mint_amount,
            max_total_supply=config.max_total_supply,
        )
    )
    return AdminController(
        ledger,
        audit_log,
        guard=guard,
        confirmation_timeout=config.confirmation_timeout_seconds,
        initiator=config.operator_id,
    )


def _amount(args: argparse.Namespace, config: PausegateSettings) -> int:
    if args.raw:
        return int(args.amount)
    return parse_units(args.amount, config.token_decimals)


async def run_command(args: argparse.Namespace, config: PausegateSettings) -> int:
    log = structlog.get_logger()
    simulate = args.command != "audit" and args.simulate
    log.info(
        "pausegate.cli.command",
        command=args.command,
        simulate=simulate,
        operator=config.operator_id,
    )

    # Simulated procedures are audited in memory, never in the operator trail
    audit_log = AuditLog("sqlite://" if simulate else config.audit_database_url)
    audit_log.initialize()

    if args.command == "audit":
        return EXIT_OK if run_audit(audit_log, verbose=args.verbose) else EXIT_FAILED

    ledger = build_ledger(config, simulate)
    controller = build_controller(config, ledger, audit_log)
    try:
        if args.command == "status":
            accounts = args.account or config.tracked_accounts
            render_status(await controller.status(accounts), config)
            return EXIT_OK

        if args.command == "pause":
            outcome = await controller.pause(args.reason, timeout=args.timeout)
        elif args.command == "unpause":
            outcome = await controller.unpause(args.reason, timeout=args.timeout)
        elif args.command == "mint":
            outcome = await controller.mint(
                args.account, _amount(args, config), timeout=args.timeout, reason=args.reason
            )
        else:
            drill = SafetyDrill(controller)
            report = await drill.run(args.account, _amount(args, config))
            render_drill(report)
            return EXIT_OK if report.passed else EXIT_FAILED

        render_outcome(outcome)
        log.info(
            "pausegate.cli.outcome",
            procedure=outcome.procedure.kind.value,
            outcome=outcome.kind.value,
            category=outcome.category.value,
            audit_entry_id=str(outcome.audit_entry_id),
        )
        return exit_code_for(outcome)
    finally:
        await ledger.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Pausegate — pause-gated token administration control plane"
    )
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Run against a fresh in-memory ledger and audit log instead of the gateway",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Confirmation timeout in seconds (defaults to settings)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", help="Show mode, supply and balances")
    status.add_argument("--account", action="append", help="Account to include (repeatable)")

    pause = sub.add_parser("pause", help="Emergency pause")
    pause.add_argument(
        "--reason",
        default="Emergency pause - investigating suspicious activity",
        help="Why the ledger is being paused",
    )

    unpause = sub.add_parser("unpause", help="Resume operations")
    unpause.add_argument(
        "--reason",
        default="Issue resolved, resuming operations",
        help="Why it is safe to resume",
    )

    mint = sub.add_parser("mint", help="Mint tokens to an account")
    mint.add_argument("account")
    mint.add_argument("amount", help="Whole-token amount (e.g. 50 or 0.5)")
    mint.add_argument("--raw", action="store_true", help="Amount is in smallest units")
    mint.add_argument("--reason", default="", help="Optional justification")

    drill = sub.add_parser("drill", help="Run the pause safety drill")
    drill.add_argument("account")
    drill.add_argument("--amount", default="5", help="Whole-token amount to mint")
    drill.add_argument("--raw", action="store_true", help="Amount is in smallest units")

    audit = sub.add_parser("audit", help="Verify the audit log hash chain")
    audit.add_argument("--verbose", "-v", action="store_true", help="List every entry")

    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(settings)
    try:
        code = asyncio.run(run_command(args, settings))
    except ValueError as e:
        console.print(f"[bold red]✗ Invalid request:[/bold red] {e}")
        code = EXIT_REJECTED
    except Exception as e:
        console.print(f"[bold red]✗ Error:[/bold red] {e}")
        code = EXIT_FAILED
    sys.exit(code)


if __name__ == "__main__":
    main()
