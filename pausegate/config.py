"""Pausegate — Control-plane configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class PausegateSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "PAUSEGATE_",
        "extra": "ignore",
    }

    # ── Ledger gateway ─────────────────────────────────────────
    ledger_url: str = "http://localhost:8545"
    ledger_api_token: str = ""
    ledger_request_timeout_seconds: float = 30.0

    # ── Token ──────────────────────────────────────────────────
    token_symbol: str = "SEMILLA"
    token_decimals: int = 18

    # ── Administrative procedures ──────────────────────────────
    operator_id: str = "operator"
    confirmation_timeout_seconds: float = 120.0
    max_mint_amount: int | None = 100 * 10**18
    max_total_supply: int | None = 10_000 * 10**18
    tracked_accounts: list[str] = []

    # ── Audit log ──────────────────────────────────────────────
    audit_database_url: str = "sqlite:///pausegate_audit.db"

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "console"


settings = PausegateSettings()
