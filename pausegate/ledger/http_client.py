"""
Pausegate — Ledger gateway HTTP client.

Thin async wrapper over the ledger gateway's REST API. The gateway fronts the
deployed token contract and signs administrative operations with the
operator key it holds; this client never handles key material.

Amounts travel as decimal strings so 18-decimal values survive JSON.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from pausegate.control.schema import OperationalMode, ProcedureKind, SubmissionReceipt
from pausegate.ledger.client import ConfirmationResult, LedgerClient, LedgerError

logger = logging.getLogger(__name__)

# Extra time granted to the HTTP request beyond the gateway-side wait
_WAIT_GRACE_SECONDS = 5.0


def _field(data: dict[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise LedgerError(f"gateway response is missing '{key}': {data!r}") from None


def _amount(data: dict[str, Any], key: str) -> int:
    value = _field(data, key)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise LedgerError(f"gateway returned a non-integer '{key}': {value!r}") from e


class HttpLedgerClient(LedgerClient):
    """
    Async ledger gateway client.

    Uses httpx for async HTTP. Confirmation waits use the gateway's long-poll
    endpoint, so no client-side polling loop is involved.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = {"Content-Type": "application/json"}
        if api_token:
            self._headers["Authorization"] = f"Bearer {api_token}"
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        client = await self._ensure_client()
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise LedgerError(f"{method} {path} failed: {e}") from e

        if resp.is_error:
            try:
                detail = resp.json().get("error", resp.text)
            except ValueError:
                detail = resp.text
            raise LedgerError(f"{method} {path} returned {resp.status_code}: {detail}")
        try:
            data = resp.json()
        except ValueError as e:
            raise LedgerError(f"{method} {path} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise LedgerError(f"{method} {path} returned an unexpected payload: {data!r}")
        return data

    # ── Reads ──────────────────────────────────────────────────

    async def get_mode(self) -> OperationalMode:
        data = await self._request("GET", "/v1/token/mode")
        return OperationalMode.PAUSED if _field(data, "paused") else OperationalMode.ACTIVE

    async def get_balance(self, account: str) -> int:
        data = await self._request("GET", f"/v1/token/balances/{account}")
        return _amount(data, "balance")

    async def get_total_supply(self) -> int:
        data = await self._request("GET", "/v1/token/supply")
        return _amount(data, "total_supply")

    # ── Submissions ────────────────────────────────────────────

    async def submit_pause(self, reason: str) -> SubmissionReceipt:
        data = await self._request("POST", "/v1/token/pause", json={"reason": reason})
        return self._receipt(ProcedureKind.PAUSE, data)

    async def submit_unpause(self, reason: str) -> SubmissionReceipt:
        data = await self._request("POST", "/v1/token/unpause", json={"reason": reason})
        return self._receipt(ProcedureKind.UNPAUSE, data)

    async def submit_mint(self, account: str, amount: int) -> SubmissionReceipt:
        data = await self._request(
            "POST",
            "/v1/token/mint",
            json={"account": account, "amount": str(amount)},
        )
        return self._receipt(ProcedureKind.MINT, data)

    async def await_confirmation(
        self,
        transaction_id: str,
        timeout: float,
    ) -> ConfirmationResult:
        """Long-poll the gateway until the transaction is terminal or ``timeout`` passes."""
        try:
            data = await self._request(
                "GET",
                f"/v1/transactions/{transaction_id}/wait",
                params={"timeout": timeout},
                timeout=timeout + _WAIT_GRACE_SECONDS,
            )
        except LedgerError as e:
            if isinstance(e.__cause__, httpx.TimeoutException):
                return ConfirmationResult.timed_out()
            raise

        status = data.get("status")
        if status == "confirmed":
            return ConfirmationResult.confirmed(data.get("block_number"))
        if status == "failed":
            return ConfirmationResult.failed(data.get("error") or "transaction reverted")
        return ConfirmationResult.timed_out()

    # ── Internal ────────────────────────────────────────────────

    @staticmethod
    def _receipt(kind: ProcedureKind, data: dict[str, Any]) -> SubmissionReceipt:
        transaction_id = _field(data, "transaction_id")
        if not isinstance(transaction_id, str) or not transaction_id:
            raise LedgerError(f"gateway returned an invalid transaction id: {transaction_id!r}")

        submitted_at = datetime.now(timezone.utc)
        if data.get("submitted_at"):
            try:
                submitted_at = datetime.fromisoformat(data["submitted_at"])
            except (TypeError, ValueError):
                # Tracking relies on the transaction id alone
                logger.warning(
                    "Unparseable submitted_at %r for tx=%s; using local time",
                    data["submitted_at"], transaction_id,
                )
        receipt = SubmissionReceipt(
            kind=kind,
            transaction_id=transaction_id,
            submitted_at=submitted_at,
        )
        logger.info("Operation submitted: %s tx=%s", kind.value, receipt.transaction_id)
        return receipt
