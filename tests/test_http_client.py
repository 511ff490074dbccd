"""
Tests for the ledger gateway HTTP client.

Validates:
- Request shapes and response parsing
- Error responses surfaced as LedgerError
- Long-poll confirmation results, including timeouts
- Malformed payloads surfaced as LedgerError
"""

from __future__ import annotations

import json

import httpx
import pytest

from pausegate.audit.log import AuditLog
from pausegate.control.admin import AdminController
from pausegate.control.schema import ErrorCategory, OperationalMode, OutcomeKind, ProcedureKind
from pausegate.ledger.client import ConfirmationState, LedgerError
from pausegate.ledger.http_client import HttpLedgerClient

BIG = 10**20


class TestHttpLedgerClient:

    def setup_method(self):
        self.requests: list[httpx.Request] = []
        self.responses: dict[tuple[str, str], httpx.Response] = {}

    def _client(self) -> HttpLedgerClient:
        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            key = (request.method, request.url.path)
            response = self.responses.get(key)
            if isinstance(response, Exception):
                raise response
            if response is None:
                return httpx.Response(404, json={"error": "not found"})
            return response

        return HttpLedgerClient(
            "https://gateway.test/",
            api_token="secret",
            transport=httpx.MockTransport(handler),
        )

    @pytest.mark.asyncio
    async def test_reads(self):
        self.responses[("GET", "/v1/token/mode")] = httpx.Response(200, json={"paused": True})
        self.responses[("GET", "/v1/token/balances/0xabc")] = httpx.Response(
            200, json={"balance": str(BIG)}
        )
        self.responses[("GET", "/v1/token/supply")] = httpx.Response(
            200, json={"total_supply": str(BIG * 2)}
        )
        client = self._client()

        assert await client.get_mode() == OperationalMode.PAUSED
        assert await client.get_balance("0xabc") == BIG
        assert await client.get_total_supply() == BIG * 2
        assert self.requests[0].headers["Authorization"] == "Bearer secret"
        await client.close()

    @pytest.mark.asyncio
    async def test_submit_mint(self):
        self.responses[("POST", "/v1/token/mint")] = httpx.Response(
            200,
            json={"transaction_id": "0x123", "submitted_at": "2026-01-01T00:00:00+00:00"},
        )
        client = self._client()
        receipt = await client.submit_mint("0xabc", BIG)

        assert receipt.kind == ProcedureKind.MINT
        assert receipt.transaction_id == "0x123"
        assert receipt.submitted_at.year == 2026
        assert json.loads(self.requests[0].content) == {"account": "0xabc", "amount": str(BIG)}

    @pytest.mark.asyncio
    async def test_submit_pause_sends_reason(self):
        self.responses[("POST", "/v1/token/pause")] = httpx.Response(
            200, json={"transaction_id": "0x9"}
        )
        receipt = await self._client().submit_pause("incident")
        assert receipt.kind == ProcedureKind.PAUSE
        assert json.loads(self.requests[0].content) == {"reason": "incident"}

    @pytest.mark.asyncio
    async def test_rejected_submission(self):
        self.responses[("POST", "/v1/token/unpause")] = httpx.Response(
            409, json={"error": "ExpectedPause"}
        )
        with pytest.raises(LedgerError, match="ExpectedPause"):
            await self._client().submit_unpause("resolved")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        self.responses[("GET", "/v1/token/mode")] = httpx.ConnectError("refused")
        with pytest.raises(LedgerError):
            await self._client().get_mode()

    @pytest.mark.asyncio
    async def test_confirmed(self):
        self.responses[("GET", "/v1/transactions/0x1/wait")] = httpx.Response(
            200, json={"status": "confirmed", "block_number": 77}
        )
        result = await self._client().await_confirmation("0x1", 30)
        assert result.state == ConfirmationState.CONFIRMED
        assert result.block_ref == 77
        assert self.requests[0].url.params["timeout"] == "30"

    @pytest.mark.asyncio
    async def test_failed(self):
        self.responses[("GET", "/v1/transactions/0x1/wait")] = httpx.Response(
            200, json={"status": "failed", "error": "execution reverted"}
        )
        result = await self._client().await_confirmation("0x1", 30)
        assert result.state == ConfirmationState.FAILED
        assert result.error == "execution reverted"

    @pytest.mark.asyncio
    async def test_still_pending_is_timeout(self):
        self.responses[("GET", "/v1/transactions/0x1/wait")] = httpx.Response(
            200, json={"status": "pending"}
        )
        result = await self._client().await_confirmation("0x1", 1)
        assert result.state == ConfirmationState.TIMED_OUT

    @pytest.mark.asyncio
    async def test_read_timeout_is_timeout(self):
        self.responses[("GET", "/v1/transactions/0x1/wait")] = httpx.ReadTimeout("slow")
        result = await self._client().await_confirmation("0x1", 1)
        assert result.state == ConfirmationState.TIMED_OUT

    @pytest.mark.asyncio
    async def test_missing_read_fields(self):
        self.responses[("GET", "/v1/token/mode")] = httpx.Response(200, json={})
        self.responses[("GET", "/v1/token/supply")] = httpx.Response(200, json={"supply": "1"})
        self.responses[("GET", "/v1/token/balances/0xabc")] = httpx.Response(
            200, json={"balance": "lots"}
        )
        client = self._client()

        with pytest.raises(LedgerError, match="paused"):
            await client.get_mode()
        with pytest.raises(LedgerError, match="total_supply"):
            await client.get_total_supply()
        with pytest.raises(LedgerError, match="non-integer"):
            await client.get_balance("0xabc")

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        self.responses[("GET", "/v1/token/mode")] = httpx.Response(200, text="<html>")
        with pytest.raises(LedgerError, match="non-JSON"):
            await self._client().get_mode()

    @pytest.mark.asyncio
    async def test_submission_without_transaction_id_is_audited(self):
        self.responses[("GET", "/v1/token/mode")] = httpx.Response(200, json={"paused": False})
        self.responses[("POST", "/v1/token/pause")] = httpx.Response(200, json={"ok": True})
        audit = AuditLog("sqlite://")
        audit.initialize()
        controller = AdminController(self._client(), audit, confirmation_timeout=1.0)

        outcome = await controller.pause("incident")

        assert outcome.kind == OutcomeKind.SUBMISSION_FAILED
        assert outcome.category == ErrorCategory.SUBMISSION_FAILURE
        assert "transaction_id" in outcome.error
        assert audit.count() == 1

    @pytest.mark.asyncio
    async def test_unparseable_submitted_at_keeps_receipt(self):
        self.responses[("POST", "/v1/token/pause")] = httpx.Response(
            200, json={"transaction_id": "0x9", "submitted_at": "yesterday"}
        )
        receipt = await self._client().submit_pause("incident")
        assert receipt.transaction_id == "0x9"
