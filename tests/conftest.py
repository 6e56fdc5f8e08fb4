"""Pytest configuration and shared fixtures for all tests.

This module provides:
- A fixed local identity (RFC 8032 Ed25519 test vector seed)
- Sample card data with a future expiry
- FakeLedger: an in-memory JSON-RPC ledger hosting the token vault and
  account-abstraction contracts, served through httpx.MockTransport
- Settings and session fixtures wired to the fake ledger
"""

import base64
import json
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import pytest

from card_tokenizer.clients.ledger_client import LedgerClient
from card_tokenizer.config import LedgerSettings, SessionSettings, Settings, VaultSettings
from card_tokenizer.domain.card import CardData
from card_tokenizer.domain.transaction import SignedTransaction, UnsignedTransaction, decode_value
from card_tokenizer.services.session import TokenizerSession

TEST_SECRET = "9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60"
TEST_ADDRESS = "d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a"
OTHER_SECRET = "4ccd089b28ff96da9db6c346ec114e0f5b8a319f35aba624da8cf6ed4fb8a6fb"

VAULT_ID = "CVAULT"
AA_ID = "CACCOUNTABSTRACTION"
RPC_URL = "http://ledger.test/rpc"

FUTURE_YEAR = f"{(datetime.now(timezone.utc).year + 3) % 100:02d}"


def typed(value: Any) -> dict[str, Any]:
    """Encode a native value the way the ledger returns contract values."""
    if value is None:
        return {"type": "void"}
    if isinstance(value, bool):
        return {"type": "bool", "value": value}
    if isinstance(value, int):
        return {"type": "u64", "value": value}
    if isinstance(value, (bytes, bytearray)):
        return {"type": "bytes", "value": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, dict):
        return {"type": "map", "value": {key: typed(item) for key, item in value.items()}}
    return {"type": "string", "value": value}


class FakeLedger:
    """In-memory ledger speaking the JSON-RPC protocol of LedgerClient.

    Hosts the token vault and the account-abstraction contract. Submitted
    transactions must carry a valid signature from their source account.
    Tests flip the attributes below to inject failures.
    """

    def __init__(self, now: int = 1_700_000_000) -> None:
        self.now = now
        self.accounts: dict[str, int] = {}
        self.tokens: dict[str, dict[str, Any]] = {}
        self.modes: dict[str, str] = {}
        self.contracts = {VAULT_ID, AA_ID}
        self.transactions: dict[str, dict[str, Any]] = {}
        self.requests: list[dict[str, Any]] = []

        self.pending_polls = 1
        self.send_status: Optional[str] = None
        self.http_status = 200
        # Verbatim JSON bodies served in place of the named RPC method
        self.raw_bodies: dict[str, Any] = {}

    # -- transport -------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)

        if self.http_status != 200:
            return httpx.Response(self.http_status, json={"error": "unavailable"})

        method = body["method"]
        if method in self.raw_bodies:
            return httpx.Response(200, json=self.raw_bodies[method])

        params = body["params"]
        try:
            result = getattr(self, f"_rpc_{method}")(params)
        except LookupError as e:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32600, "message": str(e)}},
            )
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    def methods(self) -> list[str]:
        return [request["method"] for request in self.requests]

    def client(self) -> LedgerClient:
        return LedgerClient(
            rpc_url=RPC_URL,
            poll_interval_seconds=0,
            confirmation_timeout_seconds=5,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)),
        )

    # -- RPC methods -----------------------------------------------------

    def _rpc_getAccount(self, params: dict[str, Any]) -> dict[str, Any]:
        address = params["address"]
        if address not in self.accounts:
            raise LookupError(f"Account not found: {address}")
        return {"id": address, "sequence": self.accounts[address]}

    def _rpc_simulateTransaction(self, params: dict[str, Any]) -> dict[str, Any]:
        tx = _decode_tx(params["transaction"])
        try:
            value = self._execute(tx)
        except RuntimeError as e:
            return {"error": str(e), "latestLedger": 1}
        return {"results": [{"retval": typed(value)}], "latestLedger": 1}

    def _rpc_sendTransaction(self, params: dict[str, Any]) -> dict[str, Any]:
        signed = SignedTransaction.from_envelope(params["transaction"])
        tx_hash = signed.hash_hex()

        if self.send_status is not None:
            return {"status": self.send_status, "hash": tx_hash, "errorResult": "txBadSeq"}

        tx = signed.transaction
        if not signed.is_signed_by(tx.source):
            return {"status": "ERROR", "hash": tx_hash, "errorResult": "txBadAuth"}

        self.accounts[tx.source] = tx.sequence
        try:
            value = self._execute(tx)
            outcome = {"status": "SUCCESS", "hash": tx_hash, "ledger": 42, "returnValue": typed(value)}
        except RuntimeError as e:
            outcome = {"status": "FAILED", "hash": tx_hash, "error": str(e)}

        self.transactions[tx_hash] = {"outcome": outcome, "polls": 0}
        return {"status": "PENDING", "hash": tx_hash}

    def _rpc_getTransaction(self, params: dict[str, Any]) -> dict[str, Any]:
        entry = self.transactions.get(params["hash"])
        if entry is None:
            return {"status": "NOT_FOUND"}
        entry["polls"] += 1
        if entry["polls"] <= self.pending_polls:
            return {"status": "NOT_FOUND"}
        return entry["outcome"]

    # -- contracts -------------------------------------------------------

    def _execute(self, tx: UnsignedTransaction) -> Any:
        call = tx.operation
        if call.contract_id not in self.contracts:
            raise RuntimeError(f"HostError: contract not found: {call.contract_id}")

        args = [decode_value(arg) for arg in call.args]
        handler = getattr(self, f"_contract_{call.function}")
        return handler(*args)

    def _contract_store_token(self, user, payload, token_hash, last4, network, expires_at):
        existing = self.tokens.get(user)
        if existing is not None and existing["status"] != "revoked":
            raise RuntimeError("HostError: Error(Contract, #1): Token already exists")
        if expires_at <= self.now:
            raise RuntimeError("HostError: Error(Contract, #2): Expiry must be in the future")
        self.tokens[user] = {
            "user": user,
            "encrypted_payload": payload,
            "token_hash": token_hash,
            "last_4_digits": last4,
            "card_network": network,
            "status": "active",
            "created_at": self.now,
            "expires_at": expires_at,
        }
        return dict(self.tokens[user])

    def _contract_retrieve_token(self, user):
        record = self.tokens.get(user)
        return dict(record) if record is not None else None

    def _contract_revoke_token(self, user):
        record = self.tokens.get(user)
        if record is None or record["status"] != "active":
            return False
        record["status"] = "revoked"
        return True

    def _contract_get_token_status(self, user):
        record = self.tokens.get(user)
        return record["status"] if record is not None else None

    def _contract_get_mode(self, user):
        return self.modes.get(user)

    def _contract_set_mode(self, user, mode):
        self.modes[user] = mode
        return None


def _decode_tx(envelope: str) -> UnsignedTransaction:
    return SignedTransaction.from_envelope(envelope).transaction


@pytest.fixture
def sample_card():
    """Valid Visa test card with a future expiry."""
    return CardData(
        pan="4242 4242 4242 4242",
        cvv="123",
        expiry_month="12",
        expiry_year=FUTURE_YEAR,
        cardholder_name="Jane Doe",
    )


@pytest.fixture
def fake_ledger():
    """Fake ledger with the test account funded."""
    ledger = FakeLedger()
    ledger.accounts[TEST_ADDRESS] = 100
    return ledger


@pytest.fixture
def test_settings():
    """Settings pointing at the fake ledger's contracts."""
    return Settings(
        ledger=LedgerSettings(rpc_url=RPC_URL, poll_interval_seconds=0, confirmation_timeout_seconds=5),
        vault=VaultSettings(token_vault_address=VAULT_ID),
        session=SessionSettings(signer_timeout_seconds=2),
    )


@pytest.fixture
def aa_settings():
    """Settings with account abstraction enabled."""
    return Settings(
        ledger=LedgerSettings(rpc_url=RPC_URL, poll_interval_seconds=0, confirmation_timeout_seconds=5),
        vault=VaultSettings(
            token_vault_address=VAULT_ID,
            account_abstraction_address=AA_ID,
            use_account_abstraction=True,
        ),
        session=SessionSettings(signer_timeout_seconds=2),
    )


@pytest.fixture
def session(fake_ledger, test_settings):
    """Session bound to the local test identity."""
    return TokenizerSession.from_secret(
        TEST_SECRET, config=test_settings, ledger_client=fake_ledger.client()
    )
