"""Ledger JSON-RPC client for vault contract transactions."""

import asyncio
import uuid
from typing import Any, Optional, Union

import httpx
import structlog
from pydantic import ValidationError

from card_tokenizer.clients.models import (
    AccountInfo,
    GetTransactionResponse,
    SendStatus,
    SendTransactionResponse,
    SimulateTransactionResponse,
    TransactionStatus,
)
from card_tokenizer.domain.transaction import SignedTransaction, UnsignedTransaction, decode_value
from card_tokenizer.models.exceptions import (
    AccountNotFoundError,
    ContractNotFoundError,
    LedgerTimeoutError,
    SubmissionError,
    TransactionFailedError,
)

logger = structlog.get_logger(__name__)

_CONTRACT_MISSING_MARKERS = ("contract not found", "missingvalue", "no such contract")


def _is_contract_missing(error: Optional[str]) -> bool:
    return bool(error) and any(marker in error.lower() for marker in _CONTRACT_MISSING_MARKERS)


class LedgerClient:
    """
    Client for the ledger's JSON-RPC endpoint.

    Handles account lookup, read-only simulation, transaction submission
    and confirmation polling. Network failures are mapped to typed errors:

    - httpx timeout -> LedgerTimeoutError
    - transport errors and HTTP 5xx -> SubmissionError
    - missing account -> AccountNotFoundError
    - missing contract -> ContractNotFoundError
    - FAILED / ERROR transaction status -> TransactionFailedError

    Nothing here retries. Store and revoke must never be resubmitted
    automatically; reads may be retried by the caller.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout_seconds: float = 10.0,
        poll_interval_seconds: float = 1.0,
        confirmation_timeout_seconds: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the ledger client.

        Args:
            rpc_url: JSON-RPC endpoint URL
            timeout_seconds: Per-request timeout in seconds (default: 10.0)
            poll_interval_seconds: Delay between confirmation polls
            confirmation_timeout_seconds: Upper bound on waiting for a terminal status
            http_client: Optional preconfigured httpx client
        """
        self.rpc_url = rpc_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.confirmation_timeout_seconds = confirmation_timeout_seconds
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

        logger.info(
            "ledger_client_initialized",
            rpc_url=self.rpc_url,
            timeout_seconds=timeout_seconds,
        )

    async def close(self) -> None:
        """Close the HTTP client connection pool."""
        await self.http_client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _call(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        """
        Perform one JSON-RPC call.

        Returns:
            The "result" member of the response

        Raises:
            LedgerTimeoutError: Request timed out
            SubmissionError: Transport error, HTTP error or JSON-RPC error
        """
        request_id = str(uuid.uuid4())
        payload = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}

        try:
            response = await self.http_client.post(
                self.rpc_url,
                json=payload,
                headers={"X-Request-ID": request_id},
            )
        except httpx.TimeoutException as e:
            logger.error("ledger_rpc_timeout", method=method, request_id=request_id, error=str(e))
            raise LedgerTimeoutError(f"Ledger RPC timeout during {method}") from e
        except httpx.RequestError as e:
            logger.error("ledger_rpc_request_error", method=method, request_id=request_id, error=str(e))
            raise SubmissionError(f"Ledger RPC request error during {method}: {e}") from e

        if response.status_code >= 500:
            logger.error(
                "ledger_rpc_unavailable",
                method=method,
                status_code=response.status_code,
                request_id=request_id,
            )
            raise SubmissionError(f"Ledger RPC unavailable (status: {response.status_code})")

        if response.status_code >= 400:
            logger.error(
                "ledger_rpc_rejected",
                method=method,
                status_code=response.status_code,
                request_id=request_id,
            )
            raise SubmissionError(f"Ledger RPC rejected {method} (status: {response.status_code})")

        try:
            body = response.json()
        except ValueError as e:
            raise SubmissionError(f"Ledger RPC returned invalid JSON for {method}") from e

        if not isinstance(body, dict):
            raise SubmissionError(f"Ledger RPC returned a non-object body for {method}")

        if body.get("error"):
            error = body["error"]
            if isinstance(error, dict):
                message = str(error.get("message") or "")
            else:
                message = str(error)
            logger.warning("ledger_rpc_error", method=method, request_id=request_id, error=message)
            if method == "getAccount" and "not found" in message.lower():
                raise AccountNotFoundError(f"Account not found: {params.get('address')}")
            raise SubmissionError(f"Ledger RPC error during {method}: {message or 'unknown error'}")

        return body.get("result") or {}

    @staticmethod
    def _decode(value: Any, method: str) -> Any:
        try:
            return decode_value(value)
        except ValueError as e:
            raise SubmissionError(f"Malformed return value in {method} response: {e}") from e

    @staticmethod
    def _parse(model, result: dict[str, Any], method: str):
        try:
            return model.model_validate(result)
        except ValidationError as e:
            raise SubmissionError(f"Unexpected {method} response: {e.error_count()} invalid fields") from e

    async def get_account(self, address: str) -> AccountInfo:
        """
        Load an account's current sequence number.

        Raises:
            AccountNotFoundError: If the account does not exist on the ledger
        """
        result = await self._call("getAccount", {"address": address})
        return self._parse(AccountInfo, result, "getAccount")

    async def simulate(self, transaction: Union[UnsignedTransaction, SignedTransaction]) -> Any:
        """
        Run a contract call read-only and return its decoded return value.

        Raises:
            ContractNotFoundError: If the target contract does not exist
            TransactionFailedError: If the contract call fails
        """
        result = await self._call("simulateTransaction", {"transaction": transaction.to_envelope()})
        simulation = self._parse(SimulateTransactionResponse, result, "simulateTransaction")

        if simulation.error:
            if _is_contract_missing(simulation.error):
                raise ContractNotFoundError(f"Contract not found: {simulation.error}")
            raise TransactionFailedError(f"Simulation failed: {simulation.error}")

        if not simulation.results:
            return None
        return self._decode(simulation.results[0].retval, "simulateTransaction")

    async def send_transaction(self, transaction: SignedTransaction) -> SendTransactionResponse:
        """Submit a signed transaction without waiting for confirmation."""
        result = await self._call("sendTransaction", {"transaction": transaction.to_envelope()})
        return self._parse(SendTransactionResponse, result, "sendTransaction")

    async def get_transaction(self, tx_hash: str) -> GetTransactionResponse:
        result = await self._call("getTransaction", {"hash": tx_hash})
        return self._parse(GetTransactionResponse, result, "getTransaction")

    async def submit_and_wait(self, transaction: SignedTransaction) -> GetTransactionResponse:
        """
        Submit a signed transaction and poll until it reaches a terminal status.

        Returns:
            The SUCCESS response, with return_value decoded

        Raises:
            TransactionFailedError: ERROR on submission or FAILED on confirmation
            LedgerTimeoutError: No terminal status within the confirmation timeout
            SubmissionError: Ledger asked to try again later, or network failure
        """
        function = transaction.transaction.operation.function
        sent = await self.send_transaction(transaction)

        logger.info("transaction_submitted", tx_hash=sent.hash, status=sent.status.value, function=function)

        if sent.status == SendStatus.ERROR:
            raise TransactionFailedError(
                f"Transaction rejected: {sent.error_result or 'unknown error'}", tx_hash=sent.hash
            )
        if sent.status == SendStatus.TRY_AGAIN_LATER:
            raise SubmissionError("Ledger is congested, transaction was not accepted")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.confirmation_timeout_seconds

        while True:
            status = await self.get_transaction(sent.hash)

            if status.status == TransactionStatus.SUCCESS:
                status.return_value = self._decode(status.return_value, "getTransaction")
                status.hash = status.hash or sent.hash
                logger.info("transaction_confirmed", tx_hash=sent.hash, ledger=status.ledger, function=function)
                return status

            if status.status == TransactionStatus.FAILED:
                logger.warning("transaction_failed", tx_hash=sent.hash, function=function, error=status.error)
                if _is_contract_missing(status.error):
                    raise ContractNotFoundError(f"Contract not found: {status.error}")
                raise TransactionFailedError(
                    f"Transaction failed: {status.error or 'unknown error'}", tx_hash=sent.hash
                )

            if loop.time() + self.poll_interval_seconds > deadline:
                logger.error("transaction_confirmation_timeout", tx_hash=sent.hash, function=function)
                raise LedgerTimeoutError(f"Transaction {sent.hash} not confirmed in time")

            await asyncio.sleep(self.poll_interval_seconds)
