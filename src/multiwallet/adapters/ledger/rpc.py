"""
JSON-RPC Ledger Adapter.

Talks JSON-RPC 2.0 over HTTP to a ledger node using aiohttp.

On-wire encodings are injectable:
- `address_encoder` turns raw address bytes into the node's address string
- `transaction_encoder` turns a SignedTransfer into the raw transaction bytes
  that are base64-encoded for `sendTransaction`
"""

from __future__ import annotations

import base64
import itertools
import struct
from collections.abc import Callable
from typing import Any

import aiohttp

from multiwallet.config.settings import Settings
from multiwallet.domain.errors import LedgerError, LedgerRpcError
from multiwallet.domain.models import AnchorReference, SignatureStatus, SignedTransfer, short_address
from multiwallet.observability.logging import get_logger
from multiwallet.ports.ledger import LedgerPort

logger = get_logger(__name__)

AddressEncoder = Callable[[bytes], str]
TransactionEncoder = Callable[[SignedTransfer], bytes]


def encode_address_hex(address: bytes) -> str:
    return address.hex()


def encode_signed_transfer(transfer: SignedTransfer) -> bytes:
    """Default wire form: u8 signature count | signature | signed message."""
    return struct.pack("<B", 1) + transfer.signature + transfer.message


def _unwrap_value(result: Any) -> Any:
    """Responses come either bare or as {"context": ..., "value": ...}."""
    if isinstance(result, dict) and "value" in result:
        return result["value"]
    return result


class JsonRpcLedger(LedgerPort):
    """LedgerPort backed by a JSON-RPC node."""

    def __init__(
        self,
        rpc_url: str,
        *,
        commitment: str = "confirmed",
        request_timeout_seconds: float = 30.0,
        address_encoder: AddressEncoder = encode_address_hex,
        transaction_encoder: TransactionEncoder = encode_signed_transfer,
    ):
        self.rpc_url = rpc_url
        self.commitment = commitment
        self.request_timeout_seconds = request_timeout_seconds
        self._encode_address = address_encoder
        self._encode_transaction = transaction_encoder
        self._session: aiohttp.ClientSession | None = None
        self._ids = itertools.count(1)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> JsonRpcLedger:
        return cls(
            settings.ledger.rpc_url,
            commitment=settings.ledger.commitment,
            request_timeout_seconds=settings.ledger.request_timeout_seconds,
            **kwargs,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """Open the HTTP session."""
        if self._session and not self._session.closed:
            return
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.request_timeout_seconds),
            headers={"Content-Type": "application/json"},
        )
        logger.info(f"Ledger client ready for {self.rpc_url}")

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._session.closed

    # =========================================================================
    # Transport
    # =========================================================================

    async def _call(self, method: str, params: list[Any]) -> Any:
        """
        One JSON-RPC request.

        Raises:
            LedgerRpcError if the node answers with an error object.
            LedgerError on transport, HTTP, timeout or decoding failures.
        """
        if not self.is_open:
            # Lazy init or restart if closed
            await self.initialize()

        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            async with self._session.post(self.rpc_url, json=payload) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise LedgerError(
                        f"{method} failed with HTTP {resp.status}",
                        details={"status": resp.status, "response": text[:500]},
                    )
                data = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise LedgerError(f"Connection error during {method}: {e}") from e
        except TimeoutError as e:
            raise LedgerError(f"{method} timed out") from e
        except ValueError as e:
            # Body is not valid JSON
            raise LedgerError(f"{method} returned an undecodable response: {e}") from e

        if not isinstance(data, dict):
            raise LedgerError(f"{method} returned a malformed response", details={"response": data})

        error = data.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise LedgerRpcError(f"{method}: {message}", code=code)

        if "result" not in data:
            raise LedgerError(f"{method} response has no result", details={"response": data})
        return data["result"]

    # =========================================================================
    # LedgerPort
    # =========================================================================

    async def get_balance(self, address: bytes) -> int:
        result = await self._call(
            "getBalance",
            [self._encode_address(address), {"commitment": self.commitment}],
        )
        value = _unwrap_value(result)
        if isinstance(value, bool) or not isinstance(value, int):
            raise LedgerError(
                f"getBalance for {short_address(address)} returned a non-integer",
                details={"value": value},
            )
        return value

    async def get_latest_anchor(self) -> AnchorReference:
        result = await self._call("getLatestBlockhash", [{"commitment": self.commitment}])
        value = _unwrap_value(result)
        try:
            return AnchorReference(
                hash=str(value["blockhash"]),
                last_valid_height=int(value["lastValidBlockHeight"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerError(f"getLatestBlockhash returned a malformed value: {e}") from e

    async def get_signature_status(self, signature: str) -> SignatureStatus | None:
        result = await self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        statuses = _unwrap_value(result) or []
        status = statuses[0] if statuses else None
        if not status:
            return None
        return SignatureStatus(
            slot=int(status.get("slot", 0)),
            confirmation_status=status.get("confirmationStatus"),
            err=status.get("err"),
        )

    async def send_transaction(self, transfer: SignedTransfer) -> str:
        encoded = base64.b64encode(self._encode_transaction(transfer)).decode("ascii")
        signature = await self._call(
            "sendTransaction",
            [encoded, {"encoding": "base64", "preflightCommitment": self.commitment}],
        )
        if not isinstance(signature, str) or not signature:
            raise LedgerError("sendTransaction returned no signature", details={"result": signature})
        return signature

    async def request_airdrop(self, address: bytes, amount: int) -> str:
        signature = await self._call(
            "requestAirdrop",
            [self._encode_address(address), amount, {"commitment": self.commitment}],
        )
        if not isinstance(signature, str) or not signature:
            raise LedgerError("requestAirdrop returned no signature", details={"result": signature})
        logger.info(f"Airdrop of {amount} requested for {short_address(address)}: {signature}")
        return signature


class LedgerClientRegistry:
    """
    One JsonRpcLedger per endpoint URL.

    Clients are created on first use and share their HTTP session across
    every caller asking for the same endpoint.
    """

    def __init__(self, settings: Settings, **client_kwargs: Any):
        self.settings = settings
        self._client_kwargs = client_kwargs
        self._clients: dict[str, JsonRpcLedger] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def get(self, rpc_url: str | None = None) -> JsonRpcLedger:
        """Client for `rpc_url` (default: the configured endpoint)."""
        url = rpc_url or self.settings.ledger.rpc_url
        client = self._clients.get(url)
        if client is None:
            client = JsonRpcLedger(
                url,
                commitment=self.settings.ledger.commitment,
                request_timeout_seconds=self.settings.ledger.request_timeout_seconds,
                **self._client_kwargs,
            )
            self._clients[url] = client
        return client

    async def close_all(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
