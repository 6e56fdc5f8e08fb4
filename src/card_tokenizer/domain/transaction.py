"""Ledger transaction envelopes and contract argument encoding.

A transaction invokes one contract function on behalf of a source account.
Its canonical form is compact JSON with sorted keys; the hash that signers
sign binds the network:

    tx_hash = SHA-256( SHA-256(network_passphrase) || canonical_tx )

Envelopes travel base64-encoded:

    {"tx": {...}, "signatures": [{"publicKey": <hex>, "signature": <base64>}]}

Contract arguments and return values use typed values
``{"type": ..., "value": ...}`` with byte strings base64-encoded.
"""

import base64
import binascii
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

U64_MAX = 2**64 - 1


def _canonical(document: Any) -> bytes:
    return json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def address_val(address: str) -> dict[str, Any]:
    return {"type": "address", "value": address}


def bytes_val(data: bytes) -> dict[str, Any]:
    return {"type": "bytes", "value": base64.b64encode(data).decode("ascii")}


def string_val(text: str) -> dict[str, Any]:
    return {"type": "string", "value": text}


def u64_val(number: int) -> dict[str, Any]:
    if number < 0 or number > U64_MAX:
        raise ValueError(f"u64 out of range: {number}")
    return {"type": "u64", "value": number}


def enum_val(variant: str) -> dict[str, Any]:
    return {"type": "enum", "value": variant}


def decode_value(value: Any) -> Any:
    """Decode a typed contract value into native Python.

    bytes -> bytes, map -> dict, vec -> list, void -> None, integers -> int,
    everything else passes through. Untyped values are returned unchanged.

    Raises:
        ValueError: If a typed value is malformed
    """
    if not isinstance(value, dict) or "type" not in value:
        return value

    kind = value["type"]
    raw = value.get("value")

    if kind == "void":
        return None
    if kind == "bytes":
        try:
            return base64.b64decode(raw, validate=True)
        except (binascii.Error, TypeError) as e:
            raise ValueError(f"Invalid bytes value: {e}") from e
    if kind == "map":
        if not isinstance(raw or {}, dict):
            raise ValueError("Invalid map value: expected an object")
        return {key: decode_value(item) for key, item in (raw or {}).items()}
    if kind == "vec":
        if not isinstance(raw or [], list):
            raise ValueError("Invalid vec value: expected an array")
        return [decode_value(item) for item in (raw or [])]
    if kind in ("u32", "u64", "i32", "i64", "i128"):
        try:
            return int(raw)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid {kind} value: {raw!r}") from e
    return raw


@dataclass(frozen=True)
class ContractCall:
    """Invocation of a single contract function."""

    contract_id: str
    function: str
    args: tuple[dict[str, Any], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "invokeContract",
            "contract": self.contract_id,
            "function": self.function,
            "args": list(self.args),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContractCall":
        return cls(
            contract_id=data["contract"],
            function=data["function"],
            args=tuple(data.get("args", [])),
        )


@dataclass(frozen=True)
class UnsignedTransaction:
    """A transaction ready to be signed.

    Attributes:
        source: Address of the account paying for and authorizing the call
        sequence: Account sequence number for this transaction
        fee: Fee in stroops
        network_passphrase: Network the transaction is valid on
        max_time: Unix timestamp after which the ledger rejects it
        operation: Contract call to perform
    """

    source: str
    sequence: int
    fee: int
    network_passphrase: str
    max_time: int
    operation: ContractCall

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "sequence": str(self.sequence),
            "fee": self.fee,
            "network": self.network_passphrase,
            "timeBounds": {"minTime": 0, "maxTime": self.max_time},
            "operation": self.operation.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UnsignedTransaction":
        return cls(
            source=data["source"],
            sequence=int(data["sequence"]),
            fee=int(data["fee"]),
            network_passphrase=data["network"],
            max_time=int(data["timeBounds"]["maxTime"]),
            operation=ContractCall.from_dict(data["operation"]),
        )

    def hash(self) -> bytes:
        """Network-bound transaction hash that signers sign."""
        network_id = hashlib.sha256(self.network_passphrase.encode("utf-8")).digest()
        return hashlib.sha256(network_id + _canonical(self.to_dict())).digest()

    def hash_hex(self) -> str:
        return self.hash().hex()

    def to_envelope(self) -> str:
        """Base64 envelope with no signatures, as handed to a delegated signer."""
        return _encode_envelope(self, ())


@dataclass(frozen=True)
class DecoratedSignature:
    """Signature over a transaction hash, tagged with the signing public key."""

    public_key: str  # hex-encoded Ed25519 public key
    signature: bytes

    def verify(self, tx_hash: bytes) -> bool:
        try:
            Ed25519PublicKey.from_public_bytes(bytes.fromhex(self.public_key)).verify(self.signature, tx_hash)
        except (InvalidSignature, ValueError):
            return False
        return True


@dataclass(frozen=True)
class SignedTransaction:
    """A transaction together with its signatures."""

    transaction: UnsignedTransaction
    signatures: tuple[DecoratedSignature, ...] = field(default_factory=tuple)

    def hash_hex(self) -> str:
        return self.transaction.hash_hex()

    def is_signed_by(self, public_key: str) -> bool:
        tx_hash = self.transaction.hash()
        return any(
            sig.public_key == public_key and sig.verify(tx_hash) for sig in self.signatures
        )

    def to_envelope(self) -> str:
        return _encode_envelope(self.transaction, self.signatures)

    @classmethod
    def from_envelope(cls, envelope: str) -> "SignedTransaction":
        """Parse a base64 envelope.

        Raises:
            ValueError: If the envelope is malformed
        """
        try:
            document = json.loads(base64.b64decode(envelope, validate=True))
            transaction = UnsignedTransaction.from_dict(document["tx"])
            signatures = tuple(
                DecoratedSignature(
                    public_key=item["publicKey"],
                    signature=base64.b64decode(item["signature"], validate=True),
                )
                for item in document.get("signatures", [])
            )
        except (binascii.Error, json.JSONDecodeError, UnicodeDecodeError, KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid transaction envelope: {type(e).__name__}") from e
        return cls(transaction=transaction, signatures=signatures)


def _encode_envelope(
    transaction: UnsignedTransaction, signatures: tuple[DecoratedSignature, ...]
) -> str:
    document = {
        "tx": transaction.to_dict(),
        "signatures": [
            {
                "publicKey": sig.public_key,
                "signature": base64.b64encode(sig.signature).decode("ascii"),
            }
            for sig in signatures
        ],
    }
    return base64.b64encode(_canonical(document)).decode("ascii")
