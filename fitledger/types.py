"""
Value types for the encrypted record protocol.

Handles and addresses are validated on construction. Nothing in this
module holds plaintext longer than the object that carries it.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Optional

from fitledger.errors import AuthorizationExpired, IncompleteDecryption, Unauthorized, ValidationError

HANDLE_SIZE = 32
ADDRESS_SIZE = 20
UINT32_MAX = 2**32 - 1

#: Field order shared by records, submissions and the ledger call surface.
RECORD_FIELDS = ("height", "weight", "systolic", "diastolic")


def normalize_address(address: str) -> str:
    """Return ``address`` as lower-case ``0x`` hex, raising on bad shape."""
    if not isinstance(address, str):
        raise ValidationError(f"Address must be a string, got {type(address).__name__}")
    body = address[2:] if address.lower().startswith("0x") else address
    try:
        raw = bytes.fromhex(body)
    except ValueError as e:
        raise ValidationError(f"Address is not hex: {address!r}") from e
    if len(raw) != ADDRESS_SIZE:
        raise ValidationError(f"Address must be {ADDRESS_SIZE} bytes, got {len(raw)}")
    return "0x" + raw.hex()


def address_from_public_key(public_key_der: bytes) -> str:
    """Derive an account address from a DER-encoded public key."""
    return "0x" + hashlib.sha256(public_key_der).digest()[-ADDRESS_SIZE:].hex()


def check_uint32(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {type(value).__name__}")
    if not 0 <= value <= UINT32_MAX:
        raise ValidationError(f"{name}={value} does not fit an unsigned 32-bit integer")
    return value


@dataclass(frozen=True)
class CiphertextHandle:
    """
    Opaque reference to one encrypted value in the provider's store.

    SIZE: 32 bytes
    LAYOUT: digest (30) || position (1) || type code (1)
    """
    data: bytes

    def __post_init__(self):
        if not isinstance(self.data, bytes) or len(self.data) != HANDLE_SIZE:
            raise ValidationError(f"Handle must be {HANDLE_SIZE} bytes")

    def __repr__(self) -> str:
        return f"CiphertextHandle({self.data.hex()[:16]}...)"

    def hex(self) -> str:
        return "0x" + self.data.hex()

    @property
    def position(self) -> int:
        return self.data[30]

    @property
    def type_code(self) -> int:
        return self.data[31]

    @classmethod
    def from_hex(cls, hex_string: str) -> CiphertextHandle:
        body = hex_string[2:] if hex_string.startswith("0x") else hex_string
        try:
            return cls(bytes.fromhex(body))
        except ValueError as e:
            raise ValidationError(f"Handle is not hex: {hex_string!r}") from e


@dataclass(frozen=True)
class HandleContractPair:
    handle: CiphertextHandle
    contract_address: str


@dataclass(frozen=True)
class PlaintextRecord:
    """
    One measurement in canonical units.

    height in centimetres, weight in grams, pressures in mmHg.
    """
    height: int
    weight_grams: int
    systolic: int
    diastolic: int

    def __post_init__(self):
        for name, value in zip(RECORD_FIELDS, self.values()):
            check_uint32(name, value)

    def values(self) -> tuple[int, int, int, int]:
        return (self.height, self.weight_grams, self.systolic, self.diastolic)

    @classmethod
    def from_form(cls, height_cm: int, weight_kg: int, systolic: int, diastolic: int) -> PlaintextRecord:
        """Build a record from form units, converting kilograms to grams."""
        check_uint32("weight", weight_kg)
        return cls(height_cm, weight_kg * 1000, systolic, diastolic)


@dataclass
class EncryptedSubmission:
    """
    Four handles and the proof that binds them to (contract, owner).

    Produced by one provider call. ``spent`` is set once the submission
    has been handed to the ledger; a spent submission is never resent.
    """
    contract_address: str
    owner: str
    handles: tuple[CiphertextHandle, CiphertextHandle, CiphertextHandle, CiphertextHandle]
    proof: bytes
    spent: bool = field(default=False, compare=False)

    def __post_init__(self):
        if len(self.handles) != len(RECORD_FIELDS):
            raise ValidationError(
                f"Submission needs {len(RECORD_FIELDS)} handles, got {len(self.handles)}"
            )
        if not self.proof:
            raise ValidationError("Submission has an empty input proof")


@dataclass(frozen=True)
class StoredRecord:
    """The ledger's view of one record."""
    owner: str
    index: int
    height: CiphertextHandle
    weight: CiphertextHandle
    systolic: CiphertextHandle
    diastolic: CiphertextHandle
    timestamp: int

    @property
    def handles(self) -> tuple[CiphertextHandle, CiphertextHandle, CiphertextHandle, CiphertextHandle]:
        return (self.height, self.weight, self.systolic, self.diastolic)

    def handle_pairs(self, contract_address: str) -> list[HandleContractPair]:
        return [HandleContractPair(h, contract_address) for h in self.handles]


@dataclass(frozen=True)
class EphemeralKeypair:
    """
    Single-session key pair that receives re-encrypted values.

    ``fingerprint`` identifies the public key inside the signed grant.
    """
    public_key: Any
    secret_key: Any = field(repr=False)
    fingerprint: str


@dataclass(frozen=True)
class AuthorizationGrant:
    """Scoped, time-bounded decryption permission."""
    public_key: str
    contract_addresses: tuple[str, ...]
    start_timestamp: int
    duration_seconds: int

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_seconds

    def covers(self, contract_address: str) -> bool:
        return contract_address in self.contract_addresses

    def is_active(self, now: float) -> bool:
        return self.start_timestamp <= now < self.expires_at

    def ensure_active(self, now: float) -> None:
        if now >= self.expires_at:
            raise AuthorizationExpired(
                f"Grant expired at {self.expires_at} (now {int(now)})"
            )
        if now < self.start_timestamp:
            raise Unauthorized(f"Grant is not valid before {self.start_timestamp}")


@dataclass(frozen=True)
class Signature:
    """An ECDSA signature together with the signer's DER public key."""
    value: bytes
    signer_key: bytes

    @property
    def signer_address(self) -> str:
        return address_from_public_key(self.signer_key)


@dataclass(frozen=True)
class Transaction:
    to: str
    function: str
    args: tuple


@dataclass(frozen=True)
class SignedTransaction:
    transaction: Transaction
    signature: Signature

    @property
    def sender(self) -> str:
        return self.signature.signer_address


@dataclass(frozen=True)
class RecordAdded:
    """Creation event emitted by the ledger contract."""
    owner: str
    index: int
    timestamp: int


@dataclass(frozen=True)
class TransactionReceipt:
    tx_hash: str
    block_number: int
    events: tuple[RecordAdded, ...] = ()


@dataclass(frozen=True)
class DecryptedRecord:
    """
    Plaintext joined back onto a stored record.

    A field whose handle was missing from the decryption result is
    ``None``; it is never reported as zero.
    """
    index: int
    timestamp: int
    height: Optional[int]
    weight_grams: Optional[int]
    systolic: Optional[int]
    diastolic: Optional[int]

    @property
    def missing(self) -> list[str]:
        names = ("height", "weight_grams", "systolic", "diastolic")
        return [n for n in names if getattr(self, n) is None]

    @property
    def complete(self) -> bool:
        return not self.missing

    def to_plaintext(self) -> PlaintextRecord:
        if not self.complete:
            raise IncompleteDecryption(self.missing)
        return PlaintextRecord(self.height, self.weight_grams, self.systolic, self.diastolic)
