"""
Ledger contract interface and in-process contract simulation.

The contract stores four ciphertext handles and an inclusion timestamp
per record, keyed by (owner, index). Records are append-only per owner.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from typing import Callable, Protocol

from fitledger.coprocessor import Coprocessor, InvalidInputProof
from fitledger.errors import LedgerReverted, ValidationError
from fitledger.types import (
    RECORD_FIELDS,
    CiphertextHandle,
    RecordAdded,
    SignedTransaction,
    StoredRecord,
    TransactionReceipt,
    normalize_address,
)
from fitledger.wallet import encode_transaction, transaction_hash, verify_signature

logger = logging.getLogger(__name__)

ADD_RECORD = "addRecord"


class Ledger(Protocol):
    async def submit_transaction(self, signed: SignedTransaction) -> TransactionReceipt: ...

    async def get_record_count(self, owner: str) -> int: ...

    async def get_record(self, owner: str, index: int) -> StoredRecord: ...


def decode_add_record_args(args) -> tuple[list[CiphertextHandle], bytes]:
    """Split ``addRecord`` arguments into four handles and the proof."""
    if len(args) != len(RECORD_FIELDS) + 1:
        raise LedgerReverted(f"addRecord expects {len(RECORD_FIELDS) + 1} arguments")
    try:
        handles = [CiphertextHandle.from_hex(a) for a in args[:len(RECORD_FIELDS)]]
        proof = bytes.fromhex(args[-1][2:] if args[-1].startswith("0x") else args[-1])
    except (ValidationError, ValueError, AttributeError) as e:
        raise LedgerReverted(f"malformed addRecord arguments: {e}") from e
    return handles, proof


class InMemoryLedger:
    """
    Simulated fitness ledger contract.

    Verifies transaction signatures and input proofs, assigns the
    inclusion timestamp and emits ``RecordAdded`` to subscribers.
    ``latency`` delays every transaction to model confirmation time.
    """

    def __init__(self, contract_address: str, coprocessor: Coprocessor,
                 clock: Callable[[], float] = time.time, latency: float = 0.0):
        self.contract_address = normalize_address(contract_address)
        self.coprocessor = coprocessor
        self.latency = latency
        self._clock = clock
        self._records: dict[str, list[StoredRecord]] = defaultdict(list)
        self._subscribers: list[Callable[[RecordAdded], None]] = []
        self.block_number = 0

    def subscribe(self, callback: Callable[[RecordAdded], None]) -> None:
        self._subscribers.append(callback)

    async def submit_transaction(self, signed: SignedTransaction) -> TransactionReceipt:
        if self.latency:
            await asyncio.sleep(self.latency)

        tx = signed.transaction
        if not verify_signature(signed.signature, encode_transaction(tx)):
            raise LedgerReverted("invalid transaction signature")
        if tx.to != self.contract_address:
            raise LedgerReverted(f"no contract at {tx.to}")
        if tx.function != ADD_RECORD:
            raise LedgerReverted(f"unknown function {tx.function}")

        event = self._add_record(signed.sender, tx.args)
        self.block_number += 1
        receipt = TransactionReceipt(
            tx_hash=transaction_hash(signed),
            block_number=self.block_number,
            events=(event,),
        )
        for callback in self._subscribers:
            callback(event)
        return receipt

    def _add_record(self, sender: str, args) -> RecordAdded:
        handles, proof = decode_add_record_args(args)
        try:
            self.coprocessor.verify_input(self.contract_address, sender, handles, proof)
        except InvalidInputProof as e:
            raise LedgerReverted(f"invalid input proof: {e}") from e

        records = self._records[sender]
        timestamp = max(1, int(self._clock()))
        record = StoredRecord(sender, len(records), *handles, timestamp=timestamp)
        records.append(record)
        logger.info("[LEDGER] Record %d added for %s", record.index, sender)
        return RecordAdded(sender, record.index, timestamp)

    async def get_record_count(self, owner: str) -> int:
        return len(self._records.get(normalize_address(owner), ()))

    async def get_record(self, owner: str, index: int) -> StoredRecord:
        records = self._records.get(normalize_address(owner), [])
        if not 0 <= index < len(records):
            raise LedgerReverted("index out of range")
        return records[index]
