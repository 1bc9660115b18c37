"""
Fitness tracker facade.

``TrackerContext`` carries the provider, wallet and ledger explicitly;
``FitnessTracker`` composes the protocol components over it for the
three user actions: add a record, list records, decrypt records.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from fitledger.authorizer import Authorization, DecryptionAuthorizer
from fitledger.config import CONFIG
from fitledger.coprocessor import Coprocessor
from fitledger.decryptor import BatchDecryptor, join_record
from fitledger.errors import FitLedgerError, SubmissionPending
from fitledger.fetcher import RecordFetcher
from fitledger.gateway import EncryptionGateway
from fitledger.ledger import InMemoryLedger
from fitledger.provider import EncryptionProvider
from fitledger.submitter import RecordSubmitter
from fitledger.types import DecryptedRecord, PlaintextRecord, RecordAdded, StoredRecord, normalize_address
from fitledger.wallet import KeyWallet

logger = logging.getLogger(__name__)


@dataclass
class TrackerContext:
    provider: EncryptionProvider
    wallet: object
    ledger: object
    contract_address: str
    clock: Callable[[], float] = field(default=time.time)
    submit_timeout: Optional[float] = CONFIG["submit_timeout_seconds"]
    duration_seconds: int = CONFIG["duration_seconds"]

    def __post_init__(self):
        self.contract_address = normalize_address(self.contract_address)

    @classmethod
    def local(cls, contract_address: Optional[str] = None, coprocessor: Optional[Coprocessor] = None,
              clock: Callable[[], float] = time.time, latency: float = 0.0, **kwargs) -> TrackerContext:
        """Wire a context against an in-process coprocessor and ledger."""
        contract_address = contract_address or "0x" + os.urandom(20).hex()
        coprocessor = coprocessor or Coprocessor(clock=clock)
        ledger = InMemoryLedger(contract_address, coprocessor, clock=clock, latency=latency)
        wallet = KeyWallet.generate(ledger=ledger)
        return cls(EncryptionProvider(coprocessor), wallet, ledger, contract_address, clock=clock, **kwargs)

    @classmethod
    def fabric(cls, config: dict, coprocessor: Coprocessor) -> TrackerContext:
        """Wire a context against a Fabric chaincode using an MSP identity on disk."""
        from fitledger.fabric import FabricLedger

        wallet = KeyWallet.from_pem_files(config["fabric_key"], config["fabric_cert"] or None)
        ledger = FabricLedger.from_config(config)
        wallet.ledger = ledger
        return cls(
            EncryptionProvider(coprocessor), wallet, ledger, config["contract_address"],
            submit_timeout=config["submit_timeout_seconds"],
            duration_seconds=config["duration_seconds"],
        )


class FitnessTracker:
    def __init__(self, context: TrackerContext):
        self.context = context
        self.gateway = EncryptionGateway(context.provider)
        self.submitter = RecordSubmitter(context.wallet, timeout=context.submit_timeout)
        self.fetcher = RecordFetcher(context.ledger)
        self.authorizer = DecryptionAuthorizer(
            context.provider, context.wallet,
            clock=context.clock, duration_seconds=context.duration_seconds,
        )
        self.decryptor = BatchDecryptor(context.provider, clock=context.clock)

    async def owner(self) -> str:
        return await self.context.wallet.get_address()

    async def add_record(self, record: PlaintextRecord) -> RecordAdded:
        """
        Encrypt and store ``record``.

        If confirmation times out, the owner's record count decides the
        outcome: a grown count means the record landed.
        """
        owner = await self.owner()
        before = await self.fetcher.fetch_count(owner)
        submission = self.gateway.encrypt(self.context.contract_address, owner, record)
        try:
            receipt = await self.submitter.submit(submission)
        except SubmissionPending:
            after = await self.fetcher.fetch_count(owner)
            if after > before:
                stored = await self.fetcher.fetch_record(owner, after - 1)
                logger.info("[LEDGER] Pending submission landed as record %d", stored.index)
                return RecordAdded(owner, stored.index, stored.timestamp)
            raise
        return receipt.events[0]

    async def get_record_count(self) -> int:
        """Best-effort count; 0 when the ledger cannot be read."""
        try:
            return await self.fetcher.fetch_count(await self.owner())
        except (FitLedgerError, ConnectionError, OSError) as e:
            logger.warning("[LEDGER] Error getting record count: %s", e)
            return 0

    async def get_encrypted_records(self) -> list[StoredRecord]:
        """Best-effort listing; empty when the ledger cannot be read."""
        try:
            return await self.fetch_records()
        except (FitLedgerError, ConnectionError, OSError) as e:
            logger.warning("[LEDGER] Error getting encrypted records: %s", e)
            return []

    async def fetch_records(self) -> list[StoredRecord]:
        return await self.fetcher.fetch_all(await self.owner())

    async def authorize(self, duration_seconds: Optional[int] = None) -> Authorization:
        return await self.authorizer.authorize([self.context.contract_address], duration_seconds)

    async def decrypt_records(self, records: Sequence[StoredRecord],
                              authorization: Optional[Authorization] = None) -> list[DecryptedRecord]:
        """Decrypt ``records`` with one grant and one batched request."""
        if not records:
            return []
        if authorization is None:
            authorization = await self.authorize()

        pairs = [p for r in records for p in r.handle_pairs(self.context.contract_address)]
        plaintexts = await self.decryptor.decrypt(
            pairs, authorization.keypair, authorization.signature, authorization.grant,
        )
        return [join_record(r, plaintexts) for r in records]

    async def decrypt_record(self, record: StoredRecord,
                             authorization: Optional[Authorization] = None) -> DecryptedRecord:
        return (await self.decrypt_records([record], authorization))[0]
