"""
Record fetcher.

Read-only access to an owner's stored records. Records come back in
ledger insertion order and are never re-sorted here.
"""

from __future__ import annotations

import asyncio
import logging

from fitledger.errors import IndexOutOfRange, LedgerReverted, ValidationError
from fitledger.types import StoredRecord, normalize_address

logger = logging.getLogger(__name__)


class RecordFetcher:
    def __init__(self, ledger):
        self.ledger = ledger

    async def fetch_count(self, owner: str) -> int:
        return await self.ledger.get_record_count(normalize_address(owner))

    async def fetch_record(self, owner: str, index: int) -> StoredRecord:
        owner = normalize_address(owner)
        if isinstance(index, bool) or not isinstance(index, int):
            raise ValidationError(f"Index must be an integer, got {type(index).__name__}")

        count = await self.ledger.get_record_count(owner)
        if not 0 <= index < count:
            raise IndexOutOfRange(owner, index, count)
        try:
            return await self.ledger.get_record(owner, index)
        except LedgerReverted as e:
            # only a count that no longer covers the index makes this a range error
            count = await self.ledger.get_record_count(owner)
            if index >= count:
                raise IndexOutOfRange(owner, index, count) from e
            raise

    async def fetch_all(self, owner: str) -> list[StoredRecord]:
        """Every record for ``owner``, oldest first."""
        owner = normalize_address(owner)
        count = await self.ledger.get_record_count(owner)
        return list(await asyncio.gather(
            *(self.ledger.get_record(owner, i) for i in range(count))
        ))
