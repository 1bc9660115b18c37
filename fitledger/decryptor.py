"""
Batch decryptor.

Sends many (handle, contract) pairs under one authorization to the
decryption service in a single round trip, then opens the re-encrypted
values locally with the ephemeral secret key. The secret key itself is
never sent.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Iterable

from fitledger.coprocessor import DecryptionRequest
from fitledger.errors import DecryptionUnavailable, ProviderUnavailable, Unauthorized
from fitledger.types import (
    AuthorizationGrant,
    CiphertextHandle,
    DecryptedRecord,
    EphemeralKeypair,
    HandleContractPair,
    Signature,
    StoredRecord,
    normalize_address,
)

logger = logging.getLogger(__name__)


class BatchDecryptor:
    def __init__(self, provider, service=None, clock: Callable[[], float] = time.time):
        self.provider = provider
        self.service = service if service is not None else getattr(provider, "decryption_service", None)
        self._clock = clock

    async def decrypt(self, handle_pairs: Iterable[HandleContractPair], keypair: EphemeralKeypair,
                      signature: Signature, grant: AuthorizationGrant) -> dict[CiphertextHandle, int]:
        """
        Decrypt every handle in ``handle_pairs`` under one grant.

        The result maps each handle to its plaintext. A handle the service
        did not return is absent from the mapping; callers treat that as
        a failed field.
        """
        pairs = []
        seen = set()
        for pair in handle_pairs:
            pair = HandleContractPair(pair.handle, normalize_address(pair.contract_address))
            if pair not in seen:
                seen.add(pair)
                pairs.append(pair)
        if not pairs:
            return {}

        grant.ensure_active(self._clock())
        for pair in pairs:
            if not grant.covers(pair.contract_address):
                raise Unauthorized(f"Contract {pair.contract_address} is not in the grant")
        if keypair.fingerprint != grant.public_key:
            raise Unauthorized("Key pair does not belong to this grant")
        if self.service is None:
            raise ProviderUnavailable("No decryption service configured")

        request = DecryptionRequest(tuple(pairs), keypair.public_key, signature, grant)
        try:
            sealed = await self.service.user_decrypt(request)
        except (ConnectionError, OSError, asyncio.TimeoutError) as e:
            raise DecryptionUnavailable(f"Decryption service unavailable: {e}") from e

        requested = {p.handle for p in pairs}
        # OpenFHE decryption is CPU bound; keep it off the event loop
        result = await asyncio.to_thread(self._open_all, keypair, sealed, requested)
        if len(result) < len(requested):
            logger.warning("[DECRYPT] Service returned %d of %d handles", len(result), len(requested))
        return result

    def _open_all(self, keypair, sealed, requested):
        return {
            handle: self.provider.open(keypair, ct)
            for handle, ct in sealed.items()
            if handle in requested
        }


def join_record(record: StoredRecord, plaintexts: dict[CiphertextHandle, int]) -> DecryptedRecord:
    """Reconstitute a record's values from a handle-to-plaintext mapping."""
    return DecryptedRecord(
        index=record.index,
        timestamp=record.timestamp,
        height=plaintexts.get(record.height),
        weight_grams=plaintexts.get(record.weight),
        systolic=plaintexts.get(record.systolic),
        diastolic=plaintexts.get(record.diastolic),
    )
