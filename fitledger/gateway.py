"""
Encryption gateway.

Turns the four plaintext fields of a record into ciphertext handles and
one input proof, scoped to a (contract, owner) pair.
"""

from __future__ import annotations

import logging
from typing import Sequence, Union

from fitledger.errors import ProviderUnavailable, ValidationError
from fitledger.types import (
    RECORD_FIELDS,
    EncryptedSubmission,
    PlaintextRecord,
    check_uint32,
    normalize_address,
)

logger = logging.getLogger(__name__)


class EncryptionGateway:
    def __init__(self, provider):
        self.provider = provider

    def encrypt(self, contract_address: str, owner: str,
                values: Union[PlaintextRecord, Sequence[int]]) -> EncryptedSubmission:
        """
        Encrypt one record's values in a single provider call.

        Raises ``ValidationError`` before touching the provider when the
        input is not four unsigned 32-bit integers, and
        ``ProviderUnavailable`` when no provider is initialized.
        """
        if isinstance(values, PlaintextRecord):
            values = values.values()
        values = tuple(values)
        if len(values) != len(RECORD_FIELDS):
            raise ValidationError(f"Expected {len(RECORD_FIELDS)} values, got {len(values)}")
        for name, value in zip(RECORD_FIELDS, values):
            check_uint32(name, value)

        contract_address = normalize_address(contract_address)
        owner = normalize_address(owner)

        if self.provider is None or not self.provider.ready:
            raise ProviderUnavailable("Encryption provider is not initialized")

        buffer = self.provider.create_encrypted_input(contract_address, owner)
        for value in values:
            buffer.add32(value)
        handles, proof = buffer.encrypt()

        logger.info("[CRYPTO] Encrypted %d values for %s (proof %d bytes)", len(handles), owner, len(proof))
        return EncryptedSubmission(contract_address, owner, tuple(handles), proof)
