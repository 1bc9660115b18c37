"""
Client-side encryption provider instance.

Wraps the crypto context and the coprocessor's network public key, the
way a browser SDK instance wraps its relayer: it builds encrypted input
buffers, generates ephemeral key pairs, creates authorization messages
and opens values re-encrypted to an ephemeral key.
"""

from __future__ import annotations

import logging
from typing import Optional

from fitledger.errors import ProviderUnavailable, ValidationError
from fitledger.fhe import PLAINTEXT_MODULUS, decrypt_uint32, encrypt_uint32, key_fingerprint
from fitledger.typed_data import build_user_decrypt_message
from fitledger.types import AuthorizationGrant, CiphertextHandle, EphemeralKeypair, check_uint32

logger = logging.getLogger(__name__)


class EncryptedInput:
    """
    Single-use buffer of values scoped to one (contract, owner) pair.

    Values are range-checked as they are added; ``encrypt`` runs once.
    """

    def __init__(self, provider: EncryptionProvider, contract_address: str, owner: str):
        self._provider = provider
        self.contract_address = contract_address
        self.owner = owner
        self._values: list[int] = []
        self._consumed = False

    def add32(self, value: int) -> EncryptedInput:
        if self._consumed:
            raise ValidationError("Encrypted input already consumed")
        self._values.append(check_uint32("value", value))
        return self

    def encrypt(self) -> tuple[list[CiphertextHandle], bytes]:
        if self._consumed:
            raise ValidationError("Encrypted input already consumed")
        if not self._values:
            raise ValidationError("Encrypted input is empty")
        self._consumed = True

        coprocessor = self._provider.require_coprocessor()
        cts = [encrypt_uint32(coprocessor.cc, coprocessor.public_key, v) for v in self._values]
        self._values = []
        return coprocessor.register_inputs(self.contract_address, self.owner, cts)


class EncryptionProvider:
    def __init__(self, coprocessor=None, plaintext_modulus=PLAINTEXT_MODULUS):
        self._coprocessor = coprocessor
        self.plaintext_modulus = plaintext_modulus

    @property
    def ready(self) -> bool:
        return self._coprocessor is not None

    def require_coprocessor(self):
        if self._coprocessor is None:
            raise ProviderUnavailable("Encryption provider is not initialized")
        return self._coprocessor

    def close(self) -> None:
        self._coprocessor = None

    def create_encrypted_input(self, contract_address: str, owner: str) -> EncryptedInput:
        self.require_coprocessor()
        return EncryptedInput(self, contract_address, owner)

    def generate_keypair(self) -> EphemeralKeypair:
        cc = self.require_coprocessor().cc
        keys = cc.KeyGen()
        return EphemeralKeypair(
            public_key=keys.publicKey,
            secret_key=keys.secretKey,
            fingerprint=key_fingerprint(keys.publicKey),
        )

    def create_authorization_message(self, grant: AuthorizationGrant) -> dict:
        coprocessor = self.require_coprocessor()
        return build_user_decrypt_message(grant, coprocessor.chain_id, coprocessor.address)

    def open(self, keypair: EphemeralKeypair, ciphertext) -> int:
        """Decrypt a value that was re-encrypted to ``keypair``."""
        cc = self.require_coprocessor().cc
        return decrypt_uint32(cc, keypair.secret_key, ciphertext, self.plaintext_modulus)

    @property
    def decryption_service(self) -> Optional[object]:
        return self._coprocessor
