"""
Encryption provider backing store and decryption service.

The coprocessor owns the network key pair. It keeps every ciphertext
under a 32-byte handle, issues input proofs for freshly encrypted
values, commits them once a ledger contract verifies the proof, tracks
which addresses may use each handle, and serves user decryption by
re-encrypting ciphertexts to a caller's ephemeral public key.

Plaintext never leaves this module: ``user_decrypt`` returns
ciphertexts only the holder of the ephemeral secret key can open.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from fitledger.config import CONFIG
from fitledger.errors import Unauthorized
from fitledger.fhe import key_fingerprint, setup_crypto_context
from fitledger.typed_data import build_user_decrypt_message, encode_typed_data
from fitledger.types import (
    HANDLE_SIZE,
    AuthorizationGrant,
    CiphertextHandle,
    HandleContractPair,
    Signature,
    normalize_address,
)
from fitledger.wallet import verify_signature

logger = logging.getLogger(__name__)

TYPE_UINT32 = 4
PROOF_MAC_SIZE = 32


class InvalidInputProof(ValueError):
    """An input proof failed verification."""


@dataclass(frozen=True)
class DecryptionRequest:
    """What the client sends to the decryption service. No private key."""
    pairs: tuple[HandleContractPair, ...]
    public_key: Any
    signature: Signature
    grant: AuthorizationGrant


@dataclass
class _PendingInput:
    ciphertext: Any
    contract_address: str
    owner: str
    created_at: float


def _binding(contract_address: str, owner: str, handles: Sequence[bytes]) -> bytes:
    return contract_address.encode() + owner.encode() + b"".join(handles)


class Coprocessor:
    """
    In-process encryption provider service.

    Parameters
    ----------
    cc : CryptoContext, optional
        Shared crypto context. A new BFVRNS PRE context is built if omitted.
    chain_id : int
        Chain identity used in the authorization domain.
    clock : callable
        Wall-clock source in seconds; injected in tests.
    pending_ttl : float
        Seconds an encrypted input may wait for ledger verification before
        its ciphertexts are dropped.
    """

    def __init__(self, cc=None, chain_id: int = CONFIG["chain_id"], address: str | None = None,
                 clock: Callable[[], float] = time.time,
                 pending_ttl: float = CONFIG["pending_ttl_seconds"]):
        self.cc = cc if cc is not None else setup_crypto_context()
        self._keys = self.cc.KeyGen()
        self.public_key = self._keys.publicKey
        self.chain_id = chain_id
        self.address = normalize_address(address) if address else "0x" + os.urandom(20).hex()
        self._clock = clock
        self.pending_ttl = pending_ttl
        self._proof_key = os.urandom(32)

        self._pending: dict[bytes, _PendingInput] = {}
        self._committed: dict[bytes, Any] = {}
        self._acl: dict[bytes, set[str]] = {}
        self._spent_proofs: set[bytes] = set()

        # set False to simulate the service being unreachable
        self.online = True

    # ------------------------------------------------------------------ #
    # Inputs
    # ------------------------------------------------------------------ #

    def register_inputs(self, contract_address: str, owner: str,
                        ciphertexts: Sequence[Any]) -> tuple[list[CiphertextHandle], bytes]:
        """Store freshly encrypted values as pending and issue their proof."""
        if not ciphertexts or len(ciphertexts) > 255:
            raise ValueError("An input holds between 1 and 255 values")

        now = self._clock()
        self._evict_pending(now)

        nonce = os.urandom(16)
        raw_handles = []
        for position, ct in enumerate(ciphertexts):
            digest = hashlib.sha256(
                nonce + contract_address.encode() + owner.encode() + bytes([position])
            ).digest()
            raw = digest[:HANDLE_SIZE - 2] + bytes([position, TYPE_UINT32])
            self._pending[raw] = _PendingInput(ct, contract_address, owner, now)
            raw_handles.append(raw)

        mac = hmac.new(self._proof_key, _binding(contract_address, owner, raw_handles),
                       hashlib.sha256).digest()
        proof = bytes([len(raw_handles)]) + b"".join(raw_handles) + mac
        return [CiphertextHandle(h) for h in raw_handles], proof

    def verify_input(self, contract_address: str, sender: str,
                     handles: Sequence[CiphertextHandle], proof: bytes) -> None:
        """
        Verify an input proof on behalf of ``contract_address``.

        On success the handles are committed and both the contract and
        the sender are allowed to use them. A proof verifies at most once.
        """
        if not proof:
            raise InvalidInputProof("empty proof")
        count = proof[0]
        if len(proof) != 1 + count * HANDLE_SIZE + PROOF_MAC_SIZE:
            raise InvalidInputProof("malformed proof")

        proof_handles = [proof[1 + i * HANDLE_SIZE:1 + (i + 1) * HANDLE_SIZE] for i in range(count)]
        if proof_handles != [h.data for h in handles]:
            raise InvalidInputProof("handles do not match proof")

        mac = proof[-PROOF_MAC_SIZE:]
        expected = hmac.new(self._proof_key, _binding(contract_address, sender, proof_handles),
                            hashlib.sha256).digest()
        if not hmac.compare_digest(mac, expected):
            raise InvalidInputProof("proof not issued for this contract and sender")
        if mac in self._spent_proofs:
            raise InvalidInputProof("proof already used")

        self._evict_pending(self._clock())
        entries = [self._pending.get(h) for h in proof_handles]
        if any(e is None for e in entries):
            raise InvalidInputProof("unknown or expired input handle")

        self._spent_proofs.add(mac)
        for raw, entry in zip(proof_handles, entries):
            del self._pending[raw]
            self._committed[raw] = entry.ciphertext
            self._acl[raw] = {contract_address, sender}
        logger.debug("[CRYPTO] Committed %d handles for %s", count, sender)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _evict_pending(self, now: float) -> None:
        expired = [raw for raw, entry in self._pending.items() if now - entry.created_at >= self.pending_ttl]
        for raw in expired:
            del self._pending[raw]
        if expired:
            logger.debug("[CRYPTO] Dropped %d unverified inputs older than %ss", len(expired), self.pending_ttl)

    # ------------------------------------------------------------------ #
    # Access control
    # ------------------------------------------------------------------ #

    def allow(self, handle: CiphertextHandle, address: str) -> None:
        if handle.data not in self._committed:
            raise KeyError(handle.hex())
        self._acl[handle.data].add(normalize_address(address))

    def is_allowed(self, handle: CiphertextHandle, address: str) -> bool:
        return address in self._acl.get(handle.data, ())

    def is_committed(self, handle: CiphertextHandle) -> bool:
        return handle.data in self._committed

    # ------------------------------------------------------------------ #
    # User decryption
    # ------------------------------------------------------------------ #

    async def user_decrypt(self, request: DecryptionRequest) -> dict[CiphertextHandle, Any]:
        """Re-encrypt the requested handles to the caller's ephemeral key."""
        if not self.online:
            raise ConnectionError("decryption service unreachable")

        grant = request.grant
        grant.ensure_active(self._clock())

        typed_data = build_user_decrypt_message(grant, self.chain_id, self.address)
        if not verify_signature(request.signature, encode_typed_data(typed_data)):
            raise Unauthorized("Signature does not match the authorization grant")
        if key_fingerprint(request.public_key) != grant.public_key:
            raise Unauthorized("Public key does not match the authorization grant")

        user = request.signature.signer_address
        selected = []
        for pair in request.pairs:
            if not grant.covers(pair.contract_address):
                raise Unauthorized(f"Contract {pair.contract_address} is not in the grant")
            ct = self._committed.get(pair.handle.data)
            if ct is None:
                raise Unauthorized(f"Unknown handle {pair.handle.hex()}")
            if not (self.is_allowed(pair.handle, user) and self.is_allowed(pair.handle, pair.contract_address)):
                raise Unauthorized(f"{user} may not decrypt {pair.handle.hex()}")
            selected.append((pair.handle, ct))

        result = await asyncio.to_thread(self._reencrypt, selected, request.public_key)
        logger.info("[DECRYPT] Re-encrypted %d handles for %s", len(result), user)
        return result

    def _reencrypt(self, selected, public_key):
        rk = self.cc.ReKeyGen(self._keys.secretKey, public_key)
        return {handle: self.cc.ReEncrypt(ct, rk) for handle, ct in selected}
