"""
Wallet capability used by the protocol.

A wallet exposes three things: its address, typed-data signing and
transaction broadcast. ``KeyWallet`` implements them with an ECDSA P-256
key, the key type issued to Fabric MSP identities, and can be loaded
from the same ``priv_sk`` / signcert PEM files.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from typing import Callable, Optional, Protocol

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from fitledger.errors import SignerUnavailable, UserRejected
from fitledger.typed_data import describe, encode_typed_data
from fitledger.types import (
    Signature,
    SignedTransaction,
    Transaction,
    TransactionReceipt,
    address_from_public_key,
)

logger = logging.getLogger(__name__)


class Wallet(Protocol):
    async def get_address(self) -> str: ...

    async def sign_typed_data(self, typed_data: dict) -> Signature: ...

    async def send_transaction(self, transaction: Transaction) -> TransactionReceipt: ...


def encode_transaction(transaction: Transaction) -> bytes:
    body = {"to": transaction.to, "function": transaction.function, "args": list(transaction.args)}
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode()


def transaction_hash(signed: SignedTransaction) -> str:
    h = hashlib.sha256(encode_transaction(signed.transaction))
    h.update(signed.signature.value)
    return "0x" + h.hexdigest()


def verify_signature(signature: Signature, payload: bytes) -> bool:
    """Check ``signature`` over ``payload`` against its embedded signer key."""
    try:
        public_key = serialization.load_der_public_key(signature.signer_key)
    except ValueError:
        return False
    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        return False
    try:
        public_key.verify(signature.value, payload, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        return False
    return True


class KeyWallet:
    """
    Software wallet holding one ECDSA P-256 private key.

    ``approver`` receives the human-readable description of every
    typed-data request and returns ``False`` to decline it. Transactions
    are broadcast through ``ledger``, which must provide
    ``submit_transaction(signed)``.
    """

    def __init__(self, private_key: ec.EllipticCurvePrivateKey, ledger=None,
                 approver: Optional[Callable[[str], bool]] = None):
        self._key = private_key
        self.ledger = ledger
        self.approver = approver
        self._public_der = private_key.public_key().public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        self.address = address_from_public_key(self._public_der)

    @classmethod
    def generate(cls, ledger=None, approver=None) -> KeyWallet:
        return cls(ec.generate_private_key(ec.SECP256R1()), ledger=ledger, approver=approver)

    @classmethod
    def from_pem_files(cls, key_path, cert_path=None, ledger=None, approver=None) -> KeyWallet:
        """Load an MSP identity: private key PEM and, optionally, its certificate."""
        if not os.path.exists(key_path):
            raise FileNotFoundError(f"Private key file not found: {key_path}")
        with open(key_path, "rb") as f:
            private_key = serialization.load_pem_private_key(f.read(), password=None)
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise ValueError("Wallet key must be an EC private key")

        if cert_path is not None:
            if not os.path.exists(cert_path):
                raise FileNotFoundError(f"Certificate file not found: {cert_path}")
            with open(cert_path, "rb") as f:
                cert = x509.load_pem_x509_certificate(f.read())
            cert_der = cert.public_key().public_bytes(
                serialization.Encoding.DER,
                serialization.PublicFormat.SubjectPublicKeyInfo,
            )
            key_der = private_key.public_key().public_bytes(
                serialization.Encoding.DER,
                serialization.PublicFormat.SubjectPublicKeyInfo,
            )
            if cert_der != key_der:
                raise ValueError(f"Certificate {cert_path} does not match key {key_path}")

        logger.info("[WALLET] Loaded identity from %s", key_path)
        return cls(private_key, ledger=ledger, approver=approver)

    @property
    def connected(self) -> bool:
        return self._key is not None

    def disconnect(self) -> None:
        self._key = None

    def _require_key(self) -> ec.EllipticCurvePrivateKey:
        if self._key is None:
            raise SignerUnavailable("Wallet is disconnected")
        return self._key

    def _sign(self, payload: bytes) -> Signature:
        value = self._require_key().sign(payload, ec.ECDSA(hashes.SHA256()))
        return Signature(value=value, signer_key=self._public_der)

    async def get_address(self) -> str:
        self._require_key()
        return self.address

    async def sign_typed_data(self, typed_data: dict) -> Signature:
        self._require_key()
        if self.approver is not None and not self.approver(describe(typed_data)):
            raise UserRejected("User rejected the signature request")
        return self._sign(encode_typed_data(typed_data))

    async def send_transaction(self, transaction: Transaction) -> TransactionReceipt:
        if self.ledger is None:
            raise SignerUnavailable("Wallet has no ledger connection")
        signed = SignedTransaction(transaction, self._sign(encode_transaction(transaction)))
        logger.debug("[WALLET] Broadcasting %s to %s", transaction.function, transaction.to)
        return await self.ledger.submit_transaction(signed)
