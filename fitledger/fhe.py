"""
Homomorphic crypto context and value packing.

The scheme is BFVRNS with proxy re-encryption enabled. A 32-bit value is
carried as two 16-bit limbs in one packed plaintext so that it fits the
65537 plaintext modulus.
"""

from __future__ import annotations

import hashlib
import logging
import tempfile
from pathlib import Path

from openfhe import (
    BINARY,
    CCParamsBFVRNS,
    GenCryptoContext,
    HEStd_128_classic,
    PKESchemeFeature,
    SerializeToFile,
)

from fitledger.types import check_uint32

logger = logging.getLogger(__name__)

PLAINTEXT_MODULUS = 65537
LIMB_BITS = 16
LIMB_MASK = (1 << LIMB_BITS) - 1
LIMBS_PER_VALUE = 2


def setup_crypto_context(plaintext_modulus=PLAINTEXT_MODULUS, multiplicative_depth=1):
    logger.info("[CRYPTO] Setting up crypto context (BFVRNS PRE)...")
    parameters = CCParamsBFVRNS()
    parameters.SetPlaintextModulus(plaintext_modulus)
    parameters.SetMultiplicativeDepth(multiplicative_depth)
    parameters.SetSecurityLevel(HEStd_128_classic)

    cc = GenCryptoContext(parameters)
    cc.Enable(PKESchemeFeature.PKE)
    cc.Enable(PKESchemeFeature.KEYSWITCH)
    cc.Enable(PKESchemeFeature.LEVELEDSHE)
    cc.Enable(PKESchemeFeature.PRE)

    logger.info("[CRYPTO] BFVRNS crypto context ready")
    return cc


def pack_uint32(value: int) -> list[int]:
    """Split ``value`` into little-endian 16-bit limbs."""
    check_uint32("value", value)
    return [value & LIMB_MASK, (value >> LIMB_BITS) & LIMB_MASK]


def unpack_uint32(slots, plaintext_modulus=PLAINTEXT_MODULUS) -> int:
    """
    Reassemble a value from decrypted slots.

    Packed decoding returns centred residues, so each slot is reduced
    modulo the plaintext modulus before the limbs are joined.
    """
    if len(slots) < LIMBS_PER_VALUE:
        raise ValueError(f"Expected {LIMBS_PER_VALUE} slots, got {len(slots)}")
    low, high = (int(s) % plaintext_modulus for s in slots[:LIMBS_PER_VALUE])
    if low > LIMB_MASK or high > LIMB_MASK:
        raise ValueError("Decrypted limb exceeds 16 bits")
    return (high << LIMB_BITS) | low


def encrypt_uint32(cc, public_key, value: int):
    pt = cc.MakePackedPlaintext(pack_uint32(value))
    return cc.Encrypt(public_key, pt)


def decrypt_uint32(cc, secret_key, ciphertext, plaintext_modulus=PLAINTEXT_MODULUS) -> int:
    decrypted = cc.Decrypt(secret_key, ciphertext)
    decrypted.SetLength(LIMBS_PER_VALUE)
    return unpack_uint32(decrypted.GetPackedValue(), plaintext_modulus)


def serialize_object(obj) -> bytes:
    """Binary-serialize an OpenFHE object (key or ciphertext)."""
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "object.bin"
        if not SerializeToFile(str(path), obj, BINARY):
            raise RuntimeError("OpenFHE serialization failed")
        return path.read_bytes()


def key_fingerprint(public_key) -> str:
    """SHA-256 fingerprint of a serialized public key, as hex."""
    return hashlib.sha256(serialize_object(public_key)).hexdigest()
