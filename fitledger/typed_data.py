"""
Structured authorization messages.

The message is shown to the owner field by field before signing, then
encoded as canonical JSON. Signer and verifier must build it from the
same grant and domain to agree on the bytes.
"""

from __future__ import annotations

import hashlib
import json

from fitledger.types import AuthorizationGrant

DOMAIN_NAME = "Decryption"
DOMAIN_VERSION = "1"
PRIMARY_TYPE = "UserDecryptRequestVerification"

TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    PRIMARY_TYPE: [
        {"name": "publicKey", "type": "bytes"},
        {"name": "contractAddresses", "type": "address[]"},
        {"name": "startTimestamp", "type": "uint256"},
        {"name": "durationSeconds", "type": "uint256"},
        {"name": "extraData", "type": "bytes"},
    ],
}


def build_user_decrypt_message(grant: AuthorizationGrant, chain_id: int, verifying_contract: str) -> dict:
    return {
        "domain": {
            "name": DOMAIN_NAME,
            "version": DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": verifying_contract,
        },
        "types": TYPES,
        "primaryType": PRIMARY_TYPE,
        "message": {
            "publicKey": grant.public_key,
            "contractAddresses": list(grant.contract_addresses),
            "startTimestamp": grant.start_timestamp,
            "durationSeconds": grant.duration_seconds,
            "extraData": "0x00",
        },
    }


def encode_typed_data(typed_data: dict) -> bytes:
    return json.dumps(typed_data, sort_keys=True, separators=(",", ":")).encode()


def typed_data_digest(typed_data: dict) -> bytes:
    return hashlib.sha256(encode_typed_data(typed_data)).digest()


def describe(typed_data: dict) -> str:
    """Human-readable summary shown to the owner before approval."""
    msg = typed_data["message"]
    lines = [
        f"{typed_data['primaryType']} ({typed_data['domain']['name']} v{typed_data['domain']['version']})",
        f"  public key:  {msg['publicKey'][:16]}...",
        f"  contracts:   {', '.join(msg['contractAddresses'])}",
        f"  valid from:  {msg['startTimestamp']}",
        f"  duration:    {msg['durationSeconds']} s",
    ]
    return "\n".join(lines)
