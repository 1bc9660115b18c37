"""
Decryption authorizer.

Builds a fresh ephemeral key pair and a time-bounded grant for a set of
contracts, renders it as a structured message and has the owner's
wallet sign it. The result is an ``Authorization``: a value carrying the
scope, the expiry and the credential together, so every consumer checks
expiry the same way.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from fitledger.config import CONFIG
from fitledger.errors import AuthorizationDeclined, ProviderUnavailable, SignerUnavailable, UserRejected, ValidationError
from fitledger.types import AuthorizationGrant, EphemeralKeypair, Signature, normalize_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Authorization:
    keypair: EphemeralKeypair
    grant: AuthorizationGrant
    message: dict
    signature: Signature

    @property
    def user_address(self) -> str:
        return self.signature.signer_address

    def ensure_active(self, now: float) -> None:
        self.grant.ensure_active(now)


class DecryptionAuthorizer:
    def __init__(self, provider, wallet, clock: Callable[[], float] = time.time,
                 duration_seconds: int = CONFIG["duration_seconds"]):
        self.provider = provider
        self.wallet = wallet
        self.duration_seconds = duration_seconds
        self._clock = clock

    def build_authorization(self, contract_addresses: Iterable[str],
                            duration_seconds: Optional[int] = None
                            ) -> tuple[EphemeralKeypair, AuthorizationGrant, dict]:
        """
        Generate a new key pair and the unsigned grant message for it.

        Every call produces a new key pair; pairs are never shared
        between sessions.
        """
        contracts = []
        for address in contract_addresses:
            address = normalize_address(address)
            if address not in contracts:
                contracts.append(address)
        if not contracts:
            raise ValidationError("Authorization needs at least one contract address")

        duration = self.duration_seconds if duration_seconds is None else duration_seconds
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ValidationError(f"Duration must be a positive number of seconds, got {duration!r}")

        if self.provider is None or not self.provider.ready:
            raise ProviderUnavailable("Encryption provider is not initialized")

        keypair = self.provider.generate_keypair()
        grant = AuthorizationGrant(
            public_key=keypair.fingerprint,
            contract_addresses=tuple(contracts),
            start_timestamp=int(self._clock()),
            duration_seconds=duration,
        )
        message = self.provider.create_authorization_message(grant)
        logger.debug("[DECRYPT] Built grant for %d contracts, expires at %d", len(contracts), grant.expires_at)
        return keypair, grant, message

    async def sign(self, message: dict) -> Signature:
        """Ask the owner's wallet to approve and sign ``message``."""
        if self.wallet is None:
            raise SignerUnavailable("No wallet connected")
        try:
            return await self.wallet.sign_typed_data(message)
        except UserRejected as e:
            raise AuthorizationDeclined("Owner declined the decryption authorization") from e

    async def authorize(self, contract_addresses: Iterable[str],
                        duration_seconds: Optional[int] = None) -> Authorization:
        keypair, grant, message = self.build_authorization(contract_addresses, duration_seconds)
        signature = await self.sign(message)
        logger.info("[DECRYPT] Authorization signed by %s", signature.signer_address)
        return Authorization(keypair, grant, message, signature)
