"""
Error taxonomy for the encrypted record protocol.

Every error carries a ``retryable`` hint so callers can choose between
retrying and aborting without matching on concrete classes.
"""

from __future__ import annotations


class FitLedgerError(Exception):
    """Base class for all protocol errors."""

    retryable = False


class ValidationError(FitLedgerError):
    """Bad input shape or range, raised before any network call."""


class ProviderUnavailable(FitLedgerError):
    """The encryption provider is missing or not initialized."""


class SignerUnavailable(FitLedgerError):
    """No wallet is connected or the wallet was disconnected."""


class SubmissionFailed(FitLedgerError):
    """The ledger rejected a write. No state changed."""

    retryable = True

    def __init__(self, reason: str):
        super().__init__(f"Submission failed: {reason}")
        self.reason = reason


class SubmissionPending(SubmissionFailed):
    """
    The submission timed out with an unknown outcome.

    The record may still land on the ledger. Confirm the owner's record
    count before encrypting and submitting again.
    """

    retryable = False


class IndexOutOfRange(FitLedgerError):
    """Read past the owner's record count."""

    def __init__(self, owner: str, index: int, count: int):
        super().__init__(f"Record index {index} out of range for {owner} (count={count})")
        self.owner = owner
        self.index = index
        self.count = count


class AuthorizationDeclined(FitLedgerError):
    """The owner refused to sign the decryption authorization."""


class AuthorizationExpired(FitLedgerError):
    """The grant's validity window has ended. Build a new grant."""


class Unauthorized(FitLedgerError):
    """The grant, signature or ACL does not cover the requested handles."""


class DecryptionUnavailable(FitLedgerError):
    """Transient failure reaching the decryption service."""

    retryable = True


class IncompleteDecryption(FitLedgerError):
    """The decryption result is missing one or more requested handles."""

    def __init__(self, fields: list[str]):
        super().__init__(f"No plaintext returned for: {', '.join(fields)}")
        self.fields = fields


# --------------------------------------------------------------------------- #
# Transport-level errors, mapped by the components above
# --------------------------------------------------------------------------- #

class LedgerReverted(FitLedgerError):
    """A ledger transaction or call reverted."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class UserRejected(FitLedgerError):
    """The wallet user declined a signing request."""


class LedgerUnavailable(FitLedgerError):
    """The ledger could not be reached. Nothing is known about the call's outcome."""

    retryable = True

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
