"""
fitledger: confidential health measurements on a public ledger.

Values are encrypted client-side under a BFV homomorphic scheme, stored
on the ledger as ciphertext handles, and decrypted only for their owner
through a signed, time-bounded authorization.
"""

from fitledger.authorizer import Authorization, DecryptionAuthorizer
from fitledger.decryptor import BatchDecryptor, join_record
from fitledger.errors import (
    AuthorizationDeclined,
    AuthorizationExpired,
    DecryptionUnavailable,
    FitLedgerError,
    IncompleteDecryption,
    IndexOutOfRange,
    ProviderUnavailable,
    SignerUnavailable,
    SubmissionFailed,
    SubmissionPending,
    Unauthorized,
    ValidationError,
)
from fitledger.fetcher import RecordFetcher
from fitledger.gateway import EncryptionGateway
from fitledger.submitter import RecordSubmitter
from fitledger.tracker import FitnessTracker, TrackerContext
from fitledger.types import (
    AuthorizationGrant,
    CiphertextHandle,
    DecryptedRecord,
    EncryptedSubmission,
    EphemeralKeypair,
    PlaintextRecord,
    StoredRecord,
)

__version__ = "0.1.0"
