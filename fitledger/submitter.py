"""
Record submitter.

Sends one encrypted submission to the ledger contract as a single
``addRecord`` transaction and waits for confirmation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fitledger.config import CONFIG
from fitledger.errors import (
    LedgerReverted,
    LedgerUnavailable,
    SignerUnavailable,
    SubmissionFailed,
    SubmissionPending,
    UserRejected,
    ValidationError,
)
from fitledger.ledger import ADD_RECORD
from fitledger.types import EncryptedSubmission, RecordAdded, Transaction, TransactionReceipt

logger = logging.getLogger(__name__)


def build_add_record(submission: EncryptedSubmission) -> Transaction:
    args = tuple(h.hex() for h in submission.handles) + ("0x" + submission.proof.hex(),)
    return Transaction(to=submission.contract_address, function=ADD_RECORD, args=args)


class RecordSubmitter:
    def __init__(self, wallet, timeout: Optional[float] = CONFIG["submit_timeout_seconds"]):
        self.wallet = wallet
        self.timeout = timeout

    async def submit(self, submission: EncryptedSubmission) -> TransactionReceipt:
        """
        Submit ``submission`` and wait for inclusion.

        The submission is marked spent before broadcast. On failure,
        encrypt the values again rather than resubmitting. A timeout or
        an unreachable ledger raises ``SubmissionPending``: the record may
        still be included, so check the owner's record count before
        retrying.
        """
        if submission.spent:
            raise ValidationError("Submission was already sent; encrypt the values again")
        if self.wallet is None:
            raise SignerUnavailable("No wallet connected")

        sender = await self.wallet.get_address()
        if sender != submission.owner:
            raise ValidationError(f"Submission is bound to {submission.owner}, wallet is {sender}")

        tx = build_add_record(submission)
        submission.spent = True
        try:
            receipt = await asyncio.wait_for(self.wallet.send_transaction(tx), self.timeout)
        except asyncio.TimeoutError as e:
            raise SubmissionPending(f"no confirmation within {self.timeout}s") from e
        except LedgerUnavailable as e:
            raise SubmissionPending(e.reason) from e
        except LedgerReverted as e:
            raise SubmissionFailed(e.reason) from e
        except UserRejected as e:
            raise SubmissionFailed("user rejected the transaction") from e
        except (ConnectionError, OSError) as e:
            raise SubmissionFailed(f"network error: {e}") from e

        events = [ev for ev in receipt.events if isinstance(ev, RecordAdded)]
        if not events or events[0].owner != sender or events[0].timestamp <= 0:
            raise SubmissionFailed(f"transaction {receipt.tx_hash} emitted no valid RecordAdded event")

        logger.info("[LEDGER] Record %d confirmed in block %d", events[0].index, receipt.block_number)
        return receipt
