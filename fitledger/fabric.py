"""
Hyperledger Fabric transport for the fitness ledger contract.

The chaincode exposes ``AddRecord``, ``GetRecordCount`` and
``GetRecord``. Install the ``fabric`` extra to use ``from_profile``.
"""

from __future__ import annotations

import asyncio
import json
import logging

from fitledger.errors import LedgerReverted, LedgerUnavailable, ValidationError
from fitledger.ledger import ADD_RECORD, decode_add_record_args
from fitledger.types import (
    RECORD_FIELDS,
    CiphertextHandle,
    RecordAdded,
    SignedTransaction,
    StoredRecord,
    TransactionReceipt,
    normalize_address,
)
from fitledger.wallet import transaction_hash

logger = logging.getLogger(__name__)

# gRPC status names that mean the peer was never reached
UNREACHABLE_STATUSES = ("UNAVAILABLE", "DEADLINE_EXCEEDED")


def _map_error(fcn, e):
    """Split hfc failures into unreachable peers and calls the chaincode rejected."""
    code = getattr(e, "code", None)
    status = getattr(code(), "name", None) if callable(code) else None
    if isinstance(e, (ConnectionError, OSError, asyncio.TimeoutError)) or status in UNREACHABLE_STATUSES:
        return LedgerUnavailable(f"{fcn} could not reach the network: {e}")
    return LedgerReverted(f"{fcn} failed: {e}")


class FabricLedger:
    def __init__(self, cli, requestor, channel_name, chaincode_name, peers):
        self.cli = cli
        self.requestor = requestor
        self.channel_name = channel_name
        self.chaincode_name = chaincode_name
        self.peers = list(peers)

    @classmethod
    def from_profile(cls, conn_profile_path, org_name, user_name, channel_name, chaincode_name, peers):
        from hfc.fabric.client import Client

        logger.info("[FABRIC] Loading network profile %s", conn_profile_path)
        cli = Client(net_profile=conn_profile_path)
        cli.new_channel(channel_name)
        requestor = cli.get_user(org_name=org_name, name=user_name)
        if requestor is None:
            raise LedgerReverted(f"User {user_name} not found in {org_name}")
        return cls(cli, requestor, channel_name, chaincode_name, peers)

    @classmethod
    def from_config(cls, config):
        peers = [p.strip() for p in config["fabric_peers"].split(",") if p.strip()]
        return cls.from_profile(
            config["fabric_profile"], config["fabric_org"], config["fabric_user"],
            config["channel"], config["chaincode"], peers,
        )

    async def _invoke(self, fcn, args):
        logger.debug("[FABRIC] Invoking '%s' on %s", fcn, self.chaincode_name)
        try:
            return await self.cli.chaincode_invoke(
                requestor=self.requestor,
                channel_name=self.channel_name,
                peers=self.peers,
                args=[str(a) for a in args],
                cc_name=self.chaincode_name,
                fcn=fcn,
                wait_for_event=True,
            )
        except Exception as e:
            # hfc reports endorsement, commit and gRPC failures as bare exceptions
            raise _map_error(fcn, e) from e

    async def _query(self, fcn, args):
        try:
            return await self.cli.chaincode_query(
                requestor=self.requestor,
                channel_name=self.channel_name,
                peers=self.peers,
                args=[str(a) for a in args],
                cc_name=self.chaincode_name,
                fcn=fcn,
            )
        except Exception as e:
            raise _map_error(fcn, e) from e

    async def submit_transaction(self, signed: SignedTransaction) -> TransactionReceipt:
        tx = signed.transaction
        if tx.function != ADD_RECORD:
            raise LedgerReverted(f"unknown function {tx.function}")
        decode_add_record_args(tx.args)

        response = await self._invoke("AddRecord", [
            signed.sender,
            *tx.args,
            signed.signature.value.hex(),
            signed.signature.signer_key.hex(),
        ])
        try:
            body = json.loads(response)
            event = RecordAdded(normalize_address(body["owner"]), int(body["index"]), int(body["timestamp"]))
        except (TypeError, ValueError, KeyError, ValidationError) as e:
            raise LedgerReverted(f"unexpected AddRecord response: {response!r}") from e

        logger.info("[FABRIC] Transaction 'AddRecord' committed, index %d", event.index)
        return TransactionReceipt(
            tx_hash=body.get("txId") or transaction_hash(signed),
            block_number=int(body.get("blockNumber", 0)),
            events=(event,),
        )

    async def get_record_count(self, owner: str) -> int:
        response = await self._query("GetRecordCount", [normalize_address(owner)])
        try:
            return int(response)
        except (TypeError, ValueError) as e:
            raise LedgerReverted(f"unexpected GetRecordCount response: {response!r}") from e

    async def get_record(self, owner: str, index: int) -> StoredRecord:
        owner = normalize_address(owner)
        response = await self._query("GetRecord", [owner, index])
        try:
            body = json.loads(response)
            handles = [CiphertextHandle.from_hex(body[name]) for name in RECORD_FIELDS]
            timestamp = int(body["timestamp"])
        except (TypeError, ValueError, KeyError, ValidationError) as e:
            raise LedgerReverted(f"unexpected GetRecord response: {response!r}") from e
        return StoredRecord(owner, index, *handles, timestamp=timestamp)
