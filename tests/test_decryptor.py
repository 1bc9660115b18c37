"""
Batch decryptor tests
"""

import threading

import pytest

from fitledger.authorizer import DecryptionAuthorizer
from fitledger.decryptor import BatchDecryptor, join_record
from fitledger.errors import (
    AuthorizationExpired,
    DecryptionUnavailable,
    IncompleteDecryption,
    ProviderUnavailable,
    Unauthorized,
)
from fitledger.submitter import RecordSubmitter
from fitledger.types import HandleContractPair, PlaintextRecord

OTHER_CONTRACT = "0x" + "ee" * 20


class CountingService:
    """Decryption service wrapper that records every request."""

    def __init__(self, inner, drop=0):
        self.inner = inner
        self.drop = drop
        self.requests = []

    async def user_decrypt(self, request):
        self.requests.append(request)
        result = await self.inner.user_decrypt(request)
        for handle in list(result)[:self.drop]:
            del result[handle]
        return result


async def store(tracker, record, wallet=None):
    wallet = wallet or tracker.context.wallet
    owner = await wallet.get_address()
    submission = tracker.gateway.encrypt(tracker.context.contract_address, owner, record)
    receipt = await RecordSubmitter(wallet).submit(submission)
    return await tracker.fetcher.fetch_record(owner, receipt.events[0].index)


async def decrypt(tracker, pairs, authorization):
    return await tracker.decryptor.decrypt(
        pairs, authorization.keypair, authorization.signature, authorization.grant,
    )


class TestRoundTrip:
    async def test_scenario(self, tracker, sample_record):
        owner = await tracker.owner()
        before = await tracker.fetcher.fetch_count(owner)

        stored = await store(tracker, sample_record)
        assert await tracker.fetcher.fetch_count(owner) == before + 1
        assert len(stored.handles) == 4
        assert stored.timestamp > 0

        authorization = await tracker.authorize()
        plaintexts = await decrypt(tracker, stored.handle_pairs(tracker.context.contract_address), authorization)

        assert [plaintexts[h] for h in stored.handles] == [175, 70000, 120, 80]
        assert join_record(stored, plaintexts).to_plaintext() == sample_record

    @pytest.mark.parametrize("values", [(0, 0, 0, 0), (2**32 - 1, 65536, 65535, 1)])
    async def test_bounds(self, tracker, values):
        record = PlaintextRecord(*values)
        stored = await store(tracker, record)
        decrypted = await tracker.decrypt_record(stored)
        assert decrypted.to_plaintext() == record

    async def test_same_handle_two_grants(self, tracker, sample_record):
        stored = await store(tracker, sample_record)
        pairs = stored.handle_pairs(tracker.context.contract_address)

        first = await decrypt(tracker, pairs, await tracker.authorize())
        second = await decrypt(tracker, pairs, await tracker.authorize())
        assert first == second


class TestBatching:
    async def test_many_records_one_request(self, tracker):
        service = CountingService(tracker.context.provider.decryption_service)
        tracker.decryptor.service = service
        records = [await store(tracker, PlaintextRecord(170 + i, 70000 + i, 120, 80)) for i in range(3)]

        decrypted = await tracker.decrypt_records(records)

        assert len(service.requests) == 1
        assert len(service.requests[0].pairs) == 12
        assert [d.height for d in decrypted] == [170, 171, 172]
        assert [d.weight_grams for d in decrypted] == [70000, 70001, 70002]

    async def test_duplicate_pairs_collapsed(self, tracker, sample_record):
        service = CountingService(tracker.context.provider.decryption_service)
        tracker.decryptor.service = service
        stored = await store(tracker, sample_record)
        pairs = stored.handle_pairs(tracker.context.contract_address) * 2

        await decrypt(tracker, pairs, await tracker.authorize())
        assert len(service.requests[0].pairs) == 4

    async def test_empty_batch(self, tracker):
        authorization = await tracker.authorize()
        assert await decrypt(tracker, [], authorization) == {}
        assert await tracker.decrypt_records([]) == []

    async def test_secret_key_not_sent(self, tracker, sample_record):
        service = CountingService(tracker.context.provider.decryption_service)
        tracker.decryptor.service = service
        stored = await store(tracker, sample_record)
        authorization = await tracker.authorize()

        await tracker.decrypt_record(stored, authorization)
        request = service.requests[0]
        assert request.public_key is authorization.keypair.public_key
        assert not hasattr(request, "secret_key")


class TestExpiry:
    async def test_expired_grant(self, tracker, clock, sample_record):
        stored = await store(tracker, sample_record)
        authorization = await tracker.authorize(duration_seconds=60)

        clock.advance(60)
        with pytest.raises(AuthorizationExpired):
            await decrypt(tracker, stored.handle_pairs(tracker.context.contract_address), authorization)

    async def test_service_enforces_expiry(self, tracker, clock, sample_record):
        stored = await store(tracker, sample_record)
        authorization = await tracker.authorize(duration_seconds=60)

        # client clock lags, service clock has moved past the window
        tracker.decryptor = BatchDecryptor(tracker.context.provider, clock=lambda: authorization.grant.start_timestamp)
        clock.advance(3600)
        with pytest.raises(AuthorizationExpired):
            await decrypt(tracker, stored.handle_pairs(tracker.context.contract_address), authorization)

    async def test_expired_regardless_of_handles(self, tracker, clock):
        authorization = await tracker.authorize(duration_seconds=1)
        clock.advance(10)
        bogus = [HandleContractPair(h, tracker.context.contract_address)
                 for h in (await store(tracker, PlaintextRecord(1, 2, 3, 4))).handles]
        with pytest.raises(AuthorizationExpired):
            await decrypt(tracker, bogus, authorization)


class TestUnauthorized:
    async def test_contract_outside_grant(self, tracker, sample_record):
        stored = await store(tracker, sample_record)
        authorization = await tracker.authorize()
        with pytest.raises(Unauthorized):
            await decrypt(tracker, stored.handle_pairs(OTHER_CONTRACT), authorization)

    async def test_other_owner_handles(self, tracker, other_wallet, sample_record):
        theirs = await store(tracker, sample_record, wallet=other_wallet)
        authorization = await tracker.authorize()
        with pytest.raises(Unauthorized):
            await decrypt(tracker, theirs.handle_pairs(tracker.context.contract_address), authorization)

    async def test_signature_from_other_grant(self, tracker, sample_record):
        stored = await store(tracker, sample_record)
        first = await tracker.authorize()
        second = await tracker.authorize(duration_seconds=60)
        with pytest.raises(Unauthorized):
            await tracker.decryptor.decrypt(
                stored.handle_pairs(tracker.context.contract_address),
                first.keypair, second.signature, first.grant,
            )

    async def test_keypair_from_other_grant(self, tracker, sample_record):
        stored = await store(tracker, sample_record)
        first = await tracker.authorize()
        second = await tracker.authorize()
        with pytest.raises(Unauthorized):
            await tracker.decryptor.decrypt(
                stored.handle_pairs(tracker.context.contract_address),
                second.keypair, first.signature, first.grant,
            )

    async def test_shared_handle(self, tracker, coprocessor, other_wallet, sample_record):
        stored = await store(tracker, sample_record)
        coprocessor.allow(stored.height, await other_wallet.get_address())

        authorizer = DecryptionAuthorizer(tracker.context.provider, other_wallet, clock=tracker.context.clock)
        authorization = await authorizer.authorize([tracker.context.contract_address])
        plaintexts = await decrypt(
            tracker, [HandleContractPair(stored.height, tracker.context.contract_address)], authorization,
        )
        assert plaintexts == {stored.height: 175}


class TestFailures:
    async def test_service_offline_then_retry(self, tracker, coprocessor, sample_record):
        stored = await store(tracker, sample_record)
        authorization = await tracker.authorize()
        pairs = stored.handle_pairs(tracker.context.contract_address)

        coprocessor.online = False
        with pytest.raises(DecryptionUnavailable) as exc_info:
            await decrypt(tracker, pairs, authorization)
        assert exc_info.value.retryable

        coprocessor.online = True
        assert len(await decrypt(tracker, pairs, authorization)) == 4

    async def test_omitted_handle_is_failure(self, tracker, sample_record):
        tracker.decryptor.service = CountingService(tracker.context.provider.decryption_service, drop=1)
        stored = await store(tracker, sample_record)

        decrypted = await tracker.decrypt_record(stored)
        assert decrypted.missing == ["height"]
        assert decrypted.height is None
        with pytest.raises(IncompleteDecryption):
            decrypted.to_plaintext()

    async def test_no_service(self, tracker, sample_record):
        stored = await store(tracker, sample_record)
        authorization = await tracker.authorize()
        decryptor = BatchDecryptor(tracker.context.provider, clock=tracker.context.clock)
        decryptor.service = None
        with pytest.raises(ProviderUnavailable):
            await decryptor.decrypt(
                stored.handle_pairs(tracker.context.contract_address),
                authorization.keypair, authorization.signature, authorization.grant,
            )


class TestWorkerThreads:
    async def test_local_opening_off_event_loop(self, tracker, sample_record):
        stored = await store(tracker, sample_record)
        provider = tracker.context.provider
        threads = []
        open_value = provider.open

        def recording_open(keypair, ciphertext):
            threads.append(threading.get_ident())
            return open_value(keypair, ciphertext)

        provider.open = recording_open
        decrypted = await tracker.decrypt_record(stored)

        assert decrypted.complete
        assert len(threads) == 4
        assert threading.get_ident() not in threads

    async def test_reencryption_off_event_loop(self, tracker, coprocessor, sample_record):
        stored = await store(tracker, sample_record)
        threads = []
        reencrypt = coprocessor._reencrypt

        def recording_reencrypt(selected, public_key):
            threads.append(threading.get_ident())
            return reencrypt(selected, public_key)

        coprocessor._reencrypt = recording_reencrypt
        decrypted = await tracker.decrypt_record(stored)

        assert decrypted.to_plaintext() == sample_record
        assert threads and threading.get_ident() not in threads
