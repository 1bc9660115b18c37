"""
Coprocessor input proof and access control tests
"""

import pytest

from fitledger.coprocessor import InvalidInputProof
from fitledger.fhe import encrypt_uint32
from fitledger.types import CiphertextHandle

CONTRACT = "0x" + "aa" * 20
OTHER_CONTRACT = "0x" + "bb" * 20
OWNER = "0x" + "cc" * 20
OTHER_OWNER = "0x" + "dd" * 20


@pytest.fixture
def registered(coprocessor):
    cts = [encrypt_uint32(coprocessor.cc, coprocessor.public_key, v) for v in (1, 2, 3, 4)]
    return coprocessor.register_inputs(CONTRACT, OWNER, cts)


class TestInputProof:
    def test_handles_carry_position_and_type(self, registered):
        handles, proof = registered
        assert [h.position for h in handles] == [0, 1, 2, 3]
        assert all(h.type_code == 4 for h in handles)
        assert proof[0] == 4

    def test_verify_commits_and_allows(self, coprocessor, registered):
        handles, proof = registered
        assert not coprocessor.is_committed(handles[0])

        coprocessor.verify_input(CONTRACT, OWNER, handles, proof)

        for h in handles:
            assert coprocessor.is_committed(h)
            assert coprocessor.is_allowed(h, OWNER)
            assert coprocessor.is_allowed(h, CONTRACT)
            assert not coprocessor.is_allowed(h, OTHER_OWNER)

    def test_replay_rejected(self, coprocessor, registered):
        handles, proof = registered
        coprocessor.verify_input(CONTRACT, OWNER, handles, proof)
        with pytest.raises(InvalidInputProof):
            coprocessor.verify_input(CONTRACT, OWNER, handles, proof)

    def test_other_contract_rejected(self, coprocessor, registered):
        handles, proof = registered
        with pytest.raises(InvalidInputProof):
            coprocessor.verify_input(OTHER_CONTRACT, OWNER, handles, proof)

    def test_impersonation_rejected(self, coprocessor, registered):
        handles, proof = registered
        with pytest.raises(InvalidInputProof):
            coprocessor.verify_input(CONTRACT, OTHER_OWNER, handles, proof)

    def test_partial_handles_rejected(self, coprocessor, registered):
        handles, proof = registered
        with pytest.raises(InvalidInputProof):
            coprocessor.verify_input(CONTRACT, OWNER, handles[:2], proof)

    def test_tampered_proof_rejected(self, coprocessor, registered):
        handles, proof = registered
        tampered = proof[:-1] + bytes([proof[-1] ^ 1])
        with pytest.raises(InvalidInputProof):
            coprocessor.verify_input(CONTRACT, OWNER, handles, tampered)

    def test_malformed_proof(self, coprocessor, registered):
        handles, _ = registered
        with pytest.raises(InvalidInputProof):
            coprocessor.verify_input(CONTRACT, OWNER, handles, b"\x04short")


class TestAcl:
    def test_allow_extends_access(self, coprocessor, registered):
        handles, proof = registered
        coprocessor.verify_input(CONTRACT, OWNER, handles, proof)
        coprocessor.allow(handles[0], OTHER_OWNER)
        assert coprocessor.is_allowed(handles[0], OTHER_OWNER)

    def test_allow_unknown_handle(self, coprocessor):
        with pytest.raises(KeyError):
            coprocessor.allow(CiphertextHandle(bytes(32)), OWNER)


class TestPendingExpiry:
    def test_unverified_input_dropped_after_ttl(self, coprocessor, clock, registered):
        handles, proof = registered
        assert coprocessor.pending_count == 4

        clock.advance(coprocessor.pending_ttl)
        with pytest.raises(InvalidInputProof, match="expired"):
            coprocessor.verify_input(CONTRACT, OWNER, handles, proof)
        assert coprocessor.pending_count == 0
        assert not coprocessor.is_committed(handles[0])

    def test_stale_inputs_evicted_by_next_registration(self, coprocessor, clock, registered):
        clock.advance(coprocessor.pending_ttl + 1)
        ct = encrypt_uint32(coprocessor.cc, coprocessor.public_key, 5)
        coprocessor.register_inputs(CONTRACT, OWNER, [ct])
        assert coprocessor.pending_count == 1

    def test_verified_within_ttl(self, coprocessor, clock, registered):
        handles, proof = registered
        clock.advance(coprocessor.pending_ttl - 1)
        coprocessor.verify_input(CONTRACT, OWNER, handles, proof)
        assert all(coprocessor.is_committed(h) for h in handles)

    def test_committed_handles_never_expire(self, coprocessor, clock, registered):
        handles, proof = registered
        coprocessor.verify_input(CONTRACT, OWNER, handles, proof)

        clock.advance(coprocessor.pending_ttl * 10)
        ct = encrypt_uint32(coprocessor.cc, coprocessor.public_key, 5)
        coprocessor.register_inputs(CONTRACT, OWNER, [ct])
        assert all(coprocessor.is_committed(h) for h in handles)
