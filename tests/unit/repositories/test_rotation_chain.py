"""Tests for rotation chain traversal."""

import pytest

from proxy_vault.db import RotationLink
from proxy_vault.exceptions import ChainTooLongError, ErrorCode, RepositoryError
from proxy_vault.repositories import CredentialRecordRepository, RotationChain
from proxy_vault.utils.encryption_utils import EncryptedSecret

OWNER = "0xCHAIN000000000000000000000000000000000A1"
SEALED = EncryptedSecret(ciphertext=b"\xbb" * 40, nonce=b"\x02" * 12)


@pytest.fixture
def records(db_session):
    repo = CredentialRecordRepository(db_session)

    def make(*proxy_ids):
        for proxy_id in proxy_ids:
            repo.create(
                proxy_id=proxy_id,
                owner_id=OWNER,
                encrypted=SEALED,
                provider="openai",
                rotation_interval_seconds=60,
                last_rotated_at=0,
            )

    return make


@pytest.fixture
def chain(db_session):
    return RotationChain(db_session)


def _build_chain(records, chain, length):
    ids = [f"priv_{i:04d}" for i in range(length + 1)]
    records(*ids)
    for i in range(length):
        chain.link(ids[i], ids[i + 1], rotated_at=i)
    return ids


def _raw_chain(records, db_session, length):
    """Links written directly, without head maintenance, as a hand-edited table would be."""
    ids = [f"priv_raw{i:04d}" for i in range(length + 1)]
    records(*ids)
    db_session.add_all(
        RotationLink(from_proxy_id=a, to_proxy_id=b, head_proxy_id=b, rotated_at=0)
        for a, b in zip(ids, ids[1:])
    )
    db_session.flush()
    return ids


class TestLink:
    def test_successor_and_predecessor(self, records, chain):
        records("priv_a", "priv_b")
        chain.link("priv_a", "priv_b", rotated_at=1)

        assert chain.successor("priv_a") == "priv_b"
        assert chain.successor("priv_b") is None
        assert chain.predecessor("priv_b") == "priv_a"
        assert chain.predecessor("priv_a") is None

    def test_link_moves_ancestor_heads(self, records, chain):
        ids = _build_chain(records, chain, 3)

        assert [chain.head_of(proxy_id) for proxy_id in ids[:-1]] == [ids[-1]] * 3
        assert [chain.successor(proxy_id) for proxy_id in ids[:-1]] == ids[1:]
        assert chain.head_of(ids[-1]) is None

    def test_self_link_rejected(self, records, chain):
        records("priv_a")
        with pytest.raises(RepositoryError) as exc_info:
            chain.link("priv_a", "priv_a", rotated_at=1)
        assert exc_info.value.error_code == ErrorCode.CONSTRAINT_VIOLATION

    def test_second_successor_rejected(self, records, chain, db_session):
        records("priv_a", "priv_b", "priv_c")
        chain.link("priv_a", "priv_b", rotated_at=1)
        db_session.commit()
        db_session.expunge_all()

        with pytest.raises(RepositoryError) as exc_info:
            chain.link("priv_a", "priv_c", rotated_at=2)
        assert exc_info.value.error_code == ErrorCode.CONFLICT
        assert chain.successor("priv_a") == "priv_b"


class TestFollow:
    def test_unlinked_key_is_its_own_head(self, chain):
        assert chain.follow("priv_anything") == "priv_anything"

    def test_follows_to_head(self, records, chain):
        ids = _build_chain(records, chain, 3)

        for proxy_id in ids:
            assert chain.follow(proxy_id) == ids[-1]

    def test_long_chain_resolves_in_one_hop(self, records, chain):
        ids = _build_chain(records, chain, 150)

        assert chain.follow(ids[0]) == ids[-1]
        assert chain.follow(ids[75]) == ids[-1]
        assert chain.follow(ids[-1]) == ids[-1]

    def test_64_hops_allowed(self, records, chain, db_session):
        ids = _raw_chain(records, db_session, 64)
        assert chain.follow(ids[0]) == ids[-1]

    def test_65_hops_is_corruption(self, records, chain, db_session):
        ids = _raw_chain(records, db_session, 65)

        with pytest.raises(ChainTooLongError):
            chain.follow(ids[0])
        assert chain.follow(ids[1]) == ids[-1]

    def test_cycle_is_detected(self, records, chain):
        records("priv_x", "priv_y")
        chain.link("priv_x", "priv_y", rotated_at=1)
        chain.link("priv_y", "priv_x", rotated_at=2)

        with pytest.raises(ChainTooLongError):
            chain.follow("priv_x")

    def test_configurable_limit(self, records, db_session):
        short = RotationChain(db_session, max_hops=2)
        ids = _raw_chain(records, db_session, 3)

        assert short.follow(ids[1]) == ids[-1]
        with pytest.raises(ChainTooLongError):
            short.follow(ids[0])


class TestHistory:
    def test_newest_first(self, records, chain):
        ids = _build_chain(records, chain, 3)
        assert chain.history(ids[-1]) == [ids[2], ids[1], ids[0]]
        assert chain.history(ids[0]) == []

    def test_long_history(self, records, chain):
        ids = _build_chain(records, chain, 100)
        assert chain.history(ids[-1]) == list(reversed(ids[:-1]))
        assert chain.history(ids[50]) == list(reversed(ids[:50]))

    def test_cycle_is_bounded(self, records, db_session):
        chain = RotationChain(db_session, max_hops=4)
        records("priv_x", "priv_y")
        chain.link("priv_x", "priv_y", rotated_at=1)
        chain.link("priv_y", "priv_x", rotated_at=2)

        with pytest.raises(ChainTooLongError):
            chain.history("priv_x")
