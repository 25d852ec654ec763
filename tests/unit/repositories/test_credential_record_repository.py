"""
Tests for CredentialRecordRepository.

Covers plain storage, rotation candidate selection and the
compare-and-supersede primitive.
"""

import pytest

from proxy_vault.exceptions import ConflictError
from proxy_vault.repositories import CredentialRecordRepository
from proxy_vault.utils.encryption_utils import EncryptedSecret

OWNER_A = "0xREPO0000000000000000000000000000000000A1"
OWNER_B = "0xREPO0000000000000000000000000000000000B2"
SEALED = EncryptedSecret(ciphertext=b"\xaa" * 40, nonce=b"\x01" * 12)
T0 = 1_767_225_600_000


@pytest.fixture
def repo(db_session):
    return CredentialRecordRepository(db_session)


def _create(repo, proxy_id, owner_id=OWNER_A, interval=0, last_rotated_at=T0, **kwargs):
    return repo.create(
        proxy_id=proxy_id,
        owner_id=owner_id,
        encrypted=SEALED,
        provider=kwargs.pop("provider", "openai"),
        rotation_interval_seconds=interval,
        last_rotated_at=last_rotated_at,
        **kwargs,
    )


class TestCreateAndGet:
    def test_create(self, repo):
        record = _create(repo, "priv_one", webhook_url="https://hooks.example.com/x")

        assert record.proxy_id == "priv_one"
        assert record.ciphertext == SEALED.ciphertext
        assert record.nonce == SEALED.nonce
        assert record.webhook_url == "https://hooks.example.com/x"
        assert (record.revoked, record.superseded) == (False, False)

    def test_get_missing(self, repo):
        assert repo.get("priv_missing") is None
        assert repo.exists("priv_missing") is False

    def test_exists(self, repo):
        _create(repo, "priv_one")
        assert repo.exists("priv_one") is True

    def test_duplicate_is_conflict(self, repo, db_session):
        _create(repo, "priv_dup")
        db_session.commit()
        db_session.expunge_all()

        with pytest.raises(ConflictError):
            _create(repo, "priv_dup", owner_id=OWNER_B)

        assert repo.get("priv_dup").owner_id == OWNER_A


class TestRevocation:
    def test_mark_revoked(self, repo):
        _create(repo, "priv_one")

        assert repo.mark_revoked("priv_one") is True
        assert repo.get("priv_one").revoked is True

    def test_idempotent(self, repo):
        _create(repo, "priv_one")
        repo.mark_revoked("priv_one")
        assert repo.mark_revoked("priv_one") is True

    def test_unknown(self, repo):
        assert repo.mark_revoked("priv_nope") is False


class TestCount:
    def test_counts_only_live_records(self, repo):
        _create(repo, "priv_a1")
        _create(repo, "priv_a2")
        _create(repo, "priv_a3")
        _create(repo, "priv_b1", owner_id=OWNER_B)

        repo.mark_revoked("priv_a2")
        repo.compare_and_supersede("priv_a3", T0)

        assert repo.count() == 2
        assert repo.count(OWNER_A) == 1
        assert repo.count(OWNER_B) == 1
        assert repo.count("0xnobody") == 0


class TestRotationCandidates:
    def test_due_selection(self, repo):
        _create(repo, "priv_due", interval=60)
        _create(repo, "priv_not_due", interval=3600)
        _create(repo, "priv_never", interval=0)
        _create(repo, "priv_revoked", interval=60)
        _create(repo, "priv_superseded", interval=60)
        repo.mark_revoked("priv_revoked")
        repo.compare_and_supersede("priv_superseded", T0)

        assert repo.list_rotation_candidates(T0 + 59_999) == []
        assert repo.list_rotation_candidates(T0 + 60_000) == ["priv_due"]

    def test_paging(self, repo):
        for name in ("priv_c", "priv_a", "priv_b"):
            _create(repo, name, interval=1)

        now = T0 + 1_000
        first = repo.list_rotation_candidates(now, limit=2)
        second = repo.list_rotation_candidates(now, limit=2, after=first[-1])

        assert first == ["priv_a", "priv_b"]
        assert second == ["priv_c"]


class TestCompareAndSupersede:
    def test_first_caller_wins(self, repo):
        _create(repo, "priv_one", interval=60)

        assert repo.compare_and_supersede("priv_one", T0) is True
        assert repo.compare_and_supersede("priv_one", T0) is False
        assert repo.get("priv_one").superseded is True

    def test_stale_timestamp_loses(self, repo):
        _create(repo, "priv_one", interval=60)
        assert repo.compare_and_supersede("priv_one", T0 - 1) is False
        assert repo.get("priv_one").superseded is False

    def test_revoked_record_cannot_be_superseded(self, repo):
        _create(repo, "priv_one", interval=60)
        repo.mark_revoked("priv_one")
        assert repo.compare_and_supersede("priv_one", T0) is False

    def test_unknown_record(self, repo):
        assert repo.compare_and_supersede("priv_ghost", T0) is False
