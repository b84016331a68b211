"""Tests for versioned content storage."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from vaultgen.exceptions import ContentVersionNotFoundError, PersistenceError
from vaultgen.models import ContentVersion
from vaultgen.repositories import ContentVersionRepository
from vaultgen.services.content_hash import hash_content

from factories import full_document


@pytest.fixture()
def repo(db):
    return ContentVersionRepository(db)


def _save(repo, content, group="funnel-1", section="smsSequence", owner="owner-a"):
    return repo.save_if_changed(owner, group, section, content, source_job_id="job-1")


class TestSaveIfChanged:

    def test_first_save_creates_version_one(self, repo):
        doc = full_document("sms-sequence")
        record, created = _save(repo, doc)

        assert created is True
        assert record.version == 1
        assert record.is_current_version is True
        assert record.content == doc
        assert record.content_hash == hash_content(doc)
        assert record.source_job_id == "job-1"

    def test_identical_content_not_written(self, repo, db):
        doc = full_document("sms-sequence")
        first, _ = _save(repo, doc)

        again, created = _save(repo, dict(reversed(list(doc.items()))))

        assert created is False
        assert again.id == first.id
        assert db.query(ContentVersion).count() == 1

    def test_changed_content_promotes_new_version(self, repo, db):
        first, _ = _save(repo, full_document("sms-sequence", tag="-v1"))
        second, created = _save(repo, full_document("sms-sequence", tag="-v2"))

        assert created is True
        assert second.version == 2
        db.refresh(first)
        assert first.is_current_version is False
        current = db.query(ContentVersion).filter(ContentVersion.is_current_version.is_(True)).all()
        assert [c.id for c in current] == [second.id]

    def test_sections_versioned_independently(self, repo):
        _save(repo, full_document("sms-sequence"))
        record, _ = _save(repo, full_document("email-sequence"), section="emailSequence")
        other_group, _ = _save(repo, full_document("sms-sequence"), group="funnel-2")
        assert record.version == 1
        assert other_group.version == 1

    def test_failed_write_rolls_back(self, repo, db):
        first, _ = _save(repo, full_document("sms-sequence", tag="-v1"))

        with patch.object(db, "commit", side_effect=OperationalError("INSERT", {}, Exception("disk I/O error"))):
            with pytest.raises(PersistenceError) as exc:
                _save(repo, full_document("sms-sequence", tag="-v2"))

        assert exc.value.status_code == 500
        current = repo.get_current("owner-a", "funnel-1", "smsSequence")
        assert current.id == first.id
        assert current.version == 1
        assert db.query(ContentVersion).count() == 1


class TestOwnerScoping:

    def test_other_owner_write_leaves_current_untouched(self, repo, db):
        mine, _ = _save(repo, full_document("sms-sequence", tag="-a"))

        theirs, created = _save(repo, full_document("sms-sequence", tag="-b"), owner="owner-b")

        assert created is True
        assert theirs.version == 1
        db.refresh(mine)
        assert mine.is_current_version is True
        assert repo.get_current("owner-a", "funnel-1", "smsSequence").id == mine.id
        assert repo.get_current("owner-b", "funnel-1", "smsSequence").id == theirs.id

    def test_identical_content_of_other_owner_still_written(self, repo, db):
        doc = full_document("sms-sequence")
        _save(repo, doc)

        _, created = _save(repo, doc, owner="owner-b")

        assert created is True
        assert db.query(ContentVersion).count() == 2

    def test_history_is_per_owner(self, repo):
        _save(repo, full_document("sms-sequence", tag="-a1"))
        _save(repo, full_document("sms-sequence", tag="-a2"))
        _save(repo, full_document("sms-sequence", tag="-b1"), owner="owner-b")

        assert [v.version for v in repo.list_versions("owner-a", "funnel-1", "smsSequence")] == [2, 1]
        assert [v.version for v in repo.list_versions("owner-b", "funnel-1", "smsSequence")] == [1]
        assert repo.list_versions("owner-c", "funnel-1", "smsSequence") == []


class TestReads:

    def test_get_current_missing(self, repo):
        assert repo.get_current("owner-a", "funnel-1", "smsSequence") is None

    def test_get_current_for_owner(self, repo):
        record, _ = _save(repo, full_document("sms-sequence"))
        assert repo.get_current_for_owner("owner-a", "funnel-1", "smsSequence").id == record.id

    def test_other_owner_not_found(self, repo):
        _save(repo, full_document("sms-sequence"))
        with pytest.raises(ContentVersionNotFoundError):
            repo.get_current_for_owner("owner-b", "funnel-1", "smsSequence")

    def test_list_versions_newest_first(self, repo):
        for tag in ("-a", "-b", "-c"):
            _save(repo, full_document("sms-sequence", tag=tag))

        versions = repo.list_versions("owner-a", "funnel-1", "smsSequence")
        assert [v.version for v in versions] == [3, 2, 1]
        assert [v.version for v in repo.list_versions("owner-a", "funnel-1", "smsSequence", skip=1, limit=1)] == [2]
