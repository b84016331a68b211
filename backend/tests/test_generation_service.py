"""Tests for generation requests, retries and job execution."""

import pytest

from vaultgen.exceptions import UnknownContentTypeError, ValidationError
from vaultgen.models import ContentVersion, JobStatus
from vaultgen.services.generation_client import ChunkCallError
from vaultgen.services.generation_service import GenerationService

from factories import ScriptedClient, chunk_fields

SMS_B = ["sms6", "sms7a", "sms7b", "smsNoShow1", "smsNoShow2"]


def _service(db, outputs=None):
    return GenerationService(db, client=ScriptedClient(outputs or {}))


def _run_sms(db, outputs, context=None):
    service = _service(db, outputs)
    job = service.request_generation("owner-a", "funnel-1", "sms-sequence", context=context)
    return service, service.execute(job)


class TestExecute:

    def test_full_run_persists_version(self, db):
        _, outcome = _run_sms(db, {1: chunk_fields("sms-sequence", 1), 2: chunk_fields("sms-sequence", 2)})

        assert outcome.job.status == JobStatus.COMPLETED.value
        assert outcome.version.version == 1
        assert outcome.version.section_id == "smsSequence"
        assert outcome.version.source_job_id == outcome.job.id
        assert outcome.unchanged is False
        assert len(outcome.version.content) == 10

    def test_identical_rerun_skips_write(self, db):
        outputs = {1: chunk_fields("sms-sequence", 1), 2: chunk_fields("sms-sequence", 2)}
        _run_sms(db, outputs)
        _, outcome = _run_sms(db, outputs)

        assert outcome.job.status == JobStatus.COMPLETED.value
        assert outcome.unchanged is True
        assert outcome.version.version == 1
        assert db.query(ContentVersion).count() == 1

    def test_partial_result_persisted(self, db):
        _, outcome = _run_sms(db, {1: chunk_fields("sms-sequence", 1), 2: ChunkCallError("timeout")})

        assert outcome.job.status == JobStatus.COMPLETED.value
        assert outcome.job.sections_failed == SMS_B
        assert set(outcome.version.content) == {"sms1", "sms2", "sms3", "sms4", "sms5"}

    def test_failed_job_writes_nothing(self, db):
        _, outcome = _run_sms(db, {1: ChunkCallError("a"), 2: ChunkCallError("b")})

        assert outcome.job.status == JobStatus.FAILED.value
        assert outcome.version is None
        assert db.query(ContentVersion).count() == 0

    def test_context_reaches_prompts(self, db):
        service = GenerationService(db, client=None)
        job = service.request_generation("owner-a", "funnel-1", "sms-sequence", context={"business_name": "Peak"})
        prompts = []

        class CapturingClient(ScriptedClient):
            def generate(self, system_prompt, prompt, *, max_tokens, timeout):
                prompts.append(prompt)
                return super().generate(system_prompt, prompt, max_tokens=max_tokens, timeout=timeout)

        service.client = CapturingClient({1: chunk_fields("sms-sequence", 1), 2: chunk_fields("sms-sequence", 2)})
        service.execute(job)

        assert len(prompts) == 2
        assert all("Business Name: Peak" in p for p in prompts)

    def test_other_owner_same_group_keeps_content_separate(self, db):
        _, mine = _run_sms(db, {1: chunk_fields("sms-sequence", 1, tag="-a"), 2: chunk_fields("sms-sequence", 2, tag="-a")})

        service = _service(db, {1: chunk_fields("sms-sequence", 1, tag="-b"), 2: chunk_fields("sms-sequence", 2, tag="-b")})
        theirs = service.execute(service.request_generation("owner-b", "funnel-1", "sms-sequence"))

        assert theirs.job.status == JobStatus.COMPLETED.value
        assert theirs.version.owner_id == "owner-b"
        assert theirs.version.version == 1
        current = service.versions.get_current("owner-a", "funnel-1", "smsSequence")
        assert current.id == mine.version.id
        assert current.content["sms1"]["message"].endswith("-a")

    def test_retry_never_carries_other_owner_content(self, db):
        _run_sms(db, {1: chunk_fields("sms-sequence", 1, tag="-a"), 2: chunk_fields("sms-sequence", 2, tag="-a")})

        service = _service(db, {1: chunk_fields("sms-sequence", 1, tag="-b"), 2: ChunkCallError("timeout")})
        service.execute(service.request_generation("owner-b", "funnel-1", "sms-sequence"))
        retry = service.request_retry("owner-b", "sms-sequence", "funnel-1")

        service.client = ScriptedClient({2: chunk_fields("sms-sequence", 2, tag="-b")})
        outcome = service.execute(retry)

        assert service.client.calls == [2]
        assert outcome.version.owner_id == "owner-b"
        assert all(value["message"].endswith("-b") for value in outcome.version.content.values())

    def test_execute_requires_client(self, db):
        service = GenerationService(db)
        job = service.request_generation("owner-a", "funnel-1", "sms-sequence")
        with pytest.raises(ValueError):
            service.execute(job)


class TestRetry:

    def test_retry_regenerates_only_failed_chunk(self, db):
        service, first = _run_sms(
            db,
            {1: chunk_fields("sms-sequence", 1), 2: ChunkCallError("timeout")},
            context={"business_name": "Peak"},
        )

        retry = service.request_retry("owner-a", "sms-sequence", "funnel-1")

        assert retry.retry_of_job_id == first.job.id
        assert retry.sections_to_generate == SMS_B
        assert retry.input_context == {"business_name": "Peak"}

        service.client = ScriptedClient({2: chunk_fields("sms-sequence", 2)})
        outcome = service.execute(retry)

        assert service.client.calls == [2]
        assert outcome.job.status == JobStatus.COMPLETED.value
        assert outcome.job.sections_failed == []
        assert outcome.version.version == 2
        assert outcome.version.content["sms1"] == first.version.content["sms1"]
        assert len(outcome.version.content) == 10

    def test_explicit_sections(self, db):
        service, first = _run_sms(db, {1: chunk_fields("sms-sequence", 1), 2: chunk_fields("sms-sequence", 2)})

        retry = service.request_retry("owner-a", "sms-sequence", "funnel-1", failed_section_ids=["sms3", "sms3"])
        assert retry.sections_to_generate == ["sms3"]

        service.client = ScriptedClient({1: chunk_fields("sms-sequence", 1, tag="-new")})
        outcome = service.execute(retry)

        assert service.client.calls == [1]
        assert outcome.version.content["sms3"]["message"].endswith("-new")
        assert outcome.version.content["sms6"] == first.version.content["sms6"]

    def test_unknown_section_rejected(self, db):
        service = _service(db)
        with pytest.raises(ValidationError) as exc:
            service.request_retry("owner-a", "sms-sequence", "funnel-1", failed_section_ids=["sms99"])
        assert exc.value.details["field"] == "failed_section_ids"

    def test_nothing_to_retry(self, db):
        service, _ = _run_sms(db, {1: chunk_fields("sms-sequence", 1), 2: chunk_fields("sms-sequence", 2)})
        with pytest.raises(ValidationError):
            service.request_retry("owner-a", "sms-sequence", "funnel-1")

    def test_force_regenerates_everything(self, db):
        service, _ = _run_sms(db, {1: chunk_fields("sms-sequence", 1), 2: chunk_fields("sms-sequence", 2)})

        retry = service.request_retry("owner-a", "sms-sequence", "funnel-1", force=True)
        assert retry.force_regenerate is True
        assert retry.sections_to_generate is None

        service.client = ScriptedClient({
            1: chunk_fields("sms-sequence", 1, tag="-f"),
            2: chunk_fields("sms-sequence", 2, tag="-f"),
        })
        outcome = service.execute(retry)

        assert sorted(service.client.calls) == [1, 2]
        assert outcome.version.version == 2

    def test_unknown_content_type(self, db):
        with pytest.raises(UnknownContentTypeError):
            _service(db).request_retry("owner-a", "fax-sequence", "funnel-1", force=True)
