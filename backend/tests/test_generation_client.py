"""Tests for chunk output parsing, prompt building and the LiteLLM client.

LiteLLM calls are mocked; no network access.
"""

import json
from unittest.mock import patch, MagicMock

import pytest

from vaultgen.core.config import Settings
from vaultgen.services.content_schema import get_schema
from vaultgen.services.generation_client import (
    ChunkCallError, LiteLLMGenerationClient, ParseError, parse_chunk_output,
)
from vaultgen.services.partition_plan import get_plan
from vaultgen.services.prompts import SYSTEM_PROMPT, build_chunk_prompt, build_shared_context

from factories import chunk_fields

SMS_CHUNK_1 = get_plan("sms-sequence").get_chunk(1)


class TestParseChunkOutput:

    def test_plain_json(self):
        fields = chunk_fields("sms-sequence", 1)
        assert parse_chunk_output(json.dumps(fields), SMS_CHUNK_1) == fields

    def test_markdown_fences_stripped(self):
        fields = chunk_fields("sms-sequence", 1)
        raw = "```json\n" + json.dumps(fields) + "\n```"
        assert parse_chunk_output(raw, SMS_CHUNK_1) == fields

    def test_malformed_json_repaired(self):
        raw = '{"sms1": {"message": "Hi there", "timing": "Day 1"}, "sms2": {"message": "Tip",}'
        parsed = parse_chunk_output(raw, SMS_CHUNK_1)
        assert parsed["sms1"]["message"] == "Hi there"
        assert parsed["sms2"]["message"] == "Tip"

    def test_single_wrapper_key_unwrapped(self):
        fields = chunk_fields("sms-sequence", 1)
        raw = json.dumps({"smsSequence": fields})
        assert parse_chunk_output(raw, SMS_CHUNK_1) == fields

    def test_undeclared_fields_dropped(self):
        fields = chunk_fields("sms-sequence", 1)
        raw = json.dumps({**fields, "sms6": {"message": "belongs to chunk 2"}})
        parsed = parse_chunk_output(raw, SMS_CHUNK_1)
        assert "sms6" not in parsed
        assert set(parsed) == set(SMS_CHUNK_1.fields)

    def test_empty_output(self):
        with pytest.raises(ParseError):
            parse_chunk_output("", SMS_CHUNK_1)
        with pytest.raises(ParseError):
            parse_chunk_output(None, SMS_CHUNK_1)

    def test_array_output_rejected(self):
        with pytest.raises(ParseError, match="expected object"):
            parse_chunk_output('[{"sms1": {"message": "x"}}]', SMS_CHUNK_1)

    def test_no_chunk_fields(self):
        with pytest.raises(ParseError, match="none of"):
            parse_chunk_output('{"email1": {"subject": "x"}, "email2": {}}', SMS_CHUNK_1)


class TestPrompts:

    def test_prompt_lists_only_chunk_fields(self):
        schema = get_schema("sms-sequence")
        prompt = build_chunk_prompt(schema, SMS_CHUNK_1, 2, {"business_name": "Peak Coaching"})
        assert "Generate part 1 of 2" in prompt
        assert "sms5" in prompt
        assert "sms6" not in prompt
        assert "Peak Coaching" in prompt

    def test_reference_context_included_and_capped(self):
        schema = get_schema("sms-sequence")
        prompt = build_chunk_prompt(schema, SMS_CHUNK_1, 2, {}, reference_context="R" * 10000)
        assert "REFERENCE MATERIAL" in prompt
        assert "R" * 6000 in prompt
        assert "R" * 6001 not in prompt

    def test_shared_context_marks_missing_values(self):
        block = build_shared_context({"ideal_client": "Founders", "niche": "fitness"})
        assert "Ideal Client: Founders" in block
        assert "Business Name: Not specified" in block
        assert "niche: fitness" in block

    def test_optional_keys_requested_in_skeleton(self):
        sms = build_chunk_prompt(get_schema("sms-sequence"), SMS_CHUNK_1, 2, {})
        assert '"timing": "..."' in sms
        assert "object with non-empty message; also timing" in sms

        email_plan = get_plan("email-sequence")
        email = build_chunk_prompt(get_schema("email-sequence"), email_plan.get_chunk(1), 4, {})
        assert '"preview": "..."' in email
        assert '"subject": "..."' in email

    def test_funnel_page_prompt_lists_page_keys(self):
        plan = get_plan("funnel-copy")
        prompt = build_chunk_prompt(get_schema("funnel-copy"), plan.get_chunk(3), plan.total_chunks, {})
        assert "Generate part 3 of 4" in prompt
        assert '"booking_pill_text": "..."' in prompt
        assert "salesPage" not in prompt

    def test_system_prompt_demands_json(self):
        assert "ONLY valid JSON" in SYSTEM_PROMPT


class TestLiteLLMGenerationClient:

    def _settings(self, **overrides):
        values = {"generation_model": "openai/gpt-4o-mini", "generation_api_key": "sk-test"}
        values.update(overrides)
        return Settings(**values)

    def test_requires_model(self):
        with pytest.raises(ValueError):
            LiteLLMGenerationClient(self._settings(generation_model=""))

    def test_returns_message_content(self):
        mock_response = MagicMock()
        mock_response.choices = [MagicMock()]
        mock_response.choices[0].message.content = '{"sms1": {"message": "hi"}}'

        client = LiteLLMGenerationClient(self._settings())
        with patch("litellm.completion", return_value=mock_response) as completion:
            raw = client.generate("system", "prompt", max_tokens=2000, timeout=30)

        assert raw == '{"sms1": {"message": "hi"}}'
        kwargs = completion.call_args.kwargs
        assert kwargs["model"] == "openai/gpt-4o-mini"
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["max_tokens"] == 2000
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "api_base" not in kwargs

    def test_provider_error_becomes_chunk_call_error(self):
        client = LiteLLMGenerationClient(self._settings())
        with patch("litellm.completion", side_effect=Exception("LLM down")):
            with pytest.raises(ChunkCallError, match="LLM down"):
                client.generate("system", "prompt", max_tokens=100, timeout=5)

    def test_open_circuit_fails_fast(self):
        client = LiteLLMGenerationClient(self._settings(generation_model="openai/flaky"))
        with patch("litellm.completion", side_effect=Exception("503")) as completion:
            for _ in range(3):
                with pytest.raises(ChunkCallError):
                    client.generate("s", "p", max_tokens=10, timeout=5)
            with pytest.raises(ChunkCallError, match="Circuit breaker OPEN"):
                client.generate("s", "p", max_tokens=10, timeout=5)
        assert completion.call_count == 3
