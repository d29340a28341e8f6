"""Strict decode of agent tool results."""

import pytest
from conftest import tool_result

from second_opinion.agents.payloads import (
    EMPTY_RESPONSE_ERROR,
    AgentFailure,
    AgentSuccess,
    decode_payload,
    decode_tool_result,
)
from second_opinion.errors import PayloadError


class TestDecodePayload:
    def test_success(self):
        payload = decode_payload(
            '{"response": "Use a pool", "tokensUsed": 12, "provider": "openai", "model": "gpt-4o"}'
        )
        assert isinstance(payload, AgentSuccess)
        assert payload.response == "Use a pool"
        assert payload.tokens_used == 12

    def test_tokens_optional(self):
        payload = decode_payload('{"response": "ok", "provider": "google", "model": "g"}')
        assert payload.tokens_used is None

    def test_failure_with_flag(self):
        payload = decode_payload('{"error": "boom", "provider": "openai"}', is_error=True)
        assert isinstance(payload, AgentFailure)
        assert payload.error == "boom"

    def test_error_field_without_flag(self):
        payload = decode_payload('{"error": "quota exceeded"}')
        assert isinstance(payload, AgentFailure)

    def test_flag_without_error_field(self):
        payload = decode_payload('{"provider": "openai"}', is_error=True)
        assert isinstance(payload, AgentFailure)
        assert payload.error

    def test_plain_text_error(self):
        payload = decode_payload("Input validation error: 'query' is required", is_error=True)
        assert isinstance(payload, AgentFailure)
        assert "query" in payload.error

    @pytest.mark.parametrize("text", ["", "   "])
    def test_empty_text(self, text):
        with pytest.raises(PayloadError, match=EMPTY_RESPONSE_ERROR):
            decode_payload(text)

    def test_not_json(self):
        with pytest.raises(PayloadError, match="Malformed"):
            decode_payload("<html>oops</html>")

    def test_not_an_object(self):
        with pytest.raises(PayloadError, match="expected object"):
            decode_payload('["response"]')

    def test_wrong_types(self):
        with pytest.raises(PayloadError, match="invalid field"):
            decode_payload('{"response": "ok", "tokensUsed": "many"}')

    def test_negative_tokens(self):
        with pytest.raises(PayloadError):
            decode_payload('{"response": "ok", "tokensUsed": -1}')

    def test_blank_response(self):
        with pytest.raises(PayloadError, match=EMPTY_RESPONSE_ERROR):
            decode_payload('{"response": "  ", "provider": "openai"}')


class TestDecodeToolResult:
    def test_reads_first_text_block(self):
        payload = decode_tool_result(tool_result({"response": "hi there", "provider": "p", "model": "m"}))
        assert isinstance(payload, AgentSuccess)

    def test_error_flag_forwarded(self):
        payload = decode_tool_result(tool_result({"error": "bad key"}, is_error=True))
        assert isinstance(payload, AgentFailure)

    def test_no_content(self):
        from mcp import types

        with pytest.raises(PayloadError, match=EMPTY_RESPONSE_ERROR):
            decode_tool_result(types.CallToolResult(content=[]))
