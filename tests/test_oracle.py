"""Tests for the HTTP reasoning oracle. All HTTP calls are mocked."""

from unittest.mock import MagicMock

import pytest
import requests

from wicketwise.consensus import STRUCTURAL_SCHEMA
from wicketwise.errors import (
    CredentialRejectedError,
    MalformedResponseError,
    QuotaExhaustedError,
    UpstreamUnavailableError,
)
from wicketwise.oracle import STRUCTURE_TOOL_NAME, HttpReasoningOracle
from tests.conftest import structural_response


def _response(status=200, payload=None, headers=None):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 400
    response.headers = headers or {}
    response.text = ""
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def _oracle(*responses) -> tuple[HttpReasoningOracle, MagicMock]:
    session = MagicMock(spec=requests.Session)
    session.post.side_effect = list(responses)
    return HttpReasoningOracle(perplexity_api_key="pplx", anthropic_api_key="sk-ant", session=session), session


class TestSummarize:
    def test_parses_text_and_citations(self):
        oracle, session = _oracle(_response(payload={
            "choices": [{"message": {"content": "  India favoured after powerplay.  "}}],
            "search_results": [{"title": "ESPNcricinfo", "url": "https://espncricinfo.com/live"}],
            "citations": ["https://espncricinfo.com/live", "https://www.cricbuzz.com/match/1"],
        }))

        pulse = oracle.summarize("prompt")

        assert pulse.text == "India favoured after powerplay."
        assert [(c.title, c.url) for c in pulse.citations] == [
            ("ESPNcricinfo", "https://espncricinfo.com/live"),
            ("www.cricbuzz.com", "https://www.cricbuzz.com/match/1"),
        ]
        headers = session.post.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer pplx"

    def test_missing_key_is_unavailable(self):
        oracle = HttpReasoningOracle(perplexity_api_key="", anthropic_api_key="", session=MagicMock())
        with pytest.raises(UpstreamUnavailableError):
            oracle.summarize("prompt")
        with pytest.raises(UpstreamUnavailableError):
            oracle.structure("prompt", STRUCTURAL_SCHEMA)

    def test_rate_limit_carries_retry_after(self):
        oracle, _ = _oracle(_response(429, headers={"retry-after": "20"}))
        with pytest.raises(QuotaExhaustedError) as exc_info:
            oracle.summarize("prompt")
        assert exc_info.value.retry_after == 20.0

    def test_unauthorized_is_credential_rejection(self):
        oracle, _ = _oracle(_response(401))
        with pytest.raises(CredentialRejectedError):
            oracle.summarize("prompt")

    def test_connection_error_is_unavailable(self):
        oracle, _ = _oracle(requests.exceptions.ConnectionError("refused"))
        with pytest.raises(UpstreamUnavailableError):
            oracle.summarize("prompt")


class TestStructure:
    def test_returns_forced_tool_input(self):
        payload = structural_response()
        oracle, session = _oracle(_response(payload={
            "content": [{"type": "tool_use", "name": STRUCTURE_TOOL_NAME, "input": payload}],
        }))

        result = oracle.structure("prompt", STRUCTURAL_SCHEMA, system="panel rules")

        assert result == payload
        body = session.post.call_args.kwargs["json"]
        assert body["tool_choice"] == {"type": "tool", "name": STRUCTURE_TOOL_NAME}
        assert body["tools"][0]["input_schema"] is STRUCTURAL_SCHEMA
        assert body["system"] == "panel rules"

    def test_falls_back_to_json_text_block(self):
        oracle, _ = _oracle(_response(payload={
            "content": [{"type": "text", "text": '```json\n{"context": {}, "consensusLevel": 1, "observations": []}\n```'}],
        }))
        assert oracle.structure("prompt", STRUCTURAL_SCHEMA)["consensusLevel"] == 1

    def test_no_structured_output_is_malformed(self):
        oracle, _ = _oracle(_response(payload={"content": [{"type": "text", "text": "I cannot help"}]}))
        with pytest.raises(MalformedResponseError):
            oracle.structure("prompt", STRUCTURAL_SCHEMA)

    def test_invalid_json_body_is_malformed(self):
        oracle, _ = _oracle(_response(payload=ValueError("bad json")))
        with pytest.raises(MalformedResponseError):
            oracle.structure("prompt", STRUCTURAL_SCHEMA)

    def test_server_error_is_unavailable(self):
        oracle, _ = _oracle(_response(500))
        with pytest.raises(UpstreamUnavailableError):
            oracle.structure("prompt", STRUCTURAL_SCHEMA)
