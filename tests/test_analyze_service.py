"""Tests for the language model relay."""

import asyncio
import json

import httpx
import pytest

from conftest import anthropic_reply, make_analyze_service
from models.models import AnalyzeRequest
from services.errors import MissingTranscriptError, UpstreamError


def run(coro):
    return asyncio.run(coro)


def test_sends_single_messages_request():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=anthropic_reply('{"score": 2, "review": "Fair."}'))

    service = make_analyze_service(handler)
    result = run(service.analyze(AnalyzeRequest(transcript="We talked about my headaches.", doctorName="Dr. Lee")))

    assert result.score == 2
    assert result.review == "Fair."
    assert len(seen) == 1

    request = seen[0]
    assert str(request.url) == "https://api.anthropic.com/v1/messages"
    assert request.headers["x-api-key"] == "test-key"
    assert request.headers["anthropic-version"] == "2023-06-01"

    body = json.loads(request.content)
    assert body["model"] == "claude-3-haiku-20240307"
    assert body["max_tokens"] == 512
    assert body["system"].startswith("You strictly output machine-readable JSON")
    assert body["messages"][0]["role"] == "user"
    assert "Doctor: Dr. Lee" in body["messages"][0]["content"]
    assert body["messages"][0]["content"].endswith("We talked about my headaches.")


@pytest.mark.parametrize(
    "reply",
    ["not json at all", '{"score": ', "", '"just a string"'],
)
def test_unparseable_reply_never_raises(reply):
    service = make_analyze_service(lambda request: httpx.Response(200, json=anthropic_reply(reply)))

    result = run(service.analyze(AnalyzeRequest(transcript="text")))

    assert result.score is None
    assert result.review == reply


def test_missing_content_blocks_fall_back_to_empty_review():
    service = make_analyze_service(lambda request: httpx.Response(200, json={"content": []}))

    result = run(service.analyze(AnalyzeRequest(transcript="text")))

    assert result.score is None
    assert result.review == ""


@pytest.mark.parametrize("transcript", ["", "   \n\t", None])
def test_blank_transcript_rejected_without_calling_upstream(transcript):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=anthropic_reply("{}"))

    service = make_analyze_service(handler)

    with pytest.raises(MissingTranscriptError):
        run(service.analyze(AnalyzeRequest(transcript=transcript)))
    assert calls == []


def test_upstream_failure_carries_body():
    error_body = {"type": "error", "error": {"type": "authentication_error", "message": "invalid x-api-key"}}
    service = make_analyze_service(lambda request: httpx.Response(401, json=error_body))

    with pytest.raises(UpstreamError) as exc_info:
        run(service.analyze(AnalyzeRequest(transcript="text")))

    assert exc_info.value.status_code == 502
    assert exc_info.value.message == "Anthropic failed"
    assert exc_info.value.detail == error_body
