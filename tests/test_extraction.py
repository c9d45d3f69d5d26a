import json

import httpx
import pytest

from contextvault.errors import ExtractionParseError, ProviderTransportError, ValidationIssue
from contextvault.providers.extraction import (
    CallableExtractionProvider,
    ExtractedMemory,
    OpenAIExtractionProvider,
    create_extraction_provider,
    parse_extraction_payload,
)


def test_parse_wrapped_payload():
    result = parse_extraction_payload(
        '{"memories": [{"content": "Likes jazz", "memoryType": "preference", "importance": 6}]}'
    )
    assert result.memories == [ExtractedMemory("Likes jazz", "preference", 6)]


def test_parse_bare_list_with_defaults():
    result = parse_extraction_payload(
        [
            {"content": "No type or importance"},
            {"content": "Bad importance", "importance": "very"},
            {"content": "Out of range", "importance": 42, "memoryType": 7},
            {"content": "   "},
        ]
    )
    assert [(m.content, m.memory_type, m.importance) for m in result.memories] == [
        ("No type or importance", "general", 5),
        ("Bad importance", "general", 5),
        ("Out of range", "general", 10),
    ]


@pytest.mark.parametrize(
    "payload",
    [
        "not json at all",
        '{"memories": "nope"}',
        '{"other": []}',
        '["just a string"]',
        "42",
    ],
)
def test_parse_rejects_malformed(payload):
    with pytest.raises(ExtractionParseError):
        parse_extraction_payload(payload)


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def _completion(content):
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


def test_openai_extraction_round_trip():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return _completion('{"memories": [{"content": "Has two cats", "memoryType": "fact", "importance": 5}]}')

    provider = OpenAIExtractionProvider(
        "sk-test", model="gpt-test", base_url="https://llm.example/v1/", client=_client(handler)
    )
    result = provider.extract_memories([{"role": "user", "content": "I have two cats"}])

    assert [m.content for m in result.memories] == ["Has two cats"]
    assert seen["url"] == "https://llm.example/v1/chat/completions"
    assert seen["body"]["model"] == "gpt-test"
    assert seen["body"]["response_format"] == {"type": "json_object"}
    assert seen["body"]["messages"][1]["content"] == "user: I have two cats"


def test_openai_merge_summary_strips_reply():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return _completion("  Has two cats and likes jazz.  \n")

    provider = OpenAIExtractionProvider("sk-test", client=_client(handler))
    merged = provider.merge_summary("Likes jazz.", ["Has two cats"])

    assert merged == "Has two cats and likes jazz."
    assert "response_format" not in seen["body"]
    assert json.loads(seen["body"]["messages"][1]["content"]) == {
        "existing_summary": "Likes jazz.",
        "new_memories": ["Has two cats"],
    }


def test_openai_merge_summary_rejects_blank_reply():
    provider = OpenAIExtractionProvider("sk-test", client=_client(lambda r: _completion("   \n")))
    with pytest.raises(ExtractionParseError):
        provider.merge_summary("Likes jazz.", ["Has two cats"])


def test_openai_extraction_error_status():
    provider = OpenAIExtractionProvider("sk-test", client=_client(lambda r: httpx.Response(500)))
    with pytest.raises(ProviderTransportError):
        provider.extract_memories([{"role": "user", "content": "hi"}])


def test_openai_extraction_unparseable_content():
    provider = OpenAIExtractionProvider("sk-test", client=_client(lambda r: _completion("sorry, no")))
    with pytest.raises(ExtractionParseError):
        provider.extract_memories([{"role": "user", "content": "hi"}])


def test_callable_provider_accepts_raw_payloads():
    provider = CallableExtractionProvider(
        extract=lambda conversation: [{"content": "From callable", "memoryType": "fact"}],
        merge=lambda existing, new: existing + "|" + ",".join(new),
    )
    result = provider.extract_memories([])
    assert result.memories[0].content == "From callable"
    assert provider.merge_summary("a", ["b", "c"]) == "a|b,c"


def test_create_extraction_provider_variants():
    assert create_extraction_provider("none") is None
    with pytest.raises(ValidationIssue):
        create_extraction_provider("custom")
    with pytest.raises(ValidationIssue):
        create_extraction_provider("anthropic")
    with pytest.raises(ValidationIssue):
        create_extraction_provider("openai", api_key=None)
    custom = create_extraction_provider("custom", extract=lambda c: [], merge=lambda e, n: e)
    assert isinstance(custom, CallableExtractionProvider)
