"""
Conversation-to-memory extraction providers.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import httpx

import contextvault.config as config
from contextvault.errors import ExtractionParseError, ProviderTransportError, ValidationIssue

logger = config.logger

DEFAULT_MEMORY_TYPE = "general"

EXTRACTION_PROMPT = """You extract durable memories about the user from a conversation.
Return a JSON object of the form {"memories": [{"content": str, "memoryType": str, "importance": int}]}.
memoryType is one of: general, preference, fact, goal, event, relationship, instruction.
importance is 1 (trivia) to 10 (critical). Only include facts worth remembering
across conversations. Return {"memories": []} when there is nothing to keep."""

SUMMARY_MERGE_PROMPT = """You maintain a concise profile summary of a user.
You receive a JSON object with "existing_summary" and "new_memories".
Rewrite the summary so it incorporates the new memories, drops anything they
contradict, and stays under 200 words. Reply with the summary text only."""


@dataclass
class ConversationMessage:
    role: str
    content: str


@dataclass
class ExtractedMemory:
    content: str
    memory_type: str = DEFAULT_MEMORY_TYPE
    importance: int = config.DEFAULT_IMPORTANCE


@dataclass
class ExtractionResult:
    memories: List[ExtractedMemory] = field(default_factory=list)


def _coerce_importance(value) -> int:
    if isinstance(value, bool):
        return config.DEFAULT_IMPORTANCE
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return config.DEFAULT_IMPORTANCE
    return min(10, max(1, number))


def _coerce_memory_type(value) -> str:
    if not isinstance(value, str) or not value.strip():
        return DEFAULT_MEMORY_TYPE
    memory_type = value.strip().lower()
    if len(memory_type) > config.MAX_TYPE_LENGTH:
        return DEFAULT_MEMORY_TYPE
    return memory_type


def parse_extraction_payload(payload) -> ExtractionResult:
    """
    Turn a model response into an ``ExtractionResult``.

    Accepts a JSON string or an already decoded object, shaped either as
    ``{"memories": [...]}`` or as a bare list. Unrecognized importance falls
    back to 5 and unrecognized type to ``general``; candidates without content
    are dropped. Anything that is not a list of objects raises
    ``ExtractionParseError``.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as exc:
            raise ExtractionParseError(f"Failed to parse memory extraction response: {exc}") from exc

    if isinstance(payload, dict):
        items = payload.get("memories")
    else:
        items = payload
    if not isinstance(items, list):
        raise ExtractionParseError("Memory extraction response must contain a list of memories")

    memories = []
    for item in items:
        if not isinstance(item, dict):
            raise ExtractionParseError("Memory extraction entries must be objects")
        content = item.get("content")
        if not isinstance(content, str) or not content.strip():
            continue
        memories.append(
            ExtractedMemory(
                content=content.strip(),
                memory_type=_coerce_memory_type(item.get("memoryType", item.get("memory_type"))),
                importance=_coerce_importance(item.get("importance", config.DEFAULT_IMPORTANCE)),
            )
        )
    return ExtractionResult(memories=memories)


def render_conversation(conversation: Sequence[dict]) -> str:
    return "\n".join(f"{message['role']}: {message['content']}" for message in conversation)


class ExtractionProvider:
    """Capability contract for conversation ingestion."""

    name = "custom"

    def extract_memories(self, conversation: Sequence[dict]) -> ExtractionResult:
        raise NotImplementedError

    def merge_summary(self, existing_summary: str, new_memories: Sequence[str]) -> str:
        raise NotImplementedError

    def close(self) -> None:
        return None


class CallableExtractionProvider(ExtractionProvider):
    """Adapter for caller-supplied extraction and merge functions."""

    def __init__(
        self,
        extract: Callable[[Sequence[dict]], object],
        merge: Callable[[str, Sequence[str]], str],
    ):
        self._extract = extract
        self._merge = merge

    def extract_memories(self, conversation: Sequence[dict]) -> ExtractionResult:
        result = self._extract(conversation)
        if isinstance(result, ExtractionResult):
            return result
        return parse_extraction_payload(result)

    def merge_summary(self, existing_summary: str, new_memories: Sequence[str]) -> str:
        return self._merge(existing_summary, list(new_memories))


class OpenAIExtractionProvider(ExtractionProvider):
    """Extraction over an OpenAI-compatible chat completions endpoint."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = config.EXTRACTION_MODEL,
        base_url: str = config.EXTRACTION_BASE_URL,
        *,
        timeout: float = config.EXTRACTION_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        if not api_key:
            raise ValidationIssue(
                "openai extraction provider requires an API key",
                field="api_key",
                error_type="required",
            )
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout))

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _complete(self, system_prompt: str, user_content: str, json_mode: bool) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "temperature": 0,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        try:
            response = self._client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.RequestError as exc:
            logger.warning("Extraction request failed", extra={"provider": self.name})
            raise ProviderTransportError(
                f"extraction request failed: {exc.__class__.__name__}",
                provider=self.name,
            ) from exc
        if response.status_code >= 400:
            logger.warning(
                "Extraction provider returned an error",
                extra={"provider": self.name, "status_code": response.status_code},
            )
            raise ProviderTransportError(
                f"extraction failed with status {response.status_code}",
                status_code=response.status_code,
                provider=self.name,
            )
        try:
            return response.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ExtractionParseError("Extraction response has no message content") from exc

    def extract_memories(self, conversation: Sequence[dict]) -> ExtractionResult:
        content = self._complete(EXTRACTION_PROMPT, render_conversation(conversation), json_mode=True)
        try:
            return parse_extraction_payload(content)
        except ExtractionParseError:
            logger.warning("Failed to parse extraction response", extra={"provider": self.name})
            raise

    def merge_summary(self, existing_summary: str, new_memories: Sequence[str]) -> str:
        body = json.dumps(
            {"existing_summary": existing_summary, "new_memories": list(new_memories)},
            ensure_ascii=False,
        )
        merged = self._complete(SUMMARY_MERGE_PROMPT, body, json_mode=False).strip()
        if not merged:
            logger.warning("Summary merge returned an empty reply", extra={"provider": self.name})
            raise ExtractionParseError("Summary merge returned an empty reply")
        return merged


def create_extraction_provider(
    provider: str,
    *,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    extract: Optional[Callable] = None,
    merge: Optional[Callable] = None,
) -> Optional[ExtractionProvider]:
    name = (provider or "").strip().lower()
    if name == "none":
        return None
    if name == "custom":
        if extract is None or merge is None:
            raise ValidationIssue(
                "custom extraction requires extract and merge callables",
                field="provider",
                error_type="required",
            )
        return CallableExtractionProvider(extract, merge)
    if name == "openai":
        return OpenAIExtractionProvider(
            api_key,
            model or config.EXTRACTION_MODEL,
            base_url or config.EXTRACTION_BASE_URL,
        )
    raise ValidationIssue(
        f"Unknown extraction provider: {provider}",
        field="provider",
        error_type="invalid_value",
    )


def extraction_provider_from_env() -> Optional[ExtractionProvider]:
    return create_extraction_provider(
        config.EXTRACTION_PROVIDER,
        api_key=config.OPENAI_API_KEY,
    )
