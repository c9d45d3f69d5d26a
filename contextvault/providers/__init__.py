from contextvault.providers.embedding import (
    EmbeddingProvider,
    GeminiEmbeddingProvider,
    OpenAIEmbeddingProvider,
    create_embedding_provider,
    embedding_provider_from_env,
    validate_embedding,
)
from contextvault.providers.extraction import (
    CallableExtractionProvider,
    ConversationMessage,
    ExtractedMemory,
    ExtractionProvider,
    ExtractionResult,
    OpenAIExtractionProvider,
    create_extraction_provider,
    extraction_provider_from_env,
    parse_extraction_payload,
)

__all__ = [
    "EmbeddingProvider",
    "GeminiEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "create_embedding_provider",
    "embedding_provider_from_env",
    "validate_embedding",
    "CallableExtractionProvider",
    "ConversationMessage",
    "ExtractedMemory",
    "ExtractionProvider",
    "ExtractionResult",
    "OpenAIExtractionProvider",
    "create_extraction_provider",
    "extraction_provider_from_env",
    "parse_extraction_payload",
]
