import hashlib
import math
import os
import re

import pytest

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "none")
os.environ.setdefault("EMBEDDING_PROVIDER", "none")
os.environ.setdefault("TENANT_EMBEDDING_PROVIDER", "none")
os.environ.setdefault("EXTRACTION_PROVIDER", "none")

from sqlalchemy.orm import sessionmaker

from contextvault.db import DB, create_db_engine
from contextvault.models import Base
from contextvault.providers.embedding import EmbeddingProvider
from contextvault.providers.extraction import ExtractedMemory, ExtractionProvider, ExtractionResult
from contextvault.services.memory_service import MemoryService

TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic hashed bag-of-words, unit-normalized."""

    name = "fake"

    def __init__(self, dimensions: int = 512):
        self.dimensions = dimensions
        self.calls = 0
        self.closed = False

    def embed(self, text):
        self.calls += 1
        vector = [0.0] * self.dimensions
        for token in TOKEN_PATTERN.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).hexdigest()
            vector[int(digest, 16) % self.dimensions] += 1.0
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]

    def close(self):
        self.closed = True


class FailingEmbeddingProvider(EmbeddingProvider):
    name = "failing"

    def embed(self, text):
        from contextvault.errors import ProviderTransportError

        raise ProviderTransportError("upstream unavailable", status_code=503, provider=self.name)


class FakeExtractionProvider(ExtractionProvider):
    name = "fake"

    def __init__(self, memories=None, merged_summary=None):
        self.memories = list(memories or [])
        self.merged_summary = merged_summary
        self.extract_calls = []
        self.merge_calls = []

    def extract_memories(self, conversation):
        self.extract_calls.append(list(conversation))
        return ExtractionResult(memories=list(self.memories))

    def merge_summary(self, existing_summary, new_memories):
        self.merge_calls.append((existing_summary, list(new_memories)))
        if self.merged_summary is not None:
            return self.merged_summary
        parts = [existing_summary] if existing_summary else []
        return " ".join(parts + list(new_memories))


@pytest.fixture
def db_engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'contextvault.sqlite'}")
    Base.metadata.create_all(engine)
    previous_engine = DB.engine
    previous_session = DB.SessionLocal
    DB.engine = engine
    DB.SessionLocal = sessionmaker(bind=engine)
    try:
        yield engine
    finally:
        DB.engine = previous_engine
        DB.SessionLocal = previous_session
        engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return DB.SessionLocal


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def embedder():
    return FakeEmbeddingProvider()


@pytest.fixture
def service(session_factory, embedder):
    return MemoryService(embedding_provider=embedder, session_factory=session_factory)


@pytest.fixture
def make_extractor():
    def _make(memories=(), merged_summary=None):
        return FakeExtractionProvider(
            memories=[ExtractedMemory(**item) if isinstance(item, dict) else item for item in memories],
            merged_summary=merged_summary,
        )

    return _make
