from __future__ import annotations

import hashlib
import re
from typing import Dict, Iterable, List, Sequence
from unittest.mock import Mock

import pytest

from nexusmem.services.memory_extraction import MemoryExtractionService
from nexusmem.services.memory_management import MemoryManagementService
from nexusmem.services.vector_store import VectorStore
from nexusmem.utils.config import RetrievalConfig
from nexusmem.utils.embedding_provider import EmbeddingError, EmbeddingProvider
from nexusmem.utils.storage import InMemoryStorage, StorageError


class KeywordEmbedder(EmbeddingProvider):
    """Deterministic bag-of-words embedder: each token is hashed into a bucket."""

    dimension = 8192

    def __init__(self, fail_on: Iterable[str] = ()):
        self.fail_on = set(fail_on)
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if not text or not text.strip():
            raise EmbeddingError('Cannot embed empty text')
        if text in self.fail_on:
            raise EmbeddingError(f'Provider refused: {text}')

        vector = [0.0] * self.dimension
        for token in re.findall(r'[a-z0-9]+', text.lower()):
            bucket = int(hashlib.md5(token.encode('utf-8')).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0
        return vector


class TableEmbedder(EmbeddingProvider):
    """Returns preset vectors; unknown text fails like an unavailable provider."""

    def __init__(self, table: Dict[str, Sequence[float]]):
        self.table = table
        self.dimension = len(next(iter(table.values())))
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if text not in self.table:
            raise EmbeddingError(f'No vector for: {text}')
        return list(self.table[text])


class FailingStorage(InMemoryStorage):
    """In-memory storage whose reads or writes can be switched to fail."""

    def __init__(self, fail_load: bool = False, fail_save: bool = False):
        super().__init__()
        self.fail_load = fail_load
        self.fail_save = fail_save

    def load(self):
        if self.fail_load:
            raise StorageError('disk unreadable')
        return super().load()

    def save(self, records):
        if self.fail_save:
            raise StorageError('disk full')
        super().save(records)


@pytest.fixture
def retrieval_config() -> RetrievalConfig:
    return RetrievalConfig(related_min_similarity=0.7,
                           related_limit=5,
                           extraction_context_limit=5,
                           extraction_context_min_similarity=0.7,
                           source_excerpt_length=100)


@pytest.fixture
def keyword_embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def mock_llm() -> Mock:
    llm = Mock()
    llm.complete_json.return_value = '{"memories": []}'
    return llm


@pytest.fixture
def vector_storage() -> FailingStorage:
    return FailingStorage()


@pytest.fixture
def memory_storage() -> FailingStorage:
    return FailingStorage()


@pytest.fixture
def vector_store(keyword_embedder, vector_storage) -> VectorStore:
    return VectorStore(keyword_embedder, vector_storage)


@pytest.fixture
def service(vector_store, mock_llm, memory_storage, retrieval_config) -> MemoryManagementService:
    return MemoryManagementService(vector_store, MemoryExtractionService(mock_llm), memory_storage, retrieval_config)
