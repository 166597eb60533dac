"""
Vector Store: embedding-indexed persistence for memories.
"""

from typing import List, Optional

from ..models.core import Memory, SimilarMemory, StoredVector
from ..utils.embedding_provider import EmbeddingProvider
from ..utils.logging_config import get_logger
from ..utils.similarity import cosine_similarity
from ..utils.storage import StorageBackend, StorageError

logger = get_logger(__name__)


class VectorStore:
    """Content and embedding index for memories, independent of the connection graph.

    Search is a linear cosine scan over every stored vector; ``find_similar`` is the
    only entry point callers rely on, so an indexed nearest-neighbour structure can
    replace the scan without touching them.
    """

    def __init__(self, embedder: EmbeddingProvider, storage: StorageBackend):
        """
        Initialize the vector store and load persisted vectors.

        Args:
            embedder: EmbeddingProvider used for stored content and queries
            storage: StorageBackend holding the vector collection
        """
        self.embedder = embedder
        self.storage = storage
        self._vectors: List[StoredVector] = []
        self._load()

        logger.info(f'Initialized VectorStore with {len(self._vectors)} vectors')

    def _load(self) -> None:
        try:
            records = self.storage.load()
            self._vectors = [StoredVector.from_dict(record) for record in records]
        except (StorageError, KeyError, TypeError, ValueError) as e:
            logger.error(f'Failed to load vector store from storage: {e}')
            self._vectors = []

    def _save(self) -> None:
        self.storage.save([vector.to_dict() for vector in self._vectors])

    def _index_of(self, memory_id: str) -> int:
        for index, vector in enumerate(self._vectors):
            if vector.id == memory_id:
                return index
        return -1

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, memory_id: str) -> bool:
        return self._index_of(memory_id) >= 0

    def ids(self) -> List[str]:
        return [vector.id for vector in self._vectors]

    def get(self, memory_id: str) -> Optional[StoredVector]:
        index = self._index_of(memory_id)
        return self._vectors[index] if index >= 0 else None

    def upsert(self, memory: Memory) -> StoredVector:
        """Embed a memory and insert or replace its stored vector.

        The embedding of an existing record is reused when its content is unchanged.

        Args:
            memory: Memory to index

        Returns:
            The stored vector

        Raises:
            EmbeddingError: If the content cannot be embedded; nothing is changed
            StorageError: If the collection cannot be persisted; nothing is changed
        """
        index = self._index_of(memory.id)
        previous = self._vectors[index] if index >= 0 else None

        if previous is not None and previous.content == memory.content:
            embedding = list(previous.embedding)
            logger.debug(f'Reusing embedding for unchanged memory: {memory.id}')
        else:
            embedding = self.embedder.embed(memory.content)

        stored = StoredVector.from_memory(memory, embedding)
        if previous is not None:
            self._vectors[index] = stored
        else:
            self._vectors.append(stored)

        try:
            self._save()
        except StorageError as e:
            logger.error(f'Failed to save vector store after upsert of {memory.id}: {e}')
            if previous is not None:
                self._vectors[index] = previous
            else:
                self._vectors.pop()
            raise

        logger.debug(f'Upserted vector: {memory.id}')
        return stored

    def put(self, vector: StoredVector) -> None:
        """Insert or replace an already embedded record, e.g. to undo a change.

        Raises:
            StorageError: If the collection cannot be persisted; nothing is changed
        """
        vectors = list(self._vectors)
        index = self._index_of(vector.id)
        if index >= 0:
            vectors[index] = vector
        else:
            vectors.append(vector)
        self.restore(vectors)

    def restore(self, vectors: List[StoredVector]) -> None:
        """Replace the whole collection with already embedded records.

        Raises:
            StorageError: If the collection cannot be persisted; nothing is changed
        """
        previous = self._vectors
        self._vectors = list(vectors)
        try:
            self._save()
        except StorageError:
            self._vectors = previous
            raise

    def delete(self, memory_id: str) -> bool:
        """Remove the stored vector for ``memory_id``.

        Returns:
            True if a vector was removed, False if none existed

        Raises:
            StorageError: If the collection cannot be persisted; nothing is changed
        """
        index = self._index_of(memory_id)
        if index < 0:
            return False

        removed = self._vectors.pop(index)
        try:
            self._save()
        except StorageError as e:
            logger.error(f'Failed to save vector store after delete of {memory_id}: {e}')
            self._vectors.insert(index, removed)
            raise

        logger.debug(f'Deleted vector: {memory_id}')
        return True

    def clear(self) -> None:
        """Remove every stored vector.

        Raises:
            StorageError: If the empty collection cannot be persisted; nothing is changed
        """
        previous = self._vectors
        self._vectors = []
        try:
            self._save()
        except StorageError as e:
            logger.error(f'Failed to save cleared vector store: {e}')
            self._vectors = previous
            raise

        logger.info(f'Cleared {len(previous)} vectors')

    def find_similar(self,
                     query_text: str,
                     limit: int = 5,
                     min_similarity: float = 0.7,
                     workspace: Optional[str] = None,
                     thread: Optional[str] = None) -> List[SimilarMemory]:
        """Find stored memories most similar to a query.

        Args:
            query_text: Text to embed and compare
            limit: Maximum number of matches
            min_similarity: Matches scoring below this are dropped
            workspace: Only consider vectors stored for this workspace (optional)
            thread: Only consider vectors stored for this thread (optional)

        Returns:
            Matches sorted by descending similarity, ties in insertion order;
            each memory is a projection with no connections

        Raises:
            EmbeddingError: If the query cannot be embedded
            DimensionMismatchError: If a stored vector has a different dimension than the query
        """
        if limit <= 0:
            return []

        query_embedding = self.embedder.embed(query_text)

        scored = []
        for vector in self._vectors:
            if workspace is not None and vector.metadata.get('workspace') != workspace:
                continue
            if thread is not None and vector.metadata.get('thread') != thread:
                continue
            similarity = cosine_similarity(query_embedding, vector.embedding)
            if similarity >= min_similarity:
                scored.append((vector, similarity))

        # sorted() is stable, so equal scores keep insertion order
        scored = sorted(scored, key=lambda item: item[1], reverse=True)[:limit]

        logger.debug(f'Vector search returned {len(scored)} of {len(self._vectors)} vectors')
        return [SimilarMemory(memory=vector.to_memory(), similarity=similarity) for vector, similarity in scored]
