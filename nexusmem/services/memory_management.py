"""
Memory Management Service: memory collection, connection graph, extraction and related-memory ranking.
"""

import math
import uuid
from dataclasses import replace
from typing import Any, Dict, List, Optional

from ..models.core import (CONNECTION_TYPES, MEMORY_TYPES, Connection, Memory, MemoryCandidate, RelatedMemory, StoredVector,
                           normalize_tags)
from ..utils.bedrock_llm import BedrockLLM, BedrockLLMError
from ..utils.config import AppConfig, RetrievalConfig
from ..utils.embedding_provider import EmbeddingError, create_embedding_provider
from ..utils.logging_config import get_logger
from ..utils.similarity import DimensionMismatchError
from ..utils.storage import StorageBackend, StorageError, create_storage
from ..utils.timestamp_utils import next_timestamp
from .memory_extraction import ExtractionParseError, MemoryExtractionService
from .vector_store import VectorStore

logger = get_logger(__name__)


def _clamp_strength(value: Any) -> float:
    """Clamp an edge strength or similarity to [0, 1]; non-numeric values count as 0."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


class MemoryManagementService:
    """Unified service for memory creation, graph maintenance and retrieval.

    Owns the memory collection (memories with their connections). The vector store
    holds the embedding twin of every memory; both are kept in sync here.
    """

    def __init__(self,
                 vector_store: VectorStore,
                 extraction: MemoryExtractionService,
                 storage: StorageBackend,
                 retrieval: RetrievalConfig):
        """
        Initialize the memory management service and load the memory collection.

        Args:
            vector_store: VectorStore holding memory embeddings
            extraction: MemoryExtractionService used for conversation extraction
            storage: StorageBackend holding the memory collection
            retrieval: RetrievalConfig with similarity thresholds and limits
        """
        self.vector_store = vector_store
        self.extraction = extraction
        self.storage = storage
        self.retrieval = retrieval
        self._memories: List[Memory] = []
        self._last_timestamp: Optional[int] = None
        self._load()

        logger.info(f'Initialized MemoryManagementService with {len(self._memories)} memories')

    # Persistence

    def _load(self) -> None:
        try:
            records = self.storage.load()
            self._memories = [Memory.from_dict(record) for record in records]
        except (StorageError, KeyError, TypeError, ValueError) as e:
            logger.error(f'Failed to load memories from storage: {e}')
            self._memories = []

        if self._memories:
            self._last_timestamp = max(memory.timestamp for memory in self._memories)

    def _save(self) -> None:
        self.storage.save([memory.to_dict() for memory in self._memories])

    def _commit(self, previous: List[Memory]) -> None:
        """Persist the collection, restoring ``previous`` if the write fails."""
        try:
            self._save()
        except StorageError:
            self._memories = previous
            raise

    def _index_of(self, memory_id: str) -> int:
        for index, memory in enumerate(self._memories):
            if memory.id == memory_id:
                return index
        return -1

    # Queries

    def get_memory(self, memory_id: str) -> Optional[Memory]:
        index = self._index_of(memory_id)
        return self._memories[index] if index >= 0 else None

    def list_memories(self, type_filter: Optional[str] = None, query: Optional[str] = None) -> List[Memory]:
        """List memories, newest first.

        Args:
            type_filter: Only include memories of this type (optional)
            query: Case-insensitive substring matched against content and tags (optional)

        Returns:
            List of Memory objects
        """
        needle = query.strip().lower() if query else ''
        memories = []
        for memory in self._memories:
            if type_filter and memory.type != type_filter:
                continue
            if needle and needle not in memory.content.lower() and not any(needle in tag.lower() for tag in memory.tags):
                continue
            memories.append(memory)
        return sorted(memories, key=lambda memory: memory.timestamp, reverse=True)

    def get_referrers(self, memory_id: str) -> List[Memory]:
        """Memories holding an outgoing edge to ``memory_id``, found by scanning."""
        return [memory for memory in self._memories if memory.get_connection(memory_id) is not None]

    def find_similar(self, content: str, limit: int = 5, threshold: float = 0.7) -> List[Memory]:
        """Find memories semantically similar to ``content``.

        Returns the full memory (with connections) where the collection has it,
        otherwise the vector store projection.

        Raises:
            EmbeddingError: If the query cannot be embedded
        """
        results = self.vector_store.find_similar(content, limit=limit, min_similarity=threshold)
        return [self.get_memory(match.memory.id) or match.memory for match in results]

    # Mutations

    def _store(self, memory: Memory) -> Memory:
        """Upsert a memory into the vector store and then into the collection.

        Raises:
            EmbeddingError: If embedding fails; nothing is changed
            StorageError: If either collection cannot be persisted; nothing is changed
        """
        previous_vector = self.vector_store.get(memory.id)
        self.vector_store.upsert(memory)

        previous = list(self._memories)
        self._memories = [m for m in self._memories if m.id != memory.id]
        self._memories.append(memory)
        try:
            self._commit(previous)
        except StorageError as e:
            logger.error(f'Failed to save memory {memory.id}, rolling back vector: {e}')
            self._rollback_vector(memory.id, previous_vector)
            raise

        self._last_timestamp = max(self._last_timestamp or 0, memory.timestamp)
        return memory

    def _rollback_vector(self, memory_id: str, previous_vector: Optional[StoredVector]) -> None:
        try:
            if previous_vector is None:
                self.vector_store.delete(memory_id)
            else:
                self.vector_store.put(previous_vector)
        except StorageError as e:
            logger.error(f'Failed to roll back vector for {memory_id}: {e}')

    def add_memory(self,
                   content: str,
                   memory_type: str,
                   source: str = '',
                   confidence: Optional[float] = None,
                   connections: Optional[List[Connection]] = None,
                   metadata: Optional[Dict[str, Any]] = None,
                   memory_id: Optional[str] = None,
                   timestamp: Optional[int] = None) -> Memory:
        """Add a single memory, or replace the memory with ``memory_id``.

        Args:
            content: Memory text
            memory_type: One of fact, concept, relationship
            source: Provenance string
            confidence: Confidence in [0, 1], defaults to 1.0
            connections: Outgoing connections
            metadata: Metadata with optional workspace, thread, context and tags
            memory_id: Existing id to replace (optional, a new id is generated otherwise)
            timestamp: Millisecond timestamp (optional, assigned monotonically otherwise)

        Returns:
            The stored Memory

        Raises:
            ValueError: If the type is unknown or the content is blank
            EmbeddingError: If the content cannot be embedded
            StorageError: If the memory cannot be persisted
        """
        if memory_type not in MEMORY_TYPES:
            raise ValueError(f'Unknown memory type: {memory_type}')
        if not content or not content.strip():
            raise ValueError('Memory content is required')

        metadata = dict(metadata or {})
        metadata['tags'] = normalize_tags(metadata.get('tags'))

        deduplicated: List[Connection] = []
        for connection in connections or []:
            deduplicated = [c for c in deduplicated if c.target_id != connection.target_id]
            deduplicated.append(connection)

        memory = Memory(id=memory_id or str(uuid.uuid4()),
                        type=memory_type,
                        content=content,
                        source=source,
                        timestamp=timestamp if timestamp is not None else next_timestamp(self._last_timestamp),
                        confidence=1.0 if confidence is None else confidence,
                        connections=deduplicated,
                        metadata=metadata)

        self._store(memory)
        logger.debug(f'Added memory: {memory.id}')
        return memory

    def remove_memory(self, memory_id: str) -> bool:
        """Delete a memory and its vector.

        Edges pointing at the removed memory are left in place and simply stop resolving.

        Returns:
            True if a memory or vector was removed

        Raises:
            StorageError: If the deletion cannot be persisted
        """
        previous_vector = self.vector_store.get(memory_id)
        removed_vector = self.vector_store.delete(memory_id)

        index = self._index_of(memory_id)
        if index < 0:
            return removed_vector

        previous = list(self._memories)
        del self._memories[index]
        try:
            self._commit(previous)
        except StorageError:
            if previous_vector is not None:
                self._rollback_vector(memory_id, previous_vector)
            raise

        logger.debug(f'Removed memory: {memory_id}')
        return True

    def clear_memories(self) -> None:
        """Remove every memory and vector.

        Raises:
            StorageError: If the empty state cannot be persisted
        """
        previous_vectors = [self.vector_store.get(vector_id) for vector_id in self.vector_store.ids()]
        self.vector_store.clear()

        previous = self._memories
        self._memories = []
        try:
            self._commit(previous)
        except StorageError:
            try:
                self.vector_store.restore(previous_vectors)
            except StorageError as e:
                logger.error(f'Failed to restore vectors after failed clear: {e}')
            raise

        logger.info(f'Cleared {len(previous)} memories')

    def add_connection(self,
                       source_id: str,
                       target_id: str,
                       connection_type: str,
                       strength: float,
                       description: Optional[str] = None) -> bool:
        """Add or replace the edge from ``source_id`` to ``target_id``.

        The target is not validated. Only the memory collection changes.

        Returns:
            True if the edge was written, False if the source memory does not exist

        Raises:
            ValueError: If the connection type is unknown
            StorageError: If the change cannot be persisted
        """
        if connection_type not in CONNECTION_TYPES:
            raise ValueError(f'Unknown connection type: {connection_type}')

        index = self._index_of(source_id)
        if index < 0:
            logger.warning(f'Cannot add connection, memory not found: {source_id}')
            return False

        source = self._memories[index]
        connection = Connection(type=connection_type, target_id=target_id, strength=strength, description=description)
        connections = list(source.connections)
        for position, existing in enumerate(connections):
            if existing.target_id == target_id:
                connections[position] = connection
                break
        else:
            connections.append(connection)

        previous = list(self._memories)
        self._memories[index] = replace(source, connections=connections)
        self._commit(previous)

        logger.debug(f'Connected {source_id} -[{connection_type}]-> {target_id}')
        return True

    def remove_connection(self, source_id: str, target_id: str) -> bool:
        """Remove the edge from ``source_id`` to ``target_id``.

        Returns:
            True if an edge was removed

        Raises:
            StorageError: If the change cannot be persisted
        """
        index = self._index_of(source_id)
        if index < 0:
            return False

        source = self._memories[index]
        connections = [c for c in source.connections if c.target_id != target_id]
        if len(connections) == len(source.connections):
            return False

        previous = list(self._memories)
        self._memories[index] = replace(source, connections=connections)
        self._commit(previous)

        logger.debug(f'Disconnected {source_id} -> {target_id}')
        return True

    def update_tags(self, memory_id: str, tags: List[str]) -> Optional[Memory]:
        """Replace a memory's tags and refresh its vector store projection.

        Returns:
            The updated Memory, or None if it does not exist

        Raises:
            EmbeddingError: If the vector store has to re-embed and fails
            StorageError: If the change cannot be persisted
        """
        memory = self.get_memory(memory_id)
        if memory is None:
            logger.warning(f'Cannot update tags, memory not found: {memory_id}')
            return None

        updated = replace(memory, metadata={**memory.metadata, 'tags': normalize_tags(tags)})
        return self._store(updated)

    # Extraction

    def extract_from_conversation(self,
                                  text: str,
                                  existing_memories: Optional[List[Memory]] = None,
                                  workspace: Optional[str] = None,
                                  thread: Optional[str] = None) -> List[Memory]:
        """Extract and store new memories from conversation text.

        Extraction is best effort: parse errors, language model failures and
        persistence failures are logged and yield an empty list. A batch that fails
        part way is rolled back.

        Args:
            text: Conversation text
            existing_memories: Extra memories offered as connection targets
            workspace: Workspace recorded in the new memories' metadata (optional)
            thread: Thread recorded in the new memories' metadata (optional)

        Returns:
            The newly stored memories
        """
        if not text or not text.strip():
            return []

        try:
            context = self._extraction_context(text, existing_memories or [])
            candidates = self.extraction.extract(text, context)
        except ExtractionParseError as e:
            logger.warning(f'Failed to parse memory extraction result: {e}')
            return []
        except (BedrockLLMError, EmbeddingError, DimensionMismatchError) as e:
            logger.error(f'Failed to extract memories: {e}')
            return []

        source = text[:self.retrieval.source_excerpt_length] + '...'
        created: List[Memory] = []
        for candidate in candidates:
            try:
                created.append(self._store(self._from_candidate(candidate, source, workspace, thread)))
            except (EmbeddingError, StorageError) as e:
                logger.error(f'Failed to store extracted memory, discarding {len(created)} stored in this batch: {e}')
                self._discard(created)
                return []

        logger.info(f'Extracted {len(created)} memories from conversation')
        return created

    def extract_from_messages(self, messages: List[Dict[str, str]], **kwargs) -> List[Memory]:
        """Extract memories from chat messages with ``role`` and ``content`` keys."""
        turns = []
        for msg in messages:
            content = (msg.get('content') or '').strip()
            if not content:
                continue
            speaker = 'Human' if msg.get('role') == 'user' else 'Assistant'
            turns.append(f'{speaker}: {content}')
        return self.extract_from_conversation('\n\n'.join(turns), **kwargs)

    def _extraction_context(self, text: str, existing_memories: List[Memory]) -> List[Memory]:
        similar = self.vector_store.find_similar(text,
                                                 limit=self.retrieval.extraction_context_limit,
                                                 min_similarity=self.retrieval.extraction_context_min_similarity)
        context = []
        seen_ids = set()
        for memory in list(existing_memories) + [match.memory for match in similar]:
            if memory.id not in seen_ids:
                seen_ids.add(memory.id)
                context.append(memory)
        return context

    def _from_candidate(self,
                        candidate: MemoryCandidate,
                        source: str,
                        workspace: Optional[str],
                        thread: Optional[str]) -> Memory:
        metadata = dict(candidate.metadata)
        if workspace is not None:
            metadata['workspace'] = workspace
        if thread is not None:
            metadata['thread'] = thread
        return Memory(id=str(uuid.uuid4()),
                      type=candidate.type,
                      content=candidate.content,
                      source=source,
                      timestamp=next_timestamp(self._last_timestamp),
                      confidence=candidate.confidence,
                      connections=list(candidate.connections),
                      metadata=metadata)

    def _discard(self, memories: List[Memory]) -> None:
        for memory in memories:
            try:
                self.remove_memory(memory.id)
            except StorageError as e:
                logger.error(f'Failed to discard memory {memory.id}: {e}')

    # Retrieval

    def find_related(self, memory_id: str) -> List[RelatedMemory]:
        """Rank memories related to ``memory_id`` by graph edges and semantic similarity.

        Explicit strength is the strongest edge in either direction. Semantic strength
        is the vector similarity, counted only above the configured floor. Memories with
        an edge are ranked by ``max(explicit, semantic)``; memories found only by
        similarity follow in similarity order.

        Args:
            memory_id: Id of the target memory

        Returns:
            Related memories, strongest first; empty if the target does not exist

        Raises:
            EmbeddingError: If the target content cannot be embedded
        """
        target = self.get_memory(memory_id)
        if target is None:
            return []

        # One extra slot, since the target matches itself
        matches = self.vector_store.find_similar(target.content,
                                                 limit=self.retrieval.related_limit + 1,
                                                 min_similarity=self.retrieval.related_min_similarity)
        semantic = {}
        for match in matches:
            if len(semantic) >= self.retrieval.related_limit:
                break
            if match.memory.id != memory_id and match.memory.id not in semantic:
                semantic[match.memory.id] = match

        # Discovery order: outgoing edges first, then incoming edges in collection order
        explicit: Dict[str, float] = {}
        for connection in target.connections:
            strength = _clamp_strength(connection.strength)
            explicit[connection.target_id] = max(strength, explicit.get(connection.target_id, 0.0))
        for memory in self._memories:
            connection = memory.get_connection(memory_id)
            if connection is not None:
                strength = _clamp_strength(connection.strength)
                explicit[memory.id] = max(strength, explicit.get(memory.id, 0.0))
        explicit.pop(memory_id, None)

        ranked = []
        for related_id, explicit_strength in explicit.items():
            memory = self.get_memory(related_id)
            if memory is None:
                continue
            semantic_strength = _clamp_strength(semantic[related_id].similarity) if related_id in semantic else 0.0
            ranked.append(
                RelatedMemory(memory=memory,
                              strength=max(explicit_strength, semantic_strength),
                              explicit_strength=explicit_strength,
                              semantic_strength=semantic_strength))
        ranked.sort(key=lambda item: item.strength, reverse=True)

        for related_id, match in semantic.items():
            if related_id in explicit:
                continue
            similarity = _clamp_strength(match.similarity)
            ranked.append(
                RelatedMemory(memory=self.get_memory(related_id) or match.memory,
                              strength=similarity,
                              semantic_strength=similarity))

        logger.debug(f'Found {len(ranked)} memories related to {memory_id}')
        return ranked


def create_memory_service(app_config: AppConfig) -> MemoryManagementService:
    """Wire the default collaborators for a memory service.

    Args:
        app_config: AppConfig instance

    Returns:
        MemoryManagementService instance
    """
    embedder = create_embedding_provider(app_config.embedding)
    vector_store = VectorStore(embedder, create_storage(app_config.storage, app_config.storage.vector_store_key))
    extraction = MemoryExtractionService(BedrockLLM(app_config.bedrock_llm))
    storage = create_storage(app_config.storage, app_config.storage.memory_store_key)
    return MemoryManagementService(vector_store, extraction, storage, app_config.retrieval)
