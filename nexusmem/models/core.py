"""
Core data models for the memory knowledge graph.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

MEMORY_TYPES = ('fact', 'concept', 'relationship')
CONNECTION_TYPES = ('related_to', 'part_of', 'depends_on', 'causes', 'similar_to')


def _require_record(data: Any, kind: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f'Malformed {kind} record: expected an object, got {type(data).__name__}')
    return data


def normalize_tags(tags: Optional[List[str]]) -> List[str]:
    """Drop blanks and duplicates from a tag list, keeping first-seen order."""
    normalized = []
    seen = set()
    for tag in tags or []:
        if not isinstance(tag, str):
            continue
        tag = tag.strip()
        if tag and tag not in seen:
            seen.add(tag)
            normalized.append(tag)
    return normalized


@dataclass
class Connection:
    """Directed, typed, weighted edge owned by its source Memory."""
    type: str  # One of CONNECTION_TYPES
    target_id: str  # Soft reference, may dangle
    strength: float  # Caller supplied, not clamped
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'type': self.type, 'targetId': self.target_id, 'strength': self.strength}
        if self.description is not None:
            data['description'] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Connection':
        data = _require_record(data, 'connection')
        return cls(type=data.get('type', 'related_to'),
                   target_id=data.get('targetId', data.get('target_id', '')),
                   strength=data.get('strength', 0.0),
                   description=data.get('description'))


@dataclass
class Memory:
    """A fact, concept or relationship extracted from conversation.

    Memories are nodes of the knowledge graph; ``connections`` holds the outgoing
    edges with at most one edge per target id.
    """
    id: str
    type: str  # One of MEMORY_TYPES
    content: str
    source: str
    timestamp: int  # Milliseconds since the epoch
    confidence: float = 1.0
    connections: List[Connection] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)  # workspace, thread, context, tags, ...

    @property
    def tags(self) -> List[str]:
        return list(self.metadata.get('tags') or [])

    def get_connection(self, target_id: str) -> Optional[Connection]:
        for connection in self.connections:
            if connection.target_id == target_id:
                return connection
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'content': self.content,
            'source': self.source,
            'timestamp': self.timestamp,
            'confidence': self.confidence,
            'connections': [connection.to_dict() for connection in self.connections],
            'metadata': dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Memory':
        data = _require_record(data, 'memory')
        metadata = dict(data.get('metadata') or {})
        metadata['tags'] = normalize_tags(metadata.get('tags'))
        confidence = data.get('confidence')
        return cls(id=data['id'],
                   type=data.get('type', 'fact'),
                   content=data.get('content', ''),
                   source=data.get('source', ''),
                   timestamp=int(data.get('timestamp') or 0),
                   confidence=1.0 if confidence is None else confidence,
                   connections=[Connection.from_dict(c) for c in data.get('connections') or []],
                   metadata=metadata)


@dataclass
class StoredVector:
    """Vector store record: content, embedding and a metadata projection of a Memory.

    Connections are not part of this record; the graph lives in the memory collection.
    """
    id: str
    embedding: List[float]
    content: str
    metadata: Dict[str, Any]  # type, source, confidence, workspace, thread, timestamp, tags

    @classmethod
    def from_memory(cls, memory: Memory, embedding: List[float]) -> 'StoredVector':
        return cls(id=memory.id,
                   embedding=embedding,
                   content=memory.content,
                   metadata={
                       'type': memory.type,
                       'source': memory.source,
                       'confidence': memory.confidence,
                       'workspace': memory.metadata.get('workspace'),
                       'thread': memory.metadata.get('thread'),
                       'timestamp': memory.timestamp,
                       'tags': memory.tags,
                   })

    def to_memory(self) -> Memory:
        """Rebuild a Memory projection; connections are always empty."""
        metadata = {'tags': list(self.metadata.get('tags') or [])}
        for key in ('workspace', 'thread'):
            if self.metadata.get(key) is not None:
                metadata[key] = self.metadata[key]
        confidence = self.metadata.get('confidence')
        return Memory(id=self.id,
                      type=self.metadata.get('type', 'fact'),
                      content=self.content,
                      source=self.metadata.get('source', ''),
                      timestamp=int(self.metadata.get('timestamp') or 0),
                      confidence=1.0 if confidence is None else confidence,
                      connections=[],
                      metadata=metadata)

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'embedding': self.embedding, 'content': self.content, 'metadata': dict(self.metadata)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoredVector':
        data = _require_record(data, 'vector')
        return cls(id=data['id'],
                   embedding=[float(value) for value in data.get('embedding') or []],
                   content=data.get('content', ''),
                   metadata=dict(data.get('metadata') or {}))


@dataclass
class SimilarMemory:
    """A vector store match."""
    memory: Memory
    similarity: float


@dataclass
class RelatedMemory:
    """A related-memory result with its combined ranking strength."""
    memory: Memory
    strength: float
    explicit_strength: float = 0.0
    semantic_strength: float = 0.0


@dataclass
class ConnectionCandidate:
    """Connection proposed by the extraction model, naming its target by content."""
    type: str
    target_content: str
    strength: float
    description: Optional[str] = None


@dataclass
class MemoryCandidate:
    """Memory proposed by the extraction model before an id and timestamp are assigned."""
    type: str
    content: str
    confidence: float = 1.0
    connections: List[Connection] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
