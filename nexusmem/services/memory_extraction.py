"""
Memory Extraction Service: turns conversation text into memory candidates with a language model.
"""

import json
from typing import Any, Dict, Iterable, List, Optional

from ..models.core import CONNECTION_TYPES, MEMORY_TYPES, Connection, ConnectionCandidate, Memory, MemoryCandidate, normalize_tags
from ..utils.bedrock_llm import BedrockLLM
from ..utils.json_utils import clean_json_response
from ..utils.logging_config import get_logger
from .target_resolution import TargetResolver, resolve_target_by_substring

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are a memory and knowledge graph manager. Analyze conversations and extract:
1. Facts: Concrete, verifiable information
2. Concepts: Abstract ideas or principles discussed
3. Relationships: Connections between entities or concepts

Also identify connections between memories with these relationship types:
- related_to: General association
- part_of: Component or subset relationship
- depends_on: Dependency relationship
- causes: Causal relationship
- similar_to: Analogous or similar concepts

Connections may only point at the existing memories you are given. Name the target by quoting
part of its content in "targetContent"; you do not know memory ids.

Format your response as JSON with the following structure:
```json
{
  "memories": [
    {
      "type": "fact|concept|relationship",
      "content": "The extracted information",
      "confidence": 0.0-1.0,
      "connections": [
        {
          "type": "relationship_type",
          "targetContent": "The related information to look up",
          "strength": 0.0-1.0,
          "description": "Why these are connected"
        }
      ],
      "metadata": {
        "context": "Additional context",
        "tags": ["relevant", "tags"]
      }
    }
  ]
}
```
Return {"memories": []} if nothing is worth remembering."""


class ExtractionParseError(Exception):
    """Raised when the language model output is not the expected JSON structure."""
    pass


def format_memory_context(memories: Iterable[Memory]) -> str:
    """Render memories as ``TYPE: content (ID: id)`` lines."""
    return '\n'.join(f'{memory.type.upper()}: {memory.content} (ID: {memory.id})' for memory in memories)


def _parse_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 1.0
    if confidence != confidence:  # NaN
        return 1.0
    return confidence


def _parse_strength(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class MemoryExtractionService:
    """Extract memories and their proposed connections from conversations."""

    def __init__(self, llm: BedrockLLM, resolver: TargetResolver = resolve_target_by_substring):
        """
        Initialize the memory extraction service.

        Args:
            llm: Language model client exposing ``complete_json(prompt, system_prompt)``
            resolver: Strategy mapping a target description to a memory id
        """
        self.llm = llm
        self.resolver = resolver

        logger.info('Initialized MemoryExtractionService')

    def build_prompt(self, conversation: str, context_memories: List[Memory]) -> str:
        return ('Analyze this conversation and extract memories. Use existing memories to identify connections '
                'and enhance understanding.\n\n'
                f'Existing Memories:\n{format_memory_context(context_memories)}\n\n'
                f'New Conversation:\n{conversation}')

    def extract(self, conversation: str, context_memories: List[Memory]) -> List[MemoryCandidate]:
        """Ask the language model for memory candidates.

        Args:
            conversation: Conversation text to analyze
            context_memories: Existing memories offered as connection targets

        Returns:
            List of MemoryCandidate objects with resolved connections

        Raises:
            ExtractionParseError: If the model output is not valid extraction JSON
            BedrockLLMError: If the language model call fails
        """
        if not conversation or not conversation.strip():
            logger.debug('Empty conversation provided for memory extraction')
            return []

        response = self.llm.complete_json(self.build_prompt(conversation, context_memories), SYSTEM_PROMPT)
        memories_data = self.parse_response(response)

        candidates = []
        for memory_data in memories_data:
            candidate = self._build_candidate(memory_data, context_memories)
            if candidate is not None:
                candidates.append(candidate)

        logger.debug(f'Extracted {len(candidates)} memory candidates')
        return candidates

    def parse_response(self, response: str) -> List[Dict[str, Any]]:
        """Decode the ``memories`` array from a model response.

        Raises:
            ExtractionParseError: If the response is not JSON or lacks a ``memories`` list
        """
        if not isinstance(response, str):
            raise ExtractionParseError(f'Expected text response, got {type(response).__name__}')

        try:
            parsed = json.loads(clean_json_response(response))
        except json.JSONDecodeError as e:
            raise ExtractionParseError(f'Failed to parse memory extraction JSON: {e}') from e

        if not isinstance(parsed, dict) or not isinstance(parsed.get('memories'), list):
            raise ExtractionParseError('Memory extraction JSON has no "memories" list')
        return parsed['memories']

    def _build_candidate(self, memory_data: Any, context_memories: List[Memory]) -> Optional[MemoryCandidate]:
        if not isinstance(memory_data, dict):
            return None

        memory_type = str(memory_data.get('type') or '').strip().lower()
        content = memory_data.get('content')
        if memory_type not in MEMORY_TYPES or not isinstance(content, str) or not content.strip():
            logger.debug(f'Skip memory candidate with type {memory_type!r}')
            return None

        metadata = memory_data.get('metadata')
        metadata = dict(metadata) if isinstance(metadata, dict) else {}
        metadata['tags'] = normalize_tags(metadata.get('tags'))

        connections = []
        for connection_data in memory_data.get('connections') or []:
            proposed = self._parse_connection(connection_data)
            if proposed is None:
                continue
            target_id = self.resolver(proposed.target_content, context_memories)
            if target_id is None:
                logger.debug(f'Dropped unresolved connection target: {proposed.target_content!r}')
                continue
            connection = Connection(type=proposed.type,
                                    target_id=target_id,
                                    strength=proposed.strength,
                                    description=proposed.description)
            # One edge per target, the last proposal wins
            connections = [c for c in connections if c.target_id != target_id]
            connections.append(connection)

        return MemoryCandidate(type=memory_type,
                               content=content.strip(),
                               confidence=_parse_confidence(memory_data.get('confidence')),
                               connections=connections,
                               metadata=metadata)

    def _parse_connection(self, connection_data: Any) -> Optional[ConnectionCandidate]:
        if not isinstance(connection_data, dict):
            return None

        connection_type = str(connection_data.get('type') or '').strip().lower()
        target_content = connection_data.get('targetContent')
        strength = _parse_strength(connection_data.get('strength'))
        if connection_type not in CONNECTION_TYPES or not isinstance(target_content, str) or strength is None:
            return None

        description = connection_data.get('description')
        return ConnectionCandidate(type=connection_type,
                                   target_content=target_content,
                                   strength=strength,
                                   description=description if isinstance(description, str) else None)
