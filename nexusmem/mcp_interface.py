"""
MCP Interface Layer using fastmcp for agent orchestration.
"""
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP

from .models.core import Memory
from .services.memory_management import MemoryManagementService, create_memory_service
from .utils.config import config
from .utils.embedding_provider import EmbeddingError
from .utils.logging_config import get_logger
from .utils.similarity import DimensionMismatchError
from .utils.storage import StorageError
from .utils.timestamp_utils import to_datetime

logger = get_logger(__name__)

mcp = FastMCP('Nexus Memory')
_memory_service: Optional[MemoryManagementService] = None


def get_memory_service() -> MemoryManagementService:
    """Return the memory service, constructing it on first use."""
    global _memory_service
    if _memory_service is None:
        _memory_service = create_memory_service(config)
    return _memory_service


def set_memory_service(service: Optional[MemoryManagementService]) -> None:
    """Install the memory service used by the MCP tools."""
    global _memory_service
    _memory_service = service


def _serialize(memory: Memory) -> Dict[str, Any]:
    data = memory.to_dict()
    data['created_at'] = to_datetime(memory.timestamp).isoformat()
    return data


@mcp.tool()
def add_memory(content: str, memory_type: str = 'fact', tags: Optional[List[str]] = None) -> Dict[str, Any]:
    """Store a single memory.

    Args:
        content: Memory text
        memory_type: fact, concept or relationship
        tags: Optional tags

    Returns:
        The stored memory
    """
    try:
        memory = get_memory_service().add_memory(content, memory_type, source='mcp', metadata={'tags': tags or []})
        return _serialize(memory)
    except (ValueError, EmbeddingError, StorageError) as e:
        logger.error(f'Error in MCP add_memory: {e}')
        raise Exception(f'Memory add failed: {e}')


@mcp.tool()
def extract_memories(conversation: str, workspace: Optional[str] = None, thread: Optional[str] = None) -> List[Dict[str, Any]]:
    """Extract memories from conversation text. Returns an empty list when nothing could be extracted."""
    memories = get_memory_service().extract_from_conversation(conversation, workspace=workspace, thread=thread)
    return [_serialize(memory) for memory in memories]


@mcp.tool()
def search_memories(query: str, limit: int = 5, threshold: float = 0.7) -> List[Dict[str, Any]]:
    """Search memories by semantic similarity.

    Args:
        query: Natural language query
        limit: Maximum number of results to return (default: 5)
        threshold: Minimum cosine similarity (default: 0.7)

    Returns:
        List of dicts with memory id, type, content and similarity
    """
    if not query or not query.strip():
        return []

    try:
        matches = get_memory_service().vector_store.find_similar(query, limit=limit, min_similarity=threshold)
    except (EmbeddingError, DimensionMismatchError) as e:
        logger.error(f'Error in MCP search: {e}')
        raise Exception(f'Memory search failed: {e}')

    result = [{
        'id': match.memory.id,
        'type': match.memory.type,
        'content': match.memory.content,
        'similarity': match.similarity
    } for match in matches]
    logger.debug(f'MCP search returned {len(result)} memories')
    return result


@mcp.tool()
def related_memories(memory_id: str) -> List[Dict[str, Any]]:
    """List memories related to a memory through graph edges or semantic similarity, strongest first."""
    try:
        related = get_memory_service().find_related(memory_id)
    except (EmbeddingError, DimensionMismatchError) as e:
        logger.error(f'Error in MCP related_memories: {e}')
        raise Exception(f'Related memory lookup failed: {e}')

    return [{
        'id': item.memory.id,
        'type': item.memory.type,
        'content': item.memory.content,
        'strength': item.strength
    } for item in related]


@mcp.tool()
def add_connection(source_id: str,
                   target_id: str,
                   connection_type: str = 'related_to',
                   strength: float = 0.5,
                   description: Optional[str] = None) -> bool:
    """Connect two memories. Replaces any existing edge from source to target."""
    try:
        return get_memory_service().add_connection(source_id, target_id, connection_type, strength, description)
    except (ValueError, StorageError) as e:
        logger.error(f'Error in MCP add_connection: {e}')
        raise Exception(f'Connection failed: {e}')


@mcp.tool()
def remove_connection(source_id: str, target_id: str) -> bool:
    """Remove the edge from source to target, if any."""
    try:
        return get_memory_service().remove_connection(source_id, target_id)
    except StorageError as e:
        logger.error(f'Error in MCP remove_connection: {e}')
        raise Exception(f'Connection removal failed: {e}')


@mcp.tool()
def update_memory_tags(memory_id: str, tags: List[str]) -> Optional[Dict[str, Any]]:
    """Replace the tags of a memory."""
    try:
        memory = get_memory_service().update_tags(memory_id, tags)
    except (EmbeddingError, StorageError) as e:
        logger.error(f'Error in MCP update_memory_tags: {e}')
        raise Exception(f'Tag update failed: {e}')
    return _serialize(memory) if memory else None


@mcp.tool()
def remove_memory(memory_id: str) -> bool:
    """Delete a memory and its embedding."""
    try:
        return get_memory_service().remove_memory(memory_id)
    except StorageError as e:
        logger.error(f'Error in MCP remove_memory: {e}')
        raise Exception(f'Memory removal failed: {e}')


def main() -> None:
    """Run the MCP server with the configured transport."""
    transport = config.mcp.transport
    if transport == 'stdio':
        mcp.run(transport=transport)
    else:
        mcp.run(transport=transport, host=config.mcp.host, port=config.mcp.port)


if __name__ == '__main__':
    main()
