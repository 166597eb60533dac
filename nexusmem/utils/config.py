"""
Configuration management for embedding, language model, storage and retrieval settings.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class BedrockLLMConfig:
    """Configuration for Amazon Bedrock LLM service."""
    region: str
    model_id: str
    max_tokens: int
    temperature: float
    retry_attempts: int
    retry_delay: float


@dataclass
class BedrockEmbedConfig:
    """Configuration for Amazon Bedrock Embed service."""
    region: str
    model_id: str
    dimension: int
    retry_attempts: int
    retry_delay: float


@dataclass
class LocalEmbedConfig:
    """Configuration for the local sentence-transformers embedding model."""
    model_name: str
    dimension: int
    max_chars: int


@dataclass
class EmbeddingConfig:
    """Selects which embedding provider backs the vector store."""
    provider: str  # bedrock | local
    bedrock: BedrockEmbedConfig
    local: LocalEmbedConfig


@dataclass
class StorageConfig:
    """Configuration for local durable storage."""
    backend: str  # file | memory
    data_dir: str
    vector_store_key: str
    memory_store_key: str


@dataclass
class RetrievalConfig:
    """Thresholds used by similarity search, related-memory ranking and extraction."""
    related_min_similarity: float
    related_limit: int
    extraction_context_limit: int
    extraction_context_min_similarity: float
    source_excerpt_length: int


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    bedrock_llm: BedrockLLMConfig
    embedding: EmbeddingConfig
    storage: StorageConfig
    retrieval: RetrievalConfig
    mcp: MCPConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Bedrock LLM configuration (memory extraction)
    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          model_id=os.getenv('BEDROCK_LLM_MODEL_ID', 'anthropic.claude-3-sonnet-20240229-v1:0'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '4096')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.7')),
                                          retry_attempts=int(os.getenv('BEDROCK_LLM_RETRY_ATTEMPTS', '3')),
                                          retry_delay=float(os.getenv('BEDROCK_LLM_RETRY_DELAY', '1.0')))

    # Embedding configuration
    bedrock_embed_config = BedrockEmbedConfig(region=os.getenv('BEDROCK_EMBED_AWS_REGION', 'us-east-1'),
                                              model_id=os.getenv('BEDROCK_EMBED_MODEL_ID', 'amazon.titan-embed-text-v2:0'),
                                              dimension=int(os.getenv('BEDROCK_EMBED_DIMENSION', '1024')),
                                              retry_attempts=int(os.getenv('BEDROCK_EMBED_RETRY_ATTEMPTS', '3')),
                                              retry_delay=float(os.getenv('BEDROCK_EMBED_RETRY_DELAY', '1.0')))

    local_embed_config = LocalEmbedConfig(model_name=os.getenv('LOCAL_EMBED_MODEL', 'all-MiniLM-L6-v2'),
                                          dimension=int(os.getenv('LOCAL_EMBED_DIMENSION', '384')),
                                          max_chars=int(os.getenv('LOCAL_EMBED_MAX_CHARS', '10000')))

    embedding_config = EmbeddingConfig(provider=os.getenv('EMBEDDING_PROVIDER', 'bedrock').lower(),
                                       bedrock=bedrock_embed_config,
                                       local=local_embed_config)

    # Storage configuration
    storage_config = StorageConfig(backend=os.getenv('STORAGE_BACKEND', 'file').lower(),
                                   data_dir=os.getenv('STORAGE_DATA_DIR', os.path.join(os.path.expanduser('~'), '.nexusmem')),
                                   vector_store_key=os.getenv('VECTOR_STORE_KEY', 'nexus-chat-vector-store'),
                                   memory_store_key=os.getenv('MEMORY_STORE_KEY', 'nexus-chat-memories'))

    # Retrieval configuration
    retrieval_config = RetrievalConfig(related_min_similarity=float(os.getenv('RELATED_MIN_SIMILARITY', '0.7')),
                                       related_limit=int(os.getenv('RELATED_LIMIT', '5')),
                                       extraction_context_limit=int(os.getenv('EXTRACTION_CONTEXT_LIMIT', '5')),
                                       extraction_context_min_similarity=float(
                                           os.getenv('EXTRACTION_CONTEXT_MIN_SIMILARITY', '0.7')),
                                       source_excerpt_length=int(os.getenv('SOURCE_EXCERPT_LENGTH', '100')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     bedrock_llm=bedrock_llm_config,
                     embedding=embedding_config,
                     storage=storage_config,
                     retrieval=retrieval_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
