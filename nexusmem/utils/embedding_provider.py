"""
Embedding provider interface and factory.
"""

from abc import ABC, abstractmethod
from typing import List

from .config import EmbeddingConfig
from .logging_config import get_logger

logger = get_logger(__name__)


class EmbeddingError(Exception):
    """Raised when a provider cannot produce an embedding vector."""
    pass


class EmbeddingProvider(ABC):
    """Maps text to a fixed-length float vector.

    Implementations must never fall back to a zero vector: a failed embed raises
    ``EmbeddingError`` so the enclosing store or search operation aborts.
    """

    dimension: int

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Embed ``text``.

        Raises:
            EmbeddingError: If the text is blank or the provider fails
        """

    def health_check(self) -> bool:
        """
        Perform a health check on the embedding provider.

        Returns:
            True if the provider returns a vector of the expected dimension, False otherwise
        """
        try:
            return len(self.embed('test')) == self.dimension
        except Exception as e:
            logger.error(f'{type(self).__name__} health check failed: {e}')
            return False


def create_embedding_provider(config: EmbeddingConfig) -> EmbeddingProvider:
    """Build the embedding provider selected in configuration.

    Args:
        config: EmbeddingConfig instance

    Returns:
        EmbeddingProvider instance

    Raises:
        ValueError: If the configured provider is unknown
    """
    if config.provider == 'bedrock':
        from .bedrock_embed import BedrockEmbed
        return BedrockEmbed(config.bedrock)
    if config.provider == 'local':
        from .local_embed import LocalEmbed
        return LocalEmbed(config.local)
    raise ValueError(f'Unknown embedding provider: {config.provider}')
