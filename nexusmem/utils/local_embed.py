"""
Local embedding provider backed by sentence-transformers.

Uses all-MiniLM-L6-v2 by default (384 dimensions, mean pooled, normalized).
"""

from typing import List

from .config import LocalEmbedConfig
from .embedding_provider import EmbeddingError, EmbeddingProvider
from .logging_config import get_logger

logger = get_logger(__name__)


class LocalEmbed(EmbeddingProvider):
    """Embedding provider running a sentence-transformers model in-process.

    The model is loaded lazily on the first call to ``embed``.
    """

    def __init__(self, config: LocalEmbedConfig):
        self.config = config
        self.model_name = config.model_name
        self.dimension = config.dimension
        self._model = None

    def _load_model(self):
        if self._model is not None:
            return self._model

        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise EmbeddingError('sentence-transformers is not installed. '
                                 'Install with: pip install "nexusmem[local]"') from e

        try:
            logger.info(f'Loading embedding model: {self.model_name}')
            self._model = SentenceTransformer(self.model_name)
        except Exception as e:
            logger.error(f'Failed to load embedding model {self.model_name}: {e}')
            raise EmbeddingError(f'Failed to initialize embedding model {self.model_name}: {e}') from e

        return self._model

    def embed(self, text: str) -> List[float]:
        """
        Generate an embedding for text.

        Args:
            text: Text to embed; truncated to the configured maximum length

        Returns:
            List of embedding values

        Raises:
            EmbeddingError: If the text is blank, the model is unavailable or encoding fails
        """
        if not text or not text.strip():
            raise EmbeddingError('Cannot embed empty text')

        model = self._load_model()
        try:
            vector = model.encode(text[:self.config.max_chars], normalize_embeddings=True, convert_to_numpy=True)
        except Exception as e:
            logger.error(f'Failed to generate embedding (text_length={len(text)}): {e}')
            raise EmbeddingError(f'Failed to generate text embedding: {e}') from e

        embedding = [float(value) for value in vector]
        if len(embedding) != self.dimension:
            raise EmbeddingError(f'Expected {self.dimension} dimensions from {self.model_name}, got {len(embedding)}')
        return embedding
