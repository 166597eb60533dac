"""
Local persistence port for the memory and vector collections.

Each collection is stored as one JSON array under a namespace key.
"""

import copy
import json
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from .config import StorageConfig
from .logging_config import get_logger

logger = get_logger(__name__)


class StorageError(Exception):
    """Raised when durable storage cannot be read or written."""
    pass


class StorageBackend(ABC):
    """Loads and saves one collection of JSON-serializable records."""

    @abstractmethod
    def load(self) -> List[Dict[str, Any]]:
        """Return the persisted records, or an empty list when nothing was saved yet.

        Raises:
            StorageError: If the stored data cannot be read or decoded
        """

    @abstractmethod
    def save(self, records: List[Dict[str, Any]]) -> None:
        """Replace the persisted records.

        Raises:
            StorageError: If the records cannot be written
        """

    def health_check(self) -> bool:
        try:
            self.load()
            return True
        except StorageError as e:
            logger.error(f'{type(self).__name__} health check failed: {e}')
            return False


class InMemoryStorage(StorageBackend):
    """Keeps records in process memory. Nothing survives a restart."""

    def __init__(self):
        self._records: List[Dict[str, Any]] = []

    def load(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._records)

    def save(self, records: List[Dict[str, Any]]) -> None:
        self._records = copy.deepcopy(records)


class JsonFileStorage(StorageBackend):
    """Stores records as a JSON array in a single file."""

    def __init__(self, path: str):
        """
        Initialize file storage.

        Args:
            path: Target JSON file; parent directories are created on first save
        """
        self.path = path

    def load(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                records = json.load(f)
        except (OSError, ValueError) as e:  # ValueError covers JSONDecodeError and UnicodeDecodeError
            raise StorageError(f'Failed to read {self.path}: {e}') from e

        if not isinstance(records, list):
            raise StorageError(f'Expected a JSON array in {self.path}, got {type(records).__name__}')
        return records

    def save(self, records: List[Dict[str, Any]]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        temp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            # Write to a temp file in the same directory, then swap it in atomically
            fd, temp_path = tempfile.mkstemp(dir=directory, prefix='.tmp-', suffix='.json')
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(records, f, ensure_ascii=False)
            os.replace(temp_path, self.path)
            temp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f'Failed to write {self.path}: {e}') from e
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.remove(temp_path)

        logger.debug(f'Saved {len(records)} records to {self.path}')


def create_storage(config: StorageConfig, key: str) -> StorageBackend:
    """Build the configured storage backend for a namespace key.

    Args:
        config: StorageConfig instance
        key: Collection namespace, e.g. the vector store or memory store key

    Returns:
        StorageBackend instance

    Raises:
        ValueError: If the configured backend is unknown
    """
    if config.backend == 'file':
        return JsonFileStorage(os.path.join(config.data_dir, f'{key}.json'))
    if config.backend == 'memory':
        return InMemoryStorage()
    raise ValueError(f'Unknown storage backend: {config.backend}')
