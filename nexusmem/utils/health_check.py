"""
Health check utilities for the memory layer.
"""

from typing import Any, Dict, Optional

from .bedrock_llm import BedrockLLM
from .config import AppConfig, config
from .embedding_provider import create_embedding_provider
from .logging_config import get_logger
from .storage import create_storage

logger = get_logger(__name__)


def check_health(app_config: Optional[AppConfig] = None) -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    try:
        health_status = get_health_status(app_config)

        all_healthy = all(status.get('healthy', False) for status in health_status.values())

        if all_healthy:
            logger.info('All system components are healthy')
        else:
            logger.warning('Some system components are unhealthy')

        return all_healthy

    except Exception as e:
        logger.error(f'Health check failed: {e}')
        return False


def get_health_status(app_config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Get detailed health status of all components.

    Returns:
        Dictionary with health status of each component
    """
    app_config = app_config or config
    health_status = {}

    # Check Bedrock LLM
    try:
        llm = BedrockLLM(app_config.bedrock_llm)
        health_status['bedrock_llm'] = {
            'healthy': llm.health_check(),
            'service': 'Amazon Bedrock LLM',
            'model': app_config.bedrock_llm.model_id
        }
    except Exception as e:
        health_status['bedrock_llm'] = {'healthy': False, 'service': 'Amazon Bedrock LLM', 'error': str(e)}

    # Check embedding provider
    try:
        embedder = create_embedding_provider(app_config.embedding)
        health_status['embedding'] = {
            'healthy': embedder.health_check(),
            'service': f'{app_config.embedding.provider} embedding provider',
            'dimension': embedder.dimension
        }
    except Exception as e:
        health_status['embedding'] = {
            'healthy': False,
            'service': f'{app_config.embedding.provider} embedding provider',
            'error': str(e)
        }

    # Check both storage namespaces
    for key in (app_config.storage.vector_store_key, app_config.storage.memory_store_key):
        try:
            storage = create_storage(app_config.storage, key)
            health_status[key] = {'healthy': storage.health_check(), 'service': f'{app_config.storage.backend} storage'}
        except Exception as e:
            health_status[key] = {'healthy': False, 'service': f'{app_config.storage.backend} storage', 'error': str(e)}

    return health_status


def get_system_info(app_config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    app_config = app_config or config
    return {
        'service_name': 'NexusMem',
        'version': '0.1.0',
        'configuration': {
            'bedrock_llm_model': app_config.bedrock_llm.model_id,
            'embedding_provider': app_config.embedding.provider,
            'storage_backend': app_config.storage.backend,
            'storage_data_dir': app_config.storage.data_dir,
            'related_min_similarity': app_config.retrieval.related_min_similarity
        },
        'health_status': get_health_status(app_config)
    }
