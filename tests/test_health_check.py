"""Tests for utils/health_check.py."""

from unittest.mock import Mock, patch

import pytest

from nexusmem.utils.config import (AppConfig, BedrockEmbedConfig, BedrockLLMConfig, EmbeddingConfig, LocalEmbedConfig,
                                   MCPConfig, RetrievalConfig, StorageConfig)
from nexusmem.utils.health_check import check_health, get_health_status, get_system_info


@pytest.fixture
def app_config(tmp_path, retrieval_config) -> AppConfig:
    return AppConfig(environment='test',
                     log_level='DEBUG',
                     bedrock_llm=BedrockLLMConfig(region='us-east-1',
                                                  model_id='anthropic.claude-3-sonnet-20240229-v1:0',
                                                  max_tokens=64,
                                                  temperature=0.0,
                                                  retry_attempts=1,
                                                  retry_delay=0.0),
                     embedding=EmbeddingConfig(provider='local',
                                               bedrock=BedrockEmbedConfig(region='us-east-1',
                                                                          model_id='amazon.titan-embed-text-v2:0',
                                                                          dimension=1024,
                                                                          retry_attempts=1,
                                                                          retry_delay=0.0),
                                               local=LocalEmbedConfig(model_name='all-MiniLM-L6-v2',
                                                                      dimension=384,
                                                                      max_chars=10000)),
                     storage=StorageConfig(backend='file',
                                           data_dir=str(tmp_path),
                                           vector_store_key='vectors',
                                           memory_store_key='memories'),
                     retrieval=retrieval_config,
                     mcp=MCPConfig(transport='stdio', host='127.0.0.1', port=8000))


@pytest.fixture
def healthy_clients():
    embedder = Mock(dimension=384)
    embedder.health_check.return_value = True
    with patch('nexusmem.utils.health_check.BedrockLLM') as llm_cls, \
            patch('nexusmem.utils.health_check.create_embedding_provider', return_value=embedder):
        llm_cls.return_value.health_check.return_value = True
        yield llm_cls, embedder


def test_all_components_healthy(app_config, healthy_clients):
    status = get_health_status(app_config)

    assert set(status) == {'bedrock_llm', 'embedding', 'vectors', 'memories'}
    assert status['embedding']['dimension'] == 384
    assert check_health(app_config) is True


def test_unhealthy_embedding_provider(app_config, healthy_clients):
    _, embedder = healthy_clients
    embedder.health_check.return_value = False

    assert check_health(app_config) is False


def test_client_construction_failure_is_reported(app_config, healthy_clients):
    llm_cls, _ = healthy_clients
    llm_cls.side_effect = RuntimeError('no credentials')

    status = get_health_status(app_config)

    assert status['bedrock_llm'] == {'healthy': False, 'service': 'Amazon Bedrock LLM', 'error': 'no credentials'}


def test_unreadable_storage_is_unhealthy(app_config, healthy_clients, tmp_path):
    (tmp_path / 'memories.json').write_text('{broken', encoding='utf-8')

    status = get_health_status(app_config)

    assert status['vectors']['healthy'] is True
    assert status['memories']['healthy'] is False


def test_system_info(app_config, healthy_clients):
    info = get_system_info(app_config)

    assert info['configuration']['embedding_provider'] == 'local'
    assert info['configuration']['storage_data_dir'] == app_config.storage.data_dir
    assert 'embedding' in info['health_status']
