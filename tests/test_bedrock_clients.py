"""Tests for the embedding providers and the Bedrock language model client."""

import io
import json
import sys
import types
from unittest.mock import MagicMock, Mock, patch

import pytest
from botocore.exceptions import ClientError

from nexusmem.utils.bedrock_embed import BedrockEmbed, BedrockEmbedError
from nexusmem.utils.bedrock_llm import BedrockLLM, BedrockLLMError
from nexusmem.utils.config import BedrockEmbedConfig, BedrockLLMConfig, EmbeddingConfig, LocalEmbedConfig
from nexusmem.utils.embedding_provider import EmbeddingError, create_embedding_provider
from nexusmem.utils.local_embed import LocalEmbed

THROTTLED = ClientError({'Error': {'Code': 'ThrottlingException', 'Message': 'slow down'}}, 'InvokeModel')


def embed_config(model_id='amazon.titan-embed-text-v2:0', dimension=3):
    return BedrockEmbedConfig(region='us-east-1', model_id=model_id, dimension=dimension, retry_attempts=3, retry_delay=0.0)


def llm_config():
    return BedrockLLMConfig(region='us-east-1',
                            model_id='anthropic.claude-3-sonnet-20240229-v1:0',
                            max_tokens=512,
                            temperature=0.7,
                            retry_attempts=2,
                            retry_delay=0.0)


def invoke_response(payload):
    return {'body': io.BytesIO(json.dumps(payload).encode('utf-8'))}


@pytest.fixture
def bedrock_client():
    with patch('nexusmem.utils.bedrock_embed.boto3') as mock_boto3, \
            patch('nexusmem.utils.bedrock_llm.boto3', mock_boto3), \
            patch('nexusmem.utils.bedrock_embed.time.sleep'), \
            patch('nexusmem.utils.bedrock_llm.time.sleep'):
        client = MagicMock()
        mock_boto3.client.return_value = client
        yield client


# =============================================================================
# Bedrock embeddings
# =============================================================================


def test_titan_embedding(bedrock_client):
    bedrock_client.invoke_model.return_value = invoke_response({'embedding': [0.1, 0.2, 0.3]})

    vector = BedrockEmbed(embed_config()).embed('Paris is the capital of France')

    assert vector == [0.1, 0.2, 0.3]
    request = json.loads(bedrock_client.invoke_model.call_args.kwargs['body'])
    assert request == {'inputText': 'Paris is the capital of France', 'dimensions': 3}


def test_cohere_embedding(bedrock_client):
    bedrock_client.invoke_model.return_value = invoke_response({'embeddings': [[0.5] * 1024]})

    vector = BedrockEmbed(embed_config('cohere.embed-english-v3', 1024)).embed('hello')

    assert len(vector) == 1024
    request = json.loads(bedrock_client.invoke_model.call_args.kwargs['body'])
    assert request == {'input_type': 'search_document', 'texts': ['hello']}


def test_blank_text_never_reaches_bedrock(bedrock_client):
    with pytest.raises(BedrockEmbedError):
        BedrockEmbed(embed_config()).embed('   ')
    bedrock_client.invoke_model.assert_not_called()


@pytest.mark.parametrize('payload', [{}, {'embedding': []}, {'embeddings': []}, {'embedding': [0.1, 0.2]}])
def test_bad_embedding_response_raises(bedrock_client, payload):
    bedrock_client.invoke_model.return_value = invoke_response(payload)
    with pytest.raises(BedrockEmbedError):
        BedrockEmbed(embed_config()).embed('text')


def test_embedding_retries_then_succeeds(bedrock_client):
    bedrock_client.invoke_model.side_effect = [THROTTLED, invoke_response({'embedding': [1.0, 0.0, 0.0]})]

    assert BedrockEmbed(embed_config()).embed('text') == [1.0, 0.0, 0.0]
    assert bedrock_client.invoke_model.call_count == 2


def test_embedding_gives_up_after_retries(bedrock_client):
    bedrock_client.invoke_model.side_effect = THROTTLED

    with pytest.raises(BedrockEmbedError):
        BedrockEmbed(embed_config()).embed('text')
    assert bedrock_client.invoke_model.call_count == 3


def test_unsupported_embedding_model(bedrock_client):
    with pytest.raises(BedrockEmbedError):
        BedrockEmbed(embed_config('meta.llama3-8b-instruct-v1:0')).embed('text')


def test_bedrock_embed_is_an_embedding_error(bedrock_client):
    bedrock_client.invoke_model.side_effect = RuntimeError('boom')
    with pytest.raises(EmbeddingError):
        BedrockEmbed(embed_config()).embed('text')


def test_embed_health_check(bedrock_client):
    bedrock_client.invoke_model.return_value = invoke_response({'embedding': [0.1, 0.2, 0.3]})
    assert BedrockEmbed(embed_config()).health_check() is True

    bedrock_client.invoke_model.side_effect = THROTTLED
    assert BedrockEmbed(embed_config()).health_check() is False


# =============================================================================
# Local embeddings
# =============================================================================


def local_config(dimension=3):
    return LocalEmbedConfig(model_name='all-MiniLM-L6-v2', dimension=dimension, max_chars=5)


def fake_sentence_transformers(vector):
    model = Mock()
    model.encode.return_value = vector
    module = types.ModuleType('sentence_transformers')
    module.SentenceTransformer = Mock(return_value=model)
    return module, model


def test_local_embedding():
    module, model = fake_sentence_transformers([0.6, 0.8, 0.0])

    with patch.dict(sys.modules, {'sentence_transformers': module}):
        embedder = LocalEmbed(local_config())
        assert embedder.embed('truncated text') == [0.6, 0.8, 0.0]
        embedder.embed('again')

    module.SentenceTransformer.assert_called_once_with('all-MiniLM-L6-v2')
    model.encode.assert_any_call('trunc', normalize_embeddings=True, convert_to_numpy=True)


def test_local_embedding_wrong_dimension():
    module, _ = fake_sentence_transformers([0.6, 0.8])

    with patch.dict(sys.modules, {'sentence_transformers': module}):
        with pytest.raises(EmbeddingError):
            LocalEmbed(local_config()).embed('text')


def test_local_embedding_without_library():
    with patch.dict(sys.modules, {'sentence_transformers': None}):
        with pytest.raises(EmbeddingError, match='not installed'):
            LocalEmbed(local_config()).embed('text')


def test_local_embedding_blank_text():
    with pytest.raises(EmbeddingError):
        LocalEmbed(local_config()).embed('')


# =============================================================================
# Provider factory
# =============================================================================


def test_create_embedding_provider(bedrock_client):
    config = EmbeddingConfig(provider='bedrock', bedrock=embed_config(), local=local_config())
    assert isinstance(create_embedding_provider(config), BedrockEmbed)

    config.provider = 'local'
    assert isinstance(create_embedding_provider(config), LocalEmbed)

    config.provider = 'openai'
    with pytest.raises(ValueError):
        create_embedding_provider(config)


# =============================================================================
# Bedrock language model
# =============================================================================


def stream_of(*texts):
    events = [{'contentBlockDelta': {'delta': {'text': text}}} for text in texts]
    events.append({'metadata': {'usage': {'inputTokens': 10, 'outputTokens': 4}, 'metrics': {'latencyMs': 120}}})
    return {'stream': events}


def test_generate_response_joins_stream(bedrock_client):
    bedrock_client.converse_stream.return_value = stream_of('Hello', ', ', 'world')

    text, metrics = BedrockLLM(llm_config()).generate_response([{'role': 'user', 'content': [{'text': 'Hi'}]}], 'system')

    assert text == 'Hello, world'
    assert metrics == {'inputTokens': 10, 'outputTokens': 4, 'latencyMs': 120}
    kwargs = bedrock_client.converse_stream.call_args.kwargs
    assert kwargs['system'] == [{'text': 'system'}]
    assert kwargs['inferenceConfig'] == {'maxTokens': 512, 'temperature': 0.7, 'stopSequences': []}


def test_complete_json_prefills_fence(bedrock_client):
    bedrock_client.converse_stream.return_value = stream_of('\n{"memories": []}\n')

    response = BedrockLLM(llm_config()).complete_json('Extract memories', 'You extract memories')

    assert json.loads(response) == {'memories': []}
    kwargs = bedrock_client.converse_stream.call_args.kwargs
    assert kwargs['messages'][-1] == {'role': 'assistant', 'content': [{'text': '```json'}]}
    assert kwargs['inferenceConfig']['stopSequences'] == ['```']


def test_llm_gives_up_after_retries(bedrock_client):
    bedrock_client.converse_stream.side_effect = THROTTLED

    with pytest.raises(BedrockLLMError):
        BedrockLLM(llm_config()).complete_json('prompt', 'system')
    assert bedrock_client.converse_stream.call_count == 2


def test_llm_health_check(bedrock_client):
    bedrock_client.converse_stream.return_value = stream_of('OK')
    assert BedrockLLM(llm_config()).health_check() is True

    bedrock_client.converse_stream.side_effect = THROTTLED
    assert BedrockLLM(llm_config()).health_check() is False
