"""Tests for expansion_engine.services.llm_client — completion boundary and JSON parsing."""
import pytest
from unittest.mock import MagicMock, patch

from expansion_engine.errors import ConfigurationError
from expansion_engine.services import llm_client
from expansion_engine.services.circuit_breaker import CircuitOpenError


def _response(text):
    resp = MagicMock()
    resp.choices = [MagicMock()]
    resp.choices[0].message.content = text
    return resp


class TestComplete:

    def test_missing_client_raises_configuration_error(self):
        with patch.object(llm_client, 'client', None):
            with pytest.raises(ConfigurationError):
                llm_client.complete('sys', 'user')

    def test_returns_message_content(self):
        client = MagicMock()
        client.chat.completions.create.return_value = _response('{"events": []}')
        with patch.object(llm_client, 'client', client):
            assert llm_client.complete('sys', 'user', temperature=0) == '{"events": []}'
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs['temperature'] == 0
        assert kwargs['messages'][0] == {'role': 'system', 'content': 'sys'}
        assert kwargs['messages'][1] == {'role': 'user', 'content': 'user'}

    def test_failures_trip_openai_breaker(self, breakers):
        client = MagicMock()
        client.chat.completions.create.side_effect = RuntimeError('503')
        threshold = breakers['openai'].failure_threshold
        with patch.object(llm_client, 'client', client):
            for _ in range(threshold):
                with pytest.raises(RuntimeError):
                    llm_client.complete('sys', 'user')
            with pytest.raises(CircuitOpenError):
                llm_client.complete('sys', 'user')


class TestParseJsonObject:

    def test_plain_object(self):
        assert llm_client.parse_json_object('{"a": 1}') == {'a': 1}

    def test_code_fence_tolerated(self):
        assert llm_client.parse_json_object('```json\n{"a": [1, 2]}\n```') == {'a': [1, 2]}

    def test_leading_prose_tolerated(self):
        assert llm_client.parse_json_object('Here you go: {"a": {"b": 2}} thanks') == {'a': {'b': 2}}

    @pytest.mark.parametrize('text', ['', None, 'no json here', '} {'])
    def test_no_object_raises(self, text):
        with pytest.raises(ValueError):
            llm_client.parse_json_object(text)

    def test_malformed_raises_value_error(self):
        with pytest.raises(ValueError):
            llm_client.parse_json_object('{"a": }')
