from unittest.mock import patch

import httpx
import pytest

from chatdesk.config import Settings
from chatdesk.services.llm import AnthropicProvider, OpenAIProvider, build_llm_provider
from chatdesk.services.llm.base import LLMError

MESSAGES = [{"role": "system", "content": "Be brief."}, {"role": "user", "content": "Hi"}]


def _post(mock_client_cls):
    return mock_client_cls.return_value.__enter__.return_value.post


class TestBuildProvider:
    def test_disabled_by_default(self):
        assert build_llm_provider(Settings(ai_provider="none")) is None

    def test_openai_requires_key(self):
        assert build_llm_provider(Settings(ai_provider="openai", openai_api_key="")) is None
        provider = build_llm_provider(Settings(ai_provider="openai", openai_api_key="sk-test"))
        assert isinstance(provider, OpenAIProvider)
        assert provider.default_model == "gpt-4o-mini"

    def test_anthropic_with_model_override(self):
        provider = build_llm_provider(
            Settings(ai_provider="Anthropic", anthropic_api_key="key", ai_model="claude-3-5-sonnet-latest")
        )
        assert isinstance(provider, AnthropicProvider)
        assert provider.default_model == "claude-3-5-sonnet-latest"


class TestOpenAIProvider:
    @patch("chatdesk.services.llm.openai_provider.httpx.Client")
    def test_generate(self, mock_client_cls):
        _post(mock_client_cls).return_value = httpx.Response(
            200, json={"model": "gpt-4o-mini", "choices": [{"message": {"content": " Hello! "}}]}
        )

        response = OpenAIProvider(api_key="sk-test").generate(MESSAGES, json_mode=True, timeout_seconds=2)

        assert response.content == "Hello!"
        kwargs = _post(mock_client_cls).call_args.kwargs
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["json"]["response_format"] == {"type": "json_object"}
        assert kwargs["json"]["messages"] == MESSAGES
        mock_client_cls.assert_called_with(timeout=2)

    @patch("chatdesk.services.llm.openai_provider.httpx.Client")
    def test_error_status_raises_after_retries(self, mock_client_cls):
        _post(mock_client_cls).return_value = httpx.Response(500, text="boom")

        with pytest.raises(LLMError):
            OpenAIProvider(api_key="sk-test").generate(MESSAGES)

        assert _post(mock_client_cls).call_count == 2

    @patch("chatdesk.services.llm.openai_provider.httpx.Client")
    def test_malformed_body(self, mock_client_cls):
        _post(mock_client_cls).return_value = httpx.Response(200, json={"choices": []})
        with pytest.raises(LLMError):
            OpenAIProvider(api_key="sk-test").generate(MESSAGES)


class TestAnthropicProvider:
    @patch("chatdesk.services.llm.anthropic_provider.httpx.Client")
    def test_system_prompt_sent_separately(self, mock_client_cls):
        _post(mock_client_cls).return_value = httpx.Response(
            200, json={"model": "claude", "content": [{"type": "text", "text": "Hello!"}]}
        )

        response = AnthropicProvider(api_key="key").generate(MESSAGES)

        assert response.content == "Hello!"
        payload = _post(mock_client_cls).call_args.kwargs["json"]
        assert payload["system"] == "Be brief."
        assert payload["messages"] == [{"role": "user", "content": "Hi"}]

    @patch("chatdesk.services.llm.anthropic_provider.httpx.Client")
    def test_empty_content_raises(self, mock_client_cls):
        _post(mock_client_cls).return_value = httpx.Response(200, json={"content": []})
        with pytest.raises(LLMError):
            AnthropicProvider(api_key="key").generate(MESSAGES)
