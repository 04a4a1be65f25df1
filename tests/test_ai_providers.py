# tests/test_ai_providers.py
"""
Testes dos providers IA (Ollama, Groq) e do POST com retry.
Toda chamada HTTP e mockada (requests.post / Session).
"""
from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from sgglaw.ai.providers import (
    GROQ_CHAT_URL,
    AIRequest,
    GroqProvider,
    ModelInfo,
    OllamaProvider,
    _post_with_retry,
    build_providers,
    estimate_tokens,
    select_best_model,
)
from sgglaw.config import PipelineConfig
from sgglaw.errors import ProviderError


# ─── Helpers ─────────────────────────────────────────────────────────

def _mock_response(payload=None, status=200):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload or {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"HTTP {status}", response=resp)
    else:
        resp.raise_for_status.return_value = None
    return resp


MODELS = [
    ModelInfo("small", False, 8192),
    ModelInfo("big", False, 131072),
    ModelInfo("vision", True, 131072),
]


class TestSelectBestModel:
    def test_smallest_window_that_fits(self):
        assert select_best_model(MODELS, False, 5000).name == "small"

    def test_larger_estimate(self):
        assert select_best_model(MODELS, False, 20000).name == "big"

    def test_requires_vision(self):
        assert select_best_model(MODELS, True, 100).name == "vision"

    def test_same_window_keeps_declaration_order(self):
        models = [ModelInfo("zeta", False, 8192), ModelInfo("alpha", False, 8192)]
        assert select_best_model(models, False, 100).name == "zeta"

    def test_nothing_fits(self):
        assert select_best_model(MODELS, False, 10 ** 6) is None

    def test_estimate_tokens(self):
        assert estimate_tokens("") == 1
        assert estimate_tokens("x" * 400) == 101


class TestPostWithRetry:
    def test_success(self):
        with patch("sgglaw.ai.providers.requests.post", return_value=_mock_response({"ok": 1})) as post:
            assert _post_with_retry("http://x", {"a": 1}, timeout=5, max_retries=2) == {"ok": 1}
        post.assert_called_once()

    def test_retry_on_timeout(self):
        with patch("sgglaw.ai.providers.requests.post",
                   side_effect=[requests.exceptions.Timeout(), _mock_response({"ok": 1})]) as post:
            assert _post_with_retry("http://x", {}, timeout=5, max_retries=2) == {"ok": 1}
        assert post.call_count == 2

    def test_retry_on_5xx_then_give_up(self):
        with patch("sgglaw.ai.providers.requests.post", return_value=_mock_response(status=503)) as post:
            with pytest.raises(ProviderError):
                _post_with_retry("http://x", {}, timeout=5, max_retries=3)
        assert post.call_count == 3

    def test_4xx_is_not_retried(self):
        with patch("sgglaw.ai.providers.requests.post", return_value=_mock_response(status=401)) as post:
            with pytest.raises(ProviderError, match="401"):
                _post_with_retry("http://x", {}, timeout=5, max_retries=3)
        post.assert_called_once()

    def test_connection_error(self):
        with patch("sgglaw.ai.providers.requests.post", side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(ProviderError):
                _post_with_retry("http://x", {}, timeout=5, max_retries=3)


# ─── Ollama ──────────────────────────────────────────────────────────

class TestOllamaProvider:
    def _session(self, tags):
        session = MagicMock()
        session.get.return_value = _mock_response({"models": [{"name": n} for n in tags]})
        return session

    def test_available_and_models(self):
        provider = OllamaProvider("http://ollama:11434/", session=self._session(["llama3.1:8b", "llava:7b"]))
        assert provider.is_available() is True
        models = {m.name: m for m in provider.list_models()}
        assert models["llama3.1:8b"].context_window == 131072
        assert models["llava:7b"].supports_vision is True
        provider.session.get.assert_called_with("http://ollama:11434/api/tags", timeout=5)

    def test_configured_model_missing(self):
        provider = OllamaProvider("http://ollama", model="mistral", session=self._session(["llama3.1:8b"]))
        assert provider.is_available() is False

    def test_configured_model_matches_without_tag(self):
        provider = OllamaProvider("http://ollama", model="mistral", session=self._session(["mistral:latest"]))
        assert provider.is_available() is True
        assert [m.name for m in provider.list_models()] == ["mistral:latest"]

    def test_server_down(self):
        session = MagicMock()
        session.get.side_effect = requests.exceptions.ConnectionError("down")
        provider = OllamaProvider("http://ollama", session=session)
        assert provider.is_available() is False
        assert provider.list_models() == []

    def test_complete(self):
        session = self._session(["qwen2.5:7b"])
        session.post.return_value = _mock_response({
            "response": '{"articles": []}', "prompt_eval_count": 10, "eval_count": 5,
        })
        provider = OllamaProvider("http://ollama", session=session)
        resp = provider.complete(AIRequest(prompt="p", system="s", model="qwen2.5:7b", max_tokens=100))

        assert resp.text == '{"articles": []}'
        assert resp.tokens_used == 15
        assert resp.provider == "ollama"
        url = session.post.call_args[0][0]
        payload = session.post.call_args[1]["json"]
        assert url == "http://ollama/api/generate"
        assert payload["stream"] is False
        assert payload["options"]["num_predict"] == 100

    def test_complete_without_model(self):
        with pytest.raises(ProviderError):
            OllamaProvider("http://ollama", session=MagicMock()).complete(AIRequest(prompt="p"))


# ─── Groq ────────────────────────────────────────────────────────────

class TestGroqProvider:
    def test_unavailable_without_key(self):
        provider = GroqProvider("")
        assert provider.is_available() is False
        with pytest.raises(ProviderError):
            provider.complete(AIRequest(prompt="p"))

    def test_complete(self):
        session = MagicMock()
        session.post.return_value = _mock_response({
            "choices": [{"message": {"content": json.dumps({"articles": []})}}],
            "usage": {"total_tokens": 42},
        })
        provider = GroqProvider("gsk-test", session=session)
        resp = provider.complete(AIRequest(prompt="texte", system="sys"))

        assert resp.tokens_used == 42
        assert resp.model == "llama-3.3-70b-versatile"
        args, kwargs = session.post.call_args
        assert args[0] == GROQ_CHAT_URL
        assert kwargs["headers"]["Authorization"] == "Bearer gsk-test"
        assert [m["role"] for m in kwargs["json"]["messages"]] == ["system", "user"]

    def test_unexpected_response(self):
        session = MagicMock()
        session.post.return_value = _mock_response({"error": "x"})
        with pytest.raises(ProviderError):
            GroqProvider("k", session=session).complete(AIRequest(prompt="p"))

    def test_configured_model_listed(self):
        assert [m.name for m in GroqProvider("k", model="custom-model").list_models()] == ["custom-model"]


class TestBuildProviders:
    def test_order_follows_config(self):
        cfg = PipelineConfig(ai_provider_order=["groq", "ollama"], groq_api_key="k")
        assert [p.name for p in build_providers(cfg)] == ["groq", "ollama"]

    def test_unknown_ignored(self):
        cfg = PipelineConfig(ai_provider_order=["openai", "groq"])
        assert [p.name for p in build_providers(cfg)] == ["groq"]

    def test_empty(self):
        assert build_providers(PipelineConfig(ai_provider_order=[])) == []
