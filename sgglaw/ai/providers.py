# sgglaw/ai/providers.py
"""
Providers de modelo para o fallback de extracao.

Interface fechada: is_available(), complete(request), select_best_model().
A ordem de fallback vem de PipelineConfig.ai_provider_order (ex.: ollama,groq).

Providers suportados:
- ollama: servidor local (GET /api/tags, POST /api/generate)
- groq: API cloud compativel com OpenAI (api.groq.com)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from sgglaw.config import PipelineConfig
from sgglaw.errors import ProviderError

logger = logging.getLogger(__name__)

GROQ_CHAT_URL = "https://api.groq.com/openai/v1/chat/completions"
GROQ_DEFAULT_MODEL = "llama-3.3-70b-versatile"
OLLAMA_DEFAULT_CONTEXT = 8192
AVAILABILITY_TIMEOUT = 5


def estimate_tokens(text: str) -> int:
    """Estimativa grosseira: ~4 caracteres por token."""
    return len(text or "") // 4 + 1


@dataclass(frozen=True)
class ModelInfo:
    name: str
    supports_vision: bool = False
    context_window: int = OLLAMA_DEFAULT_CONTEXT
    description: str = ""


@dataclass
class AIRequest:
    prompt: str
    system: str = ""
    model: Optional[str] = None
    images: List[str] = field(default_factory=list)   # base64
    temperature: float = 0.1
    max_tokens: int = 4000


@dataclass
class AIResponse:
    text: str
    tokens_used: int = 0
    model: str = ""
    provider: str = ""


def select_best_model(
    models: List[ModelInfo],
    requires_vision: bool,
    estimated_tokens: int,
) -> Optional[ModelInfo]:
    """Menor janela de contexto que cobre a estimativa, com vision compativel.

    Empate de janela: vence o modelo declarado primeiro.
    """
    candidates = [
        m for m in models
        if m.context_window >= estimated_tokens and (m.supports_vision or not requires_vision)
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda m: m.context_window)


def _post_with_retry(
    url: str,
    payload: dict,
    timeout: int,
    max_retries: int,
    headers: Optional[Dict[str, str]] = None,
    session: Optional[requests.Session] = None,
) -> dict:
    """POST JSON com retry em timeout/5xx. 4xx nao tem retry."""
    http = session or requests
    last_error = None

    for attempt in range(1, max(1, max_retries) + 1):
        try:
            resp = http.post(url, json=payload, headers=headers, timeout=timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.exceptions.Timeout:
            last_error = f"Timeout ({timeout}s) na tentativa {attempt}"
            logger.warning("provider IA %s: %s", url, last_error)
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status is not None and 400 <= status < 500:
                raise ProviderError(f"HTTP {status} em {url}") from e
            last_error = f"HTTP {status or '?'} na tentativa {attempt}"
            logger.warning("provider IA %s: %s", url, last_error)
        except (requests.exceptions.ConnectionError, ValueError) as e:
            raise ProviderError(f"{url}: {e}") from e

    raise ProviderError(last_error or f"{url}: falhou apos retries")


class AIProvider:
    """Base dos providers."""
    name = "base"

    def is_available(self) -> bool:
        raise NotImplementedError

    def list_models(self) -> List[ModelInfo]:
        raise NotImplementedError

    def complete(self, request: AIRequest) -> AIResponse:
        raise NotImplementedError

    def select_best_model(self, requires_vision: bool, estimated_tokens: int) -> Optional[ModelInfo]:
        return select_best_model(self.list_models(), requires_vision, estimated_tokens)


# ─── Ollama ──────────────────────────────────────────────────────────

# janela de contexto por familia (prefixo do nome); demais = 8192
_OLLAMA_CONTEXT = {
    "llama3.1": 131072,
    "llama3.2": 131072,
    "qwen2.5": 32768,
    "mistral": 32768,
    "gemma2": 8192,
    "llava": 4096,
}


class OllamaProvider(AIProvider):
    name = "ollama"

    def __init__(self, base_url: str, model: str = "", timeout: int = 300,
                 max_retries: int = 1, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = session or requests.Session()
        self._models: Optional[List[ModelInfo]] = None

    def _fetch_tags(self) -> List[dict]:
        resp = self.session.get(f"{self.base_url}/api/tags", timeout=AVAILABILITY_TIMEOUT)
        resp.raise_for_status()
        return resp.json().get("models") or []

    @staticmethod
    def _describe(name: str) -> ModelInfo:
        lower = name.lower()
        context = next((c for prefix, c in _OLLAMA_CONTEXT.items() if lower.startswith(prefix)),
                       OLLAMA_DEFAULT_CONTEXT)
        vision = "llava" in lower or "vision" in lower
        return ModelInfo(name=name, supports_vision=vision, context_window=context, description="ollama local")

    def is_available(self) -> bool:
        try:
            self._models = [self._describe(t.get("name", "")) for t in self._fetch_tags() if t.get("name")]
        except (requests.RequestException, ValueError) as e:
            logger.info("Ollama indisponivel em %s: %s", self.base_url, e)
            self._models = []
            return False
        if self.model:
            self._models = [m for m in self._models if m.name == self.model or m.name.split(":")[0] == self.model]
        return bool(self._models)

    def list_models(self) -> List[ModelInfo]:
        if self._models is None:
            self.is_available()
        return list(self._models or [])

    def complete(self, request: AIRequest) -> AIResponse:
        model = request.model or self.model
        if not model:
            raise ProviderError("Ollama: nenhum modelo selecionado")
        payload = {
            "model": model,
            "prompt": request.prompt,
            "system": request.system,
            "stream": False,
            "options": {"temperature": request.temperature, "num_predict": request.max_tokens},
        }
        if request.images:
            payload["images"] = request.images
        data = _post_with_retry(f"{self.base_url}/api/generate", payload,
                                self.timeout, self.max_retries, session=self.session)
        tokens = int(data.get("prompt_eval_count") or 0) + int(data.get("eval_count") or 0)
        return AIResponse(text=data.get("response") or "", tokens_used=tokens, model=model, provider=self.name)


# ─── Groq ────────────────────────────────────────────────────────────

GROQ_MODELS = [
    ModelInfo("gemma2-9b-it", False, 8192, "Gemma 2 9B"),
    ModelInfo("llama-3.1-8b-instant", False, 131072, "Llama 3.1 8B"),
    ModelInfo("llama-3.3-70b-versatile", False, 131072, "Llama 3.3 70B"),
    ModelInfo("meta-llama/llama-4-scout-17b-16e-instruct", True, 131072, "Llama 4 Scout (vision)"),
]


class GroqProvider(AIProvider):
    name = "groq"

    def __init__(self, api_key: str, model: str = "", timeout: int = 300,
                 max_retries: int = 1, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = session

    def is_available(self) -> bool:
        return bool(self.api_key)

    def list_models(self) -> List[ModelInfo]:
        if self.model:
            preferred = [m for m in GROQ_MODELS if m.name == self.model]
            return preferred or [ModelInfo(self.model, False, 131072, "configurado")]
        return list(GROQ_MODELS)

    def complete(self, request: AIRequest) -> AIResponse:
        if not self.api_key:
            raise ProviderError("Groq: GROQ_API_KEY nao configurada")
        model = request.model or self.model or GROQ_DEFAULT_MODEL
        messages = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        if request.images:
            content = [{"type": "text", "text": request.prompt}] + [
                {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{img}"}}
                for img in request.images
            ]
            messages.append({"role": "user", "content": content})
        else:
            messages.append({"role": "user", "content": request.prompt})

        data = _post_with_retry(
            GROQ_CHAT_URL,
            {
                "model": model,
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
                "messages": messages,
            },
            self.timeout,
            self.max_retries,
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            session=self.session,
        )
        try:
            text = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Groq: resposta inesperada ({e})") from e
        tokens = int((data.get("usage") or {}).get("total_tokens") or 0)
        return AIResponse(text=text, tokens_used=tokens, model=model, provider=self.name)


def build_providers(cfg: PipelineConfig) -> List[AIProvider]:
    """Providers na ordem de fallback configurada."""
    factories = {
        "ollama": lambda: OllamaProvider(cfg.ollama_url, cfg.ollama_model, cfg.ai_timeout, cfg.ai_max_retries),
        "groq": lambda: GroqProvider(cfg.groq_api_key, cfg.groq_model, cfg.ai_timeout, cfg.ai_max_retries),
    }
    providers = []
    for name in cfg.ai_provider_order:
        factory = factories.get(name)
        if factory is None:
            logger.warning("Provider IA desconhecido ignorado: %s", name)
            continue
        providers.append(factory())
    return providers
