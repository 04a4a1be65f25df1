# sgglaw/ai/orchestrator.py
"""
Fallback de extracao via IA.

Fluxo:
1. Percorre os providers na ordem configurada
2. Provider indisponivel ou com erro → proximo (o documento nao aborta)
3. Texto longo → chunks; cada chunk vai sozinho ao modelo
4. Chunk com JSON invalido → warning, fica fora do merge
5. Merge: artigos deduplicados por index (primeiro vence), ordenados
6. Nenhum provider util → FallbackOutcome sem resultado (tratamento manual)
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from sgglaw.ai.chunking import chunk_json, chunk_text, combine_json
from sgglaw.ai.providers import AIProvider, AIRequest, estimate_tokens
from sgglaw.errors import ProviderError
from sgglaw.models import (
    RE_ASCII_INT,
    Article,
    DocumentMetadata,
    ExtractionResult,
    LegalDocument,
    Signatory,
)

logger = logging.getLogger(__name__)

# ─── Prompts ─────────────────────────────────────────────────────────

_SYSTEM_EXTRACT = """Tu es un assistant spécialisé dans les textes juridiques de la République du Bénin.
On te donne un extrait (texte OCR) d'une loi ou d'un décret publié par le SGG.

RÈGLES:
1. N'invente rien: recopie le texte des articles tel qu'il apparaît, en corrigeant seulement les erreurs évidentes d'OCR.
2. "index" est le numéro de l'article (Article premier = 1).
3. Si un champ est absent de l'extrait, mets null.

Réponds UNIQUEMENT en JSON avec ce format exact:
{
  "type": "loi" ou "decret",
  "number": "numéro du texte" ou null,
  "year": année ou null,
  "title": "titre complet" ou null,
  "promulgationDate": "YYYY-MM-DD" ou null,
  "promulgationCity": "ville" ou null,
  "signatories": [{"role": "...", "name": "..."}],
  "articles": [{"index": 1, "content": "..."}]
}"""

_SYSTEM_REFINE = """Tu corriges les erreurs d'OCR dans des articles de textes juridiques béninois.
Ne change ni la numérotation ni le sens. Ne fusionne pas et ne découpe pas les articles.
Réponds UNIQUEMENT avec le même objet JSON, articles corrigés."""

# pesos da confianca IA
W_AI_ARTICLES = 0.40
W_AI_FIELDS = 0.30
W_AI_STRUCTURE = 0.20
W_AI_SIGNATORIES = 0.10
AI_EXPECTED_FIELDS = ("title", "number", "year", "type")


def _parse_llm_json(content: str) -> dict:
    """Extrai JSON da resposta do modelo, tolerante a markdown."""
    if not content:
        return {}
    cb = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", content, re.DOTALL)
    if cb:
        content = cb.group(1)
    else:
        match = re.search(r"\{.*\}", content, re.DOTALL)
        if match:
            content = match.group(0)
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        logger.warning("Falha ao parsear JSON do modelo: %s", content[:200])
        return {}
    return data if isinstance(data, dict) else {}


def _article_index(raw: Any) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and RE_ASCII_INT.fullmatch(raw.strip()):
        return int(raw.strip())
    return None


def _structure_valid(data: Dict[str, Any]) -> bool:
    articles = data.get("articles")
    if not isinstance(articles, list) or not articles:
        return False
    return all(
        isinstance(a, dict)
        and _article_index(a.get("index")) is not None
        and isinstance(a.get("content"), str) and a["content"].strip()
        for a in articles
    )


def ai_confidence(data: Dict[str, Any]) -> float:
    """Artigos 0.40, campos esperados 0.30, estrutura 0.20, signatarios 0.10."""
    articles = data.get("articles") if isinstance(data.get("articles"), list) else []
    fields_present = sum(1 for f in AI_EXPECTED_FIELDS if data.get(f) not in (None, ""))
    score = (
        W_AI_ARTICLES * min(len(articles) / 10, 1.0)
        + W_AI_FIELDS * fields_present / len(AI_EXPECTED_FIELDS)
        + W_AI_STRUCTURE * (1.0 if _structure_valid(data) else 0.0)
        + W_AI_SIGNATORIES * (1.0 if data.get("signatories") else 0.0)
    )
    return round(max(0.0, min(1.0, score)), 4)


def merge_chunk_results(parts: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Junta os JSON de cada chunk.

    Campos escalares: primeiro valor nao vazio. Artigos: dedupe por index
    (primeira ocorrencia vence) e ordenacao por index. Signatarios: dedupe por nome.
    """
    merged: Dict[str, Any] = {}
    by_index: Dict[int, Dict[str, Any]] = {}
    signatories: List[Dict[str, Any]] = []
    names = set()

    for part in parts:
        for key, value in part.items():
            if key in ("articles", "signatories"):
                continue
            if merged.get(key) in (None, "") and value not in (None, ""):
                merged[key] = value
        for article in part.get("articles") or []:
            if not isinstance(article, dict):
                continue
            idx = _article_index(article.get("index"))
            if idx is None or idx in by_index:
                continue
            by_index[idx] = {"index": idx, "content": str(article.get("content") or "").strip()}
        for sig in part.get("signatories") or []:
            if isinstance(sig, dict) and sig.get("name") and sig["name"] not in names:
                names.add(sig["name"])
                signatories.append(sig)

    merged["articles"] = [by_index[i] for i in sorted(by_index)]
    merged["signatories"] = signatories
    return merged


def result_from_ai_json(data: Dict[str, Any], method: str) -> ExtractionResult:
    articles = [
        Article(index=a["index"], content=a["content"])
        for a in data.get("articles") or []
        if a.get("content")
    ]
    metadata = DocumentMetadata(
        title=data.get("title") or None,
        promulgation_date=data.get("promulgationDate") or None,
        promulgation_city=data.get("promulgationCity") or None,
        signatories=[
            Signatory(role=str(s.get("role") or ""), name=str(s["name"]))
            for s in data.get("signatories") or []
        ],
    )
    return ExtractionResult(
        articles=articles,
        metadata=metadata,
        confidence=ai_confidence(data),
        method=method,
    )


@dataclass
class FallbackOutcome:
    result: Optional[ExtractionResult] = None
    provider: Optional[str] = None
    reason: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def needs_manual_review(self) -> bool:
        return self.result is None


class AIOrchestrator:
    def __init__(
        self,
        providers: List[AIProvider],
        chunk_size: int = 2000,
        chunk_overlap: int = 200,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ):
        self.providers = list(providers)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _is_available(self, provider: AIProvider) -> bool:
        try:
            return provider.is_available()
        except (requests.RequestException, ProviderError) as e:
            logger.warning("Provider %s: falha ao checar disponibilidade: %s", provider.name, e)
            return False

    def _ask(self, provider: AIProvider, system: str, prompt: str) -> dict:
        model = provider.select_best_model(False, estimate_tokens(system + prompt) + self.max_tokens)
        if model is None:
            raise ProviderError(f"{provider.name}: nenhum modelo com contexto suficiente")
        response = provider.complete(AIRequest(
            prompt=prompt,
            system=system,
            model=model.name,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        ))
        logger.debug("%s/%s: %d tokens", provider.name, model.name, response.tokens_used)
        return _parse_llm_json(response.text)

    def _extract_with(self, provider: AIProvider, text: str, document_id: str) -> FallbackOutcome:
        chunks = chunk_text(text, self.chunk_size, self.chunk_overlap)
        parts: List[Dict[str, Any]] = []
        warnings: List[str] = []

        for i, chunk in enumerate(chunks, 1):
            prompt = f"EXTRAIT {i}/{len(chunks)} du document {document_id}:\n\n{chunk}"
            data = self._ask(provider, _SYSTEM_EXTRACT, prompt)
            if not isinstance(data.get("articles"), list):
                msg = f"chunk {i}/{len(chunks)}: JSON invalido ({provider.name})"
                logger.warning("[%s] %s", document_id, msg)
                warnings.append(msg)
                continue
            parts.append(data)

        if not parts:
            return FallbackOutcome(reason=f"{provider.name}: nenhum chunk valido", warnings=warnings)

        merged = merge_chunk_results(parts)
        result = result_from_ai_json(merged, f"AI:{provider.name.upper()}")
        result.warnings = warnings
        if not result.has_articles:
            result.reason = "aucun article detecte"
        return FallbackOutcome(result=result, provider=provider.name, warnings=warnings)

    def extract_with_fallback(self, text: str, document_id: str = "") -> FallbackOutcome:
        """Tenta cada provider em ordem; primeiro resultado com artigos vence."""
        if not text or not text.strip():
            return FallbackOutcome(reason="texto vazio")

        warnings: List[str] = []
        reasons: List[str] = []
        for provider in self.providers:
            if not self._is_available(provider):
                logger.info("[%s] provider %s indisponivel, proximo", document_id, provider.name)
                reasons.append(f"{provider.name}: indisponivel")
                continue
            try:
                outcome = self._extract_with(provider, text, document_id)
            except (ProviderError, requests.RequestException) as e:
                logger.warning("[%s] provider %s falhou: %s", document_id, provider.name, e)
                reasons.append(f"{provider.name}: {e}")
                continue

            warnings.extend(outcome.warnings)
            if outcome.result is not None and outcome.result.has_articles:
                outcome.warnings = warnings
                logger.info(
                    "[%s] IA %s: %d artigo(s), confianca=%.2f",
                    document_id, provider.name, len(outcome.result.articles), outcome.result.confidence,
                )
                return outcome
            reasons.append(outcome.reason or f"{provider.name}: zero artigos")

        reason = "; ".join(reasons) if reasons else "nenhum provider IA configurado"
        logger.warning("[%s] fallback IA sem resultado (%s), tratamento manual", document_id, reason)
        return FallbackOutcome(reason=reason, warnings=warnings)

    def refine_json(self, result: ExtractionResult, document: LegalDocument) -> ExtractionResult:
        """
        Correcao OCR dos artigos ja estruturados (AI_REFINE_JSON).

        Chunk que falha mantem o texto original. Numeracao nunca muda:
        artigo devolvido com index desconhecido e ignorado.
        """
        provider = next((p for p in self.providers if self._is_available(p)), None)
        if provider is None or not result.has_articles:
            return result

        original = result.to_json_dict(document)
        original.pop("_metadata", None)
        refined_chunks: List[Dict[str, Any]] = []
        for i, chunk in enumerate(chunk_json(original, self.chunk_size), 1):
            try:
                data = self._ask(provider, _SYSTEM_REFINE, json.dumps(chunk, ensure_ascii=False))
            except (ProviderError, requests.RequestException) as e:
                logger.warning("[%s] refine chunk %d falhou: %s", document.document_id, i, e)
                data = {}
            refined_chunks.append(data if isinstance(data.get("articles"), list) else chunk)

        combined = combine_json(refined_chunks)
        by_index = {a.index: a.content for a in result.articles}
        refined = {}
        for a in combined.get("articles") or []:
            idx = _article_index(a.get("index")) if isinstance(a, dict) else None
            content = str(a.get("content") or "").strip() if idx is not None else ""
            if idx in by_index and content and idx not in refined:
                refined[idx] = content

        result.articles = [Article(index=i, content=refined.get(i, c)) for i, c in by_index.items()]
        result.method = f"{result.method}+AI:{provider.name.upper()}"
        logger.info("[%s] refine IA: %d/%d artigo(s) revisados",
                    document.document_id, len(refined), len(by_index))
        return result
