# sgglaw/extract/articles.py
"""
Extrator estrutural de artigos (regex + validacao de sequencia) e score de confianca.

Varredura por linha:
  - linha que casa RE_ARTICLE_START com numero == esperado → abre novo artigo
    (esperado comeca em 1 e so incrementa em artigo aceito)
  - numero diferente do esperado → citacao dentro do artigo corrente
    (ex.: "Article 12 de la loi ..." dentro do Article 3)
  - RE_ARTICLE_END (Fait à / Par le Président / Ampliations) fecha o artigo corrente
  - corpo com menos de MIN_ARTICLE_CHARS e descartado como ruido

Confianca = 0.30*artigos + 0.20*tamanho + 0.30*reconhecimento + 0.20*termos juridicos,
cada termo limitado a [0, 1] antes do peso.
"""
from __future__ import annotations

import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from sgglaw.extract.dictionary import WordDictionary, legal_terms_found
from sgglaw.extract.metadata import MetadataExtractor
from sgglaw.models import Article, ExtractionResult, SequenceReport

logger = logging.getLogger(__name__)

# ── Constantes ───────────────────────────────────────────────────────────────

MIN_ARTICLE_CHARS = 3

W_ARTICLES = 0.30
W_LENGTH = 0.20
W_DICTIONARY = 0.30
W_LEGAL_TERMS = 0.20

ARTICLES_FOR_FULL_SCORE = 10
LENGTH_FOR_FULL_SCORE = 5000
LEGAL_TERMS_FOR_FULL_SCORE = 8

METHOD_REGEX = "REGEX"

# ── Regex patterns ───────────────────────────────────────────────────────────

# Article 1, ARTICLE 2, Art. 3, Article 1er, Article premier, Article 4 : texto...
RE_ARTICLE_START = re.compile(
    r"^\s*(?:article\s+|art\.\s*)"
    r"(?:(premier|première|1\s*(?:er|ère))|(\d+)\s*[°º]?)"
    r"(?!\w)\s*([:.\-–—])?\s*(.*)$",
    re.IGNORECASE,
)

RE_ARTICLE_END = re.compile(
    r"^\s*(?:fait\s+[àa]\s|par\s+le\s+pr[ée]sident|ampliations?\b)",
    re.IGNORECASE,
)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def compute_confidence(
    article_count: int,
    text_length: int,
    unrecognized_rate: float,
    legal_terms: int,
) -> float:
    """Blend ponderado; monotono em artigos, tamanho, reconhecimento e termos."""
    score = (
        W_ARTICLES * _clamp(article_count / ARTICLES_FOR_FULL_SCORE)
        + W_LENGTH * _clamp(text_length / LENGTH_FOR_FULL_SCORE)
        + W_DICTIONARY * _clamp(1.0 - unrecognized_rate)
        + W_LEGAL_TERMS * _clamp(legal_terms / LEGAL_TERMS_FOR_FULL_SCORE)
    )
    return round(_clamp(score), 4)


def sequence_report(numbers: List[int]) -> SequenceReport:
    """Lacunas, duplicados e inversoes na sequencia de numeros detectados."""
    report = SequenceReport()
    seen: Set[int] = set()
    highest: Optional[int] = None
    for n in numbers:
        if n in seen:
            report.duplicates += 1
        elif highest is not None and n < highest:
            report.out_of_order += 1
        elif highest is not None and n > highest + 1:
            report.gaps += n - highest - 1
        seen.add(n)
        highest = n if highest is None else max(highest, n)
    return report


@dataclass
class _Span:
    """Artigo em construcao."""
    index: int
    lines: List[str] = field(default_factory=list)

    def content(self) -> str:
        text = "\n".join(self.lines).strip()
        return re.sub(r"\n{3,}", "\n\n", text)


def split_articles(text: str) -> tuple:
    """
    Returns:
        (articles, detected_numbers): detected inclui cabecalhos fora de sequencia,
        sem as citacoes
    """
    articles: List[Article] = []
    detected: List[int] = []
    expected = 1
    current: Optional[_Span] = None

    def flush() -> None:
        nonlocal current
        if current is None:
            return
        body = current.content()
        if len(body) >= MIN_ARTICLE_CHARS:
            articles.append(Article(index=current.index, content=body))
        else:
            logger.debug("Article %d descartado (corpo curto: %r)", current.index, body)
        current = None

    for line in (text or "").split("\n"):
        m = RE_ARTICLE_START.match(line)
        if m:
            number = 1 if m.group(1) else int(m.group(2))
            rest = (m.group(4) or "").strip()
            if number == expected:
                detected.append(number)
                flush()
                current = _Span(index=number)
                if rest:
                    current.lines.append(rest)
                expected += 1
                continue
            # "Article 7 :" isolado e cabecalho fora de sequencia;
            # "Article 12 de la loi ..." e citacao e nao entra na validacao
            if m.group(3) or not rest:
                detected.append(number)
            if current is not None:
                current.lines.append(line)
            continue

        if RE_ARTICLE_END.match(line):
            flush()
            continue

        if current is not None:
            current.lines.append(line)

    flush()
    return articles, detected


class ArticleExtractor:
    def __init__(self, dictionary: WordDictionary, metadata_extractor: MetadataExtractor):
        self.dictionary = dictionary
        self.metadata_extractor = metadata_extractor

    def unrecognized_words(self, text: str) -> Set[str]:
        return self.dictionary.unrecognized_words(text)

    def extract(self, text: str, document_id: str = "") -> ExtractionResult:
        """
        Extrai artigos + metadados de texto OCR corrigido.

        Zero artigos nao levanta: devolve resultado com reason preenchido
        (o chamador decide fallback IA / FAILED_EXTRACTION).
        """
        text = text or ""
        articles, detected = split_articles(text)
        rate = self.dictionary.unrecognized_rate(text)
        terms = legal_terms_found(text)
        confidence = compute_confidence(len(articles), len(text), rate, terms)

        result = ExtractionResult(
            articles=articles,
            metadata=self.metadata_extractor.extract(text),
            confidence=confidence,
            method=METHOD_REGEX,
            sequence=sequence_report(detected),
            unrecognized_rate=rate,
            legal_terms_found=terms,
        )
        if not articles:
            result.reason = "aucun article detecte"
            logger.warning("[%s] nenhum artigo detectado (%d chars)", document_id, len(text))
        else:
            logger.info(
                "[%s] %d artigo(s), confianca=%.2f, nao reconhecidas=%.1f%%, seq=%s",
                document_id, len(articles), confidence, rate * 100, result.sequence.to_dict(),
            )
        return result
