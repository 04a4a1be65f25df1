# sgglaw/extract/dictionary.py
"""
Heuristicas de qualidade de texto OCR frances.

  - taxa de palavras nao reconhecidas contra um dicionario de referencia
    (tokeniza por nao-letras, lowercase, ignora tokens < 3 chars)
  - densidade de termos juridicos (termos distintos encontrados)
  - registro append-only das palavras desconhecidas (para alimentar corrections.csv)
"""
from __future__ import annotations

import os
import re
import logging
import threading
from typing import FrozenSet, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

RESOURCES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "resources")
DEFAULT_DICTIONARY = os.path.join(RESOURCES_DIR, "dictionnaire_fr.txt")

MIN_TOKEN_LEN = 3

RE_NON_LETTER = re.compile(r"[^a-zàâäéèêëïîôöùûüÿçœæ]+")

LEGAL_TERMS = (
    "article",
    "loi",
    "décret",
    "dispositions",
    "promulgué",
    "république",
    "président",
    "ministre",
    "journal officiel",
    "conformément",
    "application",
    "notamment",
    "toutefois",
)


def tokenize(text: Optional[str]) -> List[str]:
    """Tokens considerados na taxa (lowercase, >= 3 letras)."""
    if not text:
        return []
    return [t for t in RE_NON_LETTER.split(text.lower()) if len(t) >= MIN_TOKEN_LEN]


def legal_terms_found(text: Optional[str]) -> int:
    """Quantidade de termos juridicos DISTINTOS presentes no texto."""
    if not text:
        return 0
    lower = text.lower()
    return sum(1 for term in LEGAL_TERMS if term in lower)


class WordDictionary:
    def __init__(self, words: Iterable[str] = ()):
        self.words: FrozenSet[str] = frozenset(w.strip().lower() for w in words if w and w.strip())

    @classmethod
    def from_file(cls, path: Optional[str] = None) -> "WordDictionary":
        path = path or DEFAULT_DICTIONARY
        if not os.path.isfile(path):
            logger.warning("Dicionario nao encontrado (%s), taxa de nao reconhecidas = 0", path)
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            words = [line for line in f if not line.startswith("#")]
        d = cls(words)
        logger.info("Dicionario carregado: %d palavras", len(d.words))
        return d

    def __len__(self) -> int:
        return len(self.words)

    def unrecognized_words(self, text: Optional[str]) -> Set[str]:
        if not self.words:
            return set()
        return {t for t in tokenize(text) if t not in self.words}

    def unrecognized_rate(self, text: Optional[str]) -> float:
        """Tokens fora do dicionario / tokens considerados. Dicionario vazio → 0."""
        if not self.words:
            return 0.0
        tokens = tokenize(text)
        if not tokens:
            return 0.0
        unknown = sum(1 for t in tokens if t not in self.words)
        return unknown / len(tokens)


class UnrecognizedWordsRecorder:
    """Acumula palavras desconhecidas em arquivo texto (uma por linha, sem repeticao)."""

    def __init__(self, path: str):
        self.path = path
        self._known: Set[str] = set()
        self._lock = threading.Lock()
        if os.path.isfile(path):
            with open(path, "r", encoding="utf-8") as f:
                self._known.update(w.strip() for w in f if w.strip())

    def __len__(self) -> int:
        return len(self._known)

    def record(self, words: Iterable[str], document_id: str = "") -> int:
        """Grava apenas palavras novas (ordenadas). Retorna quantas foram gravadas."""
        with self._lock:
            new_words = sorted({w for w in words if w} - self._known)
            if not new_words:
                return 0
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                for w in new_words:
                    f.write(w + "\n")
            self._known.update(new_words)
        logger.info("[%s] %d nova(s) palavra(s) nao reconhecida(s) (total %d)",
                    document_id, len(new_words), len(self._known))
        return len(new_words)
