# sgglaw/extract/corrector.py
"""
Correcao deterministica de erros recorrentes de OCR.

Tabela corrections.csv: uma substituicao por linha, 'errado,correto'.
Linhas vazias e iniciadas por '#' sao ignoradas. Substituicao literal,
case-sensitive, aplicada na ordem do arquivo.
"""
from __future__ import annotations

import os
import re
import csv
import logging
from typing import List, Optional, Tuple

from sgglaw.errors import ConfigurationError

logger = logging.getLogger(__name__)

RESOURCES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "resources")
DEFAULT_CORRECTIONS = os.path.join(RESOURCES_DIR, "corrections.csv")


def normalize_text(text: str) -> str:
    """Normaliza quebras de linha e espacos sem perder paragrafos."""
    if not text:
        return ""
    text = text.replace("\u00a0", " ").replace("\ufeff", "")
    text = re.sub(r"\r\n|\r", "\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def load_corrections(path: Optional[str] = None) -> List[Tuple[str, str]]:
    path = path or DEFAULT_CORRECTIONS
    if not os.path.isfile(path):
        raise ConfigurationError(f"Tabela de correcoes nao encontrada: {path}")

    pairs: List[Tuple[str, str]] = []
    with open(path, "r", encoding="utf-8", newline="") as f:
        for lineno, row in enumerate(csv.reader(f), 1):
            if not row or not row[0].strip() or row[0].lstrip().startswith("#"):
                continue
            if len(row) < 2 or not row[0]:
                logger.warning("corrections.csv:%d ignorada (formato 'errado,correto')", lineno)
                continue
            pairs.append((row[0], row[1]))
    logger.info("Correcoes OCR carregadas: %d (%s)", len(pairs), path)
    return pairs


class TextCorrector:
    def __init__(self, corrections: List[Tuple[str, str]]):
        self.corrections = list(corrections)

    @classmethod
    def from_csv(cls, path: Optional[str] = None) -> "TextCorrector":
        return cls(load_corrections(path))

    def correct(self, text: str) -> str:
        text = normalize_text(text)
        for wrong, right in self.corrections:
            text = text.replace(wrong, right)
        return text
