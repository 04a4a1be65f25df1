# sgglaw/extract/metadata.py
"""
Extracao de metadados (titulo, data/cidade de promulgacao, signatarios).

Slots fixos de regex aplicados ao texto inteiro, independente dos artigos.
Tudo best-effort: sem match → None / lista vazia.
"""
from __future__ import annotations

import os
import re
import csv
import logging
from dataclasses import dataclass
from typing import List, Optional, Pattern

from sgglaw.errors import ConfigurationError
from sgglaw.extract.dates import RE_FRENCH_DATE, parse_french_date, to_iso
from sgglaw.models import DocumentMetadata, Signatory

logger = logging.getLogger(__name__)

RESOURCES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "resources")
DEFAULT_SIGNATORIES = os.path.join(RESOURCES_DIR, "signatories.csv")

TITLE_MAX_LINES = 6

# ── Regex patterns ───────────────────────────────────────────────────────────

# LOI N° 2024-15 DU ..., DECRET N°2019-012 PORTANT ...
RE_TITLE_START = re.compile(
    r"^\s*(?:LOI|D[ÉE]CRET)\s+N\s*[°ºo\"]?\s*\d{2,4}\s*[-–/]\s*\d+",
    re.IGNORECASE,
)

# fim do bloco de titulo: formula de deliberacao, visas, chefe de Estado
RE_TITLE_END = re.compile(
    r"^\s*(?:L['’]ASSEMBL[ÉE]E\s+NATIONALE|LE\s+PR[ÉE]SIDENT\s+DE\s+LA\s+R[ÉE]PUBLIQUE|VU\b|SUR\s+(?:LE\s+)?(?:RAPPORT|PROPOSITION))",
    re.IGNORECASE,
)

RE_PROMULGATION_CITY = re.compile(
    r"\bFait\s+[àa]\s+([A-ZÀ-Ý][\w\-’']+)",
    re.IGNORECASE,
)


@dataclass
class SignatoryPattern:
    pattern: Pattern
    role: str
    name: str
    mandate_start: Optional[str] = None
    mandate_end: Optional[str] = None

    def in_mandate(self, iso_date: Optional[str]) -> bool:
        if not iso_date:
            return True
        if self.mandate_start and iso_date < self.mandate_start:
            return False
        if self.mandate_end and iso_date > self.mandate_end:
            return False
        return True


def load_signatory_patterns(path: Optional[str] = None) -> List[SignatoryPattern]:
    """signatories.csv: pattern,role,name,mandateStart,mandateEnd (ordem do arquivo)."""
    path = path or DEFAULT_SIGNATORIES
    if not os.path.isfile(path):
        raise ConfigurationError(f"Tabela de signatarios nao encontrada: {path}")

    patterns: List[SignatoryPattern] = []
    with open(path, "r", encoding="utf-8", newline="") as f:
        for lineno, row in enumerate(csv.reader(f), 1):
            if not row or not row[0].strip() or row[0].lstrip().startswith("#"):
                continue
            if len(row) < 3:
                logger.warning("signatories.csv:%d ignorada (colunas insuficientes)", lineno)
                continue
            try:
                compiled = re.compile(row[0], re.IGNORECASE)
            except re.error as e:
                logger.warning("signatories.csv:%d regex invalida (%s), ignorada", lineno, e)
                continue
            patterns.append(SignatoryPattern(
                pattern=compiled,
                role=row[1].strip(),
                name=row[2].strip(),
                mandate_start=(row[3].strip() or None) if len(row) > 3 else None,
                mandate_end=(row[4].strip() or None) if len(row) > 4 else None,
            ))
    logger.info("Padroes de signatarios carregados: %d", len(patterns))
    return patterns


class MetadataExtractor:
    def __init__(self, signatory_patterns: List[SignatoryPattern]):
        self.signatory_patterns = signatory_patterns

    def extract_title(self, text: str) -> Optional[str]:
        lines = text.split("\n")
        for i, line in enumerate(lines):
            if not RE_TITLE_START.match(line):
                continue
            parts = [line.strip()]
            for nxt in lines[i + 1:i + TITLE_MAX_LINES]:
                if not nxt.strip() or RE_TITLE_END.match(nxt):
                    break
                parts.append(nxt.strip())
            return re.sub(r"\s+", " ", " ".join(parts)).strip()
        return None

    @staticmethod
    def extract_promulgation(text: str) -> tuple:
        """(cidade, data ISO). Data procurada apos 'Fait à', senao no texto todo."""
        city = None
        tail = text
        m = RE_PROMULGATION_CITY.search(text)
        if m:
            city = m.group(1).strip(" ,.")
            tail = text[m.start():]

        promulgation_date = None
        dm = RE_FRENCH_DATE.search(tail)
        if dm:
            promulgation_date = to_iso(int(dm.group(1)), dm.group(3), int(dm.group(4)))
        if promulgation_date is None:
            promulgation_date = parse_french_date(text)
        return city, promulgation_date

    def extract_signatories(self, text: str, promulgation_date: Optional[str] = None) -> List[Signatory]:
        found: List[Signatory] = []
        names = set()
        for sp in self.signatory_patterns:
            if sp.name in names or not sp.pattern.search(text):
                continue
            if not sp.in_mandate(promulgation_date):
                logger.debug("Signatario %s fora do mandato em %s", sp.name, promulgation_date)
                continue
            names.add(sp.name)
            found.append(Signatory(sp.role, sp.name, sp.mandate_start, sp.mandate_end))
        return found

    def extract(self, text: str) -> DocumentMetadata:
        if not text:
            return DocumentMetadata()
        city, promulgation_date = self.extract_promulgation(text)
        return DocumentMetadata(
            title=self.extract_title(text),
            promulgation_date=promulgation_date,
            promulgation_city=city,
            signatories=self.extract_signatories(text, promulgation_date),
        )
