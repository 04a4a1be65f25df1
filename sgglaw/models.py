# sgglaw/models.py
"""
Data models do pipeline de textos legais do SGG (sgg.gouv.bj/doc).
Dataclasses puras, sem dependencia de DB.

Ciclo de vida:
  PENDING → FETCHED → DOWNLOADED → OCRED → EXTRACTED → CONSOLIDATED
  + NOT_FOUND, RATE_LIMITED, FAILED, FAILED_CORRUPTED, FAILED_EXTRACTION, FAILED_CONSOLIDATION

Adjacencia (predecessor de cada status) e tabela, nao switch: REWIND_TO.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Status ───────────────────────────────────────────────────────────────────

class ProcessingStatus(str, Enum):
    PENDING = "PENDING"
    FETCHED = "FETCHED"
    DOWNLOADED = "DOWNLOADED"
    OCRED = "OCRED"
    EXTRACTED = "EXTRACTED"
    CONSOLIDATED = "CONSOLIDATED"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    FAILED = "FAILED"
    FAILED_CORRUPTED = "FAILED_CORRUPTED"
    FAILED_EXTRACTION = "FAILED_EXTRACTION"
    FAILED_CONSOLIDATION = "FAILED_CONSOLIDATION"


S = ProcessingStatus

FORWARD_ORDER: Tuple[ProcessingStatus, ...] = (
    S.PENDING, S.FETCHED, S.DOWNLOADED, S.OCRED, S.EXTRACTED, S.CONSOLIDATED,
)

FAILURE_STATUSES = frozenset({
    S.FAILED, S.FAILED_CORRUPTED, S.FAILED_EXTRACTION, S.FAILED_CONSOLIDATION,
})

# Status que o prober ainda pode tocar (RATE_LIMITED nao e terminal)
PROBE_ELIGIBLE = frozenset({S.PENDING, S.RATE_LIMITED})

# status → status para onde o Fixer rebobina
REWIND_TO: Dict[ProcessingStatus, ProcessingStatus] = {
    S.FETCHED: S.PENDING,
    S.DOWNLOADED: S.FETCHED,
    S.OCRED: S.DOWNLOADED,
    S.EXTRACTED: S.DOWNLOADED,
    S.CONSOLIDATED: S.EXTRACTED,
    S.FAILED_CORRUPTED: S.FETCHED,
    S.FAILED_EXTRACTION: S.DOWNLOADED,
    S.FAILED_CONSOLIDATION: S.EXTRACTED,
    S.FAILED: S.PENDING,
}


def previous_status(status: ProcessingStatus) -> Optional[ProcessingStatus]:
    """Status imediatamente anterior no pipeline (None para PENDING/NOT_FOUND)."""
    return REWIND_TO.get(status)


@dataclass(frozen=True)
class StageRule:
    """Pre-condicao e status de falha de um estagio."""
    name: str
    preconditions: frozenset
    success: Optional[ProcessingStatus]     # None: decidido pelo estagio (fetch)
    failure: ProcessingStatus


STAGES: Dict[str, StageRule] = {
    "fetch": StageRule("fetch", PROBE_ELIGIBLE, None, S.FAILED),
    "download": StageRule("download", frozenset({S.FETCHED}), S.DOWNLOADED, S.FAILED),
    "ocr": StageRule("ocr", frozenset({S.DOWNLOADED}), S.OCRED, S.FAILED),
    "extract": StageRule("extract", frozenset({S.OCRED}), S.EXTRACTED, S.FAILED_EXTRACTION),
    "consolidate": StageRule("consolidate", frozenset({S.EXTRACTED}), S.CONSOLIDATED, S.FAILED_CONSOLIDATION),
}


# ── Identidade ───────────────────────────────────────────────────────────────

RE_DOC_TYPE = re.compile(r"^[a-z]+$")
# so digitos ASCII: str.isdigit aceita "²", que int() rejeita
RE_ASCII_INT = re.compile(r"[0-9]+")


def build_document_id(doc_type: str, year: int, number: int) -> str:
    return f"{doc_type}-{year}-{number}"


def parse_document_id(document_id: Optional[str]) -> Optional[Tuple[str, int, int]]:
    """
    Decompoe 'loi-2024-15' em ('loi', 2024, 15).

    Nunca levanta excecao: id malformado (≠3 partes, ano/numero nao numericos) → None.
    """
    if not document_id:
        return None
    parts = document_id.split("-")
    if len(parts) != 3:
        return None
    doc_type, year_s, number_s = parts
    if not RE_DOC_TYPE.fullmatch(doc_type):
        return None
    if not RE_ASCII_INT.fullmatch(year_s) or not RE_ASCII_INT.fullmatch(number_s):
        return None
    return doc_type, int(year_s), int(number_s)


def document_url(base_url: str, doc_type: str, year: int, number: int, padded: bool = False) -> str:
    """URL canonica: {base}/{type}-{year}-{number} (ou numero com 2 digitos)."""
    num = f"{number:02d}" if padded else str(number)
    return f"{base_url.rstrip('/')}/{doc_type}-{year}-{num}"


# ── Documento e cursor ───────────────────────────────────────────────────────

@dataclass
class LegalDocument:
    """Registro de um documento (loi/decret) no ciclo de vida."""
    doc_type: str               # 'loi' | 'decret'
    year: int
    number: int
    status: ProcessingStatus = ProcessingStatus.PENDING
    url: Optional[str] = None   # URL que respondeu 200 (pode ser a variante com padding)
    pdf_path: Optional[str] = None
    ocr_path: Optional[str] = None
    json_path: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def document_id(self) -> str:
        return build_document_id(self.doc_type, self.year, self.number)

    def mark(self, status: ProcessingStatus, error_message: Optional[str] = None) -> None:
        self.status = status
        self.error_message = error_message
        self.updated_at = utcnow()


@dataclass
class FetchCursor:
    """Posicao de retomada de um scan: proximo (ano, numero) a visitar."""
    document_type: str
    cursor_type: str            # 'fetch-previous'
    current_year: int
    current_number: int
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def position(self) -> Tuple[int, int]:
        return self.current_year, self.current_number


# ── Extracao ─────────────────────────────────────────────────────────────────

@dataclass
class Article:
    index: int                  # 1-based
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "content": self.content}


@dataclass
class Signatory:
    role: str
    name: str
    mandate_start: Optional[str] = None     # ISO YYYY-MM-DD
    mandate_end: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "name": self.name,
            "mandateStart": self.mandate_start,
            "mandateEnd": self.mandate_end,
        }


@dataclass
class DocumentMetadata:
    """Metadados best-effort; ausencia nao e erro."""
    title: Optional[str] = None
    promulgation_date: Optional[str] = None     # ISO
    promulgation_city: Optional[str] = None
    signatories: List[Signatory] = field(default_factory=list)


@dataclass
class SequenceReport:
    """Anomalias na numeracao dos artigos detectados."""
    gaps: int = 0
    duplicates: int = 0
    out_of_order: int = 0

    @property
    def total(self) -> int:
        return self.gaps + self.duplicates + self.out_of_order

    def to_dict(self) -> Dict[str, int]:
        return {"gaps": self.gaps, "duplicates": self.duplicates, "outOfOrder": self.out_of_order}


@dataclass
class ExtractionResult:
    """Resultado estruturado (regex ou IA) de um documento."""
    articles: List[Article]
    metadata: DocumentMetadata
    confidence: float           # [0, 1]
    method: str                 # 'REGEX' | 'AI:OLLAMA' | 'AI:GROQ'
    timestamp: datetime = field(default_factory=utcnow)
    sequence: SequenceReport = field(default_factory=SequenceReport)
    unrecognized_rate: float = 0.0
    legal_terms_found: int = 0
    reason: Optional[str] = None            # ex.: 'aucun article detecte'
    warnings: List[str] = field(default_factory=list)

    @property
    def has_articles(self) -> bool:
        return bool(self.articles)

    def to_json_dict(self, document: Optional[LegalDocument] = None) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if document is not None:
            out.update({
                "documentId": document.document_id,
                "type": document.doc_type,
                "year": document.year,
                "number": document.number,
            })
        out.update({
            "title": self.metadata.title,
            "promulgationDate": self.metadata.promulgation_date,
            "promulgationCity": self.metadata.promulgation_city,
            "signatories": [s.to_dict() for s in self.metadata.signatories],
            "articles": [a.to_dict() for a in self.articles],
            "_metadata": {
                "confidence": round(self.confidence, 4),
                "method": self.method,
                "timestamp": self.timestamp.isoformat(),
                "sequenceIssues": self.sequence.to_dict(),
                "unrecognizedWordsRate": round(self.unrecognized_rate, 4),
                "legalTermsFound": self.legal_terms_found,
            },
        })
        return out

    @classmethod
    def from_json_dict(cls, data: Dict[str, Any]) -> "ExtractionResult":
        meta = data.get("_metadata") or {}
        seq = meta.get("sequenceIssues") or {}
        timestamp = utcnow()
        if meta.get("timestamp"):
            try:
                timestamp = datetime.fromisoformat(meta["timestamp"])
            except ValueError:
                pass
        articles = [
            Article(index=int(a["index"]), content=str(a.get("content") or ""))
            for a in data.get("articles") or []
            if isinstance(a, dict) and RE_ASCII_INT.fullmatch(str(a.get("index", "")))
        ]
        signatories = [
            Signatory(
                role=s.get("role") or "",
                name=s.get("name") or "",
                mandate_start=s.get("mandateStart"),
                mandate_end=s.get("mandateEnd"),
            )
            for s in data.get("signatories") or []
            if isinstance(s, dict)
        ]
        return cls(
            articles=articles,
            metadata=DocumentMetadata(
                title=data.get("title"),
                promulgation_date=data.get("promulgationDate"),
                promulgation_city=data.get("promulgationCity"),
                signatories=signatories,
            ),
            confidence=float(meta.get("confidence") or 0.0),
            method=meta.get("method") or "UNKNOWN",
            timestamp=timestamp,
            sequence=SequenceReport(
                gaps=int(seq.get("gaps") or 0),
                duplicates=int(seq.get("duplicates") or 0),
                out_of_order=int(seq.get("outOfOrder") or 0),
            ),
            unrecognized_rate=float(meta.get("unrecognizedWordsRate") or 0.0),
            legal_terms_found=int(meta.get("legalTermsFound") or 0),
        )


# ── Resultados de estagio ────────────────────────────────────────────────────

@dataclass
class ProbeOutcome:
    """Resultado do probe de existencia (nao levanta para 404/429)."""
    document_id: str
    status: ProcessingStatus
    http_status: Optional[int] = None
    url: Optional[str] = None
    network_calls: int = 0
    reason: Optional[str] = None


@dataclass
class ConsolidationOutcome:
    document_id: str
    applied: bool
    new_confidence: float
    previous_confidence: Optional[float] = None
    articles: int = 0
    signatories: int = 0
    reason: Optional[str] = None


# ── Issues e fixes ───────────────────────────────────────────────────────────

class IssueSeverity(int, Enum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


class IssueCategory(str, Enum):
    STATUS = "status"
    FILE = "file"
    QUALITY = "quality"
    NETWORK = "network"


class IssueType(str, Enum):
    # status
    STUCK_IN_PENDING = "STUCK_IN_PENDING"
    STUCK_IN_FETCHED = "STUCK_IN_FETCHED"
    STUCK_IN_DOWNLOADED = "STUCK_IN_DOWNLOADED"
    STUCK_IN_OCRED = "STUCK_IN_OCRED"
    STUCK_IN_EXTRACTED = "STUCK_IN_EXTRACTED"
    FAILED_STAGE = "FAILED_STAGE"
    # arquivos
    MISSING_PDF = "MISSING_PDF"
    MISSING_OCR = "MISSING_OCR"
    MISSING_JSON = "MISSING_JSON"
    CORRUPTED_PDF = "CORRUPTED_PDF"
    CORRUPTED_JSON = "CORRUPTED_JSON"
    # qualidade
    LOW_CONFIDENCE = "LOW_CONFIDENCE"
    SEQUENCE_ISSUES = "SEQUENCE_ISSUES"
    HIGH_UNRECOGNIZED_WORDS = "HIGH_UNRECOGNIZED_WORDS"
    MISSING_ARTICLES = "MISSING_ARTICLES"
    # rede
    URL_NOT_FOUND_404 = "URL_NOT_FOUND_404"


ISSUE_CATEGORY: Dict[IssueType, IssueCategory] = {
    IssueType.STUCK_IN_PENDING: IssueCategory.STATUS,
    IssueType.STUCK_IN_FETCHED: IssueCategory.STATUS,
    IssueType.STUCK_IN_DOWNLOADED: IssueCategory.STATUS,
    IssueType.STUCK_IN_OCRED: IssueCategory.STATUS,
    IssueType.STUCK_IN_EXTRACTED: IssueCategory.STATUS,
    IssueType.FAILED_STAGE: IssueCategory.STATUS,
    IssueType.MISSING_PDF: IssueCategory.FILE,
    IssueType.MISSING_OCR: IssueCategory.FILE,
    IssueType.MISSING_JSON: IssueCategory.FILE,
    IssueType.CORRUPTED_PDF: IssueCategory.FILE,
    IssueType.CORRUPTED_JSON: IssueCategory.FILE,
    IssueType.LOW_CONFIDENCE: IssueCategory.QUALITY,
    IssueType.SEQUENCE_ISSUES: IssueCategory.QUALITY,
    IssueType.HIGH_UNRECOGNIZED_WORDS: IssueCategory.QUALITY,
    IssueType.MISSING_ARTICLES: IssueCategory.QUALITY,
    IssueType.URL_NOT_FOUND_404: IssueCategory.NETWORK,
}

# issue de arquivo corrompido → artefato a apagar antes do rewind
CORRUPTED_ARTIFACT: Dict[IssueType, str] = {
    IssueType.CORRUPTED_PDF: "pdf",
    IssueType.CORRUPTED_JSON: "json",
}


@dataclass
class Issue:
    """Problema detectado. Efemero: nao e persistido."""
    document_id: str
    type: IssueType
    severity: IssueSeverity
    description: str
    current_status: ProcessingStatus
    suggested_action: str
    auto_fixable: bool = True
    detected_at: datetime = field(default_factory=utcnow)


class FixStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass
class FixResult:
    """Registro de auditoria de uma tentativa de correcao."""
    document_id: str
    issue_type: IssueType
    status: FixStatus
    action: str
    details: str = ""
    retry_count: int = 0
    fixed_at: datetime = field(default_factory=utcnow)
