# sgglaw/fix/detectors.py
"""
Detectores de problemas (somente leitura sobre um documento).

  StatusDetector   documento parado num estado intermediario ou em FAILED_*
  FileDetector     artefato ausente/corrompido para o status declarado
  QualityDetector  confianca baixa, muitas palavras nao reconhecidas,
                   sequencia de artigos anomala, zero artigos

Cada detector devolve List[Issue]; nenhum altera documento ou arquivo.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List

from sgglaw.models import (
    FAILURE_STATUSES,
    ExtractionResult,
    Issue,
    IssueSeverity,
    IssueType,
    LegalDocument,
    ProcessingStatus,
    utcnow,
)
from sgglaw.storage.files import FileStore

logger = logging.getLogger(__name__)

S = ProcessingStatus
PDF_MAGIC = b"%PDF"


# ── Status ───────────────────────────────────────────────────────────────────

_STUCK: Dict[ProcessingStatus, tuple] = {
    S.PENDING: (IssueType.STUCK_IN_PENDING, IssueSeverity.MEDIUM, "rodar fetch"),
    S.FETCHED: (IssueType.STUCK_IN_FETCHED, IssueSeverity.HIGH, "rodar download"),
    S.DOWNLOADED: (IssueType.STUCK_IN_DOWNLOADED, IssueSeverity.HIGH, "rodar ocr"),
    S.OCRED: (IssueType.STUCK_IN_OCRED, IssueSeverity.HIGH, "rodar extract"),
    S.EXTRACTED: (IssueType.STUCK_IN_EXTRACTED, IssueSeverity.MEDIUM, "rodar consolidate"),
}


class StatusDetector:
    """So sinaliza documentos sem atualizacao ha mais de stuck_after_hours."""

    def __init__(self, stuck_after_hours: float = 24.0, now: Callable[[], datetime] = utcnow):
        self.stuck_after = timedelta(hours=stuck_after_hours)
        self._now = now

    def detect(self, doc: LegalDocument) -> List[Issue]:
        doc_id = doc.document_id
        if doc.status in FAILURE_STATUSES:
            return [Issue(
                document_id=doc_id,
                type=IssueType.FAILED_STAGE,
                severity=IssueSeverity.HIGH,
                description=f"Estagio falhou ({doc.status.value}): {doc.error_message or '-'}",
                current_status=doc.status,
                suggested_action="rebobinar para o estagio anterior",
            )]

        if doc.status == S.NOT_FOUND:
            return [Issue(
                document_id=doc_id,
                type=IssueType.URL_NOT_FOUND_404,
                severity=IssueSeverity.LOW,
                description="URL respondeu 404 em todas as variantes",
                current_status=doc.status,
                suggested_action="verificar manualmente no site do SGG",
                auto_fixable=False,
            )]

        stuck = _STUCK.get(doc.status)
        if stuck is None:
            return []
        age = self._now() - doc.updated_at
        if age < self.stuck_after:
            return []
        issue_type, severity, action = stuck
        return [Issue(
            document_id=doc_id,
            type=issue_type,
            severity=severity,
            description=f"Parado em {doc.status.value} ha {age.total_seconds() / 3600:.1f}h",
            current_status=doc.status,
            suggested_action=action,
        )]


# ── Arquivos ─────────────────────────────────────────────────────────────────

_NEEDS_PDF = frozenset({S.DOWNLOADED, S.OCRED, S.EXTRACTED, S.CONSOLIDATED})
_NEEDS_OCR = frozenset({S.OCRED, S.EXTRACTED, S.CONSOLIDATED})
_NEEDS_JSON = frozenset({S.EXTRACTED, S.CONSOLIDATED})


class FileDetector:
    def __init__(self, files: FileStore):
        self.files = files

    def _reference(self, doc: LegalDocument, kind: str) -> str:
        explicit = {"pdf": doc.pdf_path, "ocr": doc.ocr_path, "json": doc.json_path}[kind]
        return explicit or self.files.path_for(kind, doc.doc_type, doc.document_id)

    def detect(self, doc: LegalDocument) -> List[Issue]:
        doc_id = doc.document_id
        issues: List[Issue] = []

        if doc.status in _NEEDS_PDF:
            pdf = self._reference(doc, "pdf")
            if not self.files.exists(pdf):
                issues.append(Issue(
                    document_id=doc_id,
                    type=IssueType.MISSING_PDF,
                    severity=IssueSeverity.CRITICAL,
                    description=f"Status {doc.status.value} sem PDF ({pdf})",
                    current_status=doc.status,
                    suggested_action="rebobinar e baixar de novo",
                ))
            elif not self.files.read_head(pdf, len(PDF_MAGIC)).startswith(PDF_MAGIC):
                issues.append(Issue(
                    document_id=doc_id,
                    type=IssueType.CORRUPTED_PDF,
                    severity=IssueSeverity.CRITICAL,
                    description=f"PDF sem assinatura %PDF ({pdf})",
                    current_status=doc.status,
                    suggested_action="apagar PDF e baixar de novo",
                ))

        if doc.status in _NEEDS_OCR and not self.files.exists(self._reference(doc, "ocr")):
            issues.append(Issue(
                document_id=doc_id,
                type=IssueType.MISSING_OCR,
                severity=IssueSeverity.HIGH,
                description=f"Status {doc.status.value} sem texto OCR",
                current_status=doc.status,
                suggested_action="rebobinar e refazer OCR",
            ))

        if doc.status in _NEEDS_JSON and not self.files.exists(self._reference(doc, "json")):
            issues.append(Issue(
                document_id=doc_id,
                type=IssueType.MISSING_JSON,
                severity=IssueSeverity.CRITICAL,
                description=f"Status {doc.status.value} sem JSON de artigos",
                current_status=doc.status,
                suggested_action="rebobinar e extrair de novo",
            ))
        return issues


# ── Qualidade ────────────────────────────────────────────────────────────────

_QUALITY_STATUSES = frozenset({S.EXTRACTED, S.CONSOLIDATED})


class QualityDetector:
    def __init__(
        self,
        files: FileStore,
        low_confidence: float = 0.3,
        high_unrecognized_rate: float = 0.5,
    ):
        self.files = files
        self.low_confidence = low_confidence
        self.high_unrecognized_rate = high_unrecognized_rate

    def _load(self, doc: LegalDocument) -> tuple:
        """(resultado, erro). JSON ausente e problema do FileDetector: (None, None)."""
        ref = doc.json_path or self.files.json_path(doc.doc_type, doc.document_id)
        if not self.files.exists(ref):
            return None, None
        try:
            data = self.files.read_json(ref)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return None, str(e)
        if not isinstance(data, dict):
            return None, "raiz nao e objeto"
        return ExtractionResult.from_json_dict(data), None

    def detect(self, doc: LegalDocument) -> List[Issue]:
        if doc.status not in _QUALITY_STATUSES:
            return []
        doc_id = doc.document_id
        result, error = self._load(doc)

        def issue(itype: IssueType, sev: IssueSeverity, desc: str, action: str) -> Issue:
            return Issue(doc_id, itype, sev, desc, doc.status, action)

        if error is not None:
            return [issue(IssueType.CORRUPTED_JSON, IssueSeverity.CRITICAL,
                          f"JSON ilegivel: {error}", "apagar JSON e extrair de novo")]
        if result is None:
            return []

        issues: List[Issue] = []
        if not result.has_articles:
            issues.append(issue(IssueType.MISSING_ARTICLES, IssueSeverity.CRITICAL,
                                "Extracao sem artigos", "extrair de novo"))
        if result.confidence < self.low_confidence:
            issues.append(issue(IssueType.LOW_CONFIDENCE, IssueSeverity.HIGH,
                                f"Confianca {result.confidence:.2f} < {self.low_confidence:.2f}",
                                "extrair de novo"))
        if result.unrecognized_rate > self.high_unrecognized_rate:
            issues.append(issue(IssueType.HIGH_UNRECOGNIZED_WORDS, IssueSeverity.MEDIUM,
                                f"{result.unrecognized_rate:.0%} palavras nao reconhecidas",
                                "revisar corrections.csv e refazer OCR"))
        if result.sequence.total > 0:
            issues.append(issue(IssueType.SEQUENCE_ISSUES, IssueSeverity.MEDIUM,
                                f"Sequencia de artigos anomala {result.sequence.to_dict()}",
                                "extrair de novo"))
        return issues


def detect_all(doc: LegalDocument, detectors: List) -> List[Issue]:
    issues: List[Issue] = []
    for detector in detectors:
        issues.extend(detector.detect(doc))
    return issues
