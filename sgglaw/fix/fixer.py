# sgglaw/fix/fixer.py
"""
Orquestrador de correcao automatica.

Politica (funcao pura do tipo de issue):
  - rebobina o status para o predecessor (REWIND_TO)
  - issue de arquivo corrompido: apaga o artefato antes do rewind
  - issue nao auto-fixavel ou status sem predecessor → SKIPPED

Por documento: issues em ordem de severidade (CRITICAL → LOW); para no
primeiro fix SUCCESS, porque o rewind invalida as issues dos estagios seguintes.
O fixer nunca refaz dados: so reposiciona o status para o pipeline normal.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, List, Optional

from sgglaw.fix.detectors import detect_all
from sgglaw.models import (
    CORRUPTED_ARTIFACT,
    FixResult,
    FixStatus,
    Issue,
    LegalDocument,
    previous_status,
)
from sgglaw.storage.documents import DocumentRepository
from sgglaw.storage.files import FileStore

logger = logging.getLogger(__name__)


class FixOrchestrator:
    def __init__(
        self,
        documents: DocumentRepository,
        files: FileStore,
        detectors: List,
        dry_run: bool = False,
    ):
        self.documents = documents
        self.files = files
        self.detectors = detectors
        self.dry_run = dry_run

    def detect(self, doc: LegalDocument) -> List[Issue]:
        issues = detect_all(doc, self.detectors)
        return sorted(issues, key=lambda i: i.severity, reverse=True)

    def _artifact_reference(self, doc: LegalDocument, kind: str) -> str:
        explicit = {"pdf": doc.pdf_path, "ocr": doc.ocr_path, "json": doc.json_path}[kind]
        return explicit or self.files.path_for(kind, doc.doc_type, doc.document_id)

    def fix_issue(self, doc: LegalDocument, issue: Issue) -> FixResult:
        """Aplica a politica para uma issue. Altera `doc` e grava no repositorio."""
        if not issue.auto_fixable:
            return FixResult(doc.document_id, issue.type, FixStatus.SKIPPED,
                             "nenhuma", "issue nao auto-fixavel")

        target = previous_status(doc.status)
        if target is None:
            return FixResult(doc.document_id, issue.type, FixStatus.SKIPPED,
                             "nenhuma", f"{doc.status.value} sem estagio anterior")

        action = f"rewind {doc.status.value} → {target.value}"
        kind = CORRUPTED_ARTIFACT.get(issue.type)
        if kind:
            action = f"apagar {kind.upper()} + {action}"

        if self.dry_run:
            logger.info("[%s] DRY-RUN %s (%s)", doc.document_id, action, issue.type.value)
            return FixResult(doc.document_id, issue.type, FixStatus.SKIPPED, action, "dry-run")

        try:
            if kind:
                self.files.delete(self._artifact_reference(doc, kind))
                setattr(doc, f"{kind}_path", None)
            previous = doc.status
            doc.mark(target, error_message=f"rebobinado por {issue.type.value} (era {previous.value})")
            self.documents.save(doc)
        except Exception as e:
            logger.exception("[%s] fix %s falhou", doc.document_id, issue.type.value)
            return FixResult(doc.document_id, issue.type, FixStatus.FAILED, action, str(e))

        logger.info("[%s] %s (%s)", doc.document_id, action, issue.type.value)
        return FixResult(doc.document_id, issue.type, FixStatus.SUCCESS, action, issue.description)

    def fix_document(self, doc: LegalDocument, issues: Optional[List[Issue]] = None) -> List[FixResult]:
        results: List[FixResult] = []
        for issue in (self.detect(doc) if issues is None else issues):
            result = self.fix_issue(doc, issue)
            results.append(result)
            if result.status == FixStatus.SUCCESS:
                break
        return results

    def detect_and_fix(
        self,
        doc_type: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> Dict[str, object]:
        """Varre documentos, corrige e devolve resumo + FixResults."""
        if document_id:
            doc = self.documents.find_by_document_id(document_id)
            docs = [doc] if doc else []
        else:
            docs = self.documents.find_all(doc_type)

        results: List[FixResult] = []
        issues_found = 0
        by_type: Counter = Counter()
        for doc in docs:
            try:
                issues = self.detect(doc)
            except Exception:
                logger.exception("[%s] deteccao falhou", doc.document_id)
                continue
            if not issues:
                continue
            issues_found += len(issues)
            by_type.update(i.type.value for i in issues)
            results.extend(self.fix_document(doc, issues))

        status_counts = Counter(r.status.value for r in results)
        summary = {
            "documents": len(docs),
            "issues": issues_found,
            "issues_by_type": dict(by_type),
            "fixed": status_counts.get(FixStatus.SUCCESS.value, 0),
            "skipped": status_counts.get(FixStatus.SKIPPED.value, 0),
            "failed": status_counts.get(FixStatus.FAILED.value, 0),
            "results": results,
        }
        logger.info(
            "Fixer: %d doc(s), %d issue(s), fixed=%d skipped=%d failed=%d",
            summary["documents"], issues_found, summary["fixed"], summary["skipped"], summary["failed"],
        )
        return summary
