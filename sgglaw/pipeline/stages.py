# sgglaw/pipeline/stages.py
"""
Estagios em lote: download → ocr → extract → consolidate.

Cada passada:
  1. seleciona documentos cuja status == pre-condicao do estagio (STAGES)
  2. processa em paralelo (run_batch, workers limitados)
  3. excecao de um documento vira status de falha + error_message;
     o lote continua (CorruptedArtifactError → FAILED_CORRUPTED)
  4. grava o documento (sucesso ou falha) no repositorio
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, Dict, List, Optional

from sgglaw.ai.orchestrator import AIOrchestrator
from sgglaw.config import PipelineConfig
from sgglaw.consolidate.service import ConsolidationService
from sgglaw.errors import CorruptedArtifactError, MissingArtifactError
from sgglaw.extract.articles import ArticleExtractor
from sgglaw.extract.corrector import TextCorrector
from sgglaw.extract.dictionary import UnrecognizedWordsRecorder
from sgglaw.extract.ocr import PdfOcrEngine
from sgglaw.fetch.downloader import PdfDownloader
from sgglaw.models import STAGES, ExtractionResult, LegalDocument, ProcessingStatus
from sgglaw.pipeline.workers import run_batch
from sgglaw.storage.documents import DocumentRepository
from sgglaw.storage.files import FileStore

logger = logging.getLogger(__name__)

S = ProcessingStatus


class PipelineRunner:
    def __init__(
        self,
        cfg: PipelineConfig,
        documents: DocumentRepository,
        files: FileStore,
        downloader: PdfDownloader,
        ocr_engine: PdfOcrEngine,
        corrector: TextCorrector,
        extractor: ArticleExtractor,
        consolidation: ConsolidationService,
        ai: Optional[AIOrchestrator] = None,
        unrecognized: Optional[UnrecognizedWordsRecorder] = None,
    ):
        self.cfg = cfg
        self.documents = documents
        self.files = files
        self.downloader = downloader
        self.ocr_engine = ocr_engine
        self.corrector = corrector
        self.extractor = extractor
        self.consolidation = consolidation
        self.ai = ai
        self.unrecognized = unrecognized

    # ── selecao + lote ───────────────────────────────────────────────────────

    def _select(self, stage: str, doc_type: Optional[str], document_id: Optional[str],
                max_items: Optional[int]) -> List[LegalDocument]:
        rule = STAGES[stage]
        if document_id:
            doc = self.documents.find_by_document_id(document_id)
            if doc is None:
                logger.warning("[%s] documento inexistente", document_id)
                return []
            if doc.status not in rule.preconditions:
                logger.info("[%s] status %s fora da pre-condicao de %s, skip",
                            document_id, doc.status.value, stage)
                return []
            return [doc]

        docs: List[LegalDocument] = []
        for status in sorted(rule.preconditions, key=lambda s: s.value):
            docs.extend(self.documents.find_by_status(status, doc_type))
        if max_items is not None:
            docs = docs[:max_items]
        return docs

    def _guarded(self, stage: str, fn: Callable[[LegalDocument], None]) -> Callable[[LegalDocument], ProcessingStatus]:
        rule = STAGES[stage]

        def run(doc: LegalDocument) -> ProcessingStatus:
            doc_id = doc.document_id
            if doc.status not in rule.preconditions:
                return doc.status
            try:
                fn(doc)
            except CorruptedArtifactError as e:
                logger.error("[%s] %s: %s", doc_id, stage, e)
                doc.mark(S.FAILED_CORRUPTED, str(e))
            except Exception as e:
                logger.exception("[%s] %s falhou", doc_id, stage)
                doc.mark(rule.failure, f"{stage}: {e}")
            self.documents.save(doc)
            return doc.status

        return run

    def run_stage(
        self,
        stage: str,
        doc_type: Optional[str] = None,
        document_id: Optional[str] = None,
        max_items: Optional[int] = None,
    ) -> Dict[str, object]:
        handlers = {
            "download": self.download_one,
            "ocr": self.ocr_one,
            "extract": self.extract_one,
            "consolidate": self.consolidate_one,
        }
        if stage not in handlers:
            raise ValueError(f"Estagio desconhecido: {stage}")

        docs = self._select(stage, doc_type, document_id, max_items)
        logger.info("%s: %d documento(s) selecionado(s)", stage, len(docs))
        results = run_batch(docs, self._guarded(stage, handlers[stage]), self.cfg.workers, label=stage)

        by_status: Counter = Counter()
        errors = []
        for doc, status, exc in results:
            if exc is not None:
                # falha ao gravar o proprio status: registra e segue
                by_status["ERROR"] += 1
                errors.append({"documentId": doc.document_id, "error": str(exc)})
                continue
            by_status[status.value] += 1
            if doc.error_message and status != STAGES[stage].success:
                errors.append({"documentId": doc.document_id, "error": doc.error_message})

        success = STAGES[stage].success
        summary = {
            "stage": stage,
            "selected": len(docs),
            "succeeded": by_status.get(success.value, 0) if success else 0,
            "by_status": dict(by_status),
            "errors": errors,
        }
        logger.info("%s terminado: selecionados=%d ok=%d status=%s",
                    stage, len(docs), summary["succeeded"], summary["by_status"])
        return summary

    # ── estagios por documento ───────────────────────────────────────────────

    def download_one(self, doc: LegalDocument) -> None:
        self.downloader.download(doc)

    def ocr_one(self, doc: LegalDocument) -> None:
        doc_id = doc.document_id
        pdf = doc.pdf_path or self.files.pdf_path(doc.doc_type, doc_id)
        if not self.files.exists(pdf):
            raise MissingArtifactError(doc_id, "pdf")
        ocr = self.ocr_engine.extract_text(self.files.read_bytes(pdf), doc_id)
        path = self.files.ocr_path(doc.doc_type, doc_id)
        self.files.write_text(path, ocr.text)
        doc.ocr_path = path
        doc.mark(S.OCRED)

    def _read_ocr(self, doc: LegalDocument) -> str:
        ref = doc.ocr_path or self.files.ocr_path(doc.doc_type, doc.document_id)
        if not self.files.exists(ref):
            raise MissingArtifactError(doc.document_id, "ocr")
        try:
            return self.files.read_text(ref)
        except UnicodeDecodeError as e:
            raise CorruptedArtifactError(doc.document_id, "ocr", str(e)) from e

    def _with_ai(self, doc: LegalDocument, text: str, regex: ExtractionResult) -> ExtractionResult:
        """Fallback IA quando o regex nao acha artigos ou fica abaixo da confianca minima."""
        if self.ai is None:
            return regex
        if regex.has_articles and regex.confidence >= self.cfg.min_confidence:
            if self.cfg.ai_refine_json:
                return self.ai.refine_json(regex, doc)
            return regex

        outcome = self.ai.extract_with_fallback(text, doc.document_id)
        if outcome.result is None:
            if not regex.has_articles:
                regex.reason = f"{regex.reason or 'aucun article detecte'}; IA: {outcome.reason}"
            return regex

        candidate = outcome.result
        if regex.has_articles and candidate.confidence <= regex.confidence:
            logger.info("[%s] IA (%.2f) nao supera regex (%.2f)",
                        doc.document_id, candidate.confidence, regex.confidence)
            return regex
        candidate.unrecognized_rate = regex.unrecognized_rate
        candidate.legal_terms_found = regex.legal_terms_found
        return candidate

    def extract_one(self, doc: LegalDocument) -> None:
        doc_id = doc.document_id
        text = self.corrector.correct(self._read_ocr(doc))

        result = self.extractor.extract(text, doc_id)
        if self.unrecognized is not None:
            self.unrecognized.record(self.extractor.unrecognized_words(text), doc_id)
        result = self._with_ai(doc, text, result)

        if not result.has_articles:
            doc.mark(S.FAILED_EXTRACTION, f"extracao manual necessaria: {result.reason}")
            logger.warning("[%s] %s", doc_id, doc.error_message)
            return

        path = self.files.json_path(doc.doc_type, doc_id)
        self.files.write_json(path, result.to_json_dict(doc))
        doc.json_path = path
        doc.mark(S.EXTRACTED)

    def consolidate_one(self, doc: LegalDocument) -> None:
        self.consolidation.consolidate(doc)
