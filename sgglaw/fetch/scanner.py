# sgglaw/fetch/scanner.py
"""
Scanner de documentos por cursor.

Dois modos:
  - ano corrente: number = 1..MAX para o ano atual; so grava FETCHED
    (ano em crescimento, NOT_FOUND de hoje pode existir amanha)
  - anos anteriores: de (anoAtual-1, 1) ate o ano piso, number 1..MAX por ano;
    grava todos os resultados e faz checkpoint do FetchCursor

Ordem de visita: ano decrescente, numero crescente dentro do ano.
O cursor guarda a PROXIMA posicao a despachar; so avanca nessa ordem
(escrita serializada por lock, posicao nunca recua).
Documento ja resolvido (fora de PENDING/RATE_LIMITED) → skip sem rede e sem gastar budget.
Erro de storage numa posicao conta como falha e o scan segue; erro fora disso
interrompe a passada com checkpoint na proxima posicao ainda nao despachada.
"""
from __future__ import annotations

import logging
import threading
from collections import Counter
from concurrent.futures import Future
from datetime import date
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from sgglaw.config import PipelineConfig
from sgglaw.fetch.prober import DocumentProber
from sgglaw.models import (
    PROBE_ELIGIBLE,
    FetchCursor,
    LegalDocument,
    ProbeOutcome,
    ProcessingStatus,
    build_document_id,
    parse_document_id,
)
from sgglaw.pipeline.workers import BoundedExecutor
from sgglaw.storage.documents import CursorRepository, DocumentRepository

logger = logging.getLogger(__name__)

CURSOR_PREVIOUS = "fetch-previous"


def scan_rank(position: Tuple[int, int]) -> Tuple[int, int]:
    """Chave de ordem do scan: ano desc, numero asc."""
    year, number = position
    return -year, number


class CursorScanner:
    def __init__(
        self,
        cfg: PipelineConfig,
        documents: DocumentRepository,
        cursors: CursorRepository,
        prober: DocumentProber,
        today: Callable[[], date] = date.today,
    ):
        self.cfg = cfg
        self.documents = documents
        self.cursors = cursors
        self.prober = prober
        self._today = today
        self._cursor_lock = threading.Lock()

    # ── helpers ──────────────────────────────────────────────────────────────

    def _is_resolved(self, document_id: str) -> Tuple[bool, Optional[LegalDocument]]:
        existing = self.documents.find_by_document_id(document_id)
        if existing is not None and existing.status not in PROBE_ELIGIBLE:
            return True, existing
        return False, existing

    def _lookup(self, document_id: str) -> Tuple[Optional[bool], Optional[LegalDocument]]:
        """_is_resolved protegido: erro de storage → (None, None), o scan segue."""
        try:
            return self._is_resolved(document_id)
        except Exception:
            logger.exception("[%s] consulta ao storage falhou, posicao contada como falha", document_id)
            return None, None

    def _probe_and_save(self, document: LegalDocument, persist_all: bool) -> ProbeOutcome:
        doc_id = document.document_id
        try:
            outcome = self.prober.probe(document)
            if persist_all or document.status == ProcessingStatus.FETCHED:
                self.documents.save(document)
            return outcome
        except Exception as e:
            logger.exception("[%s] erro ao gravar resultado do probe", doc_id)
            return ProbeOutcome(doc_id, ProcessingStatus.FAILED, reason=str(e))

    def _positions(self, start: Tuple[int, int]) -> Iterator[Tuple[int, int]]:
        start_year, start_number = start
        for year in range(start_year, self.cfg.floor_year - 1, -1):
            first = start_number if year == start_year else 1
            for number in range(first, self.cfg.max_number_per_year + 1):
                yield year, number

    def _next_position(self, year: int, number: int) -> Tuple[int, int]:
        if number >= self.cfg.max_number_per_year:
            return year - 1, 1
        return year, number + 1

    def checkpoint(self, doc_type: str, year: int, number: int) -> bool:
        """Grava o cursor (serializado). Ignora posicao que recuaria o cursor."""
        with self._cursor_lock:
            current = self.cursors.get_cursor(doc_type, CURSOR_PREVIOUS)
            if current is not None and scan_rank((year, number)) < scan_rank(current.position):
                logger.warning(
                    "Cursor %s nao recua: atual=%s, pedido=%s",
                    doc_type, current.position, (year, number),
                )
                return False
            self.cursors.save_cursor(FetchCursor(doc_type, CURSOR_PREVIOUS, year, number))
            logger.debug("Cursor salvo: type=%s year=%d number=%d", doc_type, year, number)
            return True

    @staticmethod
    def _summarize(doc_type: str, futures: List[Future], skipped: int, lookup_failed: int = 0) -> Dict[str, object]:
        counts: Counter = Counter()
        for f in futures:
            counts[f.result().status] += 1
        return {
            "type": doc_type,
            "dispatched": len(futures),
            "skipped": skipped,
            "found": counts[ProcessingStatus.FETCHED],
            "not_found": counts[ProcessingStatus.NOT_FOUND],
            "rate_limited": counts[ProcessingStatus.RATE_LIMITED],
            "failed": counts[ProcessingStatus.FAILED] + lookup_failed,
        }

    # ── modos de scan ────────────────────────────────────────────────────────

    def scan_current(self, doc_type: str, max_items: Optional[int] = None) -> Dict[str, object]:
        year = self._today().year
        logger.info("FetchCurrent: type=%s year=%d max=%d", doc_type, year, self.cfg.max_number_per_year)

        futures: List[Future] = []
        skipped = 0
        lookup_failed = 0
        with BoundedExecutor(self.cfg.workers) as pool:
            for number in range(1, self.cfg.max_number_per_year + 1):
                resolved, existing = self._lookup(build_document_id(doc_type, year, number))
                if resolved is None:
                    lookup_failed += 1
                    continue
                if resolved:
                    skipped += 1
                    continue
                if max_items is not None and len(futures) >= max_items:
                    logger.info("Limite atingido: %d documentos", max_items)
                    break
                doc = existing or LegalDocument(doc_type, year, number)
                futures.append(pool.submit(self._probe_and_save, doc, False))

        summary = self._summarize(doc_type, futures, skipped, lookup_failed)
        logger.info("FetchCurrent terminado: %s", summary)
        return summary

    def scan_previous(self, doc_type: str, max_items: Optional[int] = None) -> Dict[str, object]:
        budget = self.cfg.max_items if max_items is None else max_items
        cursor = self.cursors.get_cursor(doc_type, CURSOR_PREVIOUS)
        if cursor is not None:
            start = cursor.position
            logger.info("Retomando do cursor: type=%s year=%d number=%d", doc_type, *start)
        else:
            start = (self._today().year - 1, 1)
            logger.info(
                "Novo scan: type=%s anos=%d-%d maxItems=%d",
                doc_type, self.cfg.floor_year, start[0], budget,
            )

        futures: List[Future] = []
        skipped = 0
        lookup_failed = 0
        stopped_early = False
        error: Optional[str] = None
        # proxima posicao apos a ultima despachada (ou pulada)
        resume = start
        with BoundedExecutor(self.cfg.workers) as pool:
            try:
                for year, number in self._positions(start):
                    resolved, existing = self._lookup(build_document_id(doc_type, year, number))
                    if resolved is None:
                        lookup_failed += 1
                        resume = self._next_position(year, number)
                        continue
                    if resolved:
                        skipped += 1
                        resume = self._next_position(year, number)
                        continue
                    if len(futures) >= budget:
                        logger.info("Limite atingido: %d documentos, checkpoint em (%d, %d)", budget, year, number)
                        self.checkpoint(doc_type, year, number)
                        stopped_early = True
                        break

                    doc = existing or LegalDocument(doc_type, year, number)
                    futures.append(pool.submit(self._probe_and_save, doc, True))
                    resume = self._next_position(year, number)
                    if len(futures) % self.cfg.cursor_save_every == 0:
                        self.checkpoint(doc_type, *resume)
            except Exception as e:
                logger.exception("FetchPrevious interrompido: type=%s, checkpoint em %s", doc_type, resume)
                error = str(e)
                stopped_early = True
                self.checkpoint(doc_type, *resume)

        if not stopped_early:
            # scan chegou ao ano piso
            self.checkpoint(doc_type, self.cfg.floor_year - 1, 1)

        summary = self._summarize(doc_type, futures, skipped, lookup_failed)
        summary["stopped_early"] = stopped_early
        if error is not None:
            summary["error"] = error
        final = self.cursors.get_cursor(doc_type, CURSOR_PREVIOUS)
        summary["cursor"] = final.position if final else None
        logger.info("FetchPrevious terminado: %s", summary)
        return summary

    def run_document(self, document_id: str) -> Optional[ProbeOutcome]:
        """Probe de um unico documento. Id malformado → log + None (skip)."""
        parsed = parse_document_id(document_id)
        if parsed is None:
            logger.warning("Formato invalido de documentId: %r, ignorado", document_id)
            return None

        resolved, existing = self._is_resolved(document_id)
        if resolved:
            logger.info("[%s] ja resolvido (%s)", document_id, existing.status.value)
            return ProbeOutcome(document_id, existing.status, url=existing.url, reason="ja resolvido")

        doc = existing or LegalDocument(*parsed)
        return self._probe_and_save(doc, True)
