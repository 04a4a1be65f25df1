# sgglaw/fetch/prober.py
"""
Prober de existencia de documentos no SGG.

Para (type, year, number):
  1. HEAD em {base}/{type}-{year}-{number} via RateLimitHandler
  2. 404 e number < 10 → tenta variante com padding ({type}-{year}-0N)
  3. 200 → FETCHED (url = variante que respondeu)
     404 → NOT_FOUND
     429 apos retries → RATE_LIMITED (nao terminal, elegivel de novo)
     outro / erro de transporte → FAILED

Contrato: nunca levanta excecao para fora; o documento recebe status + error_message.
Documento fora de PENDING/RATE_LIMITED → skip sem chamada de rede.
"""
from __future__ import annotations

import logging
from typing import Callable

from sgglaw.fetch.rate_limit import HTTP_TOO_MANY_REQUESTS, RateLimitHandler
from sgglaw.models import (
    PROBE_ELIGIBLE,
    LegalDocument,
    ProbeOutcome,
    ProcessingStatus,
    document_url,
)

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_NOT_FOUND = 404
PADDING_BELOW = 10


class DocumentProber:
    def __init__(self, base_url: str, transport: Callable[[str], int], rate_limiter: RateLimitHandler):
        self.base_url = base_url
        self.transport = transport
        self.rate_limiter = rate_limiter

    def probe(self, document: LegalDocument) -> ProbeOutcome:
        """Atualiza document.status in-place e devolve o ProbeOutcome."""
        doc_id = document.document_id
        if document.status not in PROBE_ELIGIBLE:
            logger.debug("[%s] ja resolvido (%s), skip", doc_id, document.status.value)
            return ProbeOutcome(doc_id, document.status, url=document.url, reason="ja resolvido")

        calls = 0

        def counted(url: str) -> int:
            nonlocal calls
            calls += 1
            return self.transport(url)

        try:
            url = document_url(self.base_url, document.doc_type, document.year, document.number)
            status = self.rate_limiter.execute_with_retry(url, counted)

            if status == HTTP_NOT_FOUND and document.number < PADDING_BELOW:
                padded = document_url(
                    self.base_url, document.doc_type, document.year, document.number, padded=True
                )
                padded_status = self.rate_limiter.execute_with_retry(padded, counted)
                if padded_status == HTTP_OK:
                    logger.info("[%s] encontrado com padding: %s", doc_id, padded)
                    url, status = padded, padded_status
                elif padded_status != HTTP_NOT_FOUND:
                    status = padded_status

            return self._apply(document, status, url, calls)

        except Exception as e:
            logger.exception("[%s] erro inesperado no probe", doc_id)
            document.mark(ProcessingStatus.FAILED, f"probe: {e}")
            return ProbeOutcome(doc_id, ProcessingStatus.FAILED, network_calls=calls, reason=str(e))

    def _apply(self, document: LegalDocument, status: int, url: str, calls: int) -> ProbeOutcome:
        doc_id = document.document_id
        if status == HTTP_OK:
            document.url = url
            document.mark(ProcessingStatus.FETCHED)
            logger.info("[%s] FETCHED (%s)", doc_id, url)
        elif status == HTTP_NOT_FOUND:
            document.mark(ProcessingStatus.NOT_FOUND)
            logger.debug("[%s] NOT_FOUND", doc_id)
        elif status == HTTP_TOO_MANY_REQUESTS:
            document.mark(ProcessingStatus.RATE_LIMITED, "HTTP 429 apos retries")
            logger.warning("[%s] RATE_LIMITED", doc_id)
        else:
            document.mark(ProcessingStatus.FAILED, f"HTTP {status}")
            logger.warning("[%s] FAILED (HTTP %s)", doc_id, status)
        return ProbeOutcome(
            doc_id, document.status, http_status=status, url=document.url,
            network_calls=calls, reason=document.error_message,
        )
