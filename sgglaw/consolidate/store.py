# sgglaw/consolidate/store.py
"""
Store consultavel dos documentos consolidados (metadados, artigos, signatarios).

Idempotencia com gate de confianca:
  - sem registro anterior → grava
  - registro anterior → grava somente se nova confianca > confianca existente
  - gravacao substitui TODOS os artigos e signatarios do documento (sem merge parcial)

Chave natural: document_id (+ article_index / signatory_order).
"""
from __future__ import annotations

import copy
import logging
import threading
from typing import Dict, Optional, Protocol

from sgglaw.db.connection import ConnectionPool
from sgglaw.errors import StorageError
from sgglaw.models import ConsolidationOutcome, ExtractionResult

logger = logging.getLogger(__name__)


class ConsolidationStore(Protocol):
    def existing_confidence(self, document_id: str) -> Optional[float]: ...
    def upsert(self, document_id: str, result: ExtractionResult) -> ConsolidationOutcome: ...


def _skip(document_id: str, result: ExtractionResult, existing: float) -> ConsolidationOutcome:
    logger.info(
        "[%s] consolidacao ignorada: confianca %.4f <= existente %.4f",
        document_id, result.confidence, existing,
    )
    return ConsolidationOutcome(
        document_id=document_id,
        applied=False,
        new_confidence=result.confidence,
        previous_confidence=existing,
        reason="confianca nao supera a versao consolidada",
    )


def _applied(document_id: str, result: ExtractionResult, existing: Optional[float]) -> ConsolidationOutcome:
    logger.info(
        "[%s] consolidado: %d artigo(s), %d signatario(s), confianca %.4f (anterior=%s)",
        document_id, len(result.articles), len(result.metadata.signatories),
        result.confidence, "-" if existing is None else f"{existing:.4f}",
    )
    return ConsolidationOutcome(
        document_id=document_id,
        applied=True,
        new_confidence=result.confidence,
        previous_confidence=existing,
        articles=len(result.articles),
        signatories=len(result.metadata.signatories),
    )


# ── In-memory ────────────────────────────────────────────────────────────────

class InMemoryConsolidationStore:
    def __init__(self):
        self._records: Dict[str, ExtractionResult] = {}
        self._lock = threading.Lock()

    def existing_confidence(self, document_id: str) -> Optional[float]:
        with self._lock:
            rec = self._records.get(document_id)
            return rec.confidence if rec else None

    def get(self, document_id: str) -> Optional[ExtractionResult]:
        with self._lock:
            rec = self._records.get(document_id)
            return copy.deepcopy(rec) if rec else None

    def upsert(self, document_id: str, result: ExtractionResult) -> ConsolidationOutcome:
        with self._lock:
            prev = self._records.get(document_id)
            existing = prev.confidence if prev else None
            if existing is not None and not result.confidence > existing:
                return _skip(document_id, result, existing)
            self._records[document_id] = copy.deepcopy(result)
        return _applied(document_id, result, existing)


# ── Postgres ─────────────────────────────────────────────────────────────────

SELECT_CONFIDENCE = "SELECT confidence FROM consolidated_metadata WHERE document_id = %s"

SELECT_CONFIDENCE_FOR_UPDATE = SELECT_CONFIDENCE + " FOR UPDATE"

UPSERT_METADATA = """
INSERT INTO consolidated_metadata (
    document_id, title, promulgation_date, promulgation_city,
    confidence, method, extracted_at, consolidated_at
) VALUES (%s, %s, %s, %s, %s, %s, %s, now())
ON CONFLICT (document_id) DO UPDATE SET
    title             = EXCLUDED.title,
    promulgation_date = EXCLUDED.promulgation_date,
    promulgation_city = EXCLUDED.promulgation_city,
    confidence        = EXCLUDED.confidence,
    method            = EXCLUDED.method,
    extracted_at      = EXCLUDED.extracted_at,
    consolidated_at   = now()
"""

DELETE_ARTICLES = "DELETE FROM consolidated_article WHERE document_id = %s"
DELETE_SIGNATORIES = "DELETE FROM consolidated_signatory WHERE document_id = %s"

INSERT_ARTICLE = """
INSERT INTO consolidated_article (document_id, article_index, content)
VALUES (%s, %s, %s)
"""

INSERT_SIGNATORY = """
INSERT INTO consolidated_signatory (
    document_id, signatory_order, role, name, mandate_start, mandate_end
) VALUES (%s, %s, %s, %s, %s, %s)
"""


class PostgresConsolidationStore:
    def __init__(self, pool: ConnectionPool):
        self._pool = pool

    def existing_confidence(self, document_id: str) -> Optional[float]:
        with self._pool.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(SELECT_CONFIDENCE, (document_id,))
                row = cur.fetchone()
        return float(row[0]) if row else None

    def upsert(self, document_id: str, result: ExtractionResult) -> ConsolidationOutcome:
        """Uma transacao: trava a linha, compara confianca, substitui tudo."""
        meta = result.metadata
        conn = self._pool.get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(SELECT_CONFIDENCE_FOR_UPDATE, (document_id,))
                row = cur.fetchone()
                existing = float(row[0]) if row else None
                if existing is not None and not result.confidence > existing:
                    conn.rollback()
                    return _skip(document_id, result, existing)

                cur.execute(UPSERT_METADATA, (
                    document_id, meta.title, meta.promulgation_date, meta.promulgation_city,
                    result.confidence, result.method, result.timestamp,
                ))
                cur.execute(DELETE_ARTICLES, (document_id,))
                cur.execute(DELETE_SIGNATORIES, (document_id,))
                for article in result.articles:
                    cur.execute(INSERT_ARTICLE, (document_id, article.index, article.content))
                for order, sig in enumerate(meta.signatories, 1):
                    cur.execute(INSERT_SIGNATORY, (
                        document_id, order, sig.role, sig.name, sig.mandate_start, sig.mandate_end,
                    ))
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.exception("[%s] Erro ao consolidar", document_id)
            raise StorageError(f"consolidacao {document_id} falhou: {e}") from e
        finally:
            self._pool.release_conn(conn)
        return _applied(document_id, result, existing)
