# sgglaw/storage/documents.py
"""
Storage de documentos e cursores de scan.

Interface estreita consumida pelo pipeline:
  find_by_document_id, find_by_status, find_by_type_and_year_and_number,
  save, save_all, delete_by_document_id (+ find_all para o Fixer/relatorio)
  get_cursor, save_cursor

Implementacoes:
  InMemory*  - testes e --in-memory (thread-safe, copia na leitura e na escrita)
  Postgres*  - UPSERT idempotente (ON CONFLICT), uma transacao por chamada
"""
from __future__ import annotations

import copy
import logging
import threading
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from sgglaw.db.connection import ConnectionPool
from sgglaw.errors import StorageError
from sgglaw.models import FetchCursor, LegalDocument, ProcessingStatus, build_document_id

logger = logging.getLogger(__name__)


class DocumentRepository(Protocol):
    def find_by_document_id(self, document_id: str) -> Optional[LegalDocument]: ...
    def find_by_status(self, status: ProcessingStatus, doc_type: Optional[str] = None) -> List[LegalDocument]: ...
    def find_by_type_and_year_and_number(self, doc_type: str, year: int, number: int) -> Optional[LegalDocument]: ...
    def find_all(self, doc_type: Optional[str] = None) -> List[LegalDocument]: ...
    def save(self, document: LegalDocument) -> None: ...
    def save_all(self, documents: Iterable[LegalDocument]) -> None: ...
    def delete_by_document_id(self, document_id: str) -> bool: ...


class CursorRepository(Protocol):
    def get_cursor(self, document_type: str, cursor_type: str) -> Optional[FetchCursor]: ...
    def save_cursor(self, cursor: FetchCursor) -> None: ...


# ── In-memory ────────────────────────────────────────────────────────────────

class InMemoryDocumentRepository:
    def __init__(self, documents: Iterable[LegalDocument] = ()):
        self._docs: Dict[str, LegalDocument] = {}
        self._lock = threading.Lock()
        self.save_all(documents)

    def find_by_document_id(self, document_id: str) -> Optional[LegalDocument]:
        with self._lock:
            doc = self._docs.get(document_id)
            return copy.deepcopy(doc) if doc else None

    def find_by_status(self, status: ProcessingStatus, doc_type: Optional[str] = None) -> List[LegalDocument]:
        with self._lock:
            return [
                copy.deepcopy(d) for d in self._docs.values()
                if d.status == status and (doc_type is None or d.doc_type == doc_type)
            ]

    def find_by_type_and_year_and_number(self, doc_type: str, year: int, number: int) -> Optional[LegalDocument]:
        return self.find_by_document_id(build_document_id(doc_type, year, number))

    def find_all(self, doc_type: Optional[str] = None) -> List[LegalDocument]:
        with self._lock:
            return [copy.deepcopy(d) for d in self._docs.values() if doc_type is None or d.doc_type == doc_type]

    def save(self, document: LegalDocument) -> None:
        with self._lock:
            self._docs[document.document_id] = copy.deepcopy(document)

    def save_all(self, documents: Iterable[LegalDocument]) -> None:
        for doc in documents:
            self.save(doc)

    def delete_by_document_id(self, document_id: str) -> bool:
        with self._lock:
            return self._docs.pop(document_id, None) is not None


class InMemoryCursorRepository:
    def __init__(self):
        self._cursors: Dict[Tuple[str, str], FetchCursor] = {}
        self._lock = threading.Lock()

    def get_cursor(self, document_type: str, cursor_type: str) -> Optional[FetchCursor]:
        with self._lock:
            cur = self._cursors.get((document_type, cursor_type))
            return copy.deepcopy(cur) if cur else None

    def save_cursor(self, cursor: FetchCursor) -> None:
        with self._lock:
            self._cursors[(cursor.document_type, cursor.cursor_type)] = copy.deepcopy(cursor)


# ── Postgres ─────────────────────────────────────────────────────────────────

_DOC_COLUMNS = (
    "doc_type, year, number, status, url, pdf_path, ocr_path, json_path, "
    "error_message, created_at, updated_at"
)

SELECT_DOCUMENT = f"SELECT {_DOC_COLUMNS} FROM law_document WHERE document_id = %s"

SELECT_BY_STATUS = f"SELECT {_DOC_COLUMNS} FROM law_document WHERE status = %s"

SELECT_ALL = f"SELECT {_DOC_COLUMNS} FROM law_document"

UPSERT_DOCUMENT = """
INSERT INTO law_document (
    document_id, doc_type, year, number, status, url,
    pdf_path, ocr_path, json_path, error_message, created_at, updated_at
) VALUES (
    %s, %s, %s, %s, %s, %s,
    %s, %s, %s, %s, %s, %s
)
ON CONFLICT (document_id) DO UPDATE SET
    status        = EXCLUDED.status,
    url           = EXCLUDED.url,
    pdf_path      = EXCLUDED.pdf_path,
    ocr_path      = EXCLUDED.ocr_path,
    json_path     = EXCLUDED.json_path,
    error_message = EXCLUDED.error_message,
    updated_at    = EXCLUDED.updated_at
"""

DELETE_DOCUMENT = "DELETE FROM law_document WHERE document_id = %s"

SELECT_CURSOR = """
SELECT current_year, current_number, updated_at
FROM fetch_cursor WHERE document_type = %s AND cursor_type = %s
"""

UPSERT_CURSOR = """
INSERT INTO fetch_cursor (document_type, cursor_type, current_year, current_number, updated_at)
VALUES (%s, %s, %s, %s, %s)
ON CONFLICT (document_type, cursor_type) DO UPDATE SET
    current_year   = EXCLUDED.current_year,
    current_number = EXCLUDED.current_number,
    updated_at     = EXCLUDED.updated_at
"""


def _row_to_document(row) -> LegalDocument:
    (doc_type, year, number, status, url, pdf_path, ocr_path, json_path,
     error_message, created_at, updated_at) = row
    return LegalDocument(
        doc_type=doc_type,
        year=year,
        number=number,
        status=ProcessingStatus(status),
        url=url,
        pdf_path=pdf_path,
        ocr_path=ocr_path,
        json_path=json_path,
        error_message=error_message,
        created_at=created_at,
        updated_at=updated_at,
    )


def _document_params(doc: LegalDocument) -> tuple:
    return (
        doc.document_id, doc.doc_type, doc.year, doc.number, doc.status.value, doc.url,
        doc.pdf_path, doc.ocr_path, doc.json_path, doc.error_message,
        doc.created_at, doc.updated_at,
    )


class PostgresDocumentRepository:
    def __init__(self, pool: ConnectionPool):
        self._pool = pool

    def _fetch(self, sql: str, params: tuple) -> List[LegalDocument]:
        conn = self._pool.get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
            conn.commit()
            return [_row_to_document(r) for r in rows]
        except Exception as e:
            conn.rollback()
            raise StorageError(f"consulta law_document falhou: {e}") from e
        finally:
            self._pool.release_conn(conn)

    def find_by_document_id(self, document_id: str) -> Optional[LegalDocument]:
        docs = self._fetch(SELECT_DOCUMENT, (document_id,))
        return docs[0] if docs else None

    def find_by_status(self, status: ProcessingStatus, doc_type: Optional[str] = None) -> List[LegalDocument]:
        if doc_type:
            return self._fetch(
                SELECT_BY_STATUS + " AND doc_type = %s ORDER BY year DESC, number",
                (status.value, doc_type),
            )
        return self._fetch(SELECT_BY_STATUS + " ORDER BY doc_type, year DESC, number", (status.value,))

    def find_by_type_and_year_and_number(self, doc_type: str, year: int, number: int) -> Optional[LegalDocument]:
        return self.find_by_document_id(build_document_id(doc_type, year, number))

    def find_all(self, doc_type: Optional[str] = None) -> List[LegalDocument]:
        if doc_type:
            return self._fetch(SELECT_ALL + " WHERE doc_type = %s ORDER BY year DESC, number", (doc_type,))
        return self._fetch(SELECT_ALL + " ORDER BY doc_type, year DESC, number", ())

    def save(self, document: LegalDocument) -> None:
        self.save_all([document])

    def save_all(self, documents: Iterable[LegalDocument]) -> None:
        docs = list(documents)
        if not docs:
            return
        conn = self._pool.get_conn()
        try:
            with conn.cursor() as cur:
                for doc in docs:
                    cur.execute(UPSERT_DOCUMENT, _document_params(doc))
            conn.commit()
            logger.debug("law_document: %d registro(s) gravado(s)", len(docs))
        except Exception as e:
            conn.rollback()
            logger.exception("Erro ao gravar %d documento(s)", len(docs))
            raise StorageError(f"gravacao law_document falhou: {e}") from e
        finally:
            self._pool.release_conn(conn)

    def delete_by_document_id(self, document_id: str) -> bool:
        with self._pool.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(DELETE_DOCUMENT, (document_id,))
                return cur.rowcount > 0


class PostgresCursorRepository:
    def __init__(self, pool: ConnectionPool):
        self._pool = pool

    def get_cursor(self, document_type: str, cursor_type: str) -> Optional[FetchCursor]:
        with self._pool.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(SELECT_CURSOR, (document_type, cursor_type))
                row = cur.fetchone()
        if row is None:
            return None
        return FetchCursor(document_type, cursor_type, row[0], row[1], updated_at=row[2])

    def save_cursor(self, cursor: FetchCursor) -> None:
        with self._pool.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(UPSERT_CURSOR, (
                    cursor.document_type, cursor.cursor_type,
                    cursor.current_year, cursor.current_number, cursor.updated_at,
                ))
