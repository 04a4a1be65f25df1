# tests/test_consolidation.py
"""
Testes da consolidacao (gate de confianca + substituicao total).
Store em memoria sempre; store Postgres com mock de conexao
e, se POSTGRES_CONNSTR estiver definida, contra um banco real.
"""
from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest

from sgglaw.consolidate.service import ConsolidationService
from sgglaw.consolidate.store import (
    DELETE_ARTICLES,
    INSERT_ARTICLE,
    InMemoryConsolidationStore,
    PostgresConsolidationStore,
)
from sgglaw.errors import CorruptedArtifactError, MissingArtifactError, StorageError
from sgglaw.models import (
    Article,
    DocumentMetadata,
    ExtractionResult,
    LegalDocument,
    ProcessingStatus,
    Signatory,
)
from sgglaw.storage.files import FileStore

DOC_ID = "loi-2024-15"


def _result(confidence, articles=("Un.", "Deux."), signatories=("Patrice TALON",)):
    return ExtractionResult(
        articles=[Article(i, c) for i, c in enumerate(articles, 1)],
        metadata=DocumentMetadata(
            title="LOI N° 2024-15",
            signatories=[Signatory("Président de la République", n) for n in signatories],
        ),
        confidence=confidence,
        method="REGEX",
    )


class TestInMemoryGate:
    def test_first_write_applies(self):
        store = InMemoryConsolidationStore()
        outcome = store.upsert(DOC_ID, _result(0.6))
        assert outcome.applied
        assert outcome.previous_confidence is None
        assert outcome.articles == 2

    def test_lower_confidence_keeps_first(self):
        store = InMemoryConsolidationStore()
        store.upsert(DOC_ID, _result(0.8, articles=("Un.", "Deux.", "Trois.")))
        outcome = store.upsert(DOC_ID, _result(0.5, articles=("X.",)))
        assert not outcome.applied
        assert outcome.previous_confidence == 0.8
        assert len(store.get(DOC_ID).articles) == 3

    def test_equal_confidence_is_skipped(self):
        store = InMemoryConsolidationStore()
        store.upsert(DOC_ID, _result(0.7))
        assert not store.upsert(DOC_ID, _result(0.7, articles=("X.",))).applied

    def test_higher_confidence_replaces_everything(self):
        store = InMemoryConsolidationStore()
        store.upsert(DOC_ID, _result(0.5, articles=("Un.", "Deux.", "Trois."), signatories=("A", "B")))
        outcome = store.upsert(DOC_ID, _result(0.9, articles=("Novo.",), signatories=("C",)))
        assert outcome.applied
        stored = store.get(DOC_ID)
        assert [a.content for a in stored.articles] == ["Novo."]
        assert [s.name for s in stored.metadata.signatories] == ["C"]
        assert store.existing_confidence(DOC_ID) == 0.9

    def test_stored_copy_is_isolated(self):
        store = InMemoryConsolidationStore()
        result = _result(0.6)
        store.upsert(DOC_ID, result)
        result.articles.clear()
        assert len(store.get(DOC_ID).articles) == 2


class TestConsolidationService:
    @pytest.fixture
    def files(self, tmp_path):
        return FileStore(str(tmp_path))

    def _doc_with_json(self, files, result):
        doc = LegalDocument("loi", 2024, 15, status=ProcessingStatus.EXTRACTED)
        path = files.json_path("loi", doc.document_id)
        files.write_json(path, result.to_json_dict(doc))
        doc.json_path = path
        return doc

    def test_consolidates_and_marks(self, files):
        store = InMemoryConsolidationStore()
        doc = self._doc_with_json(files, _result(0.6))
        outcome = ConsolidationService(files, store).consolidate(doc)
        assert outcome.applied
        assert doc.status == ProcessingStatus.CONSOLIDATED
        assert store.get(DOC_ID).metadata.title == "LOI N° 2024-15"

    def test_skipped_write_still_consolidated(self, files):
        store = InMemoryConsolidationStore()
        store.upsert(DOC_ID, _result(0.9))
        doc = self._doc_with_json(files, _result(0.4))
        outcome = ConsolidationService(files, store).consolidate(doc)
        assert not outcome.applied
        assert doc.status == ProcessingStatus.CONSOLIDATED
        assert store.existing_confidence(DOC_ID) == 0.9

    def test_missing_json(self, files):
        doc = LegalDocument("loi", 2024, 15, status=ProcessingStatus.EXTRACTED)
        with pytest.raises(MissingArtifactError):
            ConsolidationService(files, InMemoryConsolidationStore()).consolidate(doc)

    def test_corrupted_json(self, files):
        doc = LegalDocument("loi", 2024, 15, status=ProcessingStatus.EXTRACTED)
        files.write_text(files.json_path("loi", DOC_ID), "{ nao e json")
        with pytest.raises(CorruptedArtifactError):
            ConsolidationService(files, InMemoryConsolidationStore()).consolidate(doc)


# ─── Postgres (mock) ─────────────────────────────────────────────────

def _mock_pool(existing_row):
    cursor = MagicMock()
    cursor.fetchone.return_value = existing_row
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    pool = MagicMock()
    pool.get_conn.return_value = conn
    return pool, conn, cursor


class TestPostgresStoreMocked:
    def test_skip_rolls_back(self):
        pool, conn, cursor = _mock_pool((0.9,))
        outcome = PostgresConsolidationStore(pool).upsert(DOC_ID, _result(0.5))
        assert not outcome.applied
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        pool.release_conn.assert_called_once_with(conn)

    def test_apply_replaces_rows_in_one_transaction(self):
        pool, conn, cursor = _mock_pool(None)
        outcome = PostgresConsolidationStore(pool).upsert(DOC_ID, _result(0.7))
        assert outcome.applied
        sqls = [c[0][0] for c in cursor.execute.call_args_list]
        assert DELETE_ARTICLES in sqls
        assert sqls.count(INSERT_ARTICLE) == 2
        conn.commit.assert_called_once()

    def test_db_error_wrapped(self):
        pool, conn, cursor = _mock_pool(None)
        cursor.execute.side_effect = [None, RuntimeError("deadlock")]
        with pytest.raises(StorageError):
            PostgresConsolidationStore(pool).upsert(DOC_ID, _result(0.7))
        conn.rollback.assert_called_once()
        pool.release_conn.assert_called_once_with(conn)


# ─── Postgres (real) ─────────────────────────────────────────────────

requires_pg = pytest.mark.skipif(
    not os.environ.get("POSTGRES_CONNSTR"),
    reason="POSTGRES_CONNSTR nao definida, skip DB tests",
)


@pytest.fixture
def pg_pool():
    from sgglaw.db.connection import ConnectionPool
    from sgglaw.db.run_migrations import run_migrations
    from sgglaw.storage.documents import PostgresDocumentRepository

    pool = ConnectionPool(os.environ["POSTGRES_CONNSTR"])
    assert run_migrations(pool) == 0
    repo = PostgresDocumentRepository(pool)
    repo.save(LegalDocument("loi", 1999, 999, status=ProcessingStatus.EXTRACTED))
    yield pool
    # cascade remove metadados, artigos e signatarios
    repo.delete_by_document_id("loi-1999-999")
    pool.close()


@requires_pg
class TestPostgresStore:
    def test_gate_against_real_db(self, pg_pool):
        store = PostgresConsolidationStore(pg_pool)
        assert store.upsert("loi-1999-999", _result(0.6)).applied
        assert not store.upsert("loi-1999-999", _result(0.4)).applied
        assert store.upsert("loi-1999-999", _result(0.8, articles=("Novo.",))).applied
        assert store.existing_confidence("loi-1999-999") == pytest.approx(0.8)
