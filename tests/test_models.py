# tests/test_models.py
"""
Testes dos data models: identidade de documento, tabela de rewind,
regras de estagio e serializacao do ExtractionResult.
"""
from __future__ import annotations

import pytest

from sgglaw.models import (
    FAILURE_STATUSES,
    REWIND_TO,
    STAGES,
    Article,
    DocumentMetadata,
    ExtractionResult,
    LegalDocument,
    ProcessingStatus,
    SequenceReport,
    Signatory,
    build_document_id,
    document_url,
    parse_document_id,
    previous_status,
)

S = ProcessingStatus


class TestDocumentId:
    def test_build(self):
        assert build_document_id("loi", 2024, 15) == "loi-2024-15"

    def test_parse(self):
        assert parse_document_id("decret-2019-123") == ("decret", 2019, 123)

    def test_round_trip_from_document(self):
        doc = LegalDocument("loi", 2020, 7)
        assert parse_document_id(doc.document_id) == ("loi", 2020, 7)

    @pytest.mark.parametrize("bad", [
        None,
        "",
        "loi-2024",
        "loi-2024-15-2",
        "loi-abcd-15",
        "loi-2024-x",
        "LOI-2024-15",
        "../x-2024-1",
        "loi-\u00b2-1",
        "loi-2024-\u00b3",
        "loi-2024-15\n",
        "loi\n-2024-15",
    ])
    def test_malformed_returns_none(self, bad):
        assert parse_document_id(bad) is None


class TestDocumentUrl:
    def test_plain(self):
        assert document_url("https://sgg.gouv.bj/doc/", "loi", 2024, 5) == "https://sgg.gouv.bj/doc/loi-2024-5"

    def test_padded(self):
        assert document_url("https://sgg.gouv.bj/doc", "loi", 2024, 5, padded=True).endswith("loi-2024-05")


class TestRewind:
    def test_forward_chain(self):
        assert previous_status(S.FETCHED) == S.PENDING
        assert previous_status(S.DOWNLOADED) == S.FETCHED
        assert previous_status(S.OCRED) == S.DOWNLOADED
        assert previous_status(S.CONSOLIDATED) == S.EXTRACTED

    def test_extracted_goes_back_to_downloaded(self):
        # texto OCR e refeito junto com a extracao
        assert previous_status(S.EXTRACTED) == S.DOWNLOADED

    def test_failures(self):
        assert previous_status(S.FAILED_CORRUPTED) == S.FETCHED
        assert previous_status(S.FAILED_EXTRACTION) == S.DOWNLOADED
        assert previous_status(S.FAILED_CONSOLIDATION) == S.EXTRACTED
        assert previous_status(S.FAILED) == S.PENDING

    def test_no_predecessor(self):
        assert previous_status(S.PENDING) is None
        assert previous_status(S.NOT_FOUND) is None
        assert S.RATE_LIMITED not in REWIND_TO

    def test_every_failure_has_predecessor(self):
        assert all(f in REWIND_TO for f in FAILURE_STATUSES)


class TestStages:
    def test_preconditions(self):
        assert STAGES["download"].preconditions == {S.FETCHED}
        assert STAGES["ocr"].preconditions == {S.DOWNLOADED}
        assert STAGES["extract"].preconditions == {S.OCRED}
        assert STAGES["consolidate"].preconditions == {S.EXTRACTED}
        assert STAGES["fetch"].preconditions == {S.PENDING, S.RATE_LIMITED}

    def test_failure_statuses(self):
        assert STAGES["extract"].failure == S.FAILED_EXTRACTION
        assert STAGES["consolidate"].failure == S.FAILED_CONSOLIDATION
        assert STAGES["download"].failure == S.FAILED


class TestLegalDocument:
    def test_mark_updates_status_and_timestamp(self):
        doc = LegalDocument("loi", 2024, 1)
        before = doc.updated_at
        doc.mark(S.FAILED, "boom")
        assert doc.status == S.FAILED
        assert doc.error_message == "boom"
        assert doc.updated_at >= before

    def test_mark_clears_error(self):
        doc = LegalDocument("loi", 2024, 1, status=S.FAILED, error_message="x")
        doc.mark(S.PENDING)
        assert doc.error_message is None


class TestExtractionResultJson:
    def _result(self):
        return ExtractionResult(
            articles=[Article(1, "Texte un."), Article(2, "Texte deux.")],
            metadata=DocumentMetadata(
                title="LOI N° 2024-15",
                promulgation_date="2024-03-12",
                promulgation_city="Cotonou",
                signatories=[Signatory("Président de la République", "Patrice TALON", "2016-04-06")],
            ),
            confidence=0.81234,
            method="REGEX",
            sequence=SequenceReport(gaps=1),
            unrecognized_rate=0.1,
            legal_terms_found=4,
        )

    def test_to_json_dict_shape(self):
        doc = LegalDocument("loi", 2024, 15)
        data = self._result().to_json_dict(doc)
        assert data["documentId"] == "loi-2024-15"
        assert data["type"] == "loi"
        assert data["articles"][0] == {"index": 1, "content": "Texte un."}
        assert data["signatories"][0]["mandateStart"] == "2016-04-06"
        assert data["_metadata"]["confidence"] == 0.8123
        assert data["_metadata"]["sequenceIssues"]["gaps"] == 1

    def test_from_json_dict(self):
        data = self._result().to_json_dict(LegalDocument("loi", 2024, 15))
        back = ExtractionResult.from_json_dict(data)
        assert [a.index for a in back.articles] == [1, 2]
        assert back.metadata.promulgation_city == "Cotonou"
        assert back.metadata.signatories[0].name == "Patrice TALON"
        assert back.method == "REGEX"
        assert back.sequence.gaps == 1
        assert back.legal_terms_found == 4

    def test_from_json_dict_ignores_bad_articles(self):
        back = ExtractionResult.from_json_dict({
            "articles": [{"index": "x", "content": "a"}, {"index": 3, "content": "ok"}, "lixo"],
        })
        assert [a.index for a in back.articles] == [3]
        assert back.confidence == 0.0
        assert back.method == "UNKNOWN"

    def test_from_json_dict_rejects_non_ascii_digits(self):
        back = ExtractionResult.from_json_dict({
            "articles": [{"index": "\u00b2", "content": "a"}, {"index": "4", "content": "ok"}],
        })
        assert [a.index for a in back.articles] == [4]
