# tests/test_report_cli.py
"""
Testes do relatorio de status, do downloader de PDF e da CLI (storage em memoria).
"""
from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
import requests

from sgglaw.config import PipelineConfig
from sgglaw.errors import CorruptedArtifactError
from sgglaw.fetch.downloader import PdfDownloader
from sgglaw.models import LegalDocument, ProcessingStatus
from sgglaw.pipeline.report import build_status_report, generate_report_md, not_found_ranges
from sgglaw.run import build_parser, build_pipeline, run_command
from sgglaw.storage.files import FileStore

S = ProcessingStatus


# ─── Helpers ─────────────────────────────────────────────────────────

def _not_found(doc_type, year, numbers):
    return [LegalDocument(doc_type, year, n, status=S.NOT_FOUND) for n in numbers]


def _response(status=200, content=b""):
    resp = MagicMock()
    resp.status_code = status
    resp.content = content
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status}", response=resp)
    else:
        resp.raise_for_status.return_value = None
    return resp


# ─── Relatorio ───────────────────────────────────────────────────────

class TestNotFoundRanges:
    def test_long_run_reported(self):
        ranges = not_found_ranges(_not_found("loi", 2023, range(40, 55)))
        assert ranges == [{"type": "loi", "year": 2023, "from": 40, "to": 54, "count": 15}]

    def test_short_runs_ignored(self):
        assert not_found_ranges(_not_found("loi", 2023, [1, 2, 3, 7, 8])) == []

    def test_split_by_gap_and_year(self):
        docs = (_not_found("loi", 2023, list(range(1, 11)) + list(range(20, 25)))
                + _not_found("loi", 2024, range(100, 112)))
        ranges = not_found_ranges(docs)
        assert [(r["year"], r["from"], r["to"]) for r in ranges] == [(2024, 100, 111), (2023, 1, 10)]

    def test_other_statuses_ignored(self):
        docs = [LegalDocument("loi", 2023, n, status=S.FETCHED) for n in range(1, 20)]
        assert not_found_ranges(docs) == []


class TestStatusReport:
    def _docs(self):
        return [
            LegalDocument("loi", 2024, 1, status=S.CONSOLIDATED),
            LegalDocument("loi", 2024, 2, status=S.FAILED_EXTRACTION,
                          error_message="extracao manual necessaria: aucun article detecte"),
            LegalDocument("decret", 2024, 1, status=S.FETCHED),
        ] + _not_found("decret", 2023, range(1, 12))

    def test_counts(self):
        report = build_status_report(self._docs())
        assert report["total"] == 14
        assert report["by_status"]["NOT_FOUND"] == 11
        assert report["by_status"]["OCRED"] == 0
        assert report["by_type"]["loi"] == {"CONSOLIDATED": 1, "FAILED_EXTRACTION": 1}
        assert report["errors"] == [{
            "documentId": "loi-2024-2",
            "status": "FAILED_EXTRACTION",
            "error": "extracao manual necessaria: aucun article detecte",
        }]

    def test_markdown(self):
        md = generate_report_md(build_status_report(self._docs()))
        assert md.startswith("# Relatorio pipeline SGG")
        assert "| CONSOLIDATED | 1 |" in md
        # status com zero nao aparece na tabela por status (a de tipo lista todas as colunas)
        by_status = md.split("## Por tipo")[0]
        assert "| OCRED |" not in by_status
        assert "- decret 2023: 1-11 (11)" in md
        assert "**loi-2024-2** (FAILED_EXTRACTION)" in md


# ─── Downloader ──────────────────────────────────────────────────────

class TestPdfDownloader:
    def _downloader(self, tmp_path, responses):
        session = MagicMock()
        session.headers = {}
        session.get.side_effect = responses
        sleeps = []
        downloader = PdfDownloader(FileStore(str(tmp_path)), "https://sgg.test/doc",
                                   session=session, sleep=sleeps.append)
        return downloader, session, sleeps

    def test_success(self, tmp_path):
        downloader, session, _ = self._downloader(tmp_path, [_response(200, b"%PDF-1.7 corpo")])
        doc = downloader.download(LegalDocument("loi", 2024, 15, status=S.FETCHED))

        assert doc.status == S.DOWNLOADED
        assert doc.pdf_path.endswith("loi-2024-15.pdf")
        assert session.get.call_args[0][0] == "https://sgg.test/doc/loi-2024-15/download"
        assert session.headers["User-Agent"] == "sgglaw/1.0"

    def test_uses_stored_url(self, tmp_path):
        downloader, session, _ = self._downloader(tmp_path, [_response(200, b"%PDF-1.7")])
        downloader.download(LegalDocument("loi", 2024, 5, status=S.FETCHED,
                                          url="https://sgg.test/doc/loi-2024-05/"))
        assert session.get.call_args[0][0] == "https://sgg.test/doc/loi-2024-05/download"

    def test_retry_on_503(self, tmp_path):
        downloader, session, sleeps = self._downloader(
            tmp_path, [_response(503), _response(200, b"%PDF-1.7")])
        downloader.download(LegalDocument("loi", 2024, 15, status=S.FETCHED))
        assert session.get.call_count == 2
        assert sleeps == [3]

    def test_404_not_retried(self, tmp_path):
        downloader, session, sleeps = self._downloader(tmp_path, [_response(404)])
        with pytest.raises(requests.HTTPError):
            downloader.download(LegalDocument("loi", 2024, 15, status=S.FETCHED))
        assert session.get.call_count == 1
        assert sleeps == []

    def test_html_body_is_corrupted(self, tmp_path):
        downloader, _, _ = self._downloader(tmp_path, [_response(200, b"<html>maintenance</html>")])
        with pytest.raises(CorruptedArtifactError):
            downloader.download(LegalDocument("loi", 2024, 15, status=S.FETCHED))


# ─── CLI ─────────────────────────────────────────────────────────────

class TestCli:
    @pytest.fixture
    def pipeline(self, tmp_path):
        cfg = PipelineConfig(data_dir=str(tmp_path), ai_provider_order=[], workers=1)
        pipeline = build_pipeline(cfg, in_memory=True)
        yield pipeline
        pipeline.close()

    def test_parser_defaults(self):
        args = build_parser().parse_args(["report"])
        assert args.format == "md"
        assert args.dry_run is False
        assert args.in_memory is False

    def test_parser_rejects_unknown_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["publish"])

    def test_fix_command(self, pipeline):
        pipeline.documents.save(LegalDocument("loi", 2024, 1, status=S.DOWNLOADED))
        args = build_parser().parse_args(["fix", "--type", "loi"])
        summary = run_command(pipeline, "fix", args)

        assert summary["fixed"] == 1
        assert summary["results"][0]["issue"] == "MISSING_PDF"
        assert pipeline.documents.find_by_document_id("loi-2024-1").status == S.FETCHED

    def test_report_to_file(self, pipeline, tmp_path):
        pipeline.documents.save(LegalDocument("loi", 2024, 1, status=S.CONSOLIDATED))
        output = tmp_path / "out" / "report.json"
        args = build_parser().parse_args(["report", "--format", "json", "--output", str(output)])
        summary = run_command(pipeline, "report", args)

        assert summary["total"] == 1
        with open(output, encoding="utf-8") as f:
            assert json.load(f)["by_status"]["CONSOLIDATED"] == 1
