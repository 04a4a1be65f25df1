#!/usr/bin/env python3
# sgglaw/run.py
"""
CLI do pipeline SGG.

Uso:
  python -m sgglaw.run fetch-current --type loi
  python -m sgglaw.run fetch-previous --type decret --max-items 200
  python -m sgglaw.run download --workers 4
  python -m sgglaw.run extract --document-id loi-2024-15
  python -m sgglaw.run fix --dry-run
  python -m sgglaw.run report --format json --output out/report.json
  python -m sgglaw.run run-all --type loi

--in-memory: storage em memoria (nada e gravado no Postgres).
--dry-run: o fixer so reporta o que faria.
"""
from __future__ import annotations

import os
import sys
import json
import logging
import argparse
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sgglaw.ai.orchestrator import AIOrchestrator
from sgglaw.ai.providers import build_providers
from sgglaw.config import PipelineConfig, validate_config
from sgglaw.consolidate.service import ConsolidationService
from sgglaw.consolidate.store import InMemoryConsolidationStore, PostgresConsolidationStore
from sgglaw.db.connection import ConnectionPool
from sgglaw.errors import SggLawError
from sgglaw.extract.articles import ArticleExtractor
from sgglaw.extract.corrector import TextCorrector
from sgglaw.extract.dictionary import UnrecognizedWordsRecorder, WordDictionary
from sgglaw.extract.metadata import MetadataExtractor, load_signatory_patterns
from sgglaw.extract.ocr import PdfOcrEngine
from sgglaw.fetch.downloader import PdfDownloader
from sgglaw.fetch.http_probe import HttpProbe
from sgglaw.fetch.prober import DocumentProber
from sgglaw.fetch.rate_limit import RateLimitHandler
from sgglaw.fetch.scanner import CursorScanner
from sgglaw.fix.detectors import FileDetector, QualityDetector, StatusDetector
from sgglaw.fix.fixer import FixOrchestrator
from sgglaw.pipeline.report import build_status_report, generate_report_md
from sgglaw.pipeline.stages import PipelineRunner
from sgglaw.storage.documents import (
    DocumentRepository,
    InMemoryCursorRepository,
    InMemoryDocumentRepository,
    PostgresCursorRepository,
    PostgresDocumentRepository,
)
from sgglaw.storage.files import FileStore

logger = logging.getLogger("sgglaw.run")

STAGE_COMMANDS = ("download", "ocr", "extract", "consolidate")
RUN_ALL_ORDER = ("fetch-current", "fetch-previous") + STAGE_COMMANDS


def _setup_logging(log_dir: str = "logs", verbose: bool = False) -> None:
    os.makedirs(log_dir, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    log_file = os.path.join(log_dir, f"sgglaw_{stamp}.log")
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.FileHandler(log_file, encoding="utf-8"), logging.StreamHandler()],
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logger.info("Log file: %s", log_file)


@dataclass
class Pipeline:
    """Componentes montados para uma execucao (ciclo de vida do chamador)."""
    cfg: PipelineConfig
    documents: DocumentRepository
    scanner: CursorScanner
    runner: PipelineRunner
    fixer: FixOrchestrator
    pool: Optional[ConnectionPool] = None

    def close(self) -> None:
        if self.pool is not None:
            self.pool.close()


def build_pipeline(cfg: PipelineConfig, in_memory: bool = False, dry_run: bool = False) -> Pipeline:
    pool = None
    if in_memory:
        logger.info("Storage em memoria")
        documents = InMemoryDocumentRepository()
        cursors = InMemoryCursorRepository()
        store = InMemoryConsolidationStore()
    else:
        pool = ConnectionPool(cfg.postgres_connstr, max_conn=max(2, cfg.workers + 1))
        documents = PostgresDocumentRepository(pool)
        cursors = PostgresCursorRepository(pool)
        store = PostgresConsolidationStore(pool)

    files = FileStore(cfg.data_dir)
    prober = DocumentProber(
        cfg.base_url,
        HttpProbe(cfg.http_timeout, cfg.user_agent),
        RateLimitHandler(cfg.rate_limit_max_retries, cfg.rate_limit_base_delay),
    )
    scanner = CursorScanner(cfg, documents, cursors, prober)

    extractor = ArticleExtractor(
        WordDictionary.from_file(cfg.dictionary_path),
        MetadataExtractor(load_signatory_patterns(cfg.signatories_path)),
    )
    providers = build_providers(cfg)
    ai = AIOrchestrator(
        providers,
        chunk_size=cfg.ai_chunk_size,
        chunk_overlap=cfg.ai_chunk_overlap,
        temperature=cfg.ai_temperature,
        max_tokens=cfg.ai_max_tokens,
    ) if providers else None
    unrecognized_path = cfg.unrecognized_words_path or os.path.join(cfg.data_dir, "word_non_recognize.txt")

    runner = PipelineRunner(
        cfg=cfg,
        documents=documents,
        files=files,
        downloader=PdfDownloader(files, cfg.base_url, cfg.http_timeout, cfg.user_agent),
        ocr_engine=PdfOcrEngine(cfg.ocr_language, cfg.tesseract_cmd),
        corrector=TextCorrector.from_csv(cfg.corrections_path),
        extractor=extractor,
        consolidation=ConsolidationService(files, store),
        ai=ai,
        unrecognized=UnrecognizedWordsRecorder(unrecognized_path),
    )
    fixer = FixOrchestrator(
        documents,
        files,
        detectors=[
            StatusDetector(cfg.stuck_after_hours),
            FileDetector(files),
            QualityDetector(files, cfg.low_confidence_threshold, cfg.high_unrecognized_rate),
        ],
        dry_run=dry_run,
    )
    return Pipeline(cfg, documents, scanner, runner, fixer, pool)


# ── Comandos ─────────────────────────────────────────────────────────────────

def _types(cfg: PipelineConfig, doc_type: Optional[str]) -> List[str]:
    return [doc_type] if doc_type else list(cfg.doc_types)


def run_command(pipeline: Pipeline, command: str, args: argparse.Namespace) -> Dict[str, object]:
    cfg = pipeline.cfg

    if command == "fetch-current":
        if args.document_id:
            outcome = pipeline.scanner.run_document(args.document_id)
            return {"outcome": outcome.status.value if outcome else "ignorado"}
        return {t: pipeline.scanner.scan_current(t, args.max_items) for t in _types(cfg, args.type)}

    if command == "fetch-previous":
        return {t: pipeline.scanner.scan_previous(t, args.max_items) for t in _types(cfg, args.type)}

    if command in STAGE_COMMANDS:
        return pipeline.runner.run_stage(command, args.type, args.document_id, args.max_items)

    if command == "fix":
        summary = pipeline.fixer.detect_and_fix(args.type, args.document_id)
        summary["results"] = [
            {"documentId": r.document_id, "issue": r.issue_type.value,
             "status": r.status.value, "action": r.action, "details": r.details}
            for r in summary["results"]
        ]
        return summary

    if command == "report":
        report = build_status_report(pipeline.documents.find_all(args.type))
        text = json.dumps(report, ensure_ascii=False, indent=2) if args.format == "json" \
            else generate_report_md(report)
        if args.output:
            os.makedirs(os.path.dirname(os.path.abspath(args.output)), exist_ok=True)
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(text)
            logger.info("Relatorio gravado: %s", args.output)
        else:
            print(text)
        return {"total": report["total"], "by_status": report["by_status"]}

    if command == "run-all":
        out = {}
        for step in RUN_ALL_ORDER:
            if args.document_id and step == "fetch-previous":
                continue
            logger.info("=== run-all: %s ===", step)
            out[step] = run_command(pipeline, step, args)
        return out

    raise ValueError(f"Comando desconhecido: {command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pipeline de textos legais do SGG (Benin)")
    parser.add_argument("command",
                        choices=RUN_ALL_ORDER + ("fix", "report", "run-all"),
                        help="Estagio/comando a executar")
    parser.add_argument("--type", help="loi | decret (default: SGG_DOC_TYPES)")
    parser.add_argument("--document-id", help="Processar um unico documento (ex.: loi-2024-15)")
    parser.add_argument("--max-items", type=int, help="Limite de documentos nesta passada")
    parser.add_argument("--workers", type=int, help="Workers paralelos (default: cores, max 8)")
    parser.add_argument("--dry-run", action="store_true", help="Fixer so reporta, sem gravar")
    parser.add_argument("--in-memory", action="store_true", help="Storage em memoria (sem Postgres)")
    parser.add_argument("--format", choices=("md", "json"), default="md", help="Formato do report")
    parser.add_argument("--output", help="Arquivo de saida do report")
    parser.add_argument("--log-dir", default="logs", help="Diretorio de logs (default logs)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log DEBUG")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.log_dir, args.verbose)

    cfg = PipelineConfig.from_env().with_overrides(workers=args.workers)
    ok, msg = validate_config(cfg)
    if not ok:
        logger.error("Configuracao invalida: %s", msg)
        return 2

    try:
        pipeline = build_pipeline(cfg, in_memory=args.in_memory, dry_run=args.dry_run)
    except SggLawError as e:
        logger.error("Falha ao montar pipeline: %s", e)
        return 2

    try:
        summary = run_command(pipeline, args.command, args)
    except SggLawError as e:
        logger.error("%s abortado: %s", args.command, e)
        return 1
    finally:
        pipeline.close()

    if args.command != "report":
        print(json.dumps(summary, ensure_ascii=False, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
