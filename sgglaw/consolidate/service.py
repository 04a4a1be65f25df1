# sgglaw/consolidate/service.py
"""Estagio de consolidacao: JSON extraido → store consultavel → CONSOLIDATED."""
from __future__ import annotations

import json
import logging

from sgglaw.consolidate.store import ConsolidationStore
from sgglaw.errors import CorruptedArtifactError, MissingArtifactError
from sgglaw.models import ConsolidationOutcome, ExtractionResult, LegalDocument, ProcessingStatus
from sgglaw.storage.files import FileStore

logger = logging.getLogger(__name__)


class ConsolidationService:
    def __init__(self, files: FileStore, store: ConsolidationStore):
        self.files = files
        self.store = store

    def load_result(self, document: LegalDocument) -> ExtractionResult:
        doc_id = document.document_id
        ref = document.json_path or self.files.json_path(document.doc_type, doc_id)
        if not self.files.exists(ref):
            raise MissingArtifactError(doc_id, "json")
        try:
            data = self.files.read_json(ref)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CorruptedArtifactError(doc_id, "json", str(e)) from e
        if not isinstance(data, dict):
            raise CorruptedArtifactError(doc_id, "json", "raiz nao e objeto")
        return ExtractionResult.from_json_dict(data)

    def consolidate(self, document: LegalDocument) -> ConsolidationOutcome:
        """
        Grava no store e marca CONSOLIDATED.

        Gravacao ignorada pelo gate de confianca tambem termina em CONSOLIDATED:
        a versao anterior, melhor, continua valendo.
        """
        result = self.load_result(document)
        outcome = self.store.upsert(document.document_id, result)
        document.mark(ProcessingStatus.CONSOLIDATED)
        return outcome
