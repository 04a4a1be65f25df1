# sgglaw/storage/files.py
"""
Store de artefatos em disco (PDF, texto OCR, JSON extraido).

Layout:
  {base}/pdfs/{type}/{documentId}.pdf
  {base}/ocr/{type}/{documentId}.txt
  {base}/articles/{type}/{documentId}.json

Ids e tipos sao validados antes de montar o path (rejeita '..', '/', etc.).
"""
from __future__ import annotations

import os
import re
import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

RE_SAFE_TYPE = re.compile(r"^[a-z]{1,32}$")
RE_SAFE_DOC_ID = re.compile(r"^[a-z]{1,32}-\d{4}-\d{1,5}$")

_KIND_LAYOUT = {
    "pdf": ("pdfs", ".pdf"),
    "ocr": ("ocr", ".txt"),
    "json": ("articles", ".json"),
}


class FileStore:
    def __init__(self, base_dir: str):
        self.base_dir = os.path.abspath(base_dir)

    # ── paths ────────────────────────────────────────────────────────────────

    def path_for(self, kind: str, doc_type: str, document_id: str) -> str:
        if kind not in _KIND_LAYOUT:
            raise ValueError(f"Tipo de artefato desconhecido: {kind}")
        if not RE_SAFE_TYPE.match(doc_type or ""):
            raise ValueError(f"Tipo de documento invalido: {doc_type!r}")
        if not RE_SAFE_DOC_ID.match(document_id or "") or not document_id.startswith(doc_type + "-"):
            raise ValueError(f"documentId invalido: {document_id!r}")
        folder, ext = _KIND_LAYOUT[kind]
        return os.path.join(self.base_dir, folder, doc_type, document_id + ext)

    def pdf_path(self, doc_type: str, document_id: str) -> str:
        return self.path_for("pdf", doc_type, document_id)

    def ocr_path(self, doc_type: str, document_id: str) -> str:
        return self.path_for("ocr", doc_type, document_id)

    def json_path(self, doc_type: str, document_id: str) -> str:
        return self.path_for("json", doc_type, document_id)

    # ── io ───────────────────────────────────────────────────────────────────

    @staticmethod
    def exists(reference: Optional[str]) -> bool:
        return bool(reference) and os.path.isfile(reference)

    @staticmethod
    def _ensure_parent(reference: str) -> None:
        os.makedirs(os.path.dirname(reference), exist_ok=True)

    def write_bytes(self, reference: str, data: bytes) -> str:
        self._ensure_parent(reference)
        tmp = reference + ".part"
        with open(tmp, "wb") as f:
            f.write(data)
        os.replace(tmp, reference)
        return reference

    @staticmethod
    def read_bytes(reference: str) -> bytes:
        with open(reference, "rb") as f:
            return f.read()

    @staticmethod
    def read_head(reference: str, size: int = 8) -> bytes:
        with open(reference, "rb") as f:
            return f.read(size)

    def write_text(self, reference: str, text: str) -> str:
        self._ensure_parent(reference)
        with open(reference, "w", encoding="utf-8") as f:
            f.write(text)
        return reference

    @staticmethod
    def read_text(reference: str) -> str:
        with open(reference, "r", encoding="utf-8") as f:
            return f.read()

    def write_json(self, reference: str, data: Dict[str, Any]) -> str:
        self._ensure_parent(reference)
        with open(reference, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        return reference

    @staticmethod
    def read_json(reference: str) -> Dict[str, Any]:
        with open(reference, "r", encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def delete(reference: Optional[str]) -> bool:
        if reference and os.path.isfile(reference):
            os.remove(reference)
            logger.info("Artefato removido: %s", reference)
            return True
        return False
