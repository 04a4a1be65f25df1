# sgglaw/fetch/downloader.py
"""
Download do PDF de documentos FETCHED.

GET {url}/download com retry + backoff (3s, 6s); corpo precisa comecar com %PDF,
senao CorruptedArtifactError (→ FAILED_CORRUPTED no runner).
"""
from __future__ import annotations

import time
import logging
from typing import Callable, Optional

import requests

from sgglaw.errors import CorruptedArtifactError
from sgglaw.models import LegalDocument, ProcessingStatus, document_url
from sgglaw.storage.files import FileStore

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"
DOWNLOAD_ATTEMPTS = 3


class PdfDownloader:
    def __init__(
        self,
        files: FileStore,
        base_url: str,
        timeout: int = 30,
        user_agent: str = "sgglaw/1.0",
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.files = files
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = user_agent
        self._sleep = sleep

    def _fetch(self, url: str) -> bytes:
        """GET com retry para erro de transporte e 5xx/429."""
        for attempt in range(DOWNLOAD_ATTEMPTS):
            try:
                resp = self.session.get(url, timeout=self.timeout)
                if resp.status_code == 429 or resp.status_code >= 500:
                    raise requests.HTTPError(f"HTTP {resp.status_code}", response=resp)
                resp.raise_for_status()
                return resp.content
            except requests.RequestException as e:
                status = getattr(getattr(e, "response", None), "status_code", None)
                if status is not None and 400 <= status < 500 and status != 429:
                    raise
                logger.warning("Tentativa %d falhou para %s: %s", attempt + 1, url, e)
                if attempt < DOWNLOAD_ATTEMPTS - 1:
                    self._sleep(3 * (attempt + 1))
                else:
                    raise
        raise RuntimeError(f"Nao conseguiu baixar {url}")

    def download(self, document: LegalDocument) -> LegalDocument:
        doc_id = document.document_id
        url = document.url or document_url(self.base_url, document.doc_type, document.year, document.number)
        data = self._fetch(url.rstrip("/") + "/download")

        if not data.startswith(PDF_MAGIC):
            raise CorruptedArtifactError(doc_id, "pdf", f"corpo nao e PDF ({len(data)} bytes)")

        path = self.files.pdf_path(document.doc_type, doc_id)
        self.files.write_bytes(path, data)
        document.pdf_path = path
        document.mark(ProcessingStatus.DOWNLOADED)
        logger.info("[%s] PDF baixado (%d bytes)", doc_id, len(data))
        return document
