# sgglaw/extract/ocr.py
"""
Texto de PDFs do SGG.

Estrategia:
  1. PyMuPDF (fitz), camada de texto embutida
  2. pdfplumber, se a camada do fitz vier curta
  3. Tesseract (pytesseract) sobre as paginas renderizadas pelo fitz,
     quando ainda houver menos de MIN_TEXT_CHARS (PDF escaneado)

PDF que nem o fitz nem o pdfplumber conseguem abrir → CorruptedArtifactError.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import List

import fitz
import pdfplumber
import pytesseract
from PIL import Image

from sgglaw.errors import CorruptedArtifactError
from sgglaw.extract.corrector import normalize_text

logger = logging.getLogger(__name__)

MIN_TEXT_CHARS = 200
RENDER_ZOOM = 2.0


@dataclass
class OcrText:
    text: str
    extractor: str          # 'pymupdf' | 'pdfplumber' | 'tesseract'
    pages: int = 0

    @property
    def char_count(self) -> int:
        return len(self.text)


def calculate_text_quality(text: str) -> float:
    """Fracao de caracteres alfabeticos/espaco; 0 para texto vazio."""
    if not text:
        return 0.0
    good = sum(1 for c in text if c.isalpha() or c.isspace())
    return round(good / len(text), 4)


class PdfOcrEngine:
    def __init__(self, language: str = "fra", tesseract_cmd: str = ""):
        self.language = language
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    @staticmethod
    def _text_layer_fitz(pdf_bytes: bytes) -> tuple:
        with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
            parts = [page.get_text("text") or "" for page in doc]
            return normalize_text("\n".join(parts)), len(parts)

    @staticmethod
    def _text_layer_pdfplumber(pdf_bytes: bytes) -> str:
        with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
            parts = [page.extract_text() or "" for page in pdf.pages]
        return normalize_text("\n".join(parts))

    @staticmethod
    def _render_pages(pdf_bytes: bytes) -> List[Image.Image]:
        images: List[Image.Image] = []
        with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
            for page in doc:
                pix = page.get_pixmap(matrix=fitz.Matrix(RENDER_ZOOM, RENDER_ZOOM), alpha=False)
                images.append(Image.frombytes("RGB", (pix.width, pix.height), pix.samples))
        return images

    def _tesseract(self, pdf_bytes: bytes) -> str:
        parts = [
            pytesseract.image_to_string(image, lang=self.language)
            for image in self._render_pages(pdf_bytes)
        ]
        return normalize_text("\n\n".join(parts))

    def extract_text(self, pdf_bytes: bytes, document_id: str = "") -> OcrText:
        if not pdf_bytes:
            raise CorruptedArtifactError(document_id, "pdf", "arquivo vazio")

        text, pages, extractor = "", 0, "pymupdf"
        fitz_error = None
        try:
            text, pages = self._text_layer_fitz(pdf_bytes)
        except (RuntimeError, ValueError) as e:
            fitz_error = e
            logger.warning("[%s] PyMuPDF falhou: %s", document_id, e)

        if len(text) < MIN_TEXT_CHARS:
            try:
                plumber = self._text_layer_pdfplumber(pdf_bytes)
            except Exception as e:
                if fitz_error is not None:
                    raise CorruptedArtifactError(document_id, "pdf", str(e)) from e
                logger.warning("[%s] pdfplumber falhou: %s", document_id, e)
                plumber = ""
            if len(plumber) > len(text):
                text, extractor = plumber, "pdfplumber"

        if len(text) < MIN_TEXT_CHARS and fitz_error is None:
            logger.info("[%s] camada de texto curta (%d chars), rodando Tesseract", document_id, len(text))
            scanned = self._tesseract(pdf_bytes)
            if len(scanned) > len(text):
                text, extractor = scanned, "tesseract"

        logger.info(
            "[%s] texto extraido: %d chars via %s (qualidade=%.2f)",
            document_id, len(text), extractor, calculate_text_quality(text),
        )
        return OcrText(text=text, extractor=extractor, pages=pages)
