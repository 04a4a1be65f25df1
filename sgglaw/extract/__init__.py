# sgglaw/extract/__init__.py
"""
Texto → estrutura.

  ocr         PDF → texto (PyMuPDF, pdfplumber, Tesseract)
  corrector   correcoes deterministicas de OCR (corrections.csv)
  articles    extrator regex de artigos + confianca
  metadata    titulo, promulgacao, signatarios
  dictionary  taxa de palavras nao reconhecidas, termos juridicos
"""
