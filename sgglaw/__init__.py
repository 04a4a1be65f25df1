# sgglaw/__init__.py
"""
sgglaw - Pipeline de textos legais do SGG (Secretariat General du Gouvernement, Benin).

Fetch → download → OCR → extracao de artigos (regex, fallback IA) →
consolidacao com gate de confianca, mais deteccao/correcao automatica de issues.

Este arquivo deve ser side-effect free. Use imports explicitos:
  from sgglaw.config import PipelineConfig
  from sgglaw.run import build_pipeline
"""
__version__ = "1.0.0"

__all__ = []
