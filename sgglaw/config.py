# sgglaw/config.py
"""
Configuracao centralizada do pipeline SGG.

Constantes de modulo lidas de env vars = apenas defaults.
Nenhum servico le estas constantes diretamente: o chamador monta um
PipelineConfig (PipelineConfig.from_env()) e passa explicitamente.
"""
from __future__ import annotations

import os
import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


def _env_list(name: str, default: str) -> List[str]:
    return [p.strip() for p in os.environ.get(name, default).split(",") if p.strip()]


def default_worker_count(cap: int = 8) -> int:
    """Workers derivados dos cores disponiveis, com teto."""
    cores = os.cpu_count() or 1
    return max(1, min(cap, cores))


# ─── HTTP / fonte ──────────────────────────────────────────────────
SGG_BASE_URL = os.environ.get("SGG_BASE_URL", "https://sgg.gouv.bj/doc")
HTTP_TIMEOUT_SECONDS = int(os.environ.get("HTTP_TIMEOUT_SECONDS", "30"))
HTTP_USER_AGENT = os.environ.get("HTTP_USER_AGENT", "sgglaw/1.0 (+https://sgg.gouv.bj)")
DOC_TYPES = _env_list("SGG_DOC_TYPES", "loi,decret")

# ─── Scan ──────────────────────────────────────────────────────────
SCAN_MAX_NUMBER_PER_YEAR = int(os.environ.get("SCAN_MAX_NUMBER_PER_YEAR", "2000"))
SCAN_FLOOR_YEAR = int(os.environ.get("SCAN_FLOOR_YEAR", "1960"))
SCAN_CURSOR_SAVE_EVERY = int(os.environ.get("SCAN_CURSOR_SAVE_EVERY", "100"))
SCAN_MAX_ITEMS = int(os.environ.get("SCAN_MAX_ITEMS", "500"))

# ─── Rate limit (backoff limitado, nunca infinito) ────────────────
RATE_LIMIT_MAX_RETRIES = int(os.environ.get("RATE_LIMIT_MAX_RETRIES", "3"))
RATE_LIMIT_BASE_DELAY_SECONDS = float(os.environ.get("RATE_LIMIT_BASE_DELAY_SECONDS", "2.0"))

# ─── Workers ───────────────────────────────────────────────────────
PIPELINE_WORKERS = int(os.environ.get("PIPELINE_WORKERS", "0")) or default_worker_count()

# ─── Storage ───────────────────────────────────────────────────────
SGG_DATA_DIR = os.environ.get("SGG_DATA_DIR", "data")
POSTGRES_CONNSTR = os.environ.get("POSTGRES_CONNSTR", "")

# ─── OCR ───────────────────────────────────────────────────────────
OCR_LANGUAGE = os.environ.get("OCR_LANGUAGE", "fra")
TESSERACT_CMD = os.environ.get("TESSERACT_CMD", "")

# ─── Extracao / qualidade ─────────────────────────────────────────
EXTRACTION_MIN_CONFIDENCE = float(os.environ.get("EXTRACTION_MIN_CONFIDENCE", "0.5"))
QUALITY_LOW_CONFIDENCE = float(os.environ.get("QUALITY_LOW_CONFIDENCE", "0.3"))
QUALITY_HIGH_UNRECOGNIZED_RATE = float(os.environ.get("QUALITY_HIGH_UNRECOGNIZED_RATE", "0.5"))

# ─── IA ────────────────────────────────────────────────────────────
OLLAMA_URL = os.environ.get("OLLAMA_URL", "http://localhost:11434")
OLLAMA_MODEL = os.environ.get("OLLAMA_MODEL", "")
GROQ_API_KEY = os.environ.get("GROQ_API_KEY", "")
GROQ_MODEL = os.environ.get("GROQ_MODEL", "llama-3.3-70b-versatile")
AI_TEMPERATURE = float(os.environ.get("AI_TEMPERATURE", "0.1"))
AI_MAX_TOKENS = int(os.environ.get("AI_MAX_TOKENS", "4000"))
AI_CHUNK_SIZE = int(os.environ.get("AI_CHUNK_SIZE", "2000"))
AI_CHUNK_OVERLAP = int(os.environ.get("AI_CHUNK_OVERLAP", "200"))
AI_TIMEOUT_SECONDS = int(os.environ.get("AI_TIMEOUT_SECONDS", "300"))
AI_MAX_RETRIES = int(os.environ.get("AI_MAX_RETRIES", "1"))
AI_PROVIDER_ORDER = _env_list("AI_PROVIDER_ORDER", "ollama,groq")
AI_REFINE_JSON = _env_bool("AI_REFINE_JSON")

# ─── Fixer ─────────────────────────────────────────────────────────
FIX_STUCK_AFTER_HOURS = float(os.environ.get("FIX_STUCK_AFTER_HOURS", "24"))


@dataclass
class PipelineConfig:
    """Configuracao explicita, construida pelo chamador."""
    base_url: str = SGG_BASE_URL
    doc_types: List[str] = field(default_factory=lambda: list(DOC_TYPES))
    http_timeout: int = HTTP_TIMEOUT_SECONDS
    user_agent: str = HTTP_USER_AGENT

    max_number_per_year: int = SCAN_MAX_NUMBER_PER_YEAR
    floor_year: int = SCAN_FLOOR_YEAR
    cursor_save_every: int = SCAN_CURSOR_SAVE_EVERY
    max_items: int = SCAN_MAX_ITEMS

    rate_limit_max_retries: int = RATE_LIMIT_MAX_RETRIES
    rate_limit_base_delay: float = RATE_LIMIT_BASE_DELAY_SECONDS

    workers: int = PIPELINE_WORKERS

    data_dir: str = SGG_DATA_DIR
    postgres_connstr: str = POSTGRES_CONNSTR

    ocr_language: str = OCR_LANGUAGE
    tesseract_cmd: str = TESSERACT_CMD

    min_confidence: float = EXTRACTION_MIN_CONFIDENCE
    low_confidence_threshold: float = QUALITY_LOW_CONFIDENCE
    high_unrecognized_rate: float = QUALITY_HIGH_UNRECOGNIZED_RATE

    ollama_url: str = OLLAMA_URL
    ollama_model: str = OLLAMA_MODEL
    groq_api_key: str = GROQ_API_KEY
    groq_model: str = GROQ_MODEL
    ai_temperature: float = AI_TEMPERATURE
    ai_max_tokens: int = AI_MAX_TOKENS
    ai_chunk_size: int = AI_CHUNK_SIZE
    ai_chunk_overlap: int = AI_CHUNK_OVERLAP
    ai_timeout: int = AI_TIMEOUT_SECONDS
    ai_max_retries: int = AI_MAX_RETRIES
    ai_provider_order: List[str] = field(default_factory=lambda: list(AI_PROVIDER_ORDER))
    ai_refine_json: bool = AI_REFINE_JSON

    stuck_after_hours: float = FIX_STUCK_AFTER_HOURS

    # recursos (None = arquivos embutidos em sgglaw/resources)
    corrections_path: Optional[str] = None
    signatories_path: Optional[str] = None
    dictionary_path: Optional[str] = None
    unrecognized_words_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        return cls()

    def with_overrides(self, **kwargs) -> "PipelineConfig":
        """Copia com campos sobrescritos (ignora valores None)."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})


def validate_config(cfg: PipelineConfig) -> Tuple[bool, str]:
    """
    Valida configuracao antes de uma execucao.
    Returns: (ok: bool, error_message: str)
    """
    if not cfg.doc_types:
        msg = "SGG_DOC_TYPES vazio: nenhum tipo de documento para processar"
        logger.error(msg)
        return False, msg

    current_year = date.today().year
    if cfg.floor_year > current_year:
        msg = f"SCAN_FLOOR_YEAR={cfg.floor_year} posterior ao ano corrente ({current_year})"
        logger.error(msg)
        return False, msg

    if cfg.max_number_per_year < 1:
        msg = f"SCAN_MAX_NUMBER_PER_YEAR invalido: {cfg.max_number_per_year}"
        logger.error(msg)
        return False, msg

    if cfg.ai_chunk_overlap >= cfg.ai_chunk_size:
        msg = (
            f"AI_CHUNK_OVERLAP ({cfg.ai_chunk_overlap}) deve ser menor que "
            f"AI_CHUNK_SIZE ({cfg.ai_chunk_size})"
        )
        logger.error(msg)
        return False, msg

    if cfg.rate_limit_max_retries < 0 or cfg.workers < 1:
        msg = "RATE_LIMIT_MAX_RETRIES >= 0 e PIPELINE_WORKERS >= 1 sao obrigatorios"
        logger.error(msg)
        return False, msg

    unknown = [p for p in cfg.ai_provider_order if p not in ("ollama", "groq")]
    if unknown:
        msg = f"AI_PROVIDER_ORDER invalido: {unknown} (aceitos: ollama, groq)"
        logger.error(msg)
        return False, msg

    logger.info(
        "config: base_url=%s types=%s floor=%d workers=%d providers=%s",
        cfg.base_url, ",".join(cfg.doc_types), cfg.floor_year, cfg.workers,
        ",".join(cfg.ai_provider_order) or "-",
    )
    return True, ""
