# sgglaw/ai/chunking.py
"""
Chunking de conteudo para chamadas de modelo.

Texto:  paragrafos → linhas → corte por caracteres, com overlap do final
        do chunk anterior no inicio do proximo. Nenhum chunk passa de max_chars.
JSON:   particiona o array 'articles' por tamanho serializado, copiando os
        demais campos (metadados) em todos os chunks.
"""
from __future__ import annotations

import copy
import json
import logging
from typing import Any, Dict, List, Tuple

logger = logging.getLogger(__name__)

PARAGRAPH_SEP = "\n\n"
LINE_SEP = "\n"


def needs_chunking(text: str, max_chars: int) -> bool:
    return len(text or "") > max_chars


def _units(text: str, limit: int) -> List[Tuple[str, str]]:
    """(separador que precede a unidade, unidade); cada unidade <= limit."""
    units: List[Tuple[str, str]] = []
    for para in text.split(PARAGRAPH_SEP):
        if len(para) <= limit:
            units.append((PARAGRAPH_SEP, para))
            continue
        sep = PARAGRAPH_SEP
        for line in para.split(LINE_SEP):
            if len(line) <= limit:
                units.append((sep, line))
            else:
                for i in range(0, len(line), limit):
                    units.append((sep if i == 0 else "", line[i:i + limit]))
            sep = LINE_SEP
    return units


def chunk_text(text: str, max_chars: int, overlap: int = 0) -> List[str]:
    """
    Divide texto em chunks <= max_chars.

    Os ultimos `overlap` caracteres de um chunk repetem no inicio do seguinte.
    """
    if not text:
        return []
    if max_chars < 1:
        raise ValueError("max_chars deve ser >= 1")
    overlap = max(0, min(overlap, max_chars - 1))
    if not needs_chunking(text, max_chars):
        return [text]

    limit = max(1, max_chars - overlap - len(PARAGRAPH_SEP))
    chunks: List[str] = []
    current = ""
    for sep, unit in _units(text, limit):
        candidate = current + sep + unit if current else unit
        if len(candidate) <= max_chars:
            current = candidate
            continue
        chunks.append(current)
        tail = current[-overlap:] if overlap else ""
        current = tail + sep + unit if tail else unit
    if current:
        chunks.append(current)

    logger.debug("chunk_text: %d chars → %d chunk(s) (max=%d, overlap=%d)",
                 len(text), len(chunks), max_chars, overlap)
    return chunks


def combine_text(parts: List[str]) -> str:
    """Concatenacao ordenada; o overlap nao e removido."""
    return LINE_SEP.join(p for p in parts if p)


# ── JSON ─────────────────────────────────────────────────────────────────────

def _size(obj: Any) -> int:
    return len(json.dumps(obj, ensure_ascii=False))


def chunk_json(data: Dict[str, Any], max_chars: int) -> List[Dict[str, Any]]:
    """
    Particiona data['articles'] por tamanho acumulado.

    Um artigo maior que o limite sozinho vira um chunk proprio (nunca e cortado).
    """
    articles = list(data.get("articles") or [])
    meta = {k: v for k, v in data.items() if k != "articles"}
    if not articles:
        return [dict(copy.deepcopy(meta), articles=[])]

    budget = max(1, max_chars - _size(dict(meta, articles=[])))
    batches: List[List[Any]] = []
    current: List[Any] = []
    used = 0
    for article in articles:
        size = _size(article) + 1
        if current and used + size > budget:
            batches.append(current)
            current, used = [], 0
        current.append(article)
        used += size
    if current:
        batches.append(current)

    return [dict(copy.deepcopy(meta), articles=batch) for batch in batches]


def combine_json(chunks: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Metadados do primeiro chunk + articles concatenados na ordem dos chunks."""
    if not chunks:
        return {"articles": []}
    merged = {k: copy.deepcopy(v) for k, v in chunks[0].items() if k != "articles"}
    merged["articles"] = [a for c in chunks for a in (c.get("articles") or [])]
    return merged
