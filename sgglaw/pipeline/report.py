# sgglaw/pipeline/report.py
"""
Relatorio do estado do pipeline (contagens, erros, lacunas NOT_FOUND).

Markdown para leitura humana, JSON para automacao.
"""
from __future__ import annotations

from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Dict, List

from sgglaw.models import LegalDocument, ProcessingStatus

# faixas NOT_FOUND consecutivas a partir deste tamanho aparecem no relatorio
NOT_FOUND_RANGE_MIN = 10
MAX_ERRORS_LISTED = 50


def not_found_ranges(docs: List[LegalDocument], min_length: int = NOT_FOUND_RANGE_MIN) -> List[dict]:
    """Sequencias de numeros NOT_FOUND consecutivos por (tipo, ano)."""
    grouped: Dict[tuple, List[int]] = defaultdict(list)
    for d in docs:
        if d.status == ProcessingStatus.NOT_FOUND:
            grouped[(d.doc_type, d.year)].append(d.number)

    ranges = []
    for (doc_type, year), numbers in sorted(grouped.items(), key=lambda kv: (kv[0][0], -kv[0][1])):
        numbers.sort()
        start = prev = numbers[0]
        for n in numbers[1:] + [None]:
            if n is not None and n == prev + 1:
                prev = n
                continue
            if prev - start + 1 >= min_length:
                ranges.append({"type": doc_type, "year": year, "from": start, "to": prev,
                               "count": prev - start + 1})
            if n is not None:
                start = prev = n
    return ranges


def build_status_report(docs: List[LegalDocument]) -> dict:
    by_status = Counter(d.status.value for d in docs)
    by_type: Dict[str, Counter] = defaultdict(Counter)
    for d in docs:
        by_type[d.doc_type][d.status.value] += 1

    errors = [
        {"documentId": d.document_id, "status": d.status.value, "error": d.error_message}
        for d in docs if d.error_message and d.status.value.startswith("FAILED")
    ]
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "total": len(docs),
        "by_status": {s.value: by_status.get(s.value, 0) for s in ProcessingStatus},
        "by_type": {t: dict(c) for t, c in sorted(by_type.items())},
        "errors": errors,
        "not_found_ranges": not_found_ranges(docs),
    }


def generate_report_md(report: dict) -> str:
    """Gera relatorio Markdown e retorna como string."""
    statuses = [s.value for s in ProcessingStatus]
    lines = [
        "# Relatorio pipeline SGG",
        "",
        f"**Data**: {report['timestamp']}",
        f"**Documentos**: {report['total']}",
        "",
        "## Por status",
        "",
        "| Status | Total |",
        "|--------|------:|",
    ]
    for status in statuses:
        count = report["by_status"].get(status, 0)
        if count:
            lines.append(f"| {status} | {count} |")

    if report["by_type"]:
        lines += ["", "## Por tipo", "",
                  "| Tipo | " + " | ".join(statuses) + " |",
                  "|------|" + "|".join("---:" for _ in statuses) + "|"]
        for doc_type, counts in report["by_type"].items():
            lines.append(f"| {doc_type} | " + " | ".join(str(counts.get(s, 0)) for s in statuses) + " |")

    if report["not_found_ranges"]:
        lines += ["", f"## Faixas NOT_FOUND (>= {NOT_FOUND_RANGE_MIN})", ""]
        for r in report["not_found_ranges"]:
            lines.append(f"- {r['type']} {r['year']}: {r['from']}-{r['to']} ({r['count']})")

    if report["errors"]:
        lines += ["", "## Erros", ""]
        for err in report["errors"][:MAX_ERRORS_LISTED]:
            lines.append(f"- **{err['documentId']}** ({err['status']}): {err['error']}")
        hidden = len(report["errors"]) - MAX_ERRORS_LISTED
        if hidden > 0:
            lines.append(f"- ... mais {hidden}")

    lines += ["", "---", "*Gerado por `sgglaw.run report`*"]
    return "\n".join(lines) + "\n"
