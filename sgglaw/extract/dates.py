# sgglaw/extract/dates.py
"""Datas em frances ('12 mars 2024', '1er août 2016') → ISO YYYY-MM-DD."""
from __future__ import annotations

import re
from datetime import date
from typing import Optional

FRENCH_MONTHS = {
    "janvier": 1,
    "fevrier": 2, "février": 2,
    "mars": 3,
    "avril": 4,
    "mai": 5,
    "juin": 6,
    "juillet": 7,
    "aout": 8, "août": 8,
    "septembre": 9,
    "octobre": 10,
    "novembre": 11,
    "decembre": 12, "décembre": 12,
}

MONTH_ALTERNATION = "|".join(sorted(FRENCH_MONTHS, key=len, reverse=True))

# grupos: (1) dia, (2) 'er', (3) mes, (4) ano
RE_FRENCH_DATE = re.compile(
    rf"\b(\d{{1,2}})(er)?\s+({MONTH_ALTERNATION})\s+(\d{{4}})\b",
    re.IGNORECASE,
)


def to_iso(day: int, month_name: str, year: int) -> Optional[str]:
    month = FRENCH_MONTHS.get(month_name.lower())
    if month is None:
        return None
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_french_date(text: Optional[str]) -> Optional[str]:
    """Primeira data francesa valida no texto, em ISO; None se nenhuma."""
    if not text:
        return None
    for m in RE_FRENCH_DATE.finditer(text):
        iso = to_iso(int(m.group(1)), m.group(3), int(m.group(4)))
        if iso:
            return iso
    return None
