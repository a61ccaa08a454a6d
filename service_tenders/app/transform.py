"""
Row shaping for API payloads.

Store rows carry ``Decimal`` budgets, ``datetime`` timestamps and JSON
columns. Payloads must survive a JSON round trip through the cache unchanged,
so everything is reduced to plain JSON types here.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional


TENDER_AMOUNT_FIELDS = ("nilai_pagu", "nilai_hps")
TENDER_DETAIL_JSON_FIELDS = (
    "persyaratan_umum",
    "persyaratan_teknis",
    "persyaratan_kualifikasi",
    "dokumen_pengadaan",
)


def to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def to_json_value(value: Any) -> Any:
    """Reduce a store value to a JSON-native value."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return to_number(value)
    if isinstance(value, Mapping):
        return {str(key): to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    return value


def normalize_json_field(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    return to_json_value(value)


def normalize_tender(row: Mapping[str, Any]) -> Dict[str, Any]:
    tender = {key: to_json_value(value) for key, value in dict(row).items()}
    for name in TENDER_AMOUNT_FIELDS:
        if name in tender:
            tender[name] = to_number(row[name])
    return tender


def normalize_tender_list(rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    return [normalize_tender(row) for row in rows]


def normalize_tender_detail(detail: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    if not detail:
        return None
    shaped = {key: to_json_value(value) for key, value in dict(detail).items()}
    for name in TENDER_DETAIL_JSON_FIELDS:
        shaped[name] = normalize_json_field(detail.get(name))
    return shaped


def normalize_tender_full(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Shape a tender row that carries its authority and detail record."""
    tender = normalize_tender(row)
    tender["tender_details"] = normalize_tender_detail(row.get("tender_details"))
    return tender
