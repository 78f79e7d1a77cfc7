"""
Normalization helpers shared by both extractors: numeric coercion, status
derivation from reference ranges and de-duplication by test name
"""
import logging
import math
import re
from typing import Any, Iterable, List, Mapping, Optional

from labpanel.models.schemas import Biomarker, BiomarkerStatus

logger = logging.getLogger(__name__)

# 1,200 or 1,234.5
THOUSANDS_COMMA = re.compile(r"[-+]?\d{1,3}(?:,\d{3})+(?:\.\d+)?")
# 1.234,5
THOUSANDS_DOT = re.compile(r"[-+]?\d{1,3}(?:\.\d{3})+,\d+")
# 0,9 or 12,75
DECIMAL_COMMA = re.compile(r"[-+]?\d+,\d{1,2}")


def coerce_number(value: Any) -> Optional[float]:
    """Return value as a finite float, or None when it is missing or not numeric"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = _normalize_separators(value.strip())
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _normalize_separators(value: str) -> Optional[str]:
    """Rewrite thousands separators and decimal commas into a float() literal.

    Any other use of a comma is ambiguous and yields None.
    """
    if "," not in value:
        return value
    if THOUSANDS_COMMA.fullmatch(value):
        return value.replace(",", "")
    if THOUSANDS_DOT.fullmatch(value):
        return value.replace(".", "").replace(",", ".")
    if DECIMAL_COMMA.fullmatch(value):
        return value.replace(",", ".")
    return None


def derive_status(value: float, reference_min: Optional[float], reference_max: Optional[float],
                  reported: Any = None) -> BiomarkerStatus:
    """Classify a value against its reference range.

    A reported "critical" status is kept as-is. When both bounds are known the
    status is derived from them (0 is a valid bound). Otherwise a valid reported
    status is kept, falling back to normal.
    """
    reported_status = _parse_status(reported)
    if reported_status is BiomarkerStatus.CRITICAL:
        return reported_status

    if reference_min is not None and reference_max is not None:
        if value < reference_min:
            return BiomarkerStatus.LOW
        if value > reference_max:
            return BiomarkerStatus.HIGH
        return BiomarkerStatus.NORMAL

    return reported_status or BiomarkerStatus.NORMAL


def _parse_status(reported: Any) -> Optional[BiomarkerStatus]:
    if reported is None:
        return None
    try:
        return BiomarkerStatus(str(reported).strip().lower())
    except ValueError:
        return None


def build_biomarker(raw: Mapping[str, Any], default_category: str = "General") -> Optional[Biomarker]:
    """Build a Biomarker from a loosely typed record (Gemini JSON or a regex match).

    Returns None when the record has no usable name or value.
    """
    name = raw.get("name")
    name = str(name).strip() if name is not None else ""
    value = coerce_number(raw.get("value"))
    if not name or value is None:
        return None

    reference_min = coerce_number(raw.get("referenceMin"))
    reference_max = coerce_number(raw.get("referenceMax"))
    unit = raw.get("unit")
    unit = (str(unit).strip() or None) if unit is not None else None
    category = raw.get("category")
    category = str(category).strip() if category else ""

    return Biomarker(
        name=name,
        value=value,
        unit=unit,
        reference_min=reference_min,
        reference_max=reference_max,
        status=derive_status(value, reference_min, reference_max, raw.get("status")),
        category=category or default_category,
    )


def deduplicate_by_name(biomarkers: Iterable[Biomarker]) -> List[Biomarker]:
    """Keep the first biomarker seen for each exact name, preserving order"""
    seen = set()
    unique = []
    for biomarker in biomarkers:
        if biomarker.name in seen:
            logger.debug(f"Dropping duplicate biomarker: {biomarker.name}")
            continue
        seen.add(biomarker.name)
        unique.append(biomarker)
    return unique
