"""
Regex fallback used when Gemini cannot return biomarkers.

Every template is applied to every line of the OCR text; matches are filtered
for obvious noise and de-duplicated by test name, first match wins.
"""
import logging
import re
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from labpanel.exceptions import FallbackExtractionError
from labpanel.models.schemas import Biomarker, ExtractionMethod, ExtractionResult, PatientInfo
from labpanel.services.normalizer import build_biomarker, deduplicate_by_name

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 50


@dataclass(frozen=True)
class PatternTemplate:
    """A lab report line layout.

    The regex must define the named groups name, value and unit; min and max
    are optional.
    """
    name: str
    regex: re.Pattern


DEFAULT_TEMPLATES = (
    # Glucose: 95 mg/dL (70-100)
    PatternTemplate(
        "colon",
        re.compile(
            r"(?P<name>[A-Za-z][A-Za-z\s\-()]+?):\s*(?P<value>[\d.]+)\s*(?P<unit>[a-zA-Z/%]+)"
            r"(?:\s*\(?(?P<min>[\d.]+)\s*-\s*(?P<max>[\d.]+)\)?)?"
        ),
    ),
    # Hemoglobin    14.2   g/dL   13.5-17.5
    PatternTemplate(
        "columns",
        re.compile(
            r"(?P<name>[A-Za-z][A-Za-z\s\-()]+?)\s{2,}(?P<value>[\d.]+)\s+(?P<unit>[a-zA-Z/%]+)"
            r"\s+(?P<min>[\d.]+)\s*-\s*(?P<max>[\d.]+)"
        ),
    ),
    # Ferritin 85 ng/mL
    PatternTemplate(
        "bare",
        re.compile(
            r"(?P<name>[A-Za-z][A-Za-z\s\-()]{3,40})\s+(?P<value>[\d.]+)\s+(?P<unit>[a-zA-Z/%]{1,10})(?=\s|$)"
        ),
    ),
)


class PatternExtractor:
    def __init__(self, templates: Sequence[PatternTemplate] = DEFAULT_TEMPLATES):
        self.templates = list(templates)

    def extract(self, text: str) -> ExtractionResult:
        """Recover biomarkers from raw OCR text. Patient details are never recovered here."""
        biomarkers = deduplicate_by_name(self._scan(text))

        if not biomarkers:
            raise FallbackExtractionError("Pattern matching found no biomarkers in the OCR text")

        logger.info(f"Fallback extracted {len(biomarkers)} biomarkers")
        return ExtractionResult(
            patient=PatientInfo(),
            biomarkers=biomarkers,
            method=ExtractionMethod.PATTERN_FALLBACK,
        )

    def _scan(self, text: str) -> Iterator[Biomarker]:
        for line in text.splitlines():
            for template in self.templates:
                for match in template.regex.finditer(line):
                    biomarker = self._to_biomarker(match)
                    if biomarker is not None:
                        yield biomarker

    @staticmethod
    def _to_biomarker(match: re.Match) -> Optional[Biomarker]:
        groups = match.groupdict()
        name = (groups.get("name") or "").strip()
        value = groups.get("value")
        unit = (groups.get("unit") or "").strip()

        if not (MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH) or not value or not unit:
            return None

        return build_biomarker({
            "name": name,
            "value": value,
            "unit": unit,
            "referenceMin": groups.get("min"),
            "referenceMax": groups.get("max"),
        })
