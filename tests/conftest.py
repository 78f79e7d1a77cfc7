"""Pytest configuration and shared fixtures."""

import pytest

from labpanel.exceptions import PrimaryExtractionError
from labpanel.models.schemas import (
    Biomarker,
    BiomarkerStatus,
    ExtractionMethod,
    ExtractionResult,
    PatientInfo,
)


@pytest.fixture
def scenario_a_text():
    """Colon-delimited report text, one normal and one high result."""
    return "Glucose: 95 mg/dL (70-100)\nCholesterol: 210 mg/dL (125-200)"


@pytest.fixture
def scenario_b_response():
    """Gemini answer with patient details and one HDL result."""
    return (
        '{"patient":{"firstName":"Jane","lastName":"Doe"},'
        '"biomarkers":[{"name":"HDL","value":55,"unit":"mg/dL","referenceMin":40,'
        '"referenceMax":60,"status":"normal","category":"Lipid"}]}'
    )


@pytest.fixture
def ai_result():
    return ExtractionResult(
        patient=PatientInfo(first_name="Jane", last_name="Doe"),
        biomarkers=[
            Biomarker(name="HDL", value=55, unit="mg/dL", reference_min=40, reference_max=60,
                      status=BiomarkerStatus.NORMAL, category="Lipid"),
        ],
        method=ExtractionMethod.AI,
    )


@pytest.fixture
def gemini_down():
    return PrimaryExtractionError("Gemini could not extract biomarkers from the text",
                                  cause=ConnectionError("503 Service Unavailable"))
