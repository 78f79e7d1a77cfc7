"""
Pydantic models for the Lab Panel Extraction API
"""
import math
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PAGE_SEPARATOR = "\n\n--- PAGE BREAK ---\n\n"
ALLOWED_GENDERS = ("male", "female", "other", "prefer_not_to_say")


class BiomarkerStatus(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    LOW = "low"
    CRITICAL = "critical"


class ExtractionMethod(str, Enum):
    AI = "ai"
    PATTERN_FALLBACK = "pattern-fallback"

    @property
    def api_label(self) -> str:
        """Name reported to API callers"""
        return "ai" if self is ExtractionMethod.AI else "pattern-matching"


class RawPage(BaseModel):
    """One rendered PDF page, consumed once by the OCR adapter"""
    index: int
    image_bytes: bytes


class DocumentText(BaseModel):
    """Per-page OCR text plus the joined document text"""
    model_config = ConfigDict(frozen=True)

    pages: List[str]
    full_text: str


class PatientInfo(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    date_of_birth: Optional[str] = Field(default=None, alias="dateOfBirth")
    gender: Optional[str] = None

    @field_validator("first_name", "last_name", "date_of_birth", "gender", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("gender")
    @classmethod
    def normalize_gender(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.lower()
        return value if value in ALLOWED_GENDERS else None

    def is_empty(self) -> bool:
        return all(
            field is None
            for field in (self.first_name, self.last_name, self.date_of_birth, self.gender)
        )


class Biomarker(BaseModel):
    """A single test result ready for persistence"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    value: float
    unit: Optional[str] = None
    reference_min: Optional[float] = Field(default=None, alias="referenceMin")
    reference_max: Optional[float] = Field(default=None, alias="referenceMax")
    status: BiomarkerStatus = BiomarkerStatus.NORMAL
    category: str = "General"

    @field_validator("value")
    @classmethod
    def value_must_be_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("biomarker value must be a finite number")
        return value


class ExtractionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    patient: PatientInfo = Field(default_factory=PatientInfo)
    biomarkers: List[Biomarker]
    method: ExtractionMethod


class LabPanelCreate(BaseModel):
    """Panel metadata supplied with an upload"""
    user_id: str
    panel_name: str = "Lab Report"
    lab_provider: Optional[str] = None
    collection_date: date = Field(default_factory=date.today)
    source_path: Optional[str] = None


class ExtractTextRequest(BaseModel):
    text: str


class ProcessingResult(BaseModel):
    """Response returned to API callers for one document.

    Each biomarker entry uses the Biomarker aliases (name, value, unit,
    referenceMin, referenceMax, status, category). Stored entries also carry
    their database id.
    """
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    biomarkers: List[Dict[str, Any]] = Field(default_factory=list)
    patient: Dict[str, Any] = Field(default_factory=dict)
    extraction_method: Optional[str] = Field(default=None, alias="extractionMethod")
    panel_id: Optional[int] = Field(default=None, alias="panelId")
    error: Optional[str] = None
    pages_processed: int = Field(default=0, alias="pagesProcessed")
    total_text_length: int = Field(default=0, alias="totalTextLength")
    raw_text_preview: str = Field(default="", alias="rawTextPreview")
