"""
Models package for the Lab Panel Extraction API
"""
from .schemas import (
    PAGE_SEPARATOR,
    Biomarker,
    BiomarkerStatus,
    DocumentText,
    ExtractionMethod,
    ExtractionResult,
    ExtractTextRequest,
    LabPanelCreate,
    PatientInfo,
    ProcessingResult,
    RawPage,
)

__all__ = [
    'PAGE_SEPARATOR', 'Biomarker', 'BiomarkerStatus', 'DocumentText', 'ExtractionMethod',
    'ExtractionResult', 'ExtractTextRequest', 'LabPanelCreate', 'PatientInfo',
    'ProcessingResult', 'RawPage',
]
