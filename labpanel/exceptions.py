"""
Exceptions raised by the lab report extraction pipeline
"""
from typing import Optional


class LabPanelError(Exception):
    """Base class for every failure surfaced to API callers"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


class InsufficientTextError(LabPanelError):
    """OCR produced too little text to attempt any extraction"""


class PrimaryExtractionError(LabPanelError):
    """Gemini extraction failed; recovered by the pattern fallback"""


class FallbackExtractionError(LabPanelError):
    """Pattern matching found no biomarkers after the primary extractor failed"""

    def __init__(self, message: str, primary_error: Optional[PrimaryExtractionError] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.primary_error = primary_error


class PersistenceError(LabPanelError):
    """Writing the lab panel or its biomarkers to the database failed"""
