"""
Services package for the Lab Panel Extraction API
"""
from .database_service import DatabaseService
from .gemini_service import GeminiService
from .ocr_service import VisionOCRService
from .pattern_extractor import PatternExtractor
from .processing_service import ProcessingService
from .rasterizer import PdfRasterizer

__all__ = [
    'DatabaseService', 'GeminiService', 'VisionOCRService', 'PatternExtractor',
    'ProcessingService', 'PdfRasterizer',
]
