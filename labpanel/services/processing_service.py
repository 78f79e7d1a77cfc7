"""
Lab report processing pipeline: OCR, Gemini extraction with a regex fallback,
then a single write of the panel and its biomarkers
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional

from labpanel.exceptions import FallbackExtractionError, LabPanelError, PrimaryExtractionError
from labpanel.models.schemas import DocumentText, ExtractionResult, LabPanelCreate, ProcessingResult
from labpanel.services.pattern_extractor import PatternExtractor
from labpanel.services.text_aggregator import aggregate_pages, ensure_sufficient_text, ocr_pages

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 500


class PipelineState(str, Enum):
    AGGREGATING = "aggregating"
    EXTRACTING_PRIMARY = "extracting_primary"
    EXTRACTING_FALLBACK = "extracting_fallback"
    DONE = "done"
    FAILED = "failed"


class ProcessingService:
    def __init__(self, extractor, fallback_extractor=None, ocr_service=None, rasterizer=None,
                 db_service=None, batch_size: int = 6, min_text_length: int = 20):
        self.extractor = extractor
        self.fallback_extractor = fallback_extractor or PatternExtractor()
        self.ocr_service = ocr_service
        self.rasterizer = rasterizer
        self.db_service = db_service
        self.batch_size = batch_size
        self.min_text_length = min_text_length

    def ocr_document(self, file_path: str) -> DocumentText:
        """Render the PDF and OCR every page, keeping page order"""
        pages = self.rasterizer.convert_pdf_to_pages(file_path)
        page_texts = ocr_pages(pages, self.ocr_service.extract_text, self.batch_size)
        document = aggregate_pages(page_texts)
        logger.info(f"Total OCR text length: {len(document.full_text)} characters")
        return document

    def extract(self, document: DocumentText) -> ExtractionResult:
        """Run Gemini extraction, falling back to pattern matching at most once"""
        logger.info(f"Pipeline state: {PipelineState.AGGREGATING.value}")
        ensure_sufficient_text(document, self.min_text_length)
        text = document.full_text

        logger.info(f"Pipeline state: {PipelineState.EXTRACTING_PRIMARY.value}")
        try:
            result = self.extractor.extract(text)
            logger.info(f"Pipeline state: {PipelineState.DONE.value} ({len(result.biomarkers)} biomarkers via AI)")
            return result
        except PrimaryExtractionError as primary_error:
            logger.warning(f"Gemini failed, using fallback pattern matching: {str(primary_error)}")
            failure = primary_error

        logger.info(f"Pipeline state: {PipelineState.EXTRACTING_FALLBACK.value}")
        try:
            result = self.fallback_extractor.extract(text)
        except FallbackExtractionError as fallback_error:
            logger.error(f"Pipeline state: {PipelineState.FAILED.value}: {str(fallback_error)}")
            raise FallbackExtractionError(
                "Both Gemini and fallback failed to extract biomarkers",
                primary_error=failure,
                cause=fallback_error,
            ) from failure

        logger.info(f"Pipeline state: {PipelineState.DONE.value} ({len(result.biomarkers)} biomarkers via patterns)")
        return result

    async def process_pdf(self, file_path: str, panel: LabPanelCreate) -> ProcessingResult:
        """Process an uploaded PDF end to end and persist the result"""
        logger.info(f"Starting OCR process for user: {panel.user_id}")
        document = await asyncio.to_thread(self.ocr_document, file_path)
        return await self._process_document(document, panel)

    async def process_text(self, text: str, panel: Optional[LabPanelCreate] = None) -> ProcessingResult:
        """Process already extracted text; persisted only when panel metadata is given"""
        return await self._process_document(aggregate_pages([text]), panel)

    async def _process_document(self, document: DocumentText,
                                panel: Optional[LabPanelCreate]) -> ProcessingResult:
        try:
            result = await asyncio.to_thread(self.extract, document)

            panel_id, rows = None, None
            if panel is not None and self.db_service is not None:
                panel_id, rows = await self.db_service.save_lab_panel(panel, result)

        except LabPanelError as e:
            logger.error(f"Lab report processing failed: {str(e)}")
            return ProcessingResult(
                success=False,
                error=str(e),
                pages_processed=_count_pages(document),
                total_text_length=len(document.full_text),
            )

        return build_success_result(result, document, panel_id, rows)


def _count_pages(document: DocumentText) -> int:
    return sum(1 for text in document.pages if text.strip())


def biomarker_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Map a stored biomarkers row onto the camelCase shape used in API responses"""
    return {
        "id": row["id"],
        "name": row["marker_name"],
        "value": row["value"],
        "unit": row["unit"],
        "referenceMin": row["reference_range_min"],
        "referenceMax": row["reference_range_max"],
        "status": row["status"],
        "category": row["marker_category"],
    }


def build_success_result(result: ExtractionResult, document: DocumentText,
                         panel_id: Optional[int] = None, rows=None) -> ProcessingResult:
    if rows is None:
        biomarkers = [biomarker.model_dump(by_alias=True, mode="json") for biomarker in result.biomarkers]
    else:
        biomarkers = [biomarker_from_row(row) for row in rows]

    return ProcessingResult(
        success=True,
        biomarkers=biomarkers,
        patient=result.patient.model_dump(by_alias=True, exclude_none=True),
        extraction_method=result.method.api_label,
        panel_id=panel_id,
        pages_processed=_count_pages(document),
        total_text_length=len(document.full_text),
        raw_text_preview=document.full_text[:PREVIEW_CHARS],
    )
