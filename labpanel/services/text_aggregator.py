"""
Per-page OCR and joining of page texts into one document text
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence

from labpanel.exceptions import InsufficientTextError
from labpanel.models.schemas import PAGE_SEPARATOR, DocumentText, RawPage

logger = logging.getLogger(__name__)


def ocr_pages(pages: Sequence[RawPage], ocr: Callable[[bytes], str], batch_size: int = 6) -> List[str]:
    """OCR pages in parallel batches and return texts in page order.

    A page whose OCR call raises contributes an empty string.
    """
    page_texts = []
    total_pages = len(pages)

    for batch_start in range(0, total_pages, batch_size):
        batch = pages[batch_start:batch_start + batch_size]
        batch_num = (batch_start // batch_size) + 1
        total_batches = (total_pages + batch_size - 1) // batch_size
        logger.info(f"OCR batch {batch_num}/{total_batches} ({len(batch)} pages)")

        with ThreadPoolExecutor(max_workers=batch_size) as executor:
            future_to_page = {executor.submit(ocr, page.image_bytes): page.index for page in batch}

            # Completion order is irrelevant, texts are re-sorted by page index below
            for future in as_completed(future_to_page):
                page_idx = future_to_page[future]
                try:
                    text = future.result() or ""
                except Exception as e:
                    logger.error(f"OCR failed for page {page_idx + 1}: {str(e)}")
                    text = ""
                logger.info(f"Page {page_idx + 1} OCR: {len(text)} characters")
                page_texts.append((page_idx, text))

    page_texts.sort(key=lambda x: x[0])
    return [text for _, text in page_texts]


def aggregate_pages(page_texts: Sequence[Optional[str]], separator: str = PAGE_SEPARATOR) -> DocumentText:
    """Join non-empty page texts with the page break marker"""
    pages = [text or "" for text in page_texts]
    full_text = separator.join(text for text in pages if text.strip())
    return DocumentText(pages=pages, full_text=full_text)


def ensure_sufficient_text(document: DocumentText, min_length: int = 20) -> DocumentText:
    if len(document.full_text) < min_length:
        raise InsufficientTextError(
            f"OCR returned insufficient text from all pages "
            f"({len(document.full_text)} characters, need at least {min_length})"
        )
    return document
