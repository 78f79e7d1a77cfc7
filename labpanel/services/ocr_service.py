"""
Google Cloud Vision OCR adapter
"""
import logging
import time

from google.cloud import vision

logger = logging.getLogger(__name__)


class VisionOCRService:
    def __init__(self, client=None, max_retries: int = 1, retry_delay: float = 1.0):
        self.client = client or vision.ImageAnnotatorClient()
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def detect_text(self, image_bytes: bytes, retry_count: int = 0) -> str:
        """Extract text using Google Vision OCR with retry logic; raises once retries run out"""
        try:
            image = vision.Image(content=image_bytes)
            response = self.client.document_text_detection(image=image)

            if response.error.message:
                raise Exception(f"OCR Error: {response.error.message}")

            return response.full_text_annotation.text if response.full_text_annotation else ""

        except Exception as e:
            if retry_count < self.max_retries:
                time.sleep(self.retry_delay)
                return self.detect_text(image_bytes, retry_count + 1)
            raise Exception(f"OCR extraction failed after {self.max_retries + 1} attempts: {str(e)}")

    def extract_text(self, image_bytes: bytes) -> str:
        """OCR one page; a page that cannot be read contributes no text"""
        try:
            return self.detect_text(image_bytes)
        except Exception as e:
            logger.error(str(e))
            return ""
