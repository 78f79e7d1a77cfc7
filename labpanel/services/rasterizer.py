"""
PDF page rendering for OCR
"""
import io
import logging
from typing import List

import pdf2image
from PIL import Image

from labpanel.models.schemas import RawPage

logger = logging.getLogger(__name__)


def resize_image(image: Image.Image, max_size: int = 1920) -> Image.Image:
    """Resize image while preserving aspect ratio"""
    width, height = image.size
    if max(width, height) <= max_size:
        return image

    aspect_ratio = width / height
    if width > height:
        new_width = max_size
        new_height = int(max_size / aspect_ratio)
    else:
        new_height = max_size
        new_width = int(max_size * aspect_ratio)

    return image.resize((new_width, new_height), Image.LANCZOS)


def convert_to_jpeg_bytes(image: Image.Image) -> bytes:
    """Convert PIL image to JPEG bytes"""
    img_byte_arr = io.BytesIO()
    if image.mode in ("RGBA", "P"):
        image = image.convert("RGB")
    image.save(img_byte_arr, format='JPEG', quality=95)
    return img_byte_arr.getvalue()


class PdfRasterizer:
    def __init__(self, max_pdf_pages: int = 100, dpi: int = 200):
        self.max_pdf_pages = max_pdf_pages
        self.dpi = dpi

    def convert_pdf_to_pages(self, file_path: str) -> List[RawPage]:
        """Render every PDF page to JPEG bytes, in document order"""
        try:
            images = pdf2image.convert_from_path(file_path, dpi=self.dpi)
        except Exception as e:
            logger.error(f"Error converting PDF: {str(e)}")
            raise

        if len(images) > self.max_pdf_pages:
            logger.warning(f"PDF has {len(images)} pages. Limiting to {self.max_pdf_pages}")
            images = images[:self.max_pdf_pages]

        pages = [
            RawPage(index=i, image_bytes=convert_to_jpeg_bytes(resize_image(img)))
            for i, img in enumerate(images)
        ]
        logger.info(f"Converted PDF to {len(pages)} page images")
        return pages
