"""PDF document operations."""

from uniconv.pdf.operations import (
    PdfResult,
    dispatch,
    extract_page,
    images_to_pdf,
    merge_pdfs,
    page_count,
)

__all__ = ["PdfResult", "dispatch", "extract_page", "images_to_pdf", "merge_pdfs", "page_count"]
