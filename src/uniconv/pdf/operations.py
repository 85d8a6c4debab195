"""PDF operations: images to PDF, merge, single-page extraction."""

import io
import logging
from dataclasses import dataclass
from typing import Sequence

from PIL import Image, UnidentifiedImageError
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError

from uniconv.core.errors import CorruptInput, InvalidOption, UnsupportedFormat

logger = logging.getLogger(__name__)

PDF_IMAGE_FORMATS = ("JPEG", "PNG")
UNSUPPORTED_IMAGE_MESSAGE = "Unsupported image format (JPG, PNG only)"
INVALID_PAGE_MESSAGE = "Invalid page number"

# Pillow writes pages at this resolution; 72 dpi maps one pixel to one point.
POINTS_PER_INCH = 72.0


@dataclass
class PdfResult:
    """Output of a dispatched PDF operation."""

    data: bytes
    filename: str

    @property
    def size(self) -> int:
        return len(self.data)


def _open_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise UnsupportedFormat(UNSUPPORTED_IMAGE_MESSAGE, detail=str(e)) from e
    if img.format not in PDF_IMAGE_FORMATS:
        raise UnsupportedFormat(UNSUPPORTED_IMAGE_MESSAGE, detail=f"got {img.format}")
    return img


def _read_pdf(data: bytes) -> PdfReader:
    try:
        reader = PdfReader(io.BytesIO(data))
        # Force page tree parsing so broken files fail here
        len(reader.pages)
    except PdfReadError as e:
        raise CorruptInput("Could not read PDF", detail=str(e)) from e
    return reader


def _write(writer: PdfWriter) -> bytes:
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


def images_to_pdf(images: Sequence[bytes]) -> bytes:
    """Build a PDF with one page per image, each page sized to its image.

    Args:
        images: JPEG or PNG bytes, in page order

    Returns:
        PDF bytes

    Raises:
        InvalidOption: No images given
        UnsupportedFormat: An image is not JPEG or PNG
    """
    if not images:
        raise InvalidOption("At least one image is required")

    pages = []
    for data in images:
        img = _open_image(data)
        pages.append(img.convert("RGB") if img.mode != "RGB" else img)

    buf = io.BytesIO()
    pages[0].save(
        buf,
        "PDF",
        resolution=POINTS_PER_INCH,
        save_all=True,
        append_images=pages[1:],
    )
    logger.info("Built PDF from %d images", len(pages))
    return buf.getvalue()


def merge_pdfs(documents: Sequence[bytes]) -> bytes:
    """Concatenate the pages of several PDFs in input order.

    Raises:
        InvalidOption: No documents given
        CorruptInput: A document could not be parsed
    """
    if not documents:
        raise InvalidOption("At least one PDF is required")

    writer = PdfWriter()
    for data in documents:
        for page in _read_pdf(data).pages:
            writer.add_page(page)
    logger.info("Merged %d PDFs into %d pages", len(documents), len(writer.pages))
    return _write(writer)


def page_count(data: bytes) -> int:
    return len(_read_pdf(data).pages)


def extract_page(data: bytes, page_number: int) -> bytes:
    """Copy one page into a new single-page document.

    Args:
        data: Source PDF bytes
        page_number: 1-based page number

    Raises:
        InvalidOption: Page number out of range
        CorruptInput: Source could not be parsed
    """
    reader = _read_pdf(data)
    total = len(reader.pages)
    if isinstance(page_number, bool) or not isinstance(page_number, int):
        raise InvalidOption(INVALID_PAGE_MESSAGE, detail=f"page {page_number!r}")
    if page_number < 1 or page_number > total:
        raise InvalidOption(INVALID_PAGE_MESSAGE, detail=f"page {page_number} of {total}")

    writer = PdfWriter()
    writer.add_page(reader.pages[page_number - 1])
    return _write(writer)


OPERATIONS = ("images", "merge", "extract")
OPERATION_ALIASES = {"split": "extract"}


def dispatch(operation: str, files: Sequence[bytes], page: int | None = None) -> PdfResult:
    """Run a named PDF operation.

    Args:
        operation: 'images', 'merge', or 'extract' ('split' is accepted too)
        files: Input files; images for 'images', PDFs otherwise
        page: 1-based page number for 'extract' (default 1)

    Returns:
        PdfResult with the document and a suggested download filename

    Raises:
        InvalidOption: Unknown operation or wrong number of files
    """
    op = OPERATION_ALIASES.get(operation, operation)
    if op not in OPERATIONS:
        raise InvalidOption(f"Unknown PDF operation: '{operation}'")
    if not files:
        raise InvalidOption("No files uploaded")

    if op == "images":
        return PdfResult(images_to_pdf(files), "converted.pdf")

    if op == "merge":
        if len(files) < 2:
            raise InvalidOption("Merging needs at least two PDFs")
        return PdfResult(merge_pdfs(files), "merged.pdf")

    page = 1 if page is None else page
    return PdfResult(extract_page(files[0], page), f"page-{page}.pdf")
