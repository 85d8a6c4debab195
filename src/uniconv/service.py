"""Caller-facing conversion surface."""

import logging
from typing import Sequence

from uniconv.config.schema import ConverterSettings
from uniconv.core.options import ConversionOptions, QualityLevel
from uniconv.engine.invoker import ConversionResult, EngineInvoker
from uniconv.io.formats import is_supported_conversion, list_supported_formats
from uniconv.pdf import operations as pdf
from uniconv.pipeline import convert, gif
from uniconv.usage import UsageCounter, UsageSnapshot

logger = logging.getLogger(__name__)


class Converter:
    """Media and document conversions behind one object.

    Args:
        invoker: Engine invoker (built from settings when omitted)
        settings: Converter settings, used when ``invoker`` is omitted
        usage: Usage counter; a fresh one is created when omitted
    """

    def __init__(
        self,
        invoker: EngineInvoker | None = None,
        settings: ConverterSettings | None = None,
        usage: UsageCounter | None = None,
    ):
        if invoker is None:
            invoker = EngineInvoker.from_settings(settings or ConverterSettings())
        self.invoker = invoker
        self.usage = usage or UsageCounter()

    @property
    def settings(self) -> ConverterSettings:
        return self.invoker.settings

    def close(self) -> None:
        """Close the underlying invoker and its engines."""
        self.invoker.close()

    def __enter__(self) -> "Converter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def convert_media(
        self,
        data: bytes,
        input_ext: str,
        output_ext: str | None = None,
        options: ConversionOptions | dict | None = None,
    ) -> ConversionResult:
        """Convert video, audio or image bytes.

        Raises:
            ConversionError: Validation or engine failure
        """
        result = convert.convert_media(self.invoker, data, input_ext, output_ext, options)
        self.usage.record(len(data))
        return result

    def images_to_gif(
        self,
        images: Sequence[bytes],
        fps: int | None = None,
        quality: QualityLevel | str | None = None,
        size: str | None = None,
    ) -> ConversionResult:
        result = gif.images_to_gif(self.invoker, images, fps, quality, size)
        self.usage.record(sum(len(image) for image in images))
        return result

    def convert_document_images(self, images: Sequence[bytes]) -> bytes:
        return pdf.images_to_pdf(images)

    def merge_documents(self, documents: Sequence[bytes]) -> bytes:
        return pdf.merge_pdfs(documents)

    def extract_page(self, document: bytes, page_number: int) -> bytes:
        return pdf.extract_page(document, page_number)

    def pdf_operation(
        self, operation: str, files: Sequence[bytes], page: int | None = None
    ) -> pdf.PdfResult:
        return pdf.dispatch(operation, files, page)

    @staticmethod
    def list_supported_formats() -> dict[str, dict[str, list[str]]]:
        return list_supported_formats()

    @staticmethod
    def check_conversion_supported(input_ext: str, output_ext: str) -> bool:
        return is_supported_conversion(input_ext, output_ext)

    def usage_snapshot(self) -> UsageSnapshot:
        return self.usage.snapshot()
