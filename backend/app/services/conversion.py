"""
Conversion pipeline: uploaded bytes -> IntermediateDocument -> output file.

Transport-free so it can be called directly from tests or scripts.
"""

import logging
import time

from app.services.extractor import extract_document
from app.services.renderer import RenderedFile, TargetFormat, render

logger = logging.getLogger(__name__)


def convert_document(content: bytes, filename: str, target_format: str) -> RenderedFile:
    """
    Convert an uploaded file to the requested format.

    The target format is validated before any extraction work is done.

    Raises:
        UnsupportedFormatError: target_format is not one of TargetFormat.
        RenderError: the output document could not be produced.
    """
    fmt = TargetFormat.parse(target_format)

    started = time.perf_counter()
    document = extract_document(content, filename)
    result = render(document, fmt, filename)
    elapsed_ms = (time.perf_counter() - started) * 1000

    logger.info(
        "Converted %s -> %s (%d bytes in, %d bytes out, %.0f ms)",
        filename, fmt.value, len(content), len(result.content), elapsed_ms,
    )
    return result
