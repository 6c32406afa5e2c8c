import io
import logging
import mimetypes
import os
from typing import Any, Callable, Generator

from msdoc2text.exceptions import ExtractionFileFormatNotSupportedError
from msdoc2text.extractors.data_types import ExtractionInterface

logger = logging.getLogger(__name__)

mime_type_mapping = {
    "application/msword": "doc",
}

# mimetypes does not know every Word 97-2003 suffix on all platforms
extension_mapping = {
    ".doc": "doc",
    ".dot": "doc",
}


def _get_extractor(
    file_type: str,
) -> Callable[[io.BytesIO, str | None], Generator[ExtractionInterface, Any, None]]:
    """Return the extractor function for a file type (lazy import)."""
    if file_type == "doc":
        from msdoc2text.extractors.ms_legacy.doc_extractor import read_doc

        return read_doc
    raise RuntimeError(f"No extractor for file type: {file_type}")


def _detect_file_type(path: str) -> str | None:
    path = path.lower()
    mime_type, _ = mimetypes.guess_type(path)
    if mime_type is not None and mime_type in mime_type_mapping:
        return mime_type_mapping[mime_type]
    return extension_mapping.get(os.path.splitext(path)[1])


def is_supported_file(path: str) -> bool:
    """Checks if the path is a supported file"""
    return _detect_file_type(path) is not None


def get_extractor(
    path: str,
) -> Callable[[io.BytesIO, str | None], Generator[ExtractionInterface, Any, None]]:
    """Analyses the path of a file and returns a suited extractor.
       The file MUST not exist (yet). The path or filename alone suffices to return an
       extractor.

    :returns a function of an extractor. All extractors take a file-like object as parameter
    :raises ExtractionFileFormatNotSupportedError: File is not covered by any extractor
    """
    file_type = _detect_file_type(path)
    if file_type is None:
        logger.debug(f"File [{path}] is not supported")
        raise ExtractionFileFormatNotSupportedError(path)
    logger.debug(f"Detected file type: {file_type} for file: {path}")
    return _get_extractor(file_type)
