"""
msdoc2text: Plain text extraction for legacy Microsoft Word (.doc) files.

Reads Word 97-2003 binary documents by following the piece table, so text is
recovered in logical order with field instructions and control characters
removed.
"""

import io
from pathlib import Path
from typing import Any, Generator

from msdoc2text.extractors.data_types import DocContent, DocMetadata
from msdoc2text.extractors.ms_legacy.doc_extractor import extract_text
from msdoc2text.extractors.ms_legacy.text_decoder import DecoderOptions
from msdoc2text.router import get_extractor, is_supported_file

__version__ = "0.1.0"


def read_doc(
    file_like: io.BytesIO,
    path: str | None = None,
    options: DecoderOptions | None = None,
) -> Generator[DocContent, Any, None]:
    """Extract content from a DOC file."""
    from msdoc2text.extractors.ms_legacy.doc_extractor import read_doc as _read_doc

    return _read_doc(file_like, path, options)


def read_file(
    path: str | Path,
    options: DecoderOptions | None = None,
) -> Generator[DocContent, Any, None]:
    """
    Read and extract content from a file.

    Detects the file type based on the file name and uses the matching
    extractor.

    Raises:
        ExtractionFileFormatNotSupportedError: If the file type is not supported.
        FileNotFoundError: If the file does not exist.

    Example:
        >>> import msdoc2text
        >>> for result in msdoc2text.read_file("document.doc"):
        ...     print(result.get_full_text())
    """
    path = Path(path)
    extractor = get_extractor(str(path))
    with open(path, "rb") as f:
        yield from extractor(io.BytesIO(f.read()), str(path), options)


__all__ = [
    # Version
    "__version__",
    # Main functions
    "extract_text",
    "read_file",
    "read_doc",
    "is_supported_file",
    "get_extractor",
    # Types
    "DecoderOptions",
    "DocContent",
    "DocMetadata",
]
