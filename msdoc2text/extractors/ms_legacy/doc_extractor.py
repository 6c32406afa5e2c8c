"""
DOC Document Extractor
======================

Extracts plain text and metadata from legacy Microsoft Word .doc files
(Word 97-2003 binary format, stored in an OLE2/CFBF container).

File Format Background
----------------------
The document text lives in the "WordDocument" stream, but not as one
contiguous run. The File Information Block (FIB) at offset 0 of that stream
names the authoritative table stream ("0Table" or "1Table") and the location
of the CLX structure inside it. The CLX holds the piece table, which splits
the logical character stream into pieces. Every piece points to its own
byte range in the WordDocument stream and is either compressed (one byte per
character, Windows-1252 flavoured) or uncompressed (UTF-16LE).

Pipeline:
    1. Open the OLE container via olefile
    2. Parse the FIB from the WordDocument stream
    3. Select the table stream named by the FIB
    4. Parse the CLX and its piece table
    5. Map every piece to a WordDocument byte range (all checked up front)
    6. Decode the pieces in order and concatenate the results

Document Text Regions
---------------------
Character positions are shared by all regions, in this order:
    - ccpText: Main document body
    - ccpFtn: Footnotes
    - ccpHdd: Headers and footers
    - ccpMcr: Unused, skipped
    - ccpAtn: Annotations/comments
    - ccpEdn: Endnotes
Text boxes follow and only appear in the full ``text``.

Dependencies
------------
olefile: https://github.com/decalage2/olefile
    pip install olefile

    Provides:
    - OLE compound document parsing
    - Stream enumeration and reading
    - Metadata extraction from SummaryInformation stream

Known Limitations
-----------------
- Encrypted/password-protected files raise ExtractionFileEncryptedError
- Word 95 and older (different FIB layout) raise MalformedHeaderError
- Tables, styles and embedded objects are not reconstructed; table cell
  marks become spaces
- Single-byte characters outside Windows-1252 are decoded best-effort

Usage
-----
    >>> import io
    >>> from msdoc2text.extractors.ms_legacy.doc_extractor import read_doc
    >>>
    >>> with open("document.doc", "rb") as f:
    ...     for doc in read_doc(io.BytesIO(f.read()), path="document.doc"):
    ...         print(f"Title: {doc.metadata.title}")
    ...         print(f"Main text: {doc.main_text[:200]}...")
"""

import codecs
import datetime
import io
import logging
import re
from dataclasses import dataclass
from typing import Any, Generator, List, Optional

from msdoc2text.exceptions import (
    ExtractionError,
    ExtractionFileEncryptedError,
    LegacyMicrosoftParsingError,
    MalformedHeaderError,
)
from msdoc2text.extractors.data_types import DocContent, DocMetadata
from msdoc2text.extractors.ms_legacy.container import (
    TABLE_0_STREAM,
    TABLE_1_STREAM,
    WORD_DOCUMENT_STREAM,
    DocSource,
    OleContainer,
    StreamContainer,
    StreamSource,
)
from msdoc2text.extractors.ms_legacy.fib import WordFib, parse_fib
from msdoc2text.extractors.ms_legacy.piece_table import (
    PieceRange,
    PieceTable,
    map_piece_ranges,
    parse_clx,
    select_table_stream,
)
from msdoc2text.extractors.ms_legacy.text_decoder import (
    DecoderOptions,
    LegacyByteDecoder,
    decode_piece,
)

logger = logging.getLogger(__name__)


@dataclass
class LoadedDocument:
    """Everything parsed from a container before any text is decoded."""

    fib: WordFib
    word_document: StreamSource
    piece_table: PieceTable
    ranges: List[PieceRange]


def load_document(container: StreamContainer) -> LoadedDocument:
    """
    Parse the FIB and piece table and map every piece to its byte range.

    Raises:
        MalformedHeaderError: No WordDocument stream, or a bad FIB.
        ExtractionFileEncryptedError: The FIB marks the file as encrypted.
        TableStreamMissingError: The selected table stream is absent.
        InvalidPieceTableError: The CLX or piece table is inconsistent.
        PieceRangeOutOfBoundsError: A piece points past the WordDocument stream.
    """
    word_document = container.open_stream(WORD_DOCUMENT_STREAM)
    if word_document is None:
        raise MalformedHeaderError("No WordDocument stream")

    fib = parse_fib(word_document)
    if fib.is_encrypted:
        raise ExtractionFileEncryptedError("DOC is encrypted or password-protected")

    table = select_table_stream(
        container.open_stream(TABLE_0_STREAM),
        container.open_stream(TABLE_1_STREAM),
        fib,
    )
    piece_table = parse_clx(table, fib.fc_clx, fib.lcb_clx)
    ranges = map_piece_ranges(piece_table, word_document.size)
    return LoadedDocument(fib, word_document, piece_table, ranges)


def decode_ranges(
    word_document: StreamSource,
    ranges: List[PieceRange],
    fallback: Optional[LegacyByteDecoder] = None,
) -> str:
    """Decode the given ranges in order and join the results."""
    parts = []
    for piece_range in ranges:
        data = word_document.read_at(piece_range.start, piece_range.length)
        logger.debug(
            f"Piece {piece_range.index}: bytes [{piece_range.start}, {piece_range.end}) "
            f"{'compressed' if piece_range.is_compressed else 'utf-16le'}"
        )
        parts.append(decode_piece(data, piece_range.is_compressed, fallback))
    return "".join(parts)


def extract_text(
    source: StreamContainer | DocSource, options: DecoderOptions | None = None
) -> str:
    """
    Recover the plain text of a .doc file.

    Args:
        source: An already opened container (anything with ``open_stream``),
            or a path, raw bytes or binary file object holding the .doc file.
        options: Decoder settings, defaults to DecoderOptions().

    Returns:
        The decoded text of every piece in piece-table order. Field
        instructions and non-printable control characters are removed.

    Raises:
        ExtractionError: A subclass naming the failure. No partial text is
            returned.
    """
    options = options or DecoderOptions()
    if hasattr(source, "open_stream"):
        return _extract_text(source, options)
    with OleContainer(source) as container:
        return _extract_text(container, options)


def _extract_text(container: StreamContainer, options: DecoderOptions) -> str:
    document = load_document(container)
    text = decode_ranges(
        document.word_document,
        document.ranges,
        LegacyByteDecoder(options.legacy_codec),
    )
    logger.info(
        "Extracted DOC: %d characters, %d pieces", len(text), len(document.ranges)
    )
    return text


def read_doc(
    file_like: io.BytesIO,
    path: str | None = None,
    options: DecoderOptions | None = None,
) -> Generator[DocContent, Any, None]:
    """
    Extract all relevant content from a legacy Word .doc file.

    This function uses a generator pattern for API consistency, even though
    DOC files contain exactly one document.

    Args:
        file_like: BytesIO object containing the complete DOC file data.
            The stream position is reset to the beginning before reading.
        path: Optional filesystem path to the source file. If provided,
            populates file metadata (filename, extension, folder) in the
            returned DocContent.metadata.
        options: Decoder settings, defaults to DecoderOptions().

    Yields:
        DocContent: Single DocContent object with the full text, the text
            regions and metadata.

    Raises:
        ExtractionError: The specific failure; any unexpected error is
            wrapped in LegacyMicrosoftParsingError.
    """
    try:
        file_like.seek(0)
        with _DocReader(file_like, options) as doc:
            document = doc.read()
            document.metadata = doc.get_metadata()
            document.metadata.populate_from_path(path)

            logger.info(
                "Extracted DOC: %d characters, %d words",
                len(document.text),
                document.metadata.num_words or len(document.main_text.split()),
            )

            yield document
    except ExtractionError:
        raise
    except Exception as exc:
        raise LegacyMicrosoftParsingError(
            "Failed to extract DOC file", cause=exc
        ) from exc


class _DocReader:
    """
    Internal reader class producing a DocContent from a .doc file.

    Implements the context manager protocol; the OLE container is opened on
    enter and closed on exit. Results are cached after the first parse.
    """

    def __init__(self, file_like: io.BytesIO, options: DecoderOptions | None = None):
        self.file_like = file_like
        self.options = options or DecoderOptions()
        self.container: Optional[OleContainer] = None
        self._document: Optional[LoadedDocument] = None
        self._content: Optional[DocContent] = None

    def __enter__(self):
        self.container = OleContainer(self.file_like)
        return self

    def __exit__(self, *args):
        if self.container:
            self.container.close()

    def _parse_content(self) -> DocContent:
        if self._content is not None:
            return self._content

        if not self.container:
            raise LegacyMicrosoftParsingError("File not opened")

        document = load_document(self.container)
        fallback = LegacyByteDecoder(self.options.legacy_codec)

        def region_text(cp_start: int, cp_end: int) -> str:
            if cp_end <= cp_start:
                return ""
            clipped = [r.clip(cp_start, cp_end) for r in document.ranges]
            text = decode_ranges(
                document.word_document, [r for r in clipped if r is not None], fallback
            )
            return self._clean_text(text)

        fib = document.fib
        regions = {}
        cp = 0
        for name, ccp in (
            ("main_text", fib.ccp_text),
            ("footnotes", fib.ccp_ftn),
            ("headers_footers", fib.ccp_hdd),
            (None, fib.ccp_mcr),
            ("annotations", fib.ccp_atn),
            ("endnotes", fib.ccp_edn),
        ):
            if name is not None:
                regions[name] = region_text(cp, cp + ccp)
            cp += ccp

        self._document = document
        self._content = DocContent(
            text=decode_ranges(document.word_document, document.ranges, fallback),
            **regions,
        )
        return self._content

    def read(self) -> DocContent:
        return self._parse_content()

    @staticmethod
    def _clean_text(text: str) -> str:
        if not text:
            return ""
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()

    @staticmethod
    def _property_encoding(codepage: Optional[int]) -> str:
        if codepage == 65001 or not codepage:
            return "utf-8"
        if codepage == 1200:
            return "utf-16-le"
        try:
            return codecs.lookup(f"cp{codepage}").name
        except LookupError:
            return "utf-8"

    def get_metadata(self) -> DocMetadata:
        """
        Extract document metadata from the OLE SummaryInformation stream.

        Failures are logged at debug level and yield an empty DocMetadata.
        The FIB language id and piece count are filled in once the document
        has been parsed.
        """
        metadata = DocMetadata()
        if self._document is not None:
            metadata.language_id = self._document.fib.lid
            metadata.piece_count = len(self._document.piece_table)
        if not self.container:
            return metadata
        try:
            m = self.container.get_metadata()
            encoding = self._property_encoding(m.codepage)

            def text(value) -> str:
                if value is None:
                    return ""
                if isinstance(value, bytes):
                    return value.decode(encoding, errors="replace").rstrip("\x00")
                return str(value)

            metadata.title = text(m.title)
            metadata.author = text(m.author)
            metadata.subject = text(m.subject)
            metadata.keywords = text(m.keywords)
            metadata.last_saved_by = text(m.last_saved_by)
            metadata.create_time = (
                m.create_time.isoformat()
                if isinstance(m.create_time, datetime.datetime)
                else ""
            )
            metadata.last_saved_time = (
                m.last_saved_time.isoformat()
                if isinstance(m.last_saved_time, datetime.datetime)
                else ""
            )
            metadata.num_pages = m.num_pages or 0
            metadata.num_words = m.num_words or 0
            metadata.num_chars = m.num_chars or 0
        except Exception as e:
            logger.debug(f"Metadata extraction failed: [{e}]")
        return metadata
