"""
Piece text decoding.

Turns the raw bytes of one piece into plain text. Both storage forms share
the same handling of in-band control characters:

    0x13  field begin       opens a field, its instruction text is hidden
    0x14  field separator   the field result follows and is kept
    0x15  field end         closes the innermost field
    0x07  cell/row mark     becomes a single space
    < 0x20                  dropped, except tab, line feed and carriage return

Compressed pieces (one byte per character) map 0x80-0x9F through the
Windows-1252 table, pass ASCII through and hand other high bytes to a
best-effort legacy decoder. Uncompressed pieces hold UTF-16LE code units.

Field state lives for one piece only. A field marker never affects the
next piece.
"""

import codecs
import logging
import struct
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Union

logger = logging.getLogger(__name__)

FIELD_BEGIN = 0x13
FIELD_SEPARATOR = 0x14
FIELD_END = 0x15
CELL_MARK = 0x07
SPACE = 0x20
ALLOWED_CONTROLS = frozenset((0x09, 0x0A, 0x0D))

LEGACY_FALLBACK_MIN = 0xA1

# Windows-1252 assigns printable characters to most of 0x80-0x9F
CP1252_SPECIALS = {
    0x80: "€",  # euro sign
    0x82: "‚",  # single low-9 quotation mark
    0x83: "ƒ",  # latin small letter f with hook
    0x84: "„",  # double low-9 quotation mark
    0x85: "…",  # horizontal ellipsis
    0x86: "†",  # dagger
    0x87: "‡",  # double dagger
    0x88: "ˆ",  # modifier letter circumflex accent
    0x89: "‰",  # per mille sign
    0x8A: "Š",  # latin capital letter s with caron
    0x8B: "‹",  # single left-pointing angle quotation mark
    0x8C: "Œ",  # latin capital ligature oe
    0x8E: "Ž",  # latin capital letter z with caron
    0x91: "‘",  # left single quotation mark
    0x92: "’",  # right single quotation mark
    0x93: "“",  # left double quotation mark
    0x94: "”",  # right double quotation mark
    0x95: "•",  # bullet
    0x96: "–",  # en dash
    0x97: "—",  # em dash
    0x98: "˜",  # small tilde
    0x99: "™",  # trade mark sign
    0x9A: "š",  # latin small letter s with caron
    0x9B: "›",  # single right-pointing angle quotation mark
    0x9C: "œ",  # latin small ligature oe
    0x9E: "ž",  # latin small letter z with caron
    0x9F: "Ÿ",  # latin capital letter y with diaeresis
}


@dataclass(frozen=True)
class DecoderOptions:
    # codec tried for unmapped single bytes >= 0xA1 in compressed pieces
    legacy_codec: str = "gbk"


@dataclass(frozen=True)
class DecodedText:
    text: str
    consumed: int


@dataclass(frozen=True)
class PassThroughByte:
    """A byte no mapping could decode; it is emitted as its own code point."""

    value: int

    @property
    def text(self) -> str:
        return chr(self.value)


CharTranslation = Union[DecodedText, PassThroughByte]


class LegacyByteDecoder:
    """
    Best-effort decoder for high bytes of compressed pieces.

    Wraps a Python incremental codec. Input that the codec cannot turn into
    at least one character (invalid, or an incomplete multi-byte sequence)
    is reported as a PassThroughByte of its first byte.
    """

    def __init__(self, codec: str = "gbk"):
        # raises LookupError for unknown codecs
        self.codec = codecs.lookup(codec).name
        self._cache: dict[bytes, CharTranslation] = {}

    def decode_one_or_more(self, data: bytes) -> CharTranslation:
        cached = self._cache.get(data)
        if cached is not None:
            return cached

        decoder = codecs.getincrementaldecoder(self.codec)(errors="strict")
        try:
            text = decoder.decode(data, final=False)
        except UnicodeDecodeError:
            result: CharTranslation = PassThroughByte(data[0])
        else:
            if text:
                pending = decoder.getstate()[0]
                result = DecodedText(text, len(data) - len(pending))
            else:
                result = PassThroughByte(data[0])

        self._cache[data] = result
        return result


class FieldState:
    """
    Open fields of the piece being decoded, innermost last.

    Each entry is True while that field is still in its instruction part.
    Text is hidden as long as any open field is in its instruction part.
    """

    def __init__(self):
        self._open: list[bool] = []
        self._instructions = 0

    @property
    def depth(self) -> int:
        return len(self._open)

    @property
    def in_field_code(self) -> bool:
        return self._instructions > 0

    def consume_marker(self, value: int) -> bool:
        """Apply a field marker. Returns False if ``value`` is not a marker."""
        if value == FIELD_BEGIN:
            self._open.append(True)
            self._instructions += 1
        elif value == FIELD_SEPARATOR:
            if self._open and self._open[-1]:
                self._open[-1] = False
                self._instructions -= 1
        elif value == FIELD_END:
            if self._open and self._open.pop():
                self._instructions -= 1
        else:
            return False
        return True


def _visible_values(values: Iterable[int]) -> Iterator[int]:
    state = FieldState()
    for value in values:
        if state.consume_marker(value) or state.in_field_code:
            continue
        if value == CELL_MARK:
            yield SPACE
        elif value < SPACE and value not in ALLOWED_CONTROLS:
            continue
        else:
            yield value


def translate_compressed_byte(
    value: int, fallback: Optional[LegacyByteDecoder] = None
) -> CharTranslation:
    if value < 0x80:
        return DecodedText(chr(value), 1)
    special = CP1252_SPECIALS.get(value)
    if special is not None:
        return DecodedText(special, 1)
    if value >= LEGACY_FALLBACK_MIN and fallback is not None:
        return fallback.decode_one_or_more(bytes((value,)))
    return PassThroughByte(value)


def decode_compressed(
    data: bytes, fallback: Optional[LegacyByteDecoder] = None
) -> str:
    return "".join(
        translate_compressed_byte(value, fallback).text
        for value in _visible_values(data)
    )


def decode_uncompressed(data: bytes) -> str:
    count = len(data) // 2
    units = struct.unpack_from(f"<{count}H", data, 0)

    out = []
    high_surrogate = None
    for unit in _visible_values(units):
        if 0xD800 <= unit <= 0xDBFF:
            high_surrogate = unit
            continue
        if 0xDC00 <= unit <= 0xDFFF:
            if high_surrogate is not None:
                out.append(
                    chr(0x10000 + ((high_surrogate - 0xD800) << 10) + (unit - 0xDC00))
                )
            high_surrogate = None
            continue
        high_surrogate = None
        out.append(chr(unit))
    return "".join(out)


def decode_piece(
    data: bytes, is_compressed: bool, fallback: Optional[LegacyByteDecoder] = None
) -> str:
    """Decode the bytes of one piece with a fresh field state."""
    if is_compressed:
        return decode_compressed(data, fallback)
    return decode_uncompressed(data)
