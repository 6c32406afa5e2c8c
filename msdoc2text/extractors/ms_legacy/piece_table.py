"""
CLX and piece table (PlcPcd) parsing.

The text of a Word document is not stored contiguously. The CLX structure in
the table stream holds the piece table, which cuts the logical character
stream into pieces. Each piece points to a byte range in the WordDocument
stream and is stored either compressed (one byte per character) or
uncompressed (UTF-16LE, two bytes per character).

CLX layout:

    RgPrc   0..n blocks  clxt=0x01, cbGrpprl (int16), GrpPrl[cbGrpprl]
    Pcdt    1 block      clxt=0x02, lcb (uint32), PlcPcd[lcb]

PlcPcd layout for n pieces:

    aCP     (n + 1) * uint32   character position boundaries
    aPcd    n * 8 bytes        Pcd: flags (2), fc (4), prm (2)
"""

import logging
import struct
from dataclasses import dataclass, replace
from typing import Iterator, Optional, Tuple

from msdoc2text.exceptions import (
    InvalidPieceTableError,
    PieceRangeOutOfBoundsError,
    TableStreamMissingError,
)
from msdoc2text.extractors.ms_legacy.container import StreamSource
from msdoc2text.extractors.ms_legacy.fib import WordFib

logger = logging.getLogger(__name__)

CLXT_PRC = 0x01
CLXT_PCDT = 0x02

CP_SIZE = 4
PCD_SIZE = 8
PCD_FC_OFFSET = 2

FC_COMPRESSED_FLAG = 0x40000000
FC_MASK = 0x3FFFFFFF


@dataclass(frozen=True)
class FcCompressed:
    """Unpacked Pcd.fc: where a piece starts and how it is encoded."""

    offset: int
    is_compressed: bool

    @classmethod
    def from_raw(cls, fc: int) -> "FcCompressed":
        is_compressed = bool(fc & FC_COMPRESSED_FLAG)
        offset = fc & FC_MASK
        if is_compressed:
            offset //= 2
        return cls(offset=offset, is_compressed=is_compressed)


@dataclass(frozen=True)
class PieceDescriptor:
    byte_offset: int
    is_compressed: bool
    character_count: int
    cp_start: int


@dataclass(frozen=True)
class PieceTable:
    character_boundaries: Tuple[int, ...]
    pieces: Tuple[FcCompressed, ...]

    def __len__(self) -> int:
        return len(self.pieces)

    @property
    def total_characters(self) -> int:
        if not self.character_boundaries:
            return 0
        return self.character_boundaries[-1] - self.character_boundaries[0]

    def descriptors(self) -> Iterator[PieceDescriptor]:
        for i, fc in enumerate(self.pieces):
            cp_start = self.character_boundaries[i]
            yield PieceDescriptor(
                byte_offset=fc.offset,
                is_compressed=fc.is_compressed,
                character_count=self.character_boundaries[i + 1] - cp_start,
                cp_start=cp_start,
            )


@dataclass(frozen=True)
class PieceRange:
    """Byte range of one piece inside the WordDocument stream."""

    index: int
    cp_start: int
    cp_end: int
    start: int
    length: int
    is_compressed: bool

    @property
    def end(self) -> int:
        return self.start + self.length

    @property
    def bytes_per_char(self) -> int:
        return 1 if self.is_compressed else 2

    @classmethod
    def from_descriptor(cls, index: int, descriptor: PieceDescriptor) -> "PieceRange":
        bytes_per_char = 1 if descriptor.is_compressed else 2
        return cls(
            index=index,
            cp_start=descriptor.cp_start,
            cp_end=descriptor.cp_start + descriptor.character_count,
            start=descriptor.byte_offset,
            length=descriptor.character_count * bytes_per_char,
            is_compressed=descriptor.is_compressed,
        )

    def clip(self, cp_start: int, cp_end: int) -> Optional["PieceRange"]:
        """Restrict the range to the characters in [cp_start, cp_end)."""
        lo = max(self.cp_start, cp_start)
        hi = min(self.cp_end, cp_end)
        if hi <= lo:
            return None
        if lo == self.cp_start and hi == self.cp_end:
            return self
        return replace(
            self,
            cp_start=lo,
            cp_end=hi,
            start=self.start + (lo - self.cp_start) * self.bytes_per_char,
            length=(hi - lo) * self.bytes_per_char,
        )


def select_table_stream(
    table0: Optional[StreamSource], table1: Optional[StreamSource], fib: WordFib
) -> StreamSource:
    """Return the table stream the FIB marks as authoritative."""
    table = table1 if fib.table_stream_selector else table0
    if table is None:
        raise TableStreamMissingError(
            f"Table stream {fib.table_stream_name!r} not found in container"
        )
    logger.debug(f"Using table stream [{fib.table_stream_name}]")
    return table


def parse_clx(table: StreamSource, fc_clx: int, lcb_clx: int) -> PieceTable:
    """
    Walk the CLX at ``fc_clx`` and parse its piece table.

    Prc blocks are skipped. Parsing stops at the first Pcdt block; anything
    after it is ignored.

    Raises:
        InvalidPieceTableError: The CLX lies outside the table stream, holds
            an unknown block type, has no Pcdt, or the PlcPcd is inconsistent.
    """
    if fc_clx + lcb_clx > table.size:
        raise InvalidPieceTableError(
            f"CLX [{fc_clx}, {fc_clx + lcb_clx}) exceeds table stream "
            f"of {table.size} bytes"
        )
    clx = table.read_at(fc_clx, lcb_clx)

    pos = 0
    while pos < len(clx):
        clxt = clx[pos]
        if clxt == CLXT_PRC:
            if pos + 3 > len(clx):
                raise InvalidPieceTableError(f"Truncated Prc at CLX offset {pos}")
            cb_grpprl = struct.unpack_from("<h", clx, pos + 1)[0]
            if cb_grpprl < 0:
                raise InvalidPieceTableError(
                    f"Negative Prc size {cb_grpprl} at CLX offset {pos}"
                )
            pos += 3 + cb_grpprl
        elif clxt == CLXT_PCDT:
            if pos + 5 > len(clx):
                raise InvalidPieceTableError(f"Truncated Pcdt at CLX offset {pos}")
            lcb = struct.unpack_from("<I", clx, pos + 1)[0]
            plc_offset = fc_clx + pos + 5
            if lcb > table.size - plc_offset:
                raise InvalidPieceTableError(
                    f"PlcPcd of {lcb} bytes exceeds the table stream "
                    f"({table.size - plc_offset} bytes left)"
                )
            return _parse_plc_pcd(table.read_at(plc_offset, lcb))
        else:
            raise InvalidPieceTableError(
                f"Unexpected CLX block type {hex(clxt)} at offset {pos}"
            )

    raise InvalidPieceTableError("No piece table (Pcdt) found in CLX")


def _parse_plc_pcd(plc: bytes) -> PieceTable:
    entry_size = CP_SIZE + PCD_SIZE
    if len(plc) < CP_SIZE or (len(plc) - CP_SIZE) % entry_size != 0:
        raise InvalidPieceTableError(
            f"PlcPcd size {len(plc)} does not describe a whole number of pieces"
        )
    count = (len(plc) - CP_SIZE) // entry_size

    boundaries = struct.unpack_from(f"<{count + 1}I", plc, 0)
    for i in range(count):
        if boundaries[i + 1] < boundaries[i]:
            raise InvalidPieceTableError(
                f"Character positions decrease at piece {i} "
                f"({boundaries[i]} > {boundaries[i + 1]})"
            )

    pcd_base = CP_SIZE * (count + 1)
    pieces = tuple(
        FcCompressed.from_raw(
            struct.unpack_from("<I", plc, pcd_base + i * PCD_SIZE + PCD_FC_OFFSET)[0]
        )
        for i in range(count)
    )
    logger.debug(f"Piece table: {count} pieces, {boundaries[-1] - boundaries[0]} characters")
    return PieceTable(character_boundaries=tuple(boundaries), pieces=pieces)


def map_piece_ranges(piece_table: PieceTable, stream_size: int) -> list[PieceRange]:
    """
    Compute the WordDocument byte range of every piece, in table order.

    All ranges are checked before any of them is read.

    Raises:
        PieceRangeOutOfBoundsError: A range ends past ``stream_size``.
    """
    ranges = []
    for index, descriptor in enumerate(piece_table.descriptors()):
        piece_range = PieceRange.from_descriptor(index, descriptor)
        if piece_range.end > stream_size:
            raise PieceRangeOutOfBoundsError(
                f"Piece {index} covers bytes [{piece_range.start}, {piece_range.end}) "
                f"but the WordDocument stream has {stream_size} bytes"
            )
        ranges.append(piece_range)
    return ranges
