import logging
import struct
import unittest

import pytest
from doc_builder import build_clx, build_fib, piece_fc

from msdoc2text.exceptions import (
    InvalidPieceTableError,
    PieceRangeOutOfBoundsError,
    TableStreamMissingError,
)
from msdoc2text.extractors.ms_legacy.container import StreamSource
from msdoc2text.extractors.ms_legacy.fib import parse_fib
from msdoc2text.extractors.ms_legacy.piece_table import (
    FcCompressed,
    PieceRange,
    map_piece_ranges,
    parse_clx,
    select_table_stream,
)

logger = logging.getLogger(__name__)

tc = unittest.TestCase()

FC_CLX = 128


def _table(clx: bytes, *, trailing: bytes = b"\x00" * 16) -> StreamSource:
    return StreamSource.from_bytes("0Table", b"\x00" * FC_CLX + clx + trailing)


##########
# Pcd.fc #
##########


def test_fc_compressed_flag_and_offset() -> None:
    fc = FcCompressed.from_raw(0x40000000 | 0x800)
    tc.assertTrue(fc.is_compressed)
    tc.assertEqual(0x400, fc.offset)

    fc = FcCompressed.from_raw(0x600)
    tc.assertFalse(fc.is_compressed)
    tc.assertEqual(0x600, fc.offset)


def test_fc_reserved_bit_is_masked() -> None:
    fc = FcCompressed.from_raw(0x80000000 | 0x600)
    tc.assertFalse(fc.is_compressed)
    tc.assertEqual(0x600, fc.offset)

    fc = FcCompressed.from_raw(0xC0000000 | 0x600)
    tc.assertTrue(fc.is_compressed)
    tc.assertEqual(0x300, fc.offset)


#######
# CLX #
#######


def test_parse_simple_piece_table() -> None:
    clx = build_clx([0, 3], [0x40])
    piece_table = parse_clx(_table(clx), FC_CLX, len(clx))

    tc.assertEqual(1, len(piece_table))
    tc.assertEqual((0, 3), piece_table.character_boundaries)
    descriptor = next(piece_table.descriptors())
    tc.assertEqual(0x40, descriptor.byte_offset)
    tc.assertFalse(descriptor.is_compressed)
    tc.assertEqual(3, descriptor.character_count)


def test_prc_blocks_are_skipped() -> None:
    clx = build_clx(
        [0, 5, 9],
        [piece_fc(0x400, True), piece_fc(0x800, False)],
        prc_blocks=[b"\x01\x02\x03", b"", b"\x02" * 40],
    )
    piece_table = parse_clx(_table(clx), FC_CLX, len(clx))

    descriptors = list(piece_table.descriptors())
    tc.assertEqual(2, len(descriptors))
    tc.assertEqual((0x400, True, 5, 0), tuple(vars(descriptors[0]).values()))
    tc.assertEqual((0x800, False, 4, 5), tuple(vars(descriptors[1]).values()))


def test_bytes_after_first_piece_table_are_ignored() -> None:
    clx = build_clx([0, 2], [piece_fc(0x400, True)])
    junk = b"\x02" + struct.pack("<I", 0xFFFFFFFF) + b"\x99" * 7
    piece_table = parse_clx(_table(clx + junk), FC_CLX, len(clx) + len(junk))
    tc.assertEqual(1, len(piece_table))


def test_empty_piece_table() -> None:
    clx = build_clx([0], [])
    piece_table = parse_clx(_table(clx), FC_CLX, len(clx))
    tc.assertEqual(0, len(piece_table))
    tc.assertEqual(0, piece_table.total_characters)


def test_piece_table_covers_all_characters() -> None:
    boundaries = [0, 7, 7, 19, 100]
    clx = build_clx(boundaries, [piece_fc(0x400 + i, True) for i in range(4)])
    piece_table = parse_clx(_table(clx), FC_CLX, len(clx))

    total = sum(d.character_count for d in piece_table.descriptors())
    tc.assertEqual(boundaries[-1] - boundaries[0], total)
    tc.assertEqual(total, piece_table.total_characters)


def test_unknown_block_type_rejected() -> None:
    clx = b"\x05" + build_clx([0, 3], [0x40])
    with pytest.raises(InvalidPieceTableError, match="block type"):
        parse_clx(_table(clx), FC_CLX, len(clx))


def test_missing_pcdt_rejected() -> None:
    clx = b"\x01" + struct.pack("<h", 2) + b"\x00\x00"
    with pytest.raises(InvalidPieceTableError, match="No piece table"):
        parse_clx(_table(clx), FC_CLX, len(clx))

    with pytest.raises(InvalidPieceTableError):
        parse_clx(_table(b""), FC_CLX, 0)


def test_negative_prc_size_rejected() -> None:
    clx = b"\x01" + struct.pack("<h", -4) + build_clx([0, 3], [0x40])
    with pytest.raises(InvalidPieceTableError):
        parse_clx(_table(clx), FC_CLX, len(clx))


def test_plc_size_not_whole_pieces_rejected() -> None:
    plc = struct.pack("<2I", 0, 3) + struct.pack("<HIH", 0, 0x40, 0) + b"\x00"
    clx = b"\x02" + struct.pack("<I", len(plc)) + plc
    with pytest.raises(InvalidPieceTableError):
        parse_clx(_table(clx), FC_CLX, len(clx))


def test_plc_longer_than_table_stream_rejected() -> None:
    clx = b"\x02" + struct.pack("<I", 4 + 12 * 1000) + struct.pack("<2I", 0, 3)
    with pytest.raises(InvalidPieceTableError, match="exceeds"):
        parse_clx(_table(clx, trailing=b""), FC_CLX, len(clx))


def test_clx_outside_table_stream_rejected() -> None:
    clx = build_clx([0, 3], [0x40])
    with pytest.raises(InvalidPieceTableError):
        parse_clx(_table(clx, trailing=b""), FC_CLX, len(clx) + 1)


def test_decreasing_character_positions_rejected() -> None:
    clx = build_clx([0, 10, 5], [0x40, 0x80])
    with pytest.raises(InvalidPieceTableError, match="decrease"):
        parse_clx(_table(clx), FC_CLX, len(clx))


##########
# Ranges #
##########


def test_compressed_and_uncompressed_ranges() -> None:
    clx = build_clx([0, 10, 16], [piece_fc(0x400, True), piece_fc(0x500, False)])
    piece_table = parse_clx(_table(clx), FC_CLX, len(clx))

    ranges = map_piece_ranges(piece_table, 0x1000)

    tc.assertEqual((0x400, 0x400 + 10), (ranges[0].start, ranges[0].end))
    tc.assertEqual((0x500, 0x500 + 2 * 6), (ranges[1].start, ranges[1].end))
    tc.assertEqual([0, 1], [r.index for r in ranges])


def test_range_past_stream_end_rejected() -> None:
    clx = build_clx([0, 10, 20], [piece_fc(0x400, True), piece_fc(0x500, False)])
    piece_table = parse_clx(_table(clx), FC_CLX, len(clx))

    # second piece ends at 0x500 + 20
    map_piece_ranges(piece_table, 0x500 + 20)
    with pytest.raises(PieceRangeOutOfBoundsError):
        map_piece_ranges(piece_table, 0x500 + 19)


def test_clip_range_to_character_window() -> None:
    piece_range = PieceRange(
        index=0, cp_start=10, cp_end=20, start=0x800, length=20, is_compressed=False
    )

    tc.assertIs(piece_range, piece_range.clip(0, 100))
    tc.assertIsNone(piece_range.clip(0, 10))
    tc.assertIsNone(piece_range.clip(20, 30))

    clipped = piece_range.clip(12, 15)
    tc.assertEqual((12, 15), (clipped.cp_start, clipped.cp_end))
    tc.assertEqual(0x800 + 4, clipped.start)
    tc.assertEqual(6, clipped.length)


#########
# Table #
#########


def test_select_table_stream() -> None:
    table0 = StreamSource.from_bytes("0Table", b"0")
    table1 = StreamSource.from_bytes("1Table", b"1")

    fib = parse_fib(StreamSource.from_bytes("WordDocument", build_fib(which_table=1)))
    tc.assertIs(table1, select_table_stream(table0, table1, fib))

    fib = parse_fib(StreamSource.from_bytes("WordDocument", build_fib(which_table=0)))
    tc.assertIs(table0, select_table_stream(table0, table1, fib))


def test_selected_table_stream_missing() -> None:
    table0 = StreamSource.from_bytes("0Table", b"0")
    fib = parse_fib(StreamSource.from_bytes("WordDocument", build_fib(which_table=1)))

    with pytest.raises(TableStreamMissingError, match="1Table"):
        select_table_stream(table0, None, fib)
