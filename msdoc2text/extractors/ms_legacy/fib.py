"""
File Information Block (FIB) parsing.

The FIB sits at offset 0 of the WordDocument stream. It is variable-length:

    FibBase          32 bytes    magic, version, flags
    csw               2 bytes    count of 16-bit values in fibRgW
    fibRgW        csw * 2
    cslw              2 bytes    count of 32-bit values in fibRgLw
    fibRgLw      cslw * 4        character counts of the text regions
    cbRgFcLcb         2 bytes    count of 64-bit (fc, lcb) pairs
    fibRgFcLcbBlob   cbRgFcLcb * 8

Only the fields needed to find the piece table and split the text into
regions are extracted.
"""

import logging
import struct
from dataclasses import dataclass

from msdoc2text.exceptions import MalformedHeaderError
from msdoc2text.extractors.ms_legacy.container import (
    TABLE_0_STREAM,
    TABLE_1_STREAM,
    StreamSource,
)

logger = logging.getLogger(__name__)

FIB_MAGIC_WORD97 = 0xA5EC
MIN_NFIB = 0x00C0

FIB_BASE_SIZE = 0x20
FIB_NFIB_OFFSET = 0x02
FIB_LID_OFFSET = 0x06
FIB_FLAGS_OFFSET = 0x0A
FIB_ENCRYPTED_FLAG = 0x0100
FIB_WHICH_TBL_STM_FLAG = 0x0200

# indexes into fibRgLw (32-bit values)
RG_LW_CCP_TEXT = 3
RG_LW_CCP_FTN = 4
RG_LW_CCP_HDD = 5
RG_LW_CCP_MCR = 6
RG_LW_CCP_ATN = 7
RG_LW_CCP_EDN = 8
RG_LW_CCP_TXBX = 9
RG_LW_CCP_HDR_TXBX = 10
MIN_CSLW = RG_LW_CCP_HDR_TXBX + 1

# index of the (fcClx, lcbClx) pair in fibRgFcLcbBlob
FC_LCB_CLX_INDEX = 33
MIN_CB_RG_FC_LCB = FC_LCB_CLX_INDEX + 1


@dataclass(frozen=True)
class WordFib:
    """The parts of the FIB the text pipeline reads."""

    w_ident: int
    n_fib: int
    lid: int
    table_stream_selector: int
    is_encrypted: bool
    fc_clx: int
    lcb_clx: int
    ccp_text: int = 0
    ccp_ftn: int = 0
    ccp_hdd: int = 0
    ccp_mcr: int = 0
    ccp_atn: int = 0
    ccp_edn: int = 0
    ccp_txbx: int = 0
    ccp_hdr_txbx: int = 0

    @property
    def table_stream_name(self) -> str:
        return TABLE_1_STREAM if self.table_stream_selector else TABLE_0_STREAM


def _read_header(stream: StreamSource, length: int, what: str) -> bytes:
    if stream.size < length:
        raise MalformedHeaderError(
            f"WordDocument stream too short for {what} "
            f"({stream.size} bytes, {length} required)"
        )
    return stream.read_at(0, length)


def parse_fib(stream: StreamSource) -> WordFib:
    """
    Parse the FIB from the start of the WordDocument stream.

    Raises:
        MalformedHeaderError: The stream is too short to hold the FIB, the
            magic number or version is not Word 97 or later, or the FIB does
            not reach the CLX location.
    """
    data = _read_header(stream, FIB_BASE_SIZE + 2, "FibBase")

    w_ident, n_fib = struct.unpack_from("<HH", data, 0)
    if w_ident != FIB_MAGIC_WORD97:
        raise MalformedHeaderError(f"Not a valid .doc file (Magic: {hex(w_ident)})")
    if n_fib < MIN_NFIB:
        raise MalformedHeaderError(
            f"Unsupported FIB version {hex(n_fib)} (Word 97 or later required)"
        )
    lid = struct.unpack_from("<H", data, FIB_LID_OFFSET)[0]
    flags = struct.unpack_from("<H", data, FIB_FLAGS_OFFSET)[0]

    csw = struct.unpack_from("<H", data, FIB_BASE_SIZE)[0]
    cslw_offset = FIB_BASE_SIZE + 2 + csw * 2
    data = _read_header(stream, cslw_offset + 2, "fibRgW")
    cslw = struct.unpack_from("<H", data, cslw_offset)[0]
    if cslw < MIN_CSLW:
        raise MalformedHeaderError(f"fibRgLw too small (cslw={cslw})")

    rg_lw_offset = cslw_offset + 2
    cb_offset = rg_lw_offset + cslw * 4
    data = _read_header(stream, cb_offset + 2, "fibRgLw")
    cb_rg_fc_lcb = struct.unpack_from("<H", data, cb_offset)[0]
    if cb_rg_fc_lcb < MIN_CB_RG_FC_LCB:
        raise MalformedHeaderError(
            f"fibRgFcLcb does not contain the CLX location (cbRgFcLcb={cb_rg_fc_lcb})"
        )

    clx_pair_offset = cb_offset + 2 + FC_LCB_CLX_INDEX * 8
    data = _read_header(stream, clx_pair_offset + 8, "fibRgFcLcb")
    fc_clx, lcb_clx = struct.unpack_from("<II", data, clx_pair_offset)

    def ccp(index: int) -> int:
        return struct.unpack_from("<I", data, rg_lw_offset + index * 4)[0]

    fib = WordFib(
        w_ident=w_ident,
        n_fib=n_fib,
        lid=lid,
        table_stream_selector=1 if flags & FIB_WHICH_TBL_STM_FLAG else 0,
        is_encrypted=bool(flags & FIB_ENCRYPTED_FLAG),
        fc_clx=fc_clx,
        lcb_clx=lcb_clx,
        ccp_text=ccp(RG_LW_CCP_TEXT),
        ccp_ftn=ccp(RG_LW_CCP_FTN),
        ccp_hdd=ccp(RG_LW_CCP_HDD),
        ccp_mcr=ccp(RG_LW_CCP_MCR),
        ccp_atn=ccp(RG_LW_CCP_ATN),
        ccp_edn=ccp(RG_LW_CCP_EDN),
        ccp_txbx=ccp(RG_LW_CCP_TXBX),
        ccp_hdr_txbx=ccp(RG_LW_CCP_HDR_TXBX),
    )
    logger.debug(
        f"FIB: nFib={hex(n_fib)} table={fib.table_stream_name} "
        f"fcClx={fc_clx} lcbClx={lcb_clx} ccpText={fib.ccp_text}"
    )
    return fib
