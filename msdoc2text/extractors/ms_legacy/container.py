"""
OLE container access for legacy Word documents.

A .doc file is a Compound File (OLE2/CFBF). The text pipeline only needs
three of its streams, addressed by name: ``WordDocument`` and the two table
stream candidates ``0Table`` and ``1Table``. This module wraps olefile so the
parsers can read those streams by offset without caring about sectors, FAT
chains or the mini stream.
"""

import io
import logging
from pathlib import Path
from typing import BinaryIO, Optional, Protocol, Union

import olefile

from msdoc2text.exceptions import ContainerUnreadableError, ShortReadError

logger = logging.getLogger(__name__)

WORD_DOCUMENT_STREAM = "WordDocument"
TABLE_0_STREAM = "0Table"
TABLE_1_STREAM = "1Table"

DocSource = Union[str, Path, bytes, bytearray, BinaryIO]


class StreamSource:
    """Random-access byte source for a single container stream."""

    def __init__(self, name: str, stream: BinaryIO, size: int | None = None):
        self.name = name
        self._stream = stream
        if size is None:
            stream.seek(0, io.SEEK_END)
            size = stream.tell()
        self.size = size

    @classmethod
    def from_bytes(cls, name: str, data: bytes) -> "StreamSource":
        return cls(name, io.BytesIO(data), len(data))

    def read_at(self, offset: int, length: int) -> bytes:
        """
        Read exactly ``length`` bytes starting at ``offset``.

        Raises:
            ShortReadError: The stream ends before the requested range does.
        """
        if offset < 0 or length < 0:
            raise ShortReadError(
                f"Invalid read of {length} bytes at offset {offset} in {self.name!r}"
            )
        self._stream.seek(offset)
        data = self._stream.read(length)
        if len(data) != length:
            raise ShortReadError(
                f"Stream {self.name!r} returned {len(data)} of {length} bytes "
                f"at offset {offset}"
            )
        return data

    def __repr__(self) -> str:
        return f"StreamSource(name={self.name!r}, size={self.size})"


class StreamContainer(Protocol):
    def open_stream(self, name: str) -> Optional[StreamSource]:
        """Returns the named stream, or None if the container has no such stream."""
        ...


def to_seekable(source: DocSource) -> BinaryIO:
    """Turn a path, raw bytes or any binary file object into a seekable buffer."""
    if isinstance(source, (bytes, bytearray)):
        return io.BytesIO(bytes(source))
    if isinstance(source, (str, Path)):
        with open(source, "rb") as f:
            return io.BytesIO(f.read())
    if hasattr(source, "read"):
        seekable = getattr(source, "seekable", None)
        if seekable is not None and seekable():
            source.seek(0)
            return source
        # non-seekable input (pipes, sockets) is buffered in full
        return io.BytesIO(source.read())
    raise TypeError("source must be a path, bytes or a binary file object")


class OleContainer:
    """
    olefile-backed StreamContainer.

    Usable as a context manager; the OLE handle is released on exit.
    """

    def __init__(self, source: DocSource):
        file_like = to_seekable(source)
        try:
            self.ole = olefile.OleFileIO(file_like)
        except Exception as exc:
            raise ContainerUnreadableError(
                "File is not a readable OLE2 container", cause=exc
            ) from exc

    def __enter__(self) -> "OleContainer":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        if self.ole:
            self.ole.close()
            self.ole = None

    def open_stream(self, name: str) -> Optional[StreamSource]:
        if not self.ole or not self.ole.exists(name):
            logger.debug(f"Stream [{name}] not present in container")
            return None
        try:
            size = self.ole.get_size(name)
            stream = self.ole.openstream(name)
        except OSError as exc:
            raise ContainerUnreadableError(
                f"Stream {name!r} could not be read from the container", cause=exc
            ) from exc
        return StreamSource(name, stream, size)

    def get_metadata(self) -> Optional[olefile.OleMetadata]:
        if not self.ole:
            return None
        return self.ole.get_metadata()
