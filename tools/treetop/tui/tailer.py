"""
Tail extraction for monitored files.

This module computes, for an open file, the last chunk of bytes that fits
the on-screen viewport and the position of the last line inside that chunk.
It knows nothing about how a change was detected; the coordinator calls it
whenever a file is flagged for re-reading.

Purpose:
    Logs can be arbitrarily large, but the dashboard only ever shows what
    fits on screen. Seeking to (size - budget) and reading forward keeps
    the cost of a refresh bounded by the viewport, not by the file.

Design Decisions:
    - Byte oriented: no attempt is made to realign partial UTF-8 sequences
      at the start of the tail. Decoding replaces invalid bytes.
    - Each file owns one TailBuffer that grows when the budget grows and is
      reused when the budget shrinks. Capacity is never given back.
    - Reads go through readinto() on a memoryview so a refresh does not
      allocate a fresh bytes object per file.
"""

import io
from typing import BinaryIO, Optional, Tuple

# Line terminators skipped at the end of the tail before looking for the
# start of the last line.
_NEWLINE = 0x0A
_TRAILING = (0x0A, 0x0D)


class TailBuffer:
    """
    Growable byte buffer holding the most recently extracted tail.

    Attributes:
        data: Backing storage. len(data) is the allocated capacity.
        length: Number of valid bytes at the start of data.
        line_offset: Start of the last complete line, always <= length.

    Example:
        >>> buf = TailBuffer()
        >>> with open("app.log", "rb") as fh:
        ...     extract_tail(fh, 4096, buf)
        >>> buf.last_line
        b'last line\\n'
    """

    def __init__(self) -> None:
        self.data = bytearray()
        self.length = 0
        self.line_offset = 0

    @property
    def capacity(self) -> int:
        return len(self.data)

    def reserve(self, size: int) -> None:
        """
        Make room for at least `size` bytes.

        Reallocates only when the request exceeds the current capacity.
        The valid prefix survives the reallocation so line_offset stays
        within bounds.
        """
        if size <= len(self.data):
            return
        grown = bytearray(size)
        grown[: self.length] = self.data[: self.length]
        self.data = grown

    @property
    def tail(self) -> bytes:
        return bytes(self.data[: self.length])

    @property
    def last_line(self) -> bytes:
        return bytes(self.data[self.line_offset: self.length])


def last_line_offset(data, length: Optional[int] = None) -> int:
    """
    Return the offset where the last line of `data[:length]` starts.

    Trailing newline and carriage-return characters are skipped first, so
    for b"a\\nb\\n" the last line is b"b\\n" (offset 2). Without any earlier
    newline the line starts at offset 0.
    """
    end = len(data) if length is None else length
    idx = end - 1

    # Skip the terminator(s) of the final line
    while idx >= 0 and data[idx] in _TRAILING:
        idx -= 1

    # Walk back to the newline that precedes it
    while idx >= 0 and data[idx] != _NEWLINE:
        idx -= 1

    return idx + 1


def extract_tail(handle: BinaryIO, budget: int, buffer: Optional[TailBuffer] = None) -> Tuple[bytes, int]:
    """
    Read the last `budget` bytes of an open file.

    Seeks to max(0, size - budget) and reads forward to EOF (at most
    `budget` bytes, in case the file grows mid-read). The result is stored
    in `buffer` when one is given.

    Args:
        handle: Open, seekable binary handle.
        budget: Maximum number of bytes to keep. Zero leaves the buffer
                untouched and returns its previous content.
        buffer: Per-file TailBuffer to fill. A throwaway buffer is used
                when omitted.

    Returns:
        (tail_bytes, last_line_offset) where the offset indexes into
        tail_bytes.

    Raises:
        ValueError: If budget is negative.
        OSError: If the handle cannot be seeked or read.
    """
    if budget < 0:
        raise ValueError(f"byte budget must be >= 0, got {budget}")
    if buffer is None:
        buffer = TailBuffer()
    if budget == 0:
        return buffer.tail, buffer.line_offset

    size = handle.seek(0, io.SEEK_END)
    handle.seek(max(0, size - budget), io.SEEK_SET)

    buffer.reserve(budget)
    filled = 0
    with memoryview(buffer.data) as view:
        while filled < budget:
            count = handle.readinto(view[filled:budget])
            if not count:
                break
            filled += count

    buffer.length = filled
    buffer.line_offset = last_line_offset(buffer.data, filled)
    return buffer.tail, buffer.line_offset


def display_text(raw: bytes) -> str:
    """Decode tail bytes for the screen, dropping the line terminator."""
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")
