# SPDX-FileCopyrightText: 2026-present The wormhole-messages contributors
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from collections.abc import Buffer

from .exceptions import OutOfBoundsError

__all__ = 'ByteCursor',  # noqa: COM818


class ByteCursor:
    """
    A reader over an immutable byte buffer with explicit offsets.

    Every read method takes the offset to read from and returns a tuple with
    the value that was read and the offset right after it. Reads are bounds
    checked and raise OutOfBoundsError when the buffer does not hold enough
    data, so a read never returns partial data. All integers are big-endian.
    """

    __slots__ = '_data',

    def __init__(self, buffer: Buffer, /) -> None:
        self._data = bytes(buffer)

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}({self._data!r})'

    def __len__(self) -> int:
        return len(self._data)

    @property
    def data(self) -> bytes:
        return self._data

    def remaining_length(self, offset: int) -> int:
        """The number of bytes from offset to the end of the buffer, 0 for offsets past the end"""
        return max(len(self._data) - offset, 0)

    def read_bytes(self, offset: int, length: int) -> tuple[bytes, int]:
        if length < 0:
            raise ValueError(f'Invalid read length: {length!r}')
        end = offset + length
        if offset < 0 or end > len(self._data):
            raise OutOfBoundsError(f'Cannot read {length} bytes at offset {offset} from a buffer of {len(self._data)} bytes')
        return self._data[offset:end], end

    def read_uint(self, offset: int, size: int) -> tuple[int, int]:
        data, offset = self.read_bytes(offset, size)
        return int.from_bytes(data, byteorder='big'), offset

    def read_u8(self, offset: int) -> tuple[int, int]:
        return self.read_uint(offset, 1)

    def read_u16(self, offset: int) -> tuple[int, int]:
        return self.read_uint(offset, 2)

    def read_u32(self, offset: int) -> tuple[int, int]:
        return self.read_uint(offset, 4)

    def read_u64(self, offset: int) -> tuple[int, int]:
        return self.read_uint(offset, 8)

    def read_u256(self, offset: int) -> tuple[int, int]:
        return self.read_uint(offset, 32)

    def read_bytes32(self, offset: int) -> tuple[bytes, int]:
        return self.read_bytes(offset, 32)

    def read_length_prefixed_bytes(self, offset: int, length_width: int) -> tuple[bytes, int]:
        length, offset = self.read_uint(offset, length_width)
        return self.read_bytes(offset, length)

    def read_remaining(self, offset: int) -> tuple[bytes, int]:
        return self.read_bytes(offset, self.remaining_length(offset))
