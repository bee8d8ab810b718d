# SPDX-FileCopyrightText: 2026-present The wormhole-messages contributors
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import pytest

from wormhole.messages.cursor import ByteCursor
from wormhole.messages.exceptions import DecodeError, OutOfBoundsError


class TestByteCursor:

    def test_integer_reads(self) -> None:
        cursor = ByteCursor(bytes.fromhex('01' '0203' '04050607' '08090a0b0c0d0e0f'))

        assert cursor.read_u8(0) == (0x01, 1)
        assert cursor.read_u16(1) == (0x0203, 3)
        assert cursor.read_u32(3) == (0x04050607, 7)
        assert cursor.read_u64(7) == (0x08090a0b0c0d0e0f, 15)
        assert cursor.remaining_length(15) == 0

        cursor = ByteCursor((1000).to_bytes(32, byteorder='big'))
        assert cursor.read_u256(0) == (1000, 32)

    def test_byte_reads(self) -> None:
        data = bytes(range(40))
        cursor = ByteCursor(data)

        assert cursor.read_bytes32(0) == (data[:32], 32)
        assert cursor.read_bytes(32, 3) == (data[32:35], 35)
        assert cursor.read_bytes(35, 0) == (b'', 35)
        assert cursor.read_remaining(35) == (data[35:], 40)
        assert cursor.read_remaining(40) == (b'', 40)
        assert cursor.remaining_length(10) == 30

    def test_length_prefixed_reads(self) -> None:
        cursor = ByteCursor(b'\x00\x00\x00\x03abc' + b'\x02de')

        value, offset = cursor.read_length_prefixed_bytes(0, 4)
        assert (value, offset) == (b'abc', 7)
        assert cursor.read_length_prefixed_bytes(offset, 1) == (b'de', 10)

        with pytest.raises(OutOfBoundsError, match='Cannot read 3 bytes at offset 4'):
            ByteCursor(b'\x00\x00\x00\x03ab').read_length_prefixed_bytes(0, 4)

    def test_bounds(self) -> None:
        cursor = ByteCursor(b'\x01\x02\x03')

        with pytest.raises(OutOfBoundsError, match='Cannot read 2 bytes at offset 2 from a buffer of 3 bytes'):
            cursor.read_u16(2)
        with pytest.raises(OutOfBoundsError):
            cursor.read_u8(3)
        with pytest.raises(OutOfBoundsError):
            cursor.read_u64(0)
        with pytest.raises(OutOfBoundsError):
            cursor.read_bytes32(0)
        with pytest.raises(OutOfBoundsError):
            cursor.read_u8(-1)
        with pytest.raises(ValueError, match='Invalid read length'):
            cursor.read_bytes(0, -1)

        # Past the end there is nothing left, and nothing can be read
        assert cursor.remaining_length(3) == 0
        assert cursor.remaining_length(10) == 0
        with pytest.raises(OutOfBoundsError, match='Cannot read 0 bytes at offset 10'):
            cursor.read_remaining(10)

        # Bounds errors are decode errors
        with pytest.raises(DecodeError):
            cursor.read_u32(0)

    def test_buffer_is_copied(self) -> None:
        data = bytearray(b'\x00\x01')
        cursor = ByteCursor(data)
        data[0] = 0xff

        assert cursor.read_u8(0) == (0, 1)
        assert cursor.data == b'\x00\x01'
        assert len(cursor) == 2
        assert isinstance(cursor.data, bytes)
