# SPDX-FileCopyrightText: 2026-present The wormhole-messages contributors
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from io import BytesIO

import pytest
from wormhole.constants import MAX_SIGNATURES
from wormhole.messages.datamodel import Bytes32, UniversalAddress
from wormhole.messages.exceptions import DecodeError, OutOfBoundsError, TooManySignaturesError
from wormhole.vaa import SIGNATURE_SIZE, VAA, Signature, VAABody, keccak256, parse_vaa

BODY = VAABody(
    timestamp=1_700_000_000,
    nonce=7,
    emitter_chain=2,
    emitter_address=UniversalAddress.from_native(bytes.fromhex('27428dd2d3dd32a4d7f7c497eaaa23130d894911')),
    sequence=1234,
    consistency_level=15,
    payload=b'payload',
)


def make_signature(guardian_index: int) -> Signature:
    return Signature(guardian_index=guardian_index, r=Bytes32(bytes([guardian_index + 1]) * 32), s=Bytes32(bytes([guardian_index + 2]) * 32), recovery_id=guardian_index % 2)


def make_vaa(signature_count: int) -> VAA:
    return VAA(guardian_set_index=3, signatures=[make_signature(index) for index in range(signature_count)], body=BODY)


class TestKeccak:

    def test_keccak256(self) -> None:
        assert keccak256(b'') == bytes.fromhex('c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470')
        assert keccak256(bytearray(b'data')) == keccak256(b'data')
        assert len(keccak256(b'data')) == 32


class TestSignature:

    def test_signature(self) -> None:
        signature = make_signature(0)
        data = signature.to_wire()

        assert len(data) == signature.wire_length() == SIGNATURE_SIZE
        assert data == b'\x00' + b'\x01' * 32 + b'\x02' * 32 + b'\x00'
        assert signature.rsv == b'\x01' * 32 + b'\x02' * 32 + b'\x00'
        assert Signature.from_wire(data) == signature


class TestVAABody:

    def test_body(self) -> None:
        data = BODY.to_wire()

        assert data == (
            (1_700_000_000).to_bytes(4, byteorder='big')
            + (7).to_bytes(4, byteorder='big')
            + (2).to_bytes(2, byteorder='big')
            + BODY.emitter_address
            + (1234).to_bytes(8, byteorder='big')
            + b'\x0f'
            + b'payload'
        )
        assert len(data) == BODY.wire_length() == 58
        assert VAABody.from_wire(data) == BODY
        assert VAABody.from_wire(data[:51]).payload == b''

    def test_hashes(self) -> None:
        assert BODY.hash == keccak256(BODY.to_wire())
        assert BODY.digest == keccak256(keccak256(BODY.to_wire()))
        assert BODY.hash != BODY.digest


class TestVAA:

    def test_encoding(self) -> None:
        vaa = make_vaa(2)
        data = vaa.to_wire()

        assert data[:6] == b'\x01' + (3).to_bytes(4, byteorder='big') + b'\x02'
        assert data[6:6 + 2 * SIGNATURE_SIZE] == make_signature(0).to_wire() + make_signature(1).to_wire()
        assert data[6 + 2 * SIGNATURE_SIZE:] == BODY.to_wire()
        assert len(data) == vaa.wire_length()

    def test_decoding(self) -> None:
        vaa = make_vaa(2)
        data = vaa.to_wire()

        decoded = VAA.from_wire(data)
        assert decoded == vaa
        assert decoded.version == 1
        assert decoded.guardian_set_index == 3
        assert [signature.guardian_index for signature in decoded.signatures] == [0, 1]
        assert decoded.body.emitter_address == BODY.emitter_address
        assert decoded.payload == b'payload'

        assert VAA.from_wire(BytesIO(data)) == vaa
        assert VAA.from_wire(bytearray(data)) == vaa
        assert parse_vaa(data) == vaa

        # The payload extends to the end of the data
        assert VAA.from_wire(data + b' and more').payload == b'payload and more'

    def test_hashes(self) -> None:
        vaa = make_vaa(1)

        assert vaa.signed_body() == vaa.to_wire()[6 + SIGNATURE_SIZE:]
        assert vaa.hash == keccak256(vaa.signed_body()) == BODY.hash
        assert vaa.digest == keccak256(vaa.hash) == BODY.digest

        # The signatures are not part of the signed data
        assert make_vaa(3).hash == vaa.hash

    def test_signature_count(self) -> None:
        data = make_vaa(MAX_SIGNATURES).to_wire()
        assert len(VAA.from_wire(data).signatures) == MAX_SIGNATURES

        # The count is checked before the signatures are read
        header = b'\x01' + (3).to_bytes(4, byteorder='big') + bytes([MAX_SIGNATURES + 1])
        with pytest.raises(TooManySignaturesError, match='A VAA can have at most 19 signatures'):
            VAA.from_wire(header)
        with pytest.raises(DecodeError):
            VAA.from_wire(header + b''.join(make_signature(index).to_wire() for index in range(MAX_SIGNATURES + 1)) + BODY.to_wire())

        with pytest.raises(ValueError, match='can have at most 19 items'):
            make_vaa(MAX_SIGNATURES + 1)

    def test_truncated_data(self) -> None:
        data = make_vaa(2).to_wire()
        fixed_length = 6 + 2 * SIGNATURE_SIZE + 51  # everything but the payload

        for length in range(fixed_length):
            with pytest.raises(OutOfBoundsError):
                VAA.from_wire(data[:length])
        assert VAA.from_wire(data[:fixed_length]).payload == b''

    def test_version(self) -> None:
        data = make_vaa(1).to_wire()

        # The version is reported, not validated
        assert VAA.from_wire(b'\x02' + data[1:]).version == 2

    def test_immutable(self) -> None:
        vaa = VAA.from_wire(make_vaa(2).to_wire())
        digest = vaa.digest

        with pytest.raises(AttributeError, match="Attribute 'guardian_set_index' of 'VAA' object is read-only"):
            vaa.guardian_set_index = 7
        with pytest.raises(AttributeError, match="Attribute 'payload' of 'VAABody' object is read-only"):
            vaa.body.payload = b'tampered'
        with pytest.raises(AttributeError, match="Attribute 'signatures' of 'VAA' object is read-only"):
            vaa.signatures = [make_signature(0)] * 20
        with pytest.raises(AttributeError):
            vaa.signatures.extend([make_signature(0)] * 20)  # type: ignore[attr-defined]

        assert isinstance(vaa.signatures, tuple)
        assert len(vaa.signatures) == 2
        assert vaa.digest == digest
        assert vaa == make_vaa(2)
        assert hash(vaa) == hash(make_vaa(2))
        assert VAA.from_wire(vaa.to_wire()) == vaa
