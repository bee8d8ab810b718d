# SPDX-FileCopyrightText: 2026-present The wormhole-messages contributors
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
The VAA (verified action approval) envelope.

   A VAA is an observation of a message emitted on some chain, signed by
   the guardians of the guardian set that was active when it was observed.
   All integers are represented in network byte order.

     +-----------------------------------------------------+
     |  version (u8)  |  guardian set index (u32)           |
     +-----------------------------------------------------+
     |  signature count (u8)  |  signatures (66 bytes each) |
     +-----------------------------------------------------+
     |  body                                               |
     +-----------------------------------------------------+

   The body holds the timestamp, nonce, emitter chain, emitter address,
   sequence and consistency level of the observation, followed by the
   payload, which extends to the end of the data and has no length prefix.
   Only the body is signed, the guardians sign the double keccak-256 hash
   of it.

"""

from collections.abc import Buffer
from io import BytesIO
from typing import Final, Self

from Crypto.Hash import keccak

from wormhole.constants import MAX_SIGNATURES
from wormhole.messages.cursor import ByteCursor
from wormhole.messages.datamodel import Bytes32, RemainderAdapter, UInt8Adapter, UInt16Adapter, UInt32Adapter, UInt64Adapter, UniversalAddress, WireData
from wormhole.messages.elements import AnnotatedStructure, Element, ListElement
from wormhole.messages.exceptions import TooManySignaturesError

__all__ = (  # noqa: RUF022
    'SIGNATURE_SIZE',

    'keccak256',

    'Signature',
    'VAABody',
    'VAA',

    'parse_vaa',
)


SIGNATURE_SIZE: Final = 66


def keccak256(data: Buffer) -> bytes:
    return keccak.new(digest_bits=256, data=bytes(data)).digest()


class Signature(AnnotatedStructure):
    guardian_index: Element[int] = Element(int, adapter=UInt8Adapter)
    r: Element[Bytes32] = Element(Bytes32)
    s: Element[Bytes32] = Element(Bytes32)
    recovery_id: Element[int] = Element(int, adapter=UInt8Adapter)

    @property
    def rsv(self) -> bytes:
        """The signature in the 65 bytes r || s || recovery id form"""
        return self.r + self.s + bytes([self.recovery_id])


class VAABody(AnnotatedStructure):
    timestamp: Element[int] = Element(int, adapter=UInt32Adapter)
    nonce: Element[int] = Element(int, adapter=UInt32Adapter)
    emitter_chain: Element[int] = Element(int, adapter=UInt16Adapter)
    emitter_address: Element[UniversalAddress] = Element(UniversalAddress)
    sequence: Element[int] = Element(int, adapter=UInt64Adapter)
    consistency_level: Element[int] = Element(int, adapter=UInt8Adapter)
    payload: Element[bytes] = Element(bytes, default=b'', adapter=RemainderAdapter)

    @property
    def hash(self) -> bytes:
        return keccak256(self.to_wire())

    @property
    def digest(self) -> bytes:
        return keccak256(self.hash)


class VAA(AnnotatedStructure):
    version: Element[int] = Element(int, default=1, adapter=UInt8Adapter)
    guardian_set_index: Element[int] = Element(int, adapter=UInt32Adapter)
    signatures: ListElement[Signature] = ListElement(Signature, default=(), maxcount=MAX_SIGNATURES)
    body: Element[VAABody] = Element(VAABody)

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        # The payload extends to the end of the data, so there is never anything left over to check.
        if isinstance(buffer, BytesIO):
            buffer = buffer.read()
        cursor = ByteCursor(buffer)

        version, offset = cursor.read_u8(0)
        guardian_set_index, offset = cursor.read_u32(offset)
        signature_count, offset = cursor.read_u8(offset)
        if signature_count > MAX_SIGNATURES:
            raise TooManySignaturesError(f'A VAA can have at most {MAX_SIGNATURES} signatures (got {signature_count})')

        signatures = []
        for _ in range(signature_count):
            guardian_index, offset = cursor.read_u8(offset)
            r, offset = cursor.read_bytes32(offset)
            s, offset = cursor.read_bytes32(offset)
            recovery_id, offset = cursor.read_u8(offset)
            signatures.append(Signature(guardian_index=guardian_index, r=Bytes32(r), s=Bytes32(s), recovery_id=recovery_id))

        timestamp, offset = cursor.read_u32(offset)
        nonce, offset = cursor.read_u32(offset)
        emitter_chain, offset = cursor.read_u16(offset)
        emitter_address, offset = cursor.read_bytes32(offset)
        sequence, offset = cursor.read_u64(offset)
        consistency_level, offset = cursor.read_u8(offset)
        payload, offset = cursor.read_remaining(offset)

        body = VAABody(
            timestamp=timestamp,
            nonce=nonce,
            emitter_chain=emitter_chain,
            emitter_address=UniversalAddress(emitter_address),
            sequence=sequence,
            consistency_level=consistency_level,
            payload=payload,
        )
        return cls(version=version, guardian_set_index=guardian_set_index, signatures=signatures, body=body)

    def signed_body(self) -> bytes:
        """Return the part of the VAA that is hashed and signed by the guardians"""
        return self.body.to_wire()

    @property
    def hash(self) -> bytes:
        """The keccak-256 hash of the body, which is how relayer messages refer to a VAA"""
        return self.body.hash

    @property
    def digest(self) -> bytes:
        """The double keccak-256 hash of the body, which is what the guardians sign"""
        return self.body.digest

    @property
    def payload(self) -> bytes:
        return self.body.payload


def parse_vaa(data: WireData) -> VAA:
    return VAA.from_wire(data)
