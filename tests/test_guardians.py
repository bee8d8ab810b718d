# SPDX-FileCopyrightText: 2026-present The wormhole-messages contributors
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import pytest
from coincurve import PrivateKey
from wormhole.constants import quorum
from wormhole.guardians import GuardianSet, digest, guardian_address, recover_signer, sign, sign_vaa, verify
from wormhole.messages.datamodel import Bytes32, UniversalAddress
from wormhole.messages.exceptions import VerificationError, VerificationFailure
from wormhole.vaa import VAA, Signature, VAABody

BODY = VAABody(
    timestamp=1_700_000_000,
    nonce=0,
    emitter_chain=2,
    emitter_address=UniversalAddress.from_native(bytes.fromhex('27428dd2d3dd32a4d7f7c497eaaa23130d894911')),
    sequence=1,
    consistency_level=1,
    payload=b'hello',
)

KEYS = [PrivateKey((index + 1).to_bytes(32, byteorder='big')) for index in range(4)]
OUTSIDER = PrivateKey((1000).to_bytes(32, byteorder='big'))

GUARDIAN_SET = GuardianSet(index=3, addresses=tuple(guardian_address(key.public_key) for key in KEYS))


def fake_signature(guardian_index: int) -> Signature:
    return Signature(guardian_index=guardian_index, r=Bytes32(bytes(32)), s=Bytes32(bytes(32)), recovery_id=0)


class TestQuorum:

    def test_quorum(self) -> None:
        assert quorum(0) == 1
        assert quorum(1) == 1
        assert quorum(3) == 3
        assert quorum(4) == 3
        assert quorum(10) == 7
        assert quorum(13) == 9
        assert quorum(19) == 13

        with pytest.raises(ValueError, match='Invalid guardian set size'):
            quorum(-1)


class TestGuardianSet:

    def test_guardian_set(self) -> None:
        addresses = [bytes([index]) * 20 for index in range(19)]
        guardian_set = GuardianSet(index=0, addresses=addresses)  # type: ignore[arg-type]

        assert len(guardian_set) == 19
        assert guardian_set.quorum == 13
        assert guardian_set.addresses == tuple(addresses)
        assert GuardianSet(index=1, addresses=()).quorum == 1

        with pytest.raises(AttributeError):
            guardian_set.index = 1  # type: ignore[misc]

    def test_validation(self) -> None:
        with pytest.raises(ValueError, match='A guardian set can have at most 19 guardians'):
            GuardianSet(index=0, addresses=tuple(bytes([index]) * 20 for index in range(20)))
        with pytest.raises(ValueError, match='Guardian addresses must have 20 bytes'):
            GuardianSet(index=0, addresses=(bytes(19),))
        with pytest.raises(ValueError, match='Invalid guardian set index'):
            GuardianSet(index=-1, addresses=())
        with pytest.raises(ValueError, match='Invalid guardian set index'):
            GuardianSet(index=2**32, addresses=())


class TestSigning:

    def test_guardian_address(self) -> None:
        key = PrivateKey((1).to_bytes(32, byteorder='big'))

        assert guardian_address(key.public_key) == bytes.fromhex('7e5f4552091a69125d5dfcb7b8c2659029395bdf')
        assert guardian_address(key.public_key.format()) == guardian_address(key.public_key)
        assert guardian_address(key.public_key.format(compressed=False)) == guardian_address(key.public_key)

    def test_sign_and_recover(self) -> None:
        signature = sign(BODY.digest, KEYS[2], 2)

        assert signature.guardian_index == 2
        assert signature.recovery_id in {0, 1}
        assert len(signature.rsv) == 65
        assert recover_signer(BODY.digest, signature) == GUARDIAN_SET.addresses[2]
        assert recover_signer(BODY.hash, signature) != GUARDIAN_SET.addresses[2]

        # Secrets can also be given as raw bytes
        assert sign(BODY.digest, KEYS[2].secret, 2) == signature

    def test_invalid_recovery_id(self) -> None:
        signature = sign(BODY.digest, KEYS[0], 0)

        with pytest.raises(ValueError, match='Invalid signature recovery id'):
            recover_signer(BODY.digest, Signature(guardian_index=0, r=signature.r, s=signature.s, recovery_id=5))

    def test_digest(self) -> None:
        vaa = sign_vaa(BODY, 3, [(0, KEYS[0])])

        assert digest(vaa) == digest(BODY) == BODY.digest
        assert vaa.guardian_set_index == 3
        assert vaa.body == BODY


class TestVerification:

    def test_valid_vaa(self) -> None:
        vaa = sign_vaa(BODY, 3, [(0, KEYS[0]), (1, KEYS[1]), (3, KEYS[3])])

        verify(vaa, GUARDIAN_SET)
        verify(VAA.from_wire(vaa.to_wire()), GUARDIAN_SET)

        # More than the quorum is also fine
        verify(sign_vaa(BODY, 3, enumerate(KEYS)), GUARDIAN_SET)

    def test_wrong_guardian_set(self) -> None:
        vaa = sign_vaa(BODY, 3, enumerate(KEYS))

        with pytest.raises(VerificationError) as exc_info:
            verify(vaa, GuardianSet(index=4, addresses=GUARDIAN_SET.addresses))
        assert exc_info.value.reason is VerificationFailure.WrongGuardianSet
        assert str(exc_info.value).startswith('wrong guardian set: ')

    def test_quorum_not_met(self) -> None:
        vaa = sign_vaa(BODY, 3, [(0, KEYS[0]), (1, KEYS[1])])

        with pytest.raises(VerificationError) as exc_info:
            verify(vaa, GUARDIAN_SET)
        assert exc_info.value.reason is VerificationFailure.QuorumNotMet

        with pytest.raises(VerificationError) as exc_info:
            verify(VAA(guardian_set_index=0, body=BODY), GuardianSet(index=0, addresses=()))
        assert exc_info.value.reason is VerificationFailure.QuorumNotMet

    def test_guardian_order(self) -> None:
        duplicate = sign_vaa(BODY, 3, [(0, KEYS[0]), (0, KEYS[0]), (1, KEYS[1])])
        out_of_order = sign_vaa(BODY, 3, [(1, KEYS[1]), (0, KEYS[0]), (2, KEYS[2])])

        for vaa in (duplicate, out_of_order):
            with pytest.raises(VerificationError) as exc_info:
                verify(vaa, GUARDIAN_SET)
            assert exc_info.value.reason is VerificationFailure.DuplicateOrOutOfOrderGuardian

    def test_unknown_signer(self) -> None:
        outsider = sign_vaa(BODY, 3, [(0, KEYS[0]), (1, KEYS[1]), (2, OUTSIDER)])
        misplaced = sign_vaa(BODY, 3, [(0, KEYS[0]), (1, KEYS[2]), (2, KEYS[1])])
        out_of_range = sign_vaa(BODY, 3, [(0, KEYS[0]), (1, KEYS[1]), (4, KEYS[3])])

        for vaa in (outsider, misplaced, out_of_range):
            with pytest.raises(VerificationError) as exc_info:
                verify(vaa, GUARDIAN_SET)
            assert exc_info.value.reason is VerificationFailure.UnknownSigner

    def test_tampered_body(self) -> None:
        vaa = sign_vaa(BODY, 3, [(0, KEYS[0]), (1, KEYS[1]), (2, KEYS[2])])
        tampered_body = VAABody(
            timestamp=BODY.timestamp,
            nonce=BODY.nonce,
            emitter_chain=BODY.emitter_chain,
            emitter_address=BODY.emitter_address,
            sequence=BODY.sequence,
            consistency_level=BODY.consistency_level,
            payload=b'goodbye',
        )
        tampered = VAA(guardian_set_index=3, signatures=vaa.signatures, body=tampered_body)

        with pytest.raises(VerificationError) as exc_info:
            verify(tampered, GUARDIAN_SET)
        assert exc_info.value.reason is VerificationFailure.UnknownSigner

    def test_unrecoverable_signature(self) -> None:
        vaa = sign_vaa(BODY, 3, [(0, KEYS[0]), (1, KEYS[1]), (2, KEYS[2])])
        signature = vaa.signatures[2]
        broken = VAA(
            guardian_set_index=3,
            signatures=[*vaa.signatures[:2], Signature(guardian_index=2, r=signature.r, s=signature.s, recovery_id=7)],
            body=BODY,
        )

        with pytest.raises(VerificationError) as exc_info:
            verify(broken, GUARDIAN_SET)
        assert exc_info.value.reason is VerificationFailure.UnknownSigner

    def test_check_order(self) -> None:
        # The guardian set index is checked first, then the signature count, then the signatures
        vaa = sign_vaa(BODY, 3, [(0, KEYS[0]), (0, KEYS[0])])

        with pytest.raises(VerificationError) as exc_info:
            verify(vaa, GuardianSet(index=5, addresses=GUARDIAN_SET.addresses))
        assert exc_info.value.reason is VerificationFailure.WrongGuardianSet

        with pytest.raises(VerificationError) as exc_info:
            verify(vaa, GUARDIAN_SET)
        assert exc_info.value.reason is VerificationFailure.QuorumNotMet

        vaa = sign_vaa(BODY, 3, [(0, KEYS[0]), (2, OUTSIDER), (2, KEYS[2])])
        with pytest.raises(VerificationError) as exc_info:
            verify(vaa, GUARDIAN_SET)
        assert exc_info.value.reason is VerificationFailure.UnknownSigner

    def test_signer_recoverer(self) -> None:
        addresses = tuple(bytes([index + 1]) * 20 for index in range(10))
        guardian_set = GuardianSet(index=0, addresses=addresses)

        def recover(_: bytes, signature: Signature) -> bytes:
            return addresses[signature.guardian_index]

        def recover_with_error(_: bytes, __: Signature) -> bytes:
            raise ValueError('cannot recover')

        assert guardian_set.quorum == 7

        verify(VAA(guardian_set_index=0, signatures=[fake_signature(index) for index in range(7)], body=BODY), guardian_set, recover=recover)
        verify(VAA(guardian_set_index=0, signatures=[fake_signature(index) for index in range(10)], body=BODY), guardian_set, recover=recover)

        with pytest.raises(VerificationError) as exc_info:
            verify(VAA(guardian_set_index=0, signatures=[fake_signature(index) for index in range(6)], body=BODY), guardian_set, recover=recover)
        assert exc_info.value.reason is VerificationFailure.QuorumNotMet

        with pytest.raises(VerificationError) as exc_info:
            verify(VAA(guardian_set_index=0, signatures=[fake_signature(index) for index in range(7)], body=BODY), guardian_set, recover=recover_with_error)
        assert exc_info.value.reason is VerificationFailure.UnknownSigner

    def test_full_guardian_set(self) -> None:
        addresses = tuple(bytes([index + 1]) * 20 for index in range(19))
        guardian_set = GuardianSet(index=0, addresses=addresses)

        def recover(_: bytes, signature: Signature) -> bytes:
            return addresses[signature.guardian_index]

        verify(VAA(guardian_set_index=0, signatures=[fake_signature(index) for index in range(6, 19)], body=BODY), guardian_set, recover=recover)

        with pytest.raises(VerificationError) as exc_info:
            verify(VAA(guardian_set_index=0, signatures=[fake_signature(index) for index in range(12)], body=BODY), guardian_set, recover=recover)
        assert exc_info.value.reason is VerificationFailure.QuorumNotMet
