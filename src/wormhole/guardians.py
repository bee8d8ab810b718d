# SPDX-FileCopyrightText: 2026-present The wormhole-messages contributors
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from collections.abc import Buffer, Callable, Iterable
from dataclasses import dataclass

from coincurve import PrivateKey, PublicKey

from wormhole.constants import ADDRESS_SIZE, MAX_GUARDIAN_SET_SIZE, quorum
from wormhole.messages.datamodel import Bytes32
from wormhole.messages.exceptions import VerificationError, VerificationFailure
from wormhole.vaa import VAA, Signature, VAABody, keccak256

__all__ = (  # noqa: RUF022
    'GuardianSet',
    'SignerRecoverer',

    'digest',
    'guardian_address',
    'recover_signer',
    'verify',

    'sign',
    'sign_vaa',
)


type SignerRecoverer = Callable[[bytes, Signature], bytes]


@dataclass(frozen=True, slots=True)
class GuardianSet:
    """The ordered addresses of the guardians that make up the guardian set with the given index"""

    index: int
    addresses: tuple[bytes, ...]

    def __post_init__(self) -> None:
        if not 0 <= self.index < 2**32:
            raise ValueError(f'Invalid guardian set index: {self.index!r}')
        addresses = tuple(bytes(address) for address in self.addresses)
        if len(addresses) > MAX_GUARDIAN_SET_SIZE:
            raise ValueError(f'A guardian set can have at most {MAX_GUARDIAN_SET_SIZE} guardians (got {len(addresses)})')
        for address in addresses:
            if len(address) != ADDRESS_SIZE:
                raise ValueError(f'Guardian addresses must have {ADDRESS_SIZE} bytes: {address.hex()!r}')
        object.__setattr__(self, 'addresses', addresses)

    def __len__(self) -> int:
        return len(self.addresses)

    @property
    def quorum(self) -> int:
        return quorum(len(self.addresses))


def digest(vaa: VAA | VAABody) -> bytes:
    """Return the 32 bytes digest that the guardians sign for the VAA"""
    return vaa.digest


def guardian_address(public_key: PublicKey | Buffer) -> bytes:
    """Return the ethereum style address of the public key (last 20 bytes of the keccak-256 hash of the key)"""
    if not isinstance(public_key, PublicKey):
        public_key = PublicKey(bytes(public_key))
    return keccak256(public_key.format(compressed=False)[1:])[-ADDRESS_SIZE:]


def recover_signer(digest: bytes, signature: Signature) -> bytes:
    """
    Return the address of the key that produced the signature for digest.

    Raises ValueError if the public key cannot be recovered from the
    signature. Signer recoverers used with verify() must follow the same
    convention.
    """
    if signature.recovery_id > 3:
        raise ValueError(f'Invalid signature recovery id: {signature.recovery_id}')
    public_key = PublicKey.from_signature_and_message(signature.rsv, digest, hasher=None)
    return guardian_address(public_key)


def verify(vaa: VAA, guardian_set: GuardianSet, *, recover: SignerRecoverer = recover_signer) -> None:
    """
    Check that the VAA is signed by a quorum of the guardian set.

    The signatures must be ordered by guardian index, without duplicates,
    and each must recover to the address of the guardian it names. Raises
    VerificationError with the reason of the first failed check.
    """
    if vaa.guardian_set_index != guardian_set.index:
        raise VerificationError(VerificationFailure.WrongGuardianSet, f'the VAA is signed by guardian set {vaa.guardian_set_index}, expected {guardian_set.index}')
    if len(vaa.signatures) < guardian_set.quorum:
        raise VerificationError(VerificationFailure.QuorumNotMet, f'got {len(vaa.signatures)} signatures, need at least {guardian_set.quorum}')

    vaa_digest = digest(vaa)
    previous_index = -1
    for signature in vaa.signatures:
        guardian_index = signature.guardian_index
        if guardian_index <= previous_index:
            raise VerificationError(VerificationFailure.DuplicateOrOutOfOrderGuardian, f'guardian index {guardian_index} follows guardian index {previous_index}')
        previous_index = guardian_index
        if guardian_index >= len(guardian_set):
            raise VerificationError(VerificationFailure.UnknownSigner, f'guardian index {guardian_index} is not in a set of {len(guardian_set)} guardians')
        try:
            signer = recover(vaa_digest, signature)
        except ValueError as exc:
            raise VerificationError(VerificationFailure.UnknownSigner, f'signature of guardian {guardian_index}: {exc}') from exc
        if signer != guardian_set.addresses[guardian_index]:
            raise VerificationError(VerificationFailure.UnknownSigner, f'signature of guardian {guardian_index} was made by {signer.hex()}')


# Signing

def sign(digest: bytes, secret: PrivateKey | Buffer, guardian_index: int) -> Signature:
    """Sign the digest with the secret key of the guardian with the given index"""
    private_key = secret if isinstance(secret, PrivateKey) else PrivateKey(bytes(secret))
    rsv = private_key.sign_recoverable(digest, hasher=None)
    return Signature(guardian_index=guardian_index, r=Bytes32(rsv[:32]), s=Bytes32(rsv[32:64]), recovery_id=rsv[64])


def sign_vaa(body: VAABody, guardian_set_index: int, secrets: Iterable[tuple[int, PrivateKey | Buffer]]) -> VAA:
    """Build a VAA for body, signed by the (guardian index, secret key) pairs, in the given order"""
    body_digest = body.digest
    signatures = [sign(body_digest, secret, guardian_index) for guardian_index, secret in secrets]
    return VAA(guardian_set_index=guardian_set_index, signatures=signatures, body=body)
