# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from enum import StrEnum

__all__ = (  # noqa: RUF022
    'DecodeError',
    'OutOfBoundsError',
    'TagMismatchError',
    'InvalidVariantError',
    'LengthMismatchError',
    'TooManySignaturesError',

    'VerificationFailure',
    'VerificationError',
)


class DecodeError(ValueError):
    """Base class for errors raised while decoding wire data."""


class OutOfBoundsError(DecodeError):
    """Raised when a read needs more data than the buffer holds."""


class TagMismatchError(DecodeError):
    """Raised when a payload id or a structure version is not the expected one."""


class InvalidVariantError(DecodeError):
    """Raised when a variant tag does not name a known variant."""


class LengthMismatchError(DecodeError):
    """Raised when data is left in the buffer after a complete decode."""


class TooManySignaturesError(DecodeError):
    """Raised when a VAA declares more signatures than a guardian set can hold."""


class VerificationFailure(StrEnum):
    DuplicateOrOutOfOrderGuardian = 'duplicate or out of order guardian'
    UnknownSigner = 'unknown signer'
    QuorumNotMet = 'quorum not met'
    WrongGuardianSet = 'wrong guardian set'

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}.{self.name}'


class VerificationError(Exception):
    """Raised when a VAA fails the guardian signatures verification."""

    def __init__(self, reason: VerificationFailure, detail: str = '') -> None:
        super().__init__(reason, detail)
        self.reason = reason
        self.detail = detail

    def __str__(self) -> str:
        return f'{self.reason}: {self.detail}' if self.detail else str(self.reason)
