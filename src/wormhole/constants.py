# SPDX-FileCopyrightText: 2026-present The wormhole-messages contributors
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from typing import Final

__all__ = (  # noqa: RUF022
    'MAX_GUARDIAN_SET_SIZE',
    'MAX_SIGNATURES',
    'MAX_VAA_KEYS',

    'DELIVERY_PAYLOAD_ID',
    'REDELIVERY_PAYLOAD_ID',

    'VAA_KEY_VERSION',
    'EXECUTION_PARAMETERS_VERSION',
    'DELIVERY_OVERRIDE_VERSION',

    'ADDRESS_SIZE',
    'UNIVERSAL_ADDRESS_SIZE',

    'quorum',
)


MAX_GUARDIAN_SET_SIZE: Final = 19
MAX_SIGNATURES: Final = MAX_GUARDIAN_SET_SIZE  # A VAA can hold at most one signature per guardian
MAX_VAA_KEYS: Final = 2**8 - 1

DELIVERY_PAYLOAD_ID: Final = 1
REDELIVERY_PAYLOAD_ID: Final = 2

VAA_KEY_VERSION: Final = 1
EXECUTION_PARAMETERS_VERSION: Final = 1
DELIVERY_OVERRIDE_VERSION: Final = 1

ADDRESS_SIZE: Final = 20            # guardian (ethereum style) addresses
UNIVERSAL_ADDRESS_SIZE: Final = 32  # chain agnostic (left zero padded) addresses


def quorum(guardian_count: int) -> int:
    """Return the minimum number of signatures needed from a guardian set with guardian_count members"""
    if guardian_count < 0:
        raise ValueError(f'Invalid guardian set size: {guardian_count!r}')
    return guardian_count * 2 // 3 + 1
