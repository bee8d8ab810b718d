# SPDX-FileCopyrightText: 2026-present The wormhole-messages contributors
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Interpretation of the events emitted by the relayer contracts.

The events are already committed on chain when they are seen, so they are
never rejected. Interpreting a delivery event always produces a result and
the parts of it that cannot be decoded are logged and left out.
"""

import logging
from collections.abc import Buffer, Iterable, Sequence
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import NamedTuple, Self

from wormhole.messages import DeliveryInstruction, DeliveryOverride, ForwardFailure, parse_payload_type
from wormhole.messages.datamodel import RelayerPayloadId, UniversalAddress
from wormhole.messages.exceptions import TagMismatchError

__all__ = (  # noqa: RUF022
    'DeliveryStatus',
    'RefundStatus',

    'DeliveryEvent',
    'DeliveryTargetInfo',
    'TargetChainStatus',
    'MessagePublished',

    'delivery_status',
    'interpret_delivery_event',
    'interpret_delivery_events',
    'summarize_target_chain',

    'parse_relayer_log',
    'find_relayer_log',
)


log = logging.getLogger(__name__)


FORWARD_FAILURE_FALLBACK = 'Delivery Provider failed in performing forward'


class StringEnum(StrEnum):
    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}.{self.name}'


class DeliveryStatus(StringEnum):
    DeliverySuccess = 'Delivery Success'
    ReceiverFailure = 'Receiver Failure'
    ForwardRequestFailure = 'Forward Request Failure'
    ForwardRequestSuccess = 'Forward Request Success'
    ThisShouldNeverHappen = 'This should never happen. Contact Support.'
    DeliveryDidntHappenWithinRange = "Delivery didn't happen within given block range"


class RefundStatus(IntEnum):
    RefundSent = 0
    RefundFail = 1
    CrossChainRefundSent = 2
    CrossChainRefundSentMaximumBudget = 3
    CrossChainRefundFailProviderNotSupported = 4
    CrossChainRefundFailNotEnough = 5

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}.{self.name}'


type EventBytes = Buffer | str  # raw bytes or their 0x prefixed hex representation


class DeliveryEvent(NamedTuple):
    """The positional fields of a delivery event, in the order the relayer contract emits them"""

    recipient_contract: EventBytes
    source_chain: int
    sequence: int
    delivery_vaa_hash: EventBytes
    status: int
    gas_used: int
    refund_status: int
    additional_status_info: int | EventBytes
    overrides_info: EventBytes
    transaction_hash: str | None = None

    @classmethod
    def from_args(cls, args: Sequence[object], *, transaction_hash: str | None = None) -> Self:
        if len(args) != 9:
            raise ValueError(f'A delivery event has 9 fields, got {len(args)}')
        return cls(*args, transaction_hash=transaction_hash)  # type: ignore[arg-type]


@dataclass(frozen=True, slots=True, kw_only=True)
class DeliveryTargetInfo:
    status: DeliveryStatus
    transaction_hash: str | None
    vaa_hash: bytes | None
    source_chain: int | None
    source_sequence: int | None
    gas_used: int
    refund_status: RefundStatus | int
    leftover_fee: int | None = None  # only for forward request successes
    revert_string: str | None = None  # only for receiver and forward request failures
    overrides: DeliveryOverride | None = None
    message: str | None = None


@dataclass(frozen=True, slots=True)
class TargetChainStatus:
    chain_id: int
    events: list[DeliveryTargetInfo] = field(default_factory=list)


class MessagePublished(NamedTuple):
    """The fields of a message published by the core contract"""

    sender: EventBytes
    sequence: int
    nonce: int
    payload: EventBytes
    consistency_level: int


# Conversions of event fields

def _as_bytes(value: EventBytes) -> bytes:
    match value:
        case str():
            return bytes.fromhex(value.removeprefix('0x'))
        case Buffer():
            return bytes(value)
        case _:
            raise TypeError(f'Expected bytes or a hex string, got {value.__class__.__qualname__!r}')


def _as_int(value: int | EventBytes) -> int:
    match value:
        case int():
            return int(value)
        case str():
            return int(value, 0)
        case Buffer():
            return int.from_bytes(value, byteorder='big')
        case _:
            raise TypeError(f'Expected an integer, got {value.__class__.__qualname__!r}')


def _revert_string(value: EventBytes) -> str:
    match value:
        case str():
            return value
        case Buffer():
            return bytes(value).decode('utf-8', errors='replace')
        case _:
            raise TypeError(f'Expected bytes or a string, got {value.__class__.__qualname__!r}')


def _forward_failure_reason(value: EventBytes) -> str:
    try:
        return ForwardFailure.from_wire(_as_bytes(value)).reason
    except (ValueError, TypeError) as exc:
        log.warning('Cannot decode the forward failure reason: %s', exc)
        return FORWARD_FAILURE_FALLBACK


def _delivery_override(value: EventBytes) -> DeliveryOverride | None:
    try:
        data = _as_bytes(value)
        return DeliveryOverride.from_wire(data) if data else None
    except (ValueError, TypeError) as exc:
        log.warning('Cannot decode the delivery override: %s', exc)
        return None


def _refund_status(value: int) -> RefundStatus | int:
    try:
        return RefundStatus(value)
    except ValueError:
        log.warning('Unknown refund status: %r', value)
        return value


# Delivery events

def delivery_status(code: int) -> DeliveryStatus:
    match code:
        case 0:
            return DeliveryStatus.DeliverySuccess
        case 1:
            return DeliveryStatus.ReceiverFailure
        case 2:
            return DeliveryStatus.ForwardRequestFailure
        case 3:
            return DeliveryStatus.ForwardRequestSuccess
        case _:
            return DeliveryStatus.ThisShouldNeverHappen


def interpret_delivery_event(event: DeliveryEvent) -> DeliveryTargetInfo:
    """Turn the raw fields of a delivery event into the outcome of the delivery"""
    status = delivery_status(event.status)
    leftover_fee = None
    revert_string = None

    match status:
        case DeliveryStatus.ForwardRequestSuccess:
            try:
                leftover_fee = _as_int(event.additional_status_info)
            except (ValueError, TypeError) as exc:
                log.warning('Cannot decode the leftover fee used for forward: %s', exc)
        case DeliveryStatus.ReceiverFailure:
            try:
                revert_string = _revert_string(event.additional_status_info)  # type: ignore[arg-type]
            except TypeError as exc:
                log.warning('Cannot decode the receiver revert string: %s', exc)
        case DeliveryStatus.ForwardRequestFailure:
            revert_string = _forward_failure_reason(event.additional_status_info)  # type: ignore[arg-type]
        case DeliveryStatus.ThisShouldNeverHappen:
            log.warning('Unknown delivery status %r in transaction %s', event.status, event.transaction_hash)

    try:
        vaa_hash = _as_bytes(event.delivery_vaa_hash)
    except (ValueError, TypeError) as exc:
        log.warning('Cannot decode the delivery VAA hash: %s', exc)
        vaa_hash = None

    return DeliveryTargetInfo(
        status=status,
        transaction_hash=event.transaction_hash,
        vaa_hash=vaa_hash,
        source_chain=event.source_chain,
        source_sequence=event.sequence,
        gas_used=event.gas_used,
        refund_status=_refund_status(event.refund_status),
        leftover_fee=leftover_fee,
        revert_string=revert_string,
        overrides=_delivery_override(event.overrides_info),
    )


def interpret_delivery_events(events: Iterable[DeliveryEvent]) -> list[DeliveryTargetInfo]:
    return [interpret_delivery_event(event) for event in events]


def summarize_target_chain(
    chain_id: int,
    events: Iterable[DeliveryEvent],
    *,
    source_chain: int,
    sequence: int,
    block_range: tuple[int | str, int | str],
    chain_name: str | None = None,
) -> TargetChainStatus:
    """
    Return the status of the delivery on the target chain.

    The events are the delivery events found on the target chain in the
    given block range. When there are none, the status holds a single entry
    that says the delivery didn't happen within the block range.
    """
    results = interpret_delivery_events(events)
    if not results:
        chain = f'{chain_name} (Chain {chain_id})' if chain_name else f'Chain {chain_id}'
        start, end = block_range
        results.append(DeliveryTargetInfo(
            status=DeliveryStatus.DeliveryDidntHappenWithinRange,
            transaction_hash=None,
            vaa_hash=None,
            source_chain=source_chain,
            source_sequence=sequence,
            gas_used=0,
            refund_status=RefundStatus.RefundFail,
            message=f"Delivery didn't happen on {chain} within blocks {start} to {end}.",
        ))
    return TargetChainStatus(chain_id=chain_id, events=results)


# Core contract messages

def parse_relayer_log(event: MessagePublished) -> DeliveryInstruction:
    """Decode the delivery instruction published by the relayer contract"""
    payload = _as_bytes(event.payload)
    payload_type = parse_payload_type(payload)
    if payload_type is not RelayerPayloadId.delivery:
        raise TagMismatchError(f'Expected a delivery instruction in the relayer log, got a {payload_type.name} instruction')
    return DeliveryInstruction.from_wire(payload)


def find_relayer_log(events: Iterable[MessagePublished], emitter_address: EventBytes, index: int = 0) -> MessagePublished:
    """Return the index-th message published by the emitter from the messages published in a transaction"""
    events = list(events)
    if not events:
        raise LookupError('No core contract messages found for this transaction')
    emitter = UniversalAddress.from_native(_as_bytes(emitter_address))
    emitted = [event for event in events if UniversalAddress.from_native(_as_bytes(event.sender)) == emitter]
    if not emitted:
        raise LookupError('No relayer contract messages found for this transaction')
    if not 0 <= index < len(emitted):
        raise LookupError(f'Specified delivery index is out of range ({index} not in 0..{len(emitted) - 1})')
    return emitted[index]

