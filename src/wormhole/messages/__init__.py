# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Relayer message formats.

   The relayer messages are the payloads of the VAAs emitted by the relayer
   contract.  They are encoded using packed binary fields without padding
   and all integers are represented in network byte order.

   Each message starts with a one byte payload id that identifies the
   message type:

     +-------------+-------------------------+
     |  payload id |  message specific data  |
     +-------------+-------------------------+

   Variable length byte strings are prefixed with their length as a 32 bit
   integer and lists of VAA keys are prefixed with their item count as an
   8 bit integer.  The sub-structures that can evolve independently of the
   message that carries them (VAA keys, execution parameters and delivery
   overrides) start with a one byte version, which must match the single
   supported version.

   A message must use all the data it is decoded from.  Any data that is
   left over after the last field was read is an error.

"""

from collections.abc import Buffer, MutableMapping
from typing import ClassVar, Self

from wormhole.constants import DELIVERY_OVERRIDE_VERSION, EXECUTION_PARAMETERS_VERSION, MAX_VAA_KEYS, VAA_KEY_VERSION

from .datamodel import (
    Bytes32,
    ForwardFailureType,
    Gas,
    Opaque32Adapter,
    RelayerPayloadId,
    String32Adapter,
    UInt8Adapter,
    UInt16Adapter,
    UInt64Adapter,
    UniversalAddress,
    VaaKeyType,
    Wei,
    WireData,
)
from .elements import AnnotatedStructure, DependentElementSpec, Element, FieldDependentElement, ListElement, TaggedStructure
from .exceptions import InvalidVariantError

__all__ = (  # noqa: RUF022
    'VersionedStructure',

    'EmitterSequence',
    'VaaHash',
    'VaaKey',

    'ExecutionParameters',
    'ExecutionParametersAdapter',
    'DeliveryOverride',

    'RelayerMessage',
    'DeliveryInstruction',
    'RedeliveryInstruction',

    'ProviderFailed',
    'InsufficientFunds',
    'ForwardReverted',
    'ForwardFailure',

    'parse_payload_type',
    'decode_payload',
)


class VersionedStructure(TaggedStructure):
    _tag_description_ = 'version'

    def __init_subclass__(cls, *, version: int | None = None, **kw: object) -> None:
        super().__init_subclass__(tag=version, **kw)


# VAA keys

class EmitterSequence(AnnotatedStructure):
    chain_id: Element[int] = Element(int, adapter=UInt16Adapter)
    emitter_address: Element[UniversalAddress] = Element(UniversalAddress)
    sequence: Element[int] = Element(int, adapter=UInt64Adapter)


class VaaHash(Bytes32):
    pass


class VaaKey(VersionedStructure, version=VAA_KEY_VERSION):
    """A reference to a VAA, either by its emitter and sequence or by its hash"""

    _value_specification: ClassVar = DependentElementSpec[EmitterSequence | VaaHash, VaaKeyType](
        type_map={
            VaaKeyType.emitter_sequence: EmitterSequence,
            VaaKeyType.vaa_hash: VaaHash,
        },
    )

    type: Element[VaaKeyType] = Element(VaaKeyType)
    value: FieldDependentElement[EmitterSequence | VaaHash, VaaKeyType] = FieldDependentElement(control_field=type, specification=_value_specification)

    @classmethod
    def for_emitter_sequence(cls, chain_id: int, emitter_address: Buffer, sequence: int) -> Self:
        value = EmitterSequence(chain_id=chain_id, emitter_address=UniversalAddress(emitter_address), sequence=sequence)
        return cls(type=VaaKeyType.emitter_sequence, value=value)

    @classmethod
    def for_hash(cls, vaa_hash: Buffer) -> Self:
        return cls(type=VaaKeyType.vaa_hash, value=VaaHash(vaa_hash))


# Delivery parameters

class ExecutionParameters(VersionedStructure, version=EXECUTION_PARAMETERS_VERSION):
    gas_limit: Element[Gas] = Element(Gas)


class ExecutionParametersAdapter(Opaque32Adapter):
    """Length prefixed execution parameters, kept in their encoded form but required to decode"""

    @classmethod
    def from_wire(cls, buffer: WireData) -> bytes:
        data = super().from_wire(buffer)
        ExecutionParameters.from_wire(data)
        return data

    @classmethod
    def validate(cls, value: bytes, /) -> bytes:
        value = super().validate(value)
        ExecutionParameters.from_wire(value)
        return value


class DeliveryOverride(VersionedStructure, version=DELIVERY_OVERRIDE_VERSION):
    gas_limit: Element[Gas] = Element(Gas)
    maximum_refund: Element[Wei] = Element(Wei)
    receiver_value: Element[Wei] = Element(Wei)
    redelivery_hash: Element[Bytes32] = Element(Bytes32)


# Relayer messages

class RelayerMessage(TaggedStructure):
    # the payload id must be provided by the concrete message types

    _tag_description_ = 'payload id'
    _registry_: ClassVar[MutableMapping[RelayerPayloadId, type['RelayerMessage']]] = {}

    def __init_subclass__(cls, *, payload_id: RelayerPayloadId | None = None, **kw: object) -> None:
        super().__init_subclass__(tag=payload_id, **kw)
        if payload_id is not None and cls._registry_.setdefault(payload_id, cls) is not cls:
            raise TypeError(f'Payload id {payload_id!r} is already used by {cls._registry_[payload_id].__qualname__!r}')

    def __class_getitem__(cls, payload_id: int) -> type['RelayerMessage']:
        try:
            return cls._registry_[RelayerPayloadId(payload_id)]
        except (KeyError, ValueError) as exc:
            raise TypeError(f'Unknown relayer payload id {payload_id!r}') from exc


class DeliveryInstruction(RelayerMessage, payload_id=RelayerPayloadId.delivery):
    target_chain_id: Element[int] = Element(int, adapter=UInt16Adapter)
    target_address: Element[UniversalAddress] = Element(UniversalAddress)
    payload: Element[bytes] = Element(bytes, default=b'', adapter=Opaque32Adapter)
    requested_receiver_value: Element[Wei] = Element(Wei)
    extra_receiver_value: Element[Wei] = Element(Wei)
    execution_environment: Element[int] = Element(int, adapter=UInt8Adapter)
    encoded_execution_parameters: Element[bytes] = Element(bytes, adapter=ExecutionParametersAdapter)
    source_relay_provider: Element[UniversalAddress] = Element(UniversalAddress)
    sender_address: Element[UniversalAddress] = Element(UniversalAddress)
    vaa_keys: ListElement[VaaKey] = ListElement(VaaKey, default=(), maxcount=MAX_VAA_KEYS)

    @property
    def execution_parameters(self) -> ExecutionParameters:
        return ExecutionParameters.from_wire(self.encoded_execution_parameters)


class RedeliveryInstruction(RelayerMessage, payload_id=RelayerPayloadId.redelivery):
    delivery_vaa_key: Element[VaaKey] = Element(VaaKey)
    target_chain_id: Element[int] = Element(int, adapter=UInt16Adapter)
    new_requested_receiver_value: Element[Wei] = Element(Wei)
    new_extra_receiver_value: Element[Wei] = Element(Wei)
    new_encoded_execution_parameters: Element[bytes] = Element(bytes, adapter=ExecutionParametersAdapter)
    new_source_relay_provider: Element[UniversalAddress] = Element(UniversalAddress)
    new_sender_address: Element[UniversalAddress] = Element(UniversalAddress)

    @property
    def new_execution_parameters(self) -> ExecutionParameters:
        return ExecutionParameters.from_wire(self.new_encoded_execution_parameters)


def parse_payload_type(data: Buffer) -> RelayerPayloadId:
    """Return the type of the relayer message from its first byte"""
    return RelayerPayloadId.from_wire(memoryview(data)[:1])


def decode_payload(data: Buffer) -> RelayerMessage:
    """Decode a relayer message of any of the known types"""
    return RelayerMessage[parse_payload_type(data)].from_wire(data)


# Forward failures

class ProviderFailed(AnnotatedStructure):
    pass


class InsufficientFunds(AnnotatedStructure):
    amount_of_funds: Element[Wei] = Element(Wei)
    amount_of_funds_needed: Element[Wei] = Element(Wei)


class ForwardReverted(AnnotatedStructure):
    reason: Element[str] = Element(str, adapter=String32Adapter)


class ForwardFailure(AnnotatedStructure):
    """The reason reported by the relayer when a forward request failed"""

    _details_specification: ClassVar = DependentElementSpec[ProviderFailed | InsufficientFunds | ForwardReverted, ForwardFailureType](
        type_map={
            ForwardFailureType.provider_failed: ProviderFailed,
            ForwardFailureType.insufficient_funds: InsufficientFunds,
            ForwardFailureType.reverted: ForwardReverted,
        },
    )

    type: Element[ForwardFailureType] = Element(ForwardFailureType)
    details: FieldDependentElement[ProviderFailed | InsufficientFunds | ForwardReverted, ForwardFailureType] = FieldDependentElement(control_field=type, specification=_details_specification)

    @property
    def reason(self) -> str:
        match self.details:
            case ProviderFailed():
                return 'Delivery Provider failed in performing forward'
            case InsufficientFunds(amount_of_funds=funds, amount_of_funds_needed=needed):
                return f'Not enough funds leftover for forward: had {int(funds)} wei and needed {int(needed)} wei'
            case ForwardReverted(reason=reason):
                return f'Forward request reverted: {reason}'
            case details:
                raise InvalidVariantError(f'Unknown forward failure details: {details!r}')
