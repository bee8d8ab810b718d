# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
The network configuration document.

A network configuration lists the guardian sets of the network and the
chains it connects:

  <network xmlns="urn:wormhole:params:xml:ns:network" name="testnet" active-guardian-set="0">
    <guardian-set index="0">
      <guardian name="guardian-0">13947bd48b18e53fdaeee77f3473391ac727c638</guardian>
    </guardian-set>
    <chain id="2" name="ethereum">
      <core-address>706abc4e45d419950511e474c7b9ed348a4a716c</core-address>
      <relayer-address>28d8f1be96f97c1387e94a53e00eccfb4e75175a</relayer-address>
    </chain>
  </network>

The configuration is the owner of the guardian sets. Verifying a VAA needs
the guardian set it was signed by, which is looked up here and passed to the
verifier.
"""

from typing import Self

from wormhole.guardians import GuardianSet
from wormhole.messages.datamodel import UniversalAddress

from .xml import AnnotatedXMLElement, Attribute, DataElement, ETreeElement, MultiElement, Namespace, OptionalAttribute, OptionalDataElement, TextValue
from .xml.datamodel import AddressAdapter, HexBinaryAdapter, UInt16Adapter, UInt32Adapter

__all__ = 'Guardian', 'GuardianSetElement', 'Chain', 'NetworkConfiguration'  # noqa: RUF022


ns_network = Namespace('urn:wormhole:params:xml:ns:network', prefix=None)


class NetworkElement(AnnotatedXMLElement, namespace=ns_network):
    pass


class Guardian(NetworkElement, name='guardian'):
    label: OptionalAttribute[str] = OptionalAttribute(str, name='name', default=None)
    address: TextValue[bytes] = TextValue(bytes, adapter=AddressAdapter)


class GuardianSetElement(NetworkElement, name='guardian-set'):
    index: Attribute[int] = Attribute(int, adapter=UInt32Adapter)
    guardians: MultiElement[Guardian] = MultiElement(Guardian, optional=True)

    def to_guardian_set(self) -> GuardianSet:
        return GuardianSet(index=self.index, addresses=tuple(guardian.address for guardian in self.guardians))


class Chain(NetworkElement, name='chain'):
    id: Attribute[int] = Attribute(int, adapter=UInt16Adapter)
    chain_name: OptionalAttribute[str] = OptionalAttribute(str, name='name', default=None)

    core_address: DataElement[bytes] = DataElement(bytes, name='core-address', adapter=HexBinaryAdapter)
    relayer_address: OptionalDataElement[bytes] = OptionalDataElement(bytes, name='relayer-address', adapter=HexBinaryAdapter, default=None)

    @property
    def relayer_emitter(self) -> UniversalAddress | None:
        """The address of the relayer contract as the emitter of the messages it publishes"""
        return None if self.relayer_address is None else UniversalAddress.from_native(self.relayer_address)


class NetworkConfiguration(NetworkElement, name='network'):
    network_name: Attribute[str] = Attribute(str, name='name')
    active_guardian_set_index: OptionalAttribute[int] = OptionalAttribute(int, name='active-guardian-set', default=None, adapter=UInt32Adapter)

    guardian_sets: MultiElement[GuardianSetElement] = MultiElement(GuardianSetElement)
    chains: MultiElement[Chain] = MultiElement(Chain, optional=True)

    @classmethod
    def from_xml(cls, element: ETreeElement) -> Self:
        instance = super().from_xml(element)
        indexes = [guardian_set.index for guardian_set in instance.guardian_sets]
        if len(set(indexes)) != len(indexes):
            raise ValueError(f'Duplicate guardian set indexes in network {instance.network_name!r}')
        chain_ids = [chain.id for chain in instance.chains]
        if len(set(chain_ids)) != len(chain_ids):
            raise ValueError(f'Duplicate chain ids in network {instance.network_name!r}')
        if instance.active_guardian_set_index is not None and instance.active_guardian_set_index not in indexes:
            raise ValueError(f'The active guardian set {instance.active_guardian_set_index} is not defined in network {instance.network_name!r}')
        # the guardian sets must be valid, not just well formed
        for guardian_set in instance.guardian_sets:
            guardian_set.to_guardian_set()
        return instance

    def guardian_set(self, index: int) -> GuardianSet:
        for guardian_set in self.guardian_sets:
            if guardian_set.index == index:
                return guardian_set.to_guardian_set()
        raise LookupError(f'Guardian set {index} is not defined in network {self.network_name!r}')

    @property
    def active_guardian_set(self) -> GuardianSet:
        """The guardian set that is explicitly marked as active, or the one with the highest index"""
        if self.active_guardian_set_index is not None:
            return self.guardian_set(self.active_guardian_set_index)
        return max(self.guardian_sets, key=lambda guardian_set: guardian_set.index).to_guardian_set()

    def chain(self, chain_id: int) -> Chain:
        for chain in self.chains:
            if chain.id == chain_id:
                return chain
        raise LookupError(f'Chain {chain_id} is not defined in network {self.network_name!r}')
