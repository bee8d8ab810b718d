# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from typing import ClassVar, Protocol, Self, runtime_checkable

__all__ = (  # noqa: RUF022
    'DataConverter',
    'DataAdapter',

    'HexBinaryAdapter',
    'AddressAdapter',

    'IntegerAdapter',
    'UInt16Adapter',
    'UInt32Adapter',
)


@runtime_checkable
class DataConverter(Protocol):
    """A protocol that describes how a data type is parsed from XML"""

    @classmethod
    def xml_parse(cls, value: str) -> Self:
        """Parse XML into the data type"""
        ...


@runtime_checkable
class DataAdapter[T](Protocol):
    """A protocol that describes an external adapter that parses XML into a data type T"""

    @staticmethod
    def xml_parse(value: str, /) -> T:
        """Parse XML into the data type"""
        ...


class HexBinaryAdapter:
    """Parse hex encoded bytes, with an optional 0x prefix. Subclasses can require a size."""

    _size_: ClassVar[int | None] = None

    def __init_subclass__(cls, *, size: int | None = None, **kw: object) -> None:
        super().__init_subclass__(**kw)
        if size is not None:
            cls._size_ = size

    @classmethod
    def xml_parse(cls, value: str) -> bytes:
        data = bytes.fromhex(value.strip().removeprefix('0x'))
        if cls._size_ is not None and len(data) != cls._size_:
            raise ValueError(f'expected {cls._size_} bytes, got {len(data)}')
        return data


class AddressAdapter(HexBinaryAdapter, size=20):
    pass


class IntegerAdapter:
    """Parse integers. Subclasses can restrict them to the unsigned integers of a given bit length."""

    def __init_subclass__(cls, *, bits: int | None = None, **kw: object) -> None:
        super().__init_subclass__(**kw)

        if bits is None:
            return
        if bits <= 0:
            raise ValueError('when specified, bits must be a positive integer')

        name = f'unsigned {bits}-bit integer'
        upper_bound = 2**bits - 1

        def xml_parse(value: str) -> int:
            number = int(value)
            if 0 <= number <= upper_bound:
                return number
            raise ValueError(f"invalid value '{value}' for {name}")

        cls.xml_parse = staticmethod(xml_parse)  # type: ignore[method-assign]

    @staticmethod
    def xml_parse(value: str) -> int:
        return int(value)


class UInt16Adapter(IntegerAdapter, bits=16):
    pass


class UInt32Adapter(IntegerAdapter, bits=32):
    pass
