# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import enum
from collections.abc import Buffer, Iterable
from io import BytesIO
from types import GenericAlias, NotImplementedType, new_class
from typing import ClassVar, Protocol, Self, SupportsBytes, SupportsIndex, SupportsInt, TypeVar, overload, runtime_checkable

from wormhole.constants import DELIVERY_PAYLOAD_ID, REDELIVERY_PAYLOAD_ID

from .exceptions import DecodeError, InvalidVariantError, OutOfBoundsError

__all__ = (  # noqa: RUF022
    # Protocols and types

    'WireData',
    'DataWireProtocol',
    'DataWireAdapter',

    # Adapters

    'UnsignedIntegerAdapter',

    'UInt8Adapter',
    'UInt16Adapter',
    'UInt32Adapter',
    'UInt64Adapter',
    'UInt256Adapter',

    'OpaqueAdapter',
    'StringAdapter',
    'RemainderAdapter',

    'Opaque32Adapter',
    'String32Adapter',

    # Abstract types

    'UnsignedInteger',

    'Enum',

    'FixedSize',

    'List',
    'CountedList',
    'make_counted_list_type',

    # Concrete types

    'UInt8',
    'UInt16',
    'UInt32',
    'UInt64',
    'UInt256',

    'Wei',
    'Gas',

    'RelayerPayloadId',
    'ForwardFailureType',
    'VaaKeyType',

    'Bytes32',
    'UniversalAddress',
)


type WireData = bytes | bytearray | memoryview | BytesIO


# Protocols

@runtime_checkable
class DataWireProtocol(Protocol):
    """The wire protocol for message data elements"""

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self: ...

    def to_wire(self) -> bytes: ...

    def wire_length(self) -> int: ...


@runtime_checkable
class DataWireAdapter[T](Protocol):
    """Wire protocol adapter for a message data element of type T"""

    _abstract_: ClassVar[bool] = True

    @staticmethod
    def from_wire(buffer: WireData) -> T: ...

    @staticmethod
    def to_wire(value: T, /) -> bytes: ...

    @staticmethod
    def wire_length(value: T, /) -> int: ...

    @staticmethod
    def validate(value: T, /) -> T: ...


# Helpers

def byte_length(number: int) -> int:
    """Return the number of bytes needed to represent the number"""
    return (number.bit_length() + 7) // 8


def read_exact(buffer: WireData, size: int, description: str) -> bytes:
    """Read exactly size bytes from the buffer or raise OutOfBoundsError"""
    if isinstance(buffer, BytesIO):
        data = buffer.read(size)
    else:
        data = bytes(buffer[:size])
    if len(data) < size:
        raise OutOfBoundsError(f'Insufficient data in buffer to extract {description} (need {size} bytes, got {len(data)})')
    return data


# Adapters

class UnsignedIntegerAdapter:
    _abstract_: ClassVar[bool] = True
    _bits_: ClassVar[int] = NotImplemented
    _size_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, bits: int = NotImplemented, **kw: object) -> None:
        if bits is not NotImplemented:
            cls._bits_ = bits
            cls._size_ = bits // 8
            cls._abstract_ = False
        super().__init_subclass__(**kw)

    @classmethod
    def from_wire(cls, buffer: WireData) -> int:
        data = read_exact(buffer, cls._size_, f'an unsigned {cls._bits_}-bit integer')
        return int.from_bytes(data, byteorder='big')

    @classmethod
    def to_wire(cls, value: int, /) -> bytes:
        return value.to_bytes(cls._size_, byteorder='big')

    @classmethod
    def wire_length(cls, _: int, /) -> int:
        return cls._size_

    @classmethod
    def validate(cls, value: int, /) -> int:
        if value < 0 or value.bit_length() > cls._bits_:
            raise ValueError(f'Value is out of range for unsigned {cls._bits_}-bits integer: {value!r}')
        return value


class UInt8Adapter(UnsignedIntegerAdapter, bits=8):
    pass


class UInt16Adapter(UnsignedIntegerAdapter, bits=16):
    pass


class UInt32Adapter(UnsignedIntegerAdapter, bits=32):
    pass


class UInt64Adapter(UnsignedIntegerAdapter, bits=64):
    pass


class UInt256Adapter(UnsignedIntegerAdapter, bits=256):
    pass


class OpaqueAdapter:
    """Adapter for a bytes buffer of up to maxsize bytes, prefixed with its length"""

    _abstract_: ClassVar[bool] = True
    _maxsize_: ClassVar[int] = NotImplemented
    _sizelen_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, maxsize: int = NotImplemented, **kw: object) -> None:
        if maxsize is not NotImplemented:
            cls._maxsize_ = maxsize
            cls._sizelen_ = byte_length(maxsize)
            cls._abstract_ = False
        super().__init_subclass__(**kw)

    @classmethod
    def from_wire(cls, buffer: WireData) -> bytes:
        if not isinstance(buffer, BytesIO):
            buffer = BytesIO(buffer)
        length_data = read_exact(buffer, cls._sizelen_, 'the opaque bytes length')
        data_length = int.from_bytes(length_data, byteorder='big')
        return read_exact(buffer, data_length, 'the opaque bytes')

    @classmethod
    def to_wire(cls, value: bytes, /) -> bytes:
        return len(value).to_bytes(cls._sizelen_, byteorder='big') + value

    @classmethod
    def wire_length(cls, value: bytes, /) -> int:
        return cls._sizelen_ + len(value)

    @classmethod
    def validate(cls, value: bytes, /) -> bytes:
        if not isinstance(value, Buffer):
            raise TypeError(f'Opaque bytes must be a bytes-like object, not {value.__class__.__qualname__!r}')
        value = bytes(value)
        if len(value) > cls._maxsize_:
            raise ValueError(f'Value is too long for opaque bytes (max length is {cls._maxsize_}, value has {len(value)} bytes)')
        return value


class StringAdapter:
    """Represent strings as UTF-8 encoded length prefixed bytes limited to maxsize"""

    _abstract_: ClassVar[bool] = True
    _maxsize_: ClassVar[int] = NotImplemented
    _sizelen_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, maxsize: int = NotImplemented, **kw: object) -> None:
        if maxsize is not NotImplemented:
            cls._maxsize_ = maxsize
            cls._sizelen_ = byte_length(maxsize)
            cls._abstract_ = False
        super().__init_subclass__(**kw)

    @classmethod
    def from_wire(cls, buffer: WireData) -> str:
        if not isinstance(buffer, BytesIO):
            buffer = BytesIO(buffer)
        length_data = read_exact(buffer, cls._sizelen_, 'the length of the string')
        data_length = int.from_bytes(length_data, byteorder='big')
        data = read_exact(buffer, data_length, 'the bytes representation of the string')
        try:
            return data.decode()
        except UnicodeDecodeError as exc:
            raise DecodeError(f'Cannot decode bytes to string: {exc}') from exc

    @classmethod
    def to_wire(cls, value: str, /) -> bytes:
        data = value.encode()
        return len(data).to_bytes(cls._sizelen_, byteorder='big') + data

    @classmethod
    def wire_length(cls, value: str, /) -> int:
        return cls._sizelen_ + len(value.encode())

    @classmethod
    def validate(cls, value: str, /) -> str:
        data = value.encode()
        if len(data) > cls._maxsize_:
            raise ValueError(f'Value is too long for string (max length is {cls._maxsize_}, value has {len(data)} bytes)')
        return value


class RemainderAdapter:
    """Adapter for a bytes buffer without a length prefix, that extends to the end of the wire data"""

    _abstract_: ClassVar[bool] = False

    @staticmethod
    def from_wire(buffer: WireData) -> bytes:
        if isinstance(buffer, BytesIO):
            return buffer.read()
        return bytes(buffer)

    @staticmethod
    def to_wire(value: bytes, /) -> bytes:
        return value

    @staticmethod
    def wire_length(value: bytes, /) -> int:
        return len(value)

    @staticmethod
    def validate(value: bytes, /) -> bytes:
        if not isinstance(value, Buffer):
            raise TypeError(f'The value must be a bytes-like object, not {value.__class__.__qualname__!r}')
        return bytes(value)


class Opaque32Adapter(OpaqueAdapter, maxsize=2**32 - 1):
    pass


class String32Adapter(StringAdapter, maxsize=2**32 - 1):
    pass


# Data types

type ConvertibleToInt = str | Buffer | SupportsInt | SupportsIndex


# Numeric types

class UnsignedInteger(int):
    _bits_: ClassVar[int] = NotImplemented
    _size_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, bits: int = NotImplemented, **kw: object) -> None:
        if bits is not NotImplemented:
            cls._bits_ = bits
            cls._size_ = bits // 8
        super().__init_subclass__(**kw)

    @overload
    def __new__(cls, x: ConvertibleToInt = ..., /) -> Self: ...

    @overload
    def __new__(cls, x: str | Buffer, /, base: SupportsIndex) -> Self: ...

    def __new__(cls, *args, **kw) -> Self:
        if cls._bits_ is NotImplemented:
            raise TypeError(f'Cannot instantiate abstract unsigned integer type {cls.__qualname__!r} that does not define its bit length')
        value = super().__new__(cls, *args, **kw)
        if value < 0 or value.bit_length() > cls._bits_:
            raise ValueError(f'Value is out of range for unsigned {cls._bits_}-bits integer: {value!r}')
        return value

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}({super().__repr__()})'

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if cls._size_ is NotImplemented:
            raise TypeError(f'Cannot instantiate abstract unsigned integer type {cls.__qualname__!r} that does not define its bit length')
        return cls.from_bytes(read_exact(buffer, cls._size_, repr(cls.__qualname__)), byteorder='big')

    def to_wire(self) -> bytes:
        return self.to_bytes(self._size_, byteorder='big')

    def wire_length(self) -> int:
        return self._size_


class UInt8(UnsignedInteger, bits=8):
    pass


class UInt16(UnsignedInteger, bits=16):
    pass


class UInt32(UnsignedInteger, bits=32):
    pass


class UInt64(UnsignedInteger, bits=64):
    pass


class UInt256(UnsignedInteger, bits=256):
    pass


# Amounts carry their unit only in their type, on the wire they are plain magnitudes.

class Wei(UInt256):
    pass


class Gas(UInt32):
    pass


# Enumeration types

class Enum(enum.IntEnum):
    _size_: ClassVar[int]

    def __init_subclass__(cls, *, size: int = 1, **kw: object) -> None:
        cls._size_ = size
        super().__init_subclass__(**kw)

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}.{self.name}'

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        value = int.from_bytes(read_exact(buffer, cls._size_, repr(cls.__qualname__)), byteorder='big')
        try:
            return cls(value)
        except ValueError:
            raise InvalidVariantError(f'{value!r} is not a valid {cls.__qualname__}') from None

    def to_wire(self) -> bytes:
        return self.to_bytes(self._size_, byteorder='big')

    def wire_length(self) -> int:
        return self._size_


class RelayerPayloadId(Enum):
    delivery = DELIVERY_PAYLOAD_ID
    redelivery = REDELIVERY_PAYLOAD_ID


class ForwardFailureType(Enum):
    provider_failed = 1
    insufficient_funds = 2
    reverted = 3


class VaaKeyType(Enum):
    emitter_sequence = 0
    vaa_hash = 1


# Byte strings

class FixedSize(bytes):
    """A fixed size bytes buffer"""

    _size_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, size: int = NotImplemented, **kw: object) -> None:
        if size is not NotImplemented:
            cls._size_ = size
        super().__init_subclass__(**kw)

    @overload
    def __new__(cls) -> Self: ...

    @overload
    def __new__(cls, o: Iterable[SupportsIndex] | SupportsIndex | SupportsBytes | Buffer, /) -> Self: ...

    @overload
    def __new__(cls, string: str, /, encoding: str, errors: str = ...) -> Self: ...

    def __new__(cls, *args, **kw):
        if cls._size_ is NotImplemented:
            raise TypeError(f'Cannot instantiate fixed size bytes type {cls.__qualname__!r} that does not define its size')
        instance = super().__new__(cls, *args, **kw)
        if len(instance) != cls._size_:
            raise ValueError(f'{cls.__qualname__!r} objects must have {cls._size_} bytes')
        return instance

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}({super().__repr__()})'

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if cls._size_ is NotImplemented:
            raise TypeError(f'Cannot instantiate fixed size bytes type {cls.__qualname__!r} that does not define its size')
        return cls(read_exact(buffer, cls._size_, repr(cls.__qualname__)))

    def to_wire(self) -> bytes:
        return bytes(self)

    def wire_length(self) -> int:
        return self._size_


class Bytes32(FixedSize, size=32):
    def __repr__(self) -> str:
        return f'<{self.__class__.__qualname__}: {self.hex()}>'


class UniversalAddress(Bytes32):
    """A chain agnostic address, left padded with zeros to 32 bytes"""

    @classmethod
    def from_native(cls, address: Buffer) -> Self:
        address = bytes(address)
        if len(address) > cls._size_:
            raise ValueError(f'Native address is too long ({len(address)} > {cls._size_} bytes)')
        return cls(address.rjust(cls._size_, b'\0'))


# List types

class List[T: DataWireProtocol](tuple[T, ...]):
    """An immutable sequence of items of the same type"""

    _type_: type[T] = NotImplementedType

    def __init_subclass__(cls, *, custom_repr: bool = True, **kw: object) -> None:
        if not custom_repr:
            cls.__repr__ = tuple.__repr__  # type: ignore[method-assign]
        for base in getattr(cls, '__orig_bases__', ()):
            if isinstance(base, GenericAlias) and isinstance(base.__origin__, type) and issubclass(base.__origin__, List):
                match base.__args__[0]:
                    case TypeVar():
                        pass  # new type is still generic
                    case type() as list_type:
                        cls._type_ = list_type
                    case _:
                        raise TypeError(f'The {cls.__qualname__!r} type can only be parameterized with a single base type or a type variable')
        super().__init_subclass__(**kw)

    def __new__(cls, iterable: Iterable[T] = (), /) -> Self:
        if cls._type_ is NotImplementedType:
            raise TypeError(f'Cannot instantiate abstract list {cls.__qualname__!r} that does not define its item type')
        return super().__new__(cls, iterable)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({list(self)!r})'


class CountedList[T: DataWireProtocol](List[T]):
    """A list of up to maxcount items, prefixed with the number of items it holds"""

    _maxcount_: ClassVar[int] = NotImplemented
    _countlen_: ClassVar[int] = NotImplemented

    def __init_subclass__(cls, *, maxcount: int = NotImplemented, **kw: object) -> None:
        if maxcount is not NotImplemented:
            cls._maxcount_ = maxcount
            cls._countlen_ = byte_length(maxcount)
        super().__init_subclass__(**kw)

    def __new__(cls, iterable: Iterable[T] = (), /) -> Self:
        if cls._countlen_ is NotImplemented:
            raise TypeError(f'Cannot instantiate abstract counted list {cls.__qualname__!r} that does not define its max count')
        instance = super().__new__(cls, iterable)
        if len(instance) > cls._maxcount_:
            raise ValueError(f'{cls.__qualname__!r} objects can have at most {cls._maxcount_} items')
        return instance

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if cls._countlen_ is NotImplemented:
            raise TypeError(f'Cannot instantiate abstract counted list {cls.__qualname__!r} that does not define its max count')
        if not isinstance(buffer, BytesIO):
            buffer = BytesIO(buffer)
        count = int.from_bytes(read_exact(buffer, cls._countlen_, f'the item count for {cls.__qualname__!r}'), byteorder='big')
        if count > cls._maxcount_:
            raise DecodeError(f'Item count is too big for {cls.__qualname__!r} ({count} > {cls._maxcount_})')
        return cls([cls._type_.from_wire(buffer) for _ in range(count)])

    def to_wire(self) -> bytes:
        return len(self).to_bytes(self._countlen_, byteorder='big') + b''.join(item.to_wire() for item in self)

    def wire_length(self) -> int:
        return self._countlen_ + sum(item.wire_length() for item in self)


def make_counted_list_type[T: DataWireProtocol](item_type: type[T], /, *, maxcount: int, custom_repr: bool = True) -> type[CountedList[T]]:
    return new_class(f'{item_type.__name__}List', (CountedList[item_type],), kwds={'maxcount': maxcount, 'custom_repr': custom_repr})  # type: ignore[valid-type]
