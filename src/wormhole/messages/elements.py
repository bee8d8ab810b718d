# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from functools import reduce
from inspect import Parameter, Signature
from io import BytesIO
from operator import or_
from types import NoneType, UnionType, new_class
from typing import Any, ClassVar, Self, cast, dataclass_transform, overload

from .datamodel import CountedList, DataWireAdapter, DataWireProtocol, UInt8, WireData, make_counted_list_type
from .exceptions import DecodeError, InvalidVariantError, LengthMismatchError, OutOfBoundsError, TagMismatchError

__all__ = (  # noqa: RUF022
    'Structure',
    'AnnotatedStructure',
    'TaggedStructure',

    'DependentElementSpec',

    'Element',
    'FieldDependentElement',
    'ListElement',
)


class Structure:
    """
    A wire structure made of the fields declared on its class.

    Structures are immutable. Their fields are set when they are created or
    decoded from the wire and cannot be changed afterwards.
    """

    __signature__: ClassVar[Signature] = Signature()

    _fields_: ClassVar[dict[str, 'FieldDescriptor']] = {}

    _all_arguments: ClassVar[frozenset[str]]
    _mandatory_arguments: ClassVar[frozenset[str]]
    _default_arguments: ClassVar[dict[str, object]]

    def __new__(cls, **kw: object) -> Self:
        if not cls._all_arguments.issuperset(kw):
            raise TypeError(f'Got an unexpected keyword argument {next(iter(set(kw) - cls._all_arguments))!r}')
        if not cls._mandatory_arguments.issubset(kw):
            raise TypeError(f'Missing a required keyword argument {next(iter(cls._mandatory_arguments - set(kw)))!r}')
        return super().__new__(cls)

    def __init__(self, **kw: object) -> None:
        # Fields need to be set in the order they were defined (dependent
        # elements need their control element to be set first), but **kw
        # can be provided in any order.
        kw = self._default_arguments | kw
        for name, field in self._fields_.items():
            field.set_value(self, kw[name])

    def __init_subclass__(cls, **kw: object) -> None:
        super().__init_subclass__(**kw)

        # all the fields on this element (both inherited and locally defined)
        fields = cls._fields_ | {name: value for name, value in cls.__dict__.items() if isinstance(value, FieldDescriptor)}

        cls._fields_ = fields

        cls.__signature__ = Signature(parameters=[descriptor.signature_parameter for descriptor in fields.values()])
        cls._all_arguments = frozenset(cls.__signature__.parameters)
        cls._mandatory_arguments = frozenset(p.name for p in cls.__signature__.parameters.values() if p.default is Parameter.empty)
        cls._default_arguments = {p.name: p.default for p in cls.__signature__.parameters.values() if p.default is not Parameter.empty}

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}({', '.join(f'{name}={_reprproxy(getattr(self, name))!r}' for name in self._fields_)})'

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Structure):
            return type(self) is type(other) and all(getattr(self, name) == getattr(other, name) for name in self._fields_)
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.__class__, *(getattr(self, name) for name in self._fields_)))

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        """
        Decode the structure from wire data.

        When given a bytes-like object, the structure must consume all of
        it, otherwise LengthMismatchError is raised. When given a BytesIO
        stream the structure only reads its own elements from the stream,
        which is how nested structures are read.
        """
        if isinstance(buffer, BytesIO):
            return cls._read_elements(buffer)
        buffer = BytesIO(buffer)
        instance = cls._read_elements(buffer)
        leftover = len(buffer.getvalue()) - buffer.tell()
        if leftover:
            raise LengthMismatchError(f'There are {leftover} unused bytes left in the buffer after reading {cls.__qualname__!r}')
        return instance

    @classmethod
    def _read_elements(cls, buffer: BytesIO) -> Self:
        instance = super().__new__(cls)
        for field in cls._fields_.values():
            field.from_wire(instance, buffer)
        return instance

    def to_wire(self) -> bytes:
        return b''.join(field.to_wire(self) for field in self._fields_.values())

    def wire_length(self) -> int:
        return sum(field.wire_length(self) for field in self._fields_.values())


# Helpers

class _reprproxy:  # noqa: N801
    # Provide better representation for certain types which can be evaluated to recreate the object.

    def __init__(self, value: object) -> None:
        self.value = value

    def __repr__(self) -> str:
        match self.value:
            case Enum() as value:
                return f'{value.__class__.__qualname__}.{value.name}'
            case UnionType() as value:
                return ' | '.join('None' if _type is NoneType else _type.__qualname__ for _type in value.__args__)
            case type() as value:
                return value.__qualname__
            case value:
                return repr(value)

    __str__ = __repr__


def _element_error[E: DecodeError](exc: E, owner: type[Structure], name: str | None) -> E:
    # Keep the error class, so callers can still tell what went wrong, but add the location of the failure.
    return exc.__class__(f'Failed to read the {owner.__qualname__}.{name} element from wire: {exc}')


def _protocol2adapter[T: DataWireProtocol](proto: type[T]) -> type[DataWireAdapter[T]]:
    # Turn a DataWireProtocol into a DataWireAdapter by creating a stand-in adapter on the fly.
    #
    # This is needed for field descriptors that need to treat DataWireProtocol and DataWireAdapter
    # interchangeably, but adapters have an extra validate() method that protocols don't need.
    # The stand-in adapter adds a validate method that only checks the value type.

    def validate(value: T, /) -> T:
        if not isinstance(value, proto):
            raise TypeError(f'The value should be of type {proto.__qualname__!r}, not {value.__class__.__qualname__!r}')
        return value

    def prepare(ns: dict) -> None:
        ns['_abstract_'] = False
        ns['from_wire'] = staticmethod(proto.from_wire)
        ns['to_wire'] = staticmethod(proto.to_wire)
        ns['wire_length'] = staticmethod(proto.wire_length)
        ns['validate'] = staticmethod(validate)

    adapter = new_class(f'{proto.__name__}AdapterStandIn', (DataWireAdapter[T],), exec_body=prepare)
    adapter.__module__ = __name__
    adapter.__qualname__ = f'_protocol2adapter.<generated>.{adapter.__name__}'

    return adapter


type DataWireAdapterType[T] = type[DataWireAdapter[T]]


# Field descriptor specifications

class FieldDescriptor(ABC):
    name: str | None

    @property
    @abstractmethod
    def signature_parameter(self) -> Parameter: ...

    @abstractmethod
    def from_wire(self, instance: Structure, buffer: BytesIO) -> None: ...

    @abstractmethod
    def to_wire(self, instance: Structure) -> bytes: ...

    @abstractmethod
    def set_value(self, instance: Structure, value: Any) -> None: ...

    @abstractmethod
    def wire_length(self, instance: Structure) -> int: ...

    def __set_name__(self, owner: type[Structure], name: str) -> None:
        if self.name is None:
            self.name = name
        elif name != self.name:
            raise TypeError(f'Cannot assign the same {self.__class__.__qualname__!r} to two different names: {self.name!r} and {name!r}')

    def __set__(self, instance: Structure, value: object) -> None:
        raise AttributeError(f'Attribute {self.name!r} of {instance.__class__.__qualname__!r} object is read-only')

    def __delete__(self, instance: Structure) -> None:
        raise AttributeError(f'Attribute {self.name!r} of {instance.__class__.__qualname__!r} object cannot be deleted')

    def _get_stored_value(self, instance: Structure) -> object:
        if self.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on it.')
        try:
            return instance.__dict__[self.name]
        except KeyError as exc:
            raise AttributeError(f'Attribute {self.name!r} of object {instance.__class__.__qualname__!r} is not set') from exc


# Field descriptor implementations

class Element[T](FieldDescriptor):
    type: type[T] | UnionType
    default: T
    adapter: DataWireAdapterType[T]

    @overload
    def __init__(self, element_type: type[T], /, *, default: T = ..., adapter: DataWireAdapterType[T] | None = ...) -> None: ...

    @overload
    def __init__(self, element_type: UnionType, /, *, default: T = ..., adapter: DataWireAdapterType[T]) -> None: ...

    def __init__(self, element_type: type[T] | UnionType, /, *, default: T = NotImplemented, adapter: DataWireAdapterType[T] | None = None) -> None:
        self.name = None
        self.type = element_type
        self.default = default
        self.provided_adapter = adapter
        if adapter is None:
            if isinstance(element_type, UnionType):
                raise TypeError('When the element type is a union of types an adapter for the same types must be provided')
            if issubclass(element_type, DataWireProtocol):
                adapter = cast(DataWireAdapterType[T], _protocol2adapter(element_type))
        if adapter is None:
            raise TypeError('Either the element type must implement the DataWireProtocol or an adapter must be provided')
        if adapter._abstract_:
            raise TypeError(f'Cannot use abstract adapter {adapter.__qualname__!r} (need to select a concrete implementation of it, usually one that defines its size)')
        self.adapter = adapter

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({_reprproxy(self.type)!r}, default={self.default!r}, adapter={_reprproxy(self.provided_adapter)!r})'

    @property
    def signature_parameter(self) -> Parameter:
        assert self.name is not None  # noqa: S101 (used by type checkers)
        kwds = {} if self.default is NotImplemented else {'default': self.default}
        return Parameter(name=self.name, kind=Parameter.KEYWORD_ONLY, annotation=self.type, **kwds)

    @overload
    def __get__(self, instance: None, owner: type[Structure]) -> Self: ...

    @overload
    def __get__(self, instance: Structure, owner: type[Structure] | None = None) -> T: ...

    def __get__(self, instance: Structure | None, owner: type[Structure] | None = None) -> Self | T:
        if instance is None:
            return self
        return cast(T, self._get_stored_value(instance))

    def set_value(self, instance: Structure, value: T) -> None:
        if self.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on it.')
        instance.__dict__[self.name] = self.adapter.validate(value)

    def from_wire(self, instance: Structure, buffer: BytesIO) -> None:
        if self.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on it.')
        try:
            instance.__dict__[self.name] = self.adapter.from_wire(buffer)
        except DecodeError as exc:
            raise _element_error(exc, instance.__class__, self.name) from exc

    def to_wire(self, instance: Structure) -> bytes:
        return self.adapter.to_wire(self.__get__(instance))

    def wire_length(self, instance: Structure) -> int:
        return self.adapter.wire_length(self.__get__(instance))


@dataclass(kw_only=True, slots=True)
class DependentElementSpec[T: DataWireProtocol, U]:
    type_map: Mapping[U, type[T]]

    def __post_init__(self) -> None:
        if not self.type_map:
            raise TypeError(f'A {self.__class__.__qualname__!r} must have a non-empty type_map')

    def __repr__(self) -> str:
        type_map = {_reprproxy(name): _reprproxy(value) for name, value in self.type_map.items()}
        return f'{self.__class__.__qualname__}({type_map=})'


class FieldDependentElement[T: DataWireProtocol, U](FieldDescriptor):
    """An element whose type is selected by the value of a previous element of the structure"""

    control_field: Element[U]
    specification: DependentElementSpec[T, U]
    default: T

    def __init__(self, *, control_field: Element[U], specification: DependentElementSpec[T, U], default: T = NotImplemented) -> None:
        self.name = None
        self.control_field = control_field
        self.specification = specification
        self.default = default

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(control_field={self.control_field.name!s}, specification={self.specification!r}, default={self.default!r})'

    @property
    def signature_parameter(self) -> Parameter:
        assert self.name is not None  # noqa: S101 (used by type checkers)
        kwds = {} if self.default is NotImplemented else {'default': self.default}
        annotation = reduce(or_, self.specification.type_map.values())
        return Parameter(name=self.name, kind=Parameter.KEYWORD_ONLY, annotation=annotation, **kwds)

    @overload
    def __get__(self, instance: None, owner: type[Structure]) -> Self: ...

    @overload
    def __get__(self, instance: Structure, owner: type[Structure] | None = None) -> T: ...

    def __get__(self, instance: Structure | None, owner: type[Structure] | None = None) -> Self | T:
        if instance is None:
            return self
        return cast(T, self._get_stored_value(instance))

    def set_value(self, instance: Structure, value: T) -> None:
        if self.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on it.')
        element_type = self._get_element_type(instance)
        if not isinstance(value, element_type):
            raise TypeError(f'The value for the {self.name!r} field should be of type {element_type.__qualname__!r}')
        instance.__dict__[self.name] = value

    def _get_control_value(self, instance: Structure, /) -> U:
        if self.control_field.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on its control field.')
        try:
            return instance.__dict__[self.control_field.name]
        except KeyError as exc:
            raise ValueError(f'Control element {instance.__class__.__qualname__}.{self.control_field.name} is not set') from exc

    def _get_element_type(self, instance: Structure, /) -> type[T]:
        control_value = self._get_control_value(instance)
        try:
            return self.specification.type_map[control_value]
        except KeyError:
            raise InvalidVariantError(f'Cannot find associated type for dependent element {instance.__class__.__qualname__}.{self.name} with control value {control_value!r}') from None

    def from_wire(self, instance: Structure, buffer: BytesIO) -> None:
        if self.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on it.')
        element_type = self._get_element_type(instance)
        try:
            value = element_type.from_wire(buffer)
        except DecodeError as exc:
            raise _element_error(exc, instance.__class__, self.name) from exc
        instance.__dict__[self.name] = value

    def to_wire(self, instance: Structure) -> bytes:
        return self.__get__(instance).to_wire()

    def wire_length(self, instance: Structure) -> int:
        return self.__get__(instance).wire_length()


class ListElement[T: DataWireProtocol](FieldDescriptor):
    """
    A list of at most maxcount items of the same type, prefixed with the
    number of items it holds. The list is stored as an immutable sequence.
    """

    maxcount: int
    default: Sequence[T]
    item_type: type[T]
    list_type: type[CountedList[T]]

    def __init__(self, item_type: type[T], /, *, default: Sequence[T] = NotImplemented, maxcount: int) -> None:
        self.name = None
        self.default = default
        self.maxcount = maxcount
        self.item_type = item_type
        self.list_type = make_counted_list_type(item_type, maxcount=maxcount, custom_repr=False)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.item_type.__qualname__}, default={self.default!r}, maxcount={self.maxcount!r})'

    @property
    def signature_parameter(self) -> Parameter:
        assert self.name is not None  # noqa: S101 (used by type checkers)
        kwds = {} if self.default is NotImplemented else {'default': self.default}
        return Parameter(name=self.name, kind=Parameter.KEYWORD_ONLY, annotation=Sequence[self.item_type], **kwds)  # type: ignore[name-defined]

    @overload
    def __get__(self, instance: None, owner: type[Structure]) -> Self: ...

    @overload
    def __get__(self, instance: Structure, owner: type[Structure] | None = None) -> CountedList[T]: ...

    def __get__(self, instance: Structure | None, owner: type[Structure] | None = None) -> Self | CountedList[T]:
        if instance is None:
            return self
        return cast(CountedList[T], self._get_stored_value(instance))

    def set_value(self, instance: Structure, value: Sequence[T]) -> None:
        if self.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on it.')
        value = tuple(value)
        for item in value:
            if not isinstance(item, self.item_type):
                raise TypeError(f'The items of the {self.name!r} field should be of type {self.item_type.__qualname__!r}')
        instance.__dict__[self.name] = self.list_type(value)

    def from_wire(self, instance: Structure, buffer: BytesIO) -> None:
        if self.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on it.')
        try:
            instance.__dict__[self.name] = self.list_type.from_wire(buffer)
        except DecodeError as exc:
            raise _element_error(exc, instance.__class__, self.name) from exc

    def to_wire(self, instance: Structure) -> bytes:
        return self.__get__(instance).to_wire()

    def wire_length(self, instance: Structure) -> int:
        return self.__get__(instance).wire_length()


@dataclass_transform(kw_only_default=True, field_specifiers=(Element, FieldDependentElement, ListElement))
class AnnotatedStructure(Structure):
    pass


class TaggedStructure(AnnotatedStructure):
    """
    A structure that starts with a one byte tag.

    The tag is a property of the structure type, not an element. It is the
    first byte written on the wire and it's the first thing checked when
    reading from the wire, which fails with TagMismatchError when the tag
    doesn't match the one of the structure type.
    """

    _tag_: ClassVar[UInt8 | None] = None
    _tag_description_: ClassVar[str] = 'tag'

    def __init_subclass__(cls, *, tag: int | None = None, **kw: object) -> None:
        super().__init_subclass__(**kw)
        if tag is not None:
            cls._tag_ = UInt8(tag)

    def __new__(cls, **kw: object) -> Self:
        if cls._tag_ is None:
            raise TypeError(f'Cannot instantiate abstract tagged structure {cls.__qualname__!r} that does not define its {cls._tag_description_}')
        return super().__new__(cls, **kw)

    @classmethod
    def _read_elements(cls, buffer: BytesIO) -> Self:
        if cls._tag_ is None:
            raise TypeError(f'Cannot instantiate abstract tagged structure {cls.__qualname__!r} that does not define its {cls._tag_description_}')
        try:
            tag = UInt8.from_wire(buffer)
        except OutOfBoundsError as exc:
            raise OutOfBoundsError(f'Insufficient data in buffer to extract the {cls.__qualname__} {cls._tag_description_}') from exc
        if tag != cls._tag_:
            raise TagMismatchError(f'Invalid {cls._tag_description_} for {cls.__qualname__!r} (expected {cls._tag_:d}, got {tag:d})')
        return super()._read_elements(buffer)

    def to_wire(self) -> bytes:
        assert self._tag_ is not None  # noqa: S101 (used by type checkers)
        return self._tag_.to_wire() + super().to_wire()

    def wire_length(self) -> int:
        return UInt8._size_ + super().wire_length()
