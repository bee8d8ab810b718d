# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from abc import ABC, abstractmethod
from collections.abc import Callable
from os import PathLike, fspath
from typing import ClassVar, Self, cast, dataclass_transform, overload

from lxml import etree

from .datamodel import DataAdapter, DataConverter

__all__ = (  # noqa: RUF022
    'Namespace',
    'XMLElement',
    'AnnotatedXMLElement',

    'Attribute',
    'OptionalAttribute',
    'DataElement',
    'OptionalDataElement',
    'MultiElement',
    'TextValue',
)


# noinspection PyProtectedMember
type ETreeElement = etree._Element  # noqa: SLF001
type XMLData = str | bytes | int | DataConverter

type DataAdapterType[T] = type[DataAdapter[T]]


class Namespace(str):
    __slots__ = 'prefix',

    prefix: str | None

    def __new__(cls, namespace: str, /, *, prefix: str | None = None) -> Self:
        self = super().__new__(cls, namespace)
        self.prefix = prefix
        return self

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({super().__repr__()}, prefix={self.prefix!r})'

    def __setattr__(self, name: str, value: object, /) -> None:
        if name in self.__slots__ and hasattr(self, name):
            raise AttributeError(f'{self.__class__.__name__} object attribute {name!r} is read-only')
        return super().__setattr__(name, value)


class XMLElement:
    """
    An XML element that is parsed into python values.

    Elements are read-only. They are only created from XML, using from_xml(),
    from_string() or from_file(), and their fields are parsed and validated
    when the element is created, so an invalid document is rejected as a
    whole with a ValueError.

    The element name and namespace are specified via class parameters:

    class MyElement(XMLElement, name=..., namespace=...):
        ...
    """

    _name_: ClassVar[str | None] = None
    _namespace_: ClassVar[Namespace | None] = None

    # Derived and internal attributes (these should not be overwritten in subclasses)

    _etree_element_: ETreeElement
    _values_: dict[str, object]

    _tag_: ClassVar[str | None] = None
    _qualname_: ClassVar[str | None] = None

    _fields_: ClassVar[dict[str, 'FieldDescriptor']] = {}

    _parser: ClassVar = etree.XMLParser(remove_blank_text=True, remove_comments=True, resolve_entities=False, no_network=True)

    def __new__(cls, *_args: object, **_kw: object) -> Self:
        raise TypeError(f'{cls.__qualname__!r} elements can only be created from XML')

    def __init_subclass__(cls, name: str | None = None, namespace: Namespace | None = None, **kw: object) -> None:
        super().__init_subclass__(**kw)

        if name is not None:
            cls._name_ = name
        if namespace is not None:
            cls._namespace_ = namespace

        if cls._name_ is not None:
            if cls._namespace_ is not None:
                cls._tag_ = f'{{{cls._namespace_}}}{cls._name_}'
                cls._qualname_ = f'{cls._namespace_.prefix}:{cls._name_}' if cls._namespace_.prefix is not None else cls._name_
            else:
                cls._tag_ = cls._name_
                cls._qualname_ = cls._name_

        # all the fields on this element (both inherited and locally defined)
        cls._fields_ = cls._fields_ | {name: value for name, value in cls.__dict__.items() if isinstance(value, FieldDescriptor)}

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}({', '.join(f'{name}={value!r}' for name, value in self._values_.items())})'

    @classmethod
    def from_xml(cls, element: ETreeElement) -> Self:
        if cls._tag_ is None:
            raise TypeError(f'Cannot instantiate abstract class {cls.__qualname__!r} that does not specify a name')
        if element.tag != cls._tag_:
            raise ValueError(f'The element tag does not match the {cls.__qualname__} element tag: {element.tag!r} != {cls._tag_!r}')
        instance = object.__new__(cls)
        instance._etree_element_ = element
        instance._values_ = {}
        for field in cls._fields_.values():
            field.from_xml(instance)
        return instance

    @classmethod
    def from_string(cls, document: str | bytes) -> Self:
        if cls._tag_ is None:
            raise TypeError(f'Cannot instantiate abstract class {cls.__qualname__!r} that does not specify a name')
        if isinstance(document, str):
            document = document.encode()
        try:
            root = etree.fromstring(document, parser=cls._parser)
        except etree.XMLSyntaxError as exc:
            raise ValueError(f'Invalid XML document: {exc}') from exc
        return cls.from_xml(root)

    @classmethod
    def from_file(cls, path: str | PathLike[str]) -> Self:
        if cls._tag_ is None:
            raise TypeError(f'Cannot instantiate abstract class {cls.__qualname__!r} that does not specify a name')
        try:
            root = etree.parse(fspath(path), parser=cls._parser).getroot()
        except etree.XMLSyntaxError as exc:
            raise ValueError(f'Invalid XML document in {path!s}: {exc}') from exc
        return cls.from_xml(root)


def _parser_for[D](data_type: type[D], adapter: DataAdapterType[D] | None) -> Callable[[str], D]:
    if adapter is None and issubclass(data_type, DataConverter):
        adapter = cast(DataAdapterType[D], data_type)  # A type that implements the DataConverter protocol is its own DataAdapter
    if adapter is not None:
        return adapter.xml_parse
    if issubclass(data_type, bool | bytes):
        raise TypeError(f'An adapter must be provided for {data_type.__qualname__!r} values')
    return data_type


# Field descriptors

class FieldDescriptor[F](ABC):
    name: str | None
    type: type[F]

    def __set_name__(self, owner: type[XMLElement], name: str) -> None:
        if not issubclass(owner, XMLElement):  # static type analysis does not catch this
            raise TypeError(f'Can only use {self.__class__.__qualname__} descriptors on XMLElement objects')
        if self.name is None:
            self.name = name
        elif name != self.name:
            raise TypeError(f'cannot assign the same {self.__class__.__name__} descriptor to two different names: {self.name} and {name}')

    @overload
    def __get__(self, instance: None, owner: type[XMLElement]) -> Self: ...

    @overload
    def __get__(self, instance: XMLElement, owner: type[XMLElement] | None = None) -> F: ...

    def __get__(self, instance: XMLElement | None, owner: type[XMLElement] | None = None) -> Self | F:
        if instance is None:
            return self
        return cast(F, instance._values_[cast(str, self.name)])

    def __set__(self, instance: XMLElement, value: F) -> None:
        raise AttributeError(f'{self.name!r} of {instance.__class__.__qualname__!r} is read-only')

    def __delete__(self, instance: XMLElement) -> None:
        raise AttributeError(f'{self.name!r} of {instance.__class__.__qualname__!r} cannot be deleted')

    @abstractmethod
    def from_xml(self, instance: XMLElement) -> None:
        """Fill in the instance's field value from its corresponding etree element"""
        raise NotImplementedError


class Attribute[D: XMLData](FieldDescriptor[D]):
    def __init__(self, data_type: type[D], /, *, name: str | None = None, adapter: DataAdapterType[D] | None = None) -> None:
        self.name = None
        self.type = data_type
        self.xml_name = name or ''
        self.xml_parse = _parser_for(data_type, adapter)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.type.__qualname__}, name={self.xml_name!r})'

    def __set_name__(self, owner: type[XMLElement], name: str) -> None:
        super().__set_name__(owner, name)
        self.xml_name = self.xml_name or name

    def from_xml(self, instance: XMLElement) -> None:
        value = instance._etree_element_.get(self.xml_name)
        if value is None:
            raise ValueError(f'Missing mandatory attribute {self.xml_name!r} from {instance._qualname_!r}')
        try:
            instance._values_[cast(str, self.name)] = self.xml_parse(value)
        except ValueError as exc:
            raise ValueError(f'Invalid value for attribute {self.xml_name!r} from {instance._qualname_!r}: {exc!s}') from exc


class OptionalAttribute[D: XMLData](FieldDescriptor[D | None]):
    def __init__(self, data_type: type[D], /, *, name: str | None = None, default: D | None = None, adapter: DataAdapterType[D] | None = None) -> None:
        self.name = None
        self.type = data_type  # type: ignore[assignment]
        self.xml_name = name or ''
        self.default = default
        self.xml_parse = _parser_for(data_type, adapter)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.type.__qualname__}, name={self.xml_name!r}, default={self.default!r})'

    def __set_name__(self, owner: type[XMLElement], name: str) -> None:
        super().__set_name__(owner, name)
        self.xml_name = self.xml_name or name

    def from_xml(self, instance: XMLElement) -> None:
        value = instance._etree_element_.get(self.xml_name)
        try:
            instance._values_[cast(str, self.name)] = self.default if value is None else self.xml_parse(value)
        except ValueError as exc:
            raise ValueError(f'Invalid value for attribute {self.xml_name!r} from {instance._qualname_!r}: {exc!s}') from exc


class _DataElementDescriptor[D: XMLData, F](FieldDescriptor[F]):
    xml_name: str
    xml_namespace: Namespace | None
    xml_tag: str
    xml_qualname: str
    xml_parse: Callable[[str], D]

    def _setup(self, data_type: type[D], namespace: Namespace | None, name: str | None, adapter: DataAdapterType[D] | None) -> None:
        self.name = None
        self.type = data_type  # type: ignore[assignment]
        self.xml_name = name or ''
        self.xml_namespace = namespace
        self.xml_parse = _parser_for(data_type, adapter)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.type.__qualname__}, namespace={self.xml_namespace!r}, name={self.xml_name!r})'

    def __set_name__(self, owner: type[XMLElement], name: str) -> None:
        super().__set_name__(owner, name)
        self.xml_name = self.xml_name or name
        self.xml_namespace = self.xml_namespace or owner._namespace_
        self.xml_tag = f'{{{self.xml_namespace}}}{self.xml_name}' if self.xml_namespace is not None else self.xml_name
        self.xml_qualname = f'{self.xml_namespace.prefix}:{self.xml_name}' if self.xml_namespace is not None and self.xml_namespace.prefix is not None else self.xml_name

    def _parse_elements(self, instance: XMLElement) -> list[D]:
        elements = [element for element in instance._etree_element_ if element.tag == self.xml_tag]
        if len(elements) > 1:
            raise ValueError(f'Excess elements for {self.xml_qualname!r}')
        try:
            return [self.xml_parse((element.text or '').strip()) for element in elements]
        except ValueError as exc:
            raise ValueError(f'Invalid value for element {self.xml_qualname!r}: {exc!s}') from exc


class DataElement[D: XMLData](_DataElementDescriptor[D, D]):
    """A child element that holds a single value"""

    def __init__(self, data_type: type[D], /, *, namespace: Namespace | None = None, name: str | None = None, adapter: DataAdapterType[D] | None = None) -> None:
        self._setup(data_type, namespace, name, adapter)

    def from_xml(self, instance: XMLElement) -> None:
        values = self._parse_elements(instance)
        if not values:
            raise ValueError(f'Missing mandatory element {self.xml_qualname!r} from {instance._qualname_!r}')
        instance._values_[cast(str, self.name)] = values[0]


class OptionalDataElement[D: XMLData](_DataElementDescriptor[D, D | None]):
    def __init__(self, data_type: type[D], /, *, namespace: Namespace | None = None, name: str | None = None, default: D | None = None, adapter: DataAdapterType[D] | None = None) -> None:
        self._setup(data_type, namespace, name, adapter)
        self.default = default

    def from_xml(self, instance: XMLElement) -> None:
        values = self._parse_elements(instance)
        instance._values_[cast(str, self.name)] = values[0] if values else self.default


class MultiElement[E: XMLElement](FieldDescriptor[tuple[E, ...]]):
    """A sequence of child elements of the same type, in document order"""

    def __init__(self, element_type: type[E], /, *, optional: bool = False) -> None:
        if not (isinstance(element_type, type) and issubclass(element_type, XMLElement)):
            raise TypeError(f"element type must be a subclass of XMLElement, not '{type(element_type)}'")
        if element_type._tag_ is None:
            raise TypeError(f'{element_type.__qualname__!r} must specify a name to be usable as element type')
        self.name = None
        self.type = element_type  # type: ignore[assignment]
        self.element_type = element_type
        self.optional = optional

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.element_type.__name__}, optional={self.optional!r})'

    def from_xml(self, instance: XMLElement) -> None:
        elements = [element for element in instance._etree_element_ if element.tag == self.element_type._tag_]
        if not self.optional and not elements:
            raise ValueError(f'There must be at least 1 element for {self.element_type._qualname_!r}')
        instance._values_[cast(str, self.name)] = tuple(self.element_type.from_xml(element) for element in elements)


class TextValue[D: XMLData](FieldDescriptor[D]):
    """An XMLElement descriptor used to access the text value of its element"""

    def __init__(self, data_type: type[D], /, adapter: DataAdapterType[D] | None = None) -> None:
        self.name = None
        self.type = data_type
        self.xml_parse = _parser_for(data_type, adapter)

    def from_xml(self, instance: XMLElement) -> None:
        try:
            instance._values_[cast(str, self.name)] = self.xml_parse((instance._etree_element_.text or '').strip())
        except ValueError as exc:
            raise ValueError(f'Invalid text value for {instance._qualname_!r}: {exc!s}') from exc


field_specifiers = (Attribute, OptionalAttribute, DataElement, OptionalDataElement, MultiElement, TextValue)


@dataclass_transform(kw_only_default=True, field_specifiers=field_specifiers)  # type: ignore[misc]
class AnnotatedXMLElement(XMLElement):
    """
    A static type checker friendly variant of XMLElement.

    The element definition needs to include both an annotation and the
    descriptor definition for the element (same for attributes):

      index: Attribute[int] = Attribute(int, adapter=UInt32Adapter)
      chains: MultiElement[Chain] = MultiElement(Chain, optional=True)
    """


del field_specifiers
