"""
Extraction of injectable fields from a class.

Fields are declared with class annotations:

    class UserService:
        storage: Inject[Storage]
        config: Annotated[ConfigService, inject('bean=configService')]
        plugins: Annotated[list[Plugin], inject('optional')]
        peer: Annotated[Callable[[], PeerService], inject()]

The element type is unwrapped from list / dict / zero-argument callable
wrappers and must be a class that is not a plain value type.
"""

import collections.abc
import logging
import types
from functools import lru_cache
from typing import Annotated, Any, Optional, Union, get_args, get_origin, get_type_hints

from .capabilities import CAPABILITIES
from .exceptions import DescriptorError

logger = logging.getLogger(__name__)

__all__ = [
    'Multiplicity',
    'VALUE_TYPES',
    'inject',
    'Inject',
    'InjectionDef',
    'BeanDescriptor',
    'parse_tag',
    'describe',
    'type_name'
]

VALUE_TYPES = (int, float, complex, bool, str, bytes, tuple, frozenset)

_LIST_ORIGINS = (list, collections.abc.Sequence, collections.abc.MutableSequence)
_MAP_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


class Multiplicity:
    """
    How many candidates a field receives.
    """
    Single = 'single'
    List = 'list'
    Map = 'map'


def type_name(_type: Any) -> str:
    """Printable name of a class or function, 'module.QualName'."""
    qualname = getattr(_type, '__qualname__', None) or getattr(_type, '__name__', None)
    if qualname is None:
        return str(_type)
    return f"{_type.__module__}.{qualname}"


def parse_tag(tag: str) -> dict:
    """
    Parse a free-form tag such as 'optional, lazy, bean=storage, level=-1'.

    Unknown keys are ignored; a repeated key keeps its last value.
    """
    result = {}
    for pair in (tag or '').split(','):
        key, _, value = pair.strip().partition('=')
        key, value = key.strip(), value.strip()
        if key == 'optional':
            result['optional'] = True
        elif key == 'lazy':
            result['lazy'] = True
        elif key == 'bean' and value:
            result['qualifier'] = value
        elif key == 'level' and value:
            try:
                result['level'] = int(value)
            except ValueError:
                raise DescriptorError(f"level must be an integer, got '{value}' in tag '{tag}'")
    return result


class inject:
    """
    Marks an annotated class attribute as injectable.

    Accepts a free-form tag and keyword overrides:
        inject('optional, bean=storage')
        inject(lazy=True, level=-1)
    """

    __slots__ = ('optional', 'lazy', 'qualifier', 'level')

    def __init__(
        self,
        tag: str = '',
        *,
        optional: Optional[bool] = None,
        lazy: Optional[bool] = None,
        bean: Optional[str] = None,
        level: Optional[int] = None
    ):
        parsed = parse_tag(tag)
        self.optional = parsed.get('optional', False) if optional is None else optional
        self.lazy = parsed.get('lazy', False) if lazy is None else lazy
        self.qualifier = parsed.get('qualifier') if bean is None else bean
        self.level = parsed.get('level', 0) if level is None else level

    def __repr__(self):
        return (f"inject(optional={self.optional}, lazy={self.lazy}, "
                f"bean={self.qualifier!r}, level={self.level})")


class Inject:
    """Shorthand: Inject[T] is Annotated[T, inject()]."""

    def __class_getitem__(cls, item):
        return Annotated[item, inject()]


class InjectionDef:
    """
    One injectable field of a class.

    Attributes:
        owner:        The class declaring the field.
        position:     Index of the field among the class annotations.
        field_name:   Attribute name assigned on injection.
        field_type:   Element type candidates must satisfy.
        multiplicity: Multiplicity.Single, List or Map.
        accessor:     True when the field receives a zero-argument function.
        lazy:         No dependency edge is recorded, so cycles through it are allowed.
        optional:     Zero candidates is not an error.
        qualifier:    Restricts candidates to the bean with that name.
        level:        How many context generations to search.
    """

    __slots__ = (
        'owner', 'position', 'field_name', 'field_type', 'multiplicity',
        'accessor', 'lazy', 'optional', 'qualifier', 'level'
    )

    def __init__(
        self,
        owner: type,
        position: int,
        field_name: str,
        field_type: type,
        multiplicity: str = Multiplicity.Single,
        accessor: bool = False,
        lazy: bool = False,
        optional: bool = False,
        qualifier: Optional[str] = None,
        level: int = 0
    ):
        self.owner = owner
        self.position = position
        self.field_name = field_name
        self.field_type = field_type
        self.multiplicity = multiplicity
        self.accessor = accessor
        self.lazy = lazy or accessor
        self.optional = optional
        self.qualifier = qualifier
        self.level = level

    @property
    def collection(self) -> bool:
        return self.multiplicity != Multiplicity.Single

    def __str__(self):
        return f"{type_name(self.owner)}->{self.field_name}"

    __repr__ = __str__


class BeanDescriptor:
    """
    Result of investigating a class.

    Attributes:
        bean_class:     The investigated class.
        fields:         Injectable fields in declaration order.
        not_implements: Capability markers inherited but not implemented.
    """

    __slots__ = ('bean_class', 'fields', 'not_implements')

    def __init__(self, bean_class: type, fields: list[InjectionDef], not_implements: tuple = ()):
        self.bean_class = bean_class
        self.fields = fields
        self.not_implements = not_implements

    def implements(self, iface: type) -> bool:
        if iface in self.not_implements:
            return False
        try:
            return issubclass(self.bean_class, iface)
        except TypeError:
            # non runtime-checkable protocols and typing constructs
            return False


def _unwrap_optional(annotation):
    if get_origin(annotation) in (Union, types.UnionType):
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1 and len(get_args(annotation)) == 2:
            return args[0], True
    return annotation, False


def _is_class_type(_type) -> bool:
    if _type is Any:
        return False
    return isinstance(_type, type) and not issubclass(_type, VALUE_TYPES)


def _field_def(owner: type, position: int, name: str, annotation, marker: inject) -> InjectionDef:
    field_type, optional = _unwrap_optional(annotation)
    multiplicity = Multiplicity.Single
    accessor = False

    origin = get_origin(field_type)
    if origin in _LIST_ORIGINS:
        multiplicity = Multiplicity.List
        field_type = get_args(field_type)[0] if get_args(field_type) else Any
    elif origin in _MAP_ORIGINS:
        args = get_args(field_type)
        if not args or args[0] is not str:
            raise DescriptorError(
                f"map field '{name}' on position {position} in {type_name(owner)} must be keyed by str, "
                f"got '{annotation}'")
        multiplicity = Multiplicity.Map
        field_type = args[1]
    elif origin is collections.abc.Callable:
        params, result = get_args(field_type) or (..., Any)
        if params is ... or len(params) != 0:
            raise DescriptorError(
                f"accessor field '{name}' on position {position} in {type_name(owner)} must take no arguments, "
                f"got '{annotation}'")
        accessor = True
        field_type = result

    if not _is_class_type(field_type):
        raise DescriptorError(
            f"not an object or interface field type '{annotation}' on position {position} in {type_name(owner)}")

    return InjectionDef(
        owner=owner,
        position=position,
        field_name=name,
        field_type=field_type,
        multiplicity=multiplicity,
        accessor=accessor,
        lazy=marker.lazy,
        optional=marker.optional or optional,
        qualifier=marker.qualifier,
        level=marker.level
    )


def _not_implements(cls: type) -> tuple:
    result = []
    for marker, methods in CAPABILITIES.items():
        if marker in cls.__mro__[1:]:
            if any(getattr(cls, m, None) is marker.__dict__.get(m) for m in methods):
                result.append(marker)
    return tuple(result)


@lru_cache(maxsize=None)
def describe(cls: type) -> BeanDescriptor:
    """
    Investigate a class and return its descriptor, cached per class.
    """
    try:
        hints = get_type_hints(cls, include_extras=True)
    except Exception as e:
        raise DescriptorError(f"failed to read annotations of {type_name(cls)}, {e}") from e

    fields = []
    for position, (name, annotation) in enumerate(hints.items()):
        if get_origin(annotation) is not Annotated:
            continue
        base_type, *metadata = get_args(annotation)
        marker = next((m for m in metadata if isinstance(m, inject)), None)
        if marker is None:
            continue
        fields.append(_field_def(cls, position, name, base_type, marker))

    descriptor = BeanDescriptor(cls, fields, _not_implements(cls))
    logger.debug("Described %s: %d injectable field(s)", type_name(cls), len(fields))
    return descriptor
