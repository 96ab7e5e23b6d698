"""Declarative schema surface.

Classes become schema types with the :func:`schema` decorator. Each annotated
attribute is a property; constraints are attached as ``Annotated`` markers::

    @schema("A user of the system")
    class User:
        name: Annotated[str, prop("Full name"), min_length(2)]
        email: Annotated[str, email()]
        age: Annotated[Optional[int], minimum(0)] = None
        tags: Annotated[List[str], unique_items(), max_items(5)]

Markers only record metadata; consistency is checked when the schema is
synthesized.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Callable, ClassVar, List, Optional, Tuple, Type, TypeVar, Union, get_args, get_origin, get_type_hints

from typed_agent.core.errors import ConfigError

from .metadata import MetadataRegistry, SchemaOptions, get_metadata_registry
from .rules import Rule, RuleKind
from .synthesizer import get_synthesizer, strip_optional

T = TypeVar("T", bound=type)

_UNSET = object()


@dataclass(frozen=True)
class Marker:
    """Property metadata carried inside ``Annotated[...]``."""

    label: str
    apply: Callable[[MetadataRegistry, type, str], None] = field(compare=False, repr=False)

    def __call__(self, registry: MetadataRegistry, owner: type, name: str) -> None:
        self.apply(registry, owner, name)


def _rule(kind: RuleKind, *params: Any) -> Marker:
    rule = Rule(kind, tuple(params))
    return Marker(kind.value, lambda registry, owner, name: registry.add_validation_rule(owner, name, rule))


def prop(description: str, example: Any = _UNSET) -> Marker:
    """Describe a property (optionally with an example value)."""

    def apply(registry: MetadataRegistry, owner: type, name: str) -> None:
        registry.set_description(owner, name, description)
        if example is not _UNSET:
            registry.set_example(owner, name, example)

    return Marker("prop", apply)


def optional() -> Marker:
    """Mark a property as not required."""
    return Marker("optional", lambda registry, owner, name: registry.set_optional(owner, name))


def example(value: Any) -> Marker:
    return Marker("example", lambda registry, owner, name: registry.set_example(owner, name, value))


def enum_values(*values: Any) -> Marker:
    """Restrict a property to a fixed set of values (all strings, all numbers or all booleans).

    Accepts either the values themselves or a single list of them.

    Raises:
        ConfigError: If no values are given
    """
    if len(values) == 1 and isinstance(values[0], (list, tuple)):
        values = tuple(values[0])
    if not values:
        raise ConfigError("enum_values() requires at least one value")

    def apply(registry: MetadataRegistry, owner: type, name: str) -> None:
        registry.set_enum_values(owner, name, values)
        registry.add_validation_rule(owner, name, Rule(RuleKind.enum, (values,)))

    return Marker("enum", apply)


def array_items(item_type: Any) -> Marker:
    """Set the item type of an array property.

    ``item_type`` may be a type or a zero-argument callable returning one, for
    classes declared later in the module.
    """
    return Marker("items", lambda registry, owner, name: registry.set_array_item_type(owner, name, item_type))


# String rules
def email() -> Marker:
    return _rule(RuleKind.email)


def url() -> Marker:
    return _rule(RuleKind.url)


def pattern(regex: str) -> Marker:
    return _rule(RuleKind.pattern, regex)


def uuid() -> Marker:
    return _rule(RuleKind.uuid)


def cuid() -> Marker:
    return _rule(RuleKind.cuid)


def iso_datetime() -> Marker:
    return _rule(RuleKind.datetime)


def ip() -> Marker:
    return _rule(RuleKind.ip)


def min_length(length: int) -> Marker:
    return _rule(RuleKind.min, length)


def max_length(length: int) -> Marker:
    return _rule(RuleKind.max, length)


# Number rules
def minimum(value: float) -> Marker:
    return _rule(RuleKind.minimum, value)


def maximum(value: float) -> Marker:
    return _rule(RuleKind.maximum, value)


def exclusive_minimum(value: float) -> Marker:
    return _rule(RuleKind.exclusive_minimum, value)


def exclusive_maximum(value: float) -> Marker:
    return _rule(RuleKind.exclusive_maximum, value)


def multiple_of(value: float) -> Marker:
    return _rule(RuleKind.multiple_of, value)


def integer() -> Marker:
    return _rule(RuleKind.integer)


# Array rules
def min_items(count: int) -> Marker:
    return _rule(RuleKind.min_items, count)


def max_items(count: int) -> Marker:
    return _rule(RuleKind.max_items, count)


def unique_items() -> Marker:
    return _rule(RuleKind.unique_items)


def _split_annotated(hint: Any) -> Tuple[Any, List[Marker]]:
    markers: List[Marker] = []
    while get_origin(hint) is Annotated:
        args = get_args(hint)
        hint = args[0]
        markers.extend(item for item in args[1:] if isinstance(item, Marker))
    return hint, markers


def _register_class(cls: type, options: SchemaOptions, registry: MetadataRegistry) -> None:
    try:
        hints = get_type_hints(cls, include_extras=True)
    except NameError as exc:
        raise ConfigError(f"Cannot resolve annotations of '{cls.__name__}': {exc}") from exc

    for name, hint in hints.items():
        if name.startswith("_") or get_origin(hint) is ClassVar:
            continue
        base, markers = _split_annotated(hint)
        base, is_optional = strip_optional(base)
        if get_origin(base) is Annotated:
            base, inner = _split_annotated(base)
            markers = inner + markers

        registry.register_property(cls, name)
        registry.set_declared_type(cls, name, base)
        if is_optional or name in cls.__dict__:
            registry.set_optional(cls, name)
        for marker in markers:
            marker(registry, cls, name)

    registry.set_schema_options(cls, options)


def schema(
    description: Union[str, Type[Any], None] = None,
    *,
    example: Any = None,
    deprecated: bool = False,
) -> Any:
    """Declare a class as a schema type.

    Can be used bare (``@schema``) or with a description (``@schema("...")``).
    Attributes with a default value, or annotated ``Optional[...]``, are not
    required.

    Args:
        description: Description of the type shown to the model
        example: Example instance data
        deprecated: Whether the type is deprecated

    Returns:
        The class itself, registered with the metadata registry
    """

    def decorate(cls: T) -> T:
        text = description if isinstance(description, str) else None
        options = SchemaOptions(description=text or _first_doc_line(cls), example=example, deprecated=deprecated)
        registry = get_metadata_registry()
        registry.clear(cls)
        _register_class(cls, options, registry)
        get_synthesizer().invalidate(cls)
        return cls

    if isinstance(description, type):
        return decorate(description)
    return decorate


def _first_doc_line(cls: type) -> Optional[str]:
    doc = cls.__dict__.get("__doc__")
    if not doc:
        return None
    return doc.strip().splitlines()[0].strip() or None
