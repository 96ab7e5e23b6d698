"""Schema synthesis.

Turns the metadata recorded for a declared type into an immutable
:class:`~typed_agent.schema.types.Schema`. Results are cached per type
(weakly), so synthesizing the same type twice returns the identical object.
"""

from __future__ import annotations

import threading
import weakref
from enum import Enum
from typing import Any, List, Literal, Optional, Sequence, Set, Tuple, Union, get_args, get_origin

from pydantic import BaseModel

from typed_agent.core.errors import ConfigError, TypeConflictError
from typed_agent.core.logging_config import get_logger

from .metadata import MetadataRecord, MetadataRegistry, PropertyMetadata, get_metadata_registry
from .rules import RuleFamily, RuleKind
from .types import BaseKind, ConstrainedType, ModelSchema, ScalarSchema, Schema, SchemaLike

logger = get_logger(__name__)

_SCALARS = {
    str: (BaseKind.string, False),
    bool: (BaseKind.boolean, False),
    int: (BaseKind.number, True),
    float: (BaseKind.number, False),
}

_FAMILY_KINDS = {
    RuleFamily.string: BaseKind.string,
    RuleFamily.number: BaseKind.number,
    RuleFamily.array: BaseKind.array,
    RuleFamily.enum: BaseKind.enum,
}


def strip_optional(annotation: Any) -> Tuple[Any, bool]:
    """Split ``Optional[X]`` into ``(X, True)``; anything else is returned as ``(annotation, False)``."""
    if get_origin(annotation) is Union:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) != len(get_args(annotation)):
            if len(args) == 1:
                return args[0], True
            return Union[tuple(args)], True
    return annotation, False


def check_enum_values(values: Sequence[Any], where: str) -> Tuple[Any, ...]:
    """Check that enum values are non-empty and all strings, all numbers or all booleans.

    Raises:
        ConfigError: If the values are empty or mixed
    """
    values = tuple(values)
    if not values:
        raise ConfigError(f"Enum values for {where} must not be empty")
    if all(isinstance(value, str) for value in values):
        return values
    if all(isinstance(value, (int, float)) and not isinstance(value, bool) for value in values):
        return values
    if all(isinstance(value, bool) for value in values):
        return values
    raise ConfigError(
        f"Enum values for {where} must be all strings, all numbers or all booleans, got {list(values)!r}"
    )


def _is_item_type(item_type: Any) -> bool:
    return (
        item_type is Any
        or isinstance(item_type, (type, Schema, ModelSchema))
        or get_origin(item_type) is not None
    )


def _resolve_thunk(item_type: Any, where: str) -> Any:
    """Resolve an array item type given directly or as a zero-argument callable.

    Raises:
        ConfigError: If the callable fails or the result is not a type or schema
    """
    if not _is_item_type(item_type) and callable(item_type):
        try:
            item_type = item_type()
        except Exception as e:
            raise ConfigError(f"Cannot resolve the item type of array property {where}: {e}") from e
    if not _is_item_type(item_type):
        raise ConfigError(f"Item type of array property {where} must be a type or a schema, got {item_type!r}")
    return item_type


class SchemaSynthesizer:
    """Synthesizes and caches schemas for declared types."""

    def __init__(self, registry: Optional[MetadataRegistry] = None) -> None:
        self._registry = registry or get_metadata_registry()
        self._cache: "weakref.WeakKeyDictionary[type, Schema]" = weakref.WeakKeyDictionary()
        self._in_progress: Set[type] = set()
        self._lock = threading.RLock()

    @property
    def registry(self) -> MetadataRegistry:
        return self._registry

    def is_declared(self, cls: Any) -> bool:
        return isinstance(cls, type) and self._registry.has_record(cls)

    def synthesize_type(self, cls: type) -> Schema:
        """Return the schema of a declared type, synthesizing it on first use.

        Args:
            cls: A class decorated with ``@schema``

        Returns:
            The cached :class:`Schema` for ``cls``

        Raises:
            ConfigError: If ``cls`` is not declared, or a property cannot be synthesized
            TypeConflictError: If a property mixes rule families
        """
        with self._lock:
            cached = self._cache.get(cls)
            if cached is not None:
                return cached
            if not self.is_declared(cls):
                raise ConfigError(
                    f"'{getattr(cls, '__name__', cls)}' is not a declared schema type; decorate it with @schema"
                )
            if cls in self._in_progress:
                raise ConfigError(f"Recursive schema reference to '{cls.__name__}' is not supported")

            self._in_progress.add(cls)
            try:
                schema = self.synthesize(self._registry.get_record(cls))
            finally:
                self._in_progress.discard(cls)

            self._cache[cls] = schema
            logger.debug(f"Synthesized schema '{schema.name}' with fields {schema.field_names}")
            return schema

    def synthesize(self, record: MetadataRecord) -> Schema:
        """Build a schema from a metadata record, without caching."""
        fields = tuple(
            (name, self._synthesize_property(record.name, meta)) for name, meta in record.properties.items()
        )
        return Schema(
            name=record.name,
            description=record.options.description,
            field_items=fields,
            example=record.options.example,
            target=record.owner,
        )

    def invalidate(self, cls: Optional[type] = None) -> None:
        """Drop the cached schema of ``cls`` (or of every type)."""
        with self._lock:
            if cls is None:
                self._cache.clear()
            else:
                self._cache.pop(cls, None)

    def _synthesize_property(self, owner: str, meta: PropertyMetadata) -> ConstrainedType:
        where = f"'{owner}.{meta.name}'"
        families: List[RuleFamily] = []
        for rule in meta.rules:
            if rule.family not in families:
                families.append(rule.family)
        if meta.enum_values is not None and RuleFamily.enum not in families:
            families.append(RuleFamily.enum)
        if len(families) > 1:
            raise TypeConflictError(owner, meta.name, [family.value for family in families])

        declared = None
        if meta.declared_type is not None:
            declared = self.type_from_annotation(meta.declared_type, where=where)

        common = {
            "rules": tuple(meta.rules),
            "description": meta.description,
            "required": not meta.optional,
            "example": meta.example,
        }

        if not families:
            if meta.array_item_type is not None:
                item = self.type_from_annotation(_resolve_thunk(meta.array_item_type, where), where=where)
                return ConstrainedType(BaseKind.array, item=item, **common)
            if declared is not None:
                return ConstrainedType(
                    declared.kind,
                    enum_values=declared.enum_values,
                    item=declared.item,
                    ref=declared.ref,
                    integral=declared.integral,
                    **common,
                )
            return ConstrainedType(BaseKind.any, **common)

        family = families[0]
        kind = _FAMILY_KINDS[family]
        if declared is not None and declared.kind not in (kind, BaseKind.any) and not self._compatible_enum(family, declared):
            raise TypeConflictError(owner, meta.name, [family.value, declared.kind.value])

        if family is RuleFamily.enum:
            values = meta.enum_values
            if values is None:
                values = next(rule.param for rule in meta.rules if rule.kind is RuleKind.enum)
            return ConstrainedType(BaseKind.enum, enum_values=check_enum_values(values, where), **common)

        if family is RuleFamily.number:
            integral = any(rule.kind is RuleKind.integer for rule in meta.rules) or bool(declared and declared.integral)
            return ConstrainedType(BaseKind.number, integral=integral, **common)

        if family is RuleFamily.array:
            if meta.array_item_type is not None:
                item = self.type_from_annotation(_resolve_thunk(meta.array_item_type, where), where=where)
            elif declared is not None and declared.item is not None:
                item = declared.item
            else:
                raise ConfigError(f"Array property {where} requires an item type")
            return ConstrainedType(BaseKind.array, item=item, **common)

        return ConstrainedType(BaseKind.string, **common)

    @staticmethod
    def _compatible_enum(family: RuleFamily, declared: ConstrainedType) -> bool:
        return family is RuleFamily.enum and declared.kind in (BaseKind.string, BaseKind.number)

    def type_from_annotation(self, annotation: Any, where: str = "annotation") -> ConstrainedType:
        """Map a Python annotation onto a :class:`ConstrainedType`.

        Raises:
            ConfigError: If the annotation names a class that is not a declared schema type
        """
        annotation, _ = strip_optional(annotation)
        if annotation is Any or annotation is None:
            return ConstrainedType(BaseKind.any)
        if isinstance(annotation, (Schema, ModelSchema)):
            return ConstrainedType(BaseKind.object, ref=annotation)
        if annotation in _SCALARS:
            kind, integral = _SCALARS[annotation]
            return ConstrainedType(kind, integral=integral)

        origin = get_origin(annotation)
        if origin is Literal:
            return ConstrainedType(BaseKind.enum, enum_values=check_enum_values(get_args(annotation), where))
        if origin in (list, tuple, set, frozenset) or annotation in (list, tuple, set, frozenset):
            args = [arg for arg in get_args(annotation) if arg is not Ellipsis]
            item = self.type_from_annotation(args[0], where=where) if args else ConstrainedType(BaseKind.any)
            return ConstrainedType(BaseKind.array, item=item)
        if origin is dict or annotation is dict or origin is Union:
            return ConstrainedType(BaseKind.any)

        if isinstance(annotation, type):
            if issubclass(annotation, Enum):
                values = [member.value for member in annotation]
                return ConstrainedType(BaseKind.enum, enum_values=check_enum_values(values, where))
            if issubclass(annotation, BaseModel):
                return ConstrainedType(BaseKind.object, ref=ModelSchema(annotation))
            if self.is_declared(annotation):
                return ConstrainedType(BaseKind.object, ref=self.synthesize_type(annotation))
            raise ConfigError(
                f"Type '{annotation.__name__}' used by {where} is not a declared schema type; decorate it with @schema"
            )
        return ConstrainedType(BaseKind.any)

    def resolve_schema(self, source: Any) -> SchemaLike:
        """Accept a declared type, a schema expression, a pydantic model or a primitive type.

        Raises:
            ConfigError: If ``source`` cannot be used as a schema
        """
        if isinstance(source, (Schema, ModelSchema, ScalarSchema)):
            return source
        if isinstance(source, type) and source in _SCALARS:
            kind, integral = _SCALARS[source]
            return ScalarSchema(ConstrainedType(kind, integral=integral))
        if isinstance(source, type) and issubclass(source, BaseModel):
            return ModelSchema(source)
        if self.is_declared(source):
            return self.synthesize_type(source)
        raise ConfigError(f"Cannot use {source!r} as a schema; decorate the class with @schema")


_synthesizer = SchemaSynthesizer()


def get_synthesizer() -> SchemaSynthesizer:
    """Get the global schema synthesizer.

    Returns:
        SchemaSynthesizer instance
    """
    return _synthesizer


def synthesize_type(cls: type) -> Schema:
    return _synthesizer.synthesize_type(cls)


def resolve_schema(source: Any) -> SchemaLike:
    return _synthesizer.resolve_schema(source)
