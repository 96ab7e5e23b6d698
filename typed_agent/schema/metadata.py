"""Metadata registry for declared schema types.

The registry stores, per declaring type, the ordered property metadata that
the synthesizer turns into a :class:`~typed_agent.schema.types.Schema`.
Registration calls never validate anything: rule-family consistency is
checked at synthesis, so the order in which markers are applied to a single
property does not matter.
"""

from __future__ import annotations

import copy
import threading
import weakref
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from typed_agent.core.logging_config import get_logger

from .rules import Rule

logger = get_logger(__name__)


@dataclass
class SchemaOptions:
    """Type-level schema metadata."""

    description: Optional[str] = None
    example: Any = None
    deprecated: bool = False


@dataclass
class PropertyMetadata:
    """Metadata recorded for one property of a declared type.

    Attributes:
        name: Property name
        description: Human-readable description
        optional: Whether the property may be omitted
        rules: Validation rules in registration order
        enum_values: Allowed values for enum properties
        array_item_type: Item type (or a thunk returning it) for array properties
        example: Example value
        declared_type: Python annotation of the attribute, when known
    """

    name: str
    description: Optional[str] = None
    optional: bool = False
    rules: List[Rule] = field(default_factory=list)
    enum_values: Optional[Tuple[Any, ...]] = None
    array_item_type: Any = None
    example: Any = None
    declared_type: Any = None

    def snapshot(self) -> "PropertyMetadata":
        """Detached copy, safe to hand to readers."""
        return PropertyMetadata(
            name=self.name,
            description=self.description,
            optional=self.optional,
            rules=list(self.rules),
            enum_values=self.enum_values,
            array_item_type=self.array_item_type,
            example=copy.deepcopy(self.example),
            declared_type=self.declared_type,
        )


@dataclass
class MetadataRecord:
    """All metadata of one declaring type, properties in first-seen order."""

    owner: Optional[type]
    name: str
    options: SchemaOptions = field(default_factory=SchemaOptions)
    properties: Dict[str, PropertyMetadata] = field(default_factory=dict)

    def property_names(self) -> List[str]:
        return list(self.properties)


class MetadataRegistry:
    """Process-wide registry of property metadata keyed by declaring type.

    Entries are held weakly so that classes created at runtime (tests, dynamic
    agents) do not leak.
    """

    def __init__(self) -> None:
        self._records: "weakref.WeakKeyDictionary[type, MetadataRecord]" = weakref.WeakKeyDictionary()
        self._lock = threading.Lock()

    def _record(self, owner: type) -> MetadataRecord:
        record = self._records.get(owner)
        if record is None:
            record = MetadataRecord(owner=None, name=owner.__name__)
            self._records[owner] = record
        return record

    def _property(self, owner: type, name: str) -> PropertyMetadata:
        record = self._record(owner)
        meta = record.properties.get(name)
        if meta is None:
            meta = PropertyMetadata(name=name)
            record.properties[name] = meta
            logger.debug(f"Registered property {owner.__name__}.{name}")
        return meta

    def register_property(self, owner: type, name: str) -> None:
        """Register a property; repeated calls keep the first-seen position."""
        with self._lock:
            self._property(owner, name)

    def add_validation_rule(self, owner: type, name: str, rule: Rule) -> None:
        """Append a rule to a property (rules accumulate, never overwrite)."""
        with self._lock:
            self._property(owner, name).rules.append(rule)

    def set_optional(self, owner: type, name: str, optional: bool = True) -> None:
        with self._lock:
            self._property(owner, name).optional = optional

    def set_description(self, owner: type, name: str, description: Optional[str]) -> None:
        with self._lock:
            self._property(owner, name).description = description

    def set_enum_values(self, owner: type, name: str, values: Sequence[Any]) -> None:
        with self._lock:
            self._property(owner, name).enum_values = tuple(values)

    def set_array_item_type(self, owner: type, name: str, item_type: Any) -> None:
        with self._lock:
            self._property(owner, name).array_item_type = item_type

    def set_example(self, owner: type, name: str, example: Any) -> None:
        with self._lock:
            self._property(owner, name).example = example

    def set_declared_type(self, owner: type, name: str, declared_type: Any) -> None:
        with self._lock:
            self._property(owner, name).declared_type = declared_type

    def set_schema_options(self, owner: type, options: SchemaOptions) -> None:
        with self._lock:
            self._record(owner).options = options

    def has_record(self, owner: type) -> bool:
        with self._lock:
            return owner in self._records

    def get_record(self, owner: type) -> MetadataRecord:
        """Return a detached snapshot of the metadata of ``owner``.

        Raises:
            KeyError: If nothing was registered for ``owner``
        """
        with self._lock:
            record = self._records.get(owner)
            if record is None:
                raise KeyError(f"No schema metadata registered for '{getattr(owner, '__name__', owner)}'")
            return MetadataRecord(
                owner=owner,
                name=record.name,
                options=copy.copy(record.options),
                properties={name: meta.snapshot() for name, meta in record.properties.items()},
            )

    def clear(self, owner: Optional[type] = None) -> None:
        """Forget the metadata of one type, or of every type."""
        with self._lock:
            if owner is None:
                self._records.clear()
            else:
                self._records.pop(owner, None)


_registry = MetadataRegistry()


def get_metadata_registry() -> MetadataRegistry:
    """Get the global metadata registry.

    Returns:
        MetadataRegistry instance
    """
    return _registry
