"""
Schema declaration and synthesis.

Declared classes record property metadata in the :class:`MetadataRegistry`;
the :class:`SchemaSynthesizer` turns that metadata into immutable
:class:`Schema` values that validate, coerce and describe data.
"""

from .decorators import (
    Marker,
    array_items,
    cuid,
    email,
    enum_values,
    example,
    exclusive_maximum,
    exclusive_minimum,
    integer,
    ip,
    iso_datetime,
    max_items,
    max_length,
    maximum,
    min_items,
    min_length,
    minimum,
    multiple_of,
    optional,
    pattern,
    prop,
    schema,
    unique_items,
    url,
    uuid,
)
from .metadata import MetadataRecord, MetadataRegistry, PropertyMetadata, SchemaOptions, get_metadata_registry
from .rules import Rule, RuleFamily, RuleKind
from .synthesizer import SchemaSynthesizer, get_synthesizer, resolve_schema, synthesize_type
from .types import BaseKind, ConstrainedType, ModelSchema, ScalarSchema, Schema, SchemaLike

__all__ = [
    # Declaration
    "schema",
    "Marker",
    "prop",
    "optional",
    "example",
    "enum_values",
    "array_items",
    "email",
    "url",
    "pattern",
    "uuid",
    "cuid",
    "iso_datetime",
    "ip",
    "min_length",
    "max_length",
    "minimum",
    "maximum",
    "exclusive_minimum",
    "exclusive_maximum",
    "multiple_of",
    "integer",
    "min_items",
    "max_items",
    "unique_items",
    # Metadata
    "MetadataRegistry",
    "MetadataRecord",
    "PropertyMetadata",
    "SchemaOptions",
    "get_metadata_registry",
    "Rule",
    "RuleFamily",
    "RuleKind",
    # Synthesis
    "SchemaSynthesizer",
    "get_synthesizer",
    "synthesize_type",
    "resolve_schema",
    "BaseKind",
    "ConstrainedType",
    "Schema",
    "ModelSchema",
    "ScalarSchema",
    "SchemaLike",
]
