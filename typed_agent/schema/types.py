"""Synthesized schema types.

A :class:`Schema` is the immutable, value-comparable result of synthesis: an
ordered map of property names to :class:`ConstrainedType`. Validation is
delegated to pydantic: every schema lazily builds a ``create_model`` model
whose annotations carry one constraint per rule, in rule order.

Besides synthesized schemas, two directly constructed schema expressions are
accepted wherever a schema is expected:

- :class:`ModelSchema` wraps a pydantic ``BaseModel`` subclass
- :class:`ScalarSchema` wraps a single primitive (``str``, ``int``, ``float``, ``bool``)
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import cached_property
from typing import Annotated, Any, Callable, Dict, List, Literal, Mapping, Optional, Tuple, Type, Union

import annotated_types
from pydantic import AfterValidator, AnyUrl, BaseModel, ConfigDict, Field, IPvAnyAddress, TypeAdapter, create_model
from pydantic import ValidationError as PydanticValidationError
from pydantic.networks import validate_email
from pydantic_core import to_json

from typed_agent.core.errors import ValidationError

from .rules import Rule, RuleKind


class BaseKind(str, Enum):
    """Structural kind a property synthesizes to."""

    string = "string"
    number = "number"
    boolean = "boolean"
    array = "array"
    enum = "enum"
    object = "object"
    any = "any"


# A leading "c" and at least eight more non-space, non-dash characters.
_CUID_RE = re.compile(r"^c[^\s-]{8,}$", re.IGNORECASE)

_URL_ADAPTER = TypeAdapter(AnyUrl)
_UUID_ADAPTER = TypeAdapter(uuid.UUID)
_IP_ADAPTER = TypeAdapter(IPvAnyAddress)

_STRING_FORMATS = {
    RuleKind.email: "email",
    RuleKind.url: "uri",
    RuleKind.uuid: "uuid",
    RuleKind.cuid: "cuid",
    RuleKind.datetime: "date-time",
    RuleKind.ip: "ip",
}


def _adapter_check(adapter: TypeAdapter, message: str) -> Callable[[str], str]:
    def check(value: str) -> str:
        try:
            adapter.validate_python(value)
        except PydanticValidationError:
            raise ValueError(message) from None
        return value

    return check


def _check_email(value: str) -> str:
    validate_email(value)
    return value


def _check_cuid(value: str) -> str:
    if not _CUID_RE.match(value):
        raise ValueError("Invalid cuid")
    return value


def _check_datetime(value: str) -> str:
    if "T" not in value:
        raise ValueError("Invalid ISO 8601 datetime")
    try:
        datetime.fromisoformat(value)
    except ValueError:
        raise ValueError("Invalid ISO 8601 datetime") from None
    return value


def _check_pattern(regex: Union[str, "re.Pattern[str]"]) -> Callable[[str], str]:
    compiled = re.compile(regex) if isinstance(regex, str) else regex

    def check(value: str) -> str:
        if not compiled.search(value):
            raise ValueError(f"String does not match pattern {compiled.pattern!r}")
        return value

    return check


def _check_unique(items: List[Any]) -> List[Any]:
    seen = {to_json(item, fallback=str) for item in items}
    if len(seen) != len(items):
        raise ValueError("All items in array must be unique")
    return items


def _rule_constraint(rule: Rule) -> Any:
    """Map a rule onto pydantic annotation metadata (``None`` when the base type already enforces it)."""
    kind = rule.kind
    if kind in (RuleKind.min, RuleKind.min_items):
        return annotated_types.MinLen(rule.param)
    if kind in (RuleKind.max, RuleKind.max_items):
        return annotated_types.MaxLen(rule.param)
    if kind is RuleKind.minimum:
        return annotated_types.Ge(rule.param)
    if kind is RuleKind.maximum:
        return annotated_types.Le(rule.param)
    if kind is RuleKind.exclusive_minimum:
        return annotated_types.Gt(rule.param)
    if kind is RuleKind.exclusive_maximum:
        return annotated_types.Lt(rule.param)
    if kind is RuleKind.multiple_of:
        return annotated_types.MultipleOf(rule.param)
    if kind is RuleKind.pattern:
        return AfterValidator(_check_pattern(rule.param))
    if kind is RuleKind.email:
        return AfterValidator(_check_email)
    if kind is RuleKind.url:
        return AfterValidator(_adapter_check(_URL_ADAPTER, "Invalid url"))
    if kind is RuleKind.uuid:
        return AfterValidator(_adapter_check(_UUID_ADAPTER, "Invalid uuid"))
    if kind is RuleKind.ip:
        return AfterValidator(_adapter_check(_IP_ADAPTER, "Invalid IP address"))
    if kind is RuleKind.cuid:
        return AfterValidator(_check_cuid)
    if kind is RuleKind.datetime:
        return AfterValidator(_check_datetime)
    if kind is RuleKind.unique_items:
        return AfterValidator(_check_unique)
    # integer is carried by the base type, enum by the Literal
    return None


def _json_hints(rules: Tuple[Rule, ...]) -> Dict[str, Any]:
    hints: Dict[str, Any] = {}
    for rule in rules:
        if rule.kind in _STRING_FORMATS:
            hints["format"] = _STRING_FORMATS[rule.kind]
        elif rule.kind is RuleKind.pattern:
            hints["pattern"] = rule.param if isinstance(rule.param, str) else rule.param.pattern
        elif rule.kind is RuleKind.unique_items:
            hints["uniqueItems"] = True
    return hints


def _pydantic_errors(exc: PydanticValidationError) -> List[Dict[str, Any]]:
    return [dict(error) for error in exc.errors(include_url=False, include_context=False)]


@dataclass(frozen=True)
class ConstrainedType:
    """A base kind plus the constraints accumulated from its rules.

    Attributes:
        kind: Structural kind
        rules: Rules applied in registration order
        description: Description shown to the model
        required: Whether the property must be present
        enum_values: Allowed values when ``kind`` is enum
        item: Item type when ``kind`` is array
        ref: Nested schema when ``kind`` is object
        example: Example value (not part of equality)
        integral: Whether numbers must be integers
    """

    kind: BaseKind
    rules: Tuple[Rule, ...] = ()
    description: Optional[str] = None
    required: bool = True
    enum_values: Optional[Tuple[Any, ...]] = None
    item: Optional["ConstrainedType"] = None
    ref: Optional[Union["Schema", "ModelSchema"]] = None
    example: Any = field(default=None, compare=False, hash=False)
    integral: bool = False

    def _base_annotation(self) -> Any:
        if self.kind is BaseKind.string:
            return str
        if self.kind is BaseKind.number:
            return int if self.integral else float
        if self.kind is BaseKind.boolean:
            return bool
        if self.kind is BaseKind.enum:
            return Literal[tuple(self.enum_values or ())]
        if self.kind is BaseKind.array:
            return List[self.item.annotation() if self.item is not None else Any]
        if self.kind is BaseKind.object and self.ref is not None:
            return self.ref.model
        return Any

    def annotation(self) -> Any:
        """Python annotation enforcing this type, constraints attached in rule order."""
        metadata = [constraint for constraint in map(_rule_constraint, self.rules) if constraint is not None]
        hints = _json_hints(self.rules)
        if hints:
            metadata.append(Field(json_schema_extra=hints))
        base = self._base_annotation()
        if not metadata:
            return base
        return Annotated[(base, *metadata)]

    def field_definition(self, name: str) -> Tuple[Any, Any]:
        """Field definition for ``create_model``, aliased to the property name."""
        extra: Dict[str, Any] = {}
        if self.description:
            extra["description"] = self.description
        if self.example is not None:
            extra["examples"] = [self.example]
        annotation = self.annotation()
        if self.required:
            return annotation, Field(..., alias=name, title=name, **extra)
        return Optional[annotation], Field(None, alias=name, title=name, **extra)

    def build(self, value: Any) -> Any:
        """Turn an already validated plain value into its Python-facing form."""
        if value is None:
            return None
        if self.kind is BaseKind.object and self.ref is not None:
            return self.ref.build(value)
        if self.kind is BaseKind.array and self.item is not None:
            return [self.item.build(entry) for entry in value]
        return value

    def dump(self, value: Any) -> Any:
        """Inverse of :meth:`build`: reduce a Python-facing value to plain data."""
        if value is None:
            return None
        if self.kind is BaseKind.object and self.ref is not None:
            return self.ref.dump(value)
        if self.kind is BaseKind.array and self.item is not None and isinstance(value, (list, tuple)):
            return [self.item.dump(entry) for entry in value]
        return value


@dataclass(frozen=True)
class Schema:
    """Immutable synthesized schema.

    Two schemas are equal when their name, description and ordered fields are
    equal; the declaring class (``target``) is not part of equality.
    """

    name: str
    description: Optional[str] = None
    field_items: Tuple[Tuple[str, ConstrainedType], ...] = ()
    example: Any = field(default=None, compare=False, hash=False)
    target: Optional[type] = field(default=None, compare=False, hash=False, repr=False)

    is_text = False

    @classmethod
    def of(
        cls,
        name: str,
        fields: Mapping[str, ConstrainedType],
        description: Optional[str] = None,
    ) -> "Schema":
        """Build a schema directly, without going through the metadata registry."""
        return cls(name=name, description=description, field_items=tuple(fields.items()))

    @property
    def fields(self) -> Dict[str, ConstrainedType]:
        return dict(self.field_items)

    @property
    def field_names(self) -> List[str]:
        return [name for name, _ in self.field_items]

    @cached_property
    def model(self) -> Type[BaseModel]:
        """pydantic model enforcing this schema (built on first use)."""
        definitions = {
            f"field_{index}": constrained.field_definition(name)
            for index, (name, constrained) in enumerate(self.field_items)
        }
        return create_model(
            self.name,
            __config__=ConfigDict(title=self.name, extra="ignore", protected_namespaces=()),
            __doc__=self.description,
            **definitions,
        )

    def json_schema(self) -> Dict[str, Any]:
        schema = self.model.model_json_schema(by_alias=True)
        if self.description:
            schema["description"] = self.description
        return schema

    def validate(self, value: Any) -> Dict[str, Any]:
        """Validate ``value`` and return the validated data keyed by property name.

        Raises:
            ValidationError: If the value does not satisfy the schema
        """
        data = self.dump(value)
        try:
            instance = self.model.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(self.name, _pydantic_errors(exc)) from exc
        return instance.model_dump(by_alias=True, exclude_unset=True)

    def coerce(self, value: Any) -> Any:
        """Validate ``value`` and return it as an instance of the declaring class (a dict without one)."""
        return self.build(self.validate(value))

    def build(self, data: Mapping[str, Any]) -> Any:
        values = {
            name: constrained.build(data[name]) for name, constrained in self.field_items if name in data
        }
        if self.target is None:
            return values
        instance = self.target.__new__(self.target)
        for name, _ in self.field_items:
            setattr(instance, name, values.get(name))
        return instance

    def dump(self, value: Any) -> Any:
        if self.target is not None and isinstance(value, self.target):
            return {
                name: constrained.dump(getattr(value, name, None))
                for name, constrained in self.field_items
                if getattr(value, name, None) is not None or constrained.required
            }
        if isinstance(value, BaseModel):
            return value.model_dump(by_alias=True)
        if isinstance(value, Mapping):
            fields = self.fields
            return {key: fields[key].dump(entry) if key in fields else entry for key, entry in value.items()}
        return value


@dataclass(frozen=True)
class ModelSchema:
    """Schema backed by a user-defined pydantic model."""

    model: Type[BaseModel]

    is_text = False

    @property
    def name(self) -> str:
        return self.model.__name__

    @property
    def description(self) -> Optional[str]:
        return self.model.model_json_schema().get("description")

    @property
    def field_names(self) -> List[str]:
        return list(self.model.model_fields)

    def json_schema(self) -> Dict[str, Any]:
        return self.model.model_json_schema()

    def validate(self, value: Any) -> Dict[str, Any]:
        return self.coerce(value).model_dump()

    def coerce(self, value: Any) -> BaseModel:
        if isinstance(value, self.model):
            return value
        try:
            return self.model.model_validate(value)
        except PydanticValidationError as exc:
            raise ValidationError(self.name, _pydantic_errors(exc)) from exc

    def build(self, data: Any) -> BaseModel:
        return self.model.model_validate(data)

    def dump(self, value: Any) -> Any:
        if isinstance(value, BaseModel):
            return value.model_dump(mode="json")
        return value


@dataclass(frozen=True)
class ScalarSchema:
    """Schema for a single primitive value.

    Structured providers only accept object schemas, so the model-facing JSON
    schema wraps the value in a ``{"response": ...}`` object; validation
    accepts both the wrapped and the bare value.
    """

    type: ConstrainedType
    name: str = "response"
    description: Optional[str] = None

    @property
    def is_text(self) -> bool:
        return self.type.kind is BaseKind.string and not self.type.rules

    @property
    def field_names(self) -> List[str]:
        return ["response"]

    @cached_property
    def adapter(self) -> TypeAdapter:
        return TypeAdapter(self.type.annotation())

    def json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {"response": self.adapter.json_schema()},
            "required": ["response"],
        }
        if self.description:
            schema["description"] = self.description
        return schema

    def validate(self, value: Any) -> Any:
        if isinstance(value, Mapping) and set(value) == {"response"}:
            value = value["response"]
        try:
            return self.adapter.validate_python(value)
        except PydanticValidationError as exc:
            raise ValidationError(self.name, _pydantic_errors(exc)) from exc

    def coerce(self, value: Any) -> Any:
        return self.validate(value)

    def build(self, data: Any) -> Any:
        return data

    def dump(self, value: Any) -> Any:
        return value


SchemaLike = Union[Schema, ModelSchema, ScalarSchema]
