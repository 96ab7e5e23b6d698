"""Validation rule vocabulary.

A :class:`Rule` is a kind plus its parameters. Kinds are partitioned into
families; the family decides which base kind a property synthesizes to, and
two families on one property are a conflict.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Tuple


class RuleFamily(str, Enum):
    """Group of rules that apply to the same base kind."""

    string = "string"
    number = "number"
    array = "array"
    enum = "enum"


class RuleKind(str, Enum):
    """Validation rule kinds."""

    # String rules
    email = "email"
    url = "url"
    pattern = "pattern"
    min = "min"
    max = "max"
    uuid = "uuid"
    cuid = "cuid"
    datetime = "datetime"
    ip = "ip"
    # Number rules
    minimum = "minimum"
    maximum = "maximum"
    exclusive_minimum = "exclusiveMinimum"
    exclusive_maximum = "exclusiveMaximum"
    multiple_of = "multipleOf"
    integer = "integer"
    # Array rules
    min_items = "minItems"
    max_items = "maxItems"
    unique_items = "uniqueItems"
    # Enum rule
    enum = "enum"

    @property
    def family(self) -> RuleFamily:
        return RULE_FAMILIES[self]


RULE_FAMILIES = {
    RuleKind.email: RuleFamily.string,
    RuleKind.url: RuleFamily.string,
    RuleKind.pattern: RuleFamily.string,
    RuleKind.min: RuleFamily.string,
    RuleKind.max: RuleFamily.string,
    RuleKind.uuid: RuleFamily.string,
    RuleKind.cuid: RuleFamily.string,
    RuleKind.datetime: RuleFamily.string,
    RuleKind.ip: RuleFamily.string,
    RuleKind.minimum: RuleFamily.number,
    RuleKind.maximum: RuleFamily.number,
    RuleKind.exclusive_minimum: RuleFamily.number,
    RuleKind.exclusive_maximum: RuleFamily.number,
    RuleKind.multiple_of: RuleFamily.number,
    RuleKind.integer: RuleFamily.number,
    RuleKind.min_items: RuleFamily.array,
    RuleKind.max_items: RuleFamily.array,
    RuleKind.unique_items: RuleFamily.array,
    RuleKind.enum: RuleFamily.enum,
}


@dataclass(frozen=True)
class Rule:
    """A single validation rule with its parameters.

    Example:
        >>> Rule(RuleKind.min, (3,))
    """

    kind: RuleKind
    params: Tuple[Any, ...] = ()

    @property
    def family(self) -> RuleFamily:
        return self.kind.family

    @property
    def param(self) -> Any:
        """First parameter, for the single-argument rules."""
        if not self.params:
            raise ValueError(f"Rule '{self.kind.value}' requires a parameter")
        return self.params[0]
