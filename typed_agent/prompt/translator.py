"""Schema-to-text translation.

This module defines :class:`Translator`, the small, runtime-checkable
protocol the prompt builder uses to render a schema as model-facing text,
and :class:`JsonSchemaTranslator`, the default implementation that renders
the schema's JSON schema document.
"""

from __future__ import annotations

import json
from typing import Protocol, runtime_checkable

from typed_agent.schema.types import SchemaLike


@runtime_checkable
class Translator(Protocol):
    """Protocol for schema translators.

    Implementations must be side-effect free and raise on schemas they
    cannot render; the prompt builder turns any failure into a
    ``PromptGenerationError``.
    """

    def translate(self, schema: SchemaLike) -> str:
        """Return the model-facing text describing ``schema``."""

        ...


class JsonSchemaTranslator:
    """Render a schema as an indented JSON schema document."""

    def __init__(self, indent: int = 2) -> None:
        self.indent = indent

    def translate(self, schema: SchemaLike) -> str:
        return json.dumps(schema.json_schema(), indent=self.indent, ensure_ascii=False)
