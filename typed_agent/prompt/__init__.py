"""Prompt assembly facade.

- ``PromptBuilder`` – builds system prompts and few-shot messages.
- ``PromptSpec`` / ``ShotExample`` – declarative inputs of the builder.
- ``Translator`` / ``JsonSchemaTranslator`` – schema-to-text rendering.
"""

from .builder import PromptBuilder, PromptSpec, ShotExample
from .translator import JsonSchemaTranslator, Translator

__all__ = [
    "PromptBuilder",
    "PromptSpec",
    "ShotExample",
    "Translator",
    "JsonSchemaTranslator",
]
