"""Per-agent tool registry."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from typed_agent.core.errors import ConfigError
from typed_agent.core.logging_config import get_logger

from .definitions import EXTRA_TOOLS_ATTR, TOOL_ATTR, ToolDeclaration, ToolDefinition

logger = get_logger(__name__)


def collect_tool_declarations(cls: type) -> List[Tuple[str, ToolDeclaration]]:
    """Return ``(attribute, declaration)`` pairs of the tool methods of ``cls``.

    Base-class tools come first; an override keeps the position of the
    method it replaces.
    """
    declarations: Dict[str, ToolDeclaration] = {}
    for klass in reversed(cls.__mro__):
        for attr, value in vars(klass).items():
            declaration = getattr(value, TOOL_ATTR, None)
            if isinstance(declaration, ToolDeclaration):
                declarations[attr] = declaration
            elif attr in declarations:
                del declarations[attr]
    return list(declarations.items())


class ToolRegistry:
    """Ordered, name-unique collection of the tools exposed by one agent."""

    def __init__(self, definitions: Iterable[ToolDefinition] = ()) -> None:
        self._tools: Dict[str, ToolDefinition] = {}
        for definition in definitions:
            self.register(definition)

    @classmethod
    def for_agent(cls, instance: Any) -> "ToolRegistry":
        """Build the registry of an agent instance, binding tool methods to it.

        Raises:
            ConfigError: If two tools share a name
        """
        registry = cls()
        for attr, declaration in collect_tool_declarations(type(instance)):
            registry.register(
                ToolDefinition(
                    name=declaration.name,
                    description=declaration.description,
                    parameters=declaration.parameters,
                    handler=getattr(instance, attr),
                    takes_params=declaration.takes_params,
                )
            )
        for definition in getattr(type(instance), EXTRA_TOOLS_ATTR, []):
            registry.register(definition)
        logger.debug(f"Registered {len(registry)} tool(s) for {type(instance).__name__}: {registry.names()}")
        return registry

    def register(self, definition: ToolDefinition) -> None:
        """Add a tool.

        Raises:
            ConfigError: If a tool with the same name is already registered
        """
        if definition.name in self._tools:
            raise ConfigError(f"Duplicate tool name '{definition.name}'")
        self._tools[definition.name] = definition

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def definitions(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def catalog(self) -> List[Dict[str, Any]]:
        """Describe every tool as ``{name, description, parameters}``, in registration order."""
        return [definition.to_dict() for definition in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
