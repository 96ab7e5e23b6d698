"""Class-level agent declarations.

Agents are configured with class decorators; each one records into the
class's :class:`AgentDeclaration`. Subclasses start from a copy of their
base's declaration, so decorating a subclass never changes the base.

    @model("openai:gpt-4o-mini", temperature=0.2)
    @system_prompt("You are a helpful assistant.")
    @output_type(Answer)
    class Assistant(Agent):
        @system_prompt
        def today(self) -> str:
            return f"Today is {date.today()}."
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar, Union

from typed_agent.core.errors import ConfigError
from typed_agent.prompt.builder import ShotExample

from ..handlers.factory import parse_model_id

AGENT_DECLARATION_ATTR = "__typed_agent_declaration__"
DYNAMIC_PROMPT_ATTR = "__typed_agent_system_prompt__"

C = TypeVar("C", bound=type)
F = TypeVar("F", bound=Callable[..., Any])


@dataclass
class AgentDeclaration:
    """Everything declared on an agent class.

    Attributes:
        model_id: ``"<provider>:<model>"`` selector
        model_options: ModelHandlerConfig options (temperature, max_tokens, ...)
        max_rounds: Round budget (settings default when None)
        max_corrections: Correction budget (settings default when None)
        parallel_tool_calls: Run tool calls of one turn concurrently (settings default when None)
        static_prompts: Static system prompt segments, base classes first, top-most decorator first
        own_prompts_from: Index in ``static_prompts`` where this class's own segments start
        input_source: Input schema source
        output_source: Output schema source
        shots: Few-shot examples
    """

    model_id: Optional[str] = None
    model_options: Dict[str, Any] = field(default_factory=dict)
    max_rounds: Optional[int] = None
    max_corrections: Optional[int] = None
    parallel_tool_calls: Optional[bool] = None
    static_prompts: List[str] = field(default_factory=list)
    own_prompts_from: int = 0
    input_source: Any = None
    output_source: Any = str
    shots: List[ShotExample] = field(default_factory=list)


def get_declaration(cls: type) -> AgentDeclaration:
    """Return the declaration of ``cls`` (inherited declarations are copied, never shared)."""
    own = cls.__dict__.get(AGENT_DECLARATION_ATTR)
    if own is not None:
        return own
    inherited = getattr(cls, AGENT_DECLARATION_ATTR, None)
    if inherited is not None:
        declaration = copy.deepcopy(inherited)
        declaration.own_prompts_from = len(declaration.static_prompts)
    else:
        declaration = AgentDeclaration()
    setattr(cls, AGENT_DECLARATION_ATTR, declaration)
    return declaration


def _require_class(target: Any, decorator: str) -> None:
    if not isinstance(target, type):
        raise ConfigError(f"@{decorator} must decorate an agent class, got {target!r}")


def model(
    model_id: str,
    *,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    top_p: Optional[float] = None,
    timeout: Optional[float] = None,
    max_rounds: Optional[int] = None,
    max_corrections: Optional[int] = None,
    parallel_tool_calls: Optional[bool] = None,
    **model_settings: Any,
) -> Callable[[C], C]:
    """Select the model of an agent and its run budgets.

    Raises:
        ConfigError: If ``model_id`` is malformed or a budget is invalid
    """
    parse_model_id(model_id)
    if max_rounds is not None and max_rounds < 1:
        raise ConfigError(f"max_rounds must be at least 1, got {max_rounds}")
    if max_corrections is not None and max_corrections < 0:
        raise ConfigError(f"max_corrections must not be negative, got {max_corrections}")

    options = {
        key: value
        for key, value in (
            ("temperature", temperature),
            ("max_tokens", max_tokens),
            ("top_p", top_p),
            ("timeout", timeout),
        )
        if value is not None
    }
    if model_settings:
        options["model_settings"] = dict(model_settings)

    def decorate(cls: C) -> C:
        _require_class(cls, "model")
        declaration = get_declaration(cls)
        declaration.model_id = model_id
        declaration.model_options = options
        declaration.max_rounds = max_rounds
        declaration.max_corrections = max_corrections
        declaration.parallel_tool_calls = parallel_tool_calls
        return cls

    return decorate


def system_prompt(arg: Union[str, Callable[..., Any], None] = None) -> Any:
    """Add system prompt text.

    On a class, ``@system_prompt("text")`` adds a static segment after the
    segments inherited from base classes; stacked decorators keep their
    top-to-bottom order. On a method, ``@system_prompt``
    (or ``@system_prompt()``) marks it as a dynamic segment, invoked on the
    agent instance at every run; it may be async and must return a string.
    """
    if isinstance(arg, str):
        text = arg

        def decorate_class(cls: C) -> C:
            _require_class(cls, "system_prompt")
            declaration = get_declaration(cls)
            declaration.static_prompts.insert(declaration.own_prompts_from, text)
            return cls

        return decorate_class

    def mark(func: F) -> F:
        if isinstance(func, type):
            raise ConfigError("@system_prompt on a class needs the prompt text: @system_prompt('...')")
        setattr(func, DYNAMIC_PROMPT_ATTR, True)
        return func

    if arg is None:
        return mark
    return mark(arg)


def collect_dynamic_prompts(cls: type) -> List[Callable[..., Any]]:
    """Dynamic prompt methods of ``cls`` in declaration order, base classes first."""
    providers: Dict[str, Callable[..., Any]] = {}
    for klass in reversed(cls.__mro__):
        for attr, value in vars(klass).items():
            if getattr(value, DYNAMIC_PROMPT_ATTR, False):
                providers[attr] = value
            elif attr in providers:
                del providers[attr]
    return list(providers.values())


def input_type(source: Any) -> Callable[[C], C]:
    """Declare the input schema of an agent."""

    def decorate(cls: C) -> C:
        _require_class(cls, "input_type")
        get_declaration(cls).input_source = source
        return cls

    return decorate


def output_type(source: Any) -> Callable[[C], C]:
    """Declare the output schema of an agent (``str`` by default)."""

    def decorate(cls: C) -> C:
        _require_class(cls, "output_type")
        get_declaration(cls).output_source = source
        return cls

    return decorate


def shots(*examples: Union[ShotExample, Tuple[Any, Any]]) -> Callable[[C], C]:
    """Attach few-shot examples, as ``ShotExample`` or ``(request, response)`` pairs."""
    normalized: List[ShotExample] = []
    for entry in examples:
        if isinstance(entry, ShotExample):
            normalized.append(entry)
        elif isinstance(entry, tuple) and len(entry) == 2:
            normalized.append(ShotExample(example_request=entry[0], example_response=entry[1]))
        else:
            raise ConfigError(f"Shot examples must be ShotExample or (request, response) pairs, got {entry!r}")

    def decorate(cls: C) -> C:
        _require_class(cls, "shots")
        get_declaration(cls).shots.extend(normalized)
        return cls

    return decorate
