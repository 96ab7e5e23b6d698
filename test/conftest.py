from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

import httpx
import pytest

import typed_agent.core.config as _config_module
from typed_agent.core.config import reset_settings
from typed_agent.core.messages import Message, ToolCall
from typed_agent.handlers.base import ModelHandler, ModelHandlerConfig, ModelTurn, ModelTurnDelta

ScriptStep = Union[ModelTurn, Exception, Callable[[List[Message]], ModelTurn]]


class ScriptedHandler(ModelHandler):
    """Model handler replaying a fixed script of turns.

    A step is a ModelTurn, an exception to raise, or a callable receiving the
    conversation and returning a ModelTurn. Every request is recorded in
    ``calls``; ``partials`` maps a request index to the fragments streamed
    before that turn.
    """

    def __init__(self, script: Iterable[ScriptStep], partials: Optional[Dict[int, List[Any]]] = None) -> None:
        super().__init__(ModelHandlerConfig(provider="scripted", model="test"))
        self.script: List[ScriptStep] = list(script)
        self.partials = partials or {}
        self.calls: List[Dict[str, Any]] = []

    async def process_query(
        self,
        prompt_schema,
        query: Sequence[Message],
        schema_name: str,
        schema_description,
        shots: Sequence[Message] = (),
        *,
        system_prompt: Optional[str] = None,
        tools: Sequence[Dict[str, Any]] = (),
    ) -> ModelTurn:
        self.calls.append(
            {
                "prompt_schema": prompt_schema,
                "query": list(query),
                "schema_name": schema_name,
                "schema_description": schema_description,
                "shots": list(shots),
                "system_prompt": system_prompt,
                "tools": list(tools),
            }
        )
        if not self.script:
            raise AssertionError("ScriptedHandler script exhausted")
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return step(list(query))
        return step

    async def stream_query(self, *args: Any, **kwargs: Any):
        index = len(self.calls)
        turn = await self.process_query(*args, **kwargs)
        for partial in self.partials.get(index, []):
            yield ModelTurnDelta(partial=partial)
        yield ModelTurnDelta(turn=turn)


def _text_turn(text: str) -> ModelTurn:
    return ModelTurn(text=text)


def _output_turn(schema_name: str, arguments: Any, call_id: Optional[str] = None, tool_calls: Sequence[ToolCall] = ()) -> ModelTurn:
    call = ToolCall(id=call_id or f"out_{schema_name}", name=schema_name, arguments=arguments)
    return ModelTurn(output_call=call, output=arguments, tool_calls=list(tool_calls))


def _tool_turn(*calls: ToolCall) -> ModelTurn:
    return ModelTurn(tool_calls=list(calls))


@pytest.fixture
def scripted() -> Callable[..., ScriptedHandler]:
    """Build a ScriptedHandler: ``scripted(turn1, turn2, ..., partials={0: [...]})``."""

    def build(*script: ScriptStep, partials: Optional[Dict[int, List[Any]]] = None) -> ScriptedHandler:
        return ScriptedHandler(script, partials=partials)

    return build


@pytest.fixture
def turns() -> SimpleNamespace:
    """Builders for scripted model turns."""
    return SimpleNamespace(text=_text_turn, output=_output_turn, tools=_tool_turn)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("TYPED_AGENT_LOGFIRE_ENABLED", "false")
    reset_settings()
    yield
    # Drop the cached settings instead of re-reading an environment the test may have broken.
    _config_module._settings = None


@pytest.fixture(autouse=True)
def _global_offline_http_guard(monkeypatch: pytest.MonkeyPatch):
    allowed_prefixes: Iterable[str] = (
        "http://mock",
        "https://mock",
        "http://localhost",
        "http://127.0.0.1",
    )

    orig_sync = httpx._client.Client.request
    orig_async = httpx._client.AsyncClient.request

    def _is_allowed(url_str: str) -> bool:
        return any(url_str.startswith(p) for p in allowed_prefixes)

    def offline_sync(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return orig_sync(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard: {url_str}")

    async def offline_async(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return await orig_async(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard (async): {url_str}")

    monkeypatch.setattr(httpx._client.Client, "request", offline_sync, raising=True)
    monkeypatch.setattr(httpx._client.AsyncClient, "request", offline_async, raising=True)
