"""Streaming agent runs."""

from __future__ import annotations

from contextlib import aclosing
from typing import TYPE_CHECKING, Any, AsyncGenerator, Optional

from .state import AgentRunResult, AgentRunState

if TYPE_CHECKING:
    from .orchestrator import AgentOrchestrator

_UNSET = object()


class AgentStream:
    """Single-use async iterable over a streaming run.

    Iterating yields the cumulative partial output fragments of the round
    whose output was accepted, and finally the validated output (unless it
    equals the last fragment). Fragments of rejected drafts never reach the
    consumer. Closing the stream, or cancelling the task iterating it, stops
    further model calls; tool calls already started still complete.

    Example:
        stream = agent.run_stream("question")
        async for fragment in stream:
            print(fragment)
        print(stream.result.rounds)
    """

    def __init__(self, orchestrator: "AgentOrchestrator", value: Any) -> None:
        self._orchestrator = orchestrator
        self._value = value
        self._state = AgentRunState()
        self._started = False
        self._result: Optional[AgentRunResult] = None
        self._iterator: Optional[AsyncGenerator[Any, None]] = None

    @property
    def state(self) -> AgentRunState:
        return self._state

    @property
    def done(self) -> bool:
        return self._result is not None

    @property
    def result(self) -> AgentRunResult:
        """Run result, available once the stream is exhausted.

        Raises:
            RuntimeError: If the stream has not completed
        """
        if self._result is None:
            raise RuntimeError("AgentStream result is only available after the stream is exhausted")
        return self._result

    @property
    def output(self) -> Any:
        return self.result.output

    def __aiter__(self) -> AsyncGenerator[Any, None]:
        if self._started:
            raise RuntimeError("AgentStream can only be iterated once")
        self._started = True
        self._iterator = self._iterate()
        return self._iterator

    async def _iterate(self) -> AsyncGenerator[Any, None]:
        last: Any = _UNSET
        async with aclosing(self._orchestrator.drive(self._value, self._state, streaming=True)) as fragments:
            async for fragment in fragments:
                last = fragment
                yield fragment

        self._result = AgentRunResult.from_state(self._state)
        if last is _UNSET or self._result.output != last:
            yield self._result.output

    async def aclose(self) -> None:
        """Stop the run early."""
        if self._iterator is not None:
            await self._iterator.aclose()

    async def __aenter__(self) -> "AgentStream":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
