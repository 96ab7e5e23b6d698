"""Unit tests for the agent run loop."""

import asyncio
from typing import Annotated, List

import pytest

from typed_agent.agent import Agent, AgentStream, RunPhase, input_type, model, output_type, shots, system_prompt
from typed_agent.agent.orchestrator import CORRECTION_HINT, SKIPPED_TOOL_RESULT
from typed_agent.core.errors import (
    ConfigError,
    MaxRoundsExceededError,
    OutputValidationError,
    TransportError,
    ValidationError,
)
from typed_agent.core.messages import MessageRole, ToolCall
from typed_agent.handlers.base import ModelTurn
from typed_agent.schema import maximum, minimum, prop, schema
from typed_agent.tools import tool


@schema("Temperature report for a city")
class WeatherAnswer:
    city: Annotated[str, prop("City name")]
    celsius: Annotated[float, minimum(-90), maximum(60)]


@schema
class CityArgs:
    city: str


VALID = {"city": "Oslo", "celsius": 3}
INVALID = {"city": "Oslo", "celsius": 100}


@model("openai:gpt-4o-mini", max_rounds=4, max_corrections=1)
@system_prompt("You are a weather assistant.")
@output_type(WeatherAnswer)
class WeatherAgent(Agent):
    lookups: List[str]

    @tool("Look up the current temperature of a city")
    def lookup(self, args: CityArgs) -> dict:
        self.lookups.append(args.city)
        return {"city": args.city, "celsius": 21}

    def __init__(self, handler=None) -> None:
        self.lookups = []
        super().__init__(handler=handler)


@model("openai:gpt-4o-mini", max_corrections=0)
class StrictWeatherAgent(WeatherAgent):
    pass


@model("openai:gpt-4o-mini")
@system_prompt("Answer briefly.")
class ChatAgent(Agent):
    pass


class TestSingleRound:
    """Test runs that finish in one exchange."""

    @pytest.mark.asyncio
    async def test_structured_output_in_one_round(self, scripted, turns):
        """Test a valid output call finishes the run with a coerced instance."""
        handler = scripted(turns.output("WeatherAnswer", VALID))
        agent = WeatherAgent(handler=handler)

        result = await agent.run_detailed("Weather in Oslo?")

        assert isinstance(result.output, WeatherAnswer)
        assert result.output.celsius == 3
        assert result.rounds == 1
        assert result.corrections == 0
        assert len(handler.calls) == 1

    @pytest.mark.asyncio
    async def test_request_contents(self, scripted, turns):
        """Test what the handler receives: prompt, schema, tools and the user input."""
        handler = scripted(turns.output("WeatherAnswer", VALID))

        await WeatherAgent(handler=handler).run("Weather in Oslo?")

        call = handler.calls[0]
        assert call["schema_name"] == "WeatherAnswer"
        assert call["schema_description"] == "Temperature report for a city"
        assert call["prompt_schema"]["required"] == ["city", "celsius"]
        assert call["system_prompt"].startswith("You are a weather assistant.")
        assert "`WeatherAnswer` tool" in call["system_prompt"]
        assert [entry["name"] for entry in call["tools"]] == ["lookup"]
        assert [m.content for m in call["query"]] == ["Weather in Oslo?"]

    @pytest.mark.asyncio
    async def test_text_output(self, scripted, turns):
        """Test the default str output takes the model text."""
        handler = scripted(turns.text("Hello!"))

        assert await ChatAgent(handler=handler).run("Hi") == "Hello!"
        assert handler.calls[0]["prompt_schema"] is None
        assert handler.calls[0]["system_prompt"] == "Answer briefly."

    @pytest.mark.asyncio
    async def test_json_text_is_accepted_for_structured_output(self, scripted, turns):
        """Test that a JSON text answer without tool calls is validated as output."""
        handler = scripted(turns.text('{"city": "Oslo", "celsius": 3}'))

        output = await WeatherAgent(handler=handler).run("Weather in Oslo?")

        assert output.city == "Oslo"

    @pytest.mark.asyncio
    async def test_output_wins_over_tool_calls(self, scripted, turns):
        """Test that a valid output ends the run without executing tool calls of the same turn."""
        handler = scripted(
            turns.output("WeatherAnswer", VALID, tool_calls=[ToolCall(id="t1", name="lookup", arguments={"city": "Oslo"})])
        )
        agent = WeatherAgent(handler=handler)

        result = await agent.run_detailed("Weather in Oslo?")

        assert result.rounds == 1
        assert agent.lookups == []

    @pytest.mark.asyncio
    async def test_usage_is_summed(self, scripted, turns):
        """Test token usage over several rounds."""
        first = turns.tools(ToolCall(id="t1", name="lookup", arguments={"city": "Oslo"})).model_copy(
            update={"usage": {"input_tokens": 10, "output_tokens": 2}}
        )
        second = turns.output("WeatherAnswer", VALID).model_copy(
            update={"usage": {"input_tokens": 20, "output_tokens": 3}}
        )

        result = await WeatherAgent(handler=scripted(first, second)).run_detailed("Oslo?")

        assert result.usage == {"input_tokens": 30, "output_tokens": 5}


class TestToolRounds:
    """Test tool execution between model exchanges."""

    @pytest.mark.asyncio
    async def test_tool_then_answer(self, scripted, turns):
        """Test a tool round followed by the final answer."""
        handler = scripted(
            turns.tools(ToolCall(id="t1", name="lookup", arguments={"city": "Oslo"})),
            turns.output("WeatherAnswer", {"city": "Oslo", "celsius": 21}),
        )
        agent = WeatherAgent(handler=handler)

        result = await agent.run_detailed("Weather in Oslo?")

        assert result.output.celsius == 21
        assert result.rounds == 2
        assert agent.lookups == ["Oslo"]
        second_query = handler.calls[1]["query"]
        assert [m.role for m in second_query] == [MessageRole.user, MessageRole.assistant, MessageRole.tool]
        assert second_query[2].tool_call_id == "t1"
        assert '"celsius":21' in second_query[2].content
        assert [m.role for m in result.history][-1] is MessageRole.assistant

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_and_run_recovers(self, scripted, turns):
        """Test that an unknown tool becomes an observation the model can react to."""
        handler = scripted(
            turns.tools(ToolCall(id="t1", name="teleport")),
            turns.output("WeatherAnswer", VALID),
        )

        output = await WeatherAgent(handler=handler).run("Oslo?")

        assert output.city == "Oslo"
        observation = handler.calls[1]["query"][-1]
        assert observation.tool_call_id == "t1"
        assert "ToolNotFoundError" in observation.content

    @pytest.mark.asyncio
    async def test_max_rounds_exceeded(self, scripted, turns):
        """Test that a model that keeps calling tools exhausts the round budget."""
        handler = scripted(*[turns.tools(ToolCall(name="lookup", arguments={"city": "Oslo"})) for _ in range(5)])

        with pytest.raises(MaxRoundsExceededError) as exc_info:
            await WeatherAgent(handler=handler).run("Oslo?")

        assert exc_info.value.max_rounds == 4
        assert exc_info.value.rounds == 4
        assert len(handler.calls) == 4

    @pytest.mark.asyncio
    async def test_single_round_budget(self, scripted, turns):
        """Test that max_rounds=1 allows exactly one exchange."""

        @model("openai:gpt-4o-mini", max_rounds=1)
        class OneShot(WeatherAgent):
            pass

        handler = scripted(turns.tools(ToolCall(name="lookup", arguments={"city": "Oslo"})))

        with pytest.raises(MaxRoundsExceededError):
            await OneShot(handler=handler).run("Oslo?")
        assert len(handler.calls) == 1


class TestCorrections:
    """Test output validation feedback."""

    @pytest.mark.asyncio
    async def test_invalid_output_is_corrected(self, scripted, turns):
        """Test one correction round followed by a valid answer."""
        handler = scripted(
            turns.output("WeatherAnswer", INVALID, call_id="o1"),
            turns.output("WeatherAnswer", VALID, call_id="o2"),
        )

        result = await WeatherAgent(handler=handler).run_detailed("Oslo?")

        assert result.corrections == 1
        assert result.rounds == 2
        feedback = handler.calls[1]["query"][-1]
        assert feedback.role is MessageRole.tool
        assert feedback.tool_call_id == "o1"
        assert "ValidationError" in feedback.content
        assert "celsius" in feedback.content
        assert CORRECTION_HINT in feedback.content

    @pytest.mark.asyncio
    async def test_correction_budget_exhausted(self, scripted, turns):
        """Test that a second invalid output fails with a budget of one."""
        handler = scripted(
            turns.output("WeatherAnswer", INVALID),
            turns.output("WeatherAnswer", INVALID),
        )

        with pytest.raises(OutputValidationError) as exc_info:
            await WeatherAgent(handler=handler).run("Oslo?")

        assert exc_info.value.corrections == 1
        assert exc_info.value.rounds == 2
        assert exc_info.value.last_output == INVALID
        assert exc_info.value.diagnostics[0]["loc"] == ("celsius",)

    @pytest.mark.asyncio
    async def test_zero_correction_budget_fails_immediately(self, scripted, turns):
        """Test that with no correction budget the first invalid output fails the run."""
        handler = scripted(turns.output("WeatherAnswer", INVALID))

        with pytest.raises(OutputValidationError) as exc_info:
            await StrictWeatherAgent(handler=handler).run("Oslo?")

        assert exc_info.value.corrections == 0
        assert len(handler.calls) == 1

    @pytest.mark.asyncio
    async def test_skipped_tool_calls_are_answered_on_correction(self, scripted, turns):
        """Test that tool calls next to a rejected output get a skipped result."""
        handler = scripted(
            turns.output(
                "WeatherAnswer",
                INVALID,
                call_id="o1",
                tool_calls=[ToolCall(id="t1", name="lookup", arguments={"city": "Oslo"})],
            ),
            turns.output("WeatherAnswer", VALID),
        )
        agent = WeatherAgent(handler=handler)

        await agent.run("Oslo?")

        query = handler.calls[1]["query"]
        assert [m.tool_call_id for m in query[-2:]] == ["t1", "o1"]
        assert query[-2].content == SKIPPED_TOOL_RESULT
        assert agent.lookups == []

    @pytest.mark.asyncio
    async def test_empty_turn_is_corrected(self, scripted, turns):
        """Test that a turn without text or calls is sent back for correction."""
        handler = scripted(ModelTurn(), turns.text("Hello!"))

        result = await ChatAgent(handler=handler).run_detailed("Hi")

        assert result.output == "Hello!"
        assert result.corrections == 1
        feedback = handler.calls[1]["query"][-1]
        assert feedback.role is MessageRole.user
        assert CORRECTION_HINT in feedback.content

    @pytest.mark.asyncio
    async def test_malformed_json_text_is_corrected(self, scripted, turns):
        """Test that unparseable JSON text counts as an invalid output."""
        handler = scripted(turns.text("it is cold"), turns.output("WeatherAnswer", VALID))

        result = await WeatherAgent(handler=handler).run_detailed("Oslo?")

        assert result.corrections == 1
        assert "not valid JSON" in handler.calls[1]["query"][-1].content


class TestFailures:
    """Test terminal failures outside the model loop."""

    @pytest.mark.asyncio
    async def test_transport_error(self, scripted):
        """Test that handler failures surface as TransportError without retry."""
        handler = scripted(ConnectionError("connection reset"))

        with pytest.raises(TransportError) as exc_info:
            await WeatherAgent(handler=handler).run("Oslo?")

        assert isinstance(exc_info.value.cause, ConnectionError)
        assert exc_info.value.rounds == 0
        assert len(handler.calls) == 1

    @pytest.mark.asyncio
    async def test_input_validated_before_any_model_call(self, scripted, turns):
        """Test that invalid input fails before the handler is called."""

        @input_type(CityArgs)
        class TypedInputAgent(WeatherAgent):
            pass

        handler = scripted(turns.output("WeatherAnswer", VALID))

        with pytest.raises(ValidationError):
            await TypedInputAgent(handler=handler).run({"town": "Oslo"})
        assert handler.calls == []

    @pytest.mark.asyncio
    async def test_typed_input_is_serialized(self, scripted, turns):
        """Test that a valid typed input is sent as JSON."""

        @input_type(CityArgs)
        class TypedInputAgent(WeatherAgent):
            pass

        handler = scripted(turns.output("WeatherAnswer", VALID))

        await TypedInputAgent(handler=handler).run({"city": "Oslo"})

        assert handler.calls[0]["query"][0].content == '{"city":"Oslo"}'

    @pytest.mark.asyncio
    async def test_dynamic_prompt_must_return_string(self, scripted, turns):
        """Test that a non-string dynamic prompt fails the run before any model call."""

        class BrokenPromptAgent(WeatherAgent):
            @system_prompt
            def broken(self):
                return 42

        handler = scripted(turns.output("WeatherAnswer", VALID))

        with pytest.raises(ConfigError, match="must return a string"):
            await BrokenPromptAgent(handler=handler).run("Oslo?")
        assert handler.calls == []

    def test_unknown_provider_fails_at_construction(self):
        """Test that an unknown provider is reported when the agent is created."""

        @model("nope:some-model")
        class LostAgent(Agent):
            pass

        with pytest.raises(ConfigError, match="not registered"):
            LostAgent()

    def test_agent_without_model(self):
        """Test that an agent needs a model or a handler."""

        class BareAgent(Agent):
            pass

        with pytest.raises(ConfigError, match="has no model"):
            BareAgent()


class TestPromptFeatures:
    """Test shots and dynamic prompts during runs."""

    @pytest.mark.asyncio
    async def test_shots_are_sent_before_the_conversation(self, scripted, turns):
        """Test that N shots are passed as 2N messages."""

        @shots(("Weather in Rome?", {"city": "Rome", "celsius": 25}), ("Weather in Nuuk?", {"city": "Nuuk", "celsius": -5}))
        class ShotAgent(WeatherAgent):
            pass

        handler = scripted(turns.output("WeatherAnswer", VALID))

        await ShotAgent(handler=handler).run("Oslo?")

        sent = handler.calls[0]["shots"]
        assert len(sent) == 4
        assert sent[1].tool_calls[0].name == "WeatherAnswer"
        assert handler.calls[0]["query"][0].content == "Oslo?"

    @pytest.mark.asyncio
    async def test_text_agent_shots_call_no_tool(self, scripted, turns):
        """Test that shots of a text agent are plain assistant answers, not calls to an absent tool."""

        @shots(("hi", "hello there"))
        class GreetingAgent(ChatAgent):
            pass

        handler = scripted(turns.text("hello there"))

        assert await GreetingAgent(handler=handler).run("hey") == "hello there"

        call = handler.calls[0]
        assert call["tools"] == []
        assert call["prompt_schema"] is None
        assert [m.content for m in call["shots"]] == ["hi", "hello there"]
        assert all(not m.tool_calls for m in call["shots"])

    @pytest.mark.asyncio
    async def test_dynamic_prompt_sees_instance(self, scripted, turns):
        """Test an async dynamic prompt bound to the agent instance."""

        class UnitAgent(WeatherAgent):
            unit = "Celsius"

            @system_prompt
            async def units(self) -> str:
                return f"Report temperatures in {self.unit}."

        handler = scripted(turns.output("WeatherAnswer", VALID))

        await UnitAgent(handler=handler).run("Oslo?")

        prompt = handler.calls[0]["system_prompt"]
        assert prompt.index("You are a weather assistant.") < prompt.index("Report temperatures in Celsius.")
        assert prompt.index("Report temperatures in Celsius.") < prompt.index("`WeatherAnswer` tool")

    @pytest.mark.asyncio
    async def test_concurrent_runs_share_no_state(self, scripted):
        """Test that one agent instance can serve concurrent runs."""

        def echo(query):
            return ModelTurn(text=query[0].content.upper())

        agent = ChatAgent(handler=scripted(echo, echo, echo))

        outputs = await asyncio.gather(agent.run("a"), agent.run("b"), agent.run("c"))

        assert outputs == ["A", "B", "C"]


class TestStreaming:
    """Test streaming runs."""

    @pytest.mark.asyncio
    async def test_structured_stream(self, scripted, turns):
        """Test partial fragments followed by the validated output."""
        handler = scripted(
            turns.output("WeatherAnswer", VALID),
            partials={0: [{"city": "Os"}, {"city": "Oslo"}]},
        )
        stream = WeatherAgent(handler=handler).run_stream("Oslo?")

        fragments = [fragment async for fragment in stream]

        assert fragments[:2] == [{"city": "Os"}, {"city": "Oslo"}]
        assert isinstance(fragments[2], WeatherAnswer)
        assert stream.done
        assert stream.result.rounds == 1
        assert stream.output is fragments[2]

    @pytest.mark.asyncio
    async def test_text_stream_does_not_repeat_final_fragment(self, scripted, turns):
        """Test that the final output is not yielded twice."""
        handler = scripted(turns.text("Hello"), partials={0: ["Hel", "Hello"]})
        stream = ChatAgent(handler=handler).run_stream("Hi")

        fragments = [fragment async for fragment in stream]

        assert fragments == ["Hel", "Hello"]
        assert stream.output == "Hello"

    @pytest.mark.asyncio
    async def test_stream_is_single_use(self, scripted, turns):
        """Test that a stream cannot be iterated twice and has no result before completion."""
        stream = ChatAgent(handler=scripted(turns.text("Hello"))).run_stream("Hi")

        with pytest.raises(RuntimeError, match="only available after"):
            stream.result
        async for _ in stream:
            pass
        with pytest.raises(RuntimeError, match="only be iterated once"):
            stream.__aiter__()

    @pytest.mark.asyncio
    async def test_rejected_draft_is_not_streamed(self, scripted, turns):
        """Test that fragments of an output that fails validation never reach the consumer."""
        handler = scripted(
            turns.output("WeatherAnswer", INVALID),
            turns.output("WeatherAnswer", VALID),
            partials={0: [{"city": "Oslo", "celsius": 100}], 1: [{"city": "Os"}, {"city": "Oslo"}]},
        )
        stream = WeatherAgent(handler=handler).run_stream("Oslo?")

        fragments = [fragment async for fragment in stream]

        assert fragments[:2] == [{"city": "Os"}, {"city": "Oslo"}]
        assert len(fragments) == 3
        assert isinstance(fragments[2], WeatherAnswer)
        assert stream.result.corrections == 1

    @pytest.mark.asyncio
    async def test_tool_round_text_is_not_streamed(self, scripted, turns):
        """Test that text produced alongside tool calls is not streamed."""
        handler = scripted(
            turns.tools(ToolCall(name="lookup", arguments={"city": "Oslo"})),
            turns.text("Done"),
            partials={0: ["Let me check"], 1: ["Do", "Done"]},
        )
        stream = ChatAgent(handler=handler).run_stream("Hi")

        assert [fragment async for fragment in stream] == ["Do", "Done"]

    @pytest.mark.asyncio
    async def test_closing_stream_early(self, scripted, turns):
        """Test that closing after the first fragment leaves the stream without a result."""
        handler = scripted(turns.output("WeatherAnswer", VALID), partials={0: [{"city": "Os"}]})

        async with WeatherAgent(handler=handler).run_stream("Oslo?") as stream:
            async for _fragment in stream:
                break

        assert isinstance(stream, AgentStream)
        assert not stream.done
        assert len(handler.calls) == 1

    @pytest.mark.asyncio
    async def test_cancelled_stream_stops_the_run_but_finishes_tools(self, scripted, turns):
        """Test that cancelling the consumer stops model calls while started tools complete."""

        class VisitAgent(WeatherAgent):
            @tool("Record a visit to a city")
            async def visit(self, args: CityArgs) -> str:
                await asyncio.sleep(0.05)
                self.lookups.append(args.city)
                return "visited"

        handler = scripted(
            turns.tools(
                ToolCall(name="visit", arguments={"city": "Oslo"}),
                ToolCall(name="visit", arguments={"city": "Rome"}),
            ),
            turns.output("WeatherAnswer", VALID),
        )
        agent = VisitAgent(handler=handler)
        stream = agent.run_stream("Oslo?")

        async def consume():
            async for _ in stream:
                pass

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0.1)

        assert sorted(agent.lookups) == ["Oslo", "Rome"]
        assert len(handler.calls) == 1
        assert not stream.done
        assert stream.state.phase is RunPhase.executing_tools

    @pytest.mark.asyncio
    async def test_stream_propagates_run_errors(self, scripted):
        """Test that terminal errors are raised from the iteration."""
        stream = WeatherAgent(handler=scripted(ConnectionError("down"))).run_stream("Oslo?")

        with pytest.raises(TransportError):
            async for _ in stream:
                pass
        assert stream.state.phase is RunPhase.failed
