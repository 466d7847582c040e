"""Tests for the turn executor."""

import asyncio

import pytest

from swarmflow import (
    Agent, ClientNotReadyError, CompletionResponse, HookManager, Handoff,
    NilAgentError, NoChoicesError, Role, TurnExecutor, tool,
)
from swarmflow.observe.hooks import TURN_EVENTS
from fakes import ScriptedClient, assistant, call, user


@tool()
def count_apples(basket: str) -> str:
    """Count the apples in a basket."""
    return f"{basket}: 42 apples"


@tool()
def explode() -> str:
    """Always fails."""
    raise ValueError("boom")


@tool()
def remember_city(city: str, context_variables: dict) -> str:
    """Store the user's city."""
    context_variables["city"] = city
    return "saved"


class TestPlainTurn:
    @pytest.mark.asyncio
    async def test_tool_free_reply_is_one_message(self, make_executor, agent):
        client = ScriptedClient([assistant("hello there")])
        response = await make_executor(client).run(agent, [user("hi")])

        assert len(response.messages) == 1
        assert response.messages[0].role == Role.ASSISTANT
        assert response.messages[0].content == "hello there"
        assert response.messages[0].name == "helper"
        assert response.agent is agent
        assert response.last_content == "hello there"

    @pytest.mark.asyncio
    async def test_input_history_not_mutated(self, make_executor, agent):
        history = [user("hi")]
        client = ScriptedClient([assistant("hello")])
        await make_executor(client).run(agent, history)
        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_instructions_render_context_variables(self, make_executor, agent):
        client = ScriptedClient([assistant("a"), assistant("b")])
        executor = make_executor(client)

        await executor.run(agent, [user("hi")], context_variables={"user_name": "Ada"})
        await executor.run(agent, [user("hi")])

        assert client.requests[0].messages[0].role == Role.SYSTEM
        assert client.requests[0].messages[0].content == "You help Ada."
        assert client.requests[1].messages[0].content == "You help everyone."

    @pytest.mark.asyncio
    async def test_callable_instructions(self, make_executor):
        agent = Agent(name="greeter", instructions=lambda ctx: f"Greet {ctx.get('who', 'nobody')}")
        client = ScriptedClient([assistant("hey")])
        await make_executor(client).run(agent, [user("hi")], context_variables={"who": "Bo"})
        assert client.requests[0].messages[0].content == "Greet Bo"

    @pytest.mark.asyncio
    async def test_model_override_wins(self, make_executor):
        agent = Agent(name="m", model="gpt-4o")
        client = ScriptedClient([assistant("a"), assistant("b")])
        executor = make_executor(client)

        await executor.run(agent, [user("hi")])
        await executor.run(agent, [user("hi")], model_override="gpt-4")

        assert client.requests[0].model == "gpt-4o"
        assert client.requests[1].model == "gpt-4"
        assert client.requests[1].max_tokens == 4096


class TestToolCalls:
    @pytest.mark.asyncio
    async def test_tool_result_then_follow_up(self, make_executor):
        agent = Agent(name="grocer", functions=[count_apples])
        client = ScriptedClient([
            assistant(tool_calls=[call("count_apples", {"basket": "red"})]),
            assistant("There are 42 apples."),
        ])
        response = await make_executor(client).run(agent, [user("how many?")])

        roles = [m.role for m in response.messages]
        assert roles == [Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]
        tool_msg = response.messages[1]
        assert tool_msg.content == "red: 42 apples"
        assert tool_msg.name == "count_apples"
        assert tool_msg.tool_call_id == "call_1"
        assert response.last_content == "There are 42 apples."

        # the first request advertises the tool, the follow-up does not
        assert [t.name for t in client.requests[0].tools] == ["count_apples"]
        assert client.requests[1].tools == []

    @pytest.mark.asyncio
    async def test_unknown_tool_names_the_tool(self, make_executor, agent):
        client = ScriptedClient([
            assistant(tool_calls=[call("fetch_weather")]),
            assistant("I could not check the weather."),
        ])
        response = await make_executor(client).run(agent, [user("weather?")])

        tool_msg = response.messages[1]
        assert "fetch_weather" in tool_msg.content
        assert not response.tool_results[0].result.is_success

    @pytest.mark.asyncio
    async def test_tool_error_becomes_message(self, make_executor):
        agent = Agent(name="risky", functions=[explode])
        client = ScriptedClient([
            assistant(tool_calls=[call("explode")]),
            assistant("That failed."),
        ])
        response = await make_executor(client).run(agent, [user("go")])
        assert response.messages[1].content == "Error: boom"

    @pytest.mark.asyncio
    async def test_bad_arguments_become_failure(self, make_executor):
        agent = Agent(name="grocer", functions=[count_apples])
        bad = call("count_apples")
        bad.arguments = "{not json"
        client = ScriptedClient([assistant(tool_calls=[bad]), assistant("sorry")])
        response = await make_executor(client).run(agent, [user("go")])
        assert response.messages[1].content.startswith("Error: could not parse tool call arguments")

    @pytest.mark.asyncio
    async def test_empty_follow_up_continues_loop(self, make_executor):
        agent = Agent(name="grocer", functions=[count_apples])
        client = ScriptedClient([
            assistant(tool_calls=[call("count_apples", {"basket": "a"})]),
            assistant(""),
            assistant("done"),
        ])
        response = await make_executor(client).run(agent, [user("go")])

        assert [m.content for m in response.messages] == ["", "a: 42 apples", "done"]
        assert len(client.requests) == 3
        assert client.requests[2].tools

    @pytest.mark.asyncio
    async def test_execute_tools_false_leaves_calls(self, make_executor):
        agent = Agent(name="grocer", functions=[count_apples])
        client = ScriptedClient([assistant(tool_calls=[call("count_apples", {"basket": "a"})])])
        response = await make_executor(client).run(agent, [user("go")], execute_tools=False)

        assert len(response.messages) == 1
        assert response.messages[0].tool_calls[0].name == "count_apples"
        assert response.tool_results == []

    @pytest.mark.asyncio
    async def test_tools_update_context_variables(self, make_executor):
        agent = Agent(name="geo", functions=[remember_city])
        client = ScriptedClient([
            assistant(tool_calls=[call("remember_city", {"city": "Lima"})]),
            assistant("Noted."),
        ])
        original = {"user": "ana"}
        response = await make_executor(client).run(agent, [user("I live in Lima")], context_variables=original)

        assert response.context_variables == {"user": "ana", "city": "Lima"}
        assert original == {"user": "ana"}

    @pytest.mark.asyncio
    async def test_tool_outcome_recorded_in_memory(self, make_executor):
        agent = Agent(name="grocer", functions=[count_apples])
        client = ScriptedClient([
            assistant(tool_calls=[call("count_apples", {"basket": "a"})]),
            assistant("ok"),
        ])
        await make_executor(client).run(agent, [user("go")])

        entries = agent.memory.search("tool_execution", {"tool": "count_apples"})
        assert len(entries) == 1
        assert entries[0].context["success"] is True

    @pytest.mark.asyncio
    async def test_parallel_tool_calls_fold_in_completion_order(self, make_executor):
        @tool()
        async def slow() -> str:
            """Slow tool."""
            await asyncio.sleep(0.05)
            return "slow"

        @tool()
        async def fast() -> str:
            """Fast tool."""
            return "fast"

        agent = Agent(name="p", functions=[slow, fast], parallel_tool_calls=True)
        client = ScriptedClient([
            assistant(tool_calls=[call("slow", call_id="c1"), call("fast", call_id="c2")]),
            assistant("both done"),
        ])
        response = await make_executor(client).run(agent, [user("go")])

        tool_contents = [m.content for m in response.messages if m.role == Role.TOOL]
        assert tool_contents == ["fast", "slow"]
        assert client.requests[0].parallel_tool_calls is True


class TestHandoff:
    @pytest.mark.asyncio
    async def test_handoff_switches_agent(self, make_executor):
        billing = Agent(name="billing", instructions="You handle invoices.")

        @tool()
        def transfer_to_billing():
            """Hand the conversation to billing."""
            return billing

        triage = Agent(name="triage", functions=[transfer_to_billing])
        client = ScriptedClient([
            assistant(tool_calls=[call("transfer_to_billing")]),
            assistant("Billing here, how can I help?"),
        ])
        response = await make_executor(client).run(triage, [user("my invoice")])

        assert response.agent is billing
        assert response.messages[1].content == "Handing off to billing"
        assert response.messages[-1].name == "billing"
        assert client.requests[1].messages[0].content == "You handle invoices."

    @pytest.mark.asyncio
    async def test_first_handoff_wins(self, make_executor):
        first = Agent(name="first")
        second = Agent(name="second")

        @tool()
        def to_first():
            """Go to first."""
            return Handoff(first, "to first")

        @tool()
        def to_second():
            """Go to second."""
            return Handoff(second, "to second")

        agent = Agent(name="router", functions=[to_first, to_second])
        client = ScriptedClient([
            assistant(tool_calls=[call("to_first", call_id="a"), call("to_second", call_id="b")]),
            assistant("ok"),
        ])
        response = await make_executor(client).run(agent, [user("go")])
        assert response.agent is first


class TestPreconditions:
    @pytest.mark.asyncio
    async def test_nil_agent(self, make_executor):
        client = ScriptedClient([assistant("x")])
        with pytest.raises(NilAgentError):
            await make_executor(client).run(None, [user("hi")])
        assert client.requests == []

    @pytest.mark.asyncio
    async def test_missing_client(self, agent):
        with pytest.raises(ClientNotReadyError):
            await TurnExecutor(None).run(agent, [user("hi")])

    @pytest.mark.asyncio
    async def test_no_choices(self, make_executor, agent):
        client = ScriptedClient([CompletionResponse(id="empty", choices=[])])
        with pytest.raises(NoChoicesError):
            await make_executor(client).run(agent, [user("hi")])
        assert len(client.requests) == 1


class TestTurnHooks:
    @pytest.mark.asyncio
    async def test_hooks_fire_and_hook_errors_are_swallowed(self, make_executor):
        hooks = HookManager(TURN_EVENTS)
        events = []

        @hooks.on("turn_start")
        def on_start(data):
            events.append(("turn_start", data["agent"]))

        @hooks.on("tool_called")
        async def on_tool(data):
            events.append(("tool_called", data["tool"]))

        @hooks.on("turn_end")
        def broken(data):
            raise RuntimeError("hook failure")

        agent = Agent(name="grocer", functions=[count_apples])
        client = ScriptedClient([
            assistant(tool_calls=[call("count_apples", {"basket": "a"})]),
            assistant("ok"),
        ])
        response = await make_executor(client, hooks=hooks).run(agent, [user("go")])

        assert response.last_content == "ok"
        assert events == [("turn_start", "grocer"), ("tool_called", "count_apples")]

    def test_unknown_event_rejected(self):
        with pytest.raises(ValueError):
            HookManager(TURN_EVENTS).register("node_enter", lambda data: None)
