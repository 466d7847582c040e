"""Tests for keyword routing heuristics and capability-scored routing."""

import pytest

from swarmflow import (
    Agent, AuthenticationError, GraphState, NoSuitableWorkerError, Supervisor,
    Task, TaskStatus, TeamType, Worker, WorkerCapability,
)
from swarmflow.routing.heuristics import (
    collaborative_router, contains_routing_instruction, explicit_router,
    extract_routing_agent, first_match, has_processed, hierarchical_router,
    is_final_answer, is_task_complete, mark_processed, message_id,
    supervisor_router,
)
from fakes import AlwaysFails, ScriptedClient, assistant, user


def state_with(*messages):
    state = GraphState()
    state.set_messages(list(messages))
    return state


class TestKeywordHelpers:
    def test_routing_instructions(self):
        assert contains_routing_instruction("Please Route To writer")
        assert extract_routing_agent("Please route to writer next") == "writer"
        assert extract_routing_agent("cc @analyst for numbers") == "analyst"
        assert extract_routing_agent("no instruction here") == ""

    def test_first_pattern_wins(self):
        assert extract_routing_agent("send to alice, then route to bob") == "bob"

    def test_completion_and_final_markers(self):
        assert is_task_complete("Task complete, handing back")
        assert not is_task_complete("still working")
        assert is_final_answer("FINAL: tea originated in China")
        assert is_final_answer("Here is my Final Answer")
        assert not is_final_answer("a draft")

    def test_message_id_is_role_and_content(self):
        a = message_id(user("hello"))
        assert a == message_id(user("hello"))
        assert a != message_id(assistant("hello"))
        assert len(a) == 16

    def test_processed_ledger_is_copied_on_write(self):
        parent = state_with(user("hi"))
        child = parent.clone()
        mark_processed(child, "writer", user("hi"))

        assert has_processed(child, "writer", user("hi"))
        assert not has_processed(parent, "writer", user("hi"))


class TestStrategyRouters:
    def test_explicit_router_needs_known_agent(self):
        route = explicit_router(["writer", "editor"])
        assert route(state_with(assistant("route to editor"))) == "editor"
        assert route(state_with(assistant("route to stranger"))) is None
        assert route(state_with(assistant("just text"))) is None

    def test_supervisor_forwards_to_team_leader(self):
        teams = {TeamType.RESEARCH: ["scout", "librarian"], TeamType.DOCUMENT: ["scribe"]}
        leaders = {TeamType.SUPERVISOR: "boss", TeamType.RESEARCH: "librarian"}

        from_boss = supervisor_router("boss", teams, leaders)
        assert from_boss(state_with(user("research the history of tea"))) == "librarian"
        # no leader for the document team, so its first member
        assert from_boss(state_with(user("draft a memo"))) == "scribe"
        assert from_boss(state_with(user("hello"))) is None

        from_member = supervisor_router("scout", teams, leaders)
        assert from_member(state_with(assistant("here are my notes"))) == "boss"

    def test_hierarchical_reports_up_and_delegates_to_specialists(self):
        names = ["lead", "coder", "searcher", "supervisor"]
        teams = {TeamType.DEVELOPER: ["lead", "coder"]}
        leaders = {TeamType.DEVELOPER: "lead"}

        route = hierarchical_router("coder", names, teams, leaders)
        assert route(state_with(assistant("Task complete: tests pass"))) == "lead"
        assert route(state_with(assistant("I need the search tool for this"))) == "searcher"
        assert route(state_with(assistant("thinking"))) is None

    def test_hierarchical_without_leader_goes_to_supervisor(self):
        route = hierarchical_router("coder", ["coder", "supervisor"], {TeamType.DEVELOPER: ["coder"]}, {})
        assert route(state_with(assistant("done"))) == "supervisor"

    def test_collaborative_prefers_unseen_peers(self):
        names = ["a", "b", "c"]
        route = collaborative_router("a", names, {"a": ["b"]})
        message = assistant("draft one")

        state = state_with(message)
        assert route(state) == "b"

        mark_processed(state, "b", message)
        assert route(state) == "c"

        mark_processed(state, "c", message)
        assert route(state) is None

    def test_collaborative_final_answer_stops_broadcast(self):
        route = collaborative_router("a", ["a", "b", "c"], {"a": []})
        assert route(state_with(assistant("FINAL: the answer is 4"))) is None
        assert route(state_with(assistant("partial work"))) == "b"

    def test_first_match(self):
        route = first_match(lambda s: None, lambda s: "", lambda s: "x", lambda s: "y")
        assert route(GraphState()) == "x"

    def test_routers_are_deterministic(self):
        route = first_match(explicit_router(["a", "b", "c"]), collaborative_router("a", ["a", "b", "c"], {}))
        state = state_with(assistant("partial work"))
        assert {route(state) for _ in range(10)} == {"b"}


def build_supervisor():
    supervisor = Supervisor()
    coder = Worker(
        Agent(name="coder"),
        role="coding",
        capabilities=[WorkerCapability("implementation", ["implement"])],
    )
    researcher = Worker(
        Agent(name="researcher"),
        role="research",
        capabilities=[WorkerCapability("papers", ["research", "survey"])],
    )
    supervisor.add_worker(researcher)
    supervisor.add_worker(coder)
    return supervisor, coder, researcher


class TestCapabilityRouting:
    def test_task_type_inference(self):
        assert Supervisor.analyze_task_type("implement a sorting algorithm") == "coding"
        assert Supervisor.analyze_task_type("research and study bees") == "research"
        assert Supervisor.analyze_task_type("compose a short poem") == "writing"
        assert Supervisor.analyze_task_type("hello") == "general"

    def test_coder_wins_sorting_task(self):
        supervisor, coder, researcher = build_supervisor()
        task = Task(id="t1", description="implement a sorting algorithm")

        chosen = supervisor.route_task(task)

        assert task.type == "coding"
        assert supervisor.score_worker(coder, task) > supervisor.score_worker(researcher, task)
        assert supervisor.score_worker(coder, task) == pytest.approx(0.8)
        assert chosen is coder

    def test_busy_workers_are_skipped(self):
        supervisor, coder, researcher = build_supervisor()
        coder.is_available = False
        assert supervisor.route_task(Task(id="t", description="implement a parser")) is researcher

    def test_no_workers(self):
        with pytest.raises(NoSuitableWorkerError):
            Supervisor().route_task(Task(id="t", description="anything"))

    def test_performance_rolls_up(self):
        _, coder, _ = build_supervisor()
        done = Task(id="a", description="x", status=TaskStatus.COMPLETED)
        failed = Task(id="b", description="y", status=TaskStatus.FAILED)

        coder.update_performance(done, 2.0)
        coder.update_performance(failed, 4.0)

        perf = coder.performance
        assert (perf.tasks_completed, perf.tasks_failed) == (1, 1)
        assert perf.average_time == pytest.approx(3.0)
        assert perf.success_rate == pytest.approx(0.5)
        assert len(coder.agent.memory.search("performance_metric")) == 2

    @pytest.mark.asyncio
    async def test_coordinate_runs_best_worker(self, make_executor):
        supervisor, coder, _ = build_supervisor()
        client = ScriptedClient([assistant("def sort(xs): return sorted(xs)")])

        answer = await supervisor.coordinate(make_executor(client), "implement a sorting algorithm")

        assert answer == "def sort(xs): return sorted(xs)"
        task = supervisor.task_history[0]
        assert task.assigned_to == "coder"
        assert task.status == TaskStatus.COMPLETED
        assert coder.performance.tasks_completed == 1
        assert coder.is_available
        assert len(supervisor.agent.memory.search("task_completion")) == 1

    @pytest.mark.asyncio
    async def test_coordinate_failure_is_recorded_and_raised(self, make_executor):
        supervisor, coder, _ = build_supervisor()
        client = AlwaysFails(AuthenticationError("bad key", "scripted", 401))

        with pytest.raises(AuthenticationError):
            await supervisor.coordinate(make_executor(client), "implement a queue")

        assert supervisor.task_history[0].status == TaskStatus.FAILED
        assert coder.performance.tasks_failed == 1
        errors = supervisor.agent.memory.search("task_error", {"task_id": "task_0"})
        assert len(errors) == 1
