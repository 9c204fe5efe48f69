"""Tests for the workflow engine: interpreter semantics end to end."""

import asyncio

import pytest

from core.exceptions import ConflictError, NotFoundError, ValidationError
from services.workflow_service import ExecutionService
from workflow.engine import WorkflowEngine
from workflow.interpreter import EngineLimits, merge_output
from workflow.strategies import DirectRequest, DirectResponse, DirectStrategy


def final():
    return {"type": "final"}


async def run(engine, create_workflow, definition, payload=None):
    """Create a workflow, run it to the end and return (execution, nodes)."""
    workflow_id = await create_workflow(definition)
    execution_id = await engine.execute_workflow(workflow_id, payload or {})
    status = await engine.get_execution_status(execution_id)
    return status["execution"], status["nodes"]


def event_names(events):
    return [entry["event"] for entry in events.get_log()]


@pytest.mark.unit
class TestMergeOutput:

    def test_output_is_flat_and_namespaced(self):
        merged = merge_output("create", {"playerId": 1}, {"id": 7})
        assert merged["id"] == 7
        assert merged["create_output"]["id"] == 7
        assert merged["playerId"] == 1

    def test_list_output_spreads_index_keys(self):
        merged = merge_output("fetch", {}, [{"id": 1}, {"id": 2}])
        assert merged["0"] == {"id": 1}
        assert merged["1"] == {"id": 2}
        assert merged["fetch_output"] == [{"id": 1}, {"id": 2}]

    def test_updates_apply_before_output(self):
        merged = merge_output("s", {"x": 1}, {"name": "x", "value": 2}, {"x": 2})
        assert merged["x"] == 2
        assert merged["value"] == 2


@pytest.mark.integration
class TestInvokeStates:
    """Invoke states, output merging and error routing."""

    async def test_set_variable_scenario(self, engine, create_workflow, events):
        execution, nodes = await run(engine, create_workflow, {
            "initial": "start",
            "states": {
                "start": {
                    "invoke": {"src": "core.setVariable", "input": {"name": "x", "value": 5}, "onDone": "done"},
                },
                "done": final(),
            },
        })

        assert execution.status == "completed"
        assert execution.current_state == "done"
        assert execution.context["x"] == 5
        assert execution.completed_at is not None
        assert [(n.node_id, n.node_type, n.status) for n in nodes] == [("start", "variable", "completed")]
        assert nodes[0].input == {"name": "x", "value": 5}
        assert nodes[0].duration_ms is not None

        assert event_names(events) == [
            "workflows.execution.started",
            "workflows.node.started",
            "workflows.node.completed",
            "workflows.execution.completed",
        ]
        completed = events.get_log(event="workflows.execution.completed")[0]["payload"]
        assert completed["executionId"] == execution.id
        assert completed["context"]["x"] == 5

    async def test_output_round_trip(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "create",
            "states": {
                "create": {"invoke": {"src": "core.transform", "input": {"mapping": {"id": 7}}, "onDone": "done"}},
                "done": final(),
            },
        })
        assert execution.context["id"] == 7
        assert execution.context["create_output"]["id"] == 7

    async def test_initial_context_and_payload(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "done",
            "context": {"greeting": "hi", "mode": "default"},
            "states": {"done": final()},
        }, payload={"mode": "manual"})

        assert execution.context == {"greeting": "hi", "mode": "manual"}
        assert execution.trigger_payload == {"mode": "manual"}

    async def test_routed_action_through_strategy(self, engine, create_workflow, game_api):
        execution, nodes = await run(engine, create_workflow, {
            "initial": "createSession",
            "states": {
                "createSession": {
                    "invoke": {
                        "src": "sessions.create",
                        "input": {"playerId": "$.playerId", "mapId": 3},
                        "onDone": "done",
                    },
                },
                "done": final(),
            },
        }, payload={"playerId": 42})

        assert execution.status == "completed"
        assert execution.context["id"] == 1
        assert game_api.sessions == [{"id": 1, "endedAt": None, "playerId": 42, "mapId": 3}]
        assert nodes[0].node_type == "api-call"
        assert nodes[0].output["playerId"] == 42

    async def test_failure_without_on_error_fails_execution(self, engine, create_workflow, game_api, events):
        game_api.fail_routes["GET:sessions/active"] = 503

        execution, nodes = await run(engine, create_workflow, {
            "initial": "check",
            "states": {
                "check": {"invoke": {"src": "sessions.getActive", "input": {"playerId": 1}, "onDone": "done"}},
                "done": final(),
            },
        })

        assert execution.status == "failed"
        assert execution.error.startswith("Direct handler call failed (503)")
        assert execution.completed_at is not None
        assert len(nodes) == 1
        assert nodes[0].status == "failed"
        assert nodes[0].error == execution.error

        names = event_names(events)
        assert names[-2:] == ["workflows.node.failed", "workflows.execution.failed"]
        failed = events.get_log(event="workflows.execution.failed")[0]["payload"]
        assert failed == {"executionId": execution.id, "error": execution.error}

    async def test_failure_follows_on_error(self, engine, create_workflow, game_api):
        game_api.fail_routes["GET:sessions/active"] = 500

        execution, nodes = await run(engine, create_workflow, {
            "initial": "check",
            "states": {
                "check": {
                    "invoke": {
                        "src": "sessions.getActive",
                        "input": {"playerId": 1},
                        "onDone": "done",
                        "onError": "recover",
                    },
                },
                "recover": {
                    "invoke": {"src": "core.setVariable", "input": {"name": "recovered", "value": True}, "onDone": "done"},
                },
                "done": final(),
            },
        })

        assert execution.status == "completed"
        assert execution.context["recovered"] is True
        assert "(500)" in execution.context["check_error"]
        assert [(n.node_id, n.status) for n in nodes] == [("check", "failed"), ("recover", "completed")]

    async def test_unknown_action_is_fatal_even_with_on_error(self, engine, create_workflow):
        execution, nodes = await run(engine, create_workflow, {
            "initial": "go",
            "states": {
                "go": {"invoke": {"src": "teleport.now", "onDone": "done", "onError": "done"}},
                "done": final(),
            },
        })

        assert execution.status == "failed"
        assert execution.error == "Unknown node type: teleport.now"
        assert nodes[0].status == "failed"

    async def test_invoke_without_on_done_uses_always(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "set",
            "states": {
                "set": {
                    "invoke": {"src": "core.setVariable", "input": {"name": "tier", "value": "gold"}},
                    "always": [
                        {"guard": {"params": {"key": "tier", "value": "gold"}}, "target": "gold"},
                        {"target": "other"},
                    ],
                },
                "gold": final(),
                "other": final(),
            },
        })
        assert execution.current_state == "gold"

    async def test_entry_actions_do_not_touch_context(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "start",
            "states": {
                "start": {
                    "entry": [{"type": "core.log", "params": {"message": "entering"}}],
                    "always": "done",
                },
                "done": final(),
            },
        }, payload={"a": 1})
        assert execution.status == "completed"
        assert execution.context == {"a": 1}


@pytest.mark.integration
class TestTransitions:
    """Guards, always and on transitions."""

    DEFINITION = {
        "initial": "check",
        "states": {
            "check": {
                "always": [
                    {
                        "guard": {"type": "condition", "params": {"key": "status", "operator": "==", "value": "active"}},
                        "target": "activeBranch",
                    },
                    {"target": "inactiveBranch"},
                ],
            },
            "activeBranch": final(),
            "inactiveBranch": final(),
        },
    }

    async def test_guard_routes_to_target(self, engine, create_workflow):
        execution, nodes = await run(engine, create_workflow, self.DEFINITION, payload={"status": "active"})

        assert execution.current_state == "activeBranch"
        assert [(n.node_id, n.node_type, n.output) for n in nodes] == [
            ("check_guard", "condition", {"result": True}),
        ]
        assert nodes[0].input == {"key": "status", "operator": "==", "value": "active"}

    async def test_guard_falls_back(self, engine, create_workflow):
        execution, nodes = await run(engine, create_workflow, self.DEFINITION, payload={"status": "idle"})
        assert execution.current_state == "inactiveBranch"
        assert nodes == []

    async def test_unconditional_always_is_deterministic(self, engine, create_workflow):
        definition = {
            "initial": "a",
            "states": {"a": {"always": [{"target": "b"}, {"target": "c"}]}, "b": final(), "c": final()},
        }
        first, _ = await run(engine, create_workflow, definition)
        second, _ = await run(engine, create_workflow, definition)
        assert first.current_state == second.current_state == "b"

    async def test_on_takes_first_matching_transition(self, engine, create_workflow):
        definition = {
            "initial": "wait",
            "states": {
                "wait": {
                    "on": {
                        "NEXT": [
                            {"guard": {"params": {"key": "go", "value": True}}, "target": "done"},
                        ],
                        "OTHER": "elsewhere",
                    },
                },
                "done": final(),
                "elsewhere": final(),
            },
        }
        execution, _ = await run(engine, create_workflow, definition, payload={"go": True})
        assert execution.current_state == "done"

        execution, _ = await run(engine, create_workflow, definition, payload={"go": False})
        assert execution.status == "failed"
        assert execution.error == 'No matching transition from state "wait" for event "NEXT"'

    async def test_state_without_transitions_is_stuck(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "limbo",
            "states": {"limbo": {}},
        })
        assert execution.status == "failed"
        assert execution.error == 'Workflow stuck at state "limbo": no transitions defined'

    async def test_unmatched_always_is_stuck(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "check",
            "states": {
                "check": {"always": [{"guard": {"params": {"key": "x", "operator": "exists"}}, "target": "done"}]},
                "done": final(),
            },
        })
        assert execution.status == "failed"
        assert "stuck" in execution.error

    async def test_unknown_target_state(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "start",
            "states": {"start": {"always": "nowhere"}},
        })
        assert execution.status == "failed"
        assert execution.error == 'State "nowhere" not found in workflow definition'
        assert execution.current_state == "start"


@pytest.mark.integration
class TestSafetyBounds:
    """Loop detection and the global step cap."""

    async def test_infinite_loop_detected(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "a",
            "states": {"a": {"always": "b"}, "b": {"always": "a"}},
        })
        assert execution.status == "failed"
        assert execution.error == 'Infinite loop detected at state "a"'

    async def test_global_iteration_cap(self, engine, create_workflow, game_api):
        # Every cycle creates a new session, so the context never repeats
        execution, _ = await run(engine, create_workflow, {
            "initial": "create",
            "states": {
                "create": {"invoke": {"src": "sessions.create", "input": {"playerId": 1}, "onDone": "again"}},
                "again": {"always": "create"},
            },
        })
        assert execution.status == "failed"
        assert execution.error == "Workflow exceeded maximum iterations (100)"
        assert len(game_api.sessions) == 50

    async def test_cap_follows_limits(self, store, dispatcher, strategy, create_workflow):
        engine = WorkflowEngine(store, dispatcher, strategy, limits=EngineLimits(max_machine_iterations=3))
        execution, _ = await run(engine, create_workflow, {
            "initial": "a",
            "states": {"a": {"always": "b"}, "b": {"always": "c"}, "c": {"always": "d"}, "d": final()},
        })
        assert execution.status == "failed"
        assert execution.error == "Workflow exceeded maximum iterations (3)"


@pytest.mark.integration
class TestForEachLoops:
    """forEach loops, sequential and in parallel batches."""

    async def test_empty_collection(self, engine, create_workflow):
        execution, nodes = await run(engine, create_workflow, {
            "initial": "each",
            "states": {
                "each": {"loop": {"type": "forEach", "collection": "$.items", "onDone": "done"}},
                "done": final(),
            },
        }, payload={"items": []})

        assert execution.status == "completed"
        assert execution.context["iterationCount"] == 0
        assert execution.context["results"] == []
        assert execution.context["each_output"] == {"results": [], "iterationCount": 0}
        assert [(n.node_id, n.node_type, n.status) for n in nodes] == [("each", "forEach", "completed")]

    async def test_parallel_batches(self, engine, create_workflow):
        execution, nodes = await run(engine, create_workflow, {
            "initial": "each",
            "states": {
                "each": {
                    "loop": {"type": "forEach", "collection": "$.items", "parallelBatchSize": 2, "onDone": "done"},
                },
                "done": final(),
            },
        }, payload={"items": [1, 2, 3, 4, 5]})

        output = execution.context["each_output"]
        assert output["iterationCount"] == 5
        assert output["batches"] == [2, 2, 1]
        assert output["results"] == [1, 2, 3, 4, 5]
        assert nodes[0].input == {"loopType": "forEach", "collection": "$.items", "maxIterations": 100}

    async def test_parallel_body_runs_per_item(self, engine, create_workflow, game_api):
        execution, _ = await run(engine, create_workflow, {
            "initial": "each",
            "states": {
                "each": {
                    "loop": {
                        "type": "forEach",
                        "collection": "$.players",
                        "itemVariable": "player",
                        "parallelBatchSize": 3,
                        "bodyInitial": "fetch",
                        "bodyStates": {
                            "fetch": {"invoke": {"src": "players.get", "input": {"id": "$.player"}, "onDone": "end"}},
                            "end": final(),
                        },
                        "onDone": "done",
                    },
                },
                "done": final(),
            },
        }, payload={"players": [4, 5, 6, 7]})

        results = execution.context["results"]
        assert [r["player"] for r in results] == [4, 5, 6, 7]
        assert [r["fetch_output"]["id"] for r in results] == [4, 5, 6, 7]
        assert [r["index"] for r in results] == [0, 1, 2, 3]
        assert execution.context["batches"] == [3, 1]
        assert len(game_api.calls) == 4

    async def test_sequential_body_folds_context(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "each",
            "states": {
                "each": {
                    "loop": {
                        "type": "forEach",
                        "collection": "$.items",
                        "bodyInitial": "remember",
                        "bodyStates": {
                            "remember": {
                                "invoke": {"src": "core.transform", "input": {"mapping": {"last": "$.item"}}},
                            },
                        },
                        "onDone": "done",
                    },
                },
                "done": final(),
            },
        }, payload={"items": ["a", "b", "c"]})

        assert [r["last"] for r in execution.context["results"]] == ["a", "b", "c"]
        assert execution.context["last"] == "c"
        assert execution.context["index"] == 2

    async def test_max_iterations_without_on_error_continues(self, engine, create_workflow):
        execution, nodes = await run(engine, create_workflow, {
            "initial": "each",
            "states": {
                "each": {
                    "loop": {"type": "forEach", "collection": "$.items", "maxIterations": 2, "onDone": "done"},
                },
                "done": final(),
            },
        }, payload={"items": [1, 2, 3, 4]})

        assert execution.status == "completed"
        assert execution.context["results"] == [1, 2]
        assert execution.context["iterationCount"] == 2
        assert nodes[0].status == "failed"
        assert nodes[0].error == "ForEach: reached maxIterations (2) after 2 of 4 items"

    async def test_loop_error_follows_on_error(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "each",
            "states": {
                "each": {
                    "loop": {
                        "type": "forEach",
                        "collection": "$.items",
                        "maxIterations": 1,
                        "parallelBatchSize": 2,
                        "onDone": "done",
                        "onError": "partial",
                    },
                },
                "done": final(),
                "partial": final(),
            },
        }, payload={"items": [1, 2, 3]})

        assert execution.current_state == "partial"
        assert execution.context["batches"] == [1]
        assert execution.context["each_error"].startswith("ForEach: reached maxIterations (1)")

    async def test_timeout_records_loop_error(self, engine, create_workflow):
        execution, nodes = await run(engine, create_workflow, {
            "initial": "each",
            "states": {
                "each": {"loop": {"type": "forEach", "collection": "$.items", "timeoutMs": 0, "onDone": "done"}},
                "done": final(),
            },
        }, payload={"items": [1, 2]})

        assert execution.status == "completed"
        assert execution.context["iterationCount"] == 0
        assert nodes[0].error == "ForEach: timeout after 0 iterations"

    async def test_literal_collection(self, engine, create_workflow):
        execution, nodes = await run(engine, create_workflow, {
            "initial": "each",
            "states": {
                "each": {"loop": {"type": "forEach", "collection": [1, 2, 3], "onDone": "done"}},
                "done": final(),
            },
        })

        assert execution.status == "completed"
        assert execution.current_state == "done"
        assert execution.context["iterationCount"] == 3
        assert execution.context["results"] == [1, 2, 3]
        assert nodes[0].input["collection"] == [1, 2, 3]

    async def test_collection_must_be_a_list(self, engine, create_workflow):
        definition = {
            "initial": "each",
            "states": {
                "each": {"loop": {"type": "forEach", "collection": "$.items", "onDone": "done"}},
                "done": final(),
            },
        }
        execution, nodes = await run(engine, create_workflow, definition, payload={"items": "nope"})
        assert execution.status == "failed"
        assert execution.error == 'ForEach: collection "$.items" did not resolve to an array'
        assert nodes[0].status == "failed"

    async def test_invoke_transitions_on_loop_state(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "each",
            "states": {
                "each": {
                    "loop": {"type": "forEach", "collection": "$.items"},
                    "invoke": {"onDone": "done"},
                },
                "done": final(),
            },
        }, payload={"items": [1]})
        assert execution.current_state == "done"

    async def test_loop_falls_through_to_always(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "each",
            "states": {
                "each": {
                    "loop": {"type": "forEach", "collection": "$.items"},
                    "always": [
                        {"guard": {"params": {"key": "iterationCount", "operator": ">", "value": 1}}, "target": "many"},
                        {"target": "few"},
                    ],
                },
                "many": final(),
                "few": final(),
            },
        }, payload={"items": [1, 2, 3]})
        assert execution.current_state == "many"


@pytest.mark.integration
class TestWhileLoops:
    """while loops and the loop body sub-machine."""

    async def test_false_guard_runs_zero_iterations(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "poll",
            "states": {
                "poll": {
                    "loop": {
                        "type": "while",
                        "condition": {"params": {"key": "pending", "operator": "==", "value": True}},
                        "onDone": "done",
                    },
                },
                "done": final(),
            },
        }, payload={"pending": False})

        assert execution.status == "completed"
        assert execution.context["iterationCount"] == 0

    async def test_body_runs_until_guard_fails(self, engine, create_workflow, game_api):
        execution, nodes = await run(engine, create_workflow, {
            "initial": "fill",
            "states": {
                "fill": {
                    "loop": {
                        "type": "while",
                        "condition": {"params": {"key": "id", "operator": "<", "value": 3}},
                        "bodyInitial": "create",
                        "bodyStates": {
                            "create": {"invoke": {"src": "sessions.create", "input": {"playerId": 9}}},
                        },
                        "onDone": "done",
                    },
                },
                "done": final(),
            },
        }, payload={"id": 0})

        assert execution.context["iterationCount"] == 3
        assert execution.context["id"] == 3
        assert len(game_api.sessions) == 3
        assert [(n.node_id, n.node_type) for n in nodes] == [("fill", "whileLoop")]

    async def test_max_iterations_does_not_crash(self, engine, create_workflow):
        execution, nodes = await run(engine, create_workflow, {
            "initial": "spin",
            "states": {
                "spin": {
                    "loop": {
                        "type": "while",
                        "condition": {"params": {"key": "running", "value": True}},
                        "maxIterations": 3,
                        "onDone": "done",
                    },
                },
                "done": final(),
            },
        }, payload={"running": True})

        assert execution.status == "completed"
        assert execution.context["iterationCount"] == 3
        assert nodes[0].status == "failed"
        assert nodes[0].error == "While: reached maxIterations (3)"

    async def test_timeout_follows_on_error(self, engine, create_workflow):
        execution, nodes = await run(engine, create_workflow, {
            "initial": "poll",
            "states": {
                "poll": {
                    "loop": {
                        "type": "while",
                        "condition": {"params": {"key": "pending", "value": True}},
                        "timeoutMs": 0,
                        "onDone": "done",
                        "onError": "timedOut",
                    },
                },
                "done": final(),
                "timedOut": final(),
            },
        }, payload={"pending": True})

        assert execution.status == "completed"
        assert execution.current_state == "timedOut"
        assert execution.context["iterationCount"] == 0
        assert execution.context["poll_error"] == "While: timeout after 0 iterations"
        assert nodes[0].status == "failed"
        assert nodes[0].error == "While: timeout after 0 iterations"

    async def test_body_failure_follows_on_error(self, engine, create_workflow, game_api):
        game_api.fail_routes["POST:sessions"] = 500
        execution, _ = await run(engine, create_workflow, {
            "initial": "fill",
            "states": {
                "fill": {
                    "loop": {
                        "type": "while",
                        "condition": {"params": {"key": "go", "value": True}},
                        "bodyInitial": "create",
                        "bodyStates": {"create": {"invoke": {"src": "sessions.create", "input": {}}}},
                        "onDone": "done",
                        "onError": "failedFill",
                    },
                },
                "done": final(),
                "failedFill": final(),
            },
        }, payload={"go": True})

        assert execution.current_state == "failedFill"
        assert "(500)" in execution.context["fill_error"]

    async def test_body_error_route(self, engine, create_workflow, game_api):
        game_api.fail_routes["GET:players/[id]"] = 404
        execution, _ = await run(engine, create_workflow, {
            "initial": "each",
            "states": {
                "each": {
                    "loop": {
                        "type": "forEach",
                        "collection": "$.ids",
                        "bodyInitial": "fetch",
                        "bodyStates": {
                            "fetch": {"invoke": {"src": "players.get", "input": {"id": "$.item"}, "onError": "skip"}},
                            "skip": {"invoke": {"src": "core.setVariable", "input": {"name": "skipped", "value": True}}},
                        },
                        "onDone": "done",
                    },
                },
                "done": final(),
            },
        }, payload={"ids": [1, 2]})

        assert execution.status == "completed"
        assert all(r["skipped"] is True for r in execution.context["results"])
        assert "fetch_error" in execution.context

    async def test_body_step_cap_is_fatal(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "spin",
            "states": {
                "spin": {
                    "loop": {
                        "type": "forEach",
                        "collection": "$.items",
                        "bodyInitial": "a",
                        "bodyStates": {"a": {"always": "b"}, "b": {"always": "a"}},
                        "onDone": "done",
                        "onError": "done",
                    },
                },
                "done": final(),
            },
        }, payload={"items": [1]})

        assert execution.status == "failed"
        assert execution.error == "Loop body exceeded maximum iterations (50)"

    async def test_nested_loops_are_rejected(self, engine, create_workflow):
        execution, _ = await run(engine, create_workflow, {
            "initial": "outer",
            "states": {
                "outer": {
                    "loop": {
                        "type": "forEach",
                        "collection": "$.items",
                        "bodyInitial": "inner",
                        "bodyStates": {
                            "inner": {"loop": {"type": "forEach", "collection": "$.item"}},
                        },
                        "onDone": "done",
                    },
                },
                "done": final(),
            },
        }, payload={"items": [[1]]})

        assert execution.status == "failed"
        assert execution.error == 'Loop body state "inner" cannot be a loop state'


@pytest.mark.integration
class TestEngineFacade:
    """execute, cancel and status."""

    async def test_missing_workflow(self, engine):
        with pytest.raises(NotFoundError):
            await engine.execute_workflow(999, {})

    async def test_disabled_workflow(self, engine, create_workflow):
        workflow_id = await create_workflow({"initial": "done", "states": {"done": final()}}, enabled=False)
        with pytest.raises(ValidationError, match="disabled"):
            await engine.execute_workflow(workflow_id, {})

    async def test_payload_checked_before_execution_exists(self, engine, create_workflow, db_session):
        workflow_id = await create_workflow({
            "initial": "done",
            "payloadSchema": [{"name": "playerId", "type": "number", "required": True}],
            "states": {"done": final()},
        })
        with pytest.raises(ValidationError, match="playerId"):
            await engine.execute_workflow(workflow_id, {})

        _, total = await ExecutionService(db_session).list_executions(workflow_id=workflow_id)
        assert total == 0

    async def test_trigger_event_recorded(self, engine, create_workflow):
        workflow_id = await create_workflow({"initial": "done", "states": {"done": final()}})
        execution_id = await engine.execute_workflow(workflow_id, {}, trigger_event="manual")
        status = await engine.get_execution_status(execution_id)
        assert status["execution"].trigger_event == "manual"

    async def test_background_run(self, engine, create_workflow):
        workflow_id = await create_workflow({
            "initial": "pause",
            "states": {
                "pause": {"invoke": {"src": "core.delay", "input": {"ms": 20}, "onDone": "done"}},
                "done": final(),
            },
        })
        execution_id = await engine.execute_workflow(workflow_id, {}, wait=False)
        await engine.wait_for_background()

        status = await engine.get_execution_status(execution_id)
        assert status["execution"].status == "completed"
        assert not engine.is_running(execution_id)

    async def test_cancel_running_execution(self, engine, create_workflow, events):
        workflow_id = await create_workflow({
            "initial": "pause",
            "states": {
                "pause": {"invoke": {"src": "core.delay", "input": {"ms": 300}, "onDone": "after"}},
                "after": {
                    "invoke": {"src": "core.setVariable", "input": {"name": "reached", "value": True}, "onDone": "done"},
                },
                "done": final(),
            },
        })
        execution_id = await engine.execute_workflow(workflow_id, {}, wait=False)
        await asyncio.sleep(0.1)
        assert engine.is_running(execution_id)

        await engine.cancel_workflow(execution_id)
        await engine.wait_for_background()

        status = await engine.get_execution_status(execution_id)
        execution, nodes = status["execution"], status["nodes"]
        assert execution.status == "cancelled"
        assert execution.completed_at is not None
        assert "reached" not in (execution.context or {})
        assert [(n.node_id, n.status) for n in nodes] == [("pause", "skipped")]

        cancelled = events.get_log(event="workflows.execution.cancelled")
        assert cancelled[0]["payload"] == {"executionId": execution_id, "skippedNodes": 1}
        assert not events.get_log(event="workflows.execution.completed")

    async def test_cancel_finished_execution(self, engine, create_workflow):
        workflow_id = await create_workflow({"initial": "done", "states": {"done": final()}})
        execution_id = await engine.execute_workflow(workflow_id, {})
        with pytest.raises(ConflictError):
            await engine.cancel_workflow(execution_id)

    async def test_cancel_missing_execution(self, engine):
        with pytest.raises(NotFoundError):
            await engine.cancel_workflow(12345)

    async def test_set_strategy_applies_to_next_run(self, engine, create_workflow, game_api):
        definition = {
            "initial": "fetch",
            "states": {
                "fetch": {"invoke": {"src": "players.get", "input": {"id": 8}, "onDone": "done"}},
                "done": final(),
            },
        }
        execution, _ = await run(engine, create_workflow, definition)
        assert execution.context["status"] == "active"

        def banned_player(request: DirectRequest) -> DirectResponse:
            return DirectResponse(200, {"id": 8, "status": "banned"})

        engine.set_strategy(DirectStrategy({"GET:players/[id]": banned_player}))
        execution, _ = await run(engine, create_workflow, definition)
        assert execution.context["status"] == "banned"
        assert len(game_api.calls) == 1

    async def test_status_of_missing_execution(self, engine):
        with pytest.raises(NotFoundError):
            await engine.get_execution_status(12345)
