"""Tests for ExecutionStore run-state tracking."""

import asyncio
import logging

import pytest

from nodeflow.core.executor import AlreadyRunningError, GraphExecutor
from nodeflow.core.handlers import HandlerRegistry
from nodeflow.core.models import NodeStatus
from nodeflow.core.store import ExecutionStore


@pytest.fixture
def store(executor):
    return ExecutionStore(executor)


def messages(store, level=None):
    return [log.message for log in store.logs if level is None or log.level == level]


class TestExecuteGraph:
    """Tests for ExecutionStore.execute_graph."""

    def test_initial_state(self, store):
        assert store.status() == "idle"
        assert store.completion_percentage() == 0
        assert store.logs == []
        assert store.results is None

    def test_successful_run(self, store, linear_graph):
        asyncio.run(store.execute_graph(*linear_graph))

        assert store.status() == "completed"
        assert not store.is_running
        assert store.completion_percentage() == 100
        assert set(store.results) == {"A", "B", "C"}
        assert all(state.status == NodeStatus.COMPLETED for state in store.node_states.values())
        assert store.get_node_state("A").output.data == {"id": "A", "inputs": {}}
        assert store.get_node_state("A").finished_at is not None
        assert messages(store) == [
            "Starting execution of 3 nodes",
            "Executing node: A",
            "Node completed: A",
            "Executing node: B",
            "Node completed: B",
            "Executing node: C",
            "Node completed: C",
            "Execution completed successfully",
        ]

    def test_node_failure_recorded(self, linear_graph):
        def fail_on_b(node, inputs, ctx):
            if node.id == "B":
                raise RuntimeError("bad row")
            return node.id

        store = ExecutionStore(GraphExecutor(HandlerRegistry({"step": fail_on_b})))
        asyncio.run(store.execute_graph(*linear_graph))

        assert store.status() == "error"
        assert store.error == "Node 'B' failed: bad row"
        assert store.get_node_state("A").status == NodeStatus.COMPLETED
        assert store.get_node_state("B").status == NodeStatus.FAILED
        assert store.get_node_state("B").error == "bad row"
        assert store.get_node_state("C").status == NodeStatus.PENDING
        assert "Node error: bad row" in messages(store, "error")
        assert "Execution failed: Node 'B' failed: bad row" in messages(store, "error")
        assert "Execution error: Node 'B' failed: bad row" in messages(store, "error")
        assert store.results is None

    def test_validation_failure_recorded(self, store, cyclic_graph):
        asyncio.run(store.execute_graph(*cyclic_graph))
        assert store.status() == "error"
        assert store.error.startswith("Graph validation failed")
        assert all(state.status == NodeStatus.PENDING for state in store.node_states.values())

    def test_passthrough_warnings_logged(self, linear_graph):
        store = ExecutionStore(GraphExecutor())
        asyncio.run(store.execute_graph(*linear_graph))
        warnings = messages(store, "warn")
        assert len(warnings) == 3
        assert all("No handler registered" in w for w in warnings)
        assert store.status() == "completed"

    def test_abort_mid_run(self, linear_graph):
        holder = {}

        def step(node, inputs, ctx):
            if node.id == "A":
                holder["store"].abort_execution()
            return node.id

        store = ExecutionStore(GraphExecutor(HandlerRegistry({"step": step})))
        holder["store"] = store
        asyncio.run(store.execute_graph(*linear_graph))

        assert store.status() == "aborted"
        assert store.aborted
        assert store.results is None
        assert store.get_node_state("A").status == NodeStatus.COMPLETED
        assert store.get_node_state("B").status == NodeStatus.PENDING
        assert "Execution aborted by user" in messages(store, "warn")
        assert "Execution aborted before completion" in messages(store, "warn")

    def test_second_call_while_running_ignored(self, linear_graph, make_nodes):
        registry = HandlerRegistry()

        async def main():
            gate = asyncio.Event()

            async def blocking(node, inputs, ctx):
                await gate.wait()
                return node.id

            registry.register("step", blocking)
            store = ExecutionStore(GraphExecutor(registry))
            first = asyncio.create_task(store.execute_graph(*linear_graph))
            await asyncio.sleep(0)
            assert store.status() == "running"
            await store.execute_graph(make_nodes("X"), [])
            gate.set()
            await first
            return store

        store = asyncio.run(main())
        assert "Execution already in progress" in messages(store, "warn")
        assert set(store.node_states) == {"A", "B", "C"}
        assert store.status() == "completed"

    def test_new_run_clears_previous(self, store, linear_graph, make_nodes):
        asyncio.run(store.execute_graph(*linear_graph))
        asyncio.run(store.execute_graph(make_nodes("Z"), []))
        assert set(store.node_states) == {"Z"}
        assert messages(store)[0] == "Starting execution of 1 nodes"

    def test_progress_tracked(self, store, diamond_graph):
        asyncio.run(store.execute_graph(*diamond_graph))
        assert store.progress.completed == ["A", "B", "C", "D"]
        assert store.progress.total_nodes == 4


class TestStoreHelpers:
    def test_add_and_clear_logs(self, store, caplog):
        with caplog.at_level(logging.INFO, logger="nodeflow.core.store"):
            store.add_log("info", "hello", node_id="A")
        assert store.logs[0].node_id == "A"
        assert store.logs[0].timestamp is not None
        assert "hello" in caplog.text
        store.clear_logs()
        assert store.logs == []

    def test_abort_when_idle_is_noop(self, store):
        store.abort_execution()
        assert store.logs == []

    def test_unknown_node_state(self, store):
        assert store.get_node_state("nope") is None

    def test_reset(self, store, linear_graph):
        asyncio.run(store.execute_graph(*linear_graph))
        store.reset()
        assert store.status() == "idle"
        assert store.node_states == {}
        assert store.executor.last_result is None

    def test_reset_while_running_rejected(self, store):
        store.is_running = True
        with pytest.raises(AlreadyRunningError):
            store.reset()
