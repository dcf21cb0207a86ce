# tests/test_graph.py
import threading

import pytest

from converge.core.errors import GraphError
from converge.core.graph import DependencyGraph, ReadyQueue, build_graph
from converge.core.resources import EdgeKind


def test_topological_order_breaks_ties_by_declaration():
    graph = build_graph(["a", "b", "c", "d"])
    graph.add_edge("d", "a")

    assert graph.topological_order() == ["b", "c", "d", "a"]


def test_order_is_stable_across_builds():
    def build():
        graph = build_graph(["pkg", "conf", "svc", "dir"])
        graph.add_edge("pkg", "conf")
        graph.add_edge("conf", "svc", EdgeKind.NOTIFY)
        graph.add_edge("pkg", "dir")
        return graph.topological_order()

    assert build() == build() == ["pkg", "conf", "svc", "dir"]


def test_cycle_is_rejected_and_named():
    graph = build_graph(["A", "B", "C"])
    graph.add_edge("A", "B")
    graph.add_edge("B", "C")

    with pytest.raises(GraphError) as exc:
        graph.add_edge("C", "A")

    assert exc.value.cycle == ["A", "B", "C"]
    assert "A -> B -> C -> A" in str(exc.value)
    # el grafo queda como estaba
    assert len(graph.edges) == 2


def test_self_loop_and_unknown_endpoints():
    graph = build_graph(["A"])
    with pytest.raises(GraphError):
        graph.add_edge("A", "A")
    with pytest.raises(GraphError, match="inexistente"):
        graph.add_edge("A", "missing")


def test_duplicate_resource():
    graph = DependencyGraph()
    graph.add_resource("file[/etc/x]")
    with pytest.raises(GraphError, match="duplicado"):
        graph.add_resource("file[/etc/x]")


def test_dependents_are_transitive():
    graph = build_graph(["a", "b", "c", "d"])
    graph.add_edge("a", "b")
    graph.add_edge("b", "c")

    assert graph.dependents("a") == ["b", "c"]
    assert graph.dependents("d") == []


def test_notify_edges():
    graph = build_graph(["conf", "svc"])
    graph.add_edge("conf", "svc", EdgeKind.NOTIFY)

    assert [e.target for e in graph.notify_edges_from("conf")] == ["svc"]
    assert [e.source for e in graph.notify_edges_into("svc")] == ["conf"]
    assert graph.predecessors("svc") == ["conf"]


def test_ready_queue_releases_after_predecessors():
    graph = build_graph(["a", "b", "c"])
    graph.add_edge("a", "b")
    queue = ReadyQueue(graph)

    assert queue.get() == "a"
    assert queue.get() == "c"
    queue.complete("a")
    assert queue.get() == "b"
    queue.complete("c")
    queue.complete("b")
    assert queue.get() is None


def test_ready_queue_cancel():
    graph = build_graph(["a", "b"])
    graph.add_edge("a", "b")
    queue = ReadyQueue(graph)

    assert queue.get() == "a"
    queue.cancel()
    queue.complete("a")

    assert queue.get() is None
    assert queue.cancelled
    assert queue.undelivered() == ["b"]


def test_ready_queue_with_concurrent_consumers():
    """Cada recurso se entrega una vez y nunca antes que sus predecesores."""
    names = [f"r{i}" for i in range(20)]
    graph = build_graph(names)
    for i in range(1, 20):
        graph.add_edge(names[(i - 1) // 2], names[i])
    queue = ReadyQueue(graph)
    done = []
    lock = threading.Lock()

    def consume():
        while True:
            rid = queue.get()
            if rid is None:
                return
            with lock:
                for pred in graph.predecessors(rid):
                    assert pred in done
                done.append(rid)
            queue.complete(rid)

    threads = [threading.Thread(target=consume, daemon=True) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)

    assert sorted(done) == sorted(names)
