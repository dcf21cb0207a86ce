"""
Grafo de dependencias entre recursos.

- Nodos: ids de recurso ("type[title]") en orden de declaración.
- Aristas: before / notify (ambas implican orden source → target).
- add_edge rechaza cualquier arista que cree un ciclo (GraphError con el ciclo).
- topological_order(): orden determinista, empates por orden de declaración.
- ReadyQueue: cola thread-safe que solo libera un recurso cuando todos sus
  predecesores han llegado a un estado terminal.
"""

import heapq
import threading
from typing import Dict, Iterable, List, Optional, Set

from converge.core.errors import GraphError
from converge.core.resources.models import Edge, EdgeKind


class DependencyGraph:
    """Grafo dirigido acíclico de recursos"""

    def __init__(self):
        self._index: Dict[str, int] = {}
        self._nodes: List[str] = []
        self._succ: Dict[str, List[str]] = {}
        self._pred: Dict[str, List[str]] = {}
        self._edges: List[Edge] = []

    # --- Construcción ---

    def add_resource(self, rid: str) -> None:
        if rid in self._index:
            raise GraphError(f"Recurso duplicado: {rid}", resource=rid)
        self._index[rid] = len(self._nodes)
        self._nodes.append(rid)
        self._succ[rid] = []
        self._pred[rid] = []

    def add_edge(self, source: str, target: str, kind: EdgeKind = EdgeKind.BEFORE) -> Edge:
        """
        Añade la arista source → target.

        Raises:
            GraphError: si algún extremo no existe o si la arista cierra un ciclo.
        """
        for rid in (source, target):
            if rid not in self._index:
                raise GraphError(f"Referencia a recurso inexistente: {rid}", resource=rid)
        if source == target:
            raise GraphError("Dependencia circular", cycle=[source], resource=source)

        # Si ya existe un camino target ⇝ source, la nueva arista cierra el ciclo
        path = self._find_path(target, source)
        if path is not None:
            raise GraphError("Dependencia circular", cycle=path, resource=source)

        edge = Edge(source, target, kind)
        self._edges.append(edge)
        if target not in self._succ[source]:
            self._succ[source].append(target)
            self._pred[target].append(source)
        return edge

    def _find_path(self, start: str, goal: str) -> Optional[List[str]]:
        """Camino start ⇝ goal (DFS en orden de declaración), o None."""
        stack = [(start, [start])]
        seen: Set[str] = set()
        while stack:
            node, path = stack.pop()
            if node == goal:
                return path
            if node in seen:
                continue
            seen.add(node)
            for nxt in reversed(self._succ[node]):
                if nxt not in seen:
                    stack.append((nxt, path + [nxt]))
        return None

    # --- Consultas ---

    @property
    def nodes(self) -> List[str]:
        return list(self._nodes)

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges)

    def __contains__(self, rid: str) -> bool:
        return rid in self._index

    def __len__(self) -> int:
        return len(self._nodes)

    def position(self, rid: str) -> int:
        """Posición de declaración (clave de desempate)."""
        return self._index[rid]

    def predecessors(self, rid: str) -> List[str]:
        return list(self._pred[rid])

    def successors(self, rid: str) -> List[str]:
        return list(self._succ[rid])

    def dependents(self, rid: str) -> List[str]:
        """Todos los dependientes transitivos, en orden de declaración."""
        found: Set[str] = set()
        stack = list(self._succ[rid])
        while stack:
            node = stack.pop()
            if node in found:
                continue
            found.add(node)
            stack.extend(self._succ[node])
        return sorted(found, key=self._index.__getitem__)

    def notify_edges_from(self, rid: str) -> List[Edge]:
        return [e for e in self._edges if e.source == rid and e.kind is EdgeKind.NOTIFY]

    def notify_edges_into(self, rid: str) -> List[Edge]:
        return [e for e in self._edges if e.target == rid and e.kind is EdgeKind.NOTIFY]

    def topological_order(self) -> List[str]:
        """Orden topológico (Kahn); empates resueltos por orden de declaración."""
        indegree = {rid: len(self._pred[rid]) for rid in self._nodes}
        heap = [self._index[rid] for rid in self._nodes if indegree[rid] == 0]
        heapq.heapify(heap)
        order: List[str] = []
        while heap:
            rid = self._nodes[heapq.heappop(heap)]
            order.append(rid)
            for nxt in self._succ[rid]:
                indegree[nxt] -= 1
                if indegree[nxt] == 0:
                    heapq.heappush(heap, self._index[nxt])
        # add_edge impide ciclos; esto solo protege frente a manipulación externa
        if len(order) != len(self._nodes):
            remaining = [rid for rid in self._nodes if rid not in set(order)]
            raise GraphError("Dependencia circular", cycle=remaining)
        return order


class ReadyQueue:
    """
    Cola "siguiente recurso listo" para workers concurrentes.

    Un recurso se entrega una sola vez y solo cuando todos sus predecesores
    están completos (estado terminal). get() bloquea sin hacer polling activo y
    devuelve None cuando ya no queda nada que entregar o la cola fue cancelada.
    """

    def __init__(self, graph: DependencyGraph):
        self._graph = graph
        self._cond = threading.Condition()
        self._remaining = {rid: len(graph.predecessors(rid)) for rid in graph.nodes}
        self._ready = [graph.position(rid) for rid, n in self._remaining.items() if n == 0]
        heapq.heapify(self._ready)
        self._in_flight: Set[str] = set()
        self._done: Set[str] = set()
        self._cancelled = False

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        with self._cond:
            while True:
                if self._cancelled:
                    return None
                if self._ready:
                    rid = self._graph.nodes[heapq.heappop(self._ready)]
                    self._in_flight.add(rid)
                    return rid
                if not self._in_flight:
                    # Nada listo ni en curso: todo entregado
                    return None
                if not self._cond.wait(timeout):
                    return None

    def complete(self, rid: str) -> None:
        """Marca rid como terminal y libera a los sucesores que queden listos."""
        with self._cond:
            self._in_flight.discard(rid)
            self._done.add(rid)
            for nxt in self._graph.successors(rid):
                self._remaining[nxt] -= 1
                if self._remaining[nxt] == 0:
                    heapq.heappush(self._ready, self._graph.position(nxt))
            self._cond.notify_all()

    def cancel(self) -> None:
        """Deja de entregar recursos nuevos; los que están en curso terminan."""
        with self._cond:
            self._cancelled = True
            self._cond.notify_all()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def undelivered(self) -> List[str]:
        """Recursos nunca entregados (p. ej. tras cancelar)."""
        with self._cond:
            return [rid for rid in self._graph.nodes if rid not in self._done and rid not in self._in_flight]


def build_graph(resource_ids: Iterable[str]) -> DependencyGraph:
    graph = DependencyGraph()
    for rid in resource_ids:
        graph.add_resource(rid)
    return graph
