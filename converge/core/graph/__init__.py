from converge.core.graph.dependency import DependencyGraph, ReadyQueue, build_graph

__all__ = ["DependencyGraph", "ReadyQueue", "build_graph"]
