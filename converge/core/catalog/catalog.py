"""
Catálogo: conjunto concreto de recursos y aristas de una compilación.

Se sustituye entero en cada recompilación; nunca se modifica entre ejecuciones.
"""

import hashlib
import json
from typing import Any, Dict, List, Optional

from converge.core.graph.dependency import DependencyGraph
from converge.core.resources.models import Edge, Resource


class Catalog:
    """Recursos (orden de declaración) + grafo de dependencias"""

    def __init__(
        self,
        resources: List[Resource],
        graph: DependencyGraph,
        parameters: Optional[Dict[str, Any]] = None,
        derived: Optional[Dict[str, Any]] = None,
    ):
        self._resources: Dict[str, Resource] = {r.id: r for r in resources}
        self.graph = graph
        self.parameters = dict(parameters or {})
        self.derived = dict(derived or {})

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, rid: str) -> bool:
        return rid in self._resources

    def __getitem__(self, rid: str) -> Resource:
        return self._resources[rid]

    @property
    def resources(self) -> List[Resource]:
        return list(self._resources.values())

    @property
    def edges(self) -> List[Edge]:
        return self.graph.edges

    def find(self, type_: str, **attrs: Any) -> List[Resource]:
        """Recursos de un tipo cuyos atributos coinciden con `attrs`."""
        return [
            r for r in self._resources.values()
            if r.type.value == type_ and all(r.get(k) == v for k, v in attrs.items())
        ]

    def ordered(self) -> List[Resource]:
        return [self._resources[rid] for rid in self.graph.topological_order()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parameters": self.parameters,
            "derived": self.derived,
            "resources": [r.to_dict() for r in self._resources.values()],
            "edges": [e.to_dict() for e in self.graph.edges],
        }

    def to_json(self, indent: Optional[int] = None) -> str:
        """Serialización canónica (claves ordenadas): misma entrada → mismos bytes."""
        return json.dumps(self.to_dict(), sort_keys=True, indent=indent, ensure_ascii=False, default=str)

    def digest(self) -> str:
        return hashlib.sha256(self.to_json().encode("utf-8")).hexdigest()
