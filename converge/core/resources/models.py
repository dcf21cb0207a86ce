"""
Modelo de recursos: unidad de estado gestionado y aristas de orden/notificación.

Un recurso se identifica por (type, title) y se representa como "type[title]".
Sus atributos son de solo lectura tras la compilación; el único campo mutable
es `applied`, que marca el motor de convergencia.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple


class ResourceType(str, Enum):
    """Tipos de recurso soportados"""
    FILE = "file"
    DIRECTORY = "directory"
    SERVICE = "service"
    PACKAGE = "package"
    EXEC = "exec"


class EdgeKind(str, Enum):
    """Tipo de arista: solo orden, u orden + notificación"""
    BEFORE = "before"
    NOTIFY = "notify"


_REF_RE = re.compile(r"^(?P<type>[a-z_]+)\[(?P<title>.+)\]$")


def resource_id(type_: str, title: str) -> str:
    """Identificador canónico: file[puppetserver.conf]"""
    return f"{type_}[{title}]"


def parse_ref(ref: str) -> Tuple[str, str]:
    """Parte una referencia "type[title]" en (type, title)."""
    m = _REF_RE.match(ref.strip())
    if not m:
        raise ValueError(f"Referencia de recurso inválida: {ref!r} (se espera type[title])")
    return m.group("type"), m.group("title")


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Convierte atributos congelados de vuelta a dict/list (para serializar)."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


@dataclass(eq=False)
class Resource:
    """Recurso concreto y totalmente parametrizado de un catálogo"""
    type: ResourceType
    title: str
    attributes: Mapping[str, Any] = field(default_factory=dict)
    applied: bool = False

    def __post_init__(self):
        self.type = ResourceType(self.type)
        self.attributes = _freeze(dict(self.attributes))

    @property
    def id(self) -> str:
        return resource_id(self.type.value, self.title)

    def get(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "attributes": thaw(self.attributes),
        }

    def __repr__(self) -> str:
        return f"Resource({self.id})"


@dataclass(eq=False)
class Edge:
    """Arista source → target; las de tipo notify llevan además el flag `fired`"""
    source: str
    target: str
    kind: EdgeKind = EdgeKind.BEFORE
    fired: bool = False

    def __post_init__(self):
        self.kind = EdgeKind(self.kind)

    def to_dict(self) -> Dict[str, str]:
        return {"source": self.source, "target": self.target, "kind": self.kind.value}
