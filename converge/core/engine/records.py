"""
Registros de cambio y estados del motor de convergencia.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Outcome(str, Enum):
    """Resultado de un intento de aplicación"""
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    FAILED = "failed"


class ResourceState(str, Enum):
    """Máquina de estados por recurso"""
    PENDING = "pending"
    READ = "read"
    UNCHANGED = "unchanged"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (ResourceState.UNCHANGED, ResourceState.APPLIED, ResourceState.FAILED, ResourceState.SKIPPED)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ChangeRecord:
    """Registro emitido por cada recurso intentado"""
    resource_id: str
    previous: Dict[str, Any]
    desired: Dict[str, Any]
    outcome: Outcome
    timestamp: str = field(default_factory=utc_now)
    message: Optional[str] = None
    error: Optional[str] = None
    read_error: Optional[str] = None
    refreshed: bool = False
    noop: bool = False
    duration: float = 0.0

    @property
    def changed(self) -> bool:
        return self.outcome == Outcome.CHANGED

    @property
    def failed(self) -> bool:
        return self.outcome == Outcome.FAILED

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False, default=str)


@dataclass
class ObservedState:
    """Estado real leído por un provider (unknown si la lectura falló)"""
    attributes: Dict[str, Any] = field(default_factory=dict)
    unknown: bool = False
    error: Optional[str] = None

    @classmethod
    def unknown_state(cls, error: str) -> "ObservedState":
        return cls(attributes={}, unknown=True, error=error)
