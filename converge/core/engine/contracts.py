"""
Contrato que el motor espera de un provider.

El core solo define la interfaz; la implementación vive en converge/providers/*.
"""

from typing import Any, Dict, Protocol

from converge.core.engine.records import ChangeRecord
from converge.core.resources.models import Resource


class ProviderContract(Protocol):
    """Contrato mínimo de un provider (file, service, package, exec...)"""

    supports_refresh: bool

    def desired_state(self, resource: Resource) -> Dict[str, Any]:
        """Atributos gestionados y normalizados."""
        ...

    def read(self, resource: Resource) -> Any:
        """Estado real (ObservedState). ProviderReadError si no se puede leer."""
        ...

    def in_sync(self, resource: Resource, observed: Any) -> bool:
        ...

    def apply(self, resource: Resource, observed: Any) -> ChangeRecord:
        """Transición idempotente. ApplyError si falla."""
        ...

    def refresh(self, resource: Resource) -> str:
        """Acción secundaria disparada por notify."""
        ...

    def interrupt(self, resource: Resource) -> None:
        ...
