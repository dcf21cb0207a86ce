"""
Contrato y base para State Providers.

Un provider por tipo de recurso (file, directory, service, package, exec):
- read(resource): lee el estado real sin modificar nada (ProviderReadError si falla)
- apply(resource, observed): transición idempotente al estado deseado → ChangeRecord
- refresh(resource): acción secundaria disparada por una arista notify (opcional)
- interrupt(resource): pide abortar un apply en curso (timeout / cancelación)

El motor no depende de ningún provider concreto; solo de este contrato.
"""

import subprocess
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Set

from converge.core.engine.records import ChangeRecord, ObservedState, Outcome
from converge.core.errors import ApplyError
from converge.core.resources.models import Resource, ResourceType


class CommandResult(NamedTuple):
    """Resultado de un comando: returncode None si ni siquiera pudo ejecutarse"""
    ok: bool
    output: str
    returncode: Optional[int]


CommandRunner = Callable[[List[str]], CommandResult]


DEFAULT_COMMAND_TIMEOUT = 120


def run_command(cmd: List[str], timeout: Optional[float] = DEFAULT_COMMAND_TIMEOUT) -> CommandResult:
    """Ejecuta comando; retorna (éxito, salida, código)."""
    try:
        r = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        out = (r.stdout or "") + (r.stderr or "")
        return CommandResult(r.returncode == 0, out.strip(), r.returncode)
    except (OSError, subprocess.TimeoutExpired) as e:
        return CommandResult(False, str(e), None)


class StateProvider(ABC):
    """Base de providers: implementa apply() sobre desired_state/read/_converge"""

    resource_type: ResourceType
    supports_refresh: bool = False

    def __init__(self, root: Path = Path("/"), runner: Optional[CommandRunner] = None):
        self.root = Path(root)
        self.runner: CommandRunner = runner or run_command
        self._lock = threading.Lock()
        self._interrupted: Set[str] = set()

    @property
    def name(self) -> str:
        return self.resource_type.value

    # --- Contrato ---

    @abstractmethod
    def desired_state(self, resource: Resource) -> Dict[str, Any]:
        """Atributos gestionados, normalizados para comparar con read()."""
        pass

    @abstractmethod
    def read(self, resource: Resource) -> ObservedState:
        """Lee el estado real. No debe modificar el sistema."""
        pass

    @abstractmethod
    def _converge(self, resource: Resource, observed: ObservedState) -> str:
        """Aplica los cambios necesarios; devuelve un mensaje legible."""
        pass

    def in_sync(self, resource: Resource, observed: ObservedState) -> bool:
        if observed.unknown:
            return False
        desired = self.desired_state(resource)
        return all(observed.attributes.get(k) == v for k, v in desired.items())

    def apply(self, resource: Resource, observed: ObservedState) -> ChangeRecord:
        """
        Lleva el recurso al estado deseado.
        Idempotente: si ya está en sincronía devuelve un registro 'unchanged'.

        Raises:
            ApplyError: la transición falló
        """
        with self._lock:
            self._interrupted.discard(resource.id)
        if self.in_sync(resource, observed):
            return self.unchanged(resource, observed)
        try:
            message = self._converge(resource, observed)
        except ApplyError:
            raise
        except OSError as e:
            raise ApplyError(resource.id, str(e)) from e
        return self.changed(resource, observed, message)

    def refresh(self, resource: Resource) -> str:
        """Acción secundaria (p. ej. restart). Por defecto: no soportada."""
        raise ApplyError(resource.id, f"el provider {self.name} no soporta refresh")

    def interrupt(self, resource: Resource) -> None:
        with self._lock:
            self._interrupted.add(resource.id)

    # --- Helpers ---

    def is_interrupted(self, resource: Resource) -> bool:
        with self._lock:
            return resource.id in self._interrupted

    def check_interrupted(self, resource: Resource) -> None:
        if self.is_interrupted(resource):
            raise ApplyError(resource.id, "aplicación interrumpida")

    def host_path(self, path: str) -> Path:
        """Ruta del catálogo (absoluta) dentro del root configurado."""
        return self.root / str(path).lstrip("/")

    def run(self, resource: Resource, cmd: List[str]) -> CommandResult:
        return self.runner(cmd)

    def unchanged(self, resource: Resource, observed: ObservedState) -> ChangeRecord:
        """Crea un registro sin cambios"""
        return ChangeRecord(
            resource_id=resource.id,
            previous=dict(observed.attributes),
            desired=self.desired_state(resource),
            outcome=Outcome.UNCHANGED,
        )

    def changed(self, resource: Resource, observed: ObservedState, message: Optional[str] = None) -> ChangeRecord:
        """Crea un registro de cambio aplicado"""
        return ChangeRecord(
            resource_id=resource.id,
            previous=dict(observed.attributes),
            desired=self.desired_state(resource),
            outcome=Outcome.CHANGED,
            message=message,
        )
