"""
Provider de comandos (exec).

Atributos: command, creates, unless, onlyif, refreshonly, cwd.
- creates: no ejecutar si la ruta existe
- unless: no ejecutar si este comando termina bien
- onlyif: ejecutar solo si este comando termina bien
- refreshonly: solo se ejecuta como acción secundaria de un notify
"""

from typing import Any, Dict, List

from converge.core.errors import ApplyError, ProviderReadError
from converge.core.resources.models import Resource, ResourceType
from converge.providers.base import ObservedState, StateProvider


class ExecProvider(StateProvider):
    """Comandos con guardas de idempotencia"""

    resource_type = ResourceType.EXEC
    supports_refresh = True

    def _shell(self, resource: Resource, command: str) -> List[str]:
        cwd = resource.get("cwd")
        if cwd:
            command = f"cd {self.host_path(cwd)} && {command}"
        return ["sh", "-c", command]

    def _command(self, resource: Resource) -> str:
        return resource.get("command") or resource.title

    def desired_state(self, resource: Resource) -> Dict[str, Any]:
        return {"pending": False}

    def _guards_allow(self, resource: Resource) -> bool:
        creates = resource.get("creates")
        if creates and self.host_path(creates).exists():
            return False
        for guard, run_when_ok in (("unless", False), ("onlyif", True)):
            check = resource.get(guard)
            if not check:
                continue
            result = self.run(resource, self._shell(resource, check))
            if result.returncode is None:
                raise ProviderReadError(resource.id, f"guarda '{guard}' no ejecutable: {result.output}")
            if result.ok != run_when_ok:
                return False
        return True

    def read(self, resource: Resource) -> ObservedState:
        if resource.get("refreshonly"):
            return ObservedState({"pending": False})
        return ObservedState({"pending": self._guards_allow(resource)})

    def _execute(self, resource: Resource) -> str:
        command = self._command(resource)
        result = self.run(resource, self._shell(resource, command))
        if not result.ok:
            raise ApplyError(resource.id, f"'{command}' falló ({result.returncode}): {result.output}")
        return f"ejecutado: {command}"

    def _converge(self, resource: Resource, observed: ObservedState) -> str:
        return self._execute(resource)

    def refresh(self, resource: Resource) -> str:
        if not self._guards_allow(resource):
            return "guardas impiden la ejecución"
        return self._execute(resource)
