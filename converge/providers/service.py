"""
Provider de servicios systemd.

Atributos: name (por defecto el título), ensure (running/stopped), enable (bool).
refresh() reinicia el servicio; solo lo invoca el motor cuando una arista
notify entrante fue disparada. Si el servicio se acaba de arrancar en esta
misma pasada, el reinicio se omite: ya corre con la configuración nueva.
"""

from typing import Any, Dict, Set

from converge.core.errors import ApplyError, ProviderReadError
from converge.core.resources.models import Resource, ResourceType
from converge.providers.base import ObservedState, StateProvider


SYSTEMCTL = "systemctl"


class ServiceProvider(StateProvider):
    """Servicios gestionados con systemctl"""

    resource_type = ResourceType.SERVICE
    supports_refresh = True

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._started: Set[str] = set()

    def _unit(self, resource: Resource) -> str:
        return resource.get("name") or resource.title

    def desired_state(self, resource: Resource) -> Dict[str, Any]:
        desired: Dict[str, Any] = {}
        if resource.get("ensure") is not None:
            desired["ensure"] = resource.get("ensure")
        if resource.get("enable") is not None:
            desired["enable"] = bool(resource.get("enable"))
        return desired

    def read(self, resource: Resource) -> ObservedState:
        unit = self._unit(resource)
        with self._lock:
            self._started.discard(resource.id)
        active = self.run(resource, [SYSTEMCTL, "is-active", unit])
        enabled = self.run(resource, [SYSTEMCTL, "is-enabled", unit])
        for result in (active, enabled):
            if result.returncode is None:
                raise ProviderReadError(resource.id, f"no se pudo consultar {unit}: {result.output}")
        return ObservedState({
            "ensure": "running" if active.ok else "stopped",
            "enable": enabled.ok,
        })

    def _systemctl(self, resource: Resource, action: str) -> None:
        unit = self._unit(resource)
        result = self.run(resource, [SYSTEMCTL, action, unit])
        if not result.ok:
            raise ApplyError(resource.id, f"systemctl {action} {unit} falló: {result.output}")

    def _converge(self, resource: Resource, observed: ObservedState) -> str:
        desired = self.desired_state(resource)
        current = observed.attributes
        actions = []
        if "enable" in desired and desired["enable"] != current.get("enable"):
            action = "enable" if desired["enable"] else "disable"
            self._systemctl(resource, action)
            actions.append(action)
        if "ensure" in desired and desired["ensure"] != current.get("ensure"):
            action = "start" if desired["ensure"] == "running" else "stop"
            self._systemctl(resource, action)
            actions.append(action)
            if action == "start":
                with self._lock:
                    self._started.add(resource.id)
        return f"{self._unit(resource)}: {', '.join(actions)}"

    def refresh(self, resource: Resource) -> str:
        if resource.get("ensure") == "stopped":
            return f"{self._unit(resource)}: detenido, no se reinicia"
        with self._lock:
            just_started = resource.id in self._started
            self._started.discard(resource.id)
        if just_started:
            return f"{self._unit(resource)}: recién arrancado, no se reinicia"
        self._systemctl(resource, "restart")
        return f"{self._unit(resource)}: reiniciado"
