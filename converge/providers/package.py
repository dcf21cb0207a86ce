"""
Provider de paquetes Debian (dpkg-query / apt-get).

Atributos: name (por defecto el título), ensure (present | absent | latest | <versión>).
'latest' se trata como 'present': sin índice de repositorios no hay forma
fiable de saber la versión candidata desde un read() sin efectos.
"""

from typing import Any, Dict

from converge.core.errors import ApplyError, ProviderReadError
from converge.core.resources.models import Resource, ResourceType
from converge.providers.base import ObservedState, StateProvider


_PRESENT = {"present", "installed", "latest"}


class PackageProvider(StateProvider):
    """Paquetes del sistema"""

    resource_type = ResourceType.PACKAGE

    def _name(self, resource: Resource) -> str:
        return resource.get("name") or resource.title

    def desired_state(self, resource: Resource) -> Dict[str, Any]:
        return {"ensure": str(resource.get("ensure", "present"))}

    def read(self, resource: Resource) -> ObservedState:
        name = self._name(resource)
        result = self.run(resource, ["dpkg-query", "-W", "-f=${Version}", name])
        if result.returncode is None:
            raise ProviderReadError(resource.id, f"no se pudo consultar {name}: {result.output}")
        version = result.output.strip() if result.ok else ""
        return ObservedState({"ensure": "present" if version else "absent", "version": version or None})

    def in_sync(self, resource: Resource, observed: ObservedState) -> bool:
        if observed.unknown:
            return False
        wanted = self.desired_state(resource)["ensure"]
        installed = observed.attributes.get("ensure") == "present"
        if wanted in _PRESENT:
            return installed
        if wanted in ("absent", "purged"):
            return not installed
        return observed.attributes.get("version") == wanted

    def _converge(self, resource: Resource, observed: ObservedState) -> str:
        name = self._name(resource)
        wanted = self.desired_state(resource)["ensure"]
        if wanted in ("absent", "purged"):
            action = "purge" if wanted == "purged" else "remove"
            cmd = ["apt-get", action, "-y", "-q", name]
        else:
            target = name if wanted in _PRESENT else f"{name}={wanted}"
            cmd = ["apt-get", "install", "-y", "-q", target]
        result = self.run(resource, cmd)
        if not result.ok:
            raise ApplyError(resource.id, f"{' '.join(cmd)} falló: {result.output}")
        return f"{name}: {wanted}"
