"""
Provider de directorios: path, ensure (present/absent), mode, owner, group.
"""

from pathlib import Path
from typing import Any, Dict

from converge.core.errors import ApplyError, ProviderReadError
from converge.core.resources.models import Resource, ResourceType
from converge.providers.base import ObservedState, StateProvider
from converge.providers.file import fix_ownership, normalize_mode, stat_ownership


class DirectoryProvider(StateProvider):
    """Directorios (crea padres; solo elimina directorios vacíos)"""

    resource_type = ResourceType.DIRECTORY

    def _path(self, resource: Resource) -> Path:
        return self.host_path(resource.get("path") or resource.title)

    def desired_state(self, resource: Resource) -> Dict[str, Any]:
        if resource.get("ensure", "present") == "absent":
            return {"ensure": "absent"}
        desired: Dict[str, Any] = {"ensure": "directory"}
        mode = normalize_mode(resource.get("mode"))
        if mode:
            desired["mode"] = mode
        for key in ("owner", "group"):
            if resource.get(key):
                desired[key] = resource.get(key)
        return desired

    def read(self, resource: Resource) -> ObservedState:
        path = self._path(resource)
        try:
            if not path.exists():
                return ObservedState({"ensure": "absent"})
            if not path.is_dir():
                return ObservedState({"ensure": "file"})
            return ObservedState({"ensure": "directory", **stat_ownership(path)})
        except OSError as e:
            raise ProviderReadError(resource.id, f"no se pudo leer {path}: {e}") from e

    def _converge(self, resource: Resource, observed: ObservedState) -> str:
        path = self._path(resource)
        desired = self.desired_state(resource)
        current = observed.attributes

        if current.get("ensure") == "file":
            raise ApplyError(resource.id, f"{path} existe y no es un directorio")

        if desired["ensure"] == "absent":
            if path.exists():
                try:
                    path.rmdir()
                except OSError as e:
                    raise ApplyError(resource.id, f"no se pudo eliminar {path}: {e}") from e
                return f"eliminado {path}"
            return "ya ausente"

        actions = []
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            actions.append("creado")
            current = stat_ownership(path)
        actions.extend(fix_ownership(path, desired, current))
        return f"{path}: {', '.join(actions) or 'sin cambios'}"
