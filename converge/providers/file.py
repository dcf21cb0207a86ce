"""
Provider de archivos.

Atributos: path, ensure (present/absent), content, mode, owner, group, replace.
Las escrituras pasan por un temporal en el mismo directorio + fsync + os.replace:
el archivo destino nunca queda a medio escribir, ni siquiera si se interrumpe.
"""

import grp
import hashlib
import os
import pwd
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from converge.core.errors import ApplyError, ProviderReadError
from converge.core.resources.models import Resource, ResourceType
from converge.providers.base import ObservedState, StateProvider


CHUNK_SIZE = 64 * 1024
DEFAULT_FILE_MODE = 0o644


def normalize_mode(mode: Any) -> Optional[str]:
    """'644' / '0644' / 420 → '0644'"""
    if mode is None or mode == "":
        return None
    if isinstance(mode, int) and not isinstance(mode, bool):
        return f"{mode:04o}"
    return f"{int(str(mode), 8):04o}"


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def stat_ownership(path: Path) -> Dict[str, Any]:
    """mode/owner/group actuales de una ruta existente"""
    st = path.stat()
    try:
        owner = pwd.getpwuid(st.st_uid).pw_name
    except KeyError:
        owner = str(st.st_uid)
    try:
        group = grp.getgrgid(st.st_gid).gr_name
    except KeyError:
        group = str(st.st_gid)
    return {"mode": f"{st.st_mode & 0o7777:04o}", "owner": owner, "group": group}


def fix_ownership(path: Path, desired: Dict[str, Any], observed: Dict[str, Any]) -> list:
    """Aplica mode/owner/group si difieren; devuelve los campos cambiados."""
    changed = []
    if desired.get("mode") and desired["mode"] != observed.get("mode"):
        os.chmod(path, int(desired["mode"], 8))
        changed.append("mode")
    owner = desired.get("owner") if desired.get("owner") != observed.get("owner") else None
    group = desired.get("group") if desired.get("group") != observed.get("group") else None
    if owner or group:
        shutil.chown(path, user=owner, group=group)
        changed.extend(k for k, v in (("owner", owner), ("group", group)) if v)
    return changed


class FileProvider(StateProvider):
    """Archivos regulares con escritura atómica"""

    resource_type = ResourceType.FILE

    def _path(self, resource: Resource) -> Path:
        return self.host_path(resource.get("path") or resource.title)

    def _content(self, resource: Resource) -> Optional[bytes]:
        content = resource.get("content")
        if content is None:
            return None
        return content.encode("utf-8") if isinstance(content, str) else bytes(content)

    def desired_state(self, resource: Resource) -> Dict[str, Any]:
        ensure = resource.get("ensure", "present")
        if ensure == "absent":
            return {"ensure": "absent"}
        desired: Dict[str, Any] = {"ensure": "present"}
        content = self._content(resource)
        if content is not None and resource.get("replace", True):
            desired["content_sha256"] = sha256(content)
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
            if not path.exists() and not path.is_symlink():
                return ObservedState({"ensure": "absent"})
            if path.is_dir():
                return ObservedState({"ensure": "directory"})
            observed = {"ensure": "present", "content_sha256": sha256(path.read_bytes())}
            observed.update(stat_ownership(path))
            return ObservedState(observed)
        except OSError as e:
            raise ProviderReadError(resource.id, f"no se pudo leer {path}: {e}") from e

    def _converge(self, resource: Resource, observed: ObservedState) -> str:
        path = self._path(resource)
        desired = self.desired_state(resource)
        current = observed.attributes

        if current.get("ensure") == "directory":
            raise ApplyError(resource.id, f"{path} es un directorio")

        if desired["ensure"] == "absent":
            if path.exists() or path.is_symlink():
                path.unlink()
                return f"eliminado {path}"
            return "ya ausente"

        actions = []
        exists = path.exists()
        content = self._content(resource)
        needs_write = not exists or (
            "content_sha256" in desired and desired["content_sha256"] != current.get("content_sha256")
        )
        if needs_write:
            mode = int(desired["mode"], 8) if "mode" in desired else (
                int(current["mode"], 8) if current.get("mode") else DEFAULT_FILE_MODE
            )
            self._atomic_write(resource, path, content or b"", mode)
            actions.append("contenido" if exists else "creado")
            current = stat_ownership(path)
        actions.extend(fix_ownership(path, desired, current))
        return f"{path}: {', '.join(actions) or 'sin cambios'}"

    def _atomic_write(self, resource: Resource, path: Path, data: bytes, mode: int) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                for start in range(0, len(data), CHUNK_SIZE):
                    self.check_interrupted(resource)
                    f.write(data[start:start + CHUNK_SIZE])
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp, mode)
            self.check_interrupted(resource)
            os.replace(tmp, path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
