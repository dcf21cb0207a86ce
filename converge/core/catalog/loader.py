"""
Loader del sistema declarativo.
Carga manifest.yaml, plantillas y payload YAML y los convierte a modelos Pydantic.

Es la única pieza del compilador que toca disco; compile() recibe todo ya cargado.
"""

from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from converge.core.catalog.manifest import Manifest
from converge.core.errors import ConfigError


TEMPLATE_SUFFIX = ".j2"


def _read_yaml(path: Path) -> Any:
    if not path.exists():
        raise ConfigError(f"Archivo no encontrado: {path}")
    try:
        with open(path, "r") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML inválido en {path}: {e}") from e


def load_manifest(path: Path) -> Manifest:
    """Carga y valida un manifest.yaml"""
    data = _read_yaml(path) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: el manifest debe ser un mapping")
    try:
        return Manifest(**data)
    except PydanticValidationError as e:
        raise ConfigError(f"Manifest inválido ({path}): {e}") from e


def load_templates(directory: Path) -> Dict[str, str]:
    """
    Carga todas las plantillas *.j2 de un directorio (recursivo).
    El nombre de la plantilla es la ruta relativa sin el sufijo .j2.
    """
    templates: Dict[str, str] = {}
    if not directory.exists():
        return templates
    for f in sorted(directory.rglob(f"*{TEMPLATE_SUFFIX}")):
        name = f.relative_to(directory).as_posix()[: -len(TEMPLATE_SUFFIX)]
        templates[name] = f.read_text()
    return templates


def load_payload(path: Optional[Path]) -> Dict[str, Any]:
    """Carga el payload (parámetro → valor) desde YAML; sin ruta, payload vacío."""
    if path is None:
        return {}
    data = _read_yaml(path) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: el payload debe ser un mapping parámetro → valor")
    return data


def parse_overrides(pairs: Iterable[str]) -> Dict[str, str]:
    """Convierte flags --set nombre=valor en un dict (valores como string)."""
    out: Dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ConfigError(f"Override inválido '{pair}' (se espera nombre=valor)")
        name, value = pair.split("=", 1)
        out[name.strip()] = value
    return out


class ProfileLoader:
    """Carga un perfil completo: manifest + plantillas"""

    def __init__(self, profile_dir: Path):
        self.profile_dir = profile_dir
        self._manifest: Optional[Manifest] = None
        self._templates: Optional[Dict[str, str]] = None

    @property
    def manifest(self) -> Manifest:
        if self._manifest is None:
            self._manifest = load_manifest(self.profile_dir / "manifest.yaml")
        return self._manifest

    @property
    def templates(self) -> Dict[str, str]:
        if self._templates is None:
            self._templates = load_templates(self.profile_dir / "templates")
        return self._templates

    def merged_payload(self, payload_file: Optional[Path], overrides: Mapping[str, Any]) -> Dict[str, Any]:
        """Payload del archivo con los --set encima (los flags ganan)."""
        payload = load_payload(payload_file)
        payload.update(overrides)
        return payload
