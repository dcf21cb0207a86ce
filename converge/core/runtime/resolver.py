"""
Resolución de rutas del runtime.

- profile_root(): directorio del perfil (manifest.yaml + templates/).
- env_value(): lectura de variables CONVERGE_* (fuente intermedia de la cadena
  explícito > entorno > default).

El core NO escribe en disco; solo expone rutas y valores.
"""

import os
from pathlib import Path
from typing import Optional


ENV_PREFIX = "CONVERGE_"

# Perfil incluido en el paquete: master de gestión de configuración
BUILTIN_PROFILES = Path(__file__).resolve().parents[2] / "profiles"
DEFAULT_PROFILE = "master"


def env_value(name: str) -> Optional[str]:
    """Devuelve CONVERGE_<NAME> si está definida y no vacía."""
    value = os.environ.get(f"{ENV_PREFIX}{name.upper()}", "").strip()
    return value or None


def profile_root(profile: Optional[str] = None) -> Path:
    """
    Directorio de un perfil.
    Resolución: argumento (nombre incluido o ruta) → CONVERGE_PROFILE → perfil 'master'.
    """
    name = profile or env_value("profile") or DEFAULT_PROFILE
    candidate = Path(name).expanduser()
    if candidate.is_dir():
        return candidate.resolve()
    return BUILTIN_PROFILES / name
