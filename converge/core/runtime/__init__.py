"""
Runtime: ajustes de ejecución y resolución de rutas.

No hay estado persistente entre ejecuciones; los providers leen el sistema vivo.
"""

from converge.core.runtime.resolver import profile_root, env_value
from converge.core.runtime.settings import RunSettings, resolve_settings

__all__ = ["profile_root", "env_value", "RunSettings", "resolve_settings"]
