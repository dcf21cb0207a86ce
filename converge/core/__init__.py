"""
Core: lógica de convergencia.

ENFORCEMENT (arquitectura limpia):
- Este paquete NO debe importar: converge.cli ni converge.providers (implementaciones).
- Permitido: typing, pathlib.Path, pydantic, jinja2, rich (solo Console para progreso), yaml, converge.core.*.
- Los providers y la CLI importan desde core; nunca al revés.
"""

from converge.core.errors import (
    ApplyError,
    ApplyTimeoutError,
    CompileError,
    ConfigError,
    ConvergeError,
    GraphError,
    ProviderError,
    ProviderReadError,
    TemplateError,
    ValidationError,
)

__all__ = [
    "ApplyError",
    "ApplyTimeoutError",
    "CompileError",
    "ConfigError",
    "ConvergeError",
    "GraphError",
    "ProviderError",
    "ProviderReadError",
    "TemplateError",
    "ValidationError",
]
