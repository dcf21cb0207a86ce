"""
Ajustes de ejecución del motor de convergencia.

Se resuelven una sola vez al arrancar, con precedencia explícita:
argumento explícito > variable CONVERGE_* > default en código.
"""

from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from converge.core.errors import ConfigError
from converge.core.runtime.resolver import env_value


class RunSettings(BaseModel):
    """Ajustes de una pasada de convergencia."""
    workers: int = Field(1, description="Workers concurrentes (1 = secuencial en orden topológico)")
    apply_timeout: Optional[float] = Field(
        300.0,
        description=(
            "Segundos máximos por apply/refresh (None = sin límite). "
            "También acota cada comando externo, porque el hilo de un apply vencido no se puede matar"
        ),
    )
    root: Path = Field(Path("/"), description="Prefijo de filesystem (staging tipo chroot)")
    noop: bool = Field(False, description="Solo leer y comparar, nunca aplicar")

    @field_validator("workers")
    @classmethod
    def _positive_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("workers debe ser >= 1")
        return v

    @field_validator("apply_timeout")
    @classmethod
    def _positive_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            return None
        return v


def resolve_settings(explicit: Optional[Dict[str, Any]] = None) -> RunSettings:
    """
    Construye RunSettings aplicando la cadena de overrides.
    Los valores None en `explicit` se consideran "no indicados".
    """
    explicit = {k: v for k, v in (explicit or {}).items() if v is not None}
    values: Dict[str, Any] = {}
    for name in RunSettings.model_fields:
        if name in explicit:
            values[name] = explicit[name]
            continue
        from_env = env_value(name)
        if from_env is not None:
            values[name] = from_env
    try:
        return RunSettings(**values)
    except PydanticValidationError as e:
        raise ConfigError(f"Ajustes de ejecución inválidos: {e}") from e
