"""
Parameter Set: declaraciones tipadas de parámetros y su resolución.

Cada parámetro se resuelve exactamente a un valor con precedencia explícita:
valor explícito > variable de entorno (env declarada o CONVERGE_PARAM_<NAME>)
> default declarado. La validación acumula TODOS los errores antes de fallar.
"""

import os
import re
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, model_validator

from converge.core.errors import ValidationError


class ParameterType(str, Enum):
    """Tipos de parámetro"""
    BOOLEAN = "boolean"
    STRING = "string"
    PATH = "path"
    INTEGER = "integer"
    ENUM = "enum"
    LIST = "list"
    MAP = "map"


_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


class ParameterSpec(BaseModel):
    """Declaración de un parámetro del payload"""
    name: str = Field(..., description="Nombre del parámetro")
    type: ParameterType = Field(ParameterType.STRING, description="Tipo declarado")
    default: Any = Field(None, description="Valor por defecto (None = sin default)")
    required: bool = Field(False, description="Falla si no se resuelve a ningún valor")
    pattern: Optional[str] = Field(None, description="Regex que debe cumplir el valor completo")
    choices: Optional[List[Any]] = Field(None, description="Valores permitidos (tipo enum)")
    env: Optional[str] = Field(None, description="Variable de entorno que aporta el default")
    description: Optional[str] = None

    @model_validator(mode="after")
    def _check_declaration(self):
        if self.type == ParameterType.ENUM and not self.choices:
            raise ValueError(f"El parámetro enum '{self.name}' necesita 'choices'")
        if self.pattern:
            re.compile(self.pattern)
        return self

    @property
    def env_name(self) -> str:
        return self.env or f"CONVERGE_PARAM_{self.name.upper()}"


def coerce(spec: ParameterSpec, value: Any) -> Any:
    """
    Convierte `value` al tipo declarado. Los strings (CLI, entorno) se interpretan;
    lanza ValueError con un mensaje legible si no es posible.
    """
    t = spec.type
    if t == ParameterType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
            return value.strip().lower() in _TRUE
        raise ValueError(f"se esperaba boolean, recibido {value!r}")
    if t == ParameterType.INTEGER:
        if isinstance(value, bool):
            raise ValueError(f"se esperaba integer, recibido {value!r}")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and re.fullmatch(r"[+-]?\d+", value.strip()):
            return int(value.strip())
        raise ValueError(f"se esperaba integer, recibido {value!r}")
    if t in (ParameterType.STRING, ParameterType.PATH):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str):
            raise ValueError(f"se esperaba {t.value}, recibido {value!r}")
        if t == ParameterType.PATH:
            if not value.startswith("/"):
                raise ValueError(f"la ruta debe ser absoluta: {value!r}")
            value = value.rstrip("/") or "/"
        return value
    if t == ParameterType.ENUM:
        if value not in spec.choices:
            raise ValueError(f"debe ser uno de {spec.choices}, recibido {value!r}")
        return value
    if t == ParameterType.LIST:
        if isinstance(value, str):
            text = value.strip()
            if text.startswith("["):
                value = yaml.safe_load(text)
            else:
                value = [item.strip() for item in text.split(",") if item.strip()]
        if isinstance(value, tuple):
            value = list(value)
        if not isinstance(value, list):
            raise ValueError(f"se esperaba list, recibido {value!r}")
        return value
    if t == ParameterType.MAP:
        if isinstance(value, str):
            value = yaml.safe_load(value)
        if not isinstance(value, dict):
            raise ValueError(f"se esperaba map, recibido {value!r}")
        return value
    raise ValueError(f"tipo desconocido {t}")


class ParameterSet:
    """Conjunto de declaraciones + valores resueltos"""

    def __init__(self, specs: List[ParameterSpec], values: Dict[str, Any], sources: Dict[str, str]):
        self.specs = {s.name: s for s in specs}
        self.values = values
        self.sources = sources  # name -> explicit | env | default

    def __getitem__(self, name: str) -> Any:
        return self.values[name]

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.values)

    @classmethod
    def resolve(
        cls,
        specs: List[ParameterSpec],
        explicit: Optional[Mapping[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ParameterSet":
        """
        Resuelve y valida todos los parámetros.

        Args:
            specs: Declaraciones (orden de declaración conservado)
            explicit: Valores explícitos (payload YAML, --set)
            environ: Entorno a consultar (por defecto os.environ)

        Raises:
            ValidationError: con todos los parámetros problemáticos
        """
        explicit = dict(explicit or {})
        environ = os.environ if environ is None else environ
        problems: List[Tuple[str, str]] = []
        values: Dict[str, Any] = {}
        sources: Dict[str, str] = {}
        known = {s.name for s in specs}

        for name in explicit:
            if name not in known:
                problems.append((name, "parámetro no declarado"))

        for spec in specs:
            if spec.name in explicit:
                raw, source = explicit[spec.name], "explicit"
            elif environ.get(spec.env_name, "").strip():
                raw, source = environ[spec.env_name].strip(), "env"
            elif spec.default is not None:
                raw, source = spec.default, "default"
            else:
                if spec.required:
                    problems.append((spec.name, "parámetro requerido sin valor"))
                else:
                    values[spec.name], sources[spec.name] = None, "unset"
                continue

            try:
                value = coerce(spec, raw)
            except (ValueError, yaml.YAMLError) as e:
                problems.append((spec.name, str(e)))
                continue
            if spec.pattern and not re.fullmatch(spec.pattern, str(value)):
                problems.append((spec.name, f"{value!r} no cumple el patrón {spec.pattern}"))
                continue
            values[spec.name], sources[spec.name] = value, source

        if problems:
            raise ValidationError(problems)
        return cls(specs, values, sources)
