"""
Modelos del manifest declarativo (manifest.yaml de un perfil).
Usa Pydantic para validación y serialización.

Formato:
  parameters: [ {name, type, default, pattern, ...} ]
  derive:     [ {name, inputs, rules: [ {when, set} ]} ]
  resources:  [ {type, title, attributes, when, foreach, require, before, notify, subscribe} ]
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from converge.core.catalog.decisions import DecisionTable
from converge.core.catalog.parameters import ParameterSpec
from converge.core.resources.models import ResourceType


class ResourceDecl(BaseModel):
    """Declaración de recurso (antes de resolver parámetros)"""
    type: ResourceType
    title: str = Field(..., description="Título; admite plantilla inline (p. ej. '{{ item }}')")
    attributes: Dict[str, Any] = Field(default_factory=dict)
    when: Dict[str, Any] = Field(default_factory=dict, description="Incluir solo si todas las variables coinciden")
    foreach: Optional[str] = Field(None, description="Variable lista: un recurso por elemento (`item`)")
    require: List[str] = Field(default_factory=list)
    before: List[str] = Field(default_factory=list)
    notify: List[str] = Field(default_factory=list)
    subscribe: List[str] = Field(default_factory=list)

    @field_validator("require", "before", "notify", "subscribe", mode="before")
    @classmethod
    def _as_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class Manifest(BaseModel):
    """Manifest completo de un perfil"""
    version: int = Field(1, description="Versión del esquema")
    description: Optional[str] = None
    parameters: List[ParameterSpec] = Field(default_factory=list)
    derive: List[DecisionTable] = Field(default_factory=list)
    resources: List[ResourceDecl] = Field(default_factory=list)

    @field_validator("parameters")
    @classmethod
    def _unique_parameters(cls, v: List[ParameterSpec]) -> List[ParameterSpec]:
        seen = set()
        for spec in v:
            if spec.name in seen:
                raise ValueError(f"Parámetro declarado dos veces: {spec.name}")
            seen.add(spec.name)
        return v
