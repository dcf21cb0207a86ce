"""
Tablas de decisión para derivaciones condicionales.

Sustituyen a las cadenas de if/else con precedencia implícita: cada tabla
declara sus entradas (boolean/enum) y una lista ordenada de reglas
`when → set`. Gana la primera regla que coincide.

Antes de usarlas se comprueba que cada tabla es:
- total: toda combinación de valores de entrada coincide con alguna regla
- completa: todas las reglas fijan exactamente las mismas claves
"""

import itertools
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from converge.core.errors import ConfigError
from converge.core.catalog.parameters import ParameterSpec, ParameterType


class DecisionRule(BaseModel):
    """Regla: si todas las entradas de `when` coinciden, fija los valores de `set`"""
    when: Dict[str, Any] = Field(default_factory=dict, description="Entrada → valor esperado (vacío = siempre)")
    set: Dict[str, Any] = Field(..., description="Valores derivados (strings renderizables)")

    def matches(self, values: Mapping[str, Any]) -> bool:
        return all(values.get(k) == v for k, v in self.when.items())


class DecisionTable(BaseModel):
    """Tabla de decisión con nombre"""
    name: str
    inputs: List[str] = Field(default_factory=list)
    rules: List[DecisionRule] = Field(..., min_length=1)
    description: Optional[str] = None

    @property
    def outputs(self) -> List[str]:
        return list(self.rules[0].set.keys())

    def select(self, values: Mapping[str, Any]) -> DecisionRule:
        for rule in self.rules:
            if rule.matches(values):
                return rule
        combo = {k: values.get(k) for k in self.inputs}
        raise ConfigError(f"Tabla '{self.name}': ninguna regla cubre {combo}")

    def check(self, domains: Mapping[str, Sequence[Any]]) -> None:
        """
        Verifica totalidad y completitud.

        Args:
            domains: Valores posibles de cada entrada

        Raises:
            ConfigError: entrada sin dominio finito, combinación no cubierta o reglas incompletas
        """
        keys = set(self.rules[0].set)
        for i, rule in enumerate(self.rules):
            unknown = set(rule.when) - set(self.inputs)
            if unknown:
                raise ConfigError(f"Tabla '{self.name}', regla {i}: 'when' usa entradas no declaradas {sorted(unknown)}")
            if set(rule.set) != keys:
                raise ConfigError(
                    f"Tabla '{self.name}', regla {i}: fija {sorted(rule.set)} pero se esperaba {sorted(keys)}"
                )
        for name in self.inputs:
            if name not in domains:
                raise ConfigError(f"Tabla '{self.name}': la entrada '{name}' no es boolean ni enum")
        for combo in itertools.product(*(domains[n] for n in self.inputs)):
            values = dict(zip(self.inputs, combo))
            if not any(rule.matches(values) for rule in self.rules):
                raise ConfigError(f"Tabla '{self.name}' no es total: ninguna regla cubre {values}")


def input_domains(specs: Mapping[str, ParameterSpec]) -> Dict[str, List[Any]]:
    """Dominio finito de cada parámetro boolean/enum."""
    domains: Dict[str, List[Any]] = {}
    for name, spec in specs.items():
        if spec.type == ParameterType.BOOLEAN:
            domains[name] = [True, False]
        elif spec.type == ParameterType.ENUM:
            domains[name] = list(spec.choices or [])
    return domains
