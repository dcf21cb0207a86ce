"""
Renderizado de plantillas con Jinja2 en modo estricto.

Contrato: render(template_id, variables) -> texto; cualquier variable no
definida es un TemplateError que nombra la variable y la plantilla.
Sin acceso a disco: las plantillas llegan ya cargadas como {nombre: texto}.
"""

import re
from typing import Any, Dict, Mapping, Optional

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError

from converge.core.errors import TemplateError


_UNDEFINED_RE = re.compile(r"'([^']+)' is undefined")
_ATTR_RE = re.compile(r"has no attribute '([^']+)'")


def _undefined_name(error: UndefinedError) -> Optional[str]:
    text = str(error)
    m = _UNDEFINED_RE.search(text) or _ATTR_RE.search(text)
    return m.group(1) if m else None


def _to_yaml_list(value) -> str:
    """Filtro: lista como array inline ["a", "b"] (formato HOCON/JSON)."""
    return "[" + ", ".join(f'"{v}"' for v in value) + "]"


class TemplateRenderer:
    """Renderiza plantillas con nombre y plantillas inline (atributos)"""

    def __init__(self, templates: Optional[Mapping[str, str]] = None):
        self.templates: Dict[str, str] = dict(templates or {})
        self._env = Environment(
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["quoted_list"] = _to_yaml_list
        self._compiled: Dict[str, Any] = {}

    def render(self, template_id: str, variables: Mapping[str, Any]) -> str:
        """Renderiza la plantilla registrada `template_id`."""
        if template_id not in self.templates:
            raise TemplateError(template_id, detail="plantilla no encontrada")
        return self._render(template_id, self.templates[template_id], variables)

    def render_string(self, text: str, variables: Mapping[str, Any], origin: str) -> str:
        """Renderiza un string inline; `origin` identifica el atributo en los errores."""
        if "{{" not in text and "{%" not in text:
            return text
        return self._render(origin, text, variables)

    def _render(self, name: str, text: str, variables: Mapping[str, Any]) -> str:
        try:
            template = self._compiled.get(name)
            if template is None or template[0] != text:
                template = (text, self._env.from_string(text))
                self._compiled[name] = template
            return template[1].render(**variables)
        except UndefinedError as e:
            raise TemplateError(name, variable=_undefined_name(e)) from e
        except TemplateSyntaxError as e:
            raise TemplateError(name, detail=f"sintaxis inválida (línea {e.lineno}): {e.message}") from e
