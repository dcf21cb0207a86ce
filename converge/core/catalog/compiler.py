"""
Compilador de catálogo: payload (parámetros + plantillas) → Catalog.

Función pura de sus entradas: no lee disco ni el entorno del proceso.
Los errores de compilación (ValidationError, TemplateError, GraphError,
ConfigError) abortan antes de cualquier cambio en el sistema.
"""

import re
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from converge.core.catalog.catalog import Catalog
from converge.core.catalog.decisions import input_domains
from converge.core.catalog.manifest import Manifest, ResourceDecl
from converge.core.catalog.parameters import ParameterSet
from converge.core.catalog.templates import TemplateRenderer
from converge.core.errors import ConfigError, GraphError
from converge.core.graph.dependency import DependencyGraph
from converge.core.resources.models import EdgeKind, Resource, parse_ref, resource_id


# "{{ nombre }}" a secas: se sustituye por el valor tipado, no por su str()
_PLAIN_VAR_RE = re.compile(r"^\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}$")


class CatalogCompiler:
    """Compila un Manifest con un Parameter Set ya resuelto"""

    def __init__(self, manifest: Manifest, templates: Optional[Mapping[str, str]] = None):
        self.manifest = manifest
        self.renderer = TemplateRenderer(templates)

    def compile(self, parameters: Union[ParameterSet, Mapping[str, Any]]) -> Catalog:
        """
        Compila el catálogo.

        Args:
            parameters: ParameterSet resuelto, o mapping de valores explícitos
                (se resuelve sin consultar el entorno del proceso)

        Returns:
            Catalog con recursos, aristas y valores derivados

        Raises:
            ValidationError, TemplateError, GraphError, ConfigError
        """
        if not isinstance(parameters, ParameterSet):
            parameters = ParameterSet.resolve(self.manifest.parameters, parameters, environ={})

        variables = parameters.as_dict()
        derived = self._derive(parameters, variables)

        resources: List[Resource] = []
        pending_edges: List[Tuple[str, str, EdgeKind]] = []
        for decl in self.manifest.resources:
            if not _matches(decl.when, variables):
                continue
            for scope in self._scopes(decl, variables):
                resource, edges = self._expand(decl, scope)
                resources.append(resource)
                pending_edges.extend(edges)

        graph = DependencyGraph()
        for resource in resources:
            graph.add_resource(resource.id)
        for source, target, kind in pending_edges:
            graph.add_edge(source, target, kind)

        return Catalog(resources, graph, parameters=parameters.as_dict(), derived=derived)

    # --- Derivaciones ---

    def _derive(self, parameters: ParameterSet, variables: Dict[str, Any]) -> Dict[str, Any]:
        domains = input_domains(parameters.specs)
        derived: Dict[str, Any] = {}
        for table in self.manifest.derive:
            table.check(domains)
            rule = table.select(variables)
            for key, raw in rule.set.items():
                if key in parameters.specs:
                    raise ConfigError(f"Tabla '{table.name}': '{key}' ya es un parámetro")
                value = self._render_value(raw, variables, f"derive:{table.name}.{key}")
                variables[key] = value
                derived[key] = value
        return derived

    # --- Recursos ---

    def _scopes(self, decl: ResourceDecl, variables: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not decl.foreach:
            return [variables]
        items = variables.get(decl.foreach)
        if not isinstance(items, list):
            raise ConfigError(f"foreach '{decl.foreach}' en {decl.type.value}[{decl.title}] no es una lista")
        return [{**variables, "item": item} for item in items]

    def _expand(self, decl: ResourceDecl, scope: Dict[str, Any]):
        kind = decl.type.value
        title = str(self._render_value(decl.title, scope, f"{kind}[{decl.title}].title"))
        rid = resource_id(kind, title)

        attributes: Dict[str, Any] = {}
        for name, raw in decl.attributes.items():
            attributes[name] = self._render_value(raw, scope, f"{rid}.{name}")

        template = attributes.pop("template", None)
        if template:
            attributes["content"] = self.renderer.render(str(template), {**scope, "resource": attributes})

        edges: List[Tuple[str, str, EdgeKind]] = []
        for field_name, kind_, outgoing in (
            ("before", EdgeKind.BEFORE, True),
            ("require", EdgeKind.BEFORE, False),
            ("notify", EdgeKind.NOTIFY, True),
            ("subscribe", EdgeKind.NOTIFY, False),
        ):
            for ref in getattr(decl, field_name):
                other = self._ref(ref, scope, rid)
                edges.append((rid, other, kind_) if outgoing else (other, rid, kind_))

        return Resource(decl.type, title, attributes), edges

    def _ref(self, ref: str, scope: Dict[str, Any], origin: str) -> str:
        rendered = str(self._render_value(ref, scope, f"{origin}.ref"))
        try:
            type_, title = parse_ref(rendered)
        except ValueError as e:
            raise GraphError(str(e), resource=origin) from e
        return resource_id(type_, title)

    def _render_value(self, value: Any, scope: Mapping[str, Any], origin: str) -> Any:
        if isinstance(value, str):
            m = _PLAIN_VAR_RE.match(value.strip())
            if m and m.group(1) in scope:
                return scope[m.group(1)]
            return self.renderer.render_string(value, scope, origin)
        if isinstance(value, list):
            return [self._render_value(v, scope, origin) for v in value]
        if isinstance(value, dict):
            return {k: self._render_value(v, scope, f"{origin}.{k}") for k, v in value.items()}
        return value


def _matches(conditions: Mapping[str, Any], variables: Mapping[str, Any]) -> bool:
    return all(variables.get(k) == v for k, v in conditions.items())


def compile_catalog(
    manifest: Manifest,
    parameters: Union[ParameterSet, Mapping[str, Any]],
    templates: Optional[Mapping[str, str]] = None,
) -> Catalog:
    """Atajo: compile(parameterSet, templates) sobre un manifest."""
    return CatalogCompiler(manifest, templates).compile(parameters)
