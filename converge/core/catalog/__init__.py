"""
Catalog: parámetros, tablas de decisión, plantillas y compilación a catálogo.

Lógica pura salvo loader.py (lectura de manifest/plantillas/payload).
"""

from converge.core.catalog.catalog import Catalog
from converge.core.catalog.compiler import CatalogCompiler, compile_catalog
from converge.core.catalog.decisions import DecisionRule, DecisionTable
from converge.core.catalog.loader import ProfileLoader, load_manifest, load_payload, load_templates, parse_overrides
from converge.core.catalog.manifest import Manifest, ResourceDecl
from converge.core.catalog.parameters import ParameterSet, ParameterSpec, ParameterType
from converge.core.catalog.templates import TemplateRenderer

__all__ = [
    "Catalog",
    "CatalogCompiler",
    "compile_catalog",
    "DecisionRule",
    "DecisionTable",
    "ProfileLoader",
    "load_manifest",
    "load_payload",
    "load_templates",
    "parse_overrides",
    "Manifest",
    "ResourceDecl",
    "ParameterSet",
    "ParameterSpec",
    "ParameterType",
    "TemplateRenderer",
]
