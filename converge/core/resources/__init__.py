"""
Resources: modelo de recursos y aristas del catálogo.
"""

from converge.core.resources.models import (
    Edge,
    EdgeKind,
    Resource,
    ResourceType,
    parse_ref,
    resource_id,
    thaw,
)

__all__ = ["Edge", "EdgeKind", "Resource", "ResourceType", "parse_ref", "resource_id", "thaw"]
