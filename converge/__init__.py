"""
converge - motor de convergencia declarativa.

Compila un perfil (parámetros + manifest + plantillas) a un catálogo de
recursos y lo aplica de forma idempotente en orden de dependencias.
"""

__version__ = "1.0.0"
