"""
Errores de converge.

El core solo define y lanza excepciones; la CLI se encarga del formato de salida.
Todos los errores llevan el recurso (o parámetro) afectado para el diagnóstico.
"""

from typing import List, Optional, Sequence, Tuple


class ConvergeError(Exception):
    """Error base de converge."""
    pass


class ConfigError(ConvergeError):
    """Error de configuración (manifest o payload faltante, formato inválido, tabla de decisión incompleta)."""
    pass


# --- Errores de compilación: abortan la ejecución antes de tocar el sistema ---

class CompileError(ConvergeError):
    """Base de los errores de compilación del catálogo."""
    pass


class ValidationError(CompileError):
    """Uno o más parámetros no pasan la validación de tipo/patrón."""

    def __init__(self, problems: Sequence[Tuple[str, str]]):
        self.problems: List[Tuple[str, str]] = list(problems)
        lines = [f"{name}: {msg}" for name, msg in self.problems]
        super().__init__("Parámetros inválidos:\n  " + "\n  ".join(lines))

    @property
    def parameters(self) -> List[str]:
        return [name for name, _ in self.problems]


class TemplateError(CompileError):
    """Fallo al renderizar una plantilla (variable no definida, plantilla inexistente)."""

    def __init__(self, template: str, variable: Optional[str] = None, detail: Optional[str] = None):
        self.template = template
        self.variable = variable
        if variable:
            msg = f"Variable '{variable}' no definida en la plantilla '{template}'"
        else:
            msg = f"Error en la plantilla '{template}'"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class GraphError(CompileError):
    """Ciclo, recurso duplicado o referencia a un recurso inexistente."""

    def __init__(self, message: str, cycle: Optional[Sequence[str]] = None, resource: Optional[str] = None):
        self.cycle: List[str] = list(cycle or [])
        self.resource = resource
        if self.cycle:
            message = f"{message}: {' -> '.join(self.cycle + [self.cycle[0]])}"
        super().__init__(message)


# --- Errores de ejecución: acotados al recurso, la ejecución continúa ---

class ProviderError(ConvergeError):
    """Error delegado desde un provider (file, service, package, exec...)."""

    def __init__(self, resource_id: str, message: str):
        self.resource_id = resource_id
        super().__init__(f"{resource_id}: {message}")


class ProviderReadError(ProviderError):
    """No se pudo leer el estado real; el recurso queda en estado desconocido."""
    pass


class ApplyError(ProviderError):
    """La transición al estado deseado falló."""
    pass


class ApplyTimeoutError(ProviderError, TimeoutError):
    """La aplicación superó el tiempo máximo permitido."""

    def __init__(self, resource_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(resource_id, f"superado el tiempo máximo de {timeout:g}s")
