"""
Providers: adaptadores read/apply por tipo de recurso.

Los providers importan desde core; el core nunca importa providers concretos.
"""

from functools import partial
from pathlib import Path
from typing import Dict, Optional

from converge.core.resources.models import ResourceType
from converge.providers.base import (
    DEFAULT_COMMAND_TIMEOUT,
    CommandResult,
    CommandRunner,
    ObservedState,
    StateProvider,
    run_command,
)
from converge.providers.directory import DirectoryProvider
from converge.providers.exec import ExecProvider
from converge.providers.file import FileProvider
from converge.providers.package import PackageProvider
from converge.providers.service import ServiceProvider


PROVIDER_CLASSES = {
    ResourceType.FILE: FileProvider,
    ResourceType.DIRECTORY: DirectoryProvider,
    ResourceType.SERVICE: ServiceProvider,
    ResourceType.PACKAGE: PackageProvider,
    ResourceType.EXEC: ExecProvider,
}


def build_registry(
    root: Path = Path("/"),
    runner: Optional[CommandRunner] = None,
    command_timeout: Optional[float] = None,
) -> Dict[ResourceType, StateProvider]:
    """Un provider por tipo, compartiendo root y runner.

    Sin runner explícito cada comando se corta a min(command_timeout,
    DEFAULT_COMMAND_TIMEOUT) segundos: un apply abandonado por timeout no
    sobrevive mucho más que el propio límite del apply.
    """
    if runner is None:
        timeout = min(command_timeout or DEFAULT_COMMAND_TIMEOUT, DEFAULT_COMMAND_TIMEOUT)
        runner = partial(run_command, timeout=timeout)
    return {rtype: cls(root=root, runner=runner) for rtype, cls in PROVIDER_CLASSES.items()}


__all__ = [
    "CommandResult",
    "CommandRunner",
    "ObservedState",
    "StateProvider",
    "run_command",
    "DEFAULT_COMMAND_TIMEOUT",
    "DirectoryProvider",
    "ExecProvider",
    "FileProvider",
    "PackageProvider",
    "ServiceProvider",
    "PROVIDER_CLASSES",
    "build_registry",
]
