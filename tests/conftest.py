# tests/conftest.py
import threading
import time

import pytest

from converge.core.catalog import Catalog, Manifest, ProfileLoader, compile_catalog
from converge.core.errors import ApplyError, ProviderReadError
from converge.core.resources import Resource, ResourceType
from converge.core.runtime import profile_root
from converge.providers import CommandResult, ObservedState, StateProvider


OK = CommandResult(True, "", 0)


class FakeRunner:
    """Runner de comandos que registra las llamadas y responde por prefijo."""

    def __init__(self, responses=None, default=OK):
        self.responses = dict(responses or {})
        self.default = default
        self.calls = []

    def __call__(self, cmd):
        self.calls.append(list(cmd))
        line = " ".join(cmd)
        for prefix, result in self.responses.items():
            if line.startswith(prefix):
                return result
        return self.default

    def ran(self, line):
        return any(" ".join(c) == line for c in self.calls)


class MemoryProvider(StateProvider):
    """Provider en memoria: el estado real es un dict por recurso."""

    resource_type = ResourceType.FILE

    def __init__(self, supports_refresh=True):
        super().__init__()
        self.supports_refresh = supports_refresh
        self.state = {}
        self.fail_on = set()
        self.read_fail = set()
        self.block = set()
        self.delay = 0.0
        self.on_converge = None
        self.applied = []
        self.refreshes = []
        self.running = 0
        self.max_running = 0
        self._counter = threading.Lock()
        self._released = threading.Event()

    def desired_state(self, resource):
        return {"value": resource.get("value", "set")}

    def read(self, resource):
        if resource.id in self.read_fail:
            raise ProviderReadError(resource.id, "backend caído")
        return ObservedState(dict(self.state.get(resource.id, {})))

    def _converge(self, resource, observed):
        with self._counter:
            self.running += 1
            self.max_running = max(self.max_running, self.running)
        try:
            if self.on_converge:
                self.on_converge(resource)
            if self.delay:
                time.sleep(self.delay)
            if resource.id in self.block:
                self._released.wait(5)
                self.check_interrupted(resource)
            if resource.id in self.fail_on:
                raise ApplyError(resource.id, "fallo simulado")
            self.state[resource.id] = self.desired_state(resource)
            self.applied.append(resource.id)
            return "valor fijado"
        finally:
            with self._counter:
                self.running -= 1

    def refresh(self, resource):
        self.refreshes.append(resource.id)
        return "refrescado"

    def interrupt(self, resource):
        super().interrupt(resource)
        self._released.set()


def make_manifest(resources=None, parameters=None, derive=None):
    """Manifest mínimo a partir de dicts (como vendrían del YAML)."""
    return Manifest(parameters=parameters or [], derive=derive or [], resources=resources or [])


def make_catalog(resources, parameters=None, payload=None, templates=None) -> Catalog:
    return compile_catalog(make_manifest(resources, parameters), payload or {}, templates)


@pytest.fixture
def runner():
    """Runner falso: todos los comandos terminan bien salvo que se configure."""
    return FakeRunner()


@pytest.fixture
def memory_provider():
    return MemoryProvider()


@pytest.fixture
def memory_registry(memory_provider):
    """El mismo provider en memoria para todos los tipos de recurso."""
    return {rtype: memory_provider for rtype in ResourceType}


@pytest.fixture
def master_profile():
    """Loader del perfil incluido 'master'."""
    return ProfileLoader(profile_root("master"))


@pytest.fixture
def staging_root(tmp_path):
    """Root de filesystem aislado para los providers."""
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def file_resource():
    def _make(path, **attributes):
        return Resource(ResourceType.FILE, path, attributes)
    return _make
