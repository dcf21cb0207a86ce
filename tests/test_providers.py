# tests/test_providers.py
import stat

import pytest

from converge.core.engine import Outcome
from converge.core.errors import ApplyError, ProviderReadError
from converge.core.resources import Resource, ResourceType
from converge.providers import (
    DEFAULT_COMMAND_TIMEOUT,
    CommandResult,
    DirectoryProvider,
    ExecProvider,
    FileProvider,
    PackageProvider,
    ServiceProvider,
    build_registry,
)
from converge.providers.file import CHUNK_SIZE, normalize_mode

from conftest import FakeRunner


# --- file ---

def test_file_create_then_idempotent(staging_root, file_resource):
    provider = FileProvider(root=staging_root)
    resource = file_resource("/etc/app/app.conf", content="port=8140\n", mode="0640")
    target = staging_root / "etc/app/app.conf"

    record = provider.apply(resource, provider.read(resource))
    assert record.outcome == Outcome.CHANGED
    assert target.read_text() == "port=8140\n"
    assert stat.S_IMODE(target.stat().st_mode) == 0o640

    observed = provider.read(resource)
    assert provider.in_sync(resource, observed)
    assert provider.apply(resource, observed).outcome == Outcome.UNCHANGED
    # sin temporales olvidados
    assert [p.name for p in target.parent.iterdir()] == ["app.conf"]


def test_file_content_replaced(staging_root, file_resource):
    provider = FileProvider(root=staging_root)
    target = staging_root / "etc/app.conf"
    target.parent.mkdir(parents=True)
    target.write_text("old\n")
    resource = file_resource("/etc/app.conf", content="new\n")

    assert not provider.in_sync(resource, provider.read(resource))
    provider.apply(resource, provider.read(resource))
    assert target.read_text() == "new\n"


def test_file_replace_false_keeps_content(staging_root, file_resource):
    provider = FileProvider(root=staging_root)
    target = staging_root / "ssl/ca.pem"
    target.parent.mkdir(parents=True)
    target.write_text("generated elsewhere\n")
    resource = file_resource("/ssl/ca.pem", content="placeholder\n", replace=False)

    assert provider.in_sync(resource, provider.read(resource))


def test_interrupted_write_leaves_no_trace(staging_root, file_resource):
    """Una escritura interrumpida no deja ni el destino ni el temporal."""
    provider = FileProvider(root=staging_root)
    resource = file_resource("/etc/big.conf", content="x" * (CHUNK_SIZE * 3))
    observed = provider.read(resource)

    provider.interrupt(resource)
    with pytest.raises(ApplyError, match="interrumpida"):
        provider._converge(resource, observed)

    assert not (staging_root / "etc/big.conf").exists()
    assert list((staging_root / "etc").iterdir()) == []


def test_interrupt_keeps_previous_content(staging_root, file_resource):
    provider = FileProvider(root=staging_root)
    target = staging_root / "etc/app.conf"
    target.parent.mkdir(parents=True)
    target.write_text("previous\n")
    resource = file_resource("/etc/app.conf", content="y" * (CHUNK_SIZE * 2))
    observed = provider.read(resource)

    provider.interrupt(resource)
    with pytest.raises(ApplyError):
        provider._converge(resource, observed)
    assert target.read_text() == "previous\n"


def test_file_absent(staging_root, file_resource):
    provider = FileProvider(root=staging_root)
    target = staging_root / "tmp/old.conf"
    target.parent.mkdir(parents=True)
    target.write_text("bye")
    resource = file_resource("/tmp/old.conf", ensure="absent")

    provider.apply(resource, provider.read(resource))
    assert not target.exists()
    assert provider.in_sync(resource, provider.read(resource))


def test_file_over_directory_fails(staging_root, file_resource):
    provider = FileProvider(root=staging_root)
    (staging_root / "etc/conf.d").mkdir(parents=True)
    resource = file_resource("/etc/conf.d", content="x")

    with pytest.raises(ApplyError, match="directorio"):
        provider.apply(resource, provider.read(resource))


@pytest.mark.parametrize("raw, expected", [("644", "0644"), ("0750", "0750"), (0o600, "0600"), (None, None)])
def test_normalize_mode(raw, expected):
    assert normalize_mode(raw) == expected


# --- directory ---

def test_directory_create_and_remove(staging_root):
    provider = DirectoryProvider(root=staging_root)
    resource = Resource(ResourceType.DIRECTORY, "/etc/puppetlabs/code/environments", {"mode": "0755"})
    target = staging_root / "etc/puppetlabs/code/environments"

    assert provider.apply(resource, provider.read(resource)).outcome == Outcome.CHANGED
    assert target.is_dir()
    assert provider.in_sync(resource, provider.read(resource))

    absent = Resource(ResourceType.DIRECTORY, "/etc/puppetlabs/code/environments", {"ensure": "absent"})
    provider.apply(absent, provider.read(absent))
    assert not target.exists()


def test_directory_not_empty_is_not_removed(staging_root):
    provider = DirectoryProvider(root=staging_root)
    (staging_root / "data").mkdir()
    (staging_root / "data/keep").write_text("x")
    resource = Resource(ResourceType.DIRECTORY, "/data", {"ensure": "absent"})

    with pytest.raises(ApplyError):
        provider.apply(resource, provider.read(resource))
    assert (staging_root / "data/keep").exists()


# --- service ---

def test_service_starts_stopped_unit():
    runner = FakeRunner({
        "systemctl is-active puppetserver": CommandResult(False, "inactive", 3),
        "systemctl is-enabled puppetserver": CommandResult(True, "enabled", 0),
    })
    provider = ServiceProvider(runner=runner)
    resource = Resource(ResourceType.SERVICE, "puppetserver", {"ensure": "running", "enable": True})

    observed = provider.read(resource)
    assert observed.attributes == {"ensure": "stopped", "enable": True}

    record = provider.apply(resource, observed)
    assert record.changed
    assert runner.ran("systemctl start puppetserver")
    assert not runner.ran("systemctl enable puppetserver")


def test_service_refresh_restarts(runner):
    provider = ServiceProvider(runner=runner)
    resource = Resource(ResourceType.SERVICE, "puppetserver", {"ensure": "running"})

    assert "reiniciado" in provider.refresh(resource)
    assert runner.ran("systemctl restart puppetserver")


def test_service_started_in_this_pass_is_not_restarted():
    """Arrancar el servicio ya carga la configuración nueva: el refresh no reinicia."""
    runner = FakeRunner({"systemctl is-active puppetserver": CommandResult(False, "inactive", 3)})
    provider = ServiceProvider(runner=runner)
    resource = Resource(ResourceType.SERVICE, "puppetserver", {"ensure": "running"})

    provider.apply(resource, provider.read(resource))
    assert "recién arrancado" in provider.refresh(resource)
    assert runner.ran("systemctl start puppetserver")
    assert not runner.ran("systemctl restart puppetserver")

    # en la siguiente pasada vuelve a reiniciar
    provider.read(resource)
    assert "reiniciado" in provider.refresh(resource)
    assert runner.ran("systemctl restart puppetserver")


def test_service_read_error_when_systemctl_missing():
    provider = ServiceProvider(runner=FakeRunner(default=CommandResult(False, "No such file", None)))
    resource = Resource(ResourceType.SERVICE, "puppetserver", {"ensure": "running"})

    with pytest.raises(ProviderReadError):
        provider.read(resource)


def test_service_failed_action():
    runner = FakeRunner({
        "systemctl is-active": CommandResult(False, "inactive", 3),
        "systemctl start": CommandResult(False, "Job failed", 1),
    })
    provider = ServiceProvider(runner=runner)
    resource = Resource(ResourceType.SERVICE, "puppetserver", {"ensure": "running"})

    with pytest.raises(ApplyError, match="Job failed"):
        provider.apply(resource, provider.read(resource))


# --- package ---

def test_package_install_when_absent():
    runner = FakeRunner({"dpkg-query": CommandResult(False, "no packages found", 1)})
    provider = PackageProvider(runner=runner)
    resource = Resource(ResourceType.PACKAGE, "puppetserver", {"ensure": "present"})

    observed = provider.read(resource)
    assert observed.attributes["ensure"] == "absent"
    provider.apply(resource, observed)
    assert runner.ran("apt-get install -y -q puppetserver")


def test_package_pinned_version():
    runner = FakeRunner({"dpkg-query": CommandResult(True, "7.0.0-1", 0)})
    provider = PackageProvider(runner=runner)
    pinned = Resource(ResourceType.PACKAGE, "puppetserver", {"ensure": "7.1.0-1"})

    assert not provider.in_sync(pinned, provider.read(pinned))
    provider.apply(pinned, provider.read(pinned))
    assert runner.ran("apt-get install -y -q puppetserver=7.1.0-1")

    latest = Resource(ResourceType.PACKAGE, "puppetserver", {"ensure": "latest"})
    assert provider.in_sync(latest, provider.read(latest))


# --- exec ---

def test_exec_creates_guard(staging_root, runner):
    provider = ExecProvider(root=staging_root, runner=runner)
    resource = Resource(ResourceType.EXEC, "ca setup", {"command": "puppetserver ca setup", "creates": "/ssl/ca.pem"})

    assert not provider.in_sync(resource, provider.read(resource))
    provider.apply(resource, provider.read(resource))
    assert runner.ran("sh -c puppetserver ca setup")

    (staging_root / "ssl").mkdir()
    (staging_root / "ssl/ca.pem").write_text("cert")
    assert provider.in_sync(resource, provider.read(resource))


def test_exec_unless_and_onlyif():
    runner = FakeRunner({
        "sh -c test -f /ok": CommandResult(True, "", 0),
        "sh -c test -f /missing": CommandResult(False, "", 1),
    })
    provider = ExecProvider(runner=runner)

    unless = Resource(ResourceType.EXEC, "a", {"command": "echo a", "unless": "test -f /ok"})
    onlyif = Resource(ResourceType.EXEC, "b", {"command": "echo b", "onlyif": "test -f /missing"})
    runs = Resource(ResourceType.EXEC, "c", {"command": "echo c", "onlyif": "test -f /ok"})

    assert provider.in_sync(unless, provider.read(unless))
    assert provider.in_sync(onlyif, provider.read(onlyif))
    assert not provider.in_sync(runs, provider.read(runs))


def test_exec_refreshonly_runs_on_refresh(runner):
    provider = ExecProvider(runner=runner)
    resource = Resource(ResourceType.EXEC, "reload", {"command": "kill -HUP 1", "refreshonly": True})

    assert provider.in_sync(resource, provider.read(resource))
    assert provider.refresh(resource) == "ejecutado: kill -HUP 1"


def test_exec_failure(runner):
    runner.default = CommandResult(False, "boom", 2)
    provider = ExecProvider(runner=runner)
    resource = Resource(ResourceType.EXEC, "fail", {"command": "false"})

    with pytest.raises(ApplyError, match="boom"):
        provider.apply(resource, provider.read(resource))


# --- registry ---

@pytest.mark.parametrize("command_timeout, expected", [
    (5, 5),
    (None, DEFAULT_COMMAND_TIMEOUT),
    (DEFAULT_COMMAND_TIMEOUT * 10, DEFAULT_COMMAND_TIMEOUT),
])
def test_registry_commands_bounded_by_apply_timeout(command_timeout, expected):
    """Un apply vencido no deja comandos vivos mucho más allá de su límite."""
    registry = build_registry(command_timeout=command_timeout)

    runners = {provider.runner for provider in registry.values()}
    assert len(runners) == 1
    assert runners.pop().keywords["timeout"] == expected


def test_registry_keeps_explicit_runner(runner):
    registry = build_registry(runner=runner, command_timeout=5)
    assert registry[ResourceType.SERVICE].runner is runner
