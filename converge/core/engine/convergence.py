"""
Motor de convergencia: recorre el catálogo en orden topológico y lleva cada
recurso a su estado deseado a través de su provider.

Máquina de estados por recurso:
    pending → read → {unchanged, applying} → {applied, failed}
    (skipped: algún predecesor falló o quedó saltado, o la ejecución se canceló)

- Los errores de un recurso (lectura, apply, timeout) se registran y solo
  detienen su subgrafo; los subgrafos independientes siguen convergiendo.
- Tras pasar a 'applied' se disparan las aristas notify salientes; el destino
  ejecuta su refresh (p. ej. restart) aunque su propio estado ya coincidiera.
- Con workers > 1 los subgrafos independientes se aplican en paralelo.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, TypeVar

from rich.console import Console
from rich.markup import escape

from converge.core.catalog.catalog import Catalog
from converge.core.engine.contracts import ProviderContract
from converge.core.engine.records import ChangeRecord, ObservedState, Outcome, ResourceState
from converge.core.errors import ApplyError, ApplyTimeoutError, ConvergeError, ProviderReadError
from converge.core.graph.dependency import ReadyQueue
from converge.core.resources.models import Resource, ResourceType
from converge.core.runtime.settings import RunSettings


T = TypeVar("T")

_BLOCKING = (ResourceState.FAILED, ResourceState.SKIPPED)


@dataclass
class RunReport:
    """Resultado de una pasada de convergencia"""
    records: List[ChangeRecord] = field(default_factory=list)
    states: Dict[str, ResourceState] = field(default_factory=dict)
    cancelled: bool = False
    noop: bool = False

    def count(self, state: ResourceState) -> int:
        return sum(1 for s in self.states.values() if s == state)

    @property
    def failed(self) -> List[str]:
        return [rid for rid, s in self.states.items() if s == ResourceState.FAILED]

    @property
    def changed(self) -> List[ChangeRecord]:
        return [r for r in self.records if r.outcome == Outcome.CHANGED]

    @property
    def exit_code(self) -> int:
        """0 = sin fallos; 1 = algún recurso falló o la ejecución se canceló."""
        return 1 if self.failed or self.cancelled else 0


class ConvergenceEngine:
    """Aplica un catálogo con los providers registrados"""

    def __init__(
        self,
        catalog: Catalog,
        providers: Mapping[ResourceType, ProviderContract],
        settings: Optional[RunSettings] = None,
        console: Optional[Console] = None,
    ):
        self.catalog = catalog
        self.providers = providers
        self.settings = settings or RunSettings()
        self.console = console
        self.states: Dict[str, ResourceState] = {r.id: ResourceState.PENDING for r in catalog.resources}
        self._records: List[ChangeRecord] = []
        self._lock = threading.Lock()
        self._queue: Optional[ReadyQueue] = None
        self._cancelled = threading.Event()

    # --- API pública ---

    def run(self) -> RunReport:
        """Ejecuta una pasada completa (no reiniciable: un engine por catálogo)."""
        queue = ReadyQueue(self.catalog.graph)
        self._queue = queue
        if self._cancelled.is_set():
            queue.cancel()

        workers = self.settings.workers
        if workers == 1:
            self._worker(queue)
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="converge") as pool:
                futures = [pool.submit(self._worker, queue) for _ in range(workers)]
                for future in futures:
                    future.result()

        for rid in queue.undelivered():
            self._set_state(rid, ResourceState.SKIPPED)
            self._print(f"  [dim]⏭  {escape(rid)}: no iniciado (ejecución cancelada)[/dim]")

        return RunReport(
            records=list(self._records),
            states=dict(self.states),
            cancelled=self._cancelled.is_set(),
            noop=self.settings.noop,
        )

    def cancel(self) -> None:
        """Deja de programar recursos nuevos; los que están en curso terminan."""
        self._cancelled.set()
        if self._queue is not None:
            self._queue.cancel()

    # --- Workers ---

    def _worker(self, queue: ReadyQueue) -> None:
        while True:
            rid = queue.get()
            if rid is None:
                return
            try:
                self._converge_one(self.catalog[rid])
            finally:
                queue.complete(rid)

    def _converge_one(self, resource: Resource) -> None:
        rid = resource.id
        graph = self.catalog.graph

        blocked = [p for p in graph.predecessors(rid) if self.states[p] in _BLOCKING]
        if blocked:
            self._set_state(rid, ResourceState.SKIPPED)
            self._print(f"  [yellow]⏭[/yellow]  {escape(rid)}: omitido (depende de {escape(', '.join(blocked))})")
            return

        provider = self.providers.get(resource.type)
        if provider is None:
            error = ApplyError(rid, f"no hay provider para el tipo {resource.type.value}")
            self._fail(resource, ObservedState(), {}, error, None, time.monotonic())
            return

        started = time.monotonic()
        self._set_state(rid, ResourceState.READ)
        read_error: Optional[str] = None
        try:
            observed = provider.read(resource)
        except Exception as e:
            if not isinstance(e, ProviderReadError):
                e = ProviderReadError(rid, f"{type(e).__name__}: {e}")
            read_error = str(e)
            observed = ObservedState.unknown_state(read_error)
            self._print(f"  [yellow]⚠[/yellow]  {escape(rid)}: estado desconocido ({escape(str(e))})")

        try:
            desired = provider.desired_state(resource)
            in_sync = provider.in_sync(resource, observed)
        except Exception as e:
            self._fail(resource, observed, {}, _as_apply_error(rid, e), read_error, started)
            return

        if in_sync:
            record = ChangeRecord(rid, dict(observed.attributes), desired, Outcome.UNCHANGED)
            state = ResourceState.UNCHANGED
        elif self.settings.noop:
            record = ChangeRecord(
                rid, dict(observed.attributes), desired, Outcome.CHANGED,
                message="cambio pendiente (noop)", noop=True,
            )
            state = ResourceState.UNCHANGED
        else:
            self._set_state(rid, ResourceState.APPLYING)
            try:
                record = self._call_with_timeout(resource, provider, lambda: provider.apply(resource, observed))
            except ConvergeError as e:
                self._fail(resource, observed, desired, e, read_error, started)
                return
            state = ResourceState.APPLIED if record.outcome == Outcome.CHANGED else ResourceState.UNCHANGED

        fired = [e for e in graph.notify_edges_into(rid) if e.fired]
        if fired and provider.supports_refresh:
            sources = ", ".join(e.source for e in fired)
            if self.settings.noop or record.noop:
                record.message = f"refresh pendiente por {sources} (noop)"
                record.noop = True
            else:
                try:
                    message = self._call_with_timeout(resource, provider, lambda: provider.refresh(resource))
                except ConvergeError as e:
                    self._fail(resource, observed, desired, e, read_error, started)
                    return
                record.message = "; ".join(m for m in (record.message, message) if m)
                state = ResourceState.APPLIED
            record.refreshed = True
            record.outcome = Outcome.CHANGED

        record.read_error = read_error
        record.duration = round(time.monotonic() - started, 3)
        self._finish(resource, state, record)

    # --- Helpers ---

    def _call_with_timeout(self, resource: Resource, provider: ProviderContract, fn: Callable[[], T]) -> T:
        """Ejecuta fn con el timeout configurado; cualquier excepción → ApplyError."""
        timeout = self.settings.apply_timeout
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="converge-apply")
        future = executor.submit(fn)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            provider.interrupt(resource)
            raise ApplyTimeoutError(resource.id, timeout)
        except ConvergeError:
            raise
        except Exception as e:
            raise _as_apply_error(resource.id, e) from e
        finally:
            executor.shutdown(wait=False)

    def _finish(self, resource: Resource, state: ResourceState, record: ChangeRecord) -> None:
        if state == ResourceState.APPLIED:
            resource.applied = True
            for edge in self.catalog.graph.notify_edges_from(resource.id):
                edge.fired = True
        elif record.noop and record.outcome == Outcome.CHANGED:
            # en noop se propaga igualmente para informar de los refresh pendientes
            for edge in self.catalog.graph.notify_edges_from(resource.id):
                edge.fired = True
        self._set_state(resource.id, state)
        self._append(record)

        if record.noop:
            self._print(f"  [cyan]~[/cyan]  {escape(resource.id)}: {escape(record.message or '')}")
        elif record.outcome == Outcome.CHANGED:
            self._print(f"  [green]✓[/green]  {escape(resource.id)}: {escape(record.message or 'aplicado')}")
        else:
            self._print(f"  [dim]·  {escape(resource.id)}: sin cambios[/dim]")

    def _fail(
        self,
        resource: Resource,
        observed: ObservedState,
        desired: dict,
        error: Exception,
        read_error: Optional[str],
        started: float,
    ) -> None:
        record = ChangeRecord(
            resource.id,
            dict(observed.attributes),
            desired,
            Outcome.FAILED,
            error=f"{type(error).__name__}: {error}",
            read_error=read_error,
            duration=round(time.monotonic() - started, 3),
        )
        self._set_state(resource.id, ResourceState.FAILED)
        self._append(record)
        self._print(f"  [red]❌ {escape(resource.id)}: {escape(str(error))}[/red]")

    def _set_state(self, rid: str, state: ResourceState) -> None:
        with self._lock:
            self.states[rid] = state

    def _append(self, record: ChangeRecord) -> None:
        with self._lock:
            self._records.append(record)

    def _print(self, message: str) -> None:
        if self.console:
            self.console.print(message)


def _as_apply_error(rid: str, error: Exception) -> ConvergeError:
    if isinstance(error, ConvergeError):
        return error
    return ApplyError(rid, f"{type(error).__name__}: {error}")


def converge(
    catalog: Catalog,
    providers: Mapping[ResourceType, ProviderContract],
    settings: Optional[RunSettings] = None,
    console: Optional[Console] = None,
) -> RunReport:
    """Atajo: una pasada de convergencia sobre `catalog`."""
    return ConvergenceEngine(catalog, providers, settings, console).run()
