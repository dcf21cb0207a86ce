"""
Aplicación CLI de converge.

Solo compone comandos y formatea la salida; la lógica vive en core y providers.
Códigos de salida: 0 sin fallos, 1 algún recurso falló (o se canceló), 2 error de compilación/configuración.
"""

import signal
from pathlib import Path
from typing import List, Optional, Tuple

# Cargar .env del directorio actual (variables CONVERGE_*)
try:
    from dotenv import load_dotenv
    _env = Path.cwd() / ".env"
    if _env.exists():
        load_dotenv(_env)
except ImportError:
    pass

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from converge import __version__
from converge.core.catalog import Catalog, CatalogCompiler, ParameterSet, ProfileLoader, parse_overrides
from converge.core.engine import ConvergenceEngine, ResourceState, RunReport
from converge.core.errors import CompileError, ConfigError, GraphError, TemplateError, ValidationError
from converge.core.runtime import profile_root, resolve_settings
from converge.providers import build_registry


app = typer.Typer(
    name="converge",
    help="converge - Motor de convergencia declarativa (master de gestión de configuración)",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

EXIT_COMPILE_ERROR = 2

_STATE_STYLE = {
    ResourceState.APPLIED: "[green]applied[/green]",
    ResourceState.UNCHANGED: "[dim]unchanged[/dim]",
    ResourceState.FAILED: "[red]failed[/red]",
    ResourceState.SKIPPED: "[yellow]skipped[/yellow]",
    ResourceState.PENDING: "[dim]pending[/dim]",
}


# --- Opciones comunes ---

ProfileOpt = typer.Option(None, "--profile", help="Perfil incluido o ruta a un directorio con manifest.yaml")
PayloadOpt = typer.Option(None, "--payload", "-p", help="Payload YAML (parámetro: valor)")
SetOpt = typer.Option([], "--set", "-s", help="Override nombre=valor (repetible)")


def _report_compile_error(error: Exception) -> None:
    """Muestra un error de compilación/configuración de forma legible."""
    title = {
        ValidationError: "Parámetros inválidos",
        TemplateError: "Error de plantilla",
        GraphError: "Error en el grafo de dependencias",
        ConfigError: "Error de configuración",
    }.get(type(error), "Error de compilación")
    body = escape(str(error))
    if isinstance(error, ValidationError):
        body = "\n".join(f"[cyan]{escape(name)}[/cyan]: {escape(msg)}" for name, msg in error.problems)
    console.print(Panel.fit(f"[red]{body}[/red]", title=f"❌ {title}", border_style="red"))


def _compile(profile: Optional[str], payload: Optional[Path], sets: List[str]) -> Tuple[ParameterSet, Catalog]:
    try:
        loader = ProfileLoader(profile_root(profile))
        explicit = loader.merged_payload(payload, parse_overrides(sets))
        params = ParameterSet.resolve(loader.manifest.parameters, explicit)
        catalog = CatalogCompiler(loader.manifest, loader.templates).compile(params)
    except (CompileError, ConfigError) as e:
        _report_compile_error(e)
        raise typer.Exit(code=EXIT_COMPILE_ERROR)
    return params, catalog


def _summary(report: RunReport) -> None:
    table = Table(title="Resumen de convergencia", show_header=True, header_style="bold cyan")
    table.add_column("Recurso", style="cyan")
    table.add_column("Estado")
    table.add_column("Detalle", style="dim")
    by_id = {r.resource_id: r for r in report.records}
    for rid, state in report.states.items():
        record = by_id.get(rid)
        detail = ""
        if record is not None:
            detail = record.error or record.message or ""
            if record.refreshed:
                detail = f"↻ {detail}"
        table.add_row(escape(rid), _STATE_STYLE.get(state, state.value), escape(detail))
    console.print(table)

    counts = ", ".join(
        f"{state.value}={report.count(state)}"
        for state in (ResourceState.APPLIED, ResourceState.UNCHANGED, ResourceState.FAILED, ResourceState.SKIPPED)
    )
    if report.failed:
        console.print(f"[red]❌ {len(report.failed)} recurso(s) fallaron[/red] [dim]({counts})[/dim]")
    elif report.cancelled:
        console.print(f"[yellow]⚠️ Ejecución cancelada[/yellow] [dim]({counts})[/dim]")
    else:
        console.print(f"[green]✅ Convergencia completada[/green] [dim]({counts})[/dim]")


def _run(
    catalog: Catalog,
    workers: Optional[int],
    timeout: Optional[float],
    root: Optional[Path],
    noop: bool,
    quiet: bool,
) -> RunReport:
    try:
        settings = resolve_settings({"workers": workers, "apply_timeout": timeout, "root": root, "noop": noop or None})
    except ConfigError as e:
        _report_compile_error(e)
        raise typer.Exit(code=EXIT_COMPILE_ERROR)

    engine = ConvergenceEngine(
        catalog,
        build_registry(root=settings.root, command_timeout=settings.apply_timeout),
        settings=settings,
        console=None if quiet else console,
    )

    def _on_sigint(signum, frame):
        console.print("\n[yellow]⚠️ Cancelando: no se iniciarán recursos nuevos...[/yellow]")
        engine.cancel()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        return engine.run()
    finally:
        signal.signal(signal.SIGINT, previous)


# --- Comandos ---

@app.command("compile")
def compile_cmd(
    profile: Optional[str] = ProfileOpt,
    payload: Optional[Path] = PayloadOpt,
    sets: List[str] = SetOpt,
    as_json: bool = typer.Option(False, "--json", help="Catálogo completo en JSON canónico"),
):
    """Compila el perfil a un catálogo (sin tocar el sistema)"""
    _, catalog = _compile(profile, payload, sets)
    if as_json:
        typer.echo(catalog.to_json(indent=2))
        return

    table = Table(title=f"Catálogo ({len(catalog)} recursos)", show_header=True, header_style="bold cyan")
    table.add_column("Recurso", style="cyan")
    table.add_column("Atributos", style="green")
    for resource in catalog.resources:
        attrs = ", ".join(
            f"{k}={v}" for k, v in resource.attributes.items() if k != "content"
        )
        if "content" in resource.attributes:
            attrs = f"{attrs}, content=<{len(resource.get('content'))} bytes>".lstrip(", ")
        table.add_row(escape(resource.id), escape(attrs))
    console.print(table)
    console.print(f"[dim]digest: {catalog.digest()}[/dim]")


@app.command()
def params(
    profile: Optional[str] = ProfileOpt,
    payload: Optional[Path] = PayloadOpt,
    sets: List[str] = SetOpt,
):
    """Muestra los parámetros declarados, su valor resuelto y de dónde sale"""
    parameters, catalog = _compile(profile, payload, sets)
    table = Table(title="Parámetros", show_header=True, header_style="bold cyan")
    table.add_column("Parámetro", style="cyan")
    table.add_column("Tipo", style="yellow")
    table.add_column("Valor", style="green")
    table.add_column("Origen", style="dim")
    for name, spec in parameters.specs.items():
        table.add_row(name, spec.type.value, escape(repr(parameters[name])), parameters.sources[name])
    console.print(table)

    if catalog.derived:
        derived = Table(title="Valores derivados", show_header=True, header_style="bold cyan")
        derived.add_column("Nombre", style="cyan")
        derived.add_column("Valor", style="green")
        for name, value in catalog.derived.items():
            derived.add_row(name, escape(repr(value)))
        console.print(derived)


@app.command()
def graph(
    profile: Optional[str] = ProfileOpt,
    payload: Optional[Path] = PayloadOpt,
    sets: List[str] = SetOpt,
):
    """Muestra el orden topológico y las aristas del catálogo"""
    _, catalog = _compile(profile, payload, sets)
    table = Table(title="Orden de aplicación", show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Recurso", style="cyan")
    table.add_column("Requiere", style="yellow")
    table.add_column("Notifica", style="green")
    for i, rid in enumerate(catalog.graph.topological_order(), 1):
        notifies = [e.target for e in catalog.graph.notify_edges_from(rid)]
        table.add_row(
            str(i),
            escape(rid),
            escape("\n".join(catalog.graph.predecessors(rid))),
            escape("\n".join(notifies)),
        )
    console.print(table)


@app.command()
def plan(
    profile: Optional[str] = ProfileOpt,
    payload: Optional[Path] = PayloadOpt,
    sets: List[str] = SetOpt,
    root: Optional[Path] = typer.Option(None, "--root", help="Prefijo de filesystem (staging)"),
):
    """Calcula qué cambiaría (modo noop): lee el sistema pero no aplica nada"""
    _, catalog = _compile(profile, payload, sets)
    console.print(Panel.fit("[bold cyan]Plan (noop)[/bold cyan]", border_style="cyan"))
    report = _run(catalog, workers=None, timeout=None, root=root, noop=True, quiet=False)
    pending = [r for r in report.records if r.noop]
    if not pending:
        console.print("[green]✅ Sin cambios pendientes. Estado deseado y real coinciden.[/green]")
    else:
        console.print(f"[yellow]{len(pending)} cambio(s) pendiente(s)[/yellow]")
    raise typer.Exit(code=report.exit_code)


@app.command()
def apply(
    profile: Optional[str] = ProfileOpt,
    payload: Optional[Path] = PayloadOpt,
    sets: List[str] = SetOpt,
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Workers concurrentes (default 1)"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Segundos máximos por apply"),
    root: Optional[Path] = typer.Option(None, "--root", help="Prefijo de filesystem (staging)"),
    noop: bool = typer.Option(False, "--noop", help="No aplicar, solo informar"),
    as_json: bool = typer.Option(False, "--json", help="Registros de cambio como JSON lines en stdout"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Escribir los registros de cambio (JSON lines)"),
):
    """Converge el sistema al estado deseado"""
    _, catalog = _compile(profile, payload, sets)
    if not as_json:
        console.print(Panel.fit(
            f"[bold cyan]Convergencia[/bold cyan]\n[dim]{len(catalog)} recursos · digest {catalog.digest()[:12]}[/dim]",
            border_style="cyan",
        ))
    report = _run(catalog, workers, timeout, root, noop, quiet=as_json)

    lines = [record.to_json() for record in report.records]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        log_file.write_text("".join(f"{line}\n" for line in lines))
    if as_json:
        for line in lines:
            typer.echo(line)
    else:
        _summary(report)
    raise typer.Exit(code=report.exit_code)


@app.command()
def version():
    """Muestra la versión de converge"""
    console.print(Panel.fit(
        "[bold cyan]converge[/bold cyan]\n"
        "[dim]Motor de convergencia declarativa[/dim]\n\n"
        f"[bold]Versión:[/bold] {__version__}\n"
        f"[bold]Perfil por defecto:[/bold] {profile_root()}",
        border_style="cyan",
    ))


def main():
    app()
