"""Command line interface for the code cemetery."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from cemetery.config import load_config
from cemetery.errors import CemeteryError, InvalidArgumentError
from cemetery.index.search import AssetFilter
from cemetery.models import ArtifactKind, Tombstone, TombstoneOptions
from cemetery.service import Cemetery
from cemetery.utils.files import read_text
from cemetery.web.app import create_app
from cemetery.zombie.matcher import summarize_matches

console = Console()
app = typer.Typer(help="Code cemetery - index, retire and resurrect code")

BASE_OPTION = typer.Option(None, "--base", help="Project directory holding .cemetery/")
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Verbose logging")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _open(base: Optional[Path]) -> Cemetery:
    return Cemetery.open(load_config(base_dir=base))


@contextmanager
def _reported_errors() -> Iterator[None]:
    try:
        yield
    except InvalidArgumentError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except CemeteryError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc


def _tombstone_table(tombstones: List[Tombstone]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Status")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Cause")
    table.add_column("Died")
    for tombstone in tombstones:
        status = "dead" if tombstone.is_dead else "resurrected"
        table.add_row(
            status,
            tombstone.id,
            tombstone.name,
            tombstone.cause_of_death[:60],
            tombstone.died_at.split("T")[0],
        )
    return table


def _print_tombstone(tombstone: Tombstone) -> None:
    console.print(f"[bold]{tombstone.name}[/bold] [dim]({tombstone.id})[/dim]")
    console.print(f"  Cause:    {tombstone.cause_of_death}")
    console.print(f"  Epitaph:  [italic]\"{tombstone.epitaph}\"[/italic]")
    console.print(f"  Location: {tombstone.original_location}")
    console.print(f"  Died:     {tombstone.died_at.split('T')[0]}")
    console.print(f"  Language: {tombstone.language or 'unknown'}")
    console.print(f"  Lines:    {tombstone.line_count}")
    console.print(f"  Tags:     {' '.join('#' + tag for tag in tombstone.tags)}")
    console.print(f"  Summary:  {tombstone.summary}")
    if not tombstone.is_dead:
        console.print(f"  Resurrected to {tombstone.resurrected_to} at {tombstone.resurrected_at}")


@app.command()
def index(
    inputs: List[Path] = typer.Argument(..., help="Files or directories to index.", resolve_path=True),
    base: Path = BASE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Scan paths and add unseen artifacts to the asset index."""
    _setup_logging(verbose)
    with _reported_errors(), _open(base) as cemetery:
        console.print(f"Indexing into [bold]{cemetery.store.store_dir}[/bold]...")
        for path in inputs:
            stats = cemetery.scan(path)
            console.print(
                f"{path}: added {stats.added}, skipped {stats.skipped}, "
                f"changed {stats.changed}, excluded {len(stats.excluded_paths)}, "
                f"total {stats.total}"
            )


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    kind: Optional[ArtifactKind] = typer.Option(None, help="Only artifacts of this kind"),
    language: Optional[str] = typer.Option(None, help="Only artifacts in this language"),
    tag: List[str] = typer.Option([], "--tag", help="Only artifacts carrying one of these tags"),
    dead: Optional[bool] = typer.Option(None, "--dead/--alive", help="Filter on retirement state"),
    limit: int = typer.Option(10, help="Number of results to display"),
    base: Path = BASE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Search the asset index and the tombstone registry."""
    _setup_logging(verbose)
    with _reported_errors(), _open(base) as cemetery:
        criteria = AssetFilter(
            query=query,
            kind=kind,
            language=language,
            tags=tag,
            alive=None if dead is None else not dead,
            limit=limit,
        )
        artifacts = cemetery.index.search(criteria)
        tombstones = cemetery.registry.search(query)[:limit]

    if not artifacts and not tombstones:
        console.print("[yellow]No matches found.[/yellow]")
        return

    if artifacts:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("State")
        table.add_column("Kind")
        table.add_column("Location")
        table.add_column("Summary")
        for artifact in artifacts:
            state = "alive" if artifact.alive else "dead"
            table.add_row(state, artifact.kind.value, artifact.location, artifact.summary[:120])
        console.print(table)
    if tombstones:
        console.print(_tombstone_table(tombstones))


@app.command()
def stats(base: Path = BASE_OPTION, verbose: bool = VERBOSE_OPTION) -> None:
    """Show asset index and tombstone registry statistics."""
    _setup_logging(verbose)
    with _reported_errors(), _open(base) as cemetery:
        assets = cemetery.index.stats()
        registry = cemetery.registry.stats()

    console.print(
        f"[bold]Assets[/bold]: {assets.total} total, {assets.alive} alive, {assets.dead} dead, "
        f"{assets.total_lines} lines, {assets.total_size} bytes"
    )
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Group")
    table.add_column("Value")
    table.add_column("Count", justify="right")
    for group, counts in (
        ("kind", assets.by_kind),
        ("source", assets.by_source),
        ("language", assets.by_language),
    ):
        for value, count in sorted(counts.items(), key=lambda item: -item[1]):
            table.add_row(group, value, str(count))
    console.print(table)

    console.print(
        f"[bold]Tombstones[/bold]: {registry.total} total, {registry.still_dead} dead, "
        f"{registry.resurrected} resurrected"
    )
    for cause, count in sorted(registry.by_cause.items(), key=lambda item: -item[1]):
        console.print(f"  {count:>4}  {cause}")


@app.command()
def bury(
    location: str = typer.Argument(..., help="File to retire"),
    cause: str = typer.Option(..., "--cause", "-c", help="Cause of death"),
    epitaph: Optional[str] = typer.Option(None, help="Custom epitaph"),
    tags: Optional[str] = typer.Option(None, help="Comma separated tags"),
    summary: Optional[str] = typer.Option(None, help="Custom summary"),
    author: Optional[str] = typer.Option(None, help="Author of the retired code"),
    base: Path = BASE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Create a tombstone and mark the artifact dead."""
    _setup_logging(verbose)
    options = TombstoneOptions(
        epitaph=epitaph,
        tags=[t.strip() for t in tags.split(",") if t.strip()] if tags else None,
        summary=summary,
        author=author,
    )
    with _reported_errors(), _open(base) as cemetery:
        tombstone = cemetery.bury(location, cause, options)
    _print_tombstone(tombstone)


@app.command()
def resurrect(
    tombstone_id: str = typer.Argument(..., help="Tombstone ID"),
    new_location: str = typer.Argument(..., help="Where the code lives now"),
    base: Path = BASE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Mark a tombstone resurrected."""
    _setup_logging(verbose)
    with _reported_errors(), _open(base) as cemetery:
        tombstone = cemetery.resurrect(tombstone_id, new_location)
    if tombstone is None:
        console.print(f"[red]Tombstone not found: {tombstone_id}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]{tombstone.name} resurrected to {tombstone.resurrected_to}[/green]")


@app.command()
def tombstones(
    query: Optional[str] = typer.Argument(None, help="Optional search query"),
    fuzzy: bool = typer.Option(False, help="Match id, location and cause by edit distance"),
    random_pick: bool = typer.Option(False, "--random", help="Show one random tombstone"),
    base: Path = BASE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """List, search or visit tombstones."""
    _setup_logging(verbose)
    with _reported_errors(), _open(base) as cemetery:
        if random_pick:
            picked = cemetery.registry.random_tombstone()
            if picked is None:
                console.print("[yellow]The cemetery is empty.[/yellow]")
                return
            _print_tombstone(picked)
            return
        if query and fuzzy:
            found = cemetery.registry.fuzzy_search(query)
        elif query:
            found = cemetery.registry.search(query)
        else:
            found = cemetery.registry.list()

    if not found:
        console.print("[yellow]No tombstones found.[/yellow]")
        return
    console.print(_tombstone_table(found))


@app.command()
def zombie(
    path: Path = typer.Argument(..., help="New file to check", exists=True, dir_okay=False),
    all_matches: bool = typer.Option(False, "--all", help="List every match above the inclusion threshold"),
    threshold: Optional[float] = typer.Option(None, help="Zombie similarity threshold"),
    limit: int = typer.Option(10, help="Maximum number of matches with --all"),
    base: Path = BASE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Check whether a file resembles retired code."""
    _setup_logging(verbose)
    content = read_text(path)
    if content is None:
        raise typer.BadParameter(f"Cannot read {path} as text")

    with _reported_errors(), _open(base) as cemetery:
        if all_matches:
            matches = cemetery.zombie_matches(content, new_location=str(path), limit=limit)
        else:
            matches = [cemetery.detect_zombie(content, new_location=str(path), threshold=threshold)]

    if all_matches:
        summary = summarize_matches(matches)
        console.print(
            f"Matches: {summary.total} (high {summary.high}, medium {summary.medium}, low {summary.low})"
        )
        if not matches:
            return
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Tombstone")
        table.add_column("Similarity")
        table.add_column("Confidence")
        table.add_column("Kind")
        table.add_column("Keywords")
        for match in matches:
            table.add_row(
                str(match.tombstone_id),
                f"{match.similarity:.2f}",
                f"{match.confidence:.2f}",
                match.classification.value,
                ", ".join(match.matched_keywords),
            )
        console.print(table)
        return

    best = matches[0]
    if best.tombstone_id is None:
        console.print("[yellow]No tombstones to compare against.[/yellow]")
        return
    verdict = "[red]ZOMBIE[/red]" if best.is_zombie else "[green]not a zombie[/green]"
    console.print(
        f"{verdict}: closest tombstone {best.tombstone_id} "
        f"(similarity {best.similarity:.2f}, confidence {best.confidence:.2f}, "
        f"{best.classification.value})"
    )


@app.command()
def watch(
    once: bool = typer.Option(False, help="Run a single scan cycle and exit"),
    base: Path = BASE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Rescan the configured watch paths periodically."""
    _setup_logging(verbose)
    with _reported_errors(), _open(base) as cemetery:
        if not cemetery.config.watch_paths:
            console.print("[yellow]No watch_paths configured.[/yellow]")
            return
        scanner = cemetery.scanner()
        if once:
            report = scanner.run_cycle()
            if report is not None:
                console.print(
                    f"New: {report.new_assets}, stale: {report.dead_assets}, "
                    f"buried: {report.new_tombstones}, errors: {len(report.errors)}"
                )
            return
        scanner.start()
        console.print("Watching... press Ctrl+C to stop.")
        try:
            while scanner.running:
                time.sleep(1.0)
        except KeyboardInterrupt:
            pass
        finally:
            scanner.stop()


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    base: Path = BASE_OPTION,
) -> None:
    """Start the HTTP API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    config = load_config(base_dir=base)
    console.print(
        f"Starting web interface on http://{host}:{port} (store: {config.resolve_store_dir()})"
    )
    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
