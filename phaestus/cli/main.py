"""PHAESTUS CLI: main entry point.

Commands:
    run    Run the orchestrator on a description (or resume a saved snapshot)
    drc    Design-rule check a block combination
    blocks List the default block catalog
    serve  Start the FastAPI server
"""

import asyncio
import json
import logging
import uuid
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from phaestus.models.spec import DesignMode

app = typer.Typer(
    name="phaestus",
    help="Hardware design orchestrator: spec, PCB, enclosure and firmware from a description",
    add_completion=False,
)
console = Console()

DEFAULT_OUTPUT = "phaestus-project.json"


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _load_env() -> None:
    """Load .env from CWD or parent directories."""
    from dotenv import load_dotenv

    for search_dir in [Path.cwd(), Path.cwd().parent, Path(__file__).parent.parent.parent]:
        env_file = search_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)
            return
    load_dotenv()


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging: verbose shows node-level detail."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(name)s | %(levelname)s | %(message)s",
    )
    # Reduce noise
    for noisy in ("httpx", "httpcore", "anthropic", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _read_json(path: Path, what: str) -> Any:
    if not path.exists():
        console.print(f"[red]Error: {what} not found: {path}[/red]")
        raise typer.Exit(1)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        console.print(f"[red]Error: cannot read {what} {path}: {e}[/red]")
        raise typer.Exit(1)


def _save_snapshot(path: Path, result: dict[str, Any]) -> None:
    """Write the final snapshot (plus the run's history) to ``path``."""
    snapshot = dict(result.get("spec") or {})
    snapshot["history"] = result.get("history", [])
    path.write_text(json.dumps(snapshot, indent=2, default=str), encoding="utf-8")
    console.print(f"[green]Snapshot saved to {path}[/green]")


def _prompt_checkpoint(checkpoint: dict[str, Any]) -> Any:
    """Ask the user for the value that resumes a checkpoint."""
    if checkpoint.get("type") == "open_questions":
        answers: dict[str, str] = {}
        for q in checkpoint.get("questions", []):
            options = q.get("options", [])
            default = options[0] if options else ""
            raw = console.input(
                f"[bold yellow]> {q.get('id')} (number or text) [{default}]: [/bold yellow]"
            ).strip()
            if not raw:
                answers[q["id"]] = default
            elif raw.isdigit() and 1 <= int(raw) <= len(options):
                answers[q["id"]] = options[int(raw) - 1]
            else:
                answers[q["id"]] = raw
        return answers

    return console.input(
        "[bold yellow]> Action (accept/retry/skip/feedback): [/bold yellow]"
    )


# ---------------------------------------------------------------
# Run execution (streaming + resume loop)
# ---------------------------------------------------------------

def _run_streaming(
    run_input: dict[str, Any],
    model: str | None,
    checkpointer_backend: str | None,
    verbose: bool,
) -> dict[str, Any] | None:
    """Stream a run with real-time Rich output.

    After each stream, if the run stopped at a checkpoint, prompts the
    user and resumes with their response until the run ends.
    """

    async def _stream() -> dict[str, Any] | None:
        from phaestus.cli.renderer import RunRenderer
        from phaestus.graph.orchestrator import compile_graph
        from phaestus.graph.streaming import make_run_config, resume_orchestrator, run_orchestrator
        from phaestus.llm.adapter import LLMAdapter
        from phaestus.persistence.checkpointer import open_checkpointer

        llm = LLMAdapter.from_config()
        if model:
            llm.model = model

        thread_id = f"cli-{run_input['projectId']}"
        renderer = RunRenderer(console=console, verbose=verbose)

        async with open_checkpointer(checkpointer_backend) as checkpointer:
            graph = compile_graph(checkpointer=checkpointer)

            # Initial stream
            async for event in run_orchestrator(run_input, llm=llm, graph=graph, thread_id=thread_id):
                renderer.render(event)

            # Checkpoint/resume loop
            config = make_run_config(thread_id, llm)
            while renderer.pending_checkpoint is not None:
                response = _prompt_checkpoint(renderer.pending_checkpoint)

                # Clear pending checkpoint before resuming
                renderer.pending_checkpoint = None

                async for event in resume_orchestrator(graph, response, config):
                    renderer.render(event)

            return renderer.result

    try:
        return asyncio.run(_stream())
    except KeyboardInterrupt:
        console.print("\n[yellow]Run interrupted by user.[/yellow]")
        raise typer.Exit(130)


# ---------------------------------------------------------------
# run command
# ---------------------------------------------------------------

@app.command()
def run(
    description: str = typer.Argument("", help="What to build, in plain words"),
    mode: DesignMode = typer.Option(DesignMode.VIBE_IT, "--mode", help="vibe_it, fix_it or design_it"),
    blocks: Path | None = typer.Option(None, "--blocks", help="Block catalog JSON (default catalog if omitted)"),
    resume: Path | None = typer.Option(None, "--resume", help="Snapshot JSON to resume from"),
    output: Path = typer.Option(Path(DEFAULT_OUTPUT), "--out", "-o", help="Where to save the final snapshot"),
    project_id: str = typer.Option("", "--project-id", help="Project id (random if omitted)"),
    model: str | None = typer.Option(None, "--model", help="LLM model (overrides config)"),
    checkpointer: str | None = typer.Option(None, "--checkpointer", help="memory or sqlite"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs and details"),
) -> None:
    """Run the orchestrator from a description, or resume a saved snapshot."""
    _load_env()
    _setup_logging(verbose)

    from phaestus.catalog import load_blocks
    from phaestus.errors import ConfigError

    existing_spec = _read_json(resume, "snapshot") if resume else None
    if existing_spec is not None:
        existing_spec.pop("history", None)
        description = description or existing_spec.get("description", "")
    if not description:
        console.print("[red]Error: a description (or --resume snapshot with one) is required[/red]")
        raise typer.Exit(1)

    available = []
    if blocks is not None:
        try:
            available = [b.to_json_dict() for b in load_blocks(blocks)]
        except ConfigError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)

    run_input: dict[str, Any] = {
        "projectId": project_id or uuid.uuid4().hex[:12],
        "mode": mode.value,
        "description": description,
        "availableBlocks": available,
    }
    if existing_spec is not None:
        run_input["existingSpec"] = existing_spec

    console.print(Panel(
        f"[bold]Description:[/bold] {description}\n"
        f"[bold]Mode:[/bold] {mode.value}\n"
        f"[bold]Blocks:[/bold] {blocks or 'default catalog'}\n"
        f"[bold]Resume:[/bold] {resume or '-'}\n"
        f"[bold]Output:[/bold] {output}",
        title="[bold blue]PHAESTUS Run[/bold blue]",
    ))

    result = _run_streaming(run_input, model, checkpointer, verbose)
    if result is None:
        raise typer.Exit(1)

    _save_snapshot(output, result)
    if result.get("status") not in ("completed", "rejected"):
        raise typer.Exit(1)


# ---------------------------------------------------------------
# drc command
# ---------------------------------------------------------------

@app.command()
def drc(
    blocks: Path | None = typer.Argument(None, help="Block definitions JSON"),
    slugs: str = typer.Option("", "--slugs", help="Comma-separated slugs from the default catalog"),
) -> None:
    """Design-rule check a block combination."""
    _setup_logging()

    from phaestus.catalog import get_block, load_blocks
    from phaestus.drc.validator import calculate_total_power, validate_block_combination
    from phaestus.errors import ConfigError

    selected = []
    if blocks is not None:
        try:
            selected.extend(load_blocks(blocks))
        except ConfigError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)
    for slug in filter(None, (s.strip() for s in slugs.split(","))):
        block = get_block(slug)
        if block is None:
            console.print(f"[red]Error: unknown block slug: {slug}[/red]")
            raise typer.Exit(1)
        selected.append(block)
    if not selected:
        console.print("[red]Error: give a blocks file or --slugs[/red]")
        raise typer.Exit(1)

    result = validate_block_combination(selected)

    table = Table(title=f"DRC: {len(selected)} blocks")
    table.add_column("Level", width=8)
    table.add_column("Code", style="cyan", no_wrap=True)
    table.add_column("Message", style="white")
    table.add_column("Blocks", style="dim")
    for issue in result.errors:
        table.add_row("[red]error[/red]", issue.code, issue.message, ", ".join(issue.blocks))
    for issue in result.warnings:
        table.add_row("[yellow]warning[/yellow]", issue.code, issue.message, ", ".join(issue.blocks))
    if result.errors or result.warnings:
        console.print(table)

    budget = calculate_total_power(selected)
    for rail, ma in sorted(budget.provides.items()):
        need = budget.requires.get(rail, {})
        console.print(
            f"  [dim]{rail}:[/dim] provides {ma}mA, "
            f"typical {need.get('typical', 0)}mA, max {need.get('max', 0)}mA"
        )

    if result.valid:
        console.print("\n[green]DRC: PASSED[/green]")
    else:
        console.print(f"\n[red]DRC: FAILED ({len(result.errors)} errors)[/red]")
        raise typer.Exit(1)


# ---------------------------------------------------------------
# blocks command
# ---------------------------------------------------------------

@app.command("blocks")
def list_blocks() -> None:
    """List the default block catalog."""
    from phaestus.catalog import DEFAULT_BLOCKS

    table = Table(title="Block Catalog")
    table.add_column("Slug", style="cyan", no_wrap=True)
    table.add_column("Category", style="magenta", width=10)
    table.add_column("Size", width=5)
    table.add_column("Description", style="white")
    for block in DEFAULT_BLOCKS:
        table.add_row(
            block.slug,
            block.category,
            f"{block.width_units}x{block.height_units}",
            block.description,
        )
    console.print(table)


# ---------------------------------------------------------------
# serve command
# ---------------------------------------------------------------

@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Server port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Start the FastAPI server."""
    _load_env()
    _setup_logging()
    console.print(f"[bold blue]PHAESTUS[/bold blue]: starting server on {host}:{port}")
    import uvicorn

    uvicorn.run("phaestus.api.server:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
