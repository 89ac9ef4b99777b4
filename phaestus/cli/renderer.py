"""Rich terminal renderer for orchestrator stream events.

Provides real-time colored output during a run:
- Node labels colored by stage
- The result line of every history entry a node appends
- Review scores and stage completions
- Checkpoint prompts and the final outcome panel
"""

from typing import Any

from rich.console import Console
from rich.panel import Panel

from phaestus.graph.streaming import EventType, RunStatus, StreamEvent

# Stage color scheme: each stage gets a distinct color
STAGE_COLORS: dict[str, str] = {
    "spec": "blue",
    "pcb": "cyan",
    "enclosure": "magenta",
    "firmware": "green",
    "export": "white",
}

NODE_STAGE: dict[str, str] = {
    "analyze_feasibility": "spec",
    "answer_questions": "spec",
    "generate_blueprints": "spec",
    "select_blueprint": "spec",
    "generate_names": "spec",
    "select_name": "spec",
    "finalize_spec": "spec",
    "mark_spec_complete": "spec",
    "select_blocks": "pcb",
    "validate_pcb": "pcb",
    "mark_pcb_complete": "pcb",
    "generate_enclosure": "enclosure",
    "review_enclosure": "enclosure",
    "decide_enclosure": "enclosure",
    "accept_enclosure": "enclosure",
    "mark_enclosure_complete": "enclosure",
    "generate_firmware": "firmware",
    "review_firmware": "firmware",
    "decide_firmware": "firmware",
    "accept_firmware": "firmware",
    "mark_firmware_complete": "firmware",
    "mark_export_complete": "export",
}

HISTORY_COLORS: dict[str, str] = {
    "error": "red",
    "fix": "yellow",
    "validation": "yellow",
    "progress": "dim",
}


def node_display(node: str) -> str:
    return node.replace("_", " ").title()


class RunRenderer:
    """Renders orchestrator stream events to the terminal using Rich.

    Remembers the last checkpoint (so the caller can prompt and resume)
    and the data of the terminal event (so the caller can save the
    snapshot).
    """

    def __init__(self, console: Console | None = None, verbose: bool = False):
        self.console = console or Console()
        self.verbose = verbose
        self.active_stage = ""
        self.pending_checkpoint: dict[str, Any] | None = None
        self.result: dict[str, Any] | None = None
        self.error: str | None = None

    def render(self, event: StreamEvent) -> None:
        """Render a single stream event to the terminal."""
        handler = {
            EventType.STATE.value: self._on_state,
            EventType.SPEC.value: self._on_spec,
            EventType.COMPLETE.value: self._on_complete,
            EventType.ERROR.value: self._on_error,
        }.get(event.type)

        if handler:
            handler(event)
        elif self.verbose:
            self.console.print(f"  [dim]{event.type}: {event.to_dict()}[/dim]")

    def _on_state(self, event: StreamEvent) -> None:
        stage = NODE_STAGE.get(event.node, "")
        color = STAGE_COLORS.get(stage, "white")

        if stage and stage != self.active_stage:
            self.active_stage = stage
            self.console.print()
            self.console.rule(f"[bold {color}]{stage.upper()}[/bold {color}]")

        self.console.print(f"  [{color}]>> {node_display(event.node)}[/{color}]")

        data = event.data or {}
        for item in data.get("history", []):
            item_color = HISTORY_COLORS.get(item.get("type", ""), color)
            if item.get("result"):
                self.console.print(f"     [{item_color}]{item['result']}[/{item_color}]")
            if self.verbose and item.get("details"):
                self.console.print(f"     [dim]{item['details']}[/dim]")

    def _on_spec(self, event: StreamEvent) -> None:
        if self.verbose:
            keys = ", ".join(sorted((event.data or {}).keys()))
            self.console.print(f"     [dim]snapshot: {keys}[/dim]")

    def _on_complete(self, event: StreamEvent) -> None:
        data = event.data or {}
        self.result = data
        status = data.get("status")

        if status == RunStatus.NEEDS_INPUT.value:
            self._show_checkpoint(data.get("checkpoint") or {})
            return

        self.console.print()
        if status == RunStatus.COMPLETED.value:
            spec = data.get("spec", {})
            name = (spec.get("finalSpec") or {}).get("name") or spec.get("selectedName") or "Project"
            self.console.print(Panel(
                f"[bold]{name}[/bold]\n"
                f"Stages: {', '.join(data.get('completedStages', []))}\n"
                f"Node executions: {data.get('iterationCount', 0)}",
                title="[bold green]Run Complete[/bold green]",
            ))
        elif status == RunStatus.REJECTED.value:
            revisions = data.get("suggestedRevisions") or []
            body = f"[bold]{data.get('rejectionReason') or 'Not manufacturable'}[/bold]"
            if revisions:
                body += "\n\nSuggested revisions:\n" + "\n".join(f"  - {r}" for r in revisions)
            self.console.print(Panel(body, title="[bold yellow]Rejected[/bold yellow]"))
        else:
            self.console.print(
                f"  [yellow]Run stopped at stage '{data.get('currentStage')}' ({status})[/yellow]"
            )

    def _show_checkpoint(self, checkpoint: dict[str, Any]) -> None:
        """Store the checkpoint and display what the run is waiting for."""
        self.pending_checkpoint = checkpoint

        self.console.print()
        self.console.rule("[bold yellow]Human Input Required[/bold yellow]")
        self.console.print(f"  [yellow]Stage:[/yellow] [bold]{checkpoint.get('stage', '?')}[/bold]")
        self.console.print(f"  [yellow]Type:[/yellow] {checkpoint.get('type', 'unknown')}")
        if checkpoint.get("message"):
            self.console.print(f"  [yellow]Message:[/yellow] {checkpoint['message']}")

        # Open questions: list each with its options
        for q in checkpoint.get("questions", []):
            self.console.print(f"\n  [bold]{q.get('id')}[/bold]: {q.get('question')}")
            for i, option in enumerate(q.get("options", []), 1):
                self.console.print(f"    [dim]{i}.[/dim] {option}")

        # Escalation: last review issues and the options
        for issue in checkpoint.get("issues", []):
            self.console.print(
                f"    [dim]- ({issue.get('severity')})[/dim] {issue.get('description')}"
            )
        options = checkpoint.get("options", [])
        if options:
            self.console.print(f"\n  [dim]Options:[/dim] {', '.join(options)}")

        self.console.print()

    def _on_error(self, event: StreamEvent) -> None:
        self.error = event.error
        data = event.data or {}
        if "spec" in data:
            self.result = data
        exc_type = data.get("exceptionType", "Error")
        self.console.print()
        self.console.print(f"  [bold red]{exc_type}: {event.error}[/bold red]")
