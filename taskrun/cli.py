from __future__ import annotations

"""Command line front end for the taskrun runtime."""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from taskrun.src.core.config import RuntimeConfig
from taskrun.src.core.extraction import PlanExtractionError, convert_steps, extract_document
from taskrun.src.core.orchestrator import RunReport
from taskrun.src.core.tools import CapabilityRegistry
from taskrun.src.core.tools.goal_analyzer import GoalAnalyzer
from taskrun.src.core.tools.llm import DEFAULT_ENDPOINT, DEFAULT_MODEL, OllamaBackend
from taskrun.src.core.validation import validate_plan
from taskrun.src.runtime import build_orchestrator, build_registry


app = typer.Typer(help="Plan and execute goals with a local LLM.")


def _catalog_registry(model: str = DEFAULT_MODEL, backend_url: str = DEFAULT_ENDPOINT) -> CapabilityRegistry:
    backend = OllamaBackend(model, endpoint=backend_url)
    registry = build_registry(backend)
    registry.register(GoalAnalyzer(backend))
    return registry


def _section(title: str, color: str) -> None:
    typer.secho(f"--- {title} ---", fg=color, bold=True)


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=True, default=str)


def _print_report(report: RunReport, audit_lines: List[str]) -> None:
    for index, plan in enumerate(report.plans):
        suffix = "" if index == 0 else f" ({index + 1})"
        title = "PLAN" if index == 0 else "FOLLOW-UP PLAN"
        _section(title + suffix, typer.colors.BLUE)
        typer.echo(_dump(plan.to_document()))
        if index < len(report.simulations):
            _section("SIMULATION" + suffix, typer.colors.YELLOW)
            typer.echo(_dump(asdict(report.simulations[index])))
        if index < len(report.results):
            _section("EXECUTION" + suffix, typer.colors.GREEN)
            typer.echo(_dump(asdict(report.results[index])))
        if index < len(report.feedbacks):
            _section("FEEDBACK" + suffix, typer.colors.MAGENTA)
            typer.echo(_dump(asdict(report.feedbacks[index])))
    _section("MEMORY LOG", typer.colors.CYAN)
    for line in audit_lines:
        typer.echo(line)


@app.command()
def run(
    goal: str = typer.Argument(..., help="Natural-language goal to pursue."),
    model: str = typer.Option(DEFAULT_MODEL, envvar="TASKRUN_MODEL", help="Ollama model name."),
    backend_url: str = typer.Option(
        DEFAULT_ENDPOINT,
        "--backend-url",
        envvar="TASKRUN_BACKEND_URL",
        help="Ollama /api/generate endpoint.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        envvar="TASKRUN_REQUEST_TIMEOUT",
        help="Backend request timeout in seconds (default: wait indefinitely).",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", envvar="TASKRUN_AUTO_CONFIRM", help="Run every step without asking."),
    max_replans: int = typer.Option(
        1,
        "--max-replans",
        min=0,
        envvar="TASKRUN_MAX_REPLANS",
        help="Maximum number of corrective replanning cycles.",
    ),
    static_plan: bool = typer.Option(False, "--static-plan", help="Use the built-in plan instead of the LLM planner."),
    reflect: bool = typer.Option(True, "--reflect/--no-reflect", help="Reflect over the audit log after each execution."),
    goal_analysis: bool = typer.Option(
        False,
        "--goal-analysis",
        envvar="TASKRUN_GOAL_ANALYSIS",
        help="Ask the model for goal-specific planning guidance first.",
    ),
    telemetry: Optional[Path] = typer.Option(
        None,
        "--telemetry",
        envvar="TASKRUN_TELEMETRY",
        help="Append structured telemetry events to this JSONL file.",
    ),
) -> None:
    """Plan, execute and, on failure, replan towards GOAL."""

    config = RuntimeConfig(
        model=model,
        backend_url=backend_url,
        request_timeout=timeout,
        auto_confirm=yes,
        max_replans=max_replans,
        reflect_after_run=reflect,
        use_goal_analysis=goal_analysis,
        static_plan=static_plan,
        telemetry_path=telemetry,
    )
    orchestrator = build_orchestrator(config)
    report = orchestrator.run(goal)
    _print_report(report, [entry.render() for entry in orchestrator.audit.read_all()])

    if report.succeeded:
        typer.secho("Goal completed successfully", fg=typer.colors.GREEN, bold=True)
        return
    typer.secho("Run finished with critical failures", err=True, fg=typer.colors.RED, bold=True)
    raise typer.Exit(code=1)


@app.command("tools")
def list_tools() -> None:
    """Print the capability catalog as JSON."""

    specs = [spec.to_dict() for spec in _catalog_registry().specs()]
    typer.echo(_dump(specs))


@app.command()
def validate(
    path: Path = typer.Argument(..., exists=True, resolve_path=True, help="File holding a raw model response."),
) -> None:
    """Extract, repair and validate a saved model response."""

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        typer.secho(f"Failed to read {path}: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc

    known = _catalog_registry().names()
    try:
        document = extract_document(raw, known)
    except PlanExtractionError as exc:
        typer.secho(f"Could not parse plan: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc

    warnings = document.duplicate_key_warnings() + validate_plan(document.data, known)
    report = convert_steps(document.steps)
    payload: Dict[str, Any] = {
        "plan": report.plan.to_document()["plan"],
        "warnings": [],
        "dropped": [{"step": index, "reason": reason} for index, reason in report.dropped],
    }
    for warning in warnings:
        message, example = warning.hint()
        payload["warnings"].append(
            {
                "kind": warning.kind,
                "step": warning.step_index,
                "hint": message,
                "example": example,
            }
        )
    typer.echo(_dump(payload))


def main() -> None:
    """Entrypoint for ``python -m taskrun.cli``."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
