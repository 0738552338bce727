"""High level entrypoints that compose the taskrun subsystems."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, Optional

from taskrun.src.core.config import RuntimeConfig
from taskrun.src.core.memory import AuditLog
from taskrun.src.core.orchestrator import LoopState, Orchestrator, RunReport
from taskrun.src.core.planner import Planner
from taskrun.src.core.replanner import Replanner
from taskrun.src.core.telemetry import JsonLinesSink, Telemetry, TelemetrySink
from taskrun.src.core.tools import Capability, CapabilityRegistry
from taskrun.src.core.tools.echo import Echo
from taskrun.src.core.tools.error_analyzer import ErrorAnalyzer
from taskrun.src.core.tools.git_status import GitStatus
from taskrun.src.core.tools.goal_analyzer import GoalAnalyzer
from taskrun.src.core.tools.llm import OllamaBackend
from taskrun.src.core.tools.reflector import Reflector
from taskrun.src.core.tools.shell import RunCommand
from taskrun.src.governance.gatekeeper import AutoApproveGatekeeper, ConsoleGatekeeper

__all__ = (
    "AuditLog",
    "CapabilityRegistry",
    "LoopState",
    "Orchestrator",
    "Planner",
    "Replanner",
    "RunReport",
    "RuntimeConfig",
    "build_orchestrator",
    "build_registry",
    "build_telemetry",
)


def build_registry(llm: Capability) -> CapabilityRegistry:
    """Register the shipped capabilities around a single LLM backend."""

    registry = CapabilityRegistry(
        [
            llm,
            RunCommand(),
            GitStatus(),
            Echo(),
            Reflector(llm),
            ErrorAnalyzer(llm),
        ]
    )
    return registry


def build_telemetry(path: Optional[Path], extra_sinks: Iterable[TelemetrySink] = ()) -> Telemetry | None:
    sinks = list(extra_sinks)
    if path is not None:
        sinks.append(JsonLinesSink(Path(path)))
    if not sinks:
        return None
    return Telemetry(sinks=sinks)


def build_orchestrator(
    config: RuntimeConfig,
    *,
    llm: Capability | None = None,
    input_fn: Callable[[], str] | None = None,
    telemetry: Telemetry | None = None,
) -> Orchestrator:
    """Wire an :class:`Orchestrator` from ``config``.

    ``llm`` replaces the Ollama backend, which is how tests script the model.
    """

    backend = llm or OllamaBackend(
        config.model,
        endpoint=config.backend_url,
        timeout_s=config.request_timeout,
    )
    if telemetry is None:
        telemetry = build_telemetry(config.telemetry_path)
    analyzer = GoalAnalyzer(backend) if config.use_goal_analysis else None
    registry = build_registry(backend)
    if analyzer is not None:
        registry.register(analyzer)
    audit = AuditLog(telemetry=telemetry)

    planner: Planner | None = None
    if not config.static_plan:
        planner = Planner(
            llm=backend,
            registry=registry,
            telemetry=telemetry,
            goal_analyzer=analyzer,
        )
    gatekeeper = AutoApproveGatekeeper() if config.auto_confirm else ConsoleGatekeeper(input_fn=input_fn)
    return Orchestrator(
        registry=registry,
        audit=audit,
        planner=planner,
        replanner=Replanner(llm=backend, registry=registry, telemetry=telemetry),
        gatekeeper=gatekeeper,
        telemetry=telemetry,
        max_replans=config.max_replans,
        reflect_after_run=config.reflect_after_run,
    )
