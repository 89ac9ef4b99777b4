"""PHAESTUS LangGraph orchestration graph."""

from phaestus.graph.orchestrator import build_graph, compile_graph
from phaestus.graph.state import OrchestratorState, prepare_initial_state
from phaestus.graph.streaming import resume_orchestrator, run_orchestrator

__all__ = [
    "build_graph",
    "compile_graph",
    "OrchestratorState",
    "prepare_initial_state",
    "resume_orchestrator",
    "run_orchestrator",
]
