"""LangGraph orchestrator: the execution graph for a PHAESTUS run.

Wires the four build stages into one StateGraph. Each stage ends in a
``mark_*_complete`` node that routes to the entry node of the next
unfinished stage, so a resumed project skips work it already has.

Graph structure:
    START -> route_to_stage -> [analyze_feasibility | select_blocks |
                                generate_enclosure | generate_firmware |
                                mark_export_complete | END]

    analyze_feasibility -> [answer_questions | generate_blueprints | END]
    answer_questions -> generate_blueprints -> select_blueprint
        -> generate_names -> select_name -> finalize_spec -> mark_spec_complete

    select_blocks -> validate_pcb -> mark_pcb_complete

    generate_enclosure -> review_enclosure -> decide_enclosure
    decide_enclosure -> [accept_enclosure | generate_enclosure (revise) |
                         review_enclosure | request_user_input | END]
    accept_enclosure -> mark_enclosure_complete
    (firmware has the same shape)

    request_user_input -> [accept_* | generate_* | END]
    mark_*_complete -> route_to_stage
    mark_export_complete -> END
"""

import functools
import logging
from typing import Any, Callable

from langchain_core.runnables import RunnableConfig
from langgraph.checkpoint.memory import MemorySaver
from langgraph.graph import END, START, StateGraph
from langgraph.types import Command

from phaestus.graph.routing import (
    END_ROUTE,
    STAGE_ENTRY_NODES,
    advance_to,
    route_after_feasibility,
    route_to_stage,
)
from phaestus.graph.state import OrchestratorState

logger = logging.getLogger(__name__)

# Headroom above MAX_ITERATIONS so the in-graph cap fires before LangGraph's
RECURSION_LIMIT = 150

_STAGE_PATHS: dict[str, str] = {node: node for node in STAGE_ENTRY_NODES.values()}
_STAGE_PATHS[END_ROUTE] = END


# ---------------------------------------------------------------------------
# Iteration counting
# ---------------------------------------------------------------------------

def _counted(handler: Callable) -> Callable:
    """Wrap a node so every execution adds one to ``iteration_count``."""

    @functools.wraps(handler)
    async def node(state: dict[str, Any], config: RunnableConfig) -> Any:
        result = await handler(state, config)
        if isinstance(result, Command):
            return Command(
                update={**(result.update or {}), "iteration_count": 1},
                goto=result.goto,
            )
        return {**(result or {}), "iteration_count": 1}

    return node


# ---------------------------------------------------------------------------
# Graph construction
# ---------------------------------------------------------------------------

def build_graph() -> StateGraph:
    """Build the PHAESTUS orchestration graph."""
    # Node modules import graph.state and graph.routing, so load them lazily
    from phaestus.nodes.enclosure import (
        accept_enclosure_node,
        decide_enclosure_node,
        generate_enclosure_node,
        review_enclosure_node,
    )
    from phaestus.nodes.firmware import (
        accept_firmware_node,
        decide_firmware_node,
        generate_firmware_node,
        review_firmware_node,
    )
    from phaestus.nodes.pcb import select_blocks_node, validate_pcb_node
    from phaestus.nodes.shared import (
        mark_enclosure_complete_node,
        mark_export_complete_node,
        mark_firmware_complete_node,
        mark_pcb_complete_node,
        mark_spec_complete_node,
        request_user_input_node,
    )
    from phaestus.nodes.spec import (
        analyze_feasibility_node,
        answer_questions_auto_node,
        finalize_spec_node,
        generate_blueprints_node,
        generate_names_node,
        select_blueprint_auto_node,
        select_name_auto_node,
    )

    graph = StateGraph(OrchestratorState)

    def add(name: str, handler: Callable, destinations: tuple[str, ...] | None = None) -> None:
        if destinations is None:
            graph.add_node(name, _counted(handler))
        else:
            graph.add_node(name, _counted(handler), destinations=destinations)

    # Spec stage
    add("analyze_feasibility", analyze_feasibility_node)
    add("answer_questions", answer_questions_auto_node)
    add("generate_blueprints", generate_blueprints_node)
    add("select_blueprint", select_blueprint_auto_node)
    add("generate_names", generate_names_node)
    add("select_name", select_name_auto_node)
    add("finalize_spec", finalize_spec_node)
    add("mark_spec_complete", mark_spec_complete_node)

    # PCB stage
    add("select_blocks", select_blocks_node)
    add("validate_pcb", validate_pcb_node)
    add("mark_pcb_complete", mark_pcb_complete_node)

    # Enclosure loop
    add("generate_enclosure", generate_enclosure_node)
    add("review_enclosure", review_enclosure_node)
    add("decide_enclosure", decide_enclosure_node, (
        "accept_enclosure", "generate_enclosure", "review_enclosure", "request_user_input", END,
    ))
    add("accept_enclosure", accept_enclosure_node)
    add("mark_enclosure_complete", mark_enclosure_complete_node)

    # Firmware loop
    add("generate_firmware", generate_firmware_node)
    add("review_firmware", review_firmware_node)
    add("decide_firmware", decide_firmware_node, (
        "accept_firmware", "generate_firmware", "review_firmware", "request_user_input", END,
    ))
    add("accept_firmware", accept_firmware_node)
    add("mark_firmware_complete", mark_firmware_complete_node)

    # Export and the shared human checkpoint
    add("mark_export_complete", mark_export_complete_node)
    add("request_user_input", request_user_input_node, (
        "accept_enclosure", "generate_enclosure", "accept_firmware", "generate_firmware", END,
    ))

    # Entry: resume at the first unfinished stage
    graph.add_conditional_edges(START, route_to_stage, _STAGE_PATHS)

    # Spec chain
    graph.add_conditional_edges(
        "analyze_feasibility",
        route_after_feasibility,
        {
            "answer_questions": "answer_questions",
            "generate_blueprints": "generate_blueprints",
            END_ROUTE: END,
        },
    )
    _chain(graph, [
        "answer_questions",
        "generate_blueprints",
        "select_blueprint",
        "generate_names",
        "select_name",
        "finalize_spec",
        "mark_spec_complete",
    ])

    # PCB chain
    _chain(graph, ["select_blocks", "validate_pcb", "mark_pcb_complete"])

    # Loops: generate -> review -> decide (decide routes itself via Command)
    _chain(graph, ["generate_enclosure", "review_enclosure", "decide_enclosure"])
    _chain(graph, ["accept_enclosure", "mark_enclosure_complete"])
    _chain(graph, ["generate_firmware", "review_firmware", "decide_firmware"])
    _chain(graph, ["accept_firmware", "mark_firmware_complete"])

    # Stage completion -> next unfinished stage
    for node in ("mark_spec_complete", "mark_pcb_complete",
                 "mark_enclosure_complete", "mark_firmware_complete"):
        graph.add_conditional_edges(node, route_to_stage, _STAGE_PATHS)
    graph.add_edge("mark_export_complete", END)

    return graph


def _chain(graph: StateGraph, nodes: list[str]) -> None:
    """Linear edges that stop at END as soon as a node sets ``error``."""
    for current, following in zip(nodes, nodes[1:]):
        graph.add_conditional_edges(
            current,
            advance_to(following),
            {following: following, END_ROUTE: END},
        )


def compile_graph(checkpointer: Any = None) -> Any:
    """Compile the graph with checkpointing.

    Args:
        checkpointer: LangGraph checkpointer (MemorySaver, AsyncSqliteSaver, etc.)
                      If None, uses an in-memory checkpointer. A checkpointer is
                      always required because escalation suspends the run.

    Returns:
        Compiled LangGraph graph ready for execution.
    """
    graph = build_graph()
    if checkpointer is None:
        checkpointer = MemorySaver()
    compiled = graph.compile(checkpointer=checkpointer)
    logger.debug(f"Compiled orchestrator graph with {len(graph.nodes)} nodes")
    return compiled
