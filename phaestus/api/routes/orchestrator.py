"""Server-sent-event endpoints for orchestrator runs.

Endpoints:
- POST /api/v1/orchestrator/run     Start (or resume from a snapshot) and stream events
- POST /api/v1/orchestrator/resume  Answer a needs_input checkpoint and keep streaming

Each SSE frame is ``event: <type>`` plus the JSON event as ``data``. The
stream ends after the ``complete`` or ``error`` event. A client that
disconnects cancels its run.
"""

import asyncio
import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from phaestus.api.schemas import ResumeRequest, RunRequest
from phaestus.graph.streaming import (
    StreamEvent,
    make_run_config,
    resume_orchestrator,
    run_orchestrator,
)
from phaestus.llm.adapter import LLMAdapter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/orchestrator", tags=["orchestrator"])

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


def get_graph(request: Request) -> Any:
    """Compiled graph shared by every run (one checkpointer per process)."""
    return request.app.state.graph


def get_llm_adapter(request: Request) -> LLMAdapter | None:
    """Adapter injected into runs; None builds the default from config."""
    return getattr(request.app.state, "llm", None)


def format_sse(event: StreamEvent) -> str:
    return f"event: {event.type}\ndata: {json.dumps(event.to_dict(), default=str)}\n\n"


async def _sse_stream(
    request: Request,
    events: AsyncIterator[StreamEvent],
    cancel_event: asyncio.Event,
) -> AsyncIterator[str]:
    """Forward events as SSE frames, cancelling the run if the client goes away."""
    async with aclosing(events) as stream:
        async for event in stream:
            yield format_sse(event)
            if not cancel_event.is_set() and await request.is_disconnected():
                logger.info("SSE client disconnected, cancelling run")
                cancel_event.set()


@router.post("/run")
async def run(
    body: RunRequest,
    request: Request,
    graph: Any = Depends(get_graph),
    llm: LLMAdapter | None = Depends(get_llm_adapter),
) -> StreamingResponse:
    """Run the orchestrator and stream its events."""
    logger.info(f"API: run project={body.project_id} mode={body.mode.value}")
    cancel_event = asyncio.Event()
    events = run_orchestrator(
        body,
        llm=llm,
        cancel_event=cancel_event,
        thread_id=body.thread_id,
        graph=graph,
    )
    return StreamingResponse(
        _sse_stream(request, events, cancel_event),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/resume")
async def resume(
    body: ResumeRequest,
    request: Request,
    graph: Any = Depends(get_graph),
    llm: LLMAdapter | None = Depends(get_llm_adapter),
) -> StreamingResponse:
    """Answer a checkpoint and stream the rest of the run."""
    config = make_run_config(body.thread_id, llm)
    snapshot = await graph.aget_state(config)
    if not snapshot.next:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No suspended run for thread {body.thread_id}",
        )

    logger.info(f"API: resume thread={body.thread_id}")
    cancel_event = asyncio.Event()
    events = resume_orchestrator(graph, body.response, config, cancel_event=cancel_event)
    return StreamingResponse(
        _sse_stream(request, events, cancel_event),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
