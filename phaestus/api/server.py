"""FastAPI server for PHAESTUS.

Wires the orchestrator SSE endpoints, the DRC endpoint, CORS and the
checkpointer lifespan.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from phaestus.api.routes.drc import router as drc_router
from phaestus.api.routes.orchestrator import router as orchestrator_router
from phaestus.config import get_config
from phaestus.graph.orchestrator import compile_graph
from phaestus.persistence.checkpointer import open_checkpointer

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the checkpointer and the compiled graph shared by all runs."""
    async with open_checkpointer() as checkpointer:
        app.state.graph = compile_graph(checkpointer)
        app.state.llm = None
        logger.info(f"Orchestrator graph ready ({type(checkpointer).__name__})")

        yield

    logger.info("Orchestrator shut down")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="PHAESTUS",
    description="Hardware design orchestrator API: spec, PCB, enclosure, firmware",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().get("cors_origins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(orchestrator_router)
app.include_router(drc_router)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "version": VERSION}
