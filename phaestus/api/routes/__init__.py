"""PHAESTUS API route modules."""

from phaestus.api.routes.drc import router as drc_router
from phaestus.api.routes.orchestrator import router as orchestrator_router

__all__ = ["drc_router", "orchestrator_router"]
