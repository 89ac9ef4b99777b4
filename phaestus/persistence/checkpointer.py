"""Checkpoint stores that keep suspended runs resumable.

Memory checkpoints live as long as the process. SQLite checkpoints survive
restarts, so a run paused at a human checkpoint can be answered later from
a new CLI invocation or API process.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from phaestus.config import get_config
from phaestus.errors import ConfigError

logger = logging.getLogger(__name__)

BACKENDS = ("memory", "sqlite")
DEFAULT_DB_PATH = "~/.phaestus/checkpoints.db"


def resolve_backend(backend: str | None = None) -> str:
    """Backend name from the argument or the ``checkpointer`` setting."""
    name = (backend or get_config().get("checkpointer") or "memory").lower()
    if name not in BACKENDS:
        raise ConfigError(f"Unknown checkpointer backend {name!r}, expected one of {BACKENDS}")
    return name


def resolve_db_path(db_path: Path | str | None = None) -> Path:
    """SQLite file for checkpoints; its directory is created on demand."""
    path = Path(db_path or get_config().get("db_path") or DEFAULT_DB_PATH).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


@asynccontextmanager
async def open_checkpointer(
    backend: str | None = None,
    db_path: Path | str | None = None,
) -> AsyncIterator[Any]:
    """Yield a checkpointer for the runs inside the block.

    The SQLite connection is opened on entry and closed on exit, so the
    block must run inside the event loop that drives the graph.

    Raises:
        ConfigError: If the backend name is unknown.
    """
    name = resolve_backend(backend)

    if name == "memory":
        from langgraph.checkpoint.memory import MemorySaver

        logger.debug("Checkpoints kept in memory")
        yield MemorySaver()
        return

    from langgraph.checkpoint.sqlite.aio import AsyncSqliteSaver

    path = resolve_db_path(db_path)
    logger.info(f"Checkpoints persisted to {path}")
    async with AsyncSqliteSaver.from_conn_string(str(path)) as saver:
        yield saver
    logger.debug(f"Closed checkpoint store {path}")
