from __future__ import annotations

import logging
import time
from collections.abc import Iterator

from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from . import config
from .models import Base

logger = logging.getLogger(__name__)

engine: Engine | None = None


def get_engine(url: str | None = None) -> Engine:
    url = url or config.DATABASE_URL
    if not url:
        raise RuntimeError("DATABASE_URL is required")
    if url.startswith("sqlite"):
        # single shared connection so an in-memory db survives across sessions
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url, pool_pre_ping=True)


def init_db(retries: int | None = None, delay: float = 1.0) -> Engine:
    """Create the engine and tables.

    Postgres in docker-compose might not be ready when the API boots, so
    retry a few times before failing hard.
    """
    global engine
    retries = config.DB_INIT_RETRIES if retries is None else retries
    last_exc: Exception | None = None
    for attempt in range(1, max(retries, 1) + 1):
        try:
            eng = get_engine()
            Base.metadata.create_all(bind=eng)
            engine = eng
            logger.info("database ready after %d attempt(s)", attempt)
            return eng
        except Exception as exc:  # noqa: BLE001
            last_exc = exc
            logger.warning("database not ready (attempt %d/%d): %s", attempt, retries, exc)
            time.sleep(delay)
    raise RuntimeError(f"DB init failed after retries: {last_exc}")


def dispose_db() -> None:
    global engine
    if engine is not None:
        engine.dispose()
    engine = None


def get_session() -> Iterator[Session]:
    if engine is None:
        raise HTTPException(status_code=503, detail="db not ready")
    with Session(engine) as s:
        yield s
