"""
SQLAlchemy engine singleton with production-ready connection pooling.

The booking ledger opens its admission transactions on
``engine.execution_options(isolation_level="SERIALIZABLE")``; everything else
runs at the driver default (read committed on PostgreSQL).
"""

from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from booking_engine.config import DATABASE_URL

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set.")

engine: Engine = create_engine(
    DATABASE_URL,
    future=True,
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,  # Verify connections before using (detect stale connections)
    pool_recycle=3600,
    echo=False,
)


def check_engine_health(target: Optional[Engine] = None) -> bool:
    """
    Check that the database answers and the reservations table is reachable.

    Used by the /ready endpoint before allowing traffic to the service.

    Args:
        target: Engine to check; defaults to the module engine

    Returns:
        bool: True if database is reachable and healthy, False otherwise
    """
    try:
        with (target or engine).connect() as conn:
            conn.execute(text("SELECT 1 FROM reservations LIMIT 1"))
        return True
    except Exception:
        return False
