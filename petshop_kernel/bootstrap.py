"""
Process startup for the till kernel.

    settings = load_settings()
    bootstrap(settings)
    with session_scope() as session:
        RegisterService(session, verifier, settings).open_register(...)
"""

from sqlalchemy.engine import Engine

from petshop_kernel.config import Settings, load_settings
from petshop_kernel.db.engine import create_tables, init_engine_from_url
from petshop_kernel.db.immutability import register_immutability_listeners
from petshop_kernel.logging_config import configure_logging, get_logger

logger = get_logger("bootstrap")


def bootstrap(settings: Settings | None = None, *, create_schema: bool = True) -> Engine:
    """
    Configure logging, connect to the database, install the immutability
    listeners and (optionally) create missing tables.

    Returns:
        The initialized engine.
    """
    settings = settings or load_settings()
    configure_logging(level=settings.log_level)
    engine = init_engine_from_url(settings.database_url)
    register_immutability_listeners()
    if create_schema:
        create_tables()
    logger.info(
        "kernel_bootstrapped",
        extra={"dialect": engine.dialect.name, "timezone": settings.timezone},
    )
    return engine
