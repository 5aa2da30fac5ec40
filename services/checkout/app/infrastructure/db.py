from typing import Optional
from fastapi import Request
from app.core_settings import Settings
from app.domain.errors import OrderStoreError
from app.infrastructure.order_store import OrderStore
from shared.core import get_logger

logger = get_logger(__name__)

def open_store(settings: Settings) -> Optional[OrderStore]:
    """Open the order store, or None when persistence is off or unavailable.

    A store that cannot be opened leaves the service running in degraded
    mode rather than failing startup.
    """
    if not settings.persistence_enabled:
        logger.info("DATABASE_URL not set, running without order persistence")
        return None
    try:
        store = OrderStore.open(
            settings.DATABASE_URL,
            max_open_conns=settings.DB_MAX_OPEN_CONNS,
            max_idle_conns=settings.DB_MAX_IDLE_CONNS,
            conn_max_lifetime=settings.DB_CONN_MAX_LIFETIME_SECONDS,
            connect_timeout=settings.DB_CONNECT_TIMEOUT_SECONDS,
            pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
            default_timeout=settings.DB_QUERY_TIMEOUT_SECONDS,
        )
    except OrderStoreError as e:
        logger.error(f"Order store unavailable, running without persistence: {e}")
        return None
    try:
        store.create_schema()
    except OrderStoreError as e:
        logger.error(f"Failed to initialize order tables: {e}")
        store.close()
        return None
    return store

def get_store(request: Request) -> Optional[OrderStore]:
    return getattr(request.app.state, "order_store", None)
