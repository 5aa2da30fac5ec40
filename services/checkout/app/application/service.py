from typing import Optional, List
from shared.core import get_logger, log_context
from app.infrastructure.order_store import OrderStore
from app.domain.errors import OrderStoreError
from .schemas import Money, Order, OrderResult, PlaceOrderRequest

logger = get_logger(__name__)

class PersistenceUnavailable(Exception):
    """Raised on read paths when no order store is configured."""
    pass

class OrderRecorder:
    """Best-effort persistence of placed orders.

    A checkout that already succeeded must not fail because the order could
    not be written, so store errors are logged and reported as False.
    """

    def __init__(self, store: Optional[OrderStore], timeout: Optional[float] = None):
        self.store = store
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return self.store is not None

    def record(self, request: PlaceOrderRequest, result: OrderResult, total_amount: Money) -> bool:
        if self.store is None:
            logger.debug(f"Persistence disabled, order {result.order_id} not recorded")
            return False

        with log_context(user_id=request.user_id, order_id=result.order_id):
            try:
                self.store.save_order(request, result, total_amount, timeout=self.timeout)
            except OrderStoreError as e:
                logger.warning(
                    f"Failed to persist order {result.order_id}: {e}",
                    extra={
                        'extra_fields': {
                            'order_id': result.order_id,
                            'error_type': type(e).__name__,
                            'operation': e.operation,
                        }
                    }
                )
                return False
        return True

class OrderQueryService:
    def __init__(self, store: Optional[OrderStore], timeout: Optional[float] = None):
        self.store = store
        self.timeout = timeout

    def _require_store(self) -> OrderStore:
        if self.store is None:
            raise PersistenceUnavailable("order persistence is not configured")
        return self.store

    def get(self, order_id: str) -> Order:
        return self._require_store().get_order(order_id, timeout=self.timeout)

    def list_for_user(self, user_id: str) -> List[Order]:
        return self._require_store().get_user_orders(user_id, timeout=self.timeout)
