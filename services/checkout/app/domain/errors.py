"""
Error classes for the order store.

Every error carries the operation that failed and, where one applies, the
order or user identifier it was working on. The underlying driver exception
is chained as ``__cause__``.
"""

from typing import Optional


class OrderStoreError(Exception):
    """Base error for order persistence."""

    def __init__(
        self,
        operation: str,
        message: str,
        *,
        order_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ):
        self.operation = operation
        self.order_id = order_id
        self.user_id = user_id
        self.message = message
        super().__init__(self._render())

    def _render(self) -> str:
        subject = []
        if self.order_id is not None:
            subject.append(f"order_id={self.order_id}")
        if self.user_id is not None:
            subject.append(f"user_id={self.user_id}")
        where = f" [{', '.join(subject)}]" if subject else ""
        return f"{self.operation}{where}: {self.message}"


class StoreConnectionError(OrderStoreError):
    """Database could not be opened or did not answer the health check."""
    pass


class TransactionError(OrderStoreError):
    """Begin or commit of the save transaction failed."""

    def __init__(self, operation: str, message: str, *, phase: str, **kwargs):
        self.phase = phase
        super().__init__(operation, f"{phase}: {message}", **kwargs)


class ConstraintError(OrderStoreError):
    """Integrity violation, e.g. a duplicate order id."""
    pass


class OrderNotFoundError(OrderStoreError):
    """No order exists with the requested id."""

    def __init__(self, operation: str, order_id: str):
        super().__init__(operation, "order not found", order_id=order_id)


class StoreIOError(OrderStoreError):
    """Query or row mapping failure."""
    pass


class StoreClosedError(StoreIOError):
    """Operation attempted after close()."""
    pass
