"""
Order store

Persists checkout orders (header + line items) in a relational database and
reads them back by order id or user id. Connection pooling is SQLAlchemy's
QueuePool; the store itself keeps no shared mutable state beyond its engine
handle, so one instance is shared by all concurrent callers.
"""

import math
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import create_engine, event, select, text
from sqlalchemy.engine import Connection, Engine, Row, URL, make_url
from sqlalchemy.exc import ArgumentError, DBAPIError, IntegrityError, SQLAlchemyError

from shared.core import get_logger
from app.application.schemas import (
    Address,
    CartItem,
    Money,
    Order,
    OrderItem,
    OrderResult,
    PlaceOrderRequest,
)
from app.domain.errors import (
    ConstraintError,
    OrderNotFoundError,
    StoreClosedError,
    StoreConnectionError,
    StoreIOError,
    TransactionError,
)
from app.domain.models import Base, OrderItemRecord, OrderRecord

logger = get_logger(__name__)

DEFAULT_MAX_OPEN_CONNS = 25
DEFAULT_MAX_IDLE_CONNS = 5
DEFAULT_CONN_MAX_LIFETIME_SECONDS = 300
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0
DEFAULT_POOL_TIMEOUT_SECONDS = 5.0

orders_table = OrderRecord.__table__
order_items_table = OrderItemRecord.__table__


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless enabled per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _is_memory_sqlite(url: URL) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def _connect_args(url: URL, connect_timeout: float) -> Dict[str, Any]:
    backend = url.get_backend_name()
    if backend in ("postgresql", "mysql", "mariadb"):
        return {"connect_timeout": max(int(math.ceil(connect_timeout)), 1)}
    if backend == "sqlite":
        return {"check_same_thread": False, "timeout": connect_timeout}
    return {}


def _pool_options(
    url: URL,
    max_open_conns: int,
    max_idle_conns: int,
    conn_max_lifetime: int,
    pool_timeout: float,
) -> Dict[str, Any]:
    # In-memory SQLite uses a per-thread singleton pool with no size limits
    if _is_memory_sqlite(url):
        return {}
    return {
        "pool_size": max_idle_conns,
        "max_overflow": max(max_open_conns - max_idle_conns, 0),
        "pool_recycle": conn_max_lifetime,
        "pool_timeout": pool_timeout,
        "pool_pre_ping": True,
    }


class OrderStore:
    """
    Pooled data-access layer for checkout orders.

    Lifecycle: open() -> save/get calls -> close(). Closed is terminal;
    close() may be called any number of times.
    """

    def __init__(
        self,
        engine: Optional[Engine],
        *,
        safe_url: str = "",
        password: Optional[str] = None,
        default_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._engine = engine
        self._safe_url = safe_url
        self._password = password
        self._default_timeout = default_timeout
        self._clock = clock
        self._lock = threading.Lock()

    @classmethod
    def open(
        cls,
        database_url: str,
        *,
        max_open_conns: int = DEFAULT_MAX_OPEN_CONNS,
        max_idle_conns: int = DEFAULT_MAX_IDLE_CONNS,
        conn_max_lifetime: int = DEFAULT_CONN_MAX_LIFETIME_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        pool_timeout: float = DEFAULT_POOL_TIMEOUT_SECONDS,
        default_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> "OrderStore":
        """
        Create the connection pool and verify the database answers.

        Args:
            database_url: SQLAlchemy URL, e.g. postgresql+psycopg2://user:pw@host/db
            max_open_conns: Upper bound on pooled plus overflow connections
            max_idle_conns: Connections kept open while idle
            conn_max_lifetime: Seconds before a pooled connection is recycled
            connect_timeout: Bound on the startup health check
            pool_timeout: Seconds to wait for a free pooled connection
            default_timeout: Statement timeout applied when a call passes none
            clock: Source of created_at/updated_at timestamps

        Raises:
            StoreConnectionError: driver cannot be initialised or the health
                check does not succeed in time
        """
        try:
            url = make_url(database_url)
        except ArgumentError as exc:
            raise StoreConnectionError("open", "invalid database URL") from exc

        safe_url = url.render_as_string(hide_password=True)
        try:
            engine = create_engine(
                url,
                future=True,
                connect_args=_connect_args(url, connect_timeout),
                **_pool_options(
                    url, max_open_conns, max_idle_conns, conn_max_lifetime, pool_timeout
                ),
            )
        except (SQLAlchemyError, ImportError) as exc:
            raise StoreConnectionError(
                "open", f"cannot initialise driver for {safe_url}: {type(exc).__name__}"
            ) from exc

        if url.get_backend_name() == "sqlite":
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)

        store = cls(
            engine,
            safe_url=safe_url,
            password=url.password,
            default_timeout=default_timeout,
            clock=clock,
        )
        try:
            store.ping(timeout=connect_timeout)
        except StoreConnectionError:
            engine.dispose()
            raise

        logger.info(
            f"Connected to order database {safe_url}",
            extra={
                'extra_fields': {
                    'database': safe_url,
                    'max_open_conns': max_open_conns,
                    'max_idle_conns': max_idle_conns,
                    'conn_max_lifetime_seconds': conn_max_lifetime,
                }
            }
        )
        return store

    @property
    def closed(self) -> bool:
        return self._engine is None

    def close(self) -> None:
        """Release the connection pool. No-op when already closed."""
        with self._lock:
            engine, self._engine = self._engine, None
        if engine is not None:
            engine.dispose()
            logger.info(f"Order database pool closed ({self._safe_url})")

    def __enter__(self) -> "OrderStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def ping(self, *, timeout: Optional[float] = None) -> None:
        """Round-trip a trivial query through the pool."""
        engine = self._require_engine("ping")
        try:
            with engine.connect() as conn:
                self._apply_timeout(conn, timeout)
                conn.execute(text("SELECT 1")).scalar_one()
        except SQLAlchemyError as exc:
            raise StoreConnectionError(
                "ping", f"{self._safe_url} unreachable: {self._describe(exc)}"
            ) from exc

    def create_schema(self) -> None:
        """Create the orders and order_items tables if they do not exist."""
        engine = self._require_engine("create schema")
        try:
            Base.metadata.create_all(engine)
        except SQLAlchemyError as exc:
            raise StoreIOError("create schema", self._describe(exc)) from exc

    # Writes

    def save_order(
        self,
        request: PlaceOrderRequest,
        result: OrderResult,
        total_amount: Money,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Insert the order header and all its items in one transaction.

        Either the order and every item become visible or nothing does.
        All rows share a single timestamp.
        """
        operation = "save order"
        order_id = result.order_id
        engine = self._require_engine(operation, order_id=order_id)
        now = self._clock()

        try:
            conn = engine.connect()
        except SQLAlchemyError as exc:
            raise TransactionError(
                operation, self._describe(exc), phase="begin", order_id=order_id
            ) from exc

        with conn:
            try:
                trans = conn.begin()
                self._apply_timeout(conn, timeout)
            except SQLAlchemyError as exc:
                raise TransactionError(
                    operation, self._describe(exc), phase="begin", order_id=order_id
                ) from exc

            try:
                self._insert(
                    conn,
                    orders_table,
                    self._order_row(request, result, total_amount, now),
                    operation=operation,
                    phase="insert order",
                    order_id=order_id,
                )
                for position, item in enumerate(result.items):
                    self._insert(
                        conn,
                        order_items_table,
                        self._item_row(order_id, item, now),
                        operation=operation,
                        phase=f"insert order item {position} ({item.item.product_id})",
                        order_id=order_id,
                    )
                try:
                    trans.commit()
                except SQLAlchemyError as exc:
                    raise TransactionError(
                        operation, self._describe(exc), phase="commit", order_id=order_id
                    ) from exc
            finally:
                if trans.is_active:
                    self._rollback(trans, order_id)

        logger.info(
            f"Order {order_id} saved to database",
            extra={
                'extra_fields': {
                    'order_id': order_id,
                    'user_id': request.user_id,
                    'items': len(result.items),
                }
            }
        )

    # Reads

    def get_order(self, order_id: str, *, timeout: Optional[float] = None) -> Order:
        """Fetch one order with its items; OrderNotFoundError if unknown."""
        operation = "get order"
        engine = self._require_engine(operation, order_id=order_id)
        try:
            with engine.connect() as conn:
                self._apply_timeout(conn, timeout)
                row = conn.execute(
                    select(orders_table).where(orders_table.c.order_id == order_id)
                ).one_or_none()
                if row is None:
                    raise OrderNotFoundError(operation, order_id)
                return self._to_order(row, self._fetch_items(conn, order_id))
        except (SQLAlchemyError, ValidationError) as exc:
            raise StoreIOError(operation, self._describe(exc), order_id=order_id) from exc

    def get_user_orders(self, user_id: str, *, timeout: Optional[float] = None) -> List[Order]:
        """All orders of a user, newest first. Empty list when there are none."""
        operation = "get user orders"
        engine = self._require_engine(operation, user_id=user_id)
        orders: List[Order] = []
        try:
            with engine.connect() as conn:
                self._apply_timeout(conn, timeout)
                rows = conn.execute(
                    select(orders_table)
                    .where(orders_table.c.user_id == user_id)
                    .order_by(orders_table.c.created_at.desc(), orders_table.c.order_id.desc())
                ).all()
                for row in rows:
                    orders.append(self._to_order(row, self._fetch_items(conn, row.order_id)))
        except (SQLAlchemyError, ValidationError) as exc:
            raise StoreIOError(operation, self._describe(exc), user_id=user_id) from exc
        return orders

    # Helpers

    def _require_engine(self, operation: str, **ids) -> Engine:
        engine = self._engine
        if engine is None:
            raise StoreClosedError(operation, "order store is closed", **ids)
        return engine

    def _apply_timeout(self, conn: Connection, timeout: Optional[float]) -> None:
        timeout = timeout if timeout is not None else self._default_timeout
        if not timeout:
            return
        if conn.dialect.name == "postgresql":
            # SET does not take bind parameters; the value is an int we computed
            millis = max(int(timeout * 1000), 1)
            conn.execute(text(f"SET LOCAL statement_timeout = {millis}"))
        else:
            logger.debug(f"Statement timeout not supported on {conn.dialect.name}, ignoring")

    def _insert(
        self,
        conn: Connection,
        table,
        params: Dict[str, Any],
        *,
        operation: str,
        phase: str,
        order_id: str,
    ) -> None:
        try:
            conn.execute(table.insert(), params)
        except IntegrityError as exc:
            raise ConstraintError(
                operation, f"{phase}: {self._describe(exc)}", order_id=order_id
            ) from exc
        except SQLAlchemyError as exc:
            raise StoreIOError(
                operation, f"{phase}: {self._describe(exc)}", order_id=order_id
            ) from exc

    def _rollback(self, trans, order_id: str) -> None:
        try:
            trans.rollback()
        except SQLAlchemyError:
            logger.warning(f"Rollback failed for order {order_id}", exc_info=True)

    def _fetch_items(self, conn: Connection, order_id: str) -> List[OrderItem]:
        rows = conn.execute(
            select(
                order_items_table.c.product_id,
                order_items_table.c.quantity,
                order_items_table.c.cost_units,
                order_items_table.c.cost_nanos,
            )
            .where(order_items_table.c.order_id == order_id)
            .order_by(order_items_table.c.id)
        ).all()
        return [
            OrderItem(
                item=CartItem(product_id=r.product_id, quantity=r.quantity),
                cost=Money(units=r.cost_units, nanos=r.cost_nanos),
            )
            for r in rows
        ]

    def _describe(self, exc: BaseException) -> str:
        # Driver message only; SQLAlchemy's own rendering embeds bound parameters
        source = exc.orig if isinstance(exc, DBAPIError) and exc.orig is not None else exc
        message = str(source).strip().splitlines()[0] if str(source).strip() else type(source).__name__
        if self._password:
            message = message.replace(self._password, "***")
        return message

    @staticmethod
    def _order_row(
        request: PlaceOrderRequest,
        result: OrderResult,
        total_amount: Money,
        now: datetime,
    ) -> Dict[str, Any]:
        address = request.address
        return {
            "order_id": result.order_id,
            "user_id": request.user_id,
            "user_email": request.email,
            "user_currency": request.user_currency,
            "shipping_tracking_id": result.shipping_tracking_id,
            "total_amount_units": total_amount.units,
            "total_amount_nanos": total_amount.nanos,
            "shipping_cost_units": result.shipping_cost.units,
            "shipping_cost_nanos": result.shipping_cost.nanos,
            "shipping_address_street": address.street_address,
            "shipping_address_city": address.city,
            "shipping_address_state": address.state,
            "shipping_address_country": address.country,
            "shipping_address_zip": address.zip_code,
            "created_at": now,
            "updated_at": now,
        }

    @staticmethod
    def _item_row(order_id: str, item: OrderItem, now: datetime) -> Dict[str, Any]:
        return {
            "order_id": order_id,
            "product_id": item.item.product_id,
            "quantity": item.item.quantity,
            "cost_units": item.cost.units,
            "cost_nanos": item.cost.nanos,
            "created_at": now,
        }

    @staticmethod
    def _to_order(row: Row, items: List[OrderItem]) -> Order:
        return Order(
            order_id=row.order_id,
            user_id=row.user_id,
            user_email=row.user_email,
            user_currency=row.user_currency,
            shipping_tracking_id=row.shipping_tracking_id,
            total_amount=Money(
                units=row.total_amount_units,
                nanos=row.total_amount_nanos,
            ),
            shipping_cost=Money(
                units=row.shipping_cost_units,
                nanos=row.shipping_cost_nanos,
            ),
            shipping_address=Address(
                street_address=row.shipping_address_street,
                city=row.shipping_address_city,
                state=row.shipping_address_state,
                country=row.shipping_address_country,
                zip_code=row.shipping_address_zip,
            ),
            items=items,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
