from datetime import datetime, timedelta, timezone
from itertools import count

import pytest
from sqlalchemy import create_engine, event

from app.application.schemas import (
    Address,
    CartItem,
    Money,
    OrderItem,
    OrderResult,
    PlaceOrderRequest,
)
from app.infrastructure.order_store import OrderStore, _enable_sqlite_foreign_keys


def make_request(user_id: str = "u1", currency: str = "USD") -> PlaceOrderRequest:
    return PlaceOrderRequest(
        user_id=user_id,
        user_currency=currency,
        email=f"{user_id}@example.com",
        address=Address(
            street_address="1600 Amphitheatre Parkway",
            city="Mountain View",
            state="CA",
            country="US",
            zip_code="94043",
        ),
    )


def make_item(product_id: str = "prod-42", quantity: int = 2,
              units: int = 14, nanos: int = 995000000) -> OrderItem:
    return OrderItem(
        item=CartItem(product_id=product_id, quantity=quantity),
        cost=Money(units=units, nanos=nanos),
    )


def make_result(order_id: str = "ord-1", items=None) -> OrderResult:
    return OrderResult(
        order_id=order_id,
        shipping_tracking_id=f"track-{order_id}",
        shipping_cost=Money(units=8, nanos=990000000),
        shipping_address=make_request().address,
        items=[make_item()] if items is None else items,
    )


TOTAL = Money(units=29, nanos=990000000)


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'orders.db'}"


@pytest.fixture
def ticking_clock():
    """Clock that advances one second per call so created_at is strictly ordered."""
    base = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    ticks = count()
    return lambda: base + timedelta(seconds=next(ticks))


@pytest.fixture
def store(database_url, ticking_clock):
    order_store = OrderStore.open(database_url, clock=ticking_clock)
    order_store.create_schema()
    yield order_store
    order_store.close()


@pytest.fixture
def raw_engine(database_url, store):
    """Independent engine on the same database for out-of-band inspection."""
    engine = create_engine(database_url)
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    yield engine
    engine.dispose()
