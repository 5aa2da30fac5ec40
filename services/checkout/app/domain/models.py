from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, ForeignKey, BigInteger, Integer, DateTime, CheckConstraint
from datetime import datetime

class Base(DeclarativeBase):
    pass

class OrderRecord(Base):
    __tablename__ = "orders"
    # The checkout flow assigns the id; the primary key doubles as its index
    order_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    user_email: Mapped[str] = mapped_column(String(255))
    user_currency: Mapped[str] = mapped_column(String(10))
    shipping_tracking_id: Mapped[str] = mapped_column(String(255))
    # Money columns are fixed-point: whole units + nanos (1e-9)
    total_amount_units: Mapped[int] = mapped_column(BigInteger)
    total_amount_nanos: Mapped[int] = mapped_column(Integer)
    shipping_cost_units: Mapped[int] = mapped_column(BigInteger)
    shipping_cost_nanos: Mapped[int] = mapped_column(Integer)
    shipping_address_street: Mapped[str] = mapped_column(String(255))
    shipping_address_city: Mapped[str] = mapped_column(String(100))
    shipping_address_state: Mapped[str] = mapped_column(String(100))
    shipping_address_country: Mapped[str] = mapped_column(String(100))
    shipping_address_zip: Mapped[str] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

class OrderItemRecord(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Items go with their order via the database-level cascade
    order_id: Mapped[str] = mapped_column(
        ForeignKey("orders.order_id", ondelete="CASCADE"), index=True
    )
    # Product catalog lives in another service (no FK)
    product_id: Mapped[str] = mapped_column(String(255))
    quantity: Mapped[int] = mapped_column(Integer)
    cost_units: Mapped[int] = mapped_column(BigInteger)
    cost_nanos: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
