"""
Database Models - Local Mirror of the Shopify Catalog

Tables:
- Store: one row per connected shop, owns products and orders
- Product: sustainability metafields mirrored per catalog item
- ProductMetricsHistory: append-only snapshots of the tracked product fields
- Order: fulfilled orders with their computed delivery distance
"""

from datetime import datetime
from typing import Optional, List
import uuid

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ecotrack.transformation.normalizers import packaging_ratio


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# Fields compared when deciding whether a new history snapshot is needed
TRACKED_FIELDS = (
    "sustainable_materials",
    "is_locally_produced",
    "packaging_weight",
    "product_weight",
    "packaging_ratio",
)


class Store(Base):
    """
    Connected Shopify store.

    Created on the first authenticated request or install webhook. Warehouse
    coordinates are resolved lazily from the shop's primary location.
    """
    __tablename__ = "stores"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    shopify_domain: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    access_token: Mapped[Optional[str]] = mapped_column(Text)

    warehouse_latitude: Mapped[Optional[float]] = mapped_column(Float)
    warehouse_longitude: Mapped[Optional[float]] = mapped_column(Float)
    avg_delivery_distance: Mapped[Optional[float]] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    products: Mapped[List["Product"]] = relationship(
        back_populates="store", passive_deletes=True
    )
    orders: Mapped[List["Order"]] = relationship(
        back_populates="store", passive_deletes=True
    )

    @property
    def display_name(self) -> str:
        """Name, or the domain prefix before the first dot"""
        return self.name or self.shopify_domain.split(".")[0]

    @property
    def has_warehouse(self) -> bool:
        return self.warehouse_latitude is not None and self.warehouse_longitude is not None


class Product(Base):
    """
    Mirrored catalog product, unique per (shopify_product_id, store_id).

    packaging_ratio is derived; use apply_metrics() to write the weights so the
    ratio is recomputed with them.
    """
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    shopify_product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    store_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[Optional[str]] = mapped_column(String(500))

    sustainable_materials: Mapped[Optional[float]] = mapped_column(Float)  # 0.0 - 1.0
    is_locally_produced: Mapped[Optional[bool]] = mapped_column(Boolean)
    packaging_weight: Mapped[Optional[float]] = mapped_column(Float)  # kg
    product_weight: Mapped[Optional[float]] = mapped_column(Float)  # kg
    packaging_ratio: Mapped[Optional[float]] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    store: Mapped["Store"] = relationship(back_populates="products")
    history: Mapped[List["ProductMetricsHistory"]] = relationship(
        back_populates="product", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("shopify_product_id", "store_id", name="uq_products_shopify_store"),
        Index("ix_products_store", "store_id"),
    )

    def apply_metrics(
        self,
        sustainable_materials: Optional[float] = None,
        is_locally_produced: Optional[bool] = None,
        packaging_weight: Optional[float] = None,
        product_weight: Optional[float] = None,
    ) -> None:
        """Write the supplied values and recompute packaging_ratio from the resulting weights."""
        if sustainable_materials is not None:
            self.sustainable_materials = sustainable_materials
        if is_locally_produced is not None:
            self.is_locally_produced = is_locally_produced
        if packaging_weight is not None:
            self.packaging_weight = packaging_weight
        if product_weight is not None:
            self.product_weight = product_weight
        self.packaging_ratio = packaging_ratio(self.packaging_weight, self.product_weight)


class ProductMetricsHistory(Base):
    """
    Append-only product metric snapshots.

    A row is written only when a tracked field differs from the latest row
    for the same product.
    """
    __tablename__ = "product_metrics_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )

    sustainable_materials: Mapped[Optional[float]] = mapped_column(Float)
    is_locally_produced: Mapped[Optional[bool]] = mapped_column(Boolean)
    packaging_weight: Mapped[Optional[float]] = mapped_column(Float)
    product_weight: Mapped[Optional[float]] = mapped_column(Float)
    packaging_ratio: Mapped[Optional[float]] = mapped_column(Float)

    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    product: Mapped["Product"] = relationship(back_populates="history")

    __table_args__ = (
        Index("ix_product_metrics_history_product_ts", "product_id", "timestamp"),
    )


class Order(Base):
    """
    Fulfilled order with a shipping address, unique per (shopify_order_id, store_id).

    delivery_distance is null when the address has no coordinates.
    """
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    shopify_order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    store_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False
    )
    shopify_order_name: Mapped[Optional[str]] = mapped_column(String(100))
    fulfilled: Mapped[bool] = mapped_column(Boolean, default=False)

    delivery_address: Mapped[Optional[str]] = mapped_column(String(500))
    delivery_city: Mapped[Optional[str]] = mapped_column(String(200))
    delivery_country: Mapped[Optional[str]] = mapped_column(String(100))
    delivery_zip_code: Mapped[Optional[str]] = mapped_column(String(20))
    delivery_distance: Mapped[Optional[float]] = mapped_column(Float)  # km

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    store: Mapped["Store"] = relationship(back_populates="orders")

    __table_args__ = (
        UniqueConstraint("shopify_order_id", "store_id", name="uq_orders_shopify_store"),
        Index("ix_orders_store_fulfilled", "store_id", "fulfilled"),
    )
